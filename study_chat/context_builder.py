"""
Domain Context Builder

Produces the bounded text block prepended to every question: the next few
deadlines, the next exams, the latest lectures, and the fixed instructions
for the assistant. Output depends only on the arguments, so the same
context can be reused across retries within one turn.
"""

from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple, TypeVar

from study_chat.schedule import Assignment, Exam, Lecture, UserProfile, parse_datetime

T = TypeVar("T")

ASSISTANT_NAME = "Cornelius"

MAX_ASSIGNMENTS = 3
MAX_EXAMS = 2
MAX_LECTURES = 3

SUBMITTED_STATUS = "submitted"

# Bold section names the front-end turns into navigation buttons
NAVIGATION_ALIASES = {
    "calendar": "tasks",
    "assignments": "tasks",
    "tasks": "tasks",
    "lectures": "lectures",
    "notes": "lectures",
    "profile": "profile",
    "home": "home",
    "dashboard": "home",
    "chat": "chat",
}

NAVIGATION_EXAMPLES = ("Calendar", "Assignments", "Profile", "Lectures", "Home")

QUESTION_SEPARATOR = "\n\nUser Question: "


def format_date_short(value: datetime) -> str:
    """e.g. "Jan 15, 2026"."""
    return f"{value:%b} {value.day}, {value.year}"


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'s' if count > 1 else ''}"


def format_time_until(target: datetime, now: datetime) -> str:
    """Relative description of ``target`` seen from ``now``."""
    diff = (target - now).total_seconds()

    if diff < 0:
        diff = abs(diff)
        days = int(diff // 86400)
        hours = int((diff % 86400) // 3600)
        if days > 0:
            return f"{_plural(days, 'day')} overdue"
        return f"{_plural(hours, 'hour')} overdue"

    days = int(diff // 86400)
    hours = int((diff % 86400) // 3600)
    minutes = int((diff % 3600) // 60)

    if days > 0:
        return f"in {_plural(days, 'day')}"
    if hours > 0:
        return f"in {_plural(hours, 'hour')}"
    return f"in {_plural(minutes, 'minute')}"


def _dated(items: Iterable[T], attr: str, now: datetime) -> List[Tuple[datetime, T]]:
    """Pair items with their parsed date, dropping ones that don't parse."""
    pairs = []
    for item in items:
        try:
            pairs.append((parse_datetime(getattr(item, attr), now.tzinfo), item))
        except (TypeError, ValueError):
            continue
    return pairs


def upcoming_assignments(assignments: Sequence[Assignment], now: datetime) -> List[str]:
    pending = [
        (due, a) for due, a in _dated(assignments, "due_date", now)
        if due > now and a.status != SUBMITTED_STATUS
    ]
    pending.sort(key=lambda pair: pair[0])
    return [
        f"- {a.title} (Due: {format_date_short(due)}, {format_time_until(due, now)})"
        for due, a in pending[:MAX_ASSIGNMENTS]
    ]


def upcoming_exams(exams: Sequence[Exam], now: datetime) -> List[str]:
    future = [(date, e) for date, e in _dated(exams, "date", now) if date > now]
    future.sort(key=lambda pair: pair[0])
    return [f"- {e.title} (Date: {e.date} at {e.time})" for _, e in future[:MAX_EXAMS]]


def recent_lectures(lectures: Sequence[Lecture], now: datetime) -> List[str]:
    dated = _dated(lectures, "date", now)
    dated.sort(key=lambda pair: pair[0], reverse=True)
    return [f"- {l.title} ({l.professor})" for _, l in dated[:MAX_LECTURES]]


def _instructions() -> str:
    examples = ", ".join(f"**{name}**" for name in NAVIGATION_EXAMPLES)
    return (
        "Instructions:\n"
        f'1. You are "{ASSISTANT_NAME}", an AI study assistant.\n'
        "2. Use the context data to answer questions about schedules, deadlines, and topics.\n"
        "3. If you suggest navigating to a specific section of the app, use the format "
        f"**SectionName** (e.g., {examples}). "
        "These will be rendered as interactive buttons for the user.\n"
        "4. Keep responses helpful, encouraging, and concise.\n"
        "5. Use Markdown for formatting. Use lists, bold text, and clear paragraphs."
    )


def build_context(
    now: datetime,
    assignments: Sequence[Assignment],
    exams: Sequence[Exam],
    lectures: Sequence[Lecture],
    user: Optional[UserProfile] = None,
) -> str:
    """
    Build the context block for one question.

    Args:
        now: Reference time; the builder never reads the clock itself
        assignments: Assignment snapshot
        exams: Exam snapshot
        lectures: Lecture snapshot
        user: Current user profile

    Returns:
        Context text, byte-identical for identical inputs
    """
    user_name = user.name if user is not None else UserProfile().name

    sections = [
        "Context Data:\n"
        f"Current Date: {now:%a %b %d %Y}\n"
        f"User: {user_name}",
        "Upcoming Assignments:\n"
        + ("\n".join(upcoming_assignments(assignments, now)) or "No pending assignments."),
        "Upcoming Exams:\n"
        + ("\n".join(upcoming_exams(exams, now)) or "No upcoming exams."),
        "Recent Lectures:\n"
        + ("\n".join(recent_lectures(lectures, now)) or "No recent lectures."),
        _instructions(),
    ]
    return "\n\n".join(sections)


def build_prompt(context: str, question: str) -> str:
    """Join the context block and the user's question."""
    return f"{context}{QUESTION_SEPARATOR}{question}"
