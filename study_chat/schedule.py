"""
Schedule snapshot types.

The host application owns schedule data; on every send it hands the core a
ScheduleSnapshot of its lectures, assignments, exams and the current user.
The terminal front-end builds the snapshot from a YAML file.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)


def _get(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """First present key; accepts both snake_case and camelCase spellings."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def parse_datetime(value: Any, tz: Optional[tzinfo] = None) -> datetime:
    """
    Parse an ISO date or datetime.

    Naive values are placed in ``tz``. Aware values read against a naive
    reference (``tz`` is None) are converted to local time first, so the
    instant is kept.
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None and tz is not None:
        parsed = parsed.replace(tzinfo=tz)
    elif parsed.tzinfo is not None and tz is None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


@dataclass
class Assignment:
    id: str
    title: str
    due_date: str
    status: str = "pending"
    subject_id: Optional[str] = None
    type: str = "assignment"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Assignment":
        return cls(
            id=str(_get(data, "id", default="")),
            title=str(data["title"]),
            due_date=str(_get(data, "due_date", "dueDate")),
            status=str(_get(data, "status", default="pending")),
            subject_id=_get(data, "subject_id", "subjectId"),
            type=str(_get(data, "type", default="assignment")),
        )


@dataclass
class Exam:
    id: str
    title: str
    date: str
    time: str = ""
    location: Optional[str] = None
    type: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Exam":
        return cls(
            id=str(_get(data, "id", default="")),
            title=str(data["title"]),
            date=str(data["date"]),
            time=str(_get(data, "time", default="")),
            location=_get(data, "location"),
            type=_get(data, "type"),
        )


@dataclass
class Lecture:
    id: str
    title: str
    date: str
    professor: str = ""
    subject_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Lecture":
        return cls(
            id=str(_get(data, "id", default="")),
            title=str(data["title"]),
            date=str(data["date"]),
            professor=str(_get(data, "professor", default="")),
            subject_id=_get(data, "subject_id", "subjectId"),
        )


@dataclass
class UserProfile:
    id: str = ""
    name: str = "Student"
    email: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserProfile":
        return cls(
            id=str(_get(data, "id", default="")),
            name=str(_get(data, "name", default="Student")),
            email=_get(data, "email"),
        )


@dataclass
class ScheduleSnapshot:
    """Everything the context builder needs for one send."""
    lectures: List[Lecture] = field(default_factory=list)
    assignments: List[Assignment] = field(default_factory=list)
    exams: List[Exam] = field(default_factory=list)
    user: UserProfile = field(default_factory=UserProfile)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScheduleSnapshot":
        return cls(
            lectures=[Lecture.from_dict(item) for item in data.get("lectures") or []],
            assignments=[Assignment.from_dict(item) for item in data.get("assignments") or []],
            exams=[Exam.from_dict(item) for item in data.get("exams") or []],
            user=UserProfile.from_dict(data.get("user") or {}),
        )


def load_schedule(path: Path) -> ScheduleSnapshot:
    """
    Load a schedule snapshot from a YAML file.

    Args:
        path: YAML file with ``lectures``, ``assignments``, ``exams`` and ``user``

    Returns:
        ScheduleSnapshot instance

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file is not a valid schedule
    """
    path = Path(path).expanduser()
    if not path.exists():
        raise FileNotFoundError(f"Schedule file not found: {path}")

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in schedule file: {e}")

    if data is None:
        return ScheduleSnapshot()
    if not isinstance(data, dict):
        raise ValueError("Schedule file must contain a mapping at the top level")

    try:
        snapshot = ScheduleSnapshot.from_dict(data)
    except (KeyError, TypeError) as e:
        raise ValueError(f"Invalid schedule entry: {e}")

    logger.info(
        f"Loaded schedule: {len(snapshot.lectures)} lectures, "
        f"{len(snapshot.assignments)} assignments, {len(snapshot.exams)} exams"
    )
    return snapshot
