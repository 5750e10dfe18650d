"""
Conversation data types.

Messages are immutable once created; a Session owns an ordered list of
them plus the metadata needed to list and resume it.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

TITLE_MAX_CHARS = 40

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"


def derive_title(text: str) -> str:
    """First 40 characters of the text, with an ellipsis when truncated."""
    if len(text) > TITLE_MAX_CHARS:
        return text[:TITLE_MAX_CHARS] + "..."
    return text


def new_id(prefix: str = "") -> str:
    return f"{prefix}{uuid.uuid4().hex}"


@dataclass(frozen=True)
class Source:
    """Citation into a lecture."""
    lecture_id: str
    lecture_title: str
    timestamp: str
    excerpt: str

    def to_dict(self) -> Dict[str, str]:
        # Same keys as the /chat wire format
        return {
            "lectureId": self.lecture_id,
            "lectureTitle": self.lecture_title,
            "timestamp": self.timestamp,
            "excerpt": self.excerpt,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Source":
        return cls(
            lecture_id=str(data.get("lectureId", data.get("lecture_id", ""))),
            lecture_title=str(data.get("lectureTitle", data.get("lecture_title", ""))),
            timestamp=str(data.get("timestamp", "")),
            excerpt=str(data.get("excerpt", "")),
        )


@dataclass(frozen=True)
class Message:
    """Single chat message."""
    id: str
    role: str
    content: str
    timestamp: str
    sources: Tuple[Source, ...] = ()

    @classmethod
    def create(cls, role: str, content: str, now: datetime,
               sources: Optional[List[Source]] = None) -> "Message":
        return cls(
            id=new_id("msg-"),
            role=role,
            content=content,
            timestamp=now.isoformat(),
            sources=tuple(sources or ()),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp,
        }
        if self.sources:
            data["sources"] = [source.to_dict() for source in self.sources]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        role = data["role"]
        if role not in (ROLE_USER, ROLE_ASSISTANT):
            raise ValueError(f"Unknown message role: {role!r}")
        return cls(
            id=str(data["id"]),
            role=role,
            content=str(data["content"]),
            timestamp=str(data["timestamp"]),
            sources=tuple(Source.from_dict(s) for s in data.get("sources") or ()),
        )


@dataclass
class Session:
    """
    One persisted conversation thread.

    The title is fixed when the session is created (or, for a session that
    started empty, when its first message arrives) and never recomputed.
    ``version`` increases on every mutation and backs optimistic checks.
    """
    id: str
    title: str
    created_at: str
    messages: List[Message] = field(default_factory=list)
    model_used: Optional[str] = None
    version: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "created_at": self.created_at,
            "messages": [message.to_dict() for message in self.messages],
            "model_used": self.model_used,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        return cls(
            id=str(data["id"]),
            title=str(data["title"]),
            created_at=str(data["created_at"]),
            messages=[Message.from_dict(m) for m in data.get("messages") or []],
            model_used=data.get("model_used"),
            version=int(data.get("version", 0)),
        )
