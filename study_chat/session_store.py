"""
Session Store

Durable CRUD over conversation sessions. The whole session list lives in a
single JSON file that is rewritten, atomically, by every mutating call
before it returns. Sessions are kept newest-first; only create and delete
change the order.
"""

import dataclasses
import json
import logging
import os
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

from study_chat.conversation import Message, Session, derive_title, new_id
from study_chat.errors import (
    ConfirmationRequiredError,
    SessionNotFoundError,
    StaleSessionError,
    StorageError,
)

logger = logging.getLogger(__name__)


class SessionStore:
    """
    Manages the persisted list of chat sessions.

    At most one session is active at a time. The active selection is
    in-memory state of the running front-end and is not persisted.
    """

    def __init__(self, path: Path, clock: Callable[[], datetime] = datetime.now):
        """
        Initialize the store.

        Args:
            path: JSON file holding the serialized session list
            clock: Source of creation timestamps
        """
        self.path = Path(path)
        self.clock = clock
        self._sessions: List[Session] = []
        self._active_id: Optional[str] = None
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> List[Session]:
        """
        Load sessions from disk.

        A missing or unreadable file yields an empty list; the failure is
        logged, never raised. Unreadable files are moved aside so the next
        save does not overwrite them.

        Returns:
            Loaded sessions, newest first
        """
        with self._lock:
            self._sessions = self._read()
            self._active_id = None
            return list(self._sessions)

    def _read(self) -> List[Session]:
        if not self.path.exists():
            logger.info(f"No chat history at {self.path}, starting empty")
            return []

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, list):
                raise ValueError("history root is not a list")
            sessions = [Session.from_dict(item) for item in data]
        except (OSError, ValueError, KeyError, TypeError, AttributeError, RecursionError) as e:
            logger.error(f"Failed to load chat history from {self.path}: {e}")
            self._quarantine()
            return []

        logger.info(f"Loaded {len(sessions)} chat session(s) from {self.path}")
        return sessions

    def _quarantine(self) -> None:
        backup = self.path.with_name(self.path.name + ".corrupt")
        try:
            os.replace(self.path, backup)
            logger.warning(f"Moved unreadable history to {backup}")
        except OSError as e:
            logger.warning(f"Could not move unreadable history aside: {e}")

    def _commit(self, sessions: List[Session], active_id: Optional[str]) -> None:
        """
        Persist a new session list, then make it current.

        In-memory state only changes once the write succeeded.

        Raises:
            StorageError: If the file could not be written
        """
        self._write(sessions)
        self._sessions = sessions
        self._active_id = active_id

    def _write(self, sessions: List[Session]) -> None:
        """Write the full session list atomically."""
        payload = [session.to_dict() for session in sessions]
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self.path.parent), prefix=self.path.name, suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(payload, f, ensure_ascii=False, indent=2)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise StorageError(f"Failed to save chat history to {self.path}: {e}") from e

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def sessions(self) -> List[Session]:
        """Sessions, newest first."""
        with self._lock:
            return list(self._sessions)

    @property
    def active_session_id(self) -> Optional[str]:
        return self._active_id

    @property
    def active_session(self) -> Optional[Session]:
        with self._lock:
            if self._active_id is None:
                return None
            return self._find(self._active_id)

    def get(self, session_id: str) -> Session:
        with self._lock:
            session = self._find(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            return session

    def _find(self, session_id: str) -> Optional[Session]:
        for session in self._sessions:
            if session.id == session_id:
                return session
        return None

    def activate(self, session_id: str) -> Session:
        """Make an existing session the active one."""
        with self._lock:
            session = self.get(session_id)
            self._active_id = session.id
            return session

    def deactivate(self) -> None:
        """Return to the "new chat" state."""
        with self._lock:
            self._active_id = None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_session(self, first_message: Message) -> Session:
        """
        Create a session from its first message.

        The new session is prepended, becomes active, and takes its title
        from ``first_message``.

        Raises:
            StorageError: If the history could not be written; nothing changes
        """
        with self._lock:
            session = Session(
                id=new_id(),
                title=derive_title(first_message.content),
                created_at=self.clock().isoformat(),
                messages=[first_message],
                version=1,
            )
            self._commit([session] + self._sessions, session.id)
            logger.debug(f"Created session {session.id}: {session.title!r}")
            return session

    def update_session(
        self,
        session_id: str,
        messages: List[Message],
        model_used: Optional[str],
        expected_version: Optional[int] = None,
    ) -> Session:
        """
        Replace a session's messages and model tag.

        The session keeps its position in the list.

        Args:
            session_id: Session to update
            messages: Complete new message list
            model_used: Model that produced the latest reply; None keeps the current tag
            expected_version: If given, the update is refused unless the
                session is still at this version

        Returns:
            The updated session

        Raises:
            SessionNotFoundError: Unknown session id
            StaleSessionError: Version check failed
            StorageError: If the history could not be written; nothing changes
        """
        with self._lock:
            current = self.get(session_id)
            if expected_version is not None and current.version != expected_version:
                raise StaleSessionError(session_id, expected_version, current.version)

            title = current.title
            if not current.messages and messages:
                title = derive_title(messages[0].content)
            session = dataclasses.replace(
                current,
                title=title,
                messages=list(messages),
                model_used=model_used or current.model_used,
                version=current.version + 1,
            )
            sessions = [session if s.id == session_id else s for s in self._sessions]
            self._commit(sessions, self._active_id)
            return session

    def delete_session(self, session_id: str) -> bool:
        """
        Remove a session.

        Returns:
            True if the deleted session was the active one; the caller
            should then switch to the "new chat" state
        """
        with self._lock:
            self.get(session_id)
            was_active = self._active_id == session_id
            self._commit(
                [s for s in self._sessions if s.id != session_id],
                None if was_active else self._active_id,
            )
            logger.debug(f"Deleted session {session_id}")
            return was_active

    def clear_all(self, confirmed: bool = False) -> int:
        """
        Delete every session. Irreversible.

        Args:
            confirmed: Must be True; the caller is responsible for asking

        Returns:
            Number of sessions removed

        Raises:
            ConfirmationRequiredError: If not confirmed
        """
        if not confirmed:
            raise ConfirmationRequiredError()

        with self._lock:
            count = len(self._sessions)
            self._commit([], None)
            logger.info(f"Cleared {count} chat session(s)")
            return count

    def __len__(self) -> int:
        """Return number of sessions."""
        return len(self._sessions)
