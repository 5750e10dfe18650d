"""
Conversation Orchestrator

Drives one request/response turn and keeps the Session Store in step:

    Idle -> Sending -> (Success | Failed) -> Idle

The user's message is persisted before the network call, so an abandoned
turn never loses the question. Every completed turn, successful or not,
ends with exactly one persisted assistant message.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Set

from study_chat.client import ChatClient
from study_chat.context_builder import build_context, build_prompt
from study_chat.conversation import ROLE_ASSISTANT, ROLE_USER, Message, Session
from study_chat.errors import SessionBusyError, SessionNotFoundError, TransportError
from study_chat.schedule import ScheduleSnapshot
from study_chat.session_store import SessionStore

logger = logging.getLogger(__name__)

ERROR_REPLY = (
    "I apologize, but I encountered an error. "
    "Please make sure the Gemini API key is configured properly."
)


class TurnState(Enum):
    IDLE = "idle"
    SENDING = "sending"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class TurnResult:
    """Outcome of one send."""
    session_id: str
    user_message: Message
    reply: Message
    state: TurnState
    model: Optional[str] = None
    error: Optional[str] = None


class ConversationOrchestrator:
    """
    Runs chat turns against the chat server.

    The store is injected so the same sessions can be shared with whatever
    front-end renders them.
    """

    def __init__(
        self,
        store: SessionStore,
        client: ChatClient,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Initialize the orchestrator.

        Args:
            store: Loaded session store
            client: Client for the chat server
            clock: Source of "now" for timestamps and the context block
        """
        self.store = store
        self.client = client
        self.clock = clock
        self.last_state = TurnState.IDLE
        self._busy: Set[str] = set()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Turn handling
    # ------------------------------------------------------------------

    @property
    def state(self) -> TurnState:
        """SENDING while any turn is in flight, IDLE otherwise."""
        return TurnState.SENDING if self.is_busy() else TurnState.IDLE

    def state_of(self, session_id: str) -> TurnState:
        return TurnState.SENDING if self.is_busy(session_id) else TurnState.IDLE

    def is_busy(self, session_id: Optional[str] = None) -> bool:
        """Whether a turn is in flight (for one session, or any)."""
        with self._lock:
            if session_id is None:
                return bool(self._busy)
            return session_id in self._busy

    def send(self, text: str, snapshot: ScheduleSnapshot) -> Optional[TurnResult]:
        """
        Send one message in the active session.

        Args:
            text: The user's message
            snapshot: Current schedule data for the context block

        Returns:
            TurnResult, or None if the message was blank

        Raises:
            SessionBusyError: A turn is already in flight for the active session
        """
        if not text.strip():
            return None

        now = self.clock()
        user_message = Message.create(ROLE_USER, text, now)
        session = self._record_question(user_message)

        pending = list(session.messages)
        version = session.version
        logger.info(f"Sending turn for session {session.id} ({len(pending)} messages)")

        try:
            context = build_context(
                now, snapshot.assignments, snapshot.exams, snapshot.lectures, snapshot.user
            )
            prompt = build_prompt(context, user_message.content)

            try:
                reply = self.client.ask(prompt)
            except TransportError as e:
                logger.error(f"Chat request failed: {e}")
                result = TurnResult(
                    session_id=session.id,
                    user_message=user_message,
                    reply=Message.create(ROLE_ASSISTANT, ERROR_REPLY, self.clock()),
                    state=TurnState.FAILED,
                    error=str(e),
                )
            else:
                result = TurnResult(
                    session_id=session.id,
                    user_message=user_message,
                    reply=Message.create(ROLE_ASSISTANT, reply.response, self.clock(), reply.sources),
                    state=TurnState.SUCCESS,
                    model=reply.model,
                )
                logger.info(f"Reply received from {reply.model or 'unknown model'}")

            self._record_reply(session.id, pending + [result.reply], result.model, version)
            self.last_state = result.state
            return result
        finally:
            with self._lock:
                self._busy.discard(session.id)

    def _record_question(self, user_message: Message) -> Session:
        """Persist the question and mark its session busy."""
        with self._lock:
            active = self.store.active_session
            if active is None:
                session = self.store.create_session(user_message)
            else:
                if active.id in self._busy:
                    raise SessionBusyError(active.id)
                session = self.store.update_session(
                    active.id,
                    active.messages + [user_message],
                    None,
                    expected_version=active.version,
                )
            self._busy.add(session.id)
            return session

    def _record_reply(self, session_id: str, messages: List[Message],
                      model: Optional[str], version: int) -> None:
        try:
            self.store.update_session(session_id, messages, model, expected_version=version)
        except SessionNotFoundError:
            # Deleted while the request was in flight; nothing left to update
            logger.warning(f"Session {session_id} was deleted before its reply arrived")

    # ------------------------------------------------------------------
    # Session navigation
    # ------------------------------------------------------------------

    @property
    def active_session(self) -> Optional[Session]:
        return self.store.active_session

    @property
    def messages(self) -> List[Message]:
        """Messages of the active session (empty in "new chat" state)."""
        session = self.store.active_session
        return list(session.messages) if session is not None else []

    def new_chat(self) -> None:
        self.store.deactivate()

    def open_session(self, session_id: str) -> Session:
        return self.store.activate(session_id)

    def delete_session(self, session_id: str) -> None:
        if self.store.delete_session(session_id):
            self.new_chat()

    def clear_history(self, confirmed: bool) -> int:
        """Delete all sessions; ``confirmed`` must come from the user."""
        return self.store.clear_all(confirmed=confirmed)
