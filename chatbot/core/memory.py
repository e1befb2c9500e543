"""Client-side conversation memory.

``SessionStore`` owns the live conversation, the archived sessions and the
tab being displayed. Every mutation that changes persisted state writes both
storage keys before change listeners are notified, so a reload rebuilds the
same view. Mutations are serialized by one re-entrant lock. The service calls
in ``send_message`` and ``start_new_session`` run outside it, and a reply is
dropped if a new session was started meanwhile.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable, List, Optional, Protocol, Sequence, Union

from pydantic import ValidationError

from chatbot.core.errors import SessionNotFoundError
from chatbot.core.models import (
    CURRENT_TAB,
    UNTITLED_TITLE,
    Message,
    MessageList,
    Session,
    SessionList,
    display_timestamp,
    greeting,
)
from chatbot.core.persistence import CONVERSATION_KEY, SESSIONS_KEY, PersistenceAdapter


logger = logging.getLogger("gemini_chat.memory")

ERROR_REPLY_TEXT = "Error getting response."
ERROR_TITLE = "Error Summarizing"

TabId = Union[str, int]
Listener = Callable[["SessionStore"], None]


class ConversationClient(Protocol):
    def reply(self, message: str) -> str: ...


class SummaryClient(Protocol):
    def summarize(self, messages: Sequence[Message]) -> str: ...


class SessionStore:
    def __init__(
        self,
        storage: PersistenceAdapter,
        conversation: Optional[ConversationClient] = None,
        summarizer: Optional[SummaryClient] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._lock = threading.RLock()
        self._storage = storage
        self._conversation_client = conversation
        self._summarizer = summarizer
        self._clock = clock
        self._listeners: List[Listener] = []

        self._conversation: List[Message] = self._load_conversation()
        self._sessions: List[Session] = self._load_sessions()
        self._pinned: List[Message] = list(self._conversation)
        self._active_tab: TabId = CURRENT_TAB
        self._sidebar_open = False
        self._generation = 0
        self._last_id = max((s.id for s in self._sessions), default=0)

    # -- state -------------------------------------------------------------

    @property
    def active_conversation(self) -> List[Message]:
        return list(self._conversation)

    @property
    def saved_sessions(self) -> List[Session]:
        return list(self._sessions)

    @property
    def active_tab(self) -> TabId:
        return self._active_tab

    @property
    def pinned_snapshot(self) -> List[Message]:
        return list(self._pinned)

    @property
    def sidebar_open(self) -> bool:
        return self._sidebar_open

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_current(self) -> bool:
        return self._active_tab == CURRENT_TAB

    @property
    def displayed_messages(self) -> List[Message]:
        """Messages of whichever conversation the active tab selects."""
        with self._lock:
            if self.is_current:
                return list(self._conversation)
            return list(self.get_session(self._active_tab).messages)

    def get_session(self, session_id: TabId) -> Session:
        for session in self._sessions:
            if session.id == session_id:
                return session
        raise SessionNotFoundError(session_id)

    # -- change notification -----------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Session store listener %r failed", listener)

    # -- persistence -------------------------------------------------------

    def _load_conversation(self) -> List[Message]:
        raw = self._storage.load(CONVERSATION_KEY)
        if raw is None:
            return greeting()
        try:
            messages = MessageList.validate_python(raw)
        except ValidationError as exc:
            logger.warning("Stored conversation is malformed, starting fresh: %s", exc)
            return greeting()
        return messages or greeting()

    def _load_sessions(self) -> List[Session]:
        raw = self._storage.load(SESSIONS_KEY)
        if raw is None:
            return []
        try:
            sessions = SessionList.validate_python(raw)
        except ValidationError as exc:
            logger.warning("Stored sessions are malformed, starting empty: %s", exc)
            return []

        seen = set()
        unique: List[Session] = []
        for session in sessions:
            if session.id in seen:
                logger.warning("Dropping stored session with duplicate id=%s", session.id)
                continue
            seen.add(session.id)
            unique.append(session)
        return unique

    def _persist(self) -> None:
        self._storage.save(
            CONVERSATION_KEY, [m.model_dump() for m in self._conversation]
        )
        self._storage.save(
            SESSIONS_KEY, [s.model_dump(mode="json") for s in self._sessions]
        )

    def _commit(self) -> None:
        self._persist()
        self._notify()

    # -- mutations ---------------------------------------------------------

    def _append(self, message: Message) -> None:
        self._conversation.append(message)
        self._pinned = list(self._conversation)
        self._commit()

    def append_user_message(self, text: str) -> bool:
        """Append a user message to the live conversation.

        Blank input is ignored. The message always lands in the live
        conversation, even while an archived session is displayed.
        """
        if not text or not text.strip():
            return False
        with self._lock:
            self._append(Message(text=text, sender="user"))
        return True

    def append_bot_message(self, text: str, generation: Optional[int] = None) -> bool:
        """Append a bot message; a reply from an older generation is dropped."""
        with self._lock:
            if generation is not None and generation != self._generation:
                logger.info(
                    "Dropping stale reply from generation %s (now %s)",
                    generation,
                    self._generation,
                )
                return False
            self._append(Message(text=text, sender="bot"))
        return True

    def send_message(self, text: str) -> Optional[str]:
        """Run one chat turn and return the bot text that was appended.

        Returns ``None`` for blank input or when the reply arrived after a
        new session was started.
        """
        if self._conversation_client is None:
            raise RuntimeError("SessionStore has no conversation service configured")
        with self._lock:
            if not self.append_user_message(text):
                return None
            generation = self._generation

        try:
            reply = self._conversation_client.reply(text)
        except Exception as exc:
            logger.warning("Conversation service failed: %s", exc)
            reply = ERROR_REPLY_TEXT

        if self.append_bot_message(reply, generation=generation):
            return reply
        return None

    def _summarize(self, messages: List[Message]) -> str:
        if self._summarizer is None:
            return UNTITLED_TITLE
        try:
            title = self._summarizer.summarize(messages)
        except Exception as exc:
            logger.warning("Summarization failed, archiving with fallback title: %s", exc)
            return ERROR_TITLE
        return title or UNTITLED_TITLE

    def _next_id(self) -> int:
        now_ms = int(self._clock().timestamp() * 1000)
        self._last_id = max(now_ms, self._last_id + 1)
        return self._last_id

    def start_new_session(self) -> Optional[Session]:
        """Archive the live conversation (if it has more than the greeting)
        and reset to a fresh greeting on the current tab.

        The summarizer runs outside the lock. The generation is bumped before
        the call, so replies still in flight are dropped; messages appended
        while the title is generated are archived with the rest. Summarization
        failure still archives the conversation under a fallback title.
        Returns the archived session, if any.
        """
        with self._lock:
            snapshot = list(self._conversation)
            self._generation += 1
            generation = self._generation

        title = self._summarize(snapshot) if len(snapshot) > 1 else None

        with self._lock:
            if generation != self._generation:
                logger.info("New session superseded by a later one, nothing to archive")
                return None
            session = None
            if title is not None:
                session = Session(
                    id=self._next_id(),
                    timestamp=display_timestamp(self._clock()),
                    title=title,
                    messages=list(self._conversation),
                )
                self._sessions.insert(0, session)
                logger.info("Archived session id=%s title=%r", session.id, title)

            self._conversation = greeting()
            self._pinned = list(self._conversation)
            self._active_tab = CURRENT_TAB
            self._commit()
        return session

    def switch_tab(self, tab_id: TabId) -> None:
        with self._lock:
            if tab_id != CURRENT_TAB:
                self.get_session(tab_id)
            if self.is_current:
                self._pinned = list(self._conversation)
            self._active_tab = tab_id
            self._sidebar_open = False
            self._notify()

    def delete_session(self, session_id: TabId) -> bool:
        """Remove a saved session; unknown ids are ignored.

        Deleting the session on display moves the view back to the current
        conversation.
        """
        with self._lock:
            remaining = [s for s in self._sessions if s.id != session_id]
            if len(remaining) == len(self._sessions):
                return False
            self._sessions = remaining
            if self._active_tab == session_id:
                self._active_tab = CURRENT_TAB
            self._commit()
        return True

    def toggle_sidebar(self) -> bool:
        with self._lock:
            self._sidebar_open = not self._sidebar_open
            self._notify()
            return self._sidebar_open
