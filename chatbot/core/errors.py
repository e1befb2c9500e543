from __future__ import annotations

from typing import Optional


class ChatError(Exception):
    """Base class for errors raised by the chat client."""


class ServiceError(ChatError):
    """A call to the chat proxy failed (transport, status or body)."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SessionNotFoundError(ChatError, KeyError):
    def __init__(self, session_id) -> None:
        super().__init__(f"No saved session with id {session_id!r}")
        self.session_id = session_id

    def __str__(self) -> str:
        return self.args[0]
