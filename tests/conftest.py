from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Sequence

import pytest

from chatbot.core.memory import SessionStore
from chatbot.core.models import Message
from chatbot.core.persistence import InMemoryStorage


FIXED_NOW = datetime(2025, 3, 7, 14, 5, 9)


class FakeConversation:
    def __init__(self, replies: Optional[List[str]] = None, error: Optional[Exception] = None):
        self.replies = list(replies or ["Sure, here you go."])
        self.error = error
        self.sent: List[str] = []

    def reply(self, message: str) -> str:
        self.sent.append(message)
        if self.error is not None:
            raise self.error
        return self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]


class FakeSummarizer:
    def __init__(self, title: str = "Trip Planning", error: Optional[Exception] = None):
        self.title = title
        self.error = error
        self.calls: List[List[Message]] = []

    def summarize(self, messages: Sequence[Message]) -> str:
        self.calls.append(list(messages))
        if self.error is not None:
            raise self.error
        return self.title


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def conversation() -> FakeConversation:
    return FakeConversation()


@pytest.fixture
def summarizer() -> FakeSummarizer:
    return FakeSummarizer()


@pytest.fixture
def store(storage, conversation, summarizer) -> SessionStore:
    return SessionStore(
        storage,
        conversation=conversation,
        summarizer=summarizer,
        clock=lambda: FIXED_NOW,
    )
