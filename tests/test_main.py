from __future__ import annotations

from types import SimpleNamespace
from typing import Any, List, Optional

import pytest
from fastapi.testclient import TestClient
from langchain_core.language_models.fake_chat_models import FakeListChatModel
from langchain_core.messages import AIMessage
from langchain_core.runnables import RunnableLambda

import chatbot.llm as llm_module
from app.main import app, get_llm
from chatbot.llm import extract_text, flatten_conversation, upstream_error
from chatbot.core.models import Message


class RecordingChatModel(FakeListChatModel):
    prompts: List[str] = []

    def _call(self, messages, stop: Optional[List[str]] = None, run_manager: Any = None, **kwargs: Any) -> str:
        self.prompts.append(messages[-1].content)
        return super()._call(messages, stop=stop, run_manager=run_manager, **kwargs)


@pytest.fixture
def client():
    yield TestClient(app)
    app.dependency_overrides.clear()


def _use_model(model) -> None:
    app.dependency_overrides[get_llm] = lambda: model


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_chat_returns_reply_and_caps_length_in_prompt(client):
    model = RecordingChatModel(responses=["Lisbon in spring."])
    _use_model(model)

    response = client.post("/api/chat", json={"message": "Where should I go?"})

    assert response.status_code == 200
    assert response.json() == {"reply": "Lisbon in spring."}
    assert model.prompts == [
        "Answer in maximum 150 words, but concise when you can:\n\nWhere should I go?"
    ]


def test_chat_with_braces_in_message(client):
    model = RecordingChatModel(responses=["ok"])
    _use_model(model)
    client.post("/api/chat", json={"message": "what is {x}?"})
    assert model.prompts[0].endswith("what is {x}?")


def test_chat_empty_model_output_uses_fallback(client):
    _use_model(FakeListChatModel(responses=[""]))
    response = client.post("/api/chat", json={"message": "hello"})
    assert response.json() == {"reply": "No reply from Gemini API"}


def test_chat_upstream_failure_maps_to_error_body(client):
    def boom(_):
        raise RuntimeError("quota exceeded")

    _use_model(RunnableLambda(boom))
    response = client.post("/api/chat", json={"message": "hello"})
    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error"}


def test_chat_wrong_method(client):
    response = client.get("/api/chat")
    assert response.status_code == 405
    assert response.json() == {"error": "Method Not Allowed"}


def test_chat_invalid_body(client):
    _use_model(FakeListChatModel(responses=["unused"]))
    response = client.post("/api/chat", json={"text": "hello"})
    assert response.status_code == 400
    assert "message" in response.json()["error"]


def test_missing_api_key_is_reported(client, monkeypatch):
    monkeypatch.setattr(llm_module, "get_settings", lambda: SimpleNamespace(gemini_api_key=None))
    response = client.post("/api/chat", json={"message": "hello"})
    assert response.status_code == 500
    assert "GEMINI_API_KEY" in response.json()["error"]


def test_summarize_returns_stripped_title(client):
    model = RecordingChatModel(responses=["  Trip Planning \n"])
    _use_model(model)

    response = client.post(
        "/api/summarize",
        json={
            "messages": [
                {"text": "Hello! How can I help you today?", "sender": "bot"},
                {"text": "Plan a trip to Lisbon", "sender": "user"},
            ]
        },
    )

    assert response.json() == {"summary": "Trip Planning"}
    assert model.prompts == [
        "Provide a short, concise title (MAX SEVEN WORDS, NO BOLDING) for the following conversation:"
        "\n\nBot: Hello! How can I help you today?\nUser: Plan a trip to Lisbon"
    ]


def test_summarize_truncates_conversation_to_1000_chars(client):
    model = RecordingChatModel(responses=["Long Chat"])
    _use_model(model)
    messages = [{"text": "x" * 600, "sender": "user"}, {"text": "y" * 600, "sender": "bot"}]

    client.post("/api/summarize", json={"messages": messages})

    conversation = model.prompts[0].split("\n\n", 1)[1]
    assert len(conversation) == 1000
    assert conversation.startswith("User: xxx")
    assert conversation.endswith("Bot: " + "y" * (1000 - 606 - 1 - 5))


def test_summarize_empty_output_is_untitled(client):
    _use_model(FakeListChatModel(responses=["   "]))
    response = client.post("/api/summarize", json={"messages": []})
    assert response.json() == {"summary": "Untitled Conversation"}


def test_summarize_rejects_unknown_sender(client):
    _use_model(FakeListChatModel(responses=["unused"]))
    response = client.post("/api/summarize", json={"messages": [{"text": "hi", "sender": "system"}]})
    assert response.status_code == 400


def test_extract_text_handles_content_parts():
    message = AIMessage(content=[{"type": "text", "text": "Hello "}, "world", {"type": "image"}])
    assert extract_text(message) == "Hello world"
    assert extract_text(SimpleNamespace(content=None)) == ""


def test_flatten_conversation_prefixes_speakers():
    messages = [Message(text="Hi", sender="bot"), Message(text="Yo", sender="user")]
    assert flatten_conversation(messages) == "Bot: Hi\nUser: Yo"


class _GeminiApiError(Exception):
    def __init__(self, code, message=None):
        super().__init__(message or f"status {code}")
        self.code = code
        self.message = message


def _raise(exc):
    def boom(_):
        raise exc

    return RunnableLambda(boom)


def test_chat_passes_upstream_status_through(client):
    _use_model(_raise(_GeminiApiError(429, "Resource has been exhausted")))
    response = client.post("/api/chat", json={"message": "hello"})
    assert response.status_code == 429
    assert response.json() == {"error": "Resource has been exhausted"}


def test_summarize_upstream_status_without_message(client):
    _use_model(_raise(_GeminiApiError(403)))
    response = client.post("/api/summarize", json={"messages": []})
    assert response.status_code == 403
    assert response.json() == {"error": "Gemini API error"}


def test_upstream_status_found_on_wrapped_cause():
    try:
        try:
            raise _GeminiApiError(503, "Service unavailable")
        except _GeminiApiError as inner:
            raise RuntimeError("chat model failed") from inner
    except RuntimeError as outer:
        assert upstream_error(outer) == (503, "Service unavailable")

    assert upstream_error(RuntimeError("plain")) is None
