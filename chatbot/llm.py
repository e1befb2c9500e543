from __future__ import annotations

import logging
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from langchain_core.language_models import BaseChatModel
from langchain_core.prompts import ChatPromptTemplate
from langchain_google_genai import ChatGoogleGenerativeAI

from chatbot.core.models import NO_REPLY_TEXT, UNTITLED_TITLE, Message
from chatbot.core.prompt import CHAT_PROMPT, SUMMARY_INPUT_LIMIT, SUMMARY_PROMPT
from config.settings import get_settings


logger = logging.getLogger("gemini_chat.llm")


def build_llm() -> BaseChatModel:
    settings = get_settings()
    if not settings.gemini_api_key:
        raise RuntimeError(
            "GEMINI_API_KEY not set. Please configure it in environment or .env"
        )

    return ChatGoogleGenerativeAI(
        model=settings.gemini_model,
        google_api_key=settings.gemini_api_key,
        temperature=settings.temperature,
        top_p=settings.top_p,
    )


def extract_text(result: Any) -> str:
    """Pull plain text out of a chat model result.

    Gemini may answer with a string or with a list of content parts; anything
    else counts as no text.
    """
    content = getattr(result, "content", result)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: List[str] = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, Mapping) and isinstance(part.get("text"), str):
                parts.append(part["text"])
        return "".join(parts)
    return ""


def flatten_conversation(messages: Iterable[Message]) -> str:
    return "\n".join(
        f"User: {m.text}" if m.sender == "user" else f"Bot: {m.text}" for m in messages
    )


def generate_reply(llm: BaseChatModel, message: str) -> str:
    chain = ChatPromptTemplate.from_messages([("human", CHAT_PROMPT)]) | llm
    result = chain.invoke({"message": message})
    reply = extract_text(result)
    if not reply:
        logger.warning("Gemini returned no reply text")
        return NO_REPLY_TEXT
    return reply


def summarize_conversation(
    llm: BaseChatModel, messages: Iterable[Message]
) -> str:
    conversation = flatten_conversation(messages)[:SUMMARY_INPUT_LIMIT]
    chain = ChatPromptTemplate.from_messages([("human", SUMMARY_PROMPT)]) | llm
    result = chain.invoke({"conversation": conversation})
    summary = extract_text(result).strip()
    if not summary:
        logger.warning("Gemini returned no summary text")
        return UNTITLED_TITLE
    return summary


def upstream_error(exc: BaseException) -> Optional[Tuple[int, str]]:
    """Status and message of a Gemini API error, if ``exc`` carries one.

    google-api-core and google-genai errors expose the HTTP status as an int
    ``code`` (or ``status_code``), possibly on a wrapped cause.
    """
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        status = getattr(current, "code", None)
        if not isinstance(status, int):
            status = getattr(current, "status_code", None)
        if isinstance(status, int) and 400 <= status < 600:
            message = getattr(current, "message", None)
            if not isinstance(message, str) or not message:
                message = "Gemini API error"
            return status, message
        current = current.__cause__ or current.__context__
    return None
