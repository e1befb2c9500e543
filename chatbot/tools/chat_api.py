from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from chatbot.core.errors import ServiceError
from chatbot.core.models import NO_REPLY_TEXT, Message
from config.settings import get_settings


logger = logging.getLogger("gemini_chat.api")


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return str(data)[:200]


class _ChatApiClient:
    """One POST per call against the chat proxy. No retries."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        settings = get_settings()
        self.base_url = (base_url or settings.chat_api_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.chat_timeout
        self._transport = transport

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        endpoint = f"{self.base_url}{path}"
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(endpoint, json=payload)
        except httpx.HTTPError as exc:
            raise ServiceError(f"Chat API call to {path} failed: {exc}") from exc

        if response.is_error:
            raise ServiceError(
                f"Chat API {path} returned {response.status_code}: {_error_detail(response)}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise ServiceError(f"Chat API {path} returned a non-JSON body") from exc
        if not isinstance(data, dict):
            raise ServiceError(f"Chat API {path} returned an unexpected body")
        return data


class ConversationService(_ChatApiClient):
    def reply(self, message: str) -> str:
        data = self._post("/api/chat", {"message": message})
        reply = data.get("reply")
        if not isinstance(reply, str) or not reply:
            logger.warning("Chat API response had no reply field: keys=%s", list(data))
            return NO_REPLY_TEXT
        return reply


class SummarizationService(_ChatApiClient):
    def summarize(self, messages: Sequence[Message]) -> str:
        payload: List[Dict[str, str]] = [m.model_dump() for m in messages]
        data = self._post("/api/summarize", {"messages": payload})
        summary = data.get("summary")
        if not isinstance(summary, str):
            return ""
        return summary.strip()
