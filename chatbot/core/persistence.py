"""Key-value persistence for the chat client.

Two keys are used: the live conversation and the list of archived sessions.
Values are plain JSON data. Reads never raise: missing or corrupt data comes
back as ``None`` so the caller can fall back to its defaults. Writes never
raise either; a failed write is logged and reported as ``False`` while the
caller's in-memory state stays authoritative.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from typing import Any, Dict, Optional, Protocol


logger = logging.getLogger("gemini_chat.persistence")

CONVERSATION_KEY = "chatMessages"
SESSIONS_KEY = "pastChatSessions"


class PersistenceAdapter(Protocol):
    def load(self, key: str) -> Optional[Any]: ...

    def save(self, key: str, value: Any) -> bool: ...


class InMemoryStorage:
    """Dict-backed storage. Values are kept JSON-encoded like the file store."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def load(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding corrupt in-memory value for key=%s", key)
            return None

    def save(self, key: str, value: Any) -> bool:
        try:
            self._data[key] = json.dumps(value)
        except (TypeError, ValueError) as exc:
            logger.warning("Could not serialize key=%s: %s", key, exc)
            return False
        return True

    def raw(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def put_raw(self, key: str, raw: str) -> None:
        self._data[key] = raw


class JsonFileStorage:
    """One ``<key>.json`` file per key inside a per-profile directory."""

    def __init__(self, directory: str) -> None:
        self.directory = directory

    def path_for(self, key: str) -> str:
        return os.path.join(self.directory, f"{key}.json")

    def load(self, key: str) -> Optional[Any]:
        path = self.path_for(key)
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as fh:
                return json.load(fh)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable store file %s: %s", path, exc)
            return None

    def save(self, key: str, value: Any) -> bool:
        try:
            payload = json.dumps(value, ensure_ascii=False, indent=2)
        except (TypeError, ValueError) as exc:
            logger.warning("Could not serialize key=%s: %s", key, exc)
            return False

        tmp_path = None
        try:
            os.makedirs(self.directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{key}.", suffix=".tmp", dir=self.directory
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
            os.replace(tmp_path, self.path_for(key))
            tmp_path = None
        except OSError as exc:
            logger.warning("Could not write key=%s to %s: %s", key, self.directory, exc)
            return False
        finally:
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
        return True
