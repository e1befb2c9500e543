from __future__ import annotations

import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv


load_dotenv()


class Settings:
    """Application settings loaded from environment variables.

    Keep all credentials and config centralized here. The server reads the
    Gemini fields, the terminal client reads the chat_* fields.
    """

    def __init__(self) -> None:
        self.app_env: str = os.getenv("APP_ENV", "development")
        self.gemini_api_key: Optional[str] = os.getenv("GEMINI_API_KEY") or os.getenv(
            "GOOGLE_API_KEY"
        )
        self.gemini_model: str = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
        self.temperature: float = float(os.getenv("MODEL_TEMPERATURE", "0.7"))
        self.top_p: float = float(os.getenv("MODEL_TOP_P", "0.95"))
        self.server_host: str = os.getenv("SERVER_HOST", "127.0.0.1")
        self.server_port: int = int(os.getenv("SERVER_PORT", "8000"))
        self.chat_api_url: str = os.getenv("CHAT_API_URL", "http://127.0.0.1:8000")
        self.chat_store_dir: str = os.path.expanduser(
            os.getenv("CHAT_STORE_DIR", "~/.gemini_chat")
        )
        self.chat_timeout: float = float(os.getenv("CHAT_TIMEOUT", "30"))
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
