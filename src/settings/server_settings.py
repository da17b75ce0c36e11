"""Conversation API server configuration."""

import os
from dataclasses import dataclass
from urllib.parse import quote

from .env import env_int, require_env

REQUIRED_SERVER_ENV = [
    "LIVEKIT_URL",
    "LIVEKIT_API_KEY",
    "LIVEKIT_API_SECRET",
    "DATABASE_URL",
]

DEFAULT_FRONTEND_BASE_URL = "https://livekit-agent-builder.vercel.app"


@dataclass
class ServerSettings:
    database_url: str = ""
    port: int = 8081
    frontend_base_url: str = DEFAULT_FRONTEND_BASE_URL

    @classmethod
    def from_env(cls) -> "ServerSettings":
        """
        Raises:
            MissingEnvironmentError: If LiveKit credentials or DATABASE_URL
                are missing
        """
        require_env(REQUIRED_SERVER_ENV)
        return cls(
            database_url=os.environ["DATABASE_URL"],
            port=env_int("PORT", 8081),
            frontend_base_url=os.getenv("FRONTEND_BASE_URL") or DEFAULT_FRONTEND_BASE_URL,
        )

    def conversation_url(self, conversation_id: str) -> str:
        """Public frontend URL for a conversation."""
        base = self.frontend_base_url.rstrip("/")
        return f"{base}/api/conversation/{quote(conversation_id, safe='')}"
