"""
Conversation storage layer for the conversation API.

Provides abstract interface and multiple implementations:
- PostgresConversationStore: Production mode (PostgreSQL)
- InMemoryConversationStore: Test mode (process memory)

Usage:
    from persistence import ConversationRecord, create_store

    store = create_store()
    store.init_schema()
    store.upsert_conversation(
        ConversationRecord(
            id="6f1c...",
            conversation_type="interview",
            agent_name="Ava",
            webhook_link="https://example.com/hook",
        )
    )
"""

import os
from typing import Optional

from .interface import (
    ConversationRecord,
    ConversationStore,
    ConversationStoreError,
    normalize_media_mode,
)
from .memory_store import InMemoryConversationStore
from .postgres_store import PostgresConversationStore

__all__ = [
    "ConversationRecord",
    "ConversationStore",
    "ConversationStoreError",
    "InMemoryConversationStore",
    "PostgresConversationStore",
    "create_store",
    "normalize_media_mode",
]


def create_store(
    database_url: Optional[str] = None,
    test_mode: Optional[bool] = None,
) -> ConversationStore:
    """
    Factory function to create the appropriate store implementation.

    Reads from environment variables:
    - TEST_MODE: "true", "1" or "yes" enables the in-memory store
    - DATABASE_URL: PostgreSQL connection string

    Args:
        database_url: Override DATABASE_URL (default: from env)
        test_mode: Override test mode setting (default: from env)

    Returns:
        ConversationStore implementation (PostgreSQL or in-memory)
    """
    if test_mode is None:
        test_mode_env = os.getenv("TEST_MODE", "false").lower()
        test_mode = test_mode_env in ("true", "1", "yes")

    if test_mode:
        return InMemoryConversationStore()

    if database_url is None:
        database_url = os.getenv("DATABASE_URL")

    if not database_url:
        raise ValueError(
            "DATABASE_URL must be set in environment when TEST_MODE is not enabled"
        )

    return PostgresConversationStore(database_url)
