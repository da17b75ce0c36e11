"""
In-memory conversation store.
Used in test mode and in tests, so the API runs without PostgreSQL.
"""

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .interface import ConversationRecord, ConversationStore

logger = logging.getLogger("persistence.memory_store")


class InMemoryConversationStore(ConversationStore):
    """Keeps conversation rows in a dict keyed by id."""

    def __init__(self):
        self.rows: Dict[str, Dict[str, Any]] = {}
        self.schema_initialized = False
        logger.info("[TEST MODE] In-memory conversation store initialized")

    def init_schema(self) -> None:
        self.schema_initialized = True

    def upsert_conversation(self, record: ConversationRecord) -> str:
        existing = self.rows.get(record.id)
        row = copy.deepcopy(record.to_dict())
        # created_at is set once, like the column default
        row["created_at"] = (
            existing["created_at"] if existing else datetime.now(timezone.utc).isoformat()
        )
        self.rows[record.id] = row
        logger.info(f"[TEST MODE] Stored conversation {record.id}")
        return record.id

    def get_conversation(self, conversation_id: str) -> Optional[Dict[str, Any]]:
        row = self.rows.get(conversation_id)
        return copy.deepcopy(row) if row is not None else None

    def close(self) -> None:
        logger.info("[TEST MODE] Closing (no-op for in-memory store)")
