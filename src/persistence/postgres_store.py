"""
PostgreSQL conversation storage.

Stores one row per conversation in the 'conversations' table. The schema is
created on first use and migrated in place for existing deployments.
"""

import logging
from typing import Any, Dict, Optional

import psycopg2
from psycopg2.extras import Json, RealDictCursor
from psycopg2.pool import ThreadedConnectionPool

from .interface import ConversationRecord, ConversationStore, ConversationStoreError

logger = logging.getLogger("persistence.postgres_store")

CREATE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS conversations (
        id UUID PRIMARY KEY,
        conversation_type TEXT NOT NULL,
        prompt_name TEXT,
        prompt_label TEXT,
        agent_name TEXT NOT NULL,
        webhook_link TEXT NOT NULL,
        company_name TEXT,
        prompt_text TEXT,
        agent_description TEXT,
        media_mode TEXT NOT NULL DEFAULT 'audio_only',
        prompt_variables JSONB NOT NULL DEFAULT '{}'::jsonb,
        ui_variables JSONB NOT NULL DEFAULT '{}'::jsonb,
        complete_screen JSONB NOT NULL DEFAULT '{}'::jsonb,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
"""

# Columns added after the first release
ADDED_COLUMNS = [
    ("prompt_variables", "JSONB NOT NULL DEFAULT '{}'::jsonb"),
    ("ui_variables", "JSONB NOT NULL DEFAULT '{}'::jsonb"),
    ("company_name", "TEXT"),
    ("prompt_text", "TEXT"),
    ("agent_description", "TEXT"),
    ("complete_screen", "JSONB NOT NULL DEFAULT '{}'::jsonb"),
    ("media_mode", "TEXT NOT NULL DEFAULT 'audio_only'"),
]

LEGACY_META_DATA_SQL = """
    SELECT 1 FROM information_schema.columns
    WHERE table_name = 'conversations' AND column_name = 'meta_data'
    LIMIT 1
"""

MIGRATE_META_DATA_SQL = """
    UPDATE conversations
    SET
        prompt_variables = COALESCE((meta_data->'prompt_variables')::jsonb, '{}'::jsonb),
        ui_variables = COALESCE((meta_data->'ui_variables')::jsonb, '{}'::jsonb)
    WHERE meta_data IS NOT NULL
"""

UPSERT_SQL = """
    INSERT INTO conversations (
        id,
        conversation_type,
        prompt_name,
        prompt_label,
        agent_name,
        webhook_link,
        company_name,
        prompt_text,
        agent_description,
        media_mode,
        prompt_variables,
        ui_variables,
        complete_screen
    ) VALUES (
        %(id)s, %(conversation_type)s, %(prompt_name)s, %(prompt_label)s,
        %(agent_name)s, %(webhook_link)s, %(company_name)s, %(prompt_text)s,
        %(agent_description)s, %(media_mode)s, %(prompt_variables)s,
        %(ui_variables)s, %(complete_screen)s
    )
    ON CONFLICT (id) DO UPDATE SET
        conversation_type = EXCLUDED.conversation_type,
        prompt_name = EXCLUDED.prompt_name,
        prompt_label = EXCLUDED.prompt_label,
        agent_name = EXCLUDED.agent_name,
        webhook_link = EXCLUDED.webhook_link,
        company_name = EXCLUDED.company_name,
        prompt_text = EXCLUDED.prompt_text,
        agent_description = EXCLUDED.agent_description,
        media_mode = EXCLUDED.media_mode,
        prompt_variables = EXCLUDED.prompt_variables,
        ui_variables = EXCLUDED.ui_variables,
        complete_screen = EXCLUDED.complete_screen
    RETURNING id::text AS id
"""

SELECT_SQL = """
    SELECT
        id::text AS id,
        conversation_type,
        prompt_name,
        prompt_label,
        agent_name,
        webhook_link,
        company_name,
        prompt_text,
        agent_description,
        media_mode,
        prompt_variables,
        ui_variables,
        complete_screen,
        created_at
    FROM conversations
    WHERE id = %s
"""


class PostgresConversationStore(ConversationStore):
    """
    Conversation store backed by PostgreSQL via psycopg2.

    Connections come from a thread-safe pool, so methods may be called from
    worker threads (the API server runs them off the event loop).
    """

    def __init__(
        self,
        database_url: str,
        sslmode: Optional[str] = "require",
        min_connections: int = 1,
        max_connections: int = 5,
    ):
        """
        Args:
            database_url: libpq connection string or postgres:// URL
            sslmode: Applied when the URL does not set sslmode itself
            min_connections: Pool minimum
            max_connections: Pool maximum
        """
        if not database_url or not database_url.strip():
            raise ValueError("DATABASE_URL is not set. Define it in your .env")

        self.database_url = database_url
        self.connect_kwargs: Dict[str, Any] = {}
        if sslmode and "sslmode" not in database_url:
            self.connect_kwargs["sslmode"] = sslmode
        self.min_connections = min_connections
        self.max_connections = max_connections
        self.pool: Optional[ThreadedConnectionPool] = None

    def _get_pool(self) -> ThreadedConnectionPool:
        if self.pool is None or self.pool.closed:
            try:
                self.pool = ThreadedConnectionPool(
                    self.min_connections,
                    self.max_connections,
                    self.database_url,
                    **self.connect_kwargs,
                )
            except psycopg2.Error as e:
                logger.error(f"[DB] Connection failed: {type(e).__name__}: {e}")
                raise ConversationStoreError(f"Database connection failed: {e}") from e
            logger.info("[DB] Connection pool created")
        return self.pool

    def _execute(self, work):
        """Run work(cursor) in a transaction and return its result."""
        pool = self._get_pool()
        conn = pool.getconn()
        try:
            with conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    return work(cur)
        except psycopg2.Error as e:
            logger.error(f"[DB] Query failed: {type(e).__name__}: {e}")
            raise ConversationStoreError(str(e)) from e
        finally:
            pool.putconn(conn)

    def init_schema(self) -> None:
        def work(cur):
            cur.execute(CREATE_TABLE_SQL)
            for column, definition in ADDED_COLUMNS:
                cur.execute(
                    f"ALTER TABLE conversations ADD COLUMN IF NOT EXISTS {column} {definition}"
                )

            # Legacy deployments kept both JSON blobs in a single meta_data column
            cur.execute(LEGACY_META_DATA_SQL)
            if cur.fetchone():
                logger.info("[DB] Migrating legacy meta_data column")
                cur.execute(MIGRATE_META_DATA_SQL)
                cur.execute("ALTER TABLE conversations DROP COLUMN IF EXISTS meta_data")

        self._execute(work)
        logger.info("[DB] Schema ready")

    def upsert_conversation(self, record: ConversationRecord) -> str:
        params = record.to_dict()
        for key in ("prompt_variables", "ui_variables", "complete_screen"):
            params[key] = Json(params[key])

        def work(cur):
            cur.execute(UPSERT_SQL, params)
            row = cur.fetchone()
            return row["id"] if row else record.id

        conversation_id = self._execute(work)
        logger.info(f"[DB] Upserted conversation {conversation_id}")
        return conversation_id

    def get_conversation(self, conversation_id: str) -> Optional[Dict[str, Any]]:
        def work(cur):
            cur.execute(SELECT_SQL, (conversation_id,))
            return cur.fetchone()

        row = self._execute(work)
        if row is None:
            return None

        result = dict(row)
        created_at = result.get("created_at")
        if created_at is not None and hasattr(created_at, "isoformat"):
            result["created_at"] = created_at.isoformat()
        return result

    def close(self) -> None:
        if self.pool is not None and not self.pool.closed:
            self.pool.closeall()
            logger.info("[DB] Connection pool closed")
