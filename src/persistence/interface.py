"""
Abstract interface for conversation storage.
The API server depends on this interface, not on a concrete database.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional

MEDIA_MODES = ("audio_only", "audio_video")


def normalize_media_mode(value: Any) -> str:
    """Anything other than 'audio_video' is stored as 'audio_only'."""
    return "audio_video" if value == "audio_video" else "audio_only"


class ConversationStoreError(RuntimeError):
    """Raised when the underlying database operation fails."""


@dataclass
class ConversationRecord:
    """
    Configuration of one conversation, as created by the calling application.
    Maps to the 'conversations' table.
    """

    id: str
    conversation_type: str
    agent_name: str
    webhook_link: str
    prompt_name: Optional[str] = None
    prompt_label: Optional[str] = None
    company_name: Optional[str] = None
    prompt_text: Optional[str] = None
    agent_description: Optional[str] = None
    media_mode: str = "audio_only"
    prompt_variables: Dict[str, Any] = field(default_factory=dict)
    ui_variables: Dict[str, Any] = field(default_factory=dict)
    complete_screen: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.media_mode = normalize_media_mode(self.media_mode)
        for name in ("prompt_variables", "ui_variables", "complete_screen"):
            if not isinstance(getattr(self, name), dict):
                setattr(self, name, {})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ConversationStore(ABC):
    """
    Abstract base class for conversation storage.

    Implementations:
    - PostgresConversationStore (production)
    - InMemoryConversationStore (test mode)
    """

    @abstractmethod
    def init_schema(self) -> None:
        """Create or migrate the storage schema. Must be idempotent."""

    @abstractmethod
    def upsert_conversation(self, record: ConversationRecord) -> str:
        """
        Insert a conversation, or overwrite every column if the id exists.

        Returns:
            The stored conversation id

        Raises:
            ConversationStoreError: If the write fails
        """

    @abstractmethod
    def get_conversation(self, conversation_id: str) -> Optional[Dict[str, Any]]:
        """
        Fetch a stored conversation row.

        Returns:
            Row as a JSON-serializable dict, or None if not found

        Raises:
            ConversationStoreError: If the read fails
        """

    @abstractmethod
    def close(self) -> None:
        """Release connections. Called on server shutdown."""
