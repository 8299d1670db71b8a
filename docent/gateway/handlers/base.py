"""
Base Handler

Abstract base class for chat-platform event handlers.
Provides a common interface for turning webhook payloads into questions.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ...common.types import PlatformQueryContext


@dataclass
class InboundEvent:
    """
    Common inbound question format for all platforms.

    ``text`` is the raw message text; mention markup is stripped later by
    the orchestrator's normalizer.
    """
    text: str
    user: str
    channel: str
    source: str  # "slack", "teams"
    event_type: str
    event_id: str
    timestamp: str = ""
    thread_id: Optional[str] = None
    channel_name: Optional[str] = None
    is_bot: bool = False
    mentions: List[str] = field(default_factory=list)
    raw_data: Optional[Dict[str, Any]] = None

    @property
    def is_valid(self) -> bool:
        """Check if event has minimum required fields"""
        return bool(self.text and self.text.strip() and self.user)

    def to_query_context(self, extra_metadata: Optional[Dict[str, Any]] = None) -> PlatformQueryContext:
        metadata: Dict[str, Any] = {"event_type": self.event_type, "event_id": self.event_id}
        if self.channel_name:
            metadata["channel_name"] = self.channel_name
        if self.timestamp:
            metadata["timestamp"] = self.timestamp
        if extra_metadata:
            metadata.update(extra_metadata)
        return PlatformQueryContext(
            platform=self.source,
            user_id=self.user,
            channel_id=self.channel,
            query=self.text,
            thread_id=self.thread_id,
            metadata=metadata,
        )


class BaseHandler(ABC):
    """
    Abstract base class for platform handlers.

    Each handler must implement parse_event, converting a raw webhook
    payload to an InboundEvent (or None when the payload is not a question).
    """

    def __init__(self, source_name: str):
        self.source_name = source_name

    @abstractmethod
    async def parse_event(self, raw_data: Dict[str, Any]) -> Optional[InboundEvent]:
        pass

    def should_process(self, event: InboundEvent) -> bool:
        """Skip invalid and bot-authored events. Override for platform rules."""
        if not event.is_valid:
            return False
        if event.is_bot:
            return False
        return True
