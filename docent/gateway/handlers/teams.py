"""
Teams Handler

Handles Microsoft Teams (Bot Framework) activities and converts them to
InboundEvents.
"""

from typing import Any, Dict, Optional

from .base import BaseHandler, InboundEvent


class TeamsHandler(BaseHandler):
    """
    Handler for Bot Framework message activities.

    Only ``type == "message"`` activities with text are questions;
    conversationUpdate, typing and invoke activities are ignored.
    """

    def __init__(self):
        super().__init__("teams")

    async def parse_event(self, raw_data: Dict[str, Any]) -> Optional[InboundEvent]:
        if raw_data.get("type") != "message":
            return None

        text = raw_data.get("text") or ""
        if not text.strip():
            return None

        sender = raw_data.get("from") or {}
        conversation = raw_data.get("conversation") or {}
        channel_data = raw_data.get("channelData") or {}
        channel_name = (channel_data.get("channel") or {}).get("name") or conversation.get("name")

        activity_id = raw_data.get("id", "") or ""
        return InboundEvent(
            text=text,
            user=sender.get("aadObjectId") or sender.get("id", "") or "",
            channel=conversation.get("id", "") or "",
            source="teams",
            event_type="message",
            event_id=activity_id,
            timestamp=raw_data.get("timestamp", "") or "",
            thread_id=raw_data.get("replyToId") or activity_id or None,
            channel_name=channel_name,
            is_bot=sender.get("role") == "bot",
            mentions=[
                (e.get("mentioned") or {}).get("id", "")
                for e in raw_data.get("entities") or []
                if e.get("type") == "mention"
            ],
            raw_data=raw_data,
        )
