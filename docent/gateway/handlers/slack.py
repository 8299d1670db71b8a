"""
Slack Handler

Handles Slack Events API payloads and converts them to InboundEvents.
"""

import re
from typing import Any, Dict, List, Optional

from .base import BaseHandler, InboundEvent

_USER_MENTION_RE = re.compile(r"<@([UW][A-Z0-9]+)(?:\|[^>]*)?>")

SLACKBOT_USER = "USLACKBOT"


class SlackHandler(BaseHandler):
    """
    Handler for Slack Events API webhooks.

    Processes:
    - app_mention events
    - channel message events that mention someone (Slack sends these
      alongside app_mention; the dedup guard drops the twin)

    Ignores:
    - Bot messages and Slackbot
    - Direct messages
    - Edits, deletions and other message subtypes
    """

    def __init__(self, bot_user_id: Optional[str] = None):
        super().__init__("slack")
        self.bot_user_id = bot_user_id

    async def parse_event(self, raw_data: Dict[str, Any]) -> Optional[InboundEvent]:
        if raw_data.get("type") != "event_callback":
            return None

        event = raw_data.get("event") or {}
        event_type = event.get("type", "")

        if event_type not in ("app_mention", "message"):
            return None
        if event.get("subtype"):
            return None
        if event.get("channel_type") == "im":
            return None

        text = event.get("text", "") or ""
        mentions = self._extract_mentions(text)
        if event_type == "message" and not mentions:
            return None

        ts = event.get("ts", "")
        channel_name = event.get("channel_name") or (raw_data.get("channel") or {}).get("name")
        return InboundEvent(
            text=text,
            user=event.get("user", "") or "",
            channel=event.get("channel", "") or "",
            source="slack",
            event_type=event_type,
            event_id=raw_data.get("event_id") or event.get("client_msg_id") or ts,
            timestamp=ts,
            thread_id=event.get("thread_ts") or ts or None,
            channel_name=channel_name,
            is_bot=bool(event.get("bot_id")) or event.get("user") == SLACKBOT_USER,
            mentions=mentions,
            raw_data=event,
        )

    def _extract_mentions(self, text: str) -> List[str]:
        """Extract user mentions from text"""
        return _USER_MENTION_RE.findall(text)

    def should_process(self, event: InboundEvent) -> bool:
        if not super().should_process(event):
            return False
        # our own posts come back as message events
        if self.bot_user_id and event.user == self.bot_user_id:
            return False
        return True

    def is_url_verification(self, raw_data: Dict[str, Any]) -> bool:
        """Check if request is URL verification"""
        return raw_data.get("type") == "url_verification"

    def get_challenge(self, raw_data: Dict[str, Any]) -> Optional[str]:
        """Get challenge for URL verification"""
        if self.is_url_verification(raw_data):
            return raw_data.get("challenge")
        return None
