"""
Platform Handlers

Each handler converts platform-specific webhook payloads to a common
InboundEvent, which the server turns into a PlatformQueryContext.

Available Handlers:
- SlackHandler: Slack Events API
- TeamsHandler: Microsoft Teams (Bot Framework) activities
"""

from .base import BaseHandler, InboundEvent
from .slack import SlackHandler
from .teams import TeamsHandler

__all__ = [
    "BaseHandler",
    "InboundEvent",
    "SlackHandler",
    "TeamsHandler",
]
