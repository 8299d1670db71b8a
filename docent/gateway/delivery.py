"""
Delivery

Posting answers back to a platform (Slack blocks, Teams cards) is done
by a Delivery implementation. The default only logs the answer.
"""

import logging
from typing import Protocol

from ..common.types import OrchestratorResult, PlatformQueryContext

logger = logging.getLogger("docent.gateway.delivery")


class Delivery(Protocol):
    async def deliver(self, context: PlatformQueryContext, result: OrchestratorResult) -> None:
        ...


class LoggingDelivery:
    """Logs answers instead of posting them."""

    def __init__(self):
        self.delivered = 0

    async def deliver(self, context: PlatformQueryContext, result: OrchestratorResult) -> None:
        self.delivered += 1
        logger.info(
            "[%s] answer for %s in %s (thread %s): %s",
            context.platform,
            context.user_id,
            context.channel_id,
            context.thread_id or "-",
            result.summary[:120],
        )
