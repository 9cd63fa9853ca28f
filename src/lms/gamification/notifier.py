"""Fan out progression events over Redis pub/sub.

Delivery is best-effort: a Redis failure is logged and never fails the
operation that produced the events.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence

from lms.gamification.account import ProgressEvent

logger = logging.getLogger(__name__)

CHANNELS = {
    "level_up": "pubsub:level_up",
    "achievement_unlocked": "pubsub:achievement_unlocked",
    "streak_updated": "pubsub:streak_update",
}


class ProgressNotifier:
    def __init__(self, redis: object | None) -> None:
        self.redis = redis

    async def publish(self, user_id: str, events: Sequence[ProgressEvent]) -> int:
        """Publish each event to its channel. Returns how many were sent."""
        if self.redis is None or not events:
            return 0

        sent = 0
        for event in events:
            channel = CHANNELS[event.kind]
            try:
                await self.redis.publish(  # type: ignore[union-attr]
                    channel,
                    json.dumps({"user_id": user_id, **event.to_payload()}),
                )
                sent += 1
            except Exception:
                logger.warning("Failed to publish %s for user %s", event.kind, user_id, exc_info=True)
        return sent
