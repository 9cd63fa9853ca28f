"""Conflict retry helper and pub/sub notifier tests."""

import json
from unittest.mock import AsyncMock

import pytest

from lms.exceptions import ConcurrencyConflictError, InvalidEventError
from lms.gamification.account import AchievementUnlocked, LevelUp, StreakUpdated
from lms.gamification.notifier import ProgressNotifier
from lms.gamification.retry import retry_on_conflict


class TestRetryOnConflict:
    async def test_returns_first_success(self):
        operation = AsyncMock(return_value="ok")
        assert await retry_on_conflict(operation) == "ok"
        assert operation.await_count == 1

    async def test_retries_conflicts(self):
        operation = AsyncMock(
            side_effect=[ConcurrencyConflictError("a"), ConcurrencyConflictError("b"), "done"]
        )
        assert await retry_on_conflict(operation, attempts=3) == "done"
        assert operation.await_count == 3

    async def test_gives_up_with_last_conflict(self):
        operation = AsyncMock(
            side_effect=[ConcurrencyConflictError("first"), ConcurrencyConflictError("second")]
        )
        with pytest.raises(ConcurrencyConflictError, match="second"):
            await retry_on_conflict(operation, attempts=2)

    async def test_other_errors_not_retried(self):
        operation = AsyncMock(side_effect=InvalidEventError("bad"))
        with pytest.raises(InvalidEventError):
            await retry_on_conflict(operation, attempts=5)
        assert operation.await_count == 1

    async def test_attempts_must_be_positive(self):
        with pytest.raises(ValueError):
            await retry_on_conflict(AsyncMock(), attempts=0)


class TestProgressNotifier:
    async def test_publishes_to_event_channels(self, fake_redis):
        events = [
            StreakUpdated(current_streak=7, longest_streak=7, milestone=7),
            LevelUp(new_level=3),
            AchievementUnlocked(code="STREAK_7", xp_reward=100, cups_reward=5),
        ]
        sent = await ProgressNotifier(fake_redis).publish("user-1", events)
        assert sent == 3
        calls = fake_redis.publish.await_args_list
        assert [c.args[0] for c in calls] == [
            "pubsub:streak_update",
            "pubsub:level_up",
            "pubsub:achievement_unlocked",
        ]
        assert json.loads(calls[1].args[1]) == {"user_id": "user-1", "type": "level_up", "new_level": 3}

    async def test_redis_failure_is_swallowed(self, fake_redis):
        fake_redis.publish.side_effect = [ConnectionError("down"), 1]
        sent = await ProgressNotifier(fake_redis).publish(
            "user-1", [LevelUp(new_level=2), LevelUp(new_level=3)]
        )
        assert sent == 1

    async def test_no_redis_configured(self):
        assert await ProgressNotifier(None).publish("user-1", [LevelUp(new_level=2)]) == 0
