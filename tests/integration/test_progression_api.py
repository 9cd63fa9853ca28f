"""HTTP tests for the achievement, progress, event and leaderboard routes."""

import pytest
from httpx import AsyncClient

from lms.gamification.account import ProgressAccount
from lms.gamification.seed import ACHIEVEMENT_SEED_DATA


class TestCatalogRoutes:
    @pytest.mark.asyncio
    async def test_list_hides_secret(self, client: AsyncClient):
        response = await client.get("/api/v1/achievements")
        assert response.status_code == 200
        data = response.json()
        codes = [a["code"] for a in data["achievements"]]
        assert "XP_10K" not in codes
        assert data["total"] == len(ACHIEVEMENT_SEED_DATA) - 1

    @pytest.mark.asyncio
    async def test_list_filters(self, client: AsyncClient):
        response = await client.get("/api/v1/achievements", params={"category": "perfection"})
        assert {a["code"] for a in response.json()["achievements"]} == {"PERFECT_QUIZ", "PERFECTIONIST"}

    @pytest.mark.asyncio
    async def test_get_one(self, client: AsyncClient):
        response = await client.get("/api/v1/achievements/first_lesson")
        assert response.status_code == 200
        data = response.json()
        assert data["code"] == "FIRST_LESSON"
        assert data["predicate"] == {"kind": "lessons_completed_at_least", "count": 1}

    @pytest.mark.asyncio
    async def test_secret_and_unknown_are_404(self, client: AsyncClient):
        for code in ["XP_10K", "NOPE"]:
            response = await client.get(f"/api/v1/achievements/{code}")
            assert response.status_code == 404
            assert response.json()["error_code"] == "CATALOG_LOOKUP_FAILED"

    @pytest.mark.asyncio
    async def test_put_achievement_goes_live(self, client: AsyncClient, backend):
        response = await client.put(
            "/api/v1/achievements/eager_learner",
            json={
                "name": "Eager Learner",
                "category": "learning",
                "xp_reward": 5,
                "predicate": {"kind": "lessons_completed_at_least", "count": 1},
            },
        )
        assert response.status_code == 200
        assert response.json()["code"] == "EAGER_LEARNER"
        assert "EAGER_LEARNER" in backend.achievements

        response = await client.get("/api/v1/achievements/EAGER_LEARNER")
        assert response.status_code == 200

        response = await client.post("/api/v1/users/u1/events", json={"event_type": "lesson_completed"})
        unlocked = [e["code"] for e in response.json()["events"] if e["type"] == "achievement_unlocked"]
        assert "EAGER_LEARNER" in unlocked

    @pytest.mark.asyncio
    async def test_put_achievement_replaces_existing(self, client: AsyncClient):
        response = await client.put(
            "/api/v1/achievements/FIRST_LESSON",
            json={"name": "First Steps", "category": "learning", "xp_reward": 50},
        )
        assert response.status_code == 200

        response = await client.get("/api/v1/achievements/FIRST_LESSON")
        assert response.json()["name"] == "First Steps"
        assert response.json()["xp_reward"] == 50

    @pytest.mark.asyncio
    async def test_put_invalid_achievement(self, client: AsyncClient, backend):
        response = await client.put(
            "/api/v1/achievements/BAD",
            json={"name": "Bad", "category": "gardening"},
        )
        assert response.status_code == 422
        assert "BAD" not in backend.achievements

        response = await client.put(
            "/api/v1/achievements/BAD",
            json={"name": "Bad", "category": "learning", "predicate": {"kind": "telepathy"}},
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_deactivate_achievement(self, client: AsyncClient, backend):
        response = await client.delete("/api/v1/achievements/first_lesson")
        assert response.status_code == 200
        assert response.json()["is_active"] is False
        assert backend.achievements["FIRST_LESSON"].is_active is False

        listed = await client.get("/api/v1/achievements")
        assert "FIRST_LESSON" not in [a["code"] for a in listed.json()["achievements"]]
        assert (await client.get("/api/v1/achievements/FIRST_LESSON")).status_code == 404

        response = await client.post("/api/v1/users/u1/events", json={"event_type": "lesson_completed"})
        unlocked = [e["code"] for e in response.json()["events"] if e["type"] == "achievement_unlocked"]
        assert "FIRST_LESSON" not in unlocked
        assert response.json()["progress"]["xp"] == 25

    @pytest.mark.asyncio
    async def test_deactivate_unknown_achievement(self, client: AsyncClient):
        response = await client.delete("/api/v1/achievements/NOPE")
        assert response.status_code == 404
        assert response.json()["error_code"] == "CATALOG_LOOKUP_FAILED"

    @pytest.mark.asyncio
    async def test_levels_table(self, client: AsyncClient):
        response = await client.get("/api/v1/levels", params={"max_level": 3})
        assert response.json()["levels"] == [
            {"level": 1, "xp_required": 100, "cumulative": 0},
            {"level": 2, "xp_required": 150, "cumulative": 100},
            {"level": 3, "xp_required": 225, "cumulative": 250},
        ]


class TestEventRoutes:
    @pytest.mark.asyncio
    async def test_lesson_event(self, client: AsyncClient, fake_redis):
        response = await client.post(
            "/api/v1/users/u1/events",
            json={"event_type": "lesson_completed", "payload": {"minutes": 10}},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["progress"]["xp"] == 45
        assert data["progress"]["stats"]["total_lessons_completed"] == 1
        assert data["progress"]["version"] == 1
        assert [e["type"] for e in data["events"]] == ["streak_updated", "achievement_unlocked"]
        assert fake_redis.publish.await_count == 2

    @pytest.mark.asyncio
    async def test_unknown_event_type(self, client: AsyncClient):
        response = await client.post("/api/v1/users/u1/events", json={"event_type": "teleport"})
        assert response.status_code == 422
        assert response.json()["error_code"] == "INVALID_EVENT"

    @pytest.mark.asyncio
    async def test_missing_event_type(self, client: AsyncClient):
        response = await client.post("/api/v1/users/u1/events", json={"payload": {}})
        assert response.status_code == 422
        assert response.json()["detail"] == "Validation error"

    @pytest.mark.asyncio
    async def test_malformed_account_is_500(self, client: AsyncClient, backend):
        backend.accounts["broken"] = ProgressAccount(user_id="broken", level=0, version=1)
        response = await client.post("/api/v1/users/broken/events", json={"event_type": "daily_checkin"})
        assert response.status_code == 500
        assert response.json()["error_code"] == "MALFORMED_STATE"
        assert backend.accounts["broken"].level == 0


class TestProgressRoutes:
    @pytest.mark.asyncio
    async def test_progress_for_new_user(self, client: AsyncClient):
        response = await client.get("/api/v1/users/newbie/progress")
        assert response.status_code == 200
        data = response.json()
        assert data["level"] == 1
        assert data["xp_to_next_level"] == 100
        assert data["version"] == 0
        assert data["daily_goals_progress"] == {"xp": 0.0, "minutes": 0.0, "lessons": 0.0}

    @pytest.mark.asyncio
    async def test_daily_goals(self, client: AsyncClient):
        response = await client.put("/api/v1/users/u1/daily-goals", json={"xp_goal": 100})
        assert response.status_code == 200
        assert response.json()["daily_goals"]["xp_goal"] == 100

        response = await client.put("/api/v1/users/u1/daily-goals", json={"lessons_goal": 0})
        assert response.status_code == 422
        assert response.json()["error_code"] == "INVALID_GRANT"

    @pytest.mark.asyncio
    async def test_available_achievements(self, client: AsyncClient):
        await client.post("/api/v1/users/u1/events", json={"event_type": "daily_checkin"})
        response = await client.get("/api/v1/users/u1/achievements/available")
        data = response.json()
        assert data["total_unlocked"] == 1
        unlocked = [a for a in data["achievements"] if a["unlocked"]]
        assert unlocked[0]["code"] == "EARLY_BIRD"
        assert unlocked[0]["unlocked_at"] is not None


class TestLeaderboardRoutes:
    @pytest.mark.asyncio
    async def test_leaderboard_and_ranking(self, client: AsyncClient):
        await client.post("/api/v1/users/u1/events", json={"event_type": "daily_checkin"})
        await client.post(
            "/api/v1/users/u2/events", json={"event_type": "lesson_completed", "payload": {"xp": 80}}
        )

        response = await client.get("/api/v1/leaderboard", params={"metric": "xp"})
        assert response.status_code == 200
        entries = response.json()["entries"]
        assert [e["user_id"] for e in entries] == ["u2", "u1"]
        assert entries[0]["rank"] == 1

        response = await client.get("/api/v1/users/u1/ranking")
        assert response.json()["rank"] == 2

    @pytest.mark.asyncio
    async def test_bad_metric(self, client: AsyncClient):
        response = await client.get("/api/v1/leaderboard", params={"metric": "likes"})
        assert response.status_code == 422
        assert response.json()["error_code"] == "INVALID_LEADERBOARD_QUERY"
