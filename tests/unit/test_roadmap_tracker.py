"""Roadmap tracker tests — unlock gating, completion rewards and lesson progress."""

import pytest

from lms.exceptions import CatalogLookupError, NotUnlockedError
from lms.gamification.account import AchievementUnlocked, LevelUp
from lms.roadmap.graph import RoadmapGraph
from lms.roadmap.models import LevelRewards, RoadmapLevel, UnlockRequirements
from lms.roadmap.tracker import RoadmapProgressTracker


@pytest.fixture
def tracker(engine, clock):
    return RoadmapProgressTracker(engine, clock)


@pytest.fixture
def graph(roadmap_levels):
    return RoadmapGraph("python-101", roadmap_levels)


class TestStart:
    def test_first_level_unlocked(self, tracker, graph, clock):
        progress = tracker.start("user-1", graph)
        assert progress.version == 0
        assert progress.current_level_id == "lvl-1"
        assert [u.level_id for u in progress.unlocked_levels] == ["lvl-1"]
        assert progress.unlocked_levels[0].unlocked_at == clock()
        assert progress.completed_levels == []

    def test_empty_course(self, tracker):
        progress = tracker.start("user-1", RoadmapGraph("empty", []))
        assert progress.unlocked_levels == []
        assert progress.current_level_id is None


class TestUnlockEligibility:
    def test_reports_every_unmet_requirement(self, tracker, graph, account):
        progress = tracker.start("user-1", graph)
        check = tracker.check_unlock_eligibility(progress, graph.get("lvl-3"), account)
        assert not check.eligible
        assert not check.already_unlocked
        assert [r.code for r in check.unmet_reasons] == ["previous_level", "min_cups", "achievement"]
        assert "FIRST_ROADMAP_LEVEL" in check.unmet_reasons[-1].message

    def test_already_unlocked(self, tracker, graph, account):
        progress = tracker.start("user-1", graph)
        check = tracker.check_unlock_eligibility(progress, graph.get("lvl-1"), account)
        assert check.eligible
        assert check.already_unlocked
        assert check.unmet_reasons == []

    def test_eligible_after_completing_previous(self, tracker, graph, account):
        progress = tracker.start("user-1", graph)
        progress, account, _ = tracker.complete_level(progress, graph.get("lvl-1"), 90, 300, account)
        check = tracker.check_unlock_eligibility(progress, graph.get("lvl-2"), account)
        assert check.eligible
        assert check.unmet_reasons == []

    def test_directly_built_level_matches_codes_case_insensitively(self, tracker, graph, engine, account):
        level = RoadmapLevel(
            id="lvl-quiz",
            course_id="python-101",
            level_number=9,
            title="Quiz gate",
            unlock_requirements=UnlockRequirements(required_achievement_codes=("first_quiz",)),
            rewards=LevelRewards(badge_achievement_code="first_course"),
        )
        assert level.unlock_requirements.required_achievement_codes == ("FIRST_QUIZ",)
        assert level.rewards.badge_achievement_code == "FIRST_COURSE"

        account, _ = engine.unlock_achievement(account, "FIRST_QUIZ")
        check = tracker.check_unlock_eligibility(tracker.start("user-1", graph), level, account)
        assert check.eligible

    def test_min_xp_uses_lifetime_xp(self, tracker, graph, engine, account):
        """Spent-down level XP does not matter; lifetime XP does."""
        progress = tracker.start("user-1", graph)
        progress, account, _ = tracker.complete_level(progress, graph.get("lvl-1"), None, None, account)
        assert account.xp == 0
        assert account.total_xp_earned == 100
        check = tracker.check_unlock_eligibility(progress, graph.get("lvl-2"), account)
        assert check.eligible


class TestUnlockLevel:
    def test_unlock_sets_current(self, tracker, graph):
        progress = tracker.start("user-1", graph)
        updated = tracker.unlock_level(progress, graph.get("lvl-2"))
        assert updated.current_level_id == "lvl-2"
        assert updated.is_unlocked("lvl-2")
        assert not progress.is_unlocked("lvl-2")

    def test_unlock_twice_returns_same_record(self, tracker, graph):
        progress = tracker.start("user-1", graph)
        assert tracker.unlock_level(progress, graph.get("lvl-1")) is progress


class TestCompleteLevel:
    def test_pays_rewards_once(self, tracker, graph, account):
        progress = tracker.start("user-1", graph)
        updated, new_account, events = tracker.complete_level(
            progress, graph.get("lvl-1"), 95, 420, account
        )
        assert updated.is_completed("lvl-1")
        assert updated.completed_levels[0].score == 95
        assert updated.completed_levels[0].time_taken == 420
        assert updated.total_xp_earned == 100
        assert updated.total_cups_earned == 5
        assert new_account.level == 2
        assert new_account.cups == 5
        assert new_account.stats.total_levels_completed == 1
        assert events == [LevelUp(new_level=2)]
        # inputs untouched
        assert not progress.is_completed("lvl-1")
        assert account.total_xp_earned == 0

    def test_recompleting_is_idempotent(self, tracker, graph, account):
        progress = tracker.start("user-1", graph)
        progress, account, _ = tracker.complete_level(progress, graph.get("lvl-1"), 80, 60, account)
        again, same_account, events = tracker.complete_level(
            progress, graph.get("lvl-1"), 100, 30, account
        )
        assert again is progress
        assert same_account is account
        assert events == []
        assert len(again.completed_levels) == 1
        assert again.completed_levels[0].score == 80

    def test_locked_level_rejected(self, tracker, graph, account):
        progress = tracker.start("user-1", graph)
        with pytest.raises(NotUnlockedError):
            tracker.complete_level(progress, graph.get("lvl-2"), None, None, account)

    def test_finishing_course_awards_badge_and_counter(self, tracker, graph, account):
        progress = tracker.start("user-1", graph)
        for level_id in ["lvl-1", "lvl-2", "lvl-3"]:
            lvl = graph.get(level_id)
            progress = tracker.unlock_level(progress, lvl)
            progress, account, events = tracker.complete_level(
                progress, lvl, None, None, account, graph=graph
            )
        assert AchievementUnlocked(code="FIRST_COURSE", xp_reward=150, cups_reward=10) in events
        assert account.stats.total_levels_completed == 3
        assert account.stats.total_courses_completed == 1
        assert progress.total_xp_earned == 550
        assert progress.total_cups_earned == 35
        # roadmap totals count level rewards only; the badge reward lands on the account
        assert account.total_xp_earned == 700
        assert account.total_cups_earned == 45


class TestLessonProgress:
    def test_percentage_from_level_lessons(self, tracker, graph, clock):
        progress = tracker.start("user-1", graph)
        lvl = graph.get("lvl-1")
        progress = tracker.update_level_progress(progress, lvl, "l-1")
        entry = progress.level_progress["lvl-1"]
        assert entry.completed_lesson_ids == ["l-1"]
        assert entry.total_lessons == 3
        assert entry.progress_percentage == 33
        assert entry.started_at == clock()

        progress = tracker.update_level_progress(progress, lvl, "l-2")
        assert progress.level_progress["lvl-1"].progress_percentage == 67

    def test_same_lesson_counted_once(self, tracker, graph):
        progress = tracker.start("user-1", graph)
        lvl = graph.get("lvl-1")
        progress = tracker.update_level_progress(progress, lvl, "l-1")
        progress = tracker.update_level_progress(progress, lvl, "l-1")
        assert progress.level_progress["lvl-1"].completed_lesson_ids == ["l-1"]

    def test_lesson_outside_level_rejected(self, tracker, graph):
        progress = tracker.start("user-1", graph)
        with pytest.raises(CatalogLookupError):
            tracker.update_level_progress(progress, graph.get("lvl-1"), "l-99")

    def test_explicit_total_for_level_without_lessons(self, tracker, graph):
        progress = tracker.start("user-1", graph)
        progress = tracker.update_level_progress(progress, graph.get("lvl-2"), "any", total_lessons=4)
        assert progress.level_progress["lvl-2"].progress_percentage == 25

    def test_zero_total_is_zero_percent(self, tracker, graph):
        progress = tracker.start("user-1", graph)
        progress = tracker.update_level_progress(progress, graph.get("lvl-2"), "any")
        assert progress.level_progress["lvl-2"].progress_percentage == 0

    def test_percentage_capped(self, tracker, graph):
        progress = tracker.start("user-1", graph)
        lvl = graph.get("lvl-2")
        progress = tracker.update_level_progress(progress, lvl, "a", total_lessons=1)
        progress = tracker.update_level_progress(progress, lvl, "b", total_lessons=1)
        assert progress.level_progress["lvl-2"].progress_percentage == 100
