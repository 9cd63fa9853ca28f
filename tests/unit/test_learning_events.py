"""apply_event tests — one inbound learning event end to end."""

from datetime import timedelta

import pytest

from lms.exceptions import InvalidEventError, OutOfOrderEventError
from lms.gamification.account import AchievementUnlocked, LevelUp, StreakUpdated


def kinds(events):
    return [e.kind for e in events]


class TestLessonCompleted:
    def test_first_lesson(self, engine, account):
        updated, events = engine.apply_event(account, "lesson_completed", {"minutes": 12})
        assert updated.stats.total_lessons_completed == 1
        assert updated.stats.total_learning_minutes == 12
        assert updated.today_progress.lessons_completed == 1
        assert updated.today_progress.minutes_studied == 12
        assert updated.current_streak == 1
        # 25 for the lesson + 20 for FIRST_LESSON
        assert updated.xp == 45
        assert updated.cups == 1
        assert events == [
            StreakUpdated(current_streak=1, longest_streak=1),
            AchievementUnlocked(code="FIRST_LESSON", xp_reward=20, cups_reward=1),
        ]

    def test_custom_xp_levels_up(self, engine, account):
        updated, events = engine.apply_event(account, "lesson_completed", {"xp": 100})
        assert LevelUp(new_level=2) in events
        assert updated.level == 2

    @pytest.mark.parametrize("payload", [{"xp": -1}, {"minutes": "ten"}, {"xp": True}])
    def test_bad_payload_rejected(self, engine, account, payload):
        with pytest.raises(InvalidEventError):
            engine.apply_event(account, "lesson_completed", payload)


class TestQuizPassed:
    def test_perfect_quiz(self, engine, account):
        updated, events = engine.apply_event(account, "quiz_passed", {"score": 100})
        assert updated.stats.total_quizzes_passed == 1
        assert updated.stats.perfect_quizzes == 1
        assert updated.stats.average_quiz_score == 100.0
        assert {"FIRST_QUIZ", "PERFECT_QUIZ"} <= updated.achievement_codes()
        # 50 quiz + 20 FIRST_QUIZ + 50 PERFECT_QUIZ = 120 -> level 2 with 20 left
        assert updated.level == 2
        assert updated.xp == 20
        assert kinds(events) == [
            "streak_updated",
            "achievement_unlocked",
            "achievement_unlocked",
            "level_up",
        ]

    def test_running_average(self, engine, account):
        current, _ = engine.apply_event(account, "quiz_passed", {"score": 80})
        current, _ = engine.apply_event(current, "quiz_passed", {"score": 91})
        assert current.stats.total_quizzes_passed == 2
        assert current.stats.average_quiz_score == 85.5
        assert current.stats.perfect_quizzes == 0
        assert "PERFECT_QUIZ" not in current.achievement_codes()

    @pytest.mark.parametrize("payload", [{}, {"score": 101}, {"score": -1}, {"score": "A"}])
    def test_score_required(self, engine, account, payload):
        with pytest.raises(InvalidEventError):
            engine.apply_event(account, "quiz_passed", payload)


class TestOtherEvents:
    def test_daily_checkin(self, engine, account):
        updated, _ = engine.apply_event(account, "daily_checkin")
        assert "EARLY_BIRD" in updated.achievement_codes()
        assert updated.xp == 20

    def test_level_completed_counts_course(self, engine, account):
        updated, _ = engine.apply_event(account, "level_completed", {"course_completed": True})
        assert updated.stats.total_levels_completed == 1
        assert updated.stats.total_courses_completed == 1
        assert {"FIRST_ROADMAP_LEVEL", "FIRST_COURSE"} <= updated.achievement_codes()
        # 25 + 150 from the two achievements, no base XP
        assert updated.total_xp_earned == 175
        assert updated.level == 2

    def test_unknown_event_type(self, engine, account):
        with pytest.raises(InvalidEventError):
            engine.apply_event(account, "video_watched")


class TestEventOrdering:
    def test_backdated_checkin_rejected(self, engine, account, clock):
        current, _ = engine.apply_event(account, "daily_checkin")
        yesterday = (clock() - timedelta(days=1)).date().isoformat()
        with pytest.raises(OutOfOrderEventError):
            engine.apply_event(current, "daily_checkin", {"activity_date": yesterday})

    def test_backdated_lesson_still_counts(self, engine, account, clock):
        current, _ = engine.apply_event(account, "daily_checkin")
        yesterday = (clock() - timedelta(days=1)).date().isoformat()
        updated, events = engine.apply_event(current, "lesson_completed", {"activity_date": yesterday})

        assert updated.stats.total_lessons_completed == 1
        assert updated.total_xp_earned == current.total_xp_earned + 25 + 20
        assert updated.current_streak == 1
        assert updated.last_activity_date == clock().date()
        assert "streak_updated" not in kinds(events)
        assert "achievement_unlocked" in kinds(events)

    def test_non_object_payload_rejected(self, engine, account):
        with pytest.raises(InvalidEventError):
            engine.apply_event(account, "lesson_completed", "oops")

    def test_invalid_activity_date(self, engine, account):
        with pytest.raises(InvalidEventError):
            engine.apply_event(account, "daily_checkin", {"activity_date": "not-a-date"})

    def test_day_rollover(self, engine, account, clock):
        current, _ = engine.apply_event(account, "lesson_completed")
        current, _ = engine.apply_event(current, "lesson_completed")
        assert current.today_progress.lessons_completed == 2
        assert current.current_streak == 1

        clock.advance(days=1)
        current, events = engine.apply_event(current, "lesson_completed")
        assert current.today_progress.lessons_completed == 1
        assert current.today_progress.xp_earned == 25
        assert current.current_streak == 2
        assert events[0] == StreakUpdated(current_streak=2, longest_streak=2)

    def test_third_day_unlocks_streak_badge(self, engine, account, clock):
        current = account
        for _ in range(3):
            current, events = engine.apply_event(current, "daily_checkin")
            clock.advance(days=1)
        assert events[0].milestone == 3
        assert "STREAK_3" in current.achievement_codes()

    def test_invariants_hold_across_mixed_events(self, engine, account, clock):
        current = account
        script = [
            ("lesson_completed", {"minutes": 20}),
            ("quiz_passed", {"score": 100}),
            ("daily_checkin", {}),
            ("lesson_completed", {"xp": 400}),
            ("level_completed", {"xp": 300}),
            ("quiz_passed", {"score": 70, "minutes": 5}),
        ]
        for day in range(5):
            for event_type, payload in script:
                current, _ = engine.apply_event(current, event_type, payload)
                engine.check_invariants(current)
            clock.advance(days=2 if day == 2 else 1)
        assert current.stats.total_lessons_completed == 10
        assert current.longest_streak == 3
        assert current.current_streak == 2
