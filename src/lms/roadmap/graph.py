"""Ordered, validated view over one course's roadmap levels."""

from __future__ import annotations

from collections.abc import Iterable

from lms.exceptions import CatalogLookupError, MalformedStateError
from lms.roadmap.models import RoadmapLevel, UserRoadmapProgress


class RoadmapGraph:
    """Active levels of a course, ordered by ``level_number``.

    Built from ``store.load_roadmap_levels(course_id)``. Construction fails if
    the level set is inconsistent: duplicate level numbers, a level belonging
    to another course, or a ``previous_level_id`` that is unknown or not
    strictly earlier in the ordering.
    """

    def __init__(self, course_id: str, levels: Iterable[RoadmapLevel]) -> None:
        self.course_id = course_id
        active = [level for level in levels if level.is_active]

        by_id: dict[str, RoadmapLevel] = {}
        numbers: set[int] = set()
        for level in active:
            if level.course_id != course_id:
                raise MalformedStateError(
                    f"Level {level.id} belongs to course {level.course_id}, not {course_id}"
                )
            if level.level_number in numbers:
                raise MalformedStateError(
                    f"Duplicate level number {level.level_number} in course {course_id}"
                )
            if level.id in by_id:
                raise MalformedStateError(f"Duplicate level id {level.id} in course {course_id}")
            numbers.add(level.level_number)
            by_id[level.id] = level

        for level in active:
            prev_id = level.unlock_requirements.previous_level_id
            if prev_id is None:
                continue
            prev = by_id.get(prev_id)
            if prev is None or prev.level_number >= level.level_number:
                raise MalformedStateError(
                    f"Level {level.id} requires {prev_id}, which is not an earlier level "
                    f"of course {course_id}"
                )

        self._by_id = by_id
        self._ordered = sorted(active, key=lambda lvl: lvl.level_number)

    def __len__(self) -> int:
        return len(self._ordered)

    def __iter__(self):
        return iter(self._ordered)

    def __contains__(self, level_id: object) -> bool:
        return level_id in self._by_id

    @property
    def levels(self) -> list[RoadmapLevel]:
        return list(self._ordered)

    def get(self, level_id: str) -> RoadmapLevel:
        level = self._by_id.get(level_id)
        if level is None:
            raise CatalogLookupError(f"Roadmap level {level_id} not found in course {self.course_id}")
        return level

    def first_level(self) -> RoadmapLevel | None:
        return self._ordered[0] if self._ordered else None

    def next_level(self, level_id: str) -> RoadmapLevel | None:
        current = self.get(level_id)
        for level in self._ordered:
            if level.level_number > current.level_number:
                return level
        return None

    def is_complete(self, progress: UserRoadmapProgress) -> bool:
        """True when every active level of the course is completed."""
        if not self._ordered:
            return False
        completed = progress.completed_level_ids()
        return all(level.id in completed for level in self._ordered)
