"""Achievement catalog — read-mostly registry of achievement definitions."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from lms.exceptions import CatalogLookupError
from lms.gamification.account import ProgressAccount
from lms.gamification.predicates import Manual, Predicate, parse_predicate, predicate_to_dict

ACHIEVEMENT_TYPES = ("badge", "trophy", "milestone", "special")
ACHIEVEMENT_CATEGORIES = ("learning", "social", "streak", "completion", "speed", "perfection")
RARITIES = ("common", "rare", "epic", "legendary")


@dataclass(frozen=True)
class AchievementDefinition:
    code: str
    name: str
    category: str
    description: str = ""
    type: str = "badge"
    icon: str = ""
    rarity: str = "common"
    xp_reward: int = 0
    cups_reward: int = 0
    predicate: Predicate = field(default_factory=Manual)
    is_active: bool = True
    is_secret: bool = False
    sort_order: int = 0

    def __post_init__(self) -> None:
        # Codes are stored upper-cased, matching how they are referenced.
        object.__setattr__(self, "code", self.code.strip().upper())
        if self.type not in ACHIEVEMENT_TYPES:
            raise CatalogLookupError(f"Unknown achievement type {self.type!r} for {self.code}")
        if self.category not in ACHIEVEMENT_CATEGORIES:
            raise CatalogLookupError(f"Unknown achievement category {self.category!r} for {self.code}")
        if self.rarity not in RARITIES:
            raise CatalogLookupError(f"Unknown achievement rarity {self.rarity!r} for {self.code}")
        if self.xp_reward < 0 or self.cups_reward < 0:
            raise CatalogLookupError(f"Achievement {self.code} has a negative reward")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AchievementDefinition:
        values = dict(data)
        values["predicate"] = parse_predicate(values.get("predicate") or {"kind": "manual"})
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "type": self.type,
            "category": self.category,
            "icon": self.icon,
            "rarity": self.rarity,
            "xp_reward": self.xp_reward,
            "cups_reward": self.cups_reward,
            "predicate": predicate_to_dict(self.predicate),
            "is_active": self.is_active,
            "is_secret": self.is_secret,
            "sort_order": self.sort_order,
        }


class AchievementCatalog:
    """Immutable keyed collection of achievement definitions."""

    def __init__(self, definitions: Iterable[AchievementDefinition] = ()) -> None:
        by_code: dict[str, AchievementDefinition] = {}
        for definition in definitions:
            if definition.code in by_code:
                raise CatalogLookupError(f"Duplicate achievement code: {definition.code}")
            by_code[definition.code] = definition
        self._by_code = by_code
        self._ordered = tuple(sorted(by_code.values(), key=lambda d: (d.sort_order, d.code)))

    def __len__(self) -> int:
        return len(self._by_code)

    def __contains__(self, code: object) -> bool:
        return isinstance(code, str) and code.upper() in self._by_code

    def __iter__(self):
        return iter(self._ordered)

    def find(self, code: str) -> AchievementDefinition | None:
        return self._by_code.get(code.upper())

    def get(self, code: str) -> AchievementDefinition:
        definition = self.find(code)
        if definition is None:
            raise CatalogLookupError(f"Achievement not found: {code}")
        return definition

    def active(self) -> list[AchievementDefinition]:
        return [d for d in self._ordered if d.is_active]

    def list(
        self,
        category: str | None = None,
        type: str | None = None,  # noqa: A002
        rarity: str | None = None,
        active: bool | None = True,
        include_secret: bool = False,
    ) -> list[AchievementDefinition]:
        """Filtered listing in display order. Secret achievements are hidden by default."""
        result = []
        for d in self._ordered:
            if active is not None and d.is_active != active:
                continue
            if category and d.category != category:
                continue
            if type and d.type != type:
                continue
            if rarity and d.rarity != rarity:
                continue
            if d.is_secret and not include_secret:
                continue
            result.append(d)
        return result

    def available_for(self, account: ProgressAccount) -> list[AchievementDefinition]:
        """Achievements a user may see: all non-secret ones plus secrets they unlocked."""
        unlocked = account.achievement_codes()
        return [
            d
            for d in self._ordered
            if d.is_active and (not d.is_secret or d.code in unlocked)
        ]

    def with_definition(self, definition: AchievementDefinition) -> AchievementCatalog:
        """Copy of this catalog with ``definition`` added or replaced."""
        definitions = {d.code: d for d in self._ordered}
        definitions[definition.code] = definition
        return AchievementCatalog(definitions.values())


class CatalogRegistry:
    """Holds the current catalog; replaced wholesale on administrative updates.

    Readers take a reference to an immutable catalog, so no lock is needed.
    """

    def __init__(self, catalog: AchievementCatalog | None = None) -> None:
        self._catalog = catalog

    @property
    def loaded(self) -> bool:
        return self._catalog is not None

    def get(self) -> AchievementCatalog:
        if self._catalog is None:
            msg = "Achievement catalog not loaded"
            raise RuntimeError(msg)
        return self._catalog

    def replace(self, catalog: AchievementCatalog) -> None:
        self._catalog = catalog
