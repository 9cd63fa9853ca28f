"""Progression error taxonomy.

Each error carries the HTTP status and a stable error code so the API layer
can render it without a lookup table.
"""

from __future__ import annotations


class ProgressionError(Exception):
    """Base exception for the progression engine."""

    status_code: int = 400
    error_code: str = "PROGRESSION_ERROR"

    def __init__(
        self,
        detail: str,
        status_code: int | None = None,
        error_code: str | None = None,
    ) -> None:
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        super().__init__(self.detail)


class InvalidGrantError(ProgressionError):
    """Non-positive XP/cup grant or daily goal value."""

    status_code = 422
    error_code = "INVALID_GRANT"

    def __init__(self, kind: str, amount: object) -> None:
        super().__init__(f"{kind} amount must be a positive integer (got {amount!r})")
        self.kind = kind
        self.amount = amount


class InvalidEventError(ProgressionError):
    status_code = 422
    error_code = "INVALID_EVENT"


class InvalidLeaderboardQueryError(ProgressionError):
    status_code = 422
    error_code = "INVALID_LEADERBOARD_QUERY"


class OutOfOrderEventError(ProgressionError):
    """Activity date earlier than the last recorded activity."""

    status_code = 409
    error_code = "OUT_OF_ORDER_EVENT"

    def __init__(self, activity_date: object, last_activity_date: object) -> None:
        super().__init__(
            f"Activity on {activity_date} precedes last recorded activity on {last_activity_date}"
        )
        self.activity_date = activity_date
        self.last_activity_date = last_activity_date


class NotUnlockedError(ProgressionError):
    status_code = 409
    error_code = "LEVEL_NOT_UNLOCKED"

    def __init__(self, level_id: str) -> None:
        super().__init__(f"Roadmap level {level_id} is not unlocked")
        self.level_id = level_id


class UnlockRequirementsNotMetError(ProgressionError):
    status_code = 409
    error_code = "UNLOCK_REQUIREMENTS_NOT_MET"

    def __init__(self, level_id: str, reasons: list[str]) -> None:
        super().__init__(f"Roadmap level {level_id} cannot be unlocked: " + "; ".join(reasons))
        self.level_id = level_id
        self.reasons = reasons


class ConcurrencyConflictError(ProgressionError):
    """Optimistic version check failed; recompute from fresh state and retry."""

    status_code = 409
    error_code = "CONCURRENCY_CONFLICT"


class MalformedStateError(ProgressionError):
    """Invariant violation detected at runtime. Never auto-corrected."""

    status_code = 500
    error_code = "MALFORMED_STATE"


class CatalogLookupError(ProgressionError):
    status_code = 404
    error_code = "CATALOG_LOOKUP_FAILED"
