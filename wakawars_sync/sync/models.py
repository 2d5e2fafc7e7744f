"""Data types shared by the sync components."""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

__all__ = [
    "STATUS_OK",
    "STATUS_PRIVATE",
    "STATUS_NOT_FOUND",
    "STATUS_ERROR",
    "STATUSES",
    "ProviderResult",
    "StatsRangeResult",
    "UserTarget",
    "as_user_target",
    "DailyStatRecord",
    "ProviderLogEntry",
    "SyncStats",
]

# Result statuses
STATUS_OK = "ok"
STATUS_PRIVATE = "private"
STATUS_NOT_FOUND = "not_found"
STATUS_ERROR = "error"
STATUSES = (STATUS_OK, STATUS_PRIVATE, STATUS_NOT_FOUND, STATUS_ERROR)


def _seconds(value: Any) -> float:
    """Coerce a payload number to non-negative seconds, 0 if unusable."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    value = float(value)
    if not math.isfinite(value) or value < 0:
        return 0.0
    return value


@dataclass
class ProviderResult:
    """Classified outcome of one provider call.

    ``total_seconds`` is always 0 unless ``status`` is ok.
    """

    status: str
    total_seconds: float
    fetched_at: datetime
    timezone: Optional[str] = None
    date_key: Optional[str] = None
    error: Optional[str] = None
    response_status: Optional[int] = None
    response_ok: Optional[bool] = None
    payload: Any = None
    from_cache: bool = False
    network_error: Optional[str] = None

    def __post_init__(self) -> None:
        if self.status not in STATUSES:
            self.status = STATUS_ERROR
        self.total_seconds = _seconds(self.total_seconds)
        if self.status != STATUS_OK:
            self.total_seconds = 0.0

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK


@dataclass
class StatsRangeResult(ProviderResult):
    """Classified outcome of a "stats for a range" call."""

    range_key: Optional[str] = None
    daily_average_seconds: float = 0.0

    def __post_init__(self) -> None:
        super().__post_init__()
        self.daily_average_seconds = _seconds(self.daily_average_seconds)
        if self.status != STATUS_OK:
            self.daily_average_seconds = 0.0


@dataclass
class UserTarget:
    """Snapshot of a user to sync, taken once per pass."""

    id: int
    api_key: str
    timezone: Optional[str] = None
    username: Optional[str] = None


def as_user_target(user: Any) -> UserTarget:
    """Accept a UserTarget or a store row mapping (``api_key``/``apiKey``)."""
    if isinstance(user, UserTarget):
        return user
    return UserTarget(
        id=user["id"],
        api_key=user.get("api_key") or user.get("apiKey") or "",
        timezone=user.get("timezone"),
        username=user.get("username"),
    )


@dataclass
class DailyStatRecord:
    """Row upserted per (user_id, date_key)."""

    user_id: int
    date_key: str
    total_seconds: float
    status: str
    error: Optional[str]
    fetched_at: datetime


@dataclass
class ProviderLogEntry:
    """Audit record of one outbound provider call."""

    provider: str
    user_id: int
    endpoint: str
    range_key: Optional[str]
    status_code: Optional[int]
    ok: bool
    payload: Any
    error: Optional[str]
    fetched_at: datetime


@dataclass
class SyncStats:
    """Statistics from a sync pass."""

    users_total: int = 0
    users_skipped: int = 0
    users_synced: int = 0
    users_failed: int = 0
    cache_hits: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return len(self.errors) == 0
