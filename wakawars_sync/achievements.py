"""Default daily achievement awarder.

Grants time-threshold achievements for a day's result, plus awards that
depend on which editors, languages and projects the day's payload lists.
Safe to call any number of times for the same day: the store grants each
achievement once per (user, achievement, day).
"""

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Optional

from .sync.models import STATUS_OK

__all__ = [
    "DailyAchievement",
    "DAILY_TIME_ACHIEVEMENTS",
    "DailyAchievementAwarder",
    "extract_active_names",
]

logger = logging.getLogger(__name__)

HOUR = 60 * 60
FOCUS_THRESHOLD_SECONDS = 8 * HOUR
SWITCHBLADE_MIN_EDITORS = 3
JUGGLER_MIN_LANGUAGES = 4


@dataclass(frozen=True)
class DailyAchievement:
    id: str
    title: str
    threshold_seconds: int
    weekend_only: bool = False


DAILY_TIME_ACHIEVEMENTS = (
    DailyAchievement("quick-boot-4h", "Quick Boot", 4 * HOUR),
    DailyAchievement("focus-reactor-6h", "Focus Reactor", 6 * HOUR),
    DailyAchievement("streak-forge-8h", "Green Wall: Day One", 8 * HOUR),
    DailyAchievement("overclocked-core-10h", "Overclocked Core", 10 * HOUR),
    DailyAchievement("merge-mountain-12h", "Merge Mountain Prime", 12 * HOUR),
    DailyAchievement("night-shift-14h", "Night Shift", 14 * HOUR),
    DailyAchievement("legendary-commit-16h", "Merge Overlord", 16 * HOUR),
    DailyAchievement("boss-raid-20h", "Boss Raid", 20 * HOUR),
    DailyAchievement("weekend-warrior-8h", "Weekend Warrior", 8 * HOUR, weekend_only=True),
    DailyAchievement("weekend-overdrive-12h", "Weekend Overdrive", 12 * HOUR, weekend_only=True),
)

# Payload-based awards, all gated on an 8 hour day
SOLO_DAY = DailyAchievement("solo-day-8h", "Solo Day", FOCUS_THRESHOLD_SECONDS)
SWITCHBLADE_DAY = DailyAchievement("switchblade-day-8h", "Switchblade Day", FOCUS_THRESHOLD_SECONDS)
MONO_LANGUAGE_DAY = DailyAchievement("mono-language-day-8h", "Mono Language", FOCUS_THRESHOLD_SECONDS)
LANGUAGE_JUGGLER_DAY = DailyAchievement(
    "language-juggler-day-8h", "Language Juggler", FOCUS_THRESHOLD_SECONDS
)
DEEP_FOCUS_DAY = DailyAchievement("deep-focus-day-8h", "Deep Focus", FOCUS_THRESHOLD_SECONDS)


def is_weekend_date_key(date_key: str) -> bool:
    try:
        return date.fromisoformat(date_key).weekday() >= 5
    except ValueError:
        return False


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            parsed = float(value)
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def extract_active_names(payload: Any, key: str) -> list[str]:
    """Names under ``data[key]`` that logged time, in first-seen order.

    Each entry's seconds come from ``total_seconds``, ``seconds`` or
    ``total``. Entries without a usable name count as "unknown"; entries
    sharing a name are merged.
    """
    data = payload.get("data") if isinstance(payload, dict) else None
    entries = data.get(key) if isinstance(data, dict) else None
    if not isinstance(entries, list):
        return []

    seconds_by_name: dict[str, float] = {}
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        seconds = 0.0
        for field_name in ("total_seconds", "seconds", "total"):
            value = _number(entry.get(field_name))
            if value is not None:
                seconds = value
                break
        if seconds <= 0:
            continue
        name = entry.get("name")
        name = name.strip() if isinstance(name, str) and name.strip() else "unknown"
        seconds_by_name[name] = seconds_by_name.get(name, 0.0) + seconds
    return list(seconds_by_name)


def _payload_awards(payload: Any) -> list[tuple[DailyAchievement, dict]]:
    editors = extract_active_names(payload, "editors")
    languages = extract_active_names(payload, "languages")
    projects = extract_active_names(payload, "projects")

    awards = []
    if len(editors) == 1:
        awards.append((SOLO_DAY, {"editor": editors[0]}))
    if len(editors) >= SWITCHBLADE_MIN_EDITORS:
        awards.append((SWITCHBLADE_DAY, {"editors": editors}))
    if len(languages) == 1:
        awards.append((MONO_LANGUAGE_DAY, {"language": languages[0]}))
    if len(languages) >= JUGGLER_MIN_LANGUAGES:
        awards.append((LANGUAGE_JUGGLER_DAY, {"languages": languages}))
    if len(projects) == 1:
        awards.append((DEEP_FOCUS_DAY, {"project": projects[0]}))
    return awards


class DailyAchievementAwarder:
    """Grants daily achievements through the store."""

    def __init__(self, achievements: tuple = DAILY_TIME_ACHIEVEMENTS):
        self.achievements = achievements

    def award(
        self,
        store,
        user_id: int,
        date_key: str,
        status: str,
        total_seconds: float,
        payload: Any,
        fetched_at: datetime,
    ) -> list[str]:
        """Grant every achievement the day qualifies for.

        Returns:
            Ids of achievements granted by this call
        """
        if status != STATUS_OK:
            return []

        weekend = is_weekend_date_key(date_key)
        awards = [
            (achievement, {})
            for achievement in self.achievements
            if total_seconds >= achievement.threshold_seconds
            and (weekend or not achievement.weekend_only)
        ]
        if total_seconds >= FOCUS_THRESHOLD_SECONDS:
            awards.extend(_payload_awards(payload))

        granted = []
        for achievement, extra in awards:
            is_new = store.grant_achievement(
                user_id=user_id,
                achievement_id=achievement.id,
                context_kind="daily",
                context_key=date_key,
                awarded_at=fetched_at,
                metadata={
                    "total_seconds": total_seconds,
                    "threshold_seconds": achievement.threshold_seconds,
                    "date_key": date_key,
                    **extra,
                },
            )
            if is_new:
                granted.append(achievement.id)

        if granted:
            logger.info(f"User {user_id} earned {', '.join(granted)} on {date_key}")
        return granted
