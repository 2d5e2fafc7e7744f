"""WakaTime API client - fetches today's status and range stats per user."""

import dataclasses
import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable, Optional
from urllib.parse import quote

import requests

from ..config import DEFAULT_API_URL, DEFAULT_CACHE_TTL_SECONDS
from .cache import ResultCache
from .http_client import BaseApiClient, ProviderNetworkError
from .models import (
    STATUS_ERROR,
    STATUS_NOT_FOUND,
    STATUS_OK,
    STATUS_PRIVATE,
    ProviderResult,
    StatsRangeResult,
)

__all__ = [
    "WakaTimeClient",
    "classify_response",
    "extract_error_message",
    "DAILY_ENDPOINT_SCOPE",
    "STATS_ENDPOINT_SCOPE",
]

logger = logging.getLogger(__name__)

DAILY_ENDPOINT_SCOPE = "status_bar/today"
STATS_ENDPOINT_SCOPE = "stats"

PRIVATE_MESSAGE = "User data is private or unauthorized"
NOT_FOUND_MESSAGE = "User not found"
NETWORK_ERROR_MESSAGE = "Network error"
MAX_ERROR_LENGTH = 300

_PRIVATE_HINT = re.compile(r"private|unauthori[sz]ed|forbidden", re.IGNORECASE)
_DATE_KEY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_payload(response: requests.Response) -> Any:
    """Decoded JSON body, else the text body, else None."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        text = response.text.strip()
        return text or None


def _message(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()[:MAX_ERROR_LENGTH]
    return None


def extract_error_message(payload: Any) -> Optional[str]:
    """Pull a human-readable error out of a JSON or plain-text payload.

    The message is capped at MAX_ERROR_LENGTH characters.
    """
    if isinstance(payload, str):
        return _message(payload)
    if not isinstance(payload, dict):
        return None

    error = _message(payload.get("error"))
    if error:
        return error

    errors = payload.get("errors")
    if isinstance(errors, list):
        for entry in errors:
            message = _message(entry.get("message") if isinstance(entry, dict) else entry)
            if message:
                return message

    return _message(payload.get("message"))


def _data(payload: Any) -> dict:
    if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
        return payload["data"]
    return {}


def _string(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _daily_fields(payload: Any) -> dict:
    """total_seconds/timezone/date_key from a status_bar/today payload."""
    data = _data(payload)
    grand_total = data.get("grand_total")
    total = grand_total.get("total_seconds") if isinstance(grand_total, dict) else None
    range_info = data.get("range") if isinstance(data.get("range"), dict) else {}

    date_key = _string(range_info.get("date"))
    if date_key and not _DATE_KEY.match(date_key):
        date_key = None

    return {
        "total_seconds": total,
        "timezone": _string(range_info.get("timezone")) or _string(data.get("timezone")),
        "date_key": date_key,
    }


def _stats_fields(payload: Any) -> dict:
    """total_seconds/daily_average_seconds/timezone from a stats payload."""
    data = _data(payload)
    return {
        "total_seconds": data.get("total_seconds"),
        "daily_average_seconds": data.get("daily_average"),
        "timezone": _string(data.get("timezone")),
    }


def classify_response(
    status_code: int,
    payload: Any,
    fetched_at: datetime,
    result_cls: type = ProviderResult,
    extract: Callable[[Any], dict] = _daily_fields,
    **extra: Any,
) -> ProviderResult:
    """Turn an HTTP status and payload into a classified result.

    401/403 are private; 404 is private when the message says so, else
    not_found; other non-2xx are errors; 2xx is ok.
    """
    response_ok = 200 <= status_code < 300
    common = dict(
        fetched_at=fetched_at,
        response_status=status_code,
        response_ok=response_ok,
        payload=payload,
        **extra,
    )

    if status_code in (401, 403):
        message = extract_error_message(payload) or PRIVATE_MESSAGE
        return result_cls(status=STATUS_PRIVATE, total_seconds=0, error=message, **common)

    if status_code == 404:
        message = extract_error_message(payload)
        if message and _PRIVATE_HINT.search(message):
            return result_cls(status=STATUS_PRIVATE, total_seconds=0, error=message, **common)
        return result_cls(
            status=STATUS_NOT_FOUND,
            total_seconds=0,
            error=message or NOT_FOUND_MESSAGE,
            **common,
        )

    if not response_ok:
        message = extract_error_message(payload) or f"Unexpected response ({status_code})"
        return result_cls(status=STATUS_ERROR, total_seconds=0, error=message, **common)

    return result_cls(status=STATUS_OK, **extract(payload), **common)


class WakaTimeClient(BaseApiClient):
    """Client for WakaTime's per-user stats endpoints.

    Results are cached per (endpoint, identity, api key) for the current
    UTC day and the TTL. Every response, whatever its status, refreshes the
    cache; transport failures fall back to the last cached result.
    """

    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        timeout: int = 30,
        cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        session: Optional[requests.Session] = None,
        user_agent: Optional[str] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        """Initialize WakaTime client.

        Args:
            api_url: WakaTime API base URL
            timeout: Request timeout in seconds
            cache_ttl_seconds: How long a result is reused within a day
            session: Optional requests session (for testing)
            user_agent: Override for the User-Agent header
            clock: Returns the current aware datetime
        """
        super().__init__(
            api_url=api_url, timeout=timeout, session=session, user_agent=user_agent
        )
        self._clock = clock
        self._daily_cache: ResultCache[ProviderResult] = ResultCache(cache_ttl_seconds, clock)
        self._stats_cache: ResultCache[StatsRangeResult] = ResultCache(cache_ttl_seconds, clock)

    def fetch_daily_status(
        self, identity: str, api_key: str, bypass_cache: bool = False
    ) -> ProviderResult:
        """Fetch today's coding time for a user.

        Args:
            identity: WakaTime username, or "current" for the key's owner
            api_key: The user's WakaTime API key
            bypass_cache: Always hit the network

        Returns:
            ProviderResult (never raises for HTTP or network failures)
        """
        endpoint = f"users/{quote(identity, safe='')}/status_bar/today"
        return self._fetch(
            cache=self._daily_cache,
            cache_key=f"{DAILY_ENDPOINT_SCOPE}:{identity}:{api_key}",
            endpoint=endpoint,
            api_key=api_key,
            bypass_cache=bypass_cache,
            result_cls=ProviderResult,
            extract=_daily_fields,
            extra={},
        )

    def fetch_stats_range(
        self,
        identity: str,
        range_key: str,
        api_key: str,
        bypass_cache: bool = False,
    ) -> StatsRangeResult:
        """Fetch aggregate stats for a named range (e.g. "last_7_days").

        Args:
            identity: WakaTime username, or "current"
            range_key: WakaTime range name
            api_key: The user's WakaTime API key
            bypass_cache: Always hit the network

        Returns:
            StatsRangeResult (never raises for HTTP or network failures)
        """
        endpoint = f"users/{quote(identity, safe='')}/stats/{quote(range_key, safe='')}"
        return self._fetch(
            cache=self._stats_cache,
            cache_key=f"{STATS_ENDPOINT_SCOPE}/{range_key}:{identity}:{api_key}",
            endpoint=endpoint,
            api_key=api_key,
            bypass_cache=bypass_cache,
            result_cls=StatsRangeResult,
            extract=_stats_fields,
            extra={"range_key": range_key},
        )

    def _fetch(
        self,
        cache: ResultCache,
        cache_key: str,
        endpoint: str,
        api_key: str,
        bypass_cache: bool,
        result_cls: type,
        extract: Callable[[Any], dict],
        extra: dict,
    ):
        if not bypass_cache:
            entry = cache.get_fresh(cache_key)
            if entry is not None:
                return dataclasses.replace(entry.result, from_cache=True)

        now = self._clock()
        try:
            response = self._get(endpoint, api_key)
        except ProviderNetworkError as e:
            return self._network_fallback(cache, cache_key, endpoint, str(e), now, result_cls, extra)

        result = classify_response(
            response.status_code,
            _parse_payload(response),
            now,
            result_cls=result_cls,
            extract=extract,
            **extra,
        )
        cache.set(cache_key, result, fetched_at=now)
        if not result.ok:
            logger.debug(f"{endpoint}: {result.status} ({result.error})")
        return result

    def _network_fallback(
        self,
        cache: ResultCache,
        cache_key: str,
        endpoint: str,
        message: str,
        now: datetime,
        result_cls: type,
        extra: dict,
    ):
        message = message or NETWORK_ERROR_MESSAGE
        entry = cache.get_any(cache_key)
        if entry is not None:
            logger.warning(f"{endpoint}: {message}, serving cached result")
            return dataclasses.replace(entry.result, from_cache=True, network_error=message)

        logger.warning(f"{endpoint}: {message}, no cached result")
        return result_cls(
            status=STATUS_ERROR,
            total_seconds=0,
            fetched_at=now,
            error=message,
            from_cache=False,
            network_error=message,
            **extra,
        )

    def invalidate_cache(self) -> None:
        """Drop every cached result."""
        self._daily_cache.invalidate()
        self._stats_cache.invalidate()
