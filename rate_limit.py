"""
YNAB API rate limit tracking.

YNAB allows 200 requests per hour in a rolling window and reports the current
usage in the X-Rate-Limit response header (e.g. "36/200"). The tracker keeps
the latest count and persists it alongside the budget caches so it survives
restarts.
"""

import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime

from pydantic import BaseModel

from cache import CacheStore
from models import RateLimitLevel, RateLimitStatus

logger = logging.getLogger(__name__)

RATE_LIMIT = 200
RATE_LIMIT_FILE = "rate-limit.json"
STALE_AFTER_SECONDS = 60 * 60


class RateLimitState(BaseModel):
    requests_used: int = 0
    last_updated: float | None = None


def parse_rate_limit_header(value: str) -> int | None:
    """Parse the used count out of an X-Rate-Limit header value."""
    used, _, _ = value.partition("/")
    try:
        return int(used.strip())
    except ValueError:
        return None


def _format_ago(seconds: float) -> str:
    minutes = int(seconds // 60)
    if minutes < 1:
        return "just now"
    if minutes == 1:
        return "1 minute ago"
    if minutes < 60:
        return f"{minutes} minutes ago"
    hours = minutes // 60
    return f"{hours} hour{'s' if hours > 1 else ''} ago"


class RateLimitTracker:
    """Request accounting for one process, persisted through a CacheStore."""

    def __init__(
        self,
        store: CacheStore,
        limit: int = RATE_LIMIT,
        now: Callable[[], float] = time.time,
    ):
        self.store = store
        self.limit = limit
        self._now = now
        self._state: RateLimitState | None = None

    @property
    def state(self) -> RateLimitState:
        if self._state is None:
            self._state = (
                self.store.load_global(RATE_LIMIT_FILE, RateLimitState)
                or RateLimitState()
            )
        return self._state

    def update_from_header(self, requests_used: int) -> None:
        """Record the usage count YNAB reported."""
        self.state.requests_used = requests_used
        self._touch()

    def increment(self) -> None:
        """Count one request when YNAB didn't report usage."""
        self.state.requests_used += 1
        self._touch()

    def reset(self) -> None:
        """Forget recorded usage, on disk as well."""
        self._state = RateLimitState()
        self.store.save_global(RATE_LIMIT_FILE, self._state)

    def _touch(self) -> None:
        self.state.last_updated = self._now()
        self.store.save_global(RATE_LIMIT_FILE, self.state)

        level = self.warning_level()
        if level != "ok":
            logger.warning(
                f"YNAB rate limit {level}: "
                f"{self.state.requests_used}/{self.limit} requests used"
            )

    def percent_used(self) -> int:
        return round(self.state.requests_used / self.limit * 100)

    def warning_level(self) -> RateLimitLevel:
        percent = self.percent_used()
        if percent >= 100:
            return "exceeded"
        if percent >= 90:
            return "critical"
        if percent >= 75:
            return "warning"
        return "ok"

    def is_stale(self) -> bool:
        """Usage older than the rolling window may no longer be accurate."""
        last_updated = self.state.last_updated
        if last_updated is None:
            return True
        return self._now() - last_updated > STALE_AFTER_SECONDS

    def status(self) -> RateLimitStatus:
        state = self.state
        last_updated = None
        last_updated_ago = None
        if state.last_updated is not None:
            last_updated = datetime.fromtimestamp(state.last_updated, UTC)
            last_updated_ago = _format_ago(self._now() - state.last_updated)

        status = RateLimitStatus(
            requests_used=state.requests_used,
            requests_remaining=max(0, self.limit - state.requests_used),
            limit=self.limit,
            percent_used=self.percent_used(),
            last_updated=last_updated,
            last_updated_ago=last_updated_ago,
            warning_level=self.warning_level(),
            is_stale=self.is_stale(),
        )
        status.message = format_status(status)
        return status

    def format_status(self) -> str:
        return self.status().message


def format_status(status: RateLimitStatus) -> str:
    """Human-readable summary of a rate limit status."""
    lines = [
        f"YNAB API Rate Limit: {status.requests_used}/{status.limit} requests used "
        f"({status.percent_used}%)",
        f"Remaining: {status.requests_remaining} requests",
    ]
    if status.last_updated_ago:
        lines.append(f"Last updated: {status.last_updated_ago}")
    if status.is_stale:
        lines.append("Note: Data may be stale. Make an API call to refresh from YNAB.")

    match status.warning_level:
        case "warning":
            lines.append("Warning: Approaching rate limit")
        case "critical":
            lines.append("Critical: Very close to rate limit")
        case "exceeded":
            lines.append("Rate limit exceeded - requests will fail")
    return "\n".join(lines)
