"""
Tests for YNAB rate limit tracking.
"""

import logging

import pytest

from cache import CacheStore
from rate_limit import (
    RATE_LIMIT_FILE,
    RateLimitState,
    RateLimitTracker,
    parse_rate_limit_header,
)


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def tracker(store: CacheStore, clock: FakeClock) -> RateLimitTracker:
    return RateLimitTracker(store, now=clock)


@pytest.mark.parametrize(
    "header, expected",
    [
        ("36/200", 36),
        (" 150 / 200", 150),
        ("0/200", 0),
        ("12", 12),
        ("abc/200", None),
        ("", None),
    ],
)
def test_parse_rate_limit_header(header: str, expected: int | None) -> None:
    assert parse_rate_limit_header(header) == expected


def test_initial_status(tracker: RateLimitTracker) -> None:
    status = tracker.status()

    assert status.requests_used == 0
    assert status.requests_remaining == 200
    assert status.limit == 200
    assert status.percent_used == 0
    assert status.last_updated is None
    assert status.last_updated_ago is None
    assert status.warning_level == "ok"
    assert status.is_stale is True


@pytest.mark.parametrize(
    "used, level",
    [
        (0, "ok"),
        (140, "ok"),
        (150, "warning"),
        (178, "warning"),
        (180, "critical"),
        (198, "critical"),
        (200, "exceeded"),
        (250, "exceeded"),
    ],
)
def test_warning_levels(tracker: RateLimitTracker, used: int, level: str) -> None:
    tracker.update_from_header(used)

    assert tracker.warning_level() == level


def test_remaining_never_negative(tracker: RateLimitTracker) -> None:
    tracker.update_from_header(250)

    status = tracker.status()
    assert status.requests_remaining == 0
    assert status.percent_used == 125


def test_increment(tracker: RateLimitTracker) -> None:
    tracker.update_from_header(36)
    tracker.increment()

    assert tracker.state.requests_used == 37


def test_header_replaces_count(tracker: RateLimitTracker) -> None:
    for _ in range(5):
        tracker.increment()
    tracker.update_from_header(2)

    assert tracker.state.requests_used == 2


def test_staleness(tracker: RateLimitTracker, clock: FakeClock) -> None:
    tracker.update_from_header(10)
    assert tracker.is_stale() is False

    clock.advance(60 * 60)
    assert tracker.is_stale() is False

    clock.advance(1)
    assert tracker.is_stale() is True


@pytest.mark.parametrize(
    "elapsed, expected",
    [
        (0, "just now"),
        (59, "just now"),
        (60, "1 minute ago"),
        (45 * 60, "45 minutes ago"),
        (60 * 60, "1 hour ago"),
        (3 * 60 * 60 + 600, "3 hours ago"),
    ],
)
def test_last_updated_ago(
    tracker: RateLimitTracker, clock: FakeClock, elapsed: int, expected: str
) -> None:
    tracker.update_from_header(10)
    clock.advance(elapsed)

    assert tracker.status().last_updated_ago == expected


def test_state_persists_across_trackers(store: CacheStore, clock: FakeClock) -> None:
    RateLimitTracker(store, now=clock).update_from_header(42)

    assert (store.base_dir / RATE_LIMIT_FILE).exists()
    reloaded = RateLimitTracker(store, now=clock)
    assert reloaded.state.requests_used == 42
    assert reloaded.state.last_updated == clock.now


def test_corrupt_state_starts_fresh(store: CacheStore, clock: FakeClock) -> None:
    store.base_dir.mkdir(parents=True)
    (store.base_dir / RATE_LIMIT_FILE).write_text("not json")

    assert RateLimitTracker(store, now=clock).state == RateLimitState()


def test_reset(tracker: RateLimitTracker) -> None:
    tracker.update_from_header(150)
    tracker.reset()

    assert tracker.state.requests_used == 0
    assert tracker.warning_level() == "ok"


def test_reset_survives_restart(store: CacheStore, clock: FakeClock) -> None:
    tracker = RateLimitTracker(store, now=clock)
    tracker.update_from_header(150)
    tracker.reset()

    reloaded = RateLimitTracker(store, now=clock)
    assert reloaded.state == RateLimitState()
    assert reloaded.is_stale() is True


def test_high_usage_logs_warning(
    tracker: RateLimitTracker, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.WARNING):
        tracker.update_from_header(100)
        assert caplog.text == ""

        tracker.update_from_header(185)

    assert "YNAB rate limit critical: 185/200" in caplog.text


def test_format_status_ok(tracker: RateLimitTracker) -> None:
    tracker.update_from_header(36)

    message = tracker.format_status()

    assert message.splitlines() == [
        "YNAB API Rate Limit: 36/200 requests used (18%)",
        "Remaining: 164 requests",
        "Last updated: just now",
    ]


def test_format_status_stale_and_exceeded(
    tracker: RateLimitTracker, clock: FakeClock
) -> None:
    tracker.update_from_header(200)
    clock.advance(2 * 60 * 60)

    message = tracker.format_status()

    assert "Last updated: 2 hours ago" in message
    assert "Data may be stale" in message
    assert "Rate limit exceeded" in message


def test_format_status_warning(tracker: RateLimitTracker) -> None:
    tracker.update_from_header(160)

    assert "Warning: Approaching rate limit" in tracker.format_status()
