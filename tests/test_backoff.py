"""Tests for the backoff algorithms and the tenacity wait adapter."""

from types import SimpleNamespace

import pytest

from connection_management.backoff import (
    BackoffAlgorithm,
    BackoffStrategy,
    BackoffWait,
    compute_delay,
    decorrelated_jitter,
    full_jitter,
)


@pytest.mark.parametrize("attempt", [1, 2, 5, 10, 30])
def test_full_jitter_stays_within_exponential_ceiling(attempt):
    base, cap = 2, 100
    for _ in range(200):
        delay = full_jitter(attempt, base, cap)
        assert 0 <= delay <= min(cap, base * 2 ** attempt)


@pytest.mark.parametrize("previous", [0, 1, 5, 40, 1000])
def test_decorrelated_jitter_stays_between_base_and_cap(previous):
    base, cap = 2, 100
    for _ in range(200):
        delay = decorrelated_jitter(previous, base, cap)
        assert delay <= cap
        assert delay >= min(base, cap)
        assert delay <= max(base, previous * 3)


def test_custom_backoff_receives_previous_wait_and_attempt():
    seen = []

    def backoff(wait, retries):
        seen.append((wait, retries))
        return "not-a-number"

    strategy = BackoffStrategy.from_setting(backoff)
    assert strategy.algorithm is BackoffAlgorithm.CUSTOM
    assert strategy.name == "custom"
    assert compute_delay(strategy, 3, 17) == "not-a-number"
    assert seen == [(17, 3)]


@pytest.mark.parametrize("value, expected", [
    ("full", BackoffAlgorithm.FULL),
    ("FULL", BackoffAlgorithm.FULL),
    ("decorrelated", BackoffAlgorithm.DECORRELATED),
    (" Decorrelated ", BackoffAlgorithm.DECORRELATED),
    ("full-jitter", BackoffAlgorithm.FULL),
    ("decorrelated-jitter", BackoffAlgorithm.FULL),
    ("", BackoffAlgorithm.FULL),
    (None, BackoffAlgorithm.FULL),
])
def test_strategy_from_setting_falls_back_to_full(value, expected):
    assert BackoffStrategy.from_setting(value).algorithm is expected


def test_backoff_wait_returns_seconds_and_tracks_previous_delay():
    waits = []
    strategy = BackoffStrategy.from_setting(lambda wait, retries: waits.append(wait) or 250)
    wait = BackoffWait(strategy, base=2, cap=100, initial_delay=40)

    assert wait(SimpleNamespace(attempt_number=1)) == pytest.approx(0.25)
    assert wait(SimpleNamespace(attempt_number=2)) == pytest.approx(0.25)
    assert waits == [40, 250]
    assert wait.last_delay_ms == 250


def test_backoff_wait_tolerates_non_numeric_custom_delay():
    wait = BackoffWait(BackoffStrategy.from_setting(lambda wait, retries: None), base=2, cap=100)
    assert wait(SimpleNamespace(attempt_number=1)) == 0.0
    assert wait.last_delay_ms is None


def test_backoff_wait_skips_final_attempt():
    attempts = []
    strategy = BackoffStrategy.from_setting(lambda wait, retries: attempts.append(retries) or 10)
    wait = BackoffWait(strategy, base=2, cap=100, max_attempts=3)

    for attempt in (1, 2, 3):
        wait(SimpleNamespace(attempt_number=attempt))

    assert attempts == [1, 2]
    assert wait.last_delay_ms == 10
