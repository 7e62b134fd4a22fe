import random

import pytest

from garage_bridge.services.backoff import ExponentialBackoff


def test_delays_are_non_decreasing_and_capped():
    backoff = ExponentialBackoff(0.5, 30.0, jitter=0.5, rng=random.Random(7))
    delays = [backoff.next_delay() for _ in range(20)]

    assert all(later >= earlier for earlier, later in zip(delays, delays[1:]))
    assert max(delays) == 30.0
    assert delays[0] >= 0.5
    assert delays[0] < 0.75
    assert backoff.attempts == 20


def test_reset_returns_to_base_interval():
    backoff = ExponentialBackoff(1.0, 8.0, jitter=0.0)
    assert [backoff.next_delay() for _ in range(5)] == [1.0, 2.0, 4.0, 8.0, 8.0]

    backoff.reset()
    assert backoff.attempts == 0
    assert backoff.next_delay() == 1.0


def test_many_attempts_do_not_overflow():
    backoff = ExponentialBackoff(1.0, 120.0, jitter=0.1)
    for _ in range(5000):
        delay = backoff.next_delay()
    assert delay == 120.0


@pytest.mark.parametrize("base, maximum, jitter", [
    (0, 10, 0.1),
    (5, 1, 0.1),
    (1, 10, 1.0),
    (1, 10, -0.1),
])
def test_invalid_parameters(base, maximum, jitter):
    with pytest.raises(ValueError):
        ExponentialBackoff(base, maximum, jitter)
