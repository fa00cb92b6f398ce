import pytest

from deckhand.utils.retry import RetryError, retry


def test_retries_until_success_with_backoff():
    waits, seen = [], []
    calls = {"n": 0}

    @retry(retries=4, delay=1, backoff=2, retry_on=(ValueError,), on_retry=lambda a, e: seen.append(a), sleep=waits.append)
    def flaky():
        calls["n"] += 1
        if calls["n"] < 3:
            raise ValueError("not yet")
        return "ok"

    assert flaky() == "ok"
    assert waits == [1, 2]
    assert seen == [1, 2]


def test_gives_up_with_last_error_chained():
    waits = []

    @retry(retries=3, delay=10, backoff=3, max_delay=15, sleep=waits.append)
    def always():
        raise ValueError("boom")

    with pytest.raises(RetryError) as ei:
        always()
    assert ei.value.attempts == 3
    assert isinstance(ei.value.__cause__, ValueError)
    assert "boom" in str(ei.value)
    assert waits == [10, 15]


def test_other_errors_propagate_immediately():
    @retry(retries=5, delay=0, retry_on=(ValueError,), sleep=lambda s: None)
    def wrong():
        raise KeyError("nope")

    with pytest.raises(KeyError):
        wrong()
