from __future__ import annotations

import pytest

from settle.retry import (
    RetryPolicy,
    all_of,
    any_of,
    call_with_retry,
    is_transient,
    on_exception_message,
    on_exception_type,
    on_status_code,
)
from tests.conftest import FakeTime

pytestmark = [pytest.mark.unit, pytest.mark.xdist_group("unit")]


class _StatusError(Exception):
    def __init__(self, status: int) -> None:
        self.status = status
        super().__init__(f"HTTP {status}")


class _Flaky:
    def __init__(self, *errors: BaseException, result: str = "ok") -> None:
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


class TestPredicates:
    def test_status_code(self):
        predicate = on_status_code(429, 503)
        assert predicate(_StatusError(429))
        assert not predicate(_StatusError(404))
        assert not predicate(ValueError())

    def test_status_code_attribute_variant(self):
        err = Exception("x")
        err.status_code = 503  # type: ignore[attr-defined]
        assert on_status_code(503)(err)

    def test_exception_message(self):
        assert on_exception_message("Throttling")(RuntimeError("ThrottlingException: slow down"))
        assert not on_exception_message("Throttling", case_sensitive=True)(
            RuntimeError("throttling")
        )

    def test_combinators(self):
        is_conn = on_exception_type(ConnectionError)
        is_reset = on_exception_message("reset")
        assert any_of(is_conn, is_reset)(RuntimeError("connection reset by peer"))
        assert not all_of(is_conn, is_reset)(RuntimeError("connection reset by peer"))
        assert all_of(is_conn, is_reset)(ConnectionResetError("reset"))

    @pytest.mark.parametrize(
        "error",
        [
            ConnectionError(),
            TimeoutError(),
            _StatusError(429),
            _StatusError(503),
            RuntimeError("Rate exceeded"),
        ],
    )
    def test_default_transient(self, error):
        assert is_transient(error)

    @pytest.mark.parametrize(
        "error",
        [ValueError("bad"), _StatusError(400), _StatusError(403), KeyError("x")],
    )
    def test_default_non_transient(self, error):
        assert not is_transient(error)


class TestRetryPolicy:
    def test_requires_one_attempt(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)


class TestCallWithRetry:
    async def test_returns_after_transient_errors(self, fake_time: FakeTime):
        fn = _Flaky(ConnectionError(), _StatusError(503))
        policy = RetryPolicy(max_attempts=3, base_delay=0.5, jitter=0.0)
        assert await call_with_retry(fn, policy, sleep=fake_time.sleep) == "ok"
        assert fn.calls == 3
        assert fake_time.sleeps == [0.5, 1.0]

    async def test_non_transient_is_not_retried(self, fake_time: FakeTime):
        fn = _Flaky(ValueError("invalid identifier"))
        with pytest.raises(ValueError, match="invalid identifier"):
            await call_with_retry(fn, RetryPolicy(), sleep=fake_time.sleep)
        assert fn.calls == 1
        assert fake_time.sleeps == []

    async def test_reraises_last_error_when_exhausted(self, fake_time: FakeTime):
        fn = _Flaky(ConnectionError("1"), ConnectionError("2"), ConnectionError("3"))
        with pytest.raises(ConnectionError, match="2"):
            await call_with_retry(fn, RetryPolicy(max_attempts=2, jitter=0.0), sleep=fake_time.sleep)
        assert fn.calls == 2

    async def test_deadline_stops_retries(self, fake_time: FakeTime):
        fn = _Flaky(*(ConnectionError() for _ in range(10)))
        policy = RetryPolicy(max_attempts=10, base_delay=4.0, max_delay=4.0, jitter=0.0)
        with pytest.raises(ConnectionError):
            await call_with_retry(
                fn, policy, sleep=fake_time.sleep, clock=fake_time.clock, deadline=10.0
            )
        assert fn.calls == 4
        assert fake_time.now == 12.0

    async def test_custom_predicate(self, fake_time: FakeTime):
        fn = _Flaky(KeyError("eventual consistency"))
        policy = RetryPolicy(on=on_exception_type(KeyError), jitter=0.0)
        assert await call_with_retry(fn, policy, sleep=fake_time.sleep) == "ok"
        assert fn.calls == 2
