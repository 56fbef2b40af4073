"""Unit tests for the shared call timeout wrapper."""

import time

import pytest

from newsbird.errors import CallTimeoutError
from newsbird.timeouts import call_with_timeout


def _slow(seconds: float) -> str:
    time.sleep(seconds)
    return "done"


class TestCallWithTimeout:
    def test_returns_value(self) -> None:
        assert call_with_timeout(lambda a, b=0: a + b, 2, b=3, timeout=1) == 5

    def test_no_timeout_calls_directly(self) -> None:
        assert call_with_timeout(_slow, 0, timeout=None) == "done"

    def test_expiry_raises_distinct_error(self) -> None:
        with pytest.raises(CallTimeoutError) as excinfo:
            call_with_timeout(_slow, 1.0, timeout=0.05, label="slow call")
        assert isinstance(excinfo.value, TimeoutError)
        assert excinfo.value.label == "slow call"
        assert "slow call" in str(excinfo.value)

    def test_errors_propagate_unchanged(self) -> None:
        def boom() -> None:
            raise KeyError("missing")

        with pytest.raises(KeyError):
            call_with_timeout(boom, timeout=1)

    def test_inner_timeout_error_is_not_rewrapped(self) -> None:
        def inner() -> None:
            raise TimeoutError("socket timed out")

        with pytest.raises(TimeoutError) as excinfo:
            call_with_timeout(inner, timeout=1)
        assert not isinstance(excinfo.value, CallTimeoutError)
