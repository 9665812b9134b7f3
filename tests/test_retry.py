"""Tests for the retry combinator and provider error classification."""

import pytest

from lifelens.errors import FatalProviderError, TransientProviderError
from lifelens.providers.base import classify_status, provider_error
from lifelens.retry import RetryPolicy, call_with_retry


class Flaky:
    """Fails with the given errors, then returns 'ok'."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


class TestCallWithRetry:

    def test_success_first_try(self, sleeper):
        fn = Flaky()
        assert call_with_retry(fn, RetryPolicy(), sleep=sleeper) == "ok"
        assert fn.calls == 1
        assert sleeper.delays == []

    def test_transient_then_success(self, sleeper):
        fn = Flaky(TransientProviderError("timeout"))
        assert call_with_retry(fn, RetryPolicy(max_attempts=3, delay=2.0), sleep=sleeper) == "ok"
        assert fn.calls == 2
        assert sleeper.delays == [2.0]

    def test_exhaustion_raises_last_error(self, sleeper):
        """Never more than max_attempts calls; the final error surfaces."""
        fn = Flaky(
            TransientProviderError("timeout 1"),
            TransientProviderError("timeout 2"),
            TransientProviderError("timeout 3"),
            TransientProviderError("timeout 4"),
        )
        with pytest.raises(TransientProviderError, match="timeout 3"):
            call_with_retry(fn, RetryPolicy(max_attempts=3, delay=2.0), sleep=sleeper)
        assert fn.calls == 3
        assert sleeper.delays == [2.0, 2.0]

    def test_fatal_is_not_retried(self, sleeper):
        fn = Flaky(FatalProviderError("invalid api key"))
        with pytest.raises(FatalProviderError):
            call_with_retry(fn, RetryPolicy(max_attempts=3), sleep=sleeper)
        assert fn.calls == 1
        assert sleeper.delays == []

    def test_other_exceptions_propagate_immediately(self, sleeper):
        fn = Flaky(KeyError("boom"))
        with pytest.raises(KeyError):
            call_with_retry(fn, RetryPolicy(), sleep=sleeper)
        assert fn.calls == 1

    def test_no_retry_policy(self, sleeper):
        fn = Flaky(TransientProviderError("rate limited"))
        with pytest.raises(TransientProviderError):
            call_with_retry(fn, RetryPolicy(max_attempts=1, delay=0.0), sleep=sleeper)
        assert fn.calls == 1

    def test_zero_delay_skips_sleep(self, sleeper):
        fn = Flaky(TransientProviderError("x"))
        call_with_retry(fn, RetryPolicy(max_attempts=2, delay=0), sleep=sleeper)
        assert sleeper.delays == []


class TestRetryPolicy:

    def test_defaults(self):
        policy = RetryPolicy()
        assert policy.max_attempts == 3
        assert policy.delay == 2.0

    def test_invalid(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)
        with pytest.raises(ValueError):
            RetryPolicy(delay=-1)


class TestClassifyStatus:

    @pytest.mark.parametrize("status", [408, 409, 429, 500, 502, 503, 529])
    def test_transient(self, status):
        assert classify_status(status) is TransientProviderError

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
    def test_fatal(self, status):
        assert classify_status(status) is FatalProviderError

    def test_quota_exhaustion_is_fatal(self):
        assert classify_status(429, "RateLimitError: insufficient_quota") is FatalProviderError

    def test_unknown_status_is_transient(self):
        assert classify_status(None) is TransientProviderError

    def test_provider_error_carries_status(self):
        err = provider_error(503, "overloaded")
        assert isinstance(err, TransientProviderError)
        assert err.status_code == 503
        assert err.transient
        assert str(err) == "overloaded"
