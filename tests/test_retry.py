"""
Tests for intunecycle.retry module.

Tests the bounded retry policy including:
- Success on first and later attempts
- Verification of results
- Exhaustion and error chaining
- Which errors are retried
"""

from __future__ import annotations

import pytest

from intunecycle.exceptions import ConfigError, DirectoryError, RetryExhaustedError
from intunecycle.retry import RetryPolicy


class TestRetryPolicy:
    """Tests for RetryPolicy.run()."""

    def test_first_attempt_succeeds(self, retry, sleeps):
        """Test that a successful action is not repeated."""
        calls = []
        result = retry.run(lambda: calls.append(1) or "ok")
        assert result == "ok"
        assert len(calls) == 1
        assert sleeps == []

    def test_retries_directory_errors(self, retry, sleeps):
        """Test that DirectoryError is retried with the fixed delay."""
        outcomes = [DirectoryError("boom"), DirectoryError("boom"), "ok"]

        def action():
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        assert retry.run(action) == "ok"
        assert sleeps == [5.0, 5.0]

    def test_exhaustion_raises_with_last_error(self, retry, sleeps):
        """Test that the final error is carried by RetryExhaustedError."""
        error = DirectoryError("still down")

        def action():
            raise error

        with pytest.raises(RetryExhaustedError, match="still down") as excinfo:
            retry.run(action, description="read assignments")

        assert excinfo.value.attempts == 3
        assert excinfo.value.last_error is error
        assert "read assignments" in str(excinfo.value)
        # No sleep after the final attempt
        assert sleeps == [5.0, 5.0]

    def test_verifier_repeats_until_true(self, retry):
        """Test that an unverified result counts as a failed attempt."""
        reads = iter([[], [], ["group-1"]])
        result = retry.run(lambda: next(reads), verifier=lambda r: "group-1" in r)
        assert result == ["group-1"]

    def test_verifier_never_true(self, retry):
        """Test exhaustion when the result never verifies."""
        with pytest.raises(RetryExhaustedError) as excinfo:
            retry.run(lambda: [], verifier=bool)
        assert excinfo.value.last_error is None

    def test_retry_exhausted_is_a_directory_error(self):
        """Test that callers catching DirectoryError also catch exhaustion."""
        assert issubclass(RetryExhaustedError, DirectoryError)

    def test_other_errors_propagate_immediately(self, retry, sleeps):
        """Test that non-directory errors are not retried."""
        calls = []

        def action():
            calls.append(1)
            raise KeyError("bug")

        with pytest.raises(KeyError):
            retry.run(action)
        assert len(calls) == 1
        assert sleeps == []

    def test_single_attempt(self, sleeps):
        """Test that attempts=1 never sleeps."""
        policy = RetryPolicy(attempts=1, delay=5, sleep=sleeps.append)
        with pytest.raises(RetryExhaustedError):
            policy.run(lambda: (_ for _ in ()).throw(DirectoryError("x")))
        assert sleeps == []

    @pytest.mark.parametrize("attempts, delay", [(0, 1.0), (-1, 1.0), (3, -0.5)])
    def test_invalid_settings(self, attempts, delay):
        """Test that nonsensical settings are configuration errors."""
        with pytest.raises(ConfigError):
            RetryPolicy(attempts=attempts, delay=delay)

    def test_defaults(self):
        """Test the default attempt count and delay."""
        policy = RetryPolicy()
        assert policy.attempts == 3
        assert policy.delay == 5.0

    def test_each_failed_attempt_is_logged(self, retry):
        """Test that every failed or unverified attempt leaves a debug line."""

        class Recorder:
            def __init__(self):
                self.lines = []

            def step(self, step, total, message):
                pass

            def warning(self, prefix, message):
                pass

            def verbose(self, prefix, message):
                pass

            def debug(self, prefix, message):
                self.lines.append((prefix, message))

        recorder = Recorder()
        outcomes = [DirectoryError("boom"), [], ["group-1"]]

        def action():
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        retry.run(action, verifier=bool, description="assign g1", logger=recorder)

        assert recorder.lines == [
            ("RETRY", "assign g1: attempt 1/3 failed: boom"),
            ("RETRY", "assign g1: attempt 2/3 not verified"),
        ]
