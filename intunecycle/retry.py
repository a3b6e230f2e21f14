# Copyright 2025 Roger Cibrian
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Bounded retry with read-after-write verification.

Intune does not guarantee that a read issued right after a write sees that
write. Every mutating call the engine makes is therefore followed by a read
that confirms it, and both are retried a small fixed number of times with a
fixed delay between attempts.

RetryPolicy keeps those knobs in one injectable object so they can be tuned
per operation from configuration, or replaced with a zero-delay policy in
tests. The attempt loop is a tenacity Retrying with a fixed wait. Only
DirectoryError is treated as transient; anything else is a bug and
propagates immediately.

Example:
    Retry a read:
        ```python
        policy = RetryPolicy(attempts=3, delay=5)
        apps = policy.run(
            lambda: directory.get_assignments(app_id),
            description="read assignments",
        )
        ```

    Retry a write until a follow-up read confirms it:
        ```python
        def add_then_read():
            directory.add_assignment(app_id, assignment)
            return directory.get_assignments(app_id)

        policy.run(
            add_then_read,
            verifier=lambda current: any(a.key == assignment.key for a in current),
            description=f"assign {assignment.group_id}",
        )
        ```
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
import time
from typing import TypeVar

from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from intunecycle.exceptions import ConfigError, DirectoryError, RetryExhaustedError
from intunecycle.logging import Logger, get_global_logger

T = TypeVar("T")

DEFAULT_ATTEMPTS = 3
DEFAULT_DELAY = 5.0


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed-delay, attempt-bounded retry policy.

    Attributes:
        attempts: Total number of attempts (>= 1).
        delay: Seconds to wait between attempts.
        sleep: Sleep function, injectable for tests.
    """

    attempts: int = DEFAULT_ATTEMPTS
    delay: float = DEFAULT_DELAY
    sleep: Callable[[float], None] = field(
        default=time.sleep, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ConfigError(f"retry attempts must be >= 1, got {self.attempts}")
        if self.delay < 0:
            raise ConfigError(f"retry delay must be >= 0, got {self.delay}")

    def run(
        self,
        action: Callable[[], T],
        *,
        verifier: Callable[[T], bool] | None = None,
        description: str = "operation",
        logger: Logger | None = None,
    ) -> T:
        """Run an action until it succeeds and its result verifies.

        Args:
            action: Zero-argument callable performing the directory call(s).
            verifier: Optional predicate over the action's result. A False
                result counts as a failed attempt.
            description: Human-readable name used in logs and errors.
            logger: Logger for attempt diagnostics (defaults to global).

        Returns:
            The result of the first successful, verified attempt.

        Raises:
            RetryExhaustedError: If every attempt raised DirectoryError or
                failed verification.
        """
        if logger is None:
            logger = get_global_logger()

        def _unverified(result: T) -> bool:
            return verifier is not None and not verifier(result)

        def _log_attempt(state: RetryCallState) -> None:
            outcome = state.outcome
            if outcome is not None and outcome.failed:
                detail = f"failed: {outcome.exception()}"
            else:
                detail = "not verified"
            logger.debug(
                "RETRY",
                f"{description}: attempt {state.attempt_number}/{self.attempts} {detail}",
            )

        retrying = Retrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_fixed(self.delay),
            retry=retry_if_exception_type(DirectoryError) | retry_if_result(_unverified),
            after=_log_attempt,
            sleep=self.sleep,
        )

        try:
            return retrying(action)
        except RetryError as err:
            last_attempt = err.last_attempt
            if last_attempt.failed:
                last_error = last_attempt.exception()
                raise RetryExhaustedError(
                    f"{description} failed after {self.attempts} attempt(s): {last_error}",
                    self.attempts,
                    last_error,
                ) from last_error
            raise RetryExhaustedError(
                f"{description} was not confirmed after {self.attempts} attempt(s)",
                self.attempts,
            ) from None
