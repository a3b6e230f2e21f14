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

"""Exception hierarchy for intunecycle.

This module defines a custom exception hierarchy that allows library users
to distinguish between different types of errors. All exceptions inherit from
IntuneCycleError, allowing users to catch all intunecycle errors with a single
except clause if needed.

Validation failures (a locked version, a version that is already current) are
not exceptions. They are reported as a "skipped" PublishOutcome so a batch
can continue with the next application.

Example:
    Catching specific error types:
        ```python
        from intunecycle.core import publish_app
        from intunecycle.exceptions import ConfigError, DirectoryError

        try:
            outcome = publish_app(Path("recipe.yaml"), "app-id", directory=client)
        except ConfigError as e:
            print(f"Configuration error: {e}")
        except DirectoryError as e:
            print(f"Directory error: {e}")
        ```

    Catching all intunecycle errors:
        ```python
        from intunecycle.exceptions import IntuneCycleError

        try:
            family = resolver.resolve("Google Chrome")
        except IntuneCycleError as e:
            print(f"intunecycle error: {e}")
        ```
"""

from __future__ import annotations

__all__ = [
    "IntuneCycleError",
    "ConfigError",
    "DirectoryError",
    "RetryExhaustedError",
    "FamilyResolutionError",
]


class IntuneCycleError(Exception):
    """Base exception for all intunecycle errors.

    All intunecycle-specific exceptions inherit from this class, allowing
    users to catch all intunecycle errors with a single except clause if
    needed.
    """

    pass


class ConfigError(IntuneCycleError):
    """Raised for configuration-related errors.

    This exception is raised when there are problems with:

    - YAML parse errors (syntax errors, non-mapping documents)
    - Missing recipe or defaults files
    - Invalid lifecycle settings (negative retention, malformed lock
        pattern, unknown assignment intent)
    - Invalid detection settings (unknown detectionType, missing
        detection fields)

    Example:
        Catching configuration errors:
            ```python
            from intunecycle.exceptions import ConfigError

            try:
                policy = policy_from_config(load_effective_config(path))
            except ConfigError as e:
                print(f"Config error: {e}")
            ```
    """

    pass


class DirectoryError(IntuneCycleError):
    """Raised when a directory service call fails.

    This exception is raised when there are problems with:

    - HTTP failures talking to Microsoft Graph (status errors, timeouts,
        connection failures)
    - Authentication failures while acquiring an access token
    - Malformed directory payloads (missing ids, unparsable timestamps)
    """

    pass


class RetryExhaustedError(DirectoryError):
    """Raised when a retried directory operation never succeeded.

    Attributes:
        attempts: Number of attempts that were made.
        last_error: The exception raised by the final attempt, or None when
            the final attempt completed but its result was never verified.
    """

    def __init__(
        self, message: str, attempts: int, last_error: Exception | None = None
    ) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class FamilyResolutionError(IntuneCycleError):
    """Raised when the family of an application cannot be read.

    Without an accurate family snapshot no safe publish decision can be
    made, so this is fatal for the publish that triggered it.

    Example:
        ```python
        from intunecycle.exceptions import FamilyResolutionError

        try:
            family = resolver.resolve("Google Chrome")
        except FamilyResolutionError as e:
            print(f"Cannot publish: {e}")
        ```
    """

    pass
