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

"""Version lock patterns.

A recipe can pin an application to a version line with ``versionLock``.
The pattern uses digits, literal dots and ``x`` as a wildcard for one or
more digits:

    versionLock: 24.x          # any 24.<digits>
    versionLock: 19.42.2.x     # any 19.42.2.<digits>

A discovered version is *locked* (not publishable) when it does not fully
match the pattern.

Example:
    ```python
    from intunecycle.versioning.lock import is_locked

    is_locked("19.42.2.24335", "19.42.2.x")  # False, may be published
    is_locked("19.42.3.442", "19.42.2.x")    # True, blocked
    is_locked("1.0", None)                   # False, no lock configured
    ```
"""

from __future__ import annotations

import re

from intunecycle.exceptions import ConfigError

_ALLOWED = re.compile(r"^[0-9xX.]+$")
_WILDCARD_RUN = re.compile(r"[xX]+")


def compile_lock_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a lock pattern into a full-string matcher.

    Args:
        pattern: Lock pattern such as "19.42.2.x".

    Returns:
        A compiled regular expression anchored at both ends.

    Raises:
        ConfigError: If the pattern is empty or contains characters other
            than digits, dots and x.
    """
    if not pattern or not _ALLOWED.match(pattern):
        raise ConfigError(
            f"Invalid version lock {pattern!r}: use digits, '.' and 'x' only"
        )
    parts = _WILDCARD_RUN.split(pattern)
    body = "[0-9]+".join(re.escape(part) for part in parts)
    return re.compile(rf"^{body}$")


def is_locked(version: str, pattern: str | None) -> bool:
    """Decide whether a version is blocked by a lock pattern.

    Args:
        version: Candidate version string.
        pattern: Lock pattern, or None/"" for no lock.

    Returns:
        True if the version does NOT match the pattern, False otherwise
        (including when no pattern is configured).

    Raises:
        ConfigError: If the pattern is malformed.
    """
    if not pattern:
        return False
    return compile_lock_pattern(str(pattern)).fullmatch(version or "") is None
