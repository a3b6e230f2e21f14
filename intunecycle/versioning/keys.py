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

"""Core version comparison utilities for intunecycle.

This module is format-agnostic: it does NOT talk to the directory or read
files. It only parses and compares vendor version strings so that every
object of an application family can be ordered newest-first.

Parsing splits a version on runs of non-alphanumeric characters. Each token
becomes an integer segment when it is all digits, otherwise a lowercase
string segment:

    "19.42.2.24335"  -> (19, 42, 2, 24335)
    "2024.12.1+563"  -> (2024, 12, 1, 563)
    "1.0.0-RC1"      -> (1, 0, 0, "rc1")

Comparison walks both segment lists position by position. A missing segment
counts as integer 0, integers always sort before strings, integers compare
numerically and strings ordinally. The first difference decides.
"""

from __future__ import annotations

from functools import total_ordering
import re

Segment = int | str

_SPLIT = re.compile(r"[^0-9A-Za-z]+")


def _parse_segments(text: str) -> tuple[Segment, ...]:
    """Split a version string into typed segments (never fails)."""
    segments: list[Segment] = []
    for token in _SPLIT.split(text or ""):
        if not token:
            continue
        if token.isdigit():
            segments.append(int(token))
        else:
            segments.append(token.lower())
    return tuple(segments)


def _compare_segment(a: Segment, b: Segment) -> int:
    a_is_int = isinstance(a, int)
    b_is_int = isinstance(b, int)
    if a_is_int != b_is_int:
        return -1 if a_is_int else 1
    return (a > b) - (a < b)  # type: ignore[operator]


def _compare_segments(a: tuple[Segment, ...], b: tuple[Segment, ...]) -> int:
    for i in range(max(len(a), len(b))):
        left = a[i] if i < len(a) else 0
        right = b[i] if i < len(b) else 0
        result = _compare_segment(left, right)
        if result:
            return result
    return 0


@total_ordering
class VersionKey:
    """Parsed, ordered, typed-segment representation of a version string.

    Equality is defined by comparison, not by the original text, so
    ``VersionKey("1.02") == VersionKey("1.2")`` and
    ``VersionKey("1.2") == VersionKey("1.2.0")``.

    Attributes:
        raw: The original version string.
        segments: Parsed segments (ints and lowercase strings).

    Example:
        Sorting versions newest-first:
            ```python
            versions = ["1.2", "1.10", "1.2.a", "1.2.1"]
            versions.sort(key=VersionKey, reverse=True)
            # ['1.10', '1.2.a', '1.2.1', '1.2']
            ```
    """

    __slots__ = ("raw", "segments")

    def __init__(self, raw: str) -> None:
        self.raw = raw or ""
        self.segments = _parse_segments(self.raw)

    @classmethod
    def parse(cls, raw: str) -> VersionKey:
        """Parse a version string. Empty input yields an empty key."""
        return cls(raw)

    def compare(self, other: VersionKey) -> int:
        """Return -1, 0 or 1 as this key is older, equal or newer."""
        return _compare_segments(self.segments, other.segments)

    def to_string(self, n: int) -> str:
        """Join the first n segments with dots, zero-padding missing ones.

        Example:
            ```python
            VersionKey("24.1").to_string(4)  # "24.1.0.0"
            VersionKey("1.2.3.4").to_string(2)  # "1.2"
            ```
        """
        padded = list(self.segments[:n])
        padded.extend([0] * (n - len(padded)))
        return ".".join(str(s) for s in padded)

    def _normalized(self) -> tuple[Segment, ...]:
        # Trailing zeros never change the comparison, so drop them for hashing.
        segments = list(self.segments)
        while segments and segments[-1] == 0:
            segments.pop()
        return tuple(segments)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VersionKey):
            return NotImplemented
        return self.compare(other) == 0

    def __lt__(self, other: VersionKey) -> bool:
        if not isinstance(other, VersionKey):
            return NotImplemented
        return self.compare(other) < 0

    def __hash__(self) -> int:
        return hash(self._normalized())

    def __repr__(self) -> str:
        return f"VersionKey({self.raw!r})"

    def __str__(self) -> str:
        return self.raw


def compare_versions(a: str | VersionKey, b: str | VersionKey) -> int:
    """Compare two versions.

    Args:
        a: Version string or parsed key.
        b: Version string or parsed key.

    Returns:
        -1 if a < b, 0 if equal, 1 if a > b.

    Example:
        ```python
        compare_versions("1.02", "1.2")     # 0
        compare_versions("1.2.1", "1.2")    # 1
        compare_versions("1.2.1", "1.2.a")  # -1 (integers sort first)
        ```
    """
    ka = a if isinstance(a, VersionKey) else VersionKey(a)
    kb = b if isinstance(b, VersionKey) else VersionKey(b)
    return ka.compare(kb)
