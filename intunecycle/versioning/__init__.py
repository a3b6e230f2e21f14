"""Version comparison and lock policy utilities for intunecycle.

This package orders vendor version strings and checks them against version
lock patterns. Neither module performs network or file I/O.

Modules:
    keys
        Typed-segment version keys with a total order over arbitrary vendor
        version strings.
    lock
        Wildcard lock patterns (``19.42.2.x``) deciding whether a candidate
        may be published.

Version Ordering:

Versions are split on any non-alphanumeric character. Numeric tokens compare
numerically, alphabetic tokens compare ordinally, a number always sorts
before a word at the same position, and missing positions count as 0:

    1.02 == 1.2 == 1.2.0
    1.2 < 1.2.1 < 1.2.a < 1.10

Example:
    Basic version comparison:
        ```python
        from intunecycle.versioning import VersionKey, compare_versions

        compare_versions("1.2.1", "1.2")   # Returns: 1
        sorted(["1.10", "1.9"], key=VersionKey)  # ['1.9', '1.10']
        ```

    Lock checks:
        ```python
        from intunecycle.versioning import is_locked

        is_locked("24.6.1", "24.x")  # False
        is_locked("25.0", "24.x")    # True
        ```
"""

from .keys import VersionKey, compare_versions
from .lock import compile_lock_pattern, is_locked

__all__ = [
    "VersionKey",
    "compare_versions",
    "compile_lock_pattern",
    "is_locked",
]
