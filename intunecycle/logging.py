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

"""Console output for publishes, migrations and directory calls.

The lifecycle engine never prints directly. The resolver, the migration
protocol, the rotation controller and the Graph client each take an optional
Logger; when none is given they use the process-wide one, which stays silent
until the CLI installs a DefaultLogger.

Levels:

- step: the "[3/7] Promoting new version to current..." progress lines of a
  publish, always shown
- warning: something was left behind (an assignment not moved, an object
  kept past retention), always shown on stderr
- verbose: what moved and what was renamed (``-v``)
- debug: every retry attempt and Graph request (``-d``, implies ``-v``)

Messages carry a short prefix naming the component: FAMILY, MIGRATE,
ROTATE, RETRY, GRAPH, CONFIG, VALIDATION or CORE.

Example:
    ```python
    from intunecycle.lifecycle import RotationController
    from intunecycle.logging import get_logger

    controller = RotationController(directory, logger=get_logger(verbose=True))
    ```
"""

from __future__ import annotations

import sys
from typing import Protocol


class Logger(Protocol):
    """What the engine needs from a logger."""

    def step(self, step: int, total: int, message: str) -> None:
        """Report progress through a numbered sequence of publish steps."""
        ...

    def warning(self, prefix: str, message: str) -> None:
        """Report a degraded operation the operator has to look at."""
        ...

    def verbose(self, prefix: str, message: str) -> None:
        """Report a completed action (e.g. prefix "ROTATE", "MIGRATE")."""
        ...

    def debug(self, prefix: str, message: str) -> None:
        """Report low-level detail (e.g. prefix "RETRY", "GRAPH")."""
        ...


class DefaultLogger:
    """Prints to the console, filtered by the -v/-d flags."""

    def __init__(self, verbose: bool = False, debug: bool = False) -> None:
        self._verbose = verbose or debug
        self._debug = debug

    def step(self, step: int, total: int, message: str) -> None:
        print(f"[{step}/{total}] {message}")

    def warning(self, prefix: str, message: str) -> None:
        print(f"[{prefix}] WARNING: {message}", file=sys.stderr)

    def verbose(self, prefix: str, message: str) -> None:
        if self._verbose:
            print(f"[{prefix}] {message}")

    def debug(self, prefix: str, message: str) -> None:
        if self._debug:
            print(f"[{prefix}] {message}")


class SilentLogger:
    """Discards everything. The default until the CLI configures output."""

    def step(self, step: int, total: int, message: str) -> None:
        pass

    def warning(self, prefix: str, message: str) -> None:
        pass

    def verbose(self, prefix: str, message: str) -> None:
        pass

    def debug(self, prefix: str, message: str) -> None:
        pass


_global_logger: Logger = SilentLogger()


def get_logger(verbose: bool = False, debug: bool = False) -> Logger:
    """Build a console logger for the given -v/-d flags."""
    return DefaultLogger(verbose=verbose, debug=debug)


def get_global_logger() -> Logger:
    """Return the logger used by components that were not given one."""
    return _global_logger


def set_global_logger(logger: Logger) -> None:
    """Replace the process-wide logger.

    Components constructed with an explicit logger keep using theirs.
    """
    global _global_logger
    _global_logger = logger
