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

"""Application families.

A family is every directory object that belongs to one logical application:
the current version, named exactly like the application, and the older
versions, named with an ordinal suffix:

    Google Chrome          <- current
    Google Chrome (N-1)    <- one version behind
    Google Chrome (N-2)    <- two versions behind

Families are not stored anywhere. They are rebuilt on every query and sorted
newest-first by VersionKey, breaking ties on the creation timestamp (newest
first). Names that merely share a prefix ("Google Chrome Beta") are not
members.

Example:
    ```python
    from intunecycle.lifecycle import FamilyResolver

    resolver = FamilyResolver(directory)
    family = resolver.resolve("Google Chrome")
    current, older = family[0], family[1:]
    ```
"""

from __future__ import annotations

from collections.abc import Callable
import re

from intunecycle.directory.base import DirectoryService
from intunecycle.exceptions import FamilyResolutionError, RetryExhaustedError
from intunecycle.logging import Logger, get_global_logger
from intunecycle.models import AppVersionObject
from intunecycle.retry import RetryPolicy

_SLOT_SUFFIX = re.compile(r"^(?P<name>.*) \(N-(?P<ordinal>\d+)\)$")


def slot_name(display_name: str, ordinal: int) -> str:
    """Return the display name for an ordinal slot (0 = current)."""
    if ordinal <= 0:
        return display_name
    return f"{display_name} (N-{ordinal})"


def ordinal_of(name: str) -> int | None:
    """Return k for a "<name> (N-k)" display name, else None."""
    match = _SLOT_SUFFIX.match(name)
    return int(match.group("ordinal")) if match else None


def base_name(name: str) -> str:
    """Strip an ordinal suffix from a display name."""
    match = _SLOT_SUFFIX.match(name)
    return match.group("name") if match else name


def is_family_member(name: str, display_name: str) -> bool:
    """Return True if ``name`` is ``display_name`` or one of its slots."""
    if name == display_name:
        return True
    match = _SLOT_SUFFIX.match(name)
    return bool(match) and match.group("name") == display_name


def family_sort_key(obj: AppVersionObject) -> tuple:
    """Sort key ordering objects oldest-first (use reverse=True for newest)."""
    return (obj.version_key, obj.created)


def sort_family(objects: list[AppVersionObject]) -> list[AppVersionObject]:
    """Sort objects newest-first: VersionKey desc, then created desc."""
    return sorted(objects, key=family_sort_key, reverse=True)


class FamilyResolver:
    """Reads the family of an application from the directory.

    Attributes:
        directory: Directory service to query.
        retry: Retry policy for the family query.
    """

    def __init__(
        self,
        directory: DirectoryService,
        *,
        retry: RetryPolicy | None = None,
        logger: Logger | None = None,
    ) -> None:
        self.directory = directory
        self.retry = retry or RetryPolicy()
        self._logger = logger

    @property
    def logger(self) -> Logger:
        return self._logger or get_global_logger()

    def resolve(
        self,
        display_name: str,
        *,
        expect: Callable[[list[AppVersionObject]], bool] | None = None,
    ) -> list[AppVersionObject]:
        """Return every member of the family, newest-first.

        Args:
            display_name: Logical application name (without suffix).
            expect: Optional predicate the sorted family must satisfy, e.g.
                "the object just created is visible". The query is repeated
                within the retry budget until it does.

        Returns:
            Members sorted by VersionKey descending, then creation
            timestamp descending. Index 0 is the current version.

        Raises:
            FamilyResolutionError: If the directory could not be queried, or
                the family never satisfied ``expect``, within the retry
                budget.
        """
        try:
            family = self.retry.run(
                lambda: self._query(display_name),
                verifier=expect,
                description=f"query family {display_name!r}",
                logger=self.logger,
            )
        except RetryExhaustedError as err:
            raise FamilyResolutionError(
                f"Cannot read family {display_name!r}: {err}"
            ) from err

        self.logger.verbose(
            "FAMILY", f"{display_name!r} has {len(family)} member(s)"
        )
        for index, obj in enumerate(family):
            self.logger.debug("FAMILY", f"  [{index}] {obj}")
        return family

    def _query(self, display_name: str) -> list[AppVersionObject]:
        found = self.directory.find_by_display_name(display_name)
        members = [obj for obj in found if is_family_member(obj.display_name, display_name)]
        ignored = len(found) - len(members)
        if ignored:
            self.logger.debug(
                "FAMILY", f"Ignored {ignored} object(s) that only share a prefix"
            )
        return sort_family(members)
