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

"""Directory service contract.

The lifecycle engine only needs a handful of operations from the system of
record that stores application objects. This module defines them as a
Protocol so that the Graph-backed client, test fakes, and any third-party
backend can be used interchangeably.

Design Benefits:

- Duck typing: backends don't need explicit inheritance
- Better IDE support: type checkers verify interface compliance
- Testability: the engine can be driven by an in-memory fake

Consistency Model:

Implementations are allowed to be eventually consistent. A read issued
right after a write may not reflect it, and ``add_assignment`` may silently
do nothing when an equivalent assignment already exists. Callers must
confirm every mutation with a follow-up read (see intunecycle.retry).

All operations raise DirectoryError (or a subclass) on failure.
"""

from __future__ import annotations

from typing import Protocol

from intunecycle.models import AppVersionObject, Assignment, DependencyLink


class DirectoryService(Protocol):
    """Operations the lifecycle engine requires from the directory."""

    def find_by_display_name(self, name: str) -> list[AppVersionObject]:
        """Return objects named exactly ``name`` or ``"<name> (N-k)"``.

        Implementations may return extra prefix matches; FamilyResolver
        filters them again.
        """
        ...

    def get_assignments(self, app_id: str) -> list[Assignment]:
        """Return the current assignments of an app (may lag writes)."""
        ...

    def add_assignment(self, app_id: str, assignment: Assignment) -> None:
        """Add an assignment (may silently no-op on duplicates)."""
        ...

    def remove_assignment(self, app_id: str, group_id: str) -> None:
        """Remove the assignment for a group (absent is not an error)."""
        ...

    def get_dependencies(self, app_id: str) -> list[DependencyLink]:
        """Return every dependency edge where app_id is source or target."""
        ...

    def replace_dependency_list(
        self, owner_id: str, links: list[DependencyLink]
    ) -> None:
        """Replace the complete dependency list owned by owner_id."""
        ...

    def rename(self, app_id: str, display_name: str) -> None:
        """Change an app's display name."""
        ...

    def delete(self, app_id: str) -> None:
        """Delete an app."""
        ...
