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

"""Moving assignments and dependents from one version object to another.

When a new version is published, the groups that were targeted at the old
current version must be targeted at the new one, and apps that declared a
dependency on the old version must depend on the new one. Intune offers no
"move" operation and no read-your-writes guarantee, so every move is a
sequence of write, confirm, and only then clean up:

Assignments:

1. Shift the availability/deadline dates of a timed assignment to
   ``today + offset`` while keeping the original time of day.
2. Add the assignment to the target (skipped if the group/intent pair is
   already there).
3. Re-read the target's assignments until the group/intent pair shows up.
4. Remove the original from the source. A failed removal leaves a duplicate,
   which is acceptable residue.
5. If the add is never confirmed, the original stays on the source. An
   assignment is never removed unless it was confirmed moved.

Dependents:

Intune only lets the owner of a dependency list replace the whole list. For
every app that depends on the source, the owner's full list is read, the
entry pointing at the source is re-pointed at the target, sibling entries
are kept, and the whole list is written back. The re-point counts only once
the owner's own list is read back requiring the target and no longer the
source.

Objects that still have dependents or assignments must not be deleted later
on. A verified re-point adds the target to the caller's protected set. A
dependent that could not be re-pointed adds the source instead, and so does
an assignment left on the source or a source whose assignments could not be
read.

Example:
    ```python
    from intunecycle.lifecycle import DateOffsets, MigrationProtocol

    protected: set[str] = set()
    migration = MigrationProtocol(directory)
    result = migration.migrate(old, new, DateOffsets(deadline_days=3), protected)
    if not result.clean:
        print(result.errors)
    ```
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, date, datetime, timedelta

from intunecycle.directory.base import DirectoryService
from intunecycle.exceptions import DirectoryError, RetryExhaustedError
from intunecycle.logging import Logger, get_global_logger
from intunecycle.models import (
    AppVersionObject,
    Assignment,
    AssignmentWindow,
    DateOffsets,
    DependencyLink,
)
from intunecycle.results import MigrationResult
from intunecycle.retry import RetryPolicy


def _on_day(instant: datetime, day: date) -> datetime:
    """Keep the time of day (and tzinfo) of instant, move it to day."""
    return instant.replace(year=day.year, month=day.month, day=day.day)


def shift_window(
    window: AssignmentWindow, offsets: DateOffsets, today: date
) -> AssignmentWindow:
    """Re-date a window relative to today, keeping times of day.

    Only instants that were present are shifted; absent ones stay absent.
    """
    available_at = window.available_at
    deadline_at = window.deadline_at
    if available_at is not None:
        available_at = _on_day(
            available_at, today + timedelta(days=offsets.available_days)
        )
    if deadline_at is not None:
        deadline_at = _on_day(deadline_at, today + timedelta(days=offsets.deadline_days))
    return replace(window, available_at=available_at, deadline_at=deadline_at)


class MigrationProtocol:
    """Moves assignments and dependents between version objects.

    Attributes:
        directory: Directory service to mutate.
        retry: Retry policy for every read, write and verification.
        clock: Returns "now"; used to re-date timed assignments.
    """

    def __init__(
        self,
        directory: DirectoryService,
        *,
        retry: RetryPolicy | None = None,
        clock: Callable[[], datetime] | None = None,
        logger: Logger | None = None,
    ) -> None:
        self.directory = directory
        self.retry = retry or RetryPolicy()
        self.clock = clock or (lambda: datetime.now(UTC))
        self._logger = logger

    @property
    def logger(self) -> Logger:
        return self._logger or get_global_logger()

    # -------------------------------
    # Public API
    # -------------------------------

    def migrate(
        self,
        source: AppVersionObject,
        target: AppVersionObject,
        offsets: DateOffsets | None = None,
        protected: set[str] | None = None,
    ) -> MigrationResult:
        """Move every assignment and dependent of source onto target.

        Args:
            source: Object to move assignments and dependents off.
            target: Object to move them onto.
            offsets: Day offsets for timed assignments (defaults apply if
                None).
            protected: Caller-owned set of ids that must not be pruned.
                Updated in place.

        Returns:
            MigrationResult with counts of what moved and what was left.
            Transient failures never raise; they are reported here.
        """
        if offsets is None:
            offsets = DateOffsets()
        if protected is None:
            protected = set()

        self.logger.verbose("MIGRATE", f"{source} -> {target}")
        errors: list[str] = []
        counts = {"migrated": 0, "left": 0, "duplicated": 0, "unread": 0}
        self._migrate_assignments(source, target, offsets, counts, errors)
        if counts["left"] or counts["unread"]:
            # Unmoved assignments keep the source alive.
            protected.add(source.id)

        deps_migrated, deps_left = self._migrate_dependents(
            source, target, protected, errors
        )

        result = MigrationResult(
            source_id=source.id,
            target_id=target.id,
            assignments_migrated=counts["migrated"],
            assignments_left=counts["left"],
            assignments_duplicated=counts["duplicated"],
            dependencies_migrated=deps_migrated,
            dependencies_left=deps_left,
            errors=errors,
        )
        self.logger.verbose(
            "MIGRATE",
            f"Assignments moved={result.assignments_migrated} "
            f"left={result.assignments_left} "
            f"duplicated={result.assignments_duplicated}; "
            f"dependents moved={result.dependencies_migrated} "
            f"left={result.dependencies_left}",
        )
        return result

    def assign(self, app_id: str, assignment: Assignment) -> bool:
        """Add an assignment and confirm it landed.

        Returns:
            True once the group/intent pair is visible on the app, False if
            it was never confirmed within the retry budget.
        """
        try:
            self._add_verified(app_id, assignment)
        except RetryExhaustedError as err:
            self.logger.warning("MIGRATE", str(err))
            return False
        return True

    # -------------------------------
    # Assignments
    # -------------------------------

    def _read_assignments(self, app_id: str) -> list[Assignment]:
        return self.retry.run(
            lambda: self.directory.get_assignments(app_id),
            description=f"read assignments of {app_id}",
            logger=self.logger,
        )

    def _add_verified(self, app_id: str, assignment: Assignment) -> None:
        def add_then_read() -> list[Assignment]:
            write_error: DirectoryError | None = None
            try:
                self.directory.add_assignment(app_id, assignment)
            except DirectoryError as err:
                # The write may have landed even though the call failed.
                write_error = err
            current = self.directory.get_assignments(app_id)
            if write_error is not None and not _has_assignment(current, assignment):
                raise write_error
            return current

        self.retry.run(
            add_then_read,
            verifier=lambda current: _has_assignment(current, assignment),
            description=f"assign group {assignment.group_id} ({assignment.intent}) to {app_id}",
            logger=self.logger,
        )

    def _rebase(self, assignment: Assignment, offsets: DateOffsets) -> Assignment:
        if assignment.window is None:
            return assignment
        today = self.clock().date()
        return replace(assignment, window=shift_window(assignment.window, offsets, today))

    def _migrate_assignments(
        self,
        source: AppVersionObject,
        target: AppVersionObject,
        offsets: DateOffsets,
        counts: dict[str, int],
        errors: list[str],
    ) -> None:
        try:
            assignments = self._read_assignments(source.id)
        except RetryExhaustedError as err:
            errors.append(f"Could not read assignments of {source.id}: {err}")
            self.logger.warning("MIGRATE", errors[-1])
            counts["unread"] = 1
            return
        if not assignments:
            return

        try:
            present = {a.key for a in self._read_assignments(target.id)}
        except RetryExhaustedError as err:
            # Unknown target state: fall through to add-and-verify for all.
            self.logger.debug("MIGRATE", f"Target read failed: {err}")
            present = set()

        for assignment in assignments:
            if assignment.key not in present:
                try:
                    self._add_verified(target.id, self._rebase(assignment, offsets))
                except RetryExhaustedError as err:
                    counts["left"] += 1
                    errors.append(
                        f"Assignment {assignment.group_id} ({assignment.intent}) "
                        f"left on {source.id}: {err}"
                    )
                    self.logger.warning("MIGRATE", errors[-1])
                    continue
                present.add(assignment.key)
            else:
                self.logger.debug(
                    "MIGRATE",
                    f"Group {assignment.group_id} ({assignment.intent}) already on {target.id}",
                )

            counts["migrated"] += 1
            try:
                self.retry.run(
                    lambda: self.directory.remove_assignment(
                        source.id, assignment.group_id
                    ),
                    description=f"remove group {assignment.group_id} from {source.id}",
                    logger=self.logger,
                )
            except RetryExhaustedError as err:
                counts["duplicated"] += 1
                errors.append(
                    f"Assignment {assignment.group_id} copied but not removed "
                    f"from {source.id}: {err}"
                )
                self.logger.warning("MIGRATE", errors[-1])

    # -------------------------------
    # Dependents
    # -------------------------------

    def _migrate_dependents(
        self,
        source: AppVersionObject,
        target: AppVersionObject,
        protected: set[str],
        errors: list[str],
    ) -> tuple[int, int]:
        try:
            edges = self.retry.run(
                lambda: self.directory.get_dependencies(source.id),
                description=f"read dependencies of {source.id}",
                logger=self.logger,
            )
        except RetryExhaustedError as err:
            # Dependents unknown: the source must survive pruning.
            protected.add(source.id)
            errors.append(f"Could not read dependents of {source.id}: {err}")
            self.logger.warning("MIGRATE", errors[-1])
            return 0, 0

        inbound = [
            e for e in edges if e.target_id == source.id and e.source_id != source.id
        ]
        owners: dict[str, list[DependencyLink]] = {}
        for edge in inbound:
            owners.setdefault(edge.source_id, []).append(edge)

        migrated = left = 0
        for owner_id, owner_edges in owners.items():
            if owner_id == target.id:
                left += len(owner_edges)
                errors.append(
                    f"{target.id} depends on {source.id}; not re-pointing onto itself"
                )
                self.logger.warning("MIGRATE", errors[-1])
                continue
            try:
                self._repoint(owner_id, source.id, target.id, owner_edges[0].dependency_type)
            except RetryExhaustedError as err:
                left += len(owner_edges)
                errors.append(
                    f"Dependent {owner_id} still requires {source.id}: {err}"
                )
                self.logger.warning("MIGRATE", errors[-1])
                continue
            migrated += len(owner_edges)
            protected.add(target.id)

        if left:
            protected.add(source.id)
        return migrated, left

    def _repoint(
        self, owner_id: str, from_id: str, to_id: str, dependency_type: str
    ) -> None:
        def read_owned() -> list[DependencyLink]:
            return [
                e for e in self.directory.get_dependencies(owner_id) if e.source_id == owner_id
            ]

        def rebuild_then_read() -> list[DependencyLink]:
            owned = read_owned()
            targets = {e.target_id for e in owned}
            write_error: DirectoryError | None = None
            if from_id in targets or to_id not in targets:
                siblings = [e for e in owned if e.target_id not in (from_id, to_id)]
                existing = next((e for e in owned if e.target_id in (from_id, to_id)), None)
                link_type = existing.dependency_type if existing else dependency_type
                rebuilt = siblings + [DependencyLink(owner_id, to_id, link_type)]
                self.logger.debug(
                    "MIGRATE",
                    f"Replacing dependency list of {owner_id} ({len(rebuilt)} entries)",
                )
                try:
                    self.directory.replace_dependency_list(owner_id, rebuilt)
                except DirectoryError as err:
                    write_error = err
            current = read_owned()
            if write_error is not None and not _repointed(current, from_id, to_id):
                raise write_error
            return current

        self.retry.run(
            rebuild_then_read,
            verifier=lambda current: _repointed(current, from_id, to_id),
            description=f"re-point dependent {owner_id} from {from_id} to {to_id}",
            logger=self.logger,
        )


def _has_assignment(current: list[Assignment], assignment: Assignment) -> bool:
    return any(a.key == assignment.key for a in current)


def _repointed(owned: list[DependencyLink], from_id: str, to_id: str) -> bool:
    """True when the owner's own list requires to_id and no longer from_id."""
    targets = {e.target_id for e in owned}
    return to_id in targets and from_id not in targets
