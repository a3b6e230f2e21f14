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

"""Publishing a new version into an application family.

The controller runs once per newly registered version object and walks a
fixed sequence of steps:

1. Validate: a locked version, or a version that already exists, is
   skipped unless the policy forces it. Nothing is changed.
2. Conflicts: an existing object with the same version hands its
   assignments and dependents to the new object and is retired, unless
   something could not be confirmed moved.
3. Promote: every unsuffixed object (the previous current, plus any
   duplicates left by an interrupted run) hands its assignments to the new
   object.
4. Cascade: assignments stay with their slot. N-1's assignments move onto
   the previous current (the new N-1), N-2's onto the old N-1, and so on.
5. Rename: the family is read again and renamed so that index 0 carries the
   bare name and index i carries "(N-i)".
6. Default deployments: configured groups missing from the new object are
   assigned.
7. Prune: objects beyond the retention count are deleted unless something
   still depends on them or they still hold assignments that were never
   moved. Members kept behind a deleted one are renamed again so that the
   ordinals stay contiguous.

Failure Semantics:

Migration problems degrade the outcome but never stop it; a migration only
removes what it has confirmed moved. Failing to read the family or to
rename it stops the publish, because steps 6 and 7 need an accurate view.
Stopped and degraded publishes are reported through PublishOutcome.status.

Example:
    ```python
    from intunecycle.lifecycle import FamilyResolver, RotationController
    from intunecycle.policy import PublishPolicy

    resolver = FamilyResolver(directory)
    family = resolver.resolve("Google Chrome")
    new_obj = next(obj for obj in family if obj.id == new_app_id)

    controller = RotationController(directory)
    outcome = controller.publish(new_obj, family, PublishPolicy(retention=2))
    print(outcome.status, outcome.pruned)
    ```
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime

from intunecycle.directory.base import DirectoryService
from intunecycle.exceptions import FamilyResolutionError, RetryExhaustedError
from intunecycle.lifecycle.family import (
    FamilyResolver,
    base_name,
    ordinal_of,
    slot_name,
)
from intunecycle.lifecycle.migration import MigrationProtocol
from intunecycle.logging import Logger, get_global_logger
from intunecycle.models import AppVersionObject
from intunecycle.policy.publish import PublishPolicy, check_publishable
from intunecycle.results import MigrationResult, PublishOutcome
from intunecycle.retry import RetryPolicy

_TOTAL_STEPS = 7


@dataclass
class _Ledger:
    """Mutable record of one publish, frozen into a PublishOutcome."""

    protected_ids: set[str] = field(default_factory=set)
    migrated: list[MigrationResult] = field(default_factory=list)
    renamed: list[tuple[str, str]] = field(default_factory=list)
    pruned: list[str] = field(default_factory=list)
    kept: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def outcome(
        self,
        new_obj: AppVersionObject,
        display_name: str,
        *,
        failure: str | None = None,
    ) -> PublishOutcome:
        if failure is not None:
            status = "failed"
        elif self.errors or any(not r.clean for r in self.migrated):
            status = "degraded"
        else:
            status = "published"
        return PublishOutcome(
            display_name=display_name,
            version=new_obj.version,
            status=status,
            promoted=None if failure is not None else new_obj.id,
            migrated=list(self.migrated),
            renamed=list(self.renamed),
            pruned=list(self.pruned),
            protected=list(self.kept),
            errors=list(self.errors),
            reason=failure,
        )


class RotationController:
    """Publishes a new version object into its family.

    A controller holds no per-publish state and may be reused for any
    number of families, but publishes of the same family must not overlap.

    Attributes:
        directory: Directory service.
        retry: Retry policy for directory calls made by the controller.
        resolver: FamilyResolver used for the post-migration snapshot.
        migration: MigrationProtocol used for every move.
    """

    def __init__(
        self,
        directory: DirectoryService,
        *,
        retry: RetryPolicy | None = None,
        resolver: FamilyResolver | None = None,
        migration: MigrationProtocol | None = None,
        clock: Callable[[], datetime] | None = None,
        logger: Logger | None = None,
    ) -> None:
        self.directory = directory
        self.retry = retry or RetryPolicy()
        self._logger = logger
        self.resolver = resolver or FamilyResolver(
            directory, retry=self.retry, logger=logger
        )
        self.migration = migration or MigrationProtocol(
            directory, retry=self.retry, clock=clock, logger=logger
        )

    @property
    def logger(self) -> Logger:
        return self._logger or get_global_logger()

    def publish(
        self,
        new_obj: AppVersionObject,
        family: list[AppVersionObject],
        policy: PublishPolicy,
    ) -> PublishOutcome:
        """Make new_obj the current version of its family.

        Args:
            new_obj: The freshly registered version object.
            family: Family snapshot taken before the publish (may or may not
                already contain new_obj).
            policy: Retention, lock, force, offsets and default deployments.

        Returns:
            PublishOutcome describing what happened. This method does not
            raise for directory failures; they are reported in the outcome.
        """
        display_name = base_name(new_obj.display_name)
        others = [obj for obj in family if obj.id != new_obj.id]

        self.logger.step(1, _TOTAL_STEPS, f"Validating {display_name} {new_obj.version}...")
        reason = check_publishable(new_obj.version, others, policy)
        if reason is not None:
            self.logger.verbose("ROTATE", f"Skipped: {reason}")
            return PublishOutcome(
                display_name=display_name,
                version=new_obj.version,
                status="skipped",
                reason=reason,
            )

        ledger = _Ledger()
        try:
            self._rotate(new_obj, others, policy, display_name, ledger)
        except (FamilyResolutionError, RetryExhaustedError) as err:
            message = f"Publish of {display_name} {new_obj.version} stopped: {err}"
            self.logger.warning("ROTATE", message)
            ledger.errors.append(message)
            return ledger.outcome(new_obj, display_name, failure=str(err))

        outcome = ledger.outcome(new_obj, display_name)
        self.logger.verbose(
            "ROTATE",
            f"{display_name} {new_obj.version}: {outcome.status} "
            f"(pruned={len(outcome.pruned)}, protected={len(outcome.protected)})",
        )
        return outcome

    # -------------------------------
    # Steps
    # -------------------------------

    def _rotate(
        self,
        new_obj: AppVersionObject,
        others: list[AppVersionObject],
        policy: PublishPolicy,
        display_name: str,
        ledger: _Ledger,
    ) -> None:
        key = new_obj.version_key
        conflicts = [obj for obj in others if obj.version_key == key]
        remaining = [obj for obj in others if obj.version_key != key]

        self.logger.step(2, _TOTAL_STEPS, f"Resolving {len(conflicts)} conflict(s)...")
        for conflict in conflicts:
            self._migrate(conflict, new_obj, policy, ledger)

        unsuffixed = sorted(
            (obj for obj in remaining if obj.display_name == display_name),
            key=lambda obj: obj.created,
            reverse=True,
        )
        self.logger.step(3, _TOTAL_STEPS, "Promoting new version to current...")
        for obj in unsuffixed:
            self._migrate(obj, new_obj, policy, ledger)

        # Stable sort keeps family order between equal ordinals.
        suffixed = sorted(
            (obj for obj in remaining if obj.display_name != display_name),
            key=lambda obj: ordinal_of(obj.display_name) or 0,
        )
        self.logger.step(4, _TOTAL_STEPS, "Shifting older slots...")
        if unsuffixed:
            previous = unsuffixed[0]
            for obj in suffixed:
                self._migrate(obj, previous, policy, ledger)
                previous = obj
        elif suffixed:
            self.logger.verbose("ROTATE", "No previous current; slots keep their assignments")

        retired: set[str] = set()
        for conflict in conflicts:
            if self._prune(conflict, ledger):
                retired.add(conflict.id)

        self.logger.step(5, _TOTAL_STEPS, "Renaming family...")
        members = self.resolver.resolve(
            display_name,
            expect=lambda fam: _visible(fam, new_obj.id, retired),
        )
        members = [m for m in members if m.id == new_obj.id] + [
            m for m in members if m.id != new_obj.id
        ]
        names = {m.id: m.display_name for m in members}
        self._rename(display_name, members, names, ledger)

        self.logger.step(6, _TOTAL_STEPS, "Applying default deployments...")
        self._apply_defaults(new_obj, policy, ledger)

        self.logger.step(7, _TOTAL_STEPS, f"Pruning beyond {policy.retention} older version(s)...")
        expired = members[policy.retention + 1 :]
        for member in expired:
            self._prune(member, ledger)

        if any(m.id in ledger.kept for m in expired):
            survivors = [m for m in members if m.id not in ledger.pruned]
            try:
                self._rename(display_name, survivors, names, ledger)
            except RetryExhaustedError as err:
                ledger.errors.append(f"Ordinal gap left after pruning: {err}")
                self.logger.warning("ROTATE", ledger.errors[-1])

    def _rename(
        self,
        display_name: str,
        members: list[AppVersionObject],
        names: dict[str, str],
        ledger: _Ledger,
    ) -> None:
        """Give members[i] slot name i. names tracks each member's live name."""
        for index, member in enumerate(members):
            desired = slot_name(display_name, index)
            if names[member.id] == desired:
                continue
            self.retry.run(
                lambda: self.directory.rename(member.id, desired),
                description=f"rename {member.id} to {desired!r}",
                logger=self.logger,
            )
            self.logger.verbose("ROTATE", f"Renamed {names[member.id]!r} -> {desired!r}")
            names[member.id] = desired
            ledger.renamed.append((member.id, desired))

    def _migrate(
        self,
        source: AppVersionObject,
        target: AppVersionObject,
        policy: PublishPolicy,
        ledger: _Ledger,
    ) -> None:
        result = self.migration.migrate(
            source, target, policy.offsets, ledger.protected_ids
        )
        ledger.migrated.append(result)
        ledger.errors.extend(result.errors)

    def _apply_defaults(
        self, new_obj: AppVersionObject, policy: PublishPolicy, ledger: _Ledger
    ) -> None:
        if not policy.default_assignments:
            return
        try:
            current = self.retry.run(
                lambda: self.directory.get_assignments(new_obj.id),
                description=f"read assignments of {new_obj.id}",
                logger=self.logger,
            )
        except RetryExhaustedError as err:
            ledger.errors.append(f"Default deployments not applied: {err}")
            self.logger.warning("ROTATE", ledger.errors[-1])
            return

        assigned = {a.group_id for a in current}
        for default in policy.default_assignments:
            if default.group_id in assigned:
                continue
            assignment = default
            if assignment.filter is None and policy.architecture_filter is not None:
                assignment = replace(assignment, filter=policy.architecture_filter)
            if self.migration.assign(new_obj.id, assignment):
                assigned.add(default.group_id)
                self.logger.verbose("ROTATE", f"Assigned default group {default.group_id}")
            else:
                ledger.errors.append(f"Default group {default.group_id} was not assigned")

    def _prune(self, obj: AppVersionObject, ledger: _Ledger) -> bool:
        """Delete obj unless it is protected. Returns True if deleted."""
        if obj.id in ledger.protected_ids:
            self._keep(obj, ledger, "it still holds assignments or dependents")
            return False

        try:
            edges = self.retry.run(
                lambda: self.directory.get_dependencies(obj.id),
                description=f"read dependents of {obj.id}",
                logger=self.logger,
            )
        except RetryExhaustedError as err:
            ledger.protected_ids.add(obj.id)
            ledger.errors.append(f"Kept {obj}: dependents unknown ({err})")
            self._keep(obj, ledger, "dependents could not be read")
            return False
        if any(e.target_id == obj.id for e in edges):
            ledger.protected_ids.add(obj.id)
            self._keep(obj, ledger, "other apps still depend on it")
            return False

        try:
            self.retry.run(
                lambda: self.directory.delete(obj.id),
                description=f"delete {obj.id}",
                logger=self.logger,
            )
        except RetryExhaustedError as err:
            ledger.errors.append(f"Could not delete {obj}: {err}")
            self.logger.warning("ROTATE", ledger.errors[-1])
            return False
        ledger.pruned.append(obj.id)
        self.logger.verbose("ROTATE", f"Deleted {obj}")
        return True

    def _keep(self, obj: AppVersionObject, ledger: _Ledger, why: str) -> None:
        if obj.id not in ledger.kept:
            ledger.kept.append(obj.id)
        self.logger.verbose("ROTATE", f"Keeping {obj}: {why}")


def _visible(
    family: list[AppVersionObject], new_id: str, retired: set[str]
) -> bool:
    ids = {obj.id for obj in family}
    return new_id in ids and not ids & retired
