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

"""Public API return types for intunecycle.

This module defines dataclasses for return values from public API functions:
migrations between version objects, publish outcomes, and recipe
validation.

All dataclasses are frozen (immutable) to prevent accidental mutation of
return values.

Example:
    Using result types:
        ```python
        from intunecycle.core import publish_app
        from intunecycle.results import PublishOutcome

        outcome: PublishOutcome = publish_app(recipe, app_id, directory=client)
        print(outcome.status)   # "published", "degraded", "skipped", "failed"
        for result in outcome.migrated:
            print(result.source_id, "->", result.target_id, result.clean)
        ```

Note:
    Only public API return types belong in this module. Domain types
    (like Assignment and AppVersionObject) live in intunecycle.models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

PublishStatus = Literal["published", "degraded", "skipped", "failed"]


@dataclass(frozen=True)
class MigrationResult:
    """Result of moving assignments and dependents between two objects.

    Attributes:
        source_id: Object the assignments/dependents were moved off.
        target_id: Object they were moved onto.
        assignments_migrated: Assignments confirmed on the target.
        assignments_left: Assignments that could not be confirmed and were
            left on the source.
        assignments_duplicated: Migrated assignments whose removal from the
            source failed (present on both objects).
        dependencies_migrated: Dependency edges confirmed re-pointed.
        dependencies_left: Dependency edges still pointing at the source.
        errors: Human-readable diagnostics.
    """

    source_id: str
    target_id: str
    assignments_migrated: int = 0
    assignments_left: int = 0
    assignments_duplicated: int = 0
    dependencies_migrated: int = 0
    dependencies_left: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        """True when nothing was left behind and no residue remains."""
        return (
            self.assignments_left == 0
            and self.assignments_duplicated == 0
            and self.dependencies_left == 0
            and not self.errors
        )


@dataclass(frozen=True)
class PublishOutcome:
    """Result of publishing one application version.

    Attributes:
        display_name: Logical application name.
        version: Version that was published (or rejected).
        status: "published" (clean), "degraded" (completed with errors or
            residue), "skipped" (validation rejected it, nothing changed) or
            "failed" (stopped on a fatal error).
        promoted: Id of the object that became current, if any.
        migrated: One MigrationResult per migration performed.
        renamed: (object id, new display name) pairs.
        pruned: Ids of deleted objects.
        protected: Ids kept beyond retention because something depends on
            them.
        errors: Human-readable diagnostics.
        reason: Why a publish was skipped or failed.
    """

    display_name: str
    version: str
    status: PublishStatus
    promoted: str | None = None
    migrated: list[MigrationResult] = field(default_factory=list)
    renamed: list[tuple[str, str]] = field(default_factory=list)
    pruned: list[str] = field(default_factory=list)
    protected: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    reason: str | None = None

    @property
    def ok(self) -> bool:
        """True for a clean publish or a deliberate skip."""
        return self.status in ("published", "skipped")


@dataclass(frozen=True)
class ValidationResult:
    """Result from validating a recipe.

    Attributes:
        status: Validation status ("valid" or "invalid").
        errors: List of error messages (empty if valid).
        warnings: List of warning messages.
        recipe_path: String path to the validated recipe file.
        detection_rule: Graph detection rule the recipe renders to, if it
            declares a valid detectionType.
    """

    status: str
    errors: list[str]
    warnings: list[str]
    recipe_path: str
    detection_rule: dict[str, Any] | None = None
