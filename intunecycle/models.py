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

"""Domain types for application version objects held by the directory.

All types are frozen snapshots. The directory service owns the real objects;
the engine reads snapshots, issues mutations, and re-reads to confirm them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from intunecycle.versioning.keys import VersionKey

Intent = Literal["available", "required"]
FilterMode = Literal["include", "exclude"]
DependencyType = Literal["autoInstall", "detect"]

INTENTS: tuple[str, ...] = ("available", "required")
FILTER_MODES: tuple[str, ...] = ("include", "exclude")
DEPENDENCY_TYPES: tuple[str, ...] = ("autoInstall", "detect")


@dataclass(frozen=True)
class AssignmentWindow:
    """Availability and deadline instants of an assignment.

    Attributes:
        available_at: When the app becomes available (None = immediately).
        deadline_at: Installation deadline (None = no deadline).
        use_local_time: Interpret the instants in device local time.
    """

    available_at: datetime | None = None
    deadline_at: datetime | None = None
    use_local_time: bool = False


@dataclass(frozen=True)
class AssignmentFilter:
    """Assignment filter (e.g. an architecture filter)."""

    filter_id: str
    mode: FilterMode = "include"


@dataclass(frozen=True)
class Assignment:
    """A group assignment of one application version.

    Attributes:
        group_id: Target Entra ID group.
        intent: "available" or "required".
        notification: Toast setting ("showAll", "showReboot", "hideAll").
        window: Optional availability/deadline window.
        filter: Optional assignment filter.
    """

    group_id: str
    intent: Intent = "required"
    notification: str = "showAll"
    window: AssignmentWindow | None = None
    filter: AssignmentFilter | None = None

    @property
    def key(self) -> tuple[str, str]:
        """Identity used when verifying an assignment landed."""
        return (self.group_id, self.intent)


@dataclass(frozen=True)
class DependencyLink:
    """Directed edge: source_id requires target_id."""

    source_id: str
    target_id: str
    dependency_type: DependencyType = "autoInstall"


@dataclass(frozen=True)
class AppVersionObject:
    """One published version of one logical application.

    Attributes:
        id: Directory-assigned identifier.
        display_name: Display name, possibly carrying a " (N-k)" suffix.
        version: Vendor version string.
        created: Creation timestamp (timezone-aware).
        assignments: Assignments at snapshot time.
        dependencies: Dependency links touching this object at snapshot time.
    """

    id: str
    display_name: str
    version: str
    created: datetime
    assignments: tuple[Assignment, ...] = field(default=(), compare=False)
    dependencies: tuple[DependencyLink, ...] = field(default=(), compare=False)

    @property
    def version_key(self) -> VersionKey:
        return VersionKey(self.version)

    def __str__(self) -> str:
        return f"{self.display_name} [{self.version}] ({self.id})"


@dataclass(frozen=True)
class DateOffsets:
    """Day offsets applied to timed assignments when they are migrated.

    Attributes:
        available_days: Days from today until the app becomes available.
        deadline_days: Days from today until the installation deadline.
    """

    available_days: int = 0
    deadline_days: int = 7
