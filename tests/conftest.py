"""
Pytest configuration and shared fixtures for intunecycle tests.

This module provides an in-memory directory service that behaves like
Intune where it matters to the lifecycle engine:

- reads can lag behind writes for a configurable number of calls
- any operation can be made to fail a number of times, either before the
  write happens or after it landed
- adding an assignment for a group that is already assigned does nothing
- deleting an app that other apps still depend on fails
"""

from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
import yaml

from intunecycle.exceptions import DirectoryError
from intunecycle.logging import SilentLogger, set_global_logger
from intunecycle.models import AppVersionObject, Assignment, DependencyLink
from intunecycle.retry import RetryPolicy

BASE_TIME = datetime(2024, 1, 1, 9, 0, tzinfo=UTC)
NOW = datetime(2025, 3, 10, 12, 0, tzinfo=UTC)


class FakeDirectory:
    """In-memory DirectoryService with injectable lag and failures."""

    def __init__(self) -> None:
        self.apps: dict[str, AppVersionObject] = {}
        self.assignments: dict[str, list[Assignment]] = {}
        self.links: list[DependencyLink] = []
        self.calls: list[tuple[str, ...]] = []
        self._failures: dict[str, list[tuple[str | None, bool]]] = {}
        self._assignment_lag = 0
        self._stale_assignments: dict[str, tuple[int, list[Assignment]]] = {}
        self._family_lag = 0
        self._stale_family: tuple[int, list[AppVersionObject]] | None = None

    # -------------------------------
    # Test setup helpers
    # -------------------------------

    def add_app(
        self,
        app_id: str,
        display_name: str,
        version: str,
        *,
        day: int = 0,
        groups: tuple[str, ...] = (),
    ) -> AppVersionObject:
        obj = AppVersionObject(
            id=app_id,
            display_name=display_name,
            version=version,
            created=BASE_TIME + timedelta(days=day),
        )
        self.apps[app_id] = obj
        self.assignments[app_id] = [Assignment(group_id=g) for g in groups]
        return obj

    def link(
        self, source_id: str, target_id: str, dependency_type: str = "autoInstall"
    ) -> None:
        self.links.append(DependencyLink(source_id, target_id, dependency_type))

    def fail(
        self,
        operation: str,
        times: int = 1,
        *,
        app_id: str | None = None,
        after_write: bool = False,
    ) -> None:
        """Make the next `times` calls of `operation` raise DirectoryError.

        With after_write=True the write is applied before the error is raised.
        """
        self._failures.setdefault(operation, []).extend([(app_id, after_write)] * times)

    def lag_assignments(self, reads: int) -> None:
        """After each assignment write, the next `reads` reads return the old list."""
        self._assignment_lag = reads

    def lag_family(self, reads: int) -> None:
        """After each rename/delete, the next `reads` family queries are stale."""
        self._family_lag = reads

    def groups(self, app_id: str) -> list[str]:
        return [a.group_id for a in self.assignments.get(app_id, [])]

    def names(self) -> dict[str, str]:
        return {app_id: obj.display_name for app_id, obj in self.apps.items()}

    def current(self, app_id: str) -> AppVersionObject:
        return self.apps[app_id]

    # -------------------------------
    # Internals
    # -------------------------------

    def _take_failure(self, operation: str, app_id: str) -> tuple[bool, bool]:
        """Return (fail, after_write) for this call."""
        pending = self._failures.get(operation, [])
        for index, (wanted, after_write) in enumerate(pending):
            if wanted is None or wanted == app_id:
                del pending[index]
                return True, after_write
        return False, False

    def _guard(self, operation: str, app_id: str) -> bool:
        self.calls.append((operation, app_id))
        fail, after_write = self._take_failure(operation, app_id)
        if fail and not after_write:
            raise DirectoryError(f"{operation} {app_id}: injected failure")
        return fail

    def _snapshot_assignments(self, app_id: str) -> None:
        if self._assignment_lag:
            self._stale_assignments[app_id] = (
                self._assignment_lag,
                list(self.assignments.get(app_id, [])),
            )

    def _snapshot_family(self) -> None:
        if self._family_lag:
            self._stale_family = (self._family_lag, list(self.apps.values()))

    # -------------------------------
    # DirectoryService
    # -------------------------------

    def find_by_display_name(self, name: str) -> list[AppVersionObject]:
        self._guard("find_by_display_name", name)
        apps = list(self.apps.values())
        if self._stale_family is not None:
            remaining, stale = self._stale_family
            apps = stale
            self._stale_family = (remaining - 1, stale) if remaining > 1 else None
        return [obj for obj in apps if obj.display_name.startswith(name)]

    def get_assignments(self, app_id: str) -> list[Assignment]:
        self._guard("get_assignments", app_id)
        if app_id in self._stale_assignments:
            remaining, stale = self._stale_assignments[app_id]
            if remaining > 1:
                self._stale_assignments[app_id] = (remaining - 1, stale)
            else:
                del self._stale_assignments[app_id]
            return list(stale)
        return list(self.assignments.get(app_id, []))

    def add_assignment(self, app_id: str, assignment: Assignment) -> None:
        self._snapshot_assignments(app_id)
        fail_after = self._guard("add_assignment", app_id)
        current = self.assignments.setdefault(app_id, [])
        if not any(a.group_id == assignment.group_id for a in current):
            current.append(assignment)
        if fail_after:
            raise DirectoryError(f"add_assignment {app_id}: injected failure")

    def remove_assignment(self, app_id: str, group_id: str) -> None:
        fail_after = self._guard("remove_assignment", app_id)
        self._snapshot_assignments(app_id)
        self.assignments[app_id] = [
            a for a in self.assignments.get(app_id, []) if a.group_id != group_id
        ]
        if fail_after:
            raise DirectoryError(f"remove_assignment {app_id}: injected failure")

    def get_dependencies(self, app_id: str) -> list[DependencyLink]:
        self._guard("get_dependencies", app_id)
        return [e for e in self.links if app_id in (e.source_id, e.target_id)]

    def replace_dependency_list(
        self, owner_id: str, links: list[DependencyLink]
    ) -> None:
        fail_after = self._guard("replace_dependency_list", owner_id)
        self.links = [e for e in self.links if e.source_id != owner_id] + list(links)
        if fail_after:
            raise DirectoryError(f"replace_dependency_list {owner_id}: injected failure")

    def rename(self, app_id: str, display_name: str) -> None:
        self._snapshot_family()
        fail_after = self._guard("rename", app_id)
        self.apps[app_id] = replace(self.apps[app_id], display_name=display_name)
        if fail_after:
            raise DirectoryError(f"rename {app_id}: injected failure")

    def delete(self, app_id: str) -> None:
        self._guard("delete", app_id)
        if any(e.target_id == app_id for e in self.links):
            raise DirectoryError(f"{app_id} is still required by another app")
        self._snapshot_family()
        del self.apps[app_id]
        self.assignments.pop(app_id, None)
        self.links = [e for e in self.links if e.source_id != app_id]


# -------------------------------
# Fixtures
# -------------------------------


@pytest.fixture(autouse=True)
def silent_logger():
    """Keep the global logger quiet between tests."""
    set_global_logger(SilentLogger())
    yield
    set_global_logger(SilentLogger())


@pytest.fixture
def directory() -> FakeDirectory:
    """Provide an empty in-memory directory."""
    return FakeDirectory()


@pytest.fixture
def sleeps() -> list[float]:
    """Collects the delays a RetryPolicy asked to sleep for."""
    return []


@pytest.fixture
def retry(sleeps: list[float]) -> RetryPolicy:
    """Three attempts, no real sleeping."""
    return RetryPolicy(attempts=3, delay=5.0, sleep=sleeps.append)


@pytest.fixture
def clock():
    """Fixed 'now' for migrated assignment windows."""
    return lambda: NOW


@pytest.fixture
def write_yaml(tmp_path: Path):
    """Write a YAML document under tmp_path and return its path."""

    def _write(relative: str, data: dict[str, Any]) -> Path:
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
        return path

    return _write
