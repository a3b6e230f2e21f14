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

"""Publish policy for intunecycle.

Determines whether a discovered version may be published and carries the
retention, date-offset and default-deployment settings a publish needs.

Example:
    Check a version before registering it:

        from intunecycle.policy.publish import PublishPolicy, check_publishable

        reason = check_publishable(
            "24.6.1",
            family,
            PublishPolicy(retention=2, lock_pattern="24.x"),
        )
        if reason:
            print(f"Skipping: {reason}")

    Build a policy from a merged recipe:

        from intunecycle.config import load_effective_config
        from intunecycle.policy.publish import policy_from_config

        policy = policy_from_config(load_effective_config(recipe_path))

"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from intunecycle.exceptions import ConfigError
from intunecycle.models import (
    FILTER_MODES,
    INTENTS,
    AppVersionObject,
    Assignment,
    AssignmentFilter,
    DateOffsets,
)
from intunecycle.retry import DEFAULT_ATTEMPTS, DEFAULT_DELAY, RetryPolicy
from intunecycle.versioning import VersionKey, compile_lock_pattern, is_locked

DEFAULT_RETENTION = 2


@dataclass(frozen=True)
class PublishPolicy:
    """Settings that control one publish.

    Attributes:
        retention: Number of older versions kept beside current.
        lock_pattern: Version lock ("24.x"); None or "" disables it.
        force: Publish even if locked or the version already exists.
        offsets: Day offsets for timed assignments during migration.
        default_assignments: Groups every new current version gets.
        architecture_filter: Filter applied to default assignments that do
            not carry their own.
        retry: Retry policy for directory calls.
    """

    retention: int = DEFAULT_RETENTION
    lock_pattern: str | None = None
    force: bool = False
    offsets: DateOffsets = field(default_factory=DateOffsets)
    default_assignments: tuple[Assignment, ...] = ()
    architecture_filter: AssignmentFilter | None = None
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    def __post_init__(self) -> None:
        if self.retention < 0:
            raise ConfigError(f"retention must be >= 0, got {self.retention}")


def check_publishable(
    version: str,
    family: Sequence[AppVersionObject],
    policy: PublishPolicy,
    *,
    exclude_id: str | None = None,
) -> str | None:
    """Decide whether a version may be published.

    Args:
        version: Candidate version.
        family: Current family snapshot.
        policy: Publish policy (lock pattern and force flag).
        exclude_id: Id of the candidate's own object, if it is already
            registered and therefore part of the family.

    Returns:
        None if the version may be published, otherwise the reason it may
        not. With force=True this always returns None.
    """
    if policy.force:
        return None

    if is_locked(version, policy.lock_pattern):
        return f"version {version} does not match version lock {policy.lock_pattern}"

    key = VersionKey(version)
    for obj in family:
        if obj.id != exclude_id and obj.version_key == key:
            return f"version {version} already published as {obj.display_name!r}"
    return None


# -------------------------------
# Config parsing
# -------------------------------


def _as_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as err:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from err


def _parse_filter(raw: Any, name: str) -> AssignmentFilter | None:
    if raw is None:
        return None
    if not isinstance(raw, dict) or not raw.get("filterId"):
        raise ConfigError(f"{name} requires a 'filterId'")
    mode = raw.get("mode", "include")
    if mode not in FILTER_MODES:
        raise ConfigError(f"{name}.mode must be one of {FILTER_MODES}, got {mode!r}")
    return AssignmentFilter(filter_id=str(raw["filterId"]), mode=mode)


def _parse_default_assignments(raw: Any) -> tuple[Assignment, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ConfigError("defaultDeployments must be a list")

    assignments = []
    for index, item in enumerate(raw):
        name = f"defaultDeployments[{index}]"
        if not isinstance(item, dict) or not item.get("groupId"):
            raise ConfigError(f"{name} requires a 'groupId'")
        intent = item.get("intent", "required")
        if intent not in INTENTS:
            raise ConfigError(f"{name}.intent must be one of {INTENTS}, got {intent!r}")
        assignments.append(
            Assignment(
                group_id=str(item["groupId"]),
                intent=intent,
                notification=item.get("notification", "showAll"),
                filter=_parse_filter(item.get("filter"), f"{name}.filter"),
            )
        )
    return tuple(assignments)


def policy_from_config(
    config: dict[str, Any], *, force: bool | None = None
) -> PublishPolicy:
    """Build a PublishPolicy from a merged recipe configuration.

    Recognised keys: numVersionsToKeep, versionLock, force,
    availableDateOffset, deadlineDateOffset, defaultDeployments,
    architectureFilter and retry.attempts/retry.delay.

    Args:
        config: Merged configuration (org defaults + recipe).
        force: Overrides the recipe's force flag when not None.

    Returns:
        The publish policy.

    Raises:
        ConfigError: On invalid values.
    """
    lock = config.get("versionLock")
    if lock is not None and str(lock).strip():
        lock = str(lock).strip()
        compile_lock_pattern(lock)
    else:
        lock = None

    retry_cfg = config.get("retry") or {}
    if not isinstance(retry_cfg, dict):
        raise ConfigError("retry must be a mapping with 'attempts' and 'delay'")
    try:
        delay = float(retry_cfg.get("delay", DEFAULT_DELAY))
    except (TypeError, ValueError) as err:
        raise ConfigError(f"retry.delay must be a number, got {retry_cfg.get('delay')!r}") from err

    return PublishPolicy(
        retention=_as_int(config.get("numVersionsToKeep", DEFAULT_RETENTION), "numVersionsToKeep"),
        lock_pattern=lock,
        force=bool(config.get("force", False)) if force is None else force,
        offsets=DateOffsets(
            available_days=_as_int(config.get("availableDateOffset", 0), "availableDateOffset"),
            deadline_days=_as_int(config.get("deadlineDateOffset", 7), "deadlineDateOffset"),
        ),
        default_assignments=_parse_default_assignments(config.get("defaultDeployments")),
        architecture_filter=_parse_filter(config.get("architectureFilter"), "architectureFilter"),
        retry=RetryPolicy(
            attempts=_as_int(retry_cfg.get("attempts", DEFAULT_ATTEMPTS), "retry.attempts"),
            delay=delay,
        ),
    )
