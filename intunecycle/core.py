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

"""Core orchestration for intunecycle.

This module provides the high-level entry points used by the CLI: publishing
a freshly registered version object into its family, publishing a batch of
them, and listing a family.

Design Principles:

- Each function has a single, clear responsibility
- Functions return PublishOutcome instead of printing
- Directory failures become outcomes; configuration errors propagate
- One family's failure never stops a batch

Example:
    Publish an app that was just uploaded to Intune:
        ```python
        from pathlib import Path
        from intunecycle.core import publish_app

        outcome = publish_app(
            Path("recipes/rstudio.yaml"),
            "a1b2c3d4-0000-0000-0000-000000000000",
        )
        print(outcome.status)  # "published"
        ```
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime
from pathlib import Path

from intunecycle.auth import CredentialManager
from intunecycle.config import load_effective_config
from intunecycle.directory.base import DirectoryService
from intunecycle.directory.graph import GraphDirectoryClient
from intunecycle.exceptions import ConfigError, FamilyResolutionError, IntuneCycleError
from intunecycle.lifecycle import FamilyResolver, RotationController
from intunecycle.logging import get_global_logger
from intunecycle.models import AppVersionObject
from intunecycle.policy import policy_from_config
from intunecycle.results import PublishOutcome
from intunecycle.retry import RetryPolicy


def _default_directory() -> DirectoryService:
    return GraphDirectoryClient(CredentialManager())


def _display_name(config: dict, recipe_path: Path) -> str:
    display_name = config.get("displayName")
    if not isinstance(display_name, str) or not display_name.strip():
        raise ConfigError(f"No 'displayName' defined in recipe: {recipe_path}")
    return display_name.strip()


def list_family(
    display_name: str,
    *,
    directory: DirectoryService | None = None,
    retry: RetryPolicy | None = None,
) -> list[AppVersionObject]:
    """Return the family of an application, newest-first.

    Raises:
        FamilyResolutionError: If the directory cannot be read.
    """
    directory = directory or _default_directory()
    return FamilyResolver(directory, retry=retry).resolve(display_name)


def publish_app(
    recipe_path: Path,
    app_id: str,
    *,
    directory: DirectoryService | None = None,
    force: bool | None = None,
    clock: Callable[[], datetime] | None = None,
    sleep: Callable[[float], None] | None = None,
) -> PublishOutcome:
    """Publish a registered version object as the current version of its app.

    Loads the recipe (merged with its defaults), builds the publish policy,
    reads the family until the new object is visible in it, and hands
    everything to RotationController.

    Args:
        recipe_path: Path to the recipe YAML file.
        app_id: Directory id of the newly registered version object.
        directory: Directory service. Defaults to a GraphDirectoryClient
            using INTUNE_* credentials.
        force: Overrides the recipe's force flag when not None.
        clock: Source of "now" for migrated assignment windows.
        sleep: Sleep function for retries (tests pass a no-op).

    Returns:
        PublishOutcome with status "published", "degraded", "skipped" or
        "failed".

    Raises:
        ConfigError: If the recipe is missing, unreadable or invalid.
    """
    logger = get_global_logger()

    config = load_effective_config(Path(recipe_path))
    display_name = _display_name(config, Path(recipe_path))
    policy = policy_from_config(config, force=force)
    retry = policy.retry
    if sleep is not None:
        retry = RetryPolicy(attempts=retry.attempts, delay=retry.delay, sleep=sleep)

    directory = directory or _default_directory()
    resolver = FamilyResolver(directory, retry=retry)

    logger.verbose("CORE", f"Reading family {display_name!r} for {app_id}")
    try:
        family = resolver.resolve(
            display_name,
            expect=lambda fam: any(obj.id == app_id for obj in fam),
        )
    except FamilyResolutionError as err:
        logger.warning("CORE", str(err))
        return PublishOutcome(
            display_name=display_name,
            version="",
            status="failed",
            errors=[str(err)],
            reason=f"{app_id} is not visible in family {display_name!r}",
        )

    new_obj = next(obj for obj in family if obj.id == app_id)
    controller = RotationController(
        directory, retry=retry, resolver=resolver, clock=clock
    )
    return controller.publish(new_obj, family, policy)


def publish_batch(
    jobs: Iterable[tuple[Path, str]],
    *,
    directory: DirectoryService | None = None,
    force: bool | None = None,
    clock: Callable[[], datetime] | None = None,
    sleep: Callable[[float], None] | None = None,
) -> list[PublishOutcome]:
    """Publish several (recipe, app id) pairs one after another.

    Families are processed sequentially. Any intunecycle error raised while
    publishing one of them, a bad recipe included, is turned into a "failed"
    outcome for that entry and the batch continues.

    Returns:
        One PublishOutcome per job, in order.
    """
    logger = get_global_logger()
    directory = directory or _default_directory()

    outcomes: list[PublishOutcome] = []
    for recipe_path, app_id in jobs:
        try:
            outcome = publish_app(
                recipe_path,
                app_id,
                directory=directory,
                force=force,
                clock=clock,
                sleep=sleep,
            )
        except IntuneCycleError as err:
            logger.warning("CORE", f"{recipe_path}: {err}")
            outcome = PublishOutcome(
                display_name=Path(recipe_path).stem,
                version="",
                status="failed",
                errors=[str(err)],
                reason=str(err),
            )
        outcomes.append(outcome)
    return outcomes
