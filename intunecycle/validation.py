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

"""Recipe validation module.

Checks a recipe's lifecycle and detection settings without talking to
Intune. Useful for quick feedback while writing recipes and in CI pipelines.

Validation Checks:

- YAML syntax is valid and the recipe (merged with its defaults) is a mapping
- displayName is present and is not itself an ordinal slot name
- Lifecycle keys are valid: numVersionsToKeep, versionLock, date offsets,
  defaultDeployments, architectureFilter, retry
- Detection keys are valid for the chosen detectionType

Example:
    ```python
    from pathlib import Path
    from intunecycle.validation import validate_recipe

    result = validate_recipe(Path("recipes/rstudio.yaml"))
    if result.status == "valid":
        print("Recipe is valid")
    else:
        for error in result.errors:
            print(f"Error: {error}")
    ```
"""

from __future__ import annotations

from pathlib import Path

from intunecycle.config import load_effective_config
from intunecycle.detection import detection_from_config, to_graph_rule
from intunecycle.exceptions import ConfigError
from intunecycle.lifecycle.family import ordinal_of
from intunecycle.logging import get_global_logger
from intunecycle.policy import policy_from_config
from intunecycle.results import ValidationResult

__all__ = ["validate_recipe"]

# Stands in for the discovered version when checking version comparisons.
_SAMPLE_VERSION = "1.0.0"


def validate_recipe(recipe_path: Path) -> ValidationResult:
    """Validate a recipe file without making network calls.

    Args:
        recipe_path: Path to the recipe YAML file to validate.

    Returns:
        Validation result with status "valid" or "invalid", the list of
        errors (empty if valid) and any warnings.
    """
    logger = get_global_logger()
    errors: list[str] = []
    warnings: list[str] = []

    logger.verbose("VALIDATION", f"Validating recipe: {recipe_path}")

    try:
        config = load_effective_config(Path(recipe_path))
    except ConfigError as err:
        errors.append(str(err))
        return ValidationResult("invalid", errors, warnings, str(recipe_path))

    logger.verbose("VALIDATION", "[OK] YAML syntax is valid")

    display_name = config.get("displayName")
    if not isinstance(display_name, str) or not display_name.strip():
        errors.append("Missing required field: displayName")
    elif ordinal_of(display_name) is not None:
        errors.append(
            f"displayName {display_name!r} must not carry an ordinal suffix"
        )

    app_id = config.get("id")
    if app_id is None:
        warnings.append("Missing field: id (recipe file name will be used)")
    elif not isinstance(app_id, str) or not app_id:
        errors.append("Field 'id' must be a non-empty string")

    try:
        policy = policy_from_config(config)
    except ConfigError as err:
        errors.append(str(err))
    else:
        logger.verbose("VALIDATION", f"[OK] Retention: {policy.retention}")
        if policy.retention == 0:
            warnings.append("numVersionsToKeep is 0: no older versions will be kept")
        if policy.force and policy.lock_pattern:
            warnings.append(
                f"force is set: versionLock {policy.lock_pattern!r} will be ignored"
            )
        if policy.offsets.deadline_days < policy.offsets.available_days:
            warnings.append("deadlineDateOffset is earlier than availableDateOffset")

    detection_rule = None
    if "detectionType" not in config:
        warnings.append("No detectionType: the app must be registered with its own rule")
    elif config.get("detectionType") == "msi" and not config.get("productCode"):
        warnings.append("No productCode: it must be read from the installer")
    else:
        try:
            rule = detection_from_config(config, version=_SAMPLE_VERSION)
        except ConfigError as err:
            errors.append(str(err))
        else:
            detection_rule = to_graph_rule(rule)
            logger.verbose("VALIDATION", f"[OK] Detection: {type(rule).__name__}")

    status = "valid" if not errors else "invalid"
    return ValidationResult(
        status=status,
        errors=errors,
        warnings=warnings,
        recipe_path=str(recipe_path),
        detection_rule=detection_rule,
    )
