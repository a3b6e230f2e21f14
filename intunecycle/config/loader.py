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

"""Configuration loading and merging for intunecycle.

Recipes are flat YAML mappings (displayName, numVersionsToKeep,
detectionType, ...). Settings that most apps share, such as retention,
date offsets and default deployments, live in layered defaults files:

1. **Organization defaults** (defaults/org.yaml)
    - Found by walking upward from the recipe
    - Base configuration for every app

2. **Publisher defaults** (defaults/vendors/<Publisher>.yaml)
    - Optional; chosen by the ``publisher`` parameter, then the recipe's
      ``publisher`` key, then the recipe's folder name
    - Overrides organization defaults

3. **Recipe** (recipes/<app>.yaml)
    - Always required
    - Overrides everything above

Merge Behavior:
    - Dicts: recursively merged (keys from overlay override base)
    - Lists: completely replaced (defaultDeployments is never appended to)
    - Scalars: overwritten

Example:
    ```python
    from pathlib import Path
    from intunecycle.config import load_effective_config

    cfg = load_effective_config(Path("recipes/rstudio.yaml"))
    print(cfg["displayName"], cfg.get("numVersionsToKeep", 2))
    ```
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from intunecycle.exceptions import ConfigError
from intunecycle.logging import get_global_logger

# -------------------------------
# Data types
# -------------------------------


@dataclass(frozen=True)
class LoadContext:
    """Where each layer of a merged configuration came from."""

    recipe_path: Path
    defaults_root: Path | None
    publisher: str | None
    layers: tuple[Path, ...]


# -------------------------------
# YAML helpers
# -------------------------------


def _load_yaml_file(p: Path) -> Any:
    """Loads a YAML file and returns the parsed Python object.

    Raises:
        ConfigError: When the file does not exist, is not valid YAML, or is
            empty.
    """
    if not p.exists():
        raise ConfigError(f"file not found: {p}")
    try:
        with p.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as err:
        raise ConfigError(f"Error parsing YAML: {p}: {err}") from err
    if data is None:
        raise ConfigError(f"YAML file is empty: {p}")
    return data


def _load_mapping(p: Path) -> dict[str, Any]:
    data = _load_yaml_file(p)
    if not isinstance(data, dict):
        raise ConfigError(f"top-level YAML must be a mapping (dict): {p}")
    return data


# -------------------------------
# Merge logic
# -------------------------------


def _deep_merge_dicts(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Deep-merges two dicts with "overlay wins" semantics.

    - dict + dict -> deep merge
    - list + list -> overlay REPLACES base (not concatenated)
    - everything else -> overlay overwrites base

    Does not mutate its inputs.
    """
    result: dict[str, Any] = dict(base)
    for k, v in overlay.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge_dicts(result[k], v)
        else:
            result[k] = v
    return result


# -------------------------------
# Defaults discovery
# -------------------------------


def _find_defaults_root(start_dir: Path) -> Path | None:
    """Walks upward from start_dir looking for defaults/org.yaml."""
    for parent in [start_dir] + list(start_dir.parents):
        candidate = parent / "defaults" / "org.yaml"
        if candidate.exists():
            return parent / "defaults"
    return None


def _detect_publisher(recipe_path: Path, recipe_obj: dict[str, Any]) -> str | None:
    publisher = recipe_obj.get("publisher")
    if isinstance(publisher, str) and publisher.strip():
        return publisher.strip()
    return recipe_path.parent.name or None


def _print_yaml_content(data: dict[str, Any]) -> None:
    """Print YAML content line by line at debug level."""
    logger = get_global_logger()
    yaml_str = yaml.dump(data, default_flow_style=False, sort_keys=False)
    for line in yaml_str.split("\n"):
        if line.strip():
            logger.debug("CONFIG", line)


# -------------------------------
# Public API
# -------------------------------


def load_config_layers(
    recipe_path: Path, *, publisher: str | None = None
) -> tuple[dict[str, Any], LoadContext]:
    """Loads and merges a recipe with its defaults, returning both.

    Args:
        recipe_path: Path to the recipe YAML file.
        publisher: Publisher override for choosing defaults/vendors/*.yaml.

    Returns:
        The merged configuration and a LoadContext describing its layers.

    Raises:
        ConfigError: On a missing recipe, YAML parse errors, empty files or
            non-mapping documents.
    """
    logger = get_global_logger()
    recipe_path = Path(recipe_path).resolve()

    logger.verbose("CONFIG", f"Loading recipe: {recipe_path}")
    recipe_obj = _load_mapping(recipe_path)

    defaults_root = _find_defaults_root(recipe_path.parent)
    merged: dict[str, Any] = {}
    layers: list[Path] = []

    if defaults_root:
        logger.verbose("CONFIG", f"Found defaults root: {defaults_root}")
        org_path = defaults_root / "org.yaml"
        org_defaults = _load_mapping(org_path)
        logger.debug("CONFIG", "--- Content from org.yaml ---")
        _print_yaml_content(org_defaults)
        merged = _deep_merge_dicts(merged, org_defaults)
        layers.append(org_path)

        if publisher is None:
            publisher = _detect_publisher(recipe_path, recipe_obj)
        if publisher:
            candidate = defaults_root / "vendors" / f"{publisher}.yaml"
            if candidate.exists():
                logger.verbose("CONFIG", f"Loading: {candidate.relative_to(defaults_root.parent)}")
                vendor_defaults = _load_mapping(candidate)
                logger.debug("CONFIG", f"--- Content from {candidate.name} ---")
                _print_yaml_content(vendor_defaults)
                merged = _deep_merge_dicts(merged, vendor_defaults)
                layers.append(candidate)

    logger.debug("CONFIG", f"--- Content from {recipe_path.name} ---")
    _print_yaml_content(recipe_obj)
    merged = _deep_merge_dicts(merged, recipe_obj)
    layers.append(recipe_path)

    logger.verbose("CONFIG", f"Deep merged {len(layers)} layer(s)")
    logger.debug("CONFIG", "--- Final Merged Configuration ---")
    _print_yaml_content(merged)

    return merged, LoadContext(
        recipe_path=recipe_path,
        defaults_root=defaults_root,
        publisher=publisher,
        layers=tuple(layers),
    )


def load_effective_config(
    recipe_path: Path, *, publisher: str | None = None
) -> dict[str, Any]:
    """Loads and merges the effective configuration for a recipe.

    Args:
        recipe_path: Path to the recipe YAML file.
        publisher: Publisher override for choosing defaults/vendors/*.yaml.

    Returns:
        The merged configuration dict. If no defaults are found above the
        recipe, the recipe is returned as-is.

    Raises:
        ConfigError: On a missing recipe, YAML parse errors, empty files or
            non-mapping documents.
    """
    merged, _ = load_config_layers(recipe_path, publisher=publisher)
    return merged
