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

"""Command-line interface for intunecycle.

Commands:

    validate: Validate a recipe's lifecycle and detection settings
    family: List the versions of an app in Intune, newest-first
    publish: Make a newly uploaded version current and rotate its family

Example:
    Validate a recipe:
        ```bash
        $ intunecycle validate recipes/rstudio.yaml
        ```

    Show the family of an app:
        ```bash
        $ intunecycle family "RStudio"
        ```

    Publish a version that was just uploaded:
        ```bash
        $ intunecycle publish recipes/rstudio.yaml --app-id 1f0c...
        ```

Exit Codes:

- 0: Success (published, skipped, valid)
- 1: Error (invalid recipe, degraded or failed publish, directory failure)

Note:
    Credentials for Microsoft Graph are read from INTUNE_TENANT_ID,
    INTUNE_CLIENT_ID and INTUNE_CLIENT_SECRET (a .env file is honored).
    Verbose mode shows full tracebacks on errors. Debug mode implies
    verbose mode.
"""

from __future__ import annotations

import argparse
from pathlib import Path
import sys
import traceback

from intunecycle import __version__
from intunecycle.core import list_family, publish_app
from intunecycle.exceptions import ConfigError, DirectoryError, IntuneCycleError
from intunecycle.lifecycle.family import ordinal_of
from intunecycle.logging import get_logger, set_global_logger
from intunecycle.results import PublishOutcome
from intunecycle.validation import validate_recipe


def _report_error(err: Exception, args: argparse.Namespace) -> int:
    print(f"Error: {err}")
    if args.verbose or getattr(args, "debug", False):
        traceback.print_exc()
    return 1


def cmd_validate(args: argparse.Namespace) -> int:
    """Handler for 'intunecycle validate'.

    Returns:
        Exit code (0 for a valid recipe, 1 for invalid).
    """
    logger = get_logger(verbose=args.verbose, debug=False)
    set_global_logger(logger)

    recipe_path = Path(args.recipe).resolve()
    print(f"Validating recipe: {recipe_path}")
    print()

    result = validate_recipe(recipe_path)

    print("=" * 70)
    print("VALIDATION RESULTS")
    print("=" * 70)
    print(f"Recipe:      {result.recipe_path}")
    print(f"Status:      {result.status.upper()}")
    if result.detection_rule is not None:
        rule_type = result.detection_rule["@odata.type"].rsplit(".", 1)[-1]
        print(f"Detection:   {rule_type}")
    print()

    if result.warnings:
        print(f"Warnings ({len(result.warnings)}):")
        for warning in result.warnings:
            print(f"  [WARNING] {warning}")
        print()

    if result.errors:
        print(f"Errors ({len(result.errors)}):")
        for error in result.errors:
            print(f"  [X] {error}")
        print()

    print("=" * 70)

    if result.status == "valid":
        print()
        print("[SUCCESS] Recipe is valid!")
        return 0
    print()
    print(f"[FAILED] Recipe validation failed with {len(result.errors)} error(s).")
    return 1


def cmd_family(args: argparse.Namespace) -> int:
    """Handler for 'intunecycle family'.

    Returns:
        Exit code (0 on success, 1 if the family could not be read).
    """
    logger = get_logger(verbose=args.verbose, debug=args.debug)
    set_global_logger(logger)

    try:
        family = list_family(args.name)
    except IntuneCycleError as err:
        return _report_error(err, args)

    print("=" * 70)
    print(f"FAMILY: {args.name}")
    print("=" * 70)
    if not family:
        print("No versions found.")
    for index, obj in enumerate(family):
        slot = "current" if index == 0 else f"N-{index}"
        marker = ""
        ordinal = ordinal_of(obj.display_name) or 0
        if ordinal != index:
            marker = "  (name out of order)"
        print(f"  [{slot:>7}] {obj.version:<20} {obj.display_name}{marker}")
        print(f"            id={obj.id} created={obj.created.isoformat()}")
    print("=" * 70)
    return 0


def _print_outcome(outcome: PublishOutcome) -> None:
    print("=" * 70)
    print("PUBLISH RESULTS")
    print("=" * 70)
    print(f"App:             {outcome.display_name}")
    print(f"Version:         {outcome.version}")
    print(f"Status:          {outcome.status}")
    if outcome.reason:
        print(f"Reason:          {outcome.reason}")
    if outcome.promoted:
        print(f"Current:         {outcome.promoted}")
    for result in outcome.migrated:
        print(
            f"Migrated:        {result.source_id} -> {result.target_id} "
            f"({result.assignments_migrated} assignment(s), "
            f"{result.dependencies_migrated} dependent(s))"
        )
    for app_id, name in outcome.renamed:
        print(f"Renamed:         {app_id} -> {name!r}")
    for app_id in outcome.pruned:
        print(f"Deleted:         {app_id}")
    for app_id in outcome.protected:
        print(f"Kept:            {app_id} (still assigned or depended on)")
    print("=" * 70)

    if outcome.errors:
        print()
        print(f"Errors ({len(outcome.errors)}):")
        for error in outcome.errors:
            print(f"  [X] {error}")


def cmd_publish(args: argparse.Namespace) -> int:
    """Handler for 'intunecycle publish'.

    Returns:
        Exit code (0 for published or skipped, 1 for degraded, failed or
        errors).
    """
    logger = get_logger(verbose=args.verbose, debug=args.debug)
    set_global_logger(logger)

    recipe_path = Path(args.recipe).resolve()
    if not recipe_path.exists():
        print(f"Error: Recipe file not found: {recipe_path}")
        return 1

    print(f"Publishing {args.app_id} for recipe: {recipe_path}")
    print()

    try:
        outcome = publish_app(
            recipe_path,
            args.app_id,
            force=True if args.force else None,
        )
    except (ConfigError, DirectoryError) as err:
        return _report_error(err, args)
    except IntuneCycleError as err:
        # Catch any other intunecycle errors we might have missed
        return _report_error(err, args)

    _print_outcome(outcome)
    print()
    if outcome.status == "published":
        print("[SUCCESS] Version published.")
    elif outcome.status == "skipped":
        print("[SKIPPED] Nothing changed.")
    elif outcome.status == "degraded":
        print("[WARNING] Version published with errors; review the items above.")
    else:
        print("[FAILED] Publish stopped.")
    return 0 if outcome.ok else 1


def _add_output_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show progress and high-level status updates",
    )
    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Show detailed debugging output (implies --verbose)",
    )


def main(argv: list[str] | None = None) -> None:
    """Main entry point, registered as the 'intunecycle' console script."""
    parser = argparse.ArgumentParser(
        prog="intunecycle",
        description="Keep a bounded, ordinally named history of Intune app versions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"intunecycle {__version__}",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        help="Available commands",
        required=True,
    )

    parser_validate = subparsers.add_parser(
        "validate",
        help="Validate recipe lifecycle and detection settings (no network)",
        description="Check a recipe for configuration problems without calling Intune.",
    )
    parser_validate.add_argument("recipe", help="Path to the recipe YAML file")
    parser_validate.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show validation progress and details",
    )
    parser_validate.set_defaults(func=cmd_validate)

    parser_family = subparsers.add_parser(
        "family",
        help="List the versions of an app, newest-first",
        description="Read every version of an app from Intune and show its slot.",
    )
    parser_family.add_argument("name", help="Display name of the app (without suffix)")
    _add_output_flags(parser_family)
    parser_family.set_defaults(func=cmd_family)

    parser_publish = subparsers.add_parser(
        "publish",
        help="Make an uploaded version current and rotate older versions",
        description=(
            "Move assignments and dependents onto a newly uploaded version, "
            "rename the family and delete versions beyond retention."
        ),
    )
    parser_publish.add_argument("recipe", help="Path to the recipe YAML file")
    parser_publish.add_argument(
        "--app-id",
        required=True,
        help="Intune id of the newly uploaded version",
    )
    parser_publish.add_argument(
        "--force",
        action="store_true",
        help="Publish even if the version is locked or already present",
    )
    _add_output_flags(parser_publish)
    parser_publish.set_defaults(func=cmd_publish)

    args = parser.parse_args(argv)
    exit_code = args.func(args)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
