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

"""Detection rules for Intune Win32 apps.

Recipes describe how Intune should detect an installed version with a
``detectionType`` and a handful of type-specific keys. This module turns
those keys into one of four rule types, each carrying only the fields its
kind needs:

- MsiDetection: MSI product code, optionally with a product version check
- FileDetection: file or folder existence/version under a path
- RegistryDetection: registry key/value existence or comparison
- ScriptDetection: custom PowerShell detection script

DetectionRule is the union of the four, so code that handles a rule can
match on its type and never sees a registry rule without a key path.

Recipe Keys:

    detectionType: msi | file | registry | script

    # msi
    productCode: "{23170F69-40C1-2702-2409-000001000000}"
    msiDetectionOperator: greaterThanOrEqual       # optional

    # file
    fileDetectionPath: '%ProgramFiles%\\RStudio'
    fileDetectionName: rstudio.exe
    fileDetectionMethod: version                   # exists | doesNotExist | version
    fileDetectionOperator: equal
    fileDetectionVersion: 2024.12.1.563            # defaults to the discovered version

    # registry
    registryDetectionKey: 'HKEY_LOCAL_MACHINE\\SOFTWARE\\...'
    registryDetectionMethod: exists                # exists | doesNotExist | string | integer | version
    registryDetectionValueName: Version
    registryDetectionOperator: equal
    registryDetectionValue: 8.0.11

    # script
    detectionScript: |
      $Version = "<version>"
      ...

Example:
    Build and render a rule:
        ```python
        from intunecycle.detection import detection_from_config, to_graph_rule

        rule = detection_from_config(app_config, version="2024.12.1.563")
        payload = to_graph_rule(rule)
        # {"@odata.type": "#microsoft.graph.win32LobAppFileSystemRule", ...}
        ```
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any, Literal

from intunecycle.exceptions import ConfigError

Operator = Literal[
    "notConfigured",
    "equal",
    "notEqual",
    "greaterThan",
    "greaterThanOrEqual",
    "lessThan",
    "lessThanOrEqual",
]
FileMethod = Literal["exists", "doesNotExist", "version"]
RegistryMethod = Literal["exists", "doesNotExist", "string", "integer", "version"]

OPERATORS: tuple[str, ...] = (
    "notConfigured",
    "equal",
    "notEqual",
    "greaterThan",
    "greaterThanOrEqual",
    "lessThan",
    "lessThanOrEqual",
)
FILE_METHODS: tuple[str, ...] = ("exists", "doesNotExist", "version")
REGISTRY_METHODS: tuple[str, ...] = (
    "exists",
    "doesNotExist",
    "string",
    "integer",
    "version",
)
DETECTION_TYPES: tuple[str, ...] = ("msi", "file", "registry", "script")

_VERSION_TOKEN = "<version>"


@dataclass(frozen=True)
class MsiDetection:
    """Detect by MSI product code, optionally comparing the product version."""

    product_code: str
    product_version: str | None = None
    operator: Operator = "notConfigured"


@dataclass(frozen=True)
class FileDetection:
    """Detect a file or folder, optionally comparing its file version."""

    path: str
    name: str
    method: FileMethod = "exists"
    operator: Operator = "notConfigured"
    value: str | None = None
    check_32bit_on_64: bool = False


@dataclass(frozen=True)
class RegistryDetection:
    """Detect a registry key, or compare one of its values."""

    key_path: str
    method: RegistryMethod = "exists"
    value_name: str | None = None
    operator: Operator = "notConfigured"
    value: str | None = None
    check_32bit_on_64: bool = False


@dataclass(frozen=True)
class ScriptDetection:
    """Detect with a PowerShell script (exit 0 and stdout = installed)."""

    script: str
    enforce_signature_check: bool = False
    run_as_32bit: bool = False


DetectionRule = MsiDetection | FileDetection | RegistryDetection | ScriptDetection


def _required(app_config: dict[str, Any], key: str, kind: str) -> str:
    value = app_config.get(key)
    if value is None or not str(value).strip():
        raise ConfigError(f"detectionType {kind!r} requires {key!r}")
    # Block scalars carry a trailing newline.
    return str(value).strip()


def _choice(value: Any, allowed: tuple[str, ...], key: str) -> str:
    if value not in allowed:
        raise ConfigError(f"{key} must be one of {allowed}, got {value!r}")
    return value


def detection_from_config(
    app_config: dict[str, Any],
    *,
    version: str | None = None,
    product_code: str | None = None,
) -> DetectionRule:
    """Build a detection rule from recipe keys.

    Args:
        app_config: Merged recipe configuration.
        version: Discovered version; fills ``<version>`` in scripts and is
            the default comparison value for version checks.
        product_code: MSI product code read from the installer; overrides
            ``productCode`` in the recipe.

    Returns:
        One of MsiDetection, FileDetection, RegistryDetection or
        ScriptDetection.

    Raises:
        ConfigError: If detectionType is missing/unknown or a required key
            for that type is missing or invalid.
    """
    kind = _choice(app_config.get("detectionType"), DETECTION_TYPES, "detectionType")

    if kind == "msi":
        code = product_code or app_config.get("productCode")
        if not code:
            raise ConfigError("detectionType 'msi' requires 'productCode'")
        operator = _choice(
            app_config.get("msiDetectionOperator", "notConfigured"),
            OPERATORS,
            "msiDetectionOperator",
        )
        return MsiDetection(
            product_code=str(code),
            product_version=version if operator != "notConfigured" else None,
            operator=operator,
        )

    if kind == "file":
        method = _choice(
            app_config.get("fileDetectionMethod", "exists"), FILE_METHODS, "fileDetectionMethod"
        )
        operator = "notConfigured"
        value = None
        if method == "version":
            operator = _choice(
                app_config.get("fileDetectionOperator", "equal"),
                OPERATORS,
                "fileDetectionOperator",
            )
            value = app_config.get("fileDetectionVersion") or version
            if not value:
                raise ConfigError("fileDetectionMethod 'version' requires a version to compare")
        return FileDetection(
            path=_required(app_config, "fileDetectionPath", kind),
            name=_required(app_config, "fileDetectionName", kind),
            method=method,
            operator=operator,
            value=str(value) if value is not None else None,
            check_32bit_on_64=bool(app_config.get("fileDetection32BitOn64", False)),
        )

    if kind == "registry":
        method = _choice(
            app_config.get("registryDetectionMethod", "exists"),
            REGISTRY_METHODS,
            "registryDetectionMethod",
        )
        operator = "notConfigured"
        value = None
        value_name = app_config.get("registryDetectionValueName")
        if method in ("string", "integer", "version"):
            operator = _choice(
                app_config.get("registryDetectionOperator", "equal"),
                OPERATORS,
                "registryDetectionOperator",
            )
            value = app_config.get("registryDetectionValue") or version
            if not value_name or not value:
                raise ConfigError(
                    f"registryDetectionMethod {method!r} requires "
                    "'registryDetectionValueName' and a value to compare"
                )
        return RegistryDetection(
            key_path=_required(app_config, "registryDetectionKey", kind),
            method=method,
            value_name=value_name,
            operator=operator,
            value=str(value) if value is not None else None,
            check_32bit_on_64=bool(app_config.get("registryDetection32BitOn64", False)),
        )

    script = _required(app_config, "detectionScript", kind)
    if version is not None:
        script = script.replace(_VERSION_TOKEN, version)
    return ScriptDetection(
        script=script,
        enforce_signature_check=bool(app_config.get("detectionScriptSigned", False)),
        run_as_32bit=bool(app_config.get("detectionScript32Bit", False)),
    )


def to_graph_rule(rule: DetectionRule) -> dict[str, Any]:
    """Render a detection rule as a Microsoft Graph win32LobApp rule."""
    if isinstance(rule, MsiDetection):
        return {
            "@odata.type": "#microsoft.graph.win32LobAppProductCodeRule",
            "ruleType": "detection",
            "productCode": rule.product_code,
            "productVersionOperator": rule.operator,
            "productVersion": rule.product_version,
        }
    if isinstance(rule, FileDetection):
        return {
            "@odata.type": "#microsoft.graph.win32LobAppFileSystemRule",
            "ruleType": "detection",
            "path": rule.path,
            "fileOrFolderName": rule.name,
            "check32BitOn64System": rule.check_32bit_on_64,
            "operationType": rule.method,
            "operator": rule.operator,
            "comparisonValue": rule.value,
        }
    if isinstance(rule, RegistryDetection):
        return {
            "@odata.type": "#microsoft.graph.win32LobAppRegistryRule",
            "ruleType": "detection",
            "check32BitOn64System": rule.check_32bit_on_64,
            "keyPath": rule.key_path,
            "valueName": rule.value_name,
            "operationType": rule.method,
            "operator": rule.operator,
            "comparisonValue": rule.value,
        }
    if isinstance(rule, ScriptDetection):
        return {
            "@odata.type": "#microsoft.graph.win32LobAppPowerShellScriptRule",
            "ruleType": "detection",
            "enforceSignatureCheck": rule.enforce_signature_check,
            "runAs32Bit": rule.run_as_32bit,
            "scriptContent": base64.b64encode(rule.script.encode("utf-8")).decode("ascii"),
        }
    raise TypeError(f"Unsupported detection rule: {type(rule).__name__}")
