"""
Tests for intunecycle.validation module.

Tests recipe validation including:
- Valid recipes with and without defaults
- Lifecycle key errors
- Detection key errors
- Warnings that do not fail validation
"""

from __future__ import annotations

from pathlib import Path

from intunecycle.validation import validate_recipe

RECIPE = {
    "id": "rstudio",
    "displayName": "RStudio",
    "publisher": "Posit",
    "numVersionsToKeep": 2,
    "detectionType": "file",
    "fileDetectionPath": "%ProgramFiles%\\RStudio",
    "fileDetectionName": "rstudio.exe",
    "fileDetectionMethod": "version",
    "fileDetectionOperator": "equal",
}


class TestValidateRecipe:
    """Tests for validate_recipe()."""

    def test_valid_recipe(self, write_yaml):
        result = validate_recipe(write_yaml("recipes/rstudio.yaml", RECIPE))

        assert result.status == "valid"
        assert result.errors == []
        assert result.warnings == []

    def test_detection_rule_is_rendered(self, write_yaml):
        """Test that a valid recipe reports the Graph rule it renders to."""
        result = validate_recipe(write_yaml("recipes/rstudio.yaml", RECIPE))

        rule = result.detection_rule
        assert rule["@odata.type"] == "#microsoft.graph.win32LobAppFileSystemRule"
        assert rule["fileOrFolderName"] == "rstudio.exe"
        assert rule["operationType"] == "version"

    def test_missing_file(self, tmp_path: Path):
        result = validate_recipe(tmp_path / "missing.yaml")

        assert result.status == "invalid"
        assert "file not found" in result.errors[0]

    def test_invalid_yaml(self, tmp_path: Path):
        recipe = tmp_path / "bad.yaml"
        recipe.write_text("displayName: 'unterminated\n", encoding="utf-8")

        result = validate_recipe(recipe)

        assert result.status == "invalid"

    def test_missing_display_name(self, write_yaml):
        recipe = dict(RECIPE)
        del recipe["displayName"]

        result = validate_recipe(write_yaml("app.yaml", recipe))

        assert result.status == "invalid"
        assert "Missing required field: displayName" in result.errors

    def test_display_name_with_ordinal(self, write_yaml):
        result = validate_recipe(write_yaml("app.yaml", dict(RECIPE, displayName="RStudio (N-1)")))

        assert result.status == "invalid"
        assert "ordinal suffix" in result.errors[0]

    def test_bad_lock_and_detection_are_both_reported(self, write_yaml):
        recipe = dict(RECIPE, versionLock="2024.*", fileDetectionOperator="about")

        result = validate_recipe(write_yaml("app.yaml", recipe))

        assert result.status == "invalid"
        assert len(result.errors) == 2

    def test_defaults_are_validated_too(self, write_yaml):
        write_yaml("defaults/org.yaml", {"defaultDeployments": [{"intent": "required"}]})

        result = validate_recipe(write_yaml("recipes/rstudio.yaml", RECIPE))

        assert result.status == "invalid"
        assert "groupId" in result.errors[0]

    def test_warnings_do_not_invalidate(self, write_yaml):
        recipe = {
            "displayName": "Tool",
            "numVersionsToKeep": 0,
            "versionLock": "1.x",
            "force": True,
        }

        result = validate_recipe(write_yaml("tool.yaml", recipe))

        assert result.status == "valid"
        assert len(result.warnings) == 4

    def test_msi_without_product_code_warns(self, write_yaml):
        recipe = {"id": "7zip", "displayName": "7-Zip", "detectionType": "msi"}

        result = validate_recipe(write_yaml("7zip.yaml", recipe))

        assert result.status == "valid"
        assert any("productCode" in w for w in result.warnings)
        assert result.detection_rule is None
