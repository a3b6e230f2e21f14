"""
Tests for intunecycle.policy module.

Tests publish policy including:
- check_publishable() lock, duplicate and force handling
- Building a policy from recipe configuration
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from intunecycle.exceptions import ConfigError
from intunecycle.models import AppVersionObject, Assignment, AssignmentFilter, DateOffsets
from intunecycle.policy import PublishPolicy, check_publishable, policy_from_config

CREATED = datetime(2024, 1, 1, tzinfo=UTC)


def _obj(app_id: str, version: str, name: str = "App") -> AppVersionObject:
    return AppVersionObject(id=app_id, display_name=name, version=version, created=CREATED)


class TestCheckPublishable:
    """Tests for check_publishable()."""

    def test_new_version_is_publishable(self):
        family = [_obj("a", "1.0")]
        assert check_publishable("1.1", family, PublishPolicy()) is None

    def test_equal_version_is_rejected(self):
        family = [_obj("a", "1.02")]
        reason = check_publishable("1.2", family, PublishPolicy())
        assert reason is not None
        assert "already published" in reason

    def test_own_object_is_excluded(self):
        family = [_obj("new", "1.2")]
        assert check_publishable("1.2", family, PublishPolicy(), exclude_id="new") is None

    def test_locked_version_is_rejected(self):
        reason = check_publishable("19.42.3.442", [], PublishPolicy(lock_pattern="19.42.2.x"))
        assert "version lock" in reason

    def test_force_overrides_everything(self):
        policy = PublishPolicy(lock_pattern="1.x", force=True)
        assert check_publishable("2.0", [_obj("a", "2.0")], policy) is None

    def test_negative_retention_rejected(self):
        with pytest.raises(ConfigError):
            PublishPolicy(retention=-1)


class TestPolicyFromConfig:
    """Tests for policy_from_config()."""

    def test_defaults(self):
        policy = policy_from_config({"displayName": "App"})

        assert policy.retention == 2
        assert policy.lock_pattern is None
        assert policy.force is False
        assert policy.offsets == DateOffsets(available_days=0, deadline_days=7)
        assert policy.default_assignments == ()
        assert policy.retry.attempts == 3
        assert policy.retry.delay == 5.0

    def test_full_config(self):
        policy = policy_from_config(
            {
                "numVersionsToKeep": 3,
                "versionLock": "24.x",
                "force": True,
                "availableDateOffset": 1,
                "deadlineDateOffset": 5,
                "defaultDeployments": [
                    {"groupId": "pilot", "intent": "available", "notification": "hideAll"},
                    {"groupId": "all", "filter": {"filterId": "f1", "mode": "exclude"}},
                ],
                "architectureFilter": {"filterId": "x64"},
                "retry": {"attempts": 5, "delay": 0.5},
            }
        )

        assert policy.retention == 3
        assert policy.lock_pattern == "24.x"
        assert policy.force is True
        assert policy.offsets == DateOffsets(available_days=1, deadline_days=5)
        assert policy.default_assignments == (
            Assignment(group_id="pilot", intent="available", notification="hideAll"),
            Assignment(group_id="all", filter=AssignmentFilter("f1", "exclude")),
        )
        assert policy.architecture_filter == AssignmentFilter("x64", "include")
        assert policy.retry.attempts == 5
        assert policy.retry.delay == 0.5

    def test_force_argument_overrides_recipe(self):
        assert policy_from_config({"force": False}, force=True).force is True
        assert policy_from_config({"force": True}, force=False).force is False

    def test_blank_lock_disables_lock(self):
        assert policy_from_config({"versionLock": "  "}).lock_pattern is None

    def test_numeric_lock_is_accepted(self):
        """Test that YAML numbers such as 24 become a pattern string."""
        assert policy_from_config({"versionLock": 24}).lock_pattern == "24"

    @pytest.mark.parametrize(
        "config, match",
        [
            ({"numVersionsToKeep": "two"}, "numVersionsToKeep"),
            ({"numVersionsToKeep": True}, "numVersionsToKeep"),
            ({"numVersionsToKeep": -1}, "retention"),
            ({"versionLock": "24.*"}, "Invalid version lock"),
            ({"defaultDeployments": {"groupId": "a"}}, "must be a list"),
            ({"defaultDeployments": [{"intent": "required"}]}, "groupId"),
            ({"defaultDeployments": [{"groupId": "a", "intent": "uninstall"}]}, "intent"),
            ({"architectureFilter": {"mode": "include"}}, "filterId"),
            ({"architectureFilter": {"filterId": "f", "mode": "maybe"}}, "mode"),
            ({"retry": 3}, "retry"),
            ({"retry": {"delay": "soon"}}, "retry.delay"),
            ({"retry": {"attempts": 0}}, "attempts"),
        ],
    )
    def test_invalid_values(self, config, match):
        with pytest.raises(ConfigError, match=match):
            policy_from_config(config)
