"""
Tests for intunecycle.directory.graph module.

Tests the Microsoft Graph directory client including:
- Family queries with paging and timestamp parsing
- Assignment reads, writes and removal
- Dependency relationships and list replacement
- Rename, delete and HTTP error handling
"""

from __future__ import annotations

from datetime import UTC, datetime
from urllib.parse import unquote_plus

import pytest
import requests
import requests_mock

from intunecycle.directory.graph import GraphDirectoryClient, make_session
from intunecycle.exceptions import DirectoryError
from intunecycle.models import (
    Assignment,
    AssignmentFilter,
    AssignmentWindow,
    DependencyLink,
)

APPS = "https://graph.microsoft.com/beta/deviceAppManagement/mobileApps"


class StaticToken:
    def get_token(self) -> str:
        return "token-123"


@pytest.fixture
def client() -> GraphDirectoryClient:
    return GraphDirectoryClient(StaticToken(), session=requests.Session())


def _app(app_id: str, name: str, version: str, created: str) -> dict:
    return {
        "@odata.type": "#microsoft.graph.win32LobApp",
        "id": app_id,
        "displayName": name,
        "displayVersion": version,
        "createdDateTime": created,
    }


class TestFindByDisplayName:
    """Tests for the family query."""

    def test_follows_next_link(self, client):
        page1 = {
            "value": [_app("a", "App", "2.0", "2024-05-01T12:00:00Z")],
            "@odata.nextLink": f"{APPS}?$skiptoken=abc",
        }
        page2 = {"value": [_app("b", "App (N-1)", "1.0", "2024-04-01T08:30:00.1234567Z")]}

        with requests_mock.Mocker() as m:
            m.get(APPS, [{"json": page1}, {"json": page2}])
            apps = client.find_by_display_name("App")

        assert [obj.id for obj in apps] == ["a", "b"]
        assert apps[0].created == datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
        assert apps[1].created == datetime(2024, 4, 1, 8, 30, 0, 123456, tzinfo=UTC)
        assert m.call_count == 2

    def test_filter_and_auth_header(self, client):
        with requests_mock.Mocker() as m:
            m.get(APPS, json={"value": []})
            client.find_by_display_name("Bob's App")

        request = m.request_history[0]
        assert request.headers["Authorization"] == "Bearer token-123"
        assert "startswith(displayname,'bob''s app')" in unquote_plus(request.url).lower()

    def test_missing_version_becomes_empty(self, client):
        item = _app("a", "App", "1.0", "2024-05-01T12:00:00Z")
        del item["displayVersion"]

        with requests_mock.Mocker() as m:
            m.get(APPS, json={"value": [item]})
            apps = client.find_by_display_name("App")

        assert apps[0].version == ""

    def test_malformed_payload(self, client):
        with requests_mock.Mocker() as m:
            m.get(APPS, json={"value": [{"id": "a", "createdDateTime": "2024-05-01T12:00:00Z"}]})
            with pytest.raises(DirectoryError, match="missing"):
                client.find_by_display_name("App")


class TestAssignments:
    """Tests for assignment operations."""

    def test_get_assignments(self, client):
        payload = {
            "value": [
                {
                    "id": "asg-1",
                    "intent": "required",
                    "target": {
                        "@odata.type": "#microsoft.graph.groupAssignmentTarget",
                        "groupId": "g1",
                        "deviceAndAppManagementAssignmentFilterId": "f1",
                        "deviceAndAppManagementAssignmentFilterType": "include",
                    },
                    "settings": {
                        "notifications": "hideAll",
                        "installTimeSettings": {
                            "useLocalTime": True,
                            "startDateTime": "2024-06-01T08:00:00Z",
                            "deadlineDateTime": "2024-06-08T18:00:00Z",
                        },
                    },
                },
                {
                    "id": "asg-2",
                    "intent": "available",
                    "target": {"@odata.type": "#microsoft.graph.allLicensedUsersAssignmentTarget"},
                },
            ]
        }

        with requests_mock.Mocker() as m:
            m.get(f"{APPS}/app-1/assignments", json=payload)
            assignments = client.get_assignments("app-1")

        assert assignments == [
            Assignment(
                group_id="g1",
                intent="required",
                notification="hideAll",
                window=AssignmentWindow(
                    available_at=datetime(2024, 6, 1, 8, 0, tzinfo=UTC),
                    deadline_at=datetime(2024, 6, 8, 18, 0, tzinfo=UTC),
                    use_local_time=True,
                ),
                filter=AssignmentFilter("f1", "include"),
            )
        ]

    def test_add_assignment_body(self, client):
        assignment = Assignment(
            group_id="g1",
            intent="available",
            window=AssignmentWindow(deadline_at=datetime(2025, 3, 17, 18, 0, tzinfo=UTC)),
            filter=AssignmentFilter("f-x64", "exclude"),
        )

        with requests_mock.Mocker() as m:
            m.post(f"{APPS}/app-1/assignments", status_code=201, json={})
            client.add_assignment("app-1", assignment)

        body = m.last_request.json()
        assert body["intent"] == "available"
        assert body["target"]["groupId"] == "g1"
        assert body["target"]["deviceAndAppManagementAssignmentFilterType"] == "exclude"
        assert body["settings"]["installTimeSettings"]["deadlineDateTime"] == "2025-03-17T18:00:00Z"
        assert body["settings"]["installTimeSettings"]["startDateTime"] is None

    def test_remove_assignment_by_group(self, client):
        payload = {
            "value": [
                {"id": "asg-1", "intent": "required", "target": {"groupId": "g1"}},
                {"id": "asg-2", "intent": "required", "target": {"groupId": "g2"}},
            ]
        }

        with requests_mock.Mocker() as m:
            m.get(f"{APPS}/app-1/assignments", json=payload)
            deleted = m.delete(f"{APPS}/app-1/assignments/asg-2", status_code=204)
            client.remove_assignment("app-1", "g2")

        assert deleted.call_count == 1

    def test_remove_absent_group_is_a_no_op(self, client):
        with requests_mock.Mocker() as m:
            m.get(f"{APPS}/app-1/assignments", json={"value": []})
            client.remove_assignment("app-1", "g9")

        assert m.call_count == 1


class TestDependencies:
    """Tests for dependency relationships."""

    RELATIONSHIPS = {
        "value": [
            {
                "@odata.type": "#microsoft.graph.mobileAppDependency",
                "id": "r1",
                "targetId": "runtime",
                "targetType": "child",
                "dependencyType": "autoInstall",
            },
            {
                "@odata.type": "#microsoft.graph.mobileAppDependency",
                "id": "r2",
                "targetId": "plugin",
                "targetType": "parent",
                "dependencyType": "detect",
            },
            {
                "@odata.type": "#microsoft.graph.mobileAppSupersedence",
                "id": "r3",
                "targetId": "old-app",
                "targetType": "child",
                "supersedenceType": "replace",
            },
        ]
    }

    def test_get_dependencies(self, client):
        with requests_mock.Mocker() as m:
            m.get(f"{APPS}/app-1/relationships", json=self.RELATIONSHIPS)
            links = client.get_dependencies("app-1")

        assert links == [
            DependencyLink("app-1", "runtime", "autoInstall"),
            DependencyLink("plugin", "app-1", "detect"),
        ]

    def test_replace_keeps_supersedence(self, client):
        with requests_mock.Mocker() as m:
            m.get(f"{APPS}/app-1/relationships", json=self.RELATIONSHIPS)
            m.post(f"{APPS}/app-1/updateRelationships", status_code=204)
            client.replace_dependency_list("app-1", [DependencyLink("app-1", "runtime-2")])

        body = m.last_request.json()
        assert body["relationships"] == [
            {
                "@odata.type": "#microsoft.graph.mobileAppDependency",
                "targetId": "runtime-2",
                "dependencyType": "autoInstall",
            },
            {
                "@odata.type": "#microsoft.graph.mobileAppSupersedence",
                "targetId": "old-app",
                "supersedenceType": "replace",
            },
        ]

    def test_replace_rejects_foreign_links(self, client):
        with pytest.raises(ValueError):
            client.replace_dependency_list("app-1", [DependencyLink("other", "x")])


class TestMutationsAndErrors:
    """Tests for rename, delete and failures."""

    def test_rename(self, client):
        with requests_mock.Mocker() as m:
            m.patch(f"{APPS}/app-1", status_code=204)
            client.rename("app-1", "App (N-1)")

        assert m.last_request.json()["displayName"] == "App (N-1)"

    def test_delete(self, client):
        with requests_mock.Mocker() as m:
            deleted = m.delete(f"{APPS}/app-1", status_code=204)
            client.delete("app-1")

        assert deleted.call_count == 1

    def test_http_error_is_chained(self, client):
        with requests_mock.Mocker() as m:
            m.patch(f"{APPS}/app-1", status_code=500, text="internal")
            with pytest.raises(DirectoryError, match="HTTP 500") as excinfo:
                client.rename("app-1", "App")

        assert isinstance(excinfo.value.__cause__, requests.HTTPError)

    def test_connection_error(self, client):
        with requests_mock.Mocker() as m:
            m.get(APPS, exc=requests.exceptions.ConnectTimeout)
            with pytest.raises(DirectoryError):
                client.find_by_display_name("App")


class TestMakeSession:
    """Tests for make_session()."""

    def test_only_reads_are_retried(self):
        session = make_session()
        retries = session.get_adapter("https://graph.microsoft.com").max_retries

        assert set(retries.allowed_methods) == {"GET"}
        assert 429 in retries.status_forcelist
        assert 503 in retries.status_forcelist
