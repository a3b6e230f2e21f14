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

"""Microsoft Graph implementation of the directory service.

Talks to the Intune mobile app endpoints on the Graph beta API:

    GET    /deviceAppManagement/mobileApps?$filter=startswith(displayName,'...')
    GET    /deviceAppManagement/mobileApps/{id}/assignments
    POST   /deviceAppManagement/mobileApps/{id}/assignments
    DELETE /deviceAppManagement/mobileApps/{id}/assignments/{assignmentId}
    GET    /deviceAppManagement/mobileApps/{id}/relationships
    POST   /deviceAppManagement/mobileApps/{id}/updateRelationships
    PATCH  /deviceAppManagement/mobileApps/{id}
    DELETE /deviceAppManagement/mobileApps/{id}

Graph is eventually consistent: a read right after a write can still show
the old state. This client does not hide that; the lifecycle engine verifies
every write with a follow-up read. Transport-level failures on reads (429
and 5xx) are retried by the session's urllib3 adapter.

Dependencies are stored per app as "relationships". A relationship with
targetType "child" means the app requires the target; "parent" means the
target requires the app. Only the child relationships of an app can be
written, via updateRelationships, which replaces the whole list. Supersedence
relationships share that list and are carried over unchanged.

Example:
    ```python
    from intunecycle.auth import CredentialManager
    from intunecycle.directory import GraphDirectoryClient

    client = GraphDirectoryClient(CredentialManager())
    for obj in client.find_by_display_name("Google Chrome"):
        print(obj)
    ```
"""

from __future__ import annotations

from datetime import UTC, datetime
import re
from typing import Any, Protocol

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from intunecycle.exceptions import DirectoryError
from intunecycle.logging import Logger, get_global_logger
from intunecycle.models import (
    AppVersionObject,
    Assignment,
    AssignmentFilter,
    AssignmentWindow,
    DependencyLink,
)

GRAPH_BASE_URL = "https://graph.microsoft.com/beta"
MOBILE_APPS = "/deviceAppManagement/mobileApps"
DEFAULT_TIMEOUT = 30

_DEPENDENCY_TYPE = "#microsoft.graph.mobileAppDependency"
_FRACTION = re.compile(r"\.(\d{6})\d+")


class TokenProvider(Protocol):
    """Anything that hands out a bearer token (e.g. CredentialManager)."""

    def get_token(self) -> str: ...


def make_session() -> requests.Session:
    """Create a requests.Session that retries throttled and failed reads.

    Only GET is retried at this level. Writes are never replayed blindly;
    the lifecycle engine decides whether to repeat them after reading back.
    """
    s = requests.Session()
    retries = Retry(
        total=5,
        backoff_factor=0.5,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=("GET",),
        respect_retry_after_header=True,
        raise_on_status=False,
    )
    s.headers.update({"User-Agent": "intunecycle/0.1", "Accept": "application/json"})
    s.mount("https://", HTTPAdapter(max_retries=retries))
    return s


# -------------------------------
# Payload mapping
# -------------------------------


def _parse_timestamp(value: str | None) -> datetime:
    """Parse a Graph timestamp ("2024-05-01T12:00:00.1234567Z")."""
    if not value:
        raise DirectoryError("mobileApp payload has no createdDateTime")
    # Graph returns up to 7 fractional digits; datetime holds 6.
    text = _FRACTION.sub(r".\1", value.replace("Z", "+00:00"))
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as err:
        raise DirectoryError(f"Invalid timestamp from Graph: {value!r}") from err
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _format_timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(UTC)
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


def _app_from_graph(item: dict[str, Any]) -> AppVersionObject:
    try:
        return AppVersionObject(
            id=item["id"],
            display_name=item["displayName"],
            version=item.get("displayVersion") or "",
            created=_parse_timestamp(item.get("createdDateTime")),
        )
    except KeyError as err:
        raise DirectoryError(f"mobileApp payload is missing {err}") from err


def _assignment_from_graph(item: dict[str, Any]) -> Assignment | None:
    """Map a mobileAppAssignment; returns None for non-group targets."""
    target = item.get("target") or {}
    group_id = target.get("groupId")
    if not group_id:
        # allDevices / allLicensedUsers targets have no group
        return None

    filter_id = target.get("deviceAndAppManagementAssignmentFilterId")
    filter_mode = target.get("deviceAndAppManagementAssignmentFilterType")
    assignment_filter = None
    if filter_id and filter_mode in ("include", "exclude"):
        assignment_filter = AssignmentFilter(filter_id=filter_id, mode=filter_mode)

    settings = item.get("settings") or {}
    window = None
    install_time = settings.get("installTimeSettings")
    if install_time:
        start = install_time.get("startDateTime")
        deadline = install_time.get("deadlineDateTime")
        window = AssignmentWindow(
            available_at=_parse_timestamp(start) if start else None,
            deadline_at=_parse_timestamp(deadline) if deadline else None,
            use_local_time=bool(install_time.get("useLocalTime", False)),
        )

    return Assignment(
        group_id=group_id,
        intent=item.get("intent", "required"),
        notification=settings.get("notifications", "showAll"),
        window=window,
        filter=assignment_filter,
    )


def _assignment_to_graph(assignment: Assignment) -> dict[str, Any]:
    target: dict[str, Any] = {
        "@odata.type": "#microsoft.graph.groupAssignmentTarget",
        "groupId": assignment.group_id,
    }
    if assignment.filter is not None:
        target["deviceAndAppManagementAssignmentFilterId"] = assignment.filter.filter_id
        target["deviceAndAppManagementAssignmentFilterType"] = assignment.filter.mode

    settings: dict[str, Any] = {
        "@odata.type": "#microsoft.graph.win32LobAppAssignmentSettings",
        "notifications": assignment.notification,
    }
    if assignment.window is not None:
        settings["installTimeSettings"] = {
            "useLocalTime": assignment.window.use_local_time,
            "startDateTime": _format_timestamp(assignment.window.available_at),
            "deadlineDateTime": _format_timestamp(assignment.window.deadline_at),
        }

    return {
        "@odata.type": "#microsoft.graph.mobileAppAssignment",
        "intent": assignment.intent,
        "target": target,
        "settings": settings,
    }


def _is_dependency(rel: dict[str, Any]) -> bool:
    return rel.get("@odata.type") == _DEPENDENCY_TYPE


def _link_from_relationship(app_id: str, rel: dict[str, Any]) -> DependencyLink:
    dependency_type = rel.get("dependencyType", "autoInstall")
    if rel.get("targetType") == "parent":
        return DependencyLink(rel["targetId"], app_id, dependency_type)
    return DependencyLink(app_id, rel["targetId"], dependency_type)


# -------------------------------
# Client
# -------------------------------


class GraphDirectoryClient:
    """DirectoryService backed by Microsoft Graph.

    Attributes:
        credentials: Token provider used for every request.
        base_url: Graph endpoint root (beta).
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        credentials: TokenProvider,
        *,
        session: requests.Session | None = None,
        base_url: str = GRAPH_BASE_URL,
        timeout: int = DEFAULT_TIMEOUT,
        logger: Logger | None = None,
    ) -> None:
        self.credentials = credentials
        self.session = session or make_session()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._logger = logger

    @property
    def logger(self) -> Logger:
        return self._logger or get_global_logger()

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _request(
        self, method: str, url: str, *, json: Any = None, params: Any = None
    ) -> requests.Response:
        self.logger.debug("GRAPH", f"{method} {url}")
        headers = {"Authorization": f"Bearer {self.credentials.get_token()}"}
        try:
            response = self.session.request(
                method,
                url,
                headers=headers,
                json=json,
                params=params,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.HTTPError as err:
            status = err.response.status_code if err.response is not None else "?"
            body = err.response.text[:200] if err.response is not None else ""
            raise DirectoryError(f"{method} {url} failed with HTTP {status}: {body}") from err
        except requests.RequestException as err:
            raise DirectoryError(f"{method} {url} failed: {err}") from err
        return response

    def _get_all(self, url: str, params: Any = None) -> list[dict[str, Any]]:
        """GET a collection, following @odata.nextLink pages."""
        items: list[dict[str, Any]] = []
        next_url: str | None = url
        while next_url:
            response = self._request("GET", next_url, params=params)
            try:
                data = response.json()
            except ValueError as err:
                raise DirectoryError(f"Invalid JSON from GET {next_url}") from err
            items.extend(data.get("value", []))
            next_url = data.get("@odata.nextLink")
            # nextLink already carries the query string
            params = None
        return items

    # -------------------------------
    # DirectoryService
    # -------------------------------

    def find_by_display_name(self, name: str) -> list[AppVersionObject]:
        escaped = name.replace("'", "''")
        items = self._get_all(
            self._url(MOBILE_APPS),
            params={"$filter": f"startswith(displayName,'{escaped}')"},
        )
        apps = [_app_from_graph(item) for item in items]
        self.logger.debug("GRAPH", f"{len(apps)} app(s) start with {name!r}")
        return apps

    def _raw_assignments(self, app_id: str) -> list[dict[str, Any]]:
        return self._get_all(self._url(f"{MOBILE_APPS}/{app_id}/assignments"))

    def get_assignments(self, app_id: str) -> list[Assignment]:
        assignments = []
        for item in self._raw_assignments(app_id):
            assignment = _assignment_from_graph(item)
            if assignment is not None:
                assignments.append(assignment)
        return assignments

    def add_assignment(self, app_id: str, assignment: Assignment) -> None:
        self._request(
            "POST",
            self._url(f"{MOBILE_APPS}/{app_id}/assignments"),
            json=_assignment_to_graph(assignment),
        )

    def remove_assignment(self, app_id: str, group_id: str) -> None:
        for item in self._raw_assignments(app_id):
            if (item.get("target") or {}).get("groupId") != group_id:
                continue
            self._request(
                "DELETE",
                self._url(f"{MOBILE_APPS}/{app_id}/assignments/{item['id']}"),
            )

    def _relationships(self, app_id: str) -> list[dict[str, Any]]:
        return self._get_all(self._url(f"{MOBILE_APPS}/{app_id}/relationships"))

    def get_dependencies(self, app_id: str) -> list[DependencyLink]:
        try:
            return [
                _link_from_relationship(app_id, rel)
                for rel in self._relationships(app_id)
                if _is_dependency(rel)
            ]
        except KeyError as err:
            raise DirectoryError(f"relationship payload is missing {err}") from err

    def replace_dependency_list(
        self, owner_id: str, links: list[DependencyLink]
    ) -> None:
        for link in links:
            if link.source_id != owner_id:
                raise ValueError(f"Link {link} is not owned by {owner_id}")

        # Supersedence entries owned by this app travel in the same list.
        kept = [
            {
                "@odata.type": rel["@odata.type"],
                "targetId": rel["targetId"],
                "supersedenceType": rel.get("supersedenceType", "update"),
            }
            for rel in self._relationships(owner_id)
            if not _is_dependency(rel) and rel.get("targetType") == "child"
        ]
        dependencies = [
            {
                "@odata.type": _DEPENDENCY_TYPE,
                "targetId": link.target_id,
                "dependencyType": link.dependency_type,
            }
            for link in links
        ]
        self._request(
            "POST",
            self._url(f"{MOBILE_APPS}/{owner_id}/updateRelationships"),
            json={"relationships": dependencies + kept},
        )

    def rename(self, app_id: str, display_name: str) -> None:
        self._request(
            "PATCH",
            self._url(f"{MOBILE_APPS}/{app_id}"),
            json={"@odata.type": "#microsoft.graph.win32LobApp", "displayName": display_name},
        )

    def delete(self, app_id: str) -> None:
        self._request("DELETE", self._url(f"{MOBILE_APPS}/{app_id}"))
