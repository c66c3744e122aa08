"""Microsoft Graph v1.0 Planner/directory service."""

import logging
from datetime import datetime

import httpx

from autoplanner.broker import CredentialBroker
from autoplanner.errors import GraphError
from autoplanner.models import Bucket, CreatedTask, DirectoryMember, Plan
from autoplanner.services.base import TaskService
from autoplanner.settings import AutoplannerSettings

logger = logging.getLogger(__name__)

BASE_URL = "https://graph.microsoft.com/v1.0"

_ODATA_TYPE_PREFIX = "#microsoft.graph."


def _error_message(response: httpx.Response) -> str:
    """Return Graph's {error:{message}} verbatim when present."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("error"), dict) and body["error"].get("message"):
        return body["error"]["message"]
    return response.reason_phrase or response.text or "no response body"


def _version_tag(response: httpx.Response) -> str | None:
    tag = response.headers.get("ETag")
    if tag:
        return tag
    if response.content:
        try:
            return response.json().get("@odata.etag")
        except ValueError:
            return None
    return None


class PlannerService(TaskService):
    def __init__(self, settings: AutoplannerSettings, broker: CredentialBroker) -> None:
        self._broker = broker
        self._scopes = list(settings.scopes)
        self._base_url = settings.graph_base_url.rstrip("/") or BASE_URL
        self._timeout = settings.timeout_seconds

    def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        params: dict | None = None,
        json: dict | None = None,
        headers: dict | None = None,
    ) -> httpx.Response:
        credential = self._broker.get_token(self._scopes)
        url = path if path.startswith("https://") else f"{self._base_url}{path}"
        try:
            response = httpx.request(
                method,
                url,
                params=params,
                json=json,
                headers={
                    "Authorization": f"Bearer {credential.value}",
                    "Accept": "application/json",
                    **(headers or {}),
                },
                timeout=self._timeout,
            )
        except httpx.TransportError as exc:
            logger.warning("%s: transport failure: %s", operation, exc)
            raise GraphError(operation, None, str(exc)) from exc

        if response.status_code == 401:
            self._broker.invalidate(credential)
        if response.is_error:
            error = GraphError(operation, response.status_code, _error_message(response))
            logger.warning("%s", error)
            raise error
        return response

    def _get_collection(self, operation: str, path: str, params: dict | None = None) -> list[dict]:
        items: list[dict] = []
        response = self._request(operation, "GET", path, params=params)
        while True:
            data = response.json()
            items.extend(data.get("value", []))
            next_link = data.get("@odata.nextLink")
            if not next_link:
                return items
            response = self._request(operation, "GET", next_link)

    def _plan_from_node(self, node: dict) -> Plan:
        container = node.get("container") or {}
        group_id = container.get("containerId") if container.get("type") == "group" else None
        return Plan(
            id=node["id"],
            title=node.get("title") or node["id"],
            owner_group_id=group_id or node.get("owner"),
        )

    def _member_from_node(self, node: dict) -> DirectoryMember:
        odata_type = node.get("@odata.type", "")
        return DirectoryMember(
            id=node["id"],
            display_name=node.get("displayName") or node.get("userPrincipalName") or node["id"],
            principal_type=odata_type.removeprefix(_ODATA_TYPE_PREFIX),
        )

    def list_my_plans(self) -> list[Plan]:
        nodes = self._get_collection("list-my-plans", "/me/planner/plans", {"$select": "id,title,container,owner"})
        return [self._plan_from_node(n) for n in nodes]

    def list_my_task_plan_ids(self) -> list[str]:
        nodes = self._get_collection("list-my-tasks", "/me/planner/tasks", {"$select": "id,planId"})
        return [n["planId"] for n in nodes if n.get("planId")]

    def get_plan(self, plan_id: str) -> Plan:
        response = self._request("get-plan", "GET", f"/planner/plans/{plan_id}")
        return self._plan_from_node(response.json())

    def list_plan_buckets(self, plan_id: str) -> list[Bucket]:
        nodes = self._get_collection("get-plan-buckets", f"/planner/plans/{plan_id}/buckets")
        return [Bucket(id=n["id"], name=n.get("name", ""), plan_id=n.get("planId", plan_id)) for n in nodes]

    def list_group_members(self, group_id: str) -> list[DirectoryMember]:
        nodes = self._get_collection(
            "get-group-members",
            f"/groups/{group_id}/members",
            {"$select": "id,displayName,userPrincipalName"},
        )
        return [self._member_from_node(n) for n in nodes]

    def get_current_user(self) -> DirectoryMember:
        response = self._request("get-current-user", "GET", "/me", params={"$select": "id,displayName,userPrincipalName"})
        return self._member_from_node({"@odata.type": "#microsoft.graph.user", **response.json()})

    def create_task(
        self,
        plan_id: str,
        title: str,
        bucket_id: str | None,
        due: datetime | None,
    ) -> CreatedTask:
        body: dict = {"planId": plan_id, "title": title, "assignments": {}}
        if bucket_id:
            body["bucketId"] = bucket_id
        if due is not None:
            body["dueDateTime"] = due.isoformat().replace("+00:00", "Z")
        response = self._request("create-task", "POST", "/planner/tasks", json=body)
        node = response.json()
        # None when the response carries no ETag; the caller reads it back
        return CreatedTask(
            id=node["id"],
            version_tag=_version_tag(response),
            title=node.get("title", title),
            bucket_id=node.get("bucketId") or bucket_id,
        )

    def get_task_version(self, task_id: str) -> str:
        response = self._request("get-task", "GET", f"/planner/tasks/{task_id}")
        tag = _version_tag(response)
        if not tag:
            raise GraphError("get-task", response.status_code, "response carried no ETag")
        return tag

    def get_task_details_version(self, task_id: str) -> str:
        response = self._request("get-task-details", "GET", f"/planner/tasks/{task_id}/details")
        tag = _version_tag(response)
        if not tag:
            raise GraphError("get-task-details", response.status_code, "response carried no ETag")
        return tag

    def _conditional_patch(self, operation: str, path: str, version_tag: str, body: dict) -> httpx.Response:
        if not version_tag or version_tag == "*":
            raise GraphError(operation, None, "a concrete version tag is required")
        return self._request(
            operation,
            "PATCH",
            path,
            json=body,
            headers={"If-Match": version_tag, "Prefer": "return=representation"},
        )

    def update_task_details(self, task_id: str, version_tag: str, description: str) -> str:
        path = f"/planner/tasks/{task_id}/details"
        response = self._conditional_patch(
            "update-task-details", path, version_tag, {"description": description, "previewType": "description"}
        )
        return _version_tag(response) or self.get_task_details_version(task_id)

    def update_task_assignments(self, task_id: str, version_tag: str, assignments: dict) -> str:
        response = self._conditional_patch(
            "update-task-assignment", f"/planner/tasks/{task_id}", version_tag, {"assignments": assignments}
        )
        return _version_tag(response) or self.get_task_version(task_id)
