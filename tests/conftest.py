"""Shared test fixtures."""

import json
from datetime import UTC, datetime, timedelta

import httpx
import pytest
from pytest_httpx import HTTPXMock

from autoplanner.broker import CredentialBroker
from autoplanner.identity.base import IdentityProvider
from autoplanner.models import Plan, TaskDraft
from autoplanner.services.planner import PlannerService
from autoplanner.settings import AutoplannerSettings

SCOPES = ["User.Read", "Group.Read.All", "Tasks.ReadWrite"]
GRAPH = "https://graph.microsoft.com/v1.0"


def token_result(value: str = "tok_1", expires_in: int = 3600, scope: str = " ".join(SCOPES)) -> dict:
    return {"access_token": value, "expires_in": expires_in, "scope": scope, "token_type": "Bearer"}


class FakeIdentityProvider(IdentityProvider):
    """Plays back queued MSAL-style results and records every call."""

    def __init__(self, silent: list[dict] | None = None, interactive: list[dict] | None = None) -> None:
        self.silent = list(silent or [])
        self.interactive = list(interactive or [])
        self.calls: list[tuple] = []
        self.signed_out = False

    def acquire_silent(self, scopes: list[str], login_hint: str | None) -> dict:
        self.calls.append(("silent", login_hint, None))
        if self.silent:
            return self.silent.pop(0)
        return {"error": "interaction_required", "error_description": "no account"}

    def acquire_interactive(self, scopes: list[str], login_hint: str | None, prompt: str | None = None) -> dict:
        self.calls.append(("interactive", login_hint, prompt))
        return self.interactive.pop(0)

    def sign_out(self) -> None:
        self.signed_out = True


class StaticIdentityProvider(FakeIdentityProvider):
    """Always hands out the same token silently."""

    def acquire_silent(self, scopes: list[str], login_hint: str | None) -> dict:
        self.calls.append(("silent", login_hint, None))
        return token_result("tok_static")


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2025, 3, 1, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakePlanner:
    """In-memory Graph Planner endpoints, enforcing If-Match on every PATCH.

    Task tags run v0, v1, v2... and change on every write to the task or its
    details; details tags run d0, d1... Register failures with
    ``planner.fail("PATCH", "/planner/tasks/T1/details", 409)``.
    """

    def __init__(self) -> None:
        self.plans: dict[str, dict] = {}
        self.buckets: dict[str, list[dict]] = {}
        self.members: dict[str, list[dict]] = {}
        self.my_tasks: list[dict] = []
        self.me = {"id": "U-me", "displayName": "Me Myself", "userPrincipalName": "me@example.com"}
        self.tasks: dict[str, dict] = {}
        self.requests: list[tuple[str, str]] = []
        self.bodies: list[dict] = []
        self._failures: dict[tuple[str, str], tuple[int, str]] = {}

    def add_plan(self, plan_id: str, title: str, group_id: str | None = "G1") -> None:
        container = {"containerId": group_id, "type": "group"} if group_id else {"containerId": "R1", "type": "roster"}
        self.plans[plan_id] = {"id": plan_id, "title": title, "container": container}

    def fail(self, method: str, path: str, status: int, message: str = "Simulated failure") -> None:
        self._failures[(method, path)] = (status, message)

    @property
    def mutations(self) -> list[tuple[str, str]]:
        return [r for r in self.requests if r[0] in ("POST", "PATCH")]

    def _json(self, status: int, body: dict, etag: str | None = None) -> httpx.Response:
        headers = {"ETag": etag} if etag else {}
        return httpx.Response(status, json=body, headers=headers)

    def _error(self, status: int, message: str) -> httpx.Response:
        return httpx.Response(status, json={"error": {"code": str(status), "message": message}})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/v1.0")
        method = request.method
        self.requests.append((method, path))
        body = json.loads(request.content) if request.content else {}
        self.bodies.append(body)
        if (method, path) in self._failures:
            status, message = self._failures[(method, path)]
            return self._error(status, message)

        parts = path.strip("/").split("/")
        match method, parts:
            case "GET", ["me"]:
                return self._json(200, self.me)
            case "GET", ["me", "planner", "plans"]:
                return self._json(200, {"value": list(self.plans.values())})
            case "GET", ["me", "planner", "tasks"]:
                return self._json(200, {"value": self.my_tasks})
            case "GET", ["planner", "plans", plan_id]:
                if plan_id not in self.plans:
                    return self._error(404, f"Plan {plan_id} not found")
                return self._json(200, self.plans[plan_id])
            case "GET", ["planner", "plans", plan_id, "buckets"]:
                return self._json(200, {"value": self.buckets.get(plan_id, [])})
            case "GET", ["groups", group_id, "members"]:
                return self._json(200, {"value": self.members.get(group_id, [])})
            case "POST", ["planner", "tasks"]:
                return self._create(body)
            case "GET", ["planner", "tasks", task_id]:
                task = self.tasks[task_id]
                return self._json(200, self._task_node(task), etag=self._tag(task))
            case "GET", ["planner", "tasks", task_id, "details"]:
                task = self.tasks[task_id]
                return self._json(200, {"id": task_id, "description": task["description"]}, etag=self._details_tag(task))
            case "PATCH", ["planner", "tasks", task_id, "details"]:
                task = self.tasks[task_id]
                if request.headers.get("If-Match") != self._details_tag(task):
                    return self._error(412, "The If-Match header does not match the current version")
                task["description"] = body["description"]
                task["details_version"] += 1
                task["version"] += 1
                return self._json(200, {"id": task_id, "@odata.etag": self._details_tag(task)})
            case "PATCH", ["planner", "tasks", task_id]:
                task = self.tasks[task_id]
                if request.headers.get("If-Match") != self._tag(task):
                    return self._error(412, "The If-Match header does not match the current version")
                task["assignments"].update(body.get("assignments", {}))
                task["version"] += 1
                return self._json(200, {**self._task_node(task), "@odata.etag": self._tag(task)})
        return self._error(404, f"No route for {method} {path}")

    def _create(self, body: dict) -> httpx.Response:
        task_id = f"T{len(self.tasks) + 1}"
        task = {
            "id": task_id,
            "planId": body["planId"],
            "title": body["title"],
            "bucketId": body.get("bucketId"),
            "dueDateTime": body.get("dueDateTime"),
            "assignments": dict(body.get("assignments", {})),
            "description": "",
            "version": 0,
            "details_version": 0,
        }
        self.tasks[task_id] = task
        return self._json(201, {**self._task_node(task), "@odata.etag": self._tag(task)})

    def _task_node(self, task: dict) -> dict:
        return {k: task[k] for k in ("id", "planId", "title", "bucketId", "dueDateTime", "assignments")}

    def _tag(self, task: dict) -> str:
        return f"v{task['version']}"

    def _details_tag(self, task: dict) -> str:
        return f"d{task['details_version']}"


@pytest.fixture
def settings(monkeypatch: pytest.MonkeyPatch) -> AutoplannerSettings:
    for var in ("AUTOPLANNER_CLIENT_ID", "AUTOPLANNER_AUTO_BUCKET", "AUTOPLANNER_GRAPH_BASE_URL", "AUTOPLANNER_SCOPES"):
        monkeypatch.delenv(var, raising=False)
    return AutoplannerSettings(client_id="00000000-test-client")  # type: ignore[call-arg]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def identity() -> StaticIdentityProvider:
    return StaticIdentityProvider()


@pytest.fixture
def broker(identity: StaticIdentityProvider, clock: FakeClock) -> CredentialBroker:
    return CredentialBroker(identity, clock=clock)


@pytest.fixture
def service(settings: AutoplannerSettings, broker: CredentialBroker) -> PlannerService:
    return PlannerService(settings, broker)


@pytest.fixture
def planner(httpx_mock: HTTPXMock) -> FakePlanner:
    fake = FakePlanner()
    httpx_mock.add_callback(fake, is_reusable=True)
    return fake


@pytest.fixture
def sample_plan() -> Plan:
    return Plan(id="P1", title="Legal review", owner_group_id="G1")


@pytest.fixture
def contract_draft() -> TaskDraft:
    return TaskDraft(
        plan_id="P1",
        title="Review contract",
        description="See attached",
        due_date=datetime(2025, 3, 10).date(),
        assignee_id="U9",
    )
