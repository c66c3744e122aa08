"""Frozen pydantic models passed between the broker, services, resolver and pipeline."""

from datetime import date, datetime, timedelta
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from autoplanner.errors import TaskError


def _scope_name(scope: str) -> str:
    # Entra grants "User.Read" for a request of "https://graph.microsoft.com/User.Read", in any case
    return scope.rsplit("/", 1)[-1].lower()


class Credential(BaseModel):
    """Access token held in memory by the CredentialBroker. Never persisted."""

    model_config = ConfigDict(frozen=True)

    value: str
    scopes: frozenset[str]
    acquired_at: datetime
    expires_at: datetime

    def covers(self, scopes: frozenset[str]) -> bool:
        granted = {_scope_name(s) for s in self.scopes}
        return all(_scope_name(s) in granted for s in scopes)

    def is_expiring(self, now: datetime, margin: timedelta) -> bool:
        return now + margin >= self.expires_at


class Plan(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    owner_group_id: str | None = None


class PlanListing(BaseModel):
    """Result of list_plans. origin is "direct" or "derived" (from my tasks)."""

    model_config = ConfigDict(frozen=True)

    plans: list[Plan] = []
    origin: str = "direct"
    skipped: int = 0  # plan lookups dropped on the derived path


class Bucket(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    plan_id: str


class DirectoryMember(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str
    principal_type: str  # "user" | "group" | "device" | ...


class AssigneeOrigin(StrEnum):
    GROUP = "group"
    FALLBACK = "fallback"


class AssigneeCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str
    origin: AssigneeOrigin


class AssigneeList(BaseModel):
    model_config = ConfigDict(frozen=True)

    origin: AssigneeOrigin
    candidates: list[AssigneeCandidate] = []
    reason: str | None = None  # why the group path was abandoned

    @property
    def degraded(self) -> bool:
        return self.origin is AssigneeOrigin.FALLBACK


class TaskDraft(BaseModel):
    """One submission. Validated by the pipeline, not on construction."""

    model_config = ConfigDict(frozen=True)

    plan_id: str = ""
    title: str = ""
    bucket_id: str | None = None
    description: str | None = None
    due_date: date | datetime | None = None
    assignee_id: str | None = None


class CreatedTask(BaseModel):
    """Returned by create_task. errors holds the non-fatal stage failures.

    version_tag is None when the service did not report one and it could not
    be read back.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: str
    version_tag: str | None = None
    title: str
    bucket_id: str | None = None
    errors: tuple[Any, ...] = ()

    @property
    def error(self) -> "TaskError | None":
        return self.errors[0] if self.errors else None

    @property
    def partial(self) -> bool:
        return bool(self.errors)
