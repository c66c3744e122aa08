"""Plan listing and tiered assignee resolution."""

import logging
from collections.abc import Callable

from autoplanner.errors import GraphError, ResolutionError
from autoplanner.models import AssigneeCandidate, AssigneeList, AssigneeOrigin, Plan, PlanListing
from autoplanner.services.base import TaskService

logger = logging.getLogger(__name__)


class _Degrade(Exception):
    """A strategy cannot serve this plan; the next one should be tried."""


class ResourceResolver:
    def __init__(self, service: TaskService) -> None:
        self._service = service
        # plan id → owning group id, from the most recent listing
        self._groups: dict[str, str | None] = {}

    # -----------------------------------------------------------------------
    # Plans
    # -----------------------------------------------------------------------

    def list_plans(self) -> PlanListing:
        try:
            listing = PlanListing(plans=self._service.list_my_plans(), origin="direct")
        except GraphError as exc:
            if exc.status_code != 403:
                raise ResolutionError("list your plans", exc) from exc
            logger.info("Plan listing forbidden (%s); deriving plans from my tasks", exc.message)
            listing = self._plans_from_tasks()

        self._groups = {plan.id: plan.owner_group_id for plan in listing.plans}
        return listing

    def _plans_from_tasks(self) -> PlanListing:
        try:
            plan_ids = list(dict.fromkeys(self._service.list_my_task_plan_ids()))
        except GraphError as exc:
            raise ResolutionError("list your tasks", exc) from exc

        plans: list[Plan] = []
        for plan_id in plan_ids:
            try:
                plans.append(self._service.get_plan(plan_id))
            except GraphError as exc:
                logger.warning("Skipping plan %s: %s", plan_id, exc)
        skipped = len(plan_ids) - len(plans)
        logger.info("Resolved %d of %d plans from my tasks", len(plans), len(plan_ids))
        return PlanListing(plans=plans, origin="derived", skipped=skipped)

    # -----------------------------------------------------------------------
    # Assignees
    # -----------------------------------------------------------------------

    def list_assignees(self, plan_id: str) -> AssigneeList:
        """Return the plan's assignable users, degrading to the current user.

        Strategies run in order until one succeeds. Only a permission problem
        (or a plan without an owning group) moves on to the next strategy;
        anything else is raised as ResolutionError.
        """
        strategies: list[Callable[[str, str | None], AssigneeList]] = [
            self._group_members,
            self._current_user_only,
        ]
        reason: str | None = None
        for strategy in strategies:
            try:
                return strategy(plan_id, reason)
            except _Degrade as exc:
                reason = str(exc)
                logger.info("Assignee strategy %s degraded: %s", strategy.__name__, reason)
        raise ResolutionError("resolve assignees", RuntimeError(reason or "no strategy succeeded"))

    def _owner_group(self, plan_id: str) -> str:
        if plan_id in self._groups:
            group_id = self._groups[plan_id]
        else:
            try:
                group_id = self._service.get_plan(plan_id).owner_group_id
            except GraphError as exc:
                if exc.is_permission_error:
                    raise _Degrade(f"plan details not accessible: {exc.message}") from exc
                raise ResolutionError("look up the plan's group", exc) from exc
        if not group_id:
            raise _Degrade("plan has no owning group")
        return group_id

    def _group_members(self, plan_id: str, reason: str | None) -> AssigneeList:
        group_id = self._owner_group(plan_id)
        try:
            members = self._service.list_group_members(group_id)
        except GraphError as exc:
            if exc.is_permission_error:
                raise _Degrade(f"group members not accessible: {exc.message}") from exc
            raise ResolutionError("list the group's members", exc) from exc
        candidates = [
            AssigneeCandidate(id=m.id, display_name=m.display_name, origin=AssigneeOrigin.GROUP)
            for m in members
            if m.principal_type == "user"
        ]
        return AssigneeList(origin=AssigneeOrigin.GROUP, candidates=candidates)

    def _current_user_only(self, plan_id: str, reason: str | None) -> AssigneeList:
        try:
            me = self._service.get_current_user()
        except GraphError as exc:
            raise ResolutionError("identify the signed-in user", exc) from exc
        candidate = AssigneeCandidate(id=me.id, display_name=me.display_name, origin=AssigneeOrigin.FALLBACK)
        return AssigneeList(origin=AssigneeOrigin.FALLBACK, candidates=[candidate], reason=reason)
