"""Tests for ResourceResolver plan listing and assignee fallback."""

from unittest.mock import MagicMock

import pytest

from autoplanner.errors import GraphError, ResolutionError
from autoplanner.models import AssigneeOrigin, DirectoryMember, Plan
from autoplanner.resolver import ResourceResolver
from autoplanner.services.planner import PlannerService

_USER = "#microsoft.graph.user"


@pytest.fixture
def resolver(service: PlannerService) -> ResourceResolver:
    return ResourceResolver(service)


class TestListPlans:
    def test_direct_listing(self, resolver: ResourceResolver, planner) -> None:
        planner.add_plan("P1", "Legal review")
        planner.add_plan("P2", "Hiring")
        listing = resolver.list_plans()
        assert listing.origin == "direct"
        assert [p.id for p in listing.plans] == ["P1", "P2"]
        assert listing.skipped == 0

    def test_forbidden_listing_derived_from_tasks(self, resolver: ResourceResolver, planner) -> None:
        planner.add_plan("P1", "Legal review")
        planner.add_plan("P2", "Hiring")
        planner.my_tasks = [
            {"id": "T1", "planId": "P1"},
            {"id": "T2", "planId": "P1"},
            {"id": "T3", "planId": "P2"},
            {"id": "T4", "planId": "P404"},
        ]
        planner.fail("GET", "/me/planner/plans", 403, "Forbidden")

        listing = resolver.list_plans()

        assert listing.origin == "derived"
        assert [p.title for p in listing.plans] == ["Legal review", "Hiring"]
        assert listing.skipped == 1
        # duplicates collapsed before fetching
        assert planner.requests.count(("GET", "/planner/plans/P1")) == 1

    def test_other_listing_failure_raises(self, resolver: ResourceResolver, planner) -> None:
        planner.fail("GET", "/me/planner/plans", 500, "Internal error")
        with pytest.raises(ResolutionError) as excinfo:
            resolver.list_plans()
        assert isinstance(excinfo.value.cause, GraphError)
        assert ("GET", "/me/planner/tasks") not in planner.requests

    def test_derived_listing_with_tasks_failure(self, resolver: ResourceResolver, planner) -> None:
        planner.fail("GET", "/me/planner/plans", 403)
        planner.fail("GET", "/me/planner/tasks", 403)
        with pytest.raises(ResolutionError):
            resolver.list_plans()


class TestListAssignees:
    def test_group_members_only_users(self, resolver: ResourceResolver, planner) -> None:
        planner.add_plan("P1", "Legal review", group_id="G1")
        planner.members["G1"] = [
            {"@odata.type": _USER, "id": "U1", "displayName": "Ada"},
            {"@odata.type": "#microsoft.graph.device", "id": "D1", "displayName": "Printer"},
            {"@odata.type": _USER, "id": "U2", "displayName": "Grace"},
            {"id": "X1", "displayName": "No type annotation"},
        ]
        result = resolver.list_assignees("P1")
        assert result.origin is AssigneeOrigin.GROUP
        assert [c.id for c in result.candidates] == ["U1", "U2"]
        assert not result.degraded

    def test_empty_group_is_not_degraded(self, resolver: ResourceResolver, planner) -> None:
        planner.add_plan("P1", "Legal review")
        result = resolver.list_assignees("P1")
        assert result.origin is AssigneeOrigin.GROUP
        assert result.candidates == []

    def test_forbidden_members_fall_back_to_me(self, resolver: ResourceResolver, planner) -> None:
        planner.add_plan("P1", "Legal review", group_id="G1")
        planner.fail("GET", "/groups/G1/members", 403, "Insufficient privileges to complete the operation.")

        result = resolver.list_assignees("P1")

        assert result.degraded
        assert result.origin is AssigneeOrigin.FALLBACK
        assert [(c.id, c.display_name) for c in result.candidates] == [("U-me", "Me Myself")]
        assert "Insufficient privileges" in result.reason

    def test_plan_without_group_falls_back(self, resolver: ResourceResolver, planner) -> None:
        planner.add_plan("P1", "Personal", group_id=None)
        result = resolver.list_assignees("P1")
        assert result.degraded
        assert result.reason == "plan has no owning group"

    def test_forbidden_plan_lookup_falls_back(self, resolver: ResourceResolver, planner) -> None:
        planner.fail("GET", "/planner/plans/P1", 403)
        result = resolver.list_assignees("P1")
        assert result.origin is AssigneeOrigin.FALLBACK

    def test_member_server_error_raises(self, resolver: ResourceResolver, planner) -> None:
        planner.add_plan("P1", "Legal review")
        planner.fail("GET", "/groups/G1/members", 503, "Service unavailable")
        with pytest.raises(ResolutionError):
            resolver.list_assignees("P1")

    def test_fallback_failure_raises(self, resolver: ResourceResolver, planner) -> None:
        planner.add_plan("P1", "Legal review")
        planner.fail("GET", "/groups/G1/members", 403)
        planner.fail("GET", "/me", 401, "Token expired")
        with pytest.raises(ResolutionError):
            resolver.list_assignees("P1")

    def test_uses_group_from_last_listing(self, resolver: ResourceResolver, planner) -> None:
        planner.add_plan("P1", "Legal review", group_id="G1")
        resolver.list_plans()
        resolver.list_assignees("P1")
        assert ("GET", "/planner/plans/P1") not in planner.requests
        assert ("GET", "/groups/G1/members") in planner.requests


class TestWithMockService:
    def test_strategies_tried_in_order(self) -> None:
        service = MagicMock()
        service.get_plan.return_value = Plan(id="P1", title="t", owner_group_id="G1")
        service.list_group_members.side_effect = GraphError("get-group-members", 403, "denied")
        service.get_current_user.return_value = DirectoryMember(id="U1", display_name="Me", principal_type="user")

        result = ResourceResolver(service).list_assignees("P1")

        service.list_group_members.assert_called_once_with("G1")
        assert result.reason == "group members not accessible: denied"
        assert len(result.candidates) == 1
