"""Status output: the only UI surface the core writes to."""

from typing import Protocol

from rich.console import Console
from rich.markup import escape

from autoplanner.models import AssigneeList, CreatedTask, PlanListing


class StatusSink(Protocol):
    def set_status(self, text: str, is_error: bool = False) -> None: ...


class RichStatusSink:
    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console()

    def set_status(self, text: str, is_error: bool = False) -> None:
        if is_error:
            self._console.print(f"[red]{escape(text)}[/red]")
        else:
            self._console.print(f"[dim]{escape(text)}[/dim]")


class NullStatusSink:
    def set_status(self, text: str, is_error: bool = False) -> None:
        pass


def describe_outcome(task: CreatedTask) -> tuple[str, bool]:
    """Return the terminal message for a pipeline run and whether it is an error."""
    if not task.errors:
        return f'Task "{task.title}" created.', False
    failures = "; ".join(str(error) for error in task.errors)
    return f'Task "{task.title}" created, but: {failures}', True


def describe_plans(listing: PlanListing) -> str:
    if not listing.plans:
        return "No Planner plans found or you may not have access to any."
    message = f"{len(listing.plans)} plan(s) loaded."
    if listing.origin == "derived":
        message += " (derived from your tasks"
        message += f"; {listing.skipped} could not be read)" if listing.skipped else ")"
    return message


def describe_assignees(assignees: AssigneeList) -> str:
    if assignees.degraded:
        return f"Group members unavailable ({assignees.reason}); only you can be assigned."
    if not assignees.candidates:
        return "No assignees found in this plan's group."
    return f"{len(assignees.candidates)} assignee(s) loaded."
