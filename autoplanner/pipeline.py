"""Task creation: bucket → create → description → assignment, with partial success.

Once the task exists it is never deleted here. Description and assignment
failures are attached to the returned CreatedTask instead of being raised.
"""

import logging
import threading
from datetime import UTC, date, datetime, time

from autoplanner.errors import (
    AssignmentError,
    AutoplannerError,
    BucketResolutionError,
    CreationError,
    DescriptionError,
    TaskCancelledError,
    TaskError,
    ValidationError,
    VersionTagError,
)
from autoplanner.models import CreatedTask, TaskDraft
from autoplanner.services.base import TaskService
from autoplanner.status import NullStatusSink, StatusSink

logger = logging.getLogger(__name__)

ASSIGNMENT_ODATA_TYPE = "#microsoft.graph.plannerAssignment"
ASSIGNMENT_ORDER_HINT = " !"


def normalize_due(value: date | datetime | None) -> datetime | None:
    """A bare calendar date becomes noon UTC so it shows on the same day everywhere."""
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)
    return datetime.combine(value, time(12, 0), tzinfo=UTC)


def validate_draft(draft: TaskDraft) -> None:
    problems = []
    if not draft.title.strip():
        problems.append("Task title is missing.")
    if not draft.plan_id.strip():
        problems.append("Please select a Planner plan.")
    if problems:
        raise ValidationError(problems)


def assignment_record(assignee_id: str) -> dict:
    return {
        assignee_id: {
            "@odata.type": ASSIGNMENT_ODATA_TYPE,
            "orderHint": ASSIGNMENT_ORDER_HINT,
        }
    }


class TaskCreationPipeline:
    def __init__(
        self,
        service: TaskService,
        status: StatusSink | None = None,
        auto_bucket: bool = True,
    ) -> None:
        self._service = service
        self._status = status or NullStatusSink()
        self._auto_bucket = auto_bucket

    def create_task(self, draft: TaskDraft, cancel: threading.Event | None = None) -> CreatedTask:
        validate_draft(draft)
        errors: list[TaskError] = []

        self._check_cancelled(cancel, None)
        bucket_id = draft.bucket_id or self._first_bucket(draft.plan_id, errors)

        self._check_cancelled(cancel, None)
        self._status.set_status("Creating task...")
        try:
            task = self._service.create_task(
                plan_id=draft.plan_id,
                title=draft.title,
                bucket_id=bucket_id,
                due=normalize_due(draft.due_date),
            )
        except AutoplannerError as exc:
            raise CreationError(exc) from exc
        logger.info("Created task %s in plan %s", task.id, draft.plan_id)

        version_tag = task.version_tag
        tag_stale = version_tag is None

        if draft.description:
            self._check_cancelled(cancel, self._result(task, version_tag, errors))
            self._status.set_status("Adding task description...")
            # a details write also changes the task ETag
            tag_stale = True
            try:
                details_tag = self._service.get_task_details_version(task.id)
                self._service.update_task_details(task.id, details_tag, draft.description)
            except AutoplannerError as exc:
                logger.warning("Description update failed for task %s: %s", task.id, exc)
                errors.append(DescriptionError(exc))

        if draft.assignee_id:
            self._check_cancelled(cancel, self._result(task, version_tag, errors))
            self._status.set_status("Assigning task...")
            try:
                if tag_stale:
                    version_tag = self._service.get_task_version(task.id)
                    tag_stale = False
                version_tag = self._service.update_task_assignments(
                    task.id, version_tag, assignment_record(draft.assignee_id)
                )
            except AutoplannerError as exc:
                logger.warning("Assignment failed for task %s: %s", task.id, exc)
                errors.append(AssignmentError(exc))

        if tag_stale:
            try:
                version_tag = self._service.get_task_version(task.id)
            except AutoplannerError as exc:
                logger.warning("Could not read the version of task %s: %s", task.id, exc)
                errors.append(VersionTagError(exc))
                version_tag = None

        return self._result(task, version_tag, errors)

    def _first_bucket(self, plan_id: str, errors: list[TaskError]) -> str | None:
        if not self._auto_bucket:
            return None
        try:
            buckets = self._service.list_plan_buckets(plan_id)
        except AutoplannerError as exc:
            logger.warning("Bucket lookup failed for plan %s: %s", plan_id, exc)
            errors.append(BucketResolutionError(exc))
            return None
        return buckets[0].id if buckets else None

    def _result(self, task: CreatedTask, version_tag: str | None, errors: list[TaskError]) -> CreatedTask:
        result = task.model_copy(update={"version_tag": version_tag, "errors": tuple(errors)})
        for error in errors:
            error.partial_result = result
        return result

    def _check_cancelled(self, cancel: threading.Event | None, partial: CreatedTask | None) -> None:
        if cancel is not None and cancel.is_set():
            logger.info("Task creation abandoned%s", f" after creating {partial.id}" if partial else "")
            raise TaskCancelledError(partial_result=partial)
