"""Abstract base class for the directory/task service."""

from abc import ABC, abstractmethod
from datetime import datetime

from autoplanner.models import Bucket, CreatedTask, DirectoryMember, Plan


class TaskService(ABC):
    @abstractmethod
    def list_my_plans(self) -> list[Plan]: ...

    @abstractmethod
    def list_my_task_plan_ids(self) -> list[str]: ...

    @abstractmethod
    def get_plan(self, plan_id: str) -> Plan: ...

    @abstractmethod
    def list_plan_buckets(self, plan_id: str) -> list[Bucket]: ...

    @abstractmethod
    def list_group_members(self, group_id: str) -> list[DirectoryMember]: ...

    @abstractmethod
    def get_current_user(self) -> DirectoryMember: ...

    @abstractmethod
    def create_task(
        self,
        plan_id: str,
        title: str,
        bucket_id: str | None,
        due: datetime | None,
    ) -> CreatedTask: ...

    @abstractmethod
    def get_task_version(self, task_id: str) -> str: ...

    @abstractmethod
    def get_task_details_version(self, task_id: str) -> str: ...

    @abstractmethod
    def update_task_details(self, task_id: str, version_tag: str, description: str) -> str:
        """Conditionally update the description; returns the details' new tag."""

    @abstractmethod
    def update_task_assignments(self, task_id: str, version_tag: str, assignments: dict) -> str:
        """Conditionally update assignments; returns the task's new tag."""
