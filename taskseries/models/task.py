"""Task model for SQLModel."""
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import JSON, Column, Date, String
from sqlmodel import Field, SQLModel

from taskseries.schemas.task import Subtask, Task, utc_now


class TaskRecord(SQLModel, table=True):
    """Stored row for one task occurrence."""

    __tablename__ = "tasks"

    id: str = Field(sa_column=Column(String, primary_key=True))
    user_id: str = Field(sa_column=Column(String, index=True, nullable=False))
    title: str = Field(min_length=1)
    due_date: Optional[date] = Field(default=None, sa_column=Column(Date, nullable=True))  # calendar date only
    completed: bool = Field(default=False)
    subtasks: List[dict] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=utc_now)
    last_modified: datetime = Field(default_factory=utc_now)

    recurrence: Optional[str] = Field(default=None, max_length=20)  # daily, weekly, monthly, quarterly, yearly, custom
    recurrence_group_id: Optional[str] = Field(default=None, sa_column=Column(String, index=True, nullable=True))
    recurrence_multiplier: Optional[int] = Field(default=None)
    custom_frequency: Optional[str] = Field(default=None, max_length=20)
    is_last_instance: bool = Field(default=False)
    auto_renew: bool = Field(default=False)

    @classmethod
    def from_task(cls, task: Task, user_id: str) -> "TaskRecord":
        """Convert an in-memory task into a row owned by ``user_id``."""
        return cls(
            id=task.id,
            user_id=user_id,
            title=task.title,
            due_date=task.due_date,
            completed=task.completed,
            subtasks=[subtask.model_dump() for subtask in task.subtasks],
            tags=list(task.tags),
            created_at=task.created_at,
            last_modified=task.last_modified,
            recurrence=task.recurrence.value if task.recurrence else None,
            recurrence_group_id=task.series_id,
            recurrence_multiplier=task.recurrence_multiplier,
            custom_frequency=task.custom_frequency.value if task.custom_frequency else None,
            is_last_instance=task.is_last_instance,
            auto_renew=task.auto_renew,
        )

    def to_task(self) -> Task:
        """Convert the row back into an in-memory task."""
        return Task(
            id=self.id,
            title=self.title,
            due_date=self.due_date,
            completed=self.completed,
            subtasks=[Subtask(**subtask) for subtask in (self.subtasks or [])],
            tags=self.tags or [],
            created_at=self.created_at,
            last_modified=self.last_modified,
            recurrence=self.recurrence,
            recurrence_multiplier=self.recurrence_multiplier,
            custom_frequency=self.custom_frequency,
            series_id=self.recurrence_group_id,
            is_last_instance=self.is_last_instance or False,
            auto_renew=self.auto_renew or False,
        )
