"""Task schemas for recurring-task series management."""
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class Recurrence(str, Enum):
    """Recurrence rule of a task."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    CUSTOM = "custom"


class BaseUnit(str, Enum):
    """Base frequency a custom recurrence multiplies."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class EditMode(str, Enum):
    """Scope of a recurrence-settings edit."""
    ALL = "all"
    THIS_AND_FOLLOWING = "thisAndFollowing"


class DeleteScope(str, Enum):
    """Which occurrences of a series a bulk delete removes."""
    FUTURE = "future"
    OPEN = "open"


def normalize_tags(tags: Optional[List[str]]) -> List[str]:
    """Lowercase every tag."""
    return [tag.lower() for tag in (tags or [])]


def _none_recurrence(value: Any) -> Any:
    # "none" and "" are accepted on input and stored as no rule at all
    if isinstance(value, str) and value.strip().lower() in ("", "none"):
        return None
    return value


def utc_now() -> datetime:
    """Timestamp used for created_at / last_modified stamps."""
    return datetime.now(timezone.utc)


class Subtask(BaseModel):
    """A checklist item inside a task."""
    id: str
    text: str
    completed: bool = False


class Task(BaseModel):
    """A single occurrence of work, possibly one instance of a recurring series."""
    id: str
    title: str = Field(..., min_length=1)
    due_date: Optional[date] = None  # None means "someday"
    completed: bool = False
    subtasks: List[Subtask] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    last_modified: datetime = Field(default_factory=utc_now)
    recurrence: Optional[Recurrence] = None
    recurrence_multiplier: Optional[int] = None  # custom rule only
    custom_frequency: Optional[BaseUnit] = None  # custom rule only
    series_id: Optional[str] = None
    is_last_instance: bool = False
    auto_renew: bool = False

    normalize_recurrence = field_validator("recurrence", mode="before")(_none_recurrence)

    @field_validator("tags")
    @classmethod
    def lowercase_tags(cls, value: List[str]) -> List[str]:
        return normalize_tags(value)


class TaskTemplate(BaseModel):
    """Fields shared by every occurrence the generator produces."""
    title: str = ""
    tags: List[str] = Field(default_factory=list)
    subtasks: List[Subtask] = Field(default_factory=list)
    recurrence: Optional[Recurrence] = None
    recurrence_multiplier: Optional[int] = None
    custom_frequency: Optional[BaseUnit] = None
    created_at: Optional[datetime] = None
    series_id: Optional[str] = None

    normalize_recurrence = field_validator("recurrence", mode="before")(_none_recurrence)

    @classmethod
    def from_task(cls, task: Task, **overrides: Any) -> "TaskTemplate":
        """Build a template from an existing occurrence, with field overrides applied."""
        data = task.model_dump(include=set(cls.model_fields))
        data.update(overrides)
        return cls(**data)


class TaskCreate(BaseModel):
    """Schema for adding a task (recurring or not)."""
    title: str = Field(..., min_length=1, max_length=200)
    due_date: Optional[date] = None
    subtasks: List[Subtask] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list, max_length=10)
    recurrence: Optional[Recurrence] = None
    recurrence_multiplier: Optional[int] = Field(None, ge=1, le=50)
    custom_frequency: Optional[BaseUnit] = None

    normalize_recurrence = field_validator("recurrence", mode="before")(_none_recurrence)


class TaskUpdate(BaseModel):
    """Schema for partial task updates.

    Only explicitly set fields count as changes. ``is_drag_drop_move``,
    ``edit_mode`` and ``propagate_subtasks`` describe how the change is
    applied and are never written onto a task.
    """
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    due_date: Optional[date] = None
    completed: Optional[bool] = None
    subtasks: Optional[List[Subtask]] = None
    tags: Optional[List[str]] = Field(None, max_length=10)
    recurrence: Optional[Recurrence] = None
    recurrence_multiplier: Optional[int] = Field(None, ge=1, le=50)
    custom_frequency: Optional[BaseUnit] = None
    auto_renew: Optional[bool] = None

    is_drag_drop_move: bool = False
    edit_mode: Optional[EditMode] = None
    propagate_subtasks: Optional[bool] = None

    normalize_recurrence = field_validator("recurrence", mode="before")(_none_recurrence)

    @field_validator("title", "completed", "subtasks", "tags", "auto_renew")
    @classmethod
    def reject_null(cls, value: Any) -> Any:
        # Omitted means unchanged; these fields have no null value
        if value is None:
            raise ValueError("may not be null")
        return value

    def changes(self) -> Dict[str, Any]:
        """Explicitly set task fields, as a dict."""
        return self.model_dump(
            exclude_unset=True,
            exclude={"is_drag_drop_move", "edit_mode", "propagate_subtasks"},
        )


class TaskResponse(Task):
    """Schema for task API responses."""

    model_config = {"from_attributes": True}


class RenewalNoticeResponse(BaseModel):
    """Transient "series renewed" banner payload."""
    task_title: str
    count: int
