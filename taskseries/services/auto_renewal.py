"""
Auto-Renewal Trigger

Completing the last occurrence of an auto-renewing series starts a new
series one day after it.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from taskseries.config import RECURRING_BATCH_SIZE
from taskseries.schemas.task import Task, TaskTemplate
from taskseries.services.date_arithmetic import add_days
from taskseries.services.recurrence_generator import generate_instances
from taskseries.utils.ids import new_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenewalNotice:
    """Transient banner naming the renewed task and how many occurrences were added."""
    task_title: str
    count: int
    expires_at: Optional[datetime] = None


def should_renew(task: Task) -> bool:
    return bool(
        task.is_last_instance
        and task.auto_renew
        and task.recurrence
        and task.due_date
        and task.series_id
    )


def renew_if_needed(
    task: Task,
    all_tasks: List[Task],
    *,
    id_factory: Callable[[], str] = new_id,
    now: Optional[datetime] = None,
    batch_size: int = RECURRING_BATCH_SIZE,
) -> List[Task]:
    """
    Generate the next batch for a completed last instance.

    The gap between batches is always one calendar day, whatever the
    cadence, and the new batch gets a fresh series id. The completed task
    keeps its last-instance flag as the final row of its closed series.

    Args:
        task: The occurrence that was just completed
        all_tasks: Current collection; the newest copy of ``task`` in it wins

    Returns:
        New occurrences to append, or an empty list when renewal does not apply
    """
    current = next((t for t in all_tasks if t.id == task.id), task)
    if not should_renew(current):
        return []

    template = TaskTemplate.from_task(
        current,
        series_id=id_factory(),
        subtasks=[subtask.model_copy(update={"completed": False}) for subtask in current.subtasks],
    )
    renewed = generate_instances(
        template,
        add_days(current.due_date, 1),
        current.recurrence,
        batch_size,
        id_factory=id_factory,
        now=now,
    )
    logger.info(
        f"Auto-renewed '{current.title}': {len(renewed)} occurrences from "
        f"{add_days(current.due_date, 1)} in new series {template.series_id}"
    )
    return renewed
