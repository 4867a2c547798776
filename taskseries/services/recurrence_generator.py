"""
Recurrence Instance Generator

Materializes a batch of dated occurrences for a recurring task.
"""
import logging
from datetime import date, datetime
from typing import Callable, List, Optional, Union

from taskseries.config import RECURRING_BATCH_SIZE
from taskseries.schemas.task import Recurrence, Subtask, Task, TaskTemplate, normalize_tags, utc_now
from taskseries.services.date_arithmetic import generate_date_sequence, resolve_cadence
from taskseries.utils.ids import new_id

logger = logging.getLogger(__name__)


def _fresh_subtasks(subtasks: List[Subtask]) -> List[Subtask]:
    return [subtask.model_copy(update={"completed": False}) for subtask in subtasks]


def generate_instances(
    template: TaskTemplate,
    start_date: Optional[Union[str, date]],
    recurrence: Optional[Recurrence],
    count: int = RECURRING_BATCH_SIZE,
    *,
    id_factory: Callable[[], str] = new_id,
    now: Optional[datetime] = None,
) -> List[Task]:
    """
    Generate ``count`` occurrences of ``template`` starting at ``start_date``.

    Args:
        template: Shared fields (title, tags, subtasks, custom cadence, series id)
        start_date: Due date of the first occurrence
        recurrence: Rule to step by
        count: Batch size
        id_factory: Produces task ids and, when the template has none, the series id
        now: Timestamp for last_modified (and created_at when the template has none)

    Returns:
        Occurrences ordered by due date, or an empty list when there is no
        rule or no start date
    """
    if not recurrence or not start_date:
        return []

    recurrence = Recurrence(recurrence)
    now = now or utc_now()
    series_id = template.series_id or id_factory()
    is_custom = recurrence == Recurrence.CUSTOM

    unit, multiplier = resolve_cadence(
        recurrence,
        template.recurrence_multiplier if is_custom else None,
        template.custom_frequency if is_custom else None,
    )
    dates = generate_date_sequence(start_date, unit, count, multiplier)
    tags = normalize_tags(template.tags)

    instances = []
    for index, due_date in enumerate(dates):
        instances.append(Task(
            id=id_factory(),
            title=template.title,
            due_date=due_date,
            completed=False,
            # First occurrence keeps the template's checklist state as-is
            subtasks=list(template.subtasks) if index == 0 else _fresh_subtasks(template.subtasks),
            tags=list(tags),
            created_at=template.created_at or now,
            last_modified=now,
            recurrence=recurrence,
            recurrence_multiplier=multiplier if is_custom else None,
            custom_frequency=unit if is_custom else None,
            series_id=series_id,
            is_last_instance=index == len(dates) - 1,
            auto_renew=True,
        ))

    if instances:
        logger.debug(
            f"Generated {len(instances)} {recurrence.value} occurrences of '{template.title}' "
            f"in series {series_id}: {instances[0].due_date} .. {instances[-1].due_date}"
        )
    return instances
