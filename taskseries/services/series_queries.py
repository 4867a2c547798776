"""Series membership queries over a task collection."""
from datetime import date
from typing import Iterable, List, Optional

from taskseries.schemas.task import Task


def series_members(tasks: Iterable[Task], series_id: Optional[str]) -> List[Task]:
    """All occurrences sharing ``series_id``, in collection order."""
    if not series_id:
        return []
    return [task for task in tasks if task.series_id == series_id]


def first_instance(tasks: Iterable[Task], series_id: Optional[str]) -> Optional[Task]:
    """Occurrence with the earliest due date; undated tasks never beat dated ones."""
    earliest = None
    for task in series_members(tasks, series_id):
        if earliest is None or earliest.due_date is None:
            earliest = task
        elif task.due_date is not None and task.due_date < earliest.due_date:
            earliest = task
    return earliest


def last_instance(tasks: Iterable[Task], series_id: Optional[str]) -> Optional[Task]:
    """Occurrence with the latest due date; undated tasks never beat dated ones."""
    latest = None
    for task in series_members(tasks, series_id):
        if latest is None or latest.due_date is None:
            latest = task
        elif task.due_date is not None and task.due_date > latest.due_date:
            latest = task
    return latest


def is_removable(task: Task, today: date) -> bool:
    """
    Whether regeneration may replace ``task``.

    Dated occurrences on or after today are removable whatever their
    completion state; earlier ones only while incomplete. Undated
    occurrences are outside regeneration scope.
    """
    if task.due_date is None:
        return False
    if task.due_date >= today:
        return True
    return not task.completed


def removable_for_regeneration(tasks: Iterable[Task], series_id: Optional[str], today: date) -> List[Task]:
    """Future and incomplete-overdue occurrences of a series."""
    return [task for task in series_members(tasks, series_id) if is_removable(task, today)]


def future_occurrences(tasks: Iterable[Task], series_id: Optional[str], today: date) -> List[Task]:
    """Occurrences dated today or later."""
    return [
        task for task in series_members(tasks, series_id)
        if task.due_date is not None and task.due_date >= today
    ]
