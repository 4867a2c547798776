"""
Series Mutation Orchestrator

Decides how an add / update / delete / extend action changes the task
collection and computes the resulting collection. Every planner is
stateless: it reads the full collection and returns a ``SeriesChange``
describing the new collection plus the rows to delete and upsert. Applying
the change to storage is the task session's job.

Update decision order for an existing task:

1. Recurrence settings changed (rule, multiplier or base unit) and a rule
   and due date are known: regenerate the series, either ``all`` from the
   first instance or ``thisAndFollowing`` from the edited occurrence.
2. Due date of the first instance changed: regenerate from the new date,
   keeping the series id and rule.
3. Task belongs to a series: propagate title, tags and (when requested)
   subtasks to the future / incomplete-overdue siblings.
4. Otherwise, or for a drag-and-drop move: update the single row.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from taskseries.config import RECURRING_BATCH_SIZE
from taskseries.schemas.task import (
    DeleteScope,
    EditMode,
    Recurrence,
    Task,
    TaskCreate,
    TaskTemplate,
    normalize_tags,
    utc_now,
)
from taskseries.services.date_arithmetic import add_days
from taskseries.services.errors import TaskNotFoundError
from taskseries.services.recurrence_generator import generate_instances
from taskseries.services.series_queries import (
    first_instance,
    future_occurrences,
    is_removable,
    last_instance,
    removable_for_regeneration,
    series_members,
)
from taskseries.utils.ids import new_id

logger = logging.getLogger(__name__)

RECURRENCE_SETTING_FIELDS = ("recurrence", "recurrence_multiplier", "custom_frequency")


@dataclass(frozen=True)
class PlainUpdate:
    """An ordinary edit; recurrence edits default to "this and following"."""


@dataclass(frozen=True)
class DragMove:
    """Reschedule of one occurrence from a calendar view; never touches siblings."""


@dataclass(frozen=True)
class SeriesUpdate:
    """An edit whose series scope the user chose explicitly."""
    edit_mode: EditMode = EditMode.THIS_AND_FOLLOWING
    propagate_subtasks: bool = False


UpdateIntent = Union[PlainUpdate, DragMove, SeriesUpdate]


class ChangeKind(str, Enum):
    ADD = "add"
    ADD_SERIES = "add_series"
    REGENERATE_ALL = "regenerate_all"
    REGENERATE_FOLLOWING = "regenerate_following"
    REGENERATE_FROM_FIRST = "regenerate_from_first"
    PROPAGATE = "propagate"
    SINGLE = "single"
    DELETE = "delete"
    EXTEND = "extend"
    RENEW = "renew"


REGENERATION_KINDS = (
    ChangeKind.REGENERATE_ALL,
    ChangeKind.REGENERATE_FOLLOWING,
    ChangeKind.REGENERATE_FROM_FIRST,
)


@dataclass
class SeriesChange:
    """Outcome of a planned mutation.

    ``removed`` rows must be deleted from storage before ``upserts`` are saved.
    """
    kind: ChangeKind
    tasks: List[Task]
    removed: List[Task] = field(default_factory=list)
    upserts: List[Task] = field(default_factory=list)

    @property
    def is_regeneration(self) -> bool:
        return self.kind in REGENERATION_KINDS

    @property
    def removed_ids(self) -> List[str]:
        return [task.id for task in self.removed]


def find_task(tasks: List[Task], task_id: str) -> Task:
    """Return the task with ``task_id`` or raise TaskNotFoundError."""
    for task in tasks:
        if task.id == task_id:
            return task
    raise TaskNotFoundError(task_id)


def apply_changes(task: Task, changes: Mapping[str, Any], now: datetime) -> Task:
    """Return a validated copy of ``task`` with ``changes`` applied and last_modified stamped."""
    data = task.model_dump()
    data.update(changes)
    data["last_modified"] = now
    return Task.model_validate(data)


def recurrence_settings_changed(existing: Task, changes: Mapping[str, Any]) -> bool:
    return any(
        name in changes and changes[name] != getattr(existing, name)
        for name in RECURRENCE_SETTING_FIELDS
    )


def subtasks_changed(existing: Task, changes: Mapping[str, Any]) -> bool:
    if changes.get("subtasks") is None:
        return False
    proposed = Task.model_validate({**existing.model_dump(), "subtasks": changes["subtasks"]}).subtasks
    return proposed != existing.subtasks


def _template(existing: Task, changes: Mapping[str, Any], series_id: str) -> TaskTemplate:
    merged = {**existing.model_dump(), **changes}
    merged["series_id"] = series_id
    # Regenerated occurrences keep the original creation stamp
    merged["created_at"] = existing.created_at
    return TaskTemplate(**{name: merged[name] for name in TaskTemplate.model_fields if name in merged})


def _without(tasks: List[Task], removed: List[Task]) -> List[Task]:
    removed_ids = {task.id for task in removed}
    return [task for task in tasks if task.id not in removed_ids]


def plan_add(
    fields: TaskCreate,
    tasks: List[Task],
    *,
    id_factory: Callable[[], str] = new_id,
    now: Optional[datetime] = None,
    batch_size: int = RECURRING_BATCH_SIZE,
) -> SeriesChange:
    """
    Plan adding a task.

    A rule with a due date materializes a full batch under a fresh series id.
    A rule without a due date is dropped and a single plain task is created.
    """
    now = now or utc_now()

    if fields.recurrence and fields.due_date:
        template = TaskTemplate(
            title=fields.title,
            tags=fields.tags,
            subtasks=fields.subtasks,
            recurrence=fields.recurrence,
            recurrence_multiplier=fields.recurrence_multiplier,
            custom_frequency=fields.custom_frequency,
            series_id=id_factory(),
        )
        created = generate_instances(
            template, fields.due_date, fields.recurrence, batch_size, id_factory=id_factory, now=now
        )
        logger.info(
            f"Creating {len(created)} occurrences for '{fields.title}' with "
            f"{fields.recurrence.value} recurrence starting {fields.due_date}"
        )
        return SeriesChange(ChangeKind.ADD_SERIES, tasks=tasks + created, upserts=created)

    if fields.recurrence:
        logger.info(f"Ignoring {fields.recurrence.value} recurrence for '{fields.title}': no due date")

    task = Task(
        id=id_factory(),
        title=fields.title,
        due_date=fields.due_date,
        subtasks=fields.subtasks,
        tags=fields.tags,
        created_at=now,
        last_modified=now,
    )
    return SeriesChange(ChangeKind.ADD, tasks=tasks + [task], upserts=[task])


def regenerate_series(
    tasks: List[Task],
    existing: Task,
    changes: Mapping[str, Any],
    recurrence: Recurrence,
    start_date: date,
    edit_mode: EditMode,
    *,
    today: date,
    id_factory: Callable[[], str] = new_id,
    now: Optional[datetime] = None,
    batch_size: int = RECURRING_BATCH_SIZE,
    kind: Optional[ChangeKind] = None,
) -> SeriesChange:
    """
    Replace occurrences of ``existing``'s series with a fresh batch.

    ``all`` removes every occurrence, completed history included, and starts
    a new series id. ``thisAndFollowing`` removes only the removable
    occurrences and keeps the series id. A task outside any series is
    replaced by the new batch.
    """
    if existing.series_id is None:
        removed = [existing]
    elif edit_mode == EditMode.ALL:
        removed = series_members(tasks, existing.series_id)
    else:
        removed = removable_for_regeneration(tasks, existing.series_id, today)

    if edit_mode == EditMode.THIS_AND_FOLLOWING and existing.series_id:
        series_id = existing.series_id
    else:
        series_id = id_factory()

    created = generate_instances(
        _template(existing, changes, series_id),
        start_date,
        recurrence,
        batch_size,
        id_factory=id_factory,
        now=now,
    )
    if kind is None:
        kind = ChangeKind.REGENERATE_ALL if edit_mode == EditMode.ALL else ChangeKind.REGENERATE_FOLLOWING

    logger.debug(
        f"Regenerating series {existing.series_id} ({edit_mode.value}): "
        f"removing {len(removed)}, creating {len(created)} from {start_date}"
    )
    return SeriesChange(kind, tasks=_without(tasks, removed) + created, removed=removed, upserts=created)


def plan_update(
    task_id: str,
    changes: Mapping[str, Any],
    tasks: List[Task],
    intent: UpdateIntent = PlainUpdate(),
    *,
    today: date,
    id_factory: Callable[[], str] = new_id,
    now: Optional[datetime] = None,
    batch_size: int = RECURRING_BATCH_SIZE,
) -> SeriesChange:
    """Plan an update to an existing task following the module's decision order."""
    now = now or utc_now()
    existing = find_task(tasks, task_id)
    changes = dict(changes)
    is_drag_move = isinstance(intent, DragMove)
    edit_mode = intent.edit_mode if isinstance(intent, SeriesUpdate) else EditMode.THIS_AND_FOLLOWING

    first = first_instance(tasks, existing.series_id)
    is_first = first is None or first.id == existing.id
    new_due = changes.get("due_date")

    if not is_drag_move and recurrence_settings_changed(existing, changes):
        recurrence = changes.get("recurrence", existing.recurrence)
        if recurrence and (new_due or existing.due_date):
            if edit_mode == EditMode.ALL and first is not None:
                start_date = new_due or first.due_date or existing.due_date
            else:
                start_date = new_due or existing.due_date
            return regenerate_series(
                tasks, existing, changes, recurrence, start_date, edit_mode,
                today=today, id_factory=id_factory, now=now, batch_size=batch_size,
            )

    due_changed = "due_date" in changes and new_due != existing.due_date
    if (not is_drag_move and due_changed and new_due and is_first
            and existing.recurrence and existing.series_id):
        return regenerate_series(
            tasks, existing, changes, existing.recurrence, new_due, EditMode.THIS_AND_FOLLOWING,
            today=today, id_factory=id_factory, now=now, batch_size=batch_size,
            kind=ChangeKind.REGENERATE_FROM_FIRST,
        )

    if existing.series_id and not is_drag_move:
        propagate_subtasks = isinstance(intent, SeriesUpdate) and intent.propagate_subtasks
        return _propagate(existing, changes, tasks, propagate_subtasks, today=today, now=now)

    updated = apply_changes(existing, changes, now)
    return SeriesChange(
        ChangeKind.SINGLE,
        tasks=[updated if task.id == existing.id else task for task in tasks],
        upserts=[updated],
    )


def _propagate(
    existing: Task,
    changes: Dict[str, Any],
    tasks: List[Task],
    propagate_subtasks: bool,
    *,
    today: date,
    now: datetime,
) -> SeriesChange:
    shared: Dict[str, Any] = {}
    if "title" in changes:
        shared["title"] = changes["title"]
    if changes.get("tags") is not None:
        shared["tags"] = normalize_tags(changes["tags"])
    if propagate_subtasks and subtasks_changed(existing, changes):
        edited = apply_changes(existing, {"subtasks": changes["subtasks"]}, now).subtasks
        shared["subtasks"] = [subtask.model_copy(update={"completed": False}) for subtask in edited]

    own_changes = dict(changes)
    if "recurrence" in changes and changes["recurrence"] is None:
        # Removing the rule detaches this occurrence from its series
        own_changes.update(
            series_id=None,
            is_last_instance=False,
            auto_renew=False,
            recurrence_multiplier=None,
            custom_frequency=None,
        )

    result, upserts = [], []
    for task in tasks:
        if task.id == existing.id:
            task = apply_changes(task, own_changes, now)
            upserts.append(task)
        elif shared and task.series_id == existing.series_id and is_removable(task, today):
            task = apply_changes(task, shared, now)
            upserts.append(task)
        result.append(task)

    logger.debug(
        f"Propagating {sorted(shared)} from task {existing.id} to "
        f"{len(upserts) - 1} sibling(s) in series {existing.series_id}"
    )
    return SeriesChange(ChangeKind.PROPAGATE, tasks=result, upserts=upserts)


def plan_delete(task_id: str, tasks: List[Task], *, today: date) -> SeriesChange:
    """
    Plan deleting a task.

    A recurring occurrence takes its series' open occurrences with it;
    completed past occurrences other than the targeted one survive.
    """
    target = find_task(tasks, task_id)
    if target.series_id:
        removed = removable_for_regeneration(tasks, target.series_id, today)
        if target.id not in {task.id for task in removed}:
            removed.append(target)
    else:
        removed = [target]
    return SeriesChange(ChangeKind.DELETE, tasks=_without(tasks, removed), removed=removed)


def plan_delete_series(
    series_id: str,
    scope: DeleteScope,
    tasks: List[Task],
    *,
    today: date,
) -> SeriesChange:
    """Plan deleting a series' ``future`` (dated today or later) or ``open`` occurrences."""
    if DeleteScope(scope) == DeleteScope.FUTURE:
        removed = future_occurrences(tasks, series_id, today)
    else:
        removed = removable_for_regeneration(tasks, series_id, today)
    return SeriesChange(ChangeKind.DELETE, tasks=_without(tasks, removed), removed=removed)


def plan_extend(
    task_id: str,
    tasks: List[Task],
    *,
    id_factory: Callable[[], str] = new_id,
    now: Optional[datetime] = None,
    batch_size: int = RECURRING_BATCH_SIZE,
) -> Optional[SeriesChange]:
    """
    Plan appending the next batch to a task's series.

    The batch starts the day after the current last instance, keeps the
    series id, and takes over the last-instance marker. Returns None when
    the task is not part of a dated recurring series.
    """
    now = now or utc_now()
    task = find_task(tasks, task_id)
    if not task.recurrence or not task.due_date or not task.series_id:
        return None

    last = last_instance(tasks, task.series_id)
    if last is None or last.due_date is None:
        return None

    template = TaskTemplate.from_task(
        task,
        series_id=task.series_id,
        subtasks=[subtask.model_copy(update={"completed": False}) for subtask in task.subtasks],
    )
    created = generate_instances(
        template, add_days(last.due_date, 1), task.recurrence, batch_size, id_factory=id_factory, now=now
    )
    if not created:
        return None

    previous_last = last.model_copy(update={"is_last_instance": False, "last_modified": now})
    result = [previous_last if t.id == last.id else t for t in tasks] + created
    return SeriesChange(ChangeKind.EXTEND, tasks=result, upserts=[previous_last] + created)
