"""
Task Session

Owns one user's in-memory task collection and applies orchestrator plans to
it and to the task store. Every mutation runs to completion on the event
loop; store calls run in a worker thread.

Guards:
- ``is_saving`` is set while a local mutation's store calls are in flight;
  remote change notifications received meanwhile are ignored so a reload
  cannot clobber the state just written.
- ``is_loading`` is set while a reload populates the collection. Loaded
  rows are recorded as the saved snapshot, so they are never written back.
- Loads and mutations take the session lock, so a mutation issued during a
  reload waits for it and plans against the reloaded collection.
"""
import asyncio
import functools
import json
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from taskseries.config import (
    RECURRING_BATCH_SIZE,
    RELOAD_DEBOUNCE_SECONDS,
    RENEWAL_NOTICE_SECONDS,
    UNDO_TIMEOUT_SECONDS,
)
from taskseries.schemas.task import DeleteScope, Task, TaskCreate, utc_now
from taskseries.services.auto_renewal import RenewalNotice, renew_if_needed
from taskseries.services.errors import PersistenceError, TaskValidationError
from taskseries.services.recurrence_validator import RecurrenceValidator
from taskseries.services.series_orchestrator import (
    ChangeKind,
    DragMove,
    PlainUpdate,
    SeriesChange,
    SeriesUpdate,
    UpdateIntent,
    apply_changes,
    find_task,
    plan_add,
    plan_delete,
    plan_delete_series,
    plan_extend,
    plan_update,
    subtasks_changed,
)
from taskseries.services.task_store import TaskStore
from taskseries.utils.logger import series_logger

Confirm = Callable[[str], Awaitable[bool]]
RenewalNotifier = Callable[[RenewalNotice], Awaitable[None]]

SUBTASK_PROPAGATION_PROMPT = "Apply the subtask changes to all future occurrences of this task?"


async def always_confirm(message: str) -> bool:
    return True


def _serialized(method):
    @functools.wraps(method)
    async def wrapper(self, *args, **kwargs):
        async with self._lock:
            return await method(self, *args, **kwargs)
    return wrapper


@dataclass(frozen=True)
class PendingUndo:
    """Rows removed by a delete, restorable until ``expires_at``."""
    task: Task
    tasks: List[Task]
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True)
class PendingCompletion:
    """State of a task before it was marked complete."""
    task: Task
    previous_state: Task


class TaskSession:
    """Series-aware task controller for one signed-in user."""

    def __init__(
        self,
        store: TaskStore,
        confirm: Confirm = always_confirm,
        *,
        notifier: Optional[RenewalNotifier] = None,
        clock: Callable[[], datetime] = utc_now,
        today: Callable[[], date] = date.today,
        batch_size: int = RECURRING_BATCH_SIZE,
        undo_timeout: float = UNDO_TIMEOUT_SECONDS,
        reload_debounce: float = RELOAD_DEBOUNCE_SECONDS,
    ):
        self.store = store
        self.confirm = confirm
        self.notifier = notifier
        self.clock = clock
        self.today = today
        self.batch_size = batch_size
        self.undo_timeout = undo_timeout
        self.reload_debounce = reload_debounce

        self.tasks: List[Task] = []
        self.is_saving = False
        self.is_loading = False
        self.pending_delete: Optional[PendingUndo] = None
        self.pending_completion: Optional[PendingCompletion] = None
        self.renewal_notice: Optional[RenewalNotice] = None

        self._saved_snapshot: Dict[str, str] = {}
        self._reload_task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()

    # Loading

    async def load(self) -> List[Task]:
        """Replace the collection with the store's current rows."""
        if self.is_loading:
            series_logger.debug("Skipping load - already loading")
            return self.tasks

        async with self._lock:
            self.is_loading = True
            try:
                tasks = await asyncio.to_thread(self.store.load_all)
                self._replace(tasks)
                self._saved_snapshot = {task.id: self._fingerprint(task) for task in tasks}
                series_logger.info("Loaded tasks", count=len(tasks))
            finally:
                self.is_loading = False
        return self.tasks

    def notify_remote_change(self) -> None:
        """Schedule a debounced reload after an external change notification."""
        if self.is_saving:
            series_logger.debug("Skipping reload - currently saving")
            return

        if self._reload_task is not None and not self._reload_task.done():
            self._reload_task.cancel()
        self._reload_task = asyncio.get_running_loop().create_task(self._debounced_reload())

    async def _debounced_reload(self) -> None:
        await asyncio.sleep(self.reload_debounce)
        if self.is_saving:
            series_logger.debug("Skipping debounced reload - currently saving")
            return
        try:
            await self.load()
        except PersistenceError as e:
            series_logger.error("Debounced reload failed", error=e.message)

    async def close(self) -> None:
        """Cancel any pending debounced reload."""
        if self._reload_task is not None and not self._reload_task.done():
            self._reload_task.cancel()
            try:
                await self._reload_task
            except asyncio.CancelledError:
                pass
        self._reload_task = None

    # Mutations

    @_serialized
    async def add_task(self, fields: TaskCreate) -> List[Task]:
        """Add a task; a rule with a due date materializes a full series batch."""
        self._validate(fields.model_dump())
        change = plan_add(
            fields, self.tasks, id_factory=self.store.new_id, now=self.clock(), batch_size=self.batch_size
        )
        await self._apply(change)
        series_logger.info(
            "Added task", kind=change.kind.value, title=fields.title, created=len(change.upserts)
        )
        return change.upserts

    @_serialized
    async def update_task(
        self,
        task_id: str,
        changes: Mapping[str, Any],
        intent: UpdateIntent = PlainUpdate(),
    ) -> SeriesChange:
        """
        Update a task, regenerating or propagating across its series as needed.

        For a plain update of a series task that changes subtasks, the
        confirmation capability decides whether the new checklist is copied
        to the other open occurrences.
        """
        existing = find_task(self.tasks, task_id)
        changes = dict(changes)
        self._validate({**existing.model_dump(), **changes})

        if (isinstance(intent, PlainUpdate) and existing.series_id
                and subtasks_changed(existing, changes)):
            propagate = await self.confirm(SUBTASK_PROPAGATION_PROMPT)
            intent = SeriesUpdate(propagate_subtasks=propagate)

        change = plan_update(
            task_id,
            changes,
            self.tasks,
            intent,
            today=self.today(),
            id_factory=self.store.new_id,
            now=self.clock(),
            batch_size=self.batch_size,
        )
        await self._apply(change)
        series_logger.info(
            "Updated task",
            task_id=task_id,
            kind=change.kind.value,
            drag_move=isinstance(intent, DragMove),
            removed=len(change.removed),
            upserted=len(change.upserts),
        )
        return change

    @_serialized
    async def delete_task(self, task_id: str) -> PendingUndo:
        """Delete a task (and its series' open occurrences); returns the undo record."""
        target = find_task(self.tasks, task_id)
        change = plan_delete(task_id, self.tasks, today=self.today())
        return await self._delete(change, target)

    @_serialized
    async def delete_series_occurrences(self, series_id: str, scope: DeleteScope) -> Optional[PendingUndo]:
        """Delete a series' ``future`` or ``open`` occurrences; returns the undo record."""
        change = plan_delete_series(series_id, scope, self.tasks, today=self.today())
        if not change.removed:
            return None
        return await self._delete(change, change.removed[0])

    @_serialized
    async def undo_delete(self) -> List[Task]:
        """Re-insert the rows removed by the last delete, if still within the undo window."""
        pending = self.pending_delete
        if pending is None:
            return []
        self.pending_delete = None
        if pending.is_expired(self.clock()):
            series_logger.debug("Undo window expired", task_id=pending.task.id)
            return []

        previous = self.tasks
        present = {task.id for task in previous}
        restored = [task for task in pending.tasks if task.id not in present]
        self._replace(previous + restored)
        try:
            await self._persist(restored)
        except PersistenceError:
            self._replace(previous)
            raise
        series_logger.info("Restored deleted tasks", count=len(restored))
        return restored

    @_serialized
    async def toggle_complete(self, task_id: str, confirm: Optional[Confirm] = None) -> Optional[Task]:
        """
        Flip a task's completion.

        Completing a task with unfinished subtasks asks for confirmation and
        then completes every subtask; declining cancels the toggle and returns
        None. Completing the last instance of an auto-renewing series appends
        the next series.
        """
        task = find_task(self.tasks, task_id)
        now = self.clock()
        self.renewal_notice = None

        if task.completed:
            updated = apply_changes(task, {"completed": False}, now)
            self.pending_completion = None
            await self._apply(self._single(updated))
            return updated

        changes: Dict[str, Any] = {"completed": True}
        open_subtasks = [subtask for subtask in task.subtasks if not subtask.completed]
        if open_subtasks:
            plural = "s" if len(open_subtasks) > 1 else ""
            message = (
                f"This task has {len(open_subtasks)} incomplete subtask{plural}. "
                "Do you want to complete the task and mark all subtasks as complete?"
            )
            if not await (confirm or self.confirm)(message):
                series_logger.debug("Completion cancelled by user", task_id=task_id)
                return None
            changes["subtasks"] = [subtask.model_copy(update={"completed": True}) for subtask in task.subtasks]

        updated = apply_changes(task, changes, now)
        change = self._single(updated)

        renewed = renew_if_needed(
            updated, change.tasks, id_factory=self.store.new_id, now=now, batch_size=self.batch_size
        )
        if renewed:
            change.tasks = change.tasks + renewed
            change.upserts = change.upserts + renewed

        self.pending_completion = PendingCompletion(task=updated, previous_state=task)
        await self._apply(change)

        if renewed:
            await self._announce_renewal(updated, len(renewed), now)
        return updated

    @_serialized
    async def undo_completion(self) -> Optional[Task]:
        """Restore the completion and subtask state saved by the last completion."""
        pending = self.pending_completion
        if pending is None:
            return None
        self.pending_completion = None

        previous = pending.previous_state
        task = find_task(self.tasks, previous.id)
        restored = apply_changes(
            task, {"completed": previous.completed, "subtasks": previous.subtasks}, self.clock()
        )
        await self._apply(self._single(restored))
        return restored

    @_serialized
    async def extend_series(self, task_id: str) -> List[Task]:
        """Append the next batch to a task's series under the same series id."""
        now = self.clock()
        change = plan_extend(
            task_id, self.tasks, id_factory=self.store.new_id, now=now, batch_size=self.batch_size
        )
        if change is None:
            return []

        await self._apply(change)
        created = change.upserts[1:]
        task = find_task(self.tasks, task_id)
        await self._announce_renewal(task, len(created), now)
        return created

    # Internals

    def _validate(self, data: Dict[str, Any]) -> None:
        result = RecurrenceValidator.validate_task_with_recurrence(data)
        for warning in result["warnings"]:
            series_logger.warning("Task validation warning", warning=warning)
        if not result["valid"]:
            raise TaskValidationError(result["errors"], result["warnings"])

    def _single(self, updated: Task) -> SeriesChange:
        return SeriesChange(
            ChangeKind.SINGLE,
            tasks=[updated if task.id == updated.id else task for task in self.tasks],
            upserts=[updated],
        )

    def _replace(self, tasks: List[Task]) -> None:
        # Readers always see a complete collection, never one being edited
        self.tasks = list(tasks)

    @staticmethod
    def _fingerprint(task: Task) -> str:
        return json.dumps(task.model_dump(mode="json"), sort_keys=True)

    async def _apply(self, change: SeriesChange) -> None:
        """
        Replace the collection, then issue deletes before upserts.

        Both calls are issued even when the first fails; the first failure is
        raised afterwards. The local collection is not rolled back.
        """
        self._replace(change.tasks)
        errors: List[PersistenceError] = []

        if change.removed:
            try:
                await self._remove(change.removed_ids)
            except PersistenceError as e:
                series_logger.error("Failed to delete old occurrences", error=e.message, kind=change.kind.value)
                errors.append(e)

        try:
            await self._persist(change.upserts)
        except PersistenceError as e:
            series_logger.error("Failed to save tasks", error=e.message, kind=change.kind.value)
            errors.append(e)

        if errors:
            raise errors[0]

    async def _delete(self, change: SeriesChange, target: Task) -> PendingUndo:
        previous = self.tasks
        self._replace(change.tasks)
        try:
            await self._remove(change.removed_ids)
        except PersistenceError:
            # Put the rows back locally when the store refused the delete
            self._replace(previous)
            raise

        self.pending_delete = PendingUndo(
            task=target,
            tasks=change.removed,
            expires_at=self.clock() + timedelta(seconds=self.undo_timeout),
        )
        series_logger.info("Deleted tasks", task_id=target.id, count=len(change.removed))
        return self.pending_delete

    async def _remove(self, ids: List[str]) -> None:
        if not ids:
            return
        self.is_saving = True
        try:
            await asyncio.to_thread(self.store.delete_by_ids, ids)
        finally:
            self.is_saving = False
        for task_id in ids:
            self._saved_snapshot.pop(task_id, None)

    async def _persist(self, tasks: List[Task]) -> None:
        """Save the rows that differ from the last saved snapshot."""
        dirty = [task for task in tasks if self._saved_snapshot.get(task.id) != self._fingerprint(task)]
        if not dirty:
            return

        self.is_saving = True
        try:
            await asyncio.to_thread(self.store.save_all, dirty)
        finally:
            self.is_saving = False
        for task in dirty:
            self._saved_snapshot[task.id] = self._fingerprint(task)

    async def _announce_renewal(self, task: Task, count: int, now: datetime) -> None:
        self.renewal_notice = RenewalNotice(
            task_title=task.title,
            count=count,
            expires_at=now + timedelta(seconds=RENEWAL_NOTICE_SECONDS),
        )
        series_logger.info("Series renewed", title=task.title, count=count)
        if self.notifier is None:
            return
        try:
            await self.notifier(self.renewal_notice)
        except Exception as e:
            # The banner is cosmetic; the new occurrences are already saved
            series_logger.warning("Renewal notification failed", error=str(e))


class SessionRegistry:
    """Task sessions keyed by user id, created and loaded on first use."""

    def __init__(self, store_factory: Callable[[str], TaskStore], **session_options: Any):
        self.store_factory = store_factory
        self.session_options = session_options
        self.sessions: Dict[str, TaskSession] = {}

    async def get(self, user_id: str) -> TaskSession:
        session = self.sessions.get(user_id)
        if session is None:
            session = TaskSession(self.store_factory(user_id), **self.session_options)
            self.sessions[user_id] = session
            try:
                await session.load()
            except PersistenceError:
                del self.sessions[user_id]
                raise
        return session

    async def close(self) -> None:
        for session in self.sessions.values():
            await session.close()
        self.sessions.clear()
