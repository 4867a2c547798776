# tests/test_task_session.py

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from taskseries.schemas.task import DeleteScope, EditMode, Recurrence, Subtask, TaskCreate
from taskseries.services.errors import PersistenceError, TaskNotFoundError, TaskValidationError
from taskseries.services.series_orchestrator import ChangeKind, DragMove, SeriesUpdate
from taskseries.services.task_session import SUBTASK_PROPAGATION_PROMPT

from .conftest import NOW, TODAY, make_series, make_task
from .fakes import BlockingTaskStore, FakeTaskStore, RecordingConfirm, RecordingNotifier


def _ids(tasks):
    return sorted(task.id for task in tasks)


@pytest.mark.asyncio
async def test_load_replaces_collection(session_factory) -> None:
    session = session_factory([make_task("a"), make_task("b")])
    tasks = await session.load()

    assert _ids(tasks) == ["a", "b"]
    assert not session.is_loading


@pytest.mark.asyncio
async def test_add_series_persists_batch(session_factory) -> None:
    store = FakeTaskStore()
    session = session_factory(store=store)
    await session.load()

    created = await session.add_task(TaskCreate(title="Stretch", due_date=TODAY, recurrence="daily"))

    assert len(created) == 5
    assert _ids(store.rows.values()) == _ids(created)
    assert store.operations() == ["load", "save"]


@pytest.mark.asyncio
async def test_invalid_custom_rule_is_rejected(session_factory) -> None:
    session = session_factory()
    await session.load()

    with pytest.raises(TaskValidationError):
        await session.add_task(TaskCreate(title="Odd", due_date=TODAY, recurrence="custom"))
    assert session.tasks == []


@pytest.mark.asyncio
async def test_regeneration_deletes_before_saving(session_factory) -> None:
    store = FakeTaskStore(make_series("s", TODAY, 5))
    session = session_factory(store=store)
    await session.load()

    change = await session.update_task(
        "s-2", {"recurrence": Recurrence.WEEKLY}, SeriesUpdate(EditMode.THIS_AND_FOLLOWING)
    )

    assert change.kind == ChangeKind.REGENERATE_FOLLOWING
    assert store.operations() == ["load", "delete", "save"]
    assert _ids(store.rows.values()) == _ids(session.tasks)
    assert not session.is_saving


@pytest.mark.asyncio
async def test_failed_delete_still_saves_then_raises(session_factory) -> None:
    store = FakeTaskStore(make_series("s", TODAY, 3))
    session = session_factory(store=store)
    await session.load()
    store.fail_on = {"delete"}

    with pytest.raises(PersistenceError):
        await session.update_task("s-0", {"recurrence": Recurrence.WEEKLY}, SeriesUpdate())

    assert store.operations() == ["load", "delete", "save"]
    assert not session.is_saving


@pytest.mark.asyncio
async def test_drag_move_saves_only_moved_row(session_factory) -> None:
    store = FakeTaskStore(make_series("s", TODAY, 5))
    session = session_factory(store=store)
    await session.load()

    await session.update_task("s-0", {"due_date": TODAY + timedelta(days=20)}, DragMove())

    assert store.calls[-1] == ("save", ["s-0"])
    assert len(session.tasks) == 5


@pytest.mark.asyncio
async def test_subtask_edit_asks_before_propagating(session_factory) -> None:
    confirm = RecordingConfirm(answer=False)
    session = session_factory(make_series("s", TODAY, 3), confirm=confirm)
    await session.load()

    await session.update_task("s-0", {"subtasks": [Subtask(id="a", text="Warm up")]})

    assert confirm.prompts == [SUBTASK_PROPAGATION_PROMPT]
    by_id = {task.id: task for task in session.tasks}
    assert len(by_id["s-0"].subtasks) == 1
    assert by_id["s-1"].subtasks == []


@pytest.mark.asyncio
async def test_subtask_edit_propagates_when_confirmed(session_factory) -> None:
    session = session_factory(make_series("s", TODAY, 3), confirm=RecordingConfirm(answer=True))
    await session.load()

    await session.update_task("s-0", {"subtasks": [Subtask(id="a", text="Warm up")]})

    assert all(len(task.subtasks) == 1 for task in session.tasks)


@pytest.mark.asyncio
async def test_update_unknown_task(session_factory) -> None:
    session = session_factory()
    await session.load()
    with pytest.raises(TaskNotFoundError):
        await session.update_task("missing", {"title": "x"})


@pytest.mark.asyncio
async def test_delete_then_undo_within_window(session_factory) -> None:
    store = FakeTaskStore(make_series("s", TODAY, 3) + [make_task("plain")])
    session = session_factory(store=store)
    await session.load()

    pending = await session.delete_task("s-1")

    assert _ids(pending.tasks) == ["s-0", "s-1", "s-2"]
    assert pending.expires_at == NOW + timedelta(seconds=3)
    assert _ids(store.rows.values()) == ["plain"]

    restored = await session.undo_delete()
    assert _ids(restored) == ["s-0", "s-1", "s-2"]
    assert _ids(store.rows.values()) == ["plain", "s-0", "s-1", "s-2"]
    assert session.pending_delete is None


@pytest.mark.asyncio
async def test_undo_after_window_does_nothing(session_factory, clock) -> None:
    store = FakeTaskStore([make_task("a")])
    session = session_factory(store=store)
    await session.load()

    await session.delete_task("a")
    clock.now = NOW + timedelta(seconds=4)

    assert await session.undo_delete() == []
    assert store.rows == {}


@pytest.mark.asyncio
async def test_failed_delete_restores_collection(session_factory) -> None:
    store = FakeTaskStore([make_task("a"), make_task("b")])
    session = session_factory(store=store)
    await session.load()
    store.fail_on = {"delete"}

    with pytest.raises(PersistenceError):
        await session.delete_task("a")

    assert _ids(session.tasks) == ["a", "b"]
    assert session.pending_delete is None


@pytest.mark.asyncio
async def test_delete_series_future_occurrences(session_factory) -> None:
    tasks = make_series("s", TODAY - timedelta(days=2), 5)
    session = session_factory(tasks)
    await session.load()

    pending = await session.delete_series_occurrences("s", DeleteScope.FUTURE)

    assert _ids(pending.tasks) == ["s-2", "s-3", "s-4"]
    assert _ids(session.tasks) == ["s-0", "s-1"]
    assert await session.delete_series_occurrences("s", DeleteScope.FUTURE) is None


@pytest.mark.asyncio
async def test_completion_with_open_subtasks_can_be_declined(session_factory) -> None:
    store = FakeTaskStore([make_task("a", subtasks=[Subtask(id="x", text="Step")])])
    session = session_factory(store=store)
    await session.load()

    result = await session.toggle_complete("a", confirm=RecordingConfirm(answer=False))

    assert result is None
    assert not session.tasks[0].completed
    assert store.operations() == ["load"]


@pytest.mark.asyncio
async def test_confirmed_completion_completes_subtasks_and_can_be_undone(session_factory) -> None:
    subtasks = [Subtask(id="x", text="Step"), Subtask(id="y", text="Other", completed=True)]
    session = session_factory([make_task("a", subtasks=subtasks)])
    await session.load()

    completed = await session.toggle_complete("a", confirm=RecordingConfirm(answer=True))
    assert completed.completed
    assert all(subtask.completed for subtask in completed.subtasks)

    restored = await session.undo_completion()
    assert not restored.completed
    assert [subtask.completed for subtask in restored.subtasks] == [False, True]
    assert await session.undo_completion() is None


@pytest.mark.asyncio
async def test_uncompleting_clears_pending_completion(session_factory) -> None:
    session = session_factory([make_task("a")])
    await session.load()

    await session.toggle_complete("a")
    reopened = await session.toggle_complete("a")

    assert not reopened.completed
    assert session.pending_completion is None


@pytest.mark.asyncio
async def test_completing_last_instance_renews_series(session_factory) -> None:
    notifier = RecordingNotifier()
    store = FakeTaskStore(make_series("s", TODAY, 2))
    session = session_factory(store=store, notifier=notifier)
    await session.load()

    await session.toggle_complete("s-1")

    assert len(session.tasks) == 7
    assert len(store.rows) == 7
    renewed = [task for task in session.tasks if task.series_id not in ("s", None)]
    assert min(task.due_date for task in renewed) == TODAY + timedelta(days=2)
    assert session.renewal_notice.count == 5
    assert session.renewal_notice.task_title == "Task s-1"
    assert [notice.count for notice in notifier.notices] == [5]


@pytest.mark.asyncio
async def test_renewal_notifier_failure_is_not_fatal(session_factory) -> None:
    store = FakeTaskStore(make_series("s", TODAY, 1))
    session = session_factory(store=store, notifier=RecordingNotifier(error=RuntimeError("boom")))
    await session.load()

    updated = await session.toggle_complete("s-0")

    assert updated.completed
    assert len(store.rows) == 6


@pytest.mark.asyncio
async def test_extend_series_appends_batch(session_factory) -> None:
    session = session_factory(make_series("s", TODAY, 3))
    await session.load()

    created = await session.extend_series("s-0")

    assert len(created) == 5
    assert created[0].due_date == TODAY + timedelta(days=3)
    assert {task.series_id for task in session.tasks} == {"s"}
    assert sum(task.is_last_instance for task in session.tasks) == 1
    assert session.renewal_notice.count == 5


@pytest.mark.asyncio
async def test_remote_change_ignored_while_saving(session_factory) -> None:
    store = FakeTaskStore()
    session = session_factory(store=store, reload_debounce=0.01)
    await session.load()

    session.is_saving = True
    session.notify_remote_change()
    await asyncio.sleep(0.05)

    assert store.operations() == ["load"]
    session.is_saving = False


@pytest.mark.asyncio
async def test_remote_changes_are_debounced(session_factory) -> None:
    store = FakeTaskStore()
    session = session_factory(store=store, reload_debounce=0.01)
    await session.load()

    session.notify_remote_change()
    session.notify_remote_change()
    store.rows["late"] = make_task("late")
    await asyncio.sleep(0.05)

    assert store.operations() == ["load", "load"]
    assert _ids(session.tasks) == ["late"]
    await session.close()


async def _reload_in_flight(session, store: BlockingTaskStore) -> asyncio.Task:
    store.hold_loads()
    reload = asyncio.create_task(session.load())
    while not session.is_loading:
        await asyncio.sleep(0)
    return reload


@pytest.mark.asyncio
async def test_regeneration_during_reload_waits_and_persists_batch(session_factory) -> None:
    store = BlockingTaskStore(make_series("s", TODAY, 5))
    session = session_factory(store=store)
    await session.load()

    reload = await _reload_in_flight(session, store)
    update = asyncio.create_task(
        session.update_task("s-2", {"recurrence": Recurrence.WEEKLY}, SeriesUpdate(EditMode.THIS_AND_FOLLOWING))
    )
    await asyncio.sleep(0.01)
    assert store.operations() == ["load"]

    store.release_loads()
    await reload
    change = await update

    assert store.operations() == ["load", "load", "delete", "save"]
    assert len(store.rows) == 5
    assert _ids(store.rows.values()) == _ids(change.upserts)
    assert _ids(session.tasks) == _ids(store.rows.values())
    assert all(task.recurrence == Recurrence.WEEKLY for task in session.tasks)


@pytest.mark.asyncio
async def test_undo_during_reload_restores_rows_in_store(session_factory) -> None:
    store = BlockingTaskStore(make_series("s", TODAY, 3) + [make_task("plain")])
    session = session_factory(store=store)
    await session.load()
    await session.delete_task("s-0")

    reload = await _reload_in_flight(session, store)
    undo = asyncio.create_task(session.undo_delete())
    store.release_loads()
    await reload
    restored = await undo

    assert _ids(restored) == ["s-0", "s-1", "s-2"]
    assert _ids(store.rows.values()) == ["plain", "s-0", "s-1", "s-2"]
    assert _ids(session.tasks) == ["plain", "s-0", "s-1", "s-2"]


@pytest.mark.asyncio
async def test_loaded_rows_are_not_written_back(session_factory) -> None:
    store = FakeTaskStore(make_series("s", TODAY, 3))
    session = session_factory(store=store)
    await session.load()
    await session.load()

    await session.update_task("s-0", {"due_date": TODAY + timedelta(days=9)}, DragMove())

    assert store.operations() == ["load", "load", "save"]
    assert store.calls[-1] == ("save", ["s-0"])


@pytest.mark.asyncio
async def test_completion_without_renewal_clears_previous_notice(session_factory) -> None:
    session = session_factory(make_series("s", TODAY, 1))
    await session.load()

    await session.toggle_complete("s-0")
    assert session.renewal_notice is not None

    (new_last,) = [task for task in session.tasks if task.is_last_instance and task.series_id != "s"]
    await session.update_task(new_last.id, {"auto_renew": False})
    await session.toggle_complete(new_last.id)

    assert session.renewal_notice is None
