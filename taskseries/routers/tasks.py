"""Task router exposing the task session entry points."""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import ValidationError

from taskseries.schemas.task import (
    DeleteScope,
    EditMode,
    RenewalNoticeResponse,
    TaskCreate,
    TaskResponse,
    TaskUpdate,
)
from taskseries.services.errors import (
    PersistenceError,
    TaskNotFoundError,
    TaskServiceError,
    TaskValidationError,
    create_error_response,
)
from taskseries.services.series_orchestrator import DragMove, PlainUpdate, SeriesUpdate, UpdateIntent
from taskseries.services.task_session import TaskSession

router = APIRouter(tags=["Tasks"])  # No prefix since main.py adds /api prefix


async def get_task_session(user_id: str, request: Request) -> TaskSession:
    """Dependency returning the user's task session, loading it on first use."""
    try:
        return await request.app.state.sessions.get(user_id)
    except TaskServiceError as e:
        _raise_http(e)


def _raise_http(error: TaskServiceError) -> None:
    if isinstance(error, TaskNotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, TaskValidationError):
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(error, PersistenceError):
        code = status.HTTP_502_BAD_GATEWAY
    else:
        code = status.HTTP_400_BAD_REQUEST
    raise HTTPException(status_code=code, detail=create_error_response(error)["error"])


def _intent(task_data: TaskUpdate) -> UpdateIntent:
    if task_data.is_drag_drop_move:
        return DragMove()
    if task_data.edit_mode is not None or task_data.propagate_subtasks is not None:
        return SeriesUpdate(
            edit_mode=task_data.edit_mode or EditMode.THIS_AND_FOLLOWING,
            propagate_subtasks=bool(task_data.propagate_subtasks),
        )
    return PlainUpdate()


def _static_confirm(answer: bool):
    async def confirm(message: str) -> bool:
        return answer
    return confirm


@router.get("/{user_id}/tasks", response_model=Dict[str, Any])
async def list_tasks(
    user_id: str,
    series_id: Optional[str] = Query(None, description="Only occurrences of this series"),
    session: TaskSession = Depends(get_task_session),
):
    """List the user's tasks ordered by due date (undated last)."""
    tasks = session.tasks
    if series_id:
        tasks = [task for task in tasks if task.series_id == series_id]
    tasks = sorted(tasks, key=lambda task: (task.due_date is None, task.due_date or task.created_at.date()))
    return {
        "tasks": [TaskResponse.model_validate(task.model_dump()) for task in tasks],
        "count": len(tasks),
    }


@router.post("/{user_id}/tasks", response_model=List[TaskResponse], status_code=status.HTTP_201_CREATED)
async def create_task(
    user_id: str,
    task_data: TaskCreate,
    session: TaskSession = Depends(get_task_session),
):
    """Create a task; a recurrence rule with a due date creates the whole series batch."""
    try:
        return await session.add_task(task_data)
    except TaskServiceError as e:
        _raise_http(e)


@router.patch("/{user_id}/tasks/{task_id}", response_model=Dict[str, Any])
async def update_task(
    user_id: str,
    task_id: str,
    task_data: TaskUpdate,
    session: TaskSession = Depends(get_task_session),
):
    """Update a task; recurrence edits honor ``edit_mode``, drag moves touch one row."""
    try:
        change = await session.update_task(task_id, task_data.changes(), _intent(task_data))
    except TaskServiceError as e:
        _raise_http(e)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"code": "VALIDATION_ERROR", "message": str(e), "details": {}},
        )

    return {
        "kind": change.kind.value,
        "removed": change.removed_ids,
        "updated": [TaskResponse.model_validate(task.model_dump()) for task in change.upserts],
    }


@router.delete("/{user_id}/tasks/{task_id}", response_model=Dict[str, Any])
async def delete_task(
    user_id: str,
    task_id: str,
    session: TaskSession = Depends(get_task_session),
):
    """Delete a task; recurring tasks take their open occurrences with them."""
    try:
        pending = await session.delete_task(task_id)
    except TaskServiceError as e:
        _raise_http(e)

    return {"deleted": [task.id for task in pending.tasks], "undo_expires_at": pending.expires_at}


@router.delete("/{user_id}/series/{series_id}", response_model=Dict[str, Any])
async def delete_series_occurrences(
    user_id: str,
    series_id: str,
    scope: DeleteScope = Query(DeleteScope.OPEN, description="future or open"),
    session: TaskSession = Depends(get_task_session),
):
    """Delete a series' future or open occurrences; completed history stays."""
    try:
        pending = await session.delete_series_occurrences(series_id, scope)
    except TaskServiceError as e:
        _raise_http(e)

    if pending is None:
        return {"deleted": [], "undo_expires_at": None}
    return {"deleted": [task.id for task in pending.tasks], "undo_expires_at": pending.expires_at}


@router.post("/{user_id}/tasks/undo-delete", response_model=List[TaskResponse])
async def undo_delete(
    user_id: str,
    session: TaskSession = Depends(get_task_session),
):
    """Restore the rows removed by the last delete while the undo window is open."""
    try:
        return await session.undo_delete()
    except TaskServiceError as e:
        _raise_http(e)


@router.post("/{user_id}/tasks/{task_id}/toggle", response_model=Dict[str, Any])
async def toggle_complete(
    user_id: str,
    task_id: str,
    confirm: bool = Query(False, description="Also complete unfinished subtasks"),
    session: TaskSession = Depends(get_task_session),
):
    """Toggle completion; completing the last instance of a series may renew it."""
    try:
        task = await session.toggle_complete(task_id, confirm=_static_confirm(confirm))
    except TaskServiceError as e:
        _raise_http(e)

    if task is None:
        return {"cancelled": True, "task": None, "renewal": None}

    notice = session.renewal_notice
    renewal = None
    if notice is not None and task.completed and task.is_last_instance:
        renewal = RenewalNoticeResponse(task_title=notice.task_title, count=notice.count)
    return {"cancelled": False, "task": TaskResponse.model_validate(task.model_dump()), "renewal": renewal}


@router.post("/{user_id}/tasks/undo-complete", response_model=Optional[TaskResponse])
async def undo_completion(
    user_id: str,
    session: TaskSession = Depends(get_task_session),
):
    """Restore the task state saved by the last completion."""
    try:
        return await session.undo_completion()
    except TaskServiceError as e:
        _raise_http(e)


@router.post("/{user_id}/tasks/{task_id}/extend", response_model=List[TaskResponse])
async def extend_series(
    user_id: str,
    task_id: str,
    session: TaskSession = Depends(get_task_session),
):
    """Append the next batch of occurrences to the task's series."""
    try:
        return await session.extend_series(task_id)
    except TaskServiceError as e:
        _raise_http(e)
