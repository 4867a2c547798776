"""Task persistence for the task session.

``TaskStore`` is the CRUD contract the session relies on. ``SqlTaskStore``
keeps one user's rows in the ``tasks`` table; ``InMemoryTaskStore`` backs
local development and tests.
"""
import logging
from typing import Dict, Iterable, List, Protocol

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from taskseries.models.task import TaskRecord
from taskseries.schemas.task import Task
from taskseries.services.errors import PersistenceError
from taskseries.utils.ids import new_id

logger = logging.getLogger(__name__)


class TaskStore(Protocol):
    """CRUD functions over the signed-in user's full task collection."""

    def load_all(self) -> List[Task]:
        ...

    def save_all(self, tasks: List[Task]) -> None:
        """Upsert ``tasks``; an empty list is a no-op, never "delete everything"."""
        ...

    def delete_by_ids(self, ids: List[str]) -> None:
        """Hard-delete rows; an empty list is a no-op."""
        ...

    def new_id(self) -> str:
        ...


class SqlTaskStore:
    """Task store backed by the SQLModel ``tasks`` table, scoped to one user."""

    def __init__(self, engine: Engine, user_id: str):
        self.engine = engine
        self.user_id = user_id

    def load_all(self) -> List[Task]:
        try:
            with Session(self.engine) as session:
                statement = (
                    select(TaskRecord)
                    .where(TaskRecord.user_id == self.user_id)
                    .order_by(col(TaskRecord.due_date).asc().nullslast(), col(TaskRecord.created_at).asc())
                )
                records = session.exec(statement).all()
                tasks = [record.to_task() for record in records]
        except SQLAlchemyError as e:
            logger.error(f"Failed to load tasks for user {self.user_id}: {str(e)}")
            raise PersistenceError("load_all", f"Failed to load tasks: {str(e)}") from e

        logger.debug(f"Loaded {len(tasks)} tasks for user {self.user_id}")
        return tasks

    def save_all(self, tasks: List[Task]) -> None:
        if not tasks:
            return

        try:
            with Session(self.engine) as session:
                for task in tasks:
                    session.merge(TaskRecord.from_task(task, self.user_id))
                session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to save {len(tasks)} tasks for user {self.user_id}: {str(e)}")
            raise PersistenceError(
                "save_all", f"Failed to save tasks: {str(e)}", {"count": len(tasks)}
            ) from e

        logger.debug(f"Saved {len(tasks)} tasks for user {self.user_id}")

    def delete_by_ids(self, ids: List[str]) -> None:
        if not ids:
            return

        try:
            with Session(self.engine) as session:
                statement = (
                    select(TaskRecord)
                    .where(col(TaskRecord.id).in_(list(ids)))
                    .where(TaskRecord.user_id == self.user_id)
                )
                for record in session.exec(statement).all():
                    session.delete(record)
                session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete {len(ids)} tasks for user {self.user_id}: {str(e)}")
            raise PersistenceError(
                "delete_by_ids", f"Failed to delete tasks: {str(e)}", {"ids": list(ids)}
            ) from e

        logger.debug(f"Deleted {len(ids)} tasks for user {self.user_id}")

    def new_id(self) -> str:
        return new_id()


class InMemoryTaskStore:
    """Task store keeping rows in a dict, keyed by task id."""

    def __init__(self, tasks: Iterable[Task] = ()):
        self.rows: Dict[str, Task] = {task.id: task for task in tasks}

    def load_all(self) -> List[Task]:
        return list(self.rows.values())

    def save_all(self, tasks: List[Task]) -> None:
        for task in tasks:
            self.rows[task.id] = task

    def delete_by_ids(self, ids: List[str]) -> None:
        for task_id in ids:
            self.rows.pop(task_id, None)

    def new_id(self) -> str:
        return new_id()
