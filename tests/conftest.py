# tests/conftest.py

from __future__ import annotations

import itertools
from datetime import date, datetime, timezone

import pytest

from taskseries.db.config import build_engine
from taskseries.db.init import init_db
from taskseries.schemas.task import Task
from taskseries.services.date_arithmetic import add_days
from taskseries.services.task_session import TaskSession

from .fakes import Clock, FakeTaskStore

TODAY = date(2024, 1, 10)
NOW = datetime(2024, 1, 10, 9, 0, tzinfo=timezone.utc)


def make_task(id: str, **fields) -> Task:
    """Build a task with sensible defaults; any field can be overridden."""
    fields.setdefault("title", f"Task {id}")
    fields.setdefault("created_at", NOW)
    fields.setdefault("last_modified", NOW)
    return Task(id=id, **fields)


def make_series(series_id: str, start: date, count: int, recurrence: str = "daily", **fields) -> list:
    """A daily series of ``count`` occurrences, the last one flagged."""
    return [
        make_task(
            f"{series_id}-{index}",
            due_date=add_days(start, index),
            recurrence=recurrence,
            series_id=series_id,
            is_last_instance=index == count - 1,
            auto_renew=True,
            **fields,
        )
        for index in range(count)
    ]


@pytest.fixture()
def id_factory():
    """Deterministic id factory ("n1", "n2", ...)."""
    counter = itertools.count(1)
    return lambda: f"n{next(counter)}"


@pytest.fixture()
def clock() -> Clock:
    return Clock(NOW)


@pytest.fixture()
def store() -> FakeTaskStore:
    return FakeTaskStore()


@pytest.fixture()
def session_factory(clock: Clock):
    """Build a TaskSession over a FakeTaskStore seeded with ``tasks``."""

    def build(tasks=(), **options) -> TaskSession:
        options.setdefault("clock", clock)
        options.setdefault("today", lambda: TODAY)
        options.setdefault("batch_size", 5)
        return TaskSession(options.pop("store", None) or FakeTaskStore(list(tasks)), **options)

    return build


@pytest.fixture()
def engine():
    """In-memory SQLite engine with the tasks table created."""
    engine = build_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()
