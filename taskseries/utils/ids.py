"""Identifier generation for tasks and series."""
import uuid


def new_id() -> str:
    """Return a globally unique identifier suitable as a task or series id."""
    return str(uuid.uuid4())
