"""Task store contract shared by the memory, file and SQLite backends."""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol, runtime_checkable

from ..models import TaskAndHistory


def task_key(task_id: str, session_id: Optional[str]) -> str:
    """Display key for a task in store dumps. Not unique when ids contain ``:``."""
    return f"{session_id or ''}:{task_id}"


@runtime_checkable
class TaskStore(Protocol):
    """
    Persistence for tasks and their message history.

    Tasks are keyed by ``(session_id or "", task_id)``; a save is keyed by the
    ``sessionId`` of the task being saved. Loads and saves exchange independent
    copies so callers never share state with the store.
    """

    async def load_task(self, task_id: str, session_id: Optional[str]) -> Optional[TaskAndHistory]:
        ...

    async def save_task(self, data: TaskAndHistory) -> None:
        ...

    async def dump(self) -> Dict[str, Any]:
        ...

    async def close(self) -> None:
        ...
