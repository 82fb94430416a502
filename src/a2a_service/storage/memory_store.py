"""In-process task store; contents are lost on restart."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Tuple

from ..models import TaskAndHistory
from .base import task_key

logger = logging.getLogger(__name__)


class InMemoryTaskStore:
    """Dictionary-backed store guarded by an asyncio lock."""

    def __init__(self) -> None:
        self._tasks: Dict[Tuple[str, str], TaskAndHistory] = {}
        self._lock: Optional[asyncio.Lock] = None

    @property
    def lock(self) -> asyncio.Lock:
        """Lazily create the lock inside the running event loop."""
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def load_task(self, task_id: str, session_id: Optional[str]) -> Optional[TaskAndHistory]:
        async with self.lock:
            entry = self._tasks.get((session_id or "", task_id))
            return entry.copy() if entry is not None else None

    async def save_task(self, data: TaskAndHistory) -> None:
        key = (data.task.sessionId or "", data.task.id)
        async with self.lock:
            self._tasks[key] = data.copy()
        logger.debug("Task saved", extra={"task_id": data.task.id, "store": "memory"})

    async def dump(self) -> Dict[str, Any]:
        async with self.lock:
            return {
                "database": "memory",
                "taskStore": {
                    task_key(task_id, session): entry.to_dict()
                    for (session, task_id), entry in self._tasks.items()
                },
            }

    async def close(self) -> None:
        async with self.lock:
            self._tasks.clear()

    def __len__(self) -> int:
        return len(self._tasks)
