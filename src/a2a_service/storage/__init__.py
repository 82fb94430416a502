"""
Task stores.

``create_task_store`` picks the backend named by ``Settings.task_store``.
"""

from __future__ import annotations

import logging

from ..settings import Settings
from .base import TaskStore, task_key
from .file_store import FileTaskStore
from .memory_store import InMemoryTaskStore
from .sqlite_store import SqliteTaskStore

logger = logging.getLogger(__name__)

__all__ = [
    "TaskStore",
    "InMemoryTaskStore",
    "FileTaskStore",
    "SqliteTaskStore",
    "create_task_store",
    "task_key",
]


def create_task_store(settings: Settings) -> TaskStore:
    """Build the task store configured in ``settings``."""
    backend = settings.task_store
    if backend == "memory":
        store: TaskStore = InMemoryTaskStore()
    elif backend == "file":
        store = FileTaskStore(settings.task_store_dir)
    elif backend == "sqlite":
        store = SqliteTaskStore(str(settings.database_path))
    else:
        raise ValueError(f"Unknown task store backend: {backend}")
    logger.info("Task store initialized", extra={"backend": backend})
    return store
