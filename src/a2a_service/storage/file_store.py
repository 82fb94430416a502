"""
File-backed task store.

Layout under the base directory::

    <session scope>/<task id>.json          the task
    <session scope>/<task id>.history.json  {"messageHistory": [...]}

The session scope directory is the URL-quoted session id, or ``_default`` for
tasks without one. Both files are written atomically.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union
from urllib.parse import quote, unquote

from pydantic import ValidationError

from ..a2a.models import Message, Task
from ..errors import A2AError
from ..models import TaskAndHistory
from ..utils import atomic_remove, atomic_write_json, read_json
from .base import task_key

logger = logging.getLogger(__name__)

DEFAULT_SCOPE = "_default"
TASK_SUFFIX = ".json"
HISTORY_SUFFIX = ".history.json"


class FileTaskStore:
    """Persist each task and its history as a pair of JSON files."""

    def __init__(self, base_dir: Union[str, Path] = ".a2a-tasks") -> None:
        self.base_dir = Path(base_dir)

    def _scope_dir(self, session_id: Optional[str]) -> Path:
        if not session_id:
            return self.base_dir / DEFAULT_SCOPE
        return self.base_dir / quote(session_id, safe="")

    @staticmethod
    def _check_task_id(task_id: str) -> str:
        if not task_id or os.path.basename(task_id) != task_id or ".." in task_id:
            raise A2AError.invalid_params(f"Invalid Task ID format: {task_id}")
        return task_id

    def _paths(self, task_id: str, session_id: Optional[str]) -> Tuple[Path, Path]:
        safe_id = self._check_task_id(task_id)
        scope = self._scope_dir(session_id)
        return scope / f"{safe_id}{TASK_SUFFIX}", scope / f"{safe_id}{HISTORY_SUFFIX}"

    def _read_history(self, task_id: str, path: Path) -> List[Message]:
        try:
            content = read_json(path)
        except (OSError, ValueError) as exc:
            logger.error(
                "Error reading history file",
                extra={"task_id": task_id, "path": str(path), "error": str(exc)},
            )
            return []
        if content is None:
            return []
        entries = content.get("messageHistory") if isinstance(content, dict) else None
        if isinstance(entries, list):
            try:
                return [Message.model_validate(entry) for entry in entries]
            except ValidationError:
                pass
        logger.warning(
            "Malformed history file, ignoring its content",
            extra={"task_id": task_id, "path": str(path)},
        )
        return []

    def _load(self, task_id: str, session_id: Optional[str]) -> Optional[TaskAndHistory]:
        task_path, history_path = self._paths(task_id, session_id)
        try:
            raw_task = read_json(task_path)
        except (OSError, ValueError) as exc:
            raise A2AError.internal_error(f"Failed to read file {task_path}: {exc}") from exc
        if raw_task is None:
            return None
        try:
            task = Task.model_validate(raw_task)
        except ValidationError as exc:
            raise A2AError.internal_error(f"Failed to read file {task_path}: {exc}") from exc
        return TaskAndHistory(task=task, history=self._read_history(task_id, history_path))

    def _save(self, data: TaskAndHistory) -> None:
        task_path, history_path = self._paths(data.task.id, data.task.sessionId)
        snapshot = data.to_dict()
        for path, payload in (
            (task_path, snapshot["task"]),
            (history_path, {"messageHistory": snapshot["history"]}),
        ):
            try:
                atomic_write_json(path, payload)
            except OSError as exc:
                raise A2AError.internal_error(f"Failed to write file {path}: {exc}") from exc

    def _delete(self, task_id: str, session_id: Optional[str]) -> bool:
        task_path, history_path = self._paths(task_id, session_id)
        existed = task_path.exists()
        try:
            atomic_remove(task_path)
            atomic_remove(history_path)
        except OSError as exc:
            raise A2AError.internal_error(f"Failed to delete task {task_id}: {exc}") from exc
        return existed

    def _dump(self) -> Dict[str, Any]:
        tasks: Dict[str, Any] = {}
        if self.base_dir.is_dir():
            for scope in sorted(p for p in self.base_dir.iterdir() if p.is_dir()):
                session_id = None if scope.name == DEFAULT_SCOPE else unquote(scope.name)
                for task_path in sorted(scope.glob(f"*{TASK_SUFFIX}")):
                    if task_path.name.endswith(HISTORY_SUFFIX):
                        continue
                    task_id = task_path.name[: -len(TASK_SUFFIX)]
                    entry = self._load(task_id, session_id)
                    if entry is not None:
                        tasks[task_key(task_id, session_id)] = entry.to_dict()
        return {"database": "file", "dir": str(self.base_dir), "taskStore": tasks}

    async def load_task(self, task_id: str, session_id: Optional[str]) -> Optional[TaskAndHistory]:
        return await asyncio.to_thread(self._load, task_id, session_id)

    async def save_task(self, data: TaskAndHistory) -> None:
        await asyncio.to_thread(self._save, data)
        logger.debug("Task saved", extra={"task_id": data.task.id, "store": "file"})

    async def delete_task(self, task_id: str, session_id: Optional[str]) -> bool:
        """Remove a task and its history; returns whether the task existed."""
        return await asyncio.to_thread(self._delete, task_id, session_id)

    async def dump(self) -> Dict[str, Any]:
        return await asyncio.to_thread(self._dump)

    async def close(self) -> None:
        return None
