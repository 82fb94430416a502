"""
SQLite-backed task store.

One row per task, keyed by ``(session_key, task_id)`` where ``session_key`` is
the session id or an empty string. The task and its message history are stored
as JSON text. Uses WAL mode and one connection per thread.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import threading
from typing import Any, Dict, List, Optional

from ..a2a.models import current_timestamp
from ..errors import A2AError
from ..models import TaskAndHistory
from .base import task_key

logger = logging.getLogger(__name__)


class SqliteTaskStore:
    """Task persistence in a single SQLite table."""

    def __init__(self, db_path: str = "a2a_tasks.db"):
        self.db_path = db_path
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()
        self._init_database()

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if not hasattr(self._local, "connection"):
            connection = sqlite3.connect(self.db_path, check_same_thread=False)
            connection.execute("PRAGMA journal_mode=WAL")
            connection.execute("PRAGMA synchronous=NORMAL")
            connection.execute("PRAGMA temp_store=memory")
            connection.row_factory = sqlite3.Row
            self._local.connection = connection
            with self._connections_lock:
                self._connections.append(connection)
        return self._local.connection

    def _init_database(self) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS a2a_tasks (
                    session_key TEXT NOT NULL,
                    task_id TEXT NOT NULL,
                    task_data TEXT NOT NULL,
                    history_data TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (session_key, task_id)
                )
            """
            )
            conn.commit()

    def _load(self, task_id: str, session_id: Optional[str]) -> Optional[TaskAndHistory]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT task_data, history_data FROM a2a_tasks WHERE session_key = ? AND task_id = ?",
                (session_id or "", task_id),
            ).fetchone()
        if row is None:
            return None
        return TaskAndHistory.from_dict(
            {"task": json.loads(row["task_data"]), "history": json.loads(row["history_data"])}
        )

    def _save(self, data: TaskAndHistory) -> None:
        snapshot = data.to_dict()
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO a2a_tasks
                (session_key, task_id, task_data, history_data, updated_at)
                VALUES (?, ?, ?, ?, ?)
            """,
                (
                    data.task.sessionId or "",
                    data.task.id,
                    json.dumps(snapshot["task"]),
                    json.dumps(snapshot["history"]),
                    current_timestamp(),
                ),
            )
            conn.commit()

    def _dump(self) -> Dict[str, Any]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT session_key, task_id, task_data, history_data FROM a2a_tasks "
                "ORDER BY session_key, task_id"
            ).fetchall()
        tasks = {
            task_key(row["task_id"], row["session_key"]): {
                "task": json.loads(row["task_data"]),
                "history": json.loads(row["history_data"]),
            }
            for row in rows
        }
        return {"database": "sqlite", "path": self.db_path, "taskStore": tasks}

    async def load_task(self, task_id: str, session_id: Optional[str]) -> Optional[TaskAndHistory]:
        try:
            return await asyncio.to_thread(self._load, task_id, session_id)
        except sqlite3.Error as exc:
            raise A2AError.internal_error(f"Failed to load task {task_id}: {exc}") from exc

    async def save_task(self, data: TaskAndHistory) -> None:
        try:
            await asyncio.to_thread(self._save, data)
        except sqlite3.Error as exc:
            raise A2AError.internal_error(f"Failed to save task {data.task.id}: {exc}") from exc
        logger.debug("Task saved", extra={"task_id": data.task.id, "store": "sqlite"})

    async def dump(self) -> Dict[str, Any]:
        return await asyncio.to_thread(self._dump)

    async def close(self) -> None:
        """Close all database connections."""
        with self._connections_lock:
            connections, self._connections = self._connections, []
        for connection in connections:
            connection.close()
        self._local = threading.local()
