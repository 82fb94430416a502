"""Advisory cancellation registry consulted by running task handlers."""

from __future__ import annotations

import logging
from typing import FrozenSet, Set

logger = logging.getLogger(__name__)


class CancellationRegistry:
    """
    Set of task ids with a cancellation in progress.

    Membership only signals intent: a handler has to poll
    ``TaskContext.is_cancelled()`` between units of work and yield its own
    ``canceled`` update.
    """

    def __init__(self) -> None:
        self._task_ids: Set[str] = set()

    def add(self, task_id: str) -> None:
        self._task_ids.add(task_id)
        logger.debug("Task marked for cancellation", extra={"task_id": task_id})

    def discard(self, task_id: str) -> None:
        self._task_ids.discard(task_id)

    def is_cancelled(self, task_id: str) -> bool:
        return task_id in self._task_ids

    def snapshot(self) -> FrozenSet[str]:
        return frozenset(self._task_ids)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._task_ids

    def __len__(self) -> int:
        return len(self._task_ids)
