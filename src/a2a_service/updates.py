"""
Classification and application of task updates.

Handlers yield ``StatusUpdate`` / ``ArtifactUpdate`` values. Plain mappings are
still accepted and classified by shape: a mapping with ``state`` and without
``parts`` is a status update, a mapping with ``parts`` is an artifact update.

``apply_update`` is pure: it builds a new ``TaskAndHistory`` from deep copies
and never mutates its input.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional

from pydantic import ValidationError

from .a2a.models import Artifact, Message, Task, TaskState, TaskStatus, agent_text_message
from .models import ArtifactUpdate, StatusUpdate, TaskAndHistory, TaskUpdate

logger = logging.getLogger(__name__)


def is_status_update(value: Any) -> bool:
    """True for a status update: has ``state`` and no ``parts``."""
    if isinstance(value, StatusUpdate):
        return True
    return isinstance(value, Mapping) and "state" in value and "parts" not in value


def is_artifact_update(value: Any) -> bool:
    """True for an artifact update: has ``parts``."""
    if isinstance(value, ArtifactUpdate):
        return True
    return isinstance(value, Mapping) and "parts" in value


def classify_update(value: Any) -> Optional[TaskUpdate]:
    """Return the tagged update for ``value``, or None when it is not an update."""
    if isinstance(value, (StatusUpdate, ArtifactUpdate)):
        return value
    try:
        if is_status_update(value):
            return StatusUpdate.model_validate(_without_kind(value))
        if is_artifact_update(value):
            return ArtifactUpdate.model_validate(_without_kind(value))
    except ValidationError as exc:
        logger.warning("Malformed task update", extra={"error": str(exc)})
    return None


def _without_kind(value: Mapping[str, Any]) -> dict:
    return {key: item for key, item in value.items() if key != "kind"}


def failure_update(error: BaseException) -> StatusUpdate:
    """Synthetic ``failed`` status recording a handler error."""
    text = str(error) or type(error).__name__
    return StatusUpdate(state=TaskState.FAILED, message=agent_text_message(f"Handler failed: {text}"))


def commit_timestamp(previous: Optional[str] = None) -> str:
    """Current time as ISO-8601, never earlier than ``previous``."""
    now = datetime.now(timezone.utc)
    if previous:
        try:
            earlier = datetime.fromisoformat(previous.replace("Z", "+00:00"))
        except ValueError:
            earlier = None
        if earlier is not None and earlier.tzinfo is not None and earlier > now:
            now = earlier
    return now.isoformat()


def apply_update(current: TaskAndHistory, update: TaskUpdate) -> TaskAndHistory:
    """Merge one update into ``current`` and return the resulting pair."""
    task = current.task.model_copy(deep=True)
    history = [message.model_copy(deep=True) for message in current.history]

    if isinstance(update, StatusUpdate):
        return _apply_status(task, history, update)
    if isinstance(update, ArtifactUpdate):
        return TaskAndHistory(task=_apply_artifact(task, update), history=history)

    logger.debug("Ignoring unrecognized update", extra={"update_type": type(update).__name__})
    return TaskAndHistory(task=task, history=history)


def _apply_status(task: Task, history: List[Message], update: StatusUpdate) -> TaskAndHistory:
    merged = task.status.model_dump()
    merged.update(update.model_dump(include=update.model_fields_set - {"kind"}))
    merged["timestamp"] = commit_timestamp(task.status.timestamp)
    task.status = TaskStatus.model_validate(merged)

    if update.message is not None and update.message.role == "agent":
        history.append(update.message.model_copy(deep=True))
    return TaskAndHistory(task=task, history=history)


def _resolve_artifact_slot(artifacts: List[Artifact], update: ArtifactUpdate) -> Optional[int]:
    if update.index is not None:
        for position, artifact in enumerate(artifacts):
            if artifact.index == update.index:
                return position
        if 0 <= update.index < len(artifacts) and artifacts[update.index].index is None:
            return update.index
    if update.name:
        for position, artifact in enumerate(artifacts):
            if artifact.name == update.name:
                return position
    return None


def _append_to_artifact(existing: Artifact, update: ArtifactUpdate) -> Artifact:
    appended = existing.model_copy(deep=True)
    appended.parts = appended.parts + [part.model_copy(deep=True) for part in update.parts]
    if update.metadata:
        appended.metadata = {**(appended.metadata or {}), **update.metadata}
    if update.lastChunk is not None:
        appended.lastChunk = update.lastChunk
    if update.description:
        appended.description = update.description
    return appended


def _apply_artifact(task: Task, update: ArtifactUpdate) -> Task:
    artifacts = list(task.artifacts or [])
    slot = _resolve_artifact_slot(artifacts, update)

    if slot is None:
        artifacts.append(update.to_artifact())
    elif update.append:
        artifacts[slot] = _append_to_artifact(artifacts[slot], update)
    else:
        artifacts[slot] = update.to_artifact()

    if any(artifact.index is not None for artifact in artifacts):
        artifacts.sort(key=lambda artifact: artifact.index or 0)
    task.artifacts = artifacts
    return task


def find_artifact(task: Task, update: ArtifactUpdate) -> Artifact:
    """The committed artifact an update landed in, matched by index or name."""
    for artifact in task.artifacts or []:
        if update.index is not None and artifact.index == update.index:
            return artifact
        if update.name and artifact.name == update.name:
            return artifact
    return update.to_artifact()
