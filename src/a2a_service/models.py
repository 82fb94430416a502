"""
Internal models for the A2A task engine.

Tagged update variants produced by task handlers, the persisted
task-plus-history unit, agent sessions, and the context handed to handlers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import (
    Any,
    AsyncIterable,
    Callable,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Literal,
    Optional,
    Union,
)

from pydantic import BaseModel

from .a2a.models import Artifact, Message, Task, TaskState

# States after which no further handler-driven progress is expected.
TERMINAL_STATES: FrozenSet[TaskState] = frozenset(
    {TaskState.COMPLETED, TaskState.FAILED, TaskState.CANCELED}
)

# States that end a tasks/sendSubscribe stream.
FINAL_STREAM_STATES: FrozenSet[TaskState] = TERMINAL_STATES | {TaskState.INPUT_REQUIRED}

# Session ids of this shape are reserved for authenticated agents.
AUTHENTICATED_SESSION_PREFIX = "did:"


class StatusUpdate(BaseModel):
    """A status delta yielded by a task handler.

    Only the fields explicitly set on the update are merged over the current
    status; pass ``message=None`` to clear the previous status message.
    """

    kind: Literal["status"] = "status"
    state: TaskState
    message: Optional[Message] = None


class ArtifactUpdate(Artifact):
    """An artifact delta yielded by a task handler."""

    kind: Literal["artifact"] = "artifact"

    def to_artifact(self) -> Artifact:
        return Artifact.model_validate(self.model_dump(exclude={"kind"}))


TaskUpdate = Union[StatusUpdate, ArtifactUpdate]


@dataclass(frozen=True)
class TaskAndHistory:
    """A task together with its message history; the unit of persistence."""

    task: Task
    history: List[Message] = field(default_factory=list)

    def copy(self) -> "TaskAndHistory":
        return TaskAndHistory(
            task=self.task.model_copy(deep=True),
            history=[message.model_copy(deep=True) for message in self.history],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task": self.task.model_dump(mode="json", exclude_none=True),
            "history": [message.model_dump(mode="json", exclude_none=True) for message in self.history],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskAndHistory":
        return cls(
            task=Task.model_validate(data["task"]),
            history=[Message.model_validate(item) for item in data.get("history") or []],
        )


@dataclass(frozen=True)
class AgentSession:
    """An authenticated client agent, as established by a session resolver."""

    session_id: int
    agent_did: str
    created: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class TaskContext:
    """Everything a task handler sees about the task it is running."""

    task: Task
    user_message: Message
    history: List[Message]
    agent_session: Optional[AgentSession] = None
    cancellation_check: Callable[[], bool] = field(default=lambda: False, repr=False)

    def is_cancelled(self) -> bool:
        """Return True once a tasks/cancel request has been issued for this task."""
        return self.cancellation_check()


TaskHandler = Callable[[TaskContext], Union[AsyncIterable[Any], Iterable[Any]]]
