"""
A2A Task Manager

Drives the task lifecycle for the four task methods: resolves the task a
message belongs to, runs the configured handler over it, applies and persists
every update the handler yields, and reports the result either as the final
task (``tasks/send``) or as a live event stream (``tasks/sendSubscribe``).
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from typing import Any, AsyncIterator, Dict, Optional

from pydantic import ValidationError

from .a2a.models import (
    Message,
    Task,
    TaskArtifactUpdateEvent,
    TaskIdParams,
    TaskSendParams,
    TaskState,
    TaskStatus,
    TaskStatusUpdateEvent,
    agent_text_message,
    current_timestamp,
)
from .cancellation import CancellationRegistry
from .errors import A2AError, normalize_error
from .models import (
    AUTHENTICATED_SESSION_PREFIX,
    FINAL_STREAM_STATES,
    TERMINAL_STATES,
    AgentSession,
    ArtifactUpdate,
    StatusUpdate,
    TaskAndHistory,
    TaskContext,
    TaskHandler,
    TaskUpdate,
)
from .storage import TaskStore
from .streaming_manager import EventStream, StreamingManager
from .updates import apply_update, classify_update, failure_update, find_artifact

logger = logging.getLogger(__name__)

CANCEL_MESSAGE = "Task cancelled by request."
_EXHAUSTED = object()


async def iterate_updates(source: Any) -> AsyncIterator[Any]:
    """
    Adapt a handler's sync or async iterable; closing this closes the handler too.

    Sync iterables are stepped in a worker thread so blocking handlers do not
    stall the event loop.
    """
    try:
        if hasattr(source, "__aiter__"):
            async for item in source:
                yield item
        else:
            iterator = iter(source)
            while True:
                item = await asyncio.to_thread(next, iterator, _EXHAUSTED)
                if item is _EXHAUSTED:
                    break
                yield item
    finally:
        aclose = getattr(source, "aclose", None)
        if aclose is not None:
            await aclose()
        else:
            close = getattr(source, "close", None)
            if close is not None:
                close()


def _validation_details(exc: ValidationError) -> list:
    return [
        {"loc": list(error["loc"]), "msg": error["msg"], "type": error["type"]}
        for error in exc.errors()
    ]


class A2ATaskManager:
    """Task lifecycle engine shared by every JSON-RPC request of one service."""

    def __init__(
        self,
        task_handler: TaskHandler,
        task_store: TaskStore,
        cancellations: Optional[CancellationRegistry] = None,
        streaming_manager: Optional[StreamingManager] = None,
    ):
        self.task_handler = task_handler
        self.task_store = task_store
        self.cancellations = cancellations if cancellations is not None else CancellationRegistry()
        self.streaming_manager = streaming_manager if streaming_manager is not None else StreamingManager()

    # ----- validation and session scope -----

    def validate_task_send_params(self, params: Any) -> TaskSendParams:
        """Validate ``tasks/send`` params: non-empty ``id`` and a ``message`` with ``parts``."""
        if not isinstance(params, dict):
            raise A2AError.invalid_params("Params must be an object")
        try:
            send_params = TaskSendParams.model_validate(params)
        except ValidationError as exc:
            raise A2AError.invalid_params("Invalid task send parameters", _validation_details(exc)) from exc
        if not send_params.id:
            raise A2AError.invalid_params("Task id must be a non-empty string")
        return send_params

    def validate_task_id_params(self, params: Any) -> TaskIdParams:
        if not isinstance(params, dict):
            raise A2AError.invalid_params("Params must be an object")
        try:
            id_params = TaskIdParams.model_validate(params)
        except ValidationError as exc:
            raise A2AError.invalid_params("Invalid task id parameters", _validation_details(exc)) from exc
        if not id_params.id:
            raise A2AError.invalid_params("Task id must be a non-empty string")
        return id_params

    def resolve_session_id(
        self, agent_session: Optional[AgentSession], session_id: Optional[str]
    ) -> Optional[str]:
        """
        Session scope for a task.

        An authenticated agent always works in its own DID's scope and any
        caller-supplied ``sessionId`` is ignored. Without authentication a
        DID-shaped session id is refused.
        """
        if agent_session is not None:
            return agent_session.agent_did
        if session_id and session_id.startswith(AUTHENTICATED_SESSION_PREFIX):
            raise A2AError.invalid_params(
                f"Task based session ID cannot be a DID, found {session_id}"
            )
        return session_id or None

    # ----- lifecycle -----

    async def load_or_create_task_and_history(
        self,
        task_id: str,
        message: Message,
        session_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> TaskAndHistory:
        """Fetch the task for an incoming message, creating it on first contact, and persist it."""
        existing = await self.task_store.load_task(task_id, session_id)

        if existing is None:
            task = Task(
                id=task_id,
                sessionId=session_id,
                status=TaskStatus(state=TaskState.SUBMITTED, timestamp=current_timestamp()),
                artifacts=[],
                metadata=metadata,
            )
            data = TaskAndHistory(task=task, history=[message.model_copy(deep=True)])
            logger.info("Created task", extra={"task_id": task_id, "session_id": session_id})
        else:
            data = TaskAndHistory(
                task=existing.task,
                history=existing.history + [message.model_copy(deep=True)],
            )
            state = data.task.status.state
            if state in TERMINAL_STATES:
                data = apply_update(data, StatusUpdate(state=TaskState.SUBMITTED, message=None))
                logger.info(
                    "Resubmitted terminal task",
                    extra={"task_id": task_id, "previous_state": state.value},
                )
            elif state == TaskState.INPUT_REQUIRED:
                data = apply_update(data, StatusUpdate(state=TaskState.WORKING))
                logger.info("Resumed task after input", extra={"task_id": task_id})

        await self.task_store.save_task(data)
        return data.copy()

    def create_task_context(
        self,
        data: TaskAndHistory,
        user_message: Message,
        agent_session: Optional[AgentSession] = None,
    ) -> TaskContext:
        task_id = data.task.id
        return TaskContext(
            task=data.task.model_copy(deep=True),
            user_message=user_message.model_copy(deep=True),
            history=[message.model_copy(deep=True) for message in data.history],
            agent_session=agent_session,
            cancellation_check=lambda: self.cancellations.is_cancelled(task_id),
        )

    def _accepts(self, current: TaskAndHistory, update: TaskUpdate) -> bool:
        if isinstance(update, StatusUpdate) and current.task.status.state in TERMINAL_STATES:
            logger.warning(
                "Ignoring status update for task in terminal state",
                extra={
                    "task_id": current.task.id,
                    "state": current.task.status.state.value,
                    "update_state": update.state.value,
                },
            )
            return False
        return True

    async def _commit(self, current: TaskAndHistory, update: TaskUpdate, context: TaskContext) -> TaskAndHistory:
        updated = apply_update(current, update)
        await self.task_store.save_task(updated)
        context.task = updated.task.model_copy(deep=True)
        context.history = [message.model_copy(deep=True) for message in updated.history]
        return updated

    async def _record_failure(self, current: TaskAndHistory, error: BaseException) -> TaskAndHistory:
        """Commit a ``failed`` status; a save failure here is logged, never raised."""
        failed = apply_update(current, failure_update(error))
        try:
            await self.task_store.save_task(failed)
        except Exception as save_error:
            logger.error(
                "Failed to persist failed status",
                extra={"task_id": current.task.id, "error": str(save_error)},
            )
        return failed

    # ----- tasks/send -----

    async def send_task(self, params: Any, agent_session: Optional[AgentSession] = None) -> Task:
        """Run the handler to completion and return the final task."""
        send_params = self.validate_task_send_params(params)
        session_id = self.resolve_session_id(agent_session, send_params.sessionId)
        current = await self.load_or_create_task_and_history(
            send_params.id, send_params.message, session_id, send_params.metadata
        )
        context = self.create_task_context(current, send_params.message, agent_session)

        try:
            async with aclosing(iterate_updates(self.task_handler(context))) as updates:
                async for value in updates:
                    update = classify_update(value)
                    if update is None:
                        logger.debug(
                            "Ignoring unrecognized update",
                            extra={"task_id": send_params.id, "update_type": type(value).__name__},
                        )
                        continue
                    if not self._accepts(current, update):
                        continue
                    current = await self._commit(current, update, context)
        except Exception as exc:
            logger.error(
                "Task handler failed",
                extra={"task_id": send_params.id, "error": str(exc)},
            )
            await self._record_failure(current, exc)
            raise normalize_error(exc, send_params.id) from exc

        logger.info(
            "Task send finished",
            extra={"task_id": send_params.id, "state": current.task.status.state.value},
        )
        return current.task

    # ----- tasks/sendSubscribe -----

    async def send_task_subscribe(
        self,
        request_id: Any,
        params: Any,
        agent_session: Optional[AgentSession] = None,
    ) -> EventStream:
        """Start the handler in the background and return the stream of its events."""
        send_params = self.validate_task_send_params(params)
        session_id = self.resolve_session_id(agent_session, send_params.sessionId)
        current = await self.load_or_create_task_and_history(
            send_params.id, send_params.message, session_id, send_params.metadata
        )
        stream = await self.streaming_manager.open_stream(request_id, send_params.id)
        context = self.create_task_context(current, send_params.message, agent_session)
        self.streaming_manager.start_producer(stream, self._stream_updates(stream, current, context))
        return stream

    def _status_event(self, current: TaskAndHistory, final: bool) -> TaskStatusUpdateEvent:
        return TaskStatusUpdateEvent(id=current.task.id, status=current.task.status, final=final)

    async def _stream_updates(self, stream: EventStream, current: TaskAndHistory, context: TaskContext) -> None:
        task_id = current.task.id
        final_sent = False
        try:
            try:
                async with aclosing(iterate_updates(self.task_handler(context))) as updates:
                    async for value in updates:
                        update = classify_update(value)
                        if update is None:
                            logger.warning(
                                "Skipping unrecognized update",
                                extra={"task_id": task_id, "update_type": type(value).__name__},
                            )
                            continue
                        if not self._accepts(current, update):
                            continue
                        current = await self._commit(current, update, context)

                        if isinstance(update, ArtifactUpdate):
                            stream.send(
                                TaskArtifactUpdateEvent(
                                    id=task_id, artifact=find_artifact(current.task, update), final=False
                                )
                            )
                            continue

                        final = current.task.status.state in FINAL_STREAM_STATES
                        stream.send(self._status_event(current, final))
                        if final:
                            final_sent = True
                            break

                if not final_sent:
                    if current.task.status.state not in FINAL_STREAM_STATES:
                        current = await self._commit(current, StatusUpdate(state=TaskState.COMPLETED), context)
                    stream.send(self._status_event(current, True))
                    final_sent = True
            except Exception as exc:
                logger.error(
                    "Task handler failed during stream",
                    extra={"task_id": task_id, "stream_id": stream.stream_id, "error": str(exc)},
                )
                current = await self._record_failure(current, exc)
                stream.send(self._status_event(current, True))
        finally:
            stream.close()

        logger.info(
            "Task stream finished",
            extra={"task_id": task_id, "state": current.task.status.state.value, "events": stream.sent_count},
        )

    # ----- tasks/get and tasks/cancel -----

    async def _load_scoped(self, id_params: TaskIdParams, agent_session: Optional[AgentSession]) -> TaskAndHistory:
        session_id = self.resolve_session_id(agent_session, id_params.sessionId)
        if session_id is None:
            raise A2AError.invalid_params("Missing session ID")
        data = await self.task_store.load_task(id_params.id, session_id)
        if data is None:
            raise A2AError.task_not_found(id_params.id)
        return data

    async def get_task(self, params: Any, agent_session: Optional[AgentSession] = None) -> Task:
        id_params = self.validate_task_id_params(params)
        data = await self._load_scoped(id_params, agent_session)
        return data.task

    async def cancel_task(self, params: Any, agent_session: Optional[AgentSession] = None) -> Task:
        """Cancel a task; a task already in a terminal state is returned unchanged."""
        id_params = self.validate_task_id_params(params)
        data = await self._load_scoped(id_params, agent_session)

        if data.task.status.state in TERMINAL_STATES:
            logger.info(
                "Cancel ignored for terminal task",
                extra={"task_id": id_params.id, "state": data.task.status.state.value},
            )
            return data.task

        self.cancellations.add(id_params.id)
        try:
            data = apply_update(
                data,
                StatusUpdate(state=TaskState.CANCELED, message=agent_text_message(CANCEL_MESSAGE)),
            )
            await self.task_store.save_task(data)
        finally:
            self.cancellations.discard(id_params.id)

        logger.info("Cancelled task", extra={"task_id": id_params.id})
        return data.task
