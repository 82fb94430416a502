"""
A2A JSON-RPC 2.0 request dispatcher.

Parses the HTTP body, validates the JSON-RPC envelope, routes the four task
methods to the task manager and turns every outcome into exactly one HTTP
response: a success envelope, an error envelope, or an SSE stream for
``tasks/sendSubscribe``. A null request id is echoed back as null.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from .a2a.models import JSONRPCErrorResponse, JSONRPCRequest, JSONRPCSuccessResponse, serialize_a2a
from .errors import A2AError, ErrorCode, normalize_error
from .models import AgentSession
from .sessions import SessionResolver
from .streaming_manager import StreamingManager
from .task_manager import A2ATaskManager

logger = logging.getLogger(__name__)

MethodHandler = Callable[[Any, Any, Optional[AgentSession]], Awaitable[Any]]


def _is_valid_id(value: Any) -> bool:
    if value is None or isinstance(value, str):
        return True
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_valid_jsonrpc_request(payload: Any) -> bool:
    """Check the JSON-RPC 2.0 request envelope shape."""
    if not isinstance(payload, dict):
        return False
    if payload.get("jsonrpc") != "2.0":
        return False
    if not isinstance(payload.get("method"), str):
        return False
    if "id" not in payload or not _is_valid_id(payload["id"]):
        return False
    params = payload.get("params")
    return params is None or isinstance(params, (dict, list))


def _request_id_of(payload: Any) -> Any:
    if isinstance(payload, dict) and _is_valid_id(payload.get("id")):
        return payload.get("id")
    return None


class A2AServer:
    """
    JSON-RPC dispatcher for the A2A task methods.

    Method handlers receive ``(request_id, params, agent_session)`` and return
    either a result to wrap in a success envelope or a ready-made ``Response``.
    """

    def __init__(
        self,
        task_manager: A2ATaskManager,
        streaming_manager: Optional[StreamingManager] = None,
        session_resolver: Optional[SessionResolver] = None,
    ):
        self.task_manager = task_manager
        self.streaming_manager = streaming_manager or task_manager.streaming_manager
        self.session_resolver = session_resolver
        self.methods: Dict[str, MethodHandler] = {}
        self._register_default_methods()

    def _register_default_methods(self) -> None:
        self.register_method("tasks/send", self.handle_tasks_send)
        self.register_method("tasks/sendSubscribe", self.handle_tasks_send_subscribe)
        self.register_method("tasks/get", self.handle_tasks_get)
        self.register_method("tasks/cancel", self.handle_tasks_cancel)

    def register_method(self, method_name: str, handler: MethodHandler) -> None:
        """Register an A2A method handler."""
        self.methods[method_name] = handler
        logger.debug("Registered A2A method handler", extra={"method": method_name})

    # ----- transport -----

    async def handle_request(self, request: Request) -> Response:
        """Entry point for one HTTP POST carrying a JSON-RPC request."""
        agent_session: Optional[AgentSession] = None
        if self.session_resolver is not None:
            agent_session = await self.session_resolver.resolve(request)
            if agent_session is None:
                # The resolver answers for itself; no JSON-RPC envelope is produced.
                return self.session_resolver.challenge(request)

        body = await request.body()
        try:
            payload = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.warning("Invalid JSON in request body", extra={"error": str(exc)})
            return self._error_response(None, A2AError.parse_error())

        return await self.dispatch(payload, agent_session)

    async def dispatch(self, payload: Any, agent_session: Optional[AgentSession] = None) -> Response:
        """Validate the envelope, run the method and format its outcome."""
        if not is_valid_jsonrpc_request(payload):
            logger.warning("Invalid JSON-RPC request format")
            return self._error_response(_request_id_of(payload), A2AError.invalid_request())

        request = JSONRPCRequest.model_validate(payload)
        request_id = request.id
        method_name = request.method
        params = request.params

        logger.info(
            "Processing A2A request",
            extra={"method": method_name, "request_id": request_id},
        )

        handler = self.methods.get(method_name)
        if handler is None:
            logger.warning("Method not found", extra={"method": method_name})
            return self._error_response(request_id, A2AError.method_not_found(method_name))

        try:
            result = await handler(request_id, params, agent_session)
        except Exception as exc:
            error = normalize_error(exc)
            self._log_method_error(method_name, request_id, error, exc)
            return self._error_response(request_id, error)

        if isinstance(result, Response):
            return result
        envelope = JSONRPCSuccessResponse(id=request_id, result=serialize_a2a(result))
        return JSONResponse(envelope.model_dump(mode="json"))

    def _log_method_error(self, method_name: str, request_id: Any, error: A2AError, exc: BaseException) -> None:
        extra = {
            "method": method_name,
            "request_id": request_id,
            "code": error.code,
            "task_id": error.task_id,
            "error": error.message,
        }
        if error.code == ErrorCode.INTERNAL_ERROR:
            logger.error("A2A method failed", extra=extra, exc_info=exc)
        else:
            logger.info("A2A method rejected", extra=extra)

    def _error_response(self, request_id: Any, error: A2AError) -> JSONResponse:
        envelope = JSONRPCErrorResponse(id=request_id, error=error.to_jsonrpc_error())
        exclude = {"error": {"data"}} if error.data is None else None
        return JSONResponse(envelope.model_dump(mode="json", exclude=exclude))

    # ----- methods -----

    async def handle_tasks_send(self, request_id: Any, params: Any, agent_session: Optional[AgentSession]) -> Any:
        return await self.task_manager.send_task(params, agent_session)

    async def handle_tasks_send_subscribe(
        self, request_id: Any, params: Any, agent_session: Optional[AgentSession]
    ) -> Response:
        stream = await self.task_manager.send_task_subscribe(request_id, params, agent_session)
        return self.streaming_manager.create_sse_response(stream)

    async def handle_tasks_get(self, request_id: Any, params: Any, agent_session: Optional[AgentSession]) -> Any:
        return await self.task_manager.get_task(params, agent_session)

    async def handle_tasks_cancel(self, request_id: Any, params: Any, agent_session: Optional[AgentSession]) -> Any:
        return await self.task_manager.cancel_task(params, agent_session)
