"""JSON-RPC error taxonomy for the A2A task service."""

from __future__ import annotations

from enum import IntEnum
from typing import Any, Optional

from .a2a.models import JSONRPCError


class ErrorCode(IntEnum):
    """JSON-RPC 2.0 and A2A-specific error codes."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603
    TASK_NOT_FOUND = -32001


class A2AError(Exception):
    """An error that is reported to the caller as a JSON-RPC error object."""

    def __init__(
        self,
        code: int,
        message: str,
        data: Optional[Any] = None,
        task_id: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.code = int(code)
        self.message = message
        self.data = data
        self.task_id = task_id

    @classmethod
    def parse_error(cls, message: str = "Invalid JSON payload", data: Optional[Any] = None) -> "A2AError":
        return cls(ErrorCode.PARSE_ERROR, message, data)

    @classmethod
    def invalid_request(cls, message: str = "Request payload validation error", data: Optional[Any] = None) -> "A2AError":
        return cls(ErrorCode.INVALID_REQUEST, message, data)

    @classmethod
    def method_not_found(cls, method: Any) -> "A2AError":
        return cls(ErrorCode.METHOD_NOT_FOUND, "Method not found", {"method": method})

    @classmethod
    def invalid_params(cls, message: str = "Invalid parameters", data: Optional[Any] = None) -> "A2AError":
        return cls(ErrorCode.INVALID_PARAMS, message, data)

    @classmethod
    def internal_error(cls, message: str = "Internal error", data: Optional[Any] = None) -> "A2AError":
        return cls(ErrorCode.INTERNAL_ERROR, message, data)

    @classmethod
    def task_not_found(cls, task_id: str) -> "A2AError":
        return cls(ErrorCode.TASK_NOT_FOUND, "Task not found", task_id=task_id)

    def to_jsonrpc_error(self) -> JSONRPCError:
        return JSONRPCError(code=self.code, message=self.message, data=self.data)

    def __repr__(self) -> str:
        return f"A2AError(code={self.code}, message={self.message!r}, task_id={self.task_id!r})"


def normalize_error(error: BaseException, task_id: Optional[str] = None) -> A2AError:
    """Coerce any exception into an A2AError, attaching task context when missing."""
    if isinstance(error, A2AError):
        normalized = error
    else:
        message = str(error) or type(error).__name__
        normalized = A2AError.internal_error(message, {"type": type(error).__name__})
    if task_id and not normalized.task_id:
        normalized.task_id = task_id
    return normalized
