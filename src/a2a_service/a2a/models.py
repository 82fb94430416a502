"""
A2A (Agent-to-Agent) Protocol Data Models

Python implementation of the task-oriented A2A wire types served by this
package (``tasks/send``, ``tasks/sendSubscribe``, ``tasks/get`` and
``tasks/cancel``). Field names follow the wire format, so models dump directly
to protocol JSON.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel


# ===== FOUNDATIONAL TYPES =====

class TaskState(str, Enum):
    """Defines the lifecycle states of a Task."""
    SUBMITTED = "submitted"
    WORKING = "working"
    INPUT_REQUIRED = "input-required"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"


# ===== CONTENT PARTS =====

class PartBase(BaseModel):
    """Defines base properties common to all message or artifact parts."""
    metadata: Optional[Dict[str, Any]] = None


class TextPart(PartBase):
    """Represents a text segment within a message or artifact."""
    type: Literal["text"] = "text"
    text: str


class FileBase(BaseModel):
    """Defines base properties for a file."""
    name: Optional[str] = None
    mimeType: Optional[str] = None


class FileWithBytes(FileBase):
    """Represents a file with its content provided directly as a base64-encoded string."""
    bytes: str
    uri: Optional[str] = None  # Must be absent when bytes is present


class FileWithUri(FileBase):
    """Represents a file with its content located at a specific URI."""
    uri: str
    bytes: Optional[str] = None  # Must be absent when uri is present


class FilePart(PartBase):
    """Represents a file segment within a message or artifact."""
    type: Literal["file"] = "file"
    file: Union[FileWithBytes, FileWithUri]


class DataPart(PartBase):
    """Represents a structured data segment within a message or artifact."""
    type: Literal["data"] = "data"
    data: Dict[str, Any]


# Union type for all parts (simple union without discriminator)
Part = Union[TextPart, FilePart, DataPart]


# ===== TASK AND MESSAGE TYPES =====

class Message(BaseModel):
    """Represents a single message in the conversation between a user and an agent."""
    role: Literal["user", "agent"]
    parts: List[Part]
    metadata: Optional[Dict[str, Any]] = None


class TaskStatus(BaseModel):
    """Represents the status of a task at a specific point in time."""
    state: TaskState
    message: Optional[Message] = None
    timestamp: Optional[str] = None


class Artifact(BaseModel):
    """Represents an output chunk generated by an agent while working on a task."""
    name: Optional[str] = None
    description: Optional[str] = None
    parts: List[Part]
    index: Optional[int] = None
    append: Optional[bool] = None
    lastChunk: Optional[bool] = None
    metadata: Optional[Dict[str, Any]] = None


class Task(BaseModel):
    """Represents a single, stateful operation between a client and an agent."""
    id: str
    sessionId: Optional[str] = None
    status: TaskStatus
    artifacts: Optional[List[Artifact]] = None
    metadata: Optional[Dict[str, Any]] = None


# ===== JSON-RPC 2.0 TYPES =====

class JSONRPCMessage(BaseModel):
    """Base structure for any JSON-RPC 2.0 request, response, or notification."""
    jsonrpc: Literal["2.0"] = "2.0"
    id: Optional[Union[int, float, str]] = None


class JSONRPCRequest(JSONRPCMessage):
    """Represents a JSON-RPC 2.0 Request object."""
    method: str
    params: Optional[Union[Dict[str, Any], List[Any]]] = None


class JSONRPCError(BaseModel):
    """Represents a JSON-RPC 2.0 Error object."""
    code: int
    message: str
    data: Optional[Any] = None


class JSONRPCSuccessResponse(BaseModel):
    """Represents a successful JSON-RPC 2.0 Response object."""
    jsonrpc: Literal["2.0"] = "2.0"
    id: Union[int, float, str, None] = None  # Echoes the request id, null included
    result: Any


class JSONRPCErrorResponse(BaseModel):
    """Represents a JSON-RPC 2.0 Error Response object."""
    jsonrpc: Literal["2.0"] = "2.0"
    id: Union[int, float, str, None] = None  # Can be null for error responses
    error: JSONRPCError


# ===== A2A REQUEST TYPES =====

class TaskIdParams(BaseModel):
    """Parameters containing a task ID for simple task operations."""
    id: str
    sessionId: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class TaskSendParams(BaseModel):
    """Parameters for tasks/send and tasks/sendSubscribe."""
    id: str
    sessionId: Optional[str] = None
    message: Message
    metadata: Optional[Dict[str, Any]] = None


# ===== EVENT TYPES =====

class TaskStatusUpdateEvent(BaseModel):
    """An event sent by the agent to notify the client of a change in a task's status."""
    id: str
    status: TaskStatus
    final: bool
    metadata: Optional[Dict[str, Any]] = None


class TaskArtifactUpdateEvent(BaseModel):
    """An event sent by the agent to notify the client that an artifact has been generated."""
    id: str
    artifact: Artifact
    final: bool = False
    metadata: Optional[Dict[str, Any]] = None


# ===== UTILITY FUNCTIONS =====

def current_timestamp() -> str:
    """Return the current time as an ISO-8601 UTC timestamp."""
    return datetime.now(timezone.utc).isoformat()


def agent_text_message(text: str) -> Message:
    """Build a single-part agent message."""
    return Message(role="agent", parts=[TextPart(text=text)])


def serialize_a2a(obj: Any) -> Any:
    """Convert Pydantic models (and nested structures) into JSON-serializable dicts without nulls."""
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json", exclude_none=True)
    if isinstance(obj, list):
        return [serialize_a2a(item) for item in obj]
    if isinstance(obj, dict):
        return {key: serialize_a2a(value) for key, value in obj.items() if value is not None}
    return obj
