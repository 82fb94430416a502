"""
A2A Task Service

Server-side engine for the A2A task protocol: JSON-RPC 2.0 task methods over
HTTP, pluggable task handlers, persisted task state and SSE event streams.
"""

from .a2a import __version__
from .main import create_app, run_server
from .models import ArtifactUpdate, StatusUpdate, TaskContext
from .task_manager import A2ATaskManager

__all__ = [
    "__version__",
    "create_app",
    "run_server",
    "A2ATaskManager",
    "StatusUpdate",
    "ArtifactUpdate",
    "TaskContext",
]
