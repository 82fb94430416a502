"""
A2A (Agent-to-Agent) Protocol Implementation

Wire-level types for the task-oriented A2A JSON-RPC protocol.
"""

__version__ = "0.1.0"
__protocol_version__ = "0.1.0"
