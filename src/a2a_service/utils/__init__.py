"""
Small helpers shared across the service.

Example:
    from a2a_service.utils import atomic_write_json
"""

from .file_utils import atomic_remove, atomic_write_json, read_json

__all__ = ["atomic_write_json", "atomic_remove", "read_json"]
