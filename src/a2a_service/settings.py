from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional

TASK_STORE_BACKENDS = ("memory", "file", "sqlite")


@dataclass(frozen=True)
class Settings:
    """Service settings sourced from environment variables."""

    service_name: str = "A2A Task Service"
    base_path: str = "/"
    host: str = "localhost"
    port: int = 4004

    # Task persistence
    task_store: str = "memory"
    task_store_dir: Path = Path(".a2a-tasks")
    database_path: Path = Path("a2a_tasks.db")

    # Authentication: bearer token -> agent DID
    auth_tokens: Dict[str, str] = field(default_factory=dict)
    admin_token: Optional[str] = None

    # Streaming
    max_streams: int = 200

    @property
    def public_url(self) -> str:
        return f"http://{self.host}:{self.port}{self.base_path}"


def normalize_base_path(raw: Optional[str]) -> str:
    """Return ``raw`` as an absolute path without a trailing slash ("/" for empty)."""
    path = (raw or "").strip().strip("/")
    return f"/{path}" if path else "/"


def parse_auth_tokens(raw: Optional[str]) -> Dict[str, str]:
    """Parse ``token=did,token2=did2`` into a mapping."""
    tokens: Dict[str, str] = {}
    if not raw:
        return tokens
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        token, sep, did = entry.partition("=")
        if not sep or not token.strip() or not did.strip():
            raise ValueError(f"A2A_AUTH_TOKENS entry must look like token=did, got {entry!r}")
        tokens[token.strip()] = did.strip()
    return tokens


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def validate_settings(settings: Settings) -> None:
    """Validate settings and raise ValueError for invalid configurations."""
    errors = []

    if settings.task_store not in TASK_STORE_BACKENDS:
        errors.append(
            f"A2A_TASK_STORE must be one of {', '.join(TASK_STORE_BACKENDS)}, got {settings.task_store!r}"
        )
    if not 0 < settings.port < 65536:
        errors.append("PORT must be between 1 and 65535")
    if settings.max_streams <= 0:
        errors.append("A2A_MAX_STREAMS must be positive")

    if errors:
        error_msg = "Configuration validation failed:\n" + "\n".join(
            f"  - {error}" for error in errors
        )
        raise ValueError(error_msg)


@lru_cache()
def get_settings() -> Settings:
    """Return cached and validated settings."""
    settings = Settings(
        service_name=os.getenv("A2A_SERVICE_NAME", "A2A Task Service"),
        base_path=normalize_base_path(os.getenv("A2A_BASE_PATH", "/")),
        host=os.getenv("A2A_HOST", "localhost"),
        port=_int_env("PORT", 4004),
        task_store=os.getenv("A2A_TASK_STORE", "memory").strip().lower(),
        task_store_dir=Path(os.getenv("A2A_TASK_STORE_DIR", ".a2a-tasks")),
        database_path=Path(os.getenv("A2A_DATABASE_PATH", "a2a_tasks.db")),
        auth_tokens=parse_auth_tokens(os.getenv("A2A_AUTH_TOKENS")),
        admin_token=os.getenv("A2A_ADMIN_TOKEN") or None,
        max_streams=_int_env("A2A_MAX_STREAMS", 200),
    )

    validate_settings(settings)

    return settings
