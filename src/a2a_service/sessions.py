"""
Client agent sessions.

A session resolver turns an HTTP request into an ``AgentSession`` or refuses
it. Refusal short-circuits the JSON-RPC request and the resolver's own
``challenge`` response is returned instead.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import secrets
from typing import Dict, Mapping, Optional, Protocol, runtime_checkable

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from .models import AgentSession

logger = logging.getLogger(__name__)


def bearer_token(request: Request) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    header = request.headers.get("Authorization")
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


@runtime_checkable
class SessionResolver(Protocol):
    async def resolve(self, request: Request) -> Optional[AgentSession]:
        ...

    def challenge(self, request: Request) -> Response:
        ...


class BearerTokenSessionResolver:
    """
    Authenticate client agents by a static bearer token.

    Each configured token maps to the agent DID it authenticates. The first
    successful request for a token opens an ``AgentSession`` with the next
    sequential id; later requests reuse it.
    """

    def __init__(self, tokens: Mapping[str, str], realm: str = "a2a"):
        self.tokens: Dict[str, str] = dict(tokens)
        self.realm = realm
        self.sessions: Dict[str, AgentSession] = {}
        self._ids = itertools.count(1)
        self._lock: Optional[asyncio.Lock] = None

    @property
    def lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    def _lookup(self, token: str) -> Optional[str]:
        for known, agent_did in self.tokens.items():
            if secrets.compare_digest(known, token):
                return agent_did
        return None

    async def resolve(self, request: Request) -> Optional[AgentSession]:
        token = bearer_token(request)
        if token is None:
            return None
        agent_did = self._lookup(token)
        if agent_did is None:
            logger.warning("Rejected unknown bearer token")
            return None

        async with self.lock:
            session = self.sessions.get(token)
            if session is None:
                session = AgentSession(session_id=next(self._ids), agent_did=agent_did)
                self.sessions[token] = session
                logger.info(
                    "Client agent session created",
                    extra={"session_id": session.session_id, "agent_did": agent_did},
                )
        return session

    async def fetch_session(self, session_id: int) -> Optional[AgentSession]:
        async with self.lock:
            for session in self.sessions.values():
                if session.session_id == session_id:
                    return session
        return None

    def challenge(self, request: Request) -> Response:
        return JSONResponse(
            {"error": "unauthorized", "message": "A valid bearer token is required"},
            status_code=401,
            headers={"WWW-Authenticate": f'Bearer realm="{self.realm}"'},
        )

    def dump(self) -> Dict[str, Dict[str, object]]:
        return {
            str(session.session_id): {
                "agentDid": session.agent_did,
                "created": session.created.isoformat(),
            }
            for session in self.sessions.values()
        }
