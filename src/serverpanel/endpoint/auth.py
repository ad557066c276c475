"""Password gate for mutating requests.

Read-only methods pass straight through. Every other request must carry
HTTP Basic credentials whose password, run through salted PBKDF2, matches
the hash of the configured admin password. The salt is generated per
process, so the reference hash never leaves memory.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import logging
import secrets

from fastapi import HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from serverpanel.config.settings import AuthConfig

logger = logging.getLogger(__name__)

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})

CHALLENGE = "Basic realm=Authorization Required"

_basic = HTTPBasic(auto_error=False)


class PasswordGate:
    """Admits or rejects requests based on the admin password."""

    def __init__(
        self,
        password: str = "",
        iterations: int = 10000,
        key_length: int = 512,
        digest: str = "sha512",
        salt_bytes: int = 32,
    ) -> None:
        self._iterations = iterations
        self._key_length = key_length
        self._digest = digest
        self._salt = secrets.token_bytes(salt_bytes)
        self._reference = self._derive(password)

    @classmethod
    def from_config(cls, config: AuthConfig) -> PasswordGate:
        return cls(
            password=config.admin_password.get_secret_value(),
            iterations=config.iterations,
            key_length=config.key_length,
            digest=config.digest,
            salt_bytes=config.salt_bytes,
        )

    def verify(self, password: str) -> bool:
        return hmac.compare_digest(self._derive(password), self._reference)

    async def admits(self, method: str, password: str | None) -> bool:
        if method.upper() in SAFE_METHODS:
            return True
        # PBKDF2 runs in the default executor, off the event loop.
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.verify, password or "")

    def _derive(self, password: str) -> bytes:
        return hashlib.pbkdf2_hmac(
            self._digest,
            password.encode("utf-8"),
            self._salt,
            self._iterations,
            dklen=self._key_length,
        )


async def require_admin(request: Request) -> None:
    """FastAPI dependency applying the app's PasswordGate."""
    gate: PasswordGate = request.app.state.gate
    try:
        credentials: HTTPBasicCredentials | None = await _basic(request)
    except HTTPException:
        # Undecodable Basic header; judged like a request without one.
        credentials = None
    password = credentials.password if credentials is not None else None
    if await gate.admits(request.method, password):
        return
    logger.warning(
        "Rejected %s %s: bad credentials from %s",
        request.method, request.url.path,
        request.client.host if request.client else "unknown",
    )
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": CHALLENGE},
    )
