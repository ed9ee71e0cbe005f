"""Security-related helpers.

Provides webhook signature verification (HMAC-SHA256 over the raw request body)
and optional HTTP Basic auth protection for the operator API.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import secrets
from dataclasses import dataclass

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


def compute_signature(body: bytes, secret: str, *, prefix: str = "") -> str:
    """Hex HMAC-SHA256 of `body`, optionally prefixed (e.g. "sha256=")."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"{prefix}{digest}"


def verify_signature(body: bytes, signature: str | None, secret: str, *, prefix: str = "") -> bool:
    """Constant-time check of a webhook signature header."""
    if not signature:
        return False
    expected = compute_signature(body, secret, prefix=prefix)
    return hmac.compare_digest(expected.encode("utf-8"), signature.strip().encode("utf-8"))


@dataclass(frozen=True)
class BasicAuthCredentials:
    username: str
    password: str


def _parse_basic_auth_header(header_value: str) -> BasicAuthCredentials | None:
    """Parse an Authorization header containing HTTP Basic auth."""
    if not header_value:
        return None

    scheme, _, param = header_value.partition(" ")
    if scheme.lower() != "basic" or not param:
        return None

    try:
        decoded = base64.b64decode(param, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None

    username, sep, password = decoded.partition(":")
    if sep != ":":
        return None

    return BasicAuthCredentials(username=username, password=password)


class BasicAuthMiddleware(BaseHTTPMiddleware):
    """Protect routes via HTTP Basic auth.

    Paths in `allow_paths`, and paths under any of `allow_prefixes`, stay open.
    """

    def __init__(
        self,
        app,
        *,
        username: str,
        password: str,
        allow_paths: set[str] | None = None,
        allow_prefixes: tuple[str, ...] = (),
        realm: str = "SyncBridge",
    ):
        super().__init__(app)
        self._username = username
        self._password = password
        self._allow_paths = allow_paths or {"/health"}
        self._allow_prefixes = allow_prefixes
        self._realm = realm

    def _unauthorized(self) -> Response:
        return Response(
            content="Unauthorized",
            status_code=401,
            headers={"WWW-Authenticate": f'Basic realm="{self._realm}", charset="UTF-8"'},
        )

    def _is_open(self, path: str) -> bool:
        return path in self._allow_paths or any(path.startswith(p) for p in self._allow_prefixes)

    async def dispatch(self, request: Request, call_next):
        if self._is_open(request.url.path):
            return await call_next(request)

        creds = _parse_basic_auth_header(request.headers.get("Authorization", ""))
        if creds is None:
            return self._unauthorized()

        ok_user = secrets.compare_digest(creds.username, self._username)
        ok_pass = secrets.compare_digest(creds.password, self._password)
        if not (ok_user and ok_pass):
            return self._unauthorized()

        return await call_next(request)
