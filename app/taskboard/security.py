"""
CSRF tokens and password hashing.

A CSRF token is the urlsafe base64 (unpadded) encoding of an 8-byte big-endian
UNIX timestamp followed by 32 random bytes. The token lives in a script-readable
``csrf_token`` cookie and must be echoed back in the ``csrf_token`` form field or
the ``X-CSRF-Token`` header on state-changing requests.
"""
from __future__ import annotations

import base64
import hmac
import secrets
import struct
import time

from flask import Request, Response, current_app, g, request
from werkzeug.security import check_password_hash, generate_password_hash

CSRF_COOKIE_NAME = "csrf_token"
CSRF_FORM_FIELD = "csrf_token"
CSRF_HEADER_NAME = "X-CSRF-Token"
DEFAULT_CSRF_MAX_AGE = 3600

_TIMESTAMP_BYTES = 8
_RANDOM_BYTES = 32


def generate_csrf_token(now: float | None = None) -> str:
    issued_at = int(time.time() if now is None else now)
    raw = struct.pack(">Q", issued_at) + secrets.token_bytes(_RANDOM_BYTES)
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def token_issued_at(token: str | None) -> int | None:
    """Return the embedded UNIX timestamp, or None for a malformed token."""
    if not token:
        return None
    padded = token + "=" * (-len(token) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
    except ValueError:
        return None
    if len(raw) != _TIMESTAMP_BYTES + _RANDOM_BYTES:
        return None
    (issued_at,) = struct.unpack(">Q", raw[:_TIMESTAMP_BYTES])
    return issued_at


def is_token_fresh(token: str | None, max_age: int, now: float | None = None) -> bool:
    issued_at = token_issued_at(token)
    if issued_at is None:
        return False
    age = int(time.time() if now is None else now) - issued_at
    return 0 <= age < max_age


def verify_csrf_token(expected: str | None, submitted: str | None, max_age: int, now: float | None = None) -> bool:
    if not expected or not submitted:
        return False
    if not hmac.compare_digest(expected.encode("utf-8"), submitted.encode("utf-8")):
        return False
    return is_token_fresh(expected, max_age, now=now)


def _max_age() -> int:
    return int(current_app.config.get("CSRF_TOKEN_MAX_AGE") or DEFAULT_CSRF_MAX_AGE)


def ensure_csrf_token() -> str:
    """Return this request's CSRF token, minting a new one if the cookie is missing or stale."""
    token = getattr(g, "csrf_token", None)
    if token:
        return token
    token = request.cookies.get(CSRF_COOKIE_NAME)
    if not is_token_fresh(token, _max_age()):
        token = generate_csrf_token()
        g.csrf_token_refresh = True
    g.csrf_token = token
    return token


def set_csrf_cookie(response: Response) -> Response:
    """after_request hook: persist a freshly minted token."""
    if getattr(g, "csrf_token_refresh", False):
        response.set_cookie(
            CSRF_COOKIE_NAME,
            g.csrf_token,
            max_age=_max_age(),
            path="/",
            secure=bool(current_app.config.get("CSRF_COOKIE_SECURE")),
            httponly=False,  # readable by page scripts that send X-CSRF-Token
            samesite="Strict",
        )
    return response


def validate_csrf(req: Request) -> bool:
    """Validate the submitted token (header or form field) against the cookie."""
    submitted = req.headers.get(CSRF_HEADER_NAME) or req.form.get(CSRF_FORM_FIELD)
    return verify_csrf_token(req.cookies.get(CSRF_COOKIE_NAME), submitted, _max_age())


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    try:
        return check_password_hash(password_hash, password)
    except (ValueError, TypeError):
        return False
