"""
Authentication for API clients and browser sessions.

API clients send an opaque bearer token handed to a user once; only its
sha256 digest is stored. Browsers exchange such a token for a signed,
expiring session cookie carrying the user id. Every request resolves its
credential to a Principal and the owner of any record it touches comes
from that principal alone.
"""
import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime

from fastapi import Depends, Request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from sqlmodel import Session, select

from config import get_settings
from db import get_session
from errors import AuthError
from models import ApiToken

logger = logging.getLogger(__name__)

SESSION_COOKIE = "session"


@dataclass(frozen=True)
class Principal:
    user_id: str


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def issue_token(session: Session, user_id: str) -> str:
    """Create a new API token for user_id and return it in clear text."""
    token = secrets.token_urlsafe(32)
    session.add(ApiToken(token_hash=hash_token(token), user_id=user_id))
    session.commit()
    logger.info(f"Issued API token for user {user_id}")
    return token


def resolve_token(session: Session, token: str) -> Principal | None:
    if not token:
        return None
    row = session.exec(select(ApiToken).where(ApiToken.token_hash == hash_token(token))).first()
    if not row:
        return None
    return Principal(user_id=row.user_id)


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(get_settings().secret_key, salt="voice-diary-session")


def session_max_age() -> int:
    return get_settings().session_expire_minutes * 60


def create_session_token(user_id: str) -> str:
    """Create a signed session token for a user."""
    data = {
        "user_id": user_id,
        "created": datetime.now(UTC).isoformat(),
    }
    return _serializer().dumps(data)


def decode_session_token(token: str, max_age: int | None = None) -> dict | None:
    """Decode and validate a session token; None if tampered or expired."""
    if not token:
        return None
    try:
        return _serializer().loads(token, max_age=session_max_age() if max_age is None else max_age)
    except (BadSignature, SignatureExpired):
        return None


def set_session_cookie(response, user_id: str):
    """Set session cookie on response."""
    response.set_cookie(
        key=SESSION_COOKIE,
        value=create_session_token(user_id),
        httponly=True,
        max_age=session_max_age(),
        samesite="lax",
    )
    return response


def clear_session_cookie(response):
    response.delete_cookie(SESSION_COOKIE)
    return response


def bearer_token(request: Request) -> str:
    header = request.headers.get("Authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer":
        return value.strip()
    return ""


def get_principal_optional(
    request: Request, session: Session = Depends(get_session)
) -> Principal | None:
    """Bearer header first, then the signed session cookie."""
    token = bearer_token(request)
    if token:
        return resolve_token(session, token)

    data = decode_session_token(request.cookies.get(SESSION_COOKIE, ""))
    if not data or not data.get("user_id"):
        return None
    return Principal(user_id=data["user_id"])


def get_principal(
    principal: Principal | None = Depends(get_principal_optional),
) -> Principal:
    """Dependency for API routes. Raises AuthError if not signed in."""
    if principal is None:
        raise AuthError("Please sign in first.")
    return principal
