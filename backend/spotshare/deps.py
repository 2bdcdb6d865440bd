from __future__ import annotations

import logging
from typing import Annotated, Iterator

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from spotshare.db import Database
from spotshare.errors import AuthenticationError
from spotshare.models import Profile
from spotshare.profiles import get_or_create_profile
from spotshare.rate_limit import RateLimiter
from spotshare.security import decode_access_token

logger = logging.getLogger(__name__)


def get_database(request: Request) -> Database:
    return request.app.state.db


def get_limiter(request: Request) -> RateLimiter:
    return request.app.state.limiter


def get_db(database: Annotated[Database, Depends(get_database)]) -> Iterator[Session]:
    with database.session_scope() as db:
        yield db


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    if not authorization.lower().startswith("bearer "):
        return None
    return authorization.split(" ", 1)[1].strip() or None


def get_current_profile(
    db: Annotated[Session, Depends(get_db)],
    authorization: Annotated[str | None, Header()] = None,
) -> Profile:
    """
    Resolve the bearer token to the caller's profile.

    The token is verified server-side on every request; the profile row is
    created on first sight of a new subject.
    """
    token = _bearer_token(authorization)
    if not token:
        raise AuthenticationError("No authorization token provided")
    try:
        payload = decode_access_token(token)
    except Exception:
        raise AuthenticationError("Invalid or expired token")

    user_id = str(payload.get("sub") or "").strip()
    if not user_id:
        raise AuthenticationError("Invalid or expired token")
    metadata = payload.get("user_metadata")
    return get_or_create_profile(
        db,
        user_id=user_id,
        email=str(payload.get("email") or ""),
        metadata=metadata if isinstance(metadata, dict) else None,
    )


CurrentProfile = Annotated[Profile, Depends(get_current_profile)]
DbSession = Annotated[Session, Depends(get_db)]
