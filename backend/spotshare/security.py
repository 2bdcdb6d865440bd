from __future__ import annotations

import datetime as dt
from typing import Any

import jwt

from spotshare.config import jwt_audience, jwt_secret


def create_access_token(
    *,
    user_id: str,
    email: str,
    user_metadata: dict[str, Any] | None = None,
    expires_in: dt.timedelta = dt.timedelta(hours=1),
) -> str:
    """
    Mint a token shaped like the identity provider's (HS256, `sub` + `email`).

    Used by local tooling and tests; production tokens come from the provider.
    """
    now = dt.datetime.now(dt.timezone.utc)
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "email": email,
        "iat": int(now.timestamp()),
        "exp": int((now + expires_in).timestamp()),
        "user_metadata": dict(user_metadata or {}),
    }
    aud = jwt_audience()
    if aud:
        payload["aud"] = aud
    return jwt.encode(payload, jwt_secret(), algorithm="HS256")


def decode_access_token(token: str) -> dict:
    aud = jwt_audience()
    if aud:
        return jwt.decode(token, jwt_secret(), algorithms=["HS256"], audience=aud)
    return jwt.decode(token, jwt_secret(), algorithms=["HS256"], options={"verify_aud": False})
