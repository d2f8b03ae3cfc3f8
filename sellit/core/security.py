# sellit/core/security.py
"""
JWT helpers (python-jose).

Sellit does not issue tokens through a login flow of its own; the identity
service signs access tokens with the shared SECRET_KEY. `create_access_token`
exists for operators and tests.

Claims:
  sub       user id (str)
  store_id  store the actor operates (sellers/admins)
  role      seller | admin | buyer | courier
  type      "access"
  exp/iat   unix timestamps
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Literal, Optional, Union

from jose import ExpiredSignatureError, JWTError, jwt
from jose.exceptions import JWTClaimsError

from sellit.core.config import settings

Role = Literal["seller", "admin", "buyer", "courier"]
ROLES: frozenset[str] = frozenset({"seller", "admin", "buyer", "courier"})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_access_token(
    subject: Union[str, int],
    *,
    role: Role = "seller",
    store_id: Optional[int] = None,
    expires_delta: Optional[timedelta] = None,
    extra: Optional[dict[str, Any]] = None,
) -> str:
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role}")
    now = _utcnow()
    exp = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    claims: dict[str, Any] = {
        "sub": str(subject),
        "role": role,
        "type": "access",
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    if store_id is not None:
        claims["store_id"] = int(store_id)
    if extra:
        claims.update(extra)
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and validate; raises ValueError with a readable reason."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except ExpiredSignatureError as e:
        raise ValueError("Token expired") from e
    except JWTClaimsError as e:
        raise ValueError(f"Invalid claims: {e}") from e
    except JWTError as e:
        raise ValueError(f"Invalid token: {e}") from e

    if payload.get("type", "access") != "access":
        raise ValueError(f"Unexpected token type: {payload.get('type')}")
    if not payload.get("sub"):
        raise ValueError("Token subject (sub) missing")
    if payload.get("role") not in ROLES:
        raise ValueError("Token role missing or unknown")
    return payload


__all__ = ["Role", "ROLES", "create_access_token", "decode_access_token"]
