# sellit/core/dependencies.py
from __future__ import annotations

"""
FastAPI dependencies:
- Auth from a Bearer JWT (or access_token cookie)
- Store-owner check (seller/admin acting for their store)
- Pagination
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Query, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from sellit.core.db import get_db
from sellit.core.exceptions import AuthenticationError, AuthorizationError
from sellit.core.logging import audit_logger, bind_actor, get_logger
from sellit.core.security import decode_access_token
from sellit.models.store import Store

log = get_logger(__name__)

security = HTTPBearer(auto_error=False)

STORE_ROLES = frozenset({"seller", "admin"})


@dataclass
class AuthContext:
    user_id: int
    role: str
    store_id: Optional[int]
    token: str
    raw_payload: Optional[dict] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def _auth_context_from_payload(token: str, payload: dict) -> AuthContext:
    sub = str(payload.get("sub", ""))
    store_id = payload.get("store_id")
    return AuthContext(
        user_id=int(sub) if sub.isdigit() else -1,
        role=str(payload.get("role")),
        store_id=int(store_id) if store_id is not None else None,
        token=token,
        raw_payload=payload,
    )


def _token_from_request(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    token = credentials.credentials if credentials else None
    return token or request.cookies.get("access_token")


async def get_current_actor(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> AuthContext:
    token = _token_from_request(request, credentials)
    if not token:
        raise AuthenticationError("Authentication required", "AUTH_REQUIRED")
    try:
        payload = decode_access_token(token)
    except ValueError as e:
        log.info("Token rejected", reason=str(e))
        raise AuthenticationError("Invalid or expired token", "INVALID_TOKEN") from e

    ctx = _auth_context_from_payload(token, payload)
    if ctx.user_id <= 0:
        raise AuthenticationError("Invalid token subject", "INVALID_SUBJECT")
    bind_actor(ctx.user_id, ctx.store_id)
    return ctx


async def require_store_owner(
    actor: AuthContext = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> AuthContext:
    """
    Seller or admin acting for the store in the token. Sellers must own the store.
    """
    if actor.role not in STORE_ROLES:
        audit_logger.log_permission_denied(actor.user_id, "role_not_allowed", f"role:{actor.role}")
        raise AuthorizationError("Seller or admin role required", "INSUFFICIENT_ROLE")
    if actor.store_id is None:
        raise AuthorizationError("Token is not bound to a store", "NO_STORE")

    store = await db.get(Store, actor.store_id)
    if store is None or not store.is_active:
        raise AuthorizationError("Store not available", "STORE_UNAVAILABLE")
    if not actor.is_admin and store.owner_id != actor.user_id:
        audit_logger.log_permission_denied(actor.user_id, "not_store_owner", f"store:{actor.store_id}")
        raise AuthorizationError("You do not own this store", "NOT_STORE_OWNER")
    return actor


# ------------------------------------------------------------------------------
# Pagination
# ------------------------------------------------------------------------------
@dataclass
class Pagination:
    page: int = 1
    limit: int = 20
    max_limit: int = 100

    def __post_init__(self):
        self.page = max(1, int(self.page or 1))
        self.limit = min(self.max_limit, max(1, int(self.limit or 20)))

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def get_pagination(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
) -> Pagination:
    return Pagination(page=page, limit=limit)


__all__ = [
    "AuthContext",
    "get_current_actor",
    "require_store_owner",
    "Pagination",
    "get_pagination",
]
