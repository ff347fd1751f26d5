from __future__ import annotations

from typing import Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from timefund.core.logging import bind_actor, get_logger
from timefund.core.permissions import has_permission
from timefund.core.security import InvalidTokenError, decode_access_token
from timefund.db.session import get_session
from timefund.models.user import User

logger = get_logger(__name__)
bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def authenticate(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_session),
) -> User:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise _unauthorized("Access denied")

    try:
        claims = decode_access_token(credentials.credentials)
    except InvalidTokenError as exc:
        logger.info("token_rejected", reason=str(exc))
        raise _unauthorized(str(exc)) from exc

    user = db.get(User, claims["id"])
    if user is None:
        raise _unauthorized("Invalid token")
    return user


async def get_current_user(user: User = Depends(authenticate)) -> User:
    # must stay async so the binding reaches the handler context
    bind_actor(user.id, user.role)
    return user


def require_permission(permission: str) -> Callable[..., User]:
    def dependency(current_user: User = Depends(get_current_user)) -> User:
        if not has_permission(current_user.role, permission):
            logger.info("permission_denied", permission=permission)
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not authorized for this operation",
            )
        return current_user

    return dependency
