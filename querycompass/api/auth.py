"""
Authentication

Bearer JWT validation for every route. Tokens are issued elsewhere; this
module only decodes them into a CurrentUser.
"""

import logging
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from querycompass.config import get_settings
from querycompass.constants import AuditAction, Role
from querycompass.models import CurrentUser

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def decode_token(token: str) -> CurrentUser:
    """
    Decode an access token into the acting user.

    Raises:
        jwt.InvalidTokenError: If the token is malformed, expired or unsigned
        ValueError: If the claims are incomplete or the role is unknown
    """
    settings = get_settings().auth
    if not settings.jwt_secret:
        raise jwt.InvalidTokenError("AUTH_JWT_SECRET is not configured")

    payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    user_id = payload.get("sub")
    if not user_id:
        raise ValueError("Token has no subject")
    return CurrentUser(
        user_id=str(user_id),
        username=str(payload.get("username") or ""),
        role=Role(payload.get("role", Role.USER.value)),
    )


async def _audit_rejection(reason: str) -> None:
    from querycompass.api.main import app_state

    audit_log = app_state.get("audit_log")
    if audit_log is None:
        return
    await audit_log.log(AuditAction.AUTH, details={"reason": reason})


async def get_current_user(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> CurrentUser:
    """Resolve the caller from the Authorization header or, if enabled, ?token=."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    token = credentials.credentials if credentials else None
    if token is None and get_settings().auth.allow_query_token:
        token = request.query_params.get("token")
    if not token:
        await _audit_rejection("missing token")
        raise credentials_exception

    try:
        return decode_token(token)
    except jwt.ExpiredSignatureError:
        await _audit_rejection("expired token")
        raise credentials_exception
    except (jwt.InvalidTokenError, ValueError) as exc:
        logger.info(f"Rejected access token: {exc}")
        await _audit_rejection("invalid token")
        raise credentials_exception


CurrentUserDep = Annotated[CurrentUser, Depends(get_current_user)]
