from __future__ import annotations

import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from kfaas.api.deps import get_oidc_manager
from kfaas.auth.oidc import OIDCManager
from kfaas.config import Settings, get_settings

logger = structlog.get_logger()
security = HTTPBearer(auto_error=False)


async def require_authorization(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),  # noqa: B008
    settings: Settings = Depends(get_settings),  # noqa: B008
    oidc_manager: OIDCManager = Depends(get_oidc_manager),  # noqa: B008
) -> str | None:
    """Authorize the caller and hand the raw bearer token to the route.

    With OIDC disabled every caller is let through; the token, if any, is still
    forwarded because VO membership checks need it.
    """
    raw_token = credentials.credentials if credentials else None

    if not settings.oidc_enable:
        logger.warning("auth_disabled", reason="OIDC not enabled")
        return raw_token

    if not raw_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not await oidc_manager.is_authorized(raw_token):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return raw_token
