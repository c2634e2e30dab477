import secrets
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from file_registry_service.config import settings as global_app_settings, Settings
from file_registry_service.logging_config import get_logger
from file_registry_service.registry import FileRegistry
from file_registry_service.schemas import ANONYMOUS, Principal

logger = get_logger(__name__)

_ADMIN_TRUE_VALUES = ("true", "1")

def get_settings() -> Settings:
    return global_app_settings

def get_registry(request: Request) -> FileRegistry:
    return request.app.state.registry

def _from_gateway(secret: Optional[str], current_settings: Settings) -> bool:
    expected = current_settings.GATEWAY_SECRET
    if not expected:
        return True
    return secret is not None and secrets.compare_digest(secret.encode(), expected.encode())

def get_principal(
    x_principal_id: Optional[str] = Header(None),
    x_principal_name: Optional[str] = Header(None),
    x_principal_admin: Optional[str] = Header(None),
    x_gateway_secret: Optional[str] = Header(None),
    current_settings: Settings = Depends(get_settings),
) -> Principal:
    """Identity forwarded by the auth gateway in trusted headers.

    When GATEWAY_SECRET is set, the headers count only if the request carries
    the matching X-Gateway-Secret; otherwise the caller is anonymous.
    Admin rights are granted only on an explicit true value; anything else,
    including a malformed header, yields a regular principal.
    """
    if not _from_gateway(x_gateway_secret, current_settings):
        if x_principal_id or x_principal_admin:
            logger.warning(f"Ignoring principal headers for '{x_principal_id}' without a valid gateway secret")
        return Principal()

    principal_id = (x_principal_id or "").strip() or None
    is_admin = (x_principal_admin or "").strip().lower() in _ADMIN_TRUE_VALUES
    name = (x_principal_name or "").strip() or (principal_id if principal_id else ANONYMOUS)
    return Principal(id=principal_id, name=name, is_admin=is_admin)

def require_member(
    principal: Principal = Depends(get_principal),
    current_settings: Settings = Depends(get_settings),
) -> Principal:
    if principal.is_anonymous and not principal.is_admin and not current_settings.ALLOW_ANONYMOUS_UPLOADS:
        raise HTTPException(status_code=401, detail="Authentication required")
    return principal

def require_admin(principal: Principal = Depends(get_principal)) -> Principal:
    if not principal.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return principal
