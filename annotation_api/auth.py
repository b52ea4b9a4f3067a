"""
Authentication context for the current request.

The service runs behind the authenticating gateway, which forwards the
verified username and roles as headers. When an API key is configured
the gateway must present it too, otherwise identity headers are ignored.
"""

import logging
import secrets
from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from fastapi import Depends, Header, HTTPException

from annotation_api.config import get_settings


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthContext:
    """The acting user and their roles."""

    username: str
    roles: FrozenSet[str] = field(default_factory=frozenset)

    def has_role(self, role: str) -> bool:
        return role in self.roles

    @property
    def is_admin(self) -> bool:
        return self.has_role(get_settings().admin_role)


def _parse_roles(header: Optional[str]) -> FrozenSet[str]:
    if not header:
        return frozenset()
    return frozenset(r.strip() for r in header.split(",") if r.strip())


def get_auth_context(
    x_auth_user: Optional[str] = Header(default=None),
    x_auth_roles: Optional[str] = Header(default=None),
    x_api_key: Optional[str] = Header(default=None),
) -> Optional[AuthContext]:
    """Resolve the caller from gateway headers; ``None`` when anonymous."""
    if not x_auth_user:
        return None

    settings = get_settings()
    if settings.api_key and not secrets.compare_digest(x_api_key or "", settings.api_key):
        logger.warning(f"Ignoring identity headers for {x_auth_user}: invalid API key")
        return None

    return AuthContext(username=x_auth_user.strip(), roles=_parse_roles(x_auth_roles))


def require_user(
    auth: Optional[AuthContext] = Depends(get_auth_context),
) -> AuthContext:
    """Dependency for mutating endpoints: the caller must be authenticated."""
    if auth is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return auth
