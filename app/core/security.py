"""
Security utilities for authentication and authorization

Tokens are issued by the identity service; this module only verifies them
and exposes the caller as a CurrentUser.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import logging
import time
import uuid

from app.config import settings
from app.core.exceptions import WayfarerError
from app.models.user import UserRole

logger = logging.getLogger(__name__)

# Bearer scheme; missing credentials are reported by get_current_user
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    """Authenticated caller"""
    id: uuid.UUID
    role: UserRole

    @property
    def is_staff(self) -> bool:
        return self.role in (UserRole.ADMIN, UserRole.AGENT)

    @property
    def is_customer(self) -> bool:
        return self.role == UserRole.CUSTOMER


class SecurityManager:
    """
    JWT encoding and decoding
    """

    @staticmethod
    def create_access_token(
        data: Dict[str, Any],
        expires_delta: Optional[timedelta] = None
    ) -> str:
        """
        Create a JWT access token
        """
        to_encode = data.copy()
        expire = datetime.now(timezone.utc) + (
            expires_delta or timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
        )
        to_encode.update({
            "exp": expire,
            "type": "access",
            "iat": int(time.time()),
        })
        return jwt.encode(
            to_encode,
            settings.JWT_SECRET_KEY,
            algorithm=settings.JWT_ALGORITHM
        )

    @staticmethod
    def decode_token(token: str) -> Dict[str, Any]:
        """
        Decode and verify a JWT token
        """
        try:
            return jwt.decode(
                token,
                settings.JWT_SECRET_KEY,
                algorithms=[settings.JWT_ALGORITHM]
            )
        except JWTError as e:
            logger.warning(f"JWT decode error: {e}")
            raise WayfarerError.unauthorized("Could not validate credentials")

    @staticmethod
    def principal_from_payload(payload: Dict[str, Any]) -> CurrentUser:
        if payload.get("type") != "access":
            raise WayfarerError.unauthorized("Invalid token type. Expected access")
        try:
            return CurrentUser(id=uuid.UUID(str(payload["sub"])), role=UserRole(payload["role"]))
        except (KeyError, ValueError):
            raise WayfarerError.unauthorized("Could not validate credentials")


# Create global security manager
security_manager = SecurityManager()


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create access token helper function
    """
    return security_manager.create_access_token(data, expires_delta)


def token_for(user_id: uuid.UUID, role: UserRole) -> str:
    return create_access_token({"sub": str(user_id), "role": role.value})


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> CurrentUser:
    """
    Get the caller from the bearer token
    """
    if credentials is None or not credentials.credentials:
        raise WayfarerError.unauthorized()
    payload = security_manager.decode_token(credentials.credentials)
    return security_manager.principal_from_payload(payload)


def require_roles(*roles: UserRole):
    """
    Dependency factory restricting an endpoint to the given roles
    """
    async def dependency(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if current_user.role not in roles:
            raise WayfarerError.forbidden(
                f"Requires one of the roles: {', '.join(role.value for role in roles)}"
            )
        return current_user

    return dependency


require_admin = require_roles(UserRole.ADMIN)
require_staff = require_roles(UserRole.ADMIN, UserRole.AGENT)
