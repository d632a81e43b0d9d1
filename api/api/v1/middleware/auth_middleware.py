"""
Authentication Middleware for FastAPI
JWT-based authentication with role verification for Depends()

Admin routes accept the platform access token either as a Bearer header
or from the session cookie set by the console login.
"""
import uuid
from typing import Optional, Dict, Any, List
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from common.types import UserRole
from core.exceptions import AuthenticationError, AuthorizationError
from utils.cookie_utils import get_access_token
from utils.jwt_utils import JWTManager
from utils.logging import get_logger

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)


def get_request_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[str]:
    """Platform access token from the Bearer header, else from the session cookie"""
    return credentials.credentials if credentials else get_access_token(request)


class JWTAuth:
    """
    JWT authentication handler
    """

    @staticmethod
    def build_user_context(payload: Dict[str, Any]) -> Dict[str, Any]:
        user_id = payload.get("user_id") or payload.get("sub")
        raw_role = payload.get("role") or payload.get("rol")

        if not user_id or not raw_role:
            raise AuthenticationError("Invalid token payload")

        try:
            role = UserRole.parse(raw_role)
        except ValueError:
            raise AuthenticationError("Invalid token payload")

        return {
            "user_id": str(user_id),
            "role": role.value,
            "email": payload.get("email"),
        }

    @staticmethod
    async def get_current_user(token: Optional[str] = Depends(get_request_token)) -> Dict[str, Any]:
        """
        Get current user from JWT token
        Returns user context with role information
        """
        if not token:
            raise AuthenticationError()

        payload = JWTManager.decode_token(token)
        user_context = JWTAuth.build_user_context(payload)

        logger.debug(f"Authenticated user: {user_context['user_id']} with role: {user_context['role']}")
        return user_context


class RoleRequired:
    """
    Role-based access control for endpoints
    """

    def __init__(self, allowed_roles: List[str]):
        self.allowed_roles = allowed_roles

    async def __call__(
        self,
        user_context: Dict[str, Any] = Depends(JWTAuth.get_current_user)
    ) -> Dict[str, Any]:
        """
        Verify user has required role
        """
        user_role = user_context.get("role")

        if user_role not in self.allowed_roles:
            logger.warning(
                f"Access denied for user {user_context.get('user_id')} "
                f"with role {user_role}. Required roles: {self.allowed_roles}"
            )
            raise AuthorizationError(
                f"Insufficient permissions. Required role: {', '.join(self.allowed_roles)}"
            )

        return user_context


class RequireAdmin:
    """
    Require admin role
    Can manage the whitelist and activation codes
    """
    async def __call__(
        self,
        user_context: Dict[str, Any] = Depends(RoleRequired([UserRole.ADMIN.value]))
    ) -> Dict[str, Any]:
        return user_context


AdminOnly = RequireAdmin()


def actor_id(user_context: Dict[str, Any]) -> Optional[uuid.UUID]:
    """Audit actor id; platform ids that are not UUIDs are not recorded"""
    try:
        return uuid.UUID(str(user_context.get("user_id")))
    except ValueError:
        return None
