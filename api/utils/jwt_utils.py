"""
JWT utility functions.

The console never issues platform tokens. It verifies admin bearer tokens
with the shared secret and reads the `exp` claim of session cookies
without verification to decide whether a page request needs a login.
"""
from typing import Dict, Any, Optional
from datetime import datetime, timedelta
from jose import JWTError, jwt

from config.settings import get_settings
from utils.logging import get_logger
from utils.datetime_utils import DateTimeManager
from core.exceptions import AuthenticationError

logger = get_logger(__name__)
settings = get_settings()


class JWTManager:
    """
    JWT token inspection helpers
    """

    @staticmethod
    def encode_token(payload: Dict[str, Any], expires_in: Optional[timedelta] = None, token_type: str = "access") -> str:
        """
        Encode a token with the shared secret
        """
        now = DateTimeManager.utc_now()
        claims = dict(payload)
        claims.setdefault("iat", int(now.timestamp()))
        claims.setdefault("type", token_type)
        if expires_in is not None:
            claims["exp"] = int((now + expires_in).timestamp())

        return jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)

    @staticmethod
    def decode_token(token: str, verify_exp: bool = True) -> Dict[str, Any]:
        """
        Decode and verify a token signed by the platform backend
        """
        try:
            return jwt.decode(
                token,
                settings.JWT_SECRET_KEY,
                algorithms=[settings.JWT_ALGORITHM],
                options={"verify_exp": verify_exp}
            )

        except JWTError as e:
            logger.warning(f"Token decode failed: {type(e).__name__}")
            raise AuthenticationError("Invalid or expired token")

    @staticmethod
    def get_unverified_claims(token: Optional[str]) -> Optional[Dict[str, Any]]:
        """Claims of a token without signature checks; None when malformed"""
        if not token:
            return None
        try:
            return jwt.get_unverified_claims(token)
        except JWTError:
            return None

    @staticmethod
    def get_expiry(token: Optional[str]) -> Optional[datetime]:
        claims = JWTManager.get_unverified_claims(token)
        if not claims or "exp" not in claims:
            return None
        try:
            return DateTimeManager.from_timestamp(float(claims["exp"]))
        except (TypeError, ValueError):
            return None

    @staticmethod
    def is_expired(token: Optional[str], now: Optional[datetime] = None) -> bool:
        """
        True when the token is missing, malformed, lacks `exp`, or is past `exp`
        """
        expiry = JWTManager.get_expiry(token)
        if expiry is None:
            return True
        reference = now or DateTimeManager.utc_now()
        return expiry <= reference
