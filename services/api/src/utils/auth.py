from typing import Any, Dict, List, Optional

from jose import JWTError, jwt
from pydantic import BaseModel

from . import log

logger = log.get_logger(__name__)


class AuthClientConfig(BaseModel):
    secret: str
    algorithms: List[str] = ["HS256"]
    audience: Optional[str] = None
    issuer: Optional[str] = None


class AuthClient:
    """Verifies bearer tokens issued by the marketplace's auth service."""

    def __init__(self, config: AuthClientConfig):
        self.config = config

    def decode_jwt(self, token: str) -> Optional[Dict[str, Any]]:
        """Return the token claims, or None if the token is invalid or expired."""
        options = {"verify_aud": self.config.audience is not None}
        try:
            return jwt.decode(
                token,
                self.config.secret,
                algorithms=self.config.algorithms,
                audience=self.config.audience,
                issuer=self.config.issuer,
                options=options,
            )
        except JWTError as e:
            logger.debug(f"Rejected bearer token: {e}")
            return None

