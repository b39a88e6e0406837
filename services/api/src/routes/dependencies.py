from fastapi import Request, Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from models.operations.users import user_create_if_not_exists_and_get
from utils import log

logger = log.get_logger(__name__)

security = HTTPBearer(auto_error=False)

KNOWN_ROLES = ("buyer", "seller", "admin")


def _role(payload: dict) -> str:
    role = payload.get("role")
    if isinstance(role, list):
        role = role[0] if role else None
    return role if role in KNOWN_ROLES else "buyer"


async def current_user_get(
    request: Request,
    token: HTTPAuthorizationCredentials = Depends(security),
):
    if not hasattr(request.app.state, "auth_client"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No auth_client")
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication token missing or invalid",
        )

    payload = request.app.state.auth_client.decode_jwt(token.credentials)
    if not payload:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token has no subject")

    payload["role"] = _role(payload)
    try:
        payload["db_user"] = await user_create_if_not_exists_and_get(
            user_id,
            email=str(payload.get("email") or ""),
            name=str(payload.get("name") or ""),
            role=payload["role"],
        )
    except Exception as e:
        # Seller/bidder summaries fall back to ids; auth itself still succeeds
        logger.error(f"Failed to ensure user existence for {user_id}: {e}")

    return payload


async def require_authenticated(user: dict = Depends(current_user_get)):
    return user


async def require_seller(user: dict = Depends(current_user_get)):
    """
    Dependency to ensure the user may create auctions ('seller' or 'admin').
    """
    if user["role"] not in ("seller", "admin"):
        logger.warning(f"User {user.get('sub')} attempted seller access with role {user['role']}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied. Only sellers and admins can create auctions.",
        )
    return user


def is_admin(user: dict) -> bool:
    return user.get("role") == "admin"
