"""FastAPI dependencies for authentication and cart scoping.

Dependencies:
  get_token_payload  → decode the bearer JWT (401 if missing/invalid)
  require_admin      → restrict to tokens with role "admin"
  get_cart_id        → the storefront cart id (cookie or X-Cart-Id header)
"""

from fastapi import Cookie, Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from vinepallet.auth.jwt import decode_token
from vinepallet.middleware.exceptions import PermissionDeniedError

bearer_scheme = HTTPBearer(auto_error=False)


async def get_token_payload(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> dict:
    """Decode the bearer JWT and return its claims."""
    payload = decode_token(credentials.credentials) if credentials else {}
    if not payload.get("sub") or payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return payload


async def require_admin(payload: dict = Depends(get_token_payload)) -> dict:
    """Restrict endpoint to administrators.

    Usage:
        @router.post("/")
        async def create_zone(_admin: dict = Depends(require_admin)):
            ...
    """
    if payload.get("role") != "admin":
        raise PermissionDeniedError("Admin access required")
    return payload


async def get_cart_id(
    cart_id: str | None = Cookie(None),
    x_cart_id: str | None = Header(None),
) -> str:
    """Return the session cart id; 400 when the request carries none."""
    value = x_cart_id or cart_id
    if not value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No cart session",
        )
    return value
