from typing import Optional, Dict, Any

from fastapi import Header, HTTPException
from jose import jwt, JWTError
from loguru import logger

from craftguide.core.config import AUTH_MODE, AUTH_JWT_SECRET


# ------------------------------------------------------------
# Helpers
# ------------------------------------------------------------
def _get_bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")

    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=401, detail="Invalid Authorization header format")

    token = parts[1].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Missing bearer token")

    return token


def _verify_jwt_hs256(token: str, secret: Optional[str]) -> Dict[str, Any]:
    if not secret:
        raise HTTPException(status_code=500, detail="AUTH_JWT_SECRET not set")

    try:
        return jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            options={"verify_aud": False},
        )
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")


def resolve_user_id(
    mode: str,
    authorization: Optional[str],
    x_user_id: Optional[str],
    secret: Optional[str] = None,
) -> str:
    """Turn request credentials into a stable user id for ``mode``."""
    if mode == "header":
        if not x_user_id or not x_user_id.strip():
            raise HTTPException(status_code=401, detail="Missing X-User-Id header")
        return x_user_id.strip()

    if mode == "hs256":
        payload = _verify_jwt_hs256(_get_bearer_token(authorization), secret)
        sub = payload.get("sub")
        if not sub:
            raise HTTPException(status_code=401, detail="Token missing sub claim")
        return str(sub)

    raise HTTPException(status_code=500, detail=f"Invalid AUTH_MODE: {mode}")


# ------------------------------------------------------------
# Main Dependency
# ------------------------------------------------------------
def get_current_user_id(
    authorization: Optional[str] = Header(default=None),
    x_user_id: Optional[str] = Header(default=None),
) -> str:
    user_id = resolve_user_id(AUTH_MODE, authorization, x_user_id, AUTH_JWT_SECRET)
    logger.debug(f"[auth] mode={AUTH_MODE} user_id={user_id}")
    return user_id
