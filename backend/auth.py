"""
Module: auth.py
Description: JWT authentication for the recommendations API.

Provides:
    - HS256 JWT verification with the shared secret of the auth service
    - get_current_user dependency for FastAPI
    - User ID extraction from verified tokens

Usage:
    @app.get("/protected")
    async def protected_route(user_id: str = Depends(get_current_user)):
        ...

Author: Smart Financial Coach Team
"""

import os
import jwt
from typing import Optional
from fastapi import HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from dotenv import load_dotenv

from services.observability import logger

load_dotenv()


# =============================================================================
# Configuration
# =============================================================================

# Tokens are issued by the auth service; this API only verifies them
JWT_SECRET = os.getenv("JWT_SECRET", "")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# For development/demo, we can bypass auth
AUTH_BYPASS = os.getenv("AUTH_BYPASS", "false").lower() == "true"
AUTH_BYPASS_USER_ID = os.getenv("AUTH_BYPASS_USER_ID", "demo_user_123")


security = HTTPBearer(auto_error=False)


# =============================================================================
# JWT Verification
# =============================================================================

def verify_token(token: str, secret: Optional[str] = None) -> Optional[dict]:
    """
    Verify a JWT and return its claims.

    Args:
        token: The JWT from the Authorization header.
        secret: Signing secret, defaults to JWT_SECRET.

    Returns:
        Dict of token claims if valid, None otherwise.
    """
    if not token:
        return None

    secret = secret if secret is not None else JWT_SECRET
    if not secret:
        logger.warning("JWT_SECRET not configured, rejecting token")
        return None

    try:
        return jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.info("Token expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.info("Invalid token", error=str(e))
        return None


def user_id_from_claims(claims: dict) -> Optional[str]:
    """The auth service puts the user id in 'id'; standard tokens use 'sub'."""
    user_id = claims.get("sub") or claims.get("id")
    return str(user_id) if user_id else None


# =============================================================================
# FastAPI Dependencies
# =============================================================================

async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> str:
    """
    FastAPI dependency to get the current authenticated user.

    Raises:
        HTTPException: 401 if not authenticated or token invalid.
    """
    if AUTH_BYPASS:
        return AUTH_BYPASS_USER_ID

    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    claims = verify_token(credentials.credentials)
    if not claims:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token. Please sign in again.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = user_id_from_claims(claims)
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: missing user ID.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user_id
