"""Authentication utilities."""
from typing import Optional
from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session
import logging

from config import ADMIN_USER_IDS, API_TOKENS
from database import get_db
from models import Profile
from monitoring import auth_failures_counter, auth_attempts_counter

logger = logging.getLogger(__name__)


def verify_token(authorization: Optional[str] = Header(None)) -> str:
    """
    Verify authentication token.

    Args:
        authorization: Authorization header value

    Returns:
        Valid token

    Raises:
        HTTPException: If token is invalid or missing
    """
    auth_attempts_counter.add(1, {"type": "bearer_token"})

    if authorization is None:
        auth_failures_counter.add(1, {"reason": "missing_header"})
        logger.warning("Authentication failed: Missing authorization header")
        raise HTTPException(status_code=401, detail="Missing authorization header")

    # Extract token (Bearer <token>)
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        auth_failures_counter.add(1, {"reason": "invalid_format"})
        logger.warning("Authentication failed: Invalid authorization header format", extra={
            "auth_header": authorization[:20] + "..." if len(authorization) > 20 else authorization
        })
        raise HTTPException(status_code=401, detail="Invalid authorization header format")

    token = parts[1]
    if token not in API_TOKENS:
        auth_failures_counter.add(1, {"reason": "invalid_token"})
        logger.warning("Authentication failed: Invalid token", extra={
            "token_prefix": token[:8] + "..." if len(token) > 8 else token
        })
        raise HTTPException(status_code=401, detail="Invalid token")

    logger.debug("Authentication successful", extra={
        "user_id": get_user_id_from_token(token)
    })
    return token


def get_user_id_from_token(token: str) -> Optional[str]:
    """
    Resolve the user id a token was issued for.

    Args:
        token: Authentication token

    Returns:
        User ID, or None for unknown tokens
    """
    return API_TOKENS.get(token)


def get_current_user(
    token: str = Depends(verify_token),
    db: Session = Depends(get_db)
) -> Profile:
    """
    Load the caller's profile, creating it on first use.

    Admin rights follow ADMIN_USER_IDS on every request.
    """
    user_id = get_user_id_from_token(token)
    is_admin = user_id in ADMIN_USER_IDS

    profile = db.get(Profile, user_id)
    if profile is None:
        profile = Profile(id=user_id, is_admin=is_admin)
        db.add(profile)
        db.commit()
        db.refresh(profile)
        logger.info("Created profile", extra={"user_id": user_id, "is_admin": is_admin})
    elif profile.is_admin != is_admin:
        profile.is_admin = is_admin
        db.commit()
    return profile


def require_admin(user: Profile = Depends(get_current_user)) -> Profile:
    """
    Raises:
        HTTPException: 403 when the caller is not an admin
    """
    if not user.is_admin:
        auth_failures_counter.add(1, {"reason": "not_admin"})
        logger.warning("Admin access denied", extra={"user_id": user.id})
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
