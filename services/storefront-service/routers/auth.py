"""Authentication API router."""
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session
import logging

from auth import get_current_user
from config import USER_CREDENTIALS
from database import get_db
from models import Profile
from monitoring import auth_attempts_counter, auth_failures_counter
from schemas import ProfileResponse, ProfileUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])


class LoginRequest(BaseModel):
    """Login request model."""
    username: str
    password: str


class LoginResponse(BaseModel):
    """Login response model."""
    token: str
    token_type: str = "bearer"
    user_id: str


@router.post("/login", response_model=LoginResponse)
async def login(request: LoginRequest):
    """
    Authenticate user and return token.

    Demo credentials:
    - username: customer, password: customer123
    - username: shopper, password: shopper123
    - username: admin, password: admin123
    """
    auth_attempts_counter.add(1, {"type": "login"})

    user_data = USER_CREDENTIALS.get(request.username)
    if user_data is None or request.password != user_data["password"]:
        reason = "invalid_username" if user_data is None else "invalid_password"
        auth_failures_counter.add(1, {"reason": reason})
        logger.warning("Login failed", extra={
            "username": request.username,
            "reason": reason
        })
        raise HTTPException(status_code=401, detail="Invalid username or password")

    logger.info("User logged in successfully", extra={
        "username": request.username,
        "user_id": user_data["user_id"]
    })

    return LoginResponse(
        token=user_data["token"],
        user_id=user_data["user_id"]
    )


@router.get("/me", response_model=ProfileResponse)
async def get_me(user: Profile = Depends(get_current_user)):
    """Get the caller's profile."""
    return user


@router.put("/me", response_model=ProfileResponse)
async def update_me(
    update: ProfileUpdate,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user)
):
    """Update the caller's profile; omitted fields are left unchanged."""
    for field, value in update.model_dump(exclude_unset=True).items():
        setattr(user, field, value)
    db.commit()
    db.refresh(user)

    logger.info("Profile updated", extra={"user_id": user.id})
    return user
