# ==============================================================================
# == backend/irrigation/routers/auth.py
# ==============================================================================

import logging
import time

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from .. import schemas, auth, crud
from ..database import get_auth_db, get_config_db
from ..errors import Conflict
from ..models import auth as model_auth

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/auth",
    tags=["Authentication"]
)

def _user_summary(user: model_auth.User) -> dict:
    return {"id": user.id, "name": user.name, "email": user.email, "role": user.role}

async def _store_refresh_token(db: AsyncSession, user: model_auth.User, tokens: dict, login: bool = False):
    now = int(time.time())
    user.refresh_token = tokens["refreshToken"]
    user.updated_at = now
    if login:
        user.last_login = now
    await db.commit()

@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(
    body: schemas.SignupRequest,
    db: AsyncSession = Depends(get_auth_db)
):
    if not body.name or not body.email or not body.password:
        raise HTTPException(status_code=400, detail="Name, email and password are required")

    if await crud.get_user_by_email(db, body.email):
        raise Conflict("A user with this email already exists")

    try:
        hashed_pw = await auth.get_password_hash(body.password)
        user = await crud.create_user(db, body.name, body.email, hashed_pw, auth.Role.USER)
        tokens = auth.issue_tokens(user)
        await _store_refresh_token(db, user, tokens)
    except Exception as e:
        await db.rollback()
        logger.error(f"Signup error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")

    logger.info(f"✅ User registered: {user.email}")
    return {
        "message": "User created successfully",
        "user": _user_summary(user),
        **tokens,
    }

@router.post("/login")
async def login(
    body: schemas.LoginRequest,
    db: AsyncSession = Depends(get_auth_db)
):
    if not body.email or not body.password:
        raise HTTPException(status_code=400, detail="Email and password are required")

    user = await crud.get_user_by_email(db, body.email)
    if not user or not await auth.verify_password(body.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials"
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is disabled"
        )

    tokens = auth.issue_tokens(user)
    await _store_refresh_token(db, user, tokens, login=True)

    logger.info(f"✅ Login successful: {user.email}")
    return {
        "message": "Login successful",
        "user": _user_summary(user),
        **tokens,
    }

@router.post("/refresh")
async def refresh(
    body: schemas.RefreshRequest,
    db: AsyncSession = Depends(get_auth_db)
):
    invalid = HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid refresh token")
    if not body.refresh_token:
        raise HTTPException(status_code=400, detail="Refresh token is required")

    user_id = auth.decode_refresh_token(body.refresh_token)
    if user_id is None:
        raise invalid

    user = await crud.get_user_by_id(db, user_id)
    # Only the most recently issued refresh token is honoured
    if user is None or not user.is_active or user.refresh_token != body.refresh_token:
        raise invalid

    tokens = auth.issue_tokens(user)
    await _store_refresh_token(db, user, tokens)
    return tokens

@router.get("/me", response_model=schemas.UserResponse)
async def get_current_user_info(
    current_user: model_auth.User = Depends(auth.get_current_user)
):
    user_response = schemas.UserResponse.model_validate(current_user)
    user_response.permissions = auth.get_user_permissions(current_user)
    return user_response

@router.post("/device")
async def authenticate_device(
    body: schemas.DeviceAuthRequest,
    db: AsyncSession = Depends(get_config_db)
):
    if not body.device_id:
        raise HTTPException(status_code=400, detail="deviceId is required")

    device = await crud.get_device(db, body.device_id)
    if device is None:
        raise HTTPException(status_code=404, detail="Device not found")

    if body.firmware_version and body.firmware_version != device.firmware_version:
        device.firmware_version = body.firmware_version
        device.updated_at = int(time.time())
        await db.commit()

    logger.info(f"🔑 Device token issued: {device.device_id}")
    return {"token": auth.create_device_token(device.device_id)}
