# backend/irrigation/auth.py
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
import bcrypt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, true

from .database import get_auth_db
from .models import auth as model_auth
from .models import config as model_config
from .config import settings

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/auth/login")

class Role:
    USER = "user"
    TECHNICIAN = "technician"
    DEVELOPER = "developer"
    DEVICE = "device"

class Permission:
    VIEW_ALL_ZONES = "view_all_zones"
    VIEW_ALL_DEVICES = "view_all_devices"
    REGISTER_DEVICES = "register_devices"
    MANAGE_OWN_ZONES = "manage_own_zones"

# --- Password Hashing ---
async def get_password_hash(password: str) -> str:
    pwd_bytes = password.encode('utf-8')
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(pwd_bytes, salt)
    return hashed.decode('utf-8')

async def verify_password(plain_password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(
        plain_password.encode('utf-8'),
        hashed_password.encode('utf-8')
    )

# --- JWT Token ---
def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

def create_refresh_token(user_id: int) -> str:
    expire = datetime.now(timezone.utc) + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    # jti keeps two refresh tokens minted in the same second distinct
    to_encode = {"sub": str(user_id), "exp": expire, "jti": uuid.uuid4().hex, "type": "refresh"}
    return jwt.encode(to_encode, settings.REFRESH_SECRET_KEY, algorithm=settings.ALGORITHM)

def create_device_token(device_id: str) -> str:
    return create_access_token(
        {"sub": device_id, "role": Role.DEVICE},
        expires_delta=timedelta(days=settings.DEVICE_TOKEN_EXPIRE_DAYS),
    )

def issue_tokens(user: model_auth.User) -> dict:
    access_token = create_access_token(
        data={"sub": str(user.id), "email": user.email, "role": user.role}
    )
    return {"accessToken": access_token, "refreshToken": create_refresh_token(user.id)}

def decode_refresh_token(token: str) -> Optional[int]:
    try:
        payload = jwt.decode(token, settings.REFRESH_SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
    if payload.get("type") != "refresh" or payload.get("sub") is None:
        return None
    try:
        return int(payload["sub"])
    except (TypeError, ValueError):
        return None

def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

def verify_access_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise _credentials_exception()
    if payload.get("type") != "access" or payload.get("sub") is None:
        raise _credentials_exception()
    return payload

# --- Current principal dependencies ---
async def get_token_payload(token: str = Depends(oauth2_scheme)) -> dict:
    """Any valid access token, user or device."""
    return verify_access_token(token)

async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_auth_db)
):
    payload = verify_access_token(token)
    if payload.get("role") == Role.DEVICE:
        raise _credentials_exception()
    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError):
        raise _credentials_exception()

    result = await db.execute(select(model_auth.User).where(model_auth.User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None or not user.is_active:
        raise _credentials_exception()
    return user

# --- Permissions ---
def get_user_permissions(user):
    if user.role in (Role.TECHNICIAN, Role.DEVELOPER):
        return [
            Permission.VIEW_ALL_ZONES,
            Permission.VIEW_ALL_DEVICES,
            Permission.REGISTER_DEVICES,
            Permission.MANAGE_OWN_ZONES,
        ]
    if user.role == Role.USER:
        return [Permission.MANAGE_OWN_ZONES]
    return []

def require_permission(permission: str):
    async def permission_checker(current_user: model_auth.User = Depends(get_current_user)):
        perms = get_user_permissions(current_user)
        if permission not in perms:
            raise HTTPException(status_code=403, detail="Not enough permissions")
        return current_user
    return permission_checker

# --- Visibility filters ---
def zone_visibility(user):
    """WHERE clause selecting the zones `user` may see and edit."""
    if Permission.VIEW_ALL_ZONES in get_user_permissions(user):
        return true()
    return model_config.Zone.owner_user_id == user.id

def device_visibility(user):
    if Permission.VIEW_ALL_DEVICES in get_user_permissions(user):
        return true()
    return model_config.Device.owner_user_id == user.id
