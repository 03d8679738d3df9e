# backend/irrigation/crud.py
import time
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from .models import auth as model_auth
from .models import config as model_config

async def get_user_by_email(db: AsyncSession, email: str):
    result = await db.execute(select(model_auth.User).where(model_auth.User.email == email))
    return result.scalar_one_or_none()

async def get_user_by_id(db: AsyncSession, user_id: int):
    result = await db.execute(select(model_auth.User).where(model_auth.User.id == user_id))
    return result.scalar_one_or_none()

async def create_user(db: AsyncSession, name: str, email: str, hashed_password: str, role: str):
    now = int(time.time())
    db_user = model_auth.User(
        name=name,
        email=email,
        hashed_password=hashed_password,
        role=role,
        is_active=True,
        created_at=now,
        updated_at=now
    )
    db.add(db_user)
    await db.commit()
    await db.refresh(db_user)
    return db_user

async def get_device(db: AsyncSession, device_id: str) -> Optional[model_config.Device]:
    result = await db.execute(select(model_config.Device).where(model_config.Device.device_id == device_id))
    return result.scalar_one_or_none()

async def get_owned_zones(db: AsyncSession, user_id: int) -> List[model_config.Zone]:
    """Zones owned by `user_id`, whatever the user's role."""
    result = await db.execute(
        select(model_config.Zone)
        .where(model_config.Zone.owner_user_id == user_id)
        .order_by(model_config.Zone.id)
    )
    return list(result.scalars().all())

async def get_device_zones(db: AsyncSession, device_id: str) -> List[model_config.Zone]:
    result = await db.execute(
        select(model_config.Zone)
        .where(model_config.Zone.device_id == device_id)
        .order_by(model_config.Zone.id)
    )
    return list(result.scalars().all())
