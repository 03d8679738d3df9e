# ==============================================================================
# == backend/irrigation/routers/devices.py
# ==============================================================================

import logging
import time
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from .. import schemas, auth, crud
from ..config import settings
from ..database import get_auth_db, get_config_db
from ..errors import Conflict
from ..models import auth as model_auth
from ..models import config as model_config
from .zones import zone_to_dict

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/devices",
    tags=["Devices"]
)

def device_to_dict(d: model_config.Device) -> dict:
    return {
        "id": d.id,
        "deviceId": d.device_id,
        "ownerUserId": d.owner_user_id,
        "maxZones": d.max_zones,
        "maxSensors": d.max_sensors,
        "configuredZones": d.configured_zones,
        "status": d.status,
        "lastSeen": d.last_seen,
        "firmwareVersion": d.firmware_version,
        "createdAt": d.created_at,
        "updatedAt": d.updated_at,
    }

@router.get("")
async def get_devices(
    db: AsyncSession = Depends(get_config_db),
    current_user: model_auth.User = Depends(auth.get_current_user)
):
    try:
        result = await db.execute(
            select(model_config.Device)
            .where(auth.device_visibility(current_user))
            .order_by(model_config.Device.id)
        )
        devices = result.scalars().all()

        enriched = []
        for device in devices:
            zones: List[model_config.Zone] = await crud.get_device_zones(db, device.device_id)
            d = device_to_dict(device)
            d["zones"] = [zone_to_dict(z) for z in zones]
            d["configuredZones"] = len(zones)
            enriched.append(d)

        return {"devices": enriched, "count": len(enriched)}

    except Exception as e:
        logger.error(f"Error loading devices: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")

@router.post("", status_code=status.HTTP_201_CREATED)
async def register_device(
    body: schemas.DeviceCreate,
    auth_db: AsyncSession = Depends(get_auth_db),
    db: AsyncSession = Depends(get_config_db),
    current_user: model_auth.User = Depends(auth.require_permission(auth.Permission.REGISTER_DEVICES))
):
    if not body.device_id or body.owner_user_id is None:
        raise HTTPException(status_code=400, detail="deviceId and ownerUserId are required")

    owner = await crud.get_user_by_id(auth_db, body.owner_user_id)
    if not owner:
        raise HTTPException(status_code=404, detail="Owner user not found")

    if await crud.get_device(db, body.device_id):
        raise Conflict("This device is already registered")

    try:
        now = int(time.time())
        device = model_config.Device(
            device_id=body.device_id,
            owner_user_id=owner.id,
            max_zones=settings.DEVICE_MAX_ZONES,
            max_sensors=settings.DEVICE_MAX_SENSORS,
            configured_zones=0,
            status="offline",
            last_seen=now,
            firmware_version=settings.DEFAULT_FIRMWARE_VERSION,
            created_at=now,
            updated_at=now
        )
        db.add(device)
        await db.commit()
        await db.refresh(device)
    except Exception as e:
        await db.rollback()
        logger.error(f"Error registering device: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")

    logger.info(f"➕ Device {device.device_id} registered for user {owner.id} by {current_user.email}")
    return {"message": "Device registered successfully", "device": device_to_dict(device)}
