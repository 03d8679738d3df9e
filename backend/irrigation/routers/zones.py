# ==============================================================================
# == backend/irrigation/routers/zones.py
# ==============================================================================

import logging
import time

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from .. import schemas, auth, crud
from ..database import get_config_db
from ..models import auth as model_auth
from ..models import config as model_config

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/zones",
    tags=["Zones"]
)

def zone_to_dict(z: model_config.Zone) -> dict:
    return {
        "id": z.id,
        "name": z.name,
        "ownerUserId": z.owner_user_id,
        "deviceId": z.device_id,
        "plantType": z.plant_type,
        "soilType": z.soil_type,
        "location": z.location,
        "area": z.area,
        "plantCount": z.plant_count,
        "aiEnabled": z.ai_enabled,
        "description": z.description,
        "status": z.status,
        "soilMoisture": z.soil_moisture,
        "temperature": z.temperature,
        "humidity": z.humidity,
        "lastWatered": z.last_watered,
        "createdAt": z.created_at,
        "updatedAt": z.updated_at,
    }

async def _get_visible_zone(db: AsyncSession, zone_id: int, user: model_auth.User) -> model_config.Zone:
    result = await db.execute(
        select(model_config.Zone).where(
            model_config.Zone.id == zone_id,
            auth.zone_visibility(user),
        )
    )
    zone = result.scalar_one_or_none()
    if zone is None:
        raise HTTPException(status_code=404, detail="Zone not found")
    return zone

@router.get("")
async def get_zones(
    db: AsyncSession = Depends(get_config_db),
    current_user: model_auth.User = Depends(auth.get_current_user)
):
    try:
        result = await db.execute(
            select(model_config.Zone)
            .where(auth.zone_visibility(current_user))
            .order_by(model_config.Zone.id)
        )
        zones = result.scalars().all()
        return {"zones": [zone_to_dict(z) for z in zones], "count": len(zones)}
    except Exception as e:
        logger.error(f"Error loading zones: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_zone(
    body: schemas.ZoneCreate,
    db: AsyncSession = Depends(get_config_db),
    current_user: model_auth.User = Depends(auth.require_permission(auth.Permission.MANAGE_OWN_ZONES))
):
    if not body.name or not body.plant_type or not body.soil_type or not body.device_id:
        raise HTTPException(status_code=400, detail="Missing required fields: name, plantType, soilType, deviceId")

    result = await db.execute(
        select(model_config.Device).where(
            model_config.Device.device_id == body.device_id,
            auth.device_visibility(current_user),
        )
    )
    device = result.scalar_one_or_none()
    if not device:
        raise HTTPException(status_code=404, detail="Device not found")

    existing = await db.execute(
        select(func.count(model_config.Zone.id)).where(model_config.Zone.device_id == device.device_id)
    )
    if existing.scalar_one() >= device.max_zones:
        raise HTTPException(
            status_code=400,
            detail=f"This device has reached its limit of {device.max_zones} zones"
        )

    try:
        now = int(time.time())
        zone = model_config.Zone(
            name=body.name,
            owner_user_id=current_user.id,
            device_id=device.device_id,
            plant_type=body.plant_type,
            soil_type=body.soil_type,
            location=body.location or {"lat": 0, "lng": 0},
            area=float(body.area),
            plant_count=int(body.plant_count),
            ai_enabled=bool(body.ai_enabled),
            description=body.description or "",
            status="active",
            soil_moisture=0.0,
            temperature=0.0,
            humidity=0.0,
            last_watered=now,
            created_at=now,
            updated_at=now
        )
        db.add(zone)
        device.configured_zones = (device.configured_zones or 0) + 1
        device.updated_at = now
        await db.commit()
        await db.refresh(zone)
    except Exception as e:
        await db.rollback()
        logger.error(f"Error creating zone: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")

    logger.info(f"➕ Zone '{zone.name}' created on device {device.device_id}")
    return {"message": "Zone created successfully", "zone": zone_to_dict(zone)}

@router.put("/{zone_id}")
async def update_zone(
    zone_id: int,
    body: schemas.ZoneUpdate,
    db: AsyncSession = Depends(get_config_db),
    current_user: model_auth.User = Depends(auth.get_current_user)
):
    zone = await _get_visible_zone(db, zone_id, current_user)

    try:
        for field, value in body.model_dump(exclude_unset=True, exclude_none=True).items():
            setattr(zone, field, value)
        zone.updated_at = int(time.time())
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.error(f"Error updating zone {zone_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")

    return {"message": "Zone updated successfully"}

@router.delete("/{zone_id}")
async def delete_zone(
    zone_id: int,
    db: AsyncSession = Depends(get_config_db),
    current_user: model_auth.User = Depends(auth.get_current_user)
):
    zone = await _get_visible_zone(db, zone_id, current_user)

    try:
        device = await crud.get_device(db, zone.device_id)
        await db.delete(zone)
        if device is not None:
            device.configured_zones = max((device.configured_zones or 0) - 1, 0)
            device.updated_at = int(time.time())
        # Readings of the zone are kept
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.error(f"Error deleting zone {zone_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")

    logger.info(f"➖ Zone {zone_id} deleted")
    return {"message": "Zone deleted successfully"}
