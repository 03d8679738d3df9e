# ==============================================================================
# == backend/irrigation/routers/data.py
# ==============================================================================

import logging
import re
import time
from datetime import datetime, timezone
from io import BytesIO
from typing import List, Optional

import pandas as pd
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc

from .. import schemas, auth, crud, ingestion
from ..config import settings
from ..database import get_auth_db, get_config_db, get_data_db
from ..errors import Forbidden, NotFound, Unauthorized
from ..models import auth as model_auth
from ..models import config as model_config
from ..models import data as model_data
from ..suggestion_engine import soil_moisture_of, temperature_of, humidity_of

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/data",
    tags=["Sensor Data"]
)

def reading_to_dict(r: model_data.SensorReading) -> dict:
    return {
        "id": r.id,
        "zoneId": r.zone_id,
        "deviceId": r.device_id,
        "timestamp": r.timestamp,
        "global": r.global_data or {},
        "locals": r.locals or [],
    }

def _sheet_name(name: str) -> str:
    # Excel forbids these characters and caps sheet names at 31
    return re.sub(r'[\[\]:*?/\\]', '_', name or '')[:31] or 'Readings'

async def _owned_zone(db: AsyncSession, zone_id: Optional[int], user: model_auth.User) -> model_config.Zone:
    if zone_id is None:
        raise HTTPException(status_code=400, detail="zoneId is required")
    result = await db.execute(
        select(model_config.Zone).where(
            model_config.Zone.id == zone_id,
            model_config.Zone.owner_user_id == user.id,
        )
    )
    zone = result.scalar_one_or_none()
    if zone is None:
        raise HTTPException(status_code=404, detail="Zone not found")
    return zone

async def _zone_readings(
    db: AsyncSession, zone_id: int, start: Optional[int], end: Optional[int]
) -> List[model_data.SensorReading]:
    stmt = select(model_data.SensorReading).where(model_data.SensorReading.zone_id == zone_id)
    if start is not None:
        stmt = stmt.where(model_data.SensorReading.timestamp >= start)
    if end is not None:
        stmt = stmt.where(model_data.SensorReading.timestamp <= end)
    stmt = stmt.order_by(desc(model_data.SensorReading.timestamp), desc(model_data.SensorReading.id))
    result = await db.execute(stmt.limit(settings.DATA_QUERY_LIMIT))
    return list(result.scalars().all())

async def _ensure_device_access(
    config_db: AsyncSession, auth_db: AsyncSession, principal: dict, device_id: str
):
    """A device may only post for itself; a user only for devices they can see."""
    if principal.get("role") == auth.Role.DEVICE:
        if principal.get("sub") != device_id:
            raise Forbidden("Token does not belong to this device")
        return

    try:
        user = await crud.get_user_by_id(auth_db, int(principal["sub"]))
    except (KeyError, TypeError, ValueError):
        user = None
    if user is None or not user.is_active:
        raise Unauthorized("Could not validate credentials")

    result = await config_db.execute(
        select(model_config.Device).where(
            model_config.Device.device_id == device_id,
            auth.device_visibility(user),
        )
    )
    if result.scalar_one_or_none() is None:
        raise NotFound("Device not found")

# ============================================================================
# INGESTION
# ============================================================================
@router.post("")
async def ingest_sensor_data(
    body: schemas.SensorDataCreate,
    auth_db: AsyncSession = Depends(get_auth_db),
    config_db: AsyncSession = Depends(get_config_db),
    data_db: AsyncSession = Depends(get_data_db),
    principal: dict = Depends(auth.get_token_payload)
):
    batch = body.batch()
    if not body.device_id or batch is None:
        raise HTTPException(status_code=400, detail="deviceId and sensorData are required")

    await _ensure_device_access(config_db, auth_db, principal, body.device_id)

    try:
        await ingestion.store_reading(
            config_db, data_db,
            device_id=body.device_id,
            global_data=batch.global_data,
            locals_data=batch.locals,
            timestamp=body.timestamp,
        )
    except NotFound:
        raise
    except Exception as e:
        await data_db.rollback()
        await config_db.rollback()
        logger.error(f"Sensor data error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error while storing sensor data")

    return {"message": "Data stored successfully", "timestamp": int(time.time())}

# ============================================================================
# QUERY & EXPORT
# ============================================================================
@router.get("")
async def get_sensor_data(
    zone_id: Optional[int] = Query(None, alias="zoneId"),
    start: Optional[int] = Query(None),
    end: Optional[int] = Query(None),
    config_db: AsyncSession = Depends(get_config_db),
    data_db: AsyncSession = Depends(get_data_db),
    current_user: model_auth.User = Depends(auth.get_current_user)
):
    zone = await _owned_zone(config_db, zone_id, current_user)

    try:
        readings = await _zone_readings(data_db, zone.id, start, end)
    except Exception as e:
        logger.error(f"Get sensor data error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error while fetching sensor data")

    return {
        "data": [reading_to_dict(r) for r in readings],
        "count": len(readings),
        "zone": {"id": zone.id, "name": zone.name, "plantType": zone.plant_type},
    }

@router.get("/export")
async def export_sensor_data(
    zone_id: Optional[int] = Query(None, alias="zoneId"),
    start: Optional[int] = Query(None),
    end: Optional[int] = Query(None),
    config_db: AsyncSession = Depends(get_config_db),
    data_db: AsyncSession = Depends(get_data_db),
    current_user: model_auth.User = Depends(auth.get_current_user)
):
    """Readings of one zone as an Excel workbook, newest first."""
    zone = await _owned_zone(config_db, zone_id, current_user)

    try:
        readings = await _zone_readings(data_db, zone.id, start, end)
        rows = [
            {
                'id': r.id,
                'timestamp': r.timestamp,
                'datetime_utc': datetime.fromtimestamp(r.timestamp, tz=timezone.utc).strftime('%Y-%m-%d %H:%M:%S'),
                'device_id': r.device_id,
                'soil_moisture': soil_moisture_of(r),
                'temperature': temperature_of(r),
                'humidity': humidity_of(r),
                'sensor_count': len(r.locals or []),
                'locals': str(r.locals or []),
            }
            for r in readings
        ]
        df = pd.DataFrame(rows, columns=[
            'id', 'timestamp', 'datetime_utc', 'device_id',
            'soil_moisture', 'temperature', 'humidity', 'sensor_count', 'locals'
        ])

        output = BytesIO()
        with pd.ExcelWriter(output, engine='openpyxl') as writer:
            df.to_excel(writer, sheet_name=_sheet_name(zone.name), index=False)
        output.seek(0)
    except Exception as e:
        logger.error(f"❌ Export Excel error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error while exporting sensor data")

    logger.info(f"✅ Exported {len(rows)} readings of zone {zone.id} for {current_user.email}")
    return StreamingResponse(
        output,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={
            "Content-Disposition": f"attachment; filename=zone_{zone.id}_readings_{int(time.time())}.xlsx"
        }
    )
