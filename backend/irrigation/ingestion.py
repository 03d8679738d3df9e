# backend/irrigation/ingestion.py
import logging
import time
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from . import crud
from .errors import NotFound
from .models import data as model_data
from .suggestion_engine import as_number

logger = logging.getLogger(__name__)

# Epoch values above this are milliseconds
_MILLIS_THRESHOLD = 10 ** 12


def normalize_timestamp(value: Optional[float], now: float) -> int:
    if value is None:
        return int(now)
    value = float(value)
    if value > _MILLIS_THRESHOLD:
        value /= 1000.0
    return int(value)

def zone_snapshot(global_data: Dict[str, Any], local: Dict[str, Any]) -> Dict[str, float]:
    """Latest-known values cached on a zone from one local sensor entry."""
    temp = global_data.get("temp")
    if temp is None:
        temp = local.get("temp")
    return {
        "soil_moisture": as_number(local.get("soilMoisture")),
        "temperature": as_number(temp),
        "humidity": as_number(local.get("humidity")),
    }

async def store_reading(
    config_db: AsyncSession,
    data_db: AsyncSession,
    device_id: str,
    global_data: Optional[Dict[str, Any]],
    locals_data: Optional[List[Dict[str, Any]]],
    timestamp: Optional[float] = None,
    now: Optional[float] = None,
) -> int:
    """
    Append one reading per zone of `device_id`, mark the device online and
    refresh each zone's cached values. Returns the number of zones written.
    """
    now = time.time() if now is None else now
    global_data = global_data or {}
    locals_data = [l for l in (locals_data or []) if isinstance(l, dict)]

    device = await crud.get_device(config_db, device_id)
    if device is None:
        raise NotFound("Device not found")

    zones = await crud.get_device_zones(config_db, device_id)
    ts = normalize_timestamp(timestamp, now)

    for zone in zones:
        data_db.add(model_data.SensorReading(
            zone_id=zone.id,
            device_id=device_id,
            timestamp=ts,
            global_data=global_data,
            locals=locals_data,
        ))
    # Data writes are committed before the config DB is touched so the two
    # sessions never hold write transactions at the same time.
    await data_db.commit()

    current = int(now)
    device.status = "online"
    device.last_seen = current
    device.updated_at = current

    if locals_data:
        for index, zone in enumerate(zones):
            local = locals_data[index] if index < len(locals_data) else locals_data[0]
            snapshot = zone_snapshot(global_data, local)
            zone.soil_moisture = snapshot["soil_moisture"]
            zone.temperature = snapshot["temperature"]
            zone.humidity = snapshot["humidity"]
            zone.updated_at = current

    await config_db.commit()

    logger.info(f"📥 Device {device_id}: stored reading for {len(zones)} zone(s) at {ts}")
    return len(zones)
