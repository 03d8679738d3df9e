# backend/irrigation/suggestion_engine.py
"""
Threshold-based irrigation suggestions.

Suggestions are a computed view: every call re-reads the latest sensor
reading of each zone and re-applies the rules, so an acknowledged suggestion
whose condition still holds comes back with ``acknowledged=False``. The only
durable trace of an acknowledgment is the append-only audit row written by
:func:`acknowledge`.
"""
import hashlib
import logging
import time
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from sqlalchemy import select, desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .config import settings
from .crud import get_owned_zones
from .errors import Internal, InvalidInput, Unauthorized
from .models import config as model_config
from .models import data as model_data
from .schemas import Suggestion

logger = logging.getLogger(__name__)

LOW_MOISTURE_PCT = 20.0
HIGH_MOISTURE_PCT = 80.0
HIGH_TEMP_C = 35.0
LOW_TEMP_C = 5.0

CHAT_ZONE_NAME = "Multiple"


# =============================================================================
# READING ACCESSORS
# =============================================================================
def as_number(value: Any) -> float:
    # Missing or unparsable sensor fields count as 0
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0

def _first_local(reading) -> Mapping[str, Any]:
    locals_ = reading.locals or []
    if locals_ and isinstance(locals_[0], dict):
        return locals_[0]
    return {}

def soil_moisture_of(reading) -> float:
    return as_number(_first_local(reading).get("soilMoisture"))

def temperature_of(reading) -> float:
    return as_number((reading.global_data or {}).get("temp"))

def humidity_of(reading) -> float:
    return as_number(_first_local(reading).get("humidity"))

def _fmt(value: float) -> str:
    return f"{value:g}"


# =============================================================================
# RULE EVALUATION (pure)
# =============================================================================
def evaluate_zone(zone: model_config.Zone, latest: Optional[model_data.SensorReading]) -> List[Suggestion]:
    """Suggestions for one zone given its most recent reading in the window."""
    if latest is None:
        return [Suggestion(
            id=f"{zone.id}_no_data",
            type="warning",
            message="No recent data received from the sensors",
            zone_name=zone.name,
            priority="medium",
        )]

    suggestions = []
    moisture = soil_moisture_of(latest)
    temperature = temperature_of(latest)

    if moisture < LOW_MOISTURE_PCT:
        suggestions.append(Suggestion(
            id=f"{zone.id}_low_moisture",
            type="critical",
            message=f"Very low soil moisture ({_fmt(moisture)}%) - irrigation required urgently",
            zone_name=zone.name,
            action="START_IRRIGATION",
            priority="high",
        ))
    elif moisture > HIGH_MOISTURE_PCT:
        suggestions.append(Suggestion(
            id=f"{zone.id}_high_moisture",
            type="warning",
            message=f"Very high soil moisture ({_fmt(moisture)}%) - risk of over-watering",
            zone_name=zone.name,
            action="STOP_IRRIGATION",
            priority="medium",
        ))

    if temperature > HIGH_TEMP_C:
        suggestions.append(Suggestion(
            id=f"{zone.id}_high_temp",
            type="warning",
            message=f"High temperature ({_fmt(temperature)}°C) - increase watering frequency",
            zone_name=zone.name,
            priority="medium",
        ))
    elif temperature < LOW_TEMP_C:
        suggestions.append(Suggestion(
            id=f"{zone.id}_low_temp",
            type="info",
            message=f"Low temperature ({_fmt(temperature)}°C) - reduce watering",
            zone_name=zone.name,
            priority="low",
        ))

    return suggestions

def evaluate_zones(
    zones: Iterable[model_config.Zone],
    latest_by_zone: Mapping[int, model_data.SensorReading],
) -> List[Suggestion]:
    suggestions: List[Suggestion] = []
    for zone in zones:
        suggestions.extend(evaluate_zone(zone, latest_by_zone.get(zone.id)))
    return suggestions


# =============================================================================
# QUERIES
# =============================================================================
async def recent_readings(
    data_db: AsyncSession,
    zone_ids: Sequence[int],
    since: float,
    limit: Optional[int] = None,
) -> List[model_data.SensorReading]:
    """Readings of `zone_ids` at or after `since`, newest first."""
    if not zone_ids:
        return []
    stmt = (
        select(model_data.SensorReading)
        .where(
            model_data.SensorReading.zone_id.in_(list(zone_ids)),
            model_data.SensorReading.timestamp >= int(since),
        )
        .order_by(desc(model_data.SensorReading.timestamp), desc(model_data.SensorReading.id))
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    result = await data_db.execute(stmt)
    return list(result.scalars().all())

def latest_by_zone(readings: Iterable[model_data.SensorReading]) -> Dict[int, model_data.SensorReading]:
    """Keeps the first reading seen per zone; `readings` must be newest first."""
    latest: Dict[int, model_data.SensorReading] = {}
    for reading in readings:
        latest.setdefault(reading.zone_id, reading)
    return latest

async def evaluate(
    config_db: AsyncSession,
    data_db: AsyncSession,
    user_id: int,
    now: Optional[float] = None,
    window_hours: Optional[float] = None,
) -> List[Suggestion]:
    if user_id is None:
        raise Unauthorized("Authentication required")

    now = time.time() if now is None else now
    window_hours = settings.SUGGESTION_WINDOW_HOURS if window_hours is None else window_hours

    # A failed fetch is an error, never a partial result
    try:
        zones = await get_owned_zones(config_db, user_id)
        if not zones:
            return []
        readings = await recent_readings(data_db, [z.id for z in zones], now - window_hours * 3600)
    except SQLAlchemyError as e:
        logger.error(f"❌ Suggestion query failed for user {user_id}: {e}", exc_info=True)
        raise Internal("Error while reading sensor data") from e

    suggestions = evaluate_zones(zones, latest_by_zone(readings))

    logger.info(f"💡 User {user_id}: {len(suggestions)} suggestion(s) over {len(zones)} zone(s)")
    return suggestions


# =============================================================================
# ACKNOWLEDGMENT AUDIT
# =============================================================================
async def acknowledge(
    data_db: AsyncSession,
    suggestion_id: Optional[str],
    user_id: Optional[int],
    now: Optional[float] = None,
) -> model_data.Acknowledgment:
    """
    Append one audit row. Repeated acknowledgments of the same id append
    repeated rows; nothing is suppressed in later evaluations.
    """
    if user_id is None:
        raise Unauthorized("Authentication required")
    if not suggestion_id:
        raise InvalidInput("Suggestion id is required")

    record = model_data.Acknowledgment(
        suggestion_id=suggestion_id,
        user_id=user_id,
        acknowledged_at=int(time.time() if now is None else now),
        status="acknowledged",
    )
    data_db.add(record)
    await data_db.commit()
    await data_db.refresh(record)

    logger.info(f"✓ Suggestion {suggestion_id} acknowledged by user {user_id}")
    return record

async def list_acknowledgments(data_db: AsyncSession, user_id: int) -> List[model_data.Acknowledgment]:
    result = await data_db.execute(
        select(model_data.Acknowledgment)
        .where(model_data.Acknowledgment.user_id == user_id)
        .order_by(desc(model_data.Acknowledgment.acknowledged_at), desc(model_data.Acknowledgment.id))
    )
    return list(result.scalars().all())


# =============================================================================
# CHAT-TRIGGERED SUGGESTION
# =============================================================================
def chat_suggestion_id(user_id: int, now: float) -> str:
    """Stable for one user within one clock hour."""
    bucket = int(now // 3600)
    digest = hashlib.sha1(f"{user_id}:chat_critical:{bucket}".encode("utf-8")).hexdigest()
    return f"chat_{digest[:12]}"

def synthesize_from_reply(
    reply: str,
    user_id: int,
    now: Optional[float] = None,
    keywords: Optional[Sequence[str]] = None,
) -> List[Suggestion]:
    """
    Coarse triage of an assistant reply: one critical suggestion when any
    alert keyword appears in it, none otherwise.
    """
    keywords = settings.CHAT_ALERT_KEYWORDS if keywords is None else keywords
    text = (reply or "").lower()
    if not any(k.lower() in text for k in keywords):
        return []

    now = time.time() if now is None else now
    return [Suggestion(
        id=chat_suggestion_id(user_id, now),
        type="critical",
        message="Urgent action detected by the assistant",
        zone_name=CHAT_ZONE_NAME,
        priority="high",
    )]
