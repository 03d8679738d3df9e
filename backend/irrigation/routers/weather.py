# ==============================================================================
# == backend/irrigation/routers/weather.py
# ==============================================================================

import logging
from functools import partial

from fastapi import APIRouter, Depends, HTTPException, Request

from .. import auth
from ..config import settings
from ..models import auth as model_auth
from ..weather import WeatherCache, simulate_forecast

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/weather",
    tags=["Weather"]
)

def get_weather_cache(request: Request) -> WeatherCache:
    return request.app.state.weather_cache

@router.get("/forecast")
async def get_forecast(
    cache: WeatherCache = Depends(get_weather_cache),
    current_user: model_auth.User = Depends(auth.get_current_user)
):
    try:
        return cache.get(partial(simulate_forecast, settings.WEATHER_LOCATION, cache.clock()))
    except Exception as e:
        logger.error(f"Weather forecast error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error while fetching the weather forecast")
