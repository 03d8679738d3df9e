# backend/irrigation/weather.py
import logging
import random
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

CONDITIONS = ["sunny", "cloudy", "rainy", "partly-cloudy"]


class WeatherCache:
    """
    Single-slot read-through cache with a fixed time-to-live.

    Expiry is the only invalidation. Concurrent callers that find the slot
    expired may each run the loader; the last one to finish wins.
    """

    def __init__(self, ttl_seconds: float = 1800, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.value: Optional[Any] = None
        self.expiry: float = 0.0

    def is_fresh(self) -> bool:
        return self.value is not None and self.clock() < self.expiry

    def get(self, loader: Callable[[], Any]) -> Any:
        if self.is_fresh():
            return self.value

        value = loader()
        self.value = value
        self.expiry = self.clock() + self.ttl_seconds
        logger.info(f"🌦️ Weather forecast refreshed, valid for {self.ttl_seconds:g}s")
        return value


def simulate_forecast(
    location: str,
    now: Optional[float] = None,
    rng: Optional[random.Random] = None,
    days: int = 7,
) -> Dict[str, Any]:
    """Seven-day forecast with plausible random values (no external weather API)."""
    rng = rng or random.Random()
    start = datetime.fromtimestamp(time.time() if now is None else now, tz=timezone.utc)

    forecast = []
    for i in range(days):
        date = start + timedelta(days=i)
        forecast.append({
            "date": date.isoformat(),
            "temp": round(15 + rng.random() * 20),           # 15-35°C
            "humidity": round(40 + rng.random() * 40),       # 40-80%
            "precipitation": round(rng.random() * 10) if rng.random() > 0.7 else 0,  # 0-10mm
            "windSpeed": round(rng.random() * 20),           # 0-20 km/h
            "condition": rng.choice(CONDITIONS),
        })

    return {
        "location": location,
        "forecast": forecast,
        "lastUpdated": int(start.timestamp()),
        "source": "Simulated weather service",
    }
