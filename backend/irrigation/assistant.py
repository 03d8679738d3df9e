# backend/irrigation/assistant.py
import json
import logging
import time
from typing import Any, Dict, List, Optional, Tuple

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from .config import settings
from .crud import get_owned_zones
from .errors import Internal
from .schemas import Suggestion
from .suggestion_engine import (
    recent_readings,
    soil_moisture_of,
    temperature_of,
    humidity_of,
    synthesize_from_reply,
)

logger = logging.getLogger(__name__)

SYSTEM_PROMPT_TEMPLATE = """You are an AI assistant specialised in automatic irrigation and precision agriculture.

User context:
- Zones: {zones}
- Recent sensor data: {recent_data}

You can:
1. Analyse sensor data and give irrigation advice
2. Suggest optimisations for each zone
3. Alert on anomalies (soil too dry or too wet, extreme temperatures)
4. Give advice specific to the plant and soil type
5. Propose adjustments to the watering schedule

Answer concisely and practically. If you detect critical problems, say so explicitly as urgent and propose concrete actions."""


class TextGenerationError(Internal):
    pass


class TextGenerator:
    """Client for an OpenAI-compatible chat completions endpoint."""

    def __init__(
        self,
        api_key: str = "",
        base_url: str = "https://api.groq.com/openai/v1",
        model: str = "llama-3.1-8b-instant",
        timeout: float = 30.0,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> "TextGenerator":
        return cls(
            api_key=settings.LLM_API_KEY,
            base_url=settings.LLM_BASE_URL,
            model=settings.LLM_MODEL,
            timeout=settings.LLM_TIMEOUT_SECONDS,
        )

    async def generate(self, system: str, prompt: str) -> str:
        if not self.api_key:
            raise TextGenerationError("No text-generation API key configured")

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            async with httpx.AsyncClient(base_url=self.base_url, headers=headers, timeout=self.timeout) as client:
                r = await client.post("/chat/completions", json=payload)
                r.raise_for_status()
                data = r.json()
        except httpx.HTTPError as e:
            raise TextGenerationError(f"Text generation request failed: {e}") from e

        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise TextGenerationError(f"Unexpected text generation response: {e}") from e


async def build_context(
    config_db: AsyncSession,
    data_db: AsyncSession,
    user_id: int,
    now: Optional[float] = None,
) -> Dict[str, List[Dict[str, Any]]]:
    """Owned zones plus the most recent readings across them, newest first."""
    now = time.time() if now is None else now
    zones = await get_owned_zones(config_db, user_id)
    readings = await recent_readings(
        data_db,
        [z.id for z in zones],
        now - settings.CHAT_WINDOW_HOURS * 3600,
        limit=settings.CHAT_CONTEXT_LIMIT,
    )
    names = {z.id: z.name for z in zones}

    return {
        "zones": [
            {
                "name": z.name,
                "plantType": z.plant_type,
                "soilType": z.soil_type,
                "area": z.area,
                "plantCount": z.plant_count,
                "aiEnabled": z.ai_enabled,
                "status": z.status,
            }
            for z in zones
        ],
        "recentData": [
            {
                "zoneName": names.get(r.zone_id),
                "timestamp": r.timestamp,
                "soilMoisture": soil_moisture_of(r),
                "temperature": temperature_of(r),
                "humidity": humidity_of(r),
            }
            for r in readings
        ],
    }

def build_system_prompt(context: Dict[str, Any]) -> str:
    return SYSTEM_PROMPT_TEMPLATE.format(
        zones=json.dumps(context["zones"], indent=2, ensure_ascii=False),
        recent_data=json.dumps(context["recentData"], indent=2, ensure_ascii=False),
    )

async def converse(
    config_db: AsyncSession,
    data_db: AsyncSession,
    generator: TextGenerator,
    user_id: int,
    message: str,
    now: Optional[float] = None,
) -> Tuple[str, List[Suggestion]]:
    now = time.time() if now is None else now
    context = await build_context(config_db, data_db, user_id, now)

    reply = await generator.generate(build_system_prompt(context), message)
    suggestions = synthesize_from_reply(reply, user_id, now)

    if suggestions:
        logger.warning(f"🚨 Assistant reply for user {user_id} flagged as urgent")
    return reply, suggestions
