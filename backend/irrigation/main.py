# ==============================================================================
# == backend/irrigation/main.py - Smart Irrigation Dashboard API              ==
# ==============================================================================

import logging
import asyncio
import time

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import select

from . import auth, crud
from .assistant import TextGenerator
from .config import settings
from .database import ENGINES, AuthSessionLocal
from .errors import IrrigationError
from .models import auth as model_auth
from .mqtt_bridge import MQTTBridge
from .routers import auth as auth_router
from .routers import devices, zones, data, ai, weather
from .weather import WeatherCache

# Logging
_handlers = [logging.StreamHandler()]
if settings.LOG_FILE:
    _handlers.append(logging.FileHandler(settings.LOG_FILE, encoding='utf-8'))

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - API - %(levelname)s - %(message)s',
    handlers=_handlers
)
logger = logging.getLogger(__name__)

# ============================================================================
# GLOBAL INSTANCES
# ============================================================================
mqtt_service = MQTTBridge() if settings.MQTT_ENABLED else None

async def _ensure_default_admin():
    async with AuthSessionLocal() as db_auth:
        result = await db_auth.execute(
            select(model_auth.User).where(model_auth.User.email == settings.DEFAULT_ADMIN_EMAIL)
        )
        if result.scalar_one_or_none():
            return

        hashed_password = await auth.get_password_hash(settings.DEFAULT_ADMIN_PASSWORD)
        await crud.create_user(
            db_auth,
            name="Administrator",
            email=settings.DEFAULT_ADMIN_EMAIL,
            hashed_password=hashed_password,
            role=auth.Role.DEVELOPER,
        )
        logger.info(f"✓ Default developer account created ({settings.DEFAULT_ADMIN_EMAIL})")

# ============================================================================
# LIFESPAN MANAGEMENT
# ============================================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 Smart Irrigation Dashboard starting...")

    try:
        for engine, base in ENGINES:
            async with engine.begin() as conn:
                await conn.run_sync(base.metadata.create_all)
        logger.info("✓ Auth, config and data databases initialized")

        if settings.CREATE_DEFAULT_ADMIN:
            async with asyncio.timeout(10):
                await _ensure_default_admin()

        if mqtt_service is not None:
            mqtt_service.start()
            logger.info("✓ Background MQTT Service started")

        logger.info("=" * 60)
        logger.info("🎉 System ready to serve!")
        logger.info("=" * 60)

        yield

    finally:
        logger.info("🛑 Shutting down...")
        if mqtt_service is not None:
            mqtt_service.stop()
        for engine, _ in ENGINES:
            await engine.dispose()
        logger.info("✅ Shutdown complete")

# ============================================================================
# APP SETUP
# ============================================================================
app = FastAPI(
    title="Smart Irrigation Dashboard API",
    lifespan=lifespan,
    version="1.0.0"
)

app.state.weather_cache = WeatherCache(settings.WEATHER_CACHE_TTL_SECONDS)
app.state.text_generator = TextGenerator.from_settings()

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(IrrigationError)
async def irrigation_error_handler(request: Request, exc: IrrigationError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Invalid request body"}
    )

@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"❌ Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"}
    )

app.include_router(auth_router.router)
app.include_router(devices.router)
app.include_router(zones.router)
app.include_router(data.router)
app.include_router(ai.router)
app.include_router(weather.router)

# ============================================================================
# HEALTH CHECK
# ============================================================================
@app.get("/api/health")
async def health_check():
    return {"status": "ok", "time": time.time(), "db_status": "3-DB-Active"}
