"""
Heatwise Backend Application

FastAPI application hosting the control loop and its API.
"""

import os
import sys
from contextlib import asynccontextmanager

import log_config  # noqa: F401
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

# Add core to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import api
from api import router as api_router

from core.heatwise.control_loop_service import ControlLoopService
from core.heatwise.exceptions import ConfigurationError
from core.heatwise.ha_client import HAClient, HomeAssistantRoomGateway, HomeAssistantWeatherSource
from core.heatwise.settings import load_settings
from core.heatwise.storage import HistoryFileStore, ModelFileStore

load_dotenv()

HA_URL = os.environ.get("HA_URL", "http://supervisor/core")
HA_TOKEN = os.environ.get("HA_TOKEN", "")


def create_control_service() -> ControlLoopService | None:
    """Build the control loop from options and environment, or None if not possible."""
    if not HA_TOKEN:
        logger.warning("HA_TOKEN not set, control loop disabled")
        return None

    try:
        settings = load_settings()
    except ConfigurationError as e:
        logger.error(f"Invalid configuration, control loop disabled: {e}")
        return None

    if not settings.rooms:
        logger.warning("No rooms configured, control loop disabled")
        return None

    ha_client = HAClient(HA_URL, HA_TOKEN)
    gateway = HomeAssistantRoomGateway(ha_client, settings.rooms)
    weather_source = None
    if settings.weather.enable_weather_control:
        weather_source = HomeAssistantWeatherSource(ha_client, settings.weather.weather_state_path)

    return ControlLoopService(
        settings,
        room_source=gateway,
        actuator=gateway,
        weather_source=weather_source,
        history_store=HistoryFileStore(settings.history_path),
        model_store=ModelFileStore(settings.ai.ai_model_path),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan manager for startup/shutdown."""
    logger.info("Heatwise starting")

    routes = [
        f"{getattr(route, 'path', '?')} - {getattr(route, 'methods', ['MOUNT'])}"
        for route in app.routes
    ]
    logger.info(f"Registered routes: {routes}")

    service = create_control_service()
    if service:
        await service.load_state()
        await service.start()
        api.control_service = service

    yield

    logger.info("Heatwise shutting down")
    if service:
        await service.stop()
        api.control_service = None


app = FastAPI(
    title="Heatwise API",
    description="Schedule-driven room heating and cooling control with learned overshoot prediction",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Handle all unhandled exceptions gracefully."""
    import traceback

    tb_str = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))

    logger.error(f"Unhandled exception: {exc}")
    logger.error(f"Request path: {request.url.path}")
    logger.error(f"Stack trace:\n{tb_str}")

    return JSONResponse(
        status_code=500,
        content={
            "detail": str(exc),
            "type": type(exc).__name__,
            "message": "Internal server error",
        },
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


# For development
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8080)
