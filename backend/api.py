"""
Heatwise API Endpoints
"""

import os
import sys
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException
from loguru import logger
from pydantic import BaseModel

# Add core to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.heatwise.control_loop_service import ControlLoopService
from core.heatwise.overrides import BOOST, PAUSE

router = APIRouter()

# Control loop (set by app.py during startup)
control_service: Optional[ControlLoopService] = None


class OverrideRequest(BaseModel):
    active: bool


class AIRequest(BaseModel):
    enabled: bool


class AbsenceRequest(BaseModel):
    until: Optional[datetime] = None


def _service() -> ControlLoopService:
    if control_service is None:
        raise HTTPException(status_code=503, detail="Control loop not running")
    return control_service


def _require_room(service: ControlLoopService, room: str):
    if room not in service.room_ids:
        raise HTTPException(status_code=404, detail=f"Room {room} not found")


@router.get("/api/health")
async def health():
    """Health check endpoint."""
    last_tick = control_service.last_tick if control_service else None
    return {
        "status": "ok",
        "control_loop": control_service is not None,
        "last_tick": last_tick.isoformat() if last_tick else None,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/api/rooms")
async def get_rooms():
    """Current target, reading and last command of every room."""
    service = _service()
    return {
        "mode": service.settings.controller.mode.name.lower(),
        "rooms": [
            {
                "id": room.id,
                "name": room.name or room.id,
                "boost": service.overrides.is_active(room.id, BOOST),
                "pause": service.overrides.is_active(room.id, PAUSE),
                **service.room_status.get(room.id, {}),
            }
            for room in service.settings.rooms
        ],
        "overrides": service.overrides.snapshot(),
    }


@router.get("/api/rooms/{room}/statistics")
async def get_room_statistics(room: str):
    """Learned heating statistics of a room."""
    service = _service()
    _require_room(service, room)

    statistics = service.controller.get_room_statistics(room)
    profile = service.controller.history_service.get_room_profile(room)
    return {
        "room": room,
        "statistics": statistics,
        "profile": profile.to_dict() if profile else None,
        "model": service.controller.predictor.get_model_info(room) if service.controller.predictor else None,
    }


@router.get("/api/ai/status")
async def get_ai_status():
    return _service().controller.get_ai_status()


@router.post("/api/ai")
async def set_ai(request: AIRequest):
    service = _service()
    service.controller.set_ai_enabled(request.enabled)
    if request.enabled:
        try:
            await service.controller.load_models(service.room_ids)
        except Exception as e:
            logger.error(f"Failed to load models: {e}")
            raise HTTPException(status_code=500, detail=str(e))
    return {"enabled": service.controller.is_ai_enabled()}


@router.post("/api/rooms/{room}/boost")
async def set_room_boost(room: str, request: OverrideRequest):
    service = _service()
    _require_room(service, room)
    service.overrides.set_room_override(room, BOOST, request.active)
    return {"room": room, "boost": request.active}


@router.post("/api/rooms/{room}/pause")
async def set_room_pause(room: str, request: OverrideRequest):
    service = _service()
    _require_room(service, room)
    service.overrides.set_room_override(room, PAUSE, request.active)
    return {"room": room, "pause": request.active}


@router.post("/api/actions/boost-all")
async def set_boost_all(request: OverrideRequest):
    _service().overrides.set_all_override(BOOST, request.active)
    return {"boost_all": request.active}


@router.post("/api/actions/pause-all")
async def set_pause_all(request: OverrideRequest):
    _service().overrides.set_all_override(PAUSE, request.active)
    return {"pause_all": request.active}


@router.post("/api/actions/absence")
async def set_absence(request: AbsenceRequest):
    """Keep every room on its current target until the given time."""
    service = _service()
    until = request.until
    if until is not None and until.tzinfo is None:
        until = until.astimezone()
    service.overrides.set_absence_until(until)
    return {"absence_until": until.isoformat() if until else None}
