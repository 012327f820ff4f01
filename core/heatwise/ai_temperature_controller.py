"""
Learning Temperature Controller

Wraps the classic hysteresis controller with per-room learning. Every decision
feeds the heating history; once a room has a confident profile and a trained
model, the model's predicted overshoot replaces the fixed hysteresis band near
the target. Any gap in data or model falls back to classic control.
"""

import asyncio
import logging
import time
from collections import deque
from datetime import datetime, timedelta
from typing import Iterable, Optional

from .heating_history import HeatingHistoryService, RoomThermalProfile, SaveCallback
from .models import AIContext, EngineCommand
from .settings import AISettings, ControllerSettings
from .storage import ModelFileStore
from .temperature_controller import TemperatureController
from .temperature_predictor import AITemperaturePredictor, HeatingPrediction
from .time_utils import now_utc

logger = logging.getLogger(__name__)

PREDICTION_CACHE_TTL = 5.0  # Seconds
RECENT_TEMPERATURE_WINDOW = timedelta(minutes=15)


class AITemperatureController:
    """Hysteresis control refined by learned per-room stop offsets."""

    def __init__(
        self,
        controller_settings: ControllerSettings,
        ai_settings: AISettings,
        save_history: Optional[SaveCallback] = None,
        model_store: Optional[ModelFileStore] = None,
    ):
        self.classic = TemperatureController(controller_settings)
        self.ai_settings = ai_settings
        self.model_store = model_store

        # History is recorded regardless of the AI switch
        self.history_service = HeatingHistoryService(save_history)
        self.predictor: Optional[AITemperaturePredictor] = None
        self._enabled = False

        self._engine_states: dict[str, bool] = {}
        self._heating_start_times: dict[str, datetime] = {}
        self._recent_temperatures: dict[str, deque[tuple[datetime, float]]] = {}
        self._prediction_cache: dict[str, tuple[HeatingPrediction, float]] = {}
        self._prediction_tasks: dict[str, asyncio.Task] = {}
        self._last_retrain_check = now_utc()

        if ai_settings.enable_ai:
            self.set_ai_enabled(True)
        else:
            logger.info("AI control disabled, using classic hysteresis control")

    @property
    def settings(self) -> ControllerSettings:
        return self.classic.settings

    def set_ai_enabled(self, enabled: bool):
        if enabled and self.predictor is None:
            logger.info("Enabling AI control")
            self.predictor = AITemperaturePredictor(self.ai_settings, self.model_store)
        elif not enabled and self.predictor is not None:
            logger.info("Disabling AI control, switching to classic mode")
            self.predictor.dispose()
            self.predictor = None
            self._prediction_cache.clear()
        self._enabled = enabled

    def is_ai_enabled(self) -> bool:
        return self._enabled and self.predictor is not None

    def should_activate_engine(
        self,
        current_temp: float,
        target_temp: float,
        humidity: Optional[float] = None,
        context: Optional[AIContext] = None,
        now: Optional[datetime] = None,
    ) -> EngineCommand:
        if context is not None:
            self.record_measurement(
                context.room,
                current_temp,
                target_temp,
                context.last_engine_state,
                humidity,
                context.outside_temp,
                now=now,
            )

        if not self.is_ai_enabled() or context is None:
            return self.classic.should_activate_engine(current_temp, target_temp, humidity)

        room = context.room
        profile = self.history_service.get_room_profile(room)
        if profile is None or profile.confidence < self.ai_settings.ai_confidence_threshold:
            confidence = f"{profile.confidence:.2f}" if profile else "N/A"
            logger.debug(f"{room}: insufficient data/confidence ({confidence}), using classic control")
            return self.classic.should_activate_engine(current_temp, target_temp, humidity)

        if not self.predictor.is_model_ready(room):
            logger.debug(f"{room}: model not ready, using classic control")
            return self.classic.should_activate_engine(current_temp, target_temp, humidity)

        self._refresh_prediction(room, current_temp, target_temp, context, profile)
        return self._decide_with_prediction(room, current_temp, target_temp, humidity)

    def _refresh_prediction(
        self,
        room: str,
        current_temp: float,
        target_temp: float,
        context: AIContext,
        profile: RoomThermalProfile,
    ):
        """Start a background prediction unless the cache is fresh or one is running."""
        cached = self._prediction_cache.get(room)
        if cached and time.monotonic() - cached[1] < PREDICTION_CACHE_TTL:
            return

        task = self._prediction_tasks.get(room)
        if task is not None and not task.done():
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"{room}: no event loop, prediction refresh skipped")
            return

        self._prediction_tasks[room] = loop.create_task(self._update_prediction(
            room,
            current_temp,
            target_temp,
            context.heating_duration,
            context.recent_heating_rate,
            profile,
            context.outside_temp,
        ))

    async def _update_prediction(
        self,
        room: str,
        current_temp: float,
        target_temp: float,
        heating_duration: float,
        recent_rate: float,
        profile: RoomThermalProfile,
        outside_temp: Optional[float],
    ):
        predictor = self.predictor
        if predictor is None:
            return
        try:
            prediction = await predictor.predict(
                room,
                current_temp,
                target_temp,
                heating_duration,
                recent_rate,
                profile,
                outside_temp,
            )
        except Exception as e:
            logger.error(f"{room}: prediction update failed: {e}", exc_info=True)
            return
        if prediction is not None:
            self._prediction_cache[room] = (prediction, time.monotonic())

    def _decide_with_prediction(
        self,
        room: str,
        current_temp: float,
        target_temp: float,
        humidity: Optional[float],
    ) -> EngineCommand:
        settings = self.settings

        if (
            not settings.is_heating
            and humidity is not None
            and humidity > settings.stop_cooling_if_hum_is_higher_than
        ):
            return EngineCommand.DEACTIVATE

        cached = self._prediction_cache.get(room)
        if cached is None:
            logger.debug(f"{room}: no cached prediction, using classic control")
            return self.classic.should_activate_engine(current_temp, target_temp, humidity)

        prediction = cached[0]
        if prediction.confidence < self.ai_settings.ai_confidence_threshold:
            logger.debug(f"{room}: low prediction confidence {prediction.confidence:.2f}, using classic control")
            return self.classic.should_activate_engine(current_temp, target_temp, humidity)

        # Distance still to travel towards the target in the active mode
        diff = target_temp - current_temp if settings.is_heating else current_temp - target_temp

        if diff < 0:
            return EngineCommand.DEACTIVATE

        if diff > settings.start_stop_difference * 2:
            return EngineCommand.ACTIVATE

        if prediction.should_stop_heating or diff <= prediction.stop_offset:
            logger.debug(
                f"{room}: stopping early (current: {current_temp:.2f}°C, target: {target_temp:.2f}°C, "
                f"stop offset: {prediction.stop_offset:.2f}°C)"
            )
            return EngineCommand.DEACTIVATE

        return EngineCommand.ACTIVATE

    def record_measurement(
        self,
        room: str,
        current_temp: float,
        target_temp: float,
        engine_state: bool,
        humidity: Optional[float] = None,
        outside_temp: Optional[float] = None,
        now: Optional[datetime] = None,
    ):
        """Feed the history and update the live tracking used for contexts."""
        now = now or now_utc()
        self.history_service.record_measurement(
            room,
            current_temp,
            target_temp,
            engine_state,
            humidity,
            outside_temp,
            timestamp=now,
        )

        self._engine_states[room] = engine_state
        if engine_state:
            self._heating_start_times.setdefault(room, now)
        else:
            self._heating_start_times.pop(room, None)

        recent = self._recent_temperatures.setdefault(room, deque())
        recent.append((now, current_temp))
        cutoff = now - RECENT_TEMPERATURE_WINDOW
        while recent and recent[0][0] <= cutoff:
            recent.popleft()

    def get_ai_context(
        self,
        room: str,
        outside_temp: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> AIContext:
        now = now or now_utc()
        start = self._heating_start_times.get(room)
        heating_duration = (now - start).total_seconds() / 60 if start else 0.0

        recent_rate = 0.0
        recent = self._recent_temperatures.get(room)
        if recent and len(recent) >= 2:
            (first_time, first_temp), (last_time, last_temp) = recent[0], recent[-1]
            hours = (last_time - first_time).total_seconds() / 3600
            if hours > 0:
                recent_rate = (last_temp - first_temp) / hours

        return AIContext(
            room=room,
            heating_duration=heating_duration,
            recent_heating_rate=recent_rate,
            outside_temp=outside_temp,
            last_engine_state=self._engine_states.get(room, False),
        )

    async def train_model(self, room: str) -> bool:
        if self.predictor is None:
            logger.warning("Cannot train: AI is not enabled")
            return False

        training_data = self.history_service.generate_training_data(room)
        if not training_data:
            logger.debug(f"No training data available for {room}")
            return False

        return await self.predictor.train_model(room, training_data)

    async def check_and_retrain(self, now: Optional[datetime] = None) -> list[str]:
        """Retrain every room with enough cycles, at most once per retrain interval.

        Returns:
            Rooms whose model was retrained
        """
        if not self.is_ai_enabled() or not self.ai_settings.ai_auto_retrain:
            return []

        now = now or now_utc()
        if now - self._last_retrain_check < timedelta(hours=self.ai_settings.ai_retrain_interval):
            return []

        self._last_retrain_check = now
        logger.info("Starting auto-retrain check")

        retrained = []
        for room in self.history_service.get_rooms():
            stats = self.history_service.get_room_statistics(room)
            if stats and stats["cycle_count"] >= self.ai_settings.ai_min_training_data:
                logger.info(f"Auto-retraining model for {room}")
                if await self.train_model(room):
                    retrained.append(room)
        return retrained

    def load_history(self, data: Optional[dict]):
        self.history_service.load_history(data)

    async def load_models(self, rooms: Iterable[str]):
        if self.predictor is None:
            return
        for room in rooms:
            await self.predictor.load_model(room)

    def get_room_statistics(self, room: str) -> Optional[dict]:
        return self.history_service.get_room_statistics(room)

    def get_ai_status(self) -> dict:
        rooms = self.history_service.get_rooms()
        return {
            "enabled": self.is_ai_enabled(),
            "models_ready": {
                room: self.predictor.is_model_ready(room) if self.predictor else False
                for room in rooms
            },
            "statistics": {room: self.history_service.get_room_statistics(room) for room in rooms},
        }

    def dispose(self):
        """Release models, cancel pending predictions and clear live tracking."""
        if self.predictor is not None:
            self.predictor.dispose()
        for task in self._prediction_tasks.values():
            if not task.done():
                task.cancel()
        self._prediction_tasks.clear()
        self._prediction_cache.clear()
        self._engine_states.clear()
        self._heating_start_times.clear()
        self._recent_temperatures.clear()
        logger.info("AI controller disposed")
