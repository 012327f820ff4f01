"""
Control Loop Service

Runs the per-room evaluation on a fixed interval: expire overrides, resolve
each room's target, read the room, decide, and switch the engine.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from .ai_temperature_controller import AITemperatureController
from .interfaces import ActuatorSink, InMemoryTargetStore, RoomStateSource, TargetStore, WeatherSource
from .models import UNTIL_EXPIRED, EngineCommand, TempTarget
from .overrides import OverrideRegistry, OverrideState
from .period_service import PeriodService
from .settings import HeatwiseSettings, RoomSettings
from .storage import HistoryFileStore, ModelFileStore
from .time_utils import format_time, now_utc
from .weather_controller import WeatherBasedController

logger = logging.getLogger(__name__)


class ControlLoopService:
    """Periodic decision loop over all configured rooms."""

    def __init__(
        self,
        settings: HeatwiseSettings,
        room_source: RoomStateSource,
        actuator: ActuatorSink,
        target_store: Optional[TargetStore] = None,
        weather_source: Optional[WeatherSource] = None,
        history_store: Optional[HistoryFileStore] = None,
        model_store: Optional[ModelFileStore] = None,
    ):
        """Initialize control loop.

        Args:
            settings: Complete configuration
            room_source: Reads temperature, humidity and engine state per room
            actuator: Switches engines
            target_store: Persisted per-room targets (in-memory if omitted)
            weather_source: Optional outside temperature source
            history_store: Optional heating history persistence
            model_store: Optional model persistence
        """
        self.settings = settings
        self.room_source = room_source
        self.actuator = actuator
        self.target_store = target_store or InMemoryTargetStore()
        self.weather_source = weather_source
        self.history_store = history_store

        self.controller = AITemperatureController(
            settings.controller,
            settings.ai,
            save_history=history_store.save if history_store else None,
            model_store=model_store,
        )
        self.period_service = PeriodService(settings.periods, self.controller.classic, settings.controller.mode)
        self.weather = WeatherBasedController(settings.weather)
        self.overrides = OverrideRegistry()

        self.room_status: dict[str, dict] = {}
        self.last_tick: Optional[datetime] = None

        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._retrain_task: Optional[asyncio.Task] = None

    @property
    def room_ids(self) -> list[str]:
        return [room.id for room in self.settings.rooms]

    async def load_state(self):
        """Restore learned history and models from storage."""
        if self.history_store is not None:
            self.controller.load_history(self.history_store.load())
        await self.controller.load_models(self.room_ids)

    def reset_targets(self):
        """Write the default target into the store for every room."""
        default = self.controller.classic.create_default_temp_target()
        for room in self.room_ids:
            self.target_store.set_target(room, TempTarget(default.temp, default.until))
        logger.info(f"Reset targets of {len(self.room_ids)} room(s) to {default.temp}°C")

    async def start(self):
        """Start the control loop."""
        if self._running:
            logger.warning("Control loop already running")
            return

        if self.settings.reset_temperatures_on_start:
            self.reset_targets()

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Control loop started for {len(self.settings.rooms)} room(s)")
        logger.info(f"   Update interval: {self.settings.update_interval} seconds")

    async def stop(self):
        """Stop the control loop."""
        if not self._running:
            return

        self._running = False
        for task in (self._task, self._retrain_task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        self.controller.dispose()
        logger.info("Control loop stopped")

    async def _run_loop(self):
        while self._running:
            try:
                await self.run_tick()
            except Exception as e:
                logger.error(f"Error in control loop: {e}", exc_info=True)

            await asyncio.sleep(self.settings.update_interval)

    async def run_tick(self, now: Optional[datetime] = None) -> dict[str, EngineCommand]:
        """Evaluate every room once.

        Returns:
            Command issued per room (HOLD for skipped rooms)
        """
        now = now or now_utc()
        local = now.astimezone()
        clock = format_time(local)
        weekday = local.weekday()
        logger.debug(f"Control tick at {clock}")

        overrides = self.overrides.collect(
            self.room_ids,
            self.settings.boost_interval,
            self.settings.pause_interval,
            now=now,
        )
        for room in overrides.expired:
            self.target_store.set_until(room, UNTIL_EXPIRED)

        outside_temp = self._read_outside_temperature()
        allowed = self.weather.should_allow_operation(outside_temp)
        if allowed is False:
            logger.info(f"Operation blocked by weather: {self.weather.get_control_description()}")

        commands = {}
        for room in self.settings.rooms:
            try:
                commands[room.id] = self._process_room(
                    room, clock, weekday, now, overrides, outside_temp, allowed
                )
            except Exception as e:
                logger.error(f"{room.id}: evaluation failed: {e}", exc_info=True)
                commands[room.id] = EngineCommand.HOLD

        self.controller.history_service.complete_due_cycles(now)
        self._schedule_retrain(now)
        self.last_tick = now
        return commands

    def _process_room(
        self,
        room: RoomSettings,
        clock: str,
        weekday: int,
        now: datetime,
        overrides: OverrideState,
        outside_temp: Optional[float],
        allowed: Optional[bool],
    ) -> EngineCommand:
        stored_temp, stored_until = self.target_store.get_target(room.id)
        current = self.controller.classic.resolve_stored_target(stored_temp, stored_until, clock)

        target = self.period_service.calculate_temperature_for_room(
            room.id,
            clock,
            is_paused=room.id in overrides.paused,
            is_boosted=room.id in overrides.boosted,
            is_absence_active=overrides.absence_active,
            current_target=current,
            weekday=weekday,
        )
        self.target_store.set_target(room.id, target)

        reading = self.room_source.read_room(room.id)
        if reading is None:
            logger.info(f"{room.id}: no reading available, skipping")
            self._update_status(room.id, target, None, EngineCommand.HOLD, now)
            return EngineCommand.HOLD

        logger.debug(f"In {room.id} it is {reading.current_temp}°C and should be {target.temp}°C")

        if allowed is False:
            command = EngineCommand.DEACTIVATE
        else:
            context = self.controller.get_ai_context(room.id, outside_temp, now=now)
            context.last_engine_state = reading.engine_on
            command = self.controller.should_activate_engine(
                reading.current_temp,
                target.temp,
                reading.humidity,
                context,
                now=now,
            )

        if command is not EngineCommand.HOLD:
            on = command is EngineCommand.ACTIVATE
            logger.debug(f"{room.id}: set engine {room.engine} to {on}")
            self.actuator.set_engine(room.id, on)

        self._update_status(room.id, target, reading, command, now)
        return command

    def _update_status(self, room: str, target: TempTarget, reading, command: EngineCommand, now: datetime):
        self.room_status[room] = {
            "target": target.temp,
            "until": target.until,
            "current_temp": reading.current_temp if reading else None,
            "humidity": reading.humidity if reading else None,
            "engine_on": reading.engine_on if reading else None,
            "command": command.value,
            "timestamp": now.isoformat(),
        }

    def _read_outside_temperature(self) -> Optional[float]:
        if self.weather_source is None:
            return None
        try:
            return self.weather_source.get_outside_temperature()
        except Exception as e:
            logger.warning(f"Failed to read outside temperature: {e}")
            return None

    def _schedule_retrain(self, now: datetime):
        """Kick off a background retrain sweep unless one is still running."""
        if self._retrain_task is not None and not self._retrain_task.done():
            return
        self._retrain_task = asyncio.get_running_loop().create_task(self._retrain(now))

    async def _retrain(self, now: datetime):
        try:
            retrained = await self.controller.check_and_retrain(now)
            if retrained:
                logger.info(f"Retrained models for {retrained}")
        except Exception as e:
            logger.error(f"Auto-retrain failed: {e}", exc_info=True)
