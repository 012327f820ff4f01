"""
Heating Cycle History

Records per-room temperature measurements, cuts them into heating cycles
(engine on -> engine off -> 30 minute overshoot observation) and derives
thermal profiles and supervised training data from the closed cycles.
"""

import asyncio
import inspect
import logging
import threading
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional, Union

from .time_utils import now_utc

logger = logging.getLogger(__name__)

HISTORY_VERSION = "1.0.0"
MAX_CYCLES_PER_ROOM = 100
MIN_MEASUREMENTS_PER_CYCLE = 5
PROFILE_WINDOW = 20  # Cycles used for the rolling profile
DRAIN_WINDOW = timedelta(minutes=30)
PREDICTION_HORIZON = timedelta(minutes=30)
RECENT_RATE_LOOKBACK = 3  # Preceding heating measurements used for the recent rate
THERMAL_INERTIA_FACTOR = 0.63  # Time-constant fraction of the average cycle duration
OVERSHOOT_FLAG_THRESHOLD = 0.1

SaveCallback = Callable[[dict], Union[None, Awaitable[None]]]


def _to_datetime(value: Any) -> datetime:
    """Parse an ISO string or epoch milliseconds into an aware datetime."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)):
        dt = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    else:
        dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _rate_per_hour(first: "TemperatureMeasurement", last: "TemperatureMeasurement") -> float:
    hours = (last.timestamp - first.timestamp).total_seconds() / 3600
    if hours <= 0:
        return 0.0
    return (last.temperature - first.temperature) / hours


@dataclass
class TemperatureMeasurement:
    """A single room sample."""

    timestamp: datetime
    temperature: float
    target_temperature: float
    engine_state: bool
    humidity: Optional[float] = None
    outside_temperature: Optional[float] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "TemperatureMeasurement":
        return cls(
            timestamp=_to_datetime(data["timestamp"]),
            temperature=float(data["temperature"]),
            target_temperature=float(data["target_temperature"]),
            engine_state=bool(data["engine_state"]),
            humidity=data.get("humidity"),
            outside_temperature=data.get("outside_temperature"),
        )


@dataclass
class HeatingCycle:
    """A closed heating (or cooling) excursion and its derived metrics."""

    room: str
    start_time: datetime
    end_time: datetime
    measurements: list[TemperatureMeasurement]
    duration: float  # Minutes
    start_temp: float
    end_temp: float
    target_temp: float
    max_temp: float
    overshoot: float
    heating_rate: float  # °C/hour while the engine ran
    cooldown_rate: float  # °C/hour after the engine stopped
    avg_outside_temp: Optional[float] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["start_time"] = self.start_time.isoformat()
        data["end_time"] = self.end_time.isoformat()
        data["measurements"] = [m.to_dict() for m in self.measurements]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "HeatingCycle":
        values = dict(data)
        values["start_time"] = _to_datetime(data["start_time"])
        values["end_time"] = _to_datetime(data["end_time"])
        values["measurements"] = [TemperatureMeasurement.from_dict(m) for m in data.get("measurements", [])]
        return cls(**values)


@dataclass
class RoomThermalProfile:
    """Rolling summary of a room's recent cycles."""

    room: str
    last_updated: datetime
    avg_heating_rate: float
    avg_cooldown_rate: float
    thermal_inertia: float  # Minutes
    typical_overshoot: float
    cycle_count: int
    confidence: float  # 0-1, data sufficiency

    def to_dict(self) -> dict:
        data = asdict(self)
        data["last_updated"] = self.last_updated.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "RoomThermalProfile":
        values = dict(data)
        values["last_updated"] = _to_datetime(data["last_updated"])
        return cls(**values)


@dataclass
class TrainingDataPoint:
    """One supervised example derived from a closed cycle."""

    current_temp: float
    target_temp: float
    temp_difference: float
    heating_duration: float  # Minutes since the cycle started
    recent_heating_rate: float  # °C/hour
    outside_temp: Optional[float]
    time_of_day: int  # Local hour 0-23
    day_of_week: int  # Monday = 0
    future_temp_change: float  # °C change 30 minutes later
    will_overshoot: bool
    optimal_stop_offset: float


@dataclass
class _OpenCycle:
    """Measurement buffer of a running or draining cycle."""

    start_time: datetime
    measurements: list[TemperatureMeasurement] = field(default_factory=list)
    drain_deadline: Optional[datetime] = None  # Set once the engine switched off

    @property
    def draining(self) -> bool:
        return self.drain_deadline is not None


class HeatingHistoryService:
    """Owns open cycles, closed cycles and thermal profiles for all rooms."""

    def __init__(self, save_callback: Optional[SaveCallback] = None):
        """Initialize history service.

        Args:
            save_callback: Called with the exported history after every closed
                cycle. May be a plain function or a coroutine function.
        """
        self.save_callback = save_callback

        self._open_cycles: dict[str, _OpenCycle] = {}
        self._cycles: dict[str, deque[HeatingCycle]] = {}
        self._profiles: dict[str, RoomThermalProfile] = {}
        self._pending_saves: set[asyncio.Task] = set()

        self.lock = threading.RLock()

    def record_measurement(
        self,
        room: str,
        temperature: float,
        target_temperature: float,
        engine_state: bool,
        humidity: Optional[float] = None,
        outside_temperature: Optional[float] = None,
        timestamp: Optional[datetime] = None,
    ):
        """Feed one sample into the room's cycle state machine.

        Args:
            room: Room identifier
            temperature: Current room temperature
            target_temperature: Target the controller is working towards
            engine_state: Whether the engine is running
            humidity: Optional relative humidity
            outside_temperature: Optional outside temperature
            timestamp: Sample time (defaults to now)
        """
        ts = timestamp or now_utc()
        measurement = TemperatureMeasurement(
            timestamp=ts,
            temperature=temperature,
            target_temperature=target_temperature,
            engine_state=engine_state,
            humidity=humidity,
            outside_temperature=outside_temperature,
        )

        with self.lock:
            self._complete_if_due(room, ts)
            cycle = self._open_cycles.get(room)

            if cycle is None:
                if engine_state:
                    logger.debug(f"Heating cycle started for {room}")
                    self._open_cycles[room] = _OpenCycle(start_time=ts, measurements=[measurement])
                return

            cycle.measurements.append(measurement)

            if not cycle.draining and not engine_state:
                cycle.drain_deadline = ts + DRAIN_WINDOW
                logger.debug(f"Heating stopped for {room}, tracking overshoot until {cycle.drain_deadline.isoformat()}")

    def complete_due_cycles(self, now: Optional[datetime] = None) -> list[str]:
        """Close every draining cycle whose observation window has elapsed.

        Returns:
            Rooms whose cycle was completed (or discarded)
        """
        now = now or now_utc()
        completed = []
        with self.lock:
            for room in list(self._open_cycles):
                if self._complete_if_due(room, now):
                    completed.append(room)
        return completed

    def _complete_if_due(self, room: str, now: datetime) -> bool:
        cycle = self._open_cycles.get(room)
        if cycle is None or not cycle.draining or now < cycle.drain_deadline:
            return False
        self.complete_cycle(room)
        return True

    def complete_cycle(self, room: str) -> Optional[HeatingCycle]:
        """Close the room's open cycle, keeping it only if it has enough data."""
        with self.lock:
            open_cycle = self._open_cycles.pop(room, None)

            if open_cycle is None or len(open_cycle.measurements) < MIN_MEASUREMENTS_PER_CYCLE:
                logger.debug(f"Cycle for {room} has insufficient data, discarding")
                return None

            cycle = self._analyze_cycle(room, open_cycle.measurements, open_cycle.start_time)
            if cycle is None:
                return None

            cycles = self._cycles.setdefault(room, deque(maxlen=MAX_CYCLES_PER_ROOM))
            cycles.append(cycle)

            logger.info(
                f"Cycle completed for {room}: {cycle.duration:.1f}min, "
                f"{cycle.start_temp:.1f}°C -> {cycle.max_temp:.1f}°C, "
                f"overshoot: {cycle.overshoot:.2f}°C"
            )

            self._update_room_profile(room)

        self._persist()
        return cycle

    def _analyze_cycle(
        self,
        room: str,
        measurements: list[TemperatureMeasurement],
        start_time: datetime,
    ) -> Optional[HeatingCycle]:
        heating = [m for m in measurements if m.engine_state]
        cooling = [m for m in measurements if not m.engine_state]

        if not heating:
            return None

        start_temp = heating[0].temperature
        target_temp = heating[0].target_temperature
        end_time = measurements[-1].timestamp
        duration = (end_time - start_time).total_seconds() / 60

        # Temperature at the moment the engine stopped
        stop_index = next((i for i, m in enumerate(measurements) if not m.engine_state), -1)
        end_temp = measurements[stop_index - 1].temperature if stop_index > 0 else measurements[-1].temperature

        max_temp = max(m.temperature for m in measurements)
        overshoot = max(0.0, max_temp - target_temp)

        heating_rate = _rate_per_hour(heating[0], heating[-1]) if len(heating) >= 2 else 0.0
        cooldown_rate = _rate_per_hour(cooling[0], cooling[-1]) if len(cooling) >= 2 else 0.0

        outside = [m.outside_temperature for m in measurements if m.outside_temperature is not None]
        avg_outside_temp = sum(outside) / len(outside) if outside else None

        return HeatingCycle(
            room=room,
            start_time=start_time,
            end_time=end_time,
            measurements=list(measurements),
            duration=duration,
            start_temp=start_temp,
            end_temp=end_temp,
            target_temp=target_temp,
            max_temp=max_temp,
            overshoot=overshoot,
            heating_rate=heating_rate,
            cooldown_rate=cooldown_rate,
            avg_outside_temp=avg_outside_temp,
        )

    def _update_room_profile(self, room: str):
        cycles = self._cycles.get(room)
        if not cycles:
            return

        recent = list(cycles)[-PROFILE_WINDOW:]
        count = len(recent)

        avg_heating_rate = sum(c.heating_rate for c in recent) / count
        avg_cooldown_rate = abs(sum(c.cooldown_rate for c in recent) / count)
        typical_overshoot = sum(c.overshoot for c in recent) / count
        thermal_inertia = sum(c.duration for c in recent) / count * THERMAL_INERTIA_FACTOR
        confidence = min(1.0, len(cycles) / PROFILE_WINDOW)

        self._profiles[room] = RoomThermalProfile(
            room=room,
            last_updated=now_utc(),
            avg_heating_rate=avg_heating_rate,
            avg_cooldown_rate=avg_cooldown_rate,
            thermal_inertia=thermal_inertia,
            typical_overshoot=typical_overshoot,
            cycle_count=len(cycles),
            confidence=confidence,
        )

        logger.info(
            f"Updated profile for {room}: heating rate: {avg_heating_rate:.2f}°C/h, "
            f"cooldown: {avg_cooldown_rate:.2f}°C/h, overshoot: {typical_overshoot:.2f}°C, "
            f"confidence: {confidence * 100:.0f}%"
        )

    def _persist(self):
        """Hand the exported history to the save callback, never raising."""
        if self.save_callback is None:
            return

        data = self.export_history()
        try:
            result = self.save_callback(data)
        except Exception as e:
            logger.error(f"Failed to persist heating history: {e}", exc_info=True)
            return

        if not inspect.isawaitable(result):
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(self._await_save(result))
            return

        task = loop.create_task(self._await_save(result))
        self._pending_saves.add(task)
        task.add_done_callback(self._pending_saves.discard)

    async def _await_save(self, result: Awaitable[None]):
        try:
            await result
        except Exception as e:
            logger.error(f"Failed to persist heating history: {e}", exc_info=True)

    def get_room_profile(self, room: str) -> Optional[RoomThermalProfile]:
        with self.lock:
            return self._profiles.get(room)

    def get_cycles(self, room: str) -> list[HeatingCycle]:
        with self.lock:
            return list(self._cycles.get(room, ()))

    def get_rooms(self) -> list[str]:
        with self.lock:
            return list(self._cycles)

    def generate_training_data(self, room: str) -> list[TrainingDataPoint]:
        """Build supervised examples from the room's closed cycles."""
        training_data = []

        for cycle in self.get_cycles(room):
            heating = [m for m in cycle.measurements if m.engine_state]

            for i, current in enumerate(heating[:-1]):
                horizon = current.timestamp + PREDICTION_HORIZON
                future = next((m for m in cycle.measurements if m.timestamp >= horizon), None)
                if future is None:
                    continue

                recent = heating[max(0, i - RECENT_RATE_LOOKBACK):i + 1]
                recent_rate = _rate_per_hour(recent[0], recent[-1]) if len(recent) >= 2 else 0.0

                local = current.timestamp.astimezone()
                training_data.append(TrainingDataPoint(
                    current_temp=current.temperature,
                    target_temp=current.target_temperature,
                    temp_difference=current.target_temperature - current.temperature,
                    heating_duration=(current.timestamp - cycle.start_time).total_seconds() / 60,
                    recent_heating_rate=recent_rate,
                    outside_temp=current.outside_temperature,
                    time_of_day=local.hour,
                    day_of_week=local.weekday(),
                    future_temp_change=future.temperature - current.temperature,
                    will_overshoot=cycle.overshoot > OVERSHOOT_FLAG_THRESHOLD,
                    optimal_stop_offset=max(0.0, cycle.overshoot),
                ))

        logger.debug(f"Generated {len(training_data)} training points for {room}")
        return training_data

    def export_history(self) -> dict:
        """Export closed cycles and profiles as a JSON-serialisable dict."""
        with self.lock:
            rooms = {}
            for room, cycles in self._cycles.items():
                profile = self._profiles.get(room)
                rooms[room] = {
                    "cycles": [c.to_dict() for c in cycles],
                    "profile": profile.to_dict() if profile else None,
                }
        return {"version": HISTORY_VERSION, "rooms": rooms}

    def load_history(self, data: Optional[dict]):
        """Restore exported history; an unreadable blob leaves history empty."""
        if not data:
            return

        try:
            cycles: dict[str, deque[HeatingCycle]] = {}
            profiles: dict[str, RoomThermalProfile] = {}
            for room, room_data in data["rooms"].items():
                if room_data.get("cycles"):
                    cycles[room] = deque(
                        (HeatingCycle.from_dict(c) for c in room_data["cycles"]),
                        maxlen=MAX_CYCLES_PER_ROOM,
                    )
                if room_data.get("profile"):
                    profiles[room] = RoomThermalProfile.from_dict(room_data["profile"])
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.error(f"Failed to load heating history, starting empty: {e}")
            return

        with self.lock:
            self._cycles.update(cycles)
            self._profiles.update(profiles)
        logger.info(f"Loaded history for {len(data['rooms'])} rooms")

    def get_room_statistics(self, room: str) -> Optional[dict]:
        with self.lock:
            cycles = self._cycles.get(room)
            profile = self._profiles.get(room)

        if not cycles:
            return None

        return {
            "cycle_count": len(cycles),
            "avg_overshoot": profile.typical_overshoot if profile else 0.0,
            "avg_heating_rate": profile.avg_heating_rate if profile else 0.0,
            "confidence": profile.confidence if profile else 0.0,
        }

    def clear_history(self):
        with self.lock:
            self._open_cycles.clear()
            self._cycles.clear()
            self._profiles.clear()
        logger.info("All heating history cleared")
