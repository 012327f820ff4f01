"""
Heatwise Data Models

Shared value types passed between the schedule, control and learning layers.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Optional

# Sentinel "until" values. Both compare lexically above every HH:MM string.
UNTIL_BOOST = "boost"
UNTIL_PAUSE = "pause"
UNTIL_END_OF_DAY = "24:00"
UNTIL_EXPIRED = "00:00"


class OperatingMode(IntEnum):
    """Global operating mode (config flag isHeatingMode: 0 = heating, 1 = cooling)."""

    HEATING = 0
    COOLING = 1


class EngineCommand(Enum):
    """Actuator decision for one tick."""

    ACTIVATE = "activate"
    DEACTIVATE = "deactivate"
    HOLD = "hold"

    @classmethod
    def from_optional(cls, value: Optional[bool]) -> "EngineCommand":
        if value is None:
            return cls.HOLD
        return cls.ACTIVATE if value else cls.DEACTIVATE

    def as_optional(self) -> Optional[bool]:
        """Return True/False for switching commands and None for HOLD."""
        if self is EngineCommand.HOLD:
            return None
        return self is EngineCommand.ACTIVATE


@dataclass
class Period:
    """A weekly recurring temperature window for one room."""

    room: str  # e.g. "enum.rooms.livingroom"
    from_time: str  # HH:MM
    until: str  # HH:MM
    heating: bool  # True = heating period, False = cooling period
    temp: float
    days: list[bool] = field(default_factory=lambda: [False] * 7)  # Monday = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Period":
        """Create from the configuration shape (day flags keyed "0".."6")."""
        days = [bool(data.get(str(day), data.get(day, False))) for day in range(7)]
        return cls(
            room=data["room"],
            from_time=str(data["from"]),
            until=str(data["until"]),
            heating=bool(data.get("heating", True)),
            temp=float(data["temp"]),
            days=days,
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "room": self.room,
            "from": self.from_time,
            "until": self.until,
            "heating": self.heating,
            "temp": self.temp,
        }
        for day, active in enumerate(self.days):
            result[str(day)] = active
        return result


@dataclass
class TempTarget:
    """Resolved target temperature and the time it is valid until."""

    temp: float
    until: str  # HH:MM, "boost", "pause" or "24:00"


@dataclass
class AIContext:
    """Per-room learning context for one evaluation."""

    room: str
    heating_duration: float  # Minutes since the current heating run started
    recent_heating_rate: float  # °C/hour over the trailing 15 minutes
    outside_temp: Optional[float] = None
    last_engine_state: bool = False


@dataclass
class RoomReading:
    """Current sensor and actuator state of a room."""

    room: str
    current_temp: float
    engine_on: bool
    humidity: Optional[float] = None
