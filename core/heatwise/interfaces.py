"""
Host Interfaces

The control loop only talks to the outside world through these protocols.
"""

import threading
from typing import Optional, Protocol

from .models import RoomReading, TempTarget


class RoomStateSource(Protocol):
    def read_room(self, room: str) -> Optional[RoomReading]:
        """Current temperature, humidity and engine state, or None if unavailable."""
        ...


class ActuatorSink(Protocol):
    def set_engine(self, room: str, on: bool) -> None:
        ...


class WeatherSource(Protocol):
    def get_outside_temperature(self) -> Optional[float]:
        ...


class TargetStore(Protocol):
    def get_target(self, room: str) -> tuple[Optional[float], Optional[str]]:
        """Last written (temperature, until) for the room; (None, None) if unset."""
        ...

    def set_target(self, room: str, target: TempTarget) -> None:
        ...

    def set_until(self, room: str, until: str) -> None:
        ...


class InMemoryTargetStore:
    """Process-local target store."""

    def __init__(self):
        self._targets: dict[str, tuple[Optional[float], Optional[str]]] = {}
        self.lock = threading.Lock()

    def get_target(self, room: str) -> tuple[Optional[float], Optional[str]]:
        with self.lock:
            return self._targets.get(room, (None, None))

    def set_target(self, room: str, target: TempTarget):
        with self.lock:
            self._targets[room] = (target.temp, target.until)

    def set_until(self, room: str, until: str):
        with self.lock:
            temp, _ = self._targets.get(room, (None, None))
            self._targets[room] = (temp, until)

    def all_targets(self) -> dict[str, tuple[Optional[float], Optional[str]]]:
        with self.lock:
            return dict(self._targets)
