"""
Manual Overrides

Boost and pause switches (per room and for all rooms) that expire after a
configured number of minutes, plus an absence window.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Optional

from .time_utils import now_utc

logger = logging.getLogger(__name__)

BOOST = "boost"
PAUSE = "pause"


@dataclass
class OverrideState:
    """Overrides in force for one tick."""

    boosted: set[str] = field(default_factory=set)
    paused: set[str] = field(default_factory=set)
    expired: set[str] = field(default_factory=set)  # Rooms whose own boost/pause just ran out
    absence_active: bool = False


class OverrideRegistry:
    """Activation timestamps of all manual overrides."""

    def __init__(self):
        self._room_overrides: dict[tuple[str, str], datetime] = {}
        self._all_overrides: dict[str, datetime] = {}
        self.absence_until: Optional[datetime] = None
        self.lock = threading.Lock()

    def set_room_override(self, room: str, kind: str, active: bool, now: Optional[datetime] = None):
        if kind not in (BOOST, PAUSE):
            raise ValueError(f"Unknown override: {kind}")
        with self.lock:
            if active:
                self._room_overrides[(room, kind)] = now or now_utc()
            else:
                self._room_overrides.pop((room, kind), None)
        logger.info(f"{kind.capitalize()} for {room} {'activated' if active else 'deactivated'}")

    def set_all_override(self, kind: str, active: bool, now: Optional[datetime] = None):
        if kind not in (BOOST, PAUSE):
            raise ValueError(f"Unknown override: {kind}")
        with self.lock:
            if active:
                self._all_overrides[kind] = now or now_utc()
            else:
                self._all_overrides.pop(kind, None)
        logger.info(f"{kind.capitalize()} for all rooms {'activated' if active else 'deactivated'}")

    def set_absence_until(self, until: Optional[datetime]):
        with self.lock:
            self.absence_until = until
        logger.info(f"Absence until {until.isoformat() if until else 'cleared'}")

    def is_absence_active(self, now: Optional[datetime] = None) -> bool:
        return self.absence_until is not None and (now or now_utc()) < self.absence_until

    def is_active(self, room: str, kind: str) -> bool:
        return (room, kind) in self._room_overrides

    def collect(
        self,
        rooms: Iterable[str],
        boost_interval: float,
        pause_interval: float,
        now: Optional[datetime] = None,
    ) -> OverrideState:
        """Resolve the overrides in force, dropping the ones that expired.

        Args:
            rooms: Room ids the "all" overrides apply to
            boost_interval: Minutes a boost stays active
            pause_interval: Minutes a pause stays active
            now: Evaluation time (defaults to now)
        """
        now = now or now_utc()
        rooms = list(rooms)
        intervals = {BOOST: timedelta(minutes=boost_interval), PAUSE: timedelta(minutes=pause_interval)}
        state = OverrideState(absence_active=self.is_absence_active(now))

        with self.lock:
            for (room, kind), activated in list(self._room_overrides.items()):
                if activated > now - intervals[kind]:
                    (state.boosted if kind == BOOST else state.paused).add(room)
                else:
                    del self._room_overrides[(room, kind)]
                    state.expired.add(room)
                    logger.info(f"{kind.capitalize()} for {room} expired")

            for kind, activated in list(self._all_overrides.items()):
                if activated > now - intervals[kind]:
                    (state.boosted if kind == BOOST else state.paused).update(rooms)
                else:
                    del self._all_overrides[kind]
                    logger.info(f"{kind.capitalize()} for all rooms expired")

        return state

    def snapshot(self) -> dict:
        with self.lock:
            return {
                "rooms": {
                    f"{room}.{kind}": activated.isoformat()
                    for (room, kind), activated in self._room_overrides.items()
                },
                "all": {kind: activated.isoformat() for kind, activated in self._all_overrides.items()},
                "absence_until": self.absence_until.isoformat() if self.absence_until else None,
            }
