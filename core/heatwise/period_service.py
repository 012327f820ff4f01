"""
Period Resolution

Resolves the target temperature of a room from overrides and the configured
weekly periods. Periods are evaluated in configuration order.
"""

import copy
import logging
from typing import Iterable, Optional

from . import time_utils
from .models import UNTIL_BOOST, UNTIL_END_OF_DAY, UNTIL_PAUSE, OperatingMode, Period, TempTarget
from .temperature_controller import TemperatureController

logger = logging.getLogger(__name__)

ROOM_ID_PREFIX = "enum.rooms."


def canonical_room_id(room: str) -> str:
    """Return the "enum.rooms.<name>" form of a room name."""
    if room.startswith(ROOM_ID_PREFIX):
        return room
    return f"{ROOM_ID_PREFIX}{room}"


def short_room_name(room: str) -> str:
    """Return the last dotted component of a room id."""
    return room.split(".")[-1]


class PeriodService:
    """Holds the period list and computes per-room targets."""

    def __init__(
        self,
        periods: Iterable[Period],
        controller: TemperatureController,
        mode: OperatingMode,
    ):
        self.periods: list[Period] = list(periods)
        self.controller = controller
        self.mode = OperatingMode(mode)

    def get_periods_for_room(self, room: str) -> list[Period]:
        room_id = canonical_room_id(room)
        return [period for period in self.periods if period.room == room_id]

    def calculate_temperature_for_room(
        self,
        room: str,
        now: str,
        is_paused: bool,
        is_boosted: bool,
        is_absence_active: bool,
        current_target: TempTarget,
        weekday: Optional[int] = None,
    ) -> TempTarget:
        """Resolve the target for a room.

        Priority: pause, boost, absence, then matching periods. A later
        period starting before the current "until" shortens it, so the room
        is re-evaluated when that period begins.
        """
        if is_paused:
            return TempTarget(self.controller.get_pause_temperature(), UNTIL_PAUSE)

        if is_boosted:
            return TempTarget(self.controller.get_boost_temperature(), UNTIL_BOOST)

        if is_absence_active:
            return current_target

        target = copy.copy(current_target)
        heating = self.mode == OperatingMode.HEATING

        for period in self.get_periods_for_room(room):
            if heating != period.heating:
                continue

            if now < period.from_time < target.until:
                target.until = period.from_time

            if target.until > now and target.until != UNTIL_END_OF_DAY:
                continue

            if time_utils.is_current_period(period, now=now, weekday=weekday):
                target = TempTarget(period.temp, period.until)
                logger.debug(f"{room}: period {period.from_time}-{period.until} active, target {period.temp}°C")

        return target

    def validate_period(self, period: Period) -> bool:
        return time_utils.is_period_valid(period, auto_correct=False)

    def correct_period(self, period: Period) -> Period:
        """Zero-pad the period's times in place and return it."""
        period.from_time = time_utils.correct_time(period.from_time)
        period.until = time_utils.correct_time(period.until)
        return period

    def update_periods(self, periods: Iterable[Period]):
        self.periods = list(periods)
        logger.info(f"Updated periods: {len(self.periods)} configured")

    def get_all_periods(self) -> list[Period]:
        return list(self.periods)
