"""
Classic Hysteresis Controller

Decides whether an engine should switch on, switch off or stay as it is,
using a symmetric band of +/- start_stop_difference around the target.
"""

import logging
from typing import Optional

from .models import UNTIL_BOOST, UNTIL_END_OF_DAY, UNTIL_PAUSE, EngineCommand, TempTarget
from .settings import ControllerSettings

logger = logging.getLogger(__name__)

BOOST_TEMPERATURE = 100
PAUSE_TEMPERATURE = -100


class TemperatureController:
    """Hysteresis decisions and target helpers for one operating mode."""

    def __init__(self, settings: ControllerSettings):
        self.settings = settings

    @property
    def is_heating(self) -> bool:
        return self.settings.is_heating

    def get_boost_temperature(self) -> float:
        """Sentinel target that keeps the engine running."""
        return BOOST_TEMPERATURE if self.is_heating else PAUSE_TEMPERATURE

    def get_pause_temperature(self) -> float:
        """Sentinel target that keeps the engine off."""
        return PAUSE_TEMPERATURE if self.is_heating else BOOST_TEMPERATURE

    def should_activate_engine(
        self,
        current_temp: float,
        target_temp: float,
        humidity: Optional[float] = None,
    ) -> EngineCommand:
        diff = self.settings.start_stop_difference

        if self.is_heating:
            if current_temp < target_temp - diff:
                return EngineCommand.ACTIVATE
            if current_temp > target_temp + diff:
                return EngineCommand.DEACTIVATE
            return EngineCommand.HOLD

        if humidity is not None and humidity > self.settings.stop_cooling_if_hum_is_higher_than:
            logger.debug(
                f"Humidity {humidity}% above {self.settings.stop_cooling_if_hum_is_higher_than}%, "
                f"cooling stopped"
            )
            return EngineCommand.DEACTIVATE

        if current_temp < target_temp - diff:
            return EngineCommand.DEACTIVATE
        if current_temp > target_temp + diff:
            return EngineCommand.ACTIVATE
        return EngineCommand.HOLD

    def create_temp_target(self, temp: float, until: str) -> TempTarget:
        return TempTarget(temp=temp, until=until)

    def create_default_temp_target(self) -> TempTarget:
        return TempTarget(temp=self.settings.default_temperature, until=UNTIL_END_OF_DAY)

    def is_valid_target_until(self, until: Optional[str], now: str) -> bool:
        """A stored "until" stays valid while it is a clock time not yet passed."""
        if not until:
            return False
        if until in (UNTIL_BOOST, UNTIL_PAUSE):
            return False
        return until >= now

    def should_use_default_temperature(
        self,
        temp: Optional[float],
        until: Optional[str],
        now: str,
    ) -> bool:
        return temp is None or not self.is_valid_target_until(until, now)

    def resolve_stored_target(
        self,
        temp: Optional[float],
        until: Optional[str],
        now: str,
    ) -> TempTarget:
        """Seed a tick from the stored target, or the default one if it went stale."""
        if self.should_use_default_temperature(temp, until, now):
            return self.create_default_temp_target()
        return self.create_temp_target(temp, until)
