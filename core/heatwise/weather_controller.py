"""
Outside Temperature Gate

Blocks heating on warm days and cooling on cold days.
"""

import logging
from typing import Optional

from .models import OperatingMode
from .settings import WeatherSettings

logger = logging.getLogger(__name__)


class WeatherBasedController:
    """Tri-state gate: None = no opinion, True = allow, False = block."""

    def __init__(self, settings: WeatherSettings):
        self.settings = settings

    @property
    def is_heating(self) -> bool:
        return self.settings.mode == OperatingMode.HEATING

    def should_allow_operation(self, outside_temp: Optional[float]) -> Optional[bool]:
        if not self.settings.enable_weather_control:
            return None

        # Missing data must not stop the system
        if outside_temp is None:
            return True

        if self.is_heating:
            return outside_temp < self.settings.heating_outside_temperature_threshold
        return outside_temp > self.settings.cooling_outside_temperature_threshold

    def get_current_threshold(self) -> float:
        if self.is_heating:
            return self.settings.heating_outside_temperature_threshold
        return self.settings.cooling_outside_temperature_threshold

    def get_control_description(self) -> str:
        if not self.settings.enable_weather_control:
            return "Weather control disabled"

        mode = "Heating" if self.is_heating else "Cooling"
        operator = "below" if self.is_heating else "above"
        return f"{mode} only allowed if outside temperature {operator} {self.get_current_threshold()}°C"

    def update_settings(self, settings: WeatherSettings):
        self.settings = settings
        logger.info(f"Weather control updated: {self.get_control_description()}")
