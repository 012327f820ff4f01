"""
Heatwise Configuration Settings

User-facing settings are loaded from /data/options.json (Home Assistant add-on)
or, during development, from the "options" section of config.yaml.
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Optional

import yaml

from .exceptions import ConfigurationError
from .models import OperatingMode, Period

logger = logging.getLogger(__name__)

OPTIONS_PATH = "/data/options.json"
CONFIG_PATH = os.path.join(os.path.dirname(__file__), "..", "..", "config.yaml")


def _camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    s1 = re.sub("(.)([A-Z][a-z]+)", r"\1_\2", name)
    return re.sub("([a-z0-9])([A-Z])", r"\1_\2", s1).lower()


def _known_fields(cls, data: dict) -> dict:
    """Convert keys to snake_case and keep only the dataclass fields."""
    converted = {_camel_to_snake(k): v for k, v in data.items()}
    names = cls.__dataclass_fields__.keys()
    return {k: v for k, v in converted.items() if k in names}


@dataclass(frozen=True)
class ControllerSettings:
    """Hysteresis controller configuration."""

    mode: OperatingMode = OperatingMode.HEATING
    default_temperature: float = 20.0
    start_stop_difference: float = 0.5  # Hysteresis half-band (°C)
    stop_cooling_if_hum_is_higher_than: float = 100.0  # Humidity ceiling (%) in cooling mode

    def __post_init__(self):
        if self.start_stop_difference < 0:
            raise ConfigurationError(
                f"startStopDifference must not be negative, got {self.start_stop_difference}"
            )
        object.__setattr__(self, "mode", OperatingMode(self.mode))

    @property
    def is_heating(self) -> bool:
        return self.mode == OperatingMode.HEATING

    @classmethod
    def from_dict(cls, data: dict) -> "ControllerSettings":
        converted = _known_fields(cls, data)
        if "is_heating_mode" in data or "isHeatingMode" in data:
            converted["mode"] = OperatingMode(int(data.get("isHeatingMode", data.get("is_heating_mode"))))
        return cls(**converted)


@dataclass(frozen=True)
class AISettings:
    """Learning and prediction configuration."""

    enable_ai: bool = False
    ai_model_path: str = "/data/models"
    ai_confidence_threshold: float = 0.6
    ai_min_training_data: int = 20
    ai_training_epochs: int = 50
    ai_learning_rate: float = 0.001
    ai_auto_retrain: bool = True
    ai_retrain_interval: float = 24  # Hours

    def __post_init__(self):
        if not 0 <= self.ai_confidence_threshold <= 1:
            raise ConfigurationError(
                f"aiConfidenceThreshold must be within 0..1, got {self.ai_confidence_threshold}"
            )
        if self.ai_min_training_data < 1:
            raise ConfigurationError("aiMinTrainingData must be at least 1")
        if self.ai_training_epochs < 1:
            raise ConfigurationError("aiTrainingEpochs must be at least 1")
        if self.ai_learning_rate <= 0:
            raise ConfigurationError("aiLearningRate must be positive")

    @classmethod
    def from_dict(cls, data: dict) -> "AISettings":
        return cls(**_known_fields(cls, data))


@dataclass(frozen=True)
class WeatherSettings:
    """Outside-temperature gate configuration."""

    enable_weather_control: bool = False
    weather_state_path: str = ""
    mode: OperatingMode = OperatingMode.HEATING
    heating_outside_temperature_threshold: float = 15.0
    cooling_outside_temperature_threshold: float = 20.0

    @classmethod
    def from_dict(cls, data: dict) -> "WeatherSettings":
        converted = _known_fields(cls, data)
        if "isHeatingMode" in data:
            converted["mode"] = OperatingMode(int(data["isHeatingMode"]))
        return cls(**converted)


@dataclass(frozen=True)
class RoomSettings:
    """A controlled room and the entities that belong to it."""

    id: str
    temperature_sensor: str
    engine: str  # Switch entity driving the heater/cooler
    humidity_sensor: Optional[str] = None
    name: Optional[str] = None

    def __post_init__(self):
        if not self.id:
            raise ConfigurationError("Room id must not be empty")

    @classmethod
    def from_dict(cls, data: dict) -> "RoomSettings":
        converted = _known_fields(cls, data)
        missing = {"id", "temperature_sensor", "engine"} - converted.keys()
        if missing:
            raise ConfigurationError(f"Room config is missing {sorted(missing)}: {data}")
        return cls(**converted)


@dataclass(frozen=True)
class HeatwiseSettings:
    """Complete adapter configuration."""

    controller: ControllerSettings = field(default_factory=ControllerSettings)
    ai: AISettings = field(default_factory=AISettings)
    weather: WeatherSettings = field(default_factory=WeatherSettings)
    rooms: tuple[RoomSettings, ...] = ()
    periods: tuple[Period, ...] = ()
    update_interval: float = 60  # Seconds between control ticks
    boost_interval: float = 60  # Minutes a boost stays active
    pause_interval: float = 60  # Minutes a pause stays active
    reset_temperatures_on_start: bool = False
    history_path: str = "/data/heating_history.json"

    def __post_init__(self):
        if self.update_interval <= 0:
            raise ConfigurationError(f"updateIntervall must be positive, got {self.update_interval}")
        if self.boost_interval <= 0 or self.pause_interval <= 0:
            raise ConfigurationError("boostIntervall and pauseIntervall must be positive")
        ids = [room.id for room in self.rooms]
        if len(ids) != len(set(ids)):
            raise ConfigurationError(f"Duplicate room ids in {ids}")

    @classmethod
    def from_dict(cls, data: dict) -> "HeatwiseSettings":
        """Create from the flat add-on options."""
        try:
            return cls(
                controller=ControllerSettings.from_dict(data),
                ai=AISettings.from_dict(data),
                weather=WeatherSettings.from_dict(data),
                rooms=tuple(RoomSettings.from_dict(r) for r in data.get("rooms", [])),
                periods=tuple(Period.from_dict(p) for p in data.get("periods", [])),
                update_interval=float(data.get("updateIntervall", 60)),
                boost_interval=float(data.get("boostIntervall", 60)),
                pause_interval=float(data.get("pauseIntervall", 60)),
                reset_temperatures_on_start=bool(data.get("resetTemperaturesOnStart", False)),
                history_path=data.get("historyPath", "/data/heating_history.json"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid options: {e}") from e


def load_settings(
    options_path: Optional[str] = None,
    config_path: Optional[str] = None,
) -> HeatwiseSettings:
    """Load settings from options.json (production) or config.yaml (development)."""
    options_path = options_path or OPTIONS_PATH
    config_path = config_path or CONFIG_PATH

    options: dict[str, Any] = {}
    if os.path.exists(options_path):
        with open(options_path) as f:
            options = json.load(f)
        logger.info(f"Loaded options from {options_path}")
    elif os.path.exists(config_path):
        with open(config_path) as f:
            config = yaml.safe_load(f) or {}
        options = config.get("options", {}) or {}
        logger.info(f"Loaded options from {config_path}")
    else:
        logger.warning("No options file found, using defaults")

    settings = HeatwiseSettings.from_dict(options)
    logger.info(
        f"Configured {len(settings.rooms)} room(s), {len(settings.periods)} period(s), "
        f"mode={settings.controller.mode.name}, AI={'on' if settings.ai.enable_ai else 'off'}"
    )
    return settings
