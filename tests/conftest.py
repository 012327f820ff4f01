"""Pytest configuration for Heatwise tests."""

import pytest

from core.heatwise.models import OperatingMode
from core.heatwise.settings import AISettings, ControllerSettings

# Configure pytest-asyncio
pytest_plugins = ("pytest_asyncio",)


@pytest.fixture
def heating_settings():
    return ControllerSettings(
        mode=OperatingMode.HEATING,
        default_temperature=20.0,
        start_stop_difference=0.5,
        stop_cooling_if_hum_is_higher_than=70.0,
    )


@pytest.fixture
def cooling_settings():
    return ControllerSettings(
        mode=OperatingMode.COOLING,
        default_temperature=24.0,
        start_stop_difference=0.5,
        stop_cooling_if_hum_is_higher_than=70.0,
    )


@pytest.fixture
def ai_settings():
    return AISettings(
        enable_ai=True,
        ai_confidence_threshold=0.6,
        ai_min_training_data=20,
        ai_training_epochs=30,
        ai_learning_rate=0.001,
        ai_auto_retrain=True,
        ai_retrain_interval=24,
    )
