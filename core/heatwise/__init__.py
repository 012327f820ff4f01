"""Heatwise room temperature control package."""

# Define public API
__all__ = [
    "HeatwiseSettings",
    "load_settings",
    "EngineCommand",
    "OperatingMode",
    "Period",
    "TempTarget",
    "ControlLoopService",
    "HAClient",
]

# Import settings
from .settings import HeatwiseSettings, load_settings

# Import models
from .models import EngineCommand, OperatingMode, Period, TempTarget

# Import services
from .control_loop_service import ControlLoopService

# Import HA client
from .ha_client import HAClient
