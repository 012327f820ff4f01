"""
Heatwise Custom Exceptions

Simple exception hierarchy for error handling.
"""


class HeatwiseError(Exception):
    """Base exception for Heatwise."""

    pass


class ConfigurationError(HeatwiseError):
    """Configuration is invalid."""

    pass


class HAConnectionError(HeatwiseError):
    """Cannot connect to Home Assistant."""

    pass


class SensorError(HeatwiseError):
    """Sensor data is unavailable or invalid."""

    pass


class TrainingError(HeatwiseError):
    """Model training failed."""

    pass


class PersistenceError(HeatwiseError):
    """Learned history or model files could not be read or written."""

    pass
