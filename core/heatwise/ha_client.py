"""
Simple Home Assistant API Client for Heatwise

Minimal client for reading sensors and switching engines, plus the room and
weather adapters the control loop uses.
"""

import logging
from typing import Any, Iterable, Optional

import requests

from .exceptions import HAConnectionError, HeatwiseError, SensorError
from .models import RoomReading
from .settings import RoomSettings

logger = logging.getLogger(__name__)

UNAVAILABLE_STATES = {"unavailable", "unknown", "none", ""}
ON_STATES = {"on", "heat", "cool", "heating", "cooling"}


class HAClient:
    """Simple Home Assistant REST API client."""

    def __init__(self, base_url: str, token: str):
        """Initialize HA client.

        Args:
            base_url: Home Assistant URL (e.g., "http://supervisor/core")
            token: Long-lived access token
        """
        self.base_url = base_url.rstrip("/")
        self.headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        self.session = requests.Session()
        self.session.headers.update(self.headers)
        self.timeout = 5

    def get_state(self, entity_id: str) -> dict[str, Any]:
        """Get current state of an entity.

        Raises:
            SensorError: If entity not found
            HAConnectionError: If API request fails
        """
        url = f"{self.base_url}/api/states/{entity_id}"
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.HTTPError as e:
            if e.response is not None and e.response.status_code == 404:
                raise SensorError(f"Entity not found: {entity_id}") from e
            raise HAConnectionError(f"Failed to get state for {entity_id}: {e}") from e
        except requests.exceptions.RequestException as e:
            raise HAConnectionError(f"HA API request failed: {e}") from e

    def get_float_state(self, entity_id: str) -> Optional[float]:
        """Numeric state of a sensor, or None when unavailable or not a number.

        Climate entities report their reading in attributes.current_temperature.
        """
        state = self.get_state(entity_id)

        if entity_id.startswith("climate."):
            value = state.get("attributes", {}).get("current_temperature")
        else:
            value = state.get("state")

        if value is None or str(value).lower() in UNAVAILABLE_STATES:
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning(f"{entity_id} has non-numeric state: {value}")
            return None

    def is_on(self, entity_id: str) -> bool:
        state = self.get_state(entity_id)
        return str(state.get("state", "")).lower() in ON_STATES

    def _call_service(self, entity_id: str, service: str):
        domain = entity_id.split(".", 1)[0]
        url = f"{self.base_url}/api/services/{domain}/{service}"
        data = {"entity_id": entity_id}

        try:
            logger.debug(f"Calling {url} with data: {data}")
            response = self.session.post(url, json=data, timeout=self.timeout)
            response.raise_for_status()
            logger.info(f"Called {service} on {entity_id} - Response: {response.status_code}")
        except requests.exceptions.RequestException as e:
            raise HAConnectionError(f"Failed to call {service} on {entity_id}: {e}") from e

    def turn_on(self, entity_id: str):
        self._call_service(entity_id, "turn_on")

    def turn_off(self, entity_id: str):
        self._call_service(entity_id, "turn_off")


class HomeAssistantRoomGateway:
    """Reads rooms and switches engines through Home Assistant entities."""

    def __init__(self, client: HAClient, rooms: Iterable[RoomSettings]):
        self.client = client
        self.rooms = {room.id: room for room in rooms}

    def read_room(self, room: str) -> Optional[RoomReading]:
        settings = self.rooms.get(room)
        if settings is None:
            logger.info(f"No entities configured for room {room}")
            return None

        try:
            temperature = self.client.get_float_state(settings.temperature_sensor)
            if temperature is None:
                logger.warning(f"Temperature for room {room} is not available")
                return None

            humidity = None
            if settings.humidity_sensor:
                humidity = self.client.get_float_state(settings.humidity_sensor)

            engine_on = self.client.is_on(settings.engine)
        except HeatwiseError as e:
            logger.warning(f"Failed to read room {room}: {e}")
            return None

        return RoomReading(room=room, current_temp=temperature, engine_on=engine_on, humidity=humidity)

    def set_engine(self, room: str, on: bool):
        settings = self.rooms[room]
        if on:
            self.client.turn_on(settings.engine)
        else:
            self.client.turn_off(settings.engine)


class HomeAssistantWeatherSource:
    """Outside temperature from a single Home Assistant entity."""

    def __init__(self, client: HAClient, entity_id: str):
        self.client = client
        self.entity_id = entity_id

    def get_outside_temperature(self) -> Optional[float]:
        if not self.entity_id:
            logger.debug("No weather entity configured")
            return None

        try:
            temperature = self.client.get_float_state(self.entity_id)
        except HeatwiseError as e:
            logger.error(f"Error reading weather entity {self.entity_id}: {e}")
            return None

        if temperature is None:
            logger.warning(f"Weather entity {self.entity_id} has no valid value")
        return temperature
