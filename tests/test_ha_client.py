"""Tests for the Home Assistant client and adapters."""

from unittest.mock import MagicMock

import pytest
import requests

from core.heatwise.exceptions import HAConnectionError, SensorError
from core.heatwise.ha_client import HAClient, HomeAssistantRoomGateway, HomeAssistantWeatherSource
from core.heatwise.settings import RoomSettings


def make_response(payload=None, status=200):
    response = MagicMock()
    response.status_code = status
    response.json.return_value = payload
    if status >= 400:
        error = requests.exceptions.HTTPError(f"{status} error")
        error.response = response
        response.raise_for_status.side_effect = error
    return response


@pytest.fixture
def client():
    client = HAClient("http://supervisor/core/", "token")
    client.session = MagicMock()
    return client


def serve_states(client, states):
    def get(url, timeout):
        entity_id = url.rsplit("/", 1)[-1]
        if entity_id not in states:
            return make_response(status=404)
        return make_response(states[entity_id])

    client.session.get.side_effect = get


class TestHAClient:
    def test_headers_and_url(self):
        client = HAClient("http://supervisor/core/", "abc")
        assert client.base_url == "http://supervisor/core"
        assert client.session.headers["Authorization"] == "Bearer abc"

    def test_get_state(self, client):
        serve_states(client, {"sensor.temp": {"state": "21.5"}})
        assert client.get_state("sensor.temp") == {"state": "21.5"}
        client.session.get.assert_called_once_with("http://supervisor/core/api/states/sensor.temp", timeout=5)

    def test_missing_entity(self, client):
        serve_states(client, {})
        with pytest.raises(SensorError):
            client.get_state("sensor.nope")

    def test_server_error(self, client):
        client.session.get.return_value = make_response(status=500)
        with pytest.raises(HAConnectionError):
            client.get_state("sensor.temp")

    def test_connection_error(self, client):
        client.session.get.side_effect = requests.exceptions.ConnectionError("refused")
        with pytest.raises(HAConnectionError):
            client.get_state("sensor.temp")

    @pytest.mark.parametrize(
        "state,expected",
        [("21.5", 21.5), ("unavailable", None), ("unknown", None), ("warm", None)],
    )
    def test_float_state(self, client, state, expected):
        serve_states(client, {"sensor.temp": {"state": state}})
        assert client.get_float_state("sensor.temp") == expected

    def test_climate_uses_current_temperature(self, client):
        serve_states(client, {"climate.living": {"state": "heat", "attributes": {"current_temperature": 19.5}}})
        assert client.get_float_state("climate.living") == 19.5

    def test_is_on(self, client):
        serve_states(client, {"switch.a": {"state": "on"}, "switch.b": {"state": "off"}})
        assert client.is_on("switch.a")
        assert not client.is_on("switch.b")

    def test_turn_on_and_off(self, client):
        client.session.post.return_value = make_response()
        client.turn_on("switch.heater")
        client.turn_off("switch.heater")
        assert client.session.post.call_args_list[0].args[0] == "http://supervisor/core/api/services/switch/turn_on"
        assert client.session.post.call_args_list[1].args[0] == "http://supervisor/core/api/services/switch/turn_off"
        assert client.session.post.call_args_list[0].kwargs["json"] == {"entity_id": "switch.heater"}

    def test_service_failure(self, client):
        client.session.post.return_value = make_response(status=500)
        with pytest.raises(HAConnectionError):
            client.turn_on("switch.heater")


class TestRoomGateway:
    @pytest.fixture
    def gateway(self, client):
        rooms = [
            RoomSettings("livingroom", "sensor.living_temp", "switch.living", humidity_sensor="sensor.living_hum"),
            RoomSettings("bedroom", "sensor.bed_temp", "switch.bed"),
        ]
        return HomeAssistantRoomGateway(client, rooms)

    def test_read_room(self, client, gateway):
        serve_states(client, {
            "sensor.living_temp": {"state": "20.5"},
            "sensor.living_hum": {"state": "55"},
            "switch.living": {"state": "on"},
        })
        reading = gateway.read_room("livingroom")
        assert reading.current_temp == 20.5
        assert reading.humidity == 55.0
        assert reading.engine_on is True

    def test_unavailable_temperature(self, client, gateway):
        serve_states(client, {"sensor.bed_temp": {"state": "unavailable"}, "switch.bed": {"state": "off"}})
        assert gateway.read_room("bedroom") is None

    def test_read_errors_yield_none(self, client, gateway):
        serve_states(client, {"sensor.bed_temp": {"state": "19.0"}})
        assert gateway.read_room("bedroom") is None

    def test_unknown_room(self, gateway):
        assert gateway.read_room("attic") is None

    def test_set_engine(self, client, gateway):
        client.session.post.return_value = make_response()
        gateway.set_engine("bedroom", True)
        gateway.set_engine("bedroom", False)
        urls = [call.args[0] for call in client.session.post.call_args_list]
        assert urls == [
            "http://supervisor/core/api/services/switch/turn_on",
            "http://supervisor/core/api/services/switch/turn_off",
        ]


class TestWeatherSource:
    def test_outside_temperature(self, client):
        serve_states(client, {"sensor.outside": {"state": "7.5"}})
        assert HomeAssistantWeatherSource(client, "sensor.outside").get_outside_temperature() == 7.5

    def test_no_entity(self, client):
        assert HomeAssistantWeatherSource(client, "").get_outside_temperature() is None
        client.session.get.assert_not_called()

    def test_failure_yields_none(self, client):
        serve_states(client, {})
        assert HomeAssistantWeatherSource(client, "sensor.outside").get_outside_temperature() is None
