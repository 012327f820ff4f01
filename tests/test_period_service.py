"""Tests for target resolution from overrides and periods."""

import pytest

from core.heatwise.models import OperatingMode, TempTarget
from core.heatwise.period_service import PeriodService, canonical_room_id, short_room_name
from core.heatwise.temperature_controller import TemperatureController
from tests.helpers import make_period

DEFAULT = TempTarget(20.0, "24:00")


@pytest.fixture
def controller(heating_settings):
    return TemperatureController(heating_settings)


def make_service(controller, periods, mode=OperatingMode.HEATING):
    return PeriodService(periods, controller, mode)


class TestRoomIds:
    def test_canonical_room_id(self):
        assert canonical_room_id("livingroom") == "enum.rooms.livingroom"
        assert canonical_room_id("enum.rooms.livingroom") == "enum.rooms.livingroom"

    def test_short_room_name(self):
        assert short_room_name("enum.rooms.livingroom") == "livingroom"

    def test_periods_for_room(self, controller):
        living = make_period(room="enum.rooms.livingroom")
        bed = make_period(room="enum.rooms.bedroom")
        service = make_service(controller, [living, bed])
        assert service.get_periods_for_room("livingroom") == [living]
        assert service.get_periods_for_room("enum.rooms.bedroom") == [bed]
        assert service.get_periods_for_room("kitchen") == []


class TestOverridePriority:
    def test_pause_beats_everything(self, controller):
        service = make_service(controller, [make_period()])
        for boosted in (False, True):
            for absent in (False, True):
                target = service.calculate_temperature_for_room(
                    "livingroom", "10:00", True, boosted, absent, DEFAULT, weekday=0
                )
                assert target == TempTarget(-100, "pause")

    def test_boost_beats_absence_and_periods(self, controller):
        service = make_service(controller, [make_period()])
        target = service.calculate_temperature_for_room(
            "livingroom", "10:00", False, True, True, DEFAULT, weekday=0
        )
        assert target == TempTarget(100, "boost")

    def test_absence_keeps_current_target(self, controller):
        service = make_service(controller, [make_period()])
        current = TempTarget(18.0, "24:00")
        target = service.calculate_temperature_for_room(
            "livingroom", "10:00", False, False, True, current, weekday=0
        )
        assert target == current

    def test_cooling_sentinels(self, cooling_settings):
        service = make_service(TemperatureController(cooling_settings), [], OperatingMode.COOLING)
        assert service.calculate_temperature_for_room(
            "livingroom", "10:00", True, False, False, DEFAULT
        ) == TempTarget(100, "pause")
        assert service.calculate_temperature_for_room(
            "livingroom", "10:00", False, True, False, DEFAULT
        ) == TempTarget(-100, "boost")


class TestPeriodResolution:
    def test_matching_period_sets_target(self, controller):
        service = make_service(controller, [make_period(from_time="08:00", until="12:00", temp=22.0)])
        target = service.calculate_temperature_for_room(
            "livingroom", "10:00", False, False, False, DEFAULT, weekday=0
        )
        assert target == TempTarget(22.0, "12:00")

    def test_no_matching_period_keeps_default(self, controller):
        service = make_service(controller, [make_period(from_time="08:00", until="09:00")])
        target = service.calculate_temperature_for_room(
            "livingroom", "10:00", False, False, False, DEFAULT, weekday=0
        )
        assert target == DEFAULT

    def test_upcoming_period_tightens_until(self, controller):
        service = make_service(controller, [make_period(from_time="17:00", until="22:00")])
        target = service.calculate_temperature_for_room(
            "livingroom", "10:00", False, False, False, DEFAULT, weekday=0
        )
        assert target == TempTarget(20.0, "17:00")

    def test_input_target_is_not_mutated(self, controller):
        service = make_service(controller, [make_period(from_time="17:00", until="22:00")])
        current = TempTarget(20.0, "24:00")
        service.calculate_temperature_for_room("livingroom", "10:00", False, False, False, current, weekday=0)
        assert current.until == "24:00"

    def test_mode_mismatch_is_skipped(self, controller):
        cooling_period = make_period(heating=False, temp=18.0)
        service = make_service(controller, [cooling_period])
        target = service.calculate_temperature_for_room(
            "livingroom", "10:00", False, False, False, DEFAULT, weekday=0
        )
        assert target == DEFAULT

    def test_pending_until_blocks_matching(self, controller):
        service = make_service(controller, [make_period(from_time="08:00", until="12:00", temp=22.0)])
        current = TempTarget(19.0, "11:00")
        target = service.calculate_temperature_for_room(
            "livingroom", "10:00", False, False, False, current, weekday=0
        )
        assert target == current

    def test_weekday_gating(self, controller):
        period = make_period(days=[False, False, True, False, False, False, False])
        service = make_service(controller, [period])
        assert service.calculate_temperature_for_room(
            "livingroom", "10:00", False, False, False, DEFAULT, weekday=1
        ) == DEFAULT
        assert service.calculate_temperature_for_room(
            "livingroom", "10:00", False, False, False, DEFAULT, weekday=2
        ) == TempTarget(22.0, "12:00")

    def test_list_order_decides(self, controller):
        morning = make_period(from_time="08:00", until="12:00", temp=22.0)
        later = make_period(from_time="09:00", until="11:00", temp=23.0)

        first = make_service(controller, [morning, later]).calculate_temperature_for_room(
            "livingroom", "10:00", False, False, False, DEFAULT, weekday=0
        )
        assert first == TempTarget(22.0, "12:00")

        second = make_service(controller, [later, morning]).calculate_temperature_for_room(
            "livingroom", "10:00", False, False, False, DEFAULT, weekday=0
        )
        assert second == TempTarget(23.0, "11:00")


class TestPeriodMaintenance:
    def test_validate_does_not_correct(self, controller):
        service = make_service(controller, [])
        period = make_period(from_time="8:00")
        assert not service.validate_period(period)
        assert period.from_time == "8:00"

    def test_correct_period(self, controller):
        service = make_service(controller, [])
        period = service.correct_period(make_period(from_time="8:0", until="9:30"))
        assert period.from_time == "08:00"
        assert period.until == "09:30"
        assert service.validate_period(period)

    def test_update_and_get_all(self, controller):
        service = make_service(controller, [make_period()])
        replacement = [make_period(temp=19.0), make_period(temp=18.0)]
        service.update_periods(replacement)
        periods = service.get_all_periods()
        assert periods == replacement
        periods.clear()
        assert len(service.get_all_periods()) == 2
