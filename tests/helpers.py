"""Shared builders for Heatwise tests."""

from datetime import datetime, timedelta, timezone

from core.heatwise.heating_history import HeatingHistoryService
from core.heatwise.models import Period

START = datetime(2024, 1, 15, 8, 0, tzinfo=timezone.utc)


def make_period(
    room: str = "enum.rooms.livingroom",
    from_time: str = "08:00",
    until: str = "12:00",
    heating: bool = True,
    temp: float = 22.0,
    days: list[bool] | None = None,
) -> Period:
    return Period(
        room=room,
        from_time=from_time,
        until=until,
        heating=heating,
        temp=temp,
        days=days if days is not None else [True] * 7,
    )


def record_cycle(
    history: HeatingHistoryService,
    room: str,
    start: datetime,
    heating_temps: list[float],
    cooling_temps: list[float],
    target: float = 21.0,
    step: timedelta = timedelta(minutes=10),
    outside: float | None = None,
) -> datetime:
    """Feed one on/off cycle and let the drain window elapse.

    Returns:
        Time of the last recorded measurement
    """
    ts = start
    for temp in heating_temps:
        history.record_measurement(room, temp, target, True, outside_temperature=outside, timestamp=ts)
        ts += step
    for temp in cooling_temps:
        history.record_measurement(room, temp, target, False, outside_temperature=outside, timestamp=ts)
        ts += step
    last = ts - step
    history.complete_due_cycles(last + timedelta(minutes=31))
    return last


def record_cycles(history: HeatingHistoryService, room: str, count: int, start: datetime = START) -> datetime:
    """Record `count` identical cycles, one every 4 hours."""
    for i in range(count):
        record_cycle(
            history,
            room,
            start + timedelta(hours=4 * i),
            heating_temps=[19.0, 19.4, 19.8, 20.2, 20.6, 21.0],
            cooling_temps=[21.3, 21.4, 21.2],
        )
    return start + timedelta(hours=4 * count)
