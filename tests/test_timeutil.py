from takt.models import Item, ItemKind, WorkingWindow
from takt.timeutil import Interval, format_hhmm, free_gaps, interval_of, parse_event_start, parse_hhmm, start_minute_of


def test_parse_hhmm():
    assert parse_hhmm("09:30") == 570
    assert parse_hhmm("09:30:59") == 570
    assert parse_hhmm(" 7:05 ") == 425
    for bad in (None, "", "9", "24:00", "12:60", "ab:cd", 930, "-0:30", "+9:30", "9: 30", "09:-5"):
        assert parse_hhmm(bad) is None


def test_format_hhmm():
    assert format_hhmm(0) == "00:00"
    assert format_hhmm(13 * 60 + 5) == "13:05"


def test_intervals_are_half_open():
    a = Interval(540, 600)
    assert not a.overlaps(Interval(600, 630))
    assert a.overlaps(Interval(599, 630))
    assert Interval(360, 1320).within(WorkingWindow())
    assert not Interval(350, 400).within(WorkingWindow())


def test_start_and_interval_of_items():
    event = Item("E1", "Standup", kind=ItemKind.FIXED, start_time="2026-03-02T09:15:00")
    assert start_minute_of(event) == 555
    assert interval_of(event) == Interval(555, 615)

    task = Item("T-1", "Email", duration_minutes=10, scheduled_date="2026-03-02", scheduled_start="08:00")
    assert interval_of(task) == Interval(480, 495)
    assert interval_of(Item("T-2", "Unplaced")) is None


def test_event_start_accepts_offsets_and_rejects_junk():
    for start_time in ("2026-03-02T09:15", "2026-03-02T09:15Z", "2026-03-02T09:15+02:00", "2026-03-02T09:15:00-05:00"):
        event = Item("E1", "Standup", kind=ItemKind.FIXED, start_time=start_time)
        assert start_minute_of(event) == 555, start_time
        assert event.day() == "2026-03-02"

    for bad in ("2026-03-02", "2026-03-02T9am", "tomorrow", ""):
        assert parse_event_start(bad) is None
        assert start_minute_of(Item("E2", "Bad", kind=ItemKind.FIXED, start_time=bad)) is None


def test_free_gaps():
    gaps = free_gaps(WorkingWindow(8, 12), [Interval(540, 600), Interval(420, 500), Interval(690, 720)])
    assert gaps == [Interval(500, 540), Interval(600, 690)]
