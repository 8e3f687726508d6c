from takt.models import Item, ItemKind, WorkingWindow
from takt.placer import Conflict, Placement, SchedulePlacer, build_day_index, validate_external_suggestion
from takt.timeutil import Interval, interval_of

DAY = "2026-03-02"


def _event(iid: str, start: str, minutes: int | None = 60, day: str = DAY) -> Item:
    return Item(iid, f"Event {iid}", kind=ItemKind.FIXED, duration_minutes=minutes, start_time=f"{day}T{start}:00")


def _task(iid: str, minutes: int | None = None, **kw) -> Item:
    return Item(iid, f"Task {iid}", duration_minutes=minutes, **kw)


def test_overlap_with_fixed_event_is_rejected():
    placer = SchedulePlacer([_event("E1", "09:00"), _task("T-1", 30)])

    result = placer.place_at("T-1", DAY, "09:30")
    assert isinstance(result, Conflict)
    assert result.blocking_id == "E1"
    assert placer.placement_of("T-1") is None

    result = placer.place_at("T-1", DAY, "10:00")
    assert isinstance(result, Placement)
    assert (result.day, result.start_hhmm, result.duration_minutes) == (DAY, "10:00", 30)


def test_overlap_with_other_placed_task_is_rejected():
    placer = SchedulePlacer([_task("T-1", 60), _task("T-2", 30)])
    assert isinstance(placer.place_at("T-1", DAY, "13:00"), Placement)
    assert isinstance(placer.place_at("T-2", DAY, "13:45"), Conflict)
    assert isinstance(placer.place_at("T-2", DAY, "14:00"), Placement)


def test_same_time_on_another_day_is_fine():
    placer = SchedulePlacer([_event("E1", "09:00"), _task("T-1", 30)])
    assert isinstance(placer.place_at("T-1", "2026-03-03", "09:00"), Placement)


def test_moving_a_task_ignores_its_own_placement():
    placer = SchedulePlacer([_task("T-1", 60)])
    placer.place_at("T-1", DAY, "10:00")
    result = placer.place_at("T-1", DAY, "10:30")
    assert isinstance(result, Placement)
    assert placer["T-1"].scheduled_start == "10:30"


def test_duration_defaults_and_minimum():
    placer = SchedulePlacer([_task("T-1"), _task("T-2", 5), _task("T-3", 30)])
    assert placer.place_at("T-1", DAY, "08:00").duration_minutes == 30
    assert placer.place_at("T-2", DAY, "09:00").duration_minutes == 15
    assert placer.place_at("T-3", DAY, "10:00", duration_minutes=90).duration_minutes == 90


def test_placement_outside_window_is_rejected():
    placer = SchedulePlacer([_task("T-1", 60)], window=WorkingWindow(6, 22))
    assert isinstance(placer.place_at("T-1", DAY, "05:30"), Conflict)
    assert isinstance(placer.place_at("T-1", DAY, "21:30"), Conflict)
    assert isinstance(placer.place_at("T-1", DAY, "21:00"), Placement)


def test_fixed_unknown_and_malformed_are_rejected():
    placer = SchedulePlacer([_event("E1", "09:00"), _task("T-1")])
    assert isinstance(placer.place_at("E1", DAY, "11:00"), Conflict)
    assert isinstance(placer.place_at("nope", DAY, "11:00"), Conflict)
    assert isinstance(placer.place_at("T-1", DAY, "eleven"), Conflict)


def test_unplace_returns_item_to_pool():
    placer = SchedulePlacer([_task("T-1", 30)])
    placer.place_at("T-1", DAY, "09:00")
    assert placer.unscheduled() == []
    placer.unplace("T-1")
    assert [i.id for i in placer.unscheduled()] == ["T-1"]
    placer.unplace("missing")


def test_placer_does_not_mutate_input_items():
    task = _task("T-1", 30)
    placer = SchedulePlacer([task])
    placer.place_at("T-1", DAY, "09:00")
    assert task.scheduled_start is None


def test_day_index_groups_by_start_hour():
    items = [
        _event("E1", "09:15"),
        _task("T-1", 30, scheduled_date=DAY, scheduled_start="09:45"),
        _task("T-2", 30, scheduled_date=DAY, scheduled_start="14:00"),
        _task("T-3", 30, scheduled_date="2026-03-03", scheduled_start="09:00"),
        _task("T-4", 30, scheduled_date=DAY, scheduled_start="late"),
        _task("T-5", 30, scheduled_date=DAY, scheduled_start="05:00"),
        Item("E2", "Broken", kind=ItemKind.FIXED, start_time="2026-03-02"),
    ]
    index = build_day_index(items, DAY)
    assert sorted(index) == list(range(6, 22))
    assert [i.id for i in index[9]] == ["E1", "T-1"]
    assert [i.id for i in index[14]] == ["T-2"]
    assert sum(len(v) for v in index.values()) == 3


def test_day_index_reflects_current_items():
    placer = SchedulePlacer([_task("T-1", 30)])
    assert all(not v for v in placer.day_index(DAY).values())
    placer.place_at("T-1", DAY, "11:00")
    assert [i.id for i in placer.day_index(DAY)[11]] == ["T-1"]


def test_suggestions_same_slot_first_kept():
    raw = [
        {"item_id": "T-1", "scheduled_start": "14:00", "duration_minutes": 30},
        {"item_id": "T-2", "scheduled_start": "14:00", "duration_minutes": 30},
    ]
    accepted, rejected = validate_external_suggestion(raw, ["T-1", "T-2"])
    assert [s.item_id for s in accepted] == ["T-1"]
    assert rejected[0].item_id == "T-2"
    assert rejected[0].reason == "conflicts with suggestion T-1"


def test_suggestion_for_unknown_item_is_dropped():
    raw = [{"item_id": "ghost", "scheduled_start": "10:00", "duration_minutes": 30}]
    accepted, rejected = validate_external_suggestion(raw, ["T-1"])
    assert accepted == []
    assert rejected[0].reason == "unknown item"


def test_suggestion_checks_window_busy_and_shape():
    busy = [("E1", Interval(9 * 60, 10 * 60))]
    raw = [
        {"item_id": "T-1", "scheduled_start": "09:30", "duration_minutes": 30},
        {"item_id": "T-2", "scheduled_start": "21:50", "duration_minutes": 30},
        {"item_id": "T-3", "scheduled_start": "25:00", "duration_minutes": 30},
        {"item_id": "T-4", "scheduled_start": "10:00", "duration_minutes": "long"},
        "not an object",
        {"item_id": "T-5", "scheduled_start": "10:00", "duration_minutes": 5},
        {"item_id": "T-5", "scheduled_start": "12:00", "duration_minutes": 30},
        {"item_id": "T-6", "scheduled_start": "10:10"},
    ]
    ids = ["T-1", "T-2", "T-3", "T-4", "T-5", "T-6"]
    accepted, rejected = validate_external_suggestion(raw, ids, WorkingWindow(6, 22), busy)

    assert [(s.item_id, s.start_hhmm, s.duration_minutes) for s in accepted] == [("T-5", "10:00", 15)]
    reasons = [(r.index, r.reason) for r in rejected]
    assert reasons == [
        (0, "conflicts with existing item E1"),
        (1, "outside working window"),
        (2, "malformed suggestion"),
        (3, "malformed suggestion"),
        (4, "malformed suggestion"),
        (6, "duplicate item"),
        (7, "conflicts with suggestion T-5"),
    ]


def test_suggestion_with_unusable_duration_is_malformed():
    raw = [
        {"item_id": "T-1", "scheduled_start": "09:00", "duration_minutes": float("nan")},
        {"item_id": "T-2", "scheduled_start": "10:00", "duration_minutes": float("inf")},
        {"item_id": "T-3", "scheduled_start": "11:00", "duration_minutes": float("-inf")},
        {"item_id": "T-4", "scheduled_start": "12:00", "duration_minutes": 10**400},
        {"item_id": "T-5", "scheduled_start": "13:00", "duration_minutes": True},
    ]
    accepted, rejected = validate_external_suggestion(raw, ["T-1", "T-2", "T-3", "T-4", "T-5"])

    assert accepted == []
    assert [(r.item_id, r.reason) for r in rejected] == [
        ("T-1", "malformed suggestion"),
        ("T-2", "malformed suggestion"),
        ("T-3", "malformed suggestion"),
        ("T-4", "outside working window"),
        ("T-5", "malformed suggestion"),
    ]


def test_event_with_utc_offset_blocks_its_slot():
    placer = SchedulePlacer([
        Item("E1", "Call", kind=ItemKind.FIXED, duration_minutes=60, start_time=f"{DAY}T09:00Z"),
        Item("E2", "Lunch", kind=ItemKind.FIXED, duration_minutes=60, start_time=f"{DAY}T12:00+02:00"),
        _task("T-1", 30),
    ])
    result = placer.place_at("T-1", DAY, "09:30")
    assert isinstance(result, Conflict)
    assert result.blocking_id == "E1"

    result = placer.place_at("T-1", DAY, "12:15")
    assert isinstance(result, Conflict)
    assert result.blocking_id == "E2"

    assert isinstance(placer.place_at("T-1", DAY, "10:00"), Placement)
    assert [i.id for i in placer.day_index(DAY)[9]] == ["E1"]


def test_validate_suggestions_uses_unscheduled_pool():
    placer = SchedulePlacer([
        _event("E1", "09:00"),
        _task("T-1", 30, scheduled_date=DAY, scheduled_start="11:00"),
        _task("T-2", 30),
        _task("T-3", 30, completed=True),
    ])
    raw = [
        {"item_id": "T-1", "scheduled_start": "15:00", "duration_minutes": 30},
        {"item_id": "T-3", "scheduled_start": "16:00", "duration_minutes": 30},
        {"item_id": "T-2", "scheduled_start": "11:15", "duration_minutes": 30},
    ]
    accepted, rejected = placer.validate_suggestions(raw, DAY)
    assert accepted == []
    assert [r.reason for r in rejected] == ["unknown item", "unknown item", "conflicts with existing item T-1"]


def test_first_fit_fills_gaps_urgent_first():
    items = [
        _event("E1", "06:00", 120),
        _task("T-1", 60),
        _task("T-2", 30, due_date=DAY),
        _task("T-3", 900),
    ]
    placer = SchedulePlacer(items)
    placed, left_over = placer.first_fit(DAY)
    assert [(p.item_id, p.start_hhmm) for p in placed] == [("T-2", "08:00"), ("T-1", "08:30")]
    assert left_over == ["T-3"]


def test_no_two_placements_overlap():
    items = [_event("E1", "09:00"), _event("E2", "13:00", 90)] + [_task(f"T-{n}", 45) for n in range(12)]
    placer = SchedulePlacer(items)
    for n in range(12):
        placer.place_at(f"T-{n}", DAY, f"{6 + n:02d}:30")
    placer.first_fit(DAY)

    ivs = [iv for _, iv in placer.busy(DAY)]
    for i, a in enumerate(ivs):
        for b in ivs[i + 1:]:
            assert not a.overlaps(b)
    assert all(interval_of(i) is None or interval_of(i).within(placer.window) for i in placer.items_on(DAY))
