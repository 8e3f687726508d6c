import pytest

from takt import service
from takt.models import Dependency, Item, ItemKind
from takt.persistence import Store
from takt.placer import Conflict, Placement

DAY = "2026-03-02"


@pytest.fixture
def store(tmp_path):
    s = Store(tmp_path / "takt.json")
    for tid in ("T-1", "T-2", "T-3"):
        s.add_item(Item(tid, f"Task {tid}", duration_minutes=30))
    return s


def test_add_dependency(store):
    result = service.add_dependency(store, "T-1", "T-2")
    assert result.ok
    assert store.list_edges() == [Dependency("T-1", "T-2")]


def test_add_dependency_rejections_write_nothing(store):
    service.add_dependency(store, "T-1", "T-2")
    service.add_dependency(store, "T-2", "T-3")

    cases = [
        (("T-3", "T-1"), service.CYCLE_MESSAGE),
        (("T-2", "T-2"), "a task cannot depend on itself"),
        (("T-1", "T-2"), "dependency already exists"),
        (("T-1", "T-9"), "task T-9 not found"),
    ]
    for (pred, succ), reason in cases:
        result = service.add_dependency(store, pred, succ)
        assert not result.ok
        assert result.reason == reason
    assert len(store.list_edges()) == 2


def test_remove_dependency(store):
    service.add_dependency(store, "T-1", "T-2")
    assert service.remove_dependency(store, "T-1", "T-2").ok
    result = service.remove_dependency(store, "T-1", "T-2")
    assert not result.ok
    assert "does not depend" in result.reason


def test_create_task_chain_links_in_order(store):
    result = service.create_task_chain(store, ["Draft", "Review", " ", "Send"], category="Work", after="T-3")
    assert result.ok
    assert [i.id for i in result.created] == ["T-4", "T-5", "T-6"]
    assert store.list_edges() == [Dependency("T-3", "T-4"), Dependency("T-4", "T-5"), Dependency("T-5", "T-6")]
    assert store.get_item("T-5").category == "Work"


def test_create_task_chain_is_all_or_nothing(store):
    assert not service.create_task_chain(store, []).ok
    result = service.create_task_chain(store, ["A"], after="T-9")
    assert not result.ok
    assert [i.id for i in store.list_items()] == ["T-1", "T-2", "T-3"]


def test_delete_item_cascades(store):
    service.add_dependency(store, "T-1", "T-2")
    service.add_dependency(store, "T-2", "T-3")
    assert service.delete_item(store, "T-2")
    assert store.list_edges() == []
    assert {i.id for i in store.list_items()} == {"T-1", "T-3"}


def test_schedule_item_persists_only_on_success(store):
    store.add_item(Item("E1", "Meeting", kind=ItemKind.FIXED, duration_minutes=60, start_time=f"{DAY}T09:00:00"))

    result = service.schedule_item(store, "T-1", DAY, "09:30")
    assert isinstance(result, Conflict)
    assert store.get_item("T-1").scheduled_start is None

    result = service.schedule_item(store, "T-1", DAY, "10:00", 45)
    assert isinstance(result, Placement)
    stored = store.get_item("T-1")
    assert (stored.scheduled_date, stored.scheduled_start, stored.duration_minutes) == (DAY, "10:00", 45)

    assert isinstance(service.schedule_item(store, "T-2", DAY, "10:30"), Conflict)


def test_unschedule_item(store):
    service.schedule_item(store, "T-1", DAY, "10:00")
    item = service.unschedule_item(store, "T-1")
    assert item.scheduled_date is None and item.scheduled_start is None
    assert service.unschedule_item(store, "T-9") is None


def test_autofill_day(store):
    placed, left_over = service.autofill_day(store, DAY, dry_run=True)
    assert len(placed) == 3 and left_over == []
    assert all(i.scheduled_start is None for i in store.list_items())

    service.autofill_day(store, DAY)
    assert [i.scheduled_start for i in store.list_items()] == ["06:00", "06:30", "07:00"]
