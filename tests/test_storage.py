import pytest

from horizon_capture.errors import StorageError
from horizon_capture.models import CaptureSessionRecord, HorizonPoint
from horizon_capture.storage import InMemorySessionStore


@pytest.fixture
def store():
    return InMemorySessionStore()


def test_session_crud(store):
    older = store.create_session(CaptureSessionRecord(start_time=100.0, location_name="field"))
    newer = store.create_session(CaptureSessionRecord(start_time=200.0))

    assert store.has_session(older.id)
    assert [r.id for r in store.list_sessions()] == [newer.id, older.id]

    updated = store.update_session(older.id, end_time=150.0, total_points=3)
    assert updated.end_time == 150.0
    assert not updated.is_open
    assert store.get_session(older.id).total_points == 3

    store.delete_session(older.id)
    assert not store.has_session(older.id)


def test_records_are_copied(store):
    record = CaptureSessionRecord()
    store.create_session(record)
    record.location_name = "changed"
    assert store.get_session(record.id).location_name is None


def test_missing_session_raises(store):
    with pytest.raises(StorageError):
        store.get_session("nope")
    with pytest.raises(StorageError):
        store.update_session("nope", total_points=1)
    with pytest.raises(StorageError):
        store.delete_session("nope")
    with pytest.raises(StorageError):
        store.save_points("nope", [])


def test_duplicate_session_raises(store):
    record = store.create_session(CaptureSessionRecord())
    with pytest.raises(StorageError):
        store.create_session(record)


def test_invalid_update_raises(store):
    record = store.create_session(CaptureSessionRecord())
    with pytest.raises(StorageError):
        store.update_session(record.id, colour="red")


def test_points_are_replaced_and_sorted(store, make_points):
    record = store.create_session(CaptureSessionRecord())
    store.save_points(record.id, make_points([(200, 1), (10, 2)]))
    store.save_points(record.id, make_points([(90, 3), (30, 4), (300, 5)]))

    points = store.list_points(record.id)
    assert [p.azimuth for p in points] == [30, 90, 300]
    assert all(p.session_id == record.id for p in points)
    assert store.get_session(record.id).total_points == 3


def test_point_update_and_delete(store):
    record = store.create_session(CaptureSessionRecord())
    point = HorizonPoint(azimuth=10, altitude=5, session_id=record.id)
    store.save_points(record.id, [point])

    assert store.update_point(point.id, notes="pole").notes == "pole"
    store.delete_point(point.id)
    assert store.list_points(record.id) == []
    assert store.get_session(record.id).total_points == 0
    with pytest.raises(StorageError):
        store.delete_point(point.id)
    with pytest.raises(StorageError):
        store.update_point(point.id, notes="x")


def test_delete_session_removes_its_points(store, make_points):
    keep = store.create_session(CaptureSessionRecord())
    drop = store.create_session(CaptureSessionRecord())
    store.save_points(keep.id, make_points([(10, 1)]))
    store.save_points(drop.id, make_points([(20, 1)]))

    store.delete_session(drop.id)
    assert len(store.list_points(keep.id)) == 1
