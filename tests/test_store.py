import pytest

from pysampler.timeseries.memory import PlotMemory


def test_same_identity_returns_same_memory(store):
    first = store.get_or_create("p1")
    assert store.get_or_create("p1") is first
    assert store.get_or_create("p2") is not first
    assert len(store) == 2
    assert "p1" in store
    assert sorted(store) == ["p1", "p2"]


def test_creation_arguments_apply_only_once(store):
    memory = store.get_or_create("p1", follow_window=5.0)
    store.get_or_create("p1", follow_window=50.0)
    assert memory.follow_window == 5.0


def test_evict(store):
    store.get_or_create("p1")
    assert store.evict("p1")
    assert "p1" not in store
    assert not store.evict("p1")
    assert store.get("p1") is None


def test_evicted_identity_starts_fresh(store):
    memory = store.get_or_create("p1")
    memory.mark_observed()
    store.evict("p1")
    assert store.get_or_create("p1").state is not memory.state


def test_borrowed_memory_cannot_be_evicted(store):
    memory = store.get_or_create("p1")
    memory.acquire()
    with pytest.raises(RuntimeError):
        store.evict("p1")
    assert store.get("p1") is memory


def test_retain(store):
    for identity in ("a", "b", "c"):
        store.get_or_create(identity)
    assert store.retain(["b"]) == ["a", "c"]
    assert list(store) == ["b"]


def test_purge_stale(store):
    drawn = store.get_or_create("drawn")
    store.get_or_create("idle")
    for _ in range(3):
        frame = store.begin_frame()
        drawn.commit_frame(frame, None, None, None)

    assert store.purge_stale(max_idle_frames=2) == ["idle"]
    assert list(store) == ["drawn"]
    assert isinstance(store.get("drawn"), PlotMemory)


def test_purge_keeps_borrowed_memories(store):
    busy = store.get_or_create("busy")
    store.get_or_create("idle")
    busy.acquire()
    for _ in range(3):
        store.begin_frame()

    assert store.purge_stale(max_idle_frames=1) == ["idle"]
    assert list(store) == ["busy"]

    busy.release()
    assert store.purge_stale(max_idle_frames=1) == ["busy"]


def test_retain_keeps_borrowed_memories(store):
    for identity in ("a", "b", "c"):
        store.get_or_create(identity)
    store.get("a").acquire()
    assert store.retain(["c"]) == ["b"]
    assert sorted(store) == ["a", "c"]
