import pytest

from stockscan.app.db.models.core_types import CommitState, OrderKind
from stockscan.services.scan_registry import ScanSessionRegistry


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


def _registry(fake_store, clock, **kwargs) -> ScanSessionRegistry:
    return ScanSessionRegistry(lambda kind: fake_store, clock=clock, **kwargs)


def test_idle_sessions_expire(fake_store, clock):
    registry = _registry(fake_store, clock, ttl_seconds=60, max_sessions=10)
    old = registry.open(OrderKind.inbound, warehouse_id=1)
    clock.now += 30
    recent = registry.open(OrderKind.inbound, warehouse_id=1)

    clock.now += 40

    assert registry.get(old.id) is None
    assert registry.get(recent.id) is recent
    assert len(registry) == 1
    # la session expirée est remise à zéro
    assert old.warehouse_id is None


def test_access_extends_lifetime(fake_store, clock):
    registry = _registry(fake_store, clock, ttl_seconds=60, max_sessions=10)
    session = registry.open(OrderKind.inbound, warehouse_id=1)

    for _ in range(5):
        clock.now += 50
        assert registry.get(session.id) is session


def test_capacity_evicts_least_recently_used(fake_store, clock):
    registry = _registry(fake_store, clock, ttl_seconds=3600, max_sessions=2)
    first = registry.open(OrderKind.inbound)
    clock.now += 1
    second = registry.open(OrderKind.inbound)
    clock.now += 1
    registry.get(first.id)

    clock.now += 1
    third = registry.open(OrderKind.inbound)

    assert len(registry) == 2
    assert second.id not in registry
    assert first.id in registry
    assert third.id in registry


def test_committing_session_is_never_evicted(fake_store, clock):
    registry = _registry(fake_store, clock, ttl_seconds=60, max_sessions=1)
    busy = registry.open(OrderKind.inbound)
    busy.commit_state = CommitState.committing

    clock.now += 120
    other = registry.open(OrderKind.inbound)

    assert busy.id in registry
    assert other.id in registry


def test_caches_survive_eviction(fake_store, clock):
    registry = _registry(fake_store, clock, ttl_seconds=60, max_sessions=10)
    session = registry.open(OrderKind.inbound)
    cache = session.cache
    cache.set(1, 10, 4)

    clock.now += 61
    registry.evict_expired()

    assert len(registry) == 0
    assert registry.caches[OrderKind.inbound] is cache
    assert cache.get(1, 10) == 4


def test_close_unknown_session(fake_store, clock):
    registry = _registry(fake_store, clock)
    session = registry.open(OrderKind.inbound)

    assert registry.close(session.id)
    assert not registry.close(session.id)
