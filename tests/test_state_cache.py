# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sso

import threading

import pytest

from coreason_sso.models import AuthState
from coreason_sso.state_cache import STATE_LENGTH, MemoryStateStore, StateCache, random_string


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> StateCache:
    return StateCache(MemoryStateStore(clock=clock), ttl=300)


def test_generate_state_shape(cache: StateCache) -> None:
    state = cache.generate_state("client", "10.0.0.1")
    assert len(state) == STATE_LENGTH
    assert state.isalnum()
    assert cache.generate_state("client", "10.0.0.1") != state


def test_verify_same_ip_succeeds(cache: StateCache) -> None:
    state = cache.generate_state("client", "10.0.0.1")
    assert cache.verify_state("client", "10.0.0.1", state) is True


def test_verify_different_ip_fails_without_consuming(cache: StateCache) -> None:
    state = cache.generate_state("client", "10.0.0.1")
    assert cache.verify_state("client", "10.0.0.2", state) is False
    # The legitimate caller can still complete the flow
    assert cache.verify_state("client", "10.0.0.1", state) is True


def test_verify_different_client_fails(cache: StateCache) -> None:
    state = cache.generate_state("client", "10.0.0.1")
    assert cache.verify_state("other-client", "10.0.0.1", state) is False


def test_state_stored_under_auth_state_key(cache: StateCache, clock: FakeClock) -> None:
    state = cache.generate_state("client", "10.0.0.1")
    record = AuthState(client_id="client", state_token=state, issuing_ip="10.0.0.1", expiry=clock.now + cache.ttl)

    assert cache.store.get(record.key) == record.issuing_ip
    assert record.is_valid_for("10.0.0.1", clock.now)
    clock.now = record.expiry
    assert cache.store.get(record.key) is None
    assert not record.is_valid_for("10.0.0.1", clock.now)


def test_verify_after_ttl_fails(cache: StateCache, clock: FakeClock) -> None:
    state = cache.generate_state("client", "10.0.0.1")
    clock.now += 299
    assert cache.store.get("client_" + state) == "10.0.0.1"
    clock.now += 2
    assert cache.verify_state("client", "10.0.0.1", state) is False


def test_state_is_single_use(cache: StateCache) -> None:
    state = cache.generate_state("client", "10.0.0.1")
    assert cache.verify_state("client", "10.0.0.1", state) is True
    assert cache.verify_state("client", "10.0.0.1", state) is False


def test_reusable_mode_allows_repeat_within_ttl(clock: FakeClock) -> None:
    cache = StateCache(MemoryStateStore(clock=clock), ttl=300, single_use=False)
    state = cache.generate_state("client", "10.0.0.1")
    assert cache.verify_state("client", "10.0.0.1", state) is True
    assert cache.verify_state("client", "10.0.0.1", state) is True


def test_empty_state_rejected(cache: StateCache) -> None:
    cache.generate_state("client", "10.0.0.1")
    assert cache.verify_state("client", "10.0.0.1", "") is False


def test_expired_entries_are_pruned_on_write(clock: FakeClock) -> None:
    store = MemoryStateStore(shards=1, clock=clock)
    store.set("a", "1", ttl=10)
    clock.now += 11
    store.set("b", "2", ttl=10)
    assert len(store) == 1


def test_invalid_shard_count() -> None:
    with pytest.raises(ValueError):
        MemoryStateStore(shards=0)


def test_concurrent_verification_consumes_once() -> None:
    """Only one of many racing callbacks may redeem the same state."""
    cache = StateCache()
    state = cache.generate_state("client", "10.0.0.1")
    results: list[bool] = []
    lock = threading.Lock()

    def redeem() -> None:
        ok = cache.verify_state("client", "10.0.0.1", state)
        with lock:
            results.append(ok)

    threads = [threading.Thread(target=redeem) for _ in range(32)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 1


def test_concurrent_generation_keeps_every_state() -> None:
    cache = StateCache()
    states: list[str] = []
    lock = threading.Lock()

    def issue() -> None:
        for _ in range(50):
            s = cache.generate_state("client", "10.0.0.1")
            with lock:
                states.append(s)

    threads = [threading.Thread(target=issue) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(set(states)) == 400
    assert all(cache.verify_state("client", "10.0.0.1", s) for s in states)


def test_auth_state_validity() -> None:
    auth_state = AuthState(client_id="c", state_token="t", issuing_ip="1.1.1.1", expiry=100.0)
    assert auth_state.key == "c_t"
    assert auth_state.is_valid_for("1.1.1.1", 99.0)
    assert not auth_state.is_valid_for("1.1.1.2", 99.0)
    assert not auth_state.is_valid_for("1.1.1.1", 100.0)


def test_random_string_alphabet() -> None:
    value = random_string(64)
    assert len(value) == 64
    assert value.isalnum()
