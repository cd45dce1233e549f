from concurrent.futures import ThreadPoolExecutor

import pytest

from core.metrics_registry import (
    ROLLING_WINDOW_BUCKETS,
    MetricsRegistry,
    MetricsSnapshot,
    classify_status,
)
from tests.utils.recording_handler import FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    return MetricsRegistry(clock=clock)


@pytest.mark.parametrize("status_code,expected", [
    (200, (True, False)),
    (204, (True, False)),
    (299, (True, False)),
    (101, (False, False)),
    (302, (False, False)),
    (399, (False, False)),
    (400, (False, True)),
    (404, (False, True)),
    (503, (False, True)),
    (599, (False, True)),
])
def test_classify_status(status_code, expected):
    assert classify_status(status_code) == expected


def test_new_registry_is_empty(registry):
    snapshot = registry.snapshot()
    assert snapshot.all_time.total_requests == 0
    assert snapshot.all_time.endpoint_hits == {}
    assert snapshot.last_hour.total_requests == 0


def test_record_counts_successes_and_failures(registry):
    registry.record("/get", 200)
    registry.record("/get", 201)
    registry.record("/status/:code", 404)
    registry.record("/status/:code", 503)
    registry.record("/redirect/:n", 302)

    assert registry.total_requests == 5
    assert registry.total_successes == 2
    assert registry.total_failures == 2
    assert registry.endpoint_hits() == {"/get": 2, "/status/:code": 2, "/redirect/:n": 1}


def test_redirects_count_only_toward_total(registry):
    registry.record("/redirect/:n", 302)
    last_hour = registry.last_hour()
    assert last_hour.total_requests == 1
    assert last_hour.successes == 0
    assert last_hour.failures == 0


def test_endpoint_hits_returns_a_copy(registry):
    registry.record("/get", 200)
    hits = registry.endpoint_hits()
    hits["/get"] = 100
    assert registry.endpoint_hits() == {"/get": 1}


def test_snapshot_shape(registry):
    registry.record("/post", 200)
    data = registry.snapshot().model_dump()
    assert set(data) == {"all_time", "last_hour"}
    assert data["all_time"] == {
        "total_requests": 1,
        "successes": 1,
        "failures": 0,
        "endpoint_hits": {"/post": 1},
    }
    assert data["last_hour"] == data["all_time"]
    assert isinstance(registry.snapshot(), MetricsSnapshot)


def test_records_in_same_minute_share_a_bucket(registry, clock):
    registry.record("/get", 200)
    clock.advance(59.9)
    registry.record("/get", 200)
    assert registry.current_bucket().requests == 2


def test_bucket_rotates_after_a_minute(registry, clock):
    t0 = clock.now
    for _ in range(70):
        registry.record("/get", 200)
    clock.advance(61)
    for _ in range(30):
        registry.record("/post", 500)

    assert registry.buckets()[1].requests == 70
    assert registry.buckets()[1].start_time == t0
    assert registry.current_bucket().requests == 30
    assert registry.current_bucket().failures == 30

    last_hour = registry.last_hour()
    assert last_hour.total_requests == 100
    assert last_hour.successes == 70
    assert last_hour.failures == 30
    assert last_hour.endpoint_hits == {"/get": 70, "/post": 30}

    clock.now = t0 + 3601
    last_hour = registry.last_hour()
    assert last_hour.total_requests == 30
    assert last_hour.endpoint_hits == {"/post": 30}
    assert registry.total_requests == 100


def test_window_excludes_bucket_exactly_one_hour_old(registry, clock):
    t0 = clock.now
    registry.record("/get", 200)
    clock.now = t0 + 3599.9
    assert registry.last_hour().total_requests == 1
    clock.now = t0 + 3600
    assert registry.last_hour().total_requests == 0


def test_ring_wraps_and_reuses_buckets(registry, clock):
    records = ROLLING_WINDOW_BUCKETS + 5
    for _ in range(records):
        registry.record("/get", 200)
        clock.advance(61)
    clock.advance(-61)

    assert registry.total_requests == records
    assert len(registry.buckets()) == ROLLING_WINDOW_BUCKETS
    assert all(bucket.requests == 1 for bucket in registry.buckets())
    assert registry.last_hour().total_requests == ROLLING_WINDOW_BUCKETS


def test_last_hour_never_exceeds_all_time(registry, clock):
    for i in range(200):
        registry.record("/status/:code", 200 + (i % 4) * 100)
        clock.advance(17)
        snapshot = registry.snapshot()
        assert snapshot.last_hour.total_requests <= snapshot.all_time.total_requests
        assert snapshot.last_hour.successes <= snapshot.all_time.successes
        assert snapshot.last_hour.failures <= snapshot.all_time.failures


def test_concurrent_records_are_not_lost():
    registry = MetricsRegistry()
    endpoints = ["/get", "/post", "/status/:code"]
    per_endpoint = 1000

    def hammer(endpoint):
        status = 500 if endpoint == "/status/:code" else 200
        for _ in range(per_endpoint):
            registry.record(endpoint, status)

    with ThreadPoolExecutor(max_workers=len(endpoints) * 2) as pool:
        list(pool.map(hammer, endpoints * 2))

    total = per_endpoint * len(endpoints) * 2
    assert registry.total_requests == total
    assert registry.total_successes == per_endpoint * 4
    assert registry.total_failures == per_endpoint * 2
    assert registry.endpoint_hits() == {endpoint: per_endpoint * 2 for endpoint in endpoints}
    assert registry.last_hour().total_requests == total
