import json
from unittest.mock import MagicMock

import pytest
import redis

from catalog_api.activity_log import (
    ActivityReader,
    ActivityRecorder,
    RecencyClock,
    activity_key,
    activity_label,
)
from catalog_api.errors import StoreConnectionError


class SteppingClock:
    """time_ns source that advances one millisecond per reading."""

    def __init__(self, start_ns=1_700_000_000_000_000_000):
        self.now = start_ns

    def __call__(self):
        self.now += 1_000_000
        return self.now


@pytest.fixture
def recorder(fake_redis):
    return ActivityRecorder(fake_redis, clock=RecencyClock(SteppingClock()))


@pytest.fixture
def reader(fake_redis):
    return ActivityReader(fake_redis)


def test_label_combines_route_and_method():
    assert activity_label("book", "put") == "route=book, method=PUT"


def test_recency_clock_is_strictly_increasing_on_frozen_time():
    clock = RecencyClock(lambda: 1_700_000_000_000_000_000)
    scores = [clock.next_score() for _ in range(5)]
    assert scores == sorted(set(scores))
    assert scores[0] == 1_700_000_000_000_000


def test_recency_clock_does_not_go_back_with_wall_clock():
    readings = iter([5_000_000, 2_000_000, 9_000_000])
    clock = RecencyClock(lambda: next(readings))
    assert [clock.next_score() for _ in range(3)] == [5000, 5001, 9000]


def test_recency_scores_are_exact_in_a_double():
    score = RecencyClock().next_score()
    assert score < 2 ** 53
    assert float(score) == score


def test_record_appends_one_member(recorder, fake_redis):
    entry = recorder.record("u1", "book", "PUT")

    members = fake_redis.sets[activity_key("u1")]
    assert len(members) == 1
    (member, score), = members.items()
    payload = json.loads(member)
    assert payload["event_id"] == entry.event_id
    assert payload["label"] == "route=book, method=PUT"
    assert payload["recorded_at"] == entry.recorded_at.isoformat()
    assert score == entry.score


def test_identical_requests_never_overwrite(recorder, fake_redis):
    for _ in range(4):
        recorder.record("u1", "search", "GET")

    assert len(fake_redis.sets[activity_key("u1")]) == 4


def test_recent_returns_most_recent_first(recorder, reader):
    recorder.record("u1", "book", "PUT")
    recorder.record("u1", "search", "GET")
    recorder.record("u1", "store", "GET")

    entries = reader.recent("u1")

    assert [entry.label for entry in entries] == [
        "route=store, method=GET",
        "route=search, method=GET",
        "route=book, method=PUT",
    ]


@pytest.mark.parametrize("count,k", [(7, 3), (3, 3), (5, 1), (4, 4)])
def test_recent_returns_top_k_scores_in_descending_order(recorder, reader, fake_redis, count, k):
    recorded = [recorder.record("u1", f"r{i}", "GET") for i in range(count)]

    entries = reader.recent("u1", k=k)

    expected = sorted(recorded, key=lambda entry: entry.score, reverse=True)[:k]
    assert [entry.event_id for entry in entries] == [entry.event_id for entry in expected]
    assert all(a.score > b.score for a, b in zip(entries, entries[1:]))


def test_recent_with_fewer_entries_than_k(recorder, reader):
    recorder.record("u1", "book", "GET")
    recorder.record("u1", "book", "DELETE")

    entries = reader.recent("u1", k=3)

    assert [entry.label for entry in entries] == ["route=book, method=DELETE", "route=book, method=GET"]


def test_recent_for_unknown_user_is_empty(reader):
    assert reader.recent("nobody") == []


def test_logs_are_kept_per_user(recorder, reader):
    recorder.record("u1", "book", "PUT")
    recorder.record("u2", "store", "GET")

    assert [entry.label for entry in reader.recent("u1")] == ["route=book, method=PUT"]
    assert [entry.user_id for entry in reader.recent("u2")] == ["u2"]


def test_recent_does_not_mutate_log(recorder, reader, fake_redis):
    recorder.record("u1", "book", "PUT")
    before = dict(fake_redis.sets[activity_key("u1")])

    reader.recent("u1")
    reader.recent("u1")

    assert fake_redis.sets[activity_key("u1")] == before


def test_recent_returns_record_time(recorder, reader):
    recorded = recorder.record("u1", "store", "GET")

    (entry,) = reader.recent("u1")

    assert entry.recorded_at == recorded.recorded_at
    assert entry.event_id == recorded.event_id


def test_record_connection_failure_is_distinguishable():
    client = MagicMock()
    client.zadd.side_effect = redis.exceptions.ConnectionError("Connection refused")

    with pytest.raises(StoreConnectionError) as excinfo:
        ActivityRecorder(client).record("u1", "book", "PUT")

    assert str(excinfo.value) == "cannot set key in Redis: Connection refused"


def test_record_timeout_is_connection_failure():
    client = MagicMock()
    client.zadd.side_effect = redis.exceptions.TimeoutError("Timeout reading from socket")

    with pytest.raises(StoreConnectionError):
        ActivityRecorder(client).record("u1", "book", "PUT")


def test_read_connection_failure():
    client = MagicMock()
    client.zrevrange.side_effect = redis.exceptions.ConnectionError("Connection refused")

    with pytest.raises(StoreConnectionError):
        ActivityReader(client).recent("u1")
