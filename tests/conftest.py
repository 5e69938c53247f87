from unittest.mock import MagicMock

import pytest
from elasticsearch import NotFoundError as ESNotFoundError


class FakeSortedSets:
    """In-memory stand-in for the Redis sorted-set commands the activity log uses."""

    def __init__(self):
        self.sets = {}

    def zadd(self, key, mapping):
        members = self.sets.setdefault(key, {})
        added = sum(1 for member in mapping if member not in members)
        members.update({member: float(score) for member, score in mapping.items()})
        return added

    def zrevrange(self, key, start, end, withscores=False):
        members = self.sets.get(key, {})
        ordered = sorted(members.items(), key=lambda item: (item[1], item[0]), reverse=True)
        stop = None if end == -1 else end + 1
        rows = ordered[start:stop]
        if withscores:
            return rows
        return [member for member, _ in rows]

    def close(self):
        pass


@pytest.fixture
def fake_redis():
    return FakeSortedSets()


@pytest.fixture
def es_client():
    client = MagicMock()
    client.search.return_value = {"hits": {"total": {"value": 0}, "hits": []}}
    return client


@pytest.fixture
def es_not_found():
    """Factory for the exception the client raises on a missing document."""
    def make():
        return ESNotFoundError(message="not found", meta=MagicMock(status=404), body={"found": False})
    return make
