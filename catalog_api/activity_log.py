"""
Per-user activity log kept in Redis sorted sets.

Each user has one sorted set (``activity:<user_id>``). Every recorded request
adds one member whose score is its recency score; the most recent entries are
the ones with the highest scores.

Recency scores are wall-clock microseconds since the epoch, forced strictly
increasing within the process by ``RecencyClock``. Microseconds stay below
2**53, so Redis stores them exactly as doubles.
"""

import json
import time
import uuid
from datetime import datetime
from threading import Lock
from typing import Callable, List, Optional

import redis

from .data_models import ActivityEntry
from .errors import StoreConnectionError, StoreError
from .logger_setup import get_logger

logger = get_logger("activity-log")

ACTIVITY_TOP_K = 3
KEY_PREFIX = "activity:"


def activity_key(user_id: str) -> str:
    return f"{KEY_PREFIX}{user_id}"


def activity_label(route: str, method: str) -> str:
    return f"route={route}, method={method.upper()}"


class RecencyClock:
    """Hands out strictly increasing microsecond timestamps."""

    def __init__(self, time_source: Callable[[], int] = time.time_ns):
        self._time_source = time_source
        self._last = 0
        self._lock = Lock()

    def next_score(self) -> int:
        with self._lock:
            now_us = self._time_source() // 1000
            self._last = max(now_us, self._last + 1)
            return self._last


default_clock = RecencyClock()


class ActivityRecorder:
    def __init__(self, client: redis.Redis, clock: Optional[RecencyClock] = None):
        self.client = client
        self.clock = clock or default_clock

    def record(self, user_id: str, route: str, method: str) -> ActivityEntry:
        """
        Append one entry to the user's log.

        The member carries a fresh event id and the record time, so that
        repeating the same route/method never overwrites an earlier entry.
        """
        label = activity_label(route, method)
        score = self.clock.next_score()
        event_id = str(uuid.uuid4())
        recorded_at = datetime.utcnow()
        member = json.dumps({
            "event_id": event_id,
            "label": label,
            "recorded_at": recorded_at.isoformat(),
        })

        try:
            self.client.zadd(activity_key(user_id), {member: score})
        except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError) as e:
            logger.error("Activity store unreachable", user_id=user_id, label=label, error=str(e))
            raise StoreConnectionError("cannot set key in Redis", str(e)) from e
        except redis.exceptions.RedisError as e:
            logger.error("Activity store error", user_id=user_id, label=label, error=str(e))
            raise StoreError("cannot set key in Redis", str(e)) from e

        logger.info("Activity recorded", user_id=user_id, label=label, score=score)
        return ActivityEntry(
            user_id=user_id,
            label=label,
            score=score,
            event_id=event_id,
            recorded_at=recorded_at,
        )


class ActivityReader:
    def __init__(self, client: redis.Redis):
        self.client = client

    def recent(self, user_id: str, k: int = ACTIVITY_TOP_K) -> List[ActivityEntry]:
        """Return up to ``k`` entries, highest score first. Unknown users yield []."""
        if k <= 0:
            return []

        try:
            rows = self.client.zrevrange(activity_key(user_id), 0, k - 1, withscores=True)
        except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError) as e:
            logger.error("Activity store unreachable", user_id=user_id, error=str(e))
            raise StoreConnectionError("cannot get key from Redis", str(e)) from e
        except redis.exceptions.RedisError as e:
            logger.error("Activity store error", user_id=user_id, error=str(e))
            raise StoreError("cannot get key from Redis", str(e)) from e

        return [_decode_entry(user_id, member, score) for member, score in rows]


def _decode_entry(user_id: str, member, score: float) -> ActivityEntry:
    payload = json.loads(member)
    return ActivityEntry(
        user_id=user_id,
        label=payload["label"],
        score=score,
        event_id=payload.get("event_id"),
        recorded_at=payload.get("recorded_at"),
    )
