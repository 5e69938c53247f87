from contextlib import contextmanager
from typing import Iterator, Optional

import redis
from elasticsearch import Elasticsearch

from .settings import Settings, get_settings


def get_es_client(settings: Optional[Settings] = None) -> Elasticsearch:
    settings = settings or get_settings()
    return Elasticsearch(
        settings.elasticsearch_url,
        request_timeout=settings.elasticsearch_timeout,
    )


def get_redis_client(settings: Optional[Settings] = None) -> redis.Redis:
    settings = settings or get_settings()
    return redis.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        db=settings.redis_db,
        password=settings.redis_password,
        socket_timeout=settings.redis_timeout,
        socket_connect_timeout=settings.redis_timeout,
        decode_responses=True,
    )


@contextmanager
def elasticsearch_client(settings: Optional[Settings] = None) -> Iterator[Elasticsearch]:
    client = get_es_client(settings)
    try:
        yield client
    finally:
        client.close()


@contextmanager
def redis_client(settings: Optional[Settings] = None) -> Iterator[redis.Redis]:
    client = get_redis_client(settings)
    try:
        yield client
    finally:
        client.close()
