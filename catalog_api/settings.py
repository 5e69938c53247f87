"""
Runtime configuration for the Book Catalog API.

Values come from the process environment, optionally seeded from a ``.env``
file at the project root. Read them through ``get_settings()`` so every
request sees the same frozen instance.
"""

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

root_env = Path(__file__).resolve().parents[1] / ".env"
load_dotenv(root_env)


@dataclass(frozen=True)
class Settings:
    elasticsearch_url: str = "http://localhost:9200"
    books_index: str = "books"
    elasticsearch_timeout: float = 10.0
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: Optional[str] = None
    redis_timeout: float = 5.0
    log_dir: str = "logs"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        env = os.environ
        return cls(
            elasticsearch_url=env.get("ELASTICSEARCH_URL", cls.elasticsearch_url),
            books_index=env.get("BOOKS_INDEX", cls.books_index),
            elasticsearch_timeout=float(env.get("ELASTICSEARCH_TIMEOUT", cls.elasticsearch_timeout)),
            redis_host=env.get("REDIS_HOST", cls.redis_host),
            redis_port=int(env.get("REDIS_PORT", cls.redis_port)),
            redis_db=int(env.get("REDIS_DB", cls.redis_db)),
            redis_password=env.get("REDIS_PASSWORD") or None,
            redis_timeout=float(env.get("REDIS_TIMEOUT", cls.redis_timeout)),
            log_dir=env.get("LOG_DIR", cls.log_dir),
            log_level=env.get("LOG_LEVEL", cls.log_level).upper(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
