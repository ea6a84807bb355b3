from __future__ import annotations

import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from collections.abc import Callable
from hashlib import sha256
from typing import Any

import redis

from bizintel import config
from bizintel.models import CachedAnswer

logger = logging.getLogger(__name__)

CACHE_VERSION = "v1"


class QueryCache(ABC):
    """Answers memoized per (dataset id, question text).

    The question is used verbatim: a different casing or spacing is a miss.
    """

    @abstractmethod
    def get(self, dataset_id: str, question: str) -> CachedAnswer | None:
        raise NotImplementedError

    @abstractmethod
    def put(self, dataset_id: str, question: str, answer: dict[str, Any]) -> None:
        raise NotImplementedError


class InMemoryQueryCache(QueryCache):
    def __init__(
        self,
        max_entries: int | None = None,
        ttl_seconds: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[tuple[str, str], tuple[CachedAnswer, float]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, dataset_id: str, question: str) -> CachedAnswer | None:
        key = (dataset_id, question)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            cached, stored_at = entry
            if self.ttl_seconds is not None and self._clock() - stored_at > self.ttl_seconds:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return cached

    def put(self, dataset_id: str, question: str, answer: dict[str, Any]) -> None:
        key = (dataset_id, question)
        with self._lock:
            self._entries[key] = (CachedAnswer(dataset_id, question, answer), self._clock())
            self._entries.move_to_end(key)
            if self.max_entries is not None:
                while len(self._entries) > self.max_entries:
                    self._entries.popitem(last=False)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RedisQueryCache(QueryCache):
    def __init__(self, client: redis.Redis, ttl_seconds: int = 86400, prefix: str = "bizintel:answer") -> None:
        self._redis = client
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, ttl_seconds: int = 86400) -> RedisQueryCache:
        return cls(redis.Redis.from_url(url, decode_responses=True), ttl_seconds=ttl_seconds)

    def _key(self, dataset_id: str, question: str) -> str:
        digest = sha256(json.dumps([dataset_id, question], ensure_ascii=False).encode("utf-8")).hexdigest()
        return f"{self.prefix}:{CACHE_VERSION}:{dataset_id}:{digest}"

    def ping(self) -> bool:
        return bool(self._redis.ping())

    def get(self, dataset_id: str, question: str) -> CachedAnswer | None:
        try:
            value = self._redis.get(self._key(dataset_id, question))
        except redis.exceptions.RedisError as exc:
            logger.warning("Redis cache read failed, treating as a miss: %s", exc)
            return None
        if not value:
            return None
        return CachedAnswer(dataset_id, question, json.loads(value))

    def put(self, dataset_id: str, question: str, answer: dict[str, Any]) -> None:
        payload = json.dumps(answer, ensure_ascii=False)
        try:
            self._redis.setex(self._key(dataset_id, question), self.ttl_seconds, payload)
        except redis.exceptions.RedisError as exc:
            logger.warning("Redis cache write skipped: %s", exc)


def create_query_cache_from_env() -> QueryCache:
    if config.REDIS_URL:
        cache = RedisQueryCache.from_url(config.REDIS_URL, ttl_seconds=config.QUERY_CACHE_TTL_SECONDS or 86400)
        try:
            cache.ping()
        except redis.exceptions.RedisError as exc:
            logger.warning("Redis unavailable at startup (%s); using in-memory query cache", exc)
        else:
            logger.info("Using Redis query cache")
            return cache
    return InMemoryQueryCache(
        max_entries=config.QUERY_CACHE_MAX_ENTRIES,
        ttl_seconds=config.QUERY_CACHE_TTL_SECONDS,
    )
