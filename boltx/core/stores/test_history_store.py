#!/usr/bin/env python3
"""
Tests for the session history stores.

The Redis store is exercised against an in-memory mock client so no Redis
server is required.
"""

import threading
from typing import Dict, List

from redis.exceptions import ConnectionError as RedisConnectionError

from boltx.core.models.features import AbandonmentPrediction, RiskLevel
from boltx.core.stores.history import InMemoryHistoryStore, RedisHistoryStore


def make_prediction(score: float) -> AbandonmentPrediction:
    return AbandonmentPrediction(
        risk_score=score,
        risk_level=RiskLevel.LOW if score < 30 else RiskLevel.MEDIUM,
        confidence=0.5,
    )


class MockPipeline:
    """Queues list commands and applies them on execute."""

    def __init__(self, client: "MockRedisClient"):
        self.client = client
        self.commands = []

    def rpush(self, key: str, value: str):
        self.commands.append(("rpush", key, value))

    def ltrim(self, key: str, start: int, end: int):
        self.commands.append(("ltrim", key, start, end))

    def expire(self, key: str, seconds: int):
        self.commands.append(("expire", key, seconds))

    def execute(self):
        for command, key, *args in self.commands:
            getattr(self.client, command)(key, *args)
        self.commands = []


class MockRedisClient:
    """Mock Redis client for testing."""

    def __init__(self):
        self.lists: Dict[str, List[str]] = {}
        self.expirations: Dict[str, int] = {}

    def pipeline(self):
        return MockPipeline(self)

    def rpush(self, key: str, value: str):
        self.lists.setdefault(key, []).append(value)

    def ltrim(self, key: str, start: int, end: int):
        items = self.lists.get(key, [])
        stop = len(items) if end == -1 else end + 1
        self.lists[key] = items[start:stop]

    def expire(self, key: str, seconds: int):
        self.expirations[key] = seconds

    def lrange(self, key: str, start: int, end: int):
        items = self.lists.get(key, [])
        stop = len(items) if end == -1 else end + 1
        return items[start:stop]

    def delete(self, key: str):
        self.lists.pop(key, None)

    def ping(self):
        return True


class FailingRedisClient:
    """Every call fails as if Redis were down."""

    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise RedisConnectionError("Connection refused")
        return fail


def test_memory_store_keeps_latest_predictions():
    print("🧪 Testing in-memory history store...")
    store = InMemoryHistoryStore(limit=3)

    for score in [10, 20, 30, 40, 50]:
        store.append("sess_a", make_prediction(score))

    history = store.get("sess_a")
    assert [p.risk_score for p in history] == [30, 40, 50]
    assert store.get("sess_b") == []

    store.clear("sess_a")
    assert store.get("sess_a") == []
    print("  ✅ Oldest predictions evicted first")


def test_memory_store_caps_sessions():
    store = InMemoryHistoryStore(limit=2, max_sessions=2)

    store.append("s1", make_prediction(10))
    store.append("s2", make_prediction(20))
    store.append("s1", make_prediction(15))
    store.append("s3", make_prediction(30))

    assert store.session_count() == 2
    assert store.get("s2") == []
    assert len(store.get("s1")) == 2


def test_memory_store_returns_copies():
    store = InMemoryHistoryStore()
    store.append("s1", make_prediction(10))

    history = store.get("s1")
    history.append(make_prediction(99))
    assert len(store.get("s1")) == 1


def test_memory_store_concurrent_appends():
    store = InMemoryHistoryStore(limit=10)

    def worker():
        for _ in range(200):
            store.append("shared", make_prediction(42))

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(store.get("shared")) == 10


def test_redis_store_round_trip():
    print("🧪 Testing Redis history store...")
    client = MockRedisClient()
    store = RedisHistoryStore(client, limit=3, ttl_seconds=600)

    for score in [10, 20, 30, 40]:
        store.append("sess_r", make_prediction(score))

    key = "boltx:history:sess_r"
    assert len(client.lists[key]) == 3
    assert client.expirations[key] == 600

    history = store.get("sess_r")
    assert [p.risk_score for p in history] == [20, 30, 40]
    assert history[0].risk_level == RiskLevel.LOW

    store.clear("sess_r")
    assert store.get("sess_r") == []
    assert store.health_check() is True
    print("  ✅ Redis history trimmed and expired")


def test_redis_store_skips_malformed_entries():
    client = MockRedisClient()
    store = RedisHistoryStore(client)
    store.append("sess_m", make_prediction(10))
    client.lists["boltx:history:sess_m"].append("not json")

    assert [p.risk_score for p in store.get("sess_m")] == [10]


def test_redis_store_degrades_when_unavailable():
    store = RedisHistoryStore(FailingRedisClient())

    store.append("sess_down", make_prediction(55))
    assert store.get("sess_down") == []
    store.clear("sess_down")
    assert store.health_check() is False
