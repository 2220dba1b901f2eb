"""Shared test fixtures for the Vocab Tracker test suite."""

from typing import Any, Optional

import pytest

from vocab_tracker.core.cache_store import CacheStore


class FakeRedis:
    """In-memory stand-in for the subset of redis.Redis used by CacheStore."""

    def __init__(self):
        self.strings: dict[str, str] = {}
        self.hashes: dict[str, dict[str, str]] = {}
        self.expiry: dict[str, Optional[int]] = {}

    def get(self, key: str) -> Optional[str]:
        return self.strings.get(key)

    def set(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        self.strings[key] = value
        self.expiry[key] = ex
        return True

    def hget(self, key: str, field: str) -> Optional[str]:
        return self.hashes.get(key, {}).get(field)

    def hset(self, key: str, field: str, value: str) -> int:
        self.hashes.setdefault(key, {})[field] = value
        return 1

    def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            removed += int(self.strings.pop(key, None) is not None)
            removed += int(self.hashes.pop(key, None) is not None)
        return removed


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def store(fake_redis) -> CacheStore:
    return CacheStore(fake_redis, prefix="test", metadata_ttl_seconds=3600)


def make_workbook_payload(*worksheets: dict[str, Any], **extra: Any) -> dict[str, Any]:
    """Helper to build a raw workbook payload as returned by the Graph reader."""
    return {
        "fileName": "vocab.xlsx",
        "fileSize": 2048,
        "worksheets": list(worksheets),
        **extra,
    }


def make_worksheet(values: list[list[Any]], name: str = "Sheet1") -> dict[str, Any]:
    """Helper to build one raw worksheet with a used range."""
    return {
        "name": name,
        "range": f"{name}!A1:K{len(values)}",
        "rowCount": len(values),
        "columnCount": max((len(r) for r in values), default=0),
        "values": values,
    }
