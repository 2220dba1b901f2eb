"""Redis-backed cache for structured sheet data, statistics and worksheet metadata.

Layout (all values JSON):
- {prefix}:data:{sheet_url}      hash  sheet name -> {"data": ..., "timestamp": ...}
- {prefix}:stats:{sheet_url}     hash  sheet name -> {"worksheetStats": ..., "timestamp": ...}
- {prefix}:metadata:{sheet_url}  string with TTL  {"metadata": ..., "timestamp": ...}
- {prefix}:state                 string  ServerState

The cache is best-effort: Redis failures are logged and reads degrade to a miss.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

import redis as redis_lib

from vocab_tracker.core.config import settings
from vocab_tracker.core.models import ServerState
from vocab_tracker.core.redis_client import get_redis_client

logger = logging.getLogger(__name__)

DEFAULT_SHEET = "default"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _sheet_field(sheet_name: str) -> str:
    return sheet_name or DEFAULT_SHEET


def extract_worksheet_stats(data: dict[str, Any]) -> list[dict[str, Any]]:
    """Pull worksheet and per-topic statistics out of a structured document."""
    worksheet_stats = []
    for worksheet in data.get("worksheets") or []:
        topic_stats = [
            {"name": topic.get("name"), "statistics": topic.get("statistics")}
            for topic in worksheet.get("topics") or []
        ]
        worksheet_stats.append({
            "name": worksheet.get("name"),
            "statistics": worksheet.get("statistics"),
            "topicStats": topic_stats,
        })
    return worksheet_stats


class CacheStore:
    def __init__(self, client: redis_lib.Redis, prefix: str = "vocab",
                 metadata_ttl_seconds: int = 3600):
        self._client = client
        self._prefix = prefix
        self._metadata_ttl = metadata_ttl_seconds

    def _key(self, kind: str, sheet_url: str = "") -> str:
        return f"{self._prefix}:{kind}:{sheet_url}" if sheet_url else f"{self._prefix}:{kind}"

    def _hget_json(self, key: str, field: str) -> Optional[dict[str, Any]]:
        try:
            raw = self._client.hget(key, field)
        except redis_lib.RedisError as e:
            logger.error(f"Error reading {key}[{field}] from Redis: {e}")
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Corrupt cache entry {key}[{field}]: {e}")
            return None

    def _hset_json(self, key: str, field: str, value: dict[str, Any]) -> None:
        try:
            self._client.hset(key, field, json.dumps(value))
        except redis_lib.RedisError as e:
            logger.error(f"Error writing {key}[{field}] to Redis: {e}")

    # --- Sheet data ---

    def save_data(self, sheet_url: str, data: dict[str, Any], sheet_name: str = "") -> None:
        entry = {"data": data, "timestamp": _now_iso()}
        self._hset_json(self._key("data", sheet_url), _sheet_field(sheet_name), entry)
        logger.info(f"Cache saved for {sheet_url} (sheet: {_sheet_field(sheet_name)})")

    def get_cached_data(self, sheet_url: str, sheet_name: str = "") -> Optional[dict[str, Any]]:
        """Cached structured document, marked with ``_cached`` and ``_cachedAt``."""
        entry = self._hget_json(self._key("data", sheet_url), _sheet_field(sheet_name))
        if entry is None:
            return None
        logger.info(f"Using cached data from {entry['timestamp']}")
        return {**entry["data"], "_cached": True, "_cachedAt": entry["timestamp"]}

    # --- Statistics ---

    def save_stats(self, sheet_url: str, data: dict[str, Any], sheet_name: str = "") -> None:
        entry = {"worksheetStats": extract_worksheet_stats(data), "timestamp": _now_iso()}
        self._hset_json(self._key("stats", sheet_url), _sheet_field(sheet_name), entry)

    def get_cached_stats(self, sheet_url: str, sheet_name: str = "") -> Optional[dict[str, Any]]:
        entry = self._hget_json(self._key("stats", sheet_url), _sheet_field(sheet_name))
        if entry is None:
            return None
        return {
            "sheetUrl": sheet_url,
            "sheetName": sheet_name,
            "worksheetStats": entry["worksheetStats"],
            "timestamp": entry["timestamp"],
        }

    # --- Worksheet list metadata ---

    def save_metadata(self, sheet_url: str, metadata: dict[str, Any]) -> None:
        entry = {"metadata": metadata, "timestamp": _now_iso()}
        try:
            self._client.set(
                self._key("metadata", sheet_url), json.dumps(entry), ex=self._metadata_ttl,
            )
        except redis_lib.RedisError as e:
            logger.error(f"Error writing metadata cache for {sheet_url}: {e}")

    def get_cached_metadata(self, sheet_url: str) -> Optional[dict[str, Any]]:
        """Cached worksheet list entry ``{"metadata", "timestamp"}``; expires via TTL."""
        try:
            raw = self._client.get(self._key("metadata", sheet_url))
        except redis_lib.RedisError as e:
            logger.error(f"Error reading metadata cache for {sheet_url}: {e}")
            return None
        if raw is None:
            logger.info(f"No metadata cached for {sheet_url}")
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Corrupt metadata cache for {sheet_url}: {e}")
            return None

    def clear_url(self, sheet_url: str) -> None:
        """Drop cached data, statistics and metadata for a sheet URL."""
        keys = [self._key(kind, sheet_url) for kind in ("data", "stats", "metadata")]
        try:
            self._client.delete(*keys)
            logger.info(f"Cleared cache for {sheet_url}")
        except redis_lib.RedisError as e:
            logger.error(f"Error clearing cache for {sheet_url}: {e}")

    # --- Server state ---

    def load_state(self) -> ServerState:
        try:
            raw = self._client.get(self._key("state"))
        except redis_lib.RedisError as e:
            logger.error(f"Error loading server state: {e}")
            raw = None
        if raw:
            return ServerState.model_validate_json(raw)
        logger.info("No stored server state, using defaults")
        return ServerState(sheet_url=settings.default_sheet_url)

    def save_state(self, state: ServerState) -> None:
        try:
            self._client.set(self._key("state"), state.model_dump_json(by_alias=True))
        except redis_lib.RedisError as e:
            logger.error(f"Error saving server state: {e}")


def get_cache_store() -> CacheStore:
    """CacheStore bound to the active Redis client."""
    return CacheStore(
        get_redis_client(),
        prefix=settings.cache_key_prefix,
        metadata_ttl_seconds=settings.metadata_cache_ttl_seconds,
    )
