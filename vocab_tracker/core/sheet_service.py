"""Multi-sheet data loading: cache lookup, fetch + transform of missing sheets, merge."""

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from vocab_tracker.core.auth import AuthRequiredError
from vocab_tracker.core.cache_store import DEFAULT_SHEET, CacheStore
from vocab_tracker.core.graph_client import GraphError
from vocab_tracker.core.transformer import transform_vocab_data

logger = logging.getLogger(__name__)

# sheet name ("" for the default sheet) -> raw workbook payload
FetchSheet = Callable[[str], Awaitable[dict[str, Any]]]


def parse_sheet_names(param: Optional[str]) -> list[str]:
    """Split a comma-separated sheet-name parameter. No names means the default sheet."""
    if not param:
        return [""]
    names = [name.strip() for name in param.split(",")]
    return [name for name in names if name] or [""]


def combine_sheet_data(sheets: dict[str, dict[str, Any]]) -> dict[str, Any]:
    """Merge per-sheet documents into one document.

    Worksheet names get a ``[sheet]`` prefix when a sheet name was requested.
    ``_cached`` is true only if no sheet was freshly fetched; ``_cachedAt`` is then
    the oldest cache timestamp.
    """
    combined: dict[str, Any] = {
        "worksheets": [],
        "_cached": True,
        "_fetchedAt": datetime.now(timezone.utc).isoformat(),
        "_sheets": list(sheets.keys()),
    }

    has_fresh = False
    oldest_cache: Optional[str] = None

    for sheet_key, data in sheets.items():
        if data.get("error"):
            combined["worksheets"].append({
                "name": f"Error - {sheet_key}",
                "topics": [],
                "error": data["error"],
            })
            continue

        if not data.get("_cached"):
            has_fresh = True

        cached_at = data.get("_cachedAt")
        if cached_at and (oldest_cache is None or _parse_ts(cached_at) < _parse_ts(oldest_cache)):
            oldest_cache = cached_at

        for worksheet in data.get("worksheets") or []:
            name = worksheet.get("name")
            combined["worksheets"].append({
                **worksheet,
                "name": f"[{sheet_key}] {name}" if sheet_key != DEFAULT_SHEET else name,
                "_sheetSource": sheet_key,
            })

    combined["_cached"] = not has_fresh
    if oldest_cache and combined["_cached"]:
        combined["_cachedAt"] = oldest_cache
    return combined


def _parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


async def load_sheet_data(
    store: CacheStore,
    sheet_url: str,
    sheet_names: list[str],
    fetch: Optional[FetchSheet],
    force_refresh: bool = False,
) -> dict[str, Any]:
    """Return the combined structured document for the requested sheets.

    Cached sheets are served from the store unless ``force_refresh``. The rest are
    fetched, transformed and cached. ``fetch`` is None when not authenticated; any
    sheet that would need fetching then raises AuthRequiredError.
    """
    cached: dict[str, dict[str, Any]] = {}
    missing: list[str] = []
    for name in sheet_names:
        data = None if force_refresh else store.get_cached_data(sheet_url, name)
        if data is not None:
            cached[name or DEFAULT_SHEET] = data
        else:
            missing.append(name)

    logger.info(f"Cache summary for {sheet_url}: {len(cached)} cached, {len(missing)} to fetch")

    if not missing:
        return combine_sheet_data(cached)

    if fetch is None:
        labels = [name or DEFAULT_SHEET for name in missing]
        raise AuthRequiredError(
            f"Authentication required to fetch sheet(s): {', '.join(labels)}",
            missing_sheets=labels,
        )

    fetched: dict[str, dict[str, Any]] = {}
    for name in missing:
        key = name or DEFAULT_SHEET
        try:
            raw = await fetch(name)
        except GraphError as e:
            logger.error(f"Error fetching sheet '{key}': {e}")
            fetched[key] = {"error": f"Failed to fetch sheet '{key}': {e}", "worksheets": []}
            continue

        structured = transform_vocab_data(raw)
        store.save_data(sheet_url, structured, name)
        store.save_stats(sheet_url, structured, name)
        fetched[key] = {
            **structured,
            "_cached": False,
            "_fetchedAt": datetime.now(timezone.utc).isoformat(),
        }

    return combine_sheet_data({**cached, **fetched})
