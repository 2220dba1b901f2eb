"""Sheet endpoints: configured URL, worksheet list, structured data, stats, uploads."""

import logging
from pathlib import Path
from typing import Any, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile

from vocab_tracker.api.deps import get_authenticator, get_store
from vocab_tracker.core.auth import (
    AuthRequiredError,
    DeviceCodeAuthenticator,
    apply_token,
    is_authenticated,
    should_refresh_token,
)
from vocab_tracker.core.cache_store import CacheStore
from vocab_tracker.core.config import settings
from vocab_tracker.core.graph_client import GraphClient, GraphError
from vocab_tracker.core.models import (
    ServerState,
    SheetUrlResponse,
    SheetUrlUpdate,
    SheetUrlUpdateResponse,
)
from vocab_tracker.core.sheet_service import load_sheet_data, parse_sheet_names
from vocab_tracker.core.transformer import transform_vocab_data
from vocab_tracker.core.workbook_reader import read_workbook_file

logger = logging.getLogger(__name__)

router = APIRouter()


async def _ensure_fresh_token(
    state: ServerState,
    store: CacheStore,
    authenticator: DeviceCodeAuthenticator,
) -> None:
    if should_refresh_token(state):
        logger.info("Token expiring soon, refreshing...")
        token = await authenticator.refresh()
        if token is not None:
            store.save_state(apply_token(state, token))


def _graph_fetcher(state: ServerState):
    async def fetch(name: str) -> dict[str, Any]:
        async with GraphClient(state.token) as graph:
            return await graph.read_workbook(state.sheet_url, name)
    return fetch


@router.get("/sheet/url", response_model=SheetUrlResponse, response_model_by_alias=True)
async def get_sheet_url(store: CacheStore = Depends(get_store)):
    state = store.load_state()
    return SheetUrlResponse(sheet_url=state.sheet_url, sheet_name=state.sheet_name)


@router.post("/sheet/url", response_model=SheetUrlUpdateResponse, response_model_by_alias=True)
async def update_sheet_url(body: SheetUrlUpdate, store: CacheStore = Depends(get_store)):
    """Set the sharing link; switching to a different link clears the old link's cache."""
    if not body.sheet_url:
        raise HTTPException(status_code=400, detail="Sheet URL is required")

    state = store.load_state()
    url_changed = state.sheet_url != body.sheet_url
    if url_changed and state.sheet_url:
        logger.info("Sheet URL changed, clearing cache for old URL")
        store.clear_url(state.sheet_url)

    state.sheet_url = body.sheet_url
    state.sheet_name = body.sheet_name
    store.save_state(state)

    return SheetUrlUpdateResponse(
        sheet_url=state.sheet_url,
        sheet_name=state.sheet_name,
        cache_cleared=url_changed,
    )


@router.get("/sheet/worksheets")
async def list_worksheets(
    store: CacheStore = Depends(get_store),
    authenticator: DeviceCodeAuthenticator = Depends(get_authenticator),
):
    """List worksheets of the configured workbook, from the metadata cache when fresh."""
    state = store.load_state()
    if not state.sheet_url:
        raise HTTPException(status_code=400, detail="No sheet URL configured")

    cached = store.get_cached_metadata(state.sheet_url)
    if cached:
        return {
            "fileName": cached["metadata"].get("fileName"),
            "worksheets": cached["metadata"].get("worksheets"),
            "sheetUrl": state.sheet_url,
            "_cached": True,
            "_cachedAt": cached["timestamp"],
        }

    await _ensure_fresh_token(state, store, authenticator)
    if not is_authenticated(state):
        raise HTTPException(status_code=401, detail="Authentication required to fetch worksheets list")

    try:
        async with GraphClient(state.token) as graph:
            metadata = await graph.list_worksheets(state.sheet_url)
    except GraphError as e:
        logger.error(f"Error fetching worksheets: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    store.save_metadata(state.sheet_url, metadata)
    return {
        "fileName": metadata["fileName"],
        "worksheets": metadata["worksheets"],
        "sheetUrl": state.sheet_url,
        "_cached": False,
    }


@router.get("/sheet/data")
async def get_sheet_data(
    sheet_name: Optional[str] = Query(None, alias="sheetName"),
    refresh: bool = Query(False),
    store: CacheStore = Depends(get_store),
    authenticator: DeviceCodeAuthenticator = Depends(get_authenticator),
):
    """Structured vocabulary data for one or more comma-separated sheet names.

    - **sheetName**: e.g. ``Week 1, Week 2``; defaults to the saved selection
    - **refresh**: refetch every requested sheet from OneDrive
    """
    state = store.load_state()
    if not state.sheet_url:
        raise HTTPException(status_code=400, detail="No sheet URL configured")

    sheet_names = parse_sheet_names(sheet_name or state.sheet_name)
    joined = ", ".join(sheet_names)
    if joined != state.sheet_name:
        state.sheet_name = joined
        store.save_state(state)

    await _ensure_fresh_token(state, store, authenticator)

    fetch = _graph_fetcher(state) if is_authenticated(state) else None
    try:
        return await load_sheet_data(
            store, state.sheet_url, sheet_names, fetch, force_refresh=refresh,
        )
    except AuthRequiredError as e:
        raise HTTPException(
            status_code=401,
            detail={"error": str(e), "cached": False, "missingSheets": e.missing_sheets},
        )


@router.get("/sheet/stats")
async def get_sheet_stats(
    sheet_name: str = Query("", alias="sheetName"),
    store: CacheStore = Depends(get_store),
):
    """Cached statistics for a sheet; never triggers a fetch."""
    state = store.load_state()
    stats = store.get_cached_stats(state.sheet_url, sheet_name.strip())
    if stats is None:
        raise HTTPException(status_code=404, detail="No cached statistics for this sheet")
    return stats


@router.post("/sheet/upload")
async def upload_workbook(
    file: UploadFile = File(...),
    sheet_name: str = Form("", alias="sheetName"),
):
    """Transform an uploaded .xlsx workbook without going through OneDrive.

    - **file**: Excel file (.xlsx)
    - **sheetName**: optional single worksheet to read
    """
    if not file.filename or not file.filename.endswith(".xlsx"):
        raise HTTPException(status_code=400, detail="Only Excel files (.xlsx) are supported")

    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    file_path = upload_dir / Path(file.filename).name
    file_path.write_bytes(await file.read())

    try:
        raw = read_workbook_file(file_path, sheet_name.strip())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return transform_vocab_data(raw)
