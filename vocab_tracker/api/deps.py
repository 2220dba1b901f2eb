"""FastAPI dependencies for the cache store, server state and authenticator."""

from fastapi import HTTPException, Request

from vocab_tracker.core.auth import DeviceCodeAuthenticator
from vocab_tracker.core.cache_store import CacheStore, get_cache_store


def get_store() -> CacheStore:
    """CacheStore bound to the active Redis client.

    Raises 503 if Redis was never initialized.
    """
    try:
        return get_cache_store()
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=f"Cache unavailable: {e}")


def get_authenticator(request: Request) -> DeviceCodeAuthenticator:
    return request.app.state.authenticator
