"""Device-code authentication endpoints.

Only non-sensitive state (authenticated flag, user code, verification URI) is
returned; the access token never leaves the server.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from vocab_tracker.api.deps import get_authenticator, get_store
from vocab_tracker.core.auth import DeviceCodeAuthenticator, apply_token, is_authenticated
from vocab_tracker.core.cache_store import CacheStore
from vocab_tracker.core.models import AuthStartResponse, AuthStatusResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/auth/status", response_model=AuthStatusResponse, response_model_by_alias=True)
async def auth_status(store: CacheStore = Depends(get_store)):
    state = store.load_state()
    return AuthStatusResponse(
        authenticated=is_authenticated(state),
        user_code=state.user_code,
        verification_uri=state.verification_uri,
    )


@router.post("/auth/start", response_model=AuthStartResponse, response_model_by_alias=True)
async def auth_start(
    store: CacheStore = Depends(get_store),
    authenticator: DeviceCodeAuthenticator = Depends(get_authenticator),
):
    """Reset the stored token and begin a device-code sign-in."""
    state = store.load_state()
    state.token = None
    state.expires_on = None
    state.user_code = None
    state.verification_uri = None

    await authenticator.start()
    if authenticator.user_code is None:
        store.save_state(state)
        detail = authenticator.last_error or "Timed out waiting for a device code"
        raise HTTPException(status_code=500, detail=detail)

    state.user_code = authenticator.user_code
    state.verification_uri = authenticator.verification_uri
    store.save_state(state)
    logger.info("Device code flow initiated")

    return AuthStartResponse(
        success=True,
        user_code=state.user_code,
        verification_uri=state.verification_uri,
    )


@router.get("/auth/poll")
async def auth_poll(
    store: CacheStore = Depends(get_store),
    authenticator: DeviceCodeAuthenticator = Depends(get_authenticator),
):
    """Check whether the pending sign-in has produced a token."""
    state = store.load_state()
    token = authenticator.poll()
    if token is not None and not is_authenticated(state):
        store.save_state(apply_token(state, token))
        logger.info("Authentication completed")

    return {"authenticated": is_authenticated(state)}
