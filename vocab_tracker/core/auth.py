"""Device-code authentication against Microsoft identity for Graph access.

The device-code flow blocks while waiting for the user to sign in, so token
acquisition runs in a worker thread. The prompt callback records the user code
and verification URI so the API can show them to the user.
"""

import asyncio
import logging
import threading
from datetime import datetime, timedelta, timezone
from functools import partial
from typing import Callable, Optional

from azure.core.exceptions import ClientAuthenticationError
from azure.identity import AuthenticationRequiredError, DeviceCodeCredential

from vocab_tracker.core.config import settings
from vocab_tracker.core.models import ServerState

logger = logging.getLogger(__name__)

DEFAULT_VERIFICATION_URI = "https://microsoft.com/devicelogin"


class AuthRequiredError(RuntimeError):
    """A Graph call was needed but no valid token is available."""

    def __init__(self, message: str, missing_sheets: Optional[list[str]] = None):
        super().__init__(message)
        self.missing_sheets = missing_sheets or []


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_authenticated(state: ServerState, now: Optional[datetime] = None) -> bool:
    """True while the token has more than the validity buffer left."""
    if not state.token or not state.expires_on:
        return False
    now = now or _utcnow()
    return state.expires_on > now + timedelta(seconds=settings.token_valid_buffer_seconds)


def should_refresh_token(state: ServerState, now: Optional[datetime] = None) -> bool:
    """True when a token exists and expires within the refresh buffer."""
    if not state.token or not state.expires_on:
        return False
    now = now or _utcnow()
    return state.expires_on <= now + timedelta(seconds=settings.token_refresh_buffer_seconds)


class DeviceCodeAuthenticator:
    def __init__(
        self,
        client_id: str,
        tenant_id: str,
        scopes: list[str],
        credential_factory: Callable[..., DeviceCodeCredential] = DeviceCodeCredential,
    ):
        self._client_id = client_id
        self._tenant_id = tenant_id
        self._scopes = [s if "/" in s else f"https://graph.microsoft.com/{s}" for s in scopes]
        self._credential_factory = credential_factory
        self._credential: Optional[DeviceCodeCredential] = None
        self._prompted = threading.Event()
        self._lock = threading.Lock()
        self._flow = 0
        self._token: Optional[tuple[str, datetime]] = None
        self.user_code: Optional[str] = None
        self.verification_uri: Optional[str] = None
        self.last_error: Optional[str] = None

    def _is_current(self, flow: int) -> bool:
        with self._lock:
            return flow == self._flow

    def _prompt(self, flow: int, verification_uri: str, user_code: str, expires_on: datetime) -> None:
        if not self._is_current(flow):
            return
        self.verification_uri = verification_uri or DEFAULT_VERIFICATION_URI
        self.user_code = user_code
        logger.info(f"Device code issued; sign in at {self.verification_uri} with code {user_code}")
        self._prompted.set()

    def _acquire(self, credential: DeviceCodeCredential, flow: int) -> None:
        try:
            credential.authenticate(scopes=self._scopes)
            access = credential.get_token(*self._scopes)
        except ClientAuthenticationError as e:
            if not self._is_current(flow):
                return
            logger.error(f"Device code authentication failed: {e}")
            self.last_error = str(e)
            self._prompted.set()
            return
        with self._lock:
            if flow != self._flow:
                logger.info("Ignoring sign-in from a superseded device code flow")
                return
            self._token = (access.token, datetime.fromtimestamp(access.expires_on, timezone.utc))
        logger.info("Device code authentication completed")

    async def start(self, prompt_timeout: float = 10.0) -> None:
        """Begin a new device-code flow and wait until the user code is known.

        A flow still pending from an earlier call is abandoned; its result is ignored.
        """
        with self._lock:
            self._flow += 1
            flow = self._flow
            self._token = None
        # Silent refresh must never fall back to an interactive prompt
        credential = self._credential_factory(
            client_id=self._client_id,
            tenant_id=self._tenant_id,
            prompt_callback=partial(self._prompt, flow),
            disable_automatic_authentication=True,
        )
        self._credential = credential
        self._prompted.clear()
        self.user_code = None
        self.verification_uri = None
        self.last_error = None

        threading.Thread(
            target=self._acquire, args=(credential, flow), name="device-code-auth", daemon=True,
        ).start()
        await asyncio.get_running_loop().run_in_executor(None, self._prompted.wait, prompt_timeout)

    def poll(self) -> Optional[tuple[str, datetime]]:
        """The acquired (token, expires_on), or None while sign-in is pending."""
        with self._lock:
            return self._token

    async def refresh(self) -> Optional[tuple[str, datetime]]:
        """Silently request a new access token from the cached sign-in.

        Returns None when the sign-in can no longer be refreshed without the user.
        """
        credential = self._credential
        if credential is None:
            logger.info("No credential to refresh")
            return None
        try:
            access = await asyncio.get_running_loop().run_in_executor(
                None, lambda: credential.get_token(*self._scopes),
            )
        except AuthenticationRequiredError:
            logger.warning("Token refresh needs a new device code sign-in")
            return None
        except ClientAuthenticationError as e:
            logger.error(f"Failed to refresh token: {e}")
            return None
        with self._lock:
            self._token = (access.token, datetime.fromtimestamp(access.expires_on, timezone.utc))
            token = self._token
        logger.info(f"Token refreshed, new expiry {token[1].isoformat()}")
        return token


def apply_token(state: ServerState, token: tuple[str, datetime]) -> ServerState:
    """Store an acquired token on the server state and clear the pending prompt."""
    state.token, state.expires_on = token
    state.user_code = None
    return state
