from __future__ import annotations

import asyncio
import base64
import logging
import secrets
import urllib.parse
import webbrowser
from typing import Callable

from auth.credential_store import CredentialStore
from auth.errors import ConfigError
from auth.events import AuthStateChanged, EventChannel, NotificationLevel
from auth.models import AuthorizationRequest
from auth.pending_state import PendingStateSlot
from auth.urls import build_callback_url, normalize_callback_path

GITHUB_AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
DEFAULT_SCOPES = ["read:user", "user:email"]
STATE_BYTES = 32

LOGGER = logging.getLogger(__name__)


def generate_state(num_bytes: int = STATE_BYTES) -> str:
    raw = secrets.token_bytes(max(num_bytes, STATE_BYTES))
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def build_authorization_url(
    request: AuthorizationRequest,
    *,
    authorize_url: str = GITHUB_AUTHORIZE_URL,
) -> str:
    query = {
        "client_id": request.client_id,
        "redirect_uri": request.redirect_uri,
        "scope": " ".join(request.scopes),
        "state": request.state,
    }
    return f"{authorize_url}?{urllib.parse.urlencode(query)}"


class AuthCoordinator:
    """Starts GitHub sign-in and owns the signed-in/signed-out transitions.

    The pending state slot is shared with the callback listener, which
    consumes it when the provider redirects back.
    """

    def __init__(
        self,
        *,
        client_id: str,
        credential_store: CredentialStore,
        pending_state: PendingStateSlot,
        events: EventChannel,
        port_provider: Callable[[], int | None],
        callback_path: str,
        scopes: list[str] | None = None,
        authorize_url: str = GITHUB_AUTHORIZE_URL,
        open_browser_fn: Callable[[str], bool] = webbrowser.open,
    ) -> None:
        self.client_id = client_id
        self.credential_store = credential_store
        self.pending_state = pending_state
        self.events = events
        self.callback_path = normalize_callback_path(callback_path)
        self.scopes = list(DEFAULT_SCOPES) if scopes is None else list(scopes)
        self.authorize_url = authorize_url
        self._port_provider = port_provider
        self._open_browser_fn = open_browser_fn

    def callback_url(self) -> str:
        port = self._port_provider()
        if port is None or port <= 0:
            LOGGER.error("Local server port is not available (%s); cannot build callback URL.", port)
            raise ConfigError("Could not get local server port for OAuth callback.")
        return build_callback_url(port, self.callback_path)

    def begin_sign_in(self) -> str:
        """Register a fresh pending state and return the authorization URL.

        Does not open a browser; ``initiate_sign_in`` does both.
        """
        LOGGER.info("Initiating GitHub OAuth flow.")
        state = generate_state()
        self.pending_state.set(state)

        try:
            request = AuthorizationRequest(
                state=state,
                redirect_uri=self.callback_url(),
                scopes=self.scopes,
                client_id=self.client_id,
            )
            authorization_url = build_authorization_url(
                request, authorize_url=self.authorize_url
            )
        except Exception as error:
            self._abort_sign_in(error)
            raise
        LOGGER.debug("Using callback URL: %s", request.redirect_uri)
        return authorization_url

    async def initiate_sign_in(self) -> str:
        authorization_url = self.begin_sign_in()

        # Browser launchers may block until the browser exits.
        LOGGER.info("Opening browser to GitHub authorization URL.")
        loop = asyncio.get_running_loop()
        try:
            opened = await loop.run_in_executor(None, self._open_browser_fn, authorization_url)
        except Exception as error:
            self._abort_sign_in(error)
            raise
        if not opened:
            LOGGER.warning("No browser could be opened; the authorization URL must be opened manually.")
        return authorization_url

    def _abort_sign_in(self, error: Exception) -> None:
        LOGGER.error("Failed to initiate GitHub sign-in flow: %s", error)
        self.pending_state.clear()
        self.events.notify(
            "Sign In Error",
            f"Could not initiate sign-in process: {error}",
            NotificationLevel.ERROR,
        )

    def is_signed_in(self) -> bool:
        return self.credential_store.is_signed_in()

    def sign_out(self) -> None:
        self.credential_store.clear()
        LOGGER.info("Signed out.")
        self.events.publish(AuthStateChanged(signed_in=False))

    def invalidate_session(self, reason: str) -> None:
        LOGGER.info("Invalidating stored session token after authentication failure.")
        self.credential_store.clear()
        self.events.publish(AuthStateChanged(signed_in=False))
        self.events.notify(
            "Authentication Required",
            f"Your session is invalid or has expired. Please sign in again.\nDetails: {reason}",
            NotificationLevel.ERROR,
        )
