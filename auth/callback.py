from __future__ import annotations

import hmac
import logging
from typing import Awaitable, Callable, Tuple

from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response

from auth.credential_store import CredentialStore
from auth.events import AuthStateChanged, EventChannel, NotificationLevel
from auth.models import CallbackOutcome
from auth.pending_state import PendingStateSlot
from auth.responses import callback_page
from auth.urls import first_query_value, matches_callback_prefix, normalize_callback_path

LOGGER = logging.getLogger(__name__)

CallbackResult = Tuple[CallbackOutcome, Response]


class CallbackListener:
    """Handles GitHub's redirect back to the local server.

    Every claimed request gets exactly one HTML response and one notification,
    and the two always agree on success or failure.
    """

    def __init__(
        self,
        *,
        callback_path: str,
        pending_state: PendingStateSlot,
        credential_store: CredentialStore,
        events: EventChannel,
        exchange_code_fn: Callable[[str], Awaitable],
    ) -> None:
        self.callback_path = normalize_callback_path(callback_path)
        self.pending_state = pending_state
        self.credential_store = credential_store
        self.events = events
        self._exchange_code_fn = exchange_code_fn

    def is_supported(self, method: str, path: str) -> bool:
        return method.upper() == "GET" and matches_callback_prefix(path, self.callback_path)

    def mount_routes(self, mcp) -> None:
        @mcp.custom_route(self.callback_path + "{rest:path}", methods=["GET"])
        async def github_callback_route(request: Request) -> Response:
            handled = await self.handle(request)
            if handled is None:
                return PlainTextResponse("Not Found", status_code=404)
            outcome, response = handled
            LOGGER.info("OAuth callback finished with outcome %s", outcome.value)
            return response

    async def process(self, request: Request) -> Response | None:
        handled = await self.handle(request)
        return None if handled is None else handled[1]

    async def handle(self, request: Request) -> CallbackResult | None:
        """Like ``process`` but also reports which branch produced the response."""
        path = request.url.path
        if not self.is_supported(request.method, path):
            return None

        LOGGER.info("Processing OAuth callback request on %s", path)
        if path != self.callback_path:
            LOGGER.warning("Callback path mismatch: expected %s, got %s", self.callback_path, path)
            return self._finish(CallbackOutcome.WRONG_PATH, "Incorrect callback path.", 404)

        query = request.url.query
        code = first_query_value(query, "code")
        received_state = first_query_value(query, "state")
        error = first_query_value(query, "error")
        error_description = first_query_value(query, "error_description")

        if error is not None:
            message = f"GitHub OAuth Error: {error}"
            if error_description is not None:
                message += f" - {error_description}"
            LOGGER.warning("%s", message)
            self.pending_state.clear()
            self.events.notify("GitHub Sign-In Failed", message, NotificationLevel.ERROR)
            return self._finish(CallbackOutcome.PROVIDER_ERROR, message, 400)

        expected_state = self.pending_state.consume()
        if expected_state is None:
            LOGGER.error("OAuth callback received, but no pending state was found.")
            self.events.notify(
                "Sign-In Error",
                "Security state mismatch (no pending state). Please try signing in again.",
                NotificationLevel.ERROR,
            )
            return self._finish(
                CallbackOutcome.NO_PENDING_STATE,
                "Security error: No pending state. Please try signing in again.",
                403,
            )

        if received_state is None or not hmac.compare_digest(
            expected_state.encode("utf-8"), received_state.encode("utf-8")
        ):
            LOGGER.error("OAuth callback state mismatch; rejecting callback.")
            self.events.notify(
                "Sign-In Error",
                "Security state validation failed. Please try signing in again.",
                NotificationLevel.ERROR,
            )
            return self._finish(
                CallbackOutcome.STATE_MISMATCH,
                "Security error: State mismatch. Please try signing in again.",
                403,
            )
        LOGGER.info("OAuth state validated successfully.")

        if code is None or not code.strip():
            LOGGER.error("OAuth state validated, but no authorization code was received.")
            self.events.notify(
                "Sign-In Error",
                "Authorization code missing in GitHub response.",
                NotificationLevel.ERROR,
            )
            return self._finish(
                CallbackOutcome.MISSING_CODE, "Error: Authorization code missing.", 400
            )

        return await self._exchange(code)

    async def _exchange(self, code: str) -> CallbackResult:
        LOGGER.info("Exchanging GitHub code for backend session token.")
        try:
            auth_result = await self._exchange_code_fn(code)
        except Exception as error:
            LOGGER.error("Failed to exchange GitHub code with backend: %s", error)
            self.events.notify(
                "Sign-In Failed",
                f"Could not connect to backend or process response: {error}",
                NotificationLevel.ERROR,
            )
            return self._finish(
                CallbackOutcome.EXCHANGE_FAILED,
                "Sign-in failed (backend communication). Please try again or contact support.",
                500,
            )

        token = getattr(auth_result, "token", None)
        if not token or not token.strip():
            message = "Sign-in failed: Backend did not return a valid token."
            backend_message = getattr(auth_result, "message", None)
            if backend_message:
                message += f" Message: {backend_message}"
            LOGGER.error("%s", message)
            self.events.notify("Sign-In Failed", message, NotificationLevel.ERROR)
            return self._finish(
                CallbackOutcome.EXCHANGE_FAILED,
                "Sign-in failed (token processing). Please try again or contact support.",
                500,
            )

        self.credential_store.set(token)
        LOGGER.info("Exchanged code and stored session token.")
        self.events.publish(AuthStateChanged(signed_in=True))
        self.events.notify("Sign-In Successful", "LSK resolver successfully signed in.")
        return self._finish(CallbackOutcome.SUCCESS, "Sign-in successful!", 200)

    def _finish(
        self,
        outcome: CallbackOutcome,
        message: str,
        status_code: int,
    ) -> CallbackResult:
        return outcome, callback_page(message, status_code)
