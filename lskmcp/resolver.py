from __future__ import annotations

import enum
from dataclasses import dataclass

from auth.errors import BackendIOError, InvalidArgumentError
from auth.events import NotificationLevel
from auth.github_oauth import AuthCoordinator

from .backend import BackendApiClient, BackendError, is_authentication_error
from .constants import LOGGER


class ResolveStatus(str, enum.Enum):
    RESOLVED = "resolved"
    NOT_SIGNED_IN = "not_signed_in"
    REAUTH_REQUIRED = "reauth_required"
    FAILED = "failed"


@dataclass(frozen=True)
class ResolveOutcome:
    status: ResolveStatus
    message: str
    resolved_xml: str | None = None
    authorization_url: str | None = None


class LskResolver:
    """Resolves LSK placeholders for the signed-in user.

    Owns the re-authentication policy: an authentication-class backend error
    invalidates the stored session and starts a fresh sign-in.
    """

    def __init__(self, *, backend: BackendApiClient, coordinator: AuthCoordinator) -> None:
        self.backend = backend
        self.coordinator = coordinator

    @property
    def events(self):
        return self.coordinator.events

    async def resolve(self, module_name: str, xml_content: str) -> ResolveOutcome:
        token = self.coordinator.credential_store.get()
        if token is None:
            LOGGER.warning("No session token stored; user needs to sign in.")
            message = "Please sign in first (use the sign_in tool)."
            self.events.notify("Not Signed In", message, NotificationLevel.ERROR)
            return ResolveOutcome(ResolveStatus.NOT_SIGNED_IN, message)

        try:
            result = await self.backend.resolve(module_name, xml_content, token)
        except BackendIOError as error:
            LOGGER.error("Network or IO error calling LSK backend API: %s", error)
            return self._failed(f"Network Error: {error}")
        except InvalidArgumentError:
            raise
        except Exception as error:
            LOGGER.exception("Unexpected error during LSK resolution")
            return self._failed(f"Plugin Error: {error}")

        if isinstance(result, BackendError):
            if is_authentication_error(result.message):
                return await self._reauthenticate(result.message)
            return self._failed(result.message)

        self.events.notify("LSKs Resolved", "Selection resolved successfully.")
        return ResolveOutcome(
            ResolveStatus.RESOLVED,
            result.message or "LSKs resolved.",
            resolved_xml=result.data,
        )

    def _failed(self, message: str) -> ResolveOutcome:
        self.events.notify("LSK Resolution Failed", message, NotificationLevel.ERROR)
        return ResolveOutcome(ResolveStatus.FAILED, message)

    async def _reauthenticate(self, reason: str) -> ResolveOutcome:
        LOGGER.info("Authentication error during LSK resolution; clearing token and re-authenticating.")
        self.coordinator.invalidate_session(reason)
        message = (
            "Your session is invalid or has expired. "
            "Complete the GitHub sign-in in your browser, then retry."
        )
        try:
            authorization_url = await self.coordinator.initiate_sign_in()
        except Exception as error:
            LOGGER.error("Could not restart sign-in after session invalidation: %s", error)
            return ResolveOutcome(
                ResolveStatus.REAUTH_REQUIRED,
                f"Your session is invalid or has expired. Sign-in could not be started: {error}",
            )
        return ResolveOutcome(
            ResolveStatus.REAUTH_REQUIRED,
            message,
            authorization_url=authorization_url,
        )
