from __future__ import annotations

import logging
from collections import deque
from dataclasses import asdict
from typing import TYPE_CHECKING

from mcp.types import ToolAnnotations

from auth.events import AuthStateChanged, Event, Notification, NotificationLevel

from .constants import APP_VERSION, LOGGER

if TYPE_CHECKING:
    from fastmcp import FastMCP

    from auth.github_oauth import AuthCoordinator

    from .resolver import LskResolver

_LOG_LEVELS = {
    NotificationLevel.INFO: logging.INFO,
    NotificationLevel.WARNING: logging.WARNING,
    NotificationLevel.ERROR: logging.ERROR,
}

READ_ONLY = ToolAnnotations(readOnlyHint=True, destructiveHint=False, openWorldHint=False)
OPEN_WORLD = ToolAnnotations(readOnlyHint=False, destructiveHint=False, openWorldHint=True)


class NotificationLog:
    """Event subscriber that logs notifications and keeps the latest ones."""

    def __init__(self, max_entries: int = 50) -> None:
        self._entries: deque[Notification] = deque(maxlen=max_entries)
        self.signed_in: bool | None = None

    def __call__(self, event: Event) -> None:
        if isinstance(event, AuthStateChanged):
            self.signed_in = event.signed_in
            LOGGER.info("Authentication state changed: signed_in=%s", event.signed_in)
            return
        self._entries.append(event)
        LOGGER.log(_LOG_LEVELS[event.level], "[%s] %s", event.title, event.content)

    def recent(self, limit: int | None = None) -> list[dict]:
        entries = list(self._entries)
        if limit is not None:
            entries = entries[-limit:] if limit > 0 else []
        return [{**asdict(entry), "level": entry.level.value} for entry in entries]


def publish_startup_prompt(coordinator: "AuthCoordinator") -> bool:
    if coordinator.is_signed_in():
        LOGGER.info("User is already signed in. No prompt needed.")
        return False
    coordinator.events.notify(
        "LSK Resolver Sign In",
        "Sign in with GitHub to resolve Logical Seed Keys (LSKs).",
    )
    return True


def mount_health_route(mcp: "FastMCP", coordinator: "AuthCoordinator") -> None:
    from starlette.requests import Request
    from starlette.responses import JSONResponse, Response

    @mcp.custom_route("/health", methods=["GET"])
    async def health_route(request: Request) -> Response:
        del request
        return JSONResponse(
            {
                "status": "ok",
                "version": APP_VERSION,
                "signed_in": coordinator.is_signed_in(),
            }
        )


def register_tools(
    mcp: "FastMCP",
    *,
    coordinator: "AuthCoordinator",
    resolver: "LskResolver",
    notifications: NotificationLog,
) -> None:
    @mcp.tool(annotations=OPEN_WORLD)
    async def sign_in() -> dict:
        """Start GitHub sign-in for the LSK backend in the user's browser."""
        if coordinator.is_signed_in():
            coordinator.events.notify("Already Signed In", "You are already signed in.")
            return {"status": "already_signed_in", "message": "You are already signed in."}
        try:
            authorization_url = await coordinator.initiate_sign_in()
        except Exception as error:
            return {"status": "error", "message": f"Could not initiate sign-in process: {error}"}
        coordinator.events.notify(
            "Sign In Initiated",
            "Please authorize the application in the opened browser window to complete sign in.",
        )
        return {
            "status": "pending",
            "message": "Authorize the application in the browser window to complete sign in.",
            "authorization_url": authorization_url,
        }

    @mcp.tool(annotations=OPEN_WORLD)
    async def sign_out() -> dict:
        """Forget the stored LSK backend session."""
        coordinator.sign_out()
        return {"status": "signed_out"}

    @mcp.tool(annotations=READ_ONLY)
    async def auth_status() -> dict:
        """Report whether a backend session token is stored."""
        return {"signed_in": coordinator.is_signed_in()}

    @mcp.tool(annotations=OPEN_WORLD)
    async def resolve_lsk(module_name: str, xml_content: str) -> dict:
        """Resolve Logical Seed Key placeholders in an XML fragment."""
        try:
            outcome = await resolver.resolve(module_name, xml_content)
        except ValueError as error:
            return {"status": "invalid_argument", "message": str(error)}
        payload = {"status": outcome.status.value, "message": outcome.message}
        if outcome.resolved_xml is not None:
            payload["resolved_xml"] = outcome.resolved_xml
        if outcome.authorization_url is not None:
            payload["authorization_url"] = outcome.authorization_url
        return payload

    @mcp.tool(annotations=READ_ONLY)
    async def recent_notifications(limit: int = 10) -> list[dict]:
        """Return the most recent sign-in and resolution notifications."""
        return notifications.recent(limit)
