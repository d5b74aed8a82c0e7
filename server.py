from __future__ import annotations

from typing import TYPE_CHECKING

from auth.callback import CallbackListener
from auth.credential_store import build_credential_store
from auth.events import EventChannel
from auth.github_oauth import AuthCoordinator
from auth.pending_state import PendingStateSlot
from lskmcp.backend import BackendApiClient
from lskmcp.constants import APP_VERSION, LOGGER, SERVER_NAME
from lskmcp.env import is_truthy, load_env, load_settings, setup_logging, validate_env
from lskmcp.mcp_app import (
    NotificationLog,
    mount_health_route,
    publish_startup_prompt,
    register_tools,
)
from lskmcp.resolver import LskResolver

if TYPE_CHECKING:
    from fastmcp import FastMCP

__all__ = [
    "APP_VERSION",
    "create_mcp",
    "is_truthy",
    "load_env",
    "main",
    "setup_logging",
    "validate_env",
]


def create_mcp() -> "FastMCP":
    from fastmcp import FastMCP

    load_env()
    debug_enabled = setup_logging()
    validate_env()
    settings = load_settings()

    events = EventChannel()
    notifications = NotificationLog()
    events.subscribe(notifications)

    credential_store = build_credential_store(
        settings.credential_backend,
        path=settings.token_store_path,
    )
    pending_state = PendingStateSlot()
    backend = BackendApiClient(
        settings.api_base_url,
        timeout=settings.api_timeout,
        max_retries=settings.api_max_retries,
        debug=debug_enabled,
    )
    coordinator = AuthCoordinator(
        client_id=settings.github_client_id,
        credential_store=credential_store,
        pending_state=pending_state,
        events=events,
        port_provider=lambda: settings.port,
        callback_path=settings.callback_path,
        scopes=settings.github_scopes,
        authorize_url=settings.github_authorize_url,
    )
    listener = CallbackListener(
        callback_path=settings.callback_path,
        pending_state=pending_state,
        credential_store=credential_store,
        events=events,
        exchange_code_fn=backend.exchange_code,
    )
    resolver = LskResolver(backend=backend, coordinator=coordinator)

    mcp = FastMCP(name=SERVER_NAME)
    listener.mount_routes(mcp)
    mount_health_route(mcp, coordinator)
    register_tools(
        mcp,
        coordinator=coordinator,
        resolver=resolver,
        notifications=notifications,
    )
    setattr(mcp, "_lsk_coordinator", coordinator)
    setattr(mcp, "_lsk_backend", backend)
    setattr(mcp, "_lsk_notifications", notifications)

    publish_startup_prompt(coordinator)
    LOGGER.info(
        "LSK resolver ready; OAuth callback at http://%s:%s%s",
        settings.host,
        settings.port,
        listener.callback_path,
    )
    return mcp


def main() -> None:
    load_env()
    settings = load_settings()
    mcp = create_mcp()
    mcp.run(transport="streamable-http", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
