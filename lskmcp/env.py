from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

from dotenv import load_dotenv

from auth.errors import ConfigError
from auth.github_oauth import GITHUB_AUTHORIZE_URL

from .constants import (
    CREDENTIAL_BACKENDS,
    DEFAULT_API_BASE_URL,
    DEFAULT_CALLBACK_PATH,
    DEFAULT_GITHUB_SCOPES,
    DEFAULT_TOKEN_STORE_PATH,
    LOGGER,
)


@dataclass(frozen=True)
class Settings:
    github_client_id: str
    github_scopes: list[str]
    github_authorize_url: str
    api_base_url: str
    api_timeout: float
    api_max_retries: int
    callback_path: str
    credential_backend: str
    token_store_path: str
    debug: bool
    host: str
    port: int


def is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_env_int(key: str, default: int) -> int:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer value.")


def _get_env_float(key: str, default: float) -> float:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number.")


def load_env() -> None:
    env_path = Path(__file__).resolve().parent.parent / ".env"
    if not env_path.exists():
        return
    load_dotenv(env_path, override=True)


def validate_env() -> None:
    if not os.getenv("GITHUB_CLIENT_ID", "").strip():
        raise ConfigError("Missing required environment variable: GITHUB_CLIENT_ID")

    base_url = os.getenv("LSK_API_BASE_URL", DEFAULT_API_BASE_URL).strip()
    parsed_base_url = urlparse(base_url)
    if parsed_base_url.scheme not in {"http", "https"} or not parsed_base_url.netloc:
        raise ConfigError(
            "LSK_API_BASE_URL must be an http(s) URL (for example: http://localhost:8080/api)."
        )

    backend = os.getenv("LSK_CREDENTIAL_BACKEND", "keyring").strip().lower()
    if backend not in CREDENTIAL_BACKENDS:
        raise ConfigError(
            f"LSK_CREDENTIAL_BACKEND must be one of: {', '.join(sorted(CREDENTIAL_BACKENDS))}"
        )

    if not os.getenv("GITHUB_SCOPES", DEFAULT_GITHUB_SCOPES).split():
        LOGGER.warning("GITHUB_SCOPES is empty; GitHub will grant only public access.")

    if _get_env_float("LSK_API_TIMEOUT", 30.0) <= 0:
        raise ConfigError("LSK_API_TIMEOUT must be greater than zero.")


def load_settings() -> Settings:
    return Settings(
        github_client_id=os.getenv("GITHUB_CLIENT_ID", "").strip(),
        github_scopes=os.getenv("GITHUB_SCOPES", DEFAULT_GITHUB_SCOPES).split(),
        github_authorize_url=os.getenv("GITHUB_AUTHORIZE_URL", GITHUB_AUTHORIZE_URL).strip(),
        api_base_url=os.getenv("LSK_API_BASE_URL", DEFAULT_API_BASE_URL).strip().rstrip("/"),
        api_timeout=_get_env_float("LSK_API_TIMEOUT", 30.0),
        api_max_retries=_get_env_int("LSK_API_MAX_RETRIES", 2),
        callback_path=os.getenv("LSK_CALLBACK_PATH", DEFAULT_CALLBACK_PATH).strip(),
        credential_backend=os.getenv("LSK_CREDENTIAL_BACKEND", "keyring").strip().lower(),
        token_store_path=os.getenv("LSK_TOKEN_STORE_PATH", DEFAULT_TOKEN_STORE_PATH),
        debug=is_truthy(os.getenv("LSK_API_DEBUG", "1")),
        host=os.getenv("MCP_HOST", "127.0.0.1"),
        port=_get_env_int("MCP_PORT", 8000),
    )


def setup_logging() -> bool:
    debug_enabled = is_truthy(os.getenv("LSK_API_DEBUG", "1"))
    if debug_enabled:
        logging.basicConfig(level=logging.INFO)
        LOGGER.setLevel(logging.INFO)
    return debug_enabled
