from __future__ import annotations

import logging

LOGGER = logging.getLogger("lskmcp.backend")
APP_VERSION = "0.1.0"
SERVER_NAME = "LSK Resolver"

DEFAULT_API_BASE_URL = "http://localhost:8080/api"
GITHUB_EXCHANGE_PATH = "/auth/github/exchange-code"
RESOLVE_PATH = "/logical-seed-key/resolve"

DEFAULT_CALLBACK_PATH = "/api/lsk/github/callback"
DEFAULT_GITHUB_SCOPES = "read:user user:email"
DEFAULT_TOKEN_STORE_PATH = ".lsk_tokens.json"
CREDENTIAL_BACKENDS = {"keyring", "file", "memory"}

NO_RETRY_EXTENSION = "lskmcp_no_retry"
ERROR_BODY_PREVIEW_CHARS = 200
