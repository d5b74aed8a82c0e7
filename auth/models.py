from __future__ import annotations

import enum
from dataclasses import dataclass


@dataclass(frozen=True)
class AuthorizationRequest:
    state: str
    redirect_uri: str
    scopes: list[str]
    client_id: str


class CallbackOutcome(enum.Enum):
    WRONG_PATH = "wrong_path"
    PROVIDER_ERROR = "provider_error"
    NO_PENDING_STATE = "no_pending_state"
    STATE_MISMATCH = "state_mismatch"
    MISSING_CODE = "missing_code"
    EXCHANGE_FAILED = "exchange_failed"
    SUCCESS = "success"
