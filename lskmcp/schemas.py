from __future__ import annotations

from typing import Callable

from pydantic import BaseModel, ValidationError


class ApiResponse(BaseModel):
    message: str | None = None
    data: str | None = None
    error: str | None = None


class SimpleResponse(BaseModel):
    message: str | None = None


class AuthResponse(BaseModel):
    message: str | None = None
    token: str | None = None


def _non_blank(value: str | None) -> str | None:
    if value is None or not value.strip():
        return None
    return value


# Most specific shape first.
ERROR_SHAPES: tuple[tuple[type[BaseModel], Callable[[BaseModel], str | None]], ...] = (
    (ApiResponse, lambda parsed: parsed.error),
    (SimpleResponse, lambda parsed: parsed.message),
    (AuthResponse, lambda parsed: parsed.message),
)


def extract_error_message(body: str | bytes | None) -> str | None:
    if not body:
        return None

    for model, field in ERROR_SHAPES:
        try:
            parsed = model.model_validate_json(body)
        except ValidationError:
            continue
        message = _non_blank(field(parsed))
        if message is not None:
            return message
    return None
