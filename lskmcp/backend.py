from __future__ import annotations

from dataclasses import dataclass
from typing import Union

import httpx
from pydantic import ValidationError

from auth.errors import BackendIOError, InvalidArgumentError

from .constants import (
    ERROR_BODY_PREVIEW_CHARS,
    GITHUB_EXCHANGE_PATH,
    LOGGER,
    NO_RETRY_EXTENSION,
    RESOLVE_PATH,
)
from .http import build_http_client
from .schemas import ApiResponse, AuthResponse, extract_error_message

JSON_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}
EMPTY_SUCCESS_MESSAGE = "Received unexpected empty success response from server."
AUTH_ERROR_SIGNATURES = ("(HTTP Status: 401)", "Invalid or expired session token")


@dataclass(frozen=True)
class AuthResult:
    message: str | None
    token: str | None


@dataclass(frozen=True)
class ResolveSuccess:
    data: str
    message: str | None = None


@dataclass(frozen=True)
class BackendError:
    message: str
    status_code: int | None = None


ApiResult = Union[ResolveSuccess, BackendError]


def is_authentication_error(message: str | None) -> bool:
    if not message:
        return False
    return any(signature in message for signature in AUTH_ERROR_SIGNATURES)


def compose_error_message(
    body: str,
    status_code: int,
    *,
    fallback_prefix: str,
    ellipsis: bool = False,
) -> str:
    backend_error = extract_error_message(body)
    if backend_error is not None:
        return f"{backend_error} (HTTP Status: {status_code})"

    message = f"{fallback_prefix} (HTTP Status: {status_code})"
    if body:
        message += " - " + body[:ERROR_BODY_PREVIEW_CHARS]
        if ellipsis:
            message += "..."
    return message


def _require(value: str | None, message: str) -> str:
    if value is None or not value.strip():
        raise InvalidArgumentError(message)
    return value


class BackendApiClient:
    """Client for the LSK backend's code-exchange and resolve endpoints."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        max_retries: int = 2,
        debug: bool = False,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or build_http_client(
            self.base_url,
            timeout=timeout,
            max_retries=max_retries,
            debug=debug,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(
        self,
        path: str,
        payload: dict[str, str],
        *,
        headers: dict[str, str],
        retry: bool,
    ) -> httpx.Response:
        url = f"{self.base_url}{path}"
        extensions = {} if retry else {NO_RETRY_EXTENSION: True}
        LOGGER.debug("Executing POST request to %s", url)
        try:
            return await self._client.post(
                url,
                json=payload,
                headers=headers,
                extensions=extensions,
            )
        except httpx.HTTPError as error:
            LOGGER.error("Transport error during HTTP request to %s: %s", url, error)
            raise BackendIOError(f"Request to {url} failed: {error}") from error

    async def exchange_code(self, code: str | None) -> AuthResult:
        code = _require(code, "GitHub authorization code cannot be null or empty.")
        LOGGER.info("Calling backend GitHub code exchange API.")

        response = await self._post(
            GITHUB_EXCHANGE_PATH,
            {"code": code},
            headers=JSON_HEADERS,
            retry=False,
        )
        body = response.text

        if not response.is_success:
            message = compose_error_message(
                body,
                response.status_code,
                fallback_prefix="GitHub Code Exchange failed",
                ellipsis=True,
            )
            LOGGER.warning("GitHub code exchange failed: %s", message)
            raise BackendIOError(message)

        if not body:
            LOGGER.error("Empty body on successful status %s for code exchange.", response.status_code)
            raise BackendIOError(
                f"Empty response body on successful status {response.status_code} "
                "for GitHub Code Exchange."
            )
        try:
            parsed = AuthResponse.model_validate_json(body)
        except ValidationError as error:
            LOGGER.error("Failed to parse successful code exchange response.")
            raise BackendIOError(
                "Invalid JSON format in successful response from server for GitHub Code Exchange."
            ) from error

        LOGGER.info("GitHub code exchange successful according to backend.")
        return AuthResult(message=parsed.message, token=parsed.token)

    async def resolve(
        self,
        module_name: str | None,
        xml_content: str | None,
        token: str | None,
    ) -> ApiResult:
        token = _require(token, "Auth token cannot be null or empty for resolution.")
        module_name = _require(module_name, "Module name cannot be empty for resolution.")
        xml_content = _require(xml_content, "XML content cannot be empty for resolution.")
        LOGGER.info("Calling LSK resolve API for module %s.", module_name)

        response = await self._post(
            RESOLVE_PATH,
            {"moduleName": module_name, "xmlContent": xml_content},
            headers={**JSON_HEADERS, "Authorization": f"Bearer {token}"},
            retry=True,
        )
        body = response.text

        if not response.is_success:
            message = compose_error_message(
                body,
                response.status_code,
                fallback_prefix="LSK Resolution failed",
            )
            LOGGER.warning("LSK resolution failed on backend: %s", message)
            return BackendError(message=message, status_code=response.status_code)

        if not body:
            raise BackendIOError(
                f"Empty response body on successful status {response.status_code} from server."
            )
        try:
            parsed = ApiResponse.model_validate_json(body)
        except ValidationError as error:
            LOGGER.error("Failed to parse successful resolve response.")
            raise BackendIOError("Invalid JSON format in successful response from server.") from error

        if parsed.error is not None and parsed.error.strip():
            LOGGER.warning("Backend returned an error with status %s: %s", response.status_code, parsed.error)
            return BackendError(message=parsed.error, status_code=response.status_code)
        if parsed.data is None:
            LOGGER.warning("Backend returned success status but no data or error message.")
            return BackendError(message=EMPTY_SUCCESS_MESSAGE, status_code=response.status_code)

        LOGGER.info("LSK resolution successful according to backend.")
        return ResolveSuccess(data=parsed.data, message=parsed.message)
