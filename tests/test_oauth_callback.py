import asyncio
import urllib.parse

import pytest
from starlette.requests import Request

from auth.errors import BackendIOError
from auth.events import AuthStateChanged
from auth.models import CallbackOutcome
from lskmcp.backend import AuthResult
from tests.oauth_helpers import (
    CALLBACK_PATH,
    _build_auth_components,
    _build_callback_app,
    _state_from_url,
)


def _request(path: str, method: str = "GET", **params) -> Request:
    return Request(
        {
            "type": "http",
            "method": method,
            "scheme": "http",
            "server": ("127.0.0.1", 8000),
            "root_path": "",
            "path": path,
            "query_string": urllib.parse.urlencode(params).encode("ascii"),
            "headers": [],
        }
    )


def test_callback_success_stores_token() -> None:
    seen = {}

    async def exchange_code_fn(code):
        seen["code"] = code
        return AuthResult(message="ok", token="tok123")

    coordinator, _, store, test_client = _build_callback_app(exchange_code_fn=exchange_code_fn)
    state = _state_from_url(coordinator.begin_sign_in())

    response = test_client.get(CALLBACK_PATH, params={"code": "gh-code", "state": state})

    assert response.status_code == 200
    assert response.headers["content-type"] == "text/html; charset=UTF-8"
    assert response.headers["cache-control"] == "no-cache, no-store, must-revalidate"
    assert response.headers["pragma"] == "no-cache"
    assert response.headers["expires"] == "0"
    assert "Sign-in successful!" in response.text
    assert seen["code"] == "gh-code"
    assert store.get() == "tok123"
    assert coordinator.pending_state.peek() is None


def test_callback_without_pending_state_is_forbidden() -> None:
    _, listener, store, test_client = _build_callback_app()

    response = test_client.get(CALLBACK_PATH, params={"code": "gh-code", "state": "anything"})

    assert response.status_code == 403
    assert store.get() is None


def test_replayed_state_is_forbidden() -> None:
    coordinator, _, _, test_client = _build_callback_app()
    state = _state_from_url(coordinator.begin_sign_in())

    first = test_client.get(CALLBACK_PATH, params={"code": "gh-code", "state": state})
    replay = test_client.get(CALLBACK_PATH, params={"code": "gh-code", "state": state})

    assert first.status_code == 200
    assert replay.status_code == 403


def test_state_mismatch_consumes_pending_state() -> None:
    coordinator, listener, store, test_client = _build_callback_app()
    coordinator.pending_state.set("abc")

    mismatch = test_client.get(CALLBACK_PATH, params={"code": "gh-code", "state": "xyz"})
    assert mismatch.status_code == 403
    assert "xyz" not in mismatch.text
    assert "abc" not in mismatch.text

    retry = test_client.get(CALLBACK_PATH, params={"code": "gh-code", "state": "abc"})
    assert retry.status_code == 403
    assert store.get() is None


def test_missing_state_parameter_is_forbidden() -> None:
    coordinator, _, _, test_client = _build_callback_app()
    coordinator.begin_sign_in()

    response = test_client.get(CALLBACK_PATH, params={"code": "gh-code"})

    assert response.status_code == 403


def test_missing_code_is_bad_request() -> None:
    coordinator, listener, store, test_client = _build_callback_app()
    state = _state_from_url(coordinator.begin_sign_in())

    response = test_client.get(CALLBACK_PATH, params={"code": "  ", "state": state})

    assert response.status_code == 400
    assert coordinator.pending_state.peek() is None
    assert store.get() is None


def test_provider_error_clears_pending_state() -> None:
    coordinator, listener, _, test_client = _build_callback_app()
    coordinator.begin_sign_in()

    response = test_client.get(
        CALLBACK_PATH,
        params={"error": "access_denied", "error_description": "<b>User denied</b>"},
    )

    assert response.status_code == 400
    assert "GitHub OAuth Error: access_denied - &lt;b&gt;User denied&lt;/b&gt;" in response.text
    assert coordinator.pending_state.peek() is None


def test_exchange_failure_returns_500_and_keeps_state_cleared() -> None:
    async def exchange_code_fn(code):
        del code
        raise BackendIOError("Bad code (HTTP Status: 400)")

    coordinator, listener, store, test_client = _build_callback_app(
        exchange_code_fn=exchange_code_fn
    )
    state = _state_from_url(coordinator.begin_sign_in())

    response = test_client.get(CALLBACK_PATH, params={"code": "gh-code", "state": state})

    assert response.status_code == 500
    assert coordinator.pending_state.peek() is None
    assert store.get() is None


def test_exchange_without_token_returns_500() -> None:
    async def exchange_code_fn(code):
        del code
        return AuthResult(message="no token for you", token=None)

    coordinator, _, store, test_client = _build_callback_app(exchange_code_fn=exchange_code_fn)
    state = _state_from_url(coordinator.begin_sign_in())

    response = test_client.get(CALLBACK_PATH, params={"code": "gh-code", "state": state})

    assert response.status_code == 500
    assert store.get() is None


def test_subpath_of_callback_is_not_found() -> None:
    coordinator, listener, _, test_client = _build_callback_app()
    coordinator.begin_sign_in()

    response = test_client.get(CALLBACK_PATH + "/extra", params={"code": "c", "state": "s"})

    assert response.status_code == 404
    assert coordinator.pending_state.peek() is not None


def test_is_supported_requires_get_and_prefix() -> None:
    _, listener, _, _, _ = _build_auth_components()

    assert listener.is_supported("GET", CALLBACK_PATH) is True
    assert listener.is_supported("GET", CALLBACK_PATH + "/extra") is True
    assert listener.is_supported("POST", CALLBACK_PATH) is False
    assert listener.is_supported("GET", "/health") is False


@pytest.mark.asyncio
async def test_process_declines_unrelated_requests() -> None:
    _, listener, _, _, _ = _build_auth_components()

    assert await listener.process(_request("/health")) is None
    assert await listener.process(_request(CALLBACK_PATH, method="POST")) is None


@pytest.mark.asyncio
async def test_success_publishes_auth_change_and_notification() -> None:
    coordinator, listener, store, recorder, _ = _build_auth_components()
    state = _state_from_url(coordinator.begin_sign_in())

    response = await listener.process(_request(CALLBACK_PATH, code="gh-code", state=state))
    await asyncio.sleep(0)

    assert response.status_code == 200
    assert store.get() == "session-token"
    assert AuthStateChanged(signed_in=True) in recorder.events
    assert recorder.titles()[-1] == "Sign-In Successful"


@pytest.mark.asyncio
async def test_each_failure_produces_one_error_notification() -> None:
    coordinator, listener, _, recorder, _ = _build_auth_components()
    coordinator.pending_state.set("abc")

    response = await listener.process(_request(CALLBACK_PATH, code="gh-code", state="xyz"))
    await asyncio.sleep(0)

    assert response.status_code == 403
    assert recorder.titles() == ["Sign-In Error"]
    assert all("abc" not in event.content and "xyz" not in event.content for event in recorder.events)


@pytest.mark.asyncio
async def test_exchange_error_message_reaches_notification() -> None:
    async def exchange_code_fn(code):
        del code
        raise BackendIOError("backend down")

    coordinator, listener, _, recorder, _ = _build_auth_components(
        exchange_code_fn=exchange_code_fn
    )
    state = _state_from_url(coordinator.begin_sign_in())

    response = await listener.process(_request(CALLBACK_PATH, code="gh-code", state=state))
    await asyncio.sleep(0)

    assert response.status_code == 500
    assert recorder.events[-1].title == "Sign-In Failed"
    assert "backend down" in recorder.events[-1].content


@pytest.mark.parametrize(
    ("path", "params", "pending", "expected_outcome", "expected_status"),
    [
        (CALLBACK_PATH + "/extra", {"code": "c", "state": "abc"}, "abc", CallbackOutcome.WRONG_PATH, 404),
        (CALLBACK_PATH, {"error": "access_denied"}, "abc", CallbackOutcome.PROVIDER_ERROR, 400),
        (CALLBACK_PATH, {"code": "c", "state": "abc"}, None, CallbackOutcome.NO_PENDING_STATE, 403),
        (CALLBACK_PATH, {"code": "c", "state": "xyz"}, "abc", CallbackOutcome.STATE_MISMATCH, 403),
        (CALLBACK_PATH, {"state": "abc"}, "abc", CallbackOutcome.MISSING_CODE, 400),
        (CALLBACK_PATH, {"code": "c", "state": "abc"}, "abc", CallbackOutcome.SUCCESS, 200),
    ],
)
@pytest.mark.asyncio
async def test_handle_reports_outcome_per_request(
    path, params, pending, expected_outcome, expected_status
) -> None:
    _, listener, _, _, _ = _build_auth_components()
    listener.pending_state.set(pending)

    outcome, response = await listener.handle(_request(path, **params))

    assert outcome is expected_outcome
    assert response.status_code == expected_status


@pytest.mark.asyncio
async def test_concurrent_callbacks_get_their_own_outcomes() -> None:
    release = asyncio.Event()

    async def exchange_code_fn(code):
        del code
        await release.wait()
        return AuthResult(message="ok", token="tok123")

    _, listener, store, _, _ = _build_auth_components(exchange_code_fn=exchange_code_fn)
    listener.pending_state.set("abc")

    first = asyncio.create_task(listener.handle(_request(CALLBACK_PATH, code="c", state="abc")))
    await asyncio.sleep(0)
    second = await listener.handle(_request(CALLBACK_PATH, code="c", state="abc"))
    release.set()
    first_outcome, first_response = await first

    assert second[0] is CallbackOutcome.NO_PENDING_STATE
    assert first_outcome is CallbackOutcome.SUCCESS
    assert first_response.status_code == 200
    assert store.get() == "tok123"


@pytest.mark.asyncio
async def test_handle_declines_unrelated_requests() -> None:
    _, listener, _, _, _ = _build_auth_components()

    assert await listener.handle(_request("/health")) is None
