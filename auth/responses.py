from __future__ import annotations

import html

from starlette.responses import HTMLResponse, Response

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

CLOSE_PAGE_HINT = "You can close this page."


def callback_page(message: str, status_code: int) -> Response:
    body = f"<html><body>{html.escape(message)} {CLOSE_PAGE_HINT}</body></html>"
    response = HTMLResponse(body, status_code=status_code, headers=NO_CACHE_HEADERS)
    response.headers["content-type"] = "text/html; charset=UTF-8"
    return response
