from __future__ import annotations

import urllib.parse

LOOPBACK_HOST = "127.0.0.1"


def normalize_callback_path(path: str) -> str:
    path = path.strip()
    return path if path.startswith("/") else f"/{path}"


def build_callback_url(port: int, path: str, *, host: str = LOOPBACK_HOST) -> str:
    return f"http://{host}:{port}{normalize_callback_path(path)}"


def matches_callback_prefix(path: str, callback_path: str) -> bool:
    return path.startswith(normalize_callback_path(callback_path))


def first_query_value(query: str, name: str) -> str | None:
    values = urllib.parse.parse_qs(query, keep_blank_values=True).get(name)
    if not values:
        return None
    return values[0]
