"""Shared helpers for unit tests that need a bare Starlette request."""
import json
from starlette.requests import Request


def make_request(method: str = "POST", path: str = "/api/v1/test", headers: dict | None = None, body=None) -> Request:
    if body is None:
        raw_body = b""
    elif isinstance(body, (bytes, str)):
        raw_body = body.encode("utf-8") if isinstance(body, str) else body
    else:
        raw_body = json.dumps(body).encode("utf-8")

    raw_headers = [(k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in (headers or {}).items()]

    async def receive():
        return {"type": "http.request", "body": raw_body, "more_body": False}

    scope = {
        "type": "http",
        "method": method,
        "path": path,
        "raw_path": path.encode("utf-8"),
        "root_path": "",
        "scheme": "http",
        "query_string": b"",
        "headers": raw_headers,
        "server": ("testserver", 80),
        "client": ("testclient", 50000),
    }
    return Request(scope, receive)
