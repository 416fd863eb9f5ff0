"""
Shared async HTTP helpers for upstream providers.

Every provider call goes through one httpx.AsyncClient owned by the caller
(one client per portfolio request, per alert pass, per snapshot run). These
helpers raise on transport errors, non-2xx status and JSON-RPC error objects;
chain adapters decide what to swallow.
"""

from __future__ import annotations

from typing import Any

import httpx

from chainpulse.config.env import HTTP_TIMEOUT_SEC
from chainpulse.core.exceptions import UpstreamError

DEFAULT_HEADERS = {"Accept": "application/json"}


def new_client(timeout: float = HTTP_TIMEOUT_SEC) -> httpx.AsyncClient:
    """Return an AsyncClient with project defaults. Use as an async context manager."""
    return httpx.AsyncClient(timeout=httpx.Timeout(timeout), headers=DEFAULT_HEADERS)


async def get_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    params: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    timeout: float | None = None,
) -> Any:
    """GET url and return decoded JSON; raise httpx.HTTPStatusError on non-2xx."""
    kwargs: dict[str, Any] = {"params": params, "headers": headers}
    if timeout is not None:
        kwargs["timeout"] = timeout
    resp = await client.get(url, **kwargs)
    resp.raise_for_status()
    return resp.json()


async def post_json(
    client: httpx.AsyncClient,
    url: str,
    body: Any,
    *,
    headers: dict[str, str] | None = None,
) -> Any:
    """POST a JSON body and return decoded JSON; raise httpx.HTTPStatusError on non-2xx."""
    resp = await client.post(url, json=body, headers=headers)
    resp.raise_for_status()
    return resp.json()


async def json_rpc(
    client: httpx.AsyncClient,
    url: str,
    method: str,
    params: Any,
    *,
    request_id: str | int = 1,
) -> Any:
    """Perform a JSON-RPC 2.0 call; raise UpstreamError on an RPC error object or missing result."""
    body = {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params}
    data = await post_json(client, url, body)
    if not isinstance(data, dict):
        raise UpstreamError(f"{method}: unexpected response type {type(data).__name__}")
    if "error" in data:
        err = data["error"]
        if isinstance(err, dict):
            raise UpstreamError(f"{method}: {err.get('message', err)} (code={err.get('code')})")
        raise UpstreamError(f"{method}: {err}")
    if "result" not in data:
        raise UpstreamError(f"{method}: no result")
    return data["result"]
