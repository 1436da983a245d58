"""HTTP client for connected MCP tool servers."""

from __future__ import annotations

import itertools
import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
JSONRPC_VERSION = "2.0"


@dataclass
class ConnectedResponse:
    """Response from a connected tool server."""

    success: bool
    data: dict[str, Any] | None = None
    error: str | None = None


def _parse_event_stream(text: str) -> dict[str, Any]:
    """Return the last JSON ``data:`` event of a server-sent event body."""
    message: dict[str, Any] = {}
    for line in text.splitlines():
        if line.startswith("data:"):
            chunk = line[len("data:"):].strip()
            if chunk:
                message = json.loads(chunk)
    return message


def result_payload(result: dict[str, Any] | None) -> Any:
    """Best directive-shaped payload inside a ``tools/call`` result.

    Structured content wins; otherwise the first text content block is
    returned as-is (the directive classifier decodes JSON text itself).
    """
    if not result:
        return None
    structured = result.get("structuredContent")
    if structured is not None:
        return structured
    for block in result.get("content") or []:
        if isinstance(block, dict) and block.get("type") == "text":
            return block.get("text")
    return None


class ConnectedToolClient:
    """JSON-RPC over HTTP client for one connected tool server.

    Only ``tools/list`` and ``tools/call`` are used. Failures are returned
    as unsuccessful responses and never raised.
    """

    def __init__(
        self,
        name: str,
        url: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            name: Name the server is registered under.
            url: Endpoint accepting JSON-RPC POSTs.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self.name = name
        self.url = url
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._ids = itertools.count(1)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _rpc(self, method: str, params: dict[str, Any] | None = None) -> ConnectedResponse:
        client = await self._get_client()
        body = {
            "jsonrpc": JSONRPC_VERSION,
            "id": next(self._ids),
            "method": method,
            "params": params or {},
        }
        try:
            response = await client.post(
                self.url,
                json=body,
                headers={"Accept": "application/json, text/event-stream"},
            )
            response.raise_for_status()
            if response.headers.get("content-type", "").startswith("text/event-stream"):
                message = _parse_event_stream(response.text)
            else:
                message = response.json()
        except httpx.ConnectError as e:
            return ConnectedResponse(
                success=False,
                error=f"Cannot connect to {self.name} at {self.url}. Error: {e}",
            )
        except httpx.HTTPStatusError as e:
            return ConnectedResponse(
                success=False,
                error=f"API error: {e.response.status_code} - {e.response.text}",
            )
        except httpx.TimeoutException:
            return ConnectedResponse(
                success=False,
                error=f"Request timed out after {self.timeout}s",
            )
        except Exception as e:
            return ConnectedResponse(success=False, error=str(e))

        if not isinstance(message, dict):
            return ConnectedResponse(success=False, error="Malformed JSON-RPC response")
        if message.get("error"):
            error = message["error"]
            text = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            return ConnectedResponse(success=False, error=text)
        result = message.get("result")
        if isinstance(result, dict) and result.get("isError"):
            return ConnectedResponse(
                success=False,
                data=result,
                error=str(result_payload(result) or "Tool reported an error"),
            )
        return ConnectedResponse(success=True, data=result if isinstance(result, dict) else {})

    async def list_tools(self) -> ConnectedResponse:
        """List the tools the connected server exposes."""
        return await self._rpc("tools/list")

    async def call_tool(self, tool: str, arguments: dict[str, Any] | None = None) -> ConnectedResponse:
        """Call a tool on the connected server."""
        logger.info("Calling %s on connected server %s", tool, self.name)
        return await self._rpc("tools/call", {"name": tool, "arguments": arguments or {}})
