"""
Request - ASGI request carrier.

Provides:
- Read-only access to method, path, query string, version and headers
- Idempotent, size-limited body reading
- ``dump_request``: best-effort wire-format dump for diagnostic pages
"""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Mapping, Optional

from ._datastructures import Headers
from .faults import ClientDisconnectFault, PayloadTooLargeFault, RequestDumpFault


# ============================================================================
# Request Class
# ============================================================================

class Request:
    """
    Request object wrapping an ASGI HTTP scope and receive channel.

    The router owns it; a Context only borrows it for the lifetime of a
    single request.
    """

    def __init__(
        self,
        scope: Mapping[str, Any],
        receive: Callable[..., Awaitable[dict]],
        *,
        max_body_size: int = 10_485_760,  # 10 MiB
    ):
        """
        Initialize Request.

        Args:
            scope: ASGI scope dict
            receive: ASGI receive callable
            max_body_size: Maximum request body size in bytes
        """
        self.scope = scope
        self._receive = receive
        self.max_body_size = max_body_size

        self.state: Dict[str, Any] = {}

        self._body: Optional[bytes] = None
        self._body_consumed = False
        self._headers: Optional[Headers] = None
        self._disconnected = False

    # ========================================================================
    # Basic Properties
    # ========================================================================

    @property
    def method(self) -> str:
        return self.scope.get("method", "GET")

    @property
    def http_version(self) -> str:
        return self.scope.get("http_version", "1.1")

    @property
    def path(self) -> str:
        return self.scope.get("path", "/")

    @property
    def query_string(self) -> str:
        return self.scope.get("query_string", b"").decode("latin-1")

    @property
    def client(self) -> Optional[tuple]:
        return self.scope.get("client")

    @property
    def headers(self) -> Headers:
        if self._headers is None:
            self._headers = Headers(raw=list(self.scope.get("headers", [])))
        return self._headers

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.headers.get(name, default)

    def is_disconnected(self) -> bool:
        return self._disconnected

    # ========================================================================
    # Body
    # ========================================================================

    async def _receive_message(self) -> dict:
        try:
            message = await self._receive()
        except asyncio.CancelledError:
            self._disconnected = True
            raise
        if message["type"] == "http.disconnect":
            self._disconnected = True
            raise ClientDisconnectFault()
        return message

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        """
        Stream request body in chunks.

        Raises:
            ClientDisconnectFault: If client disconnects during streaming
            PayloadTooLargeFault: If body exceeds max_body_size
        """
        if self._body is not None:
            yield self._body
            return

        if self._body_consumed:
            return

        total_size = 0
        while True:
            message = await self._receive_message()
            chunk = message.get("body", b"")
            if chunk:
                total_size += len(chunk)
                if total_size > self.max_body_size:
                    raise PayloadTooLargeFault(
                        metadata={"max_allowed": self.max_body_size, "actual": total_size},
                    )
                yield chunk
            if not message.get("more_body", False):
                break

        self._body_consumed = True

    async def body(self) -> bytes:
        """Read full request body (idempotent)."""
        if self._body is not None:
            return self._body

        chunks = [chunk async for chunk in self.iter_bytes()]
        self._body = b"".join(chunks)
        return self._body

    def __repr__(self) -> str:
        return f"Request({self.method} {self.path})"


# ============================================================================
# Request dump
# ============================================================================

def _request_line(request: Any) -> str:
    target = getattr(request, "path", "/") or "/"
    query = getattr(request, "query_string", "")
    if query:
        target = f"{target}?{query}"
    method = getattr(request, "method", "GET")
    version = getattr(request, "http_version", "1.1")
    return f"{method} {target} HTTP/{version}\r\n"


async def dump_request(
    request: Any,
    *,
    body: bool = True,
    max_body: int = 65536,
) -> str:
    """
    Dump a request in HTTP/1.x wire format.

    Args:
        request: A Request (or any object exposing method, path,
            query_string, http_version, headers and an async ``body()``)
        body: Include the body
        max_body: Body bytes to include before truncating

    Returns:
        Request line, headers, blank line and (optionally) the body.

    Raises:
        RequestDumpFault: If the request cannot be read. The partial dump
            produced so far is available as ``metadata["partial"]``.
    """
    parts = []
    try:
        parts.append(_request_line(request))
        for name, value in request.headers.items():
            parts.append(f"{name}: {value}\r\n")
        parts.append("\r\n")

        if body and hasattr(request, "body"):
            raw = await request.body()
            text = raw[:max_body].decode("utf-8", "replace")
            if len(raw) > max_body:
                text += f"\n... ({len(raw) - max_body} more bytes)"
            parts.append(text)
    except Exception as e:
        raise RequestDumpFault(
            message=f"Request dump failed: {e}",
            metadata={"partial": "".join(parts)},
        ) from e

    return "".join(parts)
