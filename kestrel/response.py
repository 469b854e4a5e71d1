"""
Response - Write-once ASGI response sink.

The host server hands a ResponseWriter to the router, which lends it to a
Context. The writer emits exactly one ``http.response.start`` /
``http.response.body`` pair; any later write is refused.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Mapping, Optional, Tuple, Union

from .faults import ClientDisconnectFault, ResponseAlreadySentFault, ResponseStreamFault


logger = logging.getLogger("kestrel.response")

Send = Callable[[dict], Awaitable[None]]


class ResponseWriter:
    """
    ASGI response sink.

    Headers may be set until the response is written. ``write`` sends the
    status line, headers and full body in one go.
    """

    __slots__ = ("_send", "_headers", "_written", "_bytes_sent", "status")

    def __init__(
        self,
        send: Send,
        headers: Optional[Mapping[str, str]] = None,
    ):
        self._send = send
        self._headers: Dict[str, str] = {k.lower(): v for k, v in (headers or {}).items()}
        self._written = False
        self._bytes_sent = 0
        self.status: Optional[int] = None

    @property
    def headers(self) -> Dict[str, str]:
        return self._headers

    @property
    def written(self) -> bool:
        return self._written

    @property
    def bytes_sent(self) -> int:
        return self._bytes_sent

    def set_header(self, name: str, value: str) -> None:
        if self._written:
            raise ResponseAlreadySentFault(message=f"Cannot set header {name!r}: response already sent")
        if "\r" in value or "\n" in value:
            raise ValueError(f"Invalid header value for {name!r}")
        self._headers[name.lower()] = value

    def _prepare_headers(self, body: bytes) -> List[Tuple[bytes, bytes]]:
        headers = dict(self._headers)
        headers["content-length"] = str(len(body))
        return [
            (name.encode("latin-1"), value.encode("latin-1"))
            for name, value in headers.items()
        ]

    async def write(
        self,
        content: Union[bytes, str],
        *,
        status: int = 200,
        content_type: Optional[str] = None,
        encoding: str = "utf-8",
    ) -> int:
        """
        Send the complete response.

        Args:
            content: Body (str is encoded with ``encoding``)
            status: HTTP status code
            content_type: Content-Type header value

        Returns:
            Number of body bytes sent

        Raises:
            ResponseAlreadySentFault: On a second write
            ClientDisconnectFault: If the client went away mid-send
            ResponseStreamFault: If the transport rejected the write
        """
        if self._written:
            raise ResponseAlreadySentFault()

        # Lone surrogates (e.g. from os.fsdecode) must not abort the write.
        try:
            body = content.encode(encoding, "replace") if isinstance(content, str) else bytes(content)
        except Exception as e:
            raise ResponseStreamFault(message=f"Response body could not be encoded: {e}") from e

        self._written = True
        if content_type:
            self._headers["content-type"] = content_type
        self.status = status

        try:
            await self._send({
                "type": "http.response.start",
                "status": status,
                "headers": self._prepare_headers(body),
            })
            await self._send({
                "type": "http.response.body",
                "body": body,
                "more_body": False,
            })
        except asyncio.CancelledError:
            raise ClientDisconnectFault(metadata={"bytes_sent": self._bytes_sent})
        except (ConnectionError, ClientDisconnectFault) as e:
            raise ClientDisconnectFault(
                message=f"Client disconnected: {e}",
                metadata={"bytes_sent": self._bytes_sent},
            ) from e
        except Exception as e:
            raise ResponseStreamFault(
                message=f"Response stream error: {e}",
                metadata={"bytes_sent": self._bytes_sent},
            ) from e

        self._bytes_sent = len(body)
        logger.debug("Response sent: status=%s bytes=%s", status, self._bytes_sent)
        return self._bytes_sent
