"""
Context - Per-request state container.

One Context is created by the router for each inbound request and
discarded once the handler returns. Handlers reach the request, the
response sink, route parameters, the session and the owning application
through it.

The response can be sent at most once: ``send`` claims the Unsent -> Sent
transition under a lock before writing, so a handler and an error path
racing to finalize can never both write.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Union

from ._datastructures import Params
from .faults import ClientDisconnectFault, ResponseAlreadySentFault, ResponseStreamFault

if TYPE_CHECKING:
    from .app import Application
    from .request import Request
    from .response import ResponseWriter
    from .sessions import Session


logger = logging.getLogger("kestrel.context")


class SendState(str, Enum):
    UNSENT = "unsent"
    SENT = "sent"


class Context:
    """
    Request context provided to handlers.

    Attributes:
        request: The HTTP request (borrowed for this request only)
        response: The response sink (borrowed for this request only)
        params: Route parameters
        session: Active session, if the host stack attached one
        app: Owning application (shared, read-only)
        template_loader: Optional hook for application page templates
        state: Free-form per-request storage for handler chains

    Duplicate sends are dropped silently: ``send`` returns False and the
    bytes already transmitted are left untouched.
    """

    __slots__ = (
        "_request", "_response", "_params", "_session", "_app",
        "_status_code", "_send_state", "_send_lock",
        "template_loader", "state",
    )

    def __init__(
        self,
        request: "Request",
        response: "ResponseWriter",
        app: "Application",
        *,
        params: Optional[Mapping[str, str]] = None,
        session: Optional["Session"] = None,
        template_loader: Any = None,
    ):
        self._request = request
        self._response = response
        self._app = app
        self._params = params if isinstance(params, Params) else Params(params)
        self._session = session
        self._status_code = 0
        self._send_state = SendState.UNSENT
        self._send_lock = threading.Lock()
        self.template_loader = template_loader
        self.state: Dict[str, Any] = {}

    # ========================================================================
    # Borrowed collaborators
    # ========================================================================

    @property
    def request(self) -> "Request":
        return self._request

    @property
    def response(self) -> "ResponseWriter":
        return self._response

    @property
    def params(self) -> Params:
        return self._params

    def param(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self._params.get(name, default)

    @property
    def session(self) -> Optional["Session"]:
        return self._session

    @property
    def app(self) -> "Application":
        return self._app

    # ========================================================================
    # Status
    # ========================================================================

    @property
    def status_code(self) -> int:
        """Pending HTTP status code; 0 until explicitly set."""
        return self._status_code

    @status_code.setter
    def status_code(self, code: int) -> None:
        if isinstance(code, bool) or not isinstance(code, int):
            raise TypeError(f"status_code must be an int, got {type(code).__name__}")
        if code != 0 and not 100 <= code <= 599:
            raise ValueError(f"Invalid HTTP status code: {code}")
        self._status_code = code

    # ========================================================================
    # Send
    # ========================================================================

    @property
    def is_sent(self) -> bool:
        return self._send_state is SendState.SENT

    def _claim_send(self) -> bool:
        with self._send_lock:
            if self._send_state is SendState.SENT:
                return False
            self._send_state = SendState.SENT
            return True

    async def send(
        self,
        content: Union[str, bytes],
        *,
        content_type: str = "text/html; charset=utf-8",
    ) -> bool:
        """
        Write ``content`` to the response sink, once.

        The transport status is ``status_code``, or 200 while unset.

        Returns:
            True if the content was handed to the transport. False if the
            response had already been sent (the call is dropped) or the
            sink rejected the write (logged as a warning, never raised).
        """
        if not self._claim_send():
            logger.debug(
                "Dropped duplicate send for %s %s",
                self._request.method, self._request.path,
            )
            return False

        try:
            await self._response.write(
                content,
                status=self._status_code or 200,
                content_type=content_type,
            )
        except (ClientDisconnectFault, ResponseStreamFault, ResponseAlreadySentFault, OSError) as e:
            logger.warning(
                "Failed to send response for %s %s: %s",
                self._request.method, self._request.path, e,
            )
            return False

        return True

    def __repr__(self) -> str:
        return (
            f"Context({self._request.method} {self._request.path}, "
            f"status={self._status_code}, state={self._send_state.value})"
        )
