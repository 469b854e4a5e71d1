"""
Application - Shared application state and ASGI entry point.

The Application is process-wide and read-mostly: it holds the config, the
diagnostic renderer (compiled once) and the error handler. Routing is not
its concern; the host router resolves a handler and its path parameters
and calls ``handle`` with them, or wraps a single handler with ``asgi``.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, Mapping, Optional

from .config import KestrelConfig
from .context import Context
from .debug.pages import DiagnosticRenderer, render_default, render_error
from .errors import new_error_record
from .request import Request
from .response import ResponseWriter
from .sessions import Session


Handler = Callable[[Context], Any]
ErrorHandler = Callable[[Context, Optional[Mapping[str, Any]]], Awaitable[Any]]
SessionFactory = Callable[[Request], Optional[Session]]


class Application:
    """
    Owner of process-wide configuration for request handling.

    Example:
        ```python
        app = Application(KestrelConfig(debug=True))

        async def show_user(ctx: Context):
            user = await users.find(ctx.param("id"))
            if user is None:
                ctx.status_code = 404
                return
            await ctx.send(render_user(user))

        asgi_app = app.asgi(show_user)
        ```
    """

    __slots__ = ("config", "renderer", "error_handler", "logger")

    def __init__(
        self,
        config: Optional[KestrelConfig] = None,
        *,
        renderer: Optional[DiagnosticRenderer] = None,
        error_handler: Optional[ErrorHandler] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or KestrelConfig()
        self.renderer = renderer or DiagnosticRenderer()
        self.error_handler: ErrorHandler = error_handler or render_default
        self.logger = logger or logging.getLogger("kestrel.app")

    # ========================================================================
    # Request handling
    # ========================================================================

    async def handle(
        self,
        request: Request,
        response: ResponseWriter,
        handler: Handler,
        *,
        params: Optional[Mapping[str, str]] = None,
        session: Optional[Session] = None,
    ) -> Context:
        """
        Run ``handler`` for one request and make sure the client gets an answer.

        - A failure raised by the handler is normalized, logged and rendered
          as a diagnostic page.
        - A handler that returns without sending, with an error status set,
          gets the generic status page.
        - A handler that returns without sending otherwise gets an empty
          body with its status (200 when unset).

        Returns:
            The request's Context, already sent
        """
        ctx = Context(request, response, self, params=params, session=session)
        if self.config.server_header:
            response.set_header("server", self.config.server_header)

        try:
            result = handler(ctx)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            await self._handle_failure(ctx, e)
            return ctx

        if not ctx.is_sent:
            if ctx.status_code >= 400:
                await self._finalize(ctx, self.error_handler(ctx, None))
            else:
                await ctx.send(b"")

        return ctx

    async def _handle_failure(self, ctx: Context, exc: Exception) -> None:
        record = new_error_record(exc)
        self.logger.error(
            f"Unhandled failure in {ctx.request.method} {ctx.request.path}: "
            f"{record.error_class}: {record.message}",
            exc_info=exc,
            extra={"error": record.to_dict()},
        )

        if ctx.is_sent:
            return

        await self._finalize(ctx, render_error(ctx, record))

    async def _finalize(self, ctx: Context, rendering: Awaitable[Any]) -> None:
        try:
            await rendering
        except Exception as e:
            self.logger.error(f"Error handler failed: {e}", exc_info=True)
            if not ctx.is_sent:
                if ctx.status_code < 400:
                    ctx.status_code = 500
                await ctx.send(
                    "Internal Server Error",
                    content_type="text/plain; charset=utf-8",
                )

    # ========================================================================
    # ASGI
    # ========================================================================

    def asgi(
        self,
        handler: Handler,
        *,
        session_factory: Optional[SessionFactory] = None,
    ) -> Callable[[dict, Callable, Callable], Awaitable[None]]:
        """
        Wrap a single handler as an ASGI 3 application.

        Path parameters are taken from ``scope["path_params"]`` when an
        upstream router put them there.
        """

        async def app(scope: dict, receive: Callable, send: Callable) -> None:
            scope_type = scope["type"]
            if scope_type == "lifespan":
                await self._handle_lifespan(receive, send)
                return
            if scope_type != "http":
                self.logger.warning(f"Unsupported ASGI scope type: {scope_type}")
                return

            request = Request(scope, receive)
            response = ResponseWriter(send)
            session = session_factory(request) if session_factory else None
            await self.handle(
                request,
                response,
                handler,
                params=scope.get("path_params"),
                session=session,
            )

        return app

    async def _handle_lifespan(self, receive: Callable, send: Callable) -> None:
        while True:
            message = await receive()
            if message["type"] == "lifespan.startup":
                self.logger.debug("Startup complete")
                await send({"type": "lifespan.startup.complete"})
            elif message["type"] == "lifespan.shutdown":
                self.logger.debug("Shutdown complete")
                await send({"type": "lifespan.shutdown.complete"})
                return
