"""
Kestrel Debug Pages - Diagnostic HTML for failed requests.

A single fixed template (inlined, no loader) is compiled once per
DiagnosticRenderer and only read afterwards, so one renderer can serve any
number of concurrent requests.

Rendering a page for a Context moves through four phases:

    UNRENDERED -> BUILDING -> RENDERED -> SENT

BUILDING assembles the data (status-derived defaults, request dump),
RENDERED holds the complete HTML, SENT hands it to ``Context.send``.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from http import HTTPStatus
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

from jinja2 import Environment, Template, TemplateError

from ..errors import new_error_record
from ..faults import RequestDumpFault, TemplateRenderFault
from ..request import dump_request

if TYPE_CHECKING:
    from ..context import Context


logger = logging.getLogger("kestrel.debug")


# ============================================================================
# Template
# ============================================================================

ERROR_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta http-equiv="content-type" content="text/html; charset=utf-8">
<title>Error: {{ Code }} {{ Title }}</title>
<style type="text/css" media="screen">
html, body { padding: 0; margin: 0; font-family: Tahoma, Verdana, sans-serif; color: #1c2b36; }
h1 { color: #ffffff; margin: 0; }
.container { max-width: 1200px; margin: 0 auto; padding: 0 24px; }
#header { display: block; background-color: #14232d; height: 120px; width: 100%; }
#title { padding: 40px 0; }
.error { color: #c0392b; }
pre code, #backtrace { font-family: "SF Mono", "Lucida Console", Monaco, monospace; }
pre.request-dump { background-color: #eef1f2; padding: 20px; overflow: auto; }
#backtrace { list-style: none; padding-left: 0; }
#backtrace li { border-left: 5px solid #4a90c2; padding-left: 20px; }
#backtrace .file { color: #2f6f9f; }
#backtrace .lineno { color: #8a5a14; }
#backtrace .method { color: #2e8b57; }
</style>
</head>
<body>
  <div id="header">
    <div class="container">
      <div id="title">
        <h1>Error: {{ Code }} {{ Title }}</h1>
      </div>
    </div>
  </div>
  <div class="container">
    <p>Sorry, the requested URL caused an error:</p>
    {% if Class %}<p class="error">{{ Class }}</p>{% endif %}
    <pre><code>{{ Message }}</code></pre>
    <h2>HTTP Request</h2>
    <pre class="request-dump">{{ HTTPRequest }}</pre>
    {% if StackTrace %}
    <h2>Traceback</h2>
    <ul id="backtrace">
      {% for frame in StackTrace %}
      <li><p><span class="file">{{ frame.file }}:</span><span class="lineno">{{ frame.number }}</span> <span class="method">{{ frame.method }}</span></p></li>
      {% endfor %}
    </ul>
    {% endif %}
  </div>
</body>
</html>
"""


def reason_phrase(status_code: int) -> str:
    """Standard reason phrase for a status code ("" when unknown)."""
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return ""


def build_render_data(
    status_code: int,
    data: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Backfill ``Code``, ``Title`` and ``Message`` from the status code.

    Explicit values always win; the caller's mapping is never mutated.
    """
    render_data: Dict[str, Any] = dict(data) if data else {}
    phrase = reason_phrase(status_code)
    render_data.setdefault("Code", status_code)
    render_data.setdefault("Title", phrase)
    render_data.setdefault("Message", phrase)
    return render_data


# ============================================================================
# Renderer
# ============================================================================

class DiagnosticRenderer:
    """
    Compiles the diagnostic template once and renders it on demand.

    Instances are immutable after construction. User-supplied values are
    only ever inserted as autoescaped fields.
    """

    __slots__ = ("_env", "_template")

    def __init__(self, template_source: str = ERROR_TEMPLATE):
        self._env = Environment(autoescape=True)
        try:
            self._template: Template = self._env.from_string(template_source)
        except TemplateError as e:
            raise TemplateRenderFault(message=f"Diagnostic template failed to compile: {e}") from e

    def render(self, data: Mapping[str, Any]) -> str:
        """
        Render the page.

        Raises:
            TemplateRenderFault: If template execution fails
        """
        try:
            return self._template.render(data)
        except Exception as e:
            raise TemplateRenderFault(message=f"Diagnostic template failed to render: {e}") from e


_default_renderer: Optional[DiagnosticRenderer] = None
_default_lock = threading.Lock()


def default_renderer() -> DiagnosticRenderer:
    """Process-wide renderer, built once on first use."""
    global _default_renderer
    if _default_renderer is None:
        with _default_lock:
            if _default_renderer is None:
                _default_renderer = DiagnosticRenderer()
    return _default_renderer


# ============================================================================
# Render job
# ============================================================================

class RenderPhase(str, Enum):
    UNRENDERED = "unrendered"
    BUILDING = "building"
    RENDERED = "rendered"
    SENT = "sent"


_PHASE_ORDER = (
    RenderPhase.UNRENDERED,
    RenderPhase.BUILDING,
    RenderPhase.RENDERED,
    RenderPhase.SENT,
)


class RenderJob:
    """
    One diagnostic render for one Context.

    Phases advance strictly in order; SENT is terminal.

    Attributes:
        phase: Current phase
        data: Assembled render data (from BUILDING on)
        html: Rendered page (from RENDERED on)
        delivered: Whether ``Context.send`` accepted the page
    """

    def __init__(self):
        self.phase = RenderPhase.UNRENDERED
        self.data: Dict[str, Any] = {}
        self.html: Optional[str] = None
        self.delivered = False

    def advance(self, phase: RenderPhase) -> None:
        current = _PHASE_ORDER.index(self.phase)
        if _PHASE_ORDER.index(phase) != current + 1:
            raise RuntimeError(f"Invalid render transition: {self.phase.value} -> {phase.value}")
        self.phase = phase

    def __repr__(self) -> str:
        return f"RenderJob(phase={self.phase.value}, delivered={self.delivered})"


def _settings(ctx: "Context") -> tuple:
    config = getattr(ctx.app, "config", None)
    if config is None:
        return True, 65536
    return config.dump_request_body, config.max_dump_bytes


async def _dump(ctx: "Context") -> str:
    with_body, max_body = _settings(ctx)
    try:
        return await dump_request(ctx.request, body=with_body, max_body=max_body)
    except RequestDumpFault as fault:
        logger.debug("Request dump degraded: %s", fault.message)
        return fault.metadata.get("partial", "")


async def render_default(
    ctx: "Context",
    data: Optional[Mapping[str, Any]] = None,
) -> RenderJob:
    """
    Render the diagnostic page for ``ctx`` and send it.

    Without ``data`` the page shows the status code and its reason phrase.
    Missing ``Code``/``Title``/``Message`` keys are backfilled from
    ``ctx.status_code``; ``HTTPRequest`` is always set to a request dump.
    A ``StackTrace`` sequence of frames adds the traceback section.

    Returns:
        The completed RenderJob

    Raises:
        TemplateRenderFault: If the template cannot be rendered (nothing
            is sent in that case)
    """
    job = RenderJob()

    job.advance(RenderPhase.BUILDING)
    job.data = build_render_data(ctx.status_code, data)
    job.data["HTTPRequest"] = await _dump(ctx)

    renderer = getattr(ctx.app, "renderer", None) or default_renderer()
    job.html = renderer.render(job.data)
    job.advance(RenderPhase.RENDERED)

    job.delivered = await ctx.send(job.html)
    job.advance(RenderPhase.SENT)
    return job


async def render_error(ctx: "Context", failure: Any) -> Any:
    """
    Normalize ``failure`` and render it through the app's error handler.

    Sets ``ctx.status_code`` to 500 unless an error status (>= 400) is
    already set. The stack and failure class are included unless the
    application config disables ``expose_traceback``.

    Returns:
        Whatever the error handler returns; a RenderJob for the default
    """
    record = new_error_record(failure, skip=1)

    if ctx.status_code < 400:
        ctx.status_code = 500

    data: Dict[str, Any] = {"Message": record.message}
    config = getattr(ctx.app, "config", None)
    if config is None or config.expose_traceback:
        data["Class"] = record.error_class
        data["StackTrace"] = record.stack

    handler = getattr(ctx.app, "error_handler", None) or render_default
    return await handler(ctx, data)
