"""
Kestrel Debug - Diagnostic error pages.

Renders a failure (or a bare status code) plus a dump of the originating
request into a self-contained HTML page, sent through the request Context
exactly once.
"""

from .pages import (
    ERROR_TEMPLATE,
    DiagnosticRenderer,
    RenderJob,
    RenderPhase,
    build_render_data,
    default_renderer,
    reason_phrase,
    render_default,
    render_error,
)

__all__ = [
    "ERROR_TEMPLATE",
    "DiagnosticRenderer",
    "RenderJob",
    "RenderPhase",
    "build_render_data",
    "default_renderer",
    "reason_phrase",
    "render_default",
    "render_error",
]
