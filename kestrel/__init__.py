"""
Kestrel - Error diagnosis and per-request state for async HTTP serving.

- Errors: failure normalization into stack-annotated ErrorRecords
- Debug: diagnostic HTML pages rendered from a single compiled template
- Context: per-request state with respond-at-most-once semantics
- Sessions: pluggable session capability contract
- Faults: typed, coded framework exceptions
"""

__version__ = "0.1.0"

# ============================================================================
# Core
# ============================================================================

from .app import Application
from .config import ConfigLoader, KestrelConfig
from .context import Context, SendState
from .request import Request, dump_request
from .response import ResponseWriter
from ._datastructures import Headers, Params

# ============================================================================
# Errors & Diagnostics
# ============================================================================

from .errors import (
    MAX_FRAMES,
    ErrorRecord,
    FailureKind,
    Frame,
    capture_stack,
    errorf,
    frames_from_traceback,
    new_error_record,
)
from .debug import (
    DiagnosticRenderer,
    RenderJob,
    RenderPhase,
    build_render_data,
    render_default,
    render_error,
)

# ============================================================================
# Sessions
# ============================================================================

from .sessions import MemorySession, Session

# ============================================================================
# Faults
# ============================================================================

from .faults import (
    ClientDisconnectFault,
    ConfigFault,
    Fault,
    FaultDomain,
    PayloadTooLargeFault,
    RequestDumpFault,
    ResponseAlreadySentFault,
    ResponseStreamFault,
    SessionExpiredFault,
    SessionKeyNotFoundFault,
    SessionStorageFault,
    Severity,
    TemplateRenderFault,
)

__all__ = [
    "__version__",
    # Core
    "Application",
    "ConfigLoader",
    "KestrelConfig",
    "Context",
    "SendState",
    "Request",
    "dump_request",
    "ResponseWriter",
    "Headers",
    "Params",
    # Errors & Diagnostics
    "MAX_FRAMES",
    "ErrorRecord",
    "FailureKind",
    "Frame",
    "capture_stack",
    "errorf",
    "frames_from_traceback",
    "new_error_record",
    "DiagnosticRenderer",
    "RenderJob",
    "RenderPhase",
    "build_render_data",
    "render_default",
    "render_error",
    # Sessions
    "MemorySession",
    "Session",
    # Faults
    "ClientDisconnectFault",
    "ConfigFault",
    "Fault",
    "FaultDomain",
    "PayloadTooLargeFault",
    "RequestDumpFault",
    "ResponseAlreadySentFault",
    "ResponseStreamFault",
    "SessionExpiredFault",
    "SessionKeyNotFoundFault",
    "SessionStorageFault",
    "Severity",
    "TemplateRenderFault",
]
