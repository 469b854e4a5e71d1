"""
Kestrel Faults - Typed fault taxonomy.

Faults are structured exceptions with a stable machine-readable code,
a human-readable message, a domain and a severity. Every failure the
framework itself raises is a Fault; arbitrary application failures are
normalized separately by ``kestrel.errors``.

Defines:
- Severity levels
- FaultDomain (explicit fault domains)
- Fault base class
- Concrete faults for rendering, response sending, sessions and config
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


# ============================================================================
# Severity & Domain
# ============================================================================

class Severity(str, Enum):
    """
    Fault severity levels.

    Determines the logging level used when a fault is reported.
    """
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    FATAL = "fatal"


class FaultDomain:
    """
    Fault domains (taxonomy).

    Identifies the functional area where a fault occurred.
    """

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.value = name
        self.description = description

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"FaultDomain(name='{self.name}')"

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, FaultDomain):
            return self.name == other.name
        return str(self) == str(other)

    def __hash__(self) -> int:
        return hash(self.name)


# Standard Domains
FaultDomain.CONFIG = FaultDomain("config", "Configuration errors")
FaultDomain.FLOW = FaultDomain("flow", "Handler execution errors")
FaultDomain.IO = FaultDomain("io", "I/O operations")
FaultDomain.RENDER = FaultDomain("render", "Diagnostic page rendering")
FaultDomain.SESSION = FaultDomain("session", "Session capability errors")


DOMAIN_DEFAULTS = {
    FaultDomain.CONFIG: Severity.FATAL,
    FaultDomain.FLOW: Severity.ERROR,
    FaultDomain.IO: Severity.WARN,
    FaultDomain.RENDER: Severity.ERROR,
    FaultDomain.SESSION: Severity.ERROR,
}


# ============================================================================
# Fault - Base Class
# ============================================================================

class Fault(Exception):
    """
    Base fault class - structured, typed fault object.

    Subclasses declare ``code``, ``message`` and ``domain`` as class
    attributes; constructor arguments override them per instance.

    Attributes:
        code: Stable machine-readable identifier (e.g., "SESSION_EXPIRED")
        message: Human-readable summary
        severity: Fault severity
        domain: Fault domain
        public: Whether safe to expose to client
        metadata: Additional context data

    Example:
        ```python
        raise Fault(
            code="UPSTREAM_DOWN",
            message="Inventory service unreachable",
            domain=FaultDomain.IO,
        )
        ```
    """

    def __init__(
        self,
        code: str | None = None,
        message: str | None = None,
        *,
        domain: FaultDomain | None = None,
        severity: Optional[Severity] = None,
        public: Optional[bool] = None,
        metadata: Optional[dict[str, Any]] = None,
    ):
        self.code = code if code is not None else getattr(self, "code", None)
        self.message = message if message is not None else getattr(self, "message", None)
        self.domain = domain if domain is not None else getattr(self, "domain", None)

        if self.code is None or self.message is None or self.domain is None:
            raise TypeError(f"{self.__class__.__name__} missing required code, message, or domain")

        super().__init__(self.message)

        self.severity = (
            severity
            or getattr(type(self), "severity", None)
            or DOMAIN_DEFAULTS.get(self.domain, Severity.ERROR)
        )
        self.public = public if public is not None else getattr(type(self), "public", False)
        self.metadata = metadata or {}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"Fault(code={self.code!r}, domain={self.domain.value}, "
            f"severity={self.severity.value}, public={self.public})"
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize fault to dictionary.

        Returns:
            Dictionary representation suitable for logging/serialization
        """
        return {
            "code": self.code,
            "message": self.message,
            "domain": self.domain.value,
            "severity": self.severity.value,
            "public": self.public,
            "metadata": self.metadata,
        }


# ============================================================================
# Render Faults
# ============================================================================

class TemplateRenderFault(Fault):
    """Diagnostic template failed to compile or execute."""
    code = "TEMPLATE_RENDER_ERROR"
    message = "Template rendering failed"
    domain = FaultDomain.RENDER
    severity = Severity.FATAL


class RequestDumpFault(Fault):
    """The inbound request could not be dumped for display."""
    code = "REQUEST_DUMP_ERROR"
    message = "Request dump failed"
    domain = FaultDomain.RENDER
    severity = Severity.WARN


# ============================================================================
# Response Faults
# ============================================================================

class ResponseStreamFault(Fault):
    """The response sink rejected a write."""
    code = "RESPONSE_STREAM_ERROR"
    message = "Response stream error"
    domain = FaultDomain.IO
    severity = Severity.ERROR


class ClientDisconnectFault(Fault):
    """Client disconnected during response send."""
    code = "CLIENT_DISCONNECT"
    message = "Client disconnected"
    domain = FaultDomain.IO
    severity = Severity.INFO


class PayloadTooLargeFault(Fault):
    """Request payload exceeds limits (413)."""
    code = "PAYLOAD_TOO_LARGE"
    message = "Payload too large"
    domain = FaultDomain.IO
    public = True


class ResponseAlreadySentFault(Fault):
    """A second write was attempted on a write-once response sink."""
    code = "RESPONSE_ALREADY_SENT"
    message = "Response has already been sent"
    domain = FaultDomain.FLOW
    severity = Severity.ERROR


# ============================================================================
# Session Faults
# ============================================================================

class SessionFault(Fault):
    """Base class for session capability faults."""
    domain = FaultDomain.SESSION


class SessionStorageFault(SessionFault):
    """
    The session backend failed.

    Transient in most stores: a retry may succeed.
    """
    code = "SESSION_STORAGE_ERROR"
    message = "Session storage failure"


class SessionKeyNotFoundFault(SessionFault):
    """Requested key is not present in the session."""
    code = "SESSION_KEY_NOT_FOUND"
    message = "Session key not found"
    severity = Severity.WARN
    public = True

    def __init__(self, key: str, **kwargs):
        kwargs.setdefault("message", f"Session key not found: {key!r}")
        super().__init__(**kwargs)
        self.key = key


class SessionExpiredFault(SessionStorageFault):
    """
    Session has expired (TTL exceeded).

    This is a normal condition: the client should start a new session.
    """
    code = "SESSION_EXPIRED"
    message = "Session has expired"
    severity = Severity.WARN
    public = True


# ============================================================================
# Config Faults
# ============================================================================

class ConfigFault(Fault):
    """Invalid configuration value."""
    code = "CONFIG_INVALID"
    message = "Invalid configuration"
    domain = FaultDomain.CONFIG
