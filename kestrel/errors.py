"""
Kestrel Errors - Failure normalization and stack capture.

Any value raised (or handed over) while handling a request is turned into
an ErrorRecord exactly once, at the boundary:

- ErrorRecord   -> returned unchanged (wrapping is idempotent)
- Fault         -> STRUCTURED, message and code preserved
- BaseException -> EXCEPTION, message is ``str(exc)``
- str / bytes   -> RAW, the text itself
- anything else -> OTHER, generic ``format(value)``

Stacks are captured innermost-first and never exceed MAX_FRAMES entries.
"""

from __future__ import annotations

import sys
import traceback
from dataclasses import dataclass
from enum import Enum
from itertools import islice
from types import FrameType, TracebackType
from typing import Any, Iterable, Iterator, Optional, Tuple

from .faults import Fault


MAX_FRAMES = 20


# ============================================================================
# Frame
# ============================================================================

@dataclass(frozen=True)
class Frame:
    """
    One resolved stack location.

    Attributes:
        number: Line number (textual)
        file: Source file path
        method: Module-qualified function name
    """

    number: str
    file: str
    method: str

    def to_dict(self) -> dict[str, str]:
        return {"number": self.number, "file": self.file, "method": self.method}

    def __str__(self) -> str:
        return f"{self.file}:{self.number} {self.method}"


def _resolve(frame: FrameType, lineno: Optional[int]) -> Optional[Frame]:
    code = frame.f_code
    if lineno is None or not code.co_filename:
        return None

    name = getattr(code, "co_qualname", code.co_name)
    module = frame.f_globals.get("__name__")
    method = f"{module}.{name}" if module else name

    return Frame(number=str(lineno), file=code.co_filename, method=method)


def _collect(entries: Iterable[Tuple[FrameType, Optional[int]]], limit: int) -> Tuple[Frame, ...]:
    resolved = (_resolve(frame, lineno) for frame, lineno in entries)
    return tuple(islice((f for f in resolved if f is not None), max(0, min(limit, MAX_FRAMES))))


def capture_stack(skip: int = 0, limit: int = MAX_FRAMES) -> Tuple[Frame, ...]:
    """
    Capture the live call stack, innermost first.

    Args:
        skip: Frames above the caller to discard. ``capture_stack(0)``
            reports the function calling ``capture_stack`` as frame 0.
        limit: Maximum number of frames (hard-capped at MAX_FRAMES)

    Returns:
        Immutable snapshot of resolved frames. Unresolvable frames are
        skipped; a skip deeper than the stack yields an empty tuple.
    """
    try:
        start = sys._getframe(skip + 1)
    except ValueError:
        return ()

    return _collect(traceback.walk_stack(start), limit)


def frames_from_traceback(
    tb: Optional[TracebackType],
    limit: int = MAX_FRAMES,
) -> Tuple[Frame, ...]:
    """
    Frames of an exception traceback, innermost (the raise site) first.
    """
    if tb is None:
        return ()

    entries = list(traceback.walk_tb(tb))
    entries.reverse()
    return _collect(entries, limit)


# ============================================================================
# ErrorRecord
# ============================================================================

class FailureKind(str, Enum):
    """Tag assigned when a failure value is normalized."""
    STRUCTURED = "structured"
    EXCEPTION = "exception"
    RAW = "raw"
    OTHER = "other"


def _type_tag(value: Any) -> str:
    cls = type(value)
    if cls.__module__ == "builtins":
        return cls.__qualname__
    return f"{cls.__module__}.{cls.__qualname__}"


class ErrorRecord(Exception):
    """
    Normalized, stack-annotated representation of a failure.

    ``str(record)`` is the message only; use ``stack_trace_string()`` for
    plaintext surfaces and ``to_dict()`` for structured logs. Records are
    exceptions, so they can be raised and re-raised as-is.

    Attributes:
        message: User-facing message
        error_class: Tag identifying the original failure's type
        stack: Captured frames, innermost first
        kind: How the original value was classified
        cause: The original failure value
    """

    def __init__(
        self,
        message: str,
        error_class: str,
        stack: Iterable[Frame] = (),
        *,
        kind: FailureKind = FailureKind.OTHER,
        cause: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_class = error_class
        self.stack: Tuple[Frame, ...] = tuple(stack)[:MAX_FRAMES]
        self.kind = kind
        self.cause = cause

    @property
    def class_name(self) -> str:
        return self.error_class

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return (
            f"ErrorRecord(message={self.message!r}, class={self.error_class!r}, "
            f"frames={len(self.stack)})"
        )

    def __iter__(self) -> Iterator[Frame]:
        return iter(self.stack)

    def stack_trace_string(self) -> str:
        """Render the stack as ``"<file>: <line>\\n\\t<method>\\n"`` per frame."""
        return "".join(f"{f.file}: {f.number}\n\t{f.method}\n" for f in self.stack)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "class": self.error_class,
            "kind": self.kind.value,
            "stack": [f.to_dict() for f in self.stack],
        }


def new_error_record(value: Any, *, skip: int = 0) -> ErrorRecord:
    """
    Normalize an arbitrary failure value into an ErrorRecord.

    Args:
        value: Anything raised or reported by handler code
        skip: Extra frames to hide above the caller when the live stack
            has to be captured

    Returns:
        ``value`` itself if it is already an ErrorRecord, otherwise a new
        record whose stack starts at the failure site.
    """
    if isinstance(value, ErrorRecord):
        return value

    if isinstance(value, Fault):
        kind = FailureKind.STRUCTURED
        message = value.message
        error_class = value.code
    elif isinstance(value, BaseException):
        kind = FailureKind.EXCEPTION
        message = str(value)
        error_class = _type_tag(value)
    elif isinstance(value, (str, bytes)):
        kind = FailureKind.RAW
        message = value if isinstance(value, str) else value.decode("utf-8", "replace")
        error_class = _type_tag(value)
    else:
        kind = FailureKind.OTHER
        message = format(value)
        error_class = _type_tag(value)

    tb = getattr(value, "__traceback__", None)
    if tb is not None:
        stack = frames_from_traceback(tb)
    else:
        stack = capture_stack(skip + 1)

    return ErrorRecord(message, error_class, stack, kind=kind, cause=value)


def errorf(fmt: str, *args: Any) -> ErrorRecord:
    """
    Build a RAW ErrorRecord from a printf-style format.

    Frame 0 of the record is the caller of ``errorf``.

    Example:
        >>> raise errorf("disk %s on %s", "full", "/var")
    """
    message = fmt % args if args else fmt
    return new_error_record(message, skip=1)
