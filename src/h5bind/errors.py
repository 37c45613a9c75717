"""
Error taxonomy for h5bind.

Every failure surfaced by the binding layer is one of the classes below.
Failures of a native call additionally carry the drained native error stack
as an ``ErrorRecord`` (oldest frame first).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple


# =============================================================================
# Error Codes
# =============================================================================

H5BIND_OK = 0

H5BIND_ERROR_INVALID_HANDLE = 1
H5BIND_ERROR_TYPE_MISMATCH = 2
H5BIND_ERROR_DIMENSION_MISMATCH = 3
H5BIND_ERROR_NOT_FOUND = 4
H5BIND_ERROR_ALREADY_EXISTS = 5
H5BIND_ERROR_UNSUPPORTED_TYPE = 6
H5BIND_ERROR_IO_FAILURE = 7
H5BIND_ERROR_NATIVE = 8
H5BIND_ERROR_LIBRARY_NOT_FOUND = 9


_ERROR_MESSAGES = {
    H5BIND_OK: "Success",
    H5BIND_ERROR_INVALID_HANDLE: "Invalid handle",
    H5BIND_ERROR_TYPE_MISMATCH: "Type mismatch",
    H5BIND_ERROR_DIMENSION_MISMATCH: "Dimension mismatch",
    H5BIND_ERROR_NOT_FOUND: "Not found",
    H5BIND_ERROR_ALREADY_EXISTS: "Already exists",
    H5BIND_ERROR_UNSUPPORTED_TYPE: "Unsupported type",
    H5BIND_ERROR_IO_FAILURE: "I/O failure",
    H5BIND_ERROR_NATIVE: "Native library error",
    H5BIND_ERROR_LIBRARY_NOT_FOUND: "Native library not found",
}


# =============================================================================
# Native Error Stack
# =============================================================================

@dataclass(frozen=True)
class ErrorFrame:
    """
    One frame of the native error stack.

    ``major_code``/``minor_code``/``error_class`` are the native identifiers;
    the ``*_message`` fields hold their resolved texts.
    """
    source_location: str
    function_name: str
    message: str
    error_class: str
    major_code: int
    minor_code: int
    major_message: str = ""
    minor_message: str = ""

    def __str__(self) -> str:
        return (
            f"{self.source_location} in {self.function_name}(): {self.message} "
            f"[{self.major_message} / {self.minor_message}]"
        )


@dataclass(frozen=True)
class ErrorRecord:
    """All frames of one failed native call, oldest (innermost) first."""
    call: str
    frames: Tuple[ErrorFrame, ...] = field(default_factory=tuple)

    @property
    def most_specific(self) -> Optional[ErrorFrame]:
        return self.frames[0] if self.frames else None

    def __len__(self) -> int:
        return len(self.frames)

    def __iter__(self):
        return iter(self.frames)

    def format(self) -> str:
        lines = [f"native error stack of {self.call}:"]
        for i, frame in enumerate(self.frames):
            lines.append(f"  #{i:03d}: {frame}")
        return "\n".join(lines)


# =============================================================================
# Exception Classes
# =============================================================================

class H5BindError(Exception):
    """
    Base exception for all h5bind errors.

    Attributes:
        code: Stable integer error code.
        message: Human readable message.
        record: Native error stack when raised from a native call, else None.
    """

    code = H5BIND_ERROR_NATIVE

    def __init__(self, message: Optional[str] = None, record: Optional[ErrorRecord] = None):
        if message is None:
            message = _ERROR_MESSAGES.get(self.code, "Unknown error")
        self.message = message
        self.record = record
        super().__init__(message)

    @classmethod
    def from_code(cls, code: int, context: str = "") -> "H5BindError":
        """Create the taxonomy member for ``code`` with optional context."""
        klass = _CODE_TO_CLASS.get(code, NativeLibraryError)
        base_msg = _ERROR_MESSAGES.get(code, "Unknown error")
        return klass(f"{context}: {base_msg}" if context else base_msg)


class InvalidHandle(H5BindError):
    """A handle was closed, released or never valid."""
    code = H5BIND_ERROR_INVALID_HANDLE


class TypeMismatch(H5BindError):
    """A buffer type is not convertible to or from the stored type."""
    code = H5BIND_ERROR_TYPE_MISMATCH


class DimensionMismatch(H5BindError):
    """A selection or buffer shape does not fit the dataspace."""
    code = H5BIND_ERROR_DIMENSION_MISMATCH


class NotFound(H5BindError):
    """A path, file or attribute does not exist."""
    code = H5BIND_ERROR_NOT_FOUND


class AlreadyExists(H5BindError):
    """An object is already present, or a file already has a writer."""
    code = H5BIND_ERROR_ALREADY_EXISTS


class UnsupportedType(H5BindError):
    """A type descriptor cannot be represented by the bridge."""
    code = H5BIND_ERROR_UNSUPPORTED_TYPE


class IOFailure(H5BindError):
    """Low-level read, write or file access failure."""
    code = H5BIND_ERROR_IO_FAILURE


class NativeLibraryError(H5BindError):
    """
    Native failure with no more specific taxonomy member.

    Attributes:
        major: Major error code of the most specific frame.
        minor: Minor error code of the most specific frame.
        stack: All frames, oldest first.
    """
    code = H5BIND_ERROR_NATIVE

    def __init__(self, message: Optional[str] = None, record: Optional[ErrorRecord] = None):
        super().__init__(message, record)
        frame = record.most_specific if record is not None else None
        self.major = frame.major_code if frame is not None else 0
        self.minor = frame.minor_code if frame is not None else 0
        self.stack = record.frames if record is not None else ()


class LibraryNotFoundError(H5BindError):
    """Raised when libhdf5 cannot be found, loaded or initialised."""
    code = H5BIND_ERROR_LIBRARY_NOT_FOUND


_CODE_TO_CLASS = {
    H5BIND_ERROR_INVALID_HANDLE: InvalidHandle,
    H5BIND_ERROR_TYPE_MISMATCH: TypeMismatch,
    H5BIND_ERROR_DIMENSION_MISMATCH: DimensionMismatch,
    H5BIND_ERROR_NOT_FOUND: NotFound,
    H5BIND_ERROR_ALREADY_EXISTS: AlreadyExists,
    H5BIND_ERROR_UNSUPPORTED_TYPE: UnsupportedType,
    H5BIND_ERROR_IO_FAILURE: IOFailure,
    H5BIND_ERROR_NATIVE: NativeLibraryError,
    H5BIND_ERROR_LIBRARY_NOT_FOUND: LibraryNotFoundError,
}
