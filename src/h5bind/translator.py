"""
Error translation for native calls.

``native_call`` is the single entry point through which h5bind talks to
libhdf5. It holds the concurrency guard for the duration of the call and,
when the call fails, drains the native error stack into an ``ErrorRecord``
before anything else can touch the library, clears the stack and raises the
matching taxonomy member. Successful calls never inspect the stack.
"""

from __future__ import annotations

import ctypes
import logging
import threading
from typing import Dict, List, Optional, Tuple, Type

from ._native.library import Library, get_library
from ._native.types import H5E_DEFAULT, H5E_WALK_UPWARD, H5E_walk2_t
from .config import get_config
from .errors import (
    AlreadyExists,
    ErrorFrame,
    ErrorRecord,
    H5BindError,
    InvalidHandle,
    IOFailure,
    NativeLibraryError,
    NotFound,
    TypeMismatch,
)
from .guard import guard

__all__ = ["native_call", "drain_error_stack", "translate", "classify", "clear_error_stack"]

logger = logging.getLogger("h5bind.translator")


# =============================================================================
# Minor/Major Code Classification
# =============================================================================

# Taxonomy member -> (minor symbols, major symbols). Symbols missing from a
# given libhdf5 release are skipped.
_RULES: List[Tuple[Type[H5BindError], Tuple[str, ...], Tuple[str, ...]]] = [
    (NotFound, ("H5E_NOTFOUND_g",), ()),
    (AlreadyExists, ("H5E_EXISTS_g", "H5E_ALREADYEXISTS_g", "H5E_FILEEXISTS_g"), ()),
    (InvalidHandle, ("H5E_BADID_g", "H5E_BADATOM_g", "H5E_BADGROUP_g"), ()),
    (TypeMismatch, ("H5E_CANTCONVERT_g",), ()),
    (IOFailure, (
        "H5E_READERROR_g", "H5E_WRITEERROR_g", "H5E_SEEKERROR_g", "H5E_CLOSEERROR_g",
        "H5E_CANTOPENFILE_g", "H5E_CANTCLOSEFILE_g", "H5E_FILEOPEN_g",
        "H5E_NOTHDF5_g", "H5E_TRUNCATED_g", "H5E_BADFILE_g",
    ), ("H5E_IO_g",)),
]

_classification: Optional[Tuple[Dict[int, Type[H5BindError]], Dict[int, Type[H5BindError]]]] = None
_messages: Dict[int, str] = {}
_class_names: Dict[int, str] = {}
_thread_state = threading.local()


def _classification_tables(lib: Library):
    global _classification
    if _classification is None:
        by_minor: Dict[int, Type[H5BindError]] = {}
        by_major: Dict[int, Type[H5BindError]] = {}
        for klass, minors, majors in _RULES:
            for symbol in minors:
                code = lib.find_global_id(symbol)
                if code is not None:
                    by_minor.setdefault(code, klass)
            for symbol in majors:
                code = lib.find_global_id(symbol)
                if code is not None:
                    by_major.setdefault(code, klass)
        _classification = (by_minor, by_major)
    return _classification


def classify(frame: Optional[ErrorFrame], lib: Optional[Library] = None) -> Type[H5BindError]:
    """Taxonomy member for the most specific frame of a failed call."""
    if frame is None:
        return NativeLibraryError
    by_minor, by_major = _classification_tables(lib or get_library())
    if frame.minor_code in by_minor:
        return by_minor[frame.minor_code]
    return by_major.get(frame.major_code, NativeLibraryError)


# =============================================================================
# Error Stack Draining
# =============================================================================

def _decode(raw: Optional[bytes]) -> str:
    return raw.decode("utf-8", errors="replace") if raw else ""


def _message(lib: Library, msg_id: int) -> str:
    if msg_id not in _messages:
        func, _ = lib.function("H5Eget_msg")
        buf = ctypes.create_string_buffer(256)
        kind = ctypes.c_int()
        n = func(msg_id, ctypes.byref(kind), buf, len(buf))
        _messages[msg_id] = buf.value.decode("utf-8", errors="replace") if n > 0 else ""
    return _messages[msg_id]


def _class_name(lib: Library, cls_id: int) -> str:
    if cls_id not in _class_names:
        func, _ = lib.function("H5Eget_class_name")
        buf = ctypes.create_string_buffer(128)
        n = func(cls_id, buf, len(buf))
        _class_names[cls_id] = buf.value.decode("utf-8", errors="replace") if n > 0 else ""
    return _class_names[cls_id]


def drain_error_stack(call: str, lib: Optional[Library] = None) -> ErrorRecord:
    """
    Move the calling context's native error stack into an ``ErrorRecord``.

    Must be called while holding the guard. The native stack is empty
    afterwards.
    """
    lib = lib or get_library()
    get_stack, _ = lib.function("H5Eget_current_stack")
    walk, _ = lib.function("H5Ewalk2")
    close_stack, _ = lib.function("H5Eclose_stack")
    clear, _ = lib.function("H5Eclear2")

    raw_frames = []

    def _collect(n, err_ptr, client_data):
        e = err_ptr.contents
        raw_frames.append((
            e.cls_id, e.maj_num, e.min_num, e.line,
            _decode(e.func_name), _decode(e.file_name), _decode(e.desc),
        ))
        return 0

    callback = H5E_walk2_t(_collect)
    stack_id = get_stack()
    if stack_id >= 0:
        try:
            walk(stack_id, H5E_WALK_UPWARD, callback, None)
        finally:
            close_stack(stack_id)
    clear(H5E_DEFAULT)

    frames = tuple(
        ErrorFrame(
            source_location=f"{file_name}:{line}",
            function_name=func_name,
            message=desc,
            error_class=_class_name(lib, cls_id),
            major_code=maj,
            minor_code=mnr,
            major_message=_message(lib, maj),
            minor_message=_message(lib, mnr),
        )
        for cls_id, maj, mnr, line, func_name, file_name, desc in raw_frames
    )
    return ErrorRecord(call=call, frames=frames)


def translate(record: ErrorRecord, context: str = "", lib: Optional[Library] = None) -> H5BindError:
    """Build the taxonomy exception for a drained record."""
    klass = classify(record.most_specific, lib)
    frame = record.most_specific
    detail = frame.message if frame is not None else "no native error information"
    prefix = context or record.call
    return klass(f"{prefix}: {detail}", record=record)


# =============================================================================
# Guarded Native Call
# =============================================================================

def _silence_auto_print(lib: Library) -> None:
    # The automatic error printer is per thread in thread-safe builds.
    if not getattr(_thread_state, "silenced", False):
        func, _ = lib.function("H5Eset_auto2")
        func(H5E_DEFAULT, None, None)
        _thread_state.silenced = True


def native_call(name: str, *args, context: str = ""):
    """
    Call native function ``name`` under the guard.

    Args:
        name: Bound native function name (e.g. ``"H5Dopen2"``).
        *args: Arguments passed through to ctypes.
        context: Prefix for the error message (defaults to ``name``).

    Returns:
        The native return value.

    Raises:
        H5BindError: The taxonomy member mapped from the native error stack.
    """
    with guard:
        lib = get_library()
        func, failed = lib.function(name)
        _silence_auto_print(lib)
        result = func(*args)
        if failed(result):
            record = drain_error_stack(name, lib)
            error = translate(record, context, lib)
            if get_config().log_native_errors:
                logger.debug("%s", record.format())
            logger.debug("%s failed -> %s: %s", name, type(error).__name__, error.message)
            raise error
    return result


def clear_error_stack() -> None:
    """Clear the calling context's native error stack."""
    with guard:
        lib = get_library()
        func, _ = lib.function("H5Eclear2")
        func(H5E_DEFAULT)
