"""
Host buffers for data transfer.

Prepares the host side of one read or write: normalises the user's data into
a contiguous numpy array, validates its shape and element type against the
stored type before anything reaches the native library, and packs or unpacks
variable-length strings, which the native library exchanges as arrays of
``char*``.
"""

from __future__ import annotations

import ctypes
from typing import Callable, Optional, Tuple

import numpy as np

from ._native.types import H5P_DEFAULT
from .bridge import as_descriptor, check_convertible, from_dtype, memory_descriptor, to_dtype, to_native
from .dataspace import normalize_shape
from .descriptors import Array, Compound, FixedString, Reference, TypeDescriptor, VarString
from .errors import DimensionMismatch, TypeMismatch
from .guard import guard
from .translator import native_call

__all__ = [
    "ReadBuffer", "WriteBuffer", "as_host_array", "prepare_read", "prepare_write",
    "read_into", "write_from", "pack_strings", "unpack_strings", "creation_inputs",
]

Shape = Tuple[int, ...]


def _element_shape(stored: TypeDescriptor) -> Shape:
    return stored.dims if isinstance(stored, Array) else ()


def _host_descriptor(stored: TypeDescriptor, dtype: np.dtype) -> TypeDescriptor:
    # plain uint64 / V12 buffers carry references when the stored type says so
    if isinstance(stored, Reference) and dtype == to_dtype(stored):
        return stored
    return from_dtype(dtype)


# =============================================================================
# Variable-Length Strings
# =============================================================================

def pack_strings(values: np.ndarray, codec: str) -> ctypes.Array:
    """Encode an object array of str/bytes into a ``char*`` array."""
    encoded = []
    for value in values.ravel():
        if value is None:
            data = b""
        elif isinstance(value, bytes):
            data = value
        elif isinstance(value, str):
            try:
                data = value.encode(codec)
            except UnicodeEncodeError as e:
                raise TypeMismatch(f"string {value!r} cannot be stored as {codec}: {e.reason}") from None
        else:
            raise TypeMismatch(f"cannot store {type(value).__name__} in a string type")
        if b"\0" in data:
            raise TypeMismatch("variable-length strings cannot contain NUL characters")
        encoded.append(data)
    return (ctypes.c_char_p * len(encoded))(*encoded)


def unpack_strings(pointers: ctypes.Array, out: np.ndarray) -> None:
    """Decode a ``char*`` array filled by the native library into ``out``."""
    flat = out.reshape(-1)
    for i in range(len(pointers)):
        raw = pointers[i]
        flat[i] = raw.decode("utf-8", errors="surrogateescape") if raw is not None else ""


# =============================================================================
# Write Side
# =============================================================================

class WriteBuffer:
    """Validated host data ready to be handed to a native write."""

    def __init__(self, memory: TypeDescriptor, array: np.ndarray):
        self.memory = memory
        self.array = array
        self._strings = pack_strings(array, memory.charset.codec) if isinstance(memory, VarString) else None

    @property
    def pointer(self):
        if self._strings is not None:
            return ctypes.cast(self._strings, ctypes.c_void_p)
        return self.array.ctypes.data_as(ctypes.c_void_p)


def as_host_array(stored: TypeDescriptor, data) -> np.ndarray:
    """Turn user data into an array suited to elements of type ``stored``."""
    if isinstance(data, np.ndarray):
        array = data
    elif isinstance(stored, VarString):
        array = np.asarray(data, dtype=object)
    elif isinstance(stored, Compound):
        try:
            array = np.asarray(data, dtype=to_dtype(stored))
        except (TypeError, ValueError):
            array = np.asarray(data)
    else:
        array = np.asarray(data)

    if isinstance(stored, FixedString) and array.dtype.kind == "U":
        try:
            array = np.char.encode(array, stored.charset.codec)
        except UnicodeEncodeError as e:
            raise TypeMismatch(f"strings cannot be stored as {stored.charset.codec}: {e.reason}") from None
    elif isinstance(stored, VarString) and array.dtype.kind in "US":
        array = array.astype(object)
    return array


def prepare_write(stored: TypeDescriptor, data, selection_shape: Shape) -> WriteBuffer:
    """
    Validate ``data`` for a write of ``selection_shape`` elements of type
    ``stored``.

    Raises:
        TypeMismatch: If the data's element type cannot be converted.
        DimensionMismatch: If the data's shape differs from the selection.
    """
    array = as_host_array(stored, data)
    host = _host_descriptor(stored, array.dtype)
    if isinstance(stored, Array):
        host = Array(stored.dims, host)
    check_convertible(stored, host, writing=True)

    expected = tuple(selection_shape) + _element_shape(stored)
    if array.shape != expected:
        raise DimensionMismatch(f"data shape {array.shape} does not match selection shape {expected}")

    memory = memory_descriptor(stored, host)
    if not isinstance(memory, VarString):
        array = np.ascontiguousarray(array)
    return WriteBuffer(memory, array)


# =============================================================================
# Read Side
# =============================================================================

class ReadBuffer:
    """Destination of one native read."""

    def __init__(self, memory: TypeDescriptor, out: np.ndarray):
        self.memory = memory
        self.out = out
        self._strings = (ctypes.c_char_p * out.size)() if isinstance(memory, VarString) else None

    @property
    def is_vlen(self) -> bool:
        return self._strings is not None

    @property
    def pointer(self):
        if self._strings is not None:
            return ctypes.cast(self._strings, ctypes.c_void_p)
        return self.out.ctypes.data_as(ctypes.c_void_p)

    def unpack(self) -> None:
        if self._strings is not None:
            unpack_strings(self._strings, self.out)


def prepare_read(stored: TypeDescriptor, selection_shape: Shape,
                 dtype=None, out: Optional[np.ndarray] = None) -> ReadBuffer:
    """
    Allocate (or validate ``out`` as) the destination of a read.

    Raises:
        TypeMismatch: If the requested element type cannot be converted.
        DimensionMismatch: If ``out`` has the wrong shape or layout.
    """
    expected = tuple(selection_shape) + _element_shape(stored)
    if out is not None:
        host = _host_descriptor(stored, out.dtype)
    elif dtype is not None:
        host = as_descriptor(dtype)
    else:
        host = stored
    if isinstance(stored, Array) and not isinstance(host, Array):
        host = Array(stored.dims, host)
    check_convertible(stored, host)

    if out is None:
        out = np.empty(selection_shape, dtype=to_dtype(host))
    else:
        if out.shape != expected:
            raise DimensionMismatch(f"output shape {out.shape} does not match selection shape {expected}")
        if not (out.flags.c_contiguous and out.flags.writeable):
            raise DimensionMismatch("output buffer must be a writable C-contiguous array")
    return ReadBuffer(memory_descriptor(stored, host), out)


# =============================================================================
# Transfers
# =============================================================================

def read_into(buffer: ReadBuffer, issue: Callable[[int, object], None], mem_space_raw: int) -> np.ndarray:
    """
    Run one native read into ``buffer``.

    ``issue(mem_type, pointer)`` performs the native read call. Memory the
    native library allocated for variable-length strings is reclaimed before
    returning, also on failure.
    """
    with guard, to_native(buffer.memory) as mem_type:
        issue(mem_type.raw, buffer.pointer)
        if buffer.is_vlen:
            try:
                buffer.unpack()
            finally:
                native_call("reclaim", mem_type.raw, mem_space_raw, H5P_DEFAULT, buffer.pointer)
    return buffer.out


def write_from(buffer: WriteBuffer, issue: Callable[[int, object], None]) -> None:
    """Run one native write of ``buffer``."""
    with guard, to_native(buffer.memory) as mem_type:
        issue(mem_type.raw, buffer.pointer)


# =============================================================================
# Creation Inputs
# =============================================================================

def creation_inputs(dtype, data, shape, default_shape: Optional[Shape] = None):
    """
    Resolve the element type, committed datatype, host data and shape of a
    dataset or attribute about to be created.

    Returns:
        ``(descriptor, committed, data, shape)`` where ``committed`` is a
        Datatype or None and ``data`` is an array or None.
    """
    from .datatype import Datatype

    committed = dtype if isinstance(dtype, Datatype) else None
    if committed is not None:
        descriptor = committed.descriptor
    elif dtype is not None:
        descriptor = as_descriptor(dtype)
    elif data is not None:
        data = np.asarray(data)
        descriptor = from_dtype(data.dtype)
    else:
        raise TypeError("a dtype or data is required")

    if data is not None:
        data = as_host_array(descriptor, data)
    if shape is None:
        if data is not None:
            shape = data.shape
            if isinstance(descriptor, Array):
                shape = shape[:len(shape) - len(descriptor.dims)]
        elif default_shape is not None:
            shape = default_shape
        else:
            raise TypeError("a shape or data is required")
    return descriptor, committed, data, normalize_shape(shape)
