"""
Common base classes of all location objects.

``HandleOwner`` ties a Python object to one registry handle; ``ObjectLocation``
adds what every named object in a file has (path, owning file, attributes).
"""

from __future__ import annotations

import ctypes
from typing import Tuple

from ._native.library import get_library
from .errors import NotFound
from .guard import guard
from .registry import Handle, HandleKind, registry
from .translator import native_call

__all__ = ["HandleOwner", "ObjectLocation", "encode_name", "native_string", "link_creation_plist"]


def encode_name(name) -> bytes:
    """Encode a link or attribute name for the native library."""
    if isinstance(name, bytes):
        name = name.decode("utf-8")
    name = str(name)
    if not name:
        raise NotFound("empty name")
    return name.encode("utf-8")


def native_string(func: str, *args, context: str = "") -> str:
    """
    Fetch a string through the native ``(…, char *buf, size_t size)``
    convention: query the length first, then fill a buffer of that size.
    """
    length = native_call(func, *args, None, 0, context=context)
    buf = ctypes.create_string_buffer(length + 1)
    native_call(func, *args, buf, length + 1, context=context)
    return buf.value.decode("utf-8", errors="surrogateescape")


class HandleOwner:
    """An object whose lifetime is that of one registry handle."""

    _kinds: Tuple[HandleKind, ...] = ()

    def __init__(self, handle: Handle):
        self._handle = handle.expect(*self._kinds)

    @property
    def handle(self) -> Handle:
        return self._handle

    @property
    def raw(self) -> int:
        return self._handle.raw

    @property
    def valid(self) -> bool:
        return self._handle.valid

    def close(self) -> None:
        """Release the native object. Closing twice does nothing."""
        self._handle.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __bool__(self) -> bool:
        return self.valid

    def __eq__(self, other) -> bool:
        if not isinstance(other, HandleOwner):
            return NotImplemented
        return self._handle.same_entry(other._handle)

    def __hash__(self) -> int:
        return hash(id(self._handle._entry))


class ObjectLocation(HandleOwner):
    """A named object inside a file: group, dataset or committed datatype."""

    @property
    def name(self) -> str:
        """Path of the object inside its file (the path it was opened by)."""
        return native_string("H5Iget_name", self.raw)

    @property
    def file(self):
        """The file containing this object, as a new File handle."""
        from .file import File
        # H5Iget_file_id may return the id of an already open File
        with guard:
            raw = native_call("H5Iget_file_id", self.raw)
            try:
                handle = registry.open(HandleKind.FILE, "H5Freopen", raw)
            finally:
                native_call("H5Fclose", raw)
        return File(handle)

    @property
    def attrs(self):
        from .attribute import AttributeManager
        return AttributeManager(self)

    def __repr__(self) -> str:
        if not self.valid:
            return f"<{type(self).__name__} (closed)>"
        return f'<{type(self).__name__} "{self.name}">'


def link_creation_plist() -> Handle:
    """Link creation property list that creates missing intermediate groups."""
    handle = registry.open(
        HandleKind.PROPERTY_LIST, "H5Pcreate", get_library().global_id("H5P_CLS_LINK_CREATE_ID_g")
    )
    try:
        native_call("H5Pset_create_intermediate_group", handle.raw, 1)
    except BaseException:
        handle.close()
        raise
    return handle
