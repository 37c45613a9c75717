"""
Files.

A ``File`` is the root group of an HDF5 file. Modes:

    r       read only, file must exist
    r+      read/write, file must exist
    w       create, truncating an existing file
    w-, x   create, fail if the file exists
    a       read/write if the file exists, create otherwise

Within one process a file has at most one writer at a time: opening a file
for writing raises ``AlreadyExists`` while any native object of a writable
open of the same real path is live, be it a ``File``, a file reached through
``obj.file`` or a group or dataset that outlived its ``File`` (configurable
with ``writer_exclusive``).
Exclusivity across processes is left to the native library's file locking.
"""

from __future__ import annotations

import ctypes
import logging
import os
from typing import Union

from ._native.types import (
    H5F_ACC_EXCL, H5F_ACC_RDONLY, H5F_ACC_RDWR, H5F_ACC_TRUNC, H5F_OBJ_ALL,
    H5F_SCOPE_GLOBAL, H5P_DEFAULT, hid_t,
)
from .config import get_config
from .errors import AlreadyExists, NotFound
from .group import Group
from .guard import guard
from .location import native_string
from .registry import Handle, HandleKind, registry
from .translator import native_call

__all__ = ["File"]

logger = logging.getLogger("h5bind.file")

_MODES = ("r", "r+", "w", "w-", "x", "a")


def _open_for_writing(real_path: str) -> bool:
    """True if an open native object in this process belongs to a writable open of ``real_path``."""
    count = native_call("H5Fget_obj_count", H5F_OBJ_ALL, H5F_OBJ_ALL)
    if count == 0:
        return False
    ids = (hid_t * count)()
    count = native_call("H5Fget_obj_ids", H5F_OBJ_ALL, H5F_OBJ_ALL, count, ids)
    intent = ctypes.c_uint()
    for raw in ids[:count]:
        file_raw = native_call("H5Iget_file_id", raw)
        try:
            native_call("H5Fget_intent", file_raw, ctypes.byref(intent))
            if not intent.value & H5F_ACC_RDWR:
                continue
            name = native_string("H5Fget_name", file_raw)
        finally:
            native_call("H5Fclose", file_raw)
        if os.path.realpath(name) == real_path:
            return True
    return False


class File(Group):
    """
    An open HDF5 file, usable as its root group.

    Example:
        with File("data.h5", "w") as f:
            f.create_dataset("x", data=numpy.arange(10))
    """

    _kinds = (HandleKind.FILE,)

    def __init__(self, name: Union[str, os.PathLike, Handle], mode: str = "r"):
        if isinstance(name, Handle):
            super().__init__(name)
            return

        if mode not in _MODES:
            raise ValueError(f"invalid file mode {mode!r}, expected one of {', '.join(_MODES)}")
        path = os.fspath(name)
        exists = os.path.exists(path)
        if mode == "a":
            mode = "r+" if exists else "w-"
        if mode in ("r", "r+") and not exists:
            raise NotFound(f"file {path!r} does not exist")
        if mode in ("w-", "x") and exists:
            raise AlreadyExists(f"file {path!r} already exists")

        real_path = os.path.realpath(path)
        exclusive = mode != "r" and get_config().writer_exclusive
        # held across check and open so no other thread opens in between
        with guard:
            if exclusive and _open_for_writing(real_path):
                raise AlreadyExists(f"file {path!r} is already open for writing")
            handle = self._open_native(path, mode)
        super().__init__(handle)
        logger.debug("opened %s (mode %s)", path, mode)

    @staticmethod
    def _open_native(path: str, mode: str) -> Handle:
        encoded = os.fsencode(path)
        context = f"opening file {path!r}"
        if mode == "r":
            return registry.open(HandleKind.FILE, "H5Fopen", encoded, H5F_ACC_RDONLY, H5P_DEFAULT, context=context)
        if mode == "r+":
            return registry.open(HandleKind.FILE, "H5Fopen", encoded, H5F_ACC_RDWR, H5P_DEFAULT, context=context)
        flags = H5F_ACC_TRUNC if mode == "w" else H5F_ACC_EXCL
        return registry.open(HandleKind.FILE, "H5Fcreate", encoded, flags, H5P_DEFAULT, H5P_DEFAULT,
                             context=f"creating file {path!r}")

    @classmethod
    def create(cls, path, overwrite: bool = False) -> "File":
        """
        Create a new file opened for writing.

        Raises:
            AlreadyExists: If ``path`` exists and ``overwrite`` is false, or
                the file is open for writing elsewhere in this process.
        """
        return cls(path, "w" if overwrite else "w-")

    @classmethod
    def open(cls, path, mode: str = "r") -> "File":
        """
        Open an existing file read-only (``"r"``) or read/write (``"r+"``).

        Raises:
            NotFound: If ``path`` does not exist.
        """
        if mode not in ("r", "r+"):
            raise ValueError(f"File.open mode must be 'r' or 'r+', got {mode!r}")
        return cls(path, mode)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def filename(self) -> str:
        return native_string("H5Fget_name", self.raw)

    @property
    def mode(self) -> str:
        intent = ctypes.c_uint()
        native_call("H5Fget_intent", self.raw, ctypes.byref(intent))
        return "r+" if intent.value & H5F_ACC_RDWR else "r"

    def open_object_count(self, types: int = H5F_OBJ_ALL) -> int:
        """Number of open native objects in this file, the file itself included."""
        return native_call("H5Fget_obj_count", self.raw, types)

    # -------------------------------------------------------------------------
    # Lifetime
    # -------------------------------------------------------------------------

    def flush(self) -> None:
        native_call("H5Fflush", self.raw, H5F_SCOPE_GLOBAL, context="flushing file")

    def __repr__(self) -> str:
        if not self.valid:
            return "<File (closed)>"
        return f'<File "{self.filename}" (mode {self.mode})>'
