"""
Groups.

A group is a container of named links to other objects. Paths may be
relative to the group or absolute (starting with ``/``); intermediate groups
are created on demand. Existence is checked on the host side before creating
or opening, so a missing path raises ``NotFound`` and an occupied one
``AlreadyExists`` without relying on native error codes.
"""

from __future__ import annotations

import ctypes
from typing import Iterator, List, Optional, Tuple, Union

from ._native.types import (
    H5_INDEX_NAME, H5_ITER_INC, H5G_info_t, H5I_DATASET, H5I_DATATYPE,
    H5I_GROUP, H5P_DEFAULT, H5R_OBJECT, hobj_ref_t,
)
from .errors import AlreadyExists, NotFound, TypeMismatch, UnsupportedType
from .guard import guard
from .location import ObjectLocation, encode_name, link_creation_plist
from .registry import Handle, HandleKind, registry
from .translator import native_call

__all__ = ["Group", "ChildIterator"]

_KIND_BY_ID_TYPE = {
    H5I_GROUP: HandleKind.GROUP,
    H5I_DATASET: HandleKind.DATASET,
    H5I_DATATYPE: HandleKind.DATATYPE,
}


def _partial_paths(path: str) -> List[str]:
    prefix = "/" if path.startswith("/") else ""
    parts = [p for p in path.split("/") if p and p != "."]
    return [prefix + "/".join(parts[:i + 1]) for i in range(len(parts))]


def _adopt(raw: int):
    """Wrap a raw object id returned by an open-by-path call."""
    try:
        id_type = native_call("H5Iget_type", raw)
    except BaseException:
        native_call("H5Oclose", raw)
        raise
    kind = _KIND_BY_ID_TYPE.get(id_type)
    if kind is None:
        native_call("H5Oclose", raw)
        raise UnsupportedType(f"native object type {id_type} cannot be opened")
    return wrap_object(registry.wrap(raw, kind))


def wrap_object(handle: Handle) -> ObjectLocation:
    """Location object of the class matching ``handle.kind``."""
    from .dataset import Dataset
    from .datatype import Datatype
    if handle.kind is HandleKind.DATASET:
        return Dataset(handle)
    if handle.kind is HandleKind.DATATYPE:
        return Datatype(handle)
    return Group(handle)


# =============================================================================
# Child Iteration
# =============================================================================

class ChildIterator:
    """
    Lazy iteration over the links of a group in name order.

    Each step asks the native library for one link name by index, so no
    native callback runs user code. The link count is taken when iteration
    starts; every ``iter()`` starts over.
    """

    def __init__(self, group: "Group", objects: bool = False):
        self._group = group
        self._objects = objects

    def __iter__(self) -> Iterator[Union[str, Tuple[str, ObjectLocation]]]:
        group = self._group
        for index in range(len(group)):
            name = group._link_name(index)
            yield (name, group[name]) if self._objects else name


# =============================================================================
# Group
# =============================================================================

class Group(ObjectLocation):
    """Container of named links."""

    _kinds = (HandleKind.GROUP, HandleKind.FILE)

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def exists(self, path: str) -> bool:
        """True if every component of ``path`` is an existing link."""
        for partial in _partial_paths(path):
            try:
                found = native_call("H5Lexists", self.raw, encode_name(partial), H5P_DEFAULT)
            except NotFound:
                # an earlier component is not a group
                return False
            if found <= 0:
                return False
        return True

    __contains__ = exists

    def _require(self, path: str) -> None:
        if not self.exists(path):
            raise NotFound(f'"{path}" does not exist in {self.name}')

    def _prepare_create(self, path: str, overwrite: bool) -> None:
        if not _partial_paths(path):
            raise AlreadyExists(f'"{path}" names an existing group')
        for parent in _partial_paths(path)[:-1]:
            if not self.exists(parent):
                break
            with self[parent] as obj:
                if not isinstance(obj, Group):
                    raise TypeMismatch(f'"{parent}" is not a group, cannot create "{path}"')
        if self.exists(path):
            if not overwrite:
                raise AlreadyExists(f'"{path}" already exists in {self.name}')
            self.delete(path)

    def __getitem__(self, path: str) -> ObjectLocation:
        """Open the object at ``path`` as a Group, Dataset or Datatype."""
        self._require(path)
        with guard:
            raw = native_call("H5Oopen", self.raw, encode_name(path), H5P_DEFAULT,
                              context=f'opening "{path}"')
            return _adopt(raw)

    def get(self, path: str, default=None) -> Optional[ObjectLocation]:
        return self[path] if self.exists(path) else default

    def __len__(self) -> int:
        info = H5G_info_t()
        native_call("H5Gget_info", self.raw, ctypes.byref(info))
        return int(info.nlinks)

    def _link_name(self, index: int) -> str:
        args = (self.raw, b".", H5_INDEX_NAME, H5_ITER_INC, index)
        length = native_call("H5Lget_name_by_idx", *args, None, 0, H5P_DEFAULT)
        buf = ctypes.create_string_buffer(length + 1)
        native_call("H5Lget_name_by_idx", *args, buf, length + 1, H5P_DEFAULT)
        return buf.value.decode("utf-8", errors="surrogateescape")

    def iterate_children(self, objects: bool = False) -> ChildIterator:
        """Names of the direct children, or ``(name, object)`` pairs."""
        return ChildIterator(self, objects)

    def names(self) -> List[str]:
        return list(self.iterate_children())

    keys = names

    def items(self) -> ChildIterator:
        return self.iterate_children(objects=True)

    def __iter__(self) -> Iterator[str]:
        return iter(self.iterate_children())

    # -------------------------------------------------------------------------
    # Groups
    # -------------------------------------------------------------------------

    def create_group(self, name: str, overwrite: bool = False) -> "Group":
        """
        Create a new group; missing intermediate groups are created too.

        Raises:
            AlreadyExists: If ``name`` exists and ``overwrite`` is false.
        """
        self._prepare_create(name, overwrite)
        with link_creation_plist() as lcpl:
            handle = registry.open(
                HandleKind.GROUP, "H5Gcreate2", self.raw, encode_name(name),
                lcpl.raw, H5P_DEFAULT, H5P_DEFAULT, context=f'creating group "{name}"',
            )
        return Group(handle)

    def group(self, name: str) -> "Group":
        """Open an existing group."""
        obj = self[name]
        if not isinstance(obj, Group):
            obj.close()
            raise TypeMismatch(f'"{name}" is not a group')
        return obj

    def require_group(self, name: str) -> "Group":
        """Open ``name`` if it exists, else create it."""
        if self.exists(name):
            return self.group(name)
        return self.create_group(name)

    # -------------------------------------------------------------------------
    # Datasets and Datatypes
    # -------------------------------------------------------------------------

    def create_dataset(self, name: str, shape=None, dtype=None, data=None, maxshape=None,
                       chunks=None, compression=None, overwrite: bool = False):
        """Create a dataset; see ``Dataset.create``."""
        from .dataset import Dataset
        return Dataset.create(self, name, shape=shape, dtype=dtype, data=data, maxshape=maxshape,
                              chunks=chunks, compression=compression, overwrite=overwrite)

    def dataset(self, name: str):
        """Open an existing dataset."""
        from .dataset import Dataset
        return Dataset.open(self, name)

    def commit_datatype(self, name: str, descriptor, overwrite: bool = False):
        """Store ``descriptor`` as a named datatype; see ``Datatype.commit``."""
        from .datatype import Datatype
        return Datatype.commit(self, name, descriptor, overwrite=overwrite)

    def datatype(self, name: str):
        """Open an existing committed datatype."""
        from .datatype import Datatype
        return Datatype.open(self, name)

    # -------------------------------------------------------------------------
    # Links
    # -------------------------------------------------------------------------

    def delete(self, name: str) -> None:
        """Remove the link ``name``; the object goes once nothing links to it."""
        self._require(name)
        native_call("H5Ldelete", self.raw, encode_name(name), H5P_DEFAULT, context=f'deleting "{name}"')

    __delitem__ = delete

    def link_soft(self, target: str, name: str) -> None:
        """Create a symbolic link ``name`` pointing at path ``target``."""
        self._prepare_create(name, overwrite=False)
        with link_creation_plist() as lcpl:
            native_call("H5Lcreate_soft", encode_name(target), self.raw, encode_name(name),
                        lcpl.raw, H5P_DEFAULT, context=f'linking "{name}" -> "{target}"')

    def link_hard(self, target: Union[str, ObjectLocation], name: str) -> None:
        """Create another hard link ``name`` to an object or existing path."""
        self._prepare_create(name, overwrite=False)
        if isinstance(target, ObjectLocation):
            source, source_name = target.raw, b"."
        else:
            self._require(target)
            source, source_name = self.raw, encode_name(target)
        with link_creation_plist() as lcpl:
            native_call("H5Lcreate_hard", source, source_name, self.raw, encode_name(name),
                        lcpl.raw, H5P_DEFAULT, context=f'linking "{name}"')

    # -------------------------------------------------------------------------
    # Object References
    # -------------------------------------------------------------------------

    def reference(self, path: str = ".") -> int:
        """Object reference to ``path``, storable in a ``Reference`` dataset."""
        if path != ".":
            self._require(path)
        ref = hobj_ref_t()
        native_call("H5Rcreate", ctypes.byref(ref), self.raw, encode_name(path), H5R_OBJECT, -1,
                    context=f'referencing "{path}"')
        return int(ref.value)

    def dereference(self, ref: int) -> ObjectLocation:
        """Open the object an object reference points to."""
        ref = int(ref)
        if ref == 0:
            raise NotFound("null object reference")
        buf = hobj_ref_t(ref)
        with guard:
            raw = native_call("H5Rdereference2", self.raw, H5P_DEFAULT, H5R_OBJECT, ctypes.byref(buf),
                              context="dereferencing object reference")
            return _adopt(raw)
