"""
Attributes.

Attributes are small named values attached to a group, dataset or committed
datatype. They are always read and written whole. ``obj.attrs`` gives a
dict-like ``AttributeManager``:

    >>> ds.attrs["units"] = "kelvin"
    >>> ds.attrs["units"]
    'kelvin'
    >>> sorted(ds.attrs)
    ['units']
"""

from __future__ import annotations

import logging
from collections.abc import MutableMapping
from contextlib import ExitStack
from typing import Iterator, List, Optional

import numpy as np

from ._native.types import H5_INDEX_NAME, H5_ITER_INC, H5A_operator2_t, H5P_DEFAULT
from .bridge import from_native, to_dtype, to_native
from .buffers import creation_inputs, prepare_read, prepare_write, read_into, write_from
from .dataspace import Dataspace
from .descriptors import TypeDescriptor
from .errors import AlreadyExists, NotFound
from .location import HandleOwner, encode_name
from .registry import Handle, HandleKind, registry
from .translator import native_call

__all__ = ["Attribute", "AttributeManager"]

logger = logging.getLogger("h5bind.attribute")


def _exists(obj, name: str) -> bool:
    return native_call("H5Aexists", obj.raw, encode_name(name)) > 0


class Attribute(HandleOwner):
    """One open attribute."""

    _kinds = (HandleKind.ATTRIBUTE,)

    def __init__(self, handle: Handle, name: str = ""):
        super().__init__(handle)
        self._name = name
        self._descriptor: Optional[TypeDescriptor] = None

    @classmethod
    def create(cls, obj, name: str, shape=None, dtype=None, data=None, overwrite: bool = False) -> "Attribute":
        """
        Attach a new attribute to ``obj``.

        The shape defaults to that of ``data``, or scalar without data. Data
        is validated before anything is created or replaced.

        Raises:
            AlreadyExists: If the attribute exists and ``overwrite`` is false.
            TypeMismatch: If ``data`` cannot be converted to ``dtype``.
            DimensionMismatch: If ``data`` does not have ``shape``.
        """
        descriptor, committed, data, shape = creation_inputs(dtype, data, shape, default_shape=())
        write_buffer = prepare_write(descriptor, data, shape) if data is not None else None

        encoded = encode_name(name)
        with ExitStack() as stack:
            if committed is not None:
                type_raw = committed.raw
            else:
                type_raw = stack.enter_context(to_native(descriptor)).raw
            space = stack.enter_context(Dataspace.create(shape))
            if _exists(obj, name):
                if not overwrite:
                    raise AlreadyExists(f'attribute "{name}" already exists')
                native_call("H5Adelete", obj.raw, encoded, context=f'replacing attribute "{name}"')
            handle = registry.open(
                HandleKind.ATTRIBUTE, "H5Acreate2", obj.raw, encoded, type_raw, space.raw,
                H5P_DEFAULT, H5P_DEFAULT, context=f'creating attribute "{name}"',
            )

        attribute = cls(handle, name)
        attribute._descriptor = descriptor
        if write_buffer is not None:
            try:
                attribute._write_buffer(write_buffer)
            except BaseException:
                attribute.close()
                native_call("H5Adelete", obj.raw, encoded)
                raise
        return attribute

    @classmethod
    def open(cls, obj, name: str) -> "Attribute":
        """
        Open an attribute of ``obj``.

        Raises:
            NotFound: If ``obj`` has no attribute ``name``.
        """
        if not _exists(obj, name):
            raise NotFound(f'attribute "{name}" does not exist')
        handle = registry.open(HandleKind.ATTRIBUTE, "H5Aopen", obj.raw, encode_name(name), H5P_DEFAULT,
                               context=f'opening attribute "{name}"')
        return cls(handle, name)

    @property
    def name(self) -> str:
        return self._name

    @property
    def descriptor(self) -> TypeDescriptor:
        if self._descriptor is None:
            with registry.open(HandleKind.DATATYPE, "H5Aget_type", self.raw) as type_handle:
                self._descriptor = from_native(type_handle)
        return self._descriptor

    @property
    def dtype(self) -> np.dtype:
        return to_dtype(self.descriptor)

    @property
    def shape(self):
        with Dataspace.open(registry.open(HandleKind.DATASPACE, "H5Aget_space", self.raw)) as space:
            return space.shape

    def read(self, dtype=None, out: Optional[np.ndarray] = None) -> np.ndarray:
        """Read the whole attribute."""
        shape = self.shape
        buffer = prepare_read(self.descriptor, shape, dtype, out)
        with Dataspace.create(shape) as mem_space:
            def issue(mem_type, pointer):
                native_call("H5Aread", self.raw, mem_type, pointer, context=f'reading attribute "{self._name}"')
            return read_into(buffer, issue, mem_space.raw)

    def write(self, data) -> None:
        """Overwrite the whole attribute."""
        self._write_buffer(prepare_write(self.descriptor, data, self.shape))

    def _write_buffer(self, buffer) -> None:
        def issue(mem_type, pointer):
            native_call("H5Awrite", self.raw, mem_type, pointer, context=f'writing attribute "{self._name}"')
        write_from(buffer, issue)

    def __repr__(self) -> str:
        if not self.valid:
            return "<Attribute (closed)>"
        return f'<Attribute "{self._name}" shape={self.shape}>'


class AttributeManager(MutableMapping):
    """Dict-like access to the attributes of one object."""

    def __init__(self, obj):
        self._obj = obj

    def __getitem__(self, name: str):
        with Attribute.open(self._obj, name) as attribute:
            value = attribute.read()
        return value[()] if value.ndim == 0 else value

    def __setitem__(self, name: str, value) -> None:
        Attribute.create(self._obj, name, data=value, overwrite=True).close()

    def __delitem__(self, name: str) -> None:
        if not _exists(self._obj, name):
            raise NotFound(f'attribute "{name}" does not exist')
        native_call("H5Adelete", self._obj.raw, encode_name(name), context=f'deleting attribute "{name}"')

    def __contains__(self, name) -> bool:
        return _exists(self._obj, name)

    def get(self, name: str, default=None):
        return self[name] if name in self else default

    def keys(self) -> List[str]:
        """Attribute names in name order."""
        names: List[str] = []

        def _collect(location_id, attr_name, info, op_data):
            names.append(attr_name.decode("utf-8", errors="surrogateescape"))
            return 0

        native_call("H5Aiterate2", self._obj.raw, H5_INDEX_NAME, H5_ITER_INC, None,
                    H5A_operator2_t(_collect), None, context="listing attributes")
        return names

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def __len__(self) -> int:
        return len(self.keys())

    def create(self, name: str, shape=None, dtype=None, data=None, overwrite: bool = False) -> Attribute:
        """Create an attribute and return it open; see ``Attribute.create``."""
        return Attribute.create(self._obj, name, shape=shape, dtype=dtype, data=data, overwrite=overwrite)

    def get_attribute(self, name: str) -> Attribute:
        return Attribute.open(self._obj, name)

    def __repr__(self) -> str:
        return f"<Attributes of {self._obj!r}: {self.keys()}>"
