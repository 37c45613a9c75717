"""Committed (named) datatypes."""

from __future__ import annotations

from typing import Optional

import numpy as np

from ._native.types import H5P_DEFAULT
from .bridge import as_descriptor, from_native, to_dtype, to_native
from .descriptors import TypeDescriptor
from .location import ObjectLocation, encode_name, link_creation_plist
from .registry import Handle, HandleKind, registry
from .translator import native_call

__all__ = ["Datatype"]


class Datatype(ObjectLocation):
    """
    A datatype stored in a file under a name.

    Datasets and attributes created with a ``Datatype`` as their dtype refer
    to it natively instead of carrying a private copy of the type.
    """

    _kinds = (HandleKind.DATATYPE,)

    def __init__(self, handle: Handle):
        super().__init__(handle)
        self._descriptor: Optional[TypeDescriptor] = None

    @classmethod
    def commit(cls, parent, name: str, descriptor, overwrite: bool = False) -> "Datatype":
        """
        Store ``descriptor`` as a named datatype below ``parent``.

        Raises:
            AlreadyExists: If ``name`` exists and ``overwrite`` is false.
            UnsupportedType: If the descriptor has no native representation.
        """
        descriptor = as_descriptor(descriptor)
        handle = to_native(descriptor)
        try:
            parent._prepare_create(name, overwrite)
            with link_creation_plist() as lcpl:
                native_call("H5Tcommit2", parent.raw, encode_name(name), handle.raw, lcpl.raw,
                            H5P_DEFAULT, H5P_DEFAULT, context=f'committing datatype "{name}"')
        except BaseException:
            handle.close()
            raise
        datatype = cls(handle)
        datatype._descriptor = descriptor
        return datatype

    @classmethod
    def open(cls, parent, name: str) -> "Datatype":
        """
        Open a committed datatype.

        Raises:
            NotFound: If ``name`` does not exist below ``parent``.
        """
        parent._require(name)
        return cls(registry.open(HandleKind.DATATYPE, "H5Topen2", parent.raw, encode_name(name),
                                 H5P_DEFAULT, context=f'opening datatype "{name}"'))

    @property
    def descriptor(self) -> TypeDescriptor:
        if self._descriptor is None:
            self._descriptor = from_native(self._handle)
        return self._descriptor

    @property
    def dtype(self) -> np.dtype:
        return to_dtype(self.descriptor)

    @property
    def committed(self) -> bool:
        return native_call("H5Tcommitted", self.raw) > 0
