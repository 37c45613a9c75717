"""
Datasets.

A dataset is a typed n-dimensional array stored in a file. Reads and writes
go through selections on its dataspace; every transfer is validated on the
host (selection bounds, buffer shape, element type) before the single native
read or write call is issued.

Example:
    >>> ds = f.create_dataset("temps", shape=(4, 3), dtype="f8")
    >>> ds.write(numpy.zeros((2, 3)), Hyperslab(start=(0, 0), count=(2, 3)))
    >>> ds[1:3, 0]
    array([0., 0.])
"""

from __future__ import annotations

import logging
from contextlib import ExitStack
from typing import Optional, Tuple

import numpy as np

from ._native.library import get_library
from ._native.types import H5D_CHUNKED, H5P_DEFAULT, hsize_t
from .bridge import from_native, to_dtype, to_native
from .buffers import as_host_array, creation_inputs, prepare_read, prepare_write, read_into, write_from
from .dataspace import (
    All, Dataspace, Hyperslab, PointList, Selection, UNLIMITED, normalize_shape, selection_shape,
)
from .descriptors import Array, TypeDescriptor, size_of
from .errors import DimensionMismatch
from .guard import guard
from .location import ObjectLocation, encode_name, link_creation_plist
from .registry import Handle, HandleKind, registry
from .translator import native_call

__all__ = ["Dataset"]

logger = logging.getLogger("h5bind.dataset")

# Upper bound on the byte size of an automatically chosen chunk
_CHUNK_TARGET = 1 << 20


def _hsize_array(values):
    return (hsize_t * len(values))(*values)


def _guess_chunks(shape: Tuple[int, ...], itemsize: int, maxshape=None) -> Tuple[int, ...]:
    limits = maxshape if maxshape is not None and len(maxshape) == len(shape) else (UNLIMITED,) * len(shape)
    chunks = [
        s if s > 0 else (1024 if m is UNLIMITED else max(1, min(1024, m)))
        for s, m in zip(shape, limits)
    ]
    while True:
        nbytes = itemsize
        for c in chunks:
            nbytes *= c
        if nbytes <= _CHUNK_TARGET or all(c == 1 for c in chunks):
            return tuple(chunks)
        axis = max(range(len(chunks)), key=lambda i: chunks[i])
        chunks[axis] = max(1, (chunks[axis] + 1) // 2)


def _gzip_level(compression) -> Optional[int]:
    if compression is None:
        return None
    if compression == "gzip":
        return 4
    if isinstance(compression, int) and not isinstance(compression, bool) and 0 <= compression <= 9:
        return compression
    raise ValueError(f"unsupported compression {compression!r}, expected 'gzip' or a level 0-9")


def _creation_plist(chunks: Optional[Tuple[int, ...]], gzip_level: Optional[int]) -> Handle:
    handle = registry.open(
        HandleKind.PROPERTY_LIST, "H5Pcreate", get_library().global_id("H5P_CLS_DATASET_CREATE_ID_g")
    )
    try:
        if chunks is not None:
            native_call("H5Pset_chunk", handle.raw, len(chunks), _hsize_array(chunks))
        if gzip_level is not None:
            native_call("H5Pset_deflate", handle.raw, gzip_level)
    except BaseException:
        handle.close()
        raise
    return handle


def _selection_from_key(key, shape: Tuple[int, ...]) -> Tuple[Selection, Tuple[int, ...]]:
    """Translate basic numpy indexing into a selection and the result shape."""
    if key is Ellipsis or (isinstance(key, tuple) and not key):
        return All(), tuple(shape)
    if not isinstance(key, tuple):
        key = (key,)
    if key.count(Ellipsis) > 1:
        raise IndexError("an index can only have a single ellipsis")
    if Ellipsis in key:
        i = key.index(Ellipsis)
        fill = len(shape) - (len(key) - 1)
        key = key[:i] + (slice(None),) * fill + key[i + 1:]
    if len(key) > len(shape):
        raise DimensionMismatch(f"{len(key)} indices for a dataset of rank {len(shape)}")
    key = key + (slice(None),) * (len(shape) - len(key))

    start, count, stride, result = [], [], [], []
    for axis, (k, dim) in enumerate(zip(key, shape)):
        if isinstance(k, slice):
            first, stop, step = k.indices(dim)
            if step < 1:
                raise DimensionMismatch("slices with non-positive steps are not supported")
            n = len(range(first, stop, step))
            start.append(first if n else 0)
            count.append(n)
            stride.append(step)
            result.append(n)
        elif isinstance(k, (int, np.integer)) and not isinstance(k, bool):
            index = int(k) + dim if k < 0 else int(k)
            if not 0 <= index < dim:
                raise DimensionMismatch(f"index {int(k)} is out of range for axis {axis} with size {dim}")
            start.append(index)
            count.append(1)
            stride.append(1)
        else:
            raise TypeError(f"unsupported index {k!r}; use integers, slices or a selection")
    return Hyperslab(tuple(start), tuple(count), tuple(stride)), tuple(result)


class Dataset(ObjectLocation):
    """A typed n-dimensional array stored in a file."""

    _kinds = (HandleKind.DATASET,)

    def __init__(self, handle: Handle):
        super().__init__(handle)
        self._descriptor: Optional[TypeDescriptor] = None

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    @classmethod
    def create(cls, parent, name: str, shape=None, dtype=None, data=None, maxshape=None,
               chunks=None, compression=None, overwrite: bool = False) -> "Dataset":
        """
        Create a dataset below ``parent``.

        Args:
            parent: Group (or File) to create the dataset in.
            name: Path of the new dataset; intermediate groups are created.
            shape: Dimensions; taken from ``data`` if omitted.
            dtype: A TypeDescriptor, numpy dtype or committed Datatype;
                taken from ``data`` if omitted.
            data: Initial contents, written right after creation.
            maxshape: Maximum dimensions, ``UNLIMITED`` (None) for unbounded
                axes. Unbounded axes need chunked storage; chunks are chosen
                automatically when not given.
            chunks: Chunk dimensions.
            compression: ``"gzip"`` or a gzip level 0-9.
            overwrite: Replace an existing object at ``name``.

        Raises:
            AlreadyExists: If ``name`` exists and ``overwrite`` is false.
            DimensionMismatch: If shape, maxshape, chunks or data disagree.
            TypeMismatch: If ``data`` cannot be converted to ``dtype``.
            UnsupportedType: If ``dtype`` has no native representation.
        """
        descriptor, committed, data, shape = creation_inputs(dtype, data, shape)
        write_buffer = prepare_write(descriptor, data, shape) if data is not None else None

        gzip_level = _gzip_level(compression)
        if maxshape is not None:
            maxshape = tuple(maxshape)
        if chunks is None and (gzip_level is not None or (maxshape is not None and maxshape != shape)):
            chunks = _guess_chunks(shape, size_of(descriptor), maxshape)
        if chunks is not None:
            chunks = normalize_shape(chunks)
            if len(chunks) != len(shape) or not shape:
                raise DimensionMismatch(f"chunks {chunks} do not match the rank of shape {shape}")
            if any(c < 1 for c in chunks):
                raise DimensionMismatch(f"chunk dimensions must be positive, got {chunks}")
            limits = maxshape if maxshape is not None else shape
            if any(m is not UNLIMITED and c > m for c, m in zip(chunks, limits)):
                raise DimensionMismatch(f"chunks {chunks} exceed the maximum shape {limits}")

        with ExitStack() as stack:
            if committed is not None:
                type_raw = committed.raw
            else:
                type_raw = stack.enter_context(to_native(descriptor)).raw
            space = stack.enter_context(Dataspace.create(shape, maxshape))
            dcpl = stack.enter_context(_creation_plist(chunks, gzip_level))
            lcpl = stack.enter_context(link_creation_plist())
            parent._prepare_create(name, overwrite)
            handle = registry.open(
                HandleKind.DATASET, "H5Dcreate2", parent.raw, encode_name(name), type_raw,
                space.raw, lcpl.raw, dcpl.raw, H5P_DEFAULT, context=f'creating dataset "{name}"',
            )

        dataset = cls(handle)
        dataset._descriptor = descriptor
        if write_buffer is not None:
            try:
                dataset._write_buffer(write_buffer, All())
            except BaseException:
                dataset.close()
                parent.delete(name)
                raise
        return dataset

    @classmethod
    def open(cls, parent, name: str) -> "Dataset":
        """
        Open an existing dataset.

        Raises:
            NotFound: If ``name`` does not exist below ``parent``.
        """
        parent._require(name)
        return cls(registry.open(HandleKind.DATASET, "H5Dopen2", parent.raw, encode_name(name),
                                 H5P_DEFAULT, context=f'opening dataset "{name}"'))

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def descriptor(self) -> TypeDescriptor:
        """Stored element type."""
        if self._descriptor is None:
            with registry.open(HandleKind.DATATYPE, "H5Dget_type", self.raw) as type_handle:
                self._descriptor = from_native(type_handle)
        return self._descriptor

    @property
    def dtype(self) -> np.dtype:
        """numpy dtype of a buffer holding one stored element."""
        return to_dtype(self.descriptor)

    def dataspace(self) -> Dataspace:
        """A new Dataspace for the current extent; the caller closes it."""
        return Dataspace.open(registry.open(HandleKind.DATASPACE, "H5Dget_space", self.raw))

    @property
    def shape(self) -> Tuple[int, ...]:
        with self.dataspace() as space:
            return space.shape

    @property
    def maxshape(self) -> Tuple[Optional[int], ...]:
        with self.dataspace() as space:
            return space.maxshape

    @property
    def ndim(self) -> int:
        return len(self.shape)

    @property
    def size(self) -> int:
        n = 1
        for s in self.shape:
            n *= s
        return n

    def __len__(self) -> int:
        shape = self.shape
        if not shape:
            raise TypeError("len() of a scalar dataset")
        return shape[0]

    @property
    def chunks(self) -> Optional[Tuple[int, ...]]:
        """Chunk dimensions, or None for contiguous/compact storage."""
        with registry.open(HandleKind.PROPERTY_LIST, "H5Dget_create_plist", self.raw) as dcpl:
            if native_call("H5Pget_layout", dcpl.raw) != H5D_CHUNKED:
                return None
            rank = self.ndim
            dims = (hsize_t * rank)()
            native_call("H5Pget_chunk", dcpl.raw, rank, dims)
            return tuple(int(d) for d in dims)

    def committed_type(self):
        """
        The committed Datatype this dataset was created with, or None.

        The dataset does not own the datatype; the returned object is a new
        handle to it.
        """
        from .datatype import Datatype
        with guard:
            handle = registry.open(HandleKind.DATATYPE, "H5Dget_type", self.raw)
            if native_call("H5Tcommitted", handle.raw) > 0:
                return Datatype(handle)
        handle.close()
        return None

    # -------------------------------------------------------------------------
    # I/O
    # -------------------------------------------------------------------------

    def read(self, selection: Selection = All(), dtype=None, out: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Read the selected elements.

        Args:
            selection: All(), a Hyperslab or a PointList.
            dtype: Element type of the result (descriptor or numpy dtype);
                defaults to the stored type.
            out: Existing C-contiguous array to read into.

        Returns:
            An array of the selection's shape (plus the dims of an ``Array``
            element type).

        Raises:
            DimensionMismatch: If the selection is out of bounds or ``out``
                has the wrong shape.
            TypeMismatch: If the stored type cannot be converted to the
                requested one.
        """
        stored = self.descriptor
        with self.dataspace() as file_space:
            sel_shape = selection_shape(selection, file_space.shape)
            buffer = prepare_read(stored, sel_shape, dtype, out)
            file_space.select(selection)
            with Dataspace.create(sel_shape) as mem_space:
                def issue(mem_type, pointer):
                    native_call("H5Dread", self.raw, mem_type, mem_space.raw, file_space.raw,
                                H5P_DEFAULT, pointer, context=f"reading {self.name}")
                return read_into(buffer, issue, mem_space.raw)

    def write(self, data, selection: Selection = All()) -> None:
        """
        Write ``data`` to the selected elements in one native call.

        Raises:
            DimensionMismatch: If the selection is out of bounds or the data's
                shape differs from the selection's.
            TypeMismatch: If the data cannot be converted to the stored type.
        """
        with self.dataspace() as file_space:
            sel_shape = selection_shape(selection, file_space.shape)
        self._write_buffer(prepare_write(self.descriptor, data, sel_shape), selection)

    def _write_buffer(self, buffer, selection: Selection) -> None:
        with self.dataspace() as file_space:
            sel_shape = file_space.selection_shape(selection)
            file_space.select(selection)
            with Dataspace.create(sel_shape) as mem_space:
                def issue(mem_type, pointer):
                    native_call("H5Dwrite", self.raw, mem_type, mem_space.raw, file_space.raw,
                                H5P_DEFAULT, pointer, context=f"writing {self.name}")
                write_from(buffer, issue)

    def read_scalar(self):
        """The single element of a scalar (or one-element) dataset."""
        if self.size != 1:
            raise DimensionMismatch(f"dataset of shape {self.shape} is not a scalar")
        value = self.read()
        if isinstance(self.descriptor, Array):
            return value.reshape(self.descriptor.dims)
        return value.reshape(-1)[0]

    def resize(self, shape) -> None:
        """
        Change the current extent within the maximum shape.

        Raises:
            DimensionMismatch: If ``shape`` has another rank or exceeds
                ``maxshape`` on some axis.
        """
        shape = normalize_shape(shape)
        maxshape = self.maxshape
        if len(shape) != len(maxshape):
            raise DimensionMismatch(f"cannot resize a rank {len(maxshape)} dataset to {shape}")
        for s, m in zip(shape, maxshape):
            if m is not UNLIMITED and s > m:
                raise DimensionMismatch(f"shape {shape} exceeds the maximum shape {maxshape}")
        native_call("H5Dset_extent", self.raw, _hsize_array(shape), context=f"resizing {self.name}")
        logger.debug("resized %s to %s", self.name, shape)

    def __getitem__(self, key) -> np.ndarray:
        if isinstance(key, (All, Hyperslab, PointList)):
            return self.read(key)
        shape = self.shape
        selection, result_shape = _selection_from_key(key, shape)
        value = self.read(selection)
        return value.reshape(result_shape + value.shape[len(shape):])

    def __setitem__(self, key, value) -> None:
        shape = self.shape
        selection, result_shape = _selection_from_key(key, shape)
        stored = self.descriptor
        element = stored.dims if isinstance(stored, Array) else ()
        target = selection_shape(selection, shape) + element
        array = as_host_array(stored, value)
        if array.shape != target:
            # broadcast against the indexed view, then restore the dropped axes
            try:
                array = np.broadcast_to(array, result_shape + element).reshape(target)
            except ValueError:
                raise DimensionMismatch(
                    f"cannot fit data of shape {array.shape} into {result_shape + element}"
                ) from None
        self.write(array, selection)

    def __repr__(self) -> str:
        if not self.valid:
            return "<Dataset (closed)>"
        return f'<Dataset "{self.name}" shape={self.shape} type={type(self.descriptor).__name__}>'
