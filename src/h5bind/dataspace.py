"""
Dataspaces and selections.

A dataspace is the extent (shape and maximum shape) of a dataset or
attribute together with a current selection. Selections are plain values:

    All()                               every element
    Hyperslab(start, count, stride, block)
    PointList(points)                   explicit coordinates, in order

Bounds are validated on the host before a selection is applied, so an
out-of-range selection raises ``DimensionMismatch`` without a native call.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union

from ._native.types import H5S_SCALAR, H5S_SELECT_SET, H5S_UNLIMITED, hsize_t
from .errors import DimensionMismatch
from .location import HandleOwner
from .registry import Handle, HandleKind, registry
from .translator import native_call

__all__ = [
    "UNLIMITED", "All", "Hyperslab", "PointList", "Selection",
    "Dataspace", "selection_shape", "normalize_shape",
]

# Marks an unbounded maximum dimension
UNLIMITED = None

Shape = Tuple[int, ...]


def normalize_shape(shape) -> Shape:
    if shape is None:
        return ()
    if isinstance(shape, int):
        shape = (shape,)
    shape = tuple(int(s) for s in shape)
    if any(s < 0 for s in shape):
        raise DimensionMismatch(f"negative dimension in shape {shape}")
    return shape


def _hsize_array(values: Sequence[int]):
    return (hsize_t * len(values))(*values)


# =============================================================================
# Selections
# =============================================================================

@dataclass(frozen=True)
class All:
    """Select every element."""

    def shape(self, dims: Shape) -> Shape:
        return tuple(dims)

    def validate(self, dims: Shape) -> None:
        pass


@dataclass(frozen=True)
class Hyperslab:
    """
    Regular block selection.

    Along each axis, ``count`` blocks of ``block`` elements are selected,
    the first starting at ``start`` and consecutive ones ``stride`` apart.
    ``stride`` and ``block`` default to 1. The selected region reads as an
    array of shape ``count * block``.
    """
    start: Tuple[int, ...]
    count: Tuple[int, ...]
    stride: Optional[Tuple[int, ...]] = None
    block: Optional[Tuple[int, ...]] = None

    def __post_init__(self):
        start = tuple(int(v) for v in self.start)
        count = tuple(int(v) for v in self.count)
        stride = tuple(int(v) for v in self.stride) if self.stride is not None else (1,) * len(start)
        block = tuple(int(v) for v in self.block) if self.block is not None else (1,) * len(start)
        if not len(start) == len(count) == len(stride) == len(block):
            raise DimensionMismatch("hyperslab start, count, stride and block must have equal rank")
        object.__setattr__(self, "start", start)
        object.__setattr__(self, "count", count)
        object.__setattr__(self, "stride", stride)
        object.__setattr__(self, "block", block)

    @property
    def rank(self) -> int:
        return len(self.start)

    def shape(self, dims: Shape) -> Shape:
        return tuple(c * b for c, b in zip(self.count, self.block))

    def validate(self, dims: Shape) -> None:
        if self.rank != len(dims):
            raise DimensionMismatch(f"hyperslab of rank {self.rank} on a dataspace of rank {len(dims)}")
        for axis, (s, c, st, b, d) in enumerate(zip(self.start, self.count, self.stride, self.block, dims)):
            if s < 0 or c < 0 or st < 1 or b < 1:
                raise DimensionMismatch(f"invalid hyperslab parameters on axis {axis}")
            if c > 1 and b > st:
                raise DimensionMismatch(f"hyperslab blocks overlap on axis {axis}")
            if c and s + (c - 1) * st + b > d:
                raise DimensionMismatch(
                    f"hyperslab exceeds dimension {d} on axis {axis} "
                    f"(last index {s + (c - 1) * st + b - 1})"
                )

    @property
    def empty(self) -> bool:
        return any(c == 0 for c in self.count)


@dataclass(frozen=True)
class PointList:
    """Explicit element coordinates; elements are transferred in list order."""
    points: Tuple[Tuple[int, ...], ...]

    def __post_init__(self):
        points = tuple(tuple(int(c) for c in p) for p in self.points)
        if not points:
            raise DimensionMismatch("point selection needs at least one point")
        if len({len(p) for p in points}) != 1:
            raise DimensionMismatch("all points must have the same rank")
        object.__setattr__(self, "points", points)

    @property
    def rank(self) -> int:
        return len(self.points[0])

    def shape(self, dims: Shape) -> Shape:
        return (len(self.points),)

    def validate(self, dims: Shape) -> None:
        if self.rank != len(dims):
            raise DimensionMismatch(f"points of rank {self.rank} on a dataspace of rank {len(dims)}")
        for p in self.points:
            if any(not 0 <= c < d for c, d in zip(p, dims)):
                raise DimensionMismatch(f"point {p} is outside the extent {tuple(dims)}")


Selection = Union[All, Hyperslab, PointList]


def selection_shape(selection: Selection, dims: Shape) -> Shape:
    """Validate ``selection`` against ``dims`` and return the shape it reads as."""
    if not isinstance(selection, (All, Hyperslab, PointList)):
        raise TypeError(f"not a selection: {selection!r}")
    selection.validate(tuple(dims))
    return selection.shape(tuple(dims))


# =============================================================================
# Dataspace
# =============================================================================

class Dataspace(HandleOwner):
    """Extent plus current selection of a dataset, attribute or memory buffer."""

    _kinds = (HandleKind.DATASPACE,)

    def __init__(self, handle: Handle, selection: Selection = All()):
        super().__init__(handle)
        self._selection = selection

    @classmethod
    def create(cls, shape, maxshape=None) -> "Dataspace":
        """
        New simple dataspace; an empty ``shape`` gives a scalar dataspace.

        Args:
            shape: Current dimensions.
            maxshape: Maximum dimensions, ``UNLIMITED`` (None) for unbounded
                axes. Defaults to ``shape``.

        Raises:
            DimensionMismatch: If ``maxshape`` has another rank or is smaller
                than ``shape`` on some axis.
        """
        shape = normalize_shape(shape)
        if not shape:
            if maxshape:
                raise DimensionMismatch("a scalar dataspace has no maximum shape")
            return cls.scalar()
        maxdims = None
        if maxshape is not None:
            maxshape = tuple(maxshape)
            if len(maxshape) != len(shape):
                raise DimensionMismatch(f"maxshape {maxshape} has another rank than shape {shape}")
            for s, m in zip(shape, maxshape):
                if m is not UNLIMITED and m < s:
                    raise DimensionMismatch(f"maxshape {maxshape} is smaller than shape {shape}")
            maxdims = _hsize_array([H5S_UNLIMITED if m is UNLIMITED else int(m) for m in maxshape])
        handle = registry.open(
            HandleKind.DATASPACE, "H5Screate_simple", len(shape), _hsize_array(shape), maxdims
        )
        return cls(handle)

    @classmethod
    def scalar(cls) -> "Dataspace":
        return cls(registry.open(HandleKind.DATASPACE, "H5Screate", H5S_SCALAR))

    @classmethod
    def open(cls, handle: Handle) -> "Dataspace":
        """Adopt a dataspace handle obtained from a dataset or attribute."""
        return cls(handle)

    def copy(self) -> "Dataspace":
        return Dataspace(registry.open(HandleKind.DATASPACE, "H5Scopy", self.raw), self._selection)

    # -------------------------------------------------------------------------
    # Extent
    # -------------------------------------------------------------------------

    @property
    def is_scalar(self) -> bool:
        return native_call("H5Sget_simple_extent_type", self.raw) == H5S_SCALAR

    @property
    def rank(self) -> int:
        return native_call("H5Sget_simple_extent_ndims", self.raw)

    def _extent(self) -> Tuple[Shape, Tuple[Optional[int], ...]]:
        rank = self.rank
        dims = (hsize_t * rank)()
        maxdims = (hsize_t * rank)()
        native_call("H5Sget_simple_extent_dims", self.raw, dims, maxdims)
        maxshape = tuple(UNLIMITED if m == H5S_UNLIMITED else int(m) for m in maxdims)
        return tuple(int(d) for d in dims), maxshape

    @property
    def shape(self) -> Shape:
        return self._extent()[0]

    @property
    def maxshape(self) -> Tuple[Optional[int], ...]:
        return self._extent()[1]

    # -------------------------------------------------------------------------
    # Selection
    # -------------------------------------------------------------------------

    @property
    def selection(self) -> Selection:
        return self._selection

    def selection_shape(self, selection: Optional[Selection] = None) -> Shape:
        """Shape of ``selection`` (default: the current one) on this extent."""
        return selection_shape(self._selection if selection is None else selection, self.shape)

    def select(self, selection: Selection) -> "Dataspace":
        """
        Replace the current selection.

        Raises:
            DimensionMismatch: If the selection does not fit the extent.
        """
        selection_shape(selection, self.shape)
        raw = self.raw
        if isinstance(selection, All):
            native_call("H5Sselect_all", raw)
        elif isinstance(selection, Hyperslab):
            if selection.empty:
                native_call("H5Sselect_none", raw)
            else:
                native_call(
                    "H5Sselect_hyperslab", raw, H5S_SELECT_SET,
                    _hsize_array(selection.start), _hsize_array(selection.stride),
                    _hsize_array(selection.count), _hsize_array(selection.block),
                )
        else:
            coords = [c for p in selection.points for c in p]
            native_call("H5Sselect_elements", raw, H5S_SELECT_SET, len(selection.points), _hsize_array(coords))
        self._selection = selection
        return self

    @property
    def selected_count(self) -> int:
        return native_call("H5Sget_select_npoints", self.raw)

    def __repr__(self) -> str:
        if not self.valid:
            return "<Dataspace (closed)>"
        return f"<Dataspace shape={self.shape} selection={self._selection}>"
