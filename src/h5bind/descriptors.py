"""
Type descriptors.

A ``TypeDescriptor`` is an immutable, hashable value describing the element
type of a dataset or attribute independently of the native library. The set
of variants is closed:

    Integer, Float, FixedString, VarString, Compound, Array, Enum, Reference

Construction validates the structural invariants and raises
``UnsupportedType`` for descriptors the bridge could never realise. The
layout helpers at the bottom reproduce the platform C-struct rules so that a
compound built with ``Compound.from_members`` has the offsets a C compiler
would give the same struct.
"""

from __future__ import annotations

import ctypes
import enum
import sys
from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .errors import UnsupportedType

__all__ = [
    "ByteOrder", "Charset", "RefKind",
    "Integer", "Float", "FixedString", "VarString",
    "Field", "Compound", "Array", "Enum", "Reference",
    "TypeDescriptor",
    "size_of", "alignment_of", "c_struct_layout",
    "INT8", "INT16", "INT32", "INT64",
    "UINT8", "UINT16", "UINT32", "UINT64",
    "FLOAT32", "FLOAT64", "BOOL",
]

POINTER_SIZE = ctypes.sizeof(ctypes.c_void_p)


# =============================================================================
# Enumerations
# =============================================================================

class ByteOrder(enum.Enum):
    LITTLE = "little"
    BIG = "big"

    @classmethod
    def native(cls) -> "ByteOrder":
        return cls.LITTLE if sys.byteorder == "little" else cls.BIG


class Charset(enum.Enum):
    ASCII = "ascii"
    UTF8 = "utf-8"

    @property
    def codec(self) -> str:
        return self.value


class RefKind(enum.Enum):
    OBJECT = "object"
    REGION = "region"


def _charset(value) -> Charset:
    if isinstance(value, str):
        value = value.lower().replace("utf8", "utf-8")
    try:
        return Charset(value)
    except ValueError:
        raise UnsupportedType(f"unknown charset {value!r}") from None


# =============================================================================
# Atomic Variants
# =============================================================================

@dataclass(frozen=True)
class Integer:
    signed: bool = True
    width: int = 4
    byte_order: ByteOrder = field(default_factory=ByteOrder.native)

    def __post_init__(self):
        if self.width not in (1, 2, 4, 8):
            raise UnsupportedType(f"integer width must be 1, 2, 4 or 8 bytes, got {self.width}")

    @property
    def min_value(self) -> int:
        return -(1 << (8 * self.width - 1)) if self.signed else 0

    @property
    def max_value(self) -> int:
        bits = 8 * self.width - (1 if self.signed else 0)
        return (1 << bits) - 1


@dataclass(frozen=True)
class Float:
    width: int = 8
    byte_order: ByteOrder = field(default_factory=ByteOrder.native)

    def __post_init__(self):
        if self.width not in (4, 8):
            raise UnsupportedType(f"float width must be 4 or 8 bytes, got {self.width}")


@dataclass(frozen=True)
class FixedString:
    length: int
    charset: Charset = Charset.ASCII

    def __post_init__(self):
        if self.length < 1:
            raise UnsupportedType(f"fixed string length must be >= 1, got {self.length}")
        object.__setattr__(self, "charset", _charset(self.charset))


@dataclass(frozen=True)
class VarString:
    charset: Charset = Charset.UTF8

    def __post_init__(self):
        object.__setattr__(self, "charset", _charset(self.charset))


@dataclass(frozen=True)
class Reference:
    target_kind: RefKind = RefKind.OBJECT


# =============================================================================
# Composite Variants
# =============================================================================

@dataclass(frozen=True)
class Field:
    name: str
    offset: int
    type: "TypeDescriptor"


@dataclass(frozen=True)
class Compound:
    """
    Record type with named fields at explicit byte offsets.

    ``size`` is the total byte size; when omitted it is the end of the last
    field padded to the largest field alignment, as for a C struct.
    """
    fields: Tuple[Field, ...]
    explicit_size: Optional[int] = None

    def __post_init__(self):
        fields_ = tuple(self.fields)
        object.__setattr__(self, "fields", fields_)
        if not fields_:
            raise UnsupportedType("compound type needs at least one field")
        names = [f.name for f in fields_]
        if any(not n for n in names):
            raise UnsupportedType("compound field names must be non-empty")
        if len(set(names)) != len(names):
            raise UnsupportedType(f"duplicate compound field names in {names}")
        end = 0
        for f in fields_:
            if f.offset < end:
                raise UnsupportedType(
                    f"compound field {f.name!r} at offset {f.offset} overlaps the previous field"
                )
            end = f.offset + size_of(f.type)
        if self.explicit_size is not None and self.explicit_size < end:
            raise UnsupportedType(
                f"compound size {self.explicit_size} is smaller than its fields ({end} bytes)"
            )
        if self.explicit_size == _padded_size(fields_):
            # one canonical form for the natural C size
            object.__setattr__(self, "explicit_size", None)

    @classmethod
    def from_members(cls, members: Iterable[Tuple[str, "TypeDescriptor"]]) -> "Compound":
        """Build a compound whose offsets follow the C-struct layout rules."""
        members = list(members)
        offsets, _ = c_struct_layout([t for _, t in members])
        return cls(tuple(Field(name, off, t) for (name, t), off in zip(members, offsets)))

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(f.name for f in self.fields)

    @property
    def size(self) -> int:
        if self.explicit_size is not None:
            return self.explicit_size
        return _padded_size(self.fields)

    def field(self, name: str) -> Field:
        for f in self.fields:
            if f.name == name:
                return f
        raise KeyError(name)


@dataclass(frozen=True)
class Array:
    dims: Tuple[int, ...]
    element: "TypeDescriptor"

    def __post_init__(self):
        dims = tuple(int(d) for d in self.dims)
        object.__setattr__(self, "dims", dims)
        if not dims or any(d < 1 for d in dims):
            raise UnsupportedType(f"array dims must be non-empty and positive, got {dims}")


@dataclass(frozen=True, eq=False)
class Enum:
    """
    Integer-backed enumeration.

    ``members`` keeps insertion order; two enums are equal when their bases
    and name -> value mappings are equal.
    """
    base: Integer
    members: Tuple[Tuple[str, int], ...]

    def __post_init__(self):
        if not isinstance(self.base, Integer):
            raise UnsupportedType(f"enum base must be an Integer, got {type(self.base).__name__}")
        items = self.members.items() if isinstance(self.members, Mapping) else self.members
        members = tuple((str(name), int(value)) for name, value in items)
        object.__setattr__(self, "members", members)
        if not members:
            raise UnsupportedType("enum needs at least one member")
        names = [n for n, _ in members]
        if len(set(names)) != len(names):
            raise UnsupportedType(f"duplicate enum member names in {names}")
        for name, value in members:
            if not self.base.min_value <= value <= self.base.max_value:
                raise UnsupportedType(f"enum value {name}={value} does not fit the base integer")

    @property
    def mapping(self) -> dict:
        return dict(self.members)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Enum):
            return NotImplemented
        return self.base == other.base and self.mapping == other.mapping

    def __hash__(self) -> int:
        return hash((self.base, frozenset(self.members)))


TypeDescriptor = Union[Integer, Float, FixedString, VarString, Compound, Array, Enum, Reference]

_VARIANTS = (Integer, Float, FixedString, VarString, Compound, Array, Enum, Reference)


# =============================================================================
# Layout Rules
# =============================================================================

def _check(d) -> None:
    if not isinstance(d, _VARIANTS):
        raise UnsupportedType(f"not a type descriptor: {d!r}")


def size_of(d: TypeDescriptor) -> int:
    """Byte size of one element of ``d`` in memory."""
    _check(d)
    if isinstance(d, (Integer, Float)):
        return d.width
    if isinstance(d, FixedString):
        return d.length
    if isinstance(d, VarString):
        return POINTER_SIZE
    if isinstance(d, Compound):
        return d.size
    if isinstance(d, Array):
        n = 1
        for dim in d.dims:
            n *= dim
        return n * size_of(d.element)
    if isinstance(d, Enum):
        return d.base.width
    return 8 if d.target_kind is RefKind.OBJECT else 12


def alignment_of(d: TypeDescriptor) -> int:
    """C alignment of ``d``."""
    _check(d)
    if isinstance(d, (Integer, Float)):
        return d.width
    if isinstance(d, FixedString):
        return 1
    if isinstance(d, VarString):
        return POINTER_SIZE
    if isinstance(d, Compound):
        return max(alignment_of(f.type) for f in d.fields)
    if isinstance(d, Array):
        return alignment_of(d.element)
    if isinstance(d, Enum):
        return d.base.width
    # hobj_ref_t is a 64-bit address, hdset_reg_ref_t an unsigned char[12]
    return 8 if d.target_kind is RefKind.OBJECT else 1


def _align_up(offset: int, alignment: int) -> int:
    return (offset + alignment - 1) // alignment * alignment


def c_struct_layout(members: Sequence[TypeDescriptor]) -> Tuple[List[int], int]:
    """
    Offsets and padded total size of a C struct with the given member types.

    Returns:
        ``(offsets, size)``
    """
    offsets = []
    offset = 0
    max_align = 1
    for t in members:
        align = alignment_of(t)
        offset = _align_up(offset, align)
        offsets.append(offset)
        offset += size_of(t)
        max_align = max(max_align, align)
    return offsets, _align_up(offset, max_align)


def _padded_size(fields_: Sequence[Field]) -> int:
    end = max(f.offset + size_of(f.type) for f in fields_)
    align = max(alignment_of(f.type) for f in fields_)
    return _align_up(end, align)


# =============================================================================
# Common Descriptors
# =============================================================================

INT8 = Integer(True, 1)
INT16 = Integer(True, 2)
INT32 = Integer(True, 4)
INT64 = Integer(True, 8)
UINT8 = Integer(False, 1)
UINT16 = Integer(False, 2)
UINT32 = Integer(False, 4)
UINT64 = Integer(False, 8)
FLOAT32 = Float(4)
FLOAT64 = Float(8)
BOOL = Enum(INT8, (("FALSE", 0), ("TRUE", 1)))
