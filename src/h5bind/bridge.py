"""
Type Bridge.

Converts between the three views of an element type:

    TypeDescriptor  <->  native datatype id  (to_native / from_native)
    TypeDescriptor  <->  numpy dtype         (to_dtype / from_dtype)

and decides which host buffer types may be transferred to or from a stored
type (``check_convertible`` / ``memory_descriptor``). Information numpy has
no native slot for (enum members, string charset, reference kind) travels in
``dtype.metadata["h5bind"]``.
"""

from __future__ import annotations

import ctypes
from typing import List, Optional, Tuple, Union

import numpy as np

from ._native.library import get_library
from ._native.types import (
    H5T_ARRAY, H5T_COMPOUND, H5T_CSET_ASCII, H5T_CSET_UTF8, H5T_DIR_DEFAULT,
    H5T_ENUM, H5T_FLOAT, H5T_INTEGER, H5T_ORDER_BE, H5T_ORDER_LE,
    H5T_REFERENCE, H5T_SGN_2, H5T_STR_NULLPAD, H5T_STR_NULLTERM, H5T_STRING,
    H5T_VARIABLE, hsize_t,
)
from .config import get_config
from .descriptors import (
    Array, ByteOrder, Charset, Compound, Enum, Field, FixedString, Float,
    Integer, Reference, RefKind, TypeDescriptor, VarString, BOOL,
)
from .errors import TypeMismatch, UnsupportedType
from .guard import guard
from .registry import Handle, HandleKind, registry
from .translator import native_call

__all__ = [
    "to_native", "from_native", "native_layout_offsets",
    "to_dtype", "from_dtype", "as_descriptor",
    "check_convertible", "memory_descriptor", "METADATA_KEY",
]

METADATA_KEY = "h5bind"

_ORDER_TO_NATIVE = {ByteOrder.LITTLE: H5T_ORDER_LE, ByteOrder.BIG: H5T_ORDER_BE}
_ORDER_FROM_NATIVE = {H5T_ORDER_LE: ByteOrder.LITTLE, H5T_ORDER_BE: ByteOrder.BIG}
_CSET_TO_NATIVE = {Charset.ASCII: H5T_CSET_ASCII, Charset.UTF8: H5T_CSET_UTF8}
_CSET_FROM_NATIVE = {H5T_CSET_ASCII: Charset.ASCII, H5T_CSET_UTF8: Charset.UTF8}
_REF_SYMBOLS = {RefKind.OBJECT: "H5T_STD_REF_OBJ_g", RefKind.REGION: "H5T_STD_REF_DSETREG_g"}


def _suffix(order: ByteOrder) -> str:
    return "LE" if order is ByteOrder.LITTLE else "BE"


def _hsize_array(values) -> ctypes.Array:
    values = list(values)
    return (hsize_t * len(values))(*values)


# =============================================================================
# Descriptor -> Native
# =============================================================================

def _check_representable(d: TypeDescriptor, nested: bool = False) -> None:
    if isinstance(d, VarString) and nested:
        raise UnsupportedType("variable-length strings inside compound or array types are not supported")
    if isinstance(d, Compound):
        for f in d.fields:
            _check_representable(f.type, nested=True)
    elif isinstance(d, Array):
        _check_representable(d.element, nested=True)
    elif not isinstance(d, (Integer, Float, FixedString, VarString, Enum, Reference)):
        raise UnsupportedType(f"not a type descriptor: {d!r}")


def _copy_predefined(symbol: str) -> Handle:
    return registry.open(HandleKind.DATATYPE, "H5Tcopy", get_library().global_id(symbol))


def _build(d: TypeDescriptor) -> Handle:
    if isinstance(d, Integer):
        return _copy_predefined(f"H5T_STD_{'I' if d.signed else 'U'}{d.width * 8}{_suffix(d.byte_order)}_g")
    if isinstance(d, Float):
        return _copy_predefined(f"H5T_IEEE_F{d.width * 8}{_suffix(d.byte_order)}_g")
    if isinstance(d, Reference):
        return _copy_predefined(_REF_SYMBOLS[d.target_kind])
    if isinstance(d, Array):
        with _build(d.element) as element:
            dims = _hsize_array(d.dims)
            return registry.open(HandleKind.DATATYPE, "H5Tarray_create2", element.raw, len(d.dims), dims)

    if isinstance(d, (FixedString, VarString)):
        handle = _copy_predefined("H5T_C_S1_g")
    elif isinstance(d, Compound):
        handle = registry.open(HandleKind.DATATYPE, "H5Tcreate", H5T_COMPOUND, d.size)
    else:
        with _build(d.base) as base:
            handle = registry.open(HandleKind.DATATYPE, "H5Tenum_create", base.raw)

    try:
        raw = handle.raw
        if isinstance(d, FixedString):
            native_call("H5Tset_size", raw, d.length)
            native_call("H5Tset_cset", raw, _CSET_TO_NATIVE[d.charset])
            native_call("H5Tset_strpad", raw, H5T_STR_NULLPAD)
        elif isinstance(d, VarString):
            native_call("H5Tset_size", raw, H5T_VARIABLE)
            native_call("H5Tset_cset", raw, _CSET_TO_NATIVE[d.charset])
            native_call("H5Tset_strpad", raw, H5T_STR_NULLTERM)
        elif isinstance(d, Compound):
            for f in d.fields:
                with _build(f.type) as member:
                    native_call("H5Tinsert", raw, f.name.encode("utf-8"), f.offset, member.raw,
                                context=f"inserting compound field {f.name!r}")
        else:
            order = "little" if d.base.byte_order is ByteOrder.LITTLE else "big"
            for name, value in d.members:
                buf = ctypes.create_string_buffer(
                    value.to_bytes(d.base.width, order, signed=d.base.signed), d.base.width
                )
                native_call("H5Tenum_insert", raw, name.encode("utf-8"), buf,
                            context=f"inserting enum member {name!r}")
    except BaseException:
        handle.close()
        raise
    return handle


def to_native(d: TypeDescriptor) -> Handle:
    """
    Create a native datatype equivalent to ``d``.

    Returns:
        An owning DATATYPE handle. The caller closes it.

    Raises:
        UnsupportedType: If ``d`` cannot be represented (checked before any
            native call).
    """
    _check_representable(d)
    with guard:
        return _build(d)


# =============================================================================
# Native -> Descriptor
# =============================================================================

def _raw(type_id: Union[int, Handle]) -> int:
    return type_id.raw if isinstance(type_id, Handle) else int(type_id)


def _member_name(raw: int, index: int) -> str:
    ptr = native_call("H5Tget_member_name", raw, index)
    try:
        return ctypes.string_at(ptr).decode("utf-8")
    finally:
        native_call("H5free_memory", ptr)


def _integer(raw: int) -> Integer:
    return Integer(
        signed=native_call("H5Tget_sign", raw) == H5T_SGN_2,
        width=native_call("H5Tget_size", raw),
        byte_order=_ORDER_FROM_NATIVE.get(native_call("H5Tget_order", raw), ByteOrder.native()),
    )


def _decode(raw: int) -> TypeDescriptor:
    cls = native_call("H5Tget_class", raw)

    if cls == H5T_INTEGER:
        return _integer(raw)

    if cls == H5T_FLOAT:
        return Float(
            width=native_call("H5Tget_size", raw),
            byte_order=_ORDER_FROM_NATIVE.get(native_call("H5Tget_order", raw), ByteOrder.native()),
        )

    if cls == H5T_STRING:
        charset = _CSET_FROM_NATIVE.get(native_call("H5Tget_cset", raw))
        if charset is None:
            raise UnsupportedType("string type with an unknown character set")
        if native_call("H5Tis_variable_str", raw) > 0:
            return VarString(charset)
        return FixedString(native_call("H5Tget_size", raw), charset)

    if cls == H5T_COMPOUND:
        fields = []
        for i in range(native_call("H5Tget_nmembers", raw)):
            name = _member_name(raw, i)
            offset = native_call("H5Tget_member_offset", raw, i)
            with registry.open(HandleKind.DATATYPE, "H5Tget_member_type", raw, i) as member:
                fields.append(Field(name, offset, _decode(member.raw)))
        compound = Compound(tuple(fields))
        size = native_call("H5Tget_size", raw)
        return compound if size == compound.size else Compound(compound.fields, size)

    if cls == H5T_ARRAY:
        rank = native_call("H5Tget_array_ndims", raw)
        dims = (hsize_t * rank)()
        native_call("H5Tget_array_dims2", raw, dims)
        with registry.open(HandleKind.DATATYPE, "H5Tget_super", raw) as element:
            return Array(tuple(dims), _decode(element.raw))

    if cls == H5T_ENUM:
        with registry.open(HandleKind.DATATYPE, "H5Tget_super", raw) as base_type:
            base = _decode(base_type.raw)
        if not isinstance(base, Integer):
            raise UnsupportedType("enum with a non-integer base type")
        order = "little" if base.byte_order is ByteOrder.LITTLE else "big"
        members = []
        buf = ctypes.create_string_buffer(base.width)
        for i in range(native_call("H5Tget_nmembers", raw)):
            name = _member_name(raw, i)
            native_call("H5Tget_member_value", raw, i, buf)
            members.append((name, int.from_bytes(buf.raw, order, signed=base.signed)))
        return Enum(base, tuple(members))

    if cls == H5T_REFERENCE:
        lib = get_library()
        for kind, symbol in _REF_SYMBOLS.items():
            if native_call("H5Tequal", raw, lib.global_id(symbol)) > 0:
                return Reference(kind)
        raise UnsupportedType("only object and dataset-region references are supported")

    raise UnsupportedType(f"native datatype class {cls} has no descriptor")


def from_native(type_id: Union[int, Handle]) -> TypeDescriptor:
    """
    Describe an open native datatype.

    Raises:
        UnsupportedType: For native classes without a descriptor (time,
            bitfield, opaque, generic variable-length, new-style references).
    """
    raw = _raw(type_id)
    with guard:
        return _decode(raw)


def native_layout_offsets(d: Compound) -> Tuple[List[int], int]:
    """
    Member offsets and size the native library chooses for the in-memory
    (C) layout of compound ``d``.
    """
    if not isinstance(d, Compound):
        raise UnsupportedType("native layout offsets are only defined for compound types")
    with guard, to_native(d) as file_type:
        with registry.open(HandleKind.DATATYPE, "H5Tget_native_type", file_type.raw, H5T_DIR_DEFAULT) as mem:
            n = native_call("H5Tget_nmembers", mem.raw)
            offsets = [native_call("H5Tget_member_offset", mem.raw, i) for i in range(n)]
            return offsets, native_call("H5Tget_size", mem.raw)


# =============================================================================
# Descriptor <-> numpy dtype
# =============================================================================

def _order_char(order: ByteOrder) -> str:
    return "<" if order is ByteOrder.LITTLE else ">"


def _meta(**values) -> dict:
    return {METADATA_KEY: values}


def _is_complex(d: Compound) -> bool:
    if len(d.fields) != 2 or d.explicit_size is not None:
        return False
    r, i = d.fields
    return (
        (r.name, i.name) == ("r", "i")
        and isinstance(r.type, Float) and r.type == i.type
        and r.offset == 0 and i.offset == r.type.width
    )


def to_dtype(d: TypeDescriptor) -> np.dtype:
    """numpy dtype of a host buffer element matching ``d``."""
    if isinstance(d, Integer):
        return np.dtype(f"{_order_char(d.byte_order)}{'i' if d.signed else 'u'}{d.width}")
    if isinstance(d, Float):
        return np.dtype(f"{_order_char(d.byte_order)}f{d.width}")
    if isinstance(d, FixedString):
        return np.dtype(f"S{d.length}", metadata=_meta(charset=d.charset.value))
    if isinstance(d, VarString):
        return np.dtype(object, metadata=_meta(vlen="str", charset=d.charset.value))
    if isinstance(d, Compound):
        if _is_complex(d):
            return np.dtype(f"{_order_char(d.fields[0].type.byte_order)}c{2 * d.fields[0].type.width}")
        return np.dtype({
            "names": [f.name for f in d.fields],
            "formats": [to_dtype(f.type) for f in d.fields],
            "offsets": [f.offset for f in d.fields],
            "itemsize": d.size,
        })
    if isinstance(d, Array):
        return np.dtype((to_dtype(d.element), d.dims))
    if isinstance(d, Enum):
        if d == BOOL:
            return np.dtype(np.bool_)
        base = to_dtype(d.base)
        return np.dtype(base.str, metadata=_meta(enum=d.mapping))
    if isinstance(d, Reference):
        if d.target_kind is RefKind.OBJECT:
            return np.dtype(np.uint64, metadata=_meta(ref=RefKind.OBJECT.value))
        return np.dtype("V12", metadata=_meta(ref=RefKind.REGION.value))
    raise UnsupportedType(f"not a type descriptor: {d!r}")


def _dtype_order(dtype: np.dtype) -> ByteOrder:
    if dtype.byteorder == "<":
        return ByteOrder.LITTLE
    if dtype.byteorder == ">":
        return ByteOrder.BIG
    return ByteOrder.native()


def from_dtype(dtype) -> TypeDescriptor:
    """
    Descriptor of a numpy dtype.

    ``U`` strings and Python objects map to ``VarString``; ``bool`` maps to
    the FALSE/TRUE enum; complex numbers map to an ``(r, i)`` compound.

    Raises:
        UnsupportedType: For dtypes without a descriptor.
    """
    dtype = np.dtype(dtype)
    meta = dict((dtype.metadata or {}).get(METADATA_KEY, {}))

    if "enum" in meta:
        base = from_dtype(np.dtype(dtype.str))
        if not isinstance(base, Integer):
            raise UnsupportedType(f"enum dtype {dtype} is not integer based")
        return Enum(base, tuple(meta["enum"].items()))
    if "ref" in meta:
        return Reference(RefKind(meta["ref"]))

    kind = dtype.kind
    if kind == "b":
        return BOOL
    if kind in "iu":
        return Integer(kind == "i", dtype.itemsize, _dtype_order(dtype))
    if kind == "f":
        return Float(dtype.itemsize, _dtype_order(dtype))
    if kind == "c":
        part = Float(dtype.itemsize // 2, _dtype_order(dtype))
        return Compound((Field("r", 0, part), Field("i", part.width, part)))
    if kind == "S":
        return FixedString(dtype.itemsize, meta.get("charset", Charset.ASCII))
    if kind == "U":
        return VarString(get_config().default_charset)
    if kind == "O":
        return VarString(meta.get("charset", get_config().default_charset))
    if kind == "V":
        if dtype.subdtype is not None:
            element, dims = dtype.subdtype
            return Array(dims, from_dtype(element))
        if dtype.names:
            entries = sorted(
                ((name,) + tuple(dtype.fields[name][:2]) for name in dtype.names),
                key=lambda entry: entry[2],
            )
            compound = Compound(tuple(Field(name, off, from_dtype(sub)) for name, sub, off in entries))
            if compound.size != dtype.itemsize:
                compound = Compound(compound.fields, dtype.itemsize)
            return compound
    raise UnsupportedType(f"numpy dtype {dtype} has no type descriptor")


def as_descriptor(value) -> TypeDescriptor:
    """Accept a descriptor or anything ``numpy.dtype`` accepts."""
    if isinstance(value, (Integer, Float, FixedString, VarString, Compound, Array, Enum, Reference)):
        return value
    if value is str:
        return VarString(get_config().default_charset)
    try:
        dtype = np.dtype(value)
    except TypeError as e:
        raise UnsupportedType(f"cannot interpret {value!r} as a type: {e}") from None
    return from_dtype(dtype)


# =============================================================================
# Conversion Rules
# =============================================================================

def _describe(d: TypeDescriptor) -> str:
    return type(d).__name__


def _mismatch(stored, host, path: str) -> TypeMismatch:
    where = f" at field {path!r}" if path else ""
    return TypeMismatch(
        f"cannot convert between stored {_describe(stored)} and buffer {_describe(host)}{where}"
    )


def check_convertible(stored: TypeDescriptor, host: TypeDescriptor,
                      writing: bool = False, path: str = "") -> None:
    """
    Raise ``TypeMismatch`` unless a host buffer of type ``host`` can be read
    from (or, with ``writing``, written to) a stored type ``stored``.
    """
    numeric = (Integer, Float)
    if isinstance(stored, numeric) and isinstance(host, numeric):
        return
    if isinstance(stored, FixedString) and isinstance(host, FixedString):
        return
    if isinstance(stored, VarString) and isinstance(host, VarString):
        return
    if isinstance(stored, Reference) and isinstance(host, Reference):
        if stored.target_kind is not host.target_kind:
            raise _mismatch(stored, host, path)
        return
    if isinstance(stored, Enum) and isinstance(host, Enum):
        if set(stored.mapping) != set(host.mapping):
            raise TypeMismatch(f"enum member names differ{' at ' + repr(path) if path else ''}")
        return
    if isinstance(stored, Enum) and isinstance(host, Integer):
        if any(not host.min_value <= v <= host.max_value for _, v in stored.members):
            raise TypeMismatch("enum values do not fit the buffer integer type")
        return
    if isinstance(stored, Integer) and isinstance(host, Enum) and writing:
        return
    if isinstance(stored, Array) and isinstance(host, Array):
        if stored.dims != host.dims:
            raise TypeMismatch(f"array dims {host.dims} differ from stored {stored.dims}")
        check_convertible(stored.element, host.element, writing, path)
        return
    if isinstance(stored, Compound) and isinstance(host, Compound):
        stored_names = set(stored.names)
        host_names = set(host.names)
        missing = host_names - stored_names
        if missing:
            raise TypeMismatch(f"buffer fields {sorted(missing)} are not stored")
        if writing and host_names != stored_names:
            raise TypeMismatch(f"buffer lacks stored fields {sorted(stored_names - host_names)}")
        for f in host.fields:
            sub = f"{path}.{f.name}" if path else f.name
            check_convertible(stored.field(f.name).type, f.type, writing, sub)
        return
    raise _mismatch(stored, host, path)


def memory_descriptor(stored: TypeDescriptor, host: TypeDescriptor) -> TypeDescriptor:
    """
    Descriptor of the native memory type used to transfer a ``host`` buffer.

    Assumes ``check_convertible`` passed. Strings keep the stored charset and
    integer buffers read from enums carry the stored members.
    """
    if isinstance(stored, Enum) and isinstance(host, Integer):
        return Enum(host, stored.members)
    if isinstance(stored, Integer) and isinstance(host, Enum):
        return host.base
    if isinstance(stored, FixedString) and isinstance(host, FixedString):
        return FixedString(host.length, stored.charset)
    if isinstance(stored, VarString) and isinstance(host, VarString):
        return VarString(stored.charset)
    if isinstance(stored, Array) and isinstance(host, Array):
        return Array(host.dims, memory_descriptor(stored.element, host.element))
    if isinstance(stored, Compound) and isinstance(host, Compound):
        return Compound(
            tuple(Field(f.name, f.offset, memory_descriptor(stored.field(f.name).type, f.type))
                  for f in host.fields),
            host.explicit_size,
        )
    return host
