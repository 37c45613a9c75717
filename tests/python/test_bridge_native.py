"""
Tests for the type bridge against libhdf5.
"""

import numpy as np
import pytest

from h5bind import File
from h5bind.bridge import from_native, native_layout_offsets, to_native
from h5bind.descriptors import (
    BOOL,
    FLOAT32,
    FLOAT64,
    INT8,
    INT16,
    INT32,
    INT64,
    UINT16,
    Array,
    ByteOrder,
    Charset,
    Compound,
    Enum,
    Field,
    FixedString,
    Float,
    Integer,
    Reference,
    RefKind,
    VarString,
    c_struct_layout,
)
from h5bind.errors import UnsupportedType
from h5bind.registry import HandleKind, registry
from h5bind._native.types import H5T_OPAQUE


ROUND_TRIP = [
    INT8,
    UINT16,
    INT64,
    Integer(True, 4, ByteOrder.BIG),
    Integer(False, 8, ByteOrder.LITTLE),
    FLOAT32,
    Float(8, ByteOrder.BIG),
    FixedString(1),
    FixedString(8, Charset.UTF8),
    VarString(),
    VarString(Charset.ASCII),
    Reference(),
    Reference(RefKind.REGION),
    BOOL,
    Enum(UINT16, (("LOW", 10), ("HIGH", 60000))),
    Array((4,), INT32),
    Array((2, 3), FixedString(5)),
    Compound.from_members([("a", INT8), ("b", FLOAT64), ("c", INT16)]),
    Compound((Field("x", 0, INT8), Field("y", 4, FLOAT32)), explicit_size=16),
    Compound((Field("a", 0, INT32),), explicit_size=4),
    Compound.from_members([
        ("id", INT64),
        ("pos", Array((3,), FLOAT32)),
        ("inner", Compound.from_members([("flag", BOOL), ("name", FixedString(6))])),
    ]),
    Array((2,), Compound.from_members([("u", INT32), ("v", INT32)])),
]


class TestRoundTrip:
    """Descriptor -> native -> descriptor."""

    @pytest.mark.parametrize("descriptor", ROUND_TRIP, ids=lambda d: type(d).__name__)
    def test_round_trip(self, requires_native, descriptor):
        """Test that decoding a built type gives the same descriptor."""
        with to_native(descriptor) as handle:
            assert handle.kind is HandleKind.DATATYPE
            assert from_native(handle) == descriptor

    def test_enum_member_order(self, requires_native):
        """Test that enum members keep their insertion order."""
        e = Enum(INT16, (("Z", 5), ("A", -1), ("M", 2)))
        with to_native(e) as handle:
            decoded = from_native(handle)
        assert decoded.members == e.members

    def test_raw_id_accepted(self, requires_native):
        """Test decoding from a raw identifier."""
        with to_native(INT32) as handle:
            assert from_native(handle.raw) == INT32

    def test_no_leaks(self, requires_native):
        """Test that building and decoding leave no live handles behind."""
        before = registry.live_count()
        for descriptor in ROUND_TRIP:
            with to_native(descriptor) as handle:
                from_native(handle)
        assert registry.live_count() == before


class TestUnsupported:
    """Types without a representation."""

    def test_nested_varstring(self, requires_native):
        """Test that a variable-length string inside a compound is refused up front."""
        live = registry.live_count()
        released = registry.release_count()
        with pytest.raises(UnsupportedType):
            to_native(Compound.from_members([("name", VarString()), ("n", INT32)]))
        with pytest.raises(UnsupportedType):
            to_native(Array((2,), VarString()))
        assert registry.live_count() == live
        assert registry.release_count() == released

    def test_opaque(self, requires_native):
        """Test that opaque native types have no descriptor."""
        with registry.open(HandleKind.DATATYPE, "H5Tcreate", H5T_OPAQUE, 4) as handle:
            with pytest.raises(UnsupportedType):
                from_native(handle)

    def test_not_a_descriptor(self, requires_native):
        """Test that arbitrary objects are refused."""
        with pytest.raises(UnsupportedType):
            to_native("int32")


class TestNativeLayout:
    """Compound layouts chosen by the native library."""

    @pytest.mark.parametrize("members", [
        [("a", INT8), ("b", FLOAT64), ("c", INT16)],
        [("a", INT16), ("b", INT8), ("c", INT32), ("d", INT8)],
        [("s", FixedString(3)), ("v", Array((3,), FLOAT64)), ("e", BOOL)],
        [("x", INT8), ("inner", Compound.from_members([("p", INT32), ("q", INT8)])), ("y", INT8)],
    ])
    def test_matches_c_layout(self, requires_native, members):
        """Test that from_members offsets agree with the native memory layout."""
        compound = Compound.from_members(members)
        offsets, size = native_layout_offsets(compound)
        expected_offsets, expected_size = c_struct_layout([t for _, t in members])
        assert offsets == expected_offsets
        assert size == expected_size
        assert [f.offset for f in compound.fields] == expected_offsets

    def test_only_compounds(self, requires_native):
        """Test that layouts are only defined for compounds."""
        with pytest.raises(UnsupportedType):
            native_layout_offsets(INT32)


class TestForeignFiles:
    """Types written by an independent writer."""

    def test_h5py_types(self, requires_native, requires_h5py, h5_path):
        """Test decoding types created by h5py."""
        import h5py

        colour = h5py.enum_dtype({"RED": 0, "GREEN": 1, "BLUE": 42}, basetype="i1")
        record = np.dtype([("id", "<i4"), ("mass", "<f8"), ("tag", "S4")])
        with h5py.File(h5_path, "w") as f:
            f["flags"] = np.array([True, False])
            f["colours"] = np.array([0, 42], dtype=colour)
            f["records"] = np.zeros(2, dtype=record)
            f.create_dataset("names", data=["a", "bc"], dtype=h5py.string_dtype())
            f.create_dataset("ascii", data=[b"x"], dtype=h5py.string_dtype("ascii"))
            f["refs"] = np.array([f["flags"].ref], dtype=h5py.ref_dtype)

        with File(h5_path) as f:
            assert f["flags"].descriptor == BOOL
            assert f["colours"].descriptor == Enum(INT8, {"RED": 0, "GREEN": 1, "BLUE": 42})
            # numpy packs fields; 16 bytes is also the padded size here
            records = f["records"].descriptor
            assert records == Compound(
                (Field("id", 0, INT32), Field("mass", 4, FLOAT64), Field("tag", 12, FixedString(4))),
            )
            assert records.size == 16
            assert f["names"].descriptor == VarString(Charset.UTF8)
            assert f["ascii"].descriptor == VarString(Charset.ASCII)
            assert f["refs"].descriptor == Reference(RefKind.OBJECT)
