"""
Tests for attributes and the dict-like attribute manager.
"""

import numpy as np
import pytest

from h5bind import Attribute, File
from h5bind.descriptors import FLOAT64, INT16, Charset, FixedString, Reference, VarString
from h5bind.errors import AlreadyExists, DimensionMismatch, NotFound, TypeMismatch
from h5bind.registry import registry


@pytest.fixture
def dataset(h5file):
    return h5file.create_dataset("d", data=np.arange(4))


class TestAttributeManager:
    """Mapping interface."""

    def test_scalar_string(self, dataset):
        """Test storing and reading a text attribute."""
        dataset.attrs["units"] = "kelvin"
        assert dataset.attrs["units"] == "kelvin"
        assert "units" in dataset.attrs

    def test_numbers(self, dataset):
        """Test scalar and array numbers."""
        dataset.attrs["scale"] = 0.5
        dataset.attrs["shape"] = [2, 3, 4]
        assert dataset.attrs["scale"] == 0.5
        np.testing.assert_array_equal(dataset.attrs["shape"], [2, 3, 4])

    def test_overwrite_changes_type(self, dataset):
        """Test that assignment replaces an attribute of another type."""
        dataset.attrs["x"] = 1
        dataset.attrs["x"] = ["a", "b"]
        assert list(dataset.attrs["x"]) == ["a", "b"]

    def test_keys_in_name_order(self, h5file):
        """Test listing attribute names."""
        for name in ("zulu", "alpha", "mike"):
            h5file.attrs[name] = 0
        assert h5file.attrs.keys() == ["alpha", "mike", "zulu"]
        assert list(h5file.attrs) == ["alpha", "mike", "zulu"]
        assert len(h5file.attrs) == 3
        assert dict(h5file.attrs.items()) == {"alpha": 0, "mike": 0, "zulu": 0}

    def test_empty(self, dataset):
        """Test an object without attributes."""
        assert len(dataset.attrs) == 0
        assert list(dataset.attrs) == []

    def test_missing(self, dataset):
        """Test that missing attributes raise NotFound."""
        with pytest.raises(NotFound):
            dataset.attrs["nope"]
        with pytest.raises(NotFound):
            del dataset.attrs["nope"]
        assert "nope" not in dataset.attrs
        assert dataset.attrs.get("nope", 42) == 42

    def test_delete(self, dataset):
        """Test removing attributes."""
        dataset.attrs["a"] = 1
        dataset.attrs["b"] = 2
        del dataset.attrs["a"]
        assert dataset.attrs.keys() == ["b"]

    def test_update(self, dataset):
        """Test the inherited mapping helpers."""
        dataset.attrs.update({"x": 1, "y": "two"})
        assert dataset.attrs["y"] == "two"
        assert dataset.attrs.pop("x") == 1
        assert "x" not in dataset.attrs

    def test_on_every_object_kind(self, h5file):
        """Test attributes on files, groups, datasets and datatypes."""
        g = h5file.create_group("g")
        t = h5file.commit_datatype("t", INT16)
        ds = h5file.create_dataset("d", data=[1])
        for i, obj in enumerate((h5file, g, t, ds)):
            obj.attrs["index"] = i
        assert [obj.attrs["index"] for obj in (h5file, g, t, ds)] == [0, 1, 2, 3]

    def test_survives_reopen(self, requires_native, h5_path):
        """Test that attributes are persistent."""
        with File.create(h5_path) as f:
            f.create_group("g").attrs["title"] = "grüße"
        with File.open(h5_path) as f:
            assert f["g"].attrs["title"] == "grüße"

    def test_no_handles_left_open(self, dataset):
        """Test that mapping access closes its attribute handles."""
        dataset.attrs["a"] = np.zeros(3)
        live = registry.live_count()
        dataset.attrs["a"]
        dataset.attrs["b"] = 1
        dataset.attrs.keys()
        assert registry.live_count() == live


class TestAttribute:
    """Attribute objects."""

    def test_create_with_shape_and_dtype(self, dataset):
        """Test a zero-filled attribute."""
        with dataset.attrs.create("grid", shape=(2, 2), dtype=FLOAT64) as a:
            assert a.name == "grid"
            assert a.shape == (2, 2)
            assert a.descriptor == FLOAT64
            assert a.dtype == np.dtype("f8")
            np.testing.assert_array_equal(a.read(), np.zeros((2, 2)))

    def test_scalar_default_shape(self, dataset):
        """Test that an attribute without shape or data is scalar."""
        with dataset.attrs.create("flag", dtype="i1") as a:
            assert a.shape == ()

    def test_already_exists(self, dataset):
        """Test that create does not replace by default."""
        dataset.attrs.create("a", data=1).close()
        with pytest.raises(AlreadyExists):
            dataset.attrs.create("a", data=2)
        dataset.attrs.create("a", data=3, overwrite=True).close()
        assert dataset.attrs["a"] == 3

    def test_write_and_convert(self, dataset):
        """Test writing and reading through other types."""
        with dataset.attrs.create("v", shape=(3,), dtype="i4") as a:
            a.write([1.0, 2.0, 3.0])
            result = a.read(dtype="f8")
        assert result.dtype == np.float64
        np.testing.assert_array_equal(result, [1, 2, 3])

    def test_write_shape_mismatch(self, dataset):
        """Test that a whole attribute must be written."""
        with dataset.attrs.create("v", shape=(3,), dtype="i4") as a:
            with pytest.raises(DimensionMismatch):
                a.write([1, 2])

    def test_read_into(self, dataset):
        """Test reading into a given array."""
        dataset.attrs["v"] = np.arange(4, dtype=np.int16)
        out = np.empty(4, dtype=np.int64)
        with Attribute.open(dataset, "v") as a:
            assert a.read(out=out) is out
        np.testing.assert_array_equal(out, np.arange(4))

    def test_failed_create_leaves_nothing(self, dataset):
        """Test that rejected data creates no attribute."""
        live = registry.live_count()
        with pytest.raises(TypeMismatch):
            dataset.attrs.create("bad", dtype=FixedString(3), data=[1, 2])
        with pytest.raises(DimensionMismatch):
            dataset.attrs.create("bad", shape=(3,), data=[1, 2])
        assert "bad" not in dataset.attrs
        assert registry.live_count() == live

    def test_failed_overwrite_keeps_old(self, dataset):
        """Test that invalid replacement data keeps the old attribute."""
        dataset.attrs["a"] = 1
        with pytest.raises(TypeMismatch):
            dataset.attrs.create("a", dtype=FixedString(2), data=[5], overwrite=True)
        assert dataset.attrs["a"] == 1

    def test_strings(self, dataset):
        """Test string attribute types and charsets."""
        dataset.attrs.create("fixed", dtype=FixedString(5), data=np.array([b"abc"])).close()
        dataset.attrs.create("ascii", dtype=VarString(Charset.ASCII), data="plain").close()
        np.testing.assert_array_equal(dataset.attrs["fixed"], [b"abc"])
        assert dataset.attrs["ascii"] == "plain"
        with Attribute.open(dataset, "ascii") as a:
            assert a.descriptor == VarString(Charset.ASCII)

    def test_reference(self, h5file, dataset):
        """Test an object reference stored in an attribute."""
        ref = h5file.reference("d")
        h5file.attrs.create("target", dtype=Reference(), data=np.uint64(ref)).close()
        obj = h5file.dereference(h5file.attrs["target"])
        assert obj.name == "/d"

    def test_repr(self, dataset):
        """Test attribute repr."""
        a = dataset.attrs.create("v", shape=(2,), dtype="f4")
        assert repr(a) == '<Attribute "v" shape=(2,)>'
        a.close()
        assert repr(a) == "<Attribute (closed)>"

    def test_open_missing(self, dataset):
        """Test opening a missing attribute."""
        with pytest.raises(NotFound):
            Attribute.open(dataset, "missing")
