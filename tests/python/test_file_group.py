"""
Tests for files, groups, links and object references.
"""

import numpy as np
import pytest

import h5bind
from h5bind import Dataset, Datatype, File, Group
from h5bind.errors import AlreadyExists, InvalidHandle, NotFound, TypeMismatch
from h5bind.registry import HandleKind, registry


# =============================================================================
# Files
# =============================================================================

class TestFileModes:
    """Opening and creating files."""

    def test_create_and_reopen(self, requires_native, h5_path):
        """Test that a created file can be reopened read-only."""
        with File.create(h5_path) as f:
            assert f.mode == "r+"
            f.create_group("g")
        with File.open(h5_path) as f:
            assert f.mode == "r"
            assert "g" in f
            assert f.filename == str(h5_path)

    def test_create_refuses_existing(self, requires_native, h5_path):
        """Test that create without overwrite keeps existing files."""
        File.create(h5_path).close()
        with pytest.raises(AlreadyExists):
            File.create(h5_path)
        with pytest.raises(AlreadyExists):
            File(h5_path, "x")

    def test_create_overwrite(self, requires_native, h5_path):
        """Test that overwrite truncates."""
        with File.create(h5_path) as f:
            f.create_group("old")
        with File.create(h5_path, overwrite=True) as f:
            assert len(f) == 0

    def test_open_missing(self, requires_native, tmp_path):
        """Test that opening a missing file raises NotFound."""
        with pytest.raises(NotFound):
            File.open(tmp_path / "missing.h5")
        with pytest.raises(NotFound):
            File(tmp_path / "missing.h5", "r+")

    def test_append_mode(self, requires_native, h5_path):
        """Test that mode a creates or opens for writing."""
        with File(h5_path, "a") as f:
            f.create_group("first")
        with File(h5_path, "a") as f:
            assert f.mode == "r+"
            f.create_group("second")
            assert f.names() == ["first", "second"]

    def test_invalid_mode(self, requires_native, h5_path):
        """Test mode validation."""
        with pytest.raises(ValueError):
            File(h5_path, "rw")
        with pytest.raises(ValueError):
            File.open(h5_path, "w")

    def test_not_hdf5(self, requires_native, tmp_path):
        """Test that a non-HDF5 file fails with a typed error."""
        path = tmp_path / "plain.txt"
        path.write_text("not hdf5")
        with pytest.raises(h5bind.H5BindError):
            File.open(path)

    def test_close_is_idempotent(self, requires_native, h5_path):
        """Test closing twice."""
        f = File.create(h5_path)
        f.close()
        f.close()
        assert not f.valid
        assert "closed" in repr(f)
        with pytest.raises(InvalidHandle):
            f.create_group("g")

    def test_flush_and_object_count(self, h5file):
        """Test flushing and counting open objects."""
        h5file.flush()
        assert h5file.open_object_count() == 1
        g = h5file.create_group("g")
        assert h5file.open_object_count() == 2
        g.close()
        assert h5file.open_object_count() == 1


class TestWriterExclusivity:
    """At most one writer per file within the process."""

    def test_second_writer_refused(self, requires_native, h5_path):
        """Test that a second writable open fails while the first is live."""
        with File.create(h5_path):
            with pytest.raises(AlreadyExists):
                File.open(h5_path, "r+")
            with pytest.raises(AlreadyExists):
                File(h5_path, "a")

    def test_writer_slot_released(self, requires_native, h5_path):
        """Test that closing the writer frees the slot."""
        File.create(h5_path).close()
        with File.open(h5_path, "r+") as f:
            f.create_group("g")
        with File.open(h5_path, "r+") as f:
            assert "g" in f

    def test_readers_are_not_writers(self, requires_native, h5_path):
        """Test that read-only opens are allowed next to the writer."""
        with File.create(h5_path) as writer:
            writer.create_group("g")
            with File.open(h5_path) as reader:
                assert "g" in reader
            with File.open(h5_path) as another:
                assert another.valid

    def test_collected_writer(self, requires_native, h5_path):
        """Test that a garbage collected writer frees the slot."""
        import gc
        File.create(h5_path)
        gc.collect()
        with File.open(h5_path, "r+") as f:
            assert f.valid

    def test_group_outliving_writer(self, requires_native, h5_path):
        """Test that an object opened through a closed writer keeps the slot."""
        f = File.create(h5_path)
        g = f.create_group("g")
        f.close()
        with pytest.raises(AlreadyExists):
            File.open(h5_path, "r+")
        g.close()
        with File.open(h5_path, "r+") as f:
            assert "g" in f

    def test_file_of_object_is_a_writer(self, requires_native, h5_path):
        """Test that a file reached through an object counts as a writer."""
        with File.create(h5_path) as f:
            g = f.create_group("g")
        reopened = g.file
        g.close()
        assert reopened.mode == "r+"
        with pytest.raises(AlreadyExists):
            File(h5_path, "a")
        reopened.close()
        with File(h5_path, "a") as f:
            assert f.valid

    def test_writer_on_another_file(self, requires_native, tmp_path):
        """Test that writers of different files do not exclude each other."""
        with File.create(tmp_path / "one.h5") as one:
            one.create_group("g")
            with File.create(tmp_path / "two.h5") as two:
                assert two.valid

    def test_exclusivity_can_be_disabled(self, requires_native, h5_path):
        """Test the writer_exclusive setting."""
        with File.create(h5_path) as first:
            with h5bind.get_config().local(writer_exclusive=False):
                second = File.open(h5_path, "r+")
            second.close()
            assert first.valid


# =============================================================================
# Groups
# =============================================================================

class TestGroups:
    """Group creation, lookup and deletion."""

    def test_intermediate_groups(self, h5file):
        """Test that missing intermediate groups are created."""
        g = h5file.create_group("a/b/c")
        assert g.name == "/a/b/c"
        assert isinstance(h5file["a"], Group)
        assert h5file.exists("a/b")
        assert "a/b/c" in h5file
        assert "a/x" not in h5file

    def test_relative_and_absolute(self, h5file):
        """Test relative and absolute paths from a subgroup."""
        a = h5file.create_group("a")
        a.create_group("b")
        assert "b" in a
        assert "/a/b" in a
        assert a.group("/a/b").name == "/a/b"

    def test_already_exists(self, h5file):
        """Test that occupied names are refused."""
        h5file.create_group("g")
        with pytest.raises(AlreadyExists):
            h5file.create_group("g")
        with pytest.raises(AlreadyExists):
            h5file.create_group("/")

    def test_overwrite_group(self, h5file):
        """Test replacing a group."""
        h5file.create_group("g").create_group("child")
        g = h5file.create_group("g", overwrite=True)
        assert len(g) == 0

    def test_missing(self, h5file):
        """Test that missing paths raise NotFound."""
        with pytest.raises(NotFound):
            h5file["nope"]
        with pytest.raises(NotFound):
            h5file.group("a/b")
        with pytest.raises(NotFound):
            h5file.delete("nope")
        with pytest.raises(NotFound):
            h5file[""]
        assert h5file.get("nope") is None

    def test_group_of_dataset(self, h5file):
        """Test that opening a dataset as a group is a type mismatch."""
        h5file.create_dataset("d", data=np.arange(3))
        with pytest.raises(TypeMismatch):
            h5file.group("d")

    def test_path_through_dataset(self, h5file):
        """Test lookups and creates whose path runs through a dataset."""
        h5file.create_dataset("d", data=[1, 2])
        assert "d/x" not in h5file
        assert not h5file.exists("d/x/y")
        assert h5file.get("d/x") is None
        with pytest.raises(NotFound):
            h5file["d/x"]
        with pytest.raises(TypeMismatch):
            h5file.create_group("d/x")
        with pytest.raises(TypeMismatch):
            h5file.create_dataset("d/x/y", data=[1])
        assert h5file.names() == ["d"]

    def test_require_group(self, h5file):
        """Test open-or-create."""
        g1 = h5file.require_group("x/y")
        g2 = h5file.require_group("x/y")
        assert g1.name == g2.name == "/x/y"

    def test_getitem_kinds(self, h5file):
        """Test that lookup returns the matching location class."""
        h5file.create_group("g")
        h5file.create_dataset("d", data=[1, 2])
        h5file.commit_datatype("t", h5bind.INT16)
        assert type(h5file["g"]) is Group
        assert type(h5file["d"]) is Dataset
        assert type(h5file["t"]) is Datatype
        assert type(h5file["/"]) is Group

    def test_delete(self, h5file):
        """Test removing links."""
        h5file.create_group("a/b")
        del h5file["a/b"]
        assert "a/b" not in h5file
        assert "a" in h5file
        h5file.delete("a")
        assert len(h5file) == 0

    def test_equality(self, h5file):
        """Test that locations compare by handle, not by path."""
        g = h5file.create_group("g")
        assert g == g
        assert g != h5file["g"]
        assert {g: 1}[g] == 1

    def test_file_of_object(self, h5file):
        """Test reaching the file from an object."""
        g = h5file.create_group("g")
        with g.file as f:
            assert f.filename == h5file.filename
            assert f.raw != h5file.raw
        assert h5file.valid

    def test_close_group(self, h5file):
        """Test that closing a group releases exactly its handle."""
        g = h5file.create_group("g")
        released = registry.release_count(HandleKind.GROUP)
        g.close()
        g.close()
        assert registry.release_count(HandleKind.GROUP) == released + 1
        assert h5file.valid


class TestChildIteration:
    """Lazy iteration over group members."""

    def test_name_order(self, h5file):
        """Test that children come in name order."""
        for name in ("zeta", "alpha", "mid"):
            h5file.create_group(name)
        assert list(h5file.iterate_children()) == ["alpha", "mid", "zeta"]
        assert list(h5file) == ["alpha", "mid", "zeta"]
        assert h5file.keys() == ["alpha", "mid", "zeta"]
        assert len(h5file) == 3

    def test_objects(self, h5file):
        """Test iterating (name, object) pairs."""
        h5file.create_group("g")
        h5file.create_dataset("d", data=np.zeros(2))
        items = dict(h5file.items())
        assert set(items) == {"d", "g"}
        assert isinstance(items["d"], Dataset)
        assert isinstance(items["g"], Group)

    def test_lazy(self, h5file):
        """Test that nothing is opened before the first step."""
        for i in range(3):
            h5file.create_group(f"g{i}")
        live = registry.live_count()
        children = h5file.iterate_children(objects=True)
        assert registry.live_count() == live
        name, first = next(iter(children))
        assert name == "g0"
        first.close()

    def test_restartable(self, h5file):
        """Test that each iteration starts over and sees new links."""
        h5file.create_group("a")
        children = h5file.iterate_children()
        assert list(children) == ["a"]
        h5file.create_group("b")
        assert list(children) == ["a", "b"]

    def test_empty(self, h5file):
        """Test iterating an empty group."""
        assert list(h5file.create_group("empty").iterate_children()) == []

    def test_unicode_names(self, h5file):
        """Test non-ASCII link names."""
        h5file.create_group("grüße")
        assert h5file.names() == ["grüße"]
        assert "grüße" in h5file


# =============================================================================
# Links and References
# =============================================================================

class TestLinks:
    """Soft and hard links."""

    def test_soft_link(self, h5file):
        """Test that a soft link resolves to its target."""
        h5file.create_dataset("data/x", data=np.arange(4))
        h5file.link_soft("/data/x", "alias")
        np.testing.assert_array_equal(h5file["alias"].read(), np.arange(4))

    def test_dangling_soft_link(self, h5file):
        """Test that a dangling soft link is listed but cannot be opened."""
        h5file.link_soft("/nowhere", "dangling")
        assert "dangling" in h5file.names()
        with pytest.raises(h5bind.H5BindError):
            h5file["dangling"]

    def test_hard_link(self, h5file):
        """Test that a hard link keeps the object alive."""
        g = h5file.create_group("g")
        h5file.link_hard(g, "also/g")
        h5file.link_hard("g", "again")
        h5file.delete("g")
        assert "also/g" in h5file
        assert "again" in h5file

    def test_link_name_taken(self, h5file):
        """Test that links cannot replace objects."""
        h5file.create_group("g")
        with pytest.raises(AlreadyExists):
            h5file.link_soft("/x", "g")
        with pytest.raises(NotFound):
            h5file.link_hard("missing", "h")


class TestReferences:
    """Object references."""

    def test_reference_round_trip(self, h5file):
        """Test dereferencing a stored reference."""
        target = h5file.create_dataset("target", data=np.arange(5))
        ref = h5file.reference("target")
        assert ref != 0
        refs = h5file.create_dataset("refs", dtype=h5bind.Reference(), data=np.array([ref], dtype=np.uint64))
        assert refs.descriptor == h5bind.Reference()

        stored = int(refs.read()[0])
        obj = h5file.dereference(stored)
        assert isinstance(obj, Dataset)
        assert obj.name == target.name
        np.testing.assert_array_equal(obj.read(), np.arange(5))

    def test_reference_to_self(self, h5file):
        """Test referencing a group itself."""
        g = h5file.create_group("g")
        obj = h5file.dereference(g.reference())
        assert isinstance(obj, Group)
        assert obj.name == "/g"

    def test_null_reference(self, h5file):
        """Test that the null reference does not resolve."""
        with pytest.raises(NotFound):
            h5file.dereference(0)
        with pytest.raises(NotFound):
            h5file.reference("missing")


# =============================================================================
# Interoperability
# =============================================================================

class TestCrossCheck:
    """Files written here are readable by h5py and vice versa."""

    def test_h5py_reads_ours(self, requires_native, requires_h5py, h5_path):
        """Test reading an h5bind file with h5py."""
        import h5py

        with File.create(h5_path) as f:
            f.create_group("a/b")
            f.create_dataset("a/b/values", data=np.linspace(0, 1, 5))
            f.link_soft("/a/b/values", "shortcut")
            f["a"].attrs["title"] = "hello"

        with h5py.File(h5_path, "r") as f:
            np.testing.assert_allclose(f["a/b/values"][()], np.linspace(0, 1, 5))
            np.testing.assert_allclose(f["shortcut"][()], np.linspace(0, 1, 5))
            title = f["a"].attrs["title"]
            assert (title.decode() if isinstance(title, bytes) else title) == "hello"

    def test_we_read_h5py(self, requires_native, requires_h5py, h5_path):
        """Test reading an h5py file with h5bind."""
        import h5py

        with h5py.File(h5_path, "w") as f:
            f.create_dataset("grid/cells", data=np.arange(12).reshape(3, 4))
            f["grid"].attrs["spacing"] = 0.5
            f.create_group("empty")

        with File.open(h5_path) as f:
            assert f.names() == ["empty", "grid"]
            np.testing.assert_array_equal(f["grid/cells"][1], [4, 5, 6, 7])
            assert f["grid"].attrs["spacing"] == 0.5
