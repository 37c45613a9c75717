"""
Tests for dataspaces and selections.
"""

import pytest

from h5bind.dataspace import (
    UNLIMITED,
    All,
    Dataspace,
    Hyperslab,
    PointList,
    normalize_shape,
    selection_shape,
)
from h5bind.errors import DimensionMismatch, InvalidHandle


class TestSelections:
    """Selection values; no native calls."""

    def test_normalize_shape(self):
        """Test shape normalisation."""
        assert normalize_shape(None) == ()
        assert normalize_shape(5) == (5,)
        assert normalize_shape([2, 3]) == (2, 3)
        with pytest.raises(DimensionMismatch):
            normalize_shape((2, -1))

    def test_all(self):
        """Test that All reads as the full extent."""
        assert selection_shape(All(), (3, 4)) == (3, 4)
        assert selection_shape(All(), ()) == ()

    def test_hyperslab_defaults(self):
        """Test that stride and block default to ones."""
        h = Hyperslab((1, 0), (2, 4))
        assert h.stride == (1, 1)
        assert h.block == (1, 1)
        assert selection_shape(h, (3, 4)) == (2, 4)

    def test_hyperslab_blocks(self):
        """Test the shape of a strided block selection."""
        h = Hyperslab(start=(0,), count=(3,), stride=(4,), block=(2,))
        assert selection_shape(h, (10,)) == (6,)
        with pytest.raises(DimensionMismatch):
            selection_shape(h, (9,))

    def test_hyperslab_out_of_bounds(self):
        """Test that a slab beyond the extent is rejected."""
        with pytest.raises(DimensionMismatch, match="axis 1"):
            selection_shape(Hyperslab((0, 2), (1, 3)), (3, 4))

    def test_hyperslab_rank(self):
        """Test rank checks."""
        with pytest.raises(DimensionMismatch):
            Hyperslab((0, 0), (1,))
        with pytest.raises(DimensionMismatch):
            selection_shape(Hyperslab((0,), (1,)), (3, 4))

    def test_hyperslab_invalid_parameters(self):
        """Test negative starts, zero strides and overlapping blocks."""
        with pytest.raises(DimensionMismatch):
            selection_shape(Hyperslab((-1,), (1,)), (4,))
        with pytest.raises(DimensionMismatch):
            selection_shape(Hyperslab((0,), (2,), stride=(0,)), (4,))
        with pytest.raises(DimensionMismatch, match="overlap"):
            selection_shape(Hyperslab((0,), (2,), stride=(1,), block=(2,)), (4,))

    def test_empty_hyperslab(self):
        """Test that a zero count selects nothing anywhere."""
        h = Hyperslab((100,), (0,))
        assert h.empty
        assert selection_shape(h, (4,)) == (0,)

    def test_points(self):
        """Test point selections."""
        p = PointList([(0, 1), (2, 3)])
        assert p.points == ((0, 1), (2, 3))
        assert selection_shape(p, (3, 4)) == (2,)
        with pytest.raises(DimensionMismatch, match="outside"):
            selection_shape(PointList([(3, 0)]), (3, 4))

    def test_points_validation(self):
        """Test that point lists are non-empty and of one rank."""
        with pytest.raises(DimensionMismatch):
            PointList([])
        with pytest.raises(DimensionMismatch):
            PointList([(0,), (0, 1)])

    def test_not_a_selection(self):
        """Test that other objects are refused."""
        with pytest.raises(TypeError):
            selection_shape(slice(0, 2), (4,))

    def test_selections_are_values(self):
        """Test equality and hashing of selections."""
        assert Hyperslab((0,), (2,)) == Hyperslab([0], [2], [1], [1])
        assert len({All(), All()}) == 1


class TestDataspace:
    """Native dataspaces."""

    def test_simple(self, requires_native):
        """Test extent queries."""
        with Dataspace.create((3, 4)) as space:
            assert space.rank == 2
            assert space.shape == (3, 4)
            assert space.maxshape == (3, 4)
            assert not space.is_scalar
            assert space.selected_count == 12

    def test_scalar(self, requires_native):
        """Test scalar dataspaces."""
        with Dataspace.create(()) as space:
            assert space.is_scalar
            assert space.rank == 0
            assert space.shape == ()
            assert space.selected_count == 1

    def test_unlimited(self, requires_native):
        """Test unbounded maximum dimensions."""
        with Dataspace.create((2, 5), maxshape=(UNLIMITED, 10)) as space:
            assert space.maxshape == (UNLIMITED, 10)

    def test_bad_maxshape(self, requires_native):
        """Test maxshape validation."""
        with pytest.raises(DimensionMismatch):
            Dataspace.create((4,), maxshape=(2,))
        with pytest.raises(DimensionMismatch):
            Dataspace.create((4,), maxshape=(4, 4))
        with pytest.raises(DimensionMismatch):
            Dataspace.create((), maxshape=(1,))

    def test_zero_sized(self, requires_native):
        """Test an extent with an empty axis."""
        with Dataspace.create((0, 3), maxshape=(UNLIMITED, 3)) as space:
            assert space.shape == (0, 3)
            assert space.selected_count == 0

    def test_select(self, requires_native):
        """Test applying selections."""
        with Dataspace.create((6, 6)) as space:
            space.select(Hyperslab((0, 0), (2, 3), stride=(3, 2)))
            assert space.selected_count == 6
            assert space.selection_shape() == (2, 3)

            space.select(PointList([(0, 0), (5, 5), (1, 2)]))
            assert space.selected_count == 3

            space.select(Hyperslab((0, 0), (0, 6)))
            assert space.selected_count == 0

            space.select(All())
            assert space.selected_count == 36

    def test_select_out_of_bounds(self, requires_native):
        """Test that a bad selection keeps the previous one."""
        with Dataspace.create((4,)) as space:
            space.select(Hyperslab((1,), (2,)))
            with pytest.raises(DimensionMismatch):
                space.select(Hyperslab((3,), (2,)))
            assert space.selection == Hyperslab((1,), (2,))
            assert space.selected_count == 2

    def test_copy(self, requires_native):
        """Test that a copy is independent."""
        with Dataspace.create((5,)) as space:
            space.select(PointList([(1,), (3,)]))
            with space.copy() as copy:
                assert copy.shape == (5,)
                assert copy.selection == space.selection
                assert copy.selected_count == 2
                copy.select(All())
                assert space.selected_count == 2

    def test_closed(self, requires_native):
        """Test use after close."""
        space = Dataspace.create((2,))
        space.close()
        assert not space.valid
        assert "closed" in repr(space)
        with pytest.raises(InvalidHandle):
            space.shape
