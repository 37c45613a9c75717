"""
Pytest configuration and shared fixtures for h5bind tests.

Tests that touch libhdf5 request the ``requires_native`` fixture and are
skipped when no usable library can be loaded.
"""

import pytest
import numpy as np
from pathlib import Path
import sys

# Add src to path for imports
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root / "src"))

import h5bind
from h5bind.errors import LibraryNotFoundError

# Try to load the native library - if it fails, skip tests that require it
try:
    from h5bind._native import get_library
    get_library()
    HAS_NATIVE = True
except LibraryNotFoundError as e:
    HAS_NATIVE = False
    NATIVE_ERROR = str(e)


# Try to import h5py (independent reader used for cross-checks)
try:
    import h5py
    HAS_H5PY = True
except ImportError:
    HAS_H5PY = False


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(scope="session")
def requires_native():
    """Skip test if libhdf5 is not available."""
    if not HAS_NATIVE:
        pytest.skip(f"libhdf5 not available: {NATIVE_ERROR}")


@pytest.fixture(scope="session")
def requires_h5py():
    """Skip test if h5py is not available."""
    if not HAS_H5PY:
        pytest.skip("h5py not available")


@pytest.fixture
def h5_path(tmp_path):
    """Path of a not yet existing HDF5 file."""
    return tmp_path / "test.h5"


@pytest.fixture
def h5file(requires_native, h5_path):
    """A freshly created file, closed after the test."""
    f = h5bind.File.create(h5_path)
    yield f
    f.close()


@pytest.fixture(autouse=True)
def restore_config():
    """Undo global configuration changes made by a test."""
    yield
    h5bind.get_config().reset()


@pytest.fixture
def sample_ints():
    """Small 2D int32 array.

    [[ 0,  1,  2,  3],
     [ 4,  5,  6,  7],
     [ 8,  9, 10, 11]]
    """
    return np.arange(12, dtype=np.int32).reshape(3, 4)
