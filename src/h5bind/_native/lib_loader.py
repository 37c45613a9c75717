"""Dynamic library loader for the native HDF5 C API.

This module handles platform-specific library discovery with lazy
initialization. The library is never imported through h5py; an installed
h5py wheel is only used as a place where a copy of libhdf5 can be found.
"""

import ctypes
import ctypes.util
import importlib.util
import logging
import sys
import threading
from pathlib import Path
from typing import List, Optional

from ..config import get_config
from ..errors import LibraryNotFoundError


__all__ = ['get_lib', 'find_library', 'LibraryNotFoundError']

logger = logging.getLogger("h5bind.loader")

# Global library cache
_lib_cache = {}
_lib_lock = threading.Lock()


def _library_patterns() -> List[str]:
    """File name patterns of libhdf5 for the current platform."""
    if sys.platform == 'win32':
        return ['hdf5.dll', 'libhdf5.dll']
    elif sys.platform == 'darwin':
        return ['libhdf5.dylib', 'libhdf5.*.dylib']
    else:  # Linux
        return ['libhdf5.so', 'libhdf5.so.*', 'libhdf5-*.so*']


def _search_directory(directory: Path) -> Optional[Path]:
    """Return the first libhdf5 found in ``directory`` (never the _hl library)."""
    if not directory.is_dir():
        return None
    for pattern in _library_patterns():
        for candidate in sorted(directory.glob(pattern)):
            if '_hl' in candidate.name:
                continue
            if candidate.is_file():
                return candidate
    return None


def _h5py_directories() -> List[Path]:
    """Directories where an installed h5py wheel keeps its bundled libhdf5."""
    spec = importlib.util.find_spec('h5py')
    if spec is None or spec.origin is None:
        return []
    package_dir = Path(spec.origin).parent
    return [
        package_dir.parent / 'h5py.libs',   # auditwheel (Linux)
        package_dir / '.dylibs',            # delocate (macOS)
        package_dir,                        # Windows wheels
    ]


def find_library(explicit: Optional[str] = None) -> Optional[str]:
    """Search for the HDF5 shared library.

    Search order:
        1. Explicit path (argument or ``H5BIND_LIBRARY_PATH``)
        2. Copy bundled with an installed h5py wheel
        3. System library paths

    Args:
        explicit: File or directory to look in first.

    Returns:
        Path or loader name of the library, or None if not found.
    """
    explicit = explicit or get_config().library_path
    if explicit:
        path = Path(explicit)
        if path.is_file():
            return str(path)
        found = _search_directory(path)
        if found is not None:
            return str(found)
        logger.warning("No libhdf5 found at %s, falling back to search", explicit)

    for directory in _h5py_directories():
        found = _search_directory(directory)
        if found is not None:
            return str(found)

    for name in ('hdf5', 'hdf5_serial'):
        found = ctypes.util.find_library(name)
        if found:
            return found

    return None


def get_lib(path: Optional[str] = None) -> ctypes.CDLL:
    """Get the libhdf5 handle with lazy initialization.

    Args:
        path: Force a specific library file or directory.

    Returns:
        ctypes.CDLL library handle.

    Raises:
        LibraryNotFoundError: If the library cannot be found or loaded.
    """
    key = path or ''
    with _lib_lock:
        if key in _lib_cache:
            return _lib_cache[key]

        lib_path = find_library(path)
        if lib_path is None:
            raise LibraryNotFoundError(
                "Cannot find the HDF5 shared library. "
                "Install h5py or set H5BIND_LIBRARY_PATH."
            )

        try:
            lib = ctypes.CDLL(lib_path, mode=ctypes.RTLD_GLOBAL)
        except OSError as e:
            raise LibraryNotFoundError(f"Failed to load library from {lib_path}: {e}") from e

        logger.debug("Loaded HDF5 library from %s", lib_path)
        _lib_cache[key] = lib
        return lib
