"""
Low-level access to the native HDF5 C library.

Nothing in this package checks native error codes; see ``h5bind.translator``.
"""

from .lib_loader import find_library, get_lib
from .library import Library, get_library

__all__ = ["find_library", "get_lib", "Library", "get_library"]
