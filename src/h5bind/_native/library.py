"""
Native function signatures and library-global identifiers.

Every native function used by h5bind is declared once here with its
argument types, return type and failure predicate. Nothing in this module
checks errors itself; that is the job of ``h5bind.translator``.
"""

from __future__ import annotations

import ctypes
import logging
import threading
from ctypes import POINTER, c_char_p, c_int, c_uint, c_void_p
from typing import Callable, Dict, Optional, Tuple

from .lib_loader import get_lib
from .types import (
    hid_t, herr_t, htri_t, hsize_t, hssize_t, c_size, c_ssize,
    H5G_info_t, H5E_walk2_t, H5A_operator2_t,
)
from ..errors import LibraryNotFoundError

__all__ = ["Library", "get_library", "NEGATIVE", "ZERO", "NULL", "NEVER"]

logger = logging.getLogger("h5bind.native")


# =============================================================================
# Failure Predicates
# =============================================================================

def NEGATIVE(result) -> bool:
    return result < 0


def ZERO(result) -> bool:
    return result == 0


def NULL(result) -> bool:
    return not result


def NEVER(result) -> bool:
    return False


# =============================================================================
# Function Signatures
# =============================================================================

_P_HSIZE = POINTER(hsize_t)

_SIGNATURES: Dict[str, Tuple[object, list, Callable]] = {
    # --- Library ---
    "H5open": (herr_t, [], NEGATIVE),
    "H5get_libversion": (herr_t, [POINTER(c_uint), POINTER(c_uint), POINTER(c_uint)], NEGATIVE),
    "H5free_memory": (herr_t, [c_void_p], NEGATIVE),

    # --- Error stack ---
    "H5Eset_auto2": (herr_t, [hid_t, c_void_p, c_void_p], NEGATIVE),
    "H5Eget_current_stack": (hid_t, [], NEGATIVE),
    "H5Ewalk2": (herr_t, [hid_t, c_int, H5E_walk2_t, c_void_p], NEGATIVE),
    "H5Eclose_stack": (herr_t, [hid_t], NEGATIVE),
    "H5Eclear2": (herr_t, [hid_t], NEGATIVE),
    "H5Eget_msg": (c_ssize, [hid_t, POINTER(c_int), c_char_p, c_size], NEGATIVE),
    "H5Eget_class_name": (c_ssize, [hid_t, c_char_p, c_size], NEGATIVE),

    # --- Identifiers ---
    "H5Iget_type": (c_int, [hid_t], NEGATIVE),
    "H5Iget_name": (c_ssize, [hid_t, c_char_p, c_size], NEGATIVE),
    "H5Iget_file_id": (hid_t, [hid_t], NEGATIVE),

    # --- Files ---
    "H5Fcreate": (hid_t, [c_char_p, c_uint, hid_t, hid_t], NEGATIVE),
    "H5Fopen": (hid_t, [c_char_p, c_uint, hid_t], NEGATIVE),
    "H5Freopen": (hid_t, [hid_t], NEGATIVE),
    "H5Fclose": (herr_t, [hid_t], NEGATIVE),
    "H5Fflush": (herr_t, [hid_t, c_int], NEGATIVE),
    "H5Fget_obj_count": (c_ssize, [hid_t, c_uint], NEGATIVE),
    "H5Fget_obj_ids": (c_ssize, [hid_t, c_uint, c_size, POINTER(hid_t)], NEGATIVE),
    "H5Fget_name": (c_ssize, [hid_t, c_char_p, c_size], NEGATIVE),
    "H5Fget_intent": (herr_t, [hid_t, POINTER(c_uint)], NEGATIVE),

    # --- Groups and links ---
    "H5Gcreate2": (hid_t, [hid_t, c_char_p, hid_t, hid_t, hid_t], NEGATIVE),
    "H5Gopen2": (hid_t, [hid_t, c_char_p, hid_t], NEGATIVE),
    "H5Gclose": (herr_t, [hid_t], NEGATIVE),
    "H5Gget_info": (herr_t, [hid_t, POINTER(H5G_info_t)], NEGATIVE),
    "H5Lexists": (htri_t, [hid_t, c_char_p, hid_t], NEGATIVE),
    "H5Ldelete": (herr_t, [hid_t, c_char_p, hid_t], NEGATIVE),
    "H5Lget_name_by_idx": (
        c_ssize, [hid_t, c_char_p, c_int, c_int, hsize_t, c_char_p, c_size, hid_t], NEGATIVE
    ),
    "H5Lcreate_soft": (herr_t, [c_char_p, hid_t, c_char_p, hid_t, hid_t], NEGATIVE),
    "H5Lcreate_hard": (herr_t, [hid_t, c_char_p, hid_t, c_char_p, hid_t, hid_t], NEGATIVE),

    # --- Objects ---
    "H5Oopen": (hid_t, [hid_t, c_char_p, hid_t], NEGATIVE),
    "H5Oclose": (herr_t, [hid_t], NEGATIVE),

    # --- Property lists ---
    "H5Pcreate": (hid_t, [hid_t], NEGATIVE),
    "H5Pclose": (herr_t, [hid_t], NEGATIVE),
    "H5Pset_create_intermediate_group": (herr_t, [hid_t, c_uint], NEGATIVE),
    "H5Pset_chunk": (herr_t, [hid_t, c_int, _P_HSIZE], NEGATIVE),
    "H5Pget_chunk": (c_int, [hid_t, c_int, _P_HSIZE], NEGATIVE),
    "H5Pset_deflate": (herr_t, [hid_t, c_uint], NEGATIVE),
    "H5Pget_layout": (c_int, [hid_t], NEGATIVE),

    # --- Datasets ---
    "H5Dcreate2": (hid_t, [hid_t, c_char_p, hid_t, hid_t, hid_t, hid_t, hid_t], NEGATIVE),
    "H5Dopen2": (hid_t, [hid_t, c_char_p, hid_t], NEGATIVE),
    "H5Dclose": (herr_t, [hid_t], NEGATIVE),
    "H5Dget_type": (hid_t, [hid_t], NEGATIVE),
    "H5Dget_space": (hid_t, [hid_t], NEGATIVE),
    "H5Dget_create_plist": (hid_t, [hid_t], NEGATIVE),
    "H5Dread": (herr_t, [hid_t, hid_t, hid_t, hid_t, hid_t, c_void_p], NEGATIVE),
    "H5Dwrite": (herr_t, [hid_t, hid_t, hid_t, hid_t, hid_t, c_void_p], NEGATIVE),
    "H5Dset_extent": (herr_t, [hid_t, _P_HSIZE], NEGATIVE),

    # --- Attributes ---
    "H5Acreate2": (hid_t, [hid_t, c_char_p, hid_t, hid_t, hid_t, hid_t], NEGATIVE),
    "H5Aopen": (hid_t, [hid_t, c_char_p, hid_t], NEGATIVE),
    "H5Aclose": (herr_t, [hid_t], NEGATIVE),
    "H5Aexists": (htri_t, [hid_t, c_char_p], NEGATIVE),
    "H5Adelete": (herr_t, [hid_t, c_char_p], NEGATIVE),
    "H5Aread": (herr_t, [hid_t, hid_t, c_void_p], NEGATIVE),
    "H5Awrite": (herr_t, [hid_t, hid_t, c_void_p], NEGATIVE),
    "H5Aget_type": (hid_t, [hid_t], NEGATIVE),
    "H5Aget_space": (hid_t, [hid_t], NEGATIVE),
    "H5Aiterate2": (herr_t, [hid_t, c_int, c_int, _P_HSIZE, H5A_operator2_t, c_void_p], NEGATIVE),

    # --- Datatypes ---
    "H5Tcopy": (hid_t, [hid_t], NEGATIVE),
    "H5Tclose": (herr_t, [hid_t], NEGATIVE),
    "H5Tcreate": (hid_t, [c_int, c_size], NEGATIVE),
    "H5Tequal": (htri_t, [hid_t, hid_t], NEGATIVE),
    "H5Tget_class": (c_int, [hid_t], NEGATIVE),
    "H5Tget_size": (c_size, [hid_t], ZERO),
    "H5Tset_size": (herr_t, [hid_t, c_size], NEGATIVE),
    "H5Tget_order": (c_int, [hid_t], NEGATIVE),
    "H5Tset_order": (herr_t, [hid_t, c_int], NEGATIVE),
    "H5Tget_sign": (c_int, [hid_t], NEGATIVE),
    "H5Tget_cset": (c_int, [hid_t], NEGATIVE),
    "H5Tset_cset": (herr_t, [hid_t, c_int], NEGATIVE),
    "H5Tset_strpad": (herr_t, [hid_t, c_int], NEGATIVE),
    "H5Tis_variable_str": (htri_t, [hid_t], NEGATIVE),
    "H5Tget_nmembers": (c_int, [hid_t], NEGATIVE),
    "H5Tget_member_name": (c_void_p, [hid_t, c_uint], NULL),
    # size_t offset: zero is a valid answer, indices are validated beforehand
    "H5Tget_member_offset": (c_size, [hid_t, c_uint], NEVER),
    "H5Tget_member_type": (hid_t, [hid_t, c_uint], NEGATIVE),
    "H5Tget_member_value": (herr_t, [hid_t, c_uint, c_void_p], NEGATIVE),
    "H5Tinsert": (herr_t, [hid_t, c_char_p, c_size, hid_t], NEGATIVE),
    "H5Tarray_create2": (hid_t, [hid_t, c_uint, _P_HSIZE], NEGATIVE),
    "H5Tget_array_ndims": (c_int, [hid_t], NEGATIVE),
    "H5Tget_array_dims2": (c_int, [hid_t, _P_HSIZE], NEGATIVE),
    "H5Tenum_create": (hid_t, [hid_t], NEGATIVE),
    "H5Tenum_insert": (herr_t, [hid_t, c_char_p, c_void_p], NEGATIVE),
    "H5Tget_super": (hid_t, [hid_t], NEGATIVE),
    "H5Tcommit2": (herr_t, [hid_t, c_char_p, hid_t, hid_t, hid_t, hid_t], NEGATIVE),
    "H5Topen2": (hid_t, [hid_t, c_char_p, hid_t], NEGATIVE),
    "H5Tcommitted": (htri_t, [hid_t], NEGATIVE),
    "H5Tget_native_type": (hid_t, [hid_t, c_int], NEGATIVE),

    # --- Dataspaces ---
    "H5Screate": (hid_t, [c_int], NEGATIVE),
    "H5Screate_simple": (hid_t, [c_int, _P_HSIZE, _P_HSIZE], NEGATIVE),
    "H5Scopy": (hid_t, [hid_t], NEGATIVE),
    "H5Sclose": (herr_t, [hid_t], NEGATIVE),
    "H5Sget_simple_extent_type": (c_int, [hid_t], NEGATIVE),
    "H5Sget_simple_extent_ndims": (c_int, [hid_t], NEGATIVE),
    "H5Sget_simple_extent_dims": (c_int, [hid_t, _P_HSIZE, _P_HSIZE], NEGATIVE),
    "H5Sselect_all": (herr_t, [hid_t], NEGATIVE),
    "H5Sselect_none": (herr_t, [hid_t], NEGATIVE),
    "H5Sselect_hyperslab": (herr_t, [hid_t, c_int, _P_HSIZE, _P_HSIZE, _P_HSIZE, _P_HSIZE], NEGATIVE),
    "H5Sselect_elements": (herr_t, [hid_t, c_int, c_size, _P_HSIZE], NEGATIVE),
    "H5Sget_select_npoints": (hssize_t, [hid_t], NEGATIVE),

    # --- References ---
    "H5Rcreate": (herr_t, [c_void_p, hid_t, c_char_p, c_int, hid_t], NEGATIVE),
    "H5Rdereference2": (hid_t, [hid_t, hid_t, c_int, c_void_p], NEGATIVE),
}

# Functions with renamed successors: first available name wins.
_ALTERNATIVES = {
    "reclaim": (("H5Treclaim", "H5Dvlen_reclaim"), (herr_t, [hid_t, hid_t, hid_t, c_void_p], NEGATIVE)),
}

# =============================================================================
# Library
# =============================================================================

class Library:
    """
    Bound view of libhdf5.

    Holds the ctypes functions with their signatures, the failure predicate
    of each function and a cache of library-global identifiers.
    """

    def __init__(self, cdll: ctypes.CDLL):
        self._cdll = cdll
        self._functions: Dict[str, Tuple[Callable, Callable]] = {}
        self._globals: Dict[str, int] = {}
        self._globals_lock = threading.Lock()

        for name, (restype, argtypes, failed) in _SIGNATURES.items():
            try:
                self._bind(name, name, restype, argtypes, failed)
            except AttributeError:
                raise LibraryNotFoundError(f"libhdf5 lacks required function {name}") from None

        for alias, (candidates, (restype, argtypes, failed)) in _ALTERNATIVES.items():
            for candidate in candidates:
                try:
                    self._bind(alias, candidate, restype, argtypes, failed)
                    break
                except AttributeError:
                    continue
            else:
                raise LibraryNotFoundError(f"libhdf5 lacks all of {', '.join(candidates)}")

        self.version = self._init_library()

    def _bind(self, key, symbol, restype, argtypes, failed) -> None:
        func = getattr(self._cdll, symbol)
        func.restype = restype
        func.argtypes = argtypes
        self._functions[key] = (func, failed)

    def _init_library(self) -> Tuple[int, int, int]:
        func, failed = self._functions["H5open"]
        if failed(func()):
            raise LibraryNotFoundError("H5open() failed")

        major, minor, release = c_uint(), c_uint(), c_uint()
        func, _ = self._functions["H5get_libversion"]
        func(ctypes.byref(major), ctypes.byref(minor), ctypes.byref(release))
        version = (major.value, minor.value, release.value)
        if version < (1, 10, 0):
            raise LibraryNotFoundError(
                "libhdf5 %d.%d.%d is too old, 1.10 or newer is required" % version
            )
        logger.debug("libhdf5 %d.%d.%d initialised", *version)
        return version

    def function(self, name: str) -> Tuple[Callable, Callable]:
        """Return ``(func, failed)`` for a bound native function."""
        try:
            return self._functions[name]
        except KeyError:
            raise AttributeError(f"native function {name} is not bound") from None

    def global_id(self, symbol: str) -> int:
        """
        Value of a library-global identifier such as ``H5T_STD_I32LE_g``.

        Raises:
            KeyError: If the symbol does not exist in this libhdf5 build.
        """
        with self._globals_lock:
            if symbol not in self._globals:
                try:
                    self._globals[symbol] = hid_t.in_dll(self._cdll, symbol).value
                except ValueError:
                    raise KeyError(symbol) from None
            return self._globals[symbol]

    def find_global_id(self, *symbols: str) -> Optional[int]:
        """First existing global among ``symbols``, or None."""
        for symbol in symbols:
            try:
                return self.global_id(symbol)
            except KeyError:
                continue
        return None


_library: Optional[Library] = None
_library_lock = threading.Lock()


def get_library() -> Library:
    """Get the process-wide bound library (lazy loaded)."""
    global _library
    if _library is None:
        with _library_lock:
            if _library is None:
                _library = Library(get_lib())
    return _library
