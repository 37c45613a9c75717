"""
h5bind - HDF5 through ctypes

A binding layer over the native HDF5 C library (libhdf5 >= 1.10):

- Handle Registry: every native identifier is owned by a reference-counted
  handle and released exactly once
- Type Bridge: immutable type descriptors mapped to native datatypes and
  numpy dtypes
- Error Translator: native error stacks become typed exceptions
- Concurrency Guard: one process-wide lock around every native call

Location objects:
- File / Group: containers of named links
- Dataset: typed n-dimensional arrays with selections
- Attribute: small named values attached to objects
- Datatype: committed (named) datatypes
- Dataspace: extents and selections

Example:
    >>> import numpy as np
    >>> import h5bind
    >>>
    >>> with h5bind.File("scene.h5", "w") as f:
    ...     grid = f.create_dataset("grid/cells", data=np.arange(12).reshape(3, 4))
    ...     grid.attrs["units"] = "m"
    ...     row = grid[1]
    >>> row
    array([4, 5, 6, 7])
"""

__version__ = "0.1.0"

from .attribute import Attribute, AttributeManager
from .bridge import (
    check_convertible,
    from_dtype,
    from_native,
    memory_descriptor,
    native_layout_offsets,
    to_dtype,
    to_native,
)
from .config import BindConfig, get_config
from .dataset import Dataset
from .dataspace import All, Dataspace, Hyperslab, PointList, UNLIMITED
from .datatype import Datatype
from .descriptors import (
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
    TypeDescriptor,
    VarString,
    alignment_of,
    c_struct_layout,
    size_of,
    BOOL,
    FLOAT32,
    FLOAT64,
    INT8,
    INT16,
    INT32,
    INT64,
    UINT8,
    UINT16,
    UINT32,
    UINT64,
)
from .errors import (
    AlreadyExists,
    DimensionMismatch,
    ErrorFrame,
    ErrorRecord,
    H5BindError,
    InvalidHandle,
    IOFailure,
    LibraryNotFoundError,
    NativeLibraryError,
    NotFound,
    TypeMismatch,
    UnsupportedType,
)
from .file import File
from .group import Group
from .guard import guard
from .registry import Handle, HandleKind, registry

__all__ = [
    "__version__",
    # Location objects
    "File",
    "Group",
    "Dataset",
    "Attribute",
    "AttributeManager",
    "Datatype",
    "Dataspace",
    # Selections
    "All",
    "Hyperslab",
    "PointList",
    "UNLIMITED",
    # Type descriptors
    "TypeDescriptor",
    "Integer",
    "Float",
    "FixedString",
    "VarString",
    "Compound",
    "Field",
    "Array",
    "Enum",
    "Reference",
    "ByteOrder",
    "Charset",
    "RefKind",
    "size_of",
    "alignment_of",
    "c_struct_layout",
    "BOOL",
    "FLOAT32",
    "FLOAT64",
    "INT8",
    "INT16",
    "INT32",
    "INT64",
    "UINT8",
    "UINT16",
    "UINT32",
    "UINT64",
    # Type bridge
    "to_native",
    "from_native",
    "to_dtype",
    "from_dtype",
    "check_convertible",
    "memory_descriptor",
    "native_layout_offsets",
    # Handles
    "Handle",
    "HandleKind",
    "registry",
    "guard",
    # Errors
    "H5BindError",
    "InvalidHandle",
    "TypeMismatch",
    "DimensionMismatch",
    "NotFound",
    "AlreadyExists",
    "UnsupportedType",
    "IOFailure",
    "NativeLibraryError",
    "LibraryNotFoundError",
    "ErrorFrame",
    "ErrorRecord",
    # Configuration
    "BindConfig",
    "get_config",
]
