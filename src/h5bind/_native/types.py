"""C type definitions for the HDF5 bindings.

Maps the native API's typedefs, structs and enumerations to ctypes.
Only the subset used by h5bind is declared. Values are those of
libhdf5 1.10 through 1.14 (they did not change across those releases).
"""

import ctypes


__all__ = [
    'hid_t', 'herr_t', 'htri_t', 'hsize_t', 'hssize_t', 'haddr_t', 'hbool_t',
    'H5E_error2_t', 'H5G_info_t', 'H5E_walk2_t', 'H5A_operator2_t',
    'hobj_ref_t', 'hdset_reg_ref_t',
]


# =============================================================================
# Type Aliases
# =============================================================================

hid_t = ctypes.c_int64      # 64-bit since 1.10
herr_t = ctypes.c_int
htri_t = ctypes.c_int
hsize_t = ctypes.c_uint64
hssize_t = ctypes.c_int64
haddr_t = ctypes.c_uint64
hbool_t = ctypes.c_bool
c_size = ctypes.c_size_t
c_ssize = ctypes.c_ssize_t

hobj_ref_t = haddr_t
hdset_reg_ref_t = ctypes.c_ubyte * 12


# =============================================================================
# Structs
# =============================================================================

class H5E_error2_t(ctypes.Structure):
    """One frame of a native error stack."""
    _fields_ = [
        ('cls_id', hid_t),
        ('maj_num', hid_t),
        ('min_num', hid_t),
        ('line', ctypes.c_uint),
        ('func_name', ctypes.c_char_p),
        ('file_name', ctypes.c_char_p),
        ('desc', ctypes.c_char_p),
    ]


class H5G_info_t(ctypes.Structure):
    _fields_ = [
        ('storage_type', ctypes.c_int),
        ('nlinks', hsize_t),
        ('max_corder', ctypes.c_int64),
        ('mounted', hbool_t),
    ]


class H5A_info_t(ctypes.Structure):
    _fields_ = [
        ('corder_valid', hbool_t),
        ('corder', ctypes.c_int32),
        ('cset', ctypes.c_int),
        ('data_size', hsize_t),
    ]


# herr_t (*H5E_walk2_t)(unsigned n, const H5E_error2_t *err_desc, void *client_data)
H5E_walk2_t = ctypes.CFUNCTYPE(herr_t, ctypes.c_uint, ctypes.POINTER(H5E_error2_t), ctypes.c_void_p)

# herr_t (*H5A_operator2_t)(hid_t location_id, const char *attr_name,
#                           const H5A_info_t *ainfo, void *op_data)
H5A_operator2_t = ctypes.CFUNCTYPE(herr_t, hid_t, ctypes.c_char_p, ctypes.POINTER(H5A_info_t), ctypes.c_void_p)


# =============================================================================
# Constants
# =============================================================================

H5P_DEFAULT = 0
H5E_DEFAULT = 0
H5S_ALL = 0

# File access flags
H5F_ACC_RDONLY = 0x0000
H5F_ACC_RDWR = 0x0001
H5F_ACC_TRUNC = 0x0002
H5F_ACC_EXCL = 0x0004

H5F_SCOPE_LOCAL = 0
H5F_SCOPE_GLOBAL = 1

H5F_OBJ_FILE = 0x0001
H5F_OBJ_DATASET = 0x0002
H5F_OBJ_GROUP = 0x0004
H5F_OBJ_DATATYPE = 0x0008
H5F_OBJ_ATTR = 0x0010
H5F_OBJ_ALL = 0x001F

# H5I_type_t (stable for the values below)
H5I_BADID = -1
H5I_FILE = 1
H5I_GROUP = 2
H5I_DATATYPE = 3
H5I_DATASPACE = 4
H5I_DATASET = 5

# H5T_class_t
H5T_NO_CLASS = -1
H5T_INTEGER = 0
H5T_FLOAT = 1
H5T_TIME = 2
H5T_STRING = 3
H5T_BITFIELD = 4
H5T_OPAQUE = 5
H5T_COMPOUND = 6
H5T_REFERENCE = 7
H5T_ENUM = 8
H5T_VLEN = 9
H5T_ARRAY = 10

H5T_ORDER_LE = 0
H5T_ORDER_BE = 1

H5T_SGN_NONE = 0
H5T_SGN_2 = 1

H5T_CSET_ASCII = 0
H5T_CSET_UTF8 = 1

H5T_STR_NULLTERM = 0
H5T_STR_NULLPAD = 1
H5T_STR_SPACEPAD = 2

H5T_DIR_DEFAULT = 0

H5T_VARIABLE = ctypes.c_size_t(-1).value

# H5S_class_t
H5S_SCALAR = 0
H5S_SIMPLE = 1
H5S_NULL = 2

H5S_SELECT_SET = 0
H5S_SELECT_OR = 1

H5S_UNLIMITED = hsize_t(-1).value

# H5D_layout_t
H5D_COMPACT = 0
H5D_CONTIGUOUS = 1
H5D_CHUNKED = 2

# H5R_type_t
H5R_OBJECT = 0
H5R_DATASET_REGION = 1

# H5_index_t / H5_iter_order_t
H5_INDEX_NAME = 0
H5_ITER_INC = 0
H5_ITER_NATIVE = 2

# H5E_direction_t
H5E_WALK_UPWARD = 0
H5E_WALK_DOWNWARD = 1

# H5E_type_t
H5E_MAJOR = 0
H5E_MINOR = 1
