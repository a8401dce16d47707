# filename: dlshare/ffi.py

"""ctypes layout of the DLPack structs.

Field order and sizes follow `dlpack.h`; producers and consumers built
independently rely on them, so nothing here may be reordered.
"""

from __future__ import annotations

import ctypes

DLPACK_MAJOR_VERSION = 1
DLPACK_MINOR_VERSION = 1

FLAG_READ_ONLY = 1 << 0
FLAG_IS_COPIED = 1 << 1
FLAG_IS_SUBBYTE_TYPE_PADDED = 1 << 2


class DLDevice(ctypes.Structure):
    _fields_ = [
        ("device_type", ctypes.c_int32),
        ("device_id", ctypes.c_int32),
    ]


class DLDataType(ctypes.Structure):
    _fields_ = [
        ("code", ctypes.c_uint8),
        ("bits", ctypes.c_uint8),
        ("lanes", ctypes.c_uint16),
    ]


class DLTensor(ctypes.Structure):
    _fields_ = [
        ("data", ctypes.c_void_p),
        ("device", DLDevice),
        ("ndim", ctypes.c_int32),
        ("dtype", DLDataType),
        ("shape", ctypes.POINTER(ctypes.c_int64)),
        ("strides", ctypes.POINTER(ctypes.c_int64)),  # NULL: row-major
        ("byte_offset", ctypes.c_uint64),
    ]


class DLPackVersion(ctypes.Structure):
    _fields_ = [
        ("major", ctypes.c_uint32),
        ("minor", ctypes.c_uint32),
    ]

    def as_tuple(self) -> tuple[int, int]:
        return (int(self.major), int(self.minor))


class DLManagedTensor(ctypes.Structure):
    pass


class DLManagedTensorVersioned(ctypes.Structure):
    pass


DLManagedTensorDeleter = ctypes.CFUNCTYPE(None, ctypes.POINTER(DLManagedTensor))
DLManagedTensorVersionedDeleter = ctypes.CFUNCTYPE(
    None, ctypes.POINTER(DLManagedTensorVersioned)
)

DLManagedTensor._fields_ = [
    ("dl_tensor", DLTensor),
    ("manager_ctx", ctypes.c_void_p),
    ("deleter", DLManagedTensorDeleter),
]

DLManagedTensorVersioned._fields_ = [
    ("version", DLPackVersion),
    ("manager_ctx", ctypes.c_void_p),
    ("deleter", DLManagedTensorVersionedDeleter),
    ("flags", ctypes.c_uint64),
    ("dl_tensor", DLTensor),
]


def address_of(ptr: object) -> int:
    """Normalize an int, `c_void_p` or ctypes pointer to a plain address (0 for NULL)."""
    if ptr is None:
        return 0
    if isinstance(ptr, bool):
        raise TypeError("expected an address, got bool")
    if isinstance(ptr, int):
        return ptr
    if isinstance(ptr, ctypes.c_void_p):
        return int(ptr.value or 0)
    if isinstance(ptr, ctypes._Pointer):  # type: ignore[attr-defined]
        return int(ctypes.cast(ptr, ctypes.c_void_p).value or 0)
    raise TypeError(f"expected an address or ctypes pointer, got {type(ptr)!r}")


def function_address(fn: object) -> int:
    """Address of a ctypes function pointer field, 0 when NULL."""
    return int(ctypes.cast(fn, ctypes.c_void_p).value or 0)
