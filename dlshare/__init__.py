# filename: dlshare/__init__.py

from __future__ import annotations

from .capsule import (
    LEGACY_TAGS,
    VERSIONED_TAGS,
    CapsuleState,
    CapsuleTags,
    capsule_state,
    claim,
    wrap,
)
from .dlpack import from_dlpack, to_dlpack
from .dtypes import DataType, DataTypeCode, Device, DeviceType
from .errors import (
    AlreadyExported,
    CapsuleTagMismatch,
    DLShareError,
    DoubleReleaseError,
    InvalidPointer,
    ReleaseCallbackError,
    ShapeStrideMismatch,
    TensorReleased,
    UnsupportedDType,
    UnsupportedVersion,
)
from .ffi import DLPACK_MAJOR_VERSION, DLPACK_MINOR_VERSION
from .managed import ManagedTensor, ManagedTensorVersioned
from .manager_ctx import ManagerCtx
from .shape import ShapeAndStrides, is_contiguous, row_major_strides
from .tensor import NumpyTensor, TensorView, ToTensor, as_tensor
from .torch import from_torch, to_torch

__all__ = [
    "AlreadyExported",
    "CapsuleState",
    "CapsuleTagMismatch",
    "CapsuleTags",
    "DLPACK_MAJOR_VERSION",
    "DLPACK_MINOR_VERSION",
    "DLShareError",
    "DataType",
    "DataTypeCode",
    "Device",
    "DeviceType",
    "DoubleReleaseError",
    "InvalidPointer",
    "LEGACY_TAGS",
    "ManagedTensor",
    "ManagedTensorVersioned",
    "ManagerCtx",
    "NumpyTensor",
    "ReleaseCallbackError",
    "ShapeAndStrides",
    "ShapeStrideMismatch",
    "TensorReleased",
    "TensorView",
    "ToTensor",
    "UnsupportedDType",
    "UnsupportedVersion",
    "VERSIONED_TAGS",
    "as_tensor",
    "capsule_state",
    "claim",
    "from_dlpack",
    "from_torch",
    "is_contiguous",
    "row_major_strides",
    "to_dlpack",
    "to_torch",
    "wrap",
]
