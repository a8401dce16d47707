# filename: dlshare/dtypes.py

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, ClassVar

import numpy as np

from .errors import UnsupportedDType
from .ffi import DLDataType, DLDevice


class DataTypeCode(IntEnum):
    INT = 0
    UINT = 1
    FLOAT = 2
    OPAQUE_HANDLE = 3
    BFLOAT = 4
    COMPLEX = 5
    BOOL = 6
    FLOAT8_E3M4 = 7
    FLOAT8_E4M3 = 8
    FLOAT8_E4M3B11FNUZ = 9
    FLOAT8_E4M3FN = 10
    FLOAT8_E4M3FNUZ = 11
    FLOAT8_E5M2 = 12
    FLOAT8_E5M2FNUZ = 13
    FLOAT8_E8M0FNU = 14
    FLOAT6_E2M3FN = 15
    FLOAT6_E3M2FN = 16
    FLOAT4_E2M1FN = 17


class DeviceType(IntEnum):
    CPU = 1
    CUDA = 2
    CUDA_HOST = 3
    OPENCL = 4
    VULKAN = 7
    METAL = 8
    VPI = 9
    ROCM = 10
    ROCM_HOST = 11
    EXT_DEV = 12
    CUDA_MANAGED = 13
    ONE_API = 14
    WEBGPU = 15
    HEXAGON = 16
    MAIA = 17


_HOST_DEVICES = frozenset(
    (
        DeviceType.CPU,
        DeviceType.CUDA_HOST,
        DeviceType.ROCM_HOST,
        DeviceType.CUDA_MANAGED,
    )
)

_NUMPY_KINDS = {
    "i": DataTypeCode.INT,
    "u": DataTypeCode.UINT,
    "f": DataTypeCode.FLOAT,
    "c": DataTypeCode.COMPLEX,
}

_NUMPY_NAMES = {
    DataTypeCode.INT: "int",
    DataTypeCode.UINT: "uint",
    DataTypeCode.FLOAT: "float",
    DataTypeCode.COMPLEX: "complex",
}


@dataclass(frozen=True, slots=True)
class DataType:
    code: int
    bits: int
    lanes: int = 1

    F16: ClassVar[DataType]
    F32: ClassVar[DataType]
    F64: ClassVar[DataType]
    BF16: ClassVar[DataType]
    I8: ClassVar[DataType]
    I16: ClassVar[DataType]
    I32: ClassVar[DataType]
    I64: ClassVar[DataType]
    U8: ClassVar[DataType]
    U16: ClassVar[DataType]
    U32: ClassVar[DataType]
    U64: ClassVar[DataType]
    BOOL: ClassVar[DataType]
    C64: ClassVar[DataType]
    C128: ClassVar[DataType]

    def __post_init__(self) -> None:
        if not 0 <= int(self.code) <= 0xFF:
            raise ValueError(f"dtype code out of range: {self.code}")
        if not 0 < int(self.bits) <= 0xFF:
            raise ValueError(f"dtype bits out of range: {self.bits}")
        if not 0 < int(self.lanes) <= 0xFFFF:
            raise ValueError(f"dtype lanes out of range: {self.lanes}")

    @property
    def itemsize(self) -> int:
        return (int(self.bits) * int(self.lanes) + 7) // 8

    @classmethod
    def from_ffi(cls, raw: DLDataType) -> DataType:
        code = int(raw.code)
        try:
            code = DataTypeCode(code)
        except ValueError:
            pass
        return cls(code=code, bits=int(raw.bits), lanes=int(raw.lanes))

    def to_ffi(self) -> DLDataType:
        return DLDataType(int(self.code), int(self.bits), int(self.lanes))

    @classmethod
    def from_numpy(cls, dtype: Any) -> DataType:
        dtype_n = np.dtype(dtype)
        if not dtype_n.isnative:
            raise UnsupportedDType(f"non-native byte order is not supported: {dtype_n}")
        if dtype_n.kind == "b":
            return cls.BOOL
        code = _NUMPY_KINDS.get(dtype_n.kind)
        if code is None or dtype_n.fields is not None:
            raise UnsupportedDType(f"numpy dtype has no DLPack equivalent: {dtype_n}")
        return cls(code=code, bits=int(dtype_n.itemsize) * 8)

    def to_numpy(self) -> np.dtype:
        if int(self.lanes) != 1:
            raise UnsupportedDType(f"vector dtypes have no numpy equivalent: {self}")
        if self.code == DataTypeCode.BOOL and self.bits == 8:
            return np.dtype(np.bool_)
        name = _NUMPY_NAMES.get(self.code)  # type: ignore[call-overload]
        if name is None:
            raise UnsupportedDType(f"dtype has no numpy equivalent: {self}")
        try:
            return np.dtype(f"{name}{int(self.bits)}")
        except TypeError as e:
            raise UnsupportedDType(f"dtype has no numpy equivalent: {self}") from e

    def __str__(self) -> str:
        code = self.code.name if isinstance(self.code, DataTypeCode) else str(self.code)
        suffix = "" if self.lanes == 1 else f"x{self.lanes}"
        return f"{code.lower()}{self.bits}{suffix}"


DataType.F16 = DataType(DataTypeCode.FLOAT, 16)
DataType.F32 = DataType(DataTypeCode.FLOAT, 32)
DataType.F64 = DataType(DataTypeCode.FLOAT, 64)
DataType.BF16 = DataType(DataTypeCode.BFLOAT, 16)
DataType.I8 = DataType(DataTypeCode.INT, 8)
DataType.I16 = DataType(DataTypeCode.INT, 16)
DataType.I32 = DataType(DataTypeCode.INT, 32)
DataType.I64 = DataType(DataTypeCode.INT, 64)
DataType.U8 = DataType(DataTypeCode.UINT, 8)
DataType.U16 = DataType(DataTypeCode.UINT, 16)
DataType.U32 = DataType(DataTypeCode.UINT, 32)
DataType.U64 = DataType(DataTypeCode.UINT, 64)
DataType.BOOL = DataType(DataTypeCode.BOOL, 8)
DataType.C64 = DataType(DataTypeCode.COMPLEX, 64)
DataType.C128 = DataType(DataTypeCode.COMPLEX, 128)


@dataclass(frozen=True, slots=True)
class Device:
    device_type: int
    device_id: int = 0

    CPU: ClassVar[Device]

    @property
    def is_host(self) -> bool:
        return self.device_type in _HOST_DEVICES

    @classmethod
    def from_ffi(cls, raw: DLDevice) -> Device:
        device_type = int(raw.device_type)
        try:
            device_type = DeviceType(device_type)
        except ValueError:
            pass
        return cls(device_type=device_type, device_id=int(raw.device_id))

    def to_ffi(self) -> DLDevice:
        return DLDevice(int(self.device_type), int(self.device_id))

    def as_tuple(self) -> tuple[int, int]:
        """The `(device_type, device_id)` pair returned by `__dlpack_device__`."""
        return (int(self.device_type), int(self.device_id))


Device.CPU = Device(DeviceType.CPU, 0)
