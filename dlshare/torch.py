from __future__ import annotations

import os
from typing import Any

from .dtypes import DataType, Device, DeviceType
from .shape import ShapeAndStrides
from .tensor import _torch


def is_available() -> bool:
    try:
        import torch  # type: ignore

        _ = torch
        return True
    except Exception:
        return False


def _sync_enabled() -> bool:
    return os.environ.get("DLSHARE_TORCH_SYNC", "1").strip().lower() not in (
        "0",
        "false",
        "no",
        "off",
    )


def _dtype_table(torch: Any) -> dict[Any, DataType]:
    return {
        torch.float16: DataType.F16,
        torch.float32: DataType.F32,
        torch.float64: DataType.F64,
        torch.bfloat16: DataType.BF16,
        torch.int8: DataType.I8,
        torch.int16: DataType.I16,
        torch.int32: DataType.I32,
        torch.int64: DataType.I64,
        torch.uint8: DataType.U8,
        torch.bool: DataType.BOOL,
        torch.complex64: DataType.C64,
        torch.complex128: DataType.C128,
    }


def _device_of(torch: Any, t: Any) -> Device:
    kind = t.device.type
    index = t.device.index or 0
    if kind == "cpu":
        return Device.CPU
    if kind == "cuda":
        if getattr(torch.version, "hip", None):
            return Device(DeviceType.ROCM, index)
        return Device(DeviceType.CUDA, index)
    if kind == "mps":
        return Device(DeviceType.METAL, index)
    raise TypeError(f"unsupported torch device for export: {t.device}")


class TorchTensor:
    """`ToTensor` adapter for `torch.Tensor` values."""

    __slots__ = ("tensor", "_dtype", "_device", "_layout")

    def __init__(self, tensor: Any) -> None:
        torch = _torch()
        if torch is None:
            raise RuntimeError("torch is not available; install it to export torch tensors")

        t = tensor.detach() if getattr(tensor, "requires_grad", False) else tensor
        dtype = _dtype_table(torch).get(t.dtype)
        if dtype is None:
            raise TypeError(f"unsupported torch dtype for export: {t.dtype}")
        device = _device_of(torch, t)

        if _sync_enabled():
            if device.device_type in (DeviceType.CUDA, DeviceType.ROCM):
                torch.cuda.synchronize(t.device)
            elif device.device_type == DeviceType.METAL:
                torch.mps.synchronize()

        if t.is_contiguous():
            layout = ShapeAndStrides.contiguous(t.shape)
        else:
            layout = ShapeAndStrides.with_strides(t.shape, t.stride())
        self.tensor = t
        self._dtype = dtype
        self._device = device
        self._layout = layout

    @property
    def data_ptr(self) -> int:
        return int(self.tensor.data_ptr())

    @property
    def byte_offset(self) -> int:
        return 0

    @property
    def device(self) -> Device:
        return self._device

    @property
    def dtype(self) -> DataType:
        return self._dtype

    def shape_and_strides(self) -> ShapeAndStrides:
        return self._layout


def from_torch(x: Any) -> Any:
    """Wrap a torch tensor in a `ManagerCtx`, ready to be exported."""
    from .manager_ctx import ManagerCtx

    return ManagerCtx(x)


def to_torch(x: Any) -> Any:
    """Import anything speaking DLPack (`ManagerCtx`, `ManagedTensor`, capsule) into torch."""
    torch = _torch()
    if torch is None:
        raise RuntimeError("torch is not available; install it to use to_torch()")
    from torch.utils import dlpack  # type: ignore

    return dlpack.from_dlpack(x)
