# filename: dlshare/tensor.py

from __future__ import annotations

import ctypes
from typing import Any, Protocol, runtime_checkable

import numpy as np

from .dtypes import DataType, Device
from .errors import TensorReleased
from .ffi import DLTensor, address_of
from .shape import ShapeAndStrides, is_contiguous


def _torch() -> Any | None:
    try:
        import torch  # type: ignore

        return torch
    except Exception:
        return None


def _is_torch_tensor(x: Any) -> bool:
    torch = _torch()
    if torch is None:
        return False
    return isinstance(x, torch.Tensor)


def _read_i64(ptr: Any, n: int) -> tuple[int, ...]:
    addr = address_of(ptr)
    if n == 0 or addr == 0:
        return ()
    return tuple((ctypes.c_int64 * n).from_address(addr))


@runtime_checkable
class ToTensor(Protocol):
    """Capability of a value that can describe its own buffer as a tensor.

    Implementations report everything without copying: `shape_and_strides()`
    returns storage that stays valid for as long as the implementation itself
    is alive. An optional `read_only` attribute marks immutable buffers.
    """

    @property
    def data_ptr(self) -> int: ...

    @property
    def byte_offset(self) -> int: ...

    @property
    def device(self) -> Device: ...

    @property
    def dtype(self) -> DataType: ...

    def shape_and_strides(self) -> ShapeAndStrides: ...


class TensorView:
    """Read accessors over a DLTensor owned by the subclass."""

    __slots__ = ()

    def _dl_tensor(self) -> DLTensor | None:
        raise NotImplementedError

    @property
    def dl_tensor(self) -> DLTensor:
        t = self._dl_tensor()
        if t is None:
            raise TensorReleased(f"{type(self).__name__} has been released")
        return t

    @property
    def data_ptr(self) -> int:
        return int(self.dl_tensor.data or 0)

    @property
    def byte_offset(self) -> int:
        return int(self.dl_tensor.byte_offset)

    @property
    def device(self) -> Device:
        return Device.from_ffi(self.dl_tensor.device)

    @property
    def dtype(self) -> DataType:
        return DataType.from_ffi(self.dl_tensor.dtype)

    @property
    def ndim(self) -> int:
        return int(self.dl_tensor.ndim)

    @property
    def shape(self) -> tuple[int, ...]:
        t = self.dl_tensor
        return _read_i64(t.shape, int(t.ndim))

    @property
    def strides(self) -> tuple[int, ...] | None:
        t = self.dl_tensor
        if not t.strides:
            return None
        return _read_i64(t.strides, int(t.ndim))

    @property
    def num_elements(self) -> int:
        n = 1
        for d in self.shape:
            n *= d
        return n

    def is_contiguous(self) -> bool:
        return is_contiguous(self.shape, self.strides)


class NumpyTensor:
    """`ToTensor` adapter for numpy arrays (and buffers viewed through numpy)."""

    __slots__ = ("array", "_dtype", "_layout")

    def __init__(self, array: np.ndarray) -> None:
        dtype = DataType.from_numpy(array.dtype)
        itemsize = int(array.dtype.itemsize)
        if array.flags.c_contiguous:
            layout = ShapeAndStrides.contiguous(array.shape)
        else:
            for s in array.strides:
                if s % itemsize:
                    raise ValueError(
                        f"byte strides {array.strides} are not a multiple of itemsize {itemsize}"
                    )
            layout = ShapeAndStrides.with_strides(
                array.shape, (s // itemsize for s in array.strides)
            )
        self.array = array
        self._dtype = dtype
        self._layout = layout

    @property
    def data_ptr(self) -> int:
        return int(self.array.ctypes.data)

    @property
    def byte_offset(self) -> int:
        return 0

    @property
    def device(self) -> Device:
        return Device.CPU

    @property
    def dtype(self) -> DataType:
        return self._dtype

    @property
    def read_only(self) -> bool:
        return not self.array.flags.writeable

    def shape_and_strides(self) -> ShapeAndStrides:
        return self._layout


def as_tensor(value: Any) -> ToTensor:
    """Find the `ToTensor` adapter for `value` without copying its buffer."""
    if isinstance(value, ToTensor):
        return value
    if isinstance(value, np.ndarray):
        return NumpyTensor(value)
    if _is_torch_tensor(value):
        from .torch import TorchTensor

        return TorchTensor(value)
    try:
        view = memoryview(value)
    except TypeError:
        raise TypeError(
            f"cannot describe {type(value)!r} as a tensor; expected a ToTensor "
            "implementation, a numpy array, a torch tensor or a buffer"
        ) from None
    return NumpyTensor(np.asarray(view))
