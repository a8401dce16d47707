# filename: dlshare/shape.py

from __future__ import annotations

import ctypes
from collections.abc import Iterable, Sequence
from typing import Any

from .errors import InvalidPointer, ShapeStrideMismatch
from .ffi import address_of

_I64 = ctypes.c_int64
_I64_PTR = ctypes.POINTER(ctypes.c_int64)
_I64_SIZE = ctypes.sizeof(ctypes.c_int64)


def row_major_strides(shape: Sequence[int]) -> tuple[int, ...]:
    """Element strides of a C-ordered layout: stride[i] = prod(shape[i+1:])."""
    out = [0] * len(shape)
    stride = 1
    for i in range(len(shape) - 1, -1, -1):
        out[i] = stride
        stride *= int(shape[i])
    return tuple(out)


def is_contiguous(shape: Sequence[int], strides: Sequence[int] | None) -> bool:
    if strides is None:
        return True
    if len(shape) != len(strides):
        raise ShapeStrideMismatch(len(shape), len(strides))
    expected = 1
    for dim, stride in zip(reversed(shape), reversed(strides)):
        if int(stride) != expected:
            return False
        expected *= int(dim)
    return True


def _int64_array(values: Iterable[int]) -> ctypes.Array:
    items = [int(v) for v in values]
    return (_I64 * len(items))(*items)


def _read(addr: int, n: int) -> tuple[int, ...]:
    if n == 0:
        return ()
    return tuple((_I64 * n).from_address(addr))


class ShapeAndStrides:
    """Backing storage for the `shape` / `strides` arrays of a DLTensor.

    Use the constructors rather than the subclasses:

    - `contiguous(shape)` owns the shape only; strides stay implicit (NULL).
    - `with_strides(shape, strides)` owns one buffer `[shape | strides]`.
    - `contiguous_with_strides(shape)` is `with_strides` with row-major strides.
    - `borrowed(shape, strides)` keeps raw addresses of caller memory and owns
      nothing; the caller must keep that memory alive for as long as any
      DLTensor built from it is in use.
    """

    __slots__ = ()

    @staticmethod
    def contiguous(shape: Iterable[int]) -> Contiguous:
        return Contiguous(_int64_array(shape))

    @staticmethod
    def with_strides(shape: Iterable[int], strides: Iterable[int]) -> WithStrides:
        shape_l = [int(d) for d in shape]
        strides_l = [int(s) for s in strides]
        if len(shape_l) != len(strides_l):
            raise ShapeStrideMismatch(len(shape_l), len(strides_l))
        return WithStrides(_int64_array(shape_l + strides_l))

    @staticmethod
    def contiguous_with_strides(shape: Iterable[int]) -> WithStrides:
        shape_l = [int(d) for d in shape]
        return WithStrides(_int64_array(shape_l + list(row_major_strides(shape_l))))

    @staticmethod
    def borrowed(
        shape: Any,
        strides: Any | None = None,
        length: int | None = None,
    ) -> Borrowed:
        if length is None:
            if not isinstance(shape, ctypes.Array):
                raise TypeError("length is required when shape is given as an address")
            length = len(shape)
        length = int(length)
        if length < 0:
            raise ValueError(f"length must be >= 0, got {length}")
        for arr in (shape, strides):
            if isinstance(arr, ctypes.Array) and arr._type_ is not _I64:
                raise TypeError(f"borrowed arrays must hold c_int64, got {arr._type_!r}")
        if isinstance(shape, ctypes.Array) and len(shape) != length:
            raise ValueError(f"shape array has {len(shape)} entries, expected {length}")
        if isinstance(strides, ctypes.Array) and len(strides) != length:
            raise ShapeStrideMismatch(length, len(strides))

        shape_addr = _array_address(shape)
        strides_addr = None if strides is None else _array_address(strides)
        if length > 0 and shape_addr == 0:
            raise InvalidPointer("borrowed shape pointer is NULL")
        if length > 0 and strides_addr == 0:
            raise InvalidPointer("borrowed strides pointer is NULL")
        return Borrowed(shape_addr, strides_addr, length)

    def __len__(self) -> int:
        raise NotImplementedError

    @property
    def ndim(self) -> int:
        return len(self)

    def is_empty(self) -> bool:
        return len(self) == 0

    @property
    def shape(self) -> tuple[int, ...]:
        raise NotImplementedError

    @property
    def strides(self) -> tuple[int, ...] | None:
        raise NotImplementedError

    @property
    def shape_ptr(self) -> Any:
        raise NotImplementedError

    @property
    def strides_ptr(self) -> Any:
        """Pointer written into `DLTensor.strides`; NULL when strides are implicit."""
        raise NotImplementedError

    def is_contiguous(self) -> bool:
        return is_contiguous(self.shape, self.strides)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ShapeAndStrides):
            return NotImplemented
        return self.shape == other.shape and self.strides == other.strides

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"{type(self).__name__}(shape={self.shape}, strides={self.strides})"


def _array_address(arr: Any) -> int:
    if isinstance(arr, ctypes.Array):
        return ctypes.addressof(arr)
    return address_of(arr)


class Contiguous(ShapeAndStrides):
    __slots__ = ("_buf",)

    def __init__(self, buf: ctypes.Array) -> None:
        self._buf = buf

    def __len__(self) -> int:
        return len(self._buf)

    @property
    def shape(self) -> tuple[int, ...]:
        return tuple(self._buf)

    @property
    def strides(self) -> None:
        return None

    @property
    def shape_ptr(self) -> Any:
        return ctypes.cast(self._buf, _I64_PTR)

    @property
    def strides_ptr(self) -> Any:
        return _I64_PTR()

    def is_contiguous(self) -> bool:
        return True


class WithStrides(ShapeAndStrides):
    __slots__ = ("_buf",)

    def __init__(self, buf: ctypes.Array) -> None:
        if len(buf) % 2:
            raise ShapeStrideMismatch(len(buf) - len(buf) // 2, len(buf) // 2)
        self._buf = buf

    def __len__(self) -> int:
        return len(self._buf) // 2

    @property
    def shape(self) -> tuple[int, ...]:
        return tuple(self._buf[: len(self)])

    @property
    def strides(self) -> tuple[int, ...]:
        return tuple(self._buf[len(self) :])

    @property
    def shape_ptr(self) -> Any:
        return ctypes.cast(self._buf, _I64_PTR)

    @property
    def strides_ptr(self) -> Any:
        return ctypes.cast(ctypes.addressof(self._buf) + len(self) * _I64_SIZE, _I64_PTR)


class Borrowed(ShapeAndStrides):
    __slots__ = ("_shape_addr", "_strides_addr", "_len")

    def __init__(self, shape_addr: int, strides_addr: int | None, length: int) -> None:
        self._shape_addr = shape_addr
        self._strides_addr = strides_addr
        self._len = length

    def __len__(self) -> int:
        return self._len

    @property
    def shape(self) -> tuple[int, ...]:
        return _read(self._shape_addr, self._len)

    @property
    def strides(self) -> tuple[int, ...] | None:
        if self._strides_addr is None:
            return None
        return _read(self._strides_addr, self._len)

    @property
    def shape_ptr(self) -> Any:
        return ctypes.cast(self._shape_addr, _I64_PTR)

    @property
    def strides_ptr(self) -> Any:
        if self._strides_addr is None:
            return _I64_PTR()
        return ctypes.cast(self._strides_addr, _I64_PTR)

    def is_contiguous(self) -> bool:
        if self._strides_addr is None:
            return True
        return is_contiguous(self.shape, self.strides)
