# filename: dlshare/manager_ctx.py

from __future__ import annotations

import ctypes
import logging
from typing import Any

from .errors import (
    AlreadyExported,
    DoubleReleaseError,
    ReleaseCallbackError,
    TensorReleased,
)
from .ffi import (
    DLPACK_MAJOR_VERSION,
    DLPACK_MINOR_VERSION,
    FLAG_READ_ONLY,
    DLManagedTensor,
    DLManagedTensorDeleter,
    DLManagedTensorVersioned,
    DLManagedTensorVersionedDeleter,
    DLPackVersion,
    DLTensor,
    address_of,
    function_address,
)
from .shape import ShapeAndStrides
from .tensor import TensorView, ToTensor, as_tensor

logger = logging.getLogger(__name__)

# Exported contexts, keyed by the value written into `manager_ctx`. An entry
# keeps the context (and so the value and the triple) alive until the deleter
# removes it.
_PINNED: dict[int, ManagerCtx] = {}


def pinned_count() -> int:
    return len(_PINNED)


def _release(addr: int, struct_type: type) -> None:
    managed = struct_type.from_address(addr)
    key = int(managed.manager_ctx or 0)
    ctx = _PINNED.pop(key, None)
    if ctx is None:
        logger.warning("deleter called for a triple that is not pinned (0x%x)", addr)
        raise DoubleReleaseError(
            f"DLPack triple 0x{addr:x} was already released or was not exported by dlshare"
        )
    logger.debug("releasing exported context 0x%x", key)
    ctx._drop()


@DLManagedTensorDeleter
def _deleter(ptr: Any) -> None:
    _release(address_of(ptr), DLManagedTensor)


@DLManagedTensorVersionedDeleter
def _versioned_deleter(ptr: Any) -> None:
    _release(address_of(ptr), DLManagedTensorVersioned)


_OWN_DELETERS = frozenset((function_address(_deleter), function_address(_versioned_deleter)))


def release_triple(addr: int, struct_type: type) -> bool:
    """Invoke the deleter of the triple at `addr`, if it has one.

    Our own deleters are run as plain Python so that their errors propagate to
    the caller instead of being swallowed by the ctypes callback trampoline.
    """
    managed = struct_type.from_address(addr)
    deleter = managed.deleter
    if not deleter:
        return False
    if function_address(deleter) in _OWN_DELETERS:
        _release(addr, struct_type)
    else:
        deleter(ctypes.cast(addr, ctypes.POINTER(struct_type)))
    return True


class ManagerCtx(TensorView):
    """Expose a tensor-like value through a DLPack triple without copying it.

    The descriptor is computed once here. Its data, shape and strides
    pointers reference memory owned by the value (through its `ToTensor`
    adapter), which this context keeps alive. After `into_dlpack()` the context
    is pinned until the triple's deleter runs; the deleter then drops the
    value.
    """

    def __init__(self, value: Any) -> None:
        source = as_tensor(value)
        layout = source.shape_and_strides()

        dl = DLTensor()
        dl.data = int(source.data_ptr) or None
        dl.device = source.device.to_ffi()
        dl.ndim = len(layout)
        dl.dtype = source.dtype.to_ffi()
        dl.shape = layout.shape_ptr
        dl.strides = layout.strides_ptr
        dl.byte_offset = int(source.byte_offset)

        self._value: Any = value
        self._source: ToTensor | None = source
        self._layout = layout
        self._dl: DLTensor | None = dl
        self._managed: ctypes.Structure | None = None
        self._exported = False

    def _dl_tensor(self) -> DLTensor | None:
        return self._dl

    @property
    def value(self) -> Any:
        if self._dl is None:
            raise TensorReleased("ManagerCtx has been released")
        return self._value

    @property
    def is_exported(self) -> bool:
        return self._exported

    @property
    def is_released(self) -> bool:
        return self._dl is None

    def shape_and_strides(self) -> ShapeAndStrides:
        if self._layout is None:
            raise TensorReleased("ManagerCtx has been released")
        return self._layout

    def into_dlpack(self) -> int:
        """Materialize the `DLManagedTensor` triple and return its address."""
        return self._export(DLManagedTensor, _deleter)

    to_dlpack = into_dlpack

    def into_dlpack_versioned(self, read_only: bool | None = None) -> int:
        """Materialize a `DLManagedTensorVersioned` triple and return its address."""
        if read_only is None:
            read_only = bool(getattr(self._source, "read_only", False))
        return self._export(
            DLManagedTensorVersioned,
            _versioned_deleter,
            flags=FLAG_READ_ONLY if read_only else 0,
        )

    def _export(self, struct_type: type, deleter: Any, flags: int = 0) -> int:
        if self._dl is None:
            raise TensorReleased("ManagerCtx has been released")
        if self._exported:
            raise AlreadyExported("a ManagerCtx can be exported only once")

        managed = struct_type()
        managed.dl_tensor = self._dl
        managed.manager_ctx = id(self)
        managed.deleter = deleter
        if struct_type is DLManagedTensorVersioned:
            managed.version = DLPackVersion(DLPACK_MAJOR_VERSION, DLPACK_MINOR_VERSION)
            managed.flags = flags

        self._managed = managed
        self._exported = True
        _PINNED[id(self)] = self
        addr = ctypes.addressof(managed)
        logger.debug(
            "exported %s triple 0x%x (shape=%s, dtype=%s)",
            struct_type.__name__,
            addr,
            self.shape,
            self.dtype,
        )
        return addr

    def _drop(self) -> None:
        source = self._source
        self._dl = None
        self._managed = None
        self._layout = None
        self._source = None
        self._value = None
        close = getattr(source, "close", None)
        del source
        if callable(close):
            try:
                close()
            except Exception as e:
                raise ReleaseCallbackError(f"closing the exported value failed: {e}") from e

    def __dlpack__(
        self,
        *,
        stream: Any | None = None,
        max_version: tuple[int, int] | None = None,
        dl_device: tuple[int, int] | None = None,
        copy: bool | None = None,
    ) -> Any:
        _ = stream
        if copy:
            raise BufferError("dlshare exports without copying; copy=True is not supported")
        if dl_device is not None and tuple(int(x) for x in dl_device) != self.__dlpack_device__():
            raise BufferError(f"cannot export to device {tuple(dl_device)} without a copy")

        from .capsule import LEGACY_TAGS, VERSIONED_TAGS, wrap

        if max_version is not None and int(max_version[0]) >= DLPACK_MAJOR_VERSION:
            addr, tags = self.into_dlpack_versioned(), VERSIONED_TAGS
        else:
            addr, tags = self.into_dlpack(), LEGACY_TAGS
        try:
            return wrap(addr, tags)
        except BaseException:
            release_triple(addr, tags.struct_type)
            raise

    def __dlpack_device__(self) -> tuple[int, int]:
        return self.device.as_tuple()

    def __repr__(self) -> str:
        if self._dl is None:
            return "ManagerCtx(<released>)"
        return (
            f"ManagerCtx(shape={self.shape}, dtype={self.dtype}, "
            f"device={self.device.as_tuple()}, exported={self._exported})"
        )
