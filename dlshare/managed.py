# filename: dlshare/managed.py

from __future__ import annotations

import ctypes
import logging
import weakref
from typing import Any

import numpy as np

from .capsule import LEGACY_TAGS, VERSIONED_TAGS, CapsuleTags, claim, peek, wrap
from .errors import InvalidPointer, TensorReleased, UnsupportedVersion
from .ffi import (
    DLPACK_MAJOR_VERSION,
    DLPACK_MINOR_VERSION,
    FLAG_IS_COPIED,
    FLAG_IS_SUBBYTE_TYPE_PADDED,
    FLAG_READ_ONLY,
    DLManagedTensor,
    DLManagedTensorVersioned,
    DLTensor,
    address_of,
)
from .manager_ctx import ManagerCtx, release_triple
from .tensor import TensorView

logger = logging.getLogger(__name__)


def check_version(version: tuple[int, int]) -> None:
    """Reject triples whose major version is newer than the one we speak."""
    if int(version[0]) > DLPACK_MAJOR_VERSION:
        raise UnsupportedVersion(
            (int(version[0]), int(version[1])),
            (DLPACK_MAJOR_VERSION, DLPACK_MINOR_VERSION),
        )


def _finalize(addr: int, struct_type: type) -> None:
    logger.debug("releasing dropped %s 0x%x", struct_type.__name__, addr)
    release_triple(addr, struct_type)


class _HostView:
    """Base object of arrays returned by `ManagedTensor.numpy()`."""

    __slots__ = ("owner", "__array_interface__", "__weakref__")

    def __init__(self, owner: ManagedTensor, interface: dict[str, Any]) -> None:
        self.owner = owner
        self.__array_interface__ = interface


class ManagedTensor(TensorView):
    """Single owner of a `DLManagedTensor` triple.

    The triple's deleter runs exactly once: on `release()`, on leaving a
    `with` block, or when the handle is garbage-collected. `into_inner()` and
    `to_capsule()` hand ownership on without releasing. Handles cannot be
    copied or pickled, because a copy would release the same triple twice.
    """

    _struct_type: type = DLManagedTensor
    _tags: CapsuleTags = LEGACY_TAGS

    def __init__(self, ptr: Any) -> None:
        addr = address_of(ptr)
        if addr == 0:
            raise InvalidPointer(f"{type(self).__name__} requires a non-NULL triple pointer")
        self._addr: int | None = addr
        self._views: weakref.WeakSet[_HostView] = weakref.WeakSet()
        self._finalizer = weakref.finalize(self, _finalize, addr, self._struct_type)

    @classmethod
    def from_ctx(cls, ctx: ManagerCtx) -> ManagedTensor:
        return cls(ctx.into_dlpack())

    @classmethod
    def from_capsule(cls, capsule: Any) -> ManagedTensor:
        """Claim a `dltensor` capsule; the capsule's destructor becomes a no-op."""
        return cls(claim(capsule, cls._tags))

    def _managed(self) -> Any:
        if self._addr is None:
            raise TensorReleased(f"{type(self).__name__} has been released")
        return self._struct_type.from_address(self._addr)

    def _dl_tensor(self) -> DLTensor | None:
        if self._addr is None:
            return None
        return self._managed().dl_tensor

    @property
    def is_released(self) -> bool:
        return self._addr is None

    @property
    def read_only(self) -> bool:
        return False

    def as_ptr(self) -> Any:
        if self._addr is None:
            raise TensorReleased(f"{type(self).__name__} has been released")
        return ctypes.cast(self._addr, ctypes.POINTER(self._struct_type))

    @property
    def exported_views(self) -> int:
        """Number of live arrays handed out by `numpy()`."""
        return len(self._views)

    def _check_no_views(self, action: str) -> None:
        n = len(self._views)
        if n:
            raise BufferError(
                f"cannot {action} {type(self).__name__}: {n} numpy view(s) still reference its memory"
            )

    def into_inner(self) -> int:
        """Give up ownership and return the triple address; nothing is released."""
        addr = self._addr
        if addr is None:
            raise TensorReleased(f"{type(self).__name__} has been released")
        self._check_no_views("hand off")
        self._addr = None
        self._finalizer.detach()
        return addr

    def release(self) -> None:
        """Run the triple's deleter now. Later calls are no-ops.

        Raises `BufferError` while arrays from `numpy()` are alive; the handle
        then stays owned and is released once they are gone.
        """
        addr = self._addr
        if addr is None:
            return
        self._check_no_views("release")
        # Forget the triple before calling out, so no path can release it twice.
        self._addr = None
        self._finalizer.detach()
        logger.debug("releasing %s 0x%x", self._struct_type.__name__, addr)
        release_triple(addr, self._struct_type)

    def to_capsule(self) -> Any:
        """Move the triple into an active capsule."""
        addr = self.into_inner()
        try:
            return wrap(addr, self._tags)
        except BaseException:
            release_triple(addr, self._struct_type)
            raise

    def numpy(self) -> np.ndarray:
        """Zero-copy numpy view of host memory.

        The view (and any array derived from it) keeps this handle alive, and
        `release()` / hand-off refuse to run until every such array is gone.
        """
        device = self.device
        if not device.is_host:
            raise TypeError(f"cannot view device memory {device.as_tuple()} from numpy")
        dtype = self.dtype.to_numpy()
        strides = self.strides
        if strides is not None:
            strides = tuple(s * dtype.itemsize for s in strides)
        base = _HostView(
            self,
            {
                "version": 3,
                "shape": self.shape,
                "typestr": dtype.str,
                "data": (self.data_ptr + self.byte_offset, self.read_only),
                "strides": strides,
            },
        )
        self._views.add(base)
        return np.asarray(base)

    def __array__(self, dtype: Any | None = None, copy: bool | None = None) -> np.ndarray:
        arr = self.numpy()
        if dtype is not None:
            arr = arr.astype(dtype, copy=False)
        if copy:
            arr = arr.copy()
        return arr

    def __dlpack__(
        self,
        *,
        stream: Any | None = None,
        max_version: tuple[int, int] | None = None,
        dl_device: tuple[int, int] | None = None,
        copy: bool | None = None,
    ) -> Any:
        _ = stream
        _ = max_version
        if copy:
            raise BufferError("dlshare exports without copying; copy=True is not supported")
        if dl_device is not None and tuple(int(x) for x in dl_device) != self.__dlpack_device__():
            raise BufferError(f"cannot export to device {tuple(dl_device)} without a copy")
        return self.to_capsule()

    def __dlpack_device__(self) -> tuple[int, int]:
        return self.device.as_tuple()

    def __enter__(self) -> ManagedTensor:
        return self

    def __exit__(self, *exc: object) -> None:
        self.release()

    def __copy__(self) -> Any:
        raise TypeError(f"{type(self).__name__} is a single-owner handle and cannot be copied")

    def __deepcopy__(self, memo: Any) -> Any:
        raise TypeError(f"{type(self).__name__} is a single-owner handle and cannot be copied")

    def __reduce__(self) -> Any:
        raise TypeError(f"{type(self).__name__} cannot be pickled")

    def __repr__(self) -> str:
        if self._addr is None:
            return f"{type(self).__name__}(<released>)"
        return (
            f"{type(self).__name__}(shape={self.shape}, dtype={self.dtype}, "
            f"device={self.device.as_tuple()})"
        )


class ManagedTensorVersioned(ManagedTensor):
    """Single owner of a `DLManagedTensorVersioned` triple."""

    _struct_type = DLManagedTensorVersioned
    _tags = VERSIONED_TAGS

    @classmethod
    def from_ctx(cls, ctx: ManagerCtx) -> ManagedTensorVersioned:
        return cls(ctx.into_dlpack_versioned())

    @classmethod
    def from_capsule(cls, capsule: Any) -> ManagedTensorVersioned:
        # Check the version before claiming: on rejection the capsule stays
        # active and its producer still releases the triple.
        addr = peek(capsule, cls._tags)
        check_version(DLManagedTensorVersioned.from_address(addr).version.as_tuple())
        return cls(claim(capsule, cls._tags))

    @property
    def version(self) -> tuple[int, int]:
        return self._managed().version.as_tuple()

    @property
    def flags(self) -> int:
        return int(self._managed().flags)

    @property
    def read_only(self) -> bool:
        return bool(self.flags & FLAG_READ_ONLY)

    @property
    def is_copied(self) -> bool:
        """The producer made a copy for this export; writes are not seen by it."""
        return bool(self.flags & FLAG_IS_COPIED)

    @property
    def is_subbyte_type_padded(self) -> bool:
        return bool(self.flags & FLAG_IS_SUBBYTE_TYPE_PADDED)

    def __dlpack__(
        self,
        *,
        stream: Any | None = None,
        max_version: tuple[int, int] | None = None,
        dl_device: tuple[int, int] | None = None,
        copy: bool | None = None,
    ) -> Any:
        if max_version is None or int(max_version[0]) < DLPACK_MAJOR_VERSION:
            raise BufferError("consumer does not accept versioned DLPack capsules")
        return super().__dlpack__(
            stream=stream, max_version=max_version, dl_device=dl_device, copy=copy
        )
