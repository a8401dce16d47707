# filename: dlshare/dlpack.py

from __future__ import annotations

import logging
import os
from typing import Any

from .capsule import CapsuleState, capsule_name, is_capsule, lookup
from .errors import CapsuleTagMismatch
from .ffi import DLPACK_MAJOR_VERSION, DLPACK_MINOR_VERSION
from .managed import ManagedTensor, ManagedTensorVersioned
from .manager_ctx import ManagerCtx

logger = logging.getLogger(__name__)


def requested_max_version() -> tuple[int, int] | None:
    """`max_version` to request from producers (`DLSHARE_MAX_VERSION`).

    `None` means legacy capsules only.
    """
    raw = os.environ.get("DLSHARE_MAX_VERSION", "").strip().lower()
    if not raw:
        return (DLPACK_MAJOR_VERSION, DLPACK_MINOR_VERSION)
    if raw in ("0", "legacy", "none"):
        return None
    parts = raw.split(".")
    try:
        major = int(parts[0])
        minor = int(parts[1]) if len(parts) > 1 else 0
    except ValueError:
        raise ValueError(
            f"invalid DLSHARE_MAX_VERSION: {raw!r} (expected 'major.minor' or 'legacy')"
        ) from None
    if len(parts) > 2 or major < 0 or minor < 0:
        raise ValueError(
            f"invalid DLSHARE_MAX_VERSION: {raw!r} (expected 'major.minor' or 'legacy')"
        )
    return (major, minor)


def from_dlpack(x: Any) -> ManagedTensor:
    """
    Take ownership of a DLPack tensor.

    Notes
    - `x` is a `dltensor` / `dltensor_versioned` capsule, or any object with
      `__dlpack__` (numpy, torch, `ManagerCtx`, ...). Nothing is copied.
    - Producers are asked for a versioned capsule first; those that reject
      the `max_version` keyword are asked again without it.
    - The result releases the producer's tensor when it is released or
      garbage-collected.
    """
    capsule = x
    if not is_capsule(capsule):
        dlpack_fn = getattr(capsule, "__dlpack__", None)
        if not callable(dlpack_fn):
            raise TypeError("object does not implement the DLPack protocol (__dlpack__)")
        max_version = requested_max_version()
        if max_version is None:
            capsule = dlpack_fn()
        else:
            try:
                capsule = dlpack_fn(max_version=max_version)
            except TypeError:
                logger.debug(
                    "%s.__dlpack__ rejected max_version; asking for a legacy capsule",
                    type(x).__name__,
                )
                capsule = dlpack_fn()

    name = capsule_name(capsule)
    found = lookup(name)
    if found is None or found[1] is not CapsuleState.ACTIVE:
        raise CapsuleTagMismatch(
            "dltensor", None if name is None else name.decode(errors="replace")
        )
    tags, _ = found
    if tags.versioned:
        return ManagedTensorVersioned.from_capsule(capsule)
    return ManagedTensor.from_capsule(capsule)


def to_dlpack(x: Any, *, versioned: bool = False) -> Any:
    """
    Export a value as a DLPack capsule.

    Notes
    - `x` is anything `ManagerCtx` accepts, a `ManagerCtx`, or a
      `ManagedTensor` (whose ownership moves into the capsule).
    - Consumers like `numpy.from_dlpack(...)` expect an object implementing the
      DLPack protocol, so prefer passing a `ManagerCtx` to them directly. The
      raw capsule suits `torch.utils.dlpack.from_dlpack(...)`.
    """
    if isinstance(x, ManagedTensor):
        return x.to_capsule()
    ctx = x if isinstance(x, ManagerCtx) else ManagerCtx(x)
    if versioned:
        return ctx.__dlpack__(max_version=(DLPACK_MAJOR_VERSION, DLPACK_MINOR_VERSION))
    return ctx.__dlpack__()
