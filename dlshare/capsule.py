# filename: dlshare/capsule.py

"""PyCapsule hand-off of DLPack triples.

A producer wraps the triple in a capsule named `dltensor` (or
`dltensor_versioned`). A consumer claims it by reading the pointer under that
name and renaming the capsule to `used_dltensor` (`used_dltensor_versioned`);
from then on the consumer owns the release. The capsule destructor releases
the triple only while the capsule is still active, so each triple is released
once whichever side ends up owning it.
"""

from __future__ import annotations

import ctypes
import importlib
import importlib.util
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .errors import CapsuleTagMismatch, InvalidPointer
from .ffi import DLManagedTensor, DLManagedTensorVersioned, address_of

logger = logging.getLogger(__name__)


class CapsuleState(Enum):
    ACTIVE = "active"
    CLAIMED = "claimed"


@dataclass(frozen=True, slots=True)
class CapsuleTags:
    active: bytes
    claimed: bytes
    struct_type: type

    @property
    def versioned(self) -> bool:
        return self.struct_type is DLManagedTensorVersioned


# The capsule keeps a `const char *` into these bytes objects; they live as
# long as the module does.
LEGACY_TAGS = CapsuleTags(b"dltensor", b"used_dltensor", DLManagedTensor)
VERSIONED_TAGS = CapsuleTags(
    b"dltensor_versioned", b"used_dltensor_versioned", DLManagedTensorVersioned
)

_BY_NAME: dict[bytes, tuple[CapsuleTags, CapsuleState]] = {
    LEGACY_TAGS.active: (LEGACY_TAGS, CapsuleState.ACTIVE),
    LEGACY_TAGS.claimed: (LEGACY_TAGS, CapsuleState.CLAIMED),
    VERSIONED_TAGS.active: (VERSIONED_TAGS, CapsuleState.ACTIVE),
    VERSIONED_TAGS.claimed: (VERSIONED_TAGS, CapsuleState.CLAIMED),
}

_api = ctypes.pythonapi

_PyCapsule_New = ctypes.PYFUNCTYPE(
    ctypes.py_object, ctypes.c_void_p, ctypes.c_char_p, ctypes.c_void_p
)(("PyCapsule_New", _api))
_PyCapsule_GetPointer = ctypes.PYFUNCTYPE(
    ctypes.c_void_p, ctypes.py_object, ctypes.c_char_p
)(("PyCapsule_GetPointer", _api))
_PyCapsule_GetName = ctypes.PYFUNCTYPE(ctypes.c_char_p, ctypes.py_object)(
    ("PyCapsule_GetName", _api)
)
_PyCapsule_SetName = ctypes.PYFUNCTYPE(ctypes.c_int, ctypes.py_object, ctypes.c_char_p)(
    ("PyCapsule_SetName", _api)
)


def load_capsule_ext() -> Any:
    """Import the native capsule destructor (`dlshare._capsule`)."""
    spec = importlib.util.find_spec("dlshare._capsule")
    if spec is None:
        raise RuntimeError(
            "capsule extension is not built. Reinstall with `pip install -e .` or run "
            "`python tools/build_capsule_ext.py` to build `dlshare._capsule`."
        )
    mod = importlib.import_module("dlshare._capsule")
    if not callable(getattr(mod, "destructor_address", None)):
        raise RuntimeError(
            "capsule extension `dlshare._capsule` is missing `destructor_address`. "
            "Rebuild it with `python tools/build_capsule_ext.py`."
        )
    return mod


# Runs with the GIL held while the capsule is deallocated, possibly with an
# exception in flight; it stashes and restores that exception around the
# deleter and reports deleter failures through `sys.unraisablehook`.
_DESTRUCTOR_ADDR: int = load_capsule_ext().destructor_address()


def lookup(name: bytes | None) -> tuple[CapsuleTags, CapsuleState] | None:
    """Map a capsule name to its tag family and hand-off state."""
    if name is None:
        return None
    return _BY_NAME.get(name)


def is_capsule(obj: Any) -> bool:
    return type(obj).__name__ == "PyCapsule"


def capsule_name(capsule: Any) -> bytes | None:
    if not is_capsule(capsule):
        raise TypeError(f"expected a PyCapsule, got {type(capsule)!r}")
    return _PyCapsule_GetName(capsule)


def capsule_state(capsule: Any, tags: CapsuleTags = LEGACY_TAGS) -> CapsuleState:
    """State of a capsule from the `tags` family; foreign capsules raise."""
    name = capsule_name(capsule)
    found = lookup(name)
    if found is None or found[0] is not tags:
        raise CapsuleTagMismatch(tags.active.decode(), _decode(name))
    return found[1]


def _decode(name: bytes | None) -> str | None:
    return None if name is None else name.decode(errors="replace")


def wrap(ptr: Any, tags: CapsuleTags = LEGACY_TAGS) -> Any:
    """Producer side: put a triple in an active capsule.

    The capsule owns the triple until a consumer claims it; if it is
    garbage-collected unclaimed, its destructor calls the triple's deleter.
    """
    addr = address_of(ptr)
    if addr == 0:
        raise InvalidPointer("cannot wrap a NULL DLPack triple in a capsule")
    capsule = _PyCapsule_New(addr, tags.active, _DESTRUCTOR_ADDR)
    logger.debug("wrapped triple 0x%x in %s capsule", addr, tags.active.decode())
    return capsule


def peek(capsule: Any, tags: CapsuleTags = LEGACY_TAGS) -> int:
    """Read the triple address of an active capsule without claiming it."""
    state = capsule_state(capsule, tags)
    if state is CapsuleState.CLAIMED:
        raise CapsuleTagMismatch(tags.active.decode(), tags.claimed.decode())
    addr = _PyCapsule_GetPointer(capsule, tags.active)
    if not addr:
        raise InvalidPointer("capsule holds a NULL DLPack triple")
    return int(addr)


def claim(capsule: Any, tags: CapsuleTags = LEGACY_TAGS) -> int:
    """Consumer side: take ownership of the triple in an active capsule.

    Returns the triple address; the caller must release it exactly once
    (usually by wrapping it in a `ManagedTensor`). Claimed and foreign
    capsules raise `CapsuleTagMismatch`.
    """
    addr = peek(capsule, tags)
    if _PyCapsule_SetName(capsule, tags.claimed) != 0:  # pragma: no cover
        raise RuntimeError("PyCapsule_SetName failed")
    logger.debug("claimed triple 0x%x from %s capsule", addr, tags.active.decode())
    return addr
