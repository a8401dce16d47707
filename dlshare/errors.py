from __future__ import annotations


class DLShareError(Exception):
    """Base class for every error raised by dlshare."""


class InvalidPointer(DLShareError, ValueError):
    pass


class ShapeStrideMismatch(DLShareError, ValueError):
    def __init__(self, shape_len: int, strides_len: int) -> None:
        super().__init__(
            f"shape and strides should have same length (got {shape_len} and {strides_len})"
        )
        self.shape_len = shape_len
        self.strides_len = strides_len


class CapsuleTagMismatch(DLShareError, ValueError):
    def __init__(self, expected: str, actual: str | None) -> None:
        if actual is None:
            detail = "capsule has no name"
        else:
            detail = f"capsule is named {actual!r}"
        super().__init__(f"expected a capsule named {expected!r}, but {detail}")
        self.expected = expected
        self.actual = actual


class UnsupportedVersion(DLShareError, BufferError):
    def __init__(self, version: tuple[int, int], supported: tuple[int, int]) -> None:
        super().__init__(
            f"DLPack version {version[0]}.{version[1]} is not supported "
            f"(max major version is {supported[0]})"
        )
        self.version = version
        self.supported = supported


class DoubleReleaseError(DLShareError, RuntimeError):
    pass


class ReleaseCallbackError(DLShareError, RuntimeError):
    pass


class AlreadyExported(DLShareError, RuntimeError):
    pass


class TensorReleased(DLShareError, RuntimeError):
    pass


class UnsupportedDType(DLShareError, TypeError):
    pass
