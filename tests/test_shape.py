from __future__ import annotations

import ctypes
import unittest

from dlshare import ShapeAndStrides, ShapeStrideMismatch, is_contiguous, row_major_strides
from dlshare.errors import InvalidPointer

_I64_SIZE = ctypes.sizeof(ctypes.c_int64)


def _addr(ptr: object) -> int:
    return int(ctypes.cast(ptr, ctypes.c_void_p).value or 0)


class TestRowMajor(unittest.TestCase):
    def test_row_major_strides(self) -> None:
        self.assertEqual(row_major_strides((1, 2, 3)), (6, 3, 1))
        self.assertEqual(row_major_strides((4,)), (1,))
        self.assertEqual(row_major_strides(()), ())

    def test_is_contiguous(self) -> None:
        self.assertTrue(is_contiguous((1, 2, 3), (6, 3, 1)))
        self.assertTrue(is_contiguous((1, 2, 3), None))
        self.assertFalse(is_contiguous((1, 2, 3), (1, 2, 3)))
        self.assertTrue(is_contiguous((), ()))

    def test_is_contiguous_length_mismatch(self) -> None:
        with self.assertRaises(ShapeStrideMismatch):
            is_contiguous((1, 2, 3), (3, 1))


class TestContiguous(unittest.TestCase):
    def test_strides_are_implicit(self) -> None:
        s = ShapeAndStrides.contiguous([2, 3, 4])
        self.assertEqual(len(s), 3)
        self.assertEqual(s.shape, (2, 3, 4))
        self.assertIsNone(s.strides)
        self.assertFalse(bool(s.strides_ptr))
        self.assertEqual(list(s.shape_ptr[:3]), [2, 3, 4])
        self.assertTrue(s.is_contiguous())

    def test_scalar(self) -> None:
        s = ShapeAndStrides.contiguous([])
        self.assertEqual(len(s), 0)
        self.assertTrue(s.is_empty())
        self.assertEqual(s.shape, ())
        self.assertTrue(s.is_contiguous())

    def test_contiguous_with_strides(self) -> None:
        s = ShapeAndStrides.contiguous_with_strides([1, 2, 3])
        self.assertEqual(s.shape, (1, 2, 3))
        self.assertEqual(s.strides, (6, 3, 1))
        self.assertTrue(s.is_contiguous())
        self.assertEqual(s, ShapeAndStrides.with_strides([1, 2, 3], [6, 3, 1]))


class TestWithStrides(unittest.TestCase):
    def test_shape_and_strides_are_disjoint_slices(self) -> None:
        for shape, strides in (
            ((), ()),
            ((7,), (2,)),
            ((2, 3, 4, 5), (60, 20, 5, 1)),
        ):
            with self.subTest(ndim=len(shape)):
                s = ShapeAndStrides.with_strides(shape, strides)
                self.assertEqual(len(s), len(shape))
                self.assertEqual(s.shape, shape)
                self.assertEqual(s.strides, strides)
                self.assertEqual(
                    _addr(s.strides_ptr) - _addr(s.shape_ptr), len(shape) * _I64_SIZE
                )
                n = len(shape)
                self.assertEqual(tuple(s.shape_ptr[:n]), shape)
                self.assertEqual(tuple(s.strides_ptr[:n]), strides)

    def test_not_row_major(self) -> None:
        s = ShapeAndStrides.with_strides([1, 2, 3], [1, 2, 3])
        self.assertFalse(s.is_contiguous())

    def test_length_mismatch(self) -> None:
        with self.assertRaises(ShapeStrideMismatch) as cm:
            ShapeAndStrides.with_strides([1, 2, 3], [1, 2])
        self.assertEqual(cm.exception.shape_len, 3)
        self.assertEqual(cm.exception.strides_len, 2)


class TestBorrowed(unittest.TestCase):
    def test_reads_caller_memory(self) -> None:
        shape = (ctypes.c_int64 * 3)(2, 3, 4)
        strides = (ctypes.c_int64 * 3)(1, 2, 6)
        s = ShapeAndStrides.borrowed(shape, strides)
        self.assertEqual(s.shape, (2, 3, 4))
        self.assertEqual(s.strides, (1, 2, 6))
        self.assertEqual(_addr(s.shape_ptr), ctypes.addressof(shape))
        self.assertEqual(_addr(s.strides_ptr), ctypes.addressof(strides))
        self.assertFalse(s.is_contiguous())

        shape[0] = 5
        self.assertEqual(s.shape, (5, 3, 4))

    def test_without_strides(self) -> None:
        shape = (ctypes.c_int64 * 2)(4, 5)
        s = ShapeAndStrides.borrowed(ctypes.addressof(shape), length=2)
        self.assertEqual(s.shape, (4, 5))
        self.assertIsNone(s.strides)
        self.assertFalse(bool(s.strides_ptr))
        self.assertTrue(s.is_contiguous())

    def test_validation(self) -> None:
        shape = (ctypes.c_int64 * 3)(1, 2, 3)
        with self.assertRaises(ShapeStrideMismatch):
            ShapeAndStrides.borrowed(shape, (ctypes.c_int64 * 2)(1, 1))
        with self.assertRaises(TypeError):
            ShapeAndStrides.borrowed((ctypes.c_int32 * 3)(1, 2, 3))
        with self.assertRaises(TypeError):
            ShapeAndStrides.borrowed(ctypes.addressof(shape))
        with self.assertRaises(InvalidPointer):
            ShapeAndStrides.borrowed(0, length=2)


if __name__ == "__main__":
    unittest.main()
