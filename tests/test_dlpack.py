# filename: tests/test_dlpack.py

from __future__ import annotations

import os
import unittest

import numpy as np

import dlshare
from dlshare.dlpack import requested_max_version


def _numpy_has_from_dlpack() -> bool:
    return hasattr(np, "from_dlpack")


class TestDlpackInterop(unittest.TestCase):
    @unittest.skipUnless(_numpy_has_from_dlpack(), "numpy has no from_dlpack")
    def test_numpy_consumes_manager_ctx(self) -> None:
        a = np.random.randn(1024).astype(np.float32)
        b = np.from_dlpack(dlshare.ManagerCtx(a))
        self.assertTrue(np.shares_memory(a, b))
        np.testing.assert_allclose(b, a)

        b[0] = 123.0
        self.assertEqual(a[0], 123.0)

    @unittest.skipUnless(_numpy_has_from_dlpack(), "numpy has no from_dlpack")
    def test_numpy_consumes_strided_and_float16(self) -> None:
        a = np.random.randn(8, 6).astype(np.float16)[:, ::3]
        b = np.from_dlpack(dlshare.ManagerCtx(a))
        self.assertEqual(b.dtype, np.float16)
        np.testing.assert_array_equal(b, a)

    @unittest.skipUnless(_numpy_has_from_dlpack(), "numpy has no from_dlpack")
    def test_numpy_consumes_managed_tensor(self) -> None:
        a = np.arange(10, dtype=np.int32)
        mt = dlshare.ManagedTensor.from_ctx(dlshare.ManagerCtx(a))
        b = np.from_dlpack(mt)
        self.assertTrue(mt.is_released)
        self.assertTrue(np.shares_memory(a, b))

    def test_numpy_as_producer(self) -> None:
        a = np.arange(12, dtype=np.float64).reshape(3, 4)
        mt = dlshare.from_dlpack(a)
        self.assertEqual(mt.shape, (3, 4))
        self.assertEqual(mt.dtype, dlshare.DataType.F64)
        self.assertEqual(mt.data_ptr + mt.byte_offset, a.ctypes.data)
        view = mt.numpy()
        self.assertTrue(np.shares_memory(view, a))
        np.testing.assert_array_equal(view, a)
        del view
        mt.release()

    def test_from_capsule(self) -> None:
        a = np.arange(6, dtype=np.uint8)
        cap = dlshare.to_dlpack(a)
        self.assertEqual(type(cap).__name__, "PyCapsule")
        with dlshare.from_dlpack(cap) as mt:
            np.testing.assert_array_equal(mt.numpy(), a)
        with self.assertRaises(dlshare.CapsuleTagMismatch):
            dlshare.from_dlpack(cap)

    def test_versioned_capsule(self) -> None:
        a = np.arange(6, dtype=np.int16)
        cap = dlshare.to_dlpack(a, versioned=True)
        mt = dlshare.from_dlpack(cap)
        self.assertIsInstance(mt, dlshare.ManagedTensorVersioned)
        self.assertEqual(mt.version, (1, 1))
        mt.release()

    def test_to_dlpack_moves_managed_tensor(self) -> None:
        mt = dlshare.ManagedTensor.from_ctx(dlshare.ManagerCtx(np.ones(3)))
        cap = dlshare.to_dlpack(mt)
        self.assertTrue(mt.is_released)
        with dlshare.from_dlpack(cap) as back:
            np.testing.assert_array_equal(back.numpy(), np.ones(3))

    def test_rejects_objects_without_protocol(self) -> None:
        with self.assertRaises(TypeError):
            dlshare.from_dlpack([1, 2, 3])

    def test_max_version_from_env(self) -> None:
        old = os.environ.get("DLSHARE_MAX_VERSION")
        try:
            os.environ.pop("DLSHARE_MAX_VERSION", None)
            self.assertEqual(requested_max_version(), (1, 1))
            mt = dlshare.from_dlpack(dlshare.ManagerCtx(np.ones(2)))
            self.assertIsInstance(mt, dlshare.ManagedTensorVersioned)
            mt.release()

            os.environ["DLSHARE_MAX_VERSION"] = "legacy"
            self.assertIsNone(requested_max_version())
            mt = dlshare.from_dlpack(dlshare.ManagerCtx(np.ones(2)))
            self.assertIs(type(mt), dlshare.ManagedTensor)
            mt.release()

            os.environ["DLSHARE_MAX_VERSION"] = "1.0"
            self.assertEqual(requested_max_version(), (1, 0))

            os.environ["DLSHARE_MAX_VERSION"] = "one"
            with self.assertRaises(ValueError):
                requested_max_version()
        finally:
            if old is None:
                os.environ.pop("DLSHARE_MAX_VERSION", None)
            else:
                os.environ["DLSHARE_MAX_VERSION"] = old


if __name__ == "__main__":
    unittest.main()
