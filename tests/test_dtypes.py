from __future__ import annotations

import unittest

import numpy as np

from dlshare import DataType, DataTypeCode, Device, DeviceType, UnsupportedDType


class TestDataType(unittest.TestCase):
    def test_from_numpy(self) -> None:
        self.assertEqual(DataType.from_numpy(np.float32), DataType.F32)
        self.assertEqual(DataType.from_numpy(np.float16), DataType.F16)
        self.assertEqual(DataType.from_numpy(np.int64), DataType.I64)
        self.assertEqual(DataType.from_numpy(np.uint8), DataType.U8)
        self.assertEqual(DataType.from_numpy(np.bool_), DataType.BOOL)
        self.assertEqual(DataType.from_numpy(np.complex64), DataType.C64)

    def test_to_numpy(self) -> None:
        for dt in (np.float16, np.float32, np.float64, np.int8, np.uint32, np.bool_, np.complex128):
            with self.subTest(dtype=dt):
                self.assertEqual(DataType.from_numpy(dt).to_numpy(), np.dtype(dt))

    def test_unsupported(self) -> None:
        with self.assertRaises(UnsupportedDType):
            DataType.from_numpy(np.dtype("U3"))
        with self.assertRaises(UnsupportedDType):
            DataType.from_numpy(np.dtype(">f4"))
        with self.assertRaises(UnsupportedDType):
            DataType.BF16.to_numpy()
        with self.assertRaises(UnsupportedDType):
            DataType(DataTypeCode.FLOAT, 32, lanes=4).to_numpy()

    def test_ffi_roundtrip_keeps_unknown_codes(self) -> None:
        dt = DataType(200, 8)
        self.assertEqual(DataType.from_ffi(dt.to_ffi()), dt)
        self.assertEqual(DataType.from_ffi(DataType.F32.to_ffi()).code, DataTypeCode.FLOAT)

    def test_itemsize_and_str(self) -> None:
        self.assertEqual(DataType.F64.itemsize, 8)
        self.assertEqual(DataType(DataTypeCode.FLOAT4_E2M1FN, 4).itemsize, 1)
        self.assertEqual(str(DataType.F32), "float32")
        self.assertEqual(str(DataType(DataTypeCode.FLOAT, 32, 4)), "float32x4")

    def test_rejects_out_of_range(self) -> None:
        with self.assertRaises(ValueError):
            DataType(DataTypeCode.FLOAT, 0)
        with self.assertRaises(ValueError):
            DataType(DataTypeCode.FLOAT, 32, lanes=0)


class TestDevice(unittest.TestCase):
    def test_cpu(self) -> None:
        self.assertEqual(Device.CPU.as_tuple(), (1, 0))
        self.assertTrue(Device.CPU.is_host)
        self.assertFalse(Device(DeviceType.CUDA, 1).is_host)

    def test_ffi(self) -> None:
        dev = Device(DeviceType.ROCM, 3)
        back = Device.from_ffi(dev.to_ffi())
        self.assertEqual(back, dev)
        self.assertIs(back.device_type, DeviceType.ROCM)


if __name__ == "__main__":
    unittest.main()
