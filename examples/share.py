# filename: examples/share.py

from __future__ import annotations

import argparse
import logging
import time

import numpy as np

import dlshare

try:
    import torch

    TORCH_AVAILABLE = True
except ImportError:
    TORCH_AVAILABLE = False


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="dlshare zero-copy exchange demo")
    parser.add_argument("--n", type=int, default=1 << 20, help="number of elements")
    parser.add_argument("--iters", type=int, default=1000, help="export/import round trips to time")
    parser.add_argument("--torch", action="store_true", help="also exchange with torch")
    parser.add_argument("--debug", action="store_true", help="log exports, claims and releases")
    args = parser.parse_args(argv)

    if args.debug:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

    n = int(args.n)
    iters = int(args.iters)
    if n <= 0 or iters <= 0:
        raise SystemExit("--n/--iters must be > 0")

    a = np.random.randn(n).astype(np.float32)

    # numpy consumes our producer.
    b = np.from_dlpack(dlshare.ManagerCtx(a))
    if not np.shares_memory(a, b):
        raise AssertionError("numpy made a copy")
    print(f"numpy <- dlshare: zero-copy OK (n={n})")

    # numpy produces, we consume.
    with dlshare.from_dlpack(a) as mt:
        print(f"dlshare <- numpy: {mt!r}")
        np.testing.assert_array_equal(mt.numpy(), a)

    t0 = time.perf_counter()
    for _ in range(iters):
        dlshare.from_dlpack(dlshare.to_dlpack(a)).release()
    t1 = time.perf_counter()
    print(f"capsule round trip: {(t1 - t0) * 1e6 / iters:.2f} us/iter (iters={iters})")

    if args.torch:
        if not TORCH_AVAILABLE:
            raise SystemExit("torch is not installed; please install torch for --torch")
        t = dlshare.to_torch(dlshare.ManagerCtx(a))
        if t.data_ptr() != a.ctypes.data:
            raise AssertionError("torch made a copy")
        print(f"torch <- dlshare: zero-copy OK ({t.dtype}, {tuple(t.shape)})")

        with dlshare.from_dlpack(torch.arange(8, dtype=torch.int64)) as mt:
            print(f"dlshare <- torch: {mt.numpy().tolist()}")


if __name__ == "__main__":
    main()
