# filename: tools/build_capsule_ext.py

from __future__ import annotations

import pathlib
import shlex
import shutil
import subprocess
import sys
import sysconfig


def main() -> int:
    root = pathlib.Path(__file__).resolve().parents[1]
    src = root / "dlshare" / "_capsule.c"
    if not src.exists():
        raise FileNotFoundError(src)

    ext_suffix = sysconfig.get_config_var("EXT_SUFFIX")
    if not ext_suffix:
        raise RuntimeError("sysconfig EXT_SUFFIX is empty")
    out = root / "dlshare" / f"_capsule{ext_suffix}"

    include = sysconfig.get_path("include")
    platinclude = sysconfig.get_path("platinclude")
    if not include:
        raise RuntimeError("sysconfig include path is empty")

    cc = shlex.split(sysconfig.get_config_var("CC") or "")
    if not cc or shutil.which(cc[0]) is None:
        found = shutil.which("cc") or shutil.which("clang") or shutil.which("gcc")
        if not found:
            raise RuntimeError("C compiler not found (tried sysconfig CC, cc, clang, gcc)")
        cc = [found]

    cmd = [*cc, "-O2", "-Wall", "-fPIC"]
    if sys.platform == "darwin":
        cmd += ["-bundle", "-undefined", "dynamic_lookup"]
    else:
        cmd += ["-shared"]
    cmd += ["-I", include]
    if platinclude and platinclude != include:
        cmd += ["-I", platinclude]
    cmd += ["-o", str(out), str(src)]

    print(" ".join(cmd))
    subprocess.check_call(cmd, cwd=root)
    print(f"built: {out}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
