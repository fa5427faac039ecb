"""box_demo.py — Build a tetrahedral box in memory and write it as a .vf file.

No gmsh needed: the box is split into six tetrahedra around its main
diagonal, voxelized on the unit lattice and written next to this script.

Usage
-----
python examples/box_demo.py                 # 8 x 5 x 3 box -> box.vf
python examples/box_demo.py --size 20 10 4 --workers 4
"""

from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path

import numpy as np

from stl2vf import Mesh, format_vf, voxelize, write_vf

_HERE = Path(__file__).parent

# Six tetrahedra around the 0-6 diagonal of a hexahedron with corners
# numbered counter-clockwise, bottom face first.
_HEX_TETS = np.array([
    [0, 1, 2, 6], [0, 1, 5, 6], [0, 3, 2, 6],
    [0, 3, 7, 6], [0, 4, 5, 6], [0, 4, 7, 6],
])


def box_mesh(sx: float, sy: float, sz: float) -> Mesh:
    corners = np.array([
        [0, 0, 0], [1, 0, 0], [1, 1, 0], [0, 1, 0],
        [0, 0, 1], [1, 0, 1], [1, 1, 1], [0, 1, 1],
    ], dtype=np.float64)
    return Mesh(points=corners * np.array([sx, sy, sz]), tets=_HEX_TETS)


def main() -> None:
    parser = argparse.ArgumentParser(description="Box mesh → VF demo")
    parser.add_argument("--size", type=float, nargs=3, default=(8.0, 5.0, 3.0),
                        metavar=("X", "Y", "Z"), help="Box edge lengths")
    parser.add_argument("--workers", type=int, default=None, help="Thread pool size")
    parser.add_argument("--out", type=Path, default=_HERE / "box.vf", help="Output .vf path")
    args = parser.parse_args()

    mesh = box_mesh(*args.size)
    t0 = time.perf_counter()
    model = voxelize(mesh, max_workers=args.workers)
    dt = time.perf_counter() - t0
    print(f"{mesh.n_tets} tets → {model.x_len}x{model.y_len}x{model.z_len} grid, "
          f"{model.n_occupied} occupied ({dt:.3f} s)")

    write_vf(model, args.out)
    print(f"Saved → {args.out}")
    if model.voxels.size <= 64:
        sys.stdout.write(format_vf(model))


if __name__ == "__main__":
    main()
