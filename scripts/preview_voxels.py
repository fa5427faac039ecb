"""Render the voxel occupancy of a mesh as a 3-D matplotlib figure.

Voxelizes an ``.stl`` (through gmsh) or ``.msh`` file and draws every
occupied voxel with ``Axes3D.voxels``.  Large grids get slow to draw; use
``--stride`` to thin them out.

Usage::

    python scripts/preview_voxels.py part.stl                 # saves part_voxels.png
    python scripts/preview_voxels.py part.msh --out view.png
    python scripts/preview_voxels.py part.stl --stride 2

Requirements: numpy, matplotlib (``pip install stl2vf[viz]``)
"""
from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

# Ensure the repo root (parent of scripts/) is importable regardless of cwd
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np

from stl2vf import VoxelModel, load_mesh, voxelize
from stl2vf.logging_config import setup_logging


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def render_model(model: VoxelModel, out_path: str, *, stride: int = 1, title: str = "") -> None:
    filled = np.asarray(model.voxels[::stride, ::stride, ::stride], dtype=bool)

    fig = plt.figure(figsize=(7, 7))
    ax = fig.add_subplot(111, projection="3d")
    if filled.any():
        ax.voxels(filled, facecolors="#4C72B0", edgecolor="#1f1f1f", linewidth=0.2)
    else:
        ax.text2D(0.5, 0.5, "no occupied voxels", ha="center", transform=ax.transAxes)

    x0, y0, z0 = model.origin
    ax.set_xlabel(f"x (voxels/{stride}, from {x0})")
    ax.set_ylabel(f"y (voxels/{stride}, from {y0})")
    ax.set_zlabel(f"z (voxels/{stride}, from {z0})")
    ax.set_box_aspect(tuple(max(n, 1) for n in filled.shape))
    ax.set_title(title or f"{model.x_len}x{model.y_len}x{model.z_len}, "
                          f"{model.n_occupied} occupied", fontsize=10)

    fig.tight_layout()
    fig.savefig(out_path, dpi=150)
    plt.close(fig)
    print(f"Saved → {out_path}")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main() -> None:
    parser = argparse.ArgumentParser(
        description="Voxelize a mesh and render the occupied voxels to a PNG."
    )
    parser.add_argument("mesh", type=Path, help="Input .stl or .msh file")
    parser.add_argument("--out", default=None, help="Output PNG path (default <mesh>_voxels.png)")
    parser.add_argument("--stride", type=int, default=1,
                        help="Draw every n-th voxel along each axis (default 1)")
    parser.add_argument("--workers", type=int, default=None, help="Thread pool size")
    args = parser.parse_args()

    setup_logging("INFO")
    model = voxelize(load_mesh(args.mesh), max_workers=args.workers)
    out = args.out or str(args.mesh.with_name(args.mesh.stem + "_voxels.png"))
    render_model(model, out, stride=max(args.stride, 1), title=args.mesh.name)


if __name__ == "__main__":
    main()
