"""Voxel lattice construction.

The lattice spans the rounded bounding box of the mesh with unit voxels.
Voxel ``(i, j, k)`` has its centre at ``origin + (i, j, k) + 0.5``.
Rows are enumerated ``i`` outer, ``j`` middle, ``k`` inner, so row
``r`` of :attr:`VoxelLattice.ijk` and :attr:`VoxelLattice.centers` describe the
same voxel and ``r == (i * y_len + j) * z_len + k``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np
import numpy.typing as npt

from ._math import round_half_away

_Array = npt.NDArray[np.floating]
_Shape3D = Tuple[int, int, int]


@dataclass(frozen=True)
class VoxelLattice:
    """Integer coordinates and homogeneous centres of every voxel.

    Both arrays are read-only; a lattice is built once per voxelization and
    shared between worker threads.
    """

    origin: np.ndarray     # (3,) int64, lower corner of voxel (0, 0, 0)
    shape: _Shape3D        # (x_len, y_len, z_len)
    ijk: np.ndarray        # (N, 3) intp
    centers: np.ndarray    # (N, 4) float64, last column 1.0

    def __len__(self) -> int:
        return len(self.ijk)

    def window(self, lo: _Array, hi: _Array) -> np.ndarray:
        """Flat row indices of voxels whose centres lie near ``[lo, hi]``.

        The box is padded by one voxel on every side, so the rows returned
        are a superset of the voxels a tetrahedron with that bounding box
        can contain.  Returns an empty array when the box misses the lattice.
        """
        lo = np.asarray(lo, dtype=np.float64) - self.origin - 0.5
        hi = np.asarray(hi, dtype=np.float64) - self.origin - 0.5
        start = np.maximum(np.floor(lo).astype(np.int64) - 1, 0)
        stop = np.minimum(np.ceil(hi).astype(np.int64) + 2, self.shape)

        if np.any(stop <= start):
            return np.empty(0, dtype=np.intp)

        i, j, k = np.meshgrid(
            np.arange(start[0], stop[0]),
            np.arange(start[1], stop[1]),
            np.arange(start[2], stop[2]),
            indexing="ij",
        )
        _, y_len, z_len = self.shape
        rows = (i * y_len + j) * z_len + k
        return rows.reshape(-1).astype(np.intp)


def grid_extent(lo: _Array, hi: _Array) -> Tuple[np.ndarray, _Shape3D]:
    """Round a bounding box to the integer lattice.

    Returns ``(origin, (x_len, y_len, z_len))`` where ``origin`` is the rounded
    minimum and each length is ``round(max) - round(min)``, clamped at 0.
    """
    lo_int = round_half_away(lo)
    hi_int = round_half_away(hi)
    lengths = np.maximum(hi_int - lo_int, 0)
    return lo_int, (int(lengths[0]), int(lengths[1]), int(lengths[2]))


def build_lattice(origin: npt.ArrayLike, shape: _Shape3D) -> VoxelLattice:
    """Enumerate every voxel of a ``shape`` grid anchored at *origin*.

    Parameters
    ----------
    origin:
        ``(3,)`` integer lower corner of the grid.
    shape:
        ``(x_len, y_len, z_len)``; any zero length gives an empty lattice.

    Returns
    -------
    VoxelLattice
        ``ijk`` of shape ``(N, 3)`` and ``centers`` of shape ``(N, 4)`` with
        ``N = x_len * y_len * z_len``.
    """
    origin = np.asarray(origin, dtype=np.int64).reshape(3)
    x_len, y_len, z_len = (max(int(n), 0) for n in shape)

    I, J, K = np.meshgrid(
        np.arange(x_len), np.arange(y_len), np.arange(z_len), indexing="ij"
    )
    ijk = np.stack([I, J, K], axis=-1).reshape(-1, 3).astype(np.intp)

    centers = np.ones((len(ijk), 4), dtype=np.float64)
    centers[:, :3] = ijk + (origin + 0.5)

    ijk.setflags(write=False)
    centers.setflags(write=False)
    origin.setflags(write=False)
    return VoxelLattice(origin=origin, shape=(x_len, y_len, z_len), ijk=ijk, centers=centers)
