"""Internal geometry math for tetrahedral voxelization.

Symbols prefixed with an underscore are private; the public entry point is
:func:`stl2vf.voxelize`.

Algorithms
----------
Bounding box — per-axis min/max over all points.  Rounded to integers with
    round-half-away-from-zero so that min and max use the same rule.

Containment — homogeneous vertex-matrix inversion.
    The rows of the 4×4 matrix ``M`` are ``[x, y, z, 1]`` for the four
    vertices.  Row *v* of ``inv(M).T`` is the affine functional that is 1 at
    vertex *v* and 0 at the other three, i.e. the barycentric coordinate of
    vertex *v*.  A point is inside iff all four values lie in ``[0, 1]``
    (with :data:`stl2vf.config.TOLERANCE` slack).  The four values are not
    also checked to sum to one.

Complexity: O(N) per tetrahedron where N = number of tested voxel centres.
"""

from __future__ import annotations

from typing import Sequence, Tuple

import numpy as np
import numpy.typing as npt

from .config import DEGENERATE_RTOL, TOLERANCE
from .errors import DegenerateTetrahedronError, EmptyMeshError

_Array = npt.NDArray[np.floating]


# ---------------------------------------------------------------------------
# Bounding box
# ---------------------------------------------------------------------------

def bounding_box(points: _Array) -> Tuple[np.ndarray, np.ndarray]:
    """Return ``(lo, hi)``, the per-axis minimum and maximum of *points*.

    Parameters
    ----------
    points:
        ``(P, 3)`` point coordinates.

    Raises
    ------
    EmptyMeshError
        If *points* is empty.
    """
    P = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    if len(P) == 0:
        raise EmptyMeshError("cannot compute the bounding box of an empty point set")

    return P.min(axis=0), P.max(axis=0)


def round_half_away(values: _Array) -> np.ndarray:
    """Round to the nearest integer, ties away from zero (``2.5 -> 3``, ``-2.5 -> -3``).

    ``np.round`` rounds ties to even, which would make the lattice origin
    depend on the parity of the bound.
    """
    v = np.asarray(values, dtype=np.float64)
    return (np.sign(v) * np.floor(np.abs(v) + 0.5)).astype(np.int64)


# ---------------------------------------------------------------------------
# Range test
# ---------------------------------------------------------------------------

def in_range(
    values: Sequence[float],
    low: float,
    high: float,
    tolerance: float = TOLERANCE,
) -> bool:
    """True iff every value satisfies ``low - tolerance <= v <= high + tolerance``."""
    v = np.asarray(values, dtype=np.float64)
    return bool(np.all((v >= low - tolerance) & (v <= high + tolerance)))


def _rows_in_range(
    values: _Array,
    low: float,
    high: float,
    tolerance: float = TOLERANCE,
) -> np.ndarray:
    """Row-wise :func:`in_range` for an ``(N, K)`` array; returns ``(N,)`` bool."""
    ok = (values >= low - tolerance) & (values <= high + tolerance)
    return ok.all(axis=-1)


# ---------------------------------------------------------------------------
# Tetrahedron containment
# ---------------------------------------------------------------------------

def _tet_matrix(points: _Array, tet: Sequence[int]) -> np.ndarray:
    """Homogeneous ``(4, 4)`` vertex matrix, one ``[x, y, z, 1]`` row per vertex."""
    M = np.ones((4, 4), dtype=np.float64)
    M[:, :3] = points[np.asarray(tet, dtype=np.intp)]
    return M


def _tet_inverse(M: np.ndarray) -> np.ndarray:
    """Return ``inv(M).T`` for a homogeneous vertex matrix.

    Raises
    ------
    DegenerateTetrahedronError
        If the four vertices are coplanar or coincide.  The determinant
        (six times the signed volume) is compared against the cube of the
        longest edge so the test does not depend on the mesh units.
    """
    verts = M[:, :3]
    edges = verts[:, None, :] - verts[None, :, :]
    scale = float(np.sqrt((edges * edges).sum(axis=-1).max()))
    det = float(np.linalg.det(M))

    if not np.isfinite(det) or abs(det) <= DEGENERATE_RTOL * scale ** 3:
        raise DegenerateTetrahedronError(
            f"tetrahedron is degenerate (det={det:.3e}, longest edge={scale:.3e})"
        )
    try:
        inverse = np.linalg.inv(M)
    except np.linalg.LinAlgError as exc:
        raise DegenerateTetrahedronError(f"vertex matrix is singular: {exc}") from exc
    return inverse.T


def _barycentric(inverse_t: np.ndarray, centers: _Array) -> np.ndarray:
    """Barycentric coordinates of each homogeneous centre.

    Parameters
    ----------
    inverse_t:
        ``(4, 4)`` transposed inverse from :func:`_tet_inverse`.
    centers:
        ``(N, 4)`` homogeneous points ``[x, y, z, 1]``.

    Returns
    -------
    numpy.ndarray
        ``(N, 4)``; column *v* is the dot product of row *v* of
        *inverse_t* with each centre.
    """
    return centers @ inverse_t.T


def _contained_voxels(
    inverse_t: np.ndarray,
    centers: _Array,
    ijk: np.ndarray,
) -> np.ndarray:
    """Lattice coordinates of the centres that fall inside the tetrahedron.

    Returns ``(K, 3)`` rows of *ijk* whose four barycentric coordinates all
    lie in ``[0, 1]`` under :data:`~stl2vf.config.TOLERANCE`.
    """
    if len(centers) == 0:
        return np.empty((0, 3), dtype=ijk.dtype)
    inside = _rows_in_range(_barycentric(inverse_t, centers), 0.0, 1.0)
    return ijk[inside]
