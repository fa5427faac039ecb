"""Tetrahedral mesh → voxel occupancy grid.

:func:`voxelize` builds the voxel lattice once, then runs one containment
test per tetrahedron on a thread pool.  numpy releases the GIL inside the
matrix kernels, so the tests run in parallel.  The lattice and the mesh
points are shared read-only; the occupancy grid is the only shared mutable
state.

Two merge strategies are available:

``"lock"`` (default)
    Each task collects its inside voxels locally, then takes the grid lock
    once and marks them.
``"reduce"``
    Tetrahedra are split into one chunk per worker; each chunk fills a
    private grid and the grids are OR-ed together after all workers join.

Marking is idempotent (0 → 1 only), so the result does not depend on the
order in which tetrahedra finish.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

import numpy as np

from . import config
from ._math import _contained_voxels, _tet_inverse, _tet_matrix, bounding_box
from .errors import (
    DegenerateTetrahedronError,
    MeshIndexError,
    VoxelizeError,
    WorkerError,
)
from .grid import VoxelLattice, build_lattice, grid_extent

logger = logging.getLogger(__name__)

_POLICIES = ("raise", "skip")
_MERGES = ("lock", "reduce")


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

def _frozen(array: np.ndarray) -> np.ndarray:
    """Read-only view of *array*; the flag cannot be set back on the view."""
    array.setflags(write=False)
    view = array.view()
    view.setflags(write=False)
    return view


def _as_tet_array(tets) -> np.ndarray:
    """Copy *tets* to ``(T, 4)`` int64, rejecting anything that is not exact indices."""
    raw = np.asarray(tets)
    if raw.size == 0:
        return np.empty((0, 4), dtype=np.int64)
    if raw.ndim != 2 or raw.shape[1] != 4:
        raise ValueError(f"tets must have shape (T, 4), got {raw.shape}")
    if np.issubdtype(raw.dtype, np.integer):
        return raw.astype(np.int64)
    if np.issubdtype(raw.dtype, np.floating):
        if np.all(np.isfinite(raw)) and np.all(raw == np.round(raw)):
            return raw.astype(np.int64)
        raise ValueError("tets must hold whole-number indices")
    raise ValueError(f"tets must hold integer indices, got dtype {raw.dtype}")


@dataclass(frozen=True)
class Mesh:
    """A tetrahedral mesh.

    Attributes
    ----------
    points:
        ``(P, 3)`` float64 vertex coordinates.
    tets:
        ``(T, 4)`` zero-based indices into *points*.

    Raises
    ------
    ValueError
        If either array has the wrong shape or *tets* holds non-integral
        values.  Nothing is reshaped or rounded.
    """

    points: np.ndarray
    tets: np.ndarray

    def __post_init__(self) -> None:
        points = np.array(self.points, dtype=np.float64)
        if points.size == 0:
            points = points.reshape(0, 3)
        elif points.ndim != 2 or points.shape[1] != 3:
            raise ValueError(f"points must have shape (P, 3), got {points.shape}")
        tets = _as_tet_array(self.tets)
        object.__setattr__(self, "points", _frozen(points))
        object.__setattr__(self, "tets", _frozen(tets))

    @property
    def n_points(self) -> int:
        return len(self.points)

    @property
    def n_tets(self) -> int:
        return len(self.tets)


@dataclass(frozen=True)
class VoxelModel:
    """Finalized occupancy grid.

    ``voxels[x, y, z]`` is 1 where the voxel centre lies inside the solid,
    0 elsewhere.  The array is read-only.
    """

    voxels: np.ndarray
    x_len: int
    y_len: int
    z_len: int
    origin: Tuple[int, int, int] = (0, 0, 0)
    skipped: Tuple[int, ...] = field(default_factory=tuple)

    @property
    def shape(self) -> Tuple[int, int, int]:
        return (self.x_len, self.y_len, self.z_len)

    @property
    def n_occupied(self) -> int:
        return int(np.count_nonzero(self.voxels))


# ---------------------------------------------------------------------------
# Per-tetrahedron task
# ---------------------------------------------------------------------------

def _tet_voxels(points: np.ndarray, tet: np.ndarray, lattice: VoxelLattice) -> np.ndarray:
    """Lattice coordinates ``(K, 3)`` of the voxels inside one tetrahedron."""
    M = _tet_matrix(points, tet)
    inverse_t = _tet_inverse(M)
    rows = lattice.window(M[:, :3].min(axis=0), M[:, :3].max(axis=0))
    return _contained_voxels(inverse_t, lattice.centers[rows], lattice.ijk[rows])


def _run_tet(
    index: int,
    points: np.ndarray,
    tet: np.ndarray,
    lattice: VoxelLattice,
) -> np.ndarray:
    try:
        return _tet_voxels(points, tet, lattice)
    except DegenerateTetrahedronError as exc:
        raise DegenerateTetrahedronError(
            f"tetrahedron {index} {tuple(int(v) for v in tet)}: {exc}",
            index=index, tet=tet,
        ) from exc
    except VoxelizeError:
        raise
    except Exception as exc:
        raise WorkerError(
            f"voxelization of tetrahedron {index} failed: {exc!r}", index=index
        ) from exc


def _mark(grid: np.ndarray, ijk: np.ndarray) -> None:
    if len(ijk):
        grid[ijk[:, 0], ijk[:, 1], ijk[:, 2]] = 1


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------

class _Scheduler:
    """Runs the per-tetrahedron tasks and applies the degenerate policy."""

    def __init__(self, mesh: Mesh, lattice: VoxelLattice, *,
                 on_degenerate: str, max_workers: int) -> None:
        self.mesh = mesh
        self.lattice = lattice
        self.on_degenerate = on_degenerate
        self.max_workers = max_workers
        self.grid = np.zeros(lattice.shape, dtype=np.uint8)
        self.skipped: List[int] = []
        self._lock = threading.Lock()

    def _handle_degenerate(self, exc: DegenerateTetrahedronError) -> None:
        if self.on_degenerate == "raise":
            raise exc
        logger.warning("Skipping %s", exc)
        with self._lock:
            self.skipped.append(exc.index)

    def _locked_task(self, index: int) -> None:
        points, tets = self.mesh.points, self.mesh.tets
        try:
            ijk = _run_tet(index, points, tets[index], self.lattice)
        except DegenerateTetrahedronError as exc:
            self._handle_degenerate(exc)
            return
        with self._lock:
            _mark(self.grid, ijk)

    def _chunk_task(self, indices: np.ndarray) -> np.ndarray:
        points, tets = self.mesh.points, self.mesh.tets
        private = np.zeros(self.lattice.shape, dtype=np.uint8)
        for index in indices:
            index = int(index)
            try:
                ijk = _run_tet(index, points, tets[index], self.lattice)
            except DegenerateTetrahedronError as exc:
                self._handle_degenerate(exc)
                continue
            _mark(private, ijk)
        return private

    def _drain(self, futures: List[Future], on_result: Callable[[object], None]) -> None:
        """Wait for every future; on the first failure cancel the ones not yet started."""
        error: Optional[BaseException] = None
        for future in futures:
            if error is not None:
                future.cancel()
                continue
            try:
                on_result(future.result())
            except VoxelizeError as exc:
                error = exc
            except Exception as exc:
                error = WorkerError(f"voxelization task failed: {exc!r}")
                error.__cause__ = exc
        if error is not None:
            raise error

    def run_locked(self) -> None:
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(self._locked_task, i) for i in range(self.mesh.n_tets)]
            self._drain(futures, lambda _: None)

    def run_reduce(self) -> None:
        n_chunks = max(1, min(self.max_workers, self.mesh.n_tets))
        chunks = np.array_split(np.arange(self.mesh.n_tets), n_chunks)

        # Runs on the calling thread as results arrive, so no lock is needed.
        def _merge(private: object) -> None:
            np.bitwise_or(self.grid, private, out=self.grid)

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(self._chunk_task, c) for c in chunks if len(c)]
            self._drain(futures, _merge)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def _check_indices(mesh: Mesh) -> None:
    if mesh.n_tets == 0:
        return
    bad = (mesh.tets < 0) | (mesh.tets >= mesh.n_points)
    if bad.any():
        rows = np.flatnonzero(bad.any(axis=1))
        first = int(rows[0])
        raise MeshIndexError(
            f"{len(rows)} tetrahedra reference points outside [0, {mesh.n_points}); "
            f"first is tetrahedron {first} {tuple(int(v) for v in mesh.tets[first])}"
        )


def voxelize(
    mesh: Mesh,
    *,
    on_degenerate: str = "raise",
    max_workers: Optional[int] = None,
    merge: str = "lock",
) -> VoxelModel:
    """Compute the voxel occupancy grid of a tetrahedral mesh.

    Parameters
    ----------
    mesh:
        Points and zero-based tetrahedron indices.
    on_degenerate:
        ``"raise"`` aborts with :class:`~stl2vf.errors.DegenerateTetrahedronError`
        on the first zero-volume tetrahedron.  ``"skip"`` leaves it out, logs a
        warning and lists its index in :attr:`VoxelModel.skipped`.
    max_workers:
        Thread pool size.  Defaults to :data:`stl2vf.config.MAX_WORKERS`.
    merge:
        ``"lock"`` or ``"reduce"``; see the module docstring.  Both give the
        same grid.

    Returns
    -------
    VoxelModel
        Grid of shape ``(x_len, y_len, z_len)`` spanning the rounded bounding
        box of ``mesh.points``.

    Raises
    ------
    EmptyMeshError
        The mesh has no points.
    MeshIndexError
        A tetrahedron index is outside ``[0, n_points)``.
    DegenerateTetrahedronError
        A tetrahedron has zero volume and ``on_degenerate="raise"``.
    WorkerError
        A task failed unexpectedly.
    """
    if on_degenerate not in _POLICIES:
        raise ValueError(f"on_degenerate must be one of {_POLICIES}, got {on_degenerate!r}")
    if merge not in _MERGES:
        raise ValueError(f"merge must be one of {_MERGES}, got {merge!r}")
    if max_workers is None:
        max_workers = config.MAX_WORKERS
    if max_workers < 1:
        raise ValueError(f"max_workers must be >= 1, got {max_workers}")

    lo, hi = bounding_box(mesh.points)
    _check_indices(mesh)

    origin, shape = grid_extent(lo, hi)
    lattice = build_lattice(origin, shape)
    logger.debug("Lattice %s at origin %s: %d voxels", shape, tuple(origin), len(lattice))

    scheduler = _Scheduler(mesh, lattice, on_degenerate=on_degenerate, max_workers=max_workers)
    if merge == "lock":
        scheduler.run_locked()
    else:
        scheduler.run_reduce()

    grid = _frozen(scheduler.grid)
    skipped = tuple(sorted(scheduler.skipped))
    if skipped:
        logger.warning("%d of %d tetrahedra skipped as degenerate", len(skipped), mesh.n_tets)
    logger.info(
        "Voxelized %d tetrahedra into %dx%dx%d grid, %d voxels occupied",
        mesh.n_tets, *shape, int(np.count_nonzero(grid)),
    )
    return VoxelModel(
        voxels=grid,
        x_len=shape[0],
        y_len=shape[1],
        z_len=shape[2],
        origin=(int(origin[0]), int(origin[1]), int(origin[2])),
        skipped=skipped,
    )
