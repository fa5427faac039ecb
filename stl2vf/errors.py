"""Exceptions raised by stl2vf."""

from __future__ import annotations

from typing import Sequence


class VoxelizeError(Exception):
    """Base class for every error raised while building a voxel model."""


class EmptyMeshError(VoxelizeError):
    """The mesh has no points, so no bounding box exists."""


class MeshIndexError(VoxelizeError, IndexError):
    """A tetrahedron references a point index outside the mesh."""


class DegenerateTetrahedronError(VoxelizeError):
    """The vertex matrix of a tetrahedron is singular (zero volume).

    Attributes
    ----------
    index:
        Position of the tetrahedron in ``Mesh.tets`` (``None`` when the
        matrix was tested on its own).
    tet:
        The four point indices, when known.
    """

    def __init__(self, message: str, *, index: int | None = None,
                 tet: Sequence[int] | None = None) -> None:
        super().__init__(message)
        self.index = index
        self.tet = tuple(int(v) for v in tet) if tet is not None else None


class WorkerError(VoxelizeError):
    """A voxelization task failed with an unexpected exception."""

    def __init__(self, message: str, *, index: int | None = None) -> None:
        super().__init__(message)
        self.index = index


class MeshFormatError(VoxelizeError):
    """A mesh file could not be parsed."""


class MeshGenerationError(VoxelizeError):
    """gmsh failed to produce a tetrahedral mesh."""
