"""stl2vf — tetrahedral mesh to voxel occupancy grid.

Converts a solid, given as a tetrahedral mesh (or as a watertight STL surface
tetrahedralised with gmsh), into a dense unit-voxel grid marking which voxel
centres lie inside, and writes it as a ``.vf`` file.

Quick start
-----------
>>> import numpy as np
>>> from stl2vf import Mesh, voxelize
>>> mesh = Mesh(
...     points=np.array([[0, 0, 0], [2, 0, 0], [0, 2, 0], [0, 0, 2]], dtype=float),
...     tets=np.array([[0, 1, 2, 3]]),
... )
>>> model = voxelize(mesh)
>>> model.shape
(2, 2, 2)
>>> int(model.voxels[0, 0, 0]), int(model.voxels[1, 1, 1])
(1, 0)

Grid
----
The grid spans the bounding box of the mesh points, rounded to integers
(ties away from zero).  Voxel ``(i, j, k)`` is centred at
``origin + (i + 0.5, j + 0.5, k + 0.5)``.  A voxel is occupied iff its centre
lies inside (or, within a 1e-11 tolerance, on the boundary of) at least one
tetrahedron.

Performance
-----------
Each tetrahedron is tested only against the voxels in its bounding box, on a
thread pool (``max_workers``).  numpy releases the GIL in the containment
kernel, so the work spreads across cores.
"""

from .errors import (
    DegenerateTetrahedronError,
    EmptyMeshError,
    MeshFormatError,
    MeshGenerationError,
    MeshIndexError,
    VoxelizeError,
    WorkerError,
)
from .voxelizer import Mesh, VoxelModel, voxelize
from .mesh import load_mesh, load_msh, mesh_from_stl
from .vf import format_vf, write_vf

__version__ = "0.1.0"

__all__ = [
    # Core
    "Mesh",
    "VoxelModel",
    "voxelize",

    # Mesh ingestion
    "load_mesh",
    "load_msh",
    "mesh_from_stl",

    # Output
    "format_vf",
    "write_vf",

    # Errors
    "VoxelizeError",
    "DegenerateTetrahedronError",
    "EmptyMeshError",
    "MeshIndexError",
    "MeshFormatError",
    "MeshGenerationError",
    "WorkerError",
]
