"""Mesh ingestion: gmsh ``.msh`` files and STL tetrahedralisation.

Two entry points produce a :class:`~stl2vf.voxelizer.Mesh`:

:func:`load_msh`
    Pure-python reader for ASCII MSH 4.1 files (the gmsh default).  Only the
    ``$Nodes`` and ``$Elements`` sections are read; 4-node tetrahedra
    (element type 4) are kept and every other element type is ignored.
:func:`mesh_from_stl`
    Closes an STL surface into a volume with gmsh and generates a
    tetrahedral mesh.  Requires the ``gmsh`` Python package.

gmsh node tags are 1-based and need not be contiguous; both entry points map
them to zero-based row indices of ``Mesh.points``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

import numpy as np

from .errors import MeshFormatError, MeshGenerationError
from .voxelizer import Mesh

logger = logging.getLogger(__name__)

# gmsh element type code for the 4-node tetrahedron
_TET4 = 4


# ---------------------------------------------------------------------------
# MSH 4.1 reader
# ---------------------------------------------------------------------------

def _sections(text: str) -> Dict[str, List[str]]:
    """Split an MSH file into ``{"Nodes": [lines], ...}``."""
    sections: Dict[str, List[str]] = {}
    name: Optional[str] = None
    body: List[str] = []
    for raw in text.splitlines():
        line = raw.strip()
        if not line:
            continue
        if name is None:
            if line.startswith("$"):
                name = line[1:]
                body = []
            continue
        if line == f"$End{name}":
            sections[name] = body
            name = None
            continue
        body.append(line)
    if name is not None:
        raise MeshFormatError(f"section ${name} is not terminated")
    return sections


def _ints(line: str) -> List[int]:
    try:
        return [int(v) for v in line.split()]
    except ValueError:
        raise MeshFormatError(f"expected integers, got {line!r}") from None


def _check_format(sections: Dict[str, List[str]]) -> None:
    header = sections.get("MeshFormat")
    if not header:
        raise MeshFormatError("missing $MeshFormat section")
    parts = header[0].split()
    if len(parts) < 2:
        raise MeshFormatError(f"malformed $MeshFormat header {header[0]!r}")
    if not parts[0].startswith("4"):
        raise MeshFormatError(f"unsupported MSH version {parts[0]} (need 4.x)")
    if parts[1] != "0":
        raise MeshFormatError("binary MSH files are not supported")


def _read_nodes(lines: List[str]) -> tuple:
    """Return ``(tags, coords)`` from the body of a ``$Nodes`` section."""
    it: Iterator[str] = iter(lines)
    try:
        n_blocks, n_nodes = _ints(next(it))[:2]
        tags: List[int] = []
        coords: List[List[float]] = []
        for _ in range(n_blocks):
            _dim, _entity, _parametric, n = _ints(next(it))
            block_tags = [int(next(it)) for _ in range(n)]
            for _ in range(n):
                xyz = next(it).split()
                # parametric blocks append u (v, w) after x y z
                coords.append([float(xyz[0]), float(xyz[1]), float(xyz[2])])
            tags.extend(block_tags)
    except StopIteration:
        raise MeshFormatError("$Nodes section ended early") from None
    except (ValueError, IndexError) as exc:
        raise MeshFormatError(f"malformed $Nodes section: {exc}") from exc

    if len(tags) != n_nodes:
        raise MeshFormatError(f"$Nodes header announces {n_nodes} nodes, found {len(tags)}")
    return np.asarray(tags, dtype=np.int64), np.asarray(coords, dtype=np.float64).reshape(-1, 3)


def _read_tets(lines: List[str]) -> np.ndarray:
    """Return the node tags ``(T, 4)`` of every 4-node tetrahedron."""
    it: Iterator[str] = iter(lines)
    tets: List[List[int]] = []
    try:
        n_blocks = _ints(next(it))[0]
        for _ in range(n_blocks):
            _dim, _entity, element_type, n = _ints(next(it))
            rows = [_ints(next(it)) for _ in range(n)]
            if element_type != _TET4:
                continue
            for row in rows:
                if len(row) != 5:
                    raise MeshFormatError(f"tetrahedron record needs 5 fields, got {row}")
                tets.append(row[1:])
    except StopIteration:
        raise MeshFormatError("$Elements section ended early") from None
    except (ValueError, IndexError) as exc:
        raise MeshFormatError(f"malformed $Elements section: {exc}") from exc
    return np.asarray(tets, dtype=np.int64).reshape(-1, 4)


def _to_mesh(node_tags: np.ndarray, coords: np.ndarray, tet_tags: np.ndarray) -> Mesh:
    """Re-index tetrahedra from gmsh node tags to zero-based point rows."""
    order = np.argsort(node_tags, kind="stable")
    sorted_tags = node_tags[order]
    if tet_tags.size:
        if sorted_tags.size == 0:
            raise MeshFormatError("elements reference nodes but the mesh has none")
        pos = np.clip(np.searchsorted(sorted_tags, tet_tags), 0, len(sorted_tags) - 1)
        unknown = sorted_tags[pos] != tet_tags
        if unknown.any():
            raise MeshFormatError(
                f"element references unknown node tag {int(tet_tags[unknown][0])}"
            )
        tet_tags = order[pos]
    return Mesh(points=coords, tets=tet_tags.reshape(-1, 4))


def load_msh(path: Union[str, Path]) -> Mesh:
    """Read the tetrahedra of an ASCII MSH 4.1 file.

    Parameters
    ----------
    path:
        Path to the ``.msh`` file.

    Returns
    -------
    Mesh
        All nodes of the file as points, and every 4-node tetrahedron.

    Raises
    ------
    MeshFormatError
        If the file is binary, not version 4, or malformed.
    """
    path = Path(path)
    sections = _sections(path.read_text(encoding="ascii", errors="replace"))
    _check_format(sections)
    if "Nodes" not in sections or "Elements" not in sections:
        raise MeshFormatError(f"{path} has no $Nodes or $Elements section")

    tags, coords = _read_nodes(sections["Nodes"])
    tet_tags = _read_tets(sections["Elements"])
    mesh = _to_mesh(tags, coords, tet_tags)
    logger.info("Read %d points and %d tetrahedra from %s", mesh.n_points, mesh.n_tets, path)
    return mesh


# ---------------------------------------------------------------------------
# STL → tetrahedra via gmsh
# ---------------------------------------------------------------------------

def _mesh_from_model(gmsh) -> Mesh:
    """Extract nodes and 4-node tetrahedra from the current gmsh model."""
    node_tags, flat_coords, _ = gmsh.model.mesh.getNodes()
    _, flat_tet_tags = gmsh.model.mesh.getElementsByType(_TET4)
    coords = np.asarray(flat_coords, dtype=np.float64).reshape(-1, 3)
    tet_tags = np.asarray(flat_tet_tags, dtype=np.int64).reshape(-1, 4)
    return _to_mesh(np.asarray(node_tags, dtype=np.int64), coords, tet_tags)


def mesh_from_stl(
    path: Union[str, Path],
    *,
    msh_path: Optional[Union[str, Path]] = None,
) -> Mesh:
    """Tetrahedralise the solid bounded by a watertight STL surface.

    The surface is merged into gmsh, closed with a surface loop and a
    volume, and meshed in 3-D.

    Parameters
    ----------
    path:
        Path to the ``.stl`` file (binary or ASCII).
    msh_path:
        If given, the generated mesh is also written there (MSH 4.1 ASCII).

    Raises
    ------
    MeshGenerationError
        If gmsh fails or the mesh has no tetrahedra.
    """
    import gmsh  # local import keeps load_msh usable without the gmsh wheel

    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(path)

    gmsh.initialize()
    try:
        gmsh.option.setNumber("General.Terminal", 0)
        gmsh.model.add(path.stem)
        gmsh.merge(str(path))

        surfaces = gmsh.model.getEntities(2)
        if not surfaces:
            raise MeshGenerationError(f"{path} contains no surface")
        loop = gmsh.model.geo.addSurfaceLoop([tag for _, tag in surfaces])
        gmsh.model.geo.addVolume([loop])
        gmsh.model.geo.synchronize()
        gmsh.model.mesh.generate(3)

        if msh_path is not None:
            gmsh.option.setNumber("Mesh.MshFileVersion", 4.1)
            gmsh.option.setNumber("Mesh.Binary", 0)
            gmsh.write(str(msh_path))
            logger.info("Mesh written to %s", msh_path)

        mesh = _mesh_from_model(gmsh)
    except MeshGenerationError:
        raise
    except Exception as exc:
        raise MeshGenerationError(f"gmsh could not mesh {path}: {exc}") from exc
    finally:
        gmsh.finalize()

    if mesh.n_tets == 0:
        raise MeshGenerationError(f"gmsh produced no tetrahedra for {path}")
    logger.info("Generated %d points and %d tetrahedra from %s", mesh.n_points, mesh.n_tets, path)
    return mesh


def load_mesh(path: Union[str, Path], *, msh_path: Optional[Union[str, Path]] = None) -> Mesh:
    """Load a mesh from ``.msh`` directly or tetrahedralise an ``.stl``."""
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == ".msh":
        if msh_path is not None:
            logger.warning("%s is already a mesh; not writing %s", path, msh_path)
        return load_msh(path)
    if suffix == ".stl":
        return mesh_from_stl(path, msh_path=msh_path)
    raise ValueError(f"unsupported mesh file type {path.suffix!r} (expected .stl or .msh)")
