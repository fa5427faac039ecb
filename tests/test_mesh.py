"""Tests for stl2vf.mesh.

The MSH reader is pure python and always tested.  STL tetrahedralisation
needs the gmsh wheel and is skipped without it.
"""
from __future__ import annotations

import logging

import numpy as np
import numpy.testing as npt
import pytest

from stl2vf import MeshFormatError, load_mesh, load_msh, voxelize


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_CUBE_POINTS = np.array([
    [0, 0, 0], [4, 0, 0], [4, 4, 0], [0, 4, 0],
    [0, 0, 4], [4, 0, 4], [4, 4, 4], [0, 4, 4],
], dtype=np.float64)

_CUBE_TETS = np.array([
    [0, 1, 2, 6], [0, 1, 5, 6], [0, 3, 2, 6],
    [0, 3, 7, 6], [0, 4, 5, 6], [0, 4, 7, 6],
])


def _msh_text(tags, points, tet_tags, tri_tags=None, blocks: int = 2) -> str:
    """ASCII MSH 4.1 with the nodes split into *blocks* entity blocks."""
    lines = ["$MeshFormat", "4.1 0 8", "$EndMeshFormat"]

    tags = list(tags)
    lines.append("$Nodes")
    lines.append(f"{blocks} {len(tags)} {min(tags)} {max(tags)}")
    for block_tags, block_pts in zip(np.array_split(tags, blocks), np.array_split(points, blocks)):
        lines.append(f"3 1 0 {len(block_tags)}")
        lines.extend(str(int(t)) for t in block_tags)
        lines.extend(f"{x:.17g} {y:.17g} {z:.17g}" for x, y, z in block_pts)
    lines.append("$EndNodes")

    element_blocks = []
    elem = 1
    if tri_tags is not None:
        rows = []
        for tri in tri_tags:
            rows.append(" ".join(str(int(v)) for v in [elem, *tri]))
            elem += 1
        element_blocks.append((2, 2, rows))
    rows = []
    for tet in tet_tags:
        rows.append(" ".join(str(int(v)) for v in [elem, *tet]))
        elem += 1
    element_blocks.append((3, 4, rows))

    lines.append("$Elements")
    lines.append(f"{len(element_blocks)} {elem - 1} 1 {elem - 1}")
    for dim, etype, rows in element_blocks:
        lines.append(f"{dim} 1 {etype} {len(rows)}")
        lines.extend(rows)
    lines.append("$EndElements")
    return "\n".join(lines) + "\n"


def _write_ascii_stl(triangles: np.ndarray) -> str:
    lines = ["solid test"]
    for tri in triangles:
        lines.append("  facet normal 0 0 0")
        lines.append("    outer loop")
        for v in tri:
            lines.append(f"      vertex {v[0]:.6g} {v[1]:.6g} {v[2]:.6g}")
        lines.append("    endloop")
        lines.append("  endfacet")
    lines.append("endsolid test")
    return "\n".join(lines)


def _box_triangles(size: float = 4.0) -> np.ndarray:
    v = _CUBE_POINTS / 4.0 * size
    faces = [
        (0, 2, 1), (0, 3, 2),   # -Z
        (4, 5, 6), (4, 6, 7),   # +Z
        (0, 4, 7), (0, 7, 3),   # -X
        (1, 2, 6), (1, 6, 5),   # +X
        (0, 1, 5), (0, 5, 4),   # -Y
        (3, 7, 6), (3, 6, 2),   # +Y
    ]
    return np.array([[v[i], v[j], v[k]] for i, j, k in faces])


# ---------------------------------------------------------------------------
# load_msh
# ---------------------------------------------------------------------------

class TestLoadMsh:
    def test_cube(self, tmp_path):
        path = tmp_path / "cube.msh"
        path.write_text(_msh_text(range(1, 9), _CUBE_POINTS, _CUBE_TETS + 1))
        mesh = load_msh(path)
        npt.assert_allclose(mesh.points, _CUBE_POINTS)
        npt.assert_array_equal(mesh.tets, _CUBE_TETS)

    def test_non_contiguous_tags(self, tmp_path):
        tags = np.array([10, 20, 30, 40, 50, 60, 70, 80])
        path = tmp_path / "sparse.msh"
        path.write_text(_msh_text(tags, _CUBE_POINTS, tags[_CUBE_TETS]))
        npt.assert_array_equal(load_msh(path).tets, _CUBE_TETS)

    def test_unsorted_tags(self, tmp_path):
        tags = np.array([8, 7, 6, 5, 4, 3, 2, 1])
        path = tmp_path / "reversed.msh"
        path.write_text(_msh_text(tags, _CUBE_POINTS, tags[_CUBE_TETS], blocks=1))
        mesh = load_msh(path)
        npt.assert_array_equal(mesh.tets, _CUBE_TETS)

    def test_ignores_triangles(self, tmp_path):
        path = tmp_path / "mixed.msh"
        path.write_text(_msh_text(range(1, 9), _CUBE_POINTS, _CUBE_TETS + 1,
                                  tri_tags=[[1, 2, 3], [1, 3, 4]]))
        assert load_msh(path).n_tets == 6

    def test_voxelizes(self, tmp_path):
        path = tmp_path / "cube.msh"
        path.write_text(_msh_text(range(1, 9), _CUBE_POINTS, _CUBE_TETS + 1))
        assert voxelize(load_msh(path)).n_occupied == 64

    def test_unknown_node_tag(self, tmp_path):
        path = tmp_path / "bad.msh"
        path.write_text(_msh_text(range(1, 9), _CUBE_POINTS, [[1, 2, 3, 99]]))
        with pytest.raises(MeshFormatError, match="99"):
            load_msh(path)

    def test_old_version(self, tmp_path):
        path = tmp_path / "old.msh"
        path.write_text(_msh_text(range(1, 9), _CUBE_POINTS, _CUBE_TETS + 1).replace("4.1 0 8", "2.2 0 8"))
        with pytest.raises(MeshFormatError, match="version"):
            load_msh(path)

    def test_binary(self, tmp_path):
        path = tmp_path / "bin.msh"
        path.write_text(_msh_text(range(1, 9), _CUBE_POINTS, _CUBE_TETS + 1).replace("4.1 0 8", "4.1 1 8"))
        with pytest.raises(MeshFormatError, match="binary"):
            load_msh(path)

    def test_truncated(self, tmp_path):
        text = _msh_text(range(1, 9), _CUBE_POINTS, _CUBE_TETS + 1)
        path = tmp_path / "cut.msh"
        path.write_text(text[: text.index("$EndElements")])
        with pytest.raises(MeshFormatError):
            load_msh(path)

    def test_short_element_block_header(self, tmp_path):
        text = _msh_text(range(1, 9), _CUBE_POINTS, _CUBE_TETS + 1)
        assert "\n3 1 4 6\n" in text
        path = tmp_path / "shortheader.msh"
        path.write_text(text.replace("\n3 1 4 6\n", "\n3 1 4\n"))
        with pytest.raises(MeshFormatError, match="Elements"):
            load_msh(path)

    def test_non_numeric_element_record(self, tmp_path):
        text = _msh_text(range(1, 9), _CUBE_POINTS, _CUBE_TETS + 1)
        path = tmp_path / "garbled.msh"
        path.write_text(text.replace("\n1 1 2 3 7\n", "\n1 1 two 3 7\n"))
        with pytest.raises(MeshFormatError):
            load_msh(path)

    def test_missing_elements(self, tmp_path):
        text = _msh_text(range(1, 9), _CUBE_POINTS, _CUBE_TETS + 1)
        path = tmp_path / "noelems.msh"
        path.write_text(text[: text.index("$Elements")])
        with pytest.raises(MeshFormatError):
            load_msh(path)


# ---------------------------------------------------------------------------
# load_mesh dispatch
# ---------------------------------------------------------------------------

class TestLoadMesh:
    def test_msh_suffix(self, tmp_path):
        path = tmp_path / "cube.MSH"
        path.write_text(_msh_text(range(1, 9), _CUBE_POINTS, _CUBE_TETS + 1))
        assert load_mesh(path).n_tets == 6

    def test_msh_path_ignored_for_msh_input(self, tmp_path, caplog):
        path = tmp_path / "cube.msh"
        path.write_text(_msh_text(range(1, 9), _CUBE_POINTS, _CUBE_TETS + 1))
        copy = tmp_path / "copy.msh"
        with caplog.at_level(logging.WARNING, logger="stl2vf"):
            assert load_mesh(path, msh_path=copy).n_tets == 6
        assert "not writing" in caplog.text
        assert not copy.exists()

    def test_unknown_suffix(self, tmp_path):
        with pytest.raises(ValueError):
            load_mesh(tmp_path / "cube.obj")


# ---------------------------------------------------------------------------
# mesh_from_stl (gmsh)
# ---------------------------------------------------------------------------

class TestMeshFromStl:
    def test_missing_file(self, tmp_path):
        pytest.importorskip("gmsh")
        from stl2vf import mesh_from_stl

        with pytest.raises(FileNotFoundError):
            mesh_from_stl(tmp_path / "nope.stl")

    def test_box(self, tmp_path):
        pytest.importorskip("gmsh")
        from stl2vf import mesh_from_stl

        stl = tmp_path / "box.stl"
        stl.write_text(_write_ascii_stl(_box_triangles(4.0)))
        msh = tmp_path / "box.msh"
        mesh = mesh_from_stl(stl, msh_path=msh)

        assert mesh.n_tets > 0
        lo, hi = mesh.points.min(axis=0), mesh.points.max(axis=0)
        npt.assert_allclose(lo, [0, 0, 0], atol=1e-6)
        npt.assert_allclose(hi, [4, 4, 4], atol=1e-6)
        assert msh.is_file()
        assert load_msh(msh).n_tets == mesh.n_tets

        model = voxelize(mesh)
        assert model.shape == (4, 4, 4)
        assert model.n_occupied == 64
