"""``.vf`` voxel file writer.

Layout::

    <coords>
    0,0,0,
    </coords>
    <materials>
    0.0,0.0,...,      one row per material, void first
    1.0,0.0,1.0,...,
    </materials>
    <size>
    x_len,y_len,z_len,
    </size>
    <voxels>
    v,v,...,;v,v,...,;     one line per x; z groups split by ";"; y inner
    </voxels>
    <components>
    0
    </components>
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterator, Union

from .config import VF_MATERIALS
from .voxelizer import VoxelModel

logger = logging.getLogger(__name__)


def _voxel_lines(model: VoxelModel) -> Iterator[str]:
    # (x, y, z) -> (x, z, y) so that y is the fastest-varying index
    grid = model.voxels.transpose(0, 2, 1)
    for x in range(model.x_len):
        yield "".join(
            "".join(f"{int(v)}," for v in grid[x, z]) + ";"
            for z in range(model.z_len)
        )


def _iter_vf(model: VoxelModel) -> Iterator[str]:
    yield "<coords>"
    yield "0,0,0,"
    yield "</coords>"

    yield "<materials>"
    for row in VF_MATERIALS:
        yield "".join(f"{value!r}," for value in row)
    yield "</materials>"

    yield "<size>"
    yield f"{model.x_len},{model.y_len},{model.z_len},"
    yield "</size>"

    yield "<voxels>"
    yield from _voxel_lines(model)
    yield "</voxels>"

    yield "<components>"
    yield "0"
    yield "</components>"


def format_vf(model: VoxelModel) -> str:
    """Render *model* as ``.vf`` text (newline-terminated)."""
    return "\n".join(_iter_vf(model)) + "\n"


def write_vf(model: VoxelModel, path: Union[str, Path]) -> None:
    """Write *model* to *path* (creates parent directories if needed)."""
    out_dir = os.path.dirname(os.fspath(path))
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    with open(path, "w", encoding="ascii", newline="\n") as fh:
        for line in _iter_vf(model):
            fh.write(line)
            fh.write("\n")
    logger.info("Wrote %dx%dx%d voxels to %s", model.x_len, model.y_len, model.z_len, path)
