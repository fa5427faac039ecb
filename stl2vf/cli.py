"""Command line: ``stl2vf INPUT OUTPUT``.

Usage::

    stl2vf part.stl part.vf                  # gmsh tetrahedralisation, then voxelize
    stl2vf part.msh part.vf --workers 4      # reuse an existing MSH 4.1 mesh
    stl2vf part.stl part.vf --keep-msh part.msh --on-degenerate skip
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from . import __version__, config
from .errors import VoxelizeError
from .logging_config import setup_logging
from .mesh import load_mesh
from .vf import write_vf
from .voxelizer import voxelize

logger = logging.getLogger(__name__)


def _positive_int(text: str) -> int:
    value = int(text)
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {value}")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stl2vf",
        description="Voxelize a solid (STL surface or MSH tetrahedral mesh) into a .vf file",
    )
    parser.add_argument("input", type=Path, help="Input .stl or .msh file")
    parser.add_argument("output", type=Path, help="Output .vf file")
    parser.add_argument(
        "--workers", type=_positive_int, default=None,
        help=f"Worker threads (default {config.MAX_WORKERS})",
    )
    parser.add_argument(
        "--on-degenerate", choices=("raise", "skip"), default="raise",
        help="Abort on a zero-volume tetrahedron, or skip it with a warning",
    )
    parser.add_argument(
        "--merge", choices=("lock", "reduce"), default="lock",
        help="Grid merge strategy (results are identical)",
    )
    parser.add_argument(
        "--keep-msh", type=Path, default=None, metavar="PATH",
        help="Also write the generated tetrahedral mesh (STL input only)",
    )
    parser.add_argument("--log-level", default=config.LOG_LEVEL, help="Logging level (default %(default)s)")
    parser.add_argument("--log-file", default=None, help="Also log to this file")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        setup_logging(args.log_level, args.log_file)
    except ValueError as exc:
        parser.error(str(exc))

    try:
        mesh = load_mesh(args.input, msh_path=args.keep_msh)
        logger.info("Mesh loaded")
        model = voxelize(
            mesh,
            on_degenerate=args.on_degenerate,
            max_workers=args.workers,
            merge=args.merge,
        )
        logger.info("Model voxelized")
        write_vf(model, args.output)
        logger.info("VF file written")
    except VoxelizeError as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        return 1
    except (OSError, ValueError) as exc:
        logger.error("%s", exc)
        return 1
    return 0
