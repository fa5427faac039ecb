"""Named constants for stl2vf.

Numeric tolerances live here so they can be tuned without touching the
algorithmic code.  A few values can be overridden from the environment:

``STL2VF_MAX_WORKERS``
    Default worker count for :func:`stl2vf.voxelize`.
``STL2VF_LOG_LEVEL``
    Default level used by the command line (``DEBUG``, ``INFO``, ...).
"""

from __future__ import annotations

import os


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        parsed = int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}") from None
    if parsed < 1:
        raise ValueError(f"{name} must be >= 1, got {parsed}")
    return parsed


# Slack on the [0, 1] barycentric range test; absorbs round-off on faces.
TOLERANCE: float = 1e-11

# |det| of the homogeneous vertex matrix below DEGENERATE_RTOL * L**3
# (L = longest edge) marks a tetrahedron as degenerate.
DEGENERATE_RTOL: float = 1e-12

MAX_WORKERS: int = _env_int("STL2VF_MAX_WORKERS", os.cpu_count() or 1)

LOG_LEVEL: str = os.environ.get("STL2VF_LOG_LEVEL", "INFO").upper()

# Materials table written to every .vf file: void, then solid.
VF_MATERIALS: tuple = (
    (0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0),
    (1.0, 0.0, 1.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0),
)
