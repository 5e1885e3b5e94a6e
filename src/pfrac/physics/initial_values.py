"""
Initial Values
==============

Initial phase field from straight-line defects.
"""

import numpy as np
from typing import Sequence, Tuple

Segment = Tuple[Tuple[float, float], Tuple[float, float]]


def distance_to_segment(points: np.ndarray, start: Sequence[float],
                        end: Sequence[float]) -> np.ndarray:
    """
    Euclidean distance of points to a line segment.

    Args:
        points: shape (n, 2)
        start, end: segment end points

    Returns:
        distances: shape (n,)
    """
    points = np.asarray(points, dtype=np.float64)
    a = np.asarray(start, dtype=np.float64)
    b = np.asarray(end, dtype=np.float64)
    ab = b - a
    length_sq = ab @ ab
    if length_sq == 0:
        return np.linalg.norm(points - a, axis=1)
    t = np.clip((points - a) @ ab / length_sq, 0.0, 1.0)
    closest = a + t[:, None] * ab
    return np.linalg.norm(points - closest, axis=1)


def defect_phase_field(nodes: np.ndarray, defects: Sequence[Segment],
                       width: float) -> np.ndarray:
    """
    Phase field that is 0 within `width` of any defect and 1 elsewhere.

    Args:
        nodes: node coordinates, shape (n_nodes, 2)
        defects: list of ((x0, y0), (x1, y1)) segments
        width: half-width of the initial crack band

    Returns:
        phi: nodal phase-field values, shape (n_nodes,)
    """
    if width < 0:
        raise ValueError(f"defect width must be non-negative, got {width}")

    phi = np.ones(len(nodes))
    for start, end in defects:
        phi[distance_to_segment(nodes, start, end) <= width] = 0.0
    return phi
