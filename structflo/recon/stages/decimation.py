"""Curve decimation: turn traced paths into candidate atoms and bonds.

Each path contributes every candidate point as a (not yet existing) atom.  A
walk along the path then keeps only the points that matter for the drawing:
corners, points where the path turns away from the last kept point, and points
just past the farthest reach of a bulge.  Consecutive survivors are joined by
bonds.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from structflo.recon._geometry import distance, perpendicular
from structflo.recon.config import ReconConfig
from structflo.recon.pipeline.models import Curve, MolGraph

logger = logging.getLogger(__name__)


def _next(k: int, n: int) -> int:
    return k + 1 if k + 1 < n else 0


def _turns(pts: list[tuple[float, float]], k: int, last: int, cfg: ReconConfig) -> bool:
    """True if the path leaves the line last→k after point *k*."""
    n = len(pts)
    m = _next(k, n)
    while m != k and distance(*pts[m], *pts[k]) < cfg.v_displacement:
        m = _next(m, n)
    if m == k:
        return False
    x0, y0 = pts[k]
    x1, y1 = pts[last]
    return abs(perpendicular(x0, y0, x1, y1, *pts[m])) > cfg.dir_change


def _past_farthest(pts: list[tuple[float, float]], k: int, last: int) -> bool:
    """True if the point after *k* is closer to *last* than *k* is."""
    m = _next(k, len(pts))
    return distance(*pts[k], *pts[last]) > distance(*pts[m], *pts[last])


def decimate_curve(graph: MolGraph, curve_index: int, curve: Curve, cfg: ReconConfig) -> int:
    """Append the atoms and bonds of one curve to *graph*.

    Returns the number of surviving atoms.
    """
    idx = []
    for x, y, corner in curve.points():
        i = graph.add_atom(x, y, exists=False, corner=corner, curve=curve_index)
        if i is None:
            break
        idx.append(i)
    if not idx:
        return 0

    # Decide on the clamped coordinates that were actually stored.
    pts = [graph.xy(i) for i in idx]
    last = 0
    survivors = []
    for k in range(1, len(idx)):
        if graph.atoms[idx[k]].corner or _turns(pts, k, last, cfg) or _past_farthest(pts, k, last):
            graph.atoms[idx[k]].exists = True
            survivors.append(idx[k])
            last = k

    if len(survivors) == 2:
        graph.add_bond(survivors[0], survivors[1], curve=curve_index)
    elif len(survivors) > 2:
        for pos, a in enumerate(survivors):
            b = survivors[(pos + 1) % len(survivors)]
            if graph.add_bond(a, b, curve=curve_index) is None:
                break
    return len(survivors)


def decimate_curves(graph: MolGraph, curves: Sequence[Curve], cfg: ReconConfig) -> MolGraph:
    """Decimate every curve of the caller's curve table into *graph*."""
    kept = 0
    for ci, curve in enumerate(curves):
        kept += decimate_curve(graph, ci, curve, cfg)
    logger.debug("Decimated %d curves into %d atoms", len(curves), kept)
    return graph


def average_bond_length(graph: MolGraph) -> float:
    """75th-percentile length of the existing, non-small bonds (0 when none)."""
    lengths = [graph.bond_length(i) for i, b in graph.live_bonds() if not b.small]
    if not lengths:
        return 0.0
    return float(np.percentile(lengths, 75, method="lower"))
