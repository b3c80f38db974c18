"""Small-feature reclassification: dashed bonds and tiny curves.

Decimation treats every traced blob as a little polygon.  Two kinds of small
blobs are really something else:

* a row of evenly spaced dots is a hashed (dashed) stereo bond, and
* a short, nearly straight sliver is one bond drawn too thin to trace well.

Both are rebuilt here as single bonds and their original curves deleted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import scipy.ndimage as ndi

from structflo.recon._geometry import distance, max_deviation, perpendicular, sort_along_extent
from structflo.recon.config import ReconConfig
from structflo.recon.pipeline.models import Curve, MolGraph
from structflo.recon.pipeline.sampler import BasePixelSampler

logger = logging.getLogger(__name__)

_EIGHT_CONNECTED = np.ones((3, 3), dtype=int)


@dataclass
class _Dash:
    x: float
    y: float
    area: float
    curve: int
    free: bool = True


def _blob(
    labels: np.ndarray, x: float, y: float
) -> Optional[tuple[float, float, float]]:
    """Centroid and pixel count of the ink component under (x, y), if any."""
    xi, yi = int(round(x)), int(round(y))
    if not (0 <= yi < labels.shape[0] and 0 <= xi < labels.shape[1]):
        return None
    lab = labels[yi, xi]
    if lab == 0:
        return None
    ys, xs = np.nonzero(labels == lab)
    return float(xs.mean()), float(ys.mean()), float(len(xs))


def _collect_dashes(
    graph: MolGraph,
    curves: Sequence[Curve],
    sampler: BasePixelSampler,
    avg: float,
    cfg: ReconConfig,
) -> list[_Dash]:
    max_area = max(cfg.max_dash_area, avg / 3)
    labels = None
    dashes = []
    for ci, curve in enumerate(curves):
        if not curve.solid or curve.area >= max_area:
            continue
        pts = [graph.clamp(x, y) for x, y, _ in curve.points()]
        if not pts:
            continue
        xs = [p[0] for p in pts]
        ys = [p[1] for p in pts]
        if distance(min(xs), min(ys), max(xs), max(ys)) >= avg / 3:
            continue
        cx, cy, area = float(np.mean(xs)), float(np.mean(ys)), curve.area
        if cfg.thick_dashes:
            if labels is None:
                labels, _ = ndi.label(sampler.mask(), structure=_EIGHT_CONNECTED)
            blob = _blob(labels, cx, cy)
            if blob is not None:
                cx, cy, area = blob
        dashes.append(_Dash(cx, cy, area, ci))
    return dashes


def _grow_chain(dashes: list[_Dash], start: int, gap: float, cfg: ReconConfig) -> list[int]:
    """Greedily extend a chain from *start* at whichever end has the nearest free dash."""
    chain = [start]
    dashes[start].free = False
    while True:
        best, best_d, at_front = None, gap, False
        first, last = dashes[chain[0]], dashes[chain[-1]]
        for j, d in enumerate(dashes):
            if not d.free:
                continue
            if len(chain) > 1 and abs(
                perpendicular(first.x, first.y, last.x, last.y, d.x, d.y)
            ) >= cfg.v_displacement:
                continue
            for front, end in ((True, first), (False, last)):
                dd = distance(end.x, end.y, d.x, d.y)
                if dd <= best_d:
                    best, best_d, at_front = j, dd, front
        if best is None:
            return chain
        dashes[best].free = False
        if at_front:
            chain.insert(0, best)
        else:
            chain.append(best)


def find_dashed_bonds(
    graph: MolGraph,
    curves: Sequence[Curve],
    sampler: BasePixelSampler,
    avg: float,
    cfg: ReconConfig,
) -> int:
    """Replace collinear runs of small dots by hashed bonds.

    Returns the number of hashed bonds created.
    """
    dashes = _collect_dashes(graph, curves, sampler, avg, cfg)
    found = 0
    for start in range(len(dashes)):
        if not dashes[start].free:
            continue
        chain = _grow_chain(dashes, start, cfg.dash_gap, cfg)
        if len(chain) < cfg.min_dashes:
            continue
        pts = [(dashes[k].x, dashes[k].y) for k in chain]
        order = [chain[k] for k in sort_along_extent(pts)]
        line = [(dashes[k].x, dashes[k].y) for k in order]
        if max_deviation(line) >= cfg.v_displacement:
            continue

        for k in order:
            graph.delete_curve(dashes[k].curve)
        head, tail = dashes[order[0]], dashes[order[-1]]
        if head.area > tail.area:
            head, tail = tail, head
        a = graph.add_atom(head.x, head.y, curve=head.curve)
        b = graph.add_atom(tail.x, tail.y, curve=head.curve)
        if a is None or b is None:
            continue
        if graph.add_bond(a, b, hashed=True, curve=head.curve) is None:
            continue
        _extend(graph, a, b, len(order))
        found += 1
    logger.debug("Found %d hashed bonds among %d dash candidates", found, len(dashes))
    return found


def _extend(graph: MolGraph, a: int, b: int, n: int) -> None:
    """Push both ends outward by one dash spacing."""
    (xa, ya), (xb, yb) = graph.xy(a), graph.xy(b)
    length = distance(xa, ya, xb, yb)
    if length <= 0 or n < 2:
        return
    step = length / (n - 1)
    ux, uy = (xb - xa) / length, (yb - ya) / length
    graph.move_atom(a, xa - ux * step, ya - uy * step)
    graph.move_atom(b, xb + ux * step, yb + uy * step)


def remove_small_curves(
    graph: MolGraph,
    curves: Sequence[Curve],
    avg: float,
    thickness: float,
    cfg: ReconConfig,
) -> int:
    """Collapse tiny, flat solid curves into one ``small`` bond each.

    A curve qualifies when its area is at most ``small_curve_max_area`` (twice
    the average bond length by default), it still owns more than two atoms,
    and either its vertices stay within *thickness* of the line between its
    extremes or its area is below ``small_curve_area``.
    """
    max_area = cfg.small_curve_max_area if cfg.small_curve_max_area is not None else 2 * avg
    replaced = 0
    for ci, curve in enumerate(curves):
        if not curve.solid or curve.area > max_area:
            continue
        members = graph.curve_atoms(ci)
        if len(members) <= 2:
            continue
        pts = [graph.xy(i) for i in members]
        line = [pts[k] for k in sort_along_extent(pts)]
        if max_deviation(line) >= thickness and curve.area >= cfg.small_curve_area:
            continue
        graph.delete_curve(ci)
        a = graph.add_atom(*line[0], curve=ci)
        b = graph.add_atom(*line[-1], curve=ci)
        if a is None or b is None:
            continue
        if graph.add_bond(a, b, small=True, curve=ci) is not None:
            replaced += 1
    logger.debug("Collapsed %d tiny curves", replaced)
    return replaced
