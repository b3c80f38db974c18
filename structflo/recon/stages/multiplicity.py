"""Bond consolidation and multiplicity resolution.

After decimation a double bond is simply two nearly parallel bonds lying side
by side.  This module removes degenerate edges, merges the two traced sides of
a single stroke, learns how far apart the lines of a double bond are drawn in
this image, and finally folds parallel line pairs (and triples) into one bond
of higher order.
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from structflo.recon._geometry import along_from_a, along_from_b, distance
from structflo.recon.config import ReconConfig
from structflo.recon.pipeline.models import MolGraph
from structflo.recon.pipeline.sampler import BasePixelSampler

logger = logging.getLogger(__name__)

MAX_ORDER = 3


# ── Degenerate edges ─────────────────────────────────────────────────────────


def remove_zero_bonds(graph: MolGraph) -> int:
    """Drop self loops, bonds to missing atoms and duplicate atom pairs.

    Duplicates are dropped without touching the surviving bond's order.
    Returns the number of bonds removed.
    """
    seen = set()
    removed = 0
    for _, bond in graph.live_bonds():
        key = frozenset((bond.a, bond.b))
        if (
            bond.a == bond.b
            or not graph.atoms[bond.a].exists
            or not graph.atoms[bond.b].exists
            or key in seen
        ):
            bond.exists = False
            removed += 1
            continue
        seen.add(key)
    return removed


def collapse_doubleup_bonds(graph: MolGraph) -> int:
    """Merge bonds joining the same atom pair, bumping the survivor's order."""
    first: dict[frozenset, int] = {}
    merged = 0
    for i, bond in graph.live_bonds():
        if bond.a == bond.b:
            continue
        key = frozenset((bond.a, bond.b))
        if key not in first:
            first[key] = i
            continue
        keep = graph.bonds[first[key]]
        bond.exists = False
        keep.order = min(MAX_ORDER, keep.order + 1)
        keep.aromatic = keep.aromatic or bond.aromatic
        merged += 1
    return merged


# ── Stroke sides ─────────────────────────────────────────────────────────────


def _no_white_space(
    graph: MolGraph, sampler: BasePixelSampler, i: int, j: int, samples: int = 5
) -> bool:
    """True if the gap between bonds *i* and *j* is mostly ink.

    Short cross sections from points on *j* to their feet on *i* are walked
    pixel by pixel.
    """
    x0, y0, x1, y1 = graph.bond_coords(i)
    xa, ya, xb, yb = graph.bond_coords(j)
    length = distance(x0, y0, x1, y1)
    if length <= 0:
        return False
    ux, uy = (x1 - x0) / length, (y1 - y0) / length
    ink = total = 0
    for t in np.linspace(0.25, 0.75, samples):
        px, py = xa + (xb - xa) * t, ya + (yb - ya) * t
        s = along_from_a(x0, y0, x1, y1, px, py)
        fx, fy = x0 + ux * s, y0 + uy * s
        steps = int(distance(px, py, fx, fy))
        for k in range(1, steps):
            qx = px + (fx - px) * k / steps
            qy = py + (fy - py) * k / steps
            total += 1
            if sampler.is_foreground(int(round(qx)), int(round(qy))):
                ink += 1
    if total == 0:
        return True
    return ink / total >= 0.5


def _align_ends(graph: MolGraph, keep: int, drop: int, cos: float) -> None:
    """Pull matching ends of two merged stroke sides onto their midpoints."""
    kb, db = graph.bonds[keep], graph.bonds[drop]
    pairs = ((kb.a, db.a), (kb.b, db.b)) if cos > 0 else ((kb.a, db.b), (kb.b, db.a))
    x0, y0, x1, y1 = graph.bond_coords(keep)
    for k_atom, d_atom in pairs:
        dx, dy = graph.xy(d_atom)
        lateral = graph.bond_separation(keep, drop)
        if k_atom == kb.a:
            along = abs(along_from_a(x0, y0, x1, y1, dx, dy))
        else:
            along = abs(along_from_b(x0, y0, x1, y1, dx, dy))
        if lateral > along:
            kx, ky = graph.xy(k_atom)
            graph.move_atom(k_atom, (kx + dx) / 2, (ky + dy) / 2)


def skeletize(
    graph: MolGraph, sampler: BasePixelSampler, avg: float, cfg: ReconConfig
) -> float:
    """Merge bonds that are the two traced sides of one stroke.

    Two overlapping bonds are one stroke when they are parallel with only ink
    between them (and closer than ``max_bond_thickness``), or simply closer
    than ``skeleton_merge_distance``.  The shorter side is dropped.  Returns
    the median merge separation, an estimate of stroke width.
    """
    seps = []
    n = len(graph.bonds)
    for i in range(n):
        if not graph.bonds[i].exists or graph.bonds[i].small:
            continue
        for j in range(n):
            bi, bj = graph.bonds[i], graph.bonds[j]
            if not bi.exists:
                break
            if j == i or not bj.exists or bj.small or not graph.bonds_overlap(i, j):
                continue
            if {bi.a, bi.b} & {bj.a, bj.b}:
                continue
            sep = graph.bond_separation(i, j)
            cos = graph.bond_cos(i, j)
            stroke = (
                abs(cos) > cfg.parallel_tolerance
                and sep < cfg.max_bond_thickness
                and _no_white_space(graph, sampler, i, j)
            )
            if not (stroke or sep < cfg.skeleton_merge_distance):
                continue
            keep, drop = (i, j) if graph.bond_length(i) >= graph.bond_length(j) else (j, i)
            if graph.bond_length(drop) > avg / 2:
                _align_ends(graph, keep, drop, cos)
            graph.bonds[drop].exists = False
            graph.bonds[keep].aromatic = graph.bonds[keep].aromatic or graph.bonds[drop].aromatic
            seps.append(sep)
    if not seps:
        return cfg.default_line_thickness
    logger.debug("Merged %d stroke sides", len(seps))
    return float(np.median(seps))


# ── Double / triple bonds ────────────────────────────────────────────────────


def dist_double_bonds(graph: MolGraph, avg: float, cfg: ReconConfig) -> float:
    """Learn the largest separation at which parallel lines form one bond.

    Every parallel, overlapping pair of reasonably long bonds closer than half
    a bond length is a sample.  The configured quantile of the samples plus a
    margin, grown over any samples within one pixel above it, is the
    threshold.  Falls back to a third of the average bond length.
    """
    for bond in graph.bonds:
        bond.conjoined = False
    live = [i for i, _ in graph.live_bonds()]
    seps = []
    for pos, i in enumerate(live):
        if graph.bond_length(i) <= avg / 3:
            continue
        for j in live[pos + 1:]:
            if graph.bond_length(j) <= avg / 3:
                continue
            if abs(graph.bond_cos(i, j)) <= cfg.parallel_tolerance:
                continue
            sep = graph.bond_separation(i, j)
            if sep < avg / 2 and graph.bonds_overlap(i, j):
                seps.append(sep)
    if not seps:
        return avg / 3 + 0.001
    seps.sort()
    value = seps[int(cfg.double_bond_quantile * (len(seps) - 1))]
    if value < 1:
        value = avg / 3
    else:
        value += cfg.double_bond_margin
        for s in seps:
            if value < s < value + 1:
                value = s
    logger.debug("Double bond separation threshold %.2f from %d samples", value, len(seps))
    return value + 0.001


def _absorb(graph: MolGraph, keep: int, drop: int, avg: float, force: bool = False) -> None:
    kb, db = graph.bonds[keep], graph.bonds[drop]
    lk, ld = graph.bond_length(keep), graph.bond_length(drop)
    db.exists = False
    if force or ld > lk / 2 or (lk > avg and lk > 1.5 * ld and ld > 0.5 * avg):
        kb.order = min(MAX_ORDER, kb.order + db.order)
        if kb.curve is not None and kb.curve == db.curve:
            kb.conjoined = True
    kb.aromatic = kb.aromatic or db.aromatic


def _split_short_side(graph: MolGraph, long_: int, short: int) -> None:
    """Insert atoms into *long_* where the *short* line starts and stops.

    An end gets an atom only when the short line stops more than half its own
    length short of it.
    """
    x0, y0, x1, y1 = graph.bond_coords(long_)
    length = distance(x0, y0, x1, y1)
    if length <= 0:
        return
    ux, uy = (x1 - x0) / length, (y1 - y0) / length
    xa, ya, xb, yb = graph.bond_coords(short)
    half = 0.5 * distance(xa, ya, xb, yb)
    da = min(abs(along_from_a(x0, y0, x1, y1, xa, ya)), abs(along_from_a(x0, y0, x1, y1, xb, yb)))
    db = min(abs(along_from_b(x0, y0, x1, y1, xa, ya)), abs(along_from_b(x0, y0, x1, y1, xb, yb)))
    bond = graph.bonds[long_]
    if da > half:
        new = graph.add_atom(x0 + ux * da, y0 + uy * da, curve=bond.curve)
        if new is not None and graph.add_bond(bond.a, new, curve=bond.curve) is not None:
            bond.a = new
    if db > half:
        new = graph.add_atom(x1 - ux * db, y1 - uy * db, curve=bond.curve)
        if new is not None and graph.add_bond(new, bond.b, curve=bond.curve) is not None:
            bond.b = new


def _pair(graph: MolGraph, i: int, j: int, max_dist: float, cfg: ReconConfig) -> bool:
    return (
        abs(graph.bond_cos(i, j)) > cfg.parallel_tolerance
        and graph.bond_separation(i, j) <= max_dist
        and graph.bonds_overlap(i, j)
    )


def _third_line(
    graph: MolGraph, i: int, j: int, max_dist: float, cfg: ReconConfig
) -> Optional[int]:
    best, best_sep = None, None
    for k, _ in graph.live_bonds():
        if k in (i, j) or abs(graph.bond_cos(i, k)) <= cfg.parallel_tolerance:
            continue
        for other in (i, j):
            sep = graph.bond_separation(other, k)
            if sep <= max_dist and graph.bonds_overlap(other, k):
                if best_sep is None or sep < best_sep:
                    best, best_sep = k, sep
    return best


def double_triple_bonds(graph: MolGraph, avg: float, max_dist: float, cfg: ReconConfig) -> int:
    """Fold parallel line pairs and triples into double and triple bonds.

    Returns the number of merges performed.
    """
    merges = 0
    i = 0
    while i < len(graph.bonds):
        j = i + 1
        while graph.bonds[i].exists and j < len(graph.bonds):
            if not graph.bonds[j].exists or not _pair(graph, i, j, max_dist, cfg):
                j += 1
                continue
            k = _third_line(graph, i, j, max_dist, cfg)
            if k is not None:
                trio = (i, j, k)
                center = min(
                    trio,
                    key=lambda c: max(graph.bond_separation(c, o) for o in trio if o != c),
                )
                for o in trio:
                    if o != center:
                        _absorb(graph, center, o, avg)
                merges += 2
                j += 1
                continue
            li, lj = graph.bond_length(i), graph.bond_length(j)
            long_, short = (i, j) if li > lj else (j, i)
            ll, ls = max(li, lj), min(li, lj)
            if ll > avg and ll > 1.5 * ls and ls > 0.5 * avg:
                _split_short_side(graph, long_, short)
                _absorb(graph, long_, short, avg, force=True)
            else:
                _absorb(graph, long_, short, avg)
            merges += 1
            j += 1
        i += 1
    logger.debug("Resolved %d parallel line merges", merges)
    return merges
