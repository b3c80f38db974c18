"""Stereochemistry detection: wedge bonds, up/down marks and aromatic circles."""

from __future__ import annotations

import logging
import math
from typing import Callable, Sequence

import numpy as np

from structflo.recon._geometry import EPS, cos_angle, distance, perpendicular
from structflo.recon.config import ReconConfig
from structflo.recon.pipeline.models import Curve, MolGraph
from structflo.recon.pipeline.sampler import BasePixelSampler

logger = logging.getLogger(__name__)


# ── Stroke thickness ─────────────────────────────────────────────────────────


def _run_length(sampler: BasePixelSampler, x: float, y: float, dx: int, dy: int) -> int:
    x, y = int(round(x)), int(round(y))
    if not sampler.is_foreground(x, y):
        if sampler.is_foreground(x + dx, y + dy):
            x, y = x + dx, y + dy
        elif sampler.is_foreground(x - dx, y - dy):
            x, y = x - dx, y - dy
        else:
            return 0
    w = 0
    cx, cy = x, y
    while sampler.is_foreground(cx, cy):
        w += 1
        cx, cy = cx + dx, cy + dy
    cx, cy = x - dx, y - dy
    while sampler.is_foreground(cx, cy):
        w += 1
        cx, cy = cx - dx, cy - dy
    return w


def thickness_vertical(sampler: BasePixelSampler, x: float, y: float) -> int:
    """Length of the vertical ink run through (x, y), 0 if no ink is nearby."""
    return _run_length(sampler, x, y, 0, 1)


def thickness_horizontal(sampler: BasePixelSampler, x: float, y: float) -> int:
    """Length of the horizontal ink run through (x, y), 0 if no ink is nearby."""
    return _run_length(sampler, x, y, 1, 0)


def _slope(xs: list[float], ts: list[float]) -> float:
    x = np.asarray(xs, dtype=float)
    t = np.asarray(ts, dtype=float)
    dx = x - x.mean()
    denom = float((dx * dx).sum())
    if denom < EPS:
        return 0.0
    return float((dx * (t - t.mean())).sum() / denom)


# ── Wedges ───────────────────────────────────────────────────────────────────


def _profile(
    graph: MolGraph,
    sampler: BasePixelSampler,
    i: int,
    avg: float,
    cfg: ReconConfig,
) -> tuple[list[float], list[float], float, float, float] | None:
    """Thickness samples along bond *i*.

    Returns ``(positions, thicknesses, span, coord_a, coord_b)`` where the
    positions are measured along the sampling axis (x or y), or None when the
    bond cannot be sampled.
    """
    x0, y0, x1, y1 = graph.bond_coords(i)
    mx, my = (x0 + x1) / 2, (y0 + y1) / 2
    w_ver = thickness_vertical(sampler, mx, my)
    w_hor = thickness_horizontal(sampler, mx, my)
    if w_ver == 0 and w_hor == 0:
        return None

    measure: Callable[[float, float], int]
    if (0 < w_ver < w_hor) or w_hor == 0:
        # Walk along x, measure vertical runs.
        if abs(x1 - x0) < 1:
            return None
        ca, cb, mid = x0, x1, mx
        measure = thickness_vertical

        def point(c: float) -> tuple[float, float]:
            return c, y0 + (y1 - y0) * (c - x0) / (x1 - x0)
    else:
        if abs(y1 - y0) < 1:
            return None
        ca, cb, mid = y0, y1, my
        measure = thickness_horizontal

        def point(c: float) -> tuple[float, float]:
            return x0 + (x1 - x0) * (c - y0) / (y1 - y0), c

    limit = min(2 * cfg.max_bond_thickness, avg / 3)

    def valid(t: int) -> bool:
        return 0 < t < limit

    lo = int(math.ceil(min(ca, cb) + cfg.wedge_margin))
    hi = int(math.floor(max(ca, cb) - cfg.wedge_margin))
    c_mid = int(round(mid))
    t_mid = measure(sampler, *point(c_mid))
    positions, samples = [], []
    if valid(t_mid):
        positions.append(float(c_mid))
        samples.append(float(t_mid))
    for rng in (range(c_mid + 1, hi + 1), range(c_mid - 1, lo - 1, -1)):
        old = t_mid
        for c in rng:
            t = measure(sampler, *point(c))
            if abs(t - old) > 2:
                break
            if valid(t):
                positions.append(float(c))
                samples.append(float(t))
            old = t
    if len(positions) < 2:
        return None
    return positions, samples, float(hi - lo), ca, cb


def find_wedge_bonds(
    graph: MolGraph,
    sampler: BasePixelSampler,
    avg: float,
    max_dist: float,
    cfg: ReconConfig,
) -> float:
    """Mark single bonds whose stroke widens steadily as wedges.

    A wedge is oriented so that ``b`` is its wide end; atoms crowded inside
    the wide end are merged into it, pulling it halfway towards each.  Every
    other sampled bond contributes a fraction of its mean width to the
    line-thickness estimate, whose median (seeded with
    ``default_line_thickness``) is returned.
    """
    widths = [cfg.default_line_thickness]
    wedges = 0
    for i in range(len(graph.bonds)):
        bond = graph.bonds[i]
        if not bond.exists or bond.hashed or bond.order != 1:
            continue
        if graph.bond_length(i) <= max_dist:
            continue
        profile = _profile(graph, sampler, i, avg, cfg)
        if profile is None:
            continue
        positions, samples, span, ca, cb = profile
        beta = _slope(positions, samples)
        if abs(beta) * span <= cfg.wedge_limit:
            widths.append(cfg.wedge_thickness_fraction * float(np.mean(samples)))
            continue

        sign = 1 if cb >= ca else -1
        if beta * sign < 0:
            bond.swap()
        bond.wedged = True
        wedges += 1
        reach = max(samples)
        for j, atom in graph.live_atoms():
            if j in (bond.a, bond.b):
                continue
            bx, by = graph.xy(bond.b)
            if distance(atom.x, atom.y, bx, by) <= reach:
                if graph.atoms[bond.b].blank and not atom.blank:
                    graph.atoms[bond.b].label = atom.label
                atom.exists = False
                graph.move_atom(bond.b, (bx + atom.x) / 2, (by + atom.y) / 2)
                graph.repoint(j, bond.b)
    thickness = float(np.median(widths))
    logger.debug("Found %d wedges, line thickness %.2f", wedges, thickness)
    return thickness


# ── Up / down single bonds ───────────────────────────────────────────────────


def find_up_down_bonds(graph: MolGraph, thickness: float) -> int:
    """Mark plain single bonds on a double bond as up or down.

    Each double bond is first oriented left to right (top to bottom when
    vertical).  A neighbouring single bond is oriented away from the double
    bond, and is "down" when its far atom lies more than *thickness* on the
    positive side of the double-bond line, "up" when on the negative side.
    """
    for _, bond in graph.live_bonds():
        if bond.order == 1:
            bond.up = bond.down = False
    marked = 0
    for i, double in graph.live_bonds():
        if double.order != 2:
            continue
        ax, ay = graph.xy(double.a)
        bx, by = graph.xy(double.b)
        if ax > bx or (ax == bx and ay > by):
            double.swap()
            ax, ay, bx, by = bx, by, ax, ay
        for j, single in graph.live_bonds():
            if j == i or single.order != 1 or single.aromatic or single.hashed or single.wedged:
                continue
            shared = {single.a, single.b} & {double.a, double.b}
            if len(shared) != 1:
                continue
            if single.b in shared:
                single.swap()
            h = perpendicular(ax, ay, bx, by, *graph.xy(single.b))
            if h > thickness:
                single.down, single.up = True, False
                marked += 1
            elif h < -thickness:
                single.up, single.down = True, False
                marked += 1
    return marked


# ── Aromatic circles ─────────────────────────────────────────────────────────


def _nested_rings(graph: MolGraph, curves: Sequence[Curve]) -> int:
    found = 0
    for ci, curve in enumerate(curves):
        if not graph.has_curve(ci):
            continue
        for child in list(curve.children):
            if curves[child].sign == curve.sign:
                continue
            if not any(curves[g].sign == curve.sign for g in curves[child].children):
                continue
            for _, bond in graph.live_bonds():
                if bond.curve == ci:
                    bond.aromatic = True
            graph.delete_curve_with_children(child, curves)
            found += 1
    return found


def _inscribed_circles(
    graph: MolGraph, curves: Sequence[Curve], avg: float, cfg: ReconConfig
) -> int:
    found = 0
    for ci, curve in enumerate(curves):
        if not curve.solid or not any(not curves[c].solid for c in curve.children):
            continue
        if not graph.has_curve(ci):
            continue
        verts = graph.curve_atoms(ci)
        if len(verts) < cfg.min_circle_vertices:
            continue
        if any(graph.atoms[v].corner for v in verts):
            continue
        xs = [graph.atoms[v].x for v in verts]
        ys = [graph.atoms[v].y for v in verts]
        cx, cy = float(np.mean(xs)), float(np.mean(ys))
        pts = np.column_stack([xs, ys])
        diameter = float(np.max(np.linalg.norm(pts[:, None, :] - pts[None, :, :], axis=-1)))
        if not (avg / 2 < diameter < 3 * avg):
            continue
        circum = sum(graph.bond_length(i) for i, b in graph.live_bonds() if b.curve == ci)
        if circum >= math.pi * diameter:
            continue
        if any(abs(distance(x, y, cx, cy) - diameter / 2) > cfg.v_displacement for x, y in zip(xs, ys)):
            continue

        graph.delete_curve_with_children(ci, curves)
        for i, bond in graph.live_bonds():
            mx, my = graph.bond_midpoint(i)
            if distance(mx, my, cx, cy) >= avg / 3 + diameter / 2:
                continue
            ax, ay = graph.xy(bond.a)
            bx, by = graph.xy(bond.b)
            if cos_angle(bx, by, ax, ay, cx, cy, ax, ay) > 0:
                bond.aromatic = True
        found += 1
    return found


def find_aromatic_rings(
    graph: MolGraph, curves: Sequence[Curve], avg: float, cfg: ReconConfig
) -> int:
    """Detect rings drawn with an inner circle and mark their bonds aromatic.

    Two drawings are recognized: a ring curve whose child and grandchild form
    a stroked circle (nested mode), and a smooth, corner-free solid curve that
    is round, ring-sized and has a hole (inscribed mode).  The circle curves
    are deleted in both cases.  Returns the number of circles found.
    """
    found = _nested_rings(graph, curves) + _inscribed_circles(graph, curves, avg, cfg)
    logger.debug("Found %d aromatic ring circles", found)
    return found
