"""Topological repair of the reconstructed graph.

Vectorization leaves gaps where a bond meets a label or another bond, splits
one atom into several nearly coincident ones, and turns two crossing bonds into
a fake four-valent atom.  The passes below repair these defects.  Most are
``while found`` loops that rescan the whole graph until nothing changes.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from structflo.recon._geometry import EPS, along_from_a, along_from_b, distance, perpendicular
from structflo.recon.chem import molecule_statistics
from structflo.recon.pipeline.models import LabelFragment, MoleculeStatistics, MolGraph
from structflo.recon.stages.multiplicity import remove_zero_bonds

logger = logging.getLogger(__name__)


def _along(graph: MolGraph, bond: int, end: int, x: float, y: float) -> float:
    """Axis projection of (x, y) measured from *end*, positive towards the bond."""
    x0, y0, x1, y1 = graph.bond_coords(bond)
    if end == graph.bonds[bond].a:
        return along_from_a(x0, y0, x1, y1, x, y)
    return -along_from_b(x0, y0, x1, y1, x, y)


def _lateral(graph: MolGraph, bond: int, x: float, y: float) -> float:
    x0, y0, x1, y1 = graph.bond_coords(bond)
    return abs(perpendicular(x0, y0, x1, y1, x, y))


# ── Terminal extension ───────────────────────────────────────────────────────


def _best_fragment(
    graph: MolGraph,
    bond: int,
    end: int,
    fragments: Sequence[LabelFragment],
    candidates: list[int],
    avg: float,
    tolerance: float,
) -> Optional[tuple[int, float, float]]:
    """Nearest fragment anchor past *end* within the search envelope."""
    half = graph.bond_length(bond) / 2
    best = None
    best_gap = None
    for f in candidates:
        frag = fragments[f]
        for x, y, r in ((frag.x1, frag.y1, frag.r1), (frag.x2, frag.y2, frag.r2)):
            d = _along(graph, bond, end, x, y)
            gap = abs(d) - r
            if gap > avg or d >= half:
                continue
            if _lateral(graph, bond, x, y) > tolerance + r / 2:
                continue
            if best_gap is None or gap < best_gap:
                best, best_gap = (f, x, y), gap
    return best


def extend_terminal_bonds_to_labels(
    graph: MolGraph,
    fragments: Sequence[LabelFragment],
    avg: float,
    maxh: float,
    max_dist: float,
) -> int:
    """Snap unlabeled dangling bond ends onto nearby text fragments.

    Single letters are preferred over longer fragments.  A snapped atom takes
    the fragment's text (letters upper-cased) and moves to the anchor.
    Fragments starting with a charge sign are never targets.  Returns the
    number of snaps.
    """
    usable = [
        i for i, f in enumerate(fragments)
        if f.text.strip() and not f.text.startswith(("+", "-"))
    ]
    letters = [i for i in usable if fragments[i].is_letter]
    words = [i for i in usable if not fragments[i].is_letter]
    claimed: dict[int, int] = {}
    snaps = 0
    found = True
    while found:
        found = False
        for i, bond in graph.live_bonds():
            for end in (bond.a, bond.b):
                atom = graph.atoms[end]
                if not atom.blank or not graph.is_terminal(end, i):
                    continue
                tolerance = maxh + (max_dist if bond.order > 1 else 0.0)
                taken = claimed.get(bond.other(end))
                hit = None
                for group in (letters, words):
                    pool = [f for f in group if f != taken]
                    hit = _best_fragment(graph, i, end, fragments, pool, avg, tolerance)
                    if hit is not None:
                        break
                if hit is None:
                    continue
                f, x, y = hit
                text = fragments[f].text.strip()
                atom.label = text.upper() if len(text) == 1 else text
                if fragments[f].is_letter:
                    graph.move_atom(end, x, y)
                else:
                    graph.move_atom(end, *fragments[f].center)
                claimed[end] = f
                snaps += 1
                found = True
    logger.debug("Snapped %d bond ends to labels", snaps)
    return snaps


def extend_terminal_bonds_to_bonds(
    graph: MolGraph, avg: float, maxh: float, max_dist: float
) -> int:
    """Join unlabeled dangling bond ends to nearby endpoints of other bonds.

    The target atom moves to the midpoint of the gap and the dangling end is
    re-pointed to it.  Returns the number of joins.
    """
    joins = 0
    found = True
    while found:
        found = False
        for i, bond in graph.live_bonds():
            for end in (bond.a, bond.b):
                if not graph.atoms[end].blank or not graph.is_terminal(end, i):
                    continue
                other = bond.other(end)
                half = graph.bond_length(i) / 2
                tolerance = maxh
                if bond.order > 1 and not bond.conjoined:
                    tolerance += max_dist
                neighbours = {b.other(other) for _, b in graph.live_bonds() if other in (b.a, b.b)}
                ex, ey = graph.xy(end)
                best, best_d = None, None
                for j, atom in graph.live_atoms():
                    if j in (end, other) or j in neighbours or not graph.incident(j):
                        continue
                    d = _along(graph, i, end, atom.x, atom.y)
                    if abs(d) > avg / 2 or d >= half:
                        continue
                    if _lateral(graph, i, atom.x, atom.y) > tolerance:
                        continue
                    gap = distance(ex, ey, atom.x, atom.y)
                    if best_d is None or gap < best_d:
                        best, best_d = j, gap
                if best is None:
                    continue
                bx, by = graph.xy(best)
                graph.move_atom(best, (bx + ex) / 2, (by + ey) / 2)
                if bond.a == end:
                    bond.a = best
                else:
                    bond.b = best
                graph.atoms[end].exists = False
                joins += 1
                found = True
                break
    logger.debug("Joined %d dangling bond ends", joins)
    return joins


# ── Collapsing ───────────────────────────────────────────────────────────────


def collapse_atoms(graph: MolGraph, dist: float) -> int:
    """Merge existing atoms closer than *dist* until no such pair remains."""
    merges = 0
    found = True
    while found:
        found = False
        live = [i for i, _ in graph.live_atoms()]
        for pos, i in enumerate(live):
            xi, yi = graph.xy(i)
            for j in live[pos + 1:]:
                if distance(xi, yi, *graph.xy(j)) < dist:
                    graph.merge_atoms(i, j)
                    merges += 1
                    found = True
                    break
            if found:
                break
    return merges


def collapse_bonds(graph: MolGraph, dist: float) -> int:
    """Shrink bonds shorter than *dist* onto their midpoint."""
    shrunk = 0
    for i, bond in graph.live_bonds():
        if bond.a == bond.b or graph.bond_length(i) >= dist:
            continue
        mx, my = graph.bond_midpoint(i)
        graph.move_atom(bond.a, mx, my)
        graph.move_atom(bond.b, mx, my)
        shrunk += 1
    return shrunk


def collapse(graph: MolGraph, dist: float) -> None:
    """Shrink short bonds, merge coincident atoms and drop the resulting loops.

    Running it twice with the same *dist* leaves the graph unchanged.
    """
    collapse_bonds(graph, dist)
    collapse_atoms(graph, dist)
    remove_zero_bonds(graph)


def remove_disconnected_atoms(graph: MolGraph) -> int:
    used = {end for _, b in graph.live_bonds() for end in (b.a, b.b)}
    removed = 0
    for i, atom in graph.live_atoms():
        if i not in used:
            atom.exists = False
            removed += 1
    return removed


def mark_terminal_atoms(graph: MolGraph) -> None:
    """Flag atoms whose only bond is a plain, non-aromatic single bond."""
    for atom in graph.atoms:
        atom.terminal = False
    for i, atom in graph.live_atoms():
        inc = graph.incident(i)
        if len(inc) == 1:
            bond = graph.bonds[inc[0]]
            atom.terminal = bond.order == 1 and not bond.aromatic


# ── Straightening ────────────────────────────────────────────────────────────


def flatten_bonds(graph: MolGraph, maxh: float) -> int:
    """Merge bonds meeting at an unlabeled two-valent atom on a straight line."""
    merged = 0
    found = True
    while found:
        found = False
        for i, bond in graph.live_bonds():
            if not bond.plain:
                continue
            for end in (bond.a, bond.b):
                if not graph.atoms[end].blank:
                    continue
                inc = graph.incident(end)
                if len(inc) != 2:
                    continue
                f = inc[0] if inc[1] == i else inc[1]
                nxt = graph.bonds[f]
                if not nxt.plain:
                    continue
                far = nxt.other(end)
                if far == bond.other(end):
                    continue
                fx, fy = graph.xy(far)
                if _lateral(graph, i, fx, fy) > maxh or _along(graph, i, end, fx, fy) >= 0:
                    continue
                if bond.a == end:
                    bond.a = far
                else:
                    bond.b = far
                nxt.exists = False
                graph.atoms[end].exists = False
                merged += 1
                found = True
                break
            if found:
                break
    return merged


def collapse_double_bonds(graph: MolGraph, dist: float) -> int:
    """Remove short single stubs hanging off the ends of conjoined double bonds."""
    removed = 0
    for i, bond in graph.live_bonds():
        if not bond.conjoined or bond.order != 2:
            continue
        for end in (bond.a, bond.b):
            for j in graph.incident(end):
                stub = graph.bonds[j]
                if j == i or not stub.plain or graph.bond_length(j) > dist:
                    continue
                tip = stub.other(end)
                if tip in (bond.a, bond.b):
                    continue
                stub.exists = False
                graph.repoint(tip, end)
                graph.atoms[tip].exists = False
                removed += 1
    return removed


# ── One-sided intersections ──────────────────────────────────────────────────


def _copy_bond_marks(graph: MolGraph, src: int, dst: int) -> None:
    s, d = graph.bonds[src], graph.bonds[dst]
    d.order = s.order
    d.aromatic, d.hashed, d.wedged, d.conjoined = s.aromatic, s.hashed, s.wedged, s.conjoined


def _split_bond(graph: MolGraph, i: int, q: int, d: float) -> Optional[int]:
    """Cut bond *i* at atom *q*, moved *d* along it from ``a``; returns the new b-side bond."""
    bi = graph.bonds[i]
    x0, y0, x1, y1 = graph.bond_coords(i)
    li = graph.bond_length(i)
    graph.move_atom(q, x0 + (x1 - x0) * d / li, y0 + (y1 - y0) * d / li)
    new = graph.add_bond(q, bi.b, curve=bi.curve)
    if new is None:
        return None
    _copy_bond_marks(graph, i, new)
    bi.b = q
    return new


def _collinear_fix(graph: MolGraph, i: int, j: int, thickness: float) -> bool:
    bi, bj = graph.bonds[i], graph.bonds[j]
    li = graph.bond_length(i)
    shared = {bi.a, bi.b} & {bj.a, bj.b}
    if len(shared) > 1:
        return False
    if shared:
        s = shared.pop()
        q = bj.other(s)
        qx, qy = graph.xy(q)
        d = _along(graph, i, s, qx, qy)
        if not (EPS < d < li) or _lateral(graph, i, qx, qy) > thickness:
            return False
        if graph.is_terminal(q, j):
            bj.exists = False
            graph.atoms[q].exists = False
        else:
            if bi.a == s:
                bi.a = q
            else:
                bi.b = q
            _copy_bond_marks(graph, i, j)
        return True
    for q in (bj.a, bj.b):
        if not graph.is_terminal(q, j):
            continue
        qx, qy = graph.xy(q)
        d = _along(graph, i, bi.a, qx, qy)
        if not (thickness < d < li - thickness) or _lateral(graph, i, qx, qy) > thickness:
            continue
        return _split_bond(graph, i, q, d) is not None
    return False


def _junction_fix(graph: MolGraph, i: int, j: int, thickness: float) -> bool:
    bi, bj = graph.bonds[i], graph.bonds[j]
    li = graph.bond_length(i)
    for q in (bj.a, bj.b):
        if q in (bi.a, bi.b):
            continue
        qx, qy = graph.xy(q)
        if _lateral(graph, i, qx, qy) >= thickness:
            continue
        d = _along(graph, i, bi.a, qx, qy)
        if not (EPS < d < li - EPS):
            return False
        if bj.other(q) in (bi.a, bi.b):
            # j runs from an end of i back onto i itself
            bj.exists = False
            return True
        if any(graph.bonds[k].other(q) in (bi.a, bi.b) for k in graph.incident(q)):
            return False
        new = _split_bond(graph, i, q, d)
        if new is None:
            return False
        bi.wedged = False
        return True
    return False


def _one_sided_step(graph: MolGraph, thickness: float, avg: float, tolerance: float) -> bool:
    live = [i for i, b in graph.live_bonds() if b.order < 3 and graph.bond_length(i) > avg / 3]
    for i in live:
        for j in live:
            if i == j or not graph.bonds[i].exists or not graph.bonds[j].exists:
                continue
            if abs(graph.bond_cos(i, j)) > tolerance:
                if graph.bond_length(j) < graph.bond_length(i) and _collinear_fix(graph, i, j, thickness):
                    return True
            elif _junction_fix(graph, i, j, thickness):
                return True
    return False


def fix_one_sided_bonds(graph: MolGraph, thickness: float, avg: float, tolerance: float = 0.95) -> int:
    """Resolve bonds where one ends on the body of another without a shared atom.

    Collinear overlaps: when the two share an endpoint, the shorter one is
    dropped if its free end dangles, otherwise the longer one is re-routed
    through that end.  When they do not, the longer bond is split where the
    shorter one's free end meets it.

    T-junctions: a bond end lying on a non-parallel bond within *thickness*
    splits that bond at the projected point, so the substituent joins it.

    New segments inherit order, aromatic and stereo marks.  Returns the number
    of fixes.
    """
    fixes = 0
    limit = 2 * len(graph.bonds) + 1
    while fixes < limit and _one_sided_step(graph, thickness, avg, tolerance):
        fixes += 1
    return fixes


# ── Bridged junctions ────────────────────────────────────────────────────────


def _straight_through(graph: MolGraph, centre: int, p: int, q: int, thickness: float) -> bool:
    """True if bonds *p* and *q* continue one straight line through *centre*."""
    pf = graph.bonds[p].other(centre)
    qf = graph.bonds[q].other(centre)
    x0, y0 = graph.xy(pf)
    x1, y1 = graph.xy(centre)
    qx, qy = graph.xy(qf)
    if distance(x0, y0, x1, y1) < EPS:
        return False
    return (
        abs(perpendicular(x0, y0, x1, y1, qx, qy)) <= thickness
        and along_from_b(x0, y0, x1, y1, qx, qy) > 0
    )


def _bridge_pairs(graph: MolGraph, centre: int, con: list[int], thickness: float):
    first = con[0]
    for k in con[1:]:
        if _straight_through(graph, centre, first, k, thickness):
            rest = [c for c in con[1:] if c != k]
            if _straight_through(graph, centre, rest[0], rest[1], thickness):
                return (first, k), (rest[0], rest[1])
            return None
    return None


def resolve_bridge_bonds(graph: MolGraph, thickness: float) -> MoleculeStatistics:
    """Undo fake four-valent atoms created where two bonds cross.

    Each candidate reconnection is applied and kept only if the fragment and
    rotor counts are unchanged and the number of 5/6 rings did not fall by
    exactly two (which marks a genuine fused-ring atom).  Returns the
    statistics of the final graph.
    """
    stats = molecule_statistics(graph)
    resolved = 0
    for i in [i for i, _ in graph.live_atoms()]:
        atom = graph.atoms[i]
        if not atom.exists or not atom.blank:
            continue
        con = graph.incident(i)
        if len(con) != 4 or any(graph.bonds[c].order != 1 for c in con):
            continue
        if any(graph.is_terminal(graph.bonds[c].other(i), c) for c in con):
            continue
        pairs = _bridge_pairs(graph, i, con, thickness)
        if pairs is None:
            continue

        saved = [(c, graph.bonds[c].a, graph.bonds[c].b, graph.bonds[c].exists) for c in con]
        for keep, drop in pairs:
            far = graph.bonds[drop].other(i)
            if graph.bonds[keep].a == i:
                graph.bonds[keep].a = far
            else:
                graph.bonds[keep].b = far
            graph.bonds[drop].exists = False
        atom.exists = False

        after = molecule_statistics(graph)
        if (
            after.fragments == stats.fragments
            and after.rotors == stats.rotors
            and stats.rings56 - after.rings56 != 2
        ):
            stats = after
            resolved += 1
            continue
        for c, a, b, exists in saved:
            graph.bonds[c].a, graph.bonds[c].b, graph.bonds[c].exists = a, b, exists
        atom.exists = True
    logger.debug("Resolved %d bridged junctions", resolved)
    return stats
