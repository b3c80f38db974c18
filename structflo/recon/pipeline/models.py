"""Core data structures for the reconstruction pipeline.

Atoms and bonds live in append-only arenas owned by :class:`MolGraph` and are
addressed by integer index.  Removing an entity only clears its ``exists``
flag, so every index handed out stays valid for the lifetime of the graph.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import asdict, dataclass, field
from typing import Iterator, Optional, Sequence

from structflo.recon._geometry import (
    EPS,
    Point,
    along_from_a,
    clamp_point,
    cos_angle,
    distance,
    perpendicular,
    polygon_area,
)

logger = logging.getLogger(__name__)

BLANK = " "  # label of an unlabeled (carbon) vertex

CORNER = "corner"
CURVETO = "curveto"


@dataclass
class BBox:
    x1: float
    y1: float
    x2: float
    y2: float

    @classmethod
    def from_list(cls, lst: Sequence[float]) -> BBox:
        return cls(lst[0], lst[1], lst[2], lst[3])

    @property
    def centroid(self) -> tuple[float, float]:
        return ((self.x1 + self.x2) / 2, (self.y1 + self.y2) / 2)

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1

    def as_list(self) -> list[float]:
        return [self.x1, self.y1, self.x2, self.y2]


# ── Vectorizer input ─────────────────────────────────────────────────────────


@dataclass
class Segment:
    """One potrace-style path segment.

    ``c[2]`` is the segment end point.  For a ``CORNER`` segment ``c[1]`` is
    the corner vertex and ``c[0]`` is unused; for ``CURVETO`` ``c[0]`` and
    ``c[1]`` are the Bezier control points.
    """

    tag: str
    c: tuple[Point, Point, Point]


@dataclass
class Curve:
    """A closed traced path plus its place in the containment tree."""

    segments: list[Segment]
    sign: str = "+"  # "+" solid outline, "-" hole
    area: float = 0.0
    parent: Optional[int] = None
    children: list[int] = field(default_factory=list)

    @classmethod
    def from_polygon(
        cls, points: Sequence[Point], sign: str = "+", area: float | None = None
    ) -> Curve:
        """Build an all-corner curve through *points* (closed implicitly)."""
        pts = [(float(x), float(y)) for x, y in points]
        segments = []
        n = len(pts)
        for i, (x, y) in enumerate(pts):
            nx, ny = pts[(i + 1) % n]
            end = ((x + nx) / 2, (y + ny) / 2)
            segments.append(Segment(CORNER, ((x, y), (x, y), end)))
        return cls(
            segments=segments,
            sign=sign,
            area=polygon_area(pts) if area is None else area,
        )

    @property
    def solid(self) -> bool:
        return self.sign == "+"

    def points(self) -> list[tuple[float, float, bool]]:
        """Candidate vertices ``(x, y, is_corner)`` in traversal order.

        The first entry is the seed point (end of the last segment).
        """
        n = len(self.segments)
        if n == 0:
            return []
        sx, sy = self.segments[-1].c[2]
        out = [(sx, sy, False)]
        for i, seg in enumerate(self.segments):
            if seg.tag == CORNER:
                x, y = seg.c[1]
                out.append((x, y, True))
            else:
                for x, y in seg.c[:2]:
                    out.append((x, y, False))
            if i != n - 1:
                x, y = seg.c[2]
                out.append((x, y, False))
        return out


def nest(curves: list[Curve], parent: int, child: int) -> None:
    """Record that curve *child* lies directly inside curve *parent*."""
    curves[child].parent = parent
    if child not in curves[parent].children:
        curves[parent].children.append(child)


@dataclass
class LabelFragment:
    """Recognized text positioned on the image.

    A fragment exposes two anchor ends, ``(x1, y1, r1)`` and ``(x2, y2, r2)``,
    so a bond can attach to either side of a multi-character label.  For a
    single letter both ends coincide.
    """

    text: str
    x1: float
    y1: float
    x2: float
    y2: float
    r1: float
    r2: float

    @classmethod
    def letter(cls, char: str, x: float, y: float, r: float) -> LabelFragment:
        return cls(char, x, y, x, y, r, r)

    @classmethod
    def from_bbox(cls, text: str, bbox: BBox) -> LabelFragment:
        """Anchor a fragment on the left and right middle of *bbox*."""
        cx, cy = bbox.centroid
        if len(text) == 1:
            return cls.letter(text, cx, cy, max(bbox.width, bbox.height) / 2)
        r = bbox.height / 2
        return cls(text, bbox.x1 + r, cy, bbox.x2 - r, cy, r, r)

    @property
    def is_letter(self) -> bool:
        return len(self.text) == 1

    @property
    def center(self) -> tuple[float, float]:
        return ((self.x1 + self.x2) / 2, (self.y1 + self.y2) / 2)


# ── Graph ────────────────────────────────────────────────────────────────────


@dataclass
class Atom:
    x: float
    y: float
    label: str = BLANK
    charge: int = 0
    exists: bool = True
    corner: bool = False
    terminal: bool = False
    curve: Optional[int] = None  # handle into the caller's curve table
    index: int = -1              # atom index in the exported molecule
    valence: int = 0             # summed order of incident bonds
    multiple: int = 0            # number of incident double/triple bonds

    @property
    def blank(self) -> bool:
        return self.label == BLANK


@dataclass
class Bond:
    a: int
    b: int
    order: int = 1
    exists: bool = True
    aromatic: bool = False
    hashed: bool = False
    wedged: bool = False
    up: bool = False
    down: bool = False
    small: bool = False
    conjoined: bool = False
    curve: Optional[int] = None

    @property
    def plain(self) -> bool:
        """Single bond without any stereo or aromatic mark."""
        return (
            self.order == 1
            and not self.aromatic
            and not self.hashed
            and not self.wedged
            and not self.up
            and not self.down
        )

    def swap(self) -> None:
        self.a, self.b = self.b, self.a

    def other(self, atom: int) -> int:
        return self.b if self.a == atom else self.a


@dataclass
class MoleculeStatistics:
    rotors: int = 0
    fragments: int = 0
    rings56: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class MolGraph:
    """Atom/bond arenas for one structure image.

    Coordinates are clamped to ``(0, 0)-(width-1, height-1)`` on insertion.
    Once ``max_atoms``/``max_bonds`` entries exist, further insertions are
    refused and ``None`` is returned instead of an index.
    """

    def __init__(
        self,
        width: float,
        height: float,
        *,
        max_atoms: int = 10000,
        max_bonds: int = 10000,
    ) -> None:
        self.width = width
        self.height = height
        self.max_atoms = max_atoms
        self.max_bonds = max_bonds
        self.atoms: list[Atom] = []
        self.bonds: list[Bond] = []

    def __repr__(self) -> str:
        n_atoms = sum(1 for _ in self.live_atoms())
        n_bonds = sum(1 for _ in self.live_bonds())
        return f"MolGraph(atoms={n_atoms}, bonds={n_bonds}, size={self.width}x{self.height})"

    # ------------------------------------------------------------------
    # Insertion
    # ------------------------------------------------------------------

    def add_atom(self, x: float, y: float, **kwargs) -> Optional[int]:
        if len(self.atoms) >= self.max_atoms:
            logger.debug("Atom capacity %d reached, insertion refused", self.max_atoms)
            return None
        x, y = clamp_point(x, y, self.width, self.height)
        self.atoms.append(Atom(x, y, **kwargs))
        return len(self.atoms) - 1

    def add_bond(self, a: int, b: int, **kwargs) -> Optional[int]:
        if len(self.bonds) >= self.max_bonds:
            logger.debug("Bond capacity %d reached, insertion refused", self.max_bonds)
            return None
        self.bonds.append(Bond(a, b, **kwargs))
        return len(self.bonds) - 1

    def clamp(self, x: float, y: float) -> Point:
        return clamp_point(x, y, self.width, self.height)

    def move_atom(self, i: int, x: float, y: float) -> None:
        self.atoms[i].x, self.atoms[i].y = clamp_point(x, y, self.width, self.height)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def live_atoms(self) -> Iterator[tuple[int, Atom]]:
        return ((i, a) for i, a in enumerate(self.atoms) if a.exists)

    def live_bonds(self) -> Iterator[tuple[int, Bond]]:
        return ((i, b) for i, b in enumerate(self.bonds) if b.exists)

    def xy(self, i: int) -> Point:
        return self.atoms[i].x, self.atoms[i].y

    def bond_coords(self, i: int) -> tuple[float, float, float, float]:
        bond = self.bonds[i]
        a, b = self.atoms[bond.a], self.atoms[bond.b]
        return a.x, a.y, b.x, b.y

    def bond_length(self, i: int) -> float:
        return distance(*self.bond_coords(i))

    def bond_midpoint(self, i: int) -> Point:
        x0, y0, x1, y1 = self.bond_coords(i)
        return (x0 + x1) / 2, (y0 + y1) / 2

    def incident(self, atom: int) -> list[int]:
        return [i for i, b in self.live_bonds() if b.a == atom or b.b == atom]

    def is_terminal(self, atom: int, bond: int) -> bool:
        """True if no existing bond other than *bond* touches *atom*."""
        return all(
            i == bond or (b.a != atom and b.b != atom) for i, b in self.live_bonds()
        )

    def has_curve(self, curve: int) -> bool:
        return any(b.curve == curve for _, b in self.live_bonds())

    def curve_atoms(self, curve: int) -> list[int]:
        return [i for i, a in self.live_atoms() if a.curve == curve]

    def bond_cos(self, i: int, j: int) -> float:
        """Signed cosine between bonds *i* and *j* (a→b direction)."""
        x0, y0, x1, y1 = self.bond_coords(i)
        x2, y2, x3, y3 = self.bond_coords(j)
        return cos_angle(x0, y0, x1, y1, x2, y2, x3, y3)

    def bond_separation(self, i: int, j: int) -> float:
        """Perpendicular distance of bond *j*'s farther end from bond *i*'s line."""
        x0, y0, x1, y1 = self.bond_coords(i)
        x2, y2, x3, y3 = self.bond_coords(j)
        return max(
            abs(perpendicular(x0, y0, x1, y1, x2, y2)),
            abs(perpendicular(x0, y0, x1, y1, x3, y3)),
        )

    def bonds_overlap(self, i: int, j: int) -> bool:
        """True if the shorter bond projects inside the span of the longer one."""
        if self.bond_length(i) < self.bond_length(j):
            i, j = j, i
        x0, y0, x1, y1 = self.bond_coords(i)
        length = distance(x0, y0, x1, y1)
        if length < EPS:
            return False
        xa, ya, xb, yb = self.bond_coords(j)
        mid = (along_from_a(x0, y0, x1, y1, xa, ya) + along_from_a(x0, y0, x1, y1, xb, yb)) / 2
        return 0.0 < mid < length

    # ------------------------------------------------------------------
    # Mutation helpers
    # ------------------------------------------------------------------

    def delete_curve(self, curve: int) -> None:
        for atom in self.atoms:
            if atom.curve == curve:
                atom.exists = False
        for bond in self.bonds:
            if bond.curve == curve:
                bond.exists = False

    def delete_curve_with_children(self, curve: int, curves: Sequence[Curve]) -> None:
        stack = [curve]
        seen = set()
        while stack:
            c = stack.pop()
            if c in seen:
                continue
            seen.add(c)
            self.delete_curve(c)
            if 0 <= c < len(curves):
                stack.extend(curves[c].children)

    def repoint(self, old: int, new: int) -> None:
        """Redirect every existing bond end at atom *old* to atom *new*."""
        for _, bond in self.live_bonds():
            if bond.a == old:
                bond.a = new
            if bond.b == old:
                bond.b = new

    def merge_atoms(self, keep: int, drop: int) -> None:
        """Fold *drop* into *keep*: average positions, keep a label, repoint bonds."""
        k, d = self.atoms[keep], self.atoms[drop]
        self.move_atom(keep, (k.x + d.x) / 2, (k.y + d.y) / 2)
        if k.blank and not d.blank:
            k.label = d.label
            k.charge = d.charge
        d.exists = False
        self.repoint(drop, keep)

    def copy(self) -> MolGraph:
        return copy.deepcopy(self)

    # ------------------------------------------------------------------
    # Consistency
    # ------------------------------------------------------------------

    def violations(self) -> list[str]:
        """Describe every broken graph invariant (empty list when consistent)."""
        problems = []
        pairs = set()
        for i, bond in self.live_bonds():
            if bond.a == bond.b:
                problems.append(f"bond {i} is a self loop on atom {bond.a}")
                continue
            for end in (bond.a, bond.b):
                if not (0 <= end < len(self.atoms)) or not self.atoms[end].exists:
                    problems.append(f"bond {i} touches missing atom {end}")
            key = frozenset((bond.a, bond.b))
            if key in pairs:
                problems.append(f"bond {i} duplicates atom pair {sorted(key)}")
            pairs.add(key)
        for i, atom in self.live_atoms():
            if not (0 <= atom.x <= max(self.width - 1, 0) and 0 <= atom.y <= max(self.height - 1, 0)):
                problems.append(f"atom {i} lies outside the image")
        return problems

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    def to_dict(self) -> dict:
        """Existing atoms and bonds as plain dicts (JSON-serialisable)."""
        atoms = [
            {
                "id": i,
                "x": round(a.x, 2),
                "y": round(a.y, 2),
                "label": a.label.strip(),
                "charge": a.charge,
            }
            for i, a in self.live_atoms()
        ]
        bonds = [
            {
                "a": b.a,
                "b": b.b,
                "order": b.order,
                "aromatic": b.aromatic,
                "hashed": b.hashed,
                "wedged": b.wedged,
                "up": b.up,
                "down": b.down,
            }
            for _, b in self.live_bonds()
        ]
        return {"width": self.width, "height": self.height, "atoms": atoms, "bonds": bonds}


@dataclass
class Reconstruction:
    """Everything one pipeline run produces and the measurements it learned.

    Passed from step to step by :class:`~structflo.recon.pipeline.ReconPipeline`;
    each step refines ``graph`` in place and records what it measured.
    """

    graph: MolGraph
    curves: list[Curve]
    fragments: list[LabelFragment] = field(default_factory=list)
    avg_bond_length: float = 0.0
    max_dist_double_bond: float = 0.0  # widest gap between the lines of one multiple bond
    thickness: float = 1.5             # estimated stroke half-width
    stroke_width: float = 1.5          # median separation of merged stroke sides
    statistics: MoleculeStatistics = field(default_factory=MoleculeStatistics)

    def to_dict(self) -> dict:
        d = self.graph.to_dict()
        d.update(
            avg_bond_length=round(self.avg_bond_length, 2),
            max_dist_double_bond=round(self.max_dist_double_bond, 2),
            thickness=round(self.thickness, 2),
            stroke_width=round(self.stroke_width, 2),
            statistics=self.statistics.to_dict(),
        )
        return d
