"""Label and charge normalization.

Atom labels arrive as raw OCR text.  This stage strips charge signs from them,
maps common spellings and OCR confusions onto canonical labels, and expands
shorthand groups (``CF3``, ``OMe``, ``Ph`` ...) into explicit atoms.
"""

from __future__ import annotations

import logging
import math
from typing import Mapping

from structflo.recon.chem import CC_BOND_LENGTH, fragment_from_smiles
from structflo.recon.pipeline.models import BLANK, MolGraph

logger = logging.getLogger(__name__)

# Spelling variants and OCR confusions → canonical label.
DEFAULT_FIX: dict[str, str] = {
    "0": "O",
    "CI": "Cl",
    "C1": "Cl",
    "BR": "Br",
    "OH": "O",
    "HO": "O",
    "SH": "S",
    "HS": "S",
    "NH": "N",
    "HN": "N",
    "NH2": "N",
    "H2N": "N",
    "CH": "C",
    "CH2": "C",
    "CH3": "C",
    "H3C": "C",
    "Me": "C",
    "OMe": "MeO",
    "H3CO": "MeO",
    "OCH3": "MeO",
    "SMe": "MeS",
    "NMe": "MeN",
    "F3C": "CF3",
    "NC": "CN",
    "OEt": "EtO",
    "HOOC": "COOH",
    "CO2H": "COOH",
    "HO2C": "COOH",
    "OAc": "AcO",
    "O2N": "NO2",
    "HO3S": "SO3H",
    "RO": "OR",
    "OBz": "BzO",
    "OTHP": "THPO",
    "iBuO": "OiBu",
    "Bu": "nBu",
}

# Shorthand group → SMILES whose first atom bonds to the rest of the drawing.
DEFAULT_SUPERATOMS: dict[str, str] = {
    "MeO": "OC",
    "MeS": "SC",
    "MeN": "NC",
    "Et": "CC",
    "EtO": "OCC",
    "CF3": "C(F)(F)F",
    "CN": "C#N",
    "nBu": "CCCC",
    "OiBu": "OCC(C)C",
    "iPr": "C(C)C",
    "tBu": "C(C)(C)C",
    "COOH": "C(=O)O",
    "Ac": "C(C)=O",
    "AcO": "OC(C)=O",
    "NO2": "[N+](=O)[O-]",
    "NO": "N=O",
    "Ph": "c1ccccc1",
    "SO3H": "S(=O)(=O)O",
    "OR": "O*",
    "BzO": "OC(=O)c1ccccc1",
    "N(OH)CH3": "N(O)C",
    "THPO": "OC1CCCCO1",
}


def _strip_charge(label: str) -> tuple[str, int]:
    """Remove '+'/'-' signs, counting those removed while the text starts with a letter."""
    charge = 0
    while True:
        for sign, step in (("-", -1), ("+", 1)):
            pos = label.find(sign)
            if pos >= 0:
                label = label[:pos] + label[pos + 1:]
                if label[:1].isalpha():
                    charge += step
                break
        else:
            return label, charge


def count_valences(graph: MolGraph) -> None:
    """Store summed bond order and multiple-bond count on every existing atom."""
    for i, atom in graph.live_atoms():
        inc = [graph.bonds[k] for k in graph.incident(i)]
        atom.valence = sum(b.order for b in inc)
        atom.multiple = sum(1 for b in inc if b.order > 1)


def assign_charges(graph: MolGraph) -> None:
    """Fill valence counts and move charge signs from labels into ``charge``.

    Bonds touching removed atoms are dropped first.  A hashed bond ending at
    the atom (its ``b`` end) forces the charge to zero.
    """
    for _, bond in graph.live_bonds():
        if not graph.atoms[bond.a].exists or not graph.atoms[bond.b].exists:
            bond.exists = False
    count_valences(graph)
    for i, atom in graph.live_atoms():
        inc = [graph.bonds[k] for k in graph.incident(i)]
        label, charge = _strip_charge(atom.label)
        if any(b.hashed and b.b == i for b in inc):
            charge = 0
        atom.label = label.strip() or BLANK
        atom.charge = charge


def fix_atom_name(label: str, fix: Mapping[str, str]) -> str:
    text = label.strip()
    if not text:
        return BLANK
    if len(text) == 1:
        text = text.upper()
    return fix.get(text, text)


def normalize_labels(graph: MolGraph, fix: Mapping[str, str]) -> None:
    for _, atom in graph.live_atoms():
        atom.label = fix_atom_name(atom.label, fix)


def _outward(graph: MolGraph, i: int) -> tuple[float, float]:
    """Unit vector pointing away from the atom's existing neighbours."""
    ax, ay = graph.xy(i)
    sx = sy = 0.0
    for k in graph.incident(i):
        nx, ny = graph.xy(graph.bonds[k].other(i))
        d = math.hypot(ax - nx, ay - ny)
        if d > 0:
            sx += (ax - nx) / d
            sy += (ay - ny) / d
    norm = math.hypot(sx, sy)
    if norm == 0:
        return 1.0, 0.0
    return sx / norm, sy / norm


def expand_superatoms(graph: MolGraph, superatoms: Mapping[str, str], avg: float) -> int:
    """Replace shorthand group labels by explicit atoms and bonds.

    The group's first atom takes the place of the labelled atom; the rest of
    the group is laid out by RDKit, scaled to the drawing's bond length and
    turned so its attachment bond points back at the atom's neighbours.
    Returns the number of groups expanded.
    """
    expanded = 0
    for i in [i for i, _ in graph.live_atoms()]:
        atom = graph.atoms[i]
        smiles = superatoms.get(atom.label.strip())
        if not smiles:
            continue
        parsed = fragment_from_smiles(smiles)
        if parsed is None:
            continue
        frag, coords = parsed
        anchor = frag.GetAtomWithIdx(1)
        atom.label = BLANK if anchor.GetSymbol() == "C" else anchor.GetSymbol()
        atom.charge += anchor.GetFormalCharge()
        expanded += 1
        n = frag.GetNumAtoms()
        if n == 2:
            continue

        # Atom 0 is the attachment point.  RDKit y points up, image y points down.
        ox, oy = coords[1]
        rel = [(x - ox, -(y - oy)) for x, y in coords]
        ux, uy = _outward(graph, i)
        turn = math.atan2(-uy, -ux) - math.atan2(rel[0][1], rel[0][0])
        cos_t, sin_t = math.cos(turn), math.sin(turn)
        scale = avg / CC_BOND_LENGTH
        ax, ay = graph.xy(i)

        index = {1: i}
        for k in range(2, n):
            x, y = rel[k]
            rd_atom = frag.GetAtomWithIdx(k)
            symbol = rd_atom.GetSymbol()
            new = graph.add_atom(
                ax + scale * (x * cos_t - y * sin_t),
                ay + scale * (x * sin_t + y * cos_t),
                label=BLANK if symbol == "C" else symbol,
                charge=rd_atom.GetFormalCharge(),
            )
            if new is None:
                break
            index[k] = new
        for bond in frag.GetBonds():
            a, b = bond.GetBeginAtomIdx(), bond.GetEndAtomIdx()
            if a not in index or b not in index:
                continue
            if bond.GetIsAromatic():
                graph.add_bond(index[a], index[b], aromatic=True)
            else:
                graph.add_bond(index[a], index[b], order=int(bond.GetBondTypeAsDouble()))
    logger.debug("Expanded %d superatom labels", expanded)
    return expanded
