"""RDKit bridge: molecule statistics, superatom fragments and graph export."""

from __future__ import annotations

import logging
from typing import Optional

from rdkit import Chem
from rdkit.Chem import AllChem
from rdkit.Geometry import Point3D

from structflo.recon.pipeline.models import MoleculeStatistics, MolGraph

logger = logging.getLogger(__name__)

CC_BOND_LENGTH = 1.5  # RDKit depiction bond length

# Non-terminal single acyclic bond not next to a triple bond.
_ROTOR = Chem.MolFromSmarts("[!$(*#*)&!D1]-&!@[!$(*#*)&!D1]")

_PERIODIC = Chem.GetPeriodicTable()
_ELEMENTS = {_PERIODIC.GetElementSymbol(n): n for n in range(1, 119)}

_BOND_TYPES = {
    1: Chem.BondType.SINGLE,
    2: Chem.BondType.DOUBLE,
    3: Chem.BondType.TRIPLE,
}


def atomic_number(label: str) -> int:
    """Atomic number for an atom label; blank is carbon, unknown text is a dummy (0)."""
    text = label.strip()
    if not text:
        return 6
    return _ELEMENTS.get(text, 0)


def _build(graph: MolGraph, with_marks: bool) -> tuple[Chem.RWMol, dict[int, int]]:
    """RWMol over the atoms touched by existing bonds, plus graph→mol index map."""
    mol = Chem.RWMol()
    index: dict[int, int] = {}
    for _, bond in graph.live_bonds():
        for end in (bond.a, bond.b):
            if end in index:
                continue
            atom = graph.atoms[end]
            rd_atom = Chem.Atom(atomic_number(atom.label) if with_marks else 6)
            if with_marks:
                rd_atom.SetFormalCharge(atom.charge)
                if atomic_number(atom.label) == 0 and atom.label.strip() not in ("", "*"):
                    rd_atom.SetProp("dummyLabel", atom.label.strip())
            index[end] = mol.AddAtom(rd_atom)
    for _, bond in graph.live_bonds():
        a, b = index[bond.a], index[bond.b]
        if mol.GetBondBetweenAtoms(a, b) is not None:
            continue
        if bond.aromatic and with_marks:
            mol.AddBond(a, b, Chem.BondType.AROMATIC)
            rd_bond = mol.GetBondBetweenAtoms(a, b)
            rd_bond.SetIsAromatic(True)
            mol.GetAtomWithIdx(a).SetIsAromatic(True)
            mol.GetAtomWithIdx(b).SetIsAromatic(True)
            continue
        mol.AddBond(a, b, _BOND_TYPES.get(bond.order, Chem.BondType.SINGLE))
        if not with_marks:
            continue
        rd_bond = mol.GetBondBetweenAtoms(a, b)
        if bond.hashed:
            rd_bond.SetBondDir(Chem.BondDir.BEGINDASH)
        elif bond.wedged:
            rd_bond.SetBondDir(Chem.BondDir.BEGINWEDGE)
        elif bond.up:
            rd_bond.SetBondDir(Chem.BondDir.ENDUPRIGHT)
        elif bond.down:
            rd_bond.SetBondDir(Chem.BondDir.ENDDOWNRIGHT)
    mol.UpdatePropertyCache(strict=False)
    Chem.GetSSSR(mol)
    return mol, index


def molecule_statistics(graph: MolGraph) -> MoleculeStatistics:
    """Rotor, fragment and 5/6-ring counts of the current graph.

    Labels and stereo marks are ignored: only the connectivity and bond
    orders matter for these counts.
    """
    mol, _ = _build(graph, with_marks=False)
    if mol.GetNumAtoms() == 0:
        return MoleculeStatistics()
    rotors = len(mol.GetSubstructMatches(_ROTOR))
    fragments = len(Chem.GetMolFrags(mol))
    rings56 = sum(1 for ring in mol.GetRingInfo().AtomRings() if len(ring) in (5, 6))
    return MoleculeStatistics(rotors=rotors, fragments=fragments, rings56=rings56)


def graph_to_mol(graph: MolGraph, avg_bond_length: float | None = None) -> Chem.RWMol:
    """Export the graph as an unsanitized RDKit molecule with a 2D conformer.

    Image coordinates are scaled so the average bond has RDKit's standard
    length and flipped so y points up.  Each exported atom's ``index`` field
    is set to its molecule index; atoms without bonds get ``-1``.
    """
    mol, index = _build(graph, with_marks=True)
    for atom in graph.atoms:
        atom.index = -1
    for gi, mi in index.items():
        graph.atoms[gi].index = mi
    if mol.GetNumAtoms() == 0:
        return mol
    scale = CC_BOND_LENGTH / avg_bond_length if avg_bond_length else 1.0
    conf = Chem.Conformer(mol.GetNumAtoms())
    for gi, mi in index.items():
        atom = graph.atoms[gi]
        conf.SetAtomPosition(mi, Point3D(atom.x * scale, -atom.y * scale, 0.0))
    conf.Set3D(False)
    mol.AddConformer(conf, assignId=True)
    return mol


def fragment_from_smiles(smiles: str) -> Optional[tuple[Chem.Mol, list[tuple[float, float]]]]:
    """Parse a superatom SMILES and lay it out in 2D.

    A dummy attachment atom is bonded to the group's first atom before
    layout, so the returned molecule has the attachment at index 0 and the
    group's anchor at index 1.  Returns the molecule and its atom coordinates
    (RDKit units), or None when the SMILES does not parse.
    """
    frag = Chem.MolFromSmiles("*" + smiles)
    if frag is None:
        logger.warning("Could not parse superatom SMILES %r", smiles)
        return None
    AllChem.Compute2DCoords(frag)
    conf = frag.GetConformer()
    coords = [
        (conf.GetAtomPosition(i).x, conf.GetAtomPosition(i).y)
        for i in range(frag.GetNumAtoms())
    ]
    return frag, coords
