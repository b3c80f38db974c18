"""Tests for structflo.recon.chem — RDKit statistics and molecule export."""

import math

import pytest
from rdkit import Chem

from structflo.recon.chem import (
    atomic_number,
    fragment_from_smiles,
    graph_to_mol,
    molecule_statistics,
)
from structflo.recon.pipeline.models import MolGraph


def _chain(g: MolGraph, n: int, y: float = 50.0, **bond_kwargs) -> list[int]:
    atoms = [g.add_atom(10 + 30 * k, y) for k in range(n)]
    for a, b in zip(atoms, atoms[1:]):
        g.add_bond(a, b, **bond_kwargs)
    return atoms


def _hexagon(g: MolGraph, cx: float, cy: float, r: float = 30.0) -> list[int]:
    atoms = [
        g.add_atom(cx + r * math.cos(k * math.pi / 3), cy + r * math.sin(k * math.pi / 3))
        for k in range(6)
    ]
    for k in range(6):
        g.add_bond(atoms[k], atoms[(k + 1) % 6])
    return atoms


class TestAtomicNumber:
    @pytest.mark.parametrize(
        "label, number", [(" ", 6), ("", 6), ("N", 7), ("Cl", 17), ("OMe", 0), ("*", 0)]
    )
    def test_lookup(self, label, number):
        assert atomic_number(label) == number


class TestMoleculeStatistics:
    def test_empty(self):
        stats = molecule_statistics(MolGraph(10, 10))
        assert stats.to_dict() == {"rotors": 0, "fragments": 0, "rings56": 0}

    def test_butane_has_one_rotor(self):
        g = MolGraph(200, 100)
        _chain(g, 4)
        stats = molecule_statistics(g)
        assert stats.rotors == 1
        assert stats.fragments == 1
        assert stats.rings56 == 0

    def test_ring_and_fragments(self):
        g = MolGraph(400, 200)
        _hexagon(g, 100, 100)
        _chain(g, 2, y=180)
        stats = molecule_statistics(g)
        assert stats.rings56 == 1
        assert stats.fragments == 2
        assert stats.rotors == 0

    def test_labels_ignored(self):
        g = MolGraph(200, 100)
        atoms = _chain(g, 4)
        g.atoms[atoms[1]].label = "Xx"
        assert molecule_statistics(g).rotors == 1


class TestGraphToMol:
    def test_labels_and_orders(self):
        g = MolGraph(200, 100)
        a, b, c = _chain(g, 3)
        g.atoms[c].label = "O"
        g.bonds[1].order = 2
        mol = graph_to_mol(g)
        assert Chem.MolToSmiles(mol) == "CC=O"

    def test_conformer_scaled_and_flipped(self):
        g = MolGraph(200, 100)
        a, b = _chain(g, 2)
        mol = graph_to_mol(g, avg_bond_length=30.0)
        pos = mol.GetConformer().GetAtomPosition(g.atoms[b].index)
        assert pos.x == pytest.approx(40 * 1.5 / 30)
        assert pos.y == pytest.approx(-50 * 1.5 / 30)

    def test_atom_indices(self):
        g = MolGraph(200, 100)
        a, b = _chain(g, 2)
        lone = g.add_atom(150, 80)
        graph_to_mol(g)
        assert {g.atoms[a].index, g.atoms[b].index} == {0, 1}
        assert g.atoms[lone].index == -1

    def test_charge_and_dummy(self):
        g = MolGraph(200, 100)
        a, b = _chain(g, 2)
        g.atoms[a].label = "N"
        g.atoms[a].charge = 1
        g.atoms[b].label = "R"
        mol = graph_to_mol(g)
        n = mol.GetAtomWithIdx(g.atoms[a].index)
        r = mol.GetAtomWithIdx(g.atoms[b].index)
        assert n.GetFormalCharge() == 1
        assert r.GetAtomicNum() == 0
        assert r.GetProp("dummyLabel") == "R"

    @pytest.mark.parametrize(
        "flag, direction",
        [
            ("hashed", Chem.BondDir.BEGINDASH),
            ("wedged", Chem.BondDir.BEGINWEDGE),
            ("up", Chem.BondDir.ENDUPRIGHT),
            ("down", Chem.BondDir.ENDDOWNRIGHT),
        ],
    )
    def test_stereo_marks(self, flag, direction):
        g = MolGraph(200, 100)
        _chain(g, 2, **{flag: True})
        mol = graph_to_mol(g)
        assert mol.GetBondWithIdx(0).GetBondDir() == direction

    def test_aromatic_bonds(self):
        g = MolGraph(200, 200)
        _hexagon(g, 100, 100)
        for bond in g.bonds:
            bond.aromatic = True
        mol = graph_to_mol(g)
        assert all(b.GetIsAromatic() for b in mol.GetBonds())

    def test_empty_graph(self):
        assert graph_to_mol(MolGraph(10, 10)).GetNumAtoms() == 0


class TestFragmentFromSmiles:
    def test_layout(self):
        parsed = fragment_from_smiles("C(F)(F)F")
        assert parsed is not None
        mol, coords = parsed
        assert mol.GetNumAtoms() == 5
        assert len(coords) == 5
        # attachment point first, then the group anchor
        assert mol.GetAtomWithIdx(0).GetAtomicNum() == 0
        assert mol.GetAtomWithIdx(1).GetSymbol() == "C"

    def test_invalid(self):
        assert fragment_from_smiles("C((") is None
