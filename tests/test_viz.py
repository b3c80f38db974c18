"""Tests for structflo.recon.viz.graph — matplotlib visualisation helpers."""

import matplotlib
import matplotlib.pyplot as plt
import numpy as np
import pytest
from PIL import Image

from structflo.recon.pipeline.models import Curve, MolGraph
from structflo.recon.pipeline.sampler import _to_pil
from structflo.recon.viz.graph import plot_curves, plot_graph

# Use non-interactive backend for CI
matplotlib.use("Agg")


# ── fixtures ────────────────────────────────────────────────────────────────


@pytest.fixture()
def sample_image() -> Image.Image:
    """120×100 white test image."""
    return Image.new("RGB", (120, 100), "white")


@pytest.fixture()
def sample_graph() -> MolGraph:
    g = MolGraph(120, 100)
    a = g.add_atom(10, 50)
    b = g.add_atom(40, 50)
    c = g.add_atom(70, 30, label="O", charge=-1)
    d = g.add_atom(70, 70)
    e = g.add_atom(100, 50, label="N")
    g.add_bond(a, b, order=2)
    g.add_bond(b, c, wedged=True)
    g.add_bond(b, d, hashed=True)
    g.add_bond(d, e, aromatic=True)
    g.add_bond(c, e, order=3, up=True)
    return g


# ── _to_pil ─────────────────────────────────────────────────────────────────


class TestToPil:
    def test_from_gray_ndarray(self) -> None:
        result = _to_pil(np.zeros((20, 30), dtype=np.uint8))
        assert result.mode == "RGB"
        assert result.size == (30, 20)

    def test_unsupported_type_raises(self) -> None:
        with pytest.raises(TypeError, match="Unsupported image type"):
            _to_pil(42)


# ── plot_graph ──────────────────────────────────────────────────────────────


class TestPlotGraph:
    def test_returns_figure(self, sample_graph: MolGraph) -> None:
        fig = plot_graph(sample_graph)
        assert isinstance(fig, matplotlib.figure.Figure)
        plt.close(fig)

    def test_over_image(self, sample_graph: MolGraph, sample_image: Image.Image) -> None:
        fig = plot_graph(sample_graph, sample_image)
        assert fig.axes[0].images
        plt.close(fig)

    def test_auto_title(self, sample_graph: MolGraph) -> None:
        fig = plot_graph(sample_graph)
        assert fig.axes[0].get_title() == "5 atoms, 5 bonds"
        plt.close(fig)

    def test_custom_title(self, sample_graph: MolGraph) -> None:
        fig = plot_graph(sample_graph, title="Ethene")
        assert fig.axes[0].get_title() == "Ethene"
        plt.close(fig)

    def test_labels_drawn(self, sample_graph: MolGraph) -> None:
        fig = plot_graph(sample_graph)
        texts = {t.get_text() for t in fig.axes[0].texts}
        assert texts == {"O-", "N"}
        plt.close(fig)

    def test_show_indices(self, sample_graph: MolGraph) -> None:
        fig = plot_graph(sample_graph, show_indices=True)
        texts = {t.get_text() for t in fig.axes[0].texts}
        assert {"0", "1", "3"} <= texts
        plt.close(fig)

    def test_multiple_bond_lines(self, sample_graph: MolGraph) -> None:
        fig = plot_graph(sample_graph)
        # double (2) + hashed (1) + aromatic (1) + triple (3); the wedge is a patch
        assert len(fig.axes[0].lines) == 7
        assert len(fig.axes[0].patches) == 1
        plt.close(fig)

    def test_existing_axes(self, sample_graph: MolGraph) -> None:
        fig, ax = plt.subplots()
        result = plot_graph(sample_graph, ax=ax)
        assert result is fig
        plt.close(fig)

    def test_empty_graph(self) -> None:
        fig = plot_graph(MolGraph(0, 0))
        assert fig.axes[0].get_title() == "0 atoms, 0 bonds"
        plt.close(fig)


# ── plot_curves ─────────────────────────────────────────────────────────────


class TestPlotCurves:
    def test_returns_figure(self) -> None:
        curves = [
            Curve.from_polygon([(10, 10), (40, 10), (40, 40)]),
            Curve.from_polygon([(20, 20), (30, 20), (30, 30)], sign="-"),
        ]
        fig = plot_curves(curves)
        assert isinstance(fig, matplotlib.figure.Figure)
        assert len(fig.axes[0].lines) == 2
        assert fig.axes[0].get_title() == "2 curves"
        plt.close(fig)

    def test_empty(self) -> None:
        fig = plot_curves([])
        assert fig.axes[0].get_title() == "0 curves"
        plt.close(fig)
