"""Tests for structflo.recon.stages.small_features — hashed bonds and slivers."""

import numpy as np
import pytest

from structflo.recon.config import ReconConfig
from structflo.recon.pipeline.models import Curve, MolGraph
from structflo.recon.pipeline.sampler import ImageSampler, NullSampler
from structflo.recon.stages.decimation import decimate_curves
from structflo.recon.stages.small_features import find_dashed_bonds, remove_small_curves

AVG = 30.0


def _square(cx: float, cy: float, side: float = 3.0) -> Curve:
    h = side / 2
    return Curve.from_polygon(
        [(cx - h, cy - h), (cx + h, cy - h), (cx + h, cy + h), (cx - h, cy + h)]
    )


@pytest.fixture()
def dash_row() -> list[Curve]:
    """Three 3×3 dots 6 px apart on y = 50."""
    return [_square(x, 50) for x in (20, 26, 32)]


def _graph_for(curves: list[Curve], cfg: ReconConfig) -> MolGraph:
    g = MolGraph(100, 100)
    decimate_curves(g, curves, cfg)
    return g


# ── find_dashed_bonds ────────────────────────────────────────────────────────


class TestFindDashedBonds:
    def test_row_becomes_hashed_bond(self, dash_row):
        cfg = ReconConfig(avg_bond_length=AVG)
        g = _graph_for(dash_row, cfg)
        found = find_dashed_bonds(g, dash_row, NullSampler(100, 100), AVG, cfg)
        assert found == 1
        live_bonds = list(g.live_bonds())
        assert len(live_bonds) == 1
        i, bond = live_bonds[0]
        assert bond.hashed
        assert sum(1 for _ in g.live_atoms()) == 2
        # ends pushed out by one dash spacing: (n + 1) * spacing
        assert g.bond_length(i) == pytest.approx(24)
        assert g.xy(bond.a) == pytest.approx((14, 50))
        assert g.xy(bond.b) == pytest.approx((38, 50))

    def test_narrow_end_first(self):
        # widest dot on the left, so the bond must point right to left
        curves = [_square(20, 50, 4), _square(26, 50, 3), _square(32, 50, 2)]
        cfg = ReconConfig()
        g = _graph_for(curves, cfg)
        find_dashed_bonds(g, curves, NullSampler(100, 100), AVG, cfg)
        bond = next(b for _, b in g.live_bonds())
        assert g.xy(bond.a)[0] > g.xy(bond.b)[0]

    def test_two_dots_are_not_enough(self):
        curves = [_square(20, 50), _square(26, 50)]
        cfg = ReconConfig()
        g = _graph_for(curves, cfg)
        assert find_dashed_bonds(g, curves, NullSampler(100, 100), AVG, cfg) == 0
        assert not any(b.hashed for _, b in g.live_bonds())

    def test_wide_gap_breaks_chain(self):
        curves = [_square(x, 50) for x in (20, 26, 50)]
        cfg = ReconConfig()
        g = _graph_for(curves, cfg)
        assert find_dashed_bonds(g, curves, NullSampler(100, 100), AVG, cfg) == 0

    def test_holes_are_ignored(self, dash_row):
        for c in dash_row:
            c.sign = "-"
        cfg = ReconConfig()
        g = _graph_for(dash_row, cfg)
        assert find_dashed_bonds(g, dash_row, NullSampler(100, 100), AVG, cfg) == 0

    def test_thick_dashes_measured_on_pixels(self, dash_row):
        img = np.full((100, 100), 255, dtype=np.uint8)
        for x in (20, 26, 32):
            img[49:52, x - 1:x + 2] = 0
        cfg = ReconConfig(thick_dashes=True)
        g = _graph_for(dash_row, cfg)
        found = find_dashed_bonds(g, dash_row, ImageSampler(img), AVG, cfg)
        assert found == 1
        bond = next(b for _, b in g.live_bonds())
        assert bond.hashed


# ── remove_small_curves ──────────────────────────────────────────────────────


class TestRemoveSmallCurves:
    def test_sliver_becomes_single_bond(self):
        curves = [Curve.from_polygon([(10, 50), (40, 50), (40, 51), (10, 51)])]
        cfg = ReconConfig()
        g = _graph_for(curves, cfg)
        assert remove_small_curves(g, curves, AVG, 1.5, cfg) == 1
        bonds = list(g.live_bonds())
        assert len(bonds) == 1
        i, bond = bonds[0]
        assert bond.small
        assert g.bond_length(i) == pytest.approx(30, abs=1.1)

    def test_large_ring_untouched(self):
        curves = [Curve.from_polygon([(10, 10), (60, 10), (60, 60), (10, 60)])]
        cfg = ReconConfig()
        g = _graph_for(curves, cfg)
        assert remove_small_curves(g, curves, AVG, 1.5, cfg) == 0
        assert sum(1 for _ in g.live_bonds()) == 4

    def test_fat_blob_above_area_floor_untouched(self):
        # area 36 > small_curve_area, 6 px off the axis > thickness
        curves = [Curve.from_polygon([(10, 50), (16, 50), (16, 56), (10, 56)])]
        cfg = ReconConfig()
        g = _graph_for(curves, cfg)
        assert remove_small_curves(g, curves, AVG, 1.5, cfg) == 0
