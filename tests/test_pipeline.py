"""Tests for structflo.recon.pipeline.pipeline — ReconPipeline end to end."""

import json
import math
import sys

import pytest
from rdkit import Chem

from structflo.recon.chem import graph_to_mol
from structflo.recon.config import ReconConfig
from structflo.recon.pipeline import (
    BBox,
    Curve,
    LabelFragment,
    NullOCR,
    NullSampler,
    ReconPipeline,
    read_fragments,
)
from structflo.recon.pipeline.ocr import BaseOCR, EasyOCRExtractor


# ── fixtures ────────────────────────────────────────────────────────────────


def _hexagon(cx: float = 100, cy: float = 100, r: float = 30) -> Curve:
    return Curve.from_polygon(
        [(cx + r * math.cos(k * math.pi / 3), cy + r * math.sin(k * math.pi / 3)) for k in range(6)]
    )


def _sliver(x0: float, x1: float, y: float) -> Curve:
    """A 1 px tall traced line, too thin to decimate into a proper bond."""
    return Curve.from_polygon([(x0, y), (x1, y), (x1, y + 1), (x0, y + 1)])


@pytest.fixture()
def pipeline() -> ReconPipeline:
    return ReconPipeline()


def _steps(pipeline: ReconPipeline):
    return [
        pipeline.decimate,
        pipeline.reclassify,
        pipeline.consolidate,
        pipeline.detect_stereo,
        pipeline.repair,
        pipeline.normalize,
    ]


# ── construction ────────────────────────────────────────────────────────────


class TestConstruction:
    def test_defaults(self, pipeline):
        assert pipeline.config == ReconConfig()
        assert pipeline.fix["OH"] == "O"
        assert "CF3" in pipeline.superatoms

    def test_custom_tables(self):
        p = ReconPipeline(fix={}, superatoms={})
        assert p.fix == {} and p.superatoms == {}

    def test_size_from_arguments(self, pipeline):
        rec = pipeline.start([_hexagon()], width=300, height=250)
        assert (rec.graph.width, rec.graph.height) == (300, 250)

    def test_size_from_sampler(self):
        p = ReconPipeline(sampler=NullSampler(320, 240))
        rec = p.start([_hexagon()])
        assert (rec.graph.width, rec.graph.height) == (320, 240)

    def test_size_from_curves(self, pipeline):
        rec = pipeline.start([_hexagon()])
        assert rec.graph.width == pytest.approx(131)
        assert rec.graph.height == pytest.approx(100 + 30 * math.sin(math.pi / 3) + 1)


# ── end to end ──────────────────────────────────────────────────────────────


class TestProcess:
    def test_empty_input(self, pipeline):
        rec = pipeline.process([])
        assert rec.graph.to_dict()["atoms"] == []
        assert rec.statistics.to_dict() == {"rotors": 0, "fragments": 0, "rings56": 0}
        assert rec.avg_bond_length == ReconConfig().fallback_bond_length

    def test_hexagon(self, pipeline):
        rec = pipeline.process([_hexagon()], width=200, height=200)
        assert sum(1 for _ in rec.graph.live_atoms()) == 6
        assert sum(1 for _ in rec.graph.live_bonds()) == 6
        assert rec.avg_bond_length == pytest.approx(30)
        assert rec.statistics.rings56 == 1
        assert rec.statistics.fragments == 1

    def test_double_bond_from_two_lines(self):
        p = ReconPipeline(config=ReconConfig(avg_bond_length=30))
        rec = p.process([_sliver(10, 40, 50), _sliver(10, 40, 56)], width=100, height=100)
        bonds = [b for _, b in rec.graph.live_bonds()]
        assert len(bonds) == 1
        assert bonds[0].order == 2
        assert rec.statistics.rotors == 0

    def test_substituent_snaps_to_label(self, pipeline):
        curves = [_hexagon(), _sliver(131, 160, 100)]
        frags = [LabelFragment.letter("O", 166, 101, 4)]
        rec = pipeline.process(curves, frags, width=200, height=200)
        mol = graph_to_mol(rec.graph, rec.avg_bond_length)
        assert Chem.MolToSmiles(mol) == "OC1CCCCC1"

    def test_invariants_hold_after_every_stage(self, pipeline):
        curves = [_hexagon(), _sliver(131, 160, 100), _hexagon(250, 100)]
        frags = [LabelFragment.letter("N", 166, 101, 4)]
        rec = pipeline.start(curves, frags, width=400, height=200)
        for step in _steps(pipeline):
            rec = step(rec)
            assert rec.graph.violations() == [], step.__name__

    def test_capacity_is_respected(self):
        cfg = ReconConfig(max_atoms=10, max_bonds=5)
        rec = ReconPipeline(config=cfg).process([_hexagon(), _hexagon(250, 100)], width=400, height=200)
        assert len(rec.graph.atoms) <= 10
        assert len(rec.graph.bonds) <= 5
        assert rec.graph.violations() == []

    def test_reuse_across_image_sizes(self, pipeline):
        small = pipeline.process([_hexagon(30, 30, 20)])
        large = pipeline.process([_hexagon(300, 300, 60)])
        assert small.graph.width == pytest.approx(51)
        assert large.graph.width == pytest.approx(361)
        xs = [a.x for _, a in large.graph.live_atoms()]
        assert len(xs) == 6
        assert max(xs) == pytest.approx(360)
        assert large.avg_bond_length == pytest.approx(60)

    def test_stroke_width_recorded(self, pipeline):
        rec = pipeline.start([], width=100, height=100)
        g = rec.graph
        g.add_bond(g.add_atom(10, 50), g.add_atom(70, 50))
        g.add_bond(g.add_atom(10, 52), g.add_atom(70, 52))
        rec.avg_bond_length = 60.0
        rec = pipeline.consolidate(rec)
        assert rec.stroke_width == pytest.approx(2.0)
        assert rec.to_dict()["stroke_width"] == pytest.approx(2.0)
        assert sum(1 for _ in g.live_bonds()) == 1


# ── output helpers ──────────────────────────────────────────────────────────


class TestOutput:
    @pytest.fixture()
    def results(self, pipeline):
        return [pipeline.process([_hexagon()], width=200, height=200)]

    def test_to_records(self, results):
        records = ReconPipeline.to_records(results)
        assert len(records) == 1
        assert len(records[0]["bonds"]) == 6
        assert records[0]["statistics"]["rings56"] == 1

    def test_to_json(self, results):
        data = json.loads(ReconPipeline.to_json(results))
        assert data[0]["avg_bond_length"] == pytest.approx(30)

    def test_to_dataframe(self, results):
        pytest.importorskip("pandas")
        df = ReconPipeline.to_dataframe(results)
        assert len(df) == 6
        assert set(df["structure"]) == {0}
        assert "order" in df.columns


# ── OCR adapters ────────────────────────────────────────────────────────────


class _FixedOCR(BaseOCR):
    def __init__(self, text):
        self.text = text

    def extract(self, image):
        return self.text


class TestReadFragments:
    def test_null_ocr_reads_nothing(self):
        from PIL import Image

        img = Image.new("RGB", (100, 100), "white")
        assert read_fragments(img, [BBox(10, 10, 20, 20)], NullOCR()) == []

    def test_fragments_positioned_on_boxes(self):
        from PIL import Image

        img = Image.new("RGB", (100, 100), "white")
        frags = read_fragments(img, [BBox(10, 10, 20, 20), BBox(40, 10, 70, 20)], _FixedOCR("OH"))
        assert [f.text for f in frags] == ["OH", "OH"]
        assert frags[1].center == (55, 15)


class _ScriptedReader:
    def __init__(self, result=None, error=None):
        self.result, self.error = result, error

    def readtext(self, array, detail=0, allowlist=None):
        if self.error is not None:
            raise self.error
        return self.result


class TestEasyOCRExtractor:
    @pytest.fixture()
    def crop(self):
        from PIL import Image

        return Image.new("RGB", (20, 12), "white")

    def test_joins_detected_text(self, crop):
        ext = EasyOCRExtractor()
        ext._reader = _ScriptedReader(["O", "H "])
        assert ext.extract(crop) == "OH"

    def test_empty_result_is_none(self, crop):
        ext = EasyOCRExtractor()
        ext._reader = _ScriptedReader([])
        assert ext.extract(crop) is None

    def test_engine_failure_is_none(self, crop):
        ext = EasyOCRExtractor()
        ext._reader = _ScriptedReader(error=RuntimeError("model crashed"))
        assert ext.extract(crop) is None

    def test_missing_engine_raises(self, crop, monkeypatch):
        monkeypatch.setitem(sys.modules, "easyocr", None)
        with pytest.raises(ImportError):
            EasyOCRExtractor().extract(crop)
