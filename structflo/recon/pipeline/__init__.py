"""structflo.recon.pipeline — reconstruction pipeline with adapter pattern.

Quick start
-----------
>>> from structflo.recon.pipeline import ReconPipeline, Curve
>>> pipeline = ReconPipeline()
>>> rec = pipeline.process(curves, fragments)      # full pipeline
>>> rec.graph.to_dict()

Step-by-step
------------
>>> rec = pipeline.start(curves, fragments)
>>> rec = pipeline.decimate(rec)
>>> rec = pipeline.consolidate(pipeline.reclassify(rec))
>>> rec = pipeline.normalize(pipeline.repair(pipeline.detect_stereo(rec)))

Custom adapters
---------------
>>> from structflo.recon.pipeline import ImageSampler, ReconPipeline
>>> pipeline = ReconPipeline(sampler=ImageSampler("structure.png", threshold=0.3))
"""

from structflo.recon.pipeline.models import (
    BLANK,
    Atom,
    BBox,
    Bond,
    Curve,
    LabelFragment,
    MoleculeStatistics,
    MolGraph,
    Reconstruction,
    Segment,
    nest,
)
from structflo.recon.pipeline.sampler import BasePixelSampler, ImageSampler, NullSampler
from structflo.recon.pipeline.ocr import BaseOCR, EasyOCRExtractor, NullOCR, read_fragments
from structflo.recon.pipeline.pipeline import ReconPipeline

__all__ = [
    # Pipeline
    "ReconPipeline",
    "Reconstruction",
    # Data models
    "BLANK",
    "Atom",
    "Bond",
    "BBox",
    "Curve",
    "Segment",
    "nest",
    "LabelFragment",
    "MoleculeStatistics",
    "MolGraph",
    # Pixel sampling adapters
    "BasePixelSampler",
    "ImageSampler",
    "NullSampler",
    # OCR adapters
    "BaseOCR",
    "EasyOCRExtractor",
    "NullOCR",
    "read_fragments",
]
