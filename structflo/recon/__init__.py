"""structflo.recon — chemical structure graph reconstruction from traced line drawings.

Quick start
-----------
>>> from structflo.recon import Curve, ReconPipeline, graph_to_mol
>>> rec = ReconPipeline().process([Curve.from_polygon(...), ...])
>>> mol = graph_to_mol(rec.graph, rec.avg_bond_length)
"""

from structflo.recon.pipeline import (
    Curve,
    ImageSampler,
    LabelFragment,
    MolGraph,
    ReconPipeline,
    Reconstruction,
)
from structflo.recon.chem import graph_to_mol, molecule_statistics
from structflo.recon.config import ReconConfig, make_config

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "ReconPipeline",
    "Reconstruction",
    "ReconConfig",
    "make_config",
    "Curve",
    "LabelFragment",
    "MolGraph",
    "ImageSampler",
    "graph_to_mol",
    "molecule_statistics",
]
