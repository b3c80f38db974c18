"""ReconPipeline: traced curves → cleaned atom/bond graph."""

from __future__ import annotations

import json
import logging
from typing import Mapping, Sequence

from structflo.recon.chem import molecule_statistics
from structflo.recon.config import ReconConfig
from structflo.recon.pipeline.models import (
    Curve,
    LabelFragment,
    MolGraph,
    Reconstruction,
)
from structflo.recon.pipeline.sampler import BasePixelSampler, NullSampler
from structflo.recon.stages import (
    DEFAULT_FIX,
    DEFAULT_SUPERATOMS,
    assign_charges,
    average_bond_length,
    collapse,
    collapse_double_bonds,
    collapse_doubleup_bonds,
    count_valences,
    decimate_curves,
    dist_double_bonds,
    double_triple_bonds,
    expand_superatoms,
    extend_terminal_bonds_to_bonds,
    extend_terminal_bonds_to_labels,
    find_aromatic_rings,
    find_dashed_bonds,
    find_up_down_bonds,
    find_wedge_bonds,
    fix_one_sided_bonds,
    flatten_bonds,
    mark_terminal_atoms,
    normalize_labels,
    remove_disconnected_atoms,
    remove_small_curves,
    remove_zero_bonds,
    resolve_bridge_bonds,
    skeletize,
)

logger = logging.getLogger(__name__)


class ReconPipeline:
    """Six-stage reconstruction of a structure graph from traced curves.

    Every stage is exposed as a step method taking and returning a
    :class:`Reconstruction`, and ``process()`` runs them all in order.

    Low-level access
    ----------------
    >>> rec = pipeline.start(curves, fragments, width=400, height=300)
    >>> rec = pipeline.decimate(rec)
    >>> rec = pipeline.reclassify(rec)
    >>> rec = pipeline.consolidate(rec)
    >>> rec = pipeline.detect_stereo(rec)
    >>> rec = pipeline.repair(rec)
    >>> rec = pipeline.normalize(rec)

    High-level access
    -----------------
    >>> rec = pipeline.process(curves, fragments)
    >>> data = ReconPipeline.to_records([rec])

    Adapter pattern
    ---------------
    Pass any ``BasePixelSampler`` to measure stroke widths on your own raster
    source.  Without one, pixel-based checks (wedges, stroke-side merging)
    find no ink and leave the graph alone.
    """

    def __init__(
        self,
        *,
        config: ReconConfig | None = None,
        sampler: BasePixelSampler | None = None,
        fix: Mapping[str, str] | None = None,
        superatoms: Mapping[str, str] | None = None,
    ) -> None:
        """
        Args:
            config:     Thresholds.  Defaults to ``ReconConfig()``.
            sampler:    Pixel sampler over the source image.  Defaults to a
                        NullSampler sized like the input.
            fix:        Label normalization table.  Defaults to ``DEFAULT_FIX``.
            superatoms: Shorthand group → SMILES table.  Defaults to
                        ``DEFAULT_SUPERATOMS``.
        """
        self.config = config or ReconConfig()
        self._sampler = sampler
        self.fix = dict(DEFAULT_FIX if fix is None else fix)
        self.superatoms = dict(DEFAULT_SUPERATOMS if superatoms is None else superatoms)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _sampler_for(self, graph: MolGraph) -> BasePixelSampler:
        if self._sampler is None:
            return NullSampler(int(graph.width), int(graph.height))
        return self._sampler

    @staticmethod
    def _extent(curves: Sequence[Curve]) -> tuple[float, float]:
        xs = [x for c in curves for x, _, _ in c.points()]
        ys = [y for c in curves for _, y, _ in c.points()]
        if not xs:
            return 0.0, 0.0
        return max(xs) + 1, max(ys) + 1

    # ------------------------------------------------------------------
    # Low-level step methods
    # ------------------------------------------------------------------

    def start(
        self,
        curves: Sequence[Curve],
        fragments: Sequence[LabelFragment] = (),
        width: float | None = None,
        height: float | None = None,
    ) -> Reconstruction:
        """Create an empty graph sized for the image the curves were traced from.

        The size comes from *width*/*height*, else from the sampler, else from
        the extent of the curves.
        """
        if width is None or height is None:
            if self._sampler is not None and self._sampler.width and self._sampler.height:
                width, height = self._sampler.width, self._sampler.height
            else:
                width, height = self._extent(curves)
        graph = MolGraph(
            width,
            height,
            max_atoms=self.config.max_atoms,
            max_bonds=self.config.max_bonds,
        )
        return Reconstruction(
            graph=graph,
            curves=list(curves),
            fragments=list(fragments),
            thickness=self.config.default_line_thickness,
            stroke_width=self.config.default_line_thickness,
        )

    def decimate(self, rec: Reconstruction) -> Reconstruction:
        """Stage 1: reduce every curve to a minimal polygon of atoms and bonds."""
        cfg = self.config
        decimate_curves(rec.graph, rec.curves, cfg)
        remove_zero_bonds(rec.graph)
        rec.avg_bond_length = (
            cfg.avg_bond_length
            or average_bond_length(rec.graph)
            or cfg.fallback_bond_length
        )
        logger.debug("Average bond length %.2f", rec.avg_bond_length)
        return rec

    def reclassify(self, rec: Reconstruction) -> Reconstruction:
        """Stage 2: turn dot rows into hashed bonds and tiny curves into single bonds."""
        sampler = self._sampler_for(rec.graph)
        find_dashed_bonds(rec.graph, rec.curves, sampler, rec.avg_bond_length, self.config)
        remove_small_curves(
            rec.graph, rec.curves, rec.avg_bond_length, rec.thickness, self.config
        )
        remove_zero_bonds(rec.graph)
        return rec

    def consolidate(self, rec: Reconstruction) -> Reconstruction:
        """Stage 3: merge duplicate edges and stroke sides, infer double/triple bonds."""
        cfg = self.config
        graph = rec.graph
        remove_zero_bonds(graph)
        collapse_doubleup_bonds(graph)
        rec.stroke_width = skeletize(graph, self._sampler_for(graph), rec.avg_bond_length, cfg)
        rec.max_dist_double_bond = dist_double_bonds(graph, rec.avg_bond_length, cfg)
        double_triple_bonds(graph, rec.avg_bond_length, rec.max_dist_double_bond, cfg)
        remove_zero_bonds(graph)
        return rec

    def detect_stereo(self, rec: Reconstruction) -> Reconstruction:
        """Stage 4: wedges, aromatic circles and up/down single bonds."""
        cfg = self.config
        graph = rec.graph
        rec.thickness = find_wedge_bonds(
            graph,
            self._sampler_for(graph),
            rec.avg_bond_length,
            rec.max_dist_double_bond,
            cfg,
        )
        find_aromatic_rings(graph, rec.curves, rec.avg_bond_length, cfg)
        find_up_down_bonds(graph, rec.thickness)
        remove_zero_bonds(graph)
        return rec

    def repair(self, rec: Reconstruction) -> Reconstruction:
        """Stage 5: close gaps, merge near-duplicates and undo bond crossings."""
        cfg = self.config
        graph = rec.graph
        avg, max_dist = rec.avg_bond_length, rec.max_dist_double_bond
        maxh = 2 * rec.thickness
        dist = max(cfg.collapse_distance, rec.thickness, rec.stroke_width)

        extend_terminal_bonds_to_labels(graph, rec.fragments, avg, maxh, max_dist)
        remove_disconnected_atoms(graph)
        collapse(graph, dist)
        extend_terminal_bonds_to_bonds(graph, avg, maxh, max_dist)
        collapse(graph, dist)
        flatten_bonds(graph, cfg.flatten_tolerance)
        collapse_double_bonds(graph, max_dist)
        fix_one_sided_bonds(graph, rec.thickness, avg, cfg.parallel_tolerance)
        remove_zero_bonds(graph)
        remove_disconnected_atoms(graph)
        rec.statistics = resolve_bridge_bonds(graph, rec.thickness)
        mark_terminal_atoms(graph)
        return rec

    def normalize(self, rec: Reconstruction) -> Reconstruction:
        """Stage 6: charges, canonical labels and superatom expansion."""
        graph = rec.graph
        assign_charges(graph)
        normalize_labels(graph, self.fix)
        expand_superatoms(graph, self.superatoms, rec.avg_bond_length)
        remove_zero_bonds(graph)
        count_valences(graph)
        mark_terminal_atoms(graph)
        rec.statistics = molecule_statistics(graph)
        return rec

    # ------------------------------------------------------------------
    # High-level entry point
    # ------------------------------------------------------------------

    def process(
        self,
        curves: Sequence[Curve],
        fragments: Sequence[LabelFragment] = (),
        width: float | None = None,
        height: float | None = None,
    ) -> Reconstruction:
        """Full pipeline in one call: all six stages in order."""
        rec = self.start(curves, fragments, width, height)
        for step in (
            self.decimate,
            self.reclassify,
            self.consolidate,
            self.detect_stereo,
            self.repair,
            self.normalize,
        ):
            rec = step(rec)
        logger.debug("Reconstructed %r", rec.graph)
        return rec

    # ------------------------------------------------------------------
    # Output helpers (static, callable on the class)
    # ------------------------------------------------------------------

    @staticmethod
    def to_records(results: list[Reconstruction]) -> list[dict]:
        """Serialise reconstructions to a list of plain dicts (JSON-serialisable)."""
        return [r.to_dict() for r in results]

    @staticmethod
    def to_json(results: list[Reconstruction], indent: int = 2) -> str:
        """Serialise reconstructions to a formatted JSON string."""
        return json.dumps(ReconPipeline.to_records(results), indent=indent)

    @staticmethod
    def to_dataframe(results: list[Reconstruction]):
        """One row per bond, tagged with the index of its reconstruction.

        Requires pandas to be installed (``pip install pandas``).
        """
        import pandas as pd  # type: ignore[import]

        rows = []
        for n, rec in enumerate(results):
            for bond in rec.to_dict()["bonds"]:
                rows.append({"structure": n, **bond})
        return pd.DataFrame(rows)
