"""structflo.recon.stages — the six geometric reconstruction stages.

Every function here works in place on a :class:`~structflo.recon.pipeline.models.MolGraph`.
``ReconPipeline`` runs them in order; they are exposed individually for
debugging and for custom pipelines.
"""

from structflo.recon.stages.decimation import average_bond_length, decimate_curve, decimate_curves
from structflo.recon.stages.labels import (
    DEFAULT_FIX,
    DEFAULT_SUPERATOMS,
    assign_charges,
    count_valences,
    expand_superatoms,
    fix_atom_name,
    normalize_labels,
)
from structflo.recon.stages.multiplicity import (
    collapse_doubleup_bonds,
    dist_double_bonds,
    double_triple_bonds,
    remove_zero_bonds,
    skeletize,
)
from structflo.recon.stages.repair import (
    collapse,
    collapse_atoms,
    collapse_bonds,
    collapse_double_bonds,
    extend_terminal_bonds_to_bonds,
    extend_terminal_bonds_to_labels,
    fix_one_sided_bonds,
    flatten_bonds,
    mark_terminal_atoms,
    remove_disconnected_atoms,
    resolve_bridge_bonds,
)
from structflo.recon.stages.small_features import find_dashed_bonds, remove_small_curves
from structflo.recon.stages.stereo import (
    find_aromatic_rings,
    find_up_down_bonds,
    find_wedge_bonds,
    thickness_horizontal,
    thickness_vertical,
)

__all__ = [
    # 1. Decimation
    "decimate_curve",
    "decimate_curves",
    "average_bond_length",
    # 2. Small features
    "find_dashed_bonds",
    "remove_small_curves",
    # 3. Consolidation and multiplicity
    "remove_zero_bonds",
    "collapse_doubleup_bonds",
    "skeletize",
    "dist_double_bonds",
    "double_triple_bonds",
    # 4. Stereo
    "thickness_vertical",
    "thickness_horizontal",
    "find_wedge_bonds",
    "find_up_down_bonds",
    "find_aromatic_rings",
    # 5. Repair
    "extend_terminal_bonds_to_labels",
    "extend_terminal_bonds_to_bonds",
    "collapse",
    "collapse_atoms",
    "collapse_bonds",
    "flatten_bonds",
    "collapse_double_bonds",
    "fix_one_sided_bonds",
    "remove_disconnected_atoms",
    "mark_terminal_atoms",
    "resolve_bridge_bonds",
    # 6. Labels
    "DEFAULT_FIX",
    "DEFAULT_SUPERATOMS",
    "assign_charges",
    "count_valences",
    "fix_atom_name",
    "normalize_labels",
    "expand_superatoms",
]
