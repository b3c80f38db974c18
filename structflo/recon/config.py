"""Reconstruction thresholds dataclass and factory functions."""

from dataclasses import dataclass, fields, replace
from typing import Optional

from structflo.recon.errors import ConfigError


@dataclass
class ReconConfig:
    # Arena capacity (insertions past these are silently refused)
    max_atoms: int = 10000
    max_bonds: int = 10000

    # Curve decimation
    v_displacement: float = 3.0       # min spacing when looking ahead along a path
    dir_change: float = 2.0           # lateral offset that counts as a change of direction

    # Bond geometry
    parallel_tolerance: float = 0.95  # |cos| above which two bonds count as parallel
    max_bond_thickness: float = 10.0
    avg_bond_length: Optional[float] = None  # override the measured 75th-percentile length
    fallback_bond_length: float = 30.0        # used when nothing can be measured

    # Pixel sampling
    gray_threshold: float = 0.2       # min distance from background (0..1) to count as ink

    # Dashed (hashed) bonds
    max_dash_area: float = 40.0
    dash_max_gap: Optional[float] = None  # default: 2 * default_line_thickness + 5
    min_dashes: int = 3
    thick_dashes: bool = False        # measure dash area by flood fill instead of path area

    # Tiny curves collapsed to a single bond
    small_curve_max_area: Optional[float] = None  # default: 2 * average bond length
    small_curve_area: float = 20.0

    # Double / triple bonds
    double_bond_quantile: float = 0.5
    double_bond_margin: float = 2.0
    skeleton_merge_distance: float = 3.0

    # Wedges and line thickness
    wedge_limit: float = 3.0          # min thickness gain over the sampled span
    wedge_margin: int = 1             # pixels skipped at each bond end while sampling
    wedge_thickness_fraction: float = 0.5
    default_line_thickness: float = 1.5

    # Aromatic circles
    min_circle_vertices: int = 5

    # Repair
    collapse_distance: float = 3.0
    flatten_tolerance: float = 3.0

    def __post_init__(self) -> None:
        if self.max_atoms < 1 or self.max_bonds < 1:
            raise ConfigError("max_atoms and max_bonds must be positive")
        if not 0.0 < self.parallel_tolerance <= 1.0:
            raise ConfigError(f"parallel_tolerance must be in (0, 1], got {self.parallel_tolerance}")
        if not 0.0 <= self.double_bond_quantile <= 1.0:
            raise ConfigError(
                f"double_bond_quantile must be in [0, 1], got {self.double_bond_quantile}"
            )
        if not 0.0 <= self.gray_threshold < 1.0:
            raise ConfigError(f"gray_threshold must be in [0, 1), got {self.gray_threshold}")
        if self.min_dashes < 2:
            raise ConfigError("min_dashes must be at least 2")
        if self.avg_bond_length is not None and self.avg_bond_length <= 0:
            raise ConfigError("avg_bond_length must be positive when given")

    @property
    def dash_gap(self) -> float:
        if self.dash_max_gap is not None:
            return self.dash_max_gap
        return 2 * self.default_line_thickness + 5


def make_config(thick: bool = False, **overrides) -> ReconConfig:
    """Return a ReconConfig, optionally tuned for thick-stroke drawings.

    Thick drawings (bold scans, low-resolution renders) trace every dash as a
    blob whose vector area is unreliable, so dash areas are measured by flood
    fill and the dash area ceiling is raised.  Keyword *overrides* replace any
    field after the preset is applied.
    """
    cfg = ReconConfig()
    if thick:
        cfg = replace(cfg, thick_dashes=True, max_dash_area=80.0, max_bond_thickness=20.0)
    unknown = set(overrides) - {f.name for f in fields(ReconConfig)}
    if unknown:
        raise ConfigError(f"Unknown config fields: {', '.join(sorted(unknown))}")
    return replace(cfg, **overrides)
