"""Tests for structflo.recon.config — ReconConfig dataclass and factory."""

import pytest

from structflo.recon.config import ReconConfig, make_config
from structflo.recon.errors import ConfigError, ReconError


class TestReconConfig:
    def test_defaults(self):
        cfg = ReconConfig()
        assert cfg.max_atoms == 10000
        assert cfg.max_bonds == 10000
        assert cfg.v_displacement == 3
        assert cfg.parallel_tolerance == 0.95
        assert cfg.min_dashes == 3
        assert cfg.avg_bond_length is None

    def test_dash_gap_derived_from_line_thickness(self):
        assert ReconConfig().dash_gap == pytest.approx(8.0)
        assert ReconConfig(default_line_thickness=2.0).dash_gap == pytest.approx(9.0)

    def test_dash_gap_override(self):
        assert ReconConfig(dash_max_gap=12).dash_gap == 12

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_atoms": 0},
            {"parallel_tolerance": 1.5},
            {"double_bond_quantile": -0.1},
            {"gray_threshold": 1.0},
            {"min_dashes": 1},
            {"avg_bond_length": 0},
        ],
    )
    def test_invalid_values_raise(self, kwargs):
        with pytest.raises(ConfigError):
            ReconConfig(**kwargs)

    def test_config_error_is_value_error(self):
        assert issubclass(ConfigError, ValueError)
        assert issubclass(ConfigError, ReconError)


class TestMakeConfig:
    def test_plain_matches_defaults(self):
        assert make_config() == ReconConfig()

    def test_thick_preset(self):
        cfg = make_config(thick=True)
        assert cfg.thick_dashes is True
        assert cfg.max_dash_area > ReconConfig().max_dash_area
        assert cfg.max_bond_thickness > ReconConfig().max_bond_thickness

    def test_overrides_win_over_preset(self):
        cfg = make_config(thick=True, max_dash_area=55.0)
        assert cfg.max_dash_area == 55.0
        assert cfg.thick_dashes is True

    def test_unknown_field_raises(self):
        with pytest.raises(ConfigError, match="bogus"):
            make_config(bogus=1)

    def test_overrides_are_validated(self):
        with pytest.raises(ConfigError):
            make_config(min_dashes=0)
