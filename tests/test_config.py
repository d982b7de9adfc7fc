"""
Tests for YAML configuration handling.
"""

import pytest
import sys
from pathlib import Path

# Add src to path for development testing
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fbs_solver.config import Config, load_config, save_config, validate_config


class TestDefaults:

    def test_defaults_are_valid(self):
        config = Config()
        validate_config(config)
        assert config.star.mu == 1.0
        assert config.integration.r_init == 1e-10
        assert config.integration.r_end == 1000.0
        assert config.bisection.delta_omega == 1e-15

    def test_to_options(self):
        config = Config()
        config.integration.target_error = 1e-7
        options = config.integration.to_options(save_intermediate=True)
        assert options.target_error == 1e-7
        assert options.save_intermediate
        assert not config.integration.to_options().save_intermediate


class TestDictConversion:

    def test_round_trip(self):
        config = Config()
        config.eos.kind = "table"
        config.eos.table_path = "eos/DD2.beta"
        config.eos.columns = {"rho": 0, "e": 2, "P": 3}
        config.sweep.spacing = "log"
        restored = Config.from_dict(config.to_dict())
        assert restored.to_dict() == config.to_dict()

    def test_partial_dict_keeps_defaults(self):
        config = Config.from_dict({"star": {"lam": 5.0}, "parallel": {"n_workers": 4}})
        assert config.star.lam == 5.0
        assert config.star.mu == 1.0
        assert config.parallel.n_workers == 4
        assert config.bisection.omega_1 == 10.0

    def test_nbnf_section(self):
        config = Config.from_dict({"nbnf": {"ratio_max": 4.0, "spacing": "log"}})
        assert config.nbnf.ratio_max == 4.0
        assert config.nbnf.spacing == "log"
        assert config.nbnf.ratio_min == 0.1
        assert Config.from_dict(config.to_dict()).nbnf == config.nbnf

    def test_unknown_keys_ignored(self):
        config = Config.from_dict({"star": {"spin": 1.0}, "extra": {"a": 1}})
        assert not hasattr(config.star, "spin")


class TestLoadConfig:

    def test_load_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "star:\n"
            "  rho_c: 0.001\n"
            "  phi_c: 0.01\n"
            "eos:\n"
            "  kind: causal\n"
            "  eps_f: 0.1\n"
            "sweep:\n"
            "  n_rho: 4\n"
        )
        config = load_config(path)
        assert config.star.rho_c == 0.001
        assert config.eos.kind == "causal"
        assert config.sweep.n_rho == 4

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path).to_dict() == Config().to_dict()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml")

    def test_invalid_values_rejected(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("bisection:\n  omega_0: 5.0\n  omega_1: 2.0\n")
        with pytest.raises(ValueError, match="omega_1"):
            load_config(path)

    def test_save_and_load(self, tmp_path):
        config = Config()
        config.run.run_name = "saved"
        config.star.lam = 3.0
        path = tmp_path / "nested" / "config.yaml"
        save_config(config, path)
        assert load_config(path).to_dict() == config.to_dict()


class TestValidation:

    @pytest.mark.parametrize("section, key, value", [
        ("run", "log_level", "LOUD"),
        ("star", "mu", 0.0),
        ("star", "lam", -1.0),
        ("star", "phi_c", 0.0),
        ("eos", "kind", "stiff"),
        ("eos", "Gamma", 1.0),
        ("integration", "min_stepsize", 0.0),
        ("integration", "r_init", 0.0),
        ("bisection", "n_mode", -1),
        ("bisection", "delta_omega", 0.0),
        ("sweep", "n_rho", 0),
        ("sweep", "spacing", "cubic"),
        ("nbnf", "ratio_min", 0.0),
        ("nbnf", "spacing", "cubic"),
        ("nbnf", "phi_0_min", 0.0),
        ("nbnf", "max_steps", 0),
        ("parallel", "n_workers", 0),
    ])
    def test_invalid_value(self, section, key, value):
        config = Config()
        setattr(getattr(config, section), key, value)
        with pytest.raises(ValueError):
            validate_config(config)

    def test_table_needs_path(self):
        config = Config()
        config.eos.kind = "table"
        with pytest.raises(ValueError, match="table_path"):
            validate_config(config)

    def test_effective_bosonic_needs_self_interaction(self):
        config = Config()
        config.eos.kind = "effective_bosonic"
        with pytest.raises(ValueError):
            validate_config(config)
        config.star.lam = 1.0
        validate_config(config)
