"""
Tests for the equation-of-state strategies.
"""

import numpy as np
import pytest
import sys
from pathlib import Path

# Add src to path for development testing
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fbs_solver.eos import (
    MEV_FM3_TO_CODE_UNITS,
    NEUTRON_MASS_MEV,
    CausalEoS,
    EffectiveBosonicEoS,
    EOSDomainError,
    PolytropicEoS,
    TabulatedEoS,
    create_eos,
)


def centred_secant(x, xp, fp):
    """Slope from the averaged secants at the two nodes around x, interpolated linearly."""
    i = int(np.searchsorted(xp, x, side="right"))
    d1 = 0.5 * ((fp[i] - fp[i - 1]) / (xp[i] - xp[i - 1]) + (fp[i - 1] - fp[i - 2]) / (xp[i - 1] - xp[i - 2]))
    d2 = 0.5 * ((fp[i + 1] - fp[i]) / (xp[i + 1] - xp[i]) + (fp[i] - fp[i - 1]) / (xp[i] - xp[i - 1]))
    return d1 + (d2 - d1) / (xp[i] - xp[i - 1]) * (x - xp[i - 1])


class TestPolytropicEoS:
    """P = kappa rho^Gamma."""

    @pytest.fixture
    def eos(self):
        return PolytropicEoS(kappa=100.0, Gamma=2.0)

    def test_pressure(self, eos):
        assert eos.get_P_from_rho(0.002) == pytest.approx(4e-4)

    @pytest.mark.parametrize("rho", [1e-6, 1e-4, 2e-3, 1e-2])
    def test_round_trip(self, eos, rho):
        P = eos.get_P_from_rho(rho)
        rho_back, epsilon = eos.call_eos(P)
        assert rho_back == pytest.approx(rho, rel=1e-12)
        assert epsilon == pytest.approx(100.0 * rho, rel=1e-12)

    def test_energy_inversion(self, eos):
        P = eos.get_P_from_rho(0.002)
        e = eos.get_e_from_P(P)
        assert e == pytest.approx(0.002 + 4e-4)
        assert eos.get_P_from_e(e) == pytest.approx(P, rel=1e-10)

    def test_dP_de(self, eos):
        rho = 0.002
        e = eos.get_e_from_P(eos.get_P_from_rho(rho))
        h = 1e-8
        numeric = (eos.get_P_from_e(e + h) - eos.get_P_from_e(e - h)) / (2 * h)
        assert eos.dP_de(e) == pytest.approx(numeric, rel=1e-5)

    def test_zero_pressure_is_vacuum(self, eos):
        assert eos.call_eos(0.0) == (0.0, 0.0)
        assert eos.get_P_from_e(0.0) == 0.0

    def test_invalid_parameters(self):
        with pytest.raises(ValueError):
            PolytropicEoS(kappa=-1.0)
        with pytest.raises(ValueError):
            PolytropicEoS(Gamma=1.0)


class TestCausalEoS:

    def test_linear_relation(self):
        eos = CausalEoS(eps_f=0.1, P_f=0.01)
        assert eos.get_P_from_e(0.2) == pytest.approx(0.11)
        assert eos.get_e_from_P(0.11) == pytest.approx(0.2)
        assert eos.dP_de(0.3) == 1.0
        rho, epsilon = eos.call_eos(0.11)
        assert rho == pytest.approx(0.2)
        assert epsilon == 0.0


class TestEffectiveBosonicEoS:

    def test_inverse_pair(self):
        eos = EffectiveBosonicEoS(mu=1.0, lam=10.0)
        assert eos.rho0 == pytest.approx(0.05)
        for P in (1e-6, 1e-3, 0.1):
            e = eos.get_e_from_P(P)
            assert eos.get_P_from_e(e) == pytest.approx(P, rel=1e-10)

    def test_dP_de(self):
        eos = EffectiveBosonicEoS(mu=1.0, lam=10.0)
        e, h = 0.3, 1e-7
        numeric = (eos.get_P_from_e(e + h) - eos.get_P_from_e(e - h)) / (2 * h)
        assert eos.dP_de(e) == pytest.approx(numeric, rel=1e-6)
        assert eos.dP_drho(0.3) == pytest.approx(numeric, rel=1e-6)

    def test_requires_self_interaction(self):
        with pytest.raises(ValueError):
            EffectiveBosonicEoS(mu=1.0, lam=0.0)


class TestTabulatedEoS:
    """Linear interpolation inside the table, explicit errors outside."""

    @pytest.fixture
    def eos(self):
        rho = [1.0, 2.0, 4.0, 8.0]
        P = [0.1, 0.4, 1.6, 6.4]
        e = [1.2, 2.6, 6.0, 14.0]
        return TabulatedEoS(rho, P, e)

    def test_exact_at_nodes(self, eos):
        for rho, P, e in zip(eos.rho_table, eos.P_table, eos.e_table):
            assert eos.get_P_from_rho(rho) == P
            assert eos.get_rho_from_P(P) == rho
            assert eos.get_e_from_P(P) == e

    def test_linear_between_nodes(self, eos):
        assert eos.get_rho_from_P(0.25) == pytest.approx(1.5)
        assert eos.get_P_from_e(4.3) == pytest.approx(1.0)

    def test_monotonic_interpolation(self, eos):
        P = np.linspace(0.1, 6.4, 200)
        rho = [eos.get_rho_from_P(p) for p in P]
        assert np.all(np.diff(rho) >= 0)

    def test_call_eos(self, eos):
        rho, epsilon = eos.call_eos(0.4)
        assert rho == pytest.approx(2.0)
        assert epsilon == pytest.approx(2.6 / 2.0 - 1.0)

    def test_out_of_range_raises(self, eos):
        with pytest.raises(EOSDomainError) as info:
            eos.call_eos(10.0)
        assert info.value.quantity == "P"
        assert info.value.upper == pytest.approx(6.4)
        with pytest.raises(EOSDomainError):
            eos.get_P_from_rho(0.5)

    def test_domain_error_is_value_error(self, eos):
        with pytest.raises(ValueError):
            eos.get_P_from_e(100.0)

    def test_minimum_values(self, eos):
        assert eos.min_P() == pytest.approx(0.1)
        assert eos.min_rho() == pytest.approx(1.0)
        assert eos.min_e() == pytest.approx(1.2)

    def test_slopes_between_nodes(self, eos):
        assert eos.dP_drho(3.0) == pytest.approx(0.675)
        assert eos.dP_drho(3.0) == pytest.approx(centred_secant(3.0, eos.rho_table, eos.P_table))
        assert eos.dP_de(4.0) == pytest.approx(centred_secant(4.0, eos.e_table, eos.P_table))

    def test_slope_at_inner_nodes(self, eos):
        # mean of the neighbouring secants (0.3 and 0.6)
        assert eos.dP_drho(2.0) == pytest.approx(0.45)
        assert eos.dP_drho(4.0) == pytest.approx(0.9)

    def test_slope_outside_inner_nodes_raises(self, eos):
        with pytest.raises(EOSDomainError):
            eos.dP_drho(1.5)
        with pytest.raises(EOSDomainError):
            eos.dP_de(13.0)

    def test_zero_density_row(self):
        eos = TabulatedEoS([0.0, 1.0, 2.0], [0.0, 0.1, 0.2], [0.0, 1.1, 2.3])
        assert eos.call_eos(0.0) == (0.0, 0.0)
        rho, epsilon = eos.call_eos(0.1)
        assert epsilon == pytest.approx(0.1)

    def test_rejects_non_monotonic_pressure(self):
        with pytest.raises(ValueError):
            TabulatedEoS([1.0, 2.0, 3.0], [0.1, 0.1, 0.2], [1.0, 2.0, 3.0])

    def test_rejects_short_table(self):
        with pytest.raises(ValueError):
            TabulatedEoS([1.0], [0.1], [1.0])


class TestTableFile:
    """Loading tables from text files."""

    TABLE = (
        "# nb [1/fm^3]  Y_e  e [MeV/fm^3]  P [MeV/fm^3]\n"
        "0.01  0.1  9.4  0.01\n"
        "\n"
        "0.02  0.1  18.9  0.05\n"
        "0.04  0.1  38.0  0.30   # comment rows are skipped\n"
        "0.08  0.1  77.0  2.00\n"
    )

    def test_from_file_units(self, tmp_path):
        path = tmp_path / "eos.beta"
        path.write_text(self.TABLE)
        eos = TabulatedEoS.from_file(path)

        assert len(eos.P_table) == 3
        assert eos.rho_table[0] == pytest.approx(0.01 * MEV_FM3_TO_CODE_UNITS * NEUTRON_MASS_MEV)
        assert eos.e_table[0] == pytest.approx(9.4 * MEV_FM3_TO_CODE_UNITS)
        assert eos.P_table[-1] == pytest.approx(2.0 * MEV_FM3_TO_CODE_UNITS)

    def test_custom_columns_and_factors(self, tmp_path):
        path = tmp_path / "eos.txt"
        path.write_text("1.0 2.0 3.0\n2.0 4.0 5.0\n")
        eos = TabulatedEoS.from_file(path, columns={"rho": 0, "P": 1, "e": 2},
                                     density_factor=1.0, energy_factor=1.0)
        assert eos.get_rho_from_P(3.0) == pytest.approx(1.5)

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(OSError):
            TabulatedEoS.from_file(tmp_path / "missing.beta")

    def test_malformed_row_raises(self, tmp_path):
        path = tmp_path / "bad.beta"
        path.write_text("0.01 0.1 9.4 0.01\n0.02 0.1 abc 0.05\n")
        with pytest.raises(ValueError):
            TabulatedEoS.from_file(path)

    def test_short_row_raises(self, tmp_path):
        path = tmp_path / "short.beta"
        path.write_text("0.01 0.1 9.4 0.01\n0.02 0.1\n")
        with pytest.raises(ValueError):
            TabulatedEoS.from_file(path)


class TestCreateEos:

    def test_known_kinds(self):
        assert isinstance(create_eos("polytropic"), PolytropicEoS)
        assert isinstance(create_eos("causal", eps_f=0.1), CausalEoS)
        assert isinstance(create_eos("effective_bosonic", mu=1.0, lam=1.0), EffectiveBosonicEoS)

    def test_unknown_kind(self):
        with pytest.raises(ValueError, match="Unknown EOS kind"):
            create_eos("stiff")
