import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal

from robustpo.oracle import (
    ClosedFormMinimizer, Cut, CutAcceptancePolicy, DegenerateNormError,
    EllipsoidalSet, GurobiMinimizer, NoViolation, NumericalMinimizer,
    SeparationOracle
)


def random_portfolio(rng, n):
    return rng.dirichlet(np.ones(n))


def random_set(rng, n, radius=1.0):
    return EllipsoidalSet(
        mean=rng.uniform(1.0, 1.3, n),
        deviation=rng.uniform(0.01, 0.2, n),
        radius=radius
    )


class TestEllipsoidalSet:
    def test_data_is_read_only(self):
        U = EllipsoidalSet([1.0, 1.1], [0.1, 0.2], 1)
        assert U.radius == 1.0
        assert U.dimension == 2
        with pytest.raises(ValueError):
            U.mean[0] = 2.0

    @pytest.mark.parametrize("mean, deviation, radius", [
        ([], [], 1.0),
        ([1.0, 1.1], [0.1], 1.0),
        ([1.0, 1.1], [0.1, -0.2], 1.0),
        ([1.0, np.nan], [0.1, 0.2], 1.0),
        ([1.0, 1.1], [0.1, 0.2], -1.0),
        ([1.0, 1.1], [0.1, 0.2], "wide"),
        ([[1.0, 1.1]], [[0.1, 0.2]], 1.0),
    ])
    def test_invalid_data(self, mean, deviation, radius):
        with pytest.raises(ValueError):
            EllipsoidalSet(mean, deviation, radius)

    def test_weighted_norm(self):
        U = EllipsoidalSet([1.0, 1.0], [3.0, 4.0], 1.0)
        assert U.weighted_norm(np.array([1.0, 1.0])) == pytest.approx(5.0)


class TestClosedFormMinimizer:
    def test_worked_example(self):
        # single asset carrying all the deviation
        minimizer = ClosedFormMinimizer(
            EllipsoidalSet([1.0, 1.0], [1.0, 1.0], 1.0))
        worst_p, worst_z = minimizer.minimize_over_uncertainty([1.0, 0.0])
        assert worst_z == pytest.approx(0.0)
        assert_allclose(worst_p, [0.0, 1.0])

    def test_worst_case_below_nominal(self, rng):
        U = random_set(rng, 10)
        minimizer = ClosedFormMinimizer(U)
        for _ in range(20):
            x = random_portfolio(rng, 10)
            _, worst_z = minimizer.minimize_over_uncertainty(x)
            assert worst_z <= U.mean@x

    def test_zero_radius_gives_nominal(self, rng):
        U = EllipsoidalSet(rng.uniform(1, 1.3, 5), rng.uniform(0, .2, 5), 0)
        x = random_portfolio(rng, 5)
        worst_p, worst_z = ClosedFormMinimizer(U).minimize_over_uncertainty(x)
        assert worst_z == pytest.approx(U.mean@x)
        assert_array_equal(worst_p, U.mean)

    def test_monotone_in_radius(self, rng):
        mean, deviation = rng.uniform(1, 1.3, 6), rng.uniform(0.01, .2, 6)
        x = random_portfolio(rng, 6)
        worst = [
            ClosedFormMinimizer(EllipsoidalSet(mean, deviation, radius))
            .minimize_over_uncertainty(x)[1]
            for radius in (0.0, 0.5, 1.0, 2.0, 4.0)
        ]
        assert all(a >= b for a, b in zip(worst, worst[1:]))

    def test_minimizer_lies_on_boundary(self, rng):
        U = random_set(rng, 8, radius=2.5)
        x = random_portfolio(rng, 8)
        worst_p, worst_z = ClosedFormMinimizer(U).minimize_over_uncertainty(x)
        d = (worst_p - U.mean)/U.deviation
        assert np.linalg.norm(d) == pytest.approx(U.radius)
        assert worst_p@x == pytest.approx(worst_z)

    def test_repeated_calls_agree(self, rng):
        U = random_set(rng, 8)
        x = random_portfolio(rng, 8)
        original = x.copy()
        minimizer = ClosedFormMinimizer(U)
        p1, z1 = minimizer.minimize_over_uncertainty(x)
        p2, z2 = minimizer.minimize_over_uncertainty(x)
        assert_array_equal(p1, p2)
        assert z1 == z2
        assert_array_equal(x, original)

    def test_degenerate_portfolio(self):
        minimizer = ClosedFormMinimizer(
            EllipsoidalSet([1.0, 1.0], [0.0, 0.0], 1.0))
        with pytest.raises(DegenerateNormError):
            minimizer.minimize_over_uncertainty([0.5, 0.5])

    def test_wrong_length_portfolio(self):
        minimizer = ClosedFormMinimizer(
            EllipsoidalSet([1.0, 1.0], [0.1, 0.1], 1.0))
        with pytest.raises(ValueError):
            minimizer.minimize_over_uncertainty([1.0, 0.0, 0.0])


class TestNumericalMinimizer:
    def test_agrees_with_closed_form(self, rng):
        U = random_set(rng, 10, radius=1.5)
        exact = ClosedFormMinimizer(U)
        numerical = NumericalMinimizer(U)
        for _ in range(5):
            x = random_portfolio(rng, 10)
            p_exact, z_exact = exact.minimize_over_uncertainty(x)
            p_num, z_num = numerical.minimize_over_uncertainty(x)
            assert z_num == pytest.approx(z_exact, abs=1e-6)
            assert_allclose(p_num, p_exact, atol=1e-4)

    def test_stays_within_set(self, rng):
        U = random_set(rng, 6, radius=3.0)
        p, _ = NumericalMinimizer(U).minimize_over_uncertainty(
            random_portfolio(rng, 6))
        assert np.linalg.norm((p - U.mean)/U.deviation) <= U.radius + 1e-9

    def test_degenerate_portfolio(self):
        minimizer = NumericalMinimizer(
            EllipsoidalSet([1.0, 1.0], [0.0, 0.2], 1.0))
        with pytest.raises(DegenerateNormError):
            minimizer.minimize_over_uncertainty([1.0, 0.0])


@pytest.mark.solver
class TestGurobiMinimizer:
    def test_agrees_with_closed_form(self, rng):
        U = random_set(rng, 6, radius=1.5)
        x = random_portfolio(rng, 6)
        p_exact, z_exact = ClosedFormMinimizer(U).minimize_over_uncertainty(x)
        p_grb, z_grb = GurobiMinimizer(U).minimize_over_uncertainty(x)
        assert z_grb == pytest.approx(z_exact, abs=1e-5)
        assert_allclose(p_grb, p_exact, atol=1e-3)


class TestCutAcceptancePolicy:
    def test_accepts_clear_violations_only(self):
        policy = CutAcceptancePolicy(1e-2)
        assert policy.accept(0.98, 1.0)
        assert not policy.accept(0.995, 1.0)
        assert not policy.accept(1.0, 1.0)

    @pytest.mark.parametrize("tolerance", [
        0, -1e-3, "tight", None, float("nan"), float("inf")
    ])
    def test_invalid_tolerance(self, tolerance):
        with pytest.raises(ValueError):
            CutAcceptancePolicy(tolerance)


class TestSeparationOracle:
    def setup_method(self):
        self.oracle = SeparationOracle(ClosedFormMinimizer(
            EllipsoidalSet([1.0, 1.0], [1.0, 1.0], 1.0)))

    def test_cut_for_optimistic_candidate(self):
        verdict = self.oracle.separate([1.0, 0.0], 1.0)
        assert isinstance(verdict, Cut)
        assert verdict.worst_z == pytest.approx(0.0)
        assert_allclose(verdict.worst_p, [0.0, 1.0])

    def test_no_violation_within_tolerance(self):
        verdict = self.oracle.separate([1.0, 0.0], 0.005)
        assert isinstance(verdict, NoViolation)
        assert verdict.worst_z == pytest.approx(0.0)
        assert not verdict.degenerate

    def test_degenerate_candidate_has_no_cut(self):
        oracle = SeparationOracle(ClosedFormMinimizer(
            EllipsoidalSet([1.0, 1.2], [0.0, 0.0], 1.0)))
        verdict = oracle.separate([0.5, 0.5], 5.0)
        assert isinstance(verdict, NoViolation)
        assert verdict.degenerate
        assert verdict.worst_z == pytest.approx(1.1)

    def test_no_spread_equal_means(self):
        # every p in the set pays the same for x, so nothing can be cut
        oracle = SeparationOracle(ClosedFormMinimizer(
            EllipsoidalSet([1.0, 1.0], [0.0, 0.0], 1.0)))
        verdict = oracle.separate([0.5, 0.5], 1.0)
        assert isinstance(verdict, NoViolation)
        assert verdict.worst_z == 1.0
        assert verdict.degenerate

    def test_worst_case(self):
        assert self.oracle.worst_case([1.0, 0.0]) == pytest.approx(0.0)
        assert self.oracle.worst_case([0.5, 0.5]) == \
            pytest.approx(1 - np.sqrt(0.5))

    def test_separation_is_repeatable(self):
        first = self.oracle.separate([0.25, 0.75], 2.0)
        second = self.oracle.separate([0.25, 0.75], 2.0)
        assert_array_equal(first.worst_p, second.worst_p)
        assert first.worst_z == second.worst_z
