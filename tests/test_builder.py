import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal

from robustpo.builder import (
    LinearConstraint, ProblemBuilder, VariableBlock, build_master
)


@pytest.fixture
def toy():
    builder = ProblemBuilder("toy")
    x = builder.add_variables("x", 2, lb=0, ub=1)
    t = builder.add_variable("t", lb=-np.inf, ub=5, integer=True)
    builder.add_constraint([(x, [1, 1])], "<=", 1, name="budget")
    builder.add_constraint([(x, 2.0), (t, -1.0)], ">=", 0)
    builder.set_objective([(x, [2, 3])], maximize=True)
    return builder, x, t


class TestProblemBuilder:
    def test_build(self, toy):
        builder, x, t = toy
        model = builder.build()

        assert model.name == "toy"
        assert model.variable_names == ("x[0]", "x[1]", "t")
        assert model.num_variables == 3
        assert_array_equal(model.lower, [0, 0, -np.inf])
        assert_array_equal(model.upper, [1, 1, 5])
        assert_array_equal(model.integer, [False, False, True])
        assert_array_equal(model.objective, [2, 3, 0])
        assert model.maximize

        budget, second = model.constraints
        assert budget.name == "budget"
        assert_array_equal(budget.coefficients, [1, 1, 0])
        assert second.name == "R1"
        assert second.sense == ">="
        assert_array_equal(second.coefficients, [2, 2, -1])

    def test_blocks(self, toy):
        _, x, t = toy
        assert_array_equal(x.indices, [0, 1])
        assert t.index == 2
        with pytest.raises(ValueError):
            x.index

    def test_matrix(self, toy):
        builder, _, _ = toy
        A = builder.build().matrix()
        assert A.format == "csr"
        assert_array_equal(A.toarray(), [[1, 1, 0], [2, 2, -1]])

    def test_sealed_after_build(self, toy):
        builder, x, _ = toy
        builder.build()
        with pytest.raises(RuntimeError):
            builder.add_variable("w")
        with pytest.raises(RuntimeError):
            builder.add_constraint([(x, 1.0)], "<=", 1)
        with pytest.raises(RuntimeError):
            builder.build()

    def test_invalid_sense(self, toy):
        builder, x, _ = toy
        with pytest.raises(ValueError):
            builder.add_constraint([(x, 1.0)], "<", 1)

    def test_wrong_number_of_coefficients(self, toy):
        builder, x, _ = toy
        with pytest.raises(ValueError):
            builder.add_constraint([(x, [1, 2, 3])], "<=", 1)

    def test_foreign_block(self, toy):
        builder, _, _ = toy
        with pytest.raises(ValueError):
            builder.set_objective([(VariableBlock("w", 3, 2), 1.0)])

    def test_crossed_bounds(self):
        with pytest.raises(ValueError):
            ProblemBuilder("bad").add_variables("x", 2, lb=1, ub=0)

    def test_empty_block(self):
        with pytest.raises(ValueError):
            ProblemBuilder("bad").add_variables("x", 0)


class TestLinearConstraint:
    @pytest.mark.parametrize("sense, expected", [
        ("<=", 1.0), (">=", -1.0), ("==", -1.0)
    ])
    def test_slack(self, sense, expected):
        row = LinearConstraint(np.array([1.0, 2.0]), sense, 4.0)
        assert row.slack([1.0, 1.0]) == pytest.approx(expected)

    def test_row_leaves_model_unchanged(self, toy):
        builder, x, t = toy
        model = builder.build()
        row = model.row([(t, 1.0), (x, [-0.5, -0.25])], "<=", 0.0, name="P0")
        assert row.name == "P0"
        assert_array_equal(row.coefficients, [-0.5, -0.25, 1.0])
        assert len(model.constraints) == 2


class TestBuildMaster:
    def test_structure(self, four_assets):
        model, blocks = build_master(four_assets)
        n = four_assets.dimension

        assert model.num_variables == 2*n + 1
        assert_array_equal(blocks.x.indices, np.arange(n))
        assert_array_equal(blocks.y.indices, np.arange(n, 2*n))
        assert blocks.z.index == 2*n

        assert_array_equal(model.integer[blocks.y.indices], True)
        assert not model.integer[blocks.x.indices].any()
        assert model.upper[blocks.z.index] == pytest.approx(1.2)
        assert model.lower[blocks.z.index] == -np.inf
        assert model.maximize
        assert_array_equal(model.objective, np.eye(2*n + 1)[-1])

        names = [c.name for c in model.constraints]
        assert names == (["budget"] + [f"link[{i}]" for i in range(n)]
                         + ["cardinality", "nominal"])

    def test_nominal_row(self, four_assets):
        model, blocks = build_master(four_assets)
        nominal = model.constraints[-1]
        assert_allclose(nominal.coefficients[blocks.x.indices],
                        -four_assets.mean)
        assert nominal.coefficients[blocks.z.index] == 1.0
        assert nominal.sense == "<="

    def test_without_nominal_row(self, four_assets):
        model, _ = build_master(four_assets, nominal_bound=False)
        assert model.constraints[-1].name == "cardinality"
        assert model.constraints[-1].rhs == 2.0

    def test_feasible_point(self, four_assets):
        model, _ = build_master(four_assets)
        # half in each of the top two assets
        point = np.array([0, .5, .5, 0, 0, 1, 1, 0, 1.15])
        assert all(c.slack(point) >= -1e-12 for c in model.constraints)
