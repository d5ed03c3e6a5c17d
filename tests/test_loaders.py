from pathlib import Path

import numpy as np
import pytest
from numpy.testing import assert_allclose

from robustpo.loaders import PortfolioProblem, generate_problem, load_problem

DATA = Path(__file__).parent.parent/"examples"/"12"


def test_default_cardinality():
    problem = PortfolioProblem(np.ones(10), np.full(10, 0.1), 1.0)
    assert problem.cardinality == 2.5
    assert problem.dimension == 10


def test_small_cardinality_is_kept():
    # too small to hold anything, which is left for the solver to report
    problem = PortfolioProblem([1.0, 1.1], [0.1, 0.1], 1.0)
    assert problem.cardinality == 0.5


@pytest.mark.parametrize("cardinality", [-1, "few"])
def test_invalid_cardinality(cardinality):
    with pytest.raises(ValueError):
        PortfolioProblem([1.0, 1.1], [0.1, 0.1], 1.0, cardinality)


def test_uncertainty_set():
    problem = PortfolioProblem([1.0, 1.1], [0.1, 0.2], 2.0, 1)
    U = problem.uncertainty_set()
    assert_allclose(U.mean, problem.mean)
    assert_allclose(U.deviation, problem.deviation)
    assert U.radius == 2.0


def test_load_problem(tmp_path):
    mean_file = tmp_path/"mean.txt"
    deviation_file = tmp_path/"deviation.txt"
    mean_file.write_text("1.1\n1.2\n1.3\n")
    deviation_file.write_text("0.01\n0.02\n0.03\n")

    problem = load_problem(str(mean_file), str(deviation_file), 1.5, 2)
    assert_allclose(problem.mean, [1.1, 1.2, 1.3])
    assert_allclose(problem.deviation, [0.01, 0.02, 0.03])
    assert problem.radius == 1.5
    assert problem.cardinality == 2.0


def test_load_single_asset(tmp_path):
    mean_file = tmp_path/"mean.txt"
    deviation_file = tmp_path/"deviation.txt"
    mean_file.write_text("1.1\n")
    deviation_file.write_text("0.01\n")

    problem = load_problem(str(mean_file), str(deviation_file), 1.0)
    assert problem.dimension == 1


def test_load_mismatched_files(tmp_path):
    mean_file = tmp_path/"mean.txt"
    deviation_file = tmp_path/"deviation.txt"
    mean_file.write_text("1.1\n1.2\n")
    deviation_file.write_text("0.01\n")
    with pytest.raises(ValueError):
        load_problem(str(mean_file), str(deviation_file), 1.0)


def test_generate_matches_data_files():
    problem = generate_problem(12, radius=1.5)
    mean = np.loadtxt(DATA/"mean12.txt")
    deviation = np.loadtxt(DATA/"deviation12.txt")
    assert_allclose(problem.mean, mean, atol=1e-9)
    assert_allclose(problem.deviation, deviation, atol=1e-9)
    assert problem.cardinality == 3.0


def test_generate_problem_shape():
    problem = generate_problem(100, radius=1.0, cardinality=10)
    assert problem.mean[-1] == pytest.approx(1.2)
    assert np.all(np.diff(problem.mean) > 0)
    assert np.all(np.diff(problem.deviation) > 0)


@pytest.mark.parametrize("dimension", [0, -3, 2.5, True])
def test_generate_invalid_dimension(dimension):
    with pytest.raises(ValueError):
        generate_problem(dimension, radius=1.0)
