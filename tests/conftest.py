import numpy as np
import pytest

from robustpo.loaders import PortfolioProblem, generate_problem


@pytest.fixture
def rng():
    """Seeded random number generator for reproducible tests."""
    return np.random.default_rng(seed=1234)


@pytest.fixture
def four_assets():
    """Four asset problem where a pair of assets may be held."""
    return PortfolioProblem(
        mean=[1.0, 1.2, 1.1, 1.05],
        deviation=[0.1, 0.3, 0.2, 0.15],
        radius=1.0,
        cardinality=2
    )


@pytest.fixture
def benchmark():
    """Twelve asset benchmark problem, as in `examples/12`."""
    return generate_problem(12, radius=1.5, cardinality=3)