# -*- coding: utf-8 -*-
"""
RobustPO provides functions for loading and solving robust portfolio
selection problems with lazy constraints. It uses NumPy and SciPy for its
internal data structures, and depends on Gurobi or HiGHS for its solvers.

Progress of the lazy constraint loop is logged with loguru, which is disabled
for this package by default; use `logger.enable("robustpo")` to see it.
"""

from loguru import logger

from .builder import ProblemBuilder, LinearModel, build_master
from .config import LoopSettings, load_settings
from .engines import Status, GurobiEngine, HighsEngine
from .loaders import PortfolioProblem, load_problem, generate_problem
from .loop import MasterLoop, RunResult
from .oracle import (
    EllipsoidalSet, ClosedFormMinimizer, NumericalMinimizer, GurobiMinimizer,
    CutAcceptancePolicy, SeparationOracle, NoViolation, Cut,
    DegenerateNormError
)
from .solvers import (
    gurobi_nominal_portfolio, gurobi_robust_portfolio, highs_nominal_portfolio
)
from .utils import (
    solveRPO, expected_return, worst_case_return, print_compare_solutions,
    check_cut_pool, check_robust_bound
)

__version__ = "0.1.0"

# libraries stay quiet unless the caller opts in
logger.disable("robustpo")

# controls what's imported on `from robustpo import *`
__all__ = [
    # from builder.py
    "ProblemBuilder", "LinearModel", "build_master",
    # from config.py
    "LoopSettings", "load_settings",
    # from engines.py
    "Status", "GurobiEngine", "HighsEngine",
    # from loaders.py
    "PortfolioProblem", "load_problem", "generate_problem",
    # from loop.py
    "MasterLoop", "RunResult",
    # from oracle.py
    "EllipsoidalSet", "ClosedFormMinimizer", "NumericalMinimizer",
    "GurobiMinimizer", "CutAcceptancePolicy", "SeparationOracle",
    "NoViolation", "Cut", "DegenerateNormError",
    # from solvers.py
    "gurobi_nominal_portfolio", "gurobi_robust_portfolio",
    "highs_nominal_portfolio",
    # from utils.py
    "solveRPO", "expected_return", "worst_case_return",
    "print_compare_solutions", "check_cut_pool", "check_robust_bound"
]
