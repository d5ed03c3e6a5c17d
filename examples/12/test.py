#!/usr/bin/env python3

"""
While this script may be used as an example of using robustpo, it's primarily
intended as a quick end-to-end check that every solver path runs and that
they agree with each other on the twelve asset benchmark.
"""

import numpy as np
import robustpo

# SETUP
# -----

problem = robustpo.load_problem("mean12.txt", "deviation12.txt", radius=1.5)
n = problem.dimension

# true solution to the nominal problem is all in the final asset
true_nom = np.eye(n)[-1]

# tolerance for comparisons; NOTE this test uses a much stricter tolerance
# for the nominal problem since both solvers should compute it exactly.
tol_nom = 1e-7
tol_rob = 1e-3

settings = robustpo.LoopSettings(tolerance=1e-4)


# TESTS
# -----

x, obj = robustpo.highs_nominal_portfolio(problem.mean, problem.cardinality, n)
assert (abs(x - true_nom) < tol_nom).all(), "MIP in HiGHS was incorrect"

x, obj = robustpo.gurobi_nominal_portfolio(problem.mean, problem.cardinality,
                                           n)
assert (abs(x - true_nom) < tol_nom).all(), "MIP in Gurobi was incorrect"

x_rob, _, obj_rob = robustpo.gurobi_robust_portfolio(
    problem.mean, problem.deviation, problem.radius, problem.cardinality, n)

result = robustpo.MasterLoop(problem, robustpo.GurobiEngine(),
                             settings=settings).run()
assert result.optimal, "lazy loop in Gurobi didn't finish"
assert abs(result.worst_case - obj_rob) < tol_rob, \
    "lazy loop in Gurobi was incorrect"

result = robustpo.MasterLoop(problem, robustpo.HighsEngine(),
                             settings=settings).run()
assert result.optimal, "lazy loop in HiGHS didn't finish"
assert abs(result.worst_case - obj_rob) < tol_rob, \
    "lazy loop in HiGHS was incorrect"

print("Success!")
