#!/usr/bin/env python3

import robustpo
from loguru import logger

# show progress of the lazy constraint loop
logger.enable("robustpo")

# key problem variables loaded from standard format txt files
problem = robustpo.load_problem(
    "examples/12/mean12.txt",
    "examples/12/deviation12.txt",
    radius=1.5
)
n = problem.dimension

# computes the nominal solution, then the robust one using lazy constraints
x_nom, obj_nom = robustpo.gurobi_nominal_portfolio(
    problem.mean, problem.cardinality, n)

result = robustpo.MasterLoop(problem).run()
if not result.optimal:
    raise ValueError(f"robust problem finished as '{result.status.value}'")

robustpo.print_compare_solutions(
    x_nom, result.x, obj_nom, result.z, name1="x_nom", name2="x_rob",
    tol=1e-5)

print(f"\n{len(result.cuts)} cuts added over {result.candidates} candidates")

if not robustpo.check_robust_bound(result.z, result.x, problem.mean,
                                   problem.deviation, problem.radius,
                                   debug=True):
    raise ValueError

print("\nDone!")
