# -*- coding: utf-8 -*-
"""Defining Solvers

Direct formulations of the portfolio problems, solved in a single call to
Gurobi or HiGHS. These don't use the lazy constraint loop, so are useful
both as a baseline and for checking its solutions.
"""

import numpy as np          # defines matrix structures
import numpy.typing as npt  # variable typing definitions for NumPy
import gurobipy as gp       # Gurobi optimization interface
import highspy              # HiGHS optimization interface
from scipy import sparse    # used for sparse matrix format

# controls what's imported on `from robustpo.solvers import *`
__all__ = [
    "gurobi_nominal_portfolio",
    "gurobi_robust_portfolio",
    "highs_nominal_portfolio"
]


def gurobi_nominal_portfolio(
    mean: npt.NDArray[np.float64],
    cardinality: float,
    dimension: int,
    time_limit: float | None = None,
    debug: str | bool = False
) -> tuple[npt.NDArray[np.float64], float]:
    """
    Solve the nominal portfolio selection problem using Gurobi.

    Given a nominal portfolio selection problem
    ```
        max_{x,y} x'mubar
        subject to sum(x) = 1,
                   x_i <= y_i,
                   sum(y) <= k,
                   x in [0,1]^n, y in {0,1}^n,
    ```
    this function uses Gurobi to find the optimum x and the objective for that
    portfolio. Additional parameters give control over long Gurobi can spend
    on the problem, to prevent indefinite hangs.

    Parameters
    ----------
    mean : ndarray
        Vector of mean returns for each asset.
    cardinality : float
        Maximum number of assets which may be held (k).
    dimension : int
        Number of assets, i.e. the dimension of the problem.
    time_limit : float or None, optional
        Maximum amount of time in seconds to give Gurobi to solve the problem.
        Default value is `None`, i.e. no time limit.
    debug : str or bool, optional
        Flag which controls both whether Gurobi prints its output to terminal
        and whether it saves the model file to the working directory. If given
        as a string, that string is used as the model output name, 'str.mps',
        or if boolean `True` then `grb-nom-opt.mps`. Default value is `False`.

    Returns
    -------
    ndarray
        Portfolio vector which Gurobi has determined is a solution.
    float
        Value of the objective function for returned solution vector.
    """

    model = gp.Model("nominal-portfolio")

    # Gurobi spews all its output into the terminal by default, this restricts
    # that behaviour to only happen when the `debug` flag is used.
    if not debug:
        model.setParam('OutputFlag', 0)

    # integrating bounds within variable definitions is more efficient than
    # as a separate constraint, which Gurobi would convert to bounds anyway
    x = model.addMVar(shape=dimension, lb=0.0, ub=1.0,
                      vtype=gp.GRB.CONTINUOUS, name="x")
    y = model.addMVar(shape=dimension, vtype=gp.GRB.BINARY, name="y")

    model.setObjective(x.transpose()@mean, gp.GRB.MAXIMIZE)

    model.addConstr(x.sum() == 1, name="budget")
    model.addConstr(x <= y, name="link")
    model.addConstr(y.sum() <= cardinality, name="cardinality")

    # optional controls to stop Gurobi taking too long
    if time_limit:
        model.setParam(gp.GRB.Param.TimeLimit, time_limit)

    # model file can be used externally for verification
    if debug:
        if type(debug) is str:
            model.write(f"{debug}.mps")
        else:
            model.write("grb-nom-opt.mps")

    model.optimize()
    if model.Status != gp.GRB.OPTIMAL:
        raise ValueError(f"Gurobi didn't find an optimum, status "
                         f"{model.Status}")

    return np.array(x.X), model.ObjVal  # HACK np.array avoids issue #9


def gurobi_robust_portfolio(
    mean: npt.NDArray[np.float64],
    deviation: npt.NDArray[np.float64],
    radius: float,
    cardinality: float,
    dimension: int,
    time_limit: float | None = None,
    debug: str | bool = False
) -> tuple[npt.NDArray[np.float64], float, float]:
    """
    Solve the robust portfolio selection problem using Gurobi.

    Given a robust portfolio selection problem
    ```
        max_{x,y} (min_p p'x subject to p in U)
        subject to sum(x) = 1,
                   x_i <= y_i,
                   sum(y) <= k,
                   x in [0,1]^n, y in {0,1}^n,
    ```
    where U is the ellipsoid {mubar + diag(sigma)d : ||d|| <= Gamma}, this
    function uses Gurobi to find the optimum x and the objective for that
    portfolio. It uses the KKT conditions to find exactly the solution to the
    inner problem, substitutes that into the outer problem, and relaxes the
    norm term into a conic constraint before solving.

    Parameters
    ----------
    mean : ndarray
        Vector of mean returns for each asset (mubar).
    deviation : ndarray
        Vector of return deviations for each asset (sigma).
    radius : float
        Radius of the ellipsoidal uncertainty set (Gamma).
    cardinality : float
        Maximum number of assets which may be held (k).
    dimension : int
        Number of assets, i.e. the dimension of the problem.
    time_limit : float or None, optional
        Maximum amount of time in seconds to give Gurobi to solve the problem.
        Default value is `None`, i.e. no time limit.
    debug : str or bool, optional
        Flag which controls both whether Gurobi prints its output to terminal
        and whether it saves the model file to the working directory. If given
        as a string, that string is used as the model output name, 'str.mps',
        or if boolean `True` then `grb-rob-opt.mps`. Default value is `False`.

    Returns
    -------
    ndarray
        Portfolio vector which Gurobi has determined is a solution.
    float
        Auxiliary variable corresponding to ||diag(sigma) x|| for the
        portfolio vector which Gurobi has determined is a solution.
    float
        Value of the objective function for returned solution vector.
    """

    model = gp.Model("robust-portfolio")

    # Gurobi spews all its output into the terminal by default, this restricts
    # that behaviour to only happen when the `debug` flag is used.
    if not debug:
        model.setParam('OutputFlag', 0)

    x = model.addMVar(shape=dimension, lb=0.0, ub=1.0,
                      vtype=gp.GRB.CONTINUOUS, name="x")
    y = model.addMVar(shape=dimension, vtype=gp.GRB.BINARY, name="y")
    t = model.addVar(lb=0.0, name="t")

    model.setObjective(x.transpose()@mean - radius*t, gp.GRB.MAXIMIZE)

    model.addConstr(x.sum() == 1, name="budget")
    model.addConstr(x <= y, name="link")
    model.addConstr(y.sum() <= cardinality, name="cardinality")

    # conic constraint which comes from robust optimization
    omega = sparse.diags(np.asarray(deviation, dtype=float)**2, format='csr')
    model.addConstr(t**2 >= x.transpose()@omega@x, name="uncertainty")

    # optional controls to stop Gurobi taking too long
    if time_limit:
        model.setParam(gp.GRB.Param.TimeLimit, time_limit)

    # model file can be used externally for verification
    if debug:
        if type(debug) is str:
            model.write(f"{debug}.mps")
        else:
            model.write("grb-rob-opt.mps")

    model.optimize()
    if model.Status != gp.GRB.OPTIMAL:
        raise ValueError(f"Gurobi didn't find an optimum, status "
                         f"{model.Status}")

    return np.array(x.X), t.X, model.ObjVal  # HACK np.array avoids issue #9


def highs_nominal_portfolio(
    mean: npt.NDArray[np.float64],
    cardinality: float,
    dimension: int,
    time_limit: float | None = None,
    debug: str | bool = False
) -> tuple[npt.NDArray[np.float64], float]:
    """
    Solve the nominal portfolio selection problem using HiGHS.

    Given a nominal portfolio selection problem
    ```
        max_{x,y} x'mubar
        subject to sum(x) = 1,
                   x_i <= y_i,
                   sum(y) <= k,
                   x in [0,1]^n, y in {0,1}^n,
    ```
    this function uses HiGHS to find the optimum x and the objective for that
    portfolio. Additional parameters give control over long HiGHS can spend
    on the problem, to prevent indefinite hangs.

    Parameters
    ----------
    mean : ndarray
        Vector of mean returns for each asset.
    cardinality : float
        Maximum number of assets which may be held (k).
    dimension : int
        Number of assets, i.e. the dimension of the problem.
    time_limit : float or None, optional
        Maximum amount of time in seconds to give HiGHS to solve the problem.
        Default value is `None`, i.e. no time limit.
    debug : str or bool, optional
        Flag which controls both whether HiGHS prints its output to terminal
        and whether it saves the model file to the working directory. If given
        as a string, that string is used as the model output name, 'str.mps',
        or if boolean `True` then `hgs-nom-opt.mps`. Default value is `False`.

    Returns
    -------
    ndarray
        Portfolio vector which HiGHS has determined is a solution.
    float
        Value of the objective function for returned solution vector.
    """

    n = dimension

    # initialise an empty model
    h = highspy.Highs()
    lp = highspy.HighsLp()

    # use value for infinity from HiGHS
    inf = highspy.kHighsInf

    lp.model_name_ = "nominal-portfolio"
    lp.num_col_ = 2*n  # columns for x then y
    lp.num_row_ = n + 2

    # HiGHS does minimization so negate objective
    lp.col_cost_ = np.append(-np.asarray(mean, dtype=float), np.zeros(n))
    lp.col_lower_ = np.zeros(2*n)
    lp.col_upper_ = np.ones(2*n)
    lp.integrality_ = ([highspy.HighsVarType.kContinuous]*n
                       + [highspy.HighsVarType.kInteger]*n)

    # rows are the budget, the links x_i - y_i <= 0, and the cardinality
    ones = sparse.csr_matrix(np.ones((1, n)))
    identity = sparse.identity(n, format='csr')
    A = sparse.bmat([
        [ones, None],
        [identity, -identity],
        [None, ones]
    ], format='csr')
    lp.row_lower_ = np.concatenate(([1.0], np.full(n, -inf), [-inf]))
    lp.row_upper_ = np.concatenate(([1.0], np.zeros(n), [cardinality]))

    # HiGHS requires the matrix in compressed form, CSR here
    lp.a_matrix_.format_ = highspy.MatrixFormat.kRowwise
    lp.a_matrix_.num_col_ = 2*n
    lp.a_matrix_.num_row_ = n + 2
    lp.a_matrix_.start_ = A.indptr
    lp.a_matrix_.index_ = A.indices
    lp.a_matrix_.value_ = A.data

    # HiGHS spews all its output into the terminal by default, this restricts
    # that behaviour to only happen when the `debug` flag is used.
    if not debug:
        h.setOptionValue('output_flag', False)
        h.setOptionValue('log_to_console', False)

    # optional controls to stop HiGHS taking too long
    if time_limit:
        h.setOptionValue('time_limit', time_limit)

    h.passModel(lp)
    h.run()

    # model file can be used externally for verification
    if debug:
        if type(debug) is str:
            h.writeModel(f"{debug}.mps")
        else:
            h.writeModel("hgs-nom-opt.mps")

    if h.getModelStatus() != highspy.HighsModelStatus.kOptimal:
        raise ValueError(f"HiGHS didn't find an optimum, status "
                         f"{h.modelStatusToString(h.getModelStatus())}")

    # by default, col_value is a stock-Python list
    solution = np.array(h.getSolution().col_value)
    # we negated the objective function, so negate it back
    objective_value = -h.getInfo().objective_function_value

    return solution[:n], objective_value
