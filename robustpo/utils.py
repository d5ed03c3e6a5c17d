# -*- coding: utf-8 -*-
"""Utilities

This file contains additional utilities, such as for printing and comparing
portfolios produced by the solvers and checking them against the cut pool.
"""

import numpy as np          # defines matrix structures
import numpy.typing as npt  # variable typing definitions for NumPy

# local imports used in solveRPO
from . import loaders
from . import solvers
from .builder import LinearConstraint
from .config import LoopSettings
from .engines import GurobiEngine, HighsEngine, Status
from .loop import MasterLoop
from .oracle import ClosedFormMinimizer, DegenerateNormError, EllipsoidalSet

# controls what's imported on `from robustpo.utils import *`
__all__ = [
    "solveRPO",
    "expected_return",
    "worst_case_return",
    "print_compare_solutions",
    "check_cut_pool",
    "check_robust_bound"
]


# WRAPPER UTILITY
# The solveRPO combines all of the features in this module into
# a single interface, handling everything from loading the data
# from file through to analysing the solution found. While it's
# convenient for single calls, repeated calls should probably use
# `MasterLoop` or the functions provided in `solvers`.

def solveRPO(
    mean_filename: str,
    deviation_filename: str,
    radius: float,
    cardinality: float | None = None,
    method: str = 'lazy',
    solver: str = 'gurobi',
    tolerance: float = 1e-2,
    time_limit: float | None = None,
    node_limit: int | None = None,
    max_cuts: int = 1000,
    debug: bool = False
):
    """
    A convenient wrapper which accesses RobustPO through a single interface,
    handling everything from loading the data from file through to analysing
    the solution found. Best suited for single calls, for more complicated
    work see `MasterLoop` and the functions in `solvers`.

    Parameters
    ----------
    mean_filename : str
        Filename for a file which encodes the mean returns of each asset, one
        value per line.
    deviation_filename : str
        Filename for a file which encodes the return deviations of each asset,
        one value per line.
    radius : float
        Radius of the ellipsoidal uncertainty set, which controls how
        resilient the portfolio must be to variation in returns.
    cardinality : float, optional
        Maximum number of assets which may be held. Default value is `None`,
        i.e. a quarter of the number of assets.
    method : str, optional
        String which specifies whether to carry out 'nominal' optimization,
        robust optimization with the 'lazy' constraint loop, or robust
        optimization with a 'conic' constraint. Default value is `lazy`.
    solver : str, optional
        String which specifies whether to use HiGHS or Gurobi as the solver.
        Value can either be `gurobi` (default) or `highs`. The conic method
        requires Gurobi.
    tolerance : float, optional
        Cut acceptance tolerance for the lazy method. Default value is `1e-2`.
    time_limit : float, optional
        Maximum amount of time in seconds to give the underlying solver to find
        a solution. Default value is `None`, i.e. no time limit.
    node_limit : int, optional
        Maximum number of branch-and-bound nodes for the lazy method. Default
        value is `None`, i.e. no node limit.
    max_cuts : int, optional
        Maximum number of cuts the lazy method may add. Default is `1000`.
    debug : bool, optional
        Flag which controls whether the solver prints its output to terminal.
        Default value is `False`.

    Returns
    -------
    ndarray
        Portfolio vector found.
    float
        Objective value reported for the portfolio.
    float
        Expected (nominal) return of the portfolio.
    float
        Worst-case return of the portfolio over the uncertainty set.
    """

    # INPUT VALIDATION
    # ----------------

    # STRINGS
    # validate key problem variables were provided as strings
    file_parameters = {
        "mean": mean_filename,
        "deviation": deviation_filename
    }
    for name, value in file_parameters.items():
        if not isinstance(value, str):
            raise ValueError(f"filename must be given for {name} data")

    # SOLVER & METHOD
    # validate the method and solver were specified
    if solver not in ('highs', 'gurobi'):
        raise ValueError("solver isn't valid, must be 'gurobi' or 'highs'")
    if method not in ('nominal', 'lazy', 'conic'):
        raise ValueError(
            "method isn't valid, must be 'nominal', 'lazy', or 'conic'")
    if method == 'conic' and solver != 'gurobi':
        raise ValueError("conic optimization requires 'gurobi'")

    # BOOLEANS
    if not isinstance(debug, bool):
        raise ValueError("'debug' must be 'True' or 'False' boolean")

    # remaining numeric checks are shared with the loop settings
    settings = LoopSettings(
        tolerance=tolerance,
        time_limit=time_limit,
        node_limit=node_limit,
        max_cuts=max_cuts,
        debug=debug
    )

    # LOADING & SOLVING
    # -----------------

    problem = loaders.load_problem(mean_filename, deviation_filename, radius,
                                   cardinality)
    n = problem.dimension

    if method == 'nominal':
        # Gurobi and HiGHS have the same input variables for nominal problems
        nominal_solver = getattr(solvers, f"{solver}_nominal_portfolio")
        portfolio, objective = nominal_solver(
            problem.mean, problem.cardinality, n, time_limit, debug
        )
    elif method == 'conic':
        portfolio, _, objective = solvers.gurobi_robust_portfolio(
            problem.mean, problem.deviation, problem.radius,
            problem.cardinality, n, time_limit, debug
        )
    else:  # method is lazy
        engine = GurobiEngine() if solver == 'gurobi' else HighsEngine()
        result = MasterLoop(problem, engine, settings=settings).run()
        if result.status is Status.INFEASIBLE:
            raise ValueError("no portfolio meets the constraints")
        if result.x is None:
            raise ValueError("no portfolio found within the limits")
        portfolio, objective = result.x, result.z

    # quicker to compute useful metrics rather than after the fact
    expected = expected_return(portfolio, problem.mean)
    worst = worst_case_return(portfolio, problem.mean, problem.deviation,
                              problem.radius)

    return portfolio, objective, expected, worst


# ANALYSIS UTILITIES
# These functions are useful for analysing particular solutions

def expected_return(x: npt.ArrayLike, mean: npt.ArrayLike) -> float:
    """
    Shortcut function for computing the expected return (x'mubar) of a
    particular portfolio (x).

    Parameters
    ----------
    x : ndarray
        Portfolio vector.
    mean : ndarray
        Vector of mean returns for each asset.

    Returns
    -------
    float
        The expected return of the portfolio.
    """

    return float(np.asarray(x, dtype=float)@np.asarray(mean, dtype=float))


def worst_case_return(
    x: npt.ArrayLike,
    mean: npt.ArrayLike,
    deviation: npt.ArrayLike,
    radius: float
) -> float:
    """
    Computes the worst-case return of a portfolio, min p'x over the ellipsoid
    {mubar + diag(sigma)d : ||d|| <= Gamma}, which is
    ```
        mubar'x - Gamma*||diag(sigma) x||.
    ```

    Parameters
    ----------
    x : ndarray
        Portfolio vector.
    mean : ndarray
        Vector of mean returns for each asset (mubar).
    deviation : ndarray
        Vector of return deviations for each asset (sigma).
    radius : float
        Radius of the uncertainty set (Gamma).

    Returns
    -------
    float
        The worst-case return of the portfolio.
    """

    minimizer = ClosedFormMinimizer(EllipsoidalSet(mean, deviation, radius))
    try:
        return minimizer.minimize_over_uncertainty(x)[1]
    except DegenerateNormError:
        # no spread in returns, so the worst case is the expected return
        return expected_return(x, mean)


def print_compare_solutions(
    portfolio1: npt.NDArray[np.floating],
    portfolio2: npt.NDArray[np.floating],
    objective1: float,
    objective2: float,
    precision: int = 5,
    name1: str = "First",
    name2: str = "Second",
    tol: float | None = None
) -> None:
    """
    Given two solutions to a portfolio optimization problem (robust or
    nominal) this prints a comparison of the two solutions to the terminal.

    Parameters
    ----------
    portfolio1 : ndarray
        The portfolio vector for the first solution to compare.
    portfolio2 : ndarray
        The portfolio vector for the second solution to compare.
    objective1 : float
        Objective value for the first solution vector.
    objective2 : float
        Objective value for the second solution vector.
    precision : int, optional
        The number of decimal places to display values to. Default is `5`.
    name1: str, optional
        Name to use for the first solution in output. Default is `"First"`.
    name2: str, optional
        Name to use for the second solution in output. Default is `"Second"`.
    tol: float, optional
        Tolerance below which not to show values. Default is None, all shown.

    Examples
    --------
    This function does not have a return value, but when used it produces a
    terminal output like the following:
    >>> print_compare_solutions(..., name1="x_nom", name2="x_rob", tol=1e-5)
    i   x_nom    x_rob
    07  0.00000  0.21370
    08  0.00000  0.78630
    12  1.00000  0.00000

    x_nom objective: 1.20000
    x_rob objective: 1.15896
    Maximum change: 1.00000
    Average change: 0.16667
    Minimum change: 0.00000
    """

    dimension = portfolio1.size
    order = len(str(dimension))

    # pad the header to line up with the columns below
    width = precision + 2
    print(f"i{' '*(order-1)}  {name1:<{width}}  {name2:<{width}}")
    for asset in range(dimension):
        # if a tolerance given, skip if both values less than it
        if tol and portfolio1[asset] < tol and portfolio2[asset] < tol:
            continue

        print(
            f"{asset+1:0{order}d}  "
            f"{portfolio1[asset]:.{precision}f}  "
            f"{portfolio2[asset]:.{precision}f}"
        )

    portfolio_abs_diff = np.abs(portfolio1-portfolio2)
    print(
        f"\n{name1} objective: {objective1:.{precision}f}"
        f"\n{name2} objective: {objective2:.{precision}f}"
        f"\nMaximum change: {max(portfolio_abs_diff):.{precision}f}"
        f"\nAverage change: {np.mean(portfolio_abs_diff):.{precision}f}"
        f"\nMinimum change: {min(portfolio_abs_diff):.{precision}f}"
    )


# CHECKING UTILITIES
# These functions check solutions against the cut pool and uncertainty set

def check_cut_pool(
    values: npt.ArrayLike,
    cuts: tuple[LinearConstraint, ...] | list[LinearConstraint],
    tol: float = 1e-6
) -> bool:
    """
    Check that a point of the master problem satisfies every cut in a pool.

    Parameters
    ----------
    values : ndarray
        Values for all variables of the master problem, e.g. x, y, and z
        concatenated in that order.
    cuts : sequence of LinearConstraint
        The cut pool, such as `RunResult.cuts`.
    tol : float, optional
        Tolerance for violation of each cut. Default is `1e-6`.

    Returns
    -------
    bool
        True if every cut holds within the tolerance, False otherwise.
    """

    return all(cut.slack(values) >= -tol for cut in cuts)


def check_robust_bound(
    z: float,
    x: npt.NDArray[np.floating],
    mean: npt.NDArray[np.floating],
    deviation: npt.NDArray[np.floating],
    radius: float,
    tol: float = 1e-2,
    debug: bool = False
) -> bool:
    """
    Check the gap between the worst-case return claimed by the master problem
    and the actual worst case.

    In the lazy constraint loop the robust term `min_p p'x` is relaxed to
    `z <= p'x` for finitely many p, with cuts only added when violated by
    more than a tolerance. This function can be used to check how close z and
    the true worst case are.

    Parameters
    ----------
    z : float
        Epigraph variable from a solution to the robust selection problem.
    x : ndarray
        Portfolio vector from a solution to the robust selection problem.
    mean : ndarray
        Vector of mean returns for each asset.
    deviation : ndarray
        Vector of return deviations for each asset.
    radius : float
        Radius of the uncertainty set.
    tol : float, optional
        Tolerance with which to compare the two values. Default is `1e-2`,
        matching the default cut acceptance tolerance.
    debug : float, optional
        Determines whether to print a comparison of the variables to the
        terminal. Default is `False`.

    Returns
    -------
    bool
        True if z overstates the worst case by less than tol, False otherwise.
        As a side effect, it can print the two values and their difference to
        the terminal (see below).

    Examples
    --------
    If using the debug output, some like the following will be printed to
    the terminal:

    >>> check_robust_bound(..., debug=True)
             z: 1.1589663212201946
    worst case: 1.1589621038820135
          Diff: 4.217338181072497e-06
    """

    worst = worst_case_return(x, mean, deviation, radius)

    if debug:
        print(
            f"\n         z: {z}"
            f"\nworst case: {worst}"
            f"\n      Diff: {z-worst}"
        )

    return (z - worst) <= tol
