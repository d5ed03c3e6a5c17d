# -*- coding: utf-8 -*-
"""Separation Oracle

Given a candidate portfolio x, the oracle finds the worst possible returns p
from an ellipsoidal uncertainty set
```
    U = {p : p_i = mubar_i + sigma_i*d_i, ||d|| <= Gamma}
```
and, if x under those returns pays meaningfully less than the master problem
claims, hands back the cut z <= p'x. The inner minimization is a swappable
strategy: a closed form from the KKT conditions, a numerical fallback using
SciPy, or an embedded Gurobi solve.
"""

import numpy as np          # defines matrix structures
import numpy.typing as npt  # variable typing definitions for NumPy
import gurobipy as gp       # Gurobi optimization interface
from abc import ABC, abstractmethod
from dataclasses import dataclass
from loguru import logger   # progress logging, disabled by default
from scipy import optimize  # used for the numerical fallback

# controls what's imported on `from robustpo.oracle import *`
__all__ = [
    "DegenerateNormError",
    "EllipsoidalSet",
    "UncertaintyMinimizer",
    "ClosedFormMinimizer",
    "NumericalMinimizer",
    "GurobiMinimizer",
    "CutAcceptancePolicy",
    "NoViolation",
    "Cut",
    "SeparationOracle"
]


class DegenerateNormError(ArithmeticError):
    """Raised when ||diag(sigma) x|| is zero, so no worst direction exists."""


def validate_uncertainty(
    mean: npt.ArrayLike,
    deviation: npt.ArrayLike,
    radius: float
) -> tuple[npt.NDArray[np.floating], npt.NDArray[np.floating], float]:
    """
    Check the data of an ellipsoidal uncertainty set, returning read-only
    float copies of the two vectors and the radius as a float.
    """

    mean = np.array(mean, dtype=float)
    deviation = np.array(deviation, dtype=float)

    if mean.ndim != 1 or mean.size == 0:
        raise ValueError("mean returns must be a non-empty vector")
    if deviation.shape != mean.shape:
        raise ValueError("deviations must be the same length as the means")
    if not (np.all(np.isfinite(mean)) and np.all(np.isfinite(deviation))):
        raise ValueError("means and deviations must be finite")
    if np.any(deviation < 0):
        raise ValueError("deviations cannot be negative")

    try:
        radius = float(radius)
    except (TypeError, ValueError):
        raise ValueError("radius must be a number")
    if radius < 0 or not np.isfinite(radius):
        raise ValueError("radius must be a non-negative number")

    # data is fixed for the life of a run
    mean.setflags(write=False)
    deviation.setflags(write=False)

    return mean, deviation, radius


@dataclass(frozen=True, eq=False)
class EllipsoidalSet:
    """
    Ellipsoidal uncertainty set around the mean returns.

    Parameters
    ----------
    mean : ndarray
        Vector of mean returns (mubar).
    deviation : ndarray
        Vector of return deviations (sigma), scaling each axis of the ball.
    radius : float
        Radius of the ball (Gamma).
    """

    mean: npt.NDArray[np.floating]
    deviation: npt.NDArray[np.floating]
    radius: float

    def __post_init__(self):
        mean, deviation, radius = validate_uncertainty(
            self.mean, self.deviation, self.radius
        )
        object.__setattr__(self, "mean", mean)
        object.__setattr__(self, "deviation", deviation)
        object.__setattr__(self, "radius", radius)

    @property
    def dimension(self) -> int:
        return self.mean.size

    def weighted_norm(self, x: npt.NDArray[np.floating]) -> float:
        """Computes ||diag(sigma) x||, the spread of returns for x."""
        return float(np.linalg.norm(self.deviation*x))


# MINIMIZATION STRATEGIES
# Each strategy computes min p'x over the uncertainty set, returning both
# the minimizing p and the minimum. They raise DegenerateNormError when the
# weighted norm of x is zero and the radius is positive.

class UncertaintyMinimizer(ABC):
    """Strategy for minimizing p'x over an ellipsoidal uncertainty set."""

    def __init__(self, uncertainty_set: EllipsoidalSet):
        self.uncertainty_set = uncertainty_set

    def _prepare(self, x: npt.ArrayLike) -> npt.NDArray[np.floating]:
        x = np.array(x, dtype=float)
        if x.shape != self.uncertainty_set.mean.shape:
            raise ValueError(
                f"portfolio has shape {x.shape}, expected "
                f"{self.uncertainty_set.mean.shape}"
            )
        return x

    @abstractmethod
    def minimize_over_uncertainty(
        self,
        x: npt.ArrayLike
    ) -> tuple[npt.NDArray[np.floating], float]:
        """
        Find the worst returns for a given portfolio.

        Parameters
        ----------
        x : ndarray
            Portfolio vector.

        Returns
        -------
        ndarray
            Returns vector p in the uncertainty set minimizing p'x.
        float
            The minimum value of p'x.
        """


class ClosedFormMinimizer(UncertaintyMinimizer):
    """
    Exact minimizer from the KKT conditions. Minimizing the linear function
    (sigma*x)'d over ||d|| <= Gamma puts d on the boundary, opposite the
    gradient, so that
    ```
        p_i = mubar_i - Gamma*sigma_i^2*x_i / ||diag(sigma) x||,
        min = mubar'x - Gamma*||diag(sigma) x||.
    ```
    """

    def minimize_over_uncertainty(self, x):
        x = self._prepare(x)
        U = self.uncertainty_set

        if U.radius == 0:
            return U.mean.copy(), float(U.mean@x)

        norm = U.weighted_norm(x)
        if norm == 0:
            raise DegenerateNormError("weighted norm of portfolio is zero")

        worst_p = U.mean - U.radius*(U.deviation**2)*x/norm
        worst_z = float(U.mean@x - U.radius*norm)
        return worst_p, worst_z


class NumericalMinimizer(UncertaintyMinimizer):
    """
    Numerical fallback which solves the inner problem with SciPy's SLSQP. The
    search is over the unit ball, d = Gamma*u, with the gradient normalised,
    which keeps the subproblem well scaled regardless of the data.
    """

    def __init__(self, uncertainty_set: EllipsoidalSet,
                 ftol: float = 1e-12, max_iterations: int = 500):
        super().__init__(uncertainty_set)
        self.ftol = ftol
        self.max_iterations = max_iterations

    def minimize_over_uncertainty(self, x):
        x = self._prepare(x)
        U = self.uncertainty_set

        if U.radius == 0:
            return U.mean.copy(), float(U.mean@x)

        norm = U.weighted_norm(x)
        if norm == 0:
            raise DegenerateNormError("weighted norm of portfolio is zero")

        gradient = U.deviation*x/norm
        result = optimize.minimize(
            lambda u: gradient@u,
            # start halfway to the boundary, along steepest descent
            x0=-0.5*gradient,
            jac=lambda u: gradient,
            constraints=[{
                'type': 'ineq',
                'fun': lambda u: 1.0 - u@u,
                'jac': lambda u: -2*u
            }],
            method='SLSQP',
            options={'ftol': self.ftol, 'maxiter': self.max_iterations}
        )
        if not result.success:
            raise ValueError(f"inner minimization failed: {result.message}")

        # SLSQP may finish fractionally outside the ball, pull it back in
        u = result.x/max(1.0, np.linalg.norm(result.x))
        worst_p = U.mean + U.deviation*(U.radius*u)
        return worst_p, float(worst_p@x)


class GurobiMinimizer(UncertaintyMinimizer):
    """
    Solves the inner problem as a small second order cone program in Gurobi,
    i.e. as a separate embedded optimization on every call.
    """

    def __init__(self, uncertainty_set: EllipsoidalSet,
                 debug: bool = False):
        super().__init__(uncertainty_set)
        self.debug = debug

    def minimize_over_uncertainty(self, x):
        x = self._prepare(x)
        U = self.uncertainty_set

        if U.radius == 0:
            return U.mean.copy(), float(U.mean@x)

        if U.weighted_norm(x) == 0:
            raise DegenerateNormError("weighted norm of portfolio is zero")

        with gp.Env(empty=True) as env:
            # Gurobi spews all its output into the terminal by default, this
            # restricts that behaviour to only happen with the `debug` flag.
            env.setParam('OutputFlag', 1 if self.debug else 0)
            env.start()
            with gp.Model("worst-case-returns", env=env) as model:
                d = model.addMVar(shape=U.dimension, lb=-gp.GRB.INFINITY,
                                  vtype=gp.GRB.CONTINUOUS, name="d")
                model.setObjective(d@(U.deviation*x) + U.mean@x,
                                   gp.GRB.MINIMIZE)
                model.addConstr(d@d <= U.radius**2, name="ball")
                model.optimize()

                if model.Status != gp.GRB.OPTIMAL:
                    raise ValueError(
                        f"inner minimization failed, status {model.Status}")

                worst_p = U.mean + U.deviation*np.array(d.X)

        return worst_p, float(worst_p@x)


# CUT ACCEPTANCE

class CutAcceptancePolicy:
    """
    Only accept cuts which are violated by more than a fixed tolerance, so
    that the search doesn't cycle on numerically negligible violations.
    """

    def __init__(self, tolerance: float = 1e-2):
        try:
            if not np.isfinite(float(tolerance)) or float(tolerance) <= 0:
                raise ValueError
        except (TypeError, ValueError):
            raise ValueError("tolerance must be a positive number")
        self.tolerance = float(tolerance)

    def accept(self, worst_z: float, z_star: float) -> bool:
        return worst_z < z_star - self.tolerance


# SEPARATION

@dataclass(frozen=True)
class NoViolation:
    """Candidate holds up, its worst-case return is within tolerance."""
    worst_z: float
    degenerate: bool = False


@dataclass(frozen=True, eq=False)
class Cut:
    """Candidate is over-optimistic; install z <= worst_p'x."""
    worst_p: npt.NDArray[np.floating]
    worst_z: float


class SeparationOracle:
    """
    Checks candidate portfolios against the uncertainty set. Calls are pure
    functions of the candidate and the (fixed) uncertainty data.

    Parameters
    ----------
    minimizer : UncertaintyMinimizer
        Strategy for finding the worst returns of a portfolio.
    policy : CutAcceptancePolicy, optional
        Decides whether a violation is large enough to cut. Default is a
        policy with tolerance `1e-2`.
    """

    def __init__(self, minimizer: UncertaintyMinimizer,
                 policy: CutAcceptancePolicy | None = None):
        self.minimizer = minimizer
        self.policy = policy if policy is not None else CutAcceptancePolicy()

    @property
    def uncertainty_set(self) -> EllipsoidalSet:
        return self.minimizer.uncertainty_set

    def worst_case(self, x: npt.ArrayLike) -> float:
        """Worst-case return of x over the uncertainty set."""
        x = np.array(x, dtype=float)
        try:
            return self.minimizer.minimize_over_uncertainty(x)[1]
        except DegenerateNormError:
            return float(self.uncertainty_set.mean@x)

    def separate(self, x: npt.ArrayLike, z: float) -> NoViolation | Cut:
        """
        Separate a candidate (x, z) from the robust feasible region.

        Parameters
        ----------
        x : ndarray
            Candidate portfolio from the master problem.
        z : float
            Worst-case return the master problem claims for x.

        Returns
        -------
        NoViolation or Cut
            `Cut` holding the minimizing returns if the worst case of x is
            more than the tolerance below z, otherwise `NoViolation`.
        """

        x = np.array(x, dtype=float)

        try:
            worst_p, worst_z = self.minimizer.minimize_over_uncertainty(x)
        except DegenerateNormError:
            # every p in U gives the same return for x, nothing to cut
            nominal = float(self.uncertainty_set.mean@x)
            logger.debug("degenerate candidate, nominal return {}", nominal)
            return NoViolation(nominal, degenerate=True)

        if self.policy.accept(worst_z, z):
            return Cut(np.array(worst_p, dtype=float), worst_z)
        return NoViolation(worst_z)
