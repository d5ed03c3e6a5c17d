# -*- coding: utf-8 -*-
"""Loading in Portfolio Data

Robust portfolio problems can be presented to our solvers either from data
files or generated from the standard benchmark family, these functions
define the appropriate methods for getting those into NumPy.
"""

import numpy as np          # defines matrix structures
import numpy.typing as npt  # variable typing definitions for NumPy
from dataclasses import dataclass

from .oracle import EllipsoidalSet, validate_uncertainty

# controls what's imported on `from robustpo.loaders import *`
__all__ = ["PortfolioProblem", "load_problem", "generate_problem"]


@dataclass(frozen=True, eq=False)
class PortfolioProblem:
    """
    Static data for one robust portfolio problem.

    Parameters
    ----------
    mean : ndarray
        Vector of mean returns for each asset (mubar).
    deviation : ndarray
        Vector of return deviations for each asset (sigma). Must be
        non-negative.
    radius : float
        Radius of the ellipsoidal uncertainty set (Gamma).
    cardinality : float or None, optional
        Maximum number of assets which may be held. Default value is `None`,
        which is a quarter of the number of assets.
    """

    mean: npt.NDArray[np.floating]
    deviation: npt.NDArray[np.floating]
    radius: float
    cardinality: float | None = None

    def __post_init__(self):
        mean, deviation, radius = validate_uncertainty(
            self.mean, self.deviation, self.radius
        )
        # frozen dataclass, so normalised values are set via object
        object.__setattr__(self, "mean", mean)
        object.__setattr__(self, "deviation", deviation)
        object.__setattr__(self, "radius", radius)

        cardinality = self.cardinality
        if cardinality is None:
            cardinality = mean.size/4
        try:
            cardinality = float(cardinality)
        except (TypeError, ValueError):
            raise ValueError("cardinality must be a number")
        if cardinality < 0:
            raise ValueError("cardinality cannot be negative")
        object.__setattr__(self, "cardinality", cardinality)

    @property
    def dimension(self) -> int:
        """Number of assets in the problem."""
        return self.mean.size

    def uncertainty_set(self) -> EllipsoidalSet:
        return EllipsoidalSet(self.mean, self.deviation, self.radius)


# DATA LOADERS
# Means and deviations are stored as a single value per line, which NumPy
# can load directly.

def load_problem(
    mean_filename: str,
    deviation_filename: str,
    radius: float,
    cardinality: float | None = None
) -> PortfolioProblem:
    """
    Load a robust portfolio problem into Python.

    Parameters
    ----------
    mean_filename : str
        Filename for a file which encodes the mean returns, one per line.
    deviation_filename : str
        Filename for a file which encodes the return deviations, one per line.
    radius : float
        Radius of the ellipsoidal uncertainty set.
    cardinality : float, optional
        Maximum number of assets which may be held. Default value is `None`,
        i.e. a quarter of the number of assets.

    Returns
    -------
    PortfolioProblem
        The problem represented by the files.
    """

    # ndmin avoids a zero-dimensional array for single asset files
    mean = np.loadtxt(mean_filename, dtype=float, ndmin=1)
    deviation = np.loadtxt(deviation_filename, dtype=float, ndmin=1)

    return PortfolioProblem(mean, deviation, radius, cardinality)


# PROBLEM GENERATORS
# The benchmark family has returns which increase in both mean and spread
# with the asset index, so that safer assets pay less.

def generate_problem(
    dimension: int,
    radius: float,
    cardinality: float | None = None
) -> PortfolioProblem:
    """
    Generate the standard robust portfolio benchmark with `dimension` assets,
    where for i = 1, ..., n
    ```
        mean_i = 1.15 + i*0.05/n,
        deviation_i = (0.05/450)*sqrt(2*i*n*(n+1)).
    ```

    Parameters
    ----------
    dimension : int
        Number of assets, n.
    radius : float
        Radius of the ellipsoidal uncertainty set.
    cardinality : float, optional
        Maximum number of assets which may be held. Default value is `None`,
        i.e. a quarter of the number of assets.

    Returns
    -------
    PortfolioProblem
        The benchmark problem of the given size.
    """

    if isinstance(dimension, bool) or not isinstance(dimension, int):
        raise ValueError("dimension must be a whole number")
    if dimension < 1:
        raise ValueError("dimension must be at least one")

    n = dimension
    index = np.arange(1, n+1, dtype=float)
    mean = 1.15 + index*0.05/n
    deviation = (0.05/450)*np.sqrt(2*index*n*(n+1))

    return PortfolioProblem(mean, deviation, radius, cardinality)
