# -*- coding: utf-8 -*-
"""Building Master Problems

Rather than adding variables and constraints straight into a solver's model,
problems are put together with a `ProblemBuilder` and frozen into a plain
`LinearModel`. That model is only handed to a search engine at solve time,
so the same problem can be passed to Gurobi or HiGHS unchanged.
"""

import numpy as np          # defines matrix structures
import numpy.typing as npt  # variable typing definitions for NumPy
from dataclasses import dataclass
from scipy import sparse    # used for sparse matrix format

from .loaders import PortfolioProblem

# controls what's imported on `from robustpo.builder import *`
__all__ = [
    "VariableBlock",
    "LinearConstraint",
    "LinearModel",
    "ProblemBuilder",
    "MasterBlocks",
    "build_master"
]

SENSES = ("<=", ">=", "==")


@dataclass(frozen=True)
class VariableBlock:
    """A contiguous run of variables, [start, start+size), in a model."""
    name: str
    start: int
    size: int

    @property
    def indices(self) -> npt.NDArray[np.integer]:
        return np.arange(self.start, self.start + self.size)

    @property
    def index(self) -> int:
        """Position of a scalar variable."""
        if self.size != 1:
            raise ValueError(f"'{self.name}' is not a scalar variable")
        return self.start


@dataclass(frozen=True, eq=False)
class LinearConstraint:
    """
    A single linear row, coefficients'v (sense) rhs, with the coefficients
    stored densely over all variables of the model.
    """
    coefficients: npt.NDArray[np.floating]
    sense: str
    rhs: float
    name: str = ""

    def slack(self, values: npt.ArrayLike) -> float:
        """
        Amount by which `values` satisfy the row. Negative values mean the
        row is violated; for equality rows this is minus the absolute gap.
        """
        lhs = float(self.coefficients@np.asarray(values, dtype=float))
        if self.sense == "<=":
            return self.rhs - lhs
        if self.sense == ">=":
            return lhs - self.rhs
        return -abs(lhs - self.rhs)


def _dense_row(
    terms,  # sequence of (VariableBlock, coefficients) pairs
    num_variables: int
) -> npt.NDArray[np.floating]:
    """Scatters block-wise coefficients into one dense row."""
    row = np.zeros(num_variables, dtype=float)
    for block, coefficients in terms:
        if block.start + block.size > num_variables:
            raise ValueError(f"'{block.name}' is not part of this model")
        values = np.asarray(coefficients, dtype=float)
        # scalars apply across the whole block
        if values.ndim == 0:
            values = np.full(block.size, float(values))
        if values.shape != (block.size,):
            raise ValueError(
                f"'{block.name}' needs {block.size} coefficients, "
                f"got {values.size}"
            )
        row[block.indices] += values
    return row


def _checked_sense(sense: str) -> str:
    if sense not in SENSES:
        raise ValueError(f"sense must be one of {', '.join(SENSES)}")
    return sense


@dataclass(frozen=True, eq=False)
class LinearModel:
    """
    A frozen mixed-integer linear model. Every array is indexed by variable
    position; `constraints` are kept in the order they were added.
    """
    name: str
    variable_names: tuple[str, ...]
    lower: npt.NDArray[np.floating]
    upper: npt.NDArray[np.floating]
    integer: npt.NDArray[np.bool_]
    objective: npt.NDArray[np.floating]
    maximize: bool
    constraints: tuple[LinearConstraint, ...]

    @property
    def num_variables(self) -> int:
        return len(self.variable_names)

    def matrix(self) -> sparse.csr_matrix:
        """Constraint matrix in compressed sparse row format."""
        if not self.constraints:
            return sparse.csr_matrix((0, self.num_variables), dtype=float)
        return sparse.csr_matrix(
            np.vstack([c.coefficients for c in self.constraints])
        )

    def row(self, terms, sense: str, rhs: float,
            name: str = "") -> LinearConstraint:
        """
        Builds a row over this model's variables without changing the model,
        e.g. for cuts found during the search.
        """
        return LinearConstraint(
            _dense_row(terms, self.num_variables), _checked_sense(sense),
            float(rhs), name
        )


class ProblemBuilder:
    """
    Accumulates variables and linear constraints for a `LinearModel`. Once
    `build` has been called the builder is sealed.

    Examples
    --------
    >>> builder = ProblemBuilder("toy")
    >>> x = builder.add_variables("x", 2, lb=0, ub=1)
    >>> builder.add_constraint([(x, [1, 1])], "<=", 1, name="budget")
    >>> builder.set_objective([(x, [2, 3])], maximize=True)
    >>> model = builder.build()
    """

    def __init__(self, name: str):
        self.name = name
        self._names: list[str] = []
        self._lower: list[float] = []
        self._upper: list[float] = []
        self._integer: list[bool] = []
        self._rows: list[tuple] = []
        self._objective: list = []
        self._maximize: bool = True
        self._built: bool = False

    def _check_open(self):
        if self._built:
            raise RuntimeError(f"model '{self.name}' has already been built")

    def add_variables(self, name: str, size: int,
                      lb: npt.ArrayLike | float = 0.0,
                      ub: npt.ArrayLike | float = np.inf,
                      integer: bool = False) -> VariableBlock:
        """
        Add a block of `size` variables with the given bounds, which can be
        arrays or a float which applies to all of the block.
        """
        self._check_open()
        if size < 1:
            raise ValueError("a variable block needs at least one variable")

        lower = np.broadcast_to(np.asarray(lb, dtype=float), (size,))
        upper = np.broadcast_to(np.asarray(ub, dtype=float), (size,))
        if np.any(lower > upper):
            raise ValueError(f"lower bound exceeds upper bound for '{name}'")

        block = VariableBlock(name, len(self._names), size)
        self._names.extend(f"{name}[{i}]" for i in range(size))
        self._lower.extend(lower.tolist())
        self._upper.extend(upper.tolist())
        self._integer.extend([integer]*size)
        return block

    def add_variable(self, name: str, lb: float = 0.0, ub: float = np.inf,
                     integer: bool = False) -> VariableBlock:
        block = self.add_variables(name, 1, lb, ub, integer)
        # scalar variables keep their plain name
        self._names[block.start] = name
        return block

    def add_constraint(self, terms, sense: str, rhs: float,
                       name: str = "") -> None:
        """
        Add the row sum(coefficients'block) (sense) rhs, where `terms` is a
        sequence of `(VariableBlock, coefficients)` pairs.
        """
        self._check_open()
        terms = list(terms)
        # checks the terms now, though the row is scattered at build time
        # once all variables are known
        _dense_row(terms, len(self._names))
        self._rows.append((terms, _checked_sense(sense), float(rhs),
                           name or f"R{len(self._rows)}"))

    def set_objective(self, terms, maximize: bool = True) -> None:
        self._check_open()
        terms = list(terms)
        _dense_row(terms, len(self._names))
        self._objective = terms
        self._maximize = maximize

    def build(self) -> LinearModel:
        self._check_open()
        self._built = True

        n = len(self._names)
        constraints = tuple(
            LinearConstraint(_dense_row(terms, n), sense, rhs, name)
            for terms, sense, rhs, name in self._rows
        )

        return LinearModel(
            name=self.name,
            variable_names=tuple(self._names),
            lower=np.array(self._lower, dtype=float),
            upper=np.array(self._upper, dtype=float),
            integer=np.array(self._integer, dtype=bool),
            objective=_dense_row(self._objective, n),
            maximize=self._maximize,
            constraints=constraints
        )


# MASTER PROBLEM
# The master problem for robust portfolio selection is
# ```
#     max_{x,y,z} z
#     subject to sum(x) = 1,
#                x_i <= y_i,
#                sum(y) <= k,
#                z <= max(mubar),
#                x in [0,1]^n, y in {0,1}^n,
# ```
# with the robust constraint z <= min_{p in U} p'x left to lazy cuts.

@dataclass(frozen=True)
class MasterBlocks:
    """Where x, y, and z live in the master model's variable vector."""
    x: VariableBlock
    y: VariableBlock
    z: VariableBlock


def build_master(
    problem: PortfolioProblem,
    nominal_bound: bool = True
) -> tuple[LinearModel, MasterBlocks]:
    """
    Construct the master problem for a robust portfolio problem.

    Parameters
    ----------
    problem : PortfolioProblem
        Data of the problem to solve.
    nominal_bound : bool, optional
        Whether to include the row z <= mubar'x. The worst case can never
        beat the nominal return, so this row never cuts off a robust solution.
        Default is `True`.

    Returns
    -------
    LinearModel
        The master problem, without any cuts.
    MasterBlocks
        Positions of the x, y, and z variables in the model.
    """

    n = problem.dimension
    builder = ProblemBuilder("robust-portfolio")

    x = builder.add_variables("x", n, lb=0.0, ub=1.0)
    y = builder.add_variables("y", n, lb=0.0, ub=1.0, integer=True)
    z = builder.add_variable("z", lb=-np.inf, ub=float(np.max(problem.mean)))

    builder.add_constraint([(x, 1.0)], "==", 1.0, name="budget")
    for i in range(n):
        # x_i > 0 forces y_i = 1
        link = np.zeros(n)
        link[i] = 1.0
        builder.add_constraint([(x, link), (y, -link)], "<=", 0.0,
                               name=f"link[{i}]")
    builder.add_constraint([(y, 1.0)], "<=", problem.cardinality,
                           name="cardinality")
    if nominal_bound:
        builder.add_constraint([(z, 1.0), (x, -problem.mean)], "<=", 0.0,
                               name="nominal")

    builder.set_objective([(z, 1.0)], maximize=True)

    return builder.build(), MasterBlocks(x, y, z)
