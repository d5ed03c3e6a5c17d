# -*- coding: utf-8 -*-
"""Lazy Constraint Loop

Solves the robust portfolio problem
```
    max_{x,y} min_{p in U} p'x
    subject to sum(x) = 1, x_i <= y_i, sum(y) <= k, y binary,
```
by handing the master problem (with the robust term replaced by z) to a
search engine, and separating each candidate it finds with the oracle. Cuts
are kept in a pool which only grows over the course of a run.
"""

import numpy as np          # defines matrix structures
import numpy.typing as npt  # variable typing definitions for NumPy
from dataclasses import dataclass
from loguru import logger   # progress logging, disabled by default

from .builder import LinearConstraint, build_master
from .config import LoopSettings
from .engines import GurobiEngine, SearchEngine, Status
from .loaders import PortfolioProblem
from .oracle import (
    ClosedFormMinimizer, Cut, CutAcceptancePolicy, SeparationOracle,
    UncertaintyMinimizer
)

# controls what's imported on `from robustpo.loop import *`
__all__ = ["RunResult", "MasterLoop"]


@dataclass(frozen=True, eq=False)
class RunResult:
    """
    Outcome of one run of the lazy constraint loop.

    Attributes
    ----------
    status : Status
        `OPTIMAL` if the search proved optimality, `INFEASIBLE` if there is no
        portfolio meeting the constraints and cuts, and `LIMIT_REACHED` if a
        time, node, or cut budget ran out first.
    x : ndarray or None
        Best portfolio found, or `None` if there isn't one.
    y : ndarray or None
        Asset selection indicators for `x`.
    z : float or None
        Worst-case return the master problem claims for `x`.
    worst_case : float or None
        True worst-case return of `x` over the uncertainty set.
    cuts : tuple
        The cut pool at the end of the run, in the order cuts were added.
    candidates : int
        Number of candidates the oracle was asked to separate.
    """
    status: Status
    x: npt.NDArray[np.floating] | None
    y: npt.NDArray[np.floating] | None
    z: float | None
    worst_case: float | None
    cuts: tuple[LinearConstraint, ...]
    candidates: int

    @property
    def optimal(self) -> bool:
        return self.status is Status.OPTIMAL


class MasterLoop:
    """
    Orchestrates one search engine and one separation oracle over a robust
    portfolio problem.

    Parameters
    ----------
    problem : PortfolioProblem
        Data of the problem to solve.
    engine : SearchEngine, optional
        Mixed-integer search engine to use. Default is `GurobiEngine()`.
    minimizer : type, optional
        `UncertaintyMinimizer` subclass used to find worst-case returns.
        Default is `ClosedFormMinimizer`.
    settings : LoopSettings, optional
        Tolerance, budgets, and output controls. Default is `LoopSettings()`.
    """

    def __init__(
        self,
        problem: PortfolioProblem,
        engine: SearchEngine | None = None,
        minimizer: type[UncertaintyMinimizer] | None = None,
        settings: LoopSettings | None = None
    ):
        self.problem = problem
        self.engine = engine if engine is not None else GurobiEngine()
        self.settings = settings if settings is not None else LoopSettings()

        minimizer = minimizer if minimizer is not None \
            else ClosedFormMinimizer
        self.oracle = SeparationOracle(
            minimizer(problem.uncertainty_set()),
            CutAcceptancePolicy(self.settings.tolerance)
        )

        self.model, self.blocks = build_master(
            problem, nominal_bound=self.settings.nominal_bound
        )
        self.cuts: list[LinearConstraint] = []
        self.candidates: int = 0

    def _split(self, values: npt.NDArray[np.floating]
               ) -> tuple[npt.NDArray[np.floating],
                          npt.NDArray[np.floating], float]:
        return (values[self.blocks.x.indices],
                values[self.blocks.y.indices],
                float(values[self.blocks.z.index]))

    def _on_candidate(self, values: npt.NDArray[np.floating]
                      ) -> list[LinearConstraint] | None:
        self.candidates += 1
        x, _, z = self._split(values)

        # lazy cuts aren't guaranteed to be enforced on every later
        # candidate, so any pooled cut violated here is handed back again
        violated = [cut for cut in self.cuts
                    if cut.slack(values) < -self.oracle.policy.tolerance]
        if violated:
            logger.warning("candidate {} violates pooled cuts {}",
                           self.candidates, [cut.name for cut in violated])

        verdict = self.oracle.separate(x, z)
        if not isinstance(verdict, Cut):
            logger.debug("candidate {}: z = {:.6f}, worst case {:.6f}, kept",
                         self.candidates, z, verdict.worst_z)
            return violated

        if len(self.cuts) >= self.settings.max_cuts:
            logger.info("cut budget of {} reached", self.settings.max_cuts)
            return None

        cut = self.model.row(
            [(self.blocks.z, 1.0), (self.blocks.x, -verdict.worst_p)],
            "<=", 0.0, name=f"P{len(self.cuts)}"
        )
        self.cuts.append(cut)
        logger.debug("candidate {}: z = {:.6f}, worst case {:.6f}, added {}",
                     self.candidates, z, verdict.worst_z, cut.name)
        return violated + [cut]

    def run(self) -> RunResult:
        """
        Solve the robust portfolio problem.

        Returns
        -------
        RunResult
            Status of the run, the best portfolio found, and the cut pool.
        """

        # each run starts from an empty pool
        self.cuts = []
        self.candidates = 0

        outcome = self.engine.solve(
            self.model,
            self._on_candidate,
            time_limit=self.settings.time_limit,
            node_limit=self.settings.node_limit,
            debug=self.settings.debug
        )

        x = y = z = worst_case = None
        if outcome.values is not None and outcome.status is not \
                Status.INFEASIBLE:
            x, y, z = self._split(outcome.values)
            worst_case = self.oracle.worst_case(x)

        logger.info("{} after {} candidates and {} cuts",
                    outcome.status.value, self.candidates, len(self.cuts))

        return RunResult(outcome.status, x, y, z, worst_case,
                         tuple(self.cuts), self.candidates)
