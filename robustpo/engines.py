# -*- coding: utf-8 -*-
"""Search Engines

A search engine takes a frozen `LinearModel` and explores it, handing each
integer-feasible candidate it finds to a callback which may answer with cuts
to add before the search carries on. Gurobi does this natively through lazy
constraints; HiGHS has no such hook, so there each candidate is the optimum
of a full solve and the cuts are added before solving again.
"""

import numpy as np          # defines matrix structures
import numpy.typing as npt  # variable typing definitions for NumPy
import gurobipy as gp       # Gurobi optimization interface
import highspy              # HiGHS optimization interface
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from loguru import logger   # progress logging, disabled by default
from time import time       # used to share the time limit between solves
from typing import Callable

from .builder import LinearConstraint, LinearModel

# controls what's imported on `from robustpo.engines import *`
__all__ = [
    "Status",
    "EngineOutcome",
    "CandidateHandler",
    "SearchEngine",
    "GurobiEngine",
    "HighsEngine"
]


class Status(Enum):
    OPTIMAL = "optimal"
    INFEASIBLE = "infeasible"
    LIMIT_REACHED = "limit reached"


@dataclass(frozen=True, eq=False)
class EngineOutcome:
    """
    Final state of a search.

    Attributes
    ----------
    status : Status
        How the search finished.
    values : ndarray or None
        Best solution found, over all model variables, or `None` if there
        isn't one.
    objective : float or None
        Objective value of `values`.
    bound : float or None
        Best bound the engine proved on the objective, if known.
    candidates : int
        Number of candidates handed to the callback.
    """
    status: Status
    values: npt.NDArray[np.floating] | None
    objective: float | None
    bound: float | None
    candidates: int


# Called with a copy of the variable values at each candidate. Returns the
# cuts to add (an empty list to accept the candidate) or None to stop.
CandidateHandler = Callable[[npt.NDArray[np.floating]],
                            list[LinearConstraint] | None]


class SearchEngine(ABC):
    """Interface to a mixed-integer solver which supports adding cuts."""

    @abstractmethod
    def solve(
        self,
        model: LinearModel,
        on_candidate: CandidateHandler,
        time_limit: float | None = None,
        node_limit: int | None = None,
        debug: str | bool = False
    ) -> EngineOutcome:
        """
        Search a model, consulting `on_candidate` for each integer-feasible
        candidate found.

        Parameters
        ----------
        model : LinearModel
            Mixed-integer model to solve.
        on_candidate : callable
            Handler for candidates, see `CandidateHandler`.
        time_limit : float or None, optional
            Maximum amount of time in seconds for the whole search. Default
            value is `None`, i.e. no time limit.
        node_limit : int or None, optional
            Maximum number of branch-and-bound nodes. Default value is `None`,
            i.e. no node limit.
        debug : str or bool, optional
            Flag which controls both whether the solver prints its output to
            terminal and whether it saves the model file to the working
            directory. If given as a string, that string is used as the model
            output name, 'str.mps'. Default value is `False`.

        Returns
        -------
        EngineOutcome
            Final state of the search.
        """


class GurobiEngine(SearchEngine):
    """
    Gurobi with lazy constraints. Cuts are added from inside the MIPSOL
    callback, so the branch-and-bound tree is never restarted.
    """

    SENSES = {"<=": gp.GRB.LESS_EQUAL, ">=": gp.GRB.GREATER_EQUAL,
              "==": gp.GRB.EQUAL}

    def solve(self, model, on_candidate, time_limit=None, node_limit=None,
              debug=False):
        with gp.Model(model.name) as grb:
            # Gurobi spews all its output into the terminal by default, this
            # restricts that behaviour to only happen with the `debug` flag.
            if not debug:
                grb.setParam('OutputFlag', 0)

            inf = gp.GRB.INFINITY
            v = grb.addMVar(
                shape=model.num_variables,
                lb=np.clip(model.lower, -inf, inf),
                ub=np.clip(model.upper, -inf, inf),
                vtype=np.where(model.integer, gp.GRB.INTEGER,
                               gp.GRB.CONTINUOUS),
                name="v"
            )
            variables = v.tolist()

            grb.setObjective(
                v@model.objective,
                gp.GRB.MAXIMIZE if model.maximize else gp.GRB.MINIMIZE
            )

            if model.constraints:
                rows = grb.addMConstr(
                    model.matrix(), v,
                    np.array([self.SENSES[c.sense]
                              for c in model.constraints]),
                    np.array([c.rhs for c in model.constraints])
                )
            grb.update()

            # carry the model's names through for written model files
            for var, name in zip(variables, model.variable_names):
                var.VarName = name
            if model.constraints:
                for constr, row in zip(rows.tolist(), model.constraints):
                    constr.ConstrName = row.name

            # optional controls to stop Gurobi taking too long
            if time_limit:
                grb.setParam(gp.GRB.Param.TimeLimit, time_limit)
            if node_limit:
                grb.setParam(gp.GRB.Param.NodeLimit, node_limit)

            # presolve must not make reductions which lazy cuts could break
            grb.setParam(gp.GRB.Param.LazyConstraints, 1)

            candidates = 0
            stopped = False
            accepted = None  # last candidate the handler let through

            def callback(cb_model, where):
                nonlocal candidates, stopped, accepted
                if where != gp.GRB.Callback.MIPSOL:
                    return

                candidates += 1
                values = np.array(cb_model.cbGetSolution(variables))
                cuts = on_candidate(values)

                if cuts is None:
                    logger.debug("stopping search at candidate {}",
                                 candidates)
                    stopped = True
                    cb_model.terminate()
                    return

                if not cuts:
                    accepted = values.copy()

                for cut in cuts:
                    support = np.flatnonzero(cut.coefficients)
                    cb_model.cbLazy(
                        gp.LinExpr(cut.coefficients[support].tolist(),
                                   [variables[i] for i in support]),
                        self.SENSES[cut.sense],
                        cut.rhs
                    )

            # model file can be used externally for verification
            if debug:
                if type(debug) is str:
                    grb.write(f"{debug}.mps")
                else:
                    grb.write("grb-master.mps")

            grb.optimize(callback)

            if stopped:
                status = Status.LIMIT_REACHED
            elif grb.Status == gp.GRB.OPTIMAL:
                status = Status.OPTIMAL
            elif grb.Status in (gp.GRB.INFEASIBLE, gp.GRB.INF_OR_UNBD):
                status = Status.INFEASIBLE
            else:
                # time or node limit
                status = Status.LIMIT_REACHED

            values = objective = bound = None
            if stopped:
                # Gurobi may hold the rejected candidate as its incumbent,
                # so fall back on the last one that passed the handler
                if accepted is not None:
                    values = accepted
                    objective = float(model.objective@values)
            elif grb.SolCount > 0:
                values = np.array(v.X)  # HACK np.array avoids issue #9
                objective = grb.ObjVal
            if status is not Status.INFEASIBLE:
                try:
                    bound = grb.ObjBound
                except (AttributeError, gp.GurobiError):
                    bound = None  # no bound if stopped before the root

            logger.debug("Gurobi finished with status {} after {} candidates",
                         grb.Status, candidates)

        return EngineOutcome(status, values, objective, bound, candidates)


class HighsEngine(SearchEngine):
    """
    HiGHS, polling for candidates. Each round solves the model to optimality,
    hands that solution over as the candidate, and adds any returned cuts as
    new rows before the next round. The time limit is shared between rounds,
    while the node limit applies to each round separately.
    """

    def row_bounds(self, sense: str, rhs: float) -> tuple[float, float]:
        inf = highspy.kHighsInf
        if sense == "<=":
            return -inf, rhs
        if sense == ">=":
            return rhs, inf
        return rhs, rhs

    def solve(self, model, on_candidate, time_limit=None, node_limit=None,
              debug=False):
        # initialise an empty model
        h = highspy.Highs()
        lp = highspy.HighsLp()

        # use value for infinity from HiGHS
        inf = highspy.kHighsInf

        n = model.num_variables
        m = len(model.constraints)
        lp.model_name_ = model.name
        lp.num_col_ = n
        lp.num_row_ = m

        # HiGHS does minimization so negate objective if maximizing
        sign = -1.0 if model.maximize else 1.0
        lp.col_cost_ = sign*model.objective

        lp.col_lower_ = np.where(np.isinf(model.lower), -inf, model.lower)
        lp.col_upper_ = np.where(np.isinf(model.upper), inf, model.upper)
        lp.integrality_ = [
            highspy.HighsVarType.kInteger if integer
            else highspy.HighsVarType.kContinuous
            for integer in model.integer
        ]

        bounds = [self.row_bounds(c.sense, c.rhs) for c in model.constraints]
        lp.row_lower_ = np.array([lower for lower, _ in bounds], dtype=float)
        lp.row_upper_ = np.array([upper for _, upper in bounds], dtype=float)

        # HiGHS takes the matrix in CSR format, matching `LinearModel.matrix`
        A = model.matrix()
        lp.a_matrix_.format_ = highspy.MatrixFormat.kRowwise
        lp.a_matrix_.num_col_ = n
        lp.a_matrix_.num_row_ = m
        lp.a_matrix_.start_ = A.indptr
        lp.a_matrix_.index_ = A.indices
        lp.a_matrix_.value_ = A.data

        # HiGHS spews all its output into the terminal by default, this
        # restricts that behaviour to only happen when `debug` is used.
        if not debug:
            h.setOptionValue('output_flag', False)
            h.setOptionValue('log_to_console', False)

        if node_limit:
            h.setOptionValue('mip_max_nodes', int(node_limit))

        h.passModel(lp)

        # model file can be used externally for verification
        if debug:
            if type(debug) is str:
                h.writeModel(f"{debug}.mps")
            else:
                h.writeModel("hgs-master.mps")

        start = time()
        candidates = 0
        # only solutions which meet every cut added so far are reported
        values = bound = None

        while True:
            # optional control to stop HiGHS taking too long
            if time_limit:
                remaining = time_limit - (time() - start)
                if remaining <= 0:
                    status = Status.LIMIT_REACHED
                    break
                h.setOptionValue('time_limit', remaining)

            h.run()
            model_status = h.getModelStatus()
            solution = h.getSolution()

            if model_status in (highspy.HighsModelStatus.kInfeasible,
                                highspy.HighsModelStatus.kUnboundedOrInfeasible):
                status = Status.INFEASIBLE
                bound = None
                break

            # taken before any new rows, which would invalidate the info;
            # we negated the objective function, so negate it back
            bound = float(sign*h.getInfo().mip_dual_bound)

            if model_status != highspy.HighsModelStatus.kOptimal:
                # best solution of an unfinished round still meets every cut
                status = Status.LIMIT_REACHED
                if solution.value_valid:
                    values = np.array(solution.col_value)
                break

            # by default, col_value is a stock-Python list
            candidate = np.array(solution.col_value)
            candidates += 1
            cuts = on_candidate(candidate.copy())

            if cuts is None:
                # candidate needed a cut the handler wouldn't give
                status = Status.LIMIT_REACHED
                break
            if not cuts:
                status = Status.OPTIMAL
                values = candidate
                break

            for cut in cuts:
                lower, upper = self.row_bounds(cut.sense, cut.rhs)
                support = np.flatnonzero(cut.coefficients)
                h.addRow(lower, upper, support.size, support,
                         cut.coefficients[support])
            logger.debug("HiGHS round {}: added {} cuts", candidates,
                         len(cuts))

        objective = None
        if values is not None:
            objective = float(model.objective@values)

        logger.debug("HiGHS finished, {} after {} candidates", status.value,
                     candidates)

        return EngineOutcome(status, values, objective, bound, candidates)
