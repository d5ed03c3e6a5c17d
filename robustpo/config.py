# -*- coding: utf-8 -*-
"""Loop Settings

Controls for a single run of the lazy constraint loop are gathered into one
immutable settings object, which can also be read in from a JSON file.
"""

import json                          # settings files are JSON objects
import numpy as np                   # used for checking finite values
from dataclasses import dataclass, fields

# controls what's imported on `from robustpo.config import *`
__all__ = ["LoopSettings", "load_settings"]


@dataclass(frozen=True)
class LoopSettings:
    """
    Settings for one run of the lazy constraint loop.

    Parameters
    ----------
    tolerance : float, optional
        Cut acceptance tolerance. A cut is only added when the worst-case
        return of a candidate is more than this below the candidate's claimed
        bound. Default value is `1e-2`.
    time_limit : float or None, optional
        Maximum amount of time in seconds to give the search engine. Default
        value is `None`, i.e. no time limit.
    node_limit : int or None, optional
        Maximum number of branch-and-bound nodes the search engine may
        explore. Default value is `None`, i.e. no node limit.
    max_cuts : int, optional
        Maximum number of cuts which may be added during one run. When this
        is reached the search stops and the run is reported as limit reached.
        Default value is `1000`.
    nominal_bound : bool, optional
        Whether to include the static row z <= mean'x in the master problem.
        Default value is `True`.
    debug : str or bool, optional
        Flag which controls whether the search engine prints its output to
        terminal. If given as a string, the master model is also written to
        'str.mps'. Default value is `False`.
    """

    tolerance: float = 1e-2
    time_limit: float | None = None
    node_limit: int | None = None
    max_cuts: int = 1000
    nominal_bound: bool = True
    debug: str | bool = False

    def __post_init__(self):
        try:
            tolerance = float(self.tolerance)
            if not np.isfinite(tolerance) or tolerance <= 0:
                raise ValueError
        except (TypeError, ValueError):
            raise ValueError("tolerance must be a positive number")

        # STRICTLY POSITIVE LIMITS
        for name, value in {"time limit": self.time_limit,
                            "node limit": self.node_limit}.items():
            try:
                if value is not None and not (np.isfinite(float(value))
                                              and float(value) > 0):
                    raise ValueError
            except (TypeError, ValueError):
                raise ValueError(f"{name} must be a positive number")

        if isinstance(self.max_cuts, bool) or not isinstance(self.max_cuts,
                                                             int):
            raise ValueError("max cuts must be a whole number")
        if self.max_cuts < 0:
            raise ValueError("max cuts cannot be negative")

        if not isinstance(self.nominal_bound, bool):
            raise ValueError("'nominal_bound' must be 'True' or 'False'")
        if not isinstance(self.debug, (bool, str)):
            raise ValueError("'debug' must be a boolean or model name")


def load_settings(filename: str) -> LoopSettings:
    """
    Read loop settings from a JSON file. The file should hold a single object
    whose keys are a subset of the fields of `LoopSettings`; missing keys take
    their default values.

    Parameters
    ----------
    filename : str
        Filename, including extension.

    Returns
    -------
    LoopSettings
        The settings represented by the file.
    """

    with open(filename, 'r') as file:
        data = json.load(file)

    if not isinstance(data, dict):
        raise ValueError("settings file must contain a JSON object")

    known = {field.name for field in fields(LoopSettings)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"unknown settings: {', '.join(sorted(unknown))}")

    return LoopSettings(**data)
