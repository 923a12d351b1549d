"""Material parameter views of a body chunk.

A chunk resolves once, at construction, whether its points share a single
parameter set or need a per-point table. Both views answer ``get(i)`` for
a local point index and ``field(name)`` with one value per local point
(owned and halo), which is what the vectorized kernels consume.
"""

import numpy as np
from typing import Union


class UniformParameters:
    """All points of the chunk share one parameter set."""

    def __init__(self, params, n_points: int):
        self.params = params
        self.n_points = n_points
        self._cache: dict[str, np.ndarray] = {}

    def get(self, i: int):
        return self.params

    def field(self, name: str) -> np.ndarray:
        if name not in self._cache:
            self._cache[name] = np.full(self.n_points, getattr(self.params, name), dtype=np.float64)
        return self._cache[name]


class PerPointParameterTable:
    """Points of the chunk reference one of several parameter sets."""

    def __init__(self, params: list, params_map: np.ndarray):
        self.params = params
        self.params_map = params_map
        self._cache: dict[str, np.ndarray] = {}

    def get(self, i: int):
        return self.params[self.params_map[i]]

    def field(self, name: str) -> np.ndarray:
        if name not in self._cache:
            values = np.array([getattr(p, name) for p in self.params], dtype=np.float64)
            self._cache[name] = values[self.params_map]
        return self._cache[name]


ParameterView = Union[UniformParameters, PerPointParameterTable]


def create_parameter_view(point_params: list, params_map: np.ndarray, point_ids: np.ndarray) -> ParameterView:
    """Parameter view for the chunk points ``point_ids``.

    Args:
        point_params: Distinct parameter sets of the body
        params_map: Parameter set index of every body point
        point_ids: Global ids of the chunk points (locals then halos)
    """
    local_map = params_map[point_ids]
    used = np.unique(local_map)
    if len(used) == 1:
        return UniformParameters(point_params[used[0]], len(point_ids))
    remap = np.zeros(len(point_params), dtype=np.int64)
    remap[used] = np.arange(len(used))
    return PerPointParameterTable([point_params[k] for k in used], remap[local_map])
