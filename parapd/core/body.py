"""Peridynamic body: point cloud, point sets, material parameters and conditions."""

import logging
import numpy as np
from typing import Callable, Union

from .conditions import (
    PointSetsPreCrack, SingleDimBC, SingleDimIC, add_condition, get_dim,
)
from ..errors import ConfigurationError
from ..material.material_base import MaterialBase

logger = logging.getLogger(__name__)


class Body:
    """A discretized peridynamic body.

    The point cloud (positions and volumes) is copied on construction and is
    read-only afterwards. Material parameters, boundary conditions, initial
    conditions and precracks are declared on named point sets; the set
    ``"all"`` always exists.

    Attributes:
        material: Material model shared by all points of the body
        name: Body name used in logs and multibody setups
        point_sets: Point set name -> sorted global point indices
        point_params: Distinct point parameter objects
        params_map: Index into ``point_params`` for every point (-1 if unset)
        bcs: Boundary conditions in declaration order
        ics: Initial conditions in declaration order
        precracks: Precracks in declaration order
    """

    def __init__(self, material: MaterialBase, position, volume, name: str = "body"):
        if not isinstance(material, MaterialBase):
            raise ConfigurationError(f"{material!r} is not a material model")

        position = np.array(position, dtype=np.float64)
        volume = np.array(volume, dtype=np.float64).reshape(-1)
        if position.ndim != 2 or position.shape[1] != 3:
            raise ConfigurationError(f"position must have shape (n_points, 3), got {position.shape}")
        n_points = position.shape[0]
        if n_points < 1:
            raise ConfigurationError("a body needs at least one point")
        if volume.shape[0] != n_points:
            raise ConfigurationError(
                f"got {volume.shape[0]} volumes for {n_points} points")
        if not np.all(np.isfinite(position)):
            raise ConfigurationError("positions must be finite")
        if not np.all(np.isfinite(volume)) or np.any(volume <= 0.0):
            raise ConfigurationError("volumes must be finite and positive")
        position.flags.writeable = False
        volume.flags.writeable = False

        self.material = material
        self.name = name
        self._position = position
        self._volume = volume
        self.point_sets: dict[str, np.ndarray] = {"all": np.arange(n_points, dtype=np.int64)}
        self.point_params: list = []
        self.params_map = np.full(n_points, -1, dtype=np.int64)
        self.bcs: list = []
        self.ics: list = []
        self.precracks: list[PointSetsPreCrack] = []

    @property
    def n_points(self) -> int:
        return self._position.shape[0]

    @property
    def position(self) -> np.ndarray:
        return self._position

    @property
    def volume(self) -> np.ndarray:
        return self._volume

    # ---------- point sets ----------

    def point_set(self, name: str, points: Union[Callable, np.ndarray, list, range]) -> None:
        """Define a named point set.

        Args:
            name: Point set name
            points: Point indices, a boolean mask over all points, or a
                callable mapping the (n_points, 3) positions to such a mask
        """
        if name in self.point_sets:
            raise ConfigurationError(f"point set '{name}' already defined in body '{self.name}'")
        if callable(points):
            points = points(self._position)
        points = np.asarray(points)
        if points.dtype == bool:
            if points.shape != (self.n_points,):
                raise ConfigurationError(f"mask for point set '{name}' has wrong shape {points.shape}")
            ids = np.flatnonzero(points)
        else:
            ids = np.unique(points.astype(np.int64).reshape(-1))
            if ids.size and (ids[0] < 0 or ids[-1] >= self.n_points):
                raise ConfigurationError(
                    f"point set '{name}' has indices outside 0..{self.n_points - 1}")
        self.point_sets[name] = ids.astype(np.int64)
        logger.debug("Body '%s': point set '%s' with %d points", self.name, name, ids.size)

    def _check_point_set(self, name: str) -> np.ndarray:
        if name not in self.point_sets:
            raise ConfigurationError(f"there is no point set '{name}' in body '{self.name}'")
        return self.point_sets[name]

    # ---------- material ----------

    def set_material(self, point_set: str = "all", **params) -> None:
        """Assign material parameters to a point set.

        Parameters for ``"all"`` replace every earlier assignment; parameters
        for a named set override earlier assignments of those points only.
        """
        points = self._check_point_set(point_set)
        point_params = self.material.point_params(**params)
        if point_set == "all":
            self.point_params = [point_params]
            self.params_map[:] = 0
        else:
            self.point_params.append(point_params)
            self.params_map[points] = len(self.point_params) - 1
            # Drop parameter objects no longer referenced
            used = np.unique(self.params_map[self.params_map >= 0])
            if len(used) < len(self.point_params):
                remap = np.full(len(self.point_params), -1, dtype=np.int64)
                remap[used] = np.arange(len(used))
                self.point_params = [self.point_params[k] for k in used]
                mask = self.params_map >= 0
                self.params_map[mask] = remap[self.params_map[mask]]

    @property
    def has_uniform_params(self) -> bool:
        return len(self.point_params) == 1

    @property
    def horizon(self) -> np.ndarray:
        """Horizon of every point."""
        self.check_material()
        deltas = np.array([p.delta for p in self.point_params], dtype=np.float64)
        return deltas[self.params_map]

    def check_material(self) -> None:
        missing = np.flatnonzero(self.params_map < 0)
        if missing.size:
            raise ConfigurationError(
                f"body '{self.name}': no material parameters for {missing.size} points "
                f"(first: {missing[0]})")

    # ---------- conditions ----------

    def velocity_bc(self, fun: Callable[[float], float], point_set: str, dim) -> None:
        """Prescribe the velocity component ``dim`` of a point set as ``fun(t)``."""
        self._check_point_set(point_set)
        add_condition(self.bcs, SingleDimBC(fun, "velocity_half", point_set, get_dim(dim)))

    def forcedensity_bc(self, fun: Callable[[float], float], point_set: str, dim) -> None:
        """Prescribe the external force density component ``dim`` as ``fun(t)``."""
        self._check_point_set(point_set)
        add_condition(self.bcs, SingleDimBC(fun, "b_ext", point_set, get_dim(dim)))

    def velocity_ic(self, value: float, point_set: str, dim) -> None:
        """Initial velocity component ``dim`` of a point set."""
        self._check_point_set(point_set)
        add_condition(self.ics, SingleDimIC(float(value), "velocity", point_set, get_dim(dim)))

    def precrack(self, set_a: str, set_b: str) -> None:
        """Break all bonds between two disjoint point sets before the first step."""
        a = self._check_point_set(set_a)
        b = self._check_point_set(set_b)
        if np.intersect1d(a, b).size:
            raise ConfigurationError(
                f"precrack point sets '{set_a}' and '{set_b}' must not intersect")
        self.precracks.append(PointSetsPreCrack(set_a, set_b))

    def __repr__(self):
        return (f"Body(name={self.name!r}, material={type(self.material).__name__}, "
                f"n_points={self.n_points})")

    def log_summary(self) -> None:
        logger.info("Body '%s': %d points, volume %.6g, %d point sets, %d BCs, %d ICs, %d precracks",
                    self.name, self.n_points, float(self._volume.sum()), len(self.point_sets),
                    len(self.bcs), len(self.ics), len(self.precracks))


def grid_body(material: MaterialBase, origin, spacing: float, n_points, name: str = "body") -> Body:
    """Body with points on a regular grid.

    Args:
        material: Material model
        origin: Grid origin (x, y, z)
        spacing: Grid spacing (point separation); every point gets the
            volume spacing**3
        n_points: Number of points in each direction
        name: Body name
    """
    if not spacing > 0:
        raise ConfigurationError(f"grid spacing must be positive, got {spacing}")
    axes = [origin[d] + spacing * np.arange(n_points[d]) for d in range(3)]
    grid = np.meshgrid(*axes, indexing="ij")
    position = np.column_stack([g.reshape(-1) for g in grid])
    volume = np.full(position.shape[0], spacing**3)
    return Body(material, position, volume, name=name)
