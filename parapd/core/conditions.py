"""Boundary conditions, initial conditions and precracks.

Conditions are declared on a ``Body`` against named point sets and act on a
single spatial dimension. When a chunk is built they are localized to the
chunk's owned points; halo copies are never written by a condition.
"""

import logging
import math
import numpy as np
from dataclasses import dataclass
from typing import Callable, TYPE_CHECKING, Union

from ..errors import ConfigurationError

if TYPE_CHECKING:
    from .body_chunk import BodyChunk
    from .chunk_handler import ChunkHandler

logger = logging.getLogger(__name__)

_DIMS = {"x": 0, "y": 1, "z": 2}


def get_dim(dim: Union[int, str]) -> int:
    """Normalize a dimension given as 0/1/2 or "x"/"y"/"z"."""
    if isinstance(dim, str):
        if dim.lower() in _DIMS:
            return _DIMS[dim.lower()]
    elif isinstance(dim, (int, np.integer)) and not isinstance(dim, bool) and 0 <= dim <= 2:
        return int(dim)
    raise ConfigurationError(f"invalid dimension {dim!r}; use 0, 1, 2 or 'x', 'y', 'z'")


@dataclass(frozen=True)
class SingleDimBC:
    """Time dependent value imposed on one component of a point field.

    A NaN returned by ``fun`` leaves the field untouched for that time.
    """
    fun: Callable[[float], float]
    field: str
    point_set: str
    dim: int

    def overrides(self, other) -> bool:
        return (self.field == other.field and self.point_set == other.point_set
                and self.dim == other.dim)


@dataclass(frozen=True)
class SingleDimIC:
    """Constant value written once into one component of a point field."""
    value: float
    field: str
    point_set: str
    dim: int

    def overrides(self, other) -> bool:
        return (self.field == other.field and self.point_set == other.point_set
                and self.dim == other.dim)


@dataclass(frozen=True)
class PointSetsPreCrack:
    """Initial crack: every bond between the two point sets starts broken."""
    set_a: str
    set_b: str


Condition = Union[SingleDimBC, SingleDimIC]


def add_condition(conditions: list, new: Condition) -> None:
    """Append ``new``, dropping older conditions it overrides."""
    kept = []
    for old in conditions:
        if new.overrides(old):
            logger.warning("Condition on field '%s', point set '%s', dim %d "
                           "overrides an earlier one", new.field, new.point_set, new.dim)
        else:
            kept.append(old)
    kept.append(new)
    conditions[:] = kept


@dataclass
class LocalizedCondition:
    """A condition together with the local indices of the points it acts on."""
    condition: Condition
    points: np.ndarray


def localize_point_set(points: np.ndarray, ch: "ChunkHandler") -> np.ndarray:
    """Local indices of the owned points of a global point set."""
    owned = np.intersect1d(points, ch.loc_points, assume_unique=True)
    return ch.localize(owned)


def localize_conditions(conditions: list, point_sets: dict, ch: "ChunkHandler") -> list:
    localized = []
    for cond in conditions:
        points = localize_point_set(point_sets[cond.point_set], ch)
        if len(points) > 0:
            localized.append(LocalizedCondition(cond, points))
    return localized


def apply_conditions(chunk: "BodyChunk", t: float) -> None:
    """Apply all boundary conditions of the chunk for time ``t``."""
    for lc in chunk.bcs:
        value = lc.condition.fun(t)
        if value is None or math.isnan(value):
            continue
        field = chunk.storage[lc.condition.field]
        field[lc.points, lc.condition.dim] = value


def apply_initial_conditions(chunk: "BodyChunk") -> None:
    for lc in chunk.ics:
        field = chunk.storage[lc.condition.field]
        field[lc.points, lc.condition.dim] = lc.condition.value


def apply_precracks(chunk: "BodyChunk", point_sets: dict, n_points: int) -> int:
    """Deactivate chunk bonds crossing precrack point sets.

    Returns:
        Number of bonds that were deactivated
    """
    d = chunk.discret
    if not chunk.precracks or d.n_bonds == 0:
        return 0
    gid_i = chunk.ch.point_ids[d.bond_owner]
    gid_j = chunk.ch.point_ids[d.neighbor]
    n_cut = 0
    for crack in chunk.precracks:
        in_a = np.zeros(n_points, dtype=bool)
        in_b = np.zeros(n_points, dtype=bool)
        in_a[point_sets[crack.set_a]] = True
        in_b[point_sets[crack.set_b]] = True
        crossing = (in_a[gid_i] & in_b[gid_j]) | (in_b[gid_i] & in_a[gid_j])
        n_cut += int(np.count_nonzero(crossing & d.active))
        d.active[crossing] = False
    return n_cut
