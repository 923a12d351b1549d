"""Bond discretization for peridynamics using CSR storage."""

import logging
import numpy as np
from dataclasses import dataclass, field
from typing import NamedTuple, TYPE_CHECKING

from .neighbor import NeighborSearch
from .. import runtime

if TYPE_CHECKING:
    from .body import Body

logger = logging.getLogger(__name__)


class Bond(NamedTuple):
    """One directed bond as seen from its source point."""
    neighbor: int
    length: float
    active: bool


def find_bonds(body: "Body"):
    """Find all bonds of a body.

    A bond (i, j) exists for every ``j != i`` with ``|x_i - x_j| <= delta_i``.
    The bonds of a point are ordered by ascending global index of the
    neighbor. Points without neighbors are valid.

    Returns:
        (bond_offsets, neighbor, length): CSR bond table in global indices
    """
    runtime.init()
    search = NeighborSearch(body.position, body.horizon)
    offsets, neighbor = search.build()
    owner = np.repeat(np.arange(body.n_points, dtype=np.int64), np.diff(offsets))
    length = np.linalg.norm(body.position[neighbor] - body.position[owner], axis=1)
    n_isolated = int(np.count_nonzero(np.diff(offsets) == 0))
    if n_isolated:
        logger.warning("Body '%s': %d points have no neighbors", body.name, n_isolated)
    return offsets, neighbor, length


@dataclass
class BondDiscretization:
    """Bond connectivity and state of a body or a body chunk.

    Points ``0..n_loc_points-1`` own bonds; halo points (if any) follow them
    in ``position``/``volume`` and appear only as bond neighbors.

    Attributes:
        position: Reference positions of all points (n_points, 3)
        volume: Point volumes (n_points,)
        neighbor: Local index of the neighbor of every bond (n_bonds,)
        length: Undeformed bond length (n_bonds,)
        active: Bond is intact (n_bonds,); only ever switched off
        bond_offsets: CSR offsets (n_loc_points + 1,)
        n_neighbors: Initial number of bonds per owned point
        bond_owner: Local index of the source point of every bond
    """
    position: np.ndarray
    volume: np.ndarray
    neighbor: np.ndarray
    length: np.ndarray
    active: np.ndarray
    bond_offsets: np.ndarray
    n_neighbors: np.ndarray = field(init=False)
    bond_owner: np.ndarray = field(init=False)

    def __post_init__(self):
        self.n_neighbors = np.diff(self.bond_offsets)
        self.bond_owner = np.repeat(
            np.arange(len(self.n_neighbors), dtype=np.int64), self.n_neighbors)

    @classmethod
    def from_body(cls, body: "Body") -> "BondDiscretization":
        """Discretize the whole body (global indices are local indices)."""
        offsets, neighbor, length = find_bonds(body)
        return cls(
            position=body.position.copy(),
            volume=body.volume.copy(),
            neighbor=neighbor,
            length=length,
            active=np.ones(len(neighbor), dtype=bool),
            bond_offsets=offsets,
        )

    @property
    def n_loc_points(self) -> int:
        return len(self.n_neighbors)

    @property
    def n_bonds(self) -> int:
        return len(self.neighbor)

    @property
    def bond_ids(self) -> list[range]:
        """Bond index range of every owned point."""
        offsets = self.bond_offsets.tolist()
        return [range(offsets[i], offsets[i + 1]) for i in range(self.n_loc_points)]

    @property
    def bonds(self) -> list[Bond]:
        return [Bond(int(n), float(l), bool(a))
                for n, l, a in zip(self.neighbor, self.length, self.active)]

    def point_bonds(self, i: int) -> list[Bond]:
        """Bonds of owned point ``i``."""
        lo, hi = int(self.bond_offsets[i]), int(self.bond_offsets[i + 1])
        return [Bond(int(self.neighbor[k]), float(self.length[k]), bool(self.active[k]))
                for k in range(lo, hi)]

    def n_active_bonds(self) -> np.ndarray:
        """Number of intact bonds per owned point."""
        return np.bincount(self.bond_owner, weights=self.active,
                           minlength=self.n_loc_points).astype(np.int64)
