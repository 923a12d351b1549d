"""Domain decomposition of a body's points into chunks.

Chunks are grown over the bond graph (greedy graph growing): starting from
the lowest unassigned point, a chunk absorbs neighbors breadth first until
it reaches its target size. Chunks therefore follow the neighbor structure
of the body, which keeps the number of bonds crossing chunk borders (and
with it the halo exchange volume) small.
"""

import logging
import numpy as np
from collections import deque
from typing import TYPE_CHECKING, Union

from .bonds import BondDiscretization, find_bonds
from ..errors import DecompositionError

if TYPE_CHECKING:
    from .body import Body

logger = logging.getLogger(__name__)


def distribute_equally(n_items: int, n_chunks: int) -> list[int]:
    """Chunk sizes differing by at most one; the first chunks get the extra items."""
    base, rest = divmod(n_items, n_chunks)
    return [base + 1 if c < rest else base for c in range(n_chunks)]


def _grow_chunks(offsets: list, neighbor: list, sizes: list[int]) -> np.ndarray:
    n_points = len(offsets) - 1
    owner = np.full(n_points, -1, dtype=np.int64)
    seed = 0
    for c, size in enumerate(sizes):
        count = 0
        frontier = deque()
        while count < size:
            if not frontier:
                while owner[seed] != -1:
                    seed += 1
                owner[seed] = c
                count += 1
                frontier.append(seed)
                continue
            i = frontier.popleft()
            for j in neighbor[offsets[i]:offsets[i + 1]]:
                if count >= size:
                    break
                if owner[j] == -1:
                    owner[j] = c
                    count += 1
                    frontier.append(j)
    return owner


class PointDecomposition:
    """Partition of the points of a body into ``n_chunks`` chunks.

    Attributes:
        n_points: Number of points of the body
        n_chunks: Number of chunks
        decomp: Owned global point ids of every chunk (ascending)
        point_src: Owning chunk of every point
        halos: Halo point ids of every chunk, ordered by (owning chunk, id)
        bond_offsets, neighbor, length: Global bond table the decomposition
            was computed from
    """

    def __init__(self, source: Union["Body", BondDiscretization], n_chunks: int):
        """Decompose a body.

        Args:
            source: Body (bonds are searched) or its global bond discretization
            n_chunks: Number of chunks

        Raises:
            DecompositionError: ``n_chunks`` is not in ``1..n_points``
        """
        if isinstance(source, BondDiscretization):
            offsets, neighbor, length = source.bond_offsets, source.neighbor, source.length
            name = "discretization"
        else:
            offsets, neighbor, length = find_bonds(source)
            name = source.name
        n_points = len(offsets) - 1

        if isinstance(n_chunks, bool) or not isinstance(n_chunks, (int, np.integer)):
            raise DecompositionError(f"number of chunks must be an integer, got {n_chunks!r}")
        if n_chunks <= 0:
            raise DecompositionError(f"number of chunks must be positive, got {n_chunks}")
        if n_chunks > n_points:
            raise DecompositionError(
                f"cannot split {n_points} points into {n_chunks} chunks")

        self.n_points = n_points
        self.n_chunks = int(n_chunks)
        self.bond_offsets = offsets
        self.neighbor = neighbor
        self.length = length

        sizes = distribute_equally(n_points, self.n_chunks)
        self.point_src = _grow_chunks(offsets.tolist(), neighbor.tolist(), sizes)
        if np.any(self.point_src < 0):
            missing = np.flatnonzero(self.point_src < 0)
            raise DecompositionError(f"{missing.size} points are not owned by any chunk")
        self.decomp = [np.flatnonzero(self.point_src == c) for c in range(self.n_chunks)]

        bond_src = self.point_src[np.repeat(np.arange(n_points), np.diff(offsets))]
        self.halos = []
        n_cut = 0
        for c in range(self.n_chunks):
            nb = neighbor[bond_src == c]
            foreign = nb[self.point_src[nb] != c]
            n_cut += foreign.size
            halo = np.unique(foreign)
            self.halos.append(halo[np.lexsort((halo, self.point_src[halo]))])

        logger.info("Decomposition of '%s': %d points into %d chunks, %d of %d bonds cross chunks",
                    name, n_points, self.n_chunks, n_cut, len(neighbor))

    def n_loc_points(self, chunk_id: int) -> int:
        return len(self.decomp[chunk_id])

    def n_halo_points(self, chunk_id: int) -> int:
        return len(self.halos[chunk_id])

    def chunk_sizes(self) -> list[tuple[int, int]]:
        """(owned, halo) point counts of every chunk."""
        return [(self.n_loc_points(c), self.n_halo_points(c)) for c in range(self.n_chunks)]
