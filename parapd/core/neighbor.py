"""Grid-based neighbor search for peridynamics with O(n) complexity."""

import logging
import taichi as ti
import numpy as np
from typing import Tuple

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)


@ti.data_oriented
class NeighborSearch:
    """Uniform grid-based neighbor search for finding points within their horizon.

    Uses a cell-linked list approach: points are binned into cubic cells of
    size ``max(horizon)``, so every neighbor of a point lies in one of the 27
    cells around it. The binning and prefix sums are done with numpy, the
    distance tests run in two Taichi kernels (count pass, fill pass) which
    produce a CSR neighbor table.

    Point ``i`` sees point ``j`` when ``|x_j - x_i| <= horizon[i]``, so with
    heterogeneous horizons the relation is not necessarily symmetric.
    """

    def __init__(self, position: np.ndarray, horizon: np.ndarray):
        """Initialize neighbor search grid.

        Args:
            position: Reference positions (n_points, 3)
            horizon: Horizon of every point (n_points,)
        """
        self.position = np.ascontiguousarray(position, dtype=np.float64)
        self.horizon = np.ascontiguousarray(horizon, dtype=np.float64)
        self.n_points = self.position.shape[0]

        # Cell size must be >= the largest horizon
        self.cell_size = float(np.max(self.horizon))

        domain_min = self.position.min(axis=0)
        cell = np.floor((self.position - domain_min) / self.cell_size).astype(np.int64)
        self.cell = np.ascontiguousarray(cell)
        self.grid_dims = np.ascontiguousarray(cell.max(axis=0) + 1, dtype=np.int64)
        if float(np.prod(self.grid_dims.astype(np.float64))) >= 2.0**62:
            raise ConfigurationError(
                f"neighbor search grid {self.grid_dims.tolist()} is too large: "
                f"body extent is out of proportion to the horizon {self.cell_size}")

        linear = (cell[:, 0] * self.grid_dims[1] + cell[:, 1]) * self.grid_dims[2] + cell[:, 2]
        # Stable sort keeps ascending point ids inside a cell
        self.sorted_indices = np.argsort(linear, kind="stable").astype(np.int32)
        # Only occupied cells are stored; kernels look cells up by key
        self.cell_keys, cell_count = np.unique(linear, return_counts=True)
        self.n_cells = len(self.cell_keys)
        self.cell_start = np.zeros(self.n_cells + 1, dtype=np.int32)
        self.cell_start[1:] = np.cumsum(cell_count)

    @ti.kernel
    def _scan_cells(
        self,
        pos: ti.types.ndarray(),
        horizon: ti.types.ndarray(),
        cell: ti.types.ndarray(),
        cell_keys: ti.types.ndarray(),
        cell_start: ti.types.ndarray(),
        sorted_indices: ti.types.ndarray(),
        grid_dims: ti.types.ndarray(),
        offsets: ti.types.ndarray(),
        out: ti.types.ndarray(),
        fill: ti.template(),
    ):
        """Count (fill=False) or write (fill=True) the neighbors of every point."""
        n_cells = cell_keys.shape[0]
        for i in range(pos.shape[0]):
            h_sq = horizon[i] * horizon[i]
            count = 0
            for di in ti.static(range(-1, 2)):
                for dj in ti.static(range(-1, 2)):
                    for dk in ti.static(range(-1, 2)):
                        cx = cell[i, 0] + di
                        cy = cell[i, 1] + dj
                        cz = cell[i, 2] + dk
                        if (0 <= cx < grid_dims[0] and 0 <= cy < grid_dims[1]
                                and 0 <= cz < grid_dims[2]):
                            key = (cx * grid_dims[1] + cy) * grid_dims[2] + cz
                            # Binary search among the occupied cells
                            lo = 0
                            hi = n_cells
                            while lo < hi:
                                mid = (lo + hi) // 2
                                if cell_keys[mid] < key:
                                    lo = mid + 1
                                else:
                                    hi = mid
                            begin = 0
                            end = 0
                            if lo < n_cells:
                                if cell_keys[lo] == key:
                                    begin = cell_start[lo]
                                    end = cell_start[lo + 1]
                            for k in range(begin, end):
                                j = sorted_indices[k]
                                if i != j:
                                    dist_sq = ti.cast(0.0, ti.f64)
                                    for d in ti.static(range(3)):
                                        diff = pos[j, d] - pos[i, d]
                                        dist_sq += diff * diff
                                    if dist_sq <= h_sq:
                                        if ti.static(fill):
                                            out[offsets[i] + count] = j
                                        count += 1
            if ti.static(not fill):
                out[i] = count

    def build(self) -> Tuple[np.ndarray, np.ndarray]:
        """Build the neighbor table.

        Returns:
            (offsets, neighbors): CSR table; the neighbors of point ``i`` are
            ``neighbors[offsets[i]:offsets[i + 1]]`` in ascending order.
        """
        counts = np.zeros(self.n_points, dtype=np.int32)
        offsets = np.zeros(self.n_points + 1, dtype=np.int64)
        self._scan_cells(self.position, self.horizon, self.cell, self.cell_keys, self.cell_start,
                         self.sorted_indices, self.grid_dims, offsets, counts, False)
        np.cumsum(counts, out=offsets[1:])

        n_bonds = int(offsets[-1])
        if n_bonds == 0:
            return offsets, np.zeros(0, dtype=np.int64)

        neighbors = np.zeros(n_bonds, dtype=np.int32)
        self._scan_cells(self.position, self.horizon, self.cell, self.cell_keys, self.cell_start,
                         self.sorted_indices, self.grid_dims, offsets, neighbors, True)

        # Kernel fills rows in cell visiting order; restore enumeration order
        owners = np.repeat(np.arange(self.n_points, dtype=np.int64), counts)
        order = np.lexsort((neighbors, owners))
        logger.debug("Neighbor search: %d points, %d occupied cells, %d bonds",
                     self.n_points, self.n_cells, n_bonds)
        return offsets, neighbors[order].astype(np.int64)

