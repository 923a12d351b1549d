"""Global <-> local index mapping of a body chunk."""

import numpy as np
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .decomposition import PointDecomposition


class ChunkHandler:
    """Index bookkeeping of one chunk.

    Local indices are dense: owned points come first (ascending global id),
    halo points follow, grouped by the chunk that owns them. Global ids are
    never used to index chunk storage.

    Attributes:
        chunk_id: Index of the chunk
        point_ids: Global id of every local index
        loc_points: Owned global ids
        halo_points: Halo global ids
        halo_by_src: Owning chunk -> range of local indices of its halo points
        localizer: Global id -> local index for every referenced point
    """

    def __init__(self, chunk_id: int, loc_points: np.ndarray, halo_points: np.ndarray,
                 point_src: np.ndarray):
        self.chunk_id = chunk_id
        self.loc_points = np.asarray(loc_points, dtype=np.int64)
        self.halo_points = np.asarray(halo_points, dtype=np.int64)
        self.point_ids = np.concatenate([self.loc_points, self.halo_points])

        self.halo_by_src: dict[int, range] = {}
        n_loc = len(self.loc_points)
        srcs = point_src[self.halo_points]
        for src in np.unique(srcs):
            idxs = np.flatnonzero(srcs == src) + n_loc
            self.halo_by_src[int(src)] = range(int(idxs[0]), int(idxs[-1]) + 1)

        self.localizer: dict[int, int] = {int(g): i for i, g in enumerate(self.point_ids)}
        self._order = np.argsort(self.point_ids)
        self._sorted_ids = self.point_ids[self._order]

    @classmethod
    def from_decomposition(cls, decomp: "PointDecomposition", chunk_id: int) -> "ChunkHandler":
        return cls(chunk_id, decomp.decomp[chunk_id], decomp.halos[chunk_id], decomp.point_src)

    @property
    def n_loc_points(self) -> int:
        return len(self.loc_points)

    @property
    def n_halo_points(self) -> int:
        return len(self.halo_points)

    @property
    def n_points(self) -> int:
        return len(self.point_ids)

    def each_point_idx(self) -> range:
        """Local indices of the owned points."""
        return range(self.n_loc_points)

    def localize(self, global_ids) -> np.ndarray:
        """Local indices of global ids referenced by this chunk.

        Raises:
            KeyError: some id is not referenced by this chunk
        """
        global_ids = np.asarray(global_ids, dtype=np.int64)
        pos = np.searchsorted(self._sorted_ids, global_ids)
        pos = np.minimum(pos, len(self._sorted_ids) - 1)
        found = self._sorted_ids[pos] == global_ids
        if not np.all(found):
            missing = global_ids[~found]
            raise KeyError(f"points {missing[:5].tolist()} are not mapped in chunk {self.chunk_id}")
        return self._order[pos]
