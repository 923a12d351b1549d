"""Halo exchange plans between chunks.

Both exchange directions are described by the same record: copy (or add)
rows ``src_idxs`` of chunk ``src_chunk_id`` into rows ``dest_idxs`` of chunk
``dest_chunk_id``. Plans are computed once from the chunk handlers and are
ordered by source chunk, which fixes the summation order of halo to local
accumulation.
"""

import numpy as np
from dataclasses import dataclass
from typing import Sequence

from ..core.chunk_handler import ChunkHandler


@dataclass(frozen=True)
class HaloExchange:
    src_chunk_id: int
    dest_chunk_id: int
    src_idxs: np.ndarray
    dest_idxs: np.ndarray


def find_halo_exchanges(handlers: Sequence[ChunkHandler]):
    """Exchange plans of every chunk.

    Returns:
        (lth_exs, htl_exs): per destination chunk, the local to halo and
        the halo to local exchanges it receives, ordered by source chunk
    """
    n_chunks = len(handlers)
    lth_exs = [[] for _ in range(n_chunks)]
    htl_exs = [[] for _ in range(n_chunks)]
    for dest, ch in enumerate(handlers):
        for src, idxs in sorted(ch.halo_by_src.items()):
            halo_idxs = np.arange(idxs.start, idxs.stop, dtype=np.int64)
            loc_idxs = handlers[src].localize(ch.point_ids[halo_idxs])
            # Local rows of src refresh the halo rows of dest ...
            lth_exs[dest].append(HaloExchange(src, dest, loc_idxs, halo_idxs))
            # ... and the halo rows of dest are added back into src.
            htl_exs[src].append(HaloExchange(dest, src, halo_idxs, loc_idxs))
    for exs in htl_exs:
        exs.sort(key=lambda ex: ex.src_chunk_id)
    return lth_exs, htl_exs


def copy_loc_to_halo(chunks, exchanges: Sequence[HaloExchange], fields: Sequence[str]) -> None:
    for ex in exchanges:
        src = chunks[ex.src_chunk_id].storage
        dest = chunks[ex.dest_chunk_id].storage
        for name in fields:
            dest[name][ex.dest_idxs] = src[name][ex.src_idxs]


def add_halo_to_loc(chunks, exchanges: Sequence[HaloExchange], fields: Sequence[str]) -> None:
    for ex in exchanges:
        src = chunks[ex.src_chunk_id].storage
        dest = chunks[ex.dest_chunk_id].storage
        for name in fields:
            dest[name][ex.dest_idxs] += src[name][ex.src_idxs]
