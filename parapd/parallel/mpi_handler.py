"""Distributed data handler: one chunk per MPI rank (mpi4py)."""

import logging
import numpy as np
from typing import Callable, TYPE_CHECKING

from .coordinator import MPICoordinator
from .exchange import find_halo_exchanges
from ..core.body_chunk import init_body_chunk
from ..core.chunk_handler import ChunkHandler
from ..core.decomposition import PointDecomposition
from ..errors import WorkerError

if TYPE_CHECKING:
    from ..core.body import Body

logger = logging.getLogger(__name__)

# Message tags: direction offset + field index
LTH_TAG = 100
HTL_TAG = 200


class MPIDataHandler:
    """The chunk of this rank plus the exchange plans it takes part in.

    Every rank decomposes the body the same way and derives the exchange
    plans of all chunks, then keeps its own chunk only. Exchanges are
    non-blocking sends and receives matched by source rank and field tag,
    completed with ``Waitall`` before the received values are used, so
    every exchange is a synchronization point between the ranks involved.

    Attributes:
        comm: MPI communicator
        rank: Rank of this process (= chunk id)
        chunk: Body chunk owned by this rank
        chunks: ``[chunk]``; solvers address it as chunk 0
        coordinator: ``MPICoordinator`` of the communicator
    """

    def __init__(self, body: "Body", time_solver, comm=None):
        from mpi4py import MPI

        self.comm = comm if comm is not None else MPI.COMM_WORLD
        self.rank = self.comm.Get_rank()
        self.coordinator = MPICoordinator(self.comm)
        n_chunks = self.comm.Get_size()

        self.body_name = body.name
        self.decomp = PointDecomposition(body, n_chunks)
        self.chunk = init_body_chunk(body, time_solver, self.decomp, self.rank)
        self.chunks = [self.chunk]
        self.loc_to_halo_fields = body.material.loc_to_halo_fields
        self.halo_to_loc_fields = body.material.halo_to_loc_fields

        handlers = [ChunkHandler.from_decomposition(self.decomp, c) for c in range(n_chunks)]
        lth_exs, htl_exs = find_halo_exchanges(handlers)
        self.lth_recv = lth_exs[self.rank]
        self.lth_send = [ex for exs in lth_exs for ex in exs if ex.src_chunk_id == self.rank]
        self.htl_recv = htl_exs[self.rank]
        self.htl_send = [ex for exs in htl_exs for ex in exs if ex.src_chunk_id == self.rank]

    @property
    def n_chunks(self) -> int:
        return self.comm.Get_size()

    def run_phase(self, fn: Callable[[int], None]) -> None:
        """Run ``fn(0)`` on the chunk of this rank; any error aborts all ranks."""
        try:
            fn(0)
        except Exception as e:
            self.coordinator.abort(WorkerError(self.rank, e))

    def _exchange(self, send, recv, fields, tag_base: int, accumulate: bool) -> None:
        from mpi4py import MPI

        storage = self.chunk.storage
        for k, name in enumerate(fields):
            tag = tag_base + k
            field = storage[name]
            requests = []
            send_bufs = []
            for ex in send:
                buf = np.ascontiguousarray(field[ex.src_idxs])
                send_bufs.append(buf)
                requests.append(self.comm.Isend(buf, dest=ex.dest_chunk_id, tag=tag))
            recv_bufs = []
            for ex in recv:
                buf = np.empty((len(ex.dest_idxs),) + field.shape[1:], dtype=field.dtype)
                recv_bufs.append(buf)
                requests.append(self.comm.Irecv(buf, source=ex.src_chunk_id, tag=tag))
            MPI.Request.Waitall(requests)
            # recv is ordered by source rank
            for ex, buf in zip(recv, recv_bufs):
                if accumulate:
                    field[ex.dest_idxs] += buf
                else:
                    field[ex.dest_idxs] = buf

    def exchange_loc_to_halo(self, chunk_id: int = 0) -> None:
        self._exchange(self.lth_send, self.lth_recv, self.loc_to_halo_fields, LTH_TAG, False)

    def exchange_halo_to_loc(self, chunk_id: int = 0) -> None:
        self._exchange(self.htl_send, self.htl_recv, self.halo_to_loc_fields, HTL_TAG, True)

    def apply_contact_forces(self) -> None:
        pass

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def log_summary(self) -> None:
        if self.coordinator.is_root:
            logger.info("MPI data handler '%s': %d ranks, rank 0 owns %d points and %d halo points",
                        self.body_name, self.n_chunks, self.chunk.ch.n_loc_points,
                        self.chunk.ch.n_halo_points)
