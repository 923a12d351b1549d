"""Shared-memory data handler: all chunks in one process, stepped by a thread pool."""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional, TYPE_CHECKING

from .coordinator import LocalCoordinator
from .exchange import add_halo_to_loc, copy_loc_to_halo, find_halo_exchanges
from ..core.body_chunk import chop_body
from ..core.decomposition import PointDecomposition
from ..errors import WorkerError

if TYPE_CHECKING:
    from ..core.body import Body

logger = logging.getLogger(__name__)


class ThreadsDataHandler:
    """Chunks of one body stepped by a ``ThreadPoolExecutor``.

    Every phase of a time step is one ``executor.map`` over the chunk ids;
    the phase ends when all chunks are done, which is the barrier between
    phases. Inside a phase a worker writes only the storage of the chunk it
    processes.

    Attributes:
        body_name: Name of the body
        decomp: Point decomposition
        chunks: Body chunks, indexed by chunk id
        lth_exs: Local to halo exchanges received by every chunk
        htl_exs: Halo to local exchanges received by every chunk
        coordinator: Always a ``LocalCoordinator``
    """

    def __init__(
        self,
        body: "Body",
        time_solver,
        n_chunks: int,
        n_workers: Optional[int] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.body_name = body.name
        self.decomp = PointDecomposition(body, n_chunks)
        self.chunks = chop_body(body, time_solver, self.decomp)
        self.lth_exs, self.htl_exs = find_halo_exchanges([c.ch for c in self.chunks])
        self.loc_to_halo_fields = body.material.loc_to_halo_fields
        self.halo_to_loc_fields = body.material.halo_to_loc_fields
        self.coordinator = LocalCoordinator()

        n_workers = n_workers or min(n_chunks, os.cpu_count() or 1)
        if executor is None:
            self._executor = ThreadPoolExecutor(max_workers=n_workers, thread_name_prefix="parapd")
            self._owns_executor = True
        else:
            self._executor = executor
            self._owns_executor = False
        self.n_workers = n_workers

    @property
    def n_chunks(self) -> int:
        return len(self.chunks)

    def run_phase(self, fn: Callable[[int], None]) -> None:
        """Run ``fn(chunk_id)`` for every chunk and wait for all of them.

        Raises:
            WorkerError: ``fn`` raised for some chunk
        """
        list(self._executor.map(_guarded(fn), range(self.n_chunks)))

    def exchange_loc_to_halo(self, chunk_id: int) -> None:
        copy_loc_to_halo(self.chunks, self.lth_exs[chunk_id], self.loc_to_halo_fields)

    def exchange_halo_to_loc(self, chunk_id: int) -> None:
        add_halo_to_loc(self.chunks, self.htl_exs[chunk_id], self.halo_to_loc_fields)

    def apply_contact_forces(self) -> None:
        pass

    def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=True)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def log_summary(self) -> None:
        n_halo = sum(c.ch.n_halo_points for c in self.chunks)
        n_bonds = sum(c.discret.n_bonds for c in self.chunks)
        logger.info("Threads data handler '%s': %d chunks, %d workers, %d halo points, %d bonds",
                    self.body_name, self.n_chunks, self.n_workers, n_halo, n_bonds)


def _guarded(fn: Callable[[int], None]) -> Callable[[int], None]:
    def run(chunk_id: int) -> None:
        try:
            fn(chunk_id)
        except Exception as e:
            raise WorkerError(chunk_id, e) from e
    return run
