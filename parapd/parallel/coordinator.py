"""Coordinator role of a run.

The coordinator decides who logs run-level messages and shows progress,
provides the barrier and reductions that span workers, and aborts the run
when a worker fails. Single-process runs use ``LocalCoordinator`` whose
barrier is a no-op; MPI runs use ``MPICoordinator``.
"""

import logging

logger = logging.getLogger(__name__)


class LocalCoordinator:
    """Coordinator of a single-process (threads) run."""

    rank = 0
    size = 1
    is_root = True

    def barrier(self) -> None:
        pass

    def allreduce_min(self, value: float) -> float:
        return value

    def abort(self, error: BaseException):
        """Abort the run by re-raising ``error`` in the caller."""
        raise error


class MPICoordinator:
    """Coordinator of an MPI run; rank 0 is the root."""

    def __init__(self, comm):
        self.comm = comm
        self.rank = comm.Get_rank()
        self.size = comm.Get_size()
        self.is_root = self.rank == 0

    def barrier(self) -> None:
        self.comm.Barrier()

    def allreduce_min(self, value: float) -> float:
        from mpi4py import MPI
        return self.comm.allreduce(value, op=MPI.MIN)

    def abort(self, error: BaseException):
        """Abort all ranks of the communicator."""
        logger.error("rank %d: %s", self.rank, error)
        self.comm.Abort(1)
        raise error
