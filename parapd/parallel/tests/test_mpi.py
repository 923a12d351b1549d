"""MPI 조정자와 MPI 데이터 핸들러 테스트.

pytest 단일 프로세스 실행(랭크 1개)을 가정한다. mpi4py 가 없으면 핸들러
테스트는 건너뛴다.
"""

import numpy as np
import pytest

from parapd import runtime
from parapd.core.body import grid_body
from parapd.errors import WorkerError
from parapd.material.bond_based import BBMaterial
from parapd.parallel.coordinator import MPICoordinator
from parapd.parallel.threads_handler import ThreadsDataHandler
from parapd.solver import DynamicRelaxation


@pytest.fixture(scope="module", autouse=True)
def init_taichi():
    """모듈당 한 번 Taichi 초기화."""
    runtime.init()


@pytest.fixture(scope="module")
def comm():
    pytest.importorskip("mpi4py")
    from mpi4py import MPI

    if MPI.COMM_WORLD.Get_size() != 1:
        pytest.skip("단일 랭크 전용 테스트")
    return MPI.COMM_WORLD


class FakeComm:
    """Abort 호출을 기록하는 가짜 커뮤니케이터."""

    def __init__(self, rank=0, size=2):
        self.rank = rank
        self.size = size
        self.aborted = None

    def Get_rank(self):
        return self.rank

    def Get_size(self):
        return self.size

    def Barrier(self):
        pass

    def Abort(self, code):
        self.aborted = code


def bar_body():
    body = grid_body(BBMaterial(), (0, 0, 0), 1.0, (6, 2, 2))
    body.set_material(horizon=1.5, rho=1, E=1)
    body.point_set("right", lambda p: p[:, 0] > 4.5)
    body.velocity_bc(lambda t: 0.01, "right", "x")
    return body


class TestMPICoordinator:
    """MPICoordinator 테스트."""

    def test_root(self):
        assert MPICoordinator(FakeComm(rank=0)).is_root
        assert not MPICoordinator(FakeComm(rank=1)).is_root

    def test_abort(self):
        """abort: 모든 랭크 중단 후 예외 전파."""
        fake = FakeComm(rank=1)
        coord = MPICoordinator(fake)
        with pytest.raises(WorkerError):
            coord.abort(WorkerError(1, ValueError("boom")))
        assert fake.aborted == 1


class TestMPIDataHandler:
    """랭크 1개 MPI 실행 == 청크 1개 스레드 실행."""

    def test_single_rank_matches_threads(self, comm):
        from parapd.parallel.mpi_handler import MPIDataHandler

        with MPIDataHandler(bar_body(), DynamicRelaxation(steps=5), comm=comm) as dh_mpi:
            DynamicRelaxation(steps=5).run(dh_mpi)
            assert dh_mpi.n_chunks == 1
            assert dh_mpi.chunks == [dh_mpi.chunk]
            assert dh_mpi.lth_send == [] and dh_mpi.htl_recv == []

        with ThreadsDataHandler(bar_body(), DynamicRelaxation(steps=5), 1) as dh_threads:
            DynamicRelaxation(steps=5).run(dh_threads)

        u_mpi = dh_mpi.chunk.storage.displacement
        u_threads = dh_threads.chunks[0].storage.displacement
        assert np.abs(u_threads).max() > 0.0
        assert np.array_equal(u_mpi, u_threads)

    def test_critical_timestep_reduction(self, comm):
        """allreduce_min 은 랭크 1개에서 항등."""
        from parapd.parallel.mpi_handler import MPIDataHandler

        dh = MPIDataHandler(bar_body(), DynamicRelaxation(steps=1), comm=comm)
        assert dh.coordinator.allreduce_min(0.25) == 0.25
        dh.coordinator.barrier()
