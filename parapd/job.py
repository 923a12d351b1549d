"""작업 정의와 실행.

Job 은 공간 설정(Body 또는 MultibodySetup), 시간 적분기, 실행 옵션을 묶는다.
submit 은 데이터 핸들러를 만들고 적분기를 실행한다.
"""

import logging
import numpy as np
from pathlib import Path
from typing import Optional, Union

from .config import FileBodyConfig, JobConfig, JobOptions
from .core.body import Body, grid_body
from .core.damage import get_statistics
from .core.multibody import MultibodySetup
from .errors import ConfigurationError
from .material.bond_based import BBMaterial
from .solver import TimeSolver, create_time_solver

logger = logging.getLogger(__name__)

MATERIALS = {"bb": BBMaterial}


class Job:
    """시뮬레이션 작업.

    Args:
        spatial_setup: 단일 물체 또는 다물체 설정
        time_solver: 시간 적분기
        options: 실행 옵션 (None이면 내보내기 없음)
    """

    def __init__(
        self,
        spatial_setup: Union[Body, MultibodySetup],
        time_solver: TimeSolver,
        options: Optional[JobOptions] = None,
    ):
        if not isinstance(spatial_setup, (Body, MultibodySetup)):
            raise ConfigurationError(f"공간 설정이 아님: {spatial_setup!r}")
        self.spatial_setup = spatial_setup
        self.time_solver = time_solver
        self.options = options or JobOptions()

    @property
    def is_multibody(self) -> bool:
        return isinstance(self.spatial_setup, MultibodySetup)

    @classmethod
    def from_config(cls, config: JobConfig) -> "Job":
        """JobConfig 로부터 작업 생성."""
        body = build_body(config)
        solver = create_time_solver(config.solver.kind, **config.solver.params())
        return cls(body, solver, config.job.options())


def _condition_fun(value: float, ramp: bool):
    if ramp:
        return lambda t: value * t
    return lambda t: value


def build_body(config: JobConfig) -> Body:
    """설정으로부터 Body 생성 (점집합 → 재료 → 조건 → 균열 순)."""
    material = MATERIALS[config.materials[0].model]()
    bc = config.body
    if isinstance(bc, FileBodyConfig):
        body = _load_npz_body(material, bc.path, bc.name)
    else:
        body = grid_body(material, bc.origin, bc.spacing, bc.n_points, name=bc.name)

    for ps in config.point_sets:
        lo = np.asarray(ps.min)
        hi = np.asarray(ps.max)
        body.point_set(ps.name, lambda p, lo=lo, hi=hi: np.all((p >= lo) & (p <= hi), axis=1))

    for mat in config.materials:
        if mat.model != config.materials[0].model:
            raise ConfigurationError("한 물체에는 한 종류의 재료 모델만 사용 가능")
        body.set_material(mat.point_set, **mat.params())

    for cond in config.conditions:
        if cond.kind == "velocity_bc":
            body.velocity_bc(_condition_fun(cond.value, cond.ramp), cond.point_set, cond.dim)
        elif cond.kind == "forcedensity_bc":
            body.forcedensity_bc(_condition_fun(cond.value, cond.ramp), cond.point_set, cond.dim)
        else:
            body.velocity_ic(cond.value, cond.point_set, cond.dim)

    for crack in config.precracks:
        body.precrack(crack.set_a, crack.set_b)
    return body


def _load_npz_body(material, path: Path, name: str) -> Body:
    if not path.exists():
        raise ConfigurationError(f"점 데이터 파일이 없음: {path}")
    with np.load(path) as data:
        missing = {"position", "volume"} - set(data.files)
        if missing:
            raise ConfigurationError(f"{path}: 배열 누락 {sorted(missing)}")
        return Body(material, data["position"], data["volume"], name=name)


def submit(
    job: Job,
    n_chunks: int = 1,
    n_workers: Optional[int] = None,
    mpi: bool = False,
    comm=None,
):
    """작업 실행.

    Args:
        job: 실행할 작업
        n_chunks: 물체당 청크 수 (스레드 실행)
        n_workers: 스레드 수 (None이면 min(청크 수, CPU 수))
        mpi: MPI 실행 (랭크당 청크 1개, n_chunks 무시)
        comm: MPI 커뮤니케이터 (None이면 COMM_WORLD)

    Returns:
        실행을 마친 데이터 핸들러
    """
    if mpi:
        if job.is_multibody:
            raise ConfigurationError("다물체 시뮬레이션은 MPI 실행을 지원하지 않음")
        from .parallel.mpi_handler import MPIDataHandler
        dh = MPIDataHandler(job.spatial_setup, job.time_solver, comm=comm)
    elif job.is_multibody:
        from .parallel.multibody_handler import MultibodyDataHandler
        dh = MultibodyDataHandler(job.spatial_setup, job.time_solver, n_chunks, n_workers)
    else:
        from .parallel.threads_handler import ThreadsDataHandler
        dh = ThreadsDataHandler(job.spatial_setup, job.time_solver, n_chunks, n_workers)

    if dh.coordinator.is_root:
        job.spatial_setup.log_summary()
    with dh:
        dh.log_summary()
        job.time_solver.run(dh, job.options)
    broken = sum(get_statistics(c)["broken_bonds"] for c in dh.chunks)
    if dh.coordinator.is_root:
        logger.info("작업 완료: %d 스텝, 끊어진 본드 %d 개 (루트 기준)", job.time_solver.n_steps, broken)
    return dh
