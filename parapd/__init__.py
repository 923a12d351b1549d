"""청크 병렬 페리다이나믹스.

점 구름을 본드로 이산화하고, 청크로 분할해 스레드 또는 MPI 랭크에서
시간 적분한다.

    from parapd import BBMaterial, Job, JobOptions, VelocityVerlet, grid_body, submit

    body = grid_body(BBMaterial(), (0, 0, 0), 0.1, (20, 10, 4))
    body.set_material(horizon=0.31, rho=8e3, E=2e11, Gc=1e3)
    body.point_set("left", lambda p: p[:, 0] < 0.15)
    body.velocity_bc(lambda t: -1.0, "left", "x")

    job = Job(body, VelocityVerlet(steps=500), JobOptions(export_dir="results"))
    submit(job, n_chunks=4)
"""

from .core.body import Body, grid_body
from .core.multibody import MultibodySetup
from .config import JobConfig, JobOptions
from .errors import (
    ConfigurationError, ConsistencyError, DecompositionError, ParapdError, WorkerError,
)
from .io.export import load_results
from .job import Job, submit
from .material.bond_based import BBMaterial
from .solver import DynamicRelaxation, SolverKind, VelocityVerlet, create_time_solver

__all__ = [
    "Body",
    "grid_body",
    "MultibodySetup",
    "BBMaterial",
    "VelocityVerlet",
    "DynamicRelaxation",
    "SolverKind",
    "create_time_solver",
    "Job",
    "JobConfig",
    "JobOptions",
    "submit",
    "load_results",
    "ParapdError",
    "ConfigurationError",
    "DecompositionError",
    "ConsistencyError",
    "WorkerError",
]
