"""Time solvers for chunked peridynamics."""

import enum
from typing import Union

from .velocity_verlet import VelocityVerlet
from .dynamic_relaxation import DynamicRelaxation
from ..errors import ConfigurationError


class SolverKind(enum.Enum):
    """시간 적분기 종류."""
    VELOCITY_VERLET = "velocity_verlet"
    DYNAMIC_RELAXATION = "dynamic_relaxation"


TimeSolver = Union[VelocityVerlet, DynamicRelaxation]


def _solver_class(kind: Union[SolverKind, str]):
    try:
        kind = SolverKind(kind)
    except ValueError:
        raise ConfigurationError(f"지원하지 않는 시간 적분기: {kind}") from None
    if kind == SolverKind.VELOCITY_VERLET:
        return VelocityVerlet
    return DynamicRelaxation


def create_time_solver(kind: Union[SolverKind, str], **params) -> TimeSolver:
    """종류와 파라미터로 시간 적분기 생성.

    Args:
        kind: 적분기 종류
        **params: 적분기 생성자 인자

    Raises:
        ConfigurationError: 알 수 없는 종류, 허용되지 않는 인자, 잘못된 값
    """
    cls = _solver_class(kind)
    try:
        return cls(**params)
    except TypeError as e:
        raise ConfigurationError(f"{cls.__name__}: 잘못된 인자 {sorted(params)}: {e}") from e


def required_point_fields_for(kind: Union[SolverKind, str]) -> tuple:
    """적분기 종류가 요구하는 점 필드."""
    return _solver_class(kind).required_point_fields


__all__ = [
    "SolverKind", "TimeSolver", "VelocityVerlet", "DynamicRelaxation",
    "create_time_solver", "required_point_fields_for",
]
