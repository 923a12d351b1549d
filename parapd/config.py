"""작업 설정: Pydantic 모델 + TOML 로드."""

import math
import tomllib
from pathlib import Path
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigurationError

Vec3 = tuple[float, float, float]


class GridBodyConfig(BaseModel):
    """정규 격자 물체 설정."""

    model_config = ConfigDict(extra="forbid")

    kind: Literal["grid"] = "grid"
    name: str = "body"
    origin: Vec3 = (0.0, 0.0, 0.0)
    spacing: float = Field(gt=0)
    n_points: tuple[int, int, int]


class FileBodyConfig(BaseModel):
    """NPZ 파일 물체 설정 (배열 `position` (n, 3), `volume` (n,))."""

    model_config = ConfigDict(extra="forbid")

    kind: Literal["npz"]
    name: str = "body"
    path: Path


BodyConfig = Annotated[Union[GridBodyConfig, FileBodyConfig], Field(discriminator="kind")]


class MaterialConfig(BaseModel):
    """재료 설정. point_set 이 "all" 이 아니면 해당 점집합만 덮어쓴다."""

    model_config = ConfigDict(extra="forbid")

    model: Literal["bb"] = "bb"
    point_set: str = "all"
    horizon: float
    rho: float
    E: float
    Gc: Optional[float] = None
    epsilon_c: Optional[float] = None

    def params(self) -> dict:
        """재료 키워드 인자 (지정된 값만)."""
        return self.model_dump(exclude={"model", "point_set"}, exclude_none=True)


class BoxPointSetConfig(BaseModel):
    """축 정렬 상자로 정의한 점집합 (경계 포함)."""

    model_config = ConfigDict(extra="forbid")

    name: str
    min: Vec3 = (-math.inf, -math.inf, -math.inf)
    max: Vec3 = (math.inf, math.inf, math.inf)


class ConditionConfig(BaseModel):
    """경계/초기 조건 설정. ramp 이면 값은 value * t."""

    model_config = ConfigDict(extra="forbid")

    kind: Literal["velocity_bc", "forcedensity_bc", "velocity_ic"]
    point_set: str
    dim: Union[Literal["x", "y", "z"], int]
    value: float
    ramp: bool = False


class PrecrackConfig(BaseModel):
    """초기 균열 설정."""

    model_config = ConfigDict(extra="forbid")

    set_a: str
    set_b: str


class SolverConfig(BaseModel):
    """시간 적분기 설정. 지정하지 않은 값은 솔버 기본값을 쓴다."""

    model_config = ConfigDict(extra="forbid")

    kind: Literal["velocity_verlet", "dynamic_relaxation"]
    steps: int
    stepsize: Optional[float] = None
    safety_factor: Optional[float] = None
    damping_factor: Optional[float] = None

    def params(self) -> dict:
        """솔버 키워드 인자 (명시적으로 지정된 값만)."""
        return self.model_dump(exclude={"kind"}, exclude_unset=True)


class JobOptions(BaseModel):
    """실행 옵션: 결과 내보내기와 진행 표시."""

    model_config = ConfigDict(extra="forbid")

    export_dir: Optional[Path] = None
    freq: int = Field(default=10, gt=0)
    fields: Optional[list[str]] = None
    progress: bool = True


class JobSection(JobOptions):
    """[job] 섹션: 실행 옵션 + 병렬화 설정."""

    n_chunks: int = Field(default=1, ge=1)
    n_workers: Optional[int] = Field(default=None, ge=1)

    def options(self) -> JobOptions:
        return JobOptions(**self.model_dump(include=set(JobOptions.model_fields)))


class JobConfig(BaseModel):
    """최상위 작업 설정."""

    model_config = ConfigDict(extra="forbid")

    body: BodyConfig
    materials: list[MaterialConfig] = Field(min_length=1)
    point_sets: list[BoxPointSetConfig] = Field(default_factory=list)
    conditions: list[ConditionConfig] = Field(default_factory=list)
    precracks: list[PrecrackConfig] = Field(default_factory=list)
    solver: SolverConfig
    job: JobSection = Field(default_factory=JobSection)

    @classmethod
    def from_toml(cls, path: str | Path) -> "JobConfig":
        """TOML 파일에서 설정 로드.

        Args:
            path: TOML 파일 경로

        Returns:
            JobConfig 인스턴스

        Raises:
            FileNotFoundError: 파일이 없음
            ConfigurationError: TOML 문법 오류 또는 설정 검증 실패
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"설정 파일을 찾을 수 없습니다: {path}")

        with open(path, "rb") as f:
            try:
                data = tomllib.load(f)
            except tomllib.TOMLDecodeError as e:
                raise ConfigurationError(f"{path}: TOML 파싱 실패: {e}") from e

        try:
            config = cls(**data)
        except ValidationError as e:
            raise ConfigurationError(f"{path}: 설정 검증 실패\n{e}") from e

        # 상대 경로는 설정 파일 기준
        if isinstance(config.body, FileBodyConfig) and not config.body.path.is_absolute():
            config.body.path = path.parent / config.body.path
        if config.job.export_dir is not None and not config.job.export_dir.is_absolute():
            config.job.export_dir = path.parent / config.job.export_dir
        return config
