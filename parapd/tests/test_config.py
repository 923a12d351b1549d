"""작업 설정과 Job 조립 테스트."""

import numpy as np
import pytest

from parapd import runtime
from parapd.config import FileBodyConfig, GridBodyConfig, JobConfig, JobOptions, JobSection
from parapd.core.body import grid_body
from parapd.errors import ConfigurationError
from parapd.io.export import load_results
from parapd.job import Job, build_body, submit
from parapd.material.bond_based import BBMaterial
from parapd.solver import DynamicRelaxation, VelocityVerlet

BAR_TOML = """
[body]
kind = "grid"
name = "bar"
spacing = 1.0
n_points = [6, 2, 2]

[[materials]]
horizon = 1.5
rho = 1.0
E = 1.0
epsilon_c = 0.5

[[point_sets]]
name = "left"
max = [0.5, 10.0, 10.0]

[[point_sets]]
name = "right"
min = [4.5, -10.0, -10.0]

[[conditions]]
kind = "velocity_bc"
point_set = "left"
dim = "x"
value = -0.01

[[conditions]]
kind = "velocity_bc"
point_set = "right"
dim = "x"
value = 0.01

[solver]
kind = "velocity_verlet"
steps = 5
stepsize = 0.05

[job]
export_dir = "results"
freq = 5
n_chunks = 2
progress = false
"""


@pytest.fixture(scope="module", autouse=True)
def init_taichi():
    """모듈당 한 번 Taichi 초기화."""
    runtime.init()


def write_config(tmp_path, text=BAR_TOML, name="job.toml"):
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


class TestJobConfig:
    """JobConfig TOML 로드."""

    def test_load(self, tmp_path):
        cfg = JobConfig.from_toml(write_config(tmp_path))

        assert isinstance(cfg.body, GridBodyConfig)
        assert cfg.body.name == "bar"
        assert cfg.body.origin == (0.0, 0.0, 0.0)
        assert cfg.materials[0].params() == {"horizon": 1.5, "rho": 1.0, "E": 1.0,
                                             "epsilon_c": 0.5}
        assert [ps.name for ps in cfg.point_sets] == ["left", "right"]
        assert cfg.conditions[1].value == 0.01
        assert cfg.solver.params() == {"steps": 5, "stepsize": 0.05}
        assert cfg.job.n_chunks == 2
        assert cfg.job.n_workers is None

    def test_relative_paths(self, tmp_path):
        """상대 경로는 설정 파일 디렉토리 기준."""
        cfg = JobConfig.from_toml(write_config(tmp_path))
        assert cfg.job.export_dir == tmp_path / "results"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            JobConfig.from_toml(tmp_path / "missing.toml")

    def test_invalid_toml(self, tmp_path):
        with pytest.raises(ConfigurationError):
            JobConfig.from_toml(write_config(tmp_path, "[body\nkind = "))

    @pytest.mark.parametrize("old,new", [
        ("freq = 5", "frequency = 5"),
        ("spacing = 1.0", "spacing = -1.0"),
        ('kind = "velocity_verlet"', 'kind = "newmark"'),
        ("n_chunks = 2", "n_chunks = 0"),
        ('dim = "x"\nvalue = -0.01', 'dim = "w"\nvalue = -0.01'),
    ])
    def test_validation(self, tmp_path, old, new):
        """알 수 없는 키, 범위 밖 값, 잘못된 선택지."""
        assert old in BAR_TOML
        with pytest.raises(ConfigurationError):
            JobConfig.from_toml(write_config(tmp_path, BAR_TOML.replace(old, new)))

    def test_options(self):
        """[job] 섹션 → 실행 옵션."""
        section = JobSection(freq=3, n_chunks=4, progress=False)
        options = section.options()
        assert isinstance(options, JobOptions)
        assert options.freq == 3
        assert options.progress is False
        assert not hasattr(options, "n_chunks")

    def test_solver_defaults_are_not_forwarded(self):
        """지정하지 않은 솔버 값은 솔버 기본값을 쓴다."""
        cfg = JobConfig(
            body=GridBodyConfig(spacing=1.0, n_points=(2, 2, 2)),
            materials=[{"horizon": 1.5, "rho": 1.0, "E": 1.0}],
            solver={"kind": "dynamic_relaxation", "steps": 3},
        )
        assert cfg.solver.params() == {"steps": 3}
        job = Job.from_config(cfg)
        assert isinstance(job.time_solver, DynamicRelaxation)
        assert job.time_solver.dt == 1.0


class TestBuildBody:
    """설정 → Body."""

    def test_grid_body(self, tmp_path):
        body = build_body(JobConfig.from_toml(write_config(tmp_path)))
        assert body.name == "bar"
        assert body.n_points == 24
        assert body.point_sets["left"].tolist() == [0, 1, 2, 3]
        assert body.point_sets["right"].tolist() == [20, 21, 22, 23]
        assert len(body.bcs) == 2
        assert body.point_params[0].epsilon_c == 0.5

    def test_ramp_and_precrack(self, tmp_path):
        text = BAR_TOML + """
[[conditions]]
kind = "forcedensity_bc"
point_set = "right"
dim = 1
value = 2.0
ramp = true

[[precracks]]
set_a = "left"
set_b = "right"
"""
        body = build_body(JobConfig.from_toml(write_config(tmp_path, text)))
        assert body.bcs[-1].field == "b_ext"
        assert body.bcs[-1].fun(0.5) == 1.0
        assert len(body.precracks) == 1

    def test_material_point_set(self, tmp_path):
        text = BAR_TOML.replace("[[point_sets]]", """[[materials]]
point_set = "right"
horizon = 1.5
rho = 2.0
E = 1.0

[[point_sets]]""", 1)
        body = build_body(JobConfig.from_toml(write_config(tmp_path, text)))
        assert not body.has_uniform_params
        assert body.point_params[body.params_map[23]].rho == 2.0
        assert body.point_params[body.params_map[0]].rho == 1.0

    def test_npz_body(self, tmp_path):
        """NPZ 점 구름 물체."""
        source = grid_body(BBMaterial(), (0, 0, 0), 1.0, (6, 2, 2))
        np.savez(tmp_path / "cloud.npz", position=source.position, volume=source.volume)
        text = BAR_TOML.replace('kind = "grid"\nname = "bar"\nspacing = 1.0\nn_points = [6, 2, 2]',
                                'kind = "npz"\nname = "bar"\npath = "cloud.npz"')
        cfg = JobConfig.from_toml(write_config(tmp_path, text))
        assert isinstance(cfg.body, FileBodyConfig)
        assert cfg.body.path == tmp_path / "cloud.npz"

        body = build_body(cfg)
        assert np.array_equal(body.position, source.position)
        assert body.point_sets["right"].tolist() == [20, 21, 22, 23]

    def test_npz_body_errors(self, tmp_path):
        text = BAR_TOML.replace('kind = "grid"\nname = "bar"\nspacing = 1.0\nn_points = [6, 2, 2]',
                                'kind = "npz"\npath = "cloud.npz"')
        cfg = JobConfig.from_toml(write_config(tmp_path, text))
        with pytest.raises(ConfigurationError):
            build_body(cfg)
        np.savez(tmp_path / "cloud.npz", position=np.zeros((2, 3)))
        with pytest.raises(ConfigurationError):
            build_body(cfg)


class TestJob:
    """작업 실행."""

    def test_not_a_spatial_setup(self):
        with pytest.raises(ConfigurationError):
            Job("body", VelocityVerlet(steps=1))

    def test_default_options(self):
        body = grid_body(BBMaterial(), (0, 0, 0), 1.0, (2, 2, 2))
        job = Job(body, VelocityVerlet(steps=1))
        assert job.options.export_dir is None
        assert not job.is_multibody

    def test_submit(self, tmp_path):
        """설정 파일 작업 실행 → 결과 파일."""
        cfg = JobConfig.from_toml(write_config(tmp_path))
        job = Job.from_config(cfg)
        dh = submit(job, n_chunks=cfg.job.n_chunks)

        assert dh.n_chunks == 2
        results = load_results(tmp_path / "results", 5, body_name="bar")
        assert results["time"] == pytest.approx(0.25)
        u = results["displacement"]
        assert np.allclose(u[20:, 0], 5 * 0.05 * 0.01)
        assert np.allclose(u[:4, 0], -5 * 0.05 * 0.01)
        assert np.all(results["damage"] == 0.0)
