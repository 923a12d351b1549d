"""Dynamic Relaxation 적분기 테스트."""

import numpy as np
import pytest

from parapd import runtime
from parapd.config import JobOptions
from parapd.core.body import Body, grid_body
from parapd.errors import ConfigurationError, ConsistencyError
from parapd.io.export import load_results
from parapd.material.bond_based import BBMaterial
from parapd.parallel.threads_handler import ThreadsDataHandler
from parapd.solver import DynamicRelaxation
from parapd.solver import dynamic_relaxation as dr_module
from parapd.solver.dynamic_relaxation import DAMPING_LIMIT, MAX_DAMPING, calc_damping


@pytest.fixture(scope="module", autouse=True)
def init_taichi():
    """모듈당 한 번 Taichi 초기화."""
    runtime.init()


def pulled_four_points():
    """점 0, 1 에 x 방향 외력 밀도 1."""
    position = [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]]
    body = Body(BBMaterial(), position, [1.1, 1.2, 1.3, 1.4])
    body.set_material(horizon=2, rho=1, E=1, Gc=1)
    body.point_set("a", [0, 1])
    body.forcedensity_bc(lambda t: 1.0, "a", "x")
    return body


def pulled_bar():
    body = grid_body(BBMaterial(), (0, 0, 0), 1.0, (6, 2, 2))
    body.set_material(horizon=1.5, rho=1, E=1)
    body.point_set("left", lambda p: p[:, 0] < 0.5)
    body.point_set("right", lambda p: p[:, 0] > 4.5)
    body.velocity_bc(lambda t: 0.0, "left", "x")
    body.velocity_bc(lambda t: 0.01, "right", "x")
    return body


def gather(dh, name):
    out = np.zeros((dh.decomp.n_points, 3))
    for chunk in dh.chunks:
        n_loc = chunk.ch.n_loc_points
        out[chunk.ch.loc_points] = chunk.storage[name][:n_loc]
    return out


class TestParameters:
    """생성자 검증."""

    def test_defaults(self):
        dr = DynamicRelaxation(steps=10)
        assert dr.n_steps == 10
        assert dr.dt == 1.0
        assert dr.damping_factor == 1.0
        assert repr(dr) == "DynamicRelaxation(steps=10, stepsize=1.0, damping_factor=1.0)"

    @pytest.mark.parametrize("kwargs", [
        dict(steps=0),
        dict(steps=-1),
        dict(steps=1.5),
        dict(steps=True),
        dict(steps=1, stepsize=0.0),
        dict(steps=1, stepsize=-1.0),
        dict(steps=1, damping_factor=0.0),
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ConfigurationError):
            DynamicRelaxation(**kwargs)

    def test_required_fields(self):
        assert set(DynamicRelaxation.required_point_fields) == {
            "position", "displacement", "velocity", "velocity_half", "velocity_half_old",
            "acceleration", "b_int", "b_int_old", "b_ext", "mass",
        }
        assert DynamicRelaxation.required_global_fields == ()

    @pytest.mark.parametrize("attr", ["dt", "n_steps", "damping_factor"])
    def test_negative_after_construction(self, attr):
        """생성 후 음수로 바뀐 값 → ConsistencyError."""
        dr = DynamicRelaxation(steps=1)
        setattr(dr, attr, -1)
        with ThreadsDataHandler(pulled_four_points(), dr, 1) as dh:
            with pytest.raises(ConsistencyError):
                dr.run(dh)


class TestMass:
    """가상 질량."""

    def test_default_mass(self):
        """m = lambda * 6K * dt^2 / (delta^2 / 3) = 3 (K = 2/3, delta = 2)."""
        dr = DynamicRelaxation(steps=1)
        with ThreadsDataHandler(pulled_four_points(), dr, 2) as dh:
            dr.init(dh)
            for chunk in dh.chunks:
                n_loc = chunk.ch.n_loc_points
                assert np.allclose(chunk.storage.mass[:n_loc], 3.0)
                assert np.all(chunk.storage.mass[n_loc:] == 0.0)

    def test_scaled_mass(self):
        dr = DynamicRelaxation(steps=1, stepsize=0.5, damping_factor=2.0)
        with ThreadsDataHandler(pulled_four_points(), dr, 1) as dh:
            dr.init(dh)
            assert np.allclose(dh.chunks[0].storage.mass, 1.5)

    def test_heterogeneous_mass(self):
        """점 집합별 재료: 점마다 K_i, delta_i 로 질량 계산."""
        body = grid_body(BBMaterial(), (0, 0, 0), 1.0, (6, 2, 2))
        body.set_material(horizon=1.5, rho=1, E=1)
        body.point_set("right", lambda p: p[:, 0] > 2.5)
        body.set_material("right", horizon=2.0, rho=1, E=3)
        dr = DynamicRelaxation(steps=1, stepsize=0.5, damping_factor=2.0)

        masses = set()
        with ThreadsDataHandler(body, dr, 2) as dh:
            dr.init(dh)
            for chunk in dh.chunks:
                for i in range(chunk.ch.n_loc_points):
                    p = chunk.get_params(i)
                    expected = 2.0 * 6.0 * p.K * 0.5**2 / (p.delta**2 / 3.0)
                    assert np.allclose(chunk.storage.mass[i], expected)
                    masses.add(round(float(chunk.storage.mass[i, 0]), 12))

        # E = 1, delta = 1.5 -> 8/3; E = 3, delta = 2 -> 4.5
        assert masses == {round(8.0 / 3.0, 12), 4.5}


class TestDamping:
    """적응 감쇠 계수."""

    @pytest.fixture
    def chunk(self):
        dr = DynamicRelaxation(steps=1)
        with ThreadsDataHandler(pulled_four_points(), dr, 1) as dh:
            chunk = dh.chunks[0]
        s = chunk.storage
        s.displacement[:] = 1.0
        s.velocity_half_old[:] = 1.0
        s.mass[:] = 1.0
        s.b_int_old[:] = 0.0
        return chunk

    def test_value(self, chunk):
        """cn = 2 sqrt(cn1 / cn2)."""
        chunk.storage.b_int[:] = -0.25
        assert calc_damping(chunk, 1.0) == pytest.approx(1.0)
        assert calc_damping(chunk, 4.0) == pytest.approx(0.5)

    @pytest.mark.parametrize("raw,expected", [
        (1.95, 1.95),
        (2.0, 2.0),
        (2.5, MAX_DAMPING),
        (4.0, MAX_DAMPING),
    ])
    def test_upper_bound(self, chunk, raw, expected):
        """2.0 초과 값만 1.9 로 재설정, (1.9, 2.0] 은 그대로."""
        chunk.storage.b_int[:] = -(raw / 2.0) ** 2
        assert calc_damping(chunk, 1.0) == pytest.approx(expected, rel=1e-12)
        assert MAX_DAMPING == 1.9

    def test_negative_ratio(self, chunk):
        chunk.storage.b_int[:] = 0.25
        assert calc_damping(chunk, 1.0) == 0.0

    def test_zero_displacement(self, chunk):
        chunk.storage.displacement[:] = 0.0
        chunk.storage.b_int[:] = -0.25
        assert calc_damping(chunk, 1.0) == 0.0

    def test_only_dofs_with_velocity_history(self, chunk):
        """이전 반스텝 속도가 0 인 자유도는 cn1 에서 제외."""
        chunk.storage.velocity_half_old[:, 0] = 0.0
        chunk.storage.b_int[:] = -0.375
        # cn1 = 8 * 0.375, cn2 = 12
        assert calc_damping(chunk, 1.0) == pytest.approx(1.0)
        chunk.storage.velocity_half_old[:] = 0.0
        assert calc_damping(chunk, 1.0) == 0.0


class TestRelaxation:
    """완화 스텝."""

    def test_first_step(self, monkeypatch):
        """첫 스텝: v_half = 0.5 * dt * (b_int + b_ext) / m, 감쇠 스텝은 호출되지 않음."""
        calls = []
        first_step = dr_module.relaxation_first_step

        def spy(chunk, dt):
            calls.append(chunk.chunk_id)
            first_step(chunk, dt)

        def no_step(chunk, dt, cn):
            raise AssertionError("damped step in the first step")

        monkeypatch.setattr(dr_module, "relaxation_first_step", spy)
        monkeypatch.setattr(dr_module, "relaxation_step", no_step)

        dr = DynamicRelaxation(steps=1)
        with ThreadsDataHandler(pulled_four_points(), dr, 2) as dh:
            dr.run(dh)
            v_half = gather(dh, "velocity_half")
            velocity = gather(dh, "velocity")
            b_int = gather(dh, "b_int")

        assert sorted(calls) == [0, 1]
        assert np.all(b_int == 0.0)
        assert np.allclose(v_half[:2, 0], 0.5 * 1.0 * 1.0 / 3.0)
        assert np.all(v_half[2:] == 0.0)
        assert np.all(v_half[:, 1:] == 0.0)
        assert np.allclose(velocity[:2, 0], 0.5 * 0.5 / 3.0)

    def test_later_steps_are_damped(self, monkeypatch):
        """2 스텝부터 감쇠 스텝, 0 <= cn <= 2."""
        damping = []
        steps = []
        calc = dr_module.calc_damping
        relax = dr_module.relaxation_step

        def spy_damping(chunk, dt):
            cn = calc(chunk, dt)
            damping.append(cn)
            return cn

        def spy_step(chunk, dt, cn):
            steps.append(cn)
            relax(chunk, dt, cn)

        monkeypatch.setattr(dr_module, "calc_damping", spy_damping)
        monkeypatch.setattr(dr_module, "relaxation_step", spy_step)

        dr = DynamicRelaxation(steps=30)
        with ThreadsDataHandler(pulled_bar(), dr, 3) as dh:
            dr.run(dh)

        assert len(steps) == 3 * 29
        assert len(damping) == 3 * 30
        assert all(0.0 <= cn <= DAMPING_LIMIT for cn in damping)
        assert any(cn > 0.0 for cn in steps)

    def test_boundary_displacement(self):
        """속도 경계 조건: 오른쪽 끝 변위 = steps * dt * v."""
        dr = DynamicRelaxation(steps=20)
        with ThreadsDataHandler(pulled_bar(), dr, 2) as dh:
            dr.run(dh)
            u = gather(dh, "displacement")
        assert np.allclose(u[-4:, 0], 20 * 0.01)
        assert np.all(u[:4, 0] == 0.0)
        assert np.all(u[4:-4, 0] != 0.0)

    def test_deterministic(self):
        """같은 설정, 같은 청크 수 → 비트 단위로 같은 결과."""
        results = []
        for _ in range(2):
            dr = DynamicRelaxation(steps=15)
            with ThreadsDataHandler(pulled_bar(), dr, 3, n_workers=3) as dh:
                dr.run(dh)
                results.append(gather(dh, "displacement"))
        assert np.array_equal(results[0], results[1])


class TestExport:
    """결과 내보내기."""

    def test_export_cadence(self, tmp_path):
        """참조 상태(스텝 0) + freq 배수 스텝."""
        dr = DynamicRelaxation(steps=4)
        options = JobOptions(export_dir=tmp_path, freq=2, progress=False)
        with ThreadsDataHandler(pulled_bar(), dr, 2) as dh:
            dr.run(dh, options)
            u = gather(dh, "displacement")

        names = sorted(p.name for p in tmp_path.iterdir())
        assert names == [
            "body_c0000_t000000.npz", "body_c0000_t000002.npz", "body_c0000_t000004.npz",
            "body_c0001_t000000.npz", "body_c0001_t000002.npz", "body_c0001_t000004.npz",
        ]
        results = load_results(tmp_path, 4)
        assert set(results) == {"displacement", "damage", "time"}
        assert results["time"] == 4.0
        assert np.array_equal(results["displacement"], u)
        assert np.all(load_results(tmp_path, 0)["displacement"] == 0.0)
