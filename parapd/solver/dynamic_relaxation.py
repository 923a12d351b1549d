"""Adaptive dynamic relaxation for quasi-static peridynamics.

Dynamic relaxation integrates a fictitious, critically damped dynamical
system whose steady state is the static equilibrium. The fictitious mass
of point i per axis is

    m_i = lambda * 6 * K_i * dt^2 / (delta_i^2 / 3)

and the adaptive damping coefficient cn is estimated every step from the
lowest participating mode of the system (Kilic & Madenci, 2010).

The damping coefficient is computed from the sums of one chunk only. The
results therefore depend on the number of chunks the body is split into.
"""

import logging
import math
import numpy as np
from typing import Optional, TYPE_CHECKING

from .stepping import (
    check_not_negative, check_positive, check_steps, prepare_run, time_loop,
)
from ..config import JobOptions
from ..core.conditions import apply_conditions
from ..core.damage import calc_damage
from ..io.export import export_results

if TYPE_CHECKING:
    from ..core.body_chunk import BodyChunk

logger = logging.getLogger(__name__)

# Damping coefficients above DAMPING_LIMIT are reset to MAX_DAMPING
DAMPING_LIMIT = 2.0
MAX_DAMPING = 1.9


def calc_damping(chunk: "BodyChunk", dt: float) -> float:
    """Adaptive damping coefficient of a chunk.

    cn1 = -sum(u^2 * (b_int - b_int_old) / (dt * m * v_half_old)) over the
    degrees of freedom with a previous half step velocity, cn2 = sum(u^2).
    cn = 2 * sqrt(cn1 / cn2) if that ratio is positive, else 0; values
    above 2.0 are reset to 1.9.
    """
    s = chunk.storage
    n_loc = chunk.ch.n_loc_points
    u = s.displacement[:n_loc]
    v_old = s.velocity_half_old[:n_loc]
    mass = s.mass[:n_loc]

    u_sq = u * u
    mask = (v_old != 0.0) & (mass != 0.0)
    db_int = s.b_int[:n_loc][mask] - s.b_int_old[:n_loc][mask]
    cn1 = -float(np.sum(u_sq[mask] * db_int / (dt * mass[mask] * v_old[mask])))
    cn2 = float(np.sum(u_sq))

    cn = 0.0
    if cn2 != 0.0 and cn1 / cn2 > 0.0:
        cn = 2.0 * math.sqrt(cn1 / cn2)
    if cn > DAMPING_LIMIT:
        cn = MAX_DAMPING
    return cn


def _relaxation_updates(s, n_loc: int) -> None:
    s.velocity[:n_loc] = 0.5 * (s.velocity_half_old[:n_loc] + s.velocity_half[:n_loc])
    s.velocity_half_old[:n_loc] = s.velocity_half[:n_loc]
    s.b_int_old[:n_loc] = s.b_int[:n_loc]


def relaxation_first_step(chunk: "BodyChunk", dt: float) -> None:
    """First step: no velocity history, hence no damping term."""
    s = chunk.storage
    n_loc = chunk.ch.n_loc_points
    s.acceleration[:n_loc] = (s.b_int[:n_loc] + s.b_ext[:n_loc]) / s.mass[:n_loc]
    s.velocity_half[:n_loc] = 0.5 * dt * s.acceleration[:n_loc]
    _relaxation_updates(s, n_loc)


def relaxation_step(chunk: "BodyChunk", dt: float, cn: float) -> None:
    """v_half = ((2 - cn*dt) * v_half_old + 2*dt*a) / (2 + cn*dt)."""
    s = chunk.storage
    n_loc = chunk.ch.n_loc_points
    s.acceleration[:n_loc] = (s.b_int[:n_loc] + s.b_ext[:n_loc]) / s.mass[:n_loc]
    s.velocity_half[:n_loc] = ((2.0 - cn * dt) * s.velocity_half_old[:n_loc]
                               + 2.0 * dt * s.acceleration[:n_loc]) / (2.0 + cn * dt)
    _relaxation_updates(s, n_loc)


class DynamicRelaxation:
    """Adaptive dynamic relaxation time solver.

    Args:
        steps: Number of relaxation steps
        stepsize: Fictitious time step size
        damping_factor: Factor lambda of the fictitious mass
    """

    required_point_fields = ("position", "displacement", "velocity", "velocity_half",
                             "velocity_half_old", "acceleration", "b_int", "b_int_old",
                             "b_ext", "mass")
    required_global_fields = ()

    def __init__(self, steps: int, stepsize: float = 1.0, damping_factor: float = 1.0):
        self.n_steps = check_steps(steps)
        self.dt = check_positive("stepsize", stepsize)
        self.damping_factor = check_positive("damping_factor", damping_factor)

    def __repr__(self):
        return (f"DynamicRelaxation(steps={self.n_steps}, stepsize={self.dt}, "
                f"damping_factor={self.damping_factor})")

    def init(self, dh) -> None:
        """Check parameters and initialize the fictitious mass."""
        check_not_negative("DynamicRelaxation", n_steps=self.n_steps, dt=self.dt,
                           damping_factor=self.damping_factor)
        dh.run_phase(lambda cid: self.init_mass(dh.chunks[cid]))

    def init_mass(self, chunk: "BodyChunk") -> None:
        n_loc = chunk.ch.n_loc_points
        K = chunk.params.field("K")[:n_loc]
        delta = chunk.params.field("delta")[:n_loc]
        mass = self.damping_factor * 6.0 * K * self.dt**2 / (delta**2 / 3.0)
        chunk.storage.mass[:n_loc] = mass[:, None]

    def timestep(self, dh, options: JobOptions, n: int) -> None:
        dt = self.dt
        t = n * dt

        def kinematics(cid: int) -> None:
            chunk = dh.chunks[cid]
            s = chunk.storage
            n_loc = chunk.ch.n_loc_points
            apply_conditions(chunk, t)
            du = dt * s.velocity_half[:n_loc]
            s.displacement[:n_loc] += du
            s.position[:n_loc] += du

        def forces(cid: int) -> None:
            dh.exchange_loc_to_halo(cid)
            chunk = dh.chunks[cid]
            chunk.material.force_density(chunk)

        def finalize(cid: int) -> None:
            chunk = dh.chunks[cid]
            calc_damage(chunk)
            cn = calc_damping(chunk, dt)
            if n == 1:
                relaxation_first_step(chunk, dt)
            else:
                relaxation_step(chunk, dt, cn)
            export_results(chunk, n, t, options)

        dh.run_phase(kinematics)
        dh.run_phase(forces)
        dh.run_phase(dh.exchange_halo_to_loc)
        dh.apply_contact_forces()
        dh.run_phase(finalize)

    def run(self, dh, options: Optional[JobOptions] = None) -> None:
        """Run all relaxation steps on the chunks of a data handler."""
        options = options or JobOptions(progress=False)
        self.init(dh)
        self.log_summary(dh)
        prepare_run(dh, options)
        time_loop(dh, options, self.n_steps, lambda n: self.timestep(dh, options, n))

    def log_summary(self, dh) -> None:
        if not dh.coordinator.is_root:
            return
        logger.info("DYNAMIC RELAXATION TIME SOLVER: %d steps, dt = %.6g, "
                    "damping factor = %.6g, relaxation time = %.6g",
                    self.n_steps, self.dt, self.damping_factor, self.n_steps * self.dt)
