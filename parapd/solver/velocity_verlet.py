"""Explicit time integration (velocity Verlet) for chunked peridynamics."""

import logging
from typing import Optional

from .stepping import (
    check_not_negative, check_positive, check_steps, prepare_run, time_loop,
)
from ..config import JobOptions
from ..core.conditions import apply_conditions
from ..core.damage import calc_damage
from ..errors import ConfigurationError
from ..io.export import export_results

logger = logging.getLogger(__name__)


class VelocityVerlet:
    """Velocity Verlet explicit time integrator.

    Implements the following algorithm for step n (t = n*dt):
    1. v(t-dt/2) = v(t-dt) + 0.5*a(t-dt)*dt, then boundary conditions
    2. u(t) = u(t-dt) + v(t-dt/2)*dt, x(t) = x(t-dt) + v(t-dt/2)*dt
    3. Exchange positions into halos, compute force densities
    4. Add halo force densities back into their owners
    5. Update damage, a(t) = (b_int + b_ext) / rho
    6. v(t) = v(t-dt/2) + 0.5*a(t)*dt, export

    Without a given step size the step is ``safety_factor`` times the
    smallest critical time step of all points (over all chunks and ranks).

    Args:
        steps: Number of time steps
        stepsize: Time step size (None = estimate from the material)
        safety_factor: Factor applied to the estimated critical step (0 < f <= 1)
    """

    required_point_fields = ("position", "displacement", "velocity", "velocity_half",
                             "acceleration", "b_int", "b_ext", "mass")
    required_global_fields = ()

    def __init__(self, steps: int, stepsize: Optional[float] = None, safety_factor: float = 0.7):
        self.n_steps = check_steps(steps)
        self.dt = None if stepsize is None else check_positive("stepsize", stepsize)
        self.safety_factor = check_positive("safety_factor", safety_factor)
        if self.safety_factor > 1.0:
            raise ConfigurationError(
                f"`safety_factor` must be in (0, 1], got {safety_factor}")
        self._user_dt = self.dt is not None

    def __repr__(self):
        return (f"VelocityVerlet(steps={self.n_steps}, stepsize={self.dt}, "
                f"safety_factor={self.safety_factor})")

    def critical_timestep(self, dh) -> float:
        """Smallest critical time step over all chunks (and ranks)."""
        dt_local = min(chunk.material.critical_timestep(chunk) for chunk in dh.chunks)
        return dh.coordinator.allreduce_min(dt_local)

    def init(self, dh) -> None:
        """Check parameters, set the time step and initialize the mass."""
        check_not_negative("VelocityVerlet", n_steps=self.n_steps, dt=self.dt,
                           safety_factor=self.safety_factor)
        if not self._user_dt:
            dt_crit = self.critical_timestep(dh)
            if dt_crit == float("inf"):
                raise ConfigurationError(
                    "cannot estimate a time step for a body without bonds, specify `stepsize`")
            self.dt = self.safety_factor * dt_crit

        def init_mass(cid: int) -> None:
            chunk = dh.chunks[cid]
            n_loc = chunk.ch.n_loc_points
            chunk.storage.mass[:n_loc] = chunk.params.field("rho")[:n_loc, None]

        dh.run_phase(init_mass)

    def timestep(self, dh, options: JobOptions, n: int) -> None:
        dt = self.dt
        t = n * dt

        def kinematics(cid: int) -> None:
            chunk = dh.chunks[cid]
            s = chunk.storage
            n_loc = chunk.ch.n_loc_points
            s.velocity_half[:n_loc] = s.velocity[:n_loc] + 0.5 * dt * s.acceleration[:n_loc]
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
            s = chunk.storage
            n_loc = chunk.ch.n_loc_points
            calc_damage(chunk)
            s.acceleration[:n_loc] = (s.b_int[:n_loc] + s.b_ext[:n_loc]) / s.mass[:n_loc]
            s.velocity[:n_loc] = s.velocity_half[:n_loc] + 0.5 * dt * s.acceleration[:n_loc]
            export_results(chunk, n, t, options)

        dh.run_phase(kinematics)
        dh.run_phase(forces)
        dh.run_phase(dh.exchange_halo_to_loc)
        dh.apply_contact_forces()
        dh.run_phase(finalize)

    def run(self, dh, options: Optional[JobOptions] = None) -> None:
        """Run all time steps on the chunks of a data handler."""
        options = options or JobOptions(progress=False)
        self.init(dh)
        self.log_summary(dh)
        prepare_run(dh, options)
        time_loop(dh, options, self.n_steps, lambda n: self.timestep(dh, options, n))

    def log_summary(self, dh) -> None:
        if not dh.coordinator.is_root:
            return
        logger.info("VELOCITY VERLET TIME SOLVER: %d steps, dt = %.6g, simulation time = %.6g",
                    self.n_steps, self.dt, self.n_steps * self.dt)
