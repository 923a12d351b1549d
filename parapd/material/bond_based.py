"""Bond-based (prototype microelastic brittle) peridynamics material."""

import math
import numpy as np
from dataclasses import dataclass
from typing import Optional, TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .material_base import MaterialBase
from ..errors import ConfigurationError

if TYPE_CHECKING:
    from ..core.body_chunk import BodyChunk

# Bond-based PD in 3D has a fixed Poisson's ratio
BB_POISSON_RATIO = 0.25


class BBMaterialInput(BaseModel):
    """Keyword arguments accepted by ``Body.set_material`` for BBMaterial."""

    model_config = ConfigDict(extra="forbid")

    horizon: float = Field(gt=0)
    rho: float = Field(gt=0)
    E: float = Field(gt=0)
    Gc: Optional[float] = Field(default=None, gt=0)
    epsilon_c: Optional[float] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _one_fracture_parameter(self):
        if self.Gc is not None and self.epsilon_c is not None:
            raise ValueError("specify either `Gc` or `epsilon_c`, not both")
        return self


@dataclass(frozen=True)
class BBPointParameters:
    """Material constants of one point.

    Attributes:
        delta: Horizon
        rho: Mass density
        E: Young's modulus
        nu: Poisson's ratio
        G: Shear modulus
        K: Bulk modulus
        lam: First Lame parameter
        mu: Second Lame parameter
        Gc: Fracture energy (nan if not given)
        epsilon_c: Critical stretch (inf means the bonds never fail)
        bc: Bond constant (micromodulus) c = 18*K / (pi * delta^4)
    """
    delta: float
    rho: float
    E: float
    nu: float
    G: float
    K: float
    lam: float
    mu: float
    Gc: float
    epsilon_c: float
    bc: float


def critical_stretch(youngs_modulus: float, fracture_energy: float, horizon: float) -> float:
    """Critical stretch from fracture energy: s_c = sqrt(5 * G_c / (9 * E * delta))."""
    return math.sqrt(5 * fracture_energy / (9 * youngs_modulus * horizon))


@dataclass(frozen=True)
class BBMaterial(MaterialBase):
    """Bond-based material with the PMB pairwise force.

    The force density on point i from bond (i, j) is

        b_ij = c * s * (eta / |eta|) * V_j

    with micromodulus c, stretch s = (|eta| - |xi|) / |xi| and current bond
    vector eta. Every chunk evaluates the bonds of its owned points and
    splits each bond force in two halves: one acts on the owner, the reaction
    half acts on the neighbor. The bond (j, i) contributes the other two
    halves, so the pair force is complete once the halo contributions have
    been added back to the owning chunk.

    A bond fails irreversibly once its stretch exceeds the critical stretch
    of its source point.
    """

    def point_params(self, **kwargs) -> BBPointParameters:
        try:
            inp = BBMaterialInput(**kwargs)
        except ValidationError as e:
            raise ConfigurationError(f"invalid material parameters for BBMaterial:\n{e}") from e

        nu = BB_POISSON_RATIO
        E = inp.E
        G = E / (2 * (1 + nu))
        K = E / (3 * (1 - 2 * nu))
        lam = E * nu / ((1 + nu) * (1 - 2 * nu))
        bc = 18 * K / (math.pi * inp.horizon**4)

        if inp.epsilon_c is not None:
            epsilon_c = inp.epsilon_c
            Gc = math.nan
        elif inp.Gc is not None:
            Gc = inp.Gc
            epsilon_c = critical_stretch(E, Gc, inp.horizon)
        else:
            Gc = math.nan
            epsilon_c = math.inf

        return BBPointParameters(
            delta=inp.horizon, rho=inp.rho, E=E, nu=nu, G=G, K=K, lam=lam,
            mu=G, Gc=Gc, epsilon_c=epsilon_c, bc=bc,
        )

    def force_density(self, chunk: "BodyChunk") -> None:
        s = chunk.storage
        d = chunk.discret
        s.b_int[:] = 0.0
        if d.n_bonds == 0:
            return

        owner = d.bond_owner
        nb = d.neighbor

        # Current bond vectors and stretch
        eta = s.position[nb] - s.position[owner]
        eta_len = np.linalg.norm(eta, axis=1)
        xi_len = d.length
        stretch = (eta_len - xi_len) / xi_len

        # Bond failure (never heals)
        failed = stretch > chunk.params.field("epsilon_c")[owner]
        d.active[failed] = False

        bc = chunk.params.field("bc")[owner]
        temp = np.zeros_like(eta_len)
        np.divide(bc * stretch, eta_len, out=temp, where=d.active & (eta_len > 0.0))
        half = 0.5 * temp[:, np.newaxis] * eta

        np.add.at(s.b_int, owner, half * d.volume[nb][:, np.newaxis])
        np.add.at(s.b_int, nb, -half * d.volume[owner][:, np.newaxis])

    def critical_timestep(self, chunk: "BodyChunk") -> float:
        """Per point dt_i = sqrt(2 * rho_i / sum_j(V_j * c_i / |xi_ij|)), minimized."""
        d = chunk.discret
        n_loc = chunk.ch.n_loc_points
        if d.n_bonds == 0:
            return math.inf
        owner = d.bond_owner
        contrib = d.volume[d.neighbor] * chunk.params.field("bc")[owner] / d.length
        dtsum = np.bincount(owner, weights=contrib, minlength=n_loc)
        rho = chunk.params.field("rho")[:n_loc]
        mask = dtsum > 0.0
        if not np.any(mask):
            return math.inf
        return float(np.min(np.sqrt(2.0 * rho[mask] / dtsum[mask])))
