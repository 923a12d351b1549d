"""Abstract base class for peridynamics material models."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..core.body_chunk import BodyChunk


class MaterialBase(ABC):
    """Abstract base class for peridynamics material models.

    A material turns the kinematic state of a chunk into internal force
    densities and decides which bonds fail. It also declares which point
    fields it needs and which of them cross chunk boundaries:

    - ``loc_to_halo_fields`` are published by the owning chunk before the
      force computation and copied into every halo copy.
    - ``halo_to_loc_fields`` hold contributions a chunk computed for points
      it does not own; they are added back into the owner afterwards.
    """

    point_fields = ("position", "displacement", "b_int", "b_ext",
                    "damage", "n_active_bonds")
    loc_to_halo_fields = ("position",)
    halo_to_loc_fields = ("b_int",)
    export_fields = ("displacement", "damage")

    @abstractmethod
    def point_params(self, **kwargs):
        """Validate material keyword arguments and build point parameters.

        Raises:
            ConfigurationError: unknown, missing or invalid parameters
        """

    @abstractmethod
    def force_density(self, chunk: "BodyChunk") -> None:
        """Compute ``b_int`` of the chunk and deactivate failed bonds.

        Reads positions of owned and halo points. Writes ``b_int`` for owned
        and halo points; the halo part is accumulated into the owners by the
        halo to local exchange.
        """

    @abstractmethod
    def critical_timestep(self, chunk: "BodyChunk") -> float:
        """Smallest stable explicit time step of the chunk's owned points."""
