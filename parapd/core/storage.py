"""Point field storage of a body chunk using Structure of Arrays (SoA) layout."""

import numpy as np
from typing import Iterable

from ..errors import ConfigurationError

# Field name -> (components, dtype). Components None means scalar per point.
FIELD_LAYOUT = {
    "position": (3, np.float64),
    "displacement": (3, np.float64),
    "velocity": (3, np.float64),
    "velocity_half": (3, np.float64),
    "velocity_half_old": (3, np.float64),
    "acceleration": (3, np.float64),
    "b_int": (3, np.float64),
    "b_int_old": (3, np.float64),
    "b_ext": (3, np.float64),
    "mass": (3, np.float64),
    "damage": (None, np.float64),
    "n_active_bonds": (None, np.int64),
}


class ChunkStorage:
    """Point fields of one chunk, sized to owned + halo points.

    Owned points occupy rows ``0..n_loc_points-1``, halo copies the rest.
    Fields are plain numpy arrays reachable as attributes or by name:

        storage.velocity[:n_loc] += dt * storage.acceleration[:n_loc]
        storage["b_ext"][points, dim] = value

    Attributes:
        n_loc_points: Number of owned points
        n_points: Number of owned and halo points
    """

    def __init__(
        self,
        field_names: Iterable[str],
        n_loc_points: int,
        n_points: int,
        reference_position: np.ndarray,
    ):
        """Allocate zero initialized fields.

        Args:
            field_names: Fields to allocate (duplicates are ignored)
            n_loc_points: Number of owned points
            n_points: Number of owned and halo points
            reference_position: Reference positions (n_points, 3) copied
                into ``position``
        """
        self.n_loc_points = n_loc_points
        self.n_points = n_points
        fields = {}
        for name in field_names:
            if name in fields:
                continue
            if name not in FIELD_LAYOUT:
                raise ConfigurationError(f"unknown point field '{name}'")
            components, dtype = FIELD_LAYOUT[name]
            shape = (n_points,) if components is None else (n_points, components)
            fields[name] = np.zeros(shape, dtype=dtype)
        object.__setattr__(self, "_fields", fields)
        if "position" in fields:
            fields["position"][:] = reference_position

    def __getattr__(self, name: str) -> np.ndarray:
        try:
            return self.__dict__["_fields"][name]
        except KeyError:
            raise AttributeError(f"chunk storage has no field '{name}'") from None

    def __setattr__(self, name: str, value):
        if name in self.__dict__.get("_fields", ()):
            self._fields[name][...] = value
        else:
            object.__setattr__(self, name, value)

    def __getitem__(self, name: str) -> np.ndarray:
        try:
            return self._fields[name]
        except KeyError:
            raise KeyError(f"chunk storage has no field '{name}'") from None

    def __contains__(self, name: str) -> bool:
        return name in self._fields

    @property
    def field_names(self) -> tuple:
        return tuple(self._fields)

    def loc(self, name: str) -> np.ndarray:
        """View of the owned rows of a field."""
        return self._fields[name][:self.n_loc_points]

    def halo(self, name: str) -> np.ndarray:
        """View of the halo rows of a field."""
        return self._fields[name][self.n_loc_points:]
