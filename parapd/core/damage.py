"""Local damage of peridynamic points."""

import numpy as np
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .body_chunk import BodyChunk


def calc_damage(chunk: "BodyChunk") -> None:
    """Compute local damage for each owned point.

    Local damage phi = 1 - (intact bonds) / (initial bonds)
    where phi = 0 means intact and phi = 1 means fully damaged. Points
    without bonds have zero damage. Bonds never heal, so damage never
    decreases.

    Args:
        chunk: Body chunk (damage and n_active_bonds fields are updated)
    """
    d = chunk.discret
    s = chunk.storage
    n_active = d.n_active_bonds()
    s.n_active_bonds[:d.n_loc_points] = n_active

    damage = s.damage[:d.n_loc_points]
    damage[:] = 0.0
    has_bonds = d.n_neighbors > 0
    damage[has_bonds] = 1.0 - n_active[has_bonds] / d.n_neighbors[has_bonds]


def get_statistics(chunk: "BodyChunk") -> dict:
    """Get damage statistics of a chunk.

    Returns:
        Dictionary with damage statistics
    """
    d = chunk.discret
    total = d.n_bonds
    intact = int(np.count_nonzero(d.active))
    broken = total - intact
    return {
        "intact_bonds": intact,
        "broken_bonds": broken,
        "total_bonds": total,
        "damage_ratio": broken / total if total > 0 else 0.0,
    }
