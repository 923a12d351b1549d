"""Body chunks: the unit of parallel work."""

import logging
import numpy as np
from dataclasses import dataclass, field
from typing import Optional, TYPE_CHECKING

from .bonds import BondDiscretization
from .chunk_handler import ChunkHandler
from .conditions import apply_precracks, localize_conditions
from .damage import calc_damage
from .parameters import ParameterView, create_parameter_view
from .storage import ChunkStorage
from ..material.material_base import MaterialBase

if TYPE_CHECKING:
    from .body import Body
    from .decomposition import PointDecomposition

logger = logging.getLogger(__name__)


@dataclass
class BodyChunk:
    """One partition of a body, owned by exactly one worker.

    Attributes:
        material: Material model of the body
        discret: Bond discretization in local indices
        ch: Index mapping
        storage: Point fields (owned + halo rows)
        params: Parameter view resolved for the chunk points
        bcs: Boundary conditions acting on owned points
        ics: Initial conditions acting on owned points
        precracks: Precracks of the body
        body_name: Name of the body the chunk belongs to
    """
    material: MaterialBase
    discret: BondDiscretization
    ch: ChunkHandler
    storage: ChunkStorage
    params: ParameterView
    bcs: list = field(default_factory=list)
    ics: list = field(default_factory=list)
    precracks: list = field(default_factory=list)
    body_name: str = "body"

    @property
    def chunk_id(self) -> int:
        return self.ch.chunk_id

    def get_params(self, i: int):
        """Point parameters of local point ``i``."""
        return self.params.get(i)


def parameter_lookup(chunk: BodyChunk, i: int):
    """Point parameters of local point ``i`` of ``chunk``."""
    return chunk.params.get(i)


def required_point_fields(material: MaterialBase, time_solver) -> tuple:
    """Fields the solver and the material need, in first-seen order."""
    names = list(time_solver.required_point_fields)
    for name in material.point_fields:
        if name not in names:
            names.append(name)
    return tuple(names)


def _localize_bonds(ch: ChunkHandler, offsets: np.ndarray, neighbor: np.ndarray,
                    length: np.ndarray):
    loc = ch.loc_points
    counts = offsets[loc + 1] - offsets[loc]
    local_offsets = np.zeros(len(loc) + 1, dtype=np.int64)
    np.cumsum(counts, out=local_offsets[1:])
    idx = np.arange(local_offsets[-1], dtype=np.int64) \
        - np.repeat(local_offsets[:-1] - offsets[loc], counts)
    return local_offsets, ch.localize(neighbor[idx]), length[idx].copy()


def init_body_chunk(
    body: "Body",
    time_solver,
    decomp: "PointDecomposition",
    chunk_id: int,
    bonds: Optional[BondDiscretization] = None,
) -> BodyChunk:
    """Build the chunk ``chunk_id`` of a decomposed body.

    Args:
        body: The body
        time_solver: Solver whose required point fields are allocated
        decomp: Decomposition of the body
        chunk_id: Chunk to build
        bonds: Global bond discretization; defaults to the bond table the
            decomposition was computed from
    """
    body.check_material()
    ch = ChunkHandler.from_decomposition(decomp, chunk_id)
    if bonds is None:
        table = (decomp.bond_offsets, decomp.neighbor, decomp.length)
    else:
        table = (bonds.bond_offsets, bonds.neighbor, bonds.length)
    bond_offsets, neighbor, length = _localize_bonds(ch, *table)

    discret = BondDiscretization(
        position=body.position[ch.point_ids],
        volume=body.volume[ch.point_ids],
        neighbor=neighbor,
        length=length,
        active=np.ones(len(neighbor), dtype=bool),
        bond_offsets=bond_offsets,
    )
    storage = ChunkStorage(
        required_point_fields(body.material, time_solver),
        ch.n_loc_points, ch.n_points, discret.position,
    )
    chunk = BodyChunk(
        material=body.material,
        discret=discret,
        ch=ch,
        storage=storage,
        params=create_parameter_view(body.point_params, body.params_map, ch.point_ids),
        bcs=localize_conditions(body.bcs, body.point_sets, ch),
        ics=localize_conditions(body.ics, body.point_sets, ch),
        precracks=list(body.precracks),
        body_name=body.name,
    )
    n_cut = apply_precracks(chunk, body.point_sets, body.n_points)
    if n_cut:
        logger.debug("Chunk %d of '%s': %d bonds cut by precracks", chunk_id, body.name, n_cut)
    calc_damage(chunk)
    return chunk


def chop_body(body: "Body", time_solver, decomp: "PointDecomposition") -> list[BodyChunk]:
    """Build all chunks of a decomposed body."""
    return [init_body_chunk(body, time_solver, decomp, c) for c in range(decomp.n_chunks)]
