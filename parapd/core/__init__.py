"""Core data structures: bodies, bonds, decomposition and chunks."""

from .body import Body, grid_body
from .bonds import Bond, BondDiscretization, find_bonds
from .body_chunk import BodyChunk, chop_body, init_body_chunk
from .chunk_handler import ChunkHandler
from .decomposition import PointDecomposition, distribute_equally
from .multibody import MultibodySetup
from .neighbor import NeighborSearch

__all__ = [
    "Body",
    "grid_body",
    "Bond",
    "BondDiscretization",
    "find_bonds",
    "BodyChunk",
    "chop_body",
    "init_body_chunk",
    "ChunkHandler",
    "PointDecomposition",
    "distribute_equally",
    "MultibodySetup",
    "NeighborSearch",
]
