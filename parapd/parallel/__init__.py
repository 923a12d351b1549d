"""Data handlers, halo exchange and run coordination."""

from .coordinator import LocalCoordinator, MPICoordinator
from .exchange import HaloExchange, find_halo_exchanges
from .threads_handler import ThreadsDataHandler
from .multibody_handler import MultibodyDataHandler

__all__ = [
    "LocalCoordinator",
    "MPICoordinator",
    "HaloExchange",
    "find_halo_exchanges",
    "ThreadsDataHandler",
    "MultibodyDataHandler",
]
