"""Multibody data handler and node-node penalty contact.

Each body is decomposed and chunked on its own; all chunks of all bodies
share one thread pool. Contact forces between bodies are computed after
the halo to local exchange, when the internal force density of every owned
point is final, and are added to ``b_int`` of the owned points.
"""

import logging
import os
import numpy as np
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional, Tuple

from scipy.spatial import cKDTree

from .coordinator import LocalCoordinator
from .threads_handler import ThreadsDataHandler, _guarded
from ..core.multibody import MultibodySetup, ShortRangeForceContact

logger = logging.getLogger(__name__)


class NodeNodeContact:
    """Node-node penalty contact between two point clouds."""

    def detect(
        self,
        pos_a: np.ndarray,
        pos_b: np.ndarray,
        radius: float,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """KDTree based search of point pairs closer than ``radius``.

        Args:
            pos_a: Current positions of body A (n_a, 3)
            pos_b: Current positions of body B (n_b, 3)
            radius: Contact detection distance

        Returns:
            pairs: (n_contacts, 2) (idx_a, idx_b) global index pairs,
                ordered by idx_a then idx_b
            dists: (n_contacts,) distance of every pair
        """
        tree_a = cKDTree(pos_a)
        tree_b = cKDTree(pos_b)
        sdm = tree_a.sparse_distance_matrix(tree_b, radius, output_type="ndarray")
        if len(sdm) == 0:
            return np.empty((0, 2), dtype=np.int64), np.empty(0)
        order = np.lexsort((sdm["j"], sdm["i"]))
        sdm = sdm[order]
        # sparse_distance_matrix keeps pairs with d <= radius
        mask = sdm["v"] < radius
        pairs = np.column_stack([sdm["i"][mask], sdm["j"][mask]]).astype(np.int64)
        return pairs, sdm["v"][mask]

    def compute_forces(
        self,
        pos_a: np.ndarray,
        pos_b: np.ndarray,
        vol_a: np.ndarray,
        vol_b: np.ndarray,
        pairs: np.ndarray,
        dists: np.ndarray,
        radius: float,
        penalty: float,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Penalty contact force densities.

        b = penalty * (radius - d) / radius * normal * V_other
        normal = (pos_a[i] - pos_b[j]) / d (pushes A away from B)

        Returns:
            b_a: (n_a, 3) force density on body A
            b_b: (n_b, 3) force density on body B
        """
        b_a = np.zeros_like(pos_a)
        b_b = np.zeros_like(pos_b)
        if len(pairs) == 0:
            return b_a, b_b

        idx_a = pairs[:, 0]
        idx_b = pairs[:, 1]
        diff = pos_a[idx_a] - pos_b[idx_b]
        norms = np.maximum(dists, 1e-15)[:, np.newaxis]
        normals = diff / norms

        f_mag = penalty * (radius - dists) / radius
        f_vec = f_mag[:, np.newaxis] * normals

        # Action - reaction
        np.add.at(b_a, idx_a, f_vec * vol_b[idx_b][:, np.newaxis])
        np.add.at(b_b, idx_b, -f_vec * vol_a[idx_a][:, np.newaxis])
        return b_a, b_b


class MultibodyDataHandler:
    """Chunks of all bodies of a multibody setup, stepped by one thread pool.

    Chunk ids are global over the setup: the chunks of the first body come
    first, then those of the second, and so on.

    Attributes:
        body_dhs: One ``ThreadsDataHandler`` per body
        chunks: All chunks, indexed by global chunk id
        contacts: Contact definitions of the setup
    """

    def __init__(
        self,
        ms: MultibodySetup,
        time_solver,
        n_chunks: int = 1,
        n_workers: Optional[int] = None,
    ):
        n_workers = n_workers or min(n_chunks * len(ms.bodies), os.cpu_count() or 1)
        self._executor = ThreadPoolExecutor(max_workers=n_workers, thread_name_prefix="parapd")
        self.n_workers = n_workers
        self.body_dhs = [
            ThreadsDataHandler(body, time_solver, n_chunks, n_workers=n_workers,
                               executor=self._executor)
            for body in ms.bodies
        ]
        self.body_idxs = dict(ms.body_idxs)
        self.contacts = list(ms.srf_contacts)
        self.coordinator = LocalCoordinator()
        self._index = [(dh, c) for dh in self.body_dhs for c in range(dh.n_chunks)]
        self.chunks = [dh.chunks[c] for dh, c in self._index]
        self._contact = NodeNodeContact()

    @property
    def n_chunks(self) -> int:
        return len(self.chunks)

    def run_phase(self, fn: Callable[[int], None]) -> None:
        list(self._executor.map(_guarded(fn), range(self.n_chunks)))

    def exchange_loc_to_halo(self, chunk_id: int) -> None:
        dh, c = self._index[chunk_id]
        dh.exchange_loc_to_halo(c)

    def exchange_halo_to_loc(self, chunk_id: int) -> None:
        dh, c = self._index[chunk_id]
        dh.exchange_halo_to_loc(c)

    def _gather(self, dh: ThreadsDataHandler) -> Tuple[np.ndarray, np.ndarray]:
        """Current positions and volumes of a body in global point order."""
        n_points = dh.decomp.n_points
        pos = np.empty((n_points, 3))
        vol = np.empty(n_points)
        for chunk in dh.chunks:
            n_loc = chunk.ch.n_loc_points
            pos[chunk.ch.loc_points] = chunk.storage.position[:n_loc]
            vol[chunk.ch.loc_points] = chunk.discret.volume[:n_loc]
        return pos, vol

    def _scatter_add(self, dh: ThreadsDataHandler, b: np.ndarray) -> None:
        for chunk in dh.chunks:
            n_loc = chunk.ch.n_loc_points
            chunk.storage.b_int[:n_loc] += b[chunk.ch.loc_points]

    def contact_force_densities(self, contact: ShortRangeForceContact):
        dh_a = self.body_dhs[self.body_idxs[contact.body_a]]
        dh_b = self.body_dhs[self.body_idxs[contact.body_b]]
        pos_a, vol_a = self._gather(dh_a)
        pos_b, vol_b = self._gather(dh_b)
        pairs, dists = self._contact.detect(pos_a, pos_b, contact.radius)
        b_a, b_b = self._contact.compute_forces(
            pos_a, pos_b, vol_a, vol_b, pairs, dists, contact.radius, contact.penalty)
        return dh_a, dh_b, b_a, b_b, len(pairs)

    def apply_contact_forces(self) -> None:
        """Add the contact force densities of all contacts to ``b_int``."""
        for contact in self.contacts:
            dh_a, dh_b, b_a, b_b, n_pairs = self.contact_force_densities(contact)
            if n_pairs:
                logger.debug("Contact %s-%s: %d pairs", contact.body_a, contact.body_b, n_pairs)
                self._scatter_add(dh_a, b_a)
                self._scatter_add(dh_b, b_b)

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def log_summary(self) -> None:
        for dh in self.body_dhs:
            dh.log_summary()
        logger.info("Multibody data handler: %d bodies, %d chunks, %d contacts",
                    len(self.body_dhs), self.n_chunks, len(self.contacts))
