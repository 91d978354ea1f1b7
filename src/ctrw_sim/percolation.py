"""
Newman-Ziff site percolation.

Sites are switched on in the order of a random permutation and merged
with their occupied neighbours through a union-find forest stored in a
single int64 array:

- ``lattice[i] < 0`` and ``!= empty``: ``i`` is a root and ``-lattice[i]``
  is the size of its cluster,
- ``lattice[i] >= 0``: parent pointer,
- ``lattice[i] == empty`` (``-N - 1``): site not occupied.

See M. E. J. Newman and R. M. Ziff, "A fast Monte Carlo algorithm for
site or bond percolation", Phys. Rev. E 64, 016706 (2001).
"""

from __future__ import annotations

import logging
import time

import numpy as np
from numba import njit

from .lattice import LatticeGeometry

logger = logging.getLogger(__name__)

MAX_SITES = 4294967294  # largest draw of the permutation generator
PERM_CONSTANT = 2.3283064e-10  # ~ 1 / MAX_SITES


###############################################################################
# Kernels
###############################################################################


@njit(cache=True)
def _fisher_yates(n_sites: int, draws: np.ndarray) -> np.ndarray:
    """
    Shuffle ``[0, n_sites)`` with one uniform integer draw per position.

    The swap index is ``i + (n - i) * PERM_CONSTANT * u`` truncated towards
    zero, which keeps it strictly below ``n`` for any ``u <= MAX_SITES``.
    """
    occupation = np.arange(n_sites, dtype=np.int64)
    for i in range(n_sites):
        j = np.int64(i + (n_sites - i) * PERM_CONSTANT * draws[i])
        tmp = occupation[i]
        occupation[i] = occupation[j]
        occupation[j] = tmp
    return occupation


@njit(cache=True)
def find_root(forest: np.ndarray, i: int) -> int:
    """Resolve ``i`` to its root and point every visited node at it."""
    root = i
    while forest[root] >= 0:
        root = forest[root]
    while forest[i] >= 0:
        parent = forest[i]
        forest[i] = root
        i = parent
    return root


@njit(cache=True)
def _percolate(
    occupation: np.ndarray, nn: np.ndarray, n_occupy: int, empty: int
) -> tuple[np.ndarray, int]:
    lattice = np.full(occupation.shape[0], empty, dtype=np.int64)
    big = 0
    for i in range(n_occupy):
        s1 = occupation[i]
        r1 = s1
        lattice[s1] = -1
        for k in range(nn.shape[1]):
            s2 = nn[s1, k]
            if lattice[s2] == empty:
                continue
            r2 = find_root(lattice, s2)
            if r2 == r1:
                continue
            # Union by size; on a tie the neighbour's root joins r1
            if lattice[r1] > lattice[r2]:
                lattice[r2] += lattice[r1]
                lattice[r1] = r2
                r1 = r2
            else:
                lattice[r1] += lattice[r2]
                lattice[r2] = r1
            if -lattice[r1] > big:
                big = -lattice[r1]
    return lattice, big


@njit(cache=True)
def _group_clusters(lattice: np.ndarray, empty: int) -> np.ndarray:
    """Label every occupied site with its root; empty sites keep ``empty``."""
    forest = lattice.copy()
    labels = np.full(lattice.shape[0], empty, dtype=np.int64)
    for i in range(lattice.shape[0]):
        if forest[i] == empty:
            continue
        labels[i] = find_root(forest, i)
    return labels


###############################################################################
# Public API
###############################################################################


def occupied_count(threshold: float, n_sites: int) -> int:
    """
    Number of permutation entries switched on for ``threshold``.

    Sites ``i = 0, 1, ...`` are occupied while ``i < threshold * n_sites - 1``,
    capped at ``n_sites``.
    """
    limit = threshold * n_sites - 1
    if limit <= 0:
        return 0
    return min(int(np.ceil(limit)), n_sites)


def permute(n_sites: int, rng: np.random.Generator) -> np.ndarray:
    """Uniform random occupation order of ``n_sites`` sites."""
    draws = rng.integers(0, MAX_SITES, size=n_sites, dtype=np.uint64, endpoint=True)
    return _fisher_yates(n_sites, draws)


def largest_cluster_root(lattice: np.ndarray, empty: int) -> int:
    """
    Root index of the largest cluster, or -1 if nothing is occupied.

    Ties go to the lowest root index.
    """
    roots = np.flatnonzero((lattice < 0) & (lattice != empty))
    if roots.size == 0:
        return -1
    return int(roots[np.argmin(lattice[roots])])


def cluster_sizes(clusters: np.ndarray) -> dict[int, int]:
    """Map each cluster root to its number of member sites."""
    labels = clusters[clusters >= 0]
    roots, counts = np.unique(labels, return_counts=True)
    return {int(r): int(c) for r, c in zip(roots, counts)}


class Percolation:
    """
    Union-find percolation on a fixed lattice geometry.

    The object owns the occupation order and the forest; it never owns
    the random generator, which is passed in by the caller.
    """

    def __init__(self, geometry: LatticeGeometry) -> None:
        self.geometry = geometry
        self.occupation: np.ndarray | None = None
        self.lattice: np.ndarray | None = None
        self.largest_cluster_size = 0

    @property
    def empty(self) -> int:
        return self.geometry.empty

    def permute(self, rng: np.random.Generator) -> np.ndarray:
        t0 = time.perf_counter()
        self.occupation = permute(self.geometry.n_sites, rng)
        logger.debug("Randomizing occupations...  %.6f s", time.perf_counter() - t0)
        return self.occupation

    def percolate(self, threshold: float) -> np.ndarray:
        if self.occupation is None:
            raise RuntimeError("permute() must run before percolate()")
        t0 = time.perf_counter()
        n_occupy = occupied_count(threshold, self.geometry.n_sites)
        self.lattice, big = _percolate(
            self.occupation, self.geometry.nn, n_occupy, self.empty
        )
        self.largest_cluster_size = int(big)
        logger.debug("Running percolation...      %.6f s", time.perf_counter() - t0)
        return self.lattice

    def group_clusters(self) -> np.ndarray:
        if self.lattice is None:
            raise RuntimeError("percolate() must run before group_clusters()")
        return _group_clusters(self.lattice, self.empty)

    def occupied(self) -> np.ndarray:
        """Boolean occupancy mask."""
        if self.lattice is None:
            raise RuntimeError("percolate() must run before occupied()")
        return self.lattice != self.empty

    def largest_root(self) -> int:
        if self.lattice is None:
            raise RuntimeError("percolate() must run before largest_root()")
        return largest_cluster_root(self.lattice, self.empty)


__all__ = [
    "MAX_SITES",
    "PERM_CONSTANT",
    "Percolation",
    "cluster_sizes",
    "find_root",
    "largest_cluster_root",
    "occupied_count",
    "permute",
]
