"""
Random walks on percolation clusters, optionally subordinated to a CTRW clock.

Each walk goes through the same stages:

1. pick a start site with at least one occupied neighbour,
2. hop ``sim_length`` times between occupied neighbours, flagging hops
   that cross a periodic seam,
3. draw Pareto waiting times (``tau0 * exp(E)``, ``E ~ Exp(beta)``) and
   resample the hop sequence onto ``n_steps`` unit time steps,
4. unwrap the seam crossings into continuous real-space coordinates.

Random variates are drawn from the caller's ``numpy.random.Generator``
and handed to the njit kernels, so the kernels themselves are
deterministic.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

import numpy as np
from numba import njit

from .lattice import LatticeGeometry
from .percolation import largest_cluster_root

logger = logging.getLogger(__name__)

ANY_CLUSTER = 0
LARGEST_CLUSTER = 1

WALK_NAMES = {"any": ANY_CLUSTER, "largest": LARGEST_CLUSTER}

MAX_START_ATTEMPTS = 1_000_000
START_BATCH = 64

# Seam crossing flags
NO_CROSSING = 0
CROSS_TOP = 1
CROSS_BOTTOM = 2
CROSS_RIGHT = 3
CROSS_LEFT = 4


@dataclass
class WalkEnsemble:
    """Unwrapped trajectories plus the bookkeeping used to build them."""

    coords: np.ndarray  # (n_walks, n_steps, 2)
    starts: np.ndarray  # (n_walks,) start site of each walk
    pinned: np.ndarray  # (n_walks,) True where no mobile start was found


def simulation_length(n_steps: int, tau0: float) -> int:
    """Number of hops to simulate; oversampled when ``tau0 < 1``."""
    if tau0 < 1.0:
        return int(n_steps / tau0)
    return n_steps


###############################################################################
# Kernels
###############################################################################


@njit(cache=True)
def _occupied_neighbours(
    nn: np.ndarray, lattice: np.ndarray, empty: int, pos: int, out: np.ndarray
) -> int:
    """Write the occupied neighbours of ``pos`` into ``out`` and return how many."""
    count = 0
    for k in range(nn.shape[1]):
        s = nn[pos, k]
        if lattice[s] != empty:
            out[count] = s
            count += 1
    return count


@njit(cache=True)
def _walk_on_lattice(
    start: int,
    sim_length: int,
    nn: np.ndarray,
    lattice: np.ndarray,
    empty: int,
    uniforms: np.ndarray,
    is_first: np.ndarray,
    is_last: np.ndarray,
    boundary1: int,
    boundary2: int,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Hop between occupied neighbours, classifying each hop as a seam crossing.

    ``uniforms[j - 1]`` picks the neighbour of hop ``j``. A site with no
    occupied neighbour freezes the walk in place.
    """
    sites = np.empty(sim_length, dtype=np.int64)
    crossings = np.zeros(sim_length, dtype=np.uint8)
    buf = np.empty(nn.shape[1], dtype=np.int64)

    pos = start
    pos_last = start
    sites[0] = start
    for j in range(1, sim_length):
        count = _occupied_neighbours(nn, lattice, empty, pos, buf)
        if count == 0:
            sites[j] = pos
            continue
        choice = int(uniforms[j - 1] * count)
        if choice >= count:
            choice = count - 1
        pos = buf[choice]
        sites[j] = pos

        if is_first[pos_last] and is_last[pos]:
            crossings[j] = CROSS_TOP
        elif is_last[pos_last] and is_first[pos]:
            crossings[j] = CROSS_BOTTOM
        elif pos_last >= boundary2 and pos < boundary1:
            crossings[j] = CROSS_RIGHT
        elif pos_last < boundary1 and pos >= boundary2:
            crossings[j] = CROSS_LEFT

        pos_last = pos
    return sites, crossings


@njit(cache=True)
def _subordinate(
    sites: np.ndarray, crossings: np.ndarray, times: np.ndarray, n_steps: int
) -> tuple[np.ndarray, np.ndarray]:
    """
    Resample the hop sequence onto unit time steps.

    The walk holds its site until the clock passes the current event
    time and advances by at most one event per step, carrying that
    event's crossing flag.
    """
    true_sites = np.empty(n_steps, dtype=np.int64)
    true_crossings = np.zeros(n_steps, dtype=np.uint8)
    counter = 0
    for j in range(n_steps):
        if j > times[counter]:
            counter += 1
            true_crossings[j] = crossings[counter]
        true_sites[j] = sites[counter]
    return true_sites, true_crossings


@njit(cache=True)
def _unwrap(
    true_sites: np.ndarray,
    true_crossings: np.ndarray,
    coords: np.ndarray,
    unit_cell: np.ndarray,
) -> np.ndarray:
    n_steps = true_sites.shape[0]
    out = np.empty((n_steps, 2), dtype=np.float64)
    nx_cell = 0
    ny_cell = 0
    for n in range(n_steps):
        flag = true_crossings[n]
        if flag == CROSS_TOP:
            ny_cell += 1
        elif flag == CROSS_BOTTOM:
            ny_cell -= 1
        elif flag == CROSS_RIGHT:
            nx_cell += 1
        elif flag == CROSS_LEFT:
            nx_cell -= 1
        site = true_sites[n]
        out[n, 0] = coords[site, 0] + nx_cell * unit_cell[0]
        out[n, 1] = coords[site, 1] + ny_cell * unit_cell[1]
    return out


###############################################################################
# Python-side helpers
###############################################################################


def ctrw_times(
    sim_length: int,
    n_steps: int,
    beta: float,
    tau0: float,
    rng: np.random.Generator,
) -> np.ndarray:
    """
    Event times of the walk, truncated so the last one is exactly ``n_steps``.

    With ``beta > 0`` the waiting times are Pareto distributed with shape
    ``beta`` and scale ``tau0``; with ``beta == 0`` events fall on
    ``1, 2, ..., sim_length``.
    """
    if beta > 0.0:
        variates = rng.exponential(1.0 / beta, size=sim_length)
        with np.errstate(over="ignore"):
            times = np.cumsum(tau0 * np.exp(variates))
    else:
        times = np.linspace(1.0, sim_length, sim_length)

    hits = np.flatnonzero(times >= n_steps)
    cut = int(hits[0]) if hits.size else sim_length - 1
    times = times[: cut + 1].copy()
    times[cut] = n_steps
    return times


def start_pool(
    lattice: np.ndarray, clusters: np.ndarray, empty: int, walk_type: int
) -> np.ndarray:
    """Sites a walk may start from: every occupied site, or the largest cluster."""
    if walk_type == LARGEST_CLUSTER:
        root = largest_cluster_root(lattice, empty)
        if root < 0:
            return np.empty(0, dtype=np.int64)
        return np.flatnonzero(clusters == root)
    return np.flatnonzero(lattice != empty)


def mobile_sites(nn: np.ndarray, lattice: np.ndarray, empty: int) -> np.ndarray:
    """Occupied sites with at least one occupied neighbour."""
    occupied = lattice != empty
    return occupied & occupied[nn].any(axis=1)


def select_start(
    pool: np.ndarray,
    mobile: np.ndarray,
    rng: np.random.Generator,
    max_attempts: int,
) -> tuple[int, bool]:
    """
    Draw start candidates uniformly from ``pool`` until one is mobile.

    Returns ``(site, found)``. When the pool is empty or ``max_attempts``
    candidates were rejected, the last candidate (or an arbitrary site)
    is returned with ``found=False``.
    """
    if pool.size == 0:
        return int(rng.integers(0, mobile.shape[0])), False

    attempts = 0
    candidates = pool[:1]
    while attempts < max_attempts:
        size = min(START_BATCH, max_attempts - attempts)
        candidates = pool[rng.integers(0, pool.size, size=size)]
        ok = np.flatnonzero(mobile[candidates])
        if ok.size:
            return int(candidates[ok[0]]), True
        attempts += size
    return int(candidates[-1]), False


def add_noise(
    coords: np.ndarray, noise: float, rng: np.random.Generator
) -> np.ndarray:
    """Add i.i.d. Gaussian noise of standard deviation ``noise`` in place."""
    if noise > 0.0:
        t0 = time.perf_counter()
        coords += rng.normal(0.0, noise, size=coords.shape)
        logger.debug("Adding noise...             %.6f s", time.perf_counter() - t0)
    return coords


###############################################################################
# Generator
###############################################################################


class WalkGenerator:
    """Simulates an ensemble of walks on one percolated lattice."""

    def __init__(
        self,
        geometry: LatticeGeometry,
        lattice: np.ndarray,
        clusters: np.ndarray,
        *,
        walk_type: int = ANY_CLUSTER,
        beta: float = 0.0,
        tau0: float = 1.0,
    ) -> None:
        self.geometry = geometry
        self.lattice = lattice
        self.clusters = clusters
        self.walk_type = walk_type
        self.beta = beta
        self.tau0 = tau0

        self.is_first, self.is_last = geometry.row_masks()
        self.boundary1, self.boundary2 = geometry.column_boundaries
        self.pool = start_pool(lattice, clusters, geometry.empty, walk_type)
        self.mobile = mobile_sites(geometry.nn, lattice, geometry.empty)
        self.max_attempts = min(geometry.n_sites, MAX_START_ATTEMPTS)

    def walk(
        self, n_steps: int, rng: np.random.Generator
    ) -> tuple[np.ndarray, int, bool]:
        """One unwrapped walk of ``n_steps`` unit time steps."""
        geometry = self.geometry
        sim_length = simulation_length(n_steps, self.tau0)
        start, found = select_start(self.pool, self.mobile, rng, self.max_attempts)

        if found:
            uniforms = rng.random(sim_length - 1)
            sites, crossings = _walk_on_lattice(
                start,
                sim_length,
                geometry.nn,
                self.lattice,
                geometry.empty,
                uniforms,
                self.is_first,
                self.is_last,
                self.boundary1,
                self.boundary2,
            )
        else:
            sites = np.full(sim_length, start, dtype=np.int64)
            crossings = np.zeros(sim_length, dtype=np.uint8)

        times = ctrw_times(sim_length, n_steps, self.beta, self.tau0, rng)
        true_sites, true_crossings = _subordinate(sites, crossings, times, n_steps)
        coords = _unwrap(true_sites, true_crossings, geometry.coords, geometry.unit_cell)
        return coords, start, not found

    def run(self, n_walks: int, n_steps: int, rng: np.random.Generator) -> WalkEnsemble:
        t0 = time.perf_counter()
        coords = np.empty((n_walks, n_steps, 2), dtype=np.float64)
        starts = np.empty(n_walks, dtype=np.int64)
        pinned = np.zeros(n_walks, dtype=np.bool_)
        for i in range(n_walks):
            coords[i], starts[i], pinned[i] = self.walk(n_steps, rng)
            if pinned[i]:
                logger.info(
                    "Walk %d: no start site with an occupied neighbour after "
                    "%d attempts, pinned at site %d",
                    i,
                    self.max_attempts,
                    starts[i],
                )
        logger.debug("Simulating random walks...  %.6f s", time.perf_counter() - t0)
        return WalkEnsemble(coords=coords, starts=starts, pinned=pinned)


__all__ = [
    "ANY_CLUSTER",
    "LARGEST_CLUSTER",
    "WALK_NAMES",
    "WalkEnsemble",
    "WalkGenerator",
    "add_noise",
    "ctrw_times",
    "mobile_sites",
    "select_start",
    "simulation_length",
    "start_pool",
]
