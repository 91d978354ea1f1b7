"""
Periodic lattice geometry.

Builds the nearest-neighbour table, the real-space site coordinates and
the periodic tile (unit cell) for the two supported topologies:

- square: 4 neighbours, sites laid out column by column,
  ``site = x * grid_size + y``.
- honeycomb: 3 neighbours, brick-wall indexing of ``4 * grid_size``
  columns of ``grid_size`` sites each. Columns cycle through four phases
  (two zig-zag pairs) and row index 0 is the top of the tile.

The neighbour table is the only input the percolation and walk kernels
need; the coordinates and unit cell are only used to unwrap walks.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

import numpy as np
from numba import njit

logger = logging.getLogger(__name__)

SQUARE = 0
HONEYCOMB = 1

LATTICE_NAMES = {"square": SQUARE, "honeycomb": HONEYCOMB}

SQRT3 = 1.7320508075688772
SQRT3_O2 = 0.8660254037844386


@dataclass
class LatticeGeometry:
    """Immutable topology of a periodic lattice."""

    grid_size: int
    lattice_type: int
    n_sites: int
    neighbour_count: int
    nn: np.ndarray  # (n_sites, neighbour_count) int64
    first_row: np.ndarray  # sites on the top periodic seam
    last_row: np.ndarray  # sites on the bottom periodic seam
    coords: np.ndarray  # (n_sites, 2) float64
    unit_cell: np.ndarray  # (2,) float64

    @property
    def empty(self) -> int:
        """Sentinel marking an unoccupied site in the union-find forest."""
        return -self.n_sites - 1

    @property
    def column_boundaries(self) -> tuple[int, int]:
        """Site index thresholds of the first and last lattice column."""
        return self.grid_size, self.n_sites - self.grid_size

    def row_masks(self) -> tuple[np.ndarray, np.ndarray]:
        """Boolean membership masks for ``first_row`` and ``last_row``."""
        is_first = np.zeros(self.n_sites, dtype=np.bool_)
        is_last = np.zeros(self.n_sites, dtype=np.bool_)
        is_first[self.first_row] = True
        is_last[self.last_row] = True
        return is_first, is_last


def site_count(grid_size: int, lattice_type: int) -> tuple[int, int]:
    """Return ``(n_sites, neighbour_count)`` for a topology."""
    if lattice_type == HONEYCOMB:
        return 4 * grid_size * grid_size, 3
    return grid_size * grid_size, 4


###############################################################################
# Seam rows
###############################################################################


def square_rows(grid_size: int) -> tuple[np.ndarray, np.ndarray]:
    """
    Top (``y = grid_size - 1``) and bottom (``y = 0``) seam sites of a
    square lattice, one per column.
    """
    columns = np.arange(grid_size, dtype=np.int64) * grid_size
    return columns + grid_size - 1, columns.copy()


def honeycomb_rows(grid_size: int) -> tuple[np.ndarray, np.ndarray]:
    """
    Top and bottom seam sites of a honeycomb lattice.

    The top seam holds row 0 of the raised columns (phases 0 and 3), the
    bottom seam holds the last row of the lowered columns (phases 1 and 2).
    Only these sites have a bond that wraps vertically.
    """
    i = np.arange(1, 2 * grid_size + 1, dtype=np.int64)
    odd = (i % 2) == 1
    first = np.where(odd, 2 * grid_size * (i - 1), 2 * i * grid_size - grid_size)
    last = np.where(odd, 2 * i * grid_size - 1, 2 * i * grid_size - grid_size - 1)
    return first, last


###############################################################################
# Neighbour tables
###############################################################################


@njit(cache=True)
def _square_neighbours(grid_size: int, n_sites: int) -> np.ndarray:
    """Right, left, down, up neighbours with periodic wraparound."""
    nn = np.empty((n_sites, 4), dtype=np.int64)
    for i in range(n_sites):
        nn[i, 0] = (i + 1) % n_sites
        nn[i, 1] = (i + n_sites - 1) % n_sites
        nn[i, 2] = (i + grid_size) % n_sites
        nn[i, 3] = (i + n_sites - grid_size) % n_sites
        # Stay inside the column when wrapping along it
        if i % grid_size == 0:
            nn[i, 1] = i + grid_size - 1
        if (i + 1) % grid_size == 0:
            nn[i, 0] = i - grid_size + 1
    return nn


@njit(cache=True)
def _honeycomb_neighbours(
    grid_size: int, n_sites: int, is_first: np.ndarray, is_last: np.ndarray
) -> np.ndarray:
    """
    Brick-wall honeycomb neighbours.

    Corner and edge-column sites are special-cased first; the bulk is
    split by column phase, with seam sites wrapping to the opposite
    end of the neighbouring column.
    """
    g = grid_size
    nn = np.empty((n_sites, 3), dtype=np.int64)
    for i in range(n_sites):
        phase = (i // g) % 4
        if i == 0:
            nn[i, 0] = i + g
            nn[i, 1] = i + 2 * g - 1
            nn[i, 2] = i + n_sites - g
        elif i == n_sites - g:  # top right-hand corner
            nn[i, 0] = i - 1
            nn[i, 1] = i - g
            nn[i, 2] = i - n_sites + g
        elif i == n_sites - g - 1:  # bottom right-hand corner
            nn[i, 0] = i - g
            nn[i, 1] = i + g
            nn[i, 2] = i + 1
        elif i < g:  # first column
            nn[i, 0] = i + g - 1
            nn[i, 1] = i + g
            nn[i, 2] = i + n_sites - g
        elif i > n_sites - g:  # last column
            nn[i, 0] = i - g - 1
            nn[i, 1] = i - g
            nn[i, 2] = i - n_sites + g
        elif phase == 0:
            if is_first[i]:
                nn[i, 0] = i - g
                nn[i, 1] = i + g
                nn[i, 2] = i + 2 * g - 1
            else:
                nn[i, 0] = i - g
                nn[i, 1] = i + g - 1
                nn[i, 2] = i + g
        elif phase == 1:
            if is_last[i]:
                nn[i, 0] = i - g
                nn[i, 1] = i + g
                nn[i, 2] = i - 2 * g + 1
            else:
                nn[i, 0] = i - g
                nn[i, 1] = i - g + 1
                nn[i, 2] = i + g
        elif phase == 2:
            if is_last[i]:
                nn[i, 0] = i - g
                nn[i, 1] = i + g
                nn[i, 2] = i + 1
            else:
                nn[i, 0] = i - g
                nn[i, 1] = i + g
                nn[i, 2] = i + g + 1
        else:
            if is_first[i]:
                nn[i, 0] = i - 1
                nn[i, 1] = i - g
                nn[i, 2] = i + g
            else:
                nn[i, 0] = i - g - 1
                nn[i, 1] = i - g
                nn[i, 2] = i + g
    return nn


###############################################################################
# Coordinates
###############################################################################


def square_coords(grid_size: int) -> tuple[np.ndarray, np.ndarray]:
    """Integer grid positions and the ``grid_size x grid_size`` tile."""
    x, y = np.meshgrid(
        np.arange(grid_size, dtype=np.float64),
        np.arange(grid_size, dtype=np.float64),
        indexing="ij",
    )
    coords = np.column_stack((x.ravel(), y.ravel()))
    unit_cell = coords.max(axis=0) + 1.0
    return coords, unit_cell


def honeycomb_coords(grid_size: int) -> tuple[np.ndarray, np.ndarray]:
    """
    Unit-bond honeycomb positions.

    Every group of four columns spans 3 units in x; every row spans
    sqrt(3) in y, with phases 0 and 3 raised by half a row. The tile is
    ``3 * grid_size`` wide and ``sqrt(3) * grid_size`` high, so a bond
    that wraps has the same length as any other bond.
    """
    columns = np.arange(4 * grid_size)
    rows = np.arange(grid_size)
    col, row = np.meshgrid(columns, rows, indexing="ij")
    col = col.ravel()
    row = row.ravel()

    x_offset = (col // 4) * 3.0
    y_offset = (grid_size - row - 1) * SQRT3
    phase = col % 4

    x = x_offset + np.array([0.0, 0.5, 1.5, 2.0])[phase]
    y = y_offset + np.array([SQRT3_O2, 0.0, 0.0, SQRT3_O2])[phase]
    coords = np.column_stack((x, y))

    unit_cell = coords.max(axis=0)
    unit_cell[0] += 1.0
    unit_cell[1] += SQRT3_O2
    return coords, unit_cell


###############################################################################
# Public builder
###############################################################################


def build_lattice(grid_size: int, lattice_type: int = SQUARE) -> LatticeGeometry:
    """
    Compute neighbours, seam rows, coordinates and the unit cell.

    Deterministic in ``grid_size`` and ``lattice_type``. Grids with
    ``grid_size <= 2`` alias some neighbours onto the same site; the table
    is still well formed but a site may list the same neighbour twice.
    """
    t0 = time.perf_counter()
    n_sites, neighbour_count = site_count(grid_size, lattice_type)

    if lattice_type == HONEYCOMB:
        first_row, last_row = honeycomb_rows(grid_size)
        is_first = np.zeros(n_sites, dtype=np.bool_)
        is_last = np.zeros(n_sites, dtype=np.bool_)
        is_first[first_row] = True
        is_last[last_row] = True
        nn = _honeycomb_neighbours(grid_size, n_sites, is_first, is_last)
        coords, unit_cell = honeycomb_coords(grid_size)
    else:
        first_row, last_row = square_rows(grid_size)
        nn = _square_neighbours(grid_size, n_sites)
        coords, unit_cell = square_coords(grid_size)

    logger.debug("Searching neighbours...     %.6f s", time.perf_counter() - t0)
    return LatticeGeometry(
        grid_size=grid_size,
        lattice_type=lattice_type,
        n_sites=n_sites,
        neighbour_count=neighbour_count,
        nn=nn,
        first_row=first_row,
        last_row=last_row,
        coords=coords,
        unit_cell=unit_cell,
    )


__all__ = [
    "SQUARE",
    "HONEYCOMB",
    "LATTICE_NAMES",
    "LatticeGeometry",
    "build_lattice",
    "site_count",
]
