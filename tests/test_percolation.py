"""
Unit tests for Newman-Ziff percolation and cluster grouping.
"""

import numpy as np
import pytest

from ctrw_sim import utils
from ctrw_sim.lattice import HONEYCOMB, SQUARE, build_lattice
from ctrw_sim.percolation import (
    MAX_SITES,
    PERM_CONSTANT,
    Percolation,
    cluster_sizes,
    find_root,
    largest_cluster_root,
    occupied_count,
    permute,
)


def _run(grid_size, lattice_type, threshold, seed):
    geo = build_lattice(grid_size, lattice_type)
    perc = Percolation(geo)
    perc.permute(utils.make_rng(seed))
    perc.percolate(threshold)
    return geo, perc


@pytest.mark.parametrize("n_sites", [1, 2, 17, 1000])
def test_permutation_is_valid(n_sites):
    occupation = permute(n_sites, utils.make_rng(3))
    assert occupation.shape == (n_sites,)
    assert np.array_equal(np.sort(occupation), np.arange(n_sites))


def test_permutation_index_never_overflows():
    """The largest possible draw still lands inside the remaining range."""
    for n in (1, 10, 4096, 10**6):
        for i in (0, n - 1):
            assert int(i + (n - i) * PERM_CONSTANT * MAX_SITES) < n


def test_permutation_is_reproducible():
    a = permute(500, utils.make_rng(11))
    b = permute(500, utils.make_rng(11))
    assert np.array_equal(a, b)


def test_occupied_count():
    assert occupied_count(0.0, 100) == 0
    assert occupied_count(0.6, 100) == 59
    assert occupied_count(0.605, 100) == 60
    assert occupied_count(1.0, 100) == 99
    assert occupied_count(2.0, 100) == 100
    assert occupied_count(0.01, 50) == 0


def test_percolate_requires_permutation():
    perc = Percolation(build_lattice(4, SQUARE))
    with pytest.raises(RuntimeError):
        perc.percolate(0.5)


def test_zero_threshold_leaves_lattice_empty():
    geo, perc = _run(6, SQUARE, 0.0, seed=1)
    assert (perc.lattice == geo.empty).all()
    assert perc.largest_cluster_size == 0
    assert largest_cluster_root(perc.lattice, geo.empty) == -1


@pytest.mark.parametrize("lattice_type", [SQUARE, HONEYCOMB])
@pytest.mark.parametrize("threshold", [0.3, 0.6, 0.9])
def test_union_find_invariants(lattice_type, threshold):
    geo, perc = _run(8, lattice_type, threshold, seed=5)
    lattice = perc.lattice
    occupied = lattice != geo.empty

    n_occupy = occupied_count(threshold, geo.n_sites)
    assert occupied.sum() == n_occupy
    assert set(np.flatnonzero(occupied)) == set(perc.occupation[:n_occupy].tolist())

    # Every occupied site reaches a root within N hops
    forest = lattice.copy()
    roots = np.empty(geo.n_sites, dtype=np.int64)
    for i in np.flatnonzero(occupied):
        node, hops = i, 0
        while forest[node] >= 0:
            node = forest[node]
            hops += 1
            assert hops <= geo.n_sites
        roots[i] = node

    # Root entries hold minus the cluster size
    counts = cluster_sizes(np.where(occupied, roots, -1))
    for root, size in counts.items():
        assert lattice[root] == -size
    assert max(counts.values()) == max(perc.largest_cluster_size, 1)


def test_clusters_are_connected_components():
    geo, perc = _run(10, SQUARE, 0.55, seed=7)
    clusters = perc.group_clusters()
    occupied = perc.occupied()

    # Occupied neighbours always share a label
    for i in np.flatnonzero(occupied):
        for j in geo.nn[i]:
            if occupied[j]:
                assert clusters[i] == clusters[j]

    # Labels point at roots and empty sites keep the sentinel
    labels = clusters[occupied]
    assert (perc.lattice[labels] < 0).all()
    assert (clusters[~occupied] == geo.empty).all()


def test_group_clusters_leaves_forest_intact():
    geo, perc = _run(10, HONEYCOMB, 0.7, seed=2)
    before = perc.lattice.copy()
    perc.group_clusters()
    assert np.array_equal(before, perc.lattice)


def test_largest_cluster_root_matches_sizes():
    geo, perc = _run(12, SQUARE, 0.5, seed=9)
    clusters = perc.group_clusters()
    root = perc.largest_root()
    sizes = cluster_sizes(clusters)
    assert sizes[root] == max(sizes.values())
    assert sizes[root] == -perc.lattice[root]


def test_find_root_compresses_path():
    forest = np.array([-4, 0, 1, 2], dtype=np.int64)
    assert find_root(forest, 3) == 0
    assert forest.tolist() == [-4, 0, 0, 0]


def test_tie_keeps_new_site_as_root():
    """Two singletons joined by a new site: the new site's root wins the tie."""
    geo = build_lattice(3, SQUARE)
    perc = Percolation(geo)
    # Occupy 0, then 1 (joins 0 on a tie)
    perc.occupation = np.array([0, 1, 2, 3, 4, 5, 6, 7, 8], dtype=np.int64)
    perc.percolate(0.3)  # two sites
    assert perc.lattice[1] == -2
    assert perc.lattice[0] == 1
