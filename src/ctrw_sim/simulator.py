"""
Anomalous diffusion on percolation clusters.

The simulator threads a single mutable state through five ordered
stages:

1.  **Lattice:** neighbour table, coordinates and periodic unit cell.
2.  **Percolation:** random occupation order and Newman-Ziff union-find
    up to the occupation ``threshold``.
3.  **Grouping:** per-site cluster root labels.
4.  **Walks:** random walks on occupied sites, subordinated to a CTRW
    clock when ``beta > 0`` and optionally blurred by Gaussian noise.
5.  **Analysis:** eaMSD, eataMSD, per-walk TAMSD and ergodicity breaking,
    reduced over walks on ``n_jobs`` threads.

Stages 4 and 5 only run when both ``n_walks`` and ``n_steps`` are positive.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, fields
from typing import Any, Mapping, Optional

import numpy as np

from . import utils
from .analysis import WalkAnalysis, analyse_walks, anomalous_exponent
from .lattice import HONEYCOMB, LATTICE_NAMES, SQUARE, LatticeGeometry, build_lattice
from .percolation import Percolation
from .walks import (
    ANY_CLUSTER,
    LARGEST_CLUSTER,
    WALK_NAMES,
    WalkEnsemble,
    WalkGenerator,
    add_noise,
)

logger = logging.getLogger(__name__)


@dataclass
class CTRWConfig:
    """Parameters of one simulation run."""

    grid_size: int = 64
    lattice_type: int = SQUARE
    threshold: float = 0.6
    walk_type: int = ANY_CLUSTER
    n_walks: int = 0
    n_steps: int = 0
    beta: float = 0.0
    tau0: float = 1.0
    noise: float = 0.0
    seed: Optional[int] = None
    n_jobs: int = -1

    @property
    def include_walks(self) -> bool:
        return self.n_walks > 0 and self.n_steps > 0

    def validate(self) -> "CTRWConfig":
        if self.grid_size < 1:
            raise ValueError(f"grid_size must be >= 1, got {self.grid_size}")
        if self.lattice_type not in (SQUARE, HONEYCOMB):
            raise ValueError(f"Unknown lattice_type: {self.lattice_type}")
        if self.walk_type not in (ANY_CLUSTER, LARGEST_CLUSTER):
            raise ValueError(f"Unknown walk_type: {self.walk_type}")
        if not 0.0 <= self.threshold <= 1.0:
            raise ValueError(f"threshold must lie in [0, 1], got {self.threshold}")
        if self.n_walks < 0 or self.n_steps < 0:
            raise ValueError("n_walks and n_steps must be non-negative")
        if self.include_walks and self.n_steps < 2:
            raise ValueError("n_steps must be >= 2 when walks are requested")
        if self.beta < 0.0:
            raise ValueError(f"beta must be >= 0, got {self.beta}")
        if self.tau0 <= 0.0:
            raise ValueError(f"tau0 must be > 0, got {self.tau0}")
        if self.noise < 0.0:
            raise ValueError(f"noise must be >= 0, got {self.noise}")
        return self

    @classmethod
    def from_dict(cls, params: Mapping[str, Any]) -> "CTRWConfig":
        """Build a config from a mapping, accepting lattice/walk names."""
        known = {f.name for f in fields(cls)}
        unknown = set(params) - known
        if unknown:
            raise ValueError(f"Unknown parameters: {sorted(unknown)}")

        values = dict(params)
        if isinstance(values.get("lattice_type"), str):
            values["lattice_type"] = _lookup(LATTICE_NAMES, values["lattice_type"], "lattice_type")
        if isinstance(values.get("walk_type"), str):
            values["walk_type"] = _lookup(WALK_NAMES, values["walk_type"], "walk_type")
        return cls(**values)


def _lookup(names: Mapping[str, int], key: str, what: str) -> int:
    try:
        return names[key.lower()]
    except KeyError:
        raise ValueError(f"Unknown {what}: {key!r} (expected one of {sorted(names)})") from None


class CTRWSimulator:
    """
    The Manager Class.

    Responsibilities:
    1. Own the random generator and the simulation state.
    2. Run the pipeline stages in order.
    3. Expose clusters, coordinates, walks and the analysis matrix.
    """

    def __init__(self, config: CTRWConfig | None = None) -> None:
        self.config = (config or CTRWConfig()).validate()
        self.rng = utils.make_rng(self.config.seed)

        # State placeholders, filled by the stages
        self.geometry: Optional[LatticeGeometry] = None
        self.percolation: Optional[Percolation] = None
        self.clusters: Optional[np.ndarray] = None
        self.ensemble: Optional[WalkEnsemble] = None
        self.walk_analysis: Optional[WalkAnalysis] = None

    @property
    def include_walks(self) -> bool:
        return self.config.include_walks

    # ------------------------------------------------------------------ stages
    def find_neighbours(self) -> LatticeGeometry:
        self.geometry = build_lattice(self.config.grid_size, self.config.lattice_type)
        self.percolation = Percolation(self.geometry)
        return self.geometry

    def permute(self) -> np.ndarray:
        return self._require_percolation().permute(self.rng)

    def percolate(self) -> np.ndarray:
        return self._require_percolation().percolate(self.config.threshold)

    def group_clusters(self) -> np.ndarray:
        self.clusters = self._require_percolation().group_clusters()
        return self.clusters

    def random_walks(self) -> WalkEnsemble:
        if self.clusters is None:
            raise RuntimeError("group_clusters() must run before random_walks()")
        cfg = self.config
        generator = WalkGenerator(
            self.geometry,
            self.percolation.lattice,
            self.clusters,
            walk_type=cfg.walk_type,
            beta=cfg.beta,
            tau0=cfg.tau0,
        )
        self.ensemble = generator.run(cfg.n_walks, cfg.n_steps, self.rng)
        return self.ensemble

    def add_noise(self) -> np.ndarray:
        if self.ensemble is None:
            raise RuntimeError("random_walks() must run before add_noise()")
        return add_noise(self.ensemble.coords, self.config.noise, self.rng)

    def analyse_walks(self) -> WalkAnalysis:
        if self.ensemble is None:
            raise RuntimeError("random_walks() must run before analyse_walks()")
        self.walk_analysis = analyse_walks(self.ensemble.coords, self.config.n_jobs)
        return self.walk_analysis

    # ------------------------------------------------------------------ public
    def run(self) -> None:
        """Runs every stage in order."""
        cfg = self.config
        logger.info(
            "Running CTRW fractal: grid=%d, lattice=%d, threshold=%g, walks=%d x %d",
            cfg.grid_size,
            cfg.lattice_type,
            cfg.threshold,
            cfg.n_walks,
            cfg.n_steps,
        )
        start = time.perf_counter()

        self.find_neighbours()
        self.permute()
        self.percolate()
        self.group_clusters()

        if self.include_walks:
            self.random_walks()
            self.add_noise()
            self.analyse_walks()

        logger.info("Simulation completed in %.2f s", time.perf_counter() - start)

    def get_clusters(self) -> np.ndarray:
        """Cluster root label per site; empty sites hold ``-N - 1``."""
        if self.clusters is None:
            raise RuntimeError("group_clusters() has not run")
        return self.clusters

    def get_lattice_coords(self) -> np.ndarray:
        """(N, 2) real-space coordinates of every site."""
        if self.geometry is None:
            raise RuntimeError("find_neighbours() has not run")
        return self.geometry.coords

    def get_analysis(self) -> Optional[np.ndarray]:
        """(n_steps - 1, n_walks + 3) analysis matrix, or None without walks."""
        if self.walk_analysis is None:
            return None
        return self.walk_analysis.to_matrix()

    def get_walks(self) -> Optional[np.ndarray]:
        """(n_walks, n_steps, 2) unwrapped walk coordinates, or None without walks."""
        if self.ensemble is None:
            return None
        return self.ensemble.coords

    def snapshot(self) -> dict[str, Any]:
        """Summary statistics of the current state."""
        percolation = self._require_percolation()
        occupied = int(np.count_nonzero(percolation.occupied()))
        snap: dict[str, Any] = {
            "n_sites": self.geometry.n_sites,
            "occupied": occupied,
            "occupied_fraction": occupied / self.geometry.n_sites,
            "largest_cluster_size": percolation.largest_cluster_size,
        }
        if self.ensemble is not None:
            snap["pinned_walks"] = int(np.count_nonzero(self.ensemble.pinned))
        if (
            self.walk_analysis is not None
            and np.count_nonzero(self.walk_analysis.ea_msd > 0) >= 2
        ):
            alpha, r_squared = anomalous_exponent(
                self.walk_analysis.lags, self.walk_analysis.ea_msd
            )
            snap["alpha"] = alpha
            snap["alpha_r_squared"] = r_squared
        return snap

    def result(self) -> utils.CTRWResult:
        meta = asdict(self.config)
        meta.update(self.snapshot())
        return utils.CTRWResult(
            clusters=self.get_clusters(),
            lattice_coords=self.get_lattice_coords(),
            analysis=self.get_analysis(),
            walks=self.get_walks(),
            meta=meta,
        )

    def _require_percolation(self) -> Percolation:
        if self.percolation is None:
            raise RuntimeError("find_neighbours() must run first")
        return self.percolation


def run_model(config: CTRWConfig | Mapping[str, Any] | None = None) -> utils.CTRWResult:
    """Run one full simulation and return its outputs."""
    if config is None:
        config = CTRWConfig()
    elif not isinstance(config, CTRWConfig):
        config = CTRWConfig.from_dict(config)
    simulator = CTRWSimulator(config)
    simulator.run()
    return simulator.result()


__all__ = ["CTRWConfig", "CTRWSimulator", "run_model"]
