"""
CTRW Fractal Simulation Library

Anomalous diffusion on 2D percolation clusters:
- Lattice builder: square and honeycomb lattices with periodic boundaries
- Percolation: Newman-Ziff site percolation with union-find
- Walks: random walks on occupied sites, optionally CTRW-subordinated
- Analysis: eaMSD, TAMSD, eataMSD and ergodicity breaking
"""

from .lattice import HONEYCOMB, SQUARE, LatticeGeometry, build_lattice
from .percolation import Percolation
from .walks import ANY_CLUSTER, LARGEST_CLUSTER, WalkEnsemble, WalkGenerator
from .analysis import WalkAnalysis, analyse_walks, anomalous_exponent
from .simulator import CTRWConfig, CTRWSimulator, run_model
from . import utils

__all__ = [
    # Simulator
    "CTRWSimulator",
    "CTRWConfig",
    "run_model",
    # Stages
    "LatticeGeometry",
    "build_lattice",
    "Percolation",
    "WalkEnsemble",
    "WalkGenerator",
    "WalkAnalysis",
    "analyse_walks",
    "anomalous_exponent",
    # Constants
    "SQUARE",
    "HONEYCOMB",
    "ANY_CLUSTER",
    "LARGEST_CLUSTER",
    # Utilities
    "utils",
]
