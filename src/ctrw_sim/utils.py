# src/ctrw_sim/utils.py
from __future__ import annotations

import json
import os
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import numpy as np

try:  # Python 3.11+
    import tomllib
except ModuleNotFoundError:  # pragma: no cover
    tomllib = None  # type: ignore


@dataclass
class CTRWResult:
    """Common container for simulation outputs."""

    clusters: Optional[np.ndarray] = None
    lattice_coords: Optional[np.ndarray] = None
    analysis: Optional[np.ndarray] = None
    walks: Optional[np.ndarray] = None
    meta: Optional[Dict[str, Any]] = None

    def ensure_meta(self) -> Dict[str, Any]:
        if self.meta is None:
            self.meta = {}
        return self.meta


def make_rng(seed: Optional[int] = None) -> np.random.Generator:
    """
    PCG64 generator for one simulation run.

    ``None`` or a negative seed draws fresh entropy from the OS.
    """
    if seed is None or seed < 0:
        return np.random.default_rng()
    return np.random.default_rng(seed)


def resolve_jobs(n_jobs: int) -> int:
    """Worker count for ``n_jobs``; non-positive means every available core."""
    if n_jobs > 0:
        return n_jobs
    return os.cpu_count() or 1


def parallel_for(
    func: Callable[[int], Any],
    first: int,
    last: int,
    n_jobs: int = -1,
    threshold: int = 1,
) -> None:
    """
    Call ``func(i)`` for every ``i`` in ``[first, last)``.

    Runs serially for a single worker or when the range holds no more than
    ``threshold`` items; otherwise the range is cut into one contiguous
    slice per worker and run on a thread pool. ``func`` should release the
    GIL (e.g. an ``njit(nogil=True)`` kernel) to gain anything from threads.
    The first exception raised by a worker is re-raised here.
    """
    workers = resolve_jobs(n_jobs)
    if workers <= 1 or (last - first) <= threshold:
        for i in range(first, last):
            func(i)
        return

    workers = min(workers, last - first)
    per_worker = (last - first + workers - 1) // workers

    def run_slice(a: int, b: int) -> None:
        for i in range(a, b):
            func(i)

    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [
            executor.submit(run_slice, a, min(a + per_worker, last))
            for a in range(first, last, per_worker)
        ]
        for future in futures:
            future.result()


def now_str() -> str:
    return time.strftime("%Y%m%d-%H%M%S")


def save_result(
    path: str | os.PathLike[str], result: CTRWResult, *, overwrite: bool = True
) -> None:
    """Serialize a CTRWResult to a compressed .npz file."""
    out_dir = Path(path).parent
    out_dir.mkdir(parents=True, exist_ok=True)
    out: Dict[str, Any] = {}
    for key in ("clusters", "lattice_coords", "analysis", "walks"):
        value = getattr(result, key)
        if value is not None:
            out[key] = np.asarray(value)
    out["meta"] = json.dumps(result.meta or {})

    if not overwrite and Path(path).exists():
        raise FileExistsError(f"{path} already exists")
    np.savez_compressed(path, **out)


def load_result(path: str | os.PathLike[str]) -> CTRWResult:
    """Load a .npz written by :func:`save_result`."""
    with np.load(path, allow_pickle=False) as data:
        fields = {
            key: data[key] if key in data else None
            for key in ("clusters", "lattice_coords", "analysis", "walks")
        }
        meta = json.loads(str(data["meta"])) if "meta" in data else {}
    return CTRWResult(meta=meta, **fields)


def load_params(path: str | os.PathLike[str]) -> Dict[str, Any]:
    """
    Load simulation parameters from JSON or TOML.
    """
    path = str(path)
    with open(path, "rb") as fh:
        data = fh.read()
    suffix = Path(path).suffix.lower()
    if suffix in {".json", ""}:
        return json.loads(data.decode("utf-8"))
    if suffix in {".toml", ".tml"}:
        if tomllib is None:
            raise RuntimeError("tomllib is unavailable; cannot parse TOML files")
        return tomllib.loads(data.decode("utf-8"))
    raise ValueError(f"Unsupported parameter file format: {suffix}")
