#!/usr/bin/env python3
"""
Batch CTRW Simulation Runner

Repeats one parameter set over a range of seeds in parallel and writes
one .npz per seed plus a JSON manifest.
"""

import argparse
import json
import logging
import sys
import time
from concurrent.futures import ProcessPoolExecutor, as_completed
from pathlib import Path
from typing import Any, Dict

SRC = Path(__file__).resolve().parents[1]
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from ctrw_sim import CTRWConfig, CTRWSimulator, utils


def run_single_simulation(
    params: Dict[str, Any], seed: int, output_path: str
) -> Dict[str, Any]:
    """
    Run a single simulation and save it.

    Called in worker processes by ProcessPoolExecutor, so it must live at
    module level for pickling. Analysis runs single-threaded inside each
    worker.
    """
    config = CTRWConfig.from_dict({**params, "seed": seed, "n_jobs": 1})
    simulator = CTRWSimulator(config)
    simulator.run()
    utils.save_result(output_path, simulator.result())

    snap = simulator.snapshot()
    return {
        "output_path": output_path,
        "seed": seed,
        "occupied": snap["occupied"],
        "largest_cluster_size": snap["largest_cluster_size"],
        "alpha": snap.get("alpha"),
        "success": True,
    }


def main():
    parser = argparse.ArgumentParser(
        description="Generate a batch of CTRW fractal simulations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--params", type=str, required=True,
                        help="JSON/TOML parameter file shared by every run")
    parser.add_argument("--count", type=int, required=True,
                        help="Number of simulations to generate")
    parser.add_argument("--jobs", type=int, default=1,
                        help="Number of parallel processes (default: 1)")
    parser.add_argument("--name", type=str, default="batch",
                        help="Batch name for output folder (default: 'batch')")
    parser.add_argument("--base-seed", type=int, default=42,
                        help="Base seed (each simulation gets base_seed + index) (default: 42)")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s: %(message)s")
    log = logging.getLogger("run_batch")

    params = utils.load_params(args.params)
    params.pop("seed", None)
    params.pop("n_jobs", None)
    try:
        CTRWConfig.from_dict(params).validate()
    except ValueError as exc:
        log.error("Invalid parameters: %s", exc)
        return 2

    first_seed = args.base_seed
    last_seed = args.base_seed + args.count - 1

    timestamp = utils.now_str()
    batch_dir = Path("results") / "batches" / f"{args.name}_S{first_seed}-{last_seed}_{timestamp}"
    batch_dir.mkdir(parents=True, exist_ok=True)

    manifest: Dict[str, Any] = {
        "params": params,
        "count": args.count,
        "base_seed": args.base_seed,
        "jobs": args.jobs,
        "timestamp": timestamp,
        "batch_name": args.name,
    }
    manifest_path = batch_dir / "manifest.json"
    with open(manifest_path, "w") as f:
        json.dump(manifest, f, indent=2)

    log.info("Batch of %d simulations on %d processes -> %s", args.count, args.jobs, batch_dir)

    tasks = [
        (params, seed, str(batch_dir / f"{seed}.npz"))
        for seed in range(first_seed, last_seed + 1)
    ]

    start_time = time.time()
    results = []
    failed = []

    with ProcessPoolExecutor(max_workers=args.jobs) as executor:
        future_to_task = {
            executor.submit(run_single_simulation, *task): task for task in tasks
        }
        completed = 0
        for future in as_completed(future_to_task):
            completed += 1
            task = future_to_task[future]
            try:
                result = future.result()
            except Exception as e:
                failed.append({"seed": task[1], "error": str(e)})
                log.error("[%d/%d] FAILED: seed=%d - %s", completed, args.count, task[1], e)
            else:
                results.append(result)
                log.info(
                    "[%d/%d] Completed: seed=%d, largest cluster=%d",
                    completed,
                    args.count,
                    result["seed"],
                    result["largest_cluster_size"],
                )

    elapsed_time = time.time() - start_time

    manifest["results"] = {
        "total": args.count,
        "successful": len(results),
        "failed": len(failed),
        "elapsed_seconds": elapsed_time,
    }
    manifest["simulations"] = sorted(results, key=lambda r: r["seed"])
    if failed:
        manifest["failures"] = failed

    with open(manifest_path, "w") as f:
        json.dump(manifest, f, indent=2)

    log.info(
        "Batch completed: %d/%d successful in %.2f s, manifest %s",
        len(results),
        args.count,
        elapsed_time,
        manifest_path,
    )
    return 0 if not failed else 1


if __name__ == "__main__":
    sys.exit(main())
