"""
Run KMC simulations of an organic semiconductor film.

Loads a YAML parameter file (a path, or a name from the configs directory),
runs one or more independently seeded replicas and writes the statistics and
collected data of every replica to a JSON file in the results directory.
Without a parameter file the preset of an architecture is used.

Usage:
    python experiments/run_simulation.py neat_diffusion --seed 42
    python experiments/run_simulation.py --architecture bilayer --replicas 4
"""

import argparse
import json
import math
import sys
import time
from datetime import datetime
from pathlib import Path

import numpy as np

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from oscsim.data.osc_parameters import RunMode, SimulationParameters, load_parameters
from oscsim.kmc.simulator import OSCSimulator
from oscsim.settings import settings

# Setup logging from settings (.env file)
logger = settings.setup_logging()


def _clean(value):
    """Replace NaN by None so the output is valid JSON."""
    if isinstance(value, float) and math.isnan(value):
        return None
    if isinstance(value, dict):
        return {k: _clean(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [_clean(v) for v in value]
    return value


def summarize(values: list[float]) -> dict[str, float | int | None]:
    """Mean and standard deviation of a data series."""
    if not values:
        return {"n": 0, "mean": None, "stdev": None}
    arr = np.asarray(values, dtype=float)
    return {"n": len(arr), "mean": float(arr.mean()), "stdev": float(arr.std())}


def collect_results(sim: OSCSimulator, duration_s: float) -> dict:
    """Gather the results of one finished replica."""
    mode = sim.params.run_mode
    results: dict = {
        "statistics": sim.get_statistics(),
        "performance": {
            "duration_s": duration_s,
            "events_per_second": (
                sim.counters.n_events_executed / duration_s if duration_s > 0 else 0.0
            ),
        },
    }
    if mode == RunMode.EXCITON_DIFFUSION:
        results["exciton_lifetimes"] = summarize(sim.exciton_lifetimes)
        results["exciton_diffusion_distances"] = summarize(sim.exciton_diffusion_distances)
        results["exciton_hop_distances"] = summarize(
            [math.sqrt(d2) * sim.lattice.unit_size for d2 in sim.exciton_hop_distances]
        )
    elif mode == RunMode.TOF:
        results["transit_times"] = summarize(sim.transit_times)
        results["mobility"] = summarize(sim.get_mobility_data())
        results["transit_time_histogram"] = sim.get_transit_time_histogram()
        results["transients"] = sim.get_transient_data()
    elif mode == RunMode.DYNAMICS:
        results["transients"] = sim.get_transient_data()
    elif mode == RunMode.STEADY_TRANSPORT:
        results["steady"] = sim.get_steady_data()
    if mode in (RunMode.TOF, RunMode.IQE):
        results["electron_extraction_map"] = sim.electron_extraction_map
        results["hole_extraction_map"] = sim.hole_extraction_map
    return results


def run_replica(params: SimulationParameters, replica_id: int, seed: int | None) -> dict:
    """Run one replica to completion."""
    sim = OSCSimulator(params.model_copy(), seed=seed, sim_id=replica_id)

    status_interval = settings.runtime.status_interval

    def status_callback(s: OSCSimulator) -> None:
        s.output_status()

    start = time.time()
    sim.run(callback=status_callback, snapshot_interval=status_interval)
    duration = time.time() - start
    sim.output_status()
    return collect_results(sim, duration)


def main() -> None:
    parser = argparse.ArgumentParser(description="Run organic semiconductor KMC simulations")
    parser.add_argument(
        "config", nargs="?", default=None, help="YAML parameter file or name in the configs dir"
    )
    parser.add_argument(
        "--architecture",
        choices=["neat", "bilayer", "random_blend"],
        default=None,
        help="Parameter preset used when no parameter file is given",
    )
    parser.add_argument("--replicas", type=int, default=None, help="Number of replicas")
    parser.add_argument("--seed", type=int, default=None, help="Base random seed")
    parser.add_argument("--output", type=Path, default=None, help="Output JSON file")
    args = parser.parse_args()

    if args.replicas is not None:
        settings.runtime.n_replicas = args.replicas
    if args.seed is not None:
        settings.runtime.seed = args.seed
    if args.architecture is not None:
        settings.default_architecture = args.architecture

    if args.config is not None:
        config_path = settings.paths.resolve_config(args.config)
        params = load_parameters(config_path)
        source = str(config_path)
        stem = config_path.stem
    else:
        params = settings.default_parameters()
        source = f"preset:{settings.default_architecture}"
        stem = settings.default_architecture

    logger.info(f"Running {settings.runtime.n_replicas} replica(s) of {source}")
    replicas = []
    for replica_id in range(settings.runtime.n_replicas):
        seed = settings.runtime.replica_seed(replica_id)
        replicas.append(run_replica(params, replica_id, seed))

    n_errors = sum(1 for r in replicas if r["statistics"]["error_found"])
    if n_errors:
        logger.error(f"{n_errors} of {len(replicas)} replicas ended with an error")

    output = args.output
    if output is None:
        settings.paths.ensure_dirs()
        timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
        output = settings.paths.results_dir / f"{stem}_{timestamp}.json"
    output.parent.mkdir(parents=True, exist_ok=True)
    data = {
        "config": source,
        "parameters": params.model_dump(mode="json"),
        "settings": settings.run_metadata(),
        "replicas": replicas,
    }
    with open(output, "w", encoding="utf-8") as f:
        json.dump(_clean(data), f, indent=2)
    logger.info(f"Results written to {output}")

    if n_errors:
        sys.exit(1)


if __name__ == "__main__":
    main()
