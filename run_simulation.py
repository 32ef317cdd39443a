from __future__ import annotations

import argparse
import logging
from typing import Sequence

from PatchSimulation.io import load_simulation_config
from PatchSimulation.simulator import PatchSimulator
from PatchSimulation.statistics import results_dir


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the Peyer's Patch organogenesis simulation.")
    parser.add_argument(
        "--config",
        default="config.yaml",
        help="Path to simulation YAML config (default: config.yaml)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Override random_seed from the config",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: INFO)",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    sim_config = load_simulation_config(args.config)

    simulator = PatchSimulator(sim_config, seed=args.seed)
    history = simulator.run()

    final = history[-1]
    print(
        f"Finished {sim_config.simulation_hours:g} h: "
        f"{final['LTo_expressing']} expressing LTo, {final['LTi']} LTi, {final['LTin']} LTin"
    )
    print(f"Wrote results to {results_dir(sim_config)}")


if __name__ == "__main__":
    main()
