"""
Command Line Interface
======================

Usage:
    pfrac input.json                    # Run a simulation
    pfrac input.json --output-dir out   # Override the output directory
    pfrac input.json --max-steps 5      # Stop after 5 accepted steps
    pfrac input.json --quiet            # No progress output
"""

import argparse
import sys
import time
from typing import Optional, Sequence

from .config import load_config
from .simulation import PressurizedFractureSimulation


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='pfrac',
        description='Pressurized phase-field fracture simulation'
    )
    parser.add_argument('input_file',
                        help='JSON parameter file')
    parser.add_argument('--output-dir', default=None,
                        help='Output directory (overrides the input file)')
    parser.add_argument('--max-steps', type=int, default=None,
                        help='Maximum number of accepted time steps')
    parser.add_argument('--quiet', action='store_true',
                        help='Suppress progress output')
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    verbose = not args.quiet

    try:
        config = load_config(args.input_file)
        if args.output_dir is not None:
            config.output.directory = args.output_dir

        start = time.time()
        simulation = PressurizedFractureSimulation(config, verbose=verbose)
        simulation.run(max_steps=args.max_steps)

        if verbose:
            print("=" * 70)
            print(f"  Finished: {len(simulation.snapshots)} steps, "
                  f"t = {simulation.controller.state.time:.6g}, "
                  f"runtime {time.time() - start:.1f}s")
            print("=" * 70)
    except Exception as exc:
        print("\n" + "-" * 50, file=sys.stderr)
        print(f"Exception on processing:\n{exc}\nAborting!", file=sys.stderr)
        print("-" * 50, file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
