"""
Pressurized Square Example
==========================

A short crack in the middle of a clamped square is opened by a linearly
increasing pressure. Runs the parameters of pressurized_square.json and
plots the final phase field, pressure and crack opening.

Usage:
    python pressurized_square.py
    python pressurized_square.py --max-steps 3
"""

import argparse
import os
import sys

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from pfrac import load_config, PressurizedFractureSimulation


def run_pressurized_square(max_steps=None, save_plots=True):
    """Run the example and return the simulation."""
    print("=" * 60)
    print("Pressurized Phase-Field Fracture: Clamped Square")
    print("=" * 60)

    config = load_config(os.path.join(os.path.dirname(__file__), 'pressurized_square.json'))
    simulation = PressurizedFractureSimulation(config)
    simulation.run(max_steps=max_steps)

    last = simulation.snapshots[-1]
    print(f"\nFinal time: {last.time:.4g}")
    print(f"Cells: {last.mesh.n_elements}, min phi: {last.phase_field.min():.4f}")

    if save_plots:
        import matplotlib.pyplot as plt
        from pfrac.postprocess import plot_phase_field, plot_pressure_field, plot_cod

        fig, axes = plt.subplots(1, 3, figsize=(18, 5))
        plot_phase_field(last, ax=axes[0])
        plot_pressure_field(last, ax=axes[1])
        cod_history = simulation.postprocessor.results.get('COD', [])
        if cod_history:
            plot_cod(cod_history[-1][1], ax=axes[2])
        plt.tight_layout()
        plt.savefig('pressurized_square.png', dpi=150)
        print("\nResults saved to 'pressurized_square.png'")

    return simulation


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Pressurized square example")
    parser.add_argument('--max-steps', type=int, default=None,
                        help='Stop after this many accepted steps')
    parser.add_argument('--no-plots', action='store_true',
                        help='Skip plot generation')
    args = parser.parse_args()

    run_pressurized_square(args.max_steps, save_plots=not args.no_plots)
