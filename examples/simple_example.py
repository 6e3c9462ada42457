"""
Simple example demonstrating the basic usage of ampcontinuum.

This example resolves the paths of the straight-line homotopy from
- x^2 - 1 = 0 (two regular roots)
to
- x^2 = 0 (a double root at the origin)

Both paths end at the singular solution x = 0, which the power-series
endgame recovers along with its cycle number.
"""

import sys
import os
import time
import matplotlib.pyplot as plt
import sympy

# Add the parent directory to the path so we can import ampcontinuum
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from ampcontinuum import (
    AMPTracker,
    EndgameConfig,
    Homotopy,
    PowerSeriesEndgame,
    run_endgames
)
from ampcontinuum.visualization import plot_endgame_samples, plot_estimate_convergence


def main():
    """Run the simple example."""
    print("ampcontinuum Simple Example")
    print("===========================")
    x = sympy.Symbol('x')
    homotopy = Homotopy.straight_line([x ** 2], [x ** 2 - 1], [x])
    config = EndgameConfig(final_tolerance=1e-10)

    print("Running endgames for both paths...")
    start_time = time.time()
    results = run_endgames(homotopy, [[1.0], [-1.0]], start_time=1.0, endgame_start=0.1,
                           endgame_config=config, verbose=True)
    print(f"\nCompleted in {time.time() - start_time:.3f} seconds")

    for i, result in enumerate(results):
        print(f"\nPath {i + 1}: {result}")
        if result.success:
            print(f"  Endpoint: {complex(result.estimate[0]):.3e}")
            print(f"  Cycle number: {result.cycle_number}")

    # Run one path by hand to keep the endgame around for plotting
    print("\nCreating visualization...")
    tracker = AMPTracker(homotopy)
    tracker.reset([1.0], 1.0)
    endgame = PowerSeriesEndgame(config, tracker.precision)
    result = endgame.run(tracker, 0.1)

    plot_endgame_samples(endgame.history, estimate=result.estimate if result.success else None)
    plot_estimate_convergence(endgame)
    plt.show()


if __name__ == "__main__":
    main()
