"""
Visualization module for ampcontinuum.

This module provides functions to look at what an endgame saw: the samples
it collected as the path approached the target, and how its successive
endpoint estimates settled down.
"""

import numpy as np
import matplotlib.pyplot as plt
from typing import Optional, Tuple

from ampcontinuum.endgame import PowerSeriesEndgame
from ampcontinuum.samples import SampleHistory


def plot_endgame_samples(history: SampleHistory,
                         var_idx: int = 0,
                         title: Optional[str] = None,
                         figsize: Tuple[int, int] = (10, 8),
                         estimate: Optional[np.ndarray] = None) -> plt.Figure:
    """Plot the endgame samples of one variable in the complex plane.

    Args:
        history: Samples collected by an endgame
        var_idx: Index of the variable to plot (default: 0)
        title: Plot title (default: auto-generated)
        figsize: Figure size
        estimate: Endpoint estimate to mark, if any

    Returns:
        The created matplotlib figure
    """
    t_values = [abs(complex(s.time)) for s in history]
    var_values = [complex(s.point[var_idx]) for s in history]

    real_parts = [z.real for z in var_values]
    imag_parts = [z.imag for z in var_values]

    fig, ax = plt.subplots(figsize=figsize)

    scatter = ax.scatter(real_parts, imag_parts, c=np.log10(t_values), cmap='viridis',
                         s=40, alpha=0.8)
    cbar = plt.colorbar(scatter, ax=ax)
    cbar.set_label('log10 |t - target|')

    ax.plot(real_parts, imag_parts, 'k-', alpha=0.3)

    if estimate is not None:
        z = complex(estimate[var_idx])
        ax.plot(z.real, z.imag, 'r*', markersize=14, label='Endpoint estimate')
        ax.legend()

    ax.set_xlabel('Real Part')
    ax.set_ylabel('Imaginary Part')

    if title is None:
        title = f'Endgame Samples (Variable {var_idx})'
    ax.set_title(title)

    ax.axis('equal')
    ax.grid(True, alpha=0.3)

    plt.tight_layout()
    return fig


def plot_estimate_convergence(endgame: PowerSeriesEndgame,
                              title: Optional[str] = None,
                              figsize: Tuple[int, int] = (10, 6)) -> plt.Figure:
    """Plot the differences between successive endpoint estimates.

    The final tolerance is drawn as a horizontal line; the endgame converged
    once a point falls on or below it.

    Args:
        endgame: An endgame that has compared at least one pair of estimates
        title: Plot title (default: auto-generated)
        figsize: Figure size

    Returns:
        The created matplotlib figure
    """
    differences = [float(d) for d in endgame.differences]
    # log scale cannot show exact agreement
    floor = np.finfo(float).tiny
    plotted = [max(d, floor) for d in differences]

    fig, ax = plt.subplots(figsize=figsize)
    ax.semilogy(range(2, len(plotted) + 2), plotted, 'bo-', label='|estimate_k - estimate_(k-1)|')
    ax.axhline(max(endgame.config.final_tolerance, floor), color='r', linestyle='--',
               alpha=0.7, label='final tolerance')

    ax.set_xlabel('Estimate')
    ax.set_ylabel('Difference')
    if title is None:
        title = (f'Endgame Convergence (cycle number {endgame.cycle_number}, '
                 f'{endgame.status.name.lower()})')
    ax.set_title(title)
    ax.legend()
    ax.grid(True, alpha=0.3)

    plt.tight_layout()
    return fig
