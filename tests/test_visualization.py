"""
Tests for endgame plots.
"""

import matplotlib
matplotlib.use('Agg')

import matplotlib.pyplot as plt
import numpy as np
import pytest

from ampcontinuum import EndgameConfig, PowerSeriesEndgame
from ampcontinuum.visualization import plot_endgame_samples, plot_estimate_convergence


def sqrt_sampler(t):
    root = np.sqrt(complex(t))
    return np.array([root, 1 + root]), np.array([0.5 / root, 0.5 / root])


@pytest.fixture
def finished_endgame():
    endgame = PowerSeriesEndgame(EndgameConfig(final_tolerance=1e-8))
    endgame.run(sqrt_sampler, 0.1)
    yield endgame
    plt.close('all')


class TestPlots:
    """Test that the plots build from a finished endgame."""

    def test_samples_plot(self, finished_endgame):
        """The sample plot has one point per sample."""
        fig = plot_endgame_samples(finished_endgame.history, var_idx=1,
                                   estimate=finished_endgame.result.estimate)
        assert isinstance(fig, plt.Figure)
        ax = fig.axes[0]
        assert "Variable 1" in ax.get_title()
        assert len(ax.collections[0].get_offsets()) == len(finished_endgame.history)

    def test_convergence_plot(self, finished_endgame):
        """The convergence plot shows the differences and the tolerance."""
        fig = plot_estimate_convergence(finished_endgame)
        assert isinstance(fig, plt.Figure)
        ax = fig.axes[0]
        assert "cycle number 2" in ax.get_title()
        assert len(ax.get_lines()) == 2
