"""
ampcontinuum: adaptive-precision endgames for homotopy continuation.

This library resolves the endpoints of homotopy continuation paths, including
singular ones, with the power-series endgame. Working precision is adapted
along the way with the AMP criteria, and many paths can be run concurrently
with pooled trackers.
"""

__version__ = "0.1.0"

# Precision strategies and settings
from ampcontinuum.precision import (
    DoublePrecision,
    MultiplePrecision,
    precision_for_digits
)
from ampcontinuum.config import AMPConfig, EndgameConfig, TrackerConfig

# AMP criteria and escalation
from ampcontinuum.amp_criteria import (
    criterion_a,
    criterion_b,
    criterion_c,
    evaluate_criteria,
    CriteriaReport
)
from ampcontinuum.escalation import (
    PrecisionAdjustment,
    StepFirstPolicy,
    PrecisionFirstPolicy
)

# Samples, extrapolation and the endgame
from ampcontinuum.samples import Sample, SampleHistory, InsufficientSamplesError
from ampcontinuum.interpolation import (
    hermite_interpolate_and_solve,
    HermiteExtrapolator,
    ExtrapolationResult
)
from ampcontinuum.endgame import (
    EndgameStatus,
    EndgameConverged,
    EndgameFailed,
    PowerSeriesEndgame,
    run_power_series_endgame
)

# Pools, homotopies and tracking
from ampcontinuum.pool import Pool, PooledHandle, PoolExhaustedError, point_pool
from ampcontinuum.homotopy import Homotopy, TrackingError, total_degree_start_system
from ampcontinuum.tracking import AMPTracker, tracker_pool, run_endgames

# Plotting pulls in matplotlib; import ampcontinuum.visualization directly when needed.

__all__ = [
    "DoublePrecision",
    "MultiplePrecision",
    "precision_for_digits",
    "AMPConfig",
    "EndgameConfig",
    "TrackerConfig",
    "criterion_a",
    "criterion_b",
    "criterion_c",
    "evaluate_criteria",
    "CriteriaReport",
    "PrecisionAdjustment",
    "StepFirstPolicy",
    "PrecisionFirstPolicy",
    "Sample",
    "SampleHistory",
    "InsufficientSamplesError",
    "hermite_interpolate_and_solve",
    "HermiteExtrapolator",
    "ExtrapolationResult",
    "EndgameStatus",
    "EndgameConverged",
    "EndgameFailed",
    "PowerSeriesEndgame",
    "run_power_series_endgame",
    "Pool",
    "PooledHandle",
    "PoolExhaustedError",
    "point_pool",
    "Homotopy",
    "TrackingError",
    "total_degree_start_system",
    "AMPTracker",
    "tracker_pool",
    "run_endgames",
]
