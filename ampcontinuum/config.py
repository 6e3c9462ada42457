"""
Configuration objects for ampcontinuum.

All settings are immutable for the duration of a tracking run. Each config
can also be built from a plain options dictionary, which is how the
convenience entry points (``run_power_series_endgame``, ``run_endgames``)
accept them.
"""

from dataclasses import dataclass, fields
from typing import Any, Dict, Optional


def _known_options(cls, options: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in (options or {}).items() if k in names}


@dataclass(frozen=True)
class AMPConfig:
    """Settings for the adaptive multiple precision criteria.

    Attributes:
        safety_digits_1: Extra digits demanded by Criteria A and B
        safety_digits_2: Extra digits demanded by Criterion C
        epsilon: Bound on the error amplification of one system evaluation
        Phi: Bound on the error in evaluating the Jacobian
        Psi: Bound on the error in evaluating the system
        coefficient_bound: Bound on the magnitude of the system's coefficients
        degree_bound: Bound on the degree of the system's polynomials
        maximum_precision: Largest number of digits the tracker may use
        consecutive_successful_steps_before_precision_decrease: Steps that must
            pass before precision is lowered again
        max_num_precision_decreases: Cap on precision decreases per path
    """
    safety_digits_1: int = 1
    safety_digits_2: int = 1
    epsilon: float = 25.0
    Phi: float = 20000.0
    Psi: float = 5000.0
    coefficient_bound: float = 1000.0
    degree_bound: float = 5.0
    maximum_precision: int = 300
    consecutive_successful_steps_before_precision_decrease: int = 10
    max_num_precision_decreases: int = 10

    def __post_init__(self):
        if self.safety_digits_1 < 0 or self.safety_digits_2 < 0:
            raise ValueError("safety digits must be non-negative")
        if self.epsilon <= 0 or self.Phi < 0 or self.Psi < 0:
            raise ValueError("epsilon must be positive and Phi, Psi non-negative")
        if self.maximum_precision < 16:
            raise ValueError("maximum_precision must be at least double precision (16 digits)")

    @classmethod
    def from_bounds(cls,
                    coefficient_bound: float = 1000.0,
                    degree_bound: float = 5.0,
                    **kwargs: Any) -> "AMPConfig":
        """Derive epsilon, Phi and Psi from coefficient and degree bounds."""
        return cls(epsilon=degree_bound ** 2,
                   Phi=degree_bound * (degree_bound - 1) * coefficient_bound,
                   Psi=degree_bound * coefficient_bound,
                   coefficient_bound=coefficient_bound,
                   degree_bound=degree_bound,
                   **kwargs)

    @classmethod
    def from_dict(cls, options: Optional[Dict[str, Any]] = None) -> "AMPConfig":
        opts = _known_options(cls, options)
        if ('coefficient_bound' in opts or 'degree_bound' in opts) and \
                not any(k in opts for k in ('epsilon', 'Phi', 'Psi')):
            return cls.from_bounds(**opts)
        return cls(**opts)


@dataclass(frozen=True)
class EndgameConfig:
    """Settings for the power-series endgame.

    Attributes:
        num_sample_points: Samples used per Hermite extrapolation
        max_sample_points: Largest window the endgame may grow to
        sample_factor: Geometric factor between successive sample times
        final_tolerance: Two estimates this close (inclusive) are converged
        max_cycle_number: Largest cycle number tried; 1 disables detection
        max_refinements: Failed comparisons allowed before giving up
        min_track_time: Closest distance to the target a sample may be taken at
        history_size: Bound on stored samples (None keeps all)
    """
    num_sample_points: int = 3
    max_sample_points: Optional[int] = None
    sample_factor: float = 0.5
    final_tolerance: float = 1e-11
    max_cycle_number: int = 6
    max_refinements: int = 20
    min_track_time: float = 1e-100
    history_size: Optional[int] = None

    def __post_init__(self):
        if self.num_sample_points < 1:
            raise ValueError("num_sample_points must be at least 1")
        if self.max_sample_points is not None and self.max_sample_points < self.num_sample_points:
            raise ValueError("max_sample_points must be at least num_sample_points")
        if not 0 < self.sample_factor < 1:
            raise ValueError(f"sample_factor must lie in (0, 1), got {self.sample_factor}")
        if self.final_tolerance < 0:
            raise ValueError("final_tolerance must be non-negative")
        if self.max_cycle_number < 1:
            raise ValueError("max_cycle_number must be at least 1")
        if self.max_refinements < 1:
            raise ValueError("max_refinements must be at least 1")
        if self.history_size is not None and self.history_size < self.largest_window + 1:
            raise ValueError("history_size is too small for the largest sample window")

    @property
    def largest_window(self) -> int:
        return self.max_sample_points if self.max_sample_points is not None else self.num_sample_points

    @classmethod
    def from_dict(cls, options: Optional[Dict[str, Any]] = None) -> "EndgameConfig":
        return cls(**_known_options(cls, options))


@dataclass(frozen=True)
class TrackerConfig:
    """Settings for the predictor-corrector adapter feeding the endgame.

    Attributes:
        tracking_tolerance: Newton step norm at which a point counts as corrected
        max_newton_iterations: Newton iterations allowed per step
        num_substeps: Predictor-corrector steps between two requested times
        max_step_retries: Adjustments allowed before a step is abandoned
        initial_digits: Working precision a fresh path starts at
    """
    tracking_tolerance: float = 1e-10
    max_newton_iterations: int = 5
    num_substeps: int = 4
    max_step_retries: int = 12
    initial_digits: int = 16

    def __post_init__(self):
        if self.tracking_tolerance <= 0:
            raise ValueError("tracking_tolerance must be positive")
        if self.max_newton_iterations < 1 or self.num_substeps < 1:
            raise ValueError("max_newton_iterations and num_substeps must be at least 1")
        if self.max_step_retries < 0:
            raise ValueError("max_step_retries must be non-negative")

    @classmethod
    def from_dict(cls, options: Optional[Dict[str, Any]] = None) -> "TrackerConfig":
        return cls(**_known_options(cls, options))
