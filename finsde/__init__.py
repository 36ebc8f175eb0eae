"""
finsde — SDE problem definitions for financial models.

Black-Scholes, generalized Black-Scholes, geometric Brownian motion,
Ornstein-Uhlenbeck (plain and extended), the Mf state process and Heston,
packaged as immutable problem descriptors for any SDE integrator, with
closed-form solutions where they exist.
"""

from .config import DEFAULT_CONFIG, ModelConfig
from .errors import ConfigurationError, DomainWarning, EvaluationError, FinSDEError
from .parameters import CallableParameter, ConstantParameter, TimeFunction, as_time_function
from .problem import SDEProblem
from .models import (
    MODELS,
    black_scholes_problem,
    extended_ornstein_uhlenbeck_problem,
    generalized_black_scholes_problem,
    geometric_brownian_motion_problem,
    heston_problem,
    make_problem,
    mf_state_problem,
    ornstein_uhlenbeck_problem,
    register_model,
)
from .validation import ConvergenceAnalyzer, check_dimensions, check_parameter_domain

__all__ = [
    "DEFAULT_CONFIG",
    "ModelConfig",
    "ConfigurationError",
    "DomainWarning",
    "EvaluationError",
    "FinSDEError",
    "CallableParameter",
    "ConstantParameter",
    "TimeFunction",
    "as_time_function",
    "SDEProblem",
    "MODELS",
    "black_scholes_problem",
    "extended_ornstein_uhlenbeck_problem",
    "generalized_black_scholes_problem",
    "geometric_brownian_motion_problem",
    "heston_problem",
    "make_problem",
    "mf_state_problem",
    "ornstein_uhlenbeck_problem",
    "register_model",
    "ConvergenceAnalyzer",
    "check_dimensions",
    "check_parameter_domain",
]

__version__ = "1.0.0"
