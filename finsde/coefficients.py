"""
Drift and diffusion coefficients of the financial models.

Every model is an Itô SDE

    dX_t = f(t, X_t) dt + g(t, X_t) dW_t

and this module holds the pure functions ``f(t, x, params)`` and
``g(t, x, params)`` for each of them. ``params`` maps parameter names to
TimeFunction objects. One-dimensional models work elementwise, so ``x`` may
be a scalar, a length-1 state or a batch of paths; the result has the shape
of ``x``. Heston states have a trailing axis of size 2 holding ``(S, v)``.
"""

from __future__ import annotations

import warnings
from typing import Mapping

import numpy as np

from .config import DEFAULT_CONFIG, ModelConfig
from .errors import DomainWarning, EvaluationError
from .parameters import TimeFunction

Params = Mapping[str, TimeFunction]


def _state(x) -> np.ndarray:
    return np.asarray(x, dtype=float)


# ---------------------------------------------------------------------------
# Black-Scholes family (state is log S)
# ---------------------------------------------------------------------------

def black_scholes_drift(t: float, x, params: Params) -> np.ndarray:
    """d ln S = (r(t) - Θ(t, S)²/2) dt + σ dW."""
    x = _state(x)
    theta = params["theta"](t, np.exp(x))
    return params["r"](t) - 0.5 * theta**2 + np.zeros_like(x)


def black_scholes_diffusion(t: float, x, params: Params) -> np.ndarray:
    x = _state(x)
    return np.full_like(x, params["sigma"](t))


def generalized_black_scholes_drift(t: float, x, params: Params) -> np.ndarray:
    """d ln S = (r(t) - q(t) - Θ(t, S)²/2) dt + σ dW."""
    x = _state(x)
    theta = params["theta"](t, np.exp(x))
    return params["r"](t) - params["q"](t) - 0.5 * theta**2 + np.zeros_like(x)


generalized_black_scholes_diffusion = black_scholes_diffusion


# ---------------------------------------------------------------------------
# Geometric Brownian motion
# ---------------------------------------------------------------------------

def gbm_drift(t: float, x, params: Params) -> np.ndarray:
    """dS = μ S dt + σ S dW."""
    return params["mu"](t) * _state(x)


def gbm_diffusion(t: float, x, params: Params) -> np.ndarray:
    return params["sigma"](t) * _state(x)


# ---------------------------------------------------------------------------
# Ornstein-Uhlenbeck variants
# ---------------------------------------------------------------------------

def ou_drift(t: float, x, params: Params) -> np.ndarray:
    """dx = a(r - x) dt + σ dW."""
    return params["a"](t) * (params["r"](t) - _state(x))


def ou_diffusion(t: float, x, params: Params) -> np.ndarray:
    return np.full_like(_state(x), params["sigma"](t))


def extended_ou_drift(t: float, x, params: Params) -> np.ndarray:
    """dx = a(b(t) - x) dt + σ dW."""
    return params["a"](t) * (params["b"](t) - _state(x))


extended_ou_diffusion = ou_diffusion


def mf_state_drift(t: float, x, params: Params) -> np.ndarray:
    """dx = σ(t) e^{at} dW, no drift."""
    return np.zeros_like(_state(x))


def mf_state_diffusion(t: float, x, params: Params) -> np.ndarray:
    x = _state(x)
    return np.full_like(x, params["sigma"](t) * np.exp(params["a"](t) * t))


# ---------------------------------------------------------------------------
# Heston
# ---------------------------------------------------------------------------

def clamp_variance(v, config: ModelConfig = DEFAULT_CONFIG) -> np.ndarray:
    """Map a (possibly negative) variance onto [0, inf) per the configured policy."""
    v = np.asarray(v, dtype=float)
    negative = v < 0
    if not np.any(negative):
        return v
    if config.variance_policy == "raise":
        raise EvaluationError(f"Negative variance in Heston state: {v[negative]}")
    if config.warn_on_domain:
        warnings.warn(
            f"Negative Heston variance clamped with policy {config.variance_policy!r}",
            DomainWarning,
            stacklevel=3,
        )
    if config.variance_policy == "reflect":
        return np.abs(v)
    return np.maximum(v, 0.0)


def _heston_split(x) -> tuple[np.ndarray, np.ndarray]:
    x = _state(x)
    if x.shape[-1:] != (2,):
        raise EvaluationError(f"Heston state must have trailing size 2, got shape {x.shape}")
    return x[..., 0], x[..., 1]


def heston_drift(t: float, x, params: Params) -> np.ndarray:
    """
    dS = μ S dt + √v S dW_1
    dv = κ(Θ - v) dt + σ √v dW_2,   dW_1 dW_2 = ρ dt

    The variance policy only applies to the square roots in the diffusion;
    the drift sees the raw v so that a negative excursion reverts.
    """
    S, v = _heston_split(x)
    dS = params["mu"](t) * S
    dv = params["kappa"](t) * (params["theta"](t) - v)
    return np.stack([dS, dv], axis=-1)


def heston_diffusion(t: float, x, params: Params, config: ModelConfig = DEFAULT_CONFIG) -> np.ndarray:
    S, v = _heston_split(x)
    sqrt_v = np.sqrt(clamp_variance(v, config))
    return np.stack([sqrt_v * S, params["sigma"](t) * sqrt_v], axis=-1)


def correlation_matrix(rho: float) -> np.ndarray:
    return np.array([[1.0, rho], [rho, 1.0]])


def correlation_factor(correlation: np.ndarray) -> np.ndarray:
    """
    Lower factor L with L Lᵀ = correlation.

    Written out for the 2x2 case so that |ρ| = 1 (singular matrix) still works.
    """
    if correlation.shape == (2, 2):
        rho = correlation[0, 1]
        return np.array([[1.0, 0.0], [rho, np.sqrt(max(1.0 - rho**2, 0.0))]])
    return np.linalg.cholesky(correlation)

