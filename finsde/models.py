"""
Problem constructors for the financial models.

Each constructor validates its arguments, wraps parameters as TimeFunction
objects and returns an immutable SDEProblem:

```python
prob = heston_problem(mu=0.05, kappa=2.0, theta=0.04, sigma=0.3, rho=-0.7,
                      u0=[100.0, 0.04], tspan=(0.0, 1.0))
prob.drift(0.0, prob.u0), prob.diffusion(0.0, prob.u0)
```

New models join the registry with ``@register_model(name)`` and can then be
built by name through ``make_problem``.
"""

from __future__ import annotations

import logging
from functools import partial
from typing import Callable, Optional

from . import analytic, coefficients as coef
from .config import DEFAULT_CONFIG, ModelConfig
from .errors import ConfigurationError
from .parameters import as_constant, as_time_function
from .problem import SDEProblem, validate_correlation, validate_u0

LOGGER = logging.getLogger(__name__)

MODELS: dict[str, Callable[..., SDEProblem]] = {}


def register_model(name: str):
    """Decorator adding a problem constructor to MODELS under ``name``."""

    def decorator(factory: Callable[..., SDEProblem]) -> Callable[..., SDEProblem]:
        if name in MODELS:
            raise ValueError(f"Model {name!r} is already registered")
        MODELS[name] = factory
        return factory

    return decorator


def make_problem(name: str, **kwargs) -> SDEProblem:
    """Build a registered model by name."""
    try:
        factory = MODELS[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown model {name!r}, expected one of {sorted(MODELS)}"
        ) from None
    return factory(**kwargs)


def _build(model: str, dim: int, noise_dim: int, drift, diffusion, params, u0, tspan,
           config: ModelConfig, factory, factory_args, **extra) -> SDEProblem:
    problem = SDEProblem(
        model=model,
        dim=dim,
        noise_dim=noise_dim,
        drift_fn=drift,
        diffusion_fn=diffusion,
        params=params,
        u0=u0,
        tspan=tspan,
        config=config,
        factory=factory,
        factory_args=factory_args,
        **extra,
    )
    LOGGER.debug(
        "Built %s problem: dim=%d noise_dim=%d tspan=%s params=%s",
        model, dim, noise_dim, problem.tspan, sorted(params),
    )
    return problem


@register_model("black_scholes")
def black_scholes_problem(r, theta, sigma, u0, tspan, config: Optional[ModelConfig] = None) -> SDEProblem:
    """
    Black-Scholes model for the log-price:

        d ln S(t) = (r(t) - Θ(t, S)²/2) dt + σ dW_t

    ``r`` may be a constant or ``r(t)``; ``theta`` a constant, ``Θ(t)`` or
    ``Θ(t, S)``; ``sigma`` a constant or ``σ(t)``. ``u0`` is ln S(t0).
    """
    config = config or DEFAULT_CONFIG
    params = {
        "r": as_time_function(r, "r"),
        "theta": as_time_function(theta, "theta", nonnegative=True),
        "sigma": as_time_function(sigma, "sigma", nonnegative=True),
    }
    return _build(
        "black_scholes", 1, 1, coef.black_scholes_drift, coef.black_scholes_diffusion,
        params, u0, tspan, config, black_scholes_problem,
        dict(r=r, theta=theta, sigma=sigma, u0=u0, tspan=tspan, config=config),
    )


@register_model("generalized_black_scholes")
def generalized_black_scholes_problem(r, q, theta, sigma, u0, tspan,
                                      config: Optional[ModelConfig] = None) -> SDEProblem:
    """
    Black-Scholes with a dividend yield q(t), for the log-price:

        d ln S(t) = (r(t) - q(t) - Θ(t, S)²/2) dt + σ dW_t
    """
    config = config or DEFAULT_CONFIG
    params = {
        "r": as_time_function(r, "r"),
        "q": as_time_function(q, "q"),
        "theta": as_time_function(theta, "theta", nonnegative=True),
        "sigma": as_time_function(sigma, "sigma", nonnegative=True),
    }
    return _build(
        "generalized_black_scholes", 1, 1,
        coef.generalized_black_scholes_drift, coef.generalized_black_scholes_diffusion,
        params, u0, tspan, config, generalized_black_scholes_problem,
        dict(r=r, q=q, theta=theta, sigma=sigma, u0=u0, tspan=tspan, config=config),
    )


@register_model("geometric_brownian_motion")
def geometric_brownian_motion_problem(mu, sigma, u0, tspan,
                                      config: Optional[ModelConfig] = None) -> SDEProblem:
    """
    Geometric Brownian motion:  dS = μ S dt + σ S dW

    Analytic solution: S_t = S_0 exp((μ - σ²/2)(t - t0) + σ W_t)
    """
    config = config or DEFAULT_CONFIG
    params = {
        "mu": as_constant(mu, "mu"),
        "sigma": as_constant(sigma, "sigma", nonnegative=True),
    }
    return _build(
        "geometric_brownian_motion", 1, 1, coef.gbm_drift, coef.gbm_diffusion,
        params, u0, tspan, config, geometric_brownian_motion_problem,
        dict(mu=mu, sigma=sigma, u0=u0, tspan=tspan, config=config),
        analytic_fn=analytic.gbm_solution,
        analytic_path_fn=analytic.gbm_path,
    )


@register_model("ornstein_uhlenbeck")
def ornstein_uhlenbeck_problem(a, r, sigma, u0, tspan,
                               config: Optional[ModelConfig] = None) -> SDEProblem:
    """
    Ornstein-Uhlenbeck (mean-reverting):  dx = a(r - x) dt + σ dW

    The analytic solution samples the Gaussian transition exactly.
    """
    config = config or DEFAULT_CONFIG
    params = {
        "a": as_constant(a, "a"),
        "r": as_constant(r, "r"),
        "sigma": as_constant(sigma, "sigma", nonnegative=True),
    }
    return _build(
        "ornstein_uhlenbeck", 1, 1, coef.ou_drift, coef.ou_diffusion,
        params, u0, tspan, config, ornstein_uhlenbeck_problem,
        dict(a=a, r=r, sigma=sigma, u0=u0, tspan=tspan, config=config),
        analytic_fn=analytic.ou_solution,
        analytic_path_fn=analytic.ou_path,
    )


@register_model("extended_ornstein_uhlenbeck")
def extended_ornstein_uhlenbeck_problem(a, b, sigma, u0, tspan,
                                        config: Optional[ModelConfig] = None) -> SDEProblem:
    """
    Ornstein-Uhlenbeck with a time-dependent long-run mean:

        dx = a(b(t) - x) dt + σ dW

    For non-constant b the analytic solution freezes b over each step and is
    only an approximation; see ``finsde.analytic``.
    """
    config = config or DEFAULT_CONFIG
    params = {
        "a": as_constant(a, "a"),
        "b": as_time_function(b, "b"),
        "sigma": as_constant(sigma, "sigma", nonnegative=True),
    }
    if not params["b"].is_constant:
        LOGGER.debug("extended_ornstein_uhlenbeck: analytic solution is piecewise-constant in b")
    return _build(
        "extended_ornstein_uhlenbeck", 1, 1, coef.extended_ou_drift, coef.extended_ou_diffusion,
        params, u0, tspan, config, extended_ornstein_uhlenbeck_problem,
        dict(a=a, b=b, sigma=sigma, u0=u0, tspan=tspan, config=config),
        analytic_fn=analytic.extended_ou_solution,
        analytic_path_fn=analytic.extended_ou_path,
    )


@register_model("mf_state")
def mf_state_problem(a, sigma, u0, tspan, config: Optional[ModelConfig] = None) -> SDEProblem:
    """dx = σ(t) e^{at} dW"""
    config = config or DEFAULT_CONFIG
    params = {
        "a": as_constant(a, "a"),
        "sigma": as_time_function(sigma, "sigma", nonnegative=True),
    }
    return _build(
        "mf_state", 1, 1, coef.mf_state_drift, coef.mf_state_diffusion,
        params, u0, tspan, config, mf_state_problem,
        dict(a=a, sigma=sigma, u0=u0, tspan=tspan, config=config),
    )


@register_model("heston")
def heston_problem(mu, kappa, theta, sigma, rho, u0, tspan,
                   config: Optional[ModelConfig] = None) -> SDEProblem:
    """
    Heston stochastic volatility model (2D correlated SDE):

        dS = μ S dt + √v S dW_1
        dv = κ(Θ - v) dt + σ √v dW_2
        dW_1 dW_2 = ρ dt

    State vector: [S, v]. Negative variances reached by an integrator are
    handled by ``config.variance_policy`` (full truncation by default).
    """
    config = config or DEFAULT_CONFIG
    rho = validate_correlation(rho)
    params = {
        "mu": as_constant(mu, "mu"),
        "kappa": as_constant(kappa, "kappa", nonnegative=True),
        "theta": as_constant(theta, "theta", nonnegative=True),
        "sigma": as_constant(sigma, "sigma", nonnegative=True),
        "rho": as_constant(rho, "rho"),
    }
    state = validate_u0(u0, 2)
    if state[1] < 0:
        raise ConfigurationError(f"Initial variance must be non-negative, got {state[1]}")

    k, th, s = params["kappa"].value, params["theta"].value, params["sigma"].value
    if 2 * k * th < s**2:
        LOGGER.warning(
            "Feller condition violated: 2κΘ = %.6g < σ² = %.6g; variance can reach zero",
            2 * k * th, s**2,
        )

    return _build(
        "heston", 2, 2, coef.heston_drift,
        partial(coef.heston_diffusion, config=config),
        params, state, tspan, config, heston_problem,
        dict(mu=mu, kappa=kappa, theta=theta, sigma=sigma, rho=rho, u0=u0,
             tspan=tspan, config=config),
        correlation=coef.correlation_matrix(rho),
    )
