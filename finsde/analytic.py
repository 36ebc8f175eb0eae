"""
Closed-form solutions for benchmarking numerical integrators.

Only geometric Brownian motion and the Ornstein-Uhlenbeck processes have
them. Point solutions take the Wiener increment W = W(t) - W(t0); path
solutions take a Wiener path sampled on a time grid, with time on the
last axis and W[..., 0] = 0.

GBM is a function of W(t) alone, so its solution is pathwise exact. The OU
solution involves the stochastic integral ∫ e^{-a(t-s)} dW(s), which is not
a function of W(t); it is sampled from its Gaussian law by scaling the
standardized increment W / √τ. The result is exact in distribution and,
for the path forms, per grid interval.

Extended OU with a non-constant long-run mean b(t) has no general closed
form. Here b is held constant over each step at its left-endpoint value,
which is an approximation that becomes exact as the grid is refined, and
exact outright when b is constant.
"""

from __future__ import annotations

from typing import Mapping

import numpy as np

from .parameters import TimeFunction

Params = Mapping[str, TimeFunction]


def _scalar_u0(u0) -> float:
    return float(np.asarray(u0, dtype=float).reshape(-1)[0])


def ou_mean(x0: float, a: float, r: float, tau):
    """E[x(t0 + τ)] = r + (x0 - r) e^{-aτ}."""
    return r + (x0 - r) * np.exp(-a * np.asarray(tau, dtype=float))


def ou_variance(a: float, sigma: float, tau):
    """Var[x(t0 + τ)] = σ² (1 - e^{-2aτ}) / (2a), with the limit σ²τ at a = 0."""
    tau = np.asarray(tau, dtype=float)
    if a == 0:
        return sigma**2 * tau
    return sigma**2 * -np.expm1(-2.0 * a * tau) / (2.0 * a)


def gbm_mean(s0: float, mu: float, tau):
    return s0 * np.exp(mu * np.asarray(tau, dtype=float))


def gbm_variance(s0: float, mu: float, sigma: float, tau):
    tau = np.asarray(tau, dtype=float)
    return s0**2 * np.exp(2.0 * mu * tau) * np.expm1(sigma**2 * tau)


# ---------------------------------------------------------------------------
# Point solutions: (u0, params, t, W, t0) -> state
# ---------------------------------------------------------------------------

def gbm_solution(u0, params: Params, t: float, W, t0: float = 0.0):
    """S(t) = S0 exp((μ - σ²/2)(t - t0) + σ W)."""
    mu, sigma = params["mu"](t0), params["sigma"](t0)
    s0 = _scalar_u0(u0)
    return s0 * np.exp((mu - 0.5 * sigma**2) * (t - t0) + sigma * np.asarray(W, dtype=float))


def _ou_step(x0, mean_level: float, a: float, sigma: float, tau: float, W):
    W = np.asarray(W, dtype=float)
    if tau < 0:
        raise ValueError(f"Negative time step {tau}")
    if tau == 0:
        return x0 + np.zeros_like(W)
    std = np.sqrt(ou_variance(a, sigma, tau))
    return ou_mean(x0, a, mean_level, tau) + std * W / np.sqrt(tau)


def ou_solution(u0, params: Params, t: float, W, t0: float = 0.0):
    """x(t) = r + (x0 - r) e^{-aτ} + √Var(τ) · W/√τ,  τ = t - t0."""
    return _ou_step(
        _scalar_u0(u0), params["r"](t0), params["a"](t0), params["sigma"](t0), t - t0, W
    )


def extended_ou_solution(u0, params: Params, t: float, W, t0: float = 0.0):
    """OU solution with b(t0) standing in for the long-run mean over [t0, t]."""
    return _ou_step(
        _scalar_u0(u0), params["b"](t0), params["a"](t0), params["sigma"](t0), t - t0, W
    )


# ---------------------------------------------------------------------------
# Path solutions: (u0, params, t_grid, W) -> states on the grid
# ---------------------------------------------------------------------------

def _check_path(t_grid, W) -> tuple[np.ndarray, np.ndarray]:
    t_grid = np.asarray(t_grid, dtype=float)
    W = np.asarray(W, dtype=float)
    if t_grid.ndim != 1 or W.shape[-1:] != t_grid.shape:
        raise ValueError(
            f"Wiener path with shape {W.shape} does not match time grid of shape {t_grid.shape}"
        )
    if np.any(np.diff(t_grid) <= 0):
        raise ValueError("Time grid must be strictly increasing")
    return t_grid, W


def gbm_path(u0, params: Params, t_grid, W) -> np.ndarray:
    t_grid, W = _check_path(t_grid, W)
    return gbm_solution(u0, params, t_grid, W - W[..., :1], t0=t_grid[0])


def _ou_path(u0, params: Params, t_grid, W, level: str) -> np.ndarray:
    t_grid, W = _check_path(t_grid, W)
    a, sigma = params["a"](t_grid[0]), params["sigma"](t_grid[0])
    dW = np.diff(W, axis=-1)
    out = np.empty_like(W)
    out[..., 0] = _scalar_u0(u0)
    for k in range(len(t_grid) - 1):
        tk = t_grid[k]
        out[..., k + 1] = _ou_step(
            out[..., k], params[level](tk), a, sigma, t_grid[k + 1] - tk, dW[..., k]
        )
    return out


def ou_path(u0, params: Params, t_grid, W) -> np.ndarray:
    return _ou_path(u0, params, t_grid, W, "r")


def extended_ou_path(u0, params: Params, t_grid, W) -> np.ndarray:
    """Per-step OU update with b frozen at each interval's left endpoint."""
    return _ou_path(u0, params, t_grid, W, "b")
