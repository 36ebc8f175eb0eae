"""Shared fixtures: a reference Euler-Maruyama integrator and common problems."""

import numpy as np
import pytest

from finsde import (
    geometric_brownian_motion_problem,
    heston_problem,
    ornstein_uhlenbeck_problem,
)


def euler_maruyama(problem, t_grid, dW):
    """
    X_{n+1} = X_n + f(t_n, X_n) Δt + G(t_n, X_n) ΔW_n

    ``dW`` holds independent increments of shape (n_paths, n_steps, noise_dim).
    """
    n_paths = dW.shape[0]
    X = np.empty((n_paths, len(t_grid), problem.dim))
    X[:, 0, :] = problem.u0
    for i in range(len(t_grid) - 1):
        dt = t_grid[i + 1] - t_grid[i]
        x = X[:, i, :]
        mu = problem.drift(t_grid[i], x)
        G = problem.diffusion_matrix(t_grid[i], x)
        X[:, i + 1, :] = x + mu * dt + (G @ dW[:, i, :, None])[..., 0]
    return X


@pytest.fixture
def integrator():
    return euler_maruyama


@pytest.fixture
def gbm():
    return geometric_brownian_motion_problem(mu=0.1, sigma=0.2, u0=1.0, tspan=(0.0, 1.0))


@pytest.fixture
def ou():
    return ornstein_uhlenbeck_problem(a=1.0, r=0.5, sigma=0.3, u0=2.0, tspan=(0.0, 1.0))


@pytest.fixture
def heston():
    return heston_problem(
        mu=0.05, kappa=2.0, theta=0.04, sigma=0.3, rho=-0.7,
        u0=[100.0, 0.04], tspan=(0.0, 1.0),
    )
