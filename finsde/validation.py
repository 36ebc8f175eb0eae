"""
Integrator-agnostic checks for problem descriptors.

Dimension and parameter-domain checks only evaluate the coefficients. The
convergence and moment checks drive an external integrator with the
signature

    integrator(problem, t_grid, dW) -> paths

where ``dW`` holds independent Wiener increments of shape
(n_paths, n_steps, noise_dim) and ``paths`` has shape
(n_paths, n_steps + 1, dim).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol, Sequence

import numpy as np
from scipy import stats

from . import analytic
from .coefficients import correlation_factor
from .errors import EvaluationError
from .problem import SDEProblem

LOGGER = logging.getLogger(__name__)


class Integrator(Protocol):
    def __call__(self, problem: SDEProblem, t_grid: np.ndarray, dW: np.ndarray) -> np.ndarray:
        ...


@dataclass
class CheckResult:
    name: str
    passed: bool
    details: list[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.passed


@dataclass
class ConvergenceResult:
    """Results of a convergence analysis."""

    dt_values: np.ndarray
    errors: np.ndarray
    order: float
    intercept: float
    method: str
    convergence_type: str


@dataclass
class MomentCheckResult:
    """Terminal sample moments against their analytic values."""

    t: float
    sample_mean: float
    expected_mean: float
    mean_bound: float
    sample_variance: float
    expected_variance: float
    variance_interval: tuple[float, float]
    n_paths: int

    @property
    def mean_ok(self) -> bool:
        return abs(self.sample_mean - self.expected_mean) <= self.mean_bound

    @property
    def variance_ok(self) -> bool:
        lo, hi = self.variance_interval
        return lo <= self.sample_variance <= hi

    @property
    def passed(self) -> bool:
        return self.mean_ok and self.variance_ok


# ---------------------------------------------------------------------------
# Coefficient checks
# ---------------------------------------------------------------------------

def _sample_points(problem: SDEProblem, n_samples: int, seed: Optional[int]):
    rng = np.random.default_rng(seed)
    t1 = problem.t1 if np.isfinite(problem.t1) else problem.t0 + 1.0
    times = rng.uniform(problem.t0, t1, n_samples)
    # log-scale jitter keeps the sign of each component of u0
    states = problem.u0 * np.exp(0.1 * rng.standard_normal((n_samples, problem.dim)))
    return times, states


def check_dimensions(problem: SDEProblem, n_samples: int = 8, seed: Optional[int] = None) -> CheckResult:
    """Drift, diffusion and diffusion matrix have the declared shapes and are deterministic."""
    result = CheckResult("dimensions", True)
    n, m = problem.dim, problem.noise_dim
    times, states = _sample_points(problem, n_samples, seed)
    for t, x in zip(times, states):
        f = problem.drift(t, x)
        g = problem.diffusion(t, x)
        G = problem.diffusion_matrix(t, x)
        for label, value, shape in (("drift", f, (n,)), ("diffusion", g, (n,)),
                                    ("diffusion_matrix", G, (n, m))):
            if value.shape != shape:
                result.passed = False
                result.details.append(
                    f"{label} at t={t:.4g} has shape {value.shape}, expected {shape}"
                )
        if not (np.array_equal(problem.drift(t, x), f) and np.array_equal(problem.diffusion(t, x), g)):
            result.passed = False
            result.details.append(f"coefficients are not deterministic at t={t:.4g}")
    LOGGER.debug("check_dimensions(%s): %s", problem.model, result.passed)
    return result


def check_parameter_domain(problem: SDEProblem, n_times: int = 11) -> CheckResult:
    """Every parameter evaluates to a finite, in-domain value across the time span."""
    result = CheckResult("parameter_domain", True)
    t1 = problem.t1 if np.isfinite(problem.t1) else problem.t0 + 1.0
    for t in np.linspace(problem.t0, t1, n_times):
        for name, param in problem.params.items():
            if getattr(param, "takes_state", False):
                continue
            try:
                param(t)
            except EvaluationError as exc:
                result.passed = False
                result.details.append(f"{name}: {exc}")
        # state-dependent parameters are reached through the coefficients
        for label, fn in (("drift", problem.drift), ("diffusion", problem.diffusion)):
            try:
                fn(t, problem.u0)
            except EvaluationError as exc:
                result.passed = False
                result.details.append(f"{label}: {exc}")
    LOGGER.debug("check_parameter_domain(%s): %s", problem.model, result.passed)
    return result


# ---------------------------------------------------------------------------
# Wiener increments
# ---------------------------------------------------------------------------

def wiener_increments(t_grid: np.ndarray, n_paths: int, noise_dim: int = 1,
                      seed: Optional[int] = None) -> np.ndarray:
    """Independent N(0, dt) increments of shape (n_paths, n_steps, noise_dim)."""
    rng = np.random.default_rng(seed)
    dt = np.diff(np.asarray(t_grid, dtype=float))
    Z = rng.standard_normal((n_paths, len(dt), noise_dim))
    return Z * np.sqrt(dt)[None, :, None]


def correlate(dW: np.ndarray, correlation: Optional[np.ndarray]) -> np.ndarray:
    """Turn independent increments into increments with the given correlation."""
    if correlation is None:
        return dW
    return dW @ correlation_factor(np.asarray(correlation)).T


def wiener_path(dW: np.ndarray) -> np.ndarray:
    """Cumulative path W with W[:, 0] = 0 along the step axis."""
    zeros = np.zeros_like(dW[:, :1])
    return np.concatenate([zeros, np.cumsum(dW, axis=1)], axis=1)


def analytic_moments(problem: SDEProblem, t: float) -> tuple[float, float]:
    """Mean and variance of the first state component at time t, where known in closed form."""
    p, tau = problem.params, t - problem.t0
    x0 = float(problem.u0[0])
    if problem.model == "geometric_brownian_motion":
        mu, sigma = p["mu"](t), p["sigma"](t)
        return float(analytic.gbm_mean(x0, mu, tau)), float(analytic.gbm_variance(x0, mu, sigma, tau))
    if problem.model == "ornstein_uhlenbeck" or (
        problem.model == "extended_ornstein_uhlenbeck" and p["b"].is_constant
    ):
        level = p["r"](t) if "r" in p else p["b"](t)
        a, sigma = p["a"](t), p["sigma"](t)
        return float(analytic.ou_mean(x0, a, level, tau)), float(analytic.ou_variance(a, sigma, tau))
    raise NotImplementedError(f"No closed-form moments for {problem.model}")


# ---------------------------------------------------------------------------
# Integrator-driven checks
# ---------------------------------------------------------------------------

class ConvergenceAnalyzer:
    """
    Compare an integrator against a problem's analytic solution.

    Parameters
    ----------
    problem : SDEProblem
        Problem to integrate over its full time span.
    integrator : Integrator
        External integrator, called as ``integrator(problem, t_grid, dW)``.
    n_paths : int
        Number of Monte Carlo paths.
    seed : int
        Random seed for reproducibility.
    """

    def __init__(
        self,
        problem: SDEProblem,
        integrator: Callable[[SDEProblem, np.ndarray, np.ndarray], np.ndarray],
        n_paths: int = 1000,
        seed: int = 42,
    ):
        if not np.isfinite(problem.t1):
            raise ValueError("Convergence checks need a finite time span")
        self.problem = problem
        self.integrator = integrator
        self.n_paths = n_paths
        self.seed = seed

    @property
    def method(self) -> str:
        return getattr(self.integrator, "__name__", type(self.integrator).__name__)

    def _terminal(self, paths: np.ndarray, component: int = 0) -> np.ndarray:
        paths = np.asarray(paths, dtype=float)
        return paths[:, -1] if paths.ndim == 2 else paths[:, -1, component]

    def strong_convergence(self, n_steps_list: Sequence[int] = (8, 16, 32, 64, 128)) -> ConvergenceResult:
        """
        Estimate the strong order: E|X_T - X̂_T| against the analytic solution.

        All resolutions share one Brownian path per sample, built on the
        finest grid and summed down to the coarser ones. The analytic
        solution must be a function of the Wiener path, as for GBM.
        """
        problem = self.problem
        if not problem.has_analytic:
            raise NotImplementedError(f"{problem.model} has no analytic solution")
        if problem.noise_dim != 1:
            raise NotImplementedError("Strong convergence is only checked for scalar noise")

        finest = max(n_steps_list)
        if any(finest % n for n in n_steps_list):
            raise ValueError(f"Step counts must divide the finest one: {n_steps_list}")
        dW_fine = wiener_increments(problem.time_grid(finest), self.n_paths, 1, self.seed)

        dt_values = np.empty(len(n_steps_list))
        errors = np.empty(len(n_steps_list))
        for idx, n in enumerate(n_steps_list):
            t = problem.time_grid(n)
            dW = dW_fine.reshape(self.n_paths, n, finest // n, 1).sum(axis=2)
            X_T = self._terminal(self.integrator(problem, t, dW))
            exact_T = problem.analytic_path(t, wiener_path(dW)[..., 0])[:, -1]
            dt_values[idx] = t[1] - t[0]
            errors[idx] = np.mean(np.abs(X_T - exact_T))
            LOGGER.debug("%s: n_steps=%d error=%.3e", problem.model, n, errors[idx])

        order, intercept = self._fit_rate(dt_values, errors)
        return ConvergenceResult(
            dt_values=dt_values,
            errors=errors,
            order=order,
            intercept=intercept,
            method=self.method,
            convergence_type="strong",
        )

    def moment_check(
        self,
        n_steps: int = 100,
        expected_mean: Optional[float] = None,
        expected_variance: Optional[float] = None,
        confidence: float = 0.999,
        component: int = 0,
        atol: float = 0.0,
    ) -> MomentCheckResult:
        """
        Compare terminal sample mean and variance with analytic values.

        The mean must lie within the normal confidence bound of its standard
        error, the variance within the chi-square interval of the sample
        variance. ``atol`` widens both to absorb discretization bias.
        """
        problem = self.problem
        if expected_mean is None or expected_variance is None:
            mean, var = analytic_moments(problem, problem.t1)
            expected_mean = mean if expected_mean is None else expected_mean
            expected_variance = var if expected_variance is None else expected_variance

        t = problem.time_grid(n_steps)
        dW = wiener_increments(t, self.n_paths, problem.noise_dim, self.seed)
        X_T = self._terminal(self.integrator(problem, t, dW), component)

        n = len(X_T)
        alpha = 1.0 - confidence
        z = stats.norm.ppf(1.0 - alpha / 2.0)
        chi_lo = stats.chi2.ppf(alpha / 2.0, n - 1) / (n - 1)
        chi_hi = stats.chi2.ppf(1.0 - alpha / 2.0, n - 1) / (n - 1)

        result = MomentCheckResult(
            t=problem.t1,
            sample_mean=float(np.mean(X_T)),
            expected_mean=float(expected_mean),
            mean_bound=float(z * np.sqrt(expected_variance / n) + atol),
            sample_variance=float(np.var(X_T, ddof=1)),
            expected_variance=float(expected_variance),
            variance_interval=(float(expected_variance * chi_lo - atol),
                               float(expected_variance * chi_hi + atol)),
            n_paths=n,
        )
        LOGGER.debug("moment_check(%s): %s", problem.model, result)
        return result

    @staticmethod
    def _fit_rate(dt_values: np.ndarray, errors: np.ndarray) -> tuple[float, float]:
        """Log-log linear regression to estimate convergence order."""
        mask = errors > 1e-15
        if mask.sum() < 2:
            return 0.0, 0.0
        log_dt = np.log(dt_values[mask])
        log_err = np.log(errors[mask])
        A = np.column_stack([log_dt, np.ones_like(log_dt)])
        coeffs, _, _, _ = np.linalg.lstsq(A, log_err, rcond=None)
        return float(coeffs[0]), float(coeffs[1])
