"""
Problem descriptor handed to an external SDE integrator.

An SDEProblem bundles the coefficient functions of a model with its
parameters, initial state, time span and noise structure. It is immutable:
``remake`` builds a new, revalidated problem instead of changing this one.

States passed to ``drift``/``diffusion`` follow the coefficient convention
(one-dimensional models accept scalars or a batch of paths). ``diffusion_matrix``
always works on states with a trailing axis of size ``dim``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional

import numpy as np

from .coefficients import correlation_factor
from .config import DEFAULT_CONFIG, ModelConfig
from .errors import ConfigurationError, EvaluationError
from .parameters import TimeFunction

LOGGER = logging.getLogger(__name__)

CoefficientFn = Callable[[float, Any, Mapping[str, TimeFunction]], np.ndarray]


def validate_tspan(tspan) -> tuple[float, float]:
    """Return tspan as a float pair, requiring t0 < t1."""
    if tspan is None:
        raise ConfigurationError("Missing required parameter 'tspan'")
    try:
        t0, t1 = (float(v) for v in tspan)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"tspan must be a pair of numbers, got {tspan!r}") from exc
    if not np.isfinite(t0) or np.isnan(t1):
        raise ConfigurationError(f"tspan must start at a finite time, got {tspan!r}")
    if t0 >= t1:
        raise ConfigurationError(f"tspan must satisfy t0 < t1, got ({t0}, {t1})")
    return t0, t1


def validate_u0(u0, dim: int) -> np.ndarray:
    """Return a read-only float vector of length ``dim``."""
    if u0 is None:
        raise ConfigurationError("Missing required parameter 'u0'")
    try:
        arr = np.array(u0, dtype=float).reshape(-1)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"u0 must be numeric, got {u0!r}") from exc
    if np.ndim(u0) > 1 or arr.size != dim:
        raise ConfigurationError(
            f"Initial condition has dimension {arr.size}, model expects {dim}"
        )
    if not np.all(np.isfinite(arr)):
        raise ConfigurationError(f"Initial condition must be finite, got {arr}")
    arr.setflags(write=False)
    return arr


def validate_correlation(rho) -> float:
    if rho is None:
        raise ConfigurationError("Missing required parameter 'rho'")
    try:
        rho = float(rho)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Correlation must be a real number, got {rho!r}") from exc
    if not -1.0 <= rho <= 1.0:
        raise ConfigurationError(f"Correlation must lie in [-1, 1], got {rho}")
    return rho


def _readonly(arr: Optional[np.ndarray]) -> Optional[np.ndarray]:
    if arr is None:
        return None
    arr = np.array(arr, dtype=float)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class SDEProblem:
    """
    Immutable description of dX = f(t, X) dt + g(t, X) dW on tspan.

    Attributes
    ----------
    model : str
        Name of the model that built this problem.
    dim : int
        State dimension n.
    noise_dim : int
        Number of Wiener sources m.
    params : Mapping[str, TimeFunction]
        Read-only model parameters.
    u0 : np.ndarray
        Read-only initial state of shape (n,).
    tspan : tuple[float, float]
        Integration interval (t0, t1), t0 < t1.
    correlation : np.ndarray or None
        m×m correlation of the Wiener sources, None for independent sources.
    """

    model: str
    dim: int
    noise_dim: int
    drift_fn: CoefficientFn = field(repr=False)
    diffusion_fn: CoefficientFn = field(repr=False)
    params: Mapping[str, TimeFunction]
    u0: np.ndarray
    tspan: tuple[float, float]
    correlation: Optional[np.ndarray] = None
    analytic_fn: Optional[Callable] = field(default=None, repr=False)
    analytic_path_fn: Optional[Callable] = field(default=None, repr=False)
    config: ModelConfig = DEFAULT_CONFIG
    factory: Optional[Callable[..., "SDEProblem"]] = field(default=None, repr=False)
    factory_args: Mapping[str, Any] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        setattr_ = object.__setattr__
        setattr_(self, "params", MappingProxyType(dict(self.params)))
        setattr_(self, "u0", validate_u0(self.u0, self.dim))
        setattr_(self, "tspan", validate_tspan(self.tspan))
        setattr_(self, "correlation", _readonly(self.correlation))
        args = dict(self.factory_args)
        if "u0" in args:
            args["u0"] = self.u0
        setattr_(self, "factory_args", MappingProxyType(args))
        if self.correlation is not None and self.correlation.shape != (self.noise_dim,) * 2:
            raise ConfigurationError(
                f"Correlation matrix shape {self.correlation.shape} does not match "
                f"{self.noise_dim} noise sources"
            )

    @property
    def t0(self) -> float:
        return self.tspan[0]

    @property
    def t1(self) -> float:
        return self.tspan[1]

    @property
    def has_analytic(self) -> bool:
        return self.analytic_fn is not None

    def _checked(self, value, what: str, t: float) -> np.ndarray:
        value = np.asarray(value, dtype=float)
        if self.config.check_finite and not np.all(np.isfinite(value)):
            raise EvaluationError(f"{self.model} {what} is not finite at t={t}: {value}")
        return value

    def drift(self, t: float, x) -> np.ndarray:
        """f(t, x)."""
        return self._checked(self.drift_fn(t, x, self.params), "drift", t)

    def diffusion(self, t: float, x) -> np.ndarray:
        """g(t, x): diagonal noise, one entry per state component."""
        return self._checked(self.diffusion_fn(t, x, self.params), "diffusion", t)

    def diffusion_matrix(self, t: float, x) -> np.ndarray:
        """
        g(t, x) as an n×m matrix acting on independent Wiener increments.

        For correlated sources the diagonal noise is multiplied by the lower
        factor of the correlation matrix.
        """
        x = np.asarray(x, dtype=float)
        if x.shape[-1:] != (self.dim,):
            raise ValueError(f"State must have trailing size {self.dim}, got shape {x.shape}")
        g = self.diffusion(t, x)
        if self.correlation is None:
            return g[..., :, None] * np.eye(self.dim, self.noise_dim)
        return g[..., :, None] * correlation_factor(self.correlation)

    def analytic(self, t: float, W, u0=None) -> np.ndarray:
        """
        Closed-form state at time t given the Wiener increment W = W(t) - W(t0).

        W may be a batch of increments, one per path. Times before t0 are
        rejected with ValueError.
        """
        if self.analytic_fn is None:
            raise NotImplementedError(f"{self.model} has no analytic solution")
        if np.any(np.asarray(t) < self.t0):
            raise ValueError(f"t={t} precedes the initial time t0={self.t0}")
        u0 = self.u0 if u0 is None else validate_u0(u0, self.dim)
        out = np.asarray(self.analytic_fn(u0, self.params, t, W, self.t0), dtype=float)
        return out.reshape(self.u0.shape) if out.ndim == 0 else out

    def analytic_path(self, t_grid, W) -> np.ndarray:
        """Closed-form states on ``t_grid`` for a Wiener path sampled on the same grid."""
        if self.analytic_path_fn is None:
            raise NotImplementedError(f"{self.model} has no analytic solution")
        return self.analytic_path_fn(self.u0, self.params, t_grid, W)

    def time_grid(self, n_steps: int) -> np.ndarray:
        if n_steps < 1:
            raise ValueError(f"n_steps must be positive, got {n_steps}")
        return np.linspace(self.t0, self.t1, n_steps + 1)

    def remake(self, **changes) -> "SDEProblem":
        """Build a new problem from the same factory with some arguments replaced."""
        if self.factory is None:
            raise NotImplementedError(f"{self.model} problem was not built by a factory")
        unknown = set(changes) - set(self.factory_args)
        if unknown:
            raise ConfigurationError(
                f"Unknown arguments for {self.model}: {sorted(unknown)}"
            )
        args = {**self.factory_args, **changes}
        LOGGER.debug("Remaking %s problem with %s", self.model, sorted(changes))
        return self.factory(**args)
