"""
Model parameters that may be constant or vary with time (and state).

Coefficient code never checks which kind of parameter it holds: every
parameter is a TimeFunction and is evaluated as ``p(t)`` or ``p(t, state)``.

```python
r = as_time_function(0.05, "r")
theta = as_time_function(lambda t, S: 0.2 + 0.1 * np.exp(-t), "theta")
r(0.5), theta(0.5, 100.0)
```
"""

from __future__ import annotations

import inspect
import numbers
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

import numpy as np

from .errors import ConfigurationError, EvaluationError


class TimeFunction(ABC):
    """
    A scalar parameter evaluated at time t and, optionally, at a state.

    Instances are immutable once built; subclasses set their attributes in
    ``__init__`` through ``object.__setattr__``.
    """

    __slots__ = ("name", "nonnegative")

    def __init__(self, name: str = "param", nonnegative: bool = False):
        object.__setattr__(self, "name", name)
        object.__setattr__(self, "nonnegative", bool(nonnegative))

    def __setattr__(self, key, value):
        raise AttributeError(f"{type(self).__name__} is immutable")

    def __delattr__(self, key):
        raise AttributeError(f"{type(self).__name__} is immutable")

    @property
    @abstractmethod
    def is_constant(self) -> bool:
        ...

    @abstractmethod
    def _evaluate(self, t: float, state: Any) -> Any:
        ...

    def __call__(self, t: float, state: Any = None):
        value = self._evaluate(t, state)
        if not np.all(np.isfinite(value)):
            raise EvaluationError(
                f"Parameter {self.name!r} is not finite at t={t}: {value}"
            )
        if self.nonnegative and np.any(value < 0):
            raise EvaluationError(
                f"Parameter {self.name!r} must be non-negative, got {value} at t={t}"
            )
        return value


class ConstantParameter(TimeFunction):
    """Parameter with a fixed value."""

    __slots__ = ("_value",)

    def __init__(self, value: float, name: str = "param", nonnegative: bool = False):
        super().__init__(name, nonnegative)
        value = float(value)
        if not np.isfinite(value):
            raise ConfigurationError(f"Parameter {name!r} must be finite, got {value}")
        if nonnegative and value < 0:
            raise ConfigurationError(f"Parameter {name!r} must be non-negative, got {value}")
        object.__setattr__(self, "_value", value)

    @property
    def value(self) -> float:
        return self._value

    @property
    def is_constant(self) -> bool:
        return True

    def _evaluate(self, t, state):
        return self._value

    def __repr__(self) -> str:
        return f"ConstantParameter({self.name}={self._value!r})"


class CallableParameter(TimeFunction):
    """
    Parameter backed by a caller function ``f(t)`` or ``f(t, state)``.

    The arity is read once from the function signature. Functions whose
    signature cannot be inspected are called as ``f(t)``. Parameters with
    default values do not count towards the arity.
    """

    __slots__ = ("func", "takes_state")

    def __init__(
        self,
        func: Callable[..., Any],
        name: str = "param",
        nonnegative: bool = False,
        takes_state: Optional[bool] = None,
    ):
        super().__init__(name, nonnegative)
        object.__setattr__(self, "func", func)
        object.__setattr__(
            self, "takes_state", _accepts_state(func) if takes_state is None else bool(takes_state)
        )

    @property
    def is_constant(self) -> bool:
        return False

    def _evaluate(self, t, state):
        try:
            if self.takes_state:
                if state is None:
                    raise EvaluationError(
                        f"Parameter {self.name!r} depends on the state but none was given"
                    )
                value = self.func(t, state)
            else:
                value = self.func(t)
            return np.asarray(value, dtype=float) if np.ndim(value) else float(value)
        except EvaluationError:
            raise
        except Exception as exc:
            raise EvaluationError(
                f"Parameter {self.name!r} failed at t={t}: {exc}"
            ) from exc

    def __repr__(self) -> str:
        return f"CallableParameter({self.name}={self.func!r})"


class _Restricted(TimeFunction):
    """Another TimeFunction seen under a new name and domain check."""

    __slots__ = ("inner",)

    def __init__(self, inner: TimeFunction, name: str, nonnegative: bool):
        super().__init__(name, nonnegative)
        object.__setattr__(self, "inner", inner)

    @property
    def is_constant(self) -> bool:
        return False

    @property
    def takes_state(self) -> bool:
        return bool(getattr(self.inner, "takes_state", False))

    def _evaluate(self, t, state):
        try:
            return self.inner(t, state)
        except EvaluationError:
            raise
        except Exception as exc:
            raise EvaluationError(
                f"Parameter {self.name!r} failed at t={t}: {exc}"
            ) from exc

    def __repr__(self) -> str:
        return f"{self.name}={self.inner!r}"


def _accepts_state(func: Callable[..., Any]) -> bool:
    try:
        sig = inspect.signature(func)
    except (TypeError, ValueError):
        return False
    positional = 0
    for p in sig.parameters.values():
        if p.kind is inspect.Parameter.VAR_POSITIONAL:
            return True
        if (
            p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
            and p.default is inspect.Parameter.empty
        ):
            positional += 1
    return positional >= 2


def _rebind(value: TimeFunction, name: str, nonnegative: bool) -> TimeFunction:
    nonnegative = nonnegative or value.nonnegative
    if value.name == name and value.nonnegative == nonnegative:
        return value
    if isinstance(value, ConstantParameter):
        return ConstantParameter(value.value, name, nonnegative)
    if isinstance(value, CallableParameter):
        return CallableParameter(value.func, name, nonnegative, takes_state=value.takes_state)
    if value.is_constant:
        try:
            constant = value(0.0)
        except EvaluationError as exc:
            raise ConfigurationError(f"Parameter {name!r}: {exc}") from exc
        return ConstantParameter(constant, name, nonnegative)
    return _Restricted(value, name, nonnegative)


def as_time_function(value: Any, name: str, nonnegative: bool = False) -> TimeFunction:
    """
    Coerce a number, callable or TimeFunction into a TimeFunction.

    An existing TimeFunction is re-labelled with ``name`` and picks up the
    ``nonnegative`` check; constant ones are frozen into a ConstantParameter.
    """
    if value is None:
        raise ConfigurationError(f"Missing required parameter {name!r}")
    if isinstance(value, TimeFunction):
        return _rebind(value, name, nonnegative)
    if _is_real_scalar(value):
        return ConstantParameter(value, name, nonnegative)
    if callable(value):
        return CallableParameter(value, name, nonnegative)
    raise ConfigurationError(
        f"Parameter {name!r} must be a real number or a callable, got {type(value).__name__}"
    )


def as_constant(value: Any, name: str, nonnegative: bool = False) -> ConstantParameter:
    """Like as_time_function, but rejects callables."""
    tf = as_time_function(value, name, nonnegative)
    if not tf.is_constant:
        raise ConfigurationError(f"Parameter {name!r} must be a constant")
    return tf


def _is_real_scalar(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, numbers.Real):
        return True
    return isinstance(value, np.ndarray) and value.ndim == 0 and np.isrealobj(value)
