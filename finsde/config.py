"""Evaluation options shared by all problem descriptors."""

from __future__ import annotations

from dataclasses import dataclass

from .errors import ConfigurationError

VARIANCE_POLICIES = ("truncate", "reflect", "raise")


@dataclass(frozen=True)
class ModelConfig:
    """
    Options controlling coefficient evaluation.

    Parameters
    ----------
    variance_policy : str
        How the square-root diffusion treats a negative variance state:
        ``"truncate"`` uses max(v, 0) (full truncation), ``"reflect"`` uses
        |v| and ``"raise"`` raises EvaluationError.
    warn_on_domain : bool
        Emit a DomainWarning when a negative variance is clamped.
    check_finite : bool
        Raise EvaluationError if drift or diffusion produce NaN or inf.
    """

    variance_policy: str = "truncate"
    warn_on_domain: bool = True
    check_finite: bool = True

    def __post_init__(self):
        if self.variance_policy not in VARIANCE_POLICIES:
            raise ConfigurationError(
                f"Unknown variance policy {self.variance_policy!r}, "
                f"expected one of {VARIANCE_POLICIES}"
            )


DEFAULT_CONFIG = ModelConfig()
