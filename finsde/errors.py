"""Exception and warning types raised by finsde."""


class FinSDEError(Exception):
    """Base class for finsde errors."""


class ConfigurationError(FinSDEError, ValueError):
    """Invalid problem construction: bad time span, parameter or initial state."""


class EvaluationError(FinSDEError, ArithmeticError):
    """A parameter function failed or produced a non-finite value during evaluation."""


class DomainWarning(UserWarning):
    """Coefficients evaluated at a state outside the model's formal domain."""
