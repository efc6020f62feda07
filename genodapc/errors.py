from __future__ import annotations

from typing import Optional


class GenodapcError(Exception):
    """Base class for genodapc errors."""


class ConfigurationError(GenodapcError, ValueError):
    """Invalid arguments, raised before any computation starts."""


class ModelFitError(GenodapcError, RuntimeError):
    """A PCA or discriminant fit could not be computed.

    ``sample`` is set when the failure belongs to a single leave-one-out
    iteration, so callers can tell it apart from a global failure.
    """

    def __init__(self, message: str, sample: Optional[str] = None) -> None:
        self.reason = message
        self.sample = sample
        if sample is not None:
            message = f"{message} (held-out sample '{sample}')"
        super().__init__(message)

    def __reduce__(self):
        # Keep `sample` when the error crosses a process boundary.
        return (self.__class__, (self.reason, self.sample))
