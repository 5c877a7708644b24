"""
Error kinds raised by the interaction-discovery pipeline.

Every error can carry the model specification and the iteration index that
triggered it.  The iteration driver fills these in before re-raising, so a
caller can inspect the failing formula and resume from the last committed
specification.
"""


class RFOLSError(Exception):
    """Base class for all pipeline errors."""

    def __init__(self, message, spec=None, iteration=None):
        super().__init__(message)
        self.message = message
        self.spec = spec
        self.iteration = iteration

    def __str__(self):
        context = []
        if self.iteration is not None:
            context.append(f"iteration={self.iteration}")
        if self.spec is not None:
            context.append(f"formula='{self.spec}'")
        if not context:
            return self.message
        return f"{self.message} [{', '.join(context)}]"


class ConfigurationError(RFOLSError, ValueError):
    """Invalid fitting or search parameters."""


class FitError(RFOLSError, ValueError):
    """Missing/invalid target or predictors, or a linear fit that failed."""


class AlignmentError(RFOLSError, ValueError):
    """Prediction vectors of different length or row order."""


class DuplicateTermError(RFOLSError, ValueError):
    """Interaction term already present in the specification."""
