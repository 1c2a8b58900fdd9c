"""Exception hierarchy for the valuation engine.

Schema validators keep raising plain ``ValueError`` (pydantic wraps those into
``ValidationError``). The analytics and blocks layers raise the types below so
callers can tell a bad assumption apart from a solver that gave up.
"""


class ValuationError(Exception):
    """Base class for all valuation engine errors."""
    pass


class InvalidInputError(ValuationError, ValueError):
    """Raised when a calculation receives inputs outside their valid range.

    Subclasses ``ValueError`` so existing ``except ValueError`` handlers keep working.
    """
    pass


class ProbabilityError(InvalidInputError):
    """Raised when scenario probabilities cannot be used for weighting."""
    pass


class ConvergenceError(ValuationError):
    """Raised when an iterative solver fails to bracket or converge on a root."""

    def __init__(self, message: str, iterations: int = 0):
        super().__init__(message)
        self.iterations = iterations
