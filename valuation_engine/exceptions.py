"""
Engine Exceptions

Callers either get a complete (possibly partially degraded) result or one
of these errors.
"""


class ValuationError(RuntimeError):
    """Base class for errors raised by the valuation engine."""


class MissingInputError(ValuationError, ValueError):
    """Raised when a required, non-empty input list is empty."""


class UpstreamDataError(ValuationError):
    """Raised when a data source fails or returns an unusable payload.

    The underlying exception is chained as ``__cause__``. The engine does
    not retry; retry policy belongs to the data source.
    """

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(f"{source}: {message}")
