"""Exception hierarchy for expected, user-facing export failures."""


class ExportError(Exception):
    """Raised for fatal conditions that are reported to the user and never retried."""

    pass


class FilterValidationError(ExportError):
    """Raised when a configured filter names something the source does not know."""

    pass


class TokenExpiredError(ExportError):
    """Raised when a change token expires where a fresh one was guaranteed."""

    pass


class NoDataError(ExportError):
    """Raised when a changed time-series has no retrievable points at all."""

    pass
