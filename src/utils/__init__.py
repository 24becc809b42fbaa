"""Shared utilities for configuration, logging, and error handling"""

from src.utils.errors import ExportError, FilterValidationError, NoDataError, TokenExpiredError
from src.utils.retry import call_with_retry

__all__ = [
    "ExportError",
    "FilterValidationError",
    "NoDataError",
    "TokenExpiredError",
    "call_with_retry",
]
