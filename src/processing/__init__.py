"""Point processing: frequency inference, retention trimming and filtering."""

from src.processing.filters import Filter, TimeSeriesDescriptionFilter, TimeSeriesPointFilter
from src.processing.frequency_estimator import FrequencyEstimator
from src.processing.point_trimmer import PointWindowTrimmer

__all__ = [
    "Filter",
    "FrequencyEstimator",
    "PointWindowTrimmer",
    "TimeSeriesDescriptionFilter",
    "TimeSeriesPointFilter",
]
