from .extractor import (
    FEATURE_NAMES,
    ExtractionContext,
    FeatureExtractor,
    FeatureVector,
    seasonal_indicator,
)

__all__ = [
    "FEATURE_NAMES",
    "ExtractionContext",
    "FeatureExtractor",
    "FeatureVector",
    "seasonal_indicator",
]
