"""Live beat, key/chord and spectral analysis for streaming audio frames."""

from pulsescope.config import (
    AnalysisConfig,
    BeatDetectorConfig,
    ConfigurationError,
    KeyChordConfig,
    SpectralConfig,
)
from pulsescope.core.beat import BeatDetector
from pulsescope.core.harmony import KeyChordAnalyzer
from pulsescope.core.spectral import SpectralFeatureExtractor
from pulsescope.core.stream import AnalysisCoordinator, LiveFeatures

__version__ = "0.1.0"
__all__ = [
    "AnalysisConfig",
    "BeatDetectorConfig",
    "KeyChordConfig",
    "SpectralConfig",
    "ConfigurationError",
    "BeatDetector",
    "KeyChordAnalyzer",
    "SpectralFeatureExtractor",
    "AnalysisCoordinator",
    "LiveFeatures",
]
