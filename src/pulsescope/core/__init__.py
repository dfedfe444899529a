"""Core live analysis modules."""

from pulsescope.core.beat import BeatDetector
from pulsescope.core.harmony import KeyChordAnalyzer
from pulsescope.core.spectral import SpectralFeatureExtractor
from pulsescope.core.stream import AnalysisCoordinator

__all__ = [
    "BeatDetector",
    "KeyChordAnalyzer",
    "SpectralFeatureExtractor",
    "AnalysisCoordinator",
]
