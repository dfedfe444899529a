"""
Spectral descriptors from a live magnitude spectrum.

Per analysis run: seven-band energy decomposition, spectral peaks and the
harmonic series above the strongest one, centroid / rolloff / bandwidth /
flatness, and zero-crossing rate when a waveform is supplied. A short peak
history backs the dynamic-range part of the audio quality heuristic.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import librosa
import numpy as np
from scipy import signal as scipy_signal

from pulsescope.config import SpectralConfig
from pulsescope.core import theory
from pulsescope.core.events import EventEmitter
from pulsescope.core.frames import FrequencyFrame, TimeDomainFrame
from pulsescope.core.theory import NoteInfo
from pulsescope.core.timing import TimeGate

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------

@dataclass
class FrequencyBand:
    """Energy of one fixed band."""

    name: str
    low_hz: float
    high_hz: float
    energy: float = 0.0
    peak_magnitude: float = 0.0
    peak_frequency: float = 0.0


@dataclass
class SpectralPeak:
    frequency: float
    magnitude: float
    bin: int


@dataclass
class HarmonicRelation:
    harmonic_number: int
    frequency: float
    magnitude: float
    fundamental_frequency: float


@dataclass
class SpectralFeatures:
    """Shape descriptors of a single spectrum."""

    centroid: float = 0.0            # Hz
    rolloff: float = 0.0             # Hz below which 90% of energy lies
    bandwidth: float = 0.0           # Hz, weighted spread around the centroid
    flatness: float = 0.0            # 0 = tonal, 1 = noise-like
    zero_crossing_rate: float = 0.0  # crossings per sample pair


@dataclass
class SpectrumSnapshot:
    bands: List[FrequencyBand]
    peaks: List[SpectralPeak]
    harmonics: List[HarmonicRelation]
    dominant_frequency: float
    features: SpectralFeatures
    timestamp_ms: Optional[float] = None


@dataclass
class AudioQuality:
    """Composite heuristics, each in [0, 1]."""

    dynamic_range: float
    frequency_balance: float
    clarity: float
    brightness: float
    overall: float


@dataclass
class RangeAnalysis:
    low_hz: float
    high_hz: float
    energy: float = 0.0
    peak: float = 0.0
    peak_frequency: float = 0.0
    average: float = 0.0


@dataclass
class _PeakHistoryEntry:
    timestamp_ms: float
    magnitudes: List[float] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------

class SpectralFeatureExtractor:
    """
    Rate-limited spectral analysis.

    Events:
        spectrum_update(snapshot)   SpectrumSnapshot, every run
        peak_detected(peaks)        list of SpectralPeak, runs with peaks
        feature_update(features)    SpectralFeatures, every run
    """

    EVENTS = ("spectrum_update", "peak_detected", "feature_update")

    BANDS = (
        ("Sub Bass", 20, 60),
        ("Bass", 60, 250),
        ("Low Midrange", 250, 500),
        ("Midrange", 500, 2000),
        ("Upper Midrange", 2000, 4000),
        ("Presence", 4000, 6000),
        ("Brilliance", 6000, 20000),
    )
    # band index groups for the frequency balance heuristic
    BASS_BANDS = slice(0, 2)
    MID_BANDS = slice(2, 5)
    TREBLE_BANDS = slice(5, 7)

    MAX_PEAKS = 10
    HARMONIC_TOLERANCE = 0.1
    ROLLOFF_PERCENT = 0.9
    PEAK_HISTORY_MS = 5000.0
    DYNAMIC_RANGE_DB = 60.0
    BRIGHTNESS_HZ = 10000.0

    def __init__(self, config: Optional[SpectralConfig] = None):
        self.config = config or SpectralConfig()
        self.events = EventEmitter(self.EVENTS)
        self.active = False

        self.bands = self._empty_bands()
        self.peaks: List[SpectralPeak] = []
        self.harmonics: List[HarmonicRelation] = []
        self.dominant_frequency = 0.0
        self.features = SpectralFeatures()
        self._frame: Optional[FrequencyFrame] = None
        self._last_timestamp_ms: Optional[float] = None
        self._peak_history: List[_PeakHistoryEntry] = []
        self._gate = TimeGate(self.config.update_interval_ms)

    @classmethod
    def _empty_bands(cls) -> List[FrequencyBand]:
        return [FrequencyBand(name, low, high) for name, low, high in cls.BANDS]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def on(self, event: str, handler):
        return self.events.on(event, handler)

    def off(self, event: str, handler) -> None:
        self.events.off(event, handler)

    def start(self) -> None:
        self.active = True
        logger.info("spectral analysis started at %.0f Hz", self.config.update_rate_hz)

    def stop(self) -> None:
        self.active = False
        logger.info("spectral analysis stopped")

    def reset(self) -> None:
        self.bands = self._empty_bands()
        self._clear_frame_results()
        self._frame = None
        self._last_timestamp_ms = None
        self._peak_history.clear()
        self._gate.reset()

    def _clear_frame_results(self) -> None:
        for band in self.bands:
            band.energy = band.peak_magnitude = band.peak_frequency = 0.0
        self.peaks = []
        self.harmonics = []
        self.dominant_frequency = 0.0
        self.features = SpectralFeatures()

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def configure(self, **options) -> SpectralConfig:
        self.config = self.config.updated(**options)
        self._gate.interval_ms = self.config.update_interval_ms
        return self.config

    def set_update_rate(self, rate_hz: float) -> None:
        self.configure(update_rate_hz=rate_hz)

    def set_peak_threshold(self, threshold: float) -> None:
        self.configure(peak_threshold=threshold)

    # ------------------------------------------------------------------
    # Per-tick entry point
    # ------------------------------------------------------------------

    def analyze(
        self,
        frame: FrequencyFrame,
        timestamp_ms: float,
        time_frame: Optional[TimeDomainFrame] = None,
    ) -> Optional[SpectrumSnapshot]:
        """
        Run one analysis if the update interval has elapsed.

        Silent frames reset the per-frame results to neutral values and
        raise no events.

        Args:
            frame: Normalized magnitude spectrum.
            timestamp_ms: Caller clock in milliseconds.
            time_frame: Optional waveform for the zero-crossing rate.

        Returns:
            SpectrumSnapshot for a run, None when inactive or throttled.
        """
        if not self.active or not self._gate.ready(timestamp_ms):
            return None
        if self._gate.rewound:
            logger.warning(
                "timestamp went backwards to %.1f ms; clearing peak history", timestamp_ms
            )
            self._peak_history.clear()

        self._frame = frame
        self._last_timestamp_ms = timestamp_ms
        if frame.is_silent:
            self._clear_frame_results()
            return self.get_results()

        self._analyze_bands(frame)
        self._detect_peaks(frame, timestamp_ms)
        self.harmonics = self.find_harmonics(self.peaks)
        self.features = self.compute_features(frame, time_frame)

        snapshot = self.get_results()
        if self.peaks:
            self.events.emit("peak_detected", list(self.peaks))
        self.events.emit("feature_update", self.features)
        self.events.emit("spectrum_update", snapshot)
        return snapshot

    # ------------------------------------------------------------------
    # Bands
    # ------------------------------------------------------------------

    def _analyze_bands(self, frame: FrequencyFrame) -> None:
        for band in self.bands:
            result = self._range(frame, band.low_hz, band.high_hz)
            band.energy = result.energy
            band.peak_magnitude = result.peak
            band.peak_frequency = result.peak_frequency

    @staticmethod
    def _range(frame: FrequencyFrame, low_hz: float, high_hz: float) -> RangeAnalysis:
        result = RangeAnalysis(low_hz=low_hz, high_hz=high_hz)
        if frame.bin_width == 0:
            return result
        start = int(low_hz // frame.bin_width)
        end = min(int(high_hz // frame.bin_width), frame.n_bins - 1)
        if end < start:
            return result
        mags = frame.magnitudes[start:end + 1]
        top = int(np.argmax(mags))
        result.energy = float(np.sqrt(np.mean(np.square(mags))))
        result.peak = float(mags[top])
        result.peak_frequency = frame.frequency_for_bin(start + top) if result.peak > 0 else 0.0
        result.average = float(np.mean(mags))
        return result

    def analyze_frequency_range(self, low_hz: float, high_hz: float) -> RangeAnalysis:
        """Energy, peak and mean magnitude of the last frame between two frequencies."""
        if self._frame is None:
            return RangeAnalysis(low_hz=low_hz, high_hz=high_hz)
        return self._range(self._frame, low_hz, high_hz)

    # ------------------------------------------------------------------
    # Peaks and harmonics
    # ------------------------------------------------------------------

    def _detect_peaks(self, frame: FrequencyFrame, timestamp_ms: float) -> None:
        mags = frame.magnitudes
        (candidates,) = scipy_signal.argrelmax(mags)
        candidates = candidates[mags[candidates] > self.config.peak_threshold]
        # stable sort keeps the lower bin first among equal magnitudes
        order = np.argsort(-mags[candidates], kind="stable")
        found = [
            SpectralPeak(
                frequency=frame.frequency_for_bin(int(i)),
                magnitude=float(mags[i]),
                bin=int(i),
            )
            for i in candidates[order]
        ]

        self.peaks = found[: self.MAX_PEAKS]
        self.dominant_frequency = found[0].frequency if found else 0.0

        self._peak_history.append(
            _PeakHistoryEntry(timestamp_ms, [p.magnitude for p in found])
        )
        self._peak_history = [
            entry
            for entry in self._peak_history
            if timestamp_ms - entry.timestamp_ms < self.PEAK_HISTORY_MS
        ]

    @classmethod
    def find_harmonics(cls, peaks: List[SpectralPeak]) -> List[HarmonicRelation]:
        """Peaks lying near integer multiples (2x and up) of the strongest peak."""
        if not peaks or peaks[0].frequency <= 0:
            return []
        fundamental = peaks[0]
        harmonics = []
        for peak in peaks[1:]:
            ratio = peak.frequency / fundamental.frequency
            nearest = int(round(ratio))
            if nearest >= 2 and abs(ratio - nearest) < cls.HARMONIC_TOLERANCE:
                harmonics.append(
                    HarmonicRelation(
                        harmonic_number=nearest,
                        frequency=peak.frequency,
                        magnitude=peak.magnitude,
                        fundamental_frequency=fundamental.frequency,
                    )
                )
        return harmonics

    # ------------------------------------------------------------------
    # Shape descriptors
    # ------------------------------------------------------------------

    @classmethod
    def compute_features(
        cls, frame: FrequencyFrame, time_frame: Optional[TimeDomainFrame] = None
    ) -> SpectralFeatures:
        """
        Centroid, rolloff, bandwidth, flatness and zero-crossing rate.

        Flatness floors empty bins at librosa's amin (1e-10) instead of
        dropping them, so a lone spectral line reads as tonal (~0) while a
        uniform spectrum reads as 1.
        """
        if frame.is_silent:
            return SpectralFeatures(zero_crossing_rate=cls.zero_crossing_rate(time_frame))

        S = frame.magnitudes[:, np.newaxis]
        freqs = frame.frequencies

        centroid = librosa.feature.spectral_centroid(S=S, freq=freqs)[0, 0]
        # rolloff over power so the threshold is on cumulative squared magnitude
        rolloff = librosa.feature.spectral_rolloff(
            S=S ** 2, freq=freqs, roll_percent=cls.ROLLOFF_PERCENT
        )[0, 0]
        bandwidth = librosa.feature.spectral_bandwidth(
            S=S, freq=freqs, centroid=np.array([[centroid]]), p=2
        )[0, 0]
        flatness = librosa.feature.spectral_flatness(S=S, power=1.0)[0, 0]

        return SpectralFeatures(
            centroid=float(centroid),
            rolloff=float(rolloff),
            bandwidth=float(bandwidth),
            flatness=float(np.clip(flatness, 0.0, 1.0)),
            zero_crossing_rate=cls.zero_crossing_rate(time_frame),
        )

    @staticmethod
    def zero_crossing_rate(time_frame: Optional[TimeDomainFrame]) -> float:
        """Fraction of adjacent sample pairs on opposite sides of zero."""
        if time_frame is None or len(time_frame) < 2:
            return 0.0
        crossings = librosa.zero_crossings(time_frame.samples, pad=False)
        return float(np.count_nonzero(crossings) / (len(time_frame) - 1))

    # ------------------------------------------------------------------
    # Quality heuristics
    # ------------------------------------------------------------------

    def dynamic_range_db(self) -> float:
        """Spread of peak magnitudes over the last five seconds, in dB."""
        if len(self._peak_history) < 2:
            return 0.0
        magnitudes = [m for entry in self._peak_history for m in entry.magnitudes]
        if not magnitudes:
            return 0.0
        loudest = max(magnitudes)
        quietest = min(magnitudes)
        if loudest <= 0:
            return 0.0
        return float(20 * np.log10(loudest / max(quietest, 0.001)))

    def frequency_balance(self) -> float:
        """1 for an even bass/mid/treble energy split, falling towards 0."""
        energies = np.array([band.energy for band in self.bands])
        groups = np.array(
            [
                energies[self.BASS_BANDS].sum(),
                energies[self.MID_BANDS].sum(),
                energies[self.TREBLE_BANDS].sum(),
            ]
        )
        total = groups.sum()
        if total == 0:
            return 0.0
        deviation = np.abs(groups / total - 1 / 3).sum()
        return float(max(0.0, 1 - deviation))

    def assess_audio_quality(self) -> AudioQuality:
        dynamic_range = min(1.0, self.dynamic_range_db() / self.DYNAMIC_RANGE_DB)
        balance = self.frequency_balance()
        if self._frame is None or self._frame.is_silent:
            clarity = brightness = 0.0
        else:
            clarity = float(np.clip(1 - self.features.flatness, 0.0, 1.0))
            brightness = min(1.0, self.features.centroid / self.BRIGHTNESS_HZ)
        return AudioQuality(
            dynamic_range=dynamic_range,
            frequency_balance=balance,
            clarity=clarity,
            brightness=brightness,
            overall=(dynamic_range + balance + clarity + brightness) / 4,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def frequency_bin(self, frequency: float) -> int:
        return self._frame.bin_for_frequency(frequency) if self._frame else 0

    def bin_frequency(self, bin_index: int) -> float:
        return self._frame.frequency_for_bin(bin_index) if self._frame else 0.0

    def magnitude_at(self, frequency: float) -> float:
        return self._frame.magnitude_at(frequency) if self._frame else 0.0

    @staticmethod
    def musical_note(frequency: float) -> NoteInfo:
        return theory.musical_note(frequency)

    def get_features(self) -> SpectralFeatures:
        return self.features

    def get_results(self) -> SpectrumSnapshot:
        return SpectrumSnapshot(
            bands=[FrequencyBand(**vars(band)) for band in self.bands],
            peaks=list(self.peaks),
            harmonics=list(self.harmonics),
            dominant_frequency=self.dominant_frequency,
            features=self.features,
            timestamp_ms=self._last_timestamp_ms,
        )
