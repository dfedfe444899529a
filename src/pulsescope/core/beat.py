"""
Beat and tempo tracking from a live magnitude spectrum.

Onsets are found by comparing bass-weighted frame energy against a short
local average of an energy ring buffer; BPM is the modal inter-onset
interval over the last ten seconds, exponentially smoothed.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import List, Optional

import librosa
import numpy as np

from pulsescope.config import BeatDetectorConfig, ConfigurationError
from pulsescope.core.events import EventEmitter
from pulsescope.core.frames import FrequencyFrame

logger = logging.getLogger(__name__)


@dataclass
class PeakEvent:
    """An accepted onset."""

    timestamp_ms: float
    instantaneous_bpm: float
    energy: float


@dataclass
class BPMInfo:
    """Pull-style snapshot of the detector state."""

    bpm: int = 0
    confidence: float = 0.0
    active: bool = False
    history: List[int] = field(default_factory=list)
    energy_variance: float = 0.0


@dataclass
class TempoEstimate:
    """Tempo from an offline estimator over a whole buffer."""

    bpm: int
    confidence: float
    method: str


class BeatDetector:
    """
    Energy-based onset detector with BPM estimation.

    Events:
        beat_detected(bpm, confidence, energy, timestamp_ms)
        bpm_detected(bpm, confidence, history)
    """

    EVENTS = ("beat_detected", "bpm_detected")

    ENERGY_HISTORY_SIZE = 43  # ~1 s of frames at 43 Hz
    LOCAL_AVERAGE_SIZE = 5
    BASS_BINS = 10
    BASS_WEIGHT = 2.0
    MIN_VARIANCE = 0.01

    MIN_INTERVAL_MS = 200.0
    MAX_INTERVAL_MS = 2000.0
    PEAK_WINDOW_MS = 10_000.0
    MIN_PEAKS = 4
    MIN_INTERVALS = 3

    TEMPO_DESCRIPTIONS = (
        (60, "Very Slow"),
        (80, "Slow"),
        (100, "Moderate"),
        (120, "Medium"),
        (140, "Fast"),
        (160, "Very Fast"),
    )

    def __init__(self, config: Optional[BeatDetectorConfig] = None):
        self.config = config or BeatDetectorConfig()
        self.events = EventEmitter(self.EVENTS)
        self.active = False

        self.current_bpm: int = 0
        self.confidence: float = 0.0
        self.energy_variance: float = 0.0
        self.is_beat = False  # an onset was accepted on the latest tick

        self._energy_history: deque = deque(
            [0.0] * self.ENERGY_HISTORY_SIZE, maxlen=self.ENERGY_HISTORY_SIZE
        )
        self._peaks: List[PeakEvent] = []
        self._bpm_history: deque = deque(maxlen=self.config.history_length)
        self._last_onset_ms: Optional[float] = None
        self._last_timestamp_ms: Optional[float] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def on(self, event: str, handler):
        return self.events.on(event, handler)

    def off(self, event: str, handler) -> None:
        self.events.off(event, handler)

    def start(self) -> None:
        self.active = True
        self._clear_histories()
        logger.info("beat detection started")

    def stop(self) -> None:
        self.active = False
        logger.info("beat detection stopped")

    def reset(self) -> None:
        """Return every getter to its initial value; the active flag is kept."""
        self.current_bpm = 0
        self.confidence = 0.0
        self.energy_variance = 0.0
        self.is_beat = False
        self._clear_histories()
        self._last_onset_ms = None
        self._last_timestamp_ms = None

    def _clear_histories(self) -> None:
        self._bpm_history.clear()
        self._peaks.clear()
        self._energy_history.extend([0.0] * self.ENERGY_HISTORY_SIZE)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def configure(self, **options) -> BeatDetectorConfig:
        """Apply validated option changes (see BeatDetectorConfig)."""
        self.config = self.config.updated(**options)
        if self._bpm_history.maxlen != self.config.history_length:
            self._bpm_history = deque(
                self._bpm_history, maxlen=self.config.history_length
            )
        return self.config

    def set_peak_threshold(self, threshold: float) -> None:
        self.configure(peak_threshold=threshold)

    def set_bpm_range(self, min_bpm: float, max_bpm: float) -> None:
        self.configure(min_bpm=min_bpm, max_bpm=max_bpm)

    def set_bpm(self, bpm: int) -> None:
        """Manually override the tempo (full confidence)."""
        if not self.config.min_bpm <= bpm <= self.config.max_bpm:
            raise ConfigurationError(
                "bpm",
                f"{bpm} outside [{self.config.min_bpm}, {self.config.max_bpm}]",
            )
        self.current_bpm = int(bpm)
        self.confidence = 1.0

    # ------------------------------------------------------------------
    # Energy
    # ------------------------------------------------------------------

    @staticmethod
    def frame_energy(magnitudes: np.ndarray) -> float:
        """RMS of normalized magnitudes, in [0, 1]."""
        if len(magnitudes) == 0:
            return 0.0
        return float(np.sqrt(np.mean(np.square(magnitudes))))

    @classmethod
    def band_energy(cls, magnitudes: np.ndarray, start_bin: int, end_bin: int) -> float:
        return cls.frame_energy(magnitudes[max(0, start_bin):end_bin])

    def _is_onset(self, energy: float, bass_energy: float) -> bool:
        recent = list(self._energy_history)[-self.LOCAL_AVERAGE_SIZE:]
        local_average = float(np.mean(recent))
        weighted = energy + self.BASS_WEIGHT * bass_energy
        threshold = local_average * (1 + self.config.peak_threshold)
        return weighted > threshold and self.energy_variance > self.MIN_VARIANCE

    # ------------------------------------------------------------------
    # Per-tick entry point
    # ------------------------------------------------------------------

    def detect_bpm(self, frame: FrequencyFrame, timestamp_ms: float) -> int:
        """
        Feed one frame; returns the current BPM (0 until detected).

        Args:
            frame: Normalized magnitude spectrum.
            timestamp_ms: Caller clock in milliseconds.
        """
        if not self.active:
            return self.current_bpm

        self._check_session(timestamp_ms)
        self.is_beat = False

        mags = frame.magnitudes
        energy = self.frame_energy(mags)
        bass_energy = self.band_energy(mags, 0, self.BASS_BINS)

        self._energy_history.append(energy)
        self.energy_variance = float(np.std(self._energy_history))

        if self._is_onset(energy, bass_energy):
            self._register_onset(energy, timestamp_ms)

        return self.current_bpm

    def _check_session(self, timestamp_ms: float) -> None:
        previous = self._last_timestamp_ms
        self._last_timestamp_ms = timestamp_ms
        if previous is None or timestamp_ms >= previous:
            return
        logger.warning(
            "timestamp went backwards (%.1f -> %.1f ms); starting a new beat session",
            previous,
            timestamp_ms,
        )
        self._peaks.clear()
        self._last_onset_ms = timestamp_ms

    def _register_onset(self, energy: float, timestamp_ms: float) -> None:
        previous = self._last_onset_ms
        self._last_onset_ms = timestamp_ms
        if previous is None:
            return

        elapsed = timestamp_ms - previous
        if not self.MIN_INTERVAL_MS < elapsed < self.MAX_INTERVAL_MS:
            return
        instant_bpm = 60000.0 / elapsed
        if not self.config.min_bpm <= instant_bpm <= self.config.max_bpm:
            return

        self._peaks.append(PeakEvent(timestamp_ms, instant_bpm, energy))
        self._peaks = [
            p for p in self._peaks if timestamp_ms - p.timestamp_ms < self.PEAK_WINDOW_MS
        ]
        logger.debug("onset at %.1f ms (%.1f bpm, energy %.3f)", timestamp_ms, instant_bpm, energy)

        self.is_beat = True
        self._calculate_bpm()
        self.events.emit(
            "beat_detected", self.current_bpm, self.confidence, energy, timestamp_ms
        )

    # ------------------------------------------------------------------
    # BPM aggregation
    # ------------------------------------------------------------------

    def _calculate_bpm(self) -> None:
        if len(self._peaks) < self.MIN_PEAKS:
            return

        times = np.array([p.timestamp_ms for p in self._peaks])
        intervals = np.diff(times)
        intervals = intervals[
            (intervals > self.MIN_INTERVAL_MS) & (intervals < self.MAX_INTERVAL_MS)
        ]
        if len(intervals) < self.MIN_INTERVALS:
            return

        # buckets come back sorted, so ties resolve to the slower tempo
        buckets, counts = np.unique(np.round(60000.0 / intervals).astype(int), return_counts=True)
        best = int(np.argmax(counts))
        detected = int(buckets[best])
        self.confidence = float(min(1.0, counts[best] / len(intervals)))

        if self.current_bpm == 0:
            self.current_bpm = detected
        else:
            alpha = self.config.smoothing_factor
            self.current_bpm = int(round(self.current_bpm * alpha + detected * (1 - alpha)))

        self._bpm_history.append(self.current_bpm)
        logger.debug("bpm %d (detected %d, confidence %.2f)", self.current_bpm, detected, self.confidence)
        self.events.emit(
            "bpm_detected", self.current_bpm, self.confidence, list(self._bpm_history)
        )

    def detect_bpm_autocorrelation(
        self, samples: np.ndarray, sample_rate: float
    ) -> Optional[TempoEstimate]:
        """
        Estimate tempo from a whole buffer by autocorrelation.

        Searches lags between the periods of max_bpm and min_bpm and picks
        the strongest. Works best on an onset-strength envelope rather
        than raw audio.

        Args:
            samples: 1-D signal.
            sample_rate: Samples per second of *samples*.

        Returns:
            TempoEstimate, or None when the buffer is too short or flat.
        """
        y = np.asarray(samples, dtype=np.float64)
        min_period = max(1, int(sample_rate * 60 / self.config.max_bpm))
        max_period = min(int(sample_rate * 60 / self.config.min_bpm), len(y) - 1)
        if max_period < min_period:
            return None

        ac = librosa.autocorrelate(y, max_size=max_period + 1)
        if ac[0] <= 0:
            return None

        lags = np.arange(min_period, max_period + 1)
        best_lag = int(lags[np.argmax(ac[lags])])
        strength = float(ac[best_lag] / ac[0])
        if strength <= 0:
            return None

        return TempoEstimate(
            bpm=int(round(sample_rate * 60 / best_lag)),
            confidence=float(np.clip(strength, 0.0, 1.0)),
            method="autocorrelation",
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def peak_events(self) -> List[PeakEvent]:
        return list(self._peaks)

    def get_results(self) -> BPMInfo:
        return BPMInfo(
            bpm=self.current_bpm,
            confidence=self.confidence,
            active=self.active,
            history=list(self._bpm_history),
            energy_variance=self.energy_variance,
        )

    def tempo_description(self, bpm: Optional[float] = None) -> str:
        bpm = self.current_bpm if bpm is None else bpm
        for limit, label in self.TEMPO_DESCRIPTIONS:
            if bpm <= limit:
                return label
        return "Extremely Fast"
