"""
Live analysis coordinator.

Architecture Overview
---------------------
::

    capture / render loop (external)
        │
        ▼  once per tick
    AnalysisCoordinator.push_frame(magnitudes, samples, timestamp_ms)
        │
        ├─► BeatDetector.detect_bpm            (every tick)
        │        └─► beat_detected, bpm_detected
        │
        ├─► KeyChordAnalyzer.analyze           (gated, default 500 ms)
        │        └─► key_detected, chord_detected, progression_update
        │
        ├─► SpectralFeatureExtractor.analyze   (gated, default 60 Hz)
        │        └─► spectrum_update, peak_detected, feature_update
        │
        └─► LiveFeatures  (returned to the caller)

Design Goals
------------
* **Deterministic**: every gate is a timestamp comparison, so results depend
  only on the sequence of (timestamp, frame) pairs pushed.
* **Isolated**: each analyzer owns its state; a fault in one is logged and
  the others still see the frame.
* **Synchronous**: no threads, timers or tasks; work happens inside
  push_frame().
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np

from pulsescope.config import AnalysisConfig
from pulsescope.core.beat import BeatDetector
from pulsescope.core.frames import (
    ArrayLike,
    FrequencyFrame,
    TimeDomainFrame,
    detect_magnitude_scale,
)
from pulsescope.core.harmony import HarmonyResult, KeyChordAnalyzer
from pulsescope.core.spectral import SpectralFeatureExtractor, SpectrumSnapshot

logger = logging.getLogger(__name__)


@dataclass
class LiveFeatures:
    """
    Single-tick snapshot returned by push_frame().

    Analyzer results are None when that analyzer is inactive or did not
    run on this tick (throttled or failed).
    """

    tick_index: int = 0
    timestamp_ms: float = 0.0

    # Rhythm
    bpm: Optional[int] = None
    is_beat: bool = False

    # Harmony
    harmony: Optional[HarmonyResult] = None

    # Spectrum
    spectrum: Optional[SpectrumSnapshot] = None


class AnalysisCoordinator:
    """
    Feeds one frame per tick to every active analyzer.

    Parameters
    ----------
    config:
        Session configuration (sample rate, magnitude scale, analyzer
        options). Ignored for any analyzer passed in explicitly.
    beat, harmony, spectral:
        Pre-built analyzers to use instead of constructing them from
        *config*.
    """

    ANALYZERS = ("beat", "harmony", "spectral")

    def __init__(
        self,
        config: Optional[AnalysisConfig] = None,
        beat: Optional[BeatDetector] = None,
        harmony: Optional[KeyChordAnalyzer] = None,
        spectral: Optional[SpectralFeatureExtractor] = None,
    ):
        self.config = config or AnalysisConfig()
        self.beat = beat or BeatDetector(self.config.beat)
        self.harmony = harmony or KeyChordAnalyzer(self.config.harmony)
        self.spectral = spectral or SpectralFeatureExtractor(self.config.spectral)

        self._tick_index = 0
        self._n_bins: Optional[int] = None
        self._scale: Optional[str] = None

    @property
    def sample_rate(self) -> int:
        return self.config.sample_rate

    @property
    def magnitude_scale(self) -> Optional[str]:
        """Scale the session is locked to, or None until it is known."""
        return self._scale

    def analyzer(self, name: str):
        if name not in self.ANALYZERS:
            raise ValueError(
                f"unknown analyzer {name!r}; expected one of {', '.join(self.ANALYZERS)}"
            )
        return getattr(self, name)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        for name in self.ANALYZERS:
            self.analyzer(name).start()

    def stop(self) -> None:
        for name in self.ANALYZERS:
            self.analyzer(name).stop()

    def enable(self, name: str) -> None:
        self.analyzer(name).start()

    def disable(self, name: str) -> None:
        self.analyzer(name).stop()

    def reset(self) -> None:
        """Reset every analyzer and release the session frame length and scale."""
        for name in self.ANALYZERS:
            self.analyzer(name).reset()
        self._tick_index = 0
        self._n_bins = None
        self._scale = None
        logger.info("analysis session reset")

    # ------------------------------------------------------------------
    # Frame dispatch
    # ------------------------------------------------------------------

    def push_frame(
        self,
        frequency_magnitudes: Optional[ArrayLike],
        time_domain_samples: Optional[ArrayLike] = None,
        *,
        timestamp_ms: float,
    ) -> LiveFeatures:
        """
        Dispatch one tick to the active analyzers.

        Args:
            frequency_magnitudes: Per-bin magnitudes in [0,1] or [0,255];
                None is analysed as a silent frame.
            time_domain_samples: Optional waveform for zero-crossing rate.
            timestamp_ms: Caller clock in milliseconds (keyword only).

        With magnitude_scale="auto" the first frame that shows its scale
        (an integer array, a value above 1, or any energy at all) fixes the
        scale for the rest of the session, so quiet byte frames are never
        read as unit-scale.

        Returns:
            LiveFeatures for this tick.

        Raises:
            ValueError: If the frame length differs from the session's.
        """
        scale = self._scale or self._detect_scale(frequency_magnitudes)
        frame = FrequencyFrame.from_magnitudes(
            frequency_magnitudes,
            self.sample_rate,
            scale=scale or "unit",
            n_bins=self._n_bins,
        )
        self._check_frame_length(frame)
        if self._scale is None and scale is not None:
            self._scale = scale
            logger.info("magnitude scale locked to %s", scale)
        time_frame = TimeDomainFrame.from_samples(
            time_domain_samples, scale=self.config.magnitude_scale
        )

        self._tick_index += 1
        live = LiveFeatures(tick_index=self._tick_index, timestamp_ms=timestamp_ms)

        if self.beat.active:
            bpm = self._run("beat", self.beat.detect_bpm, frame, timestamp_ms)
            if bpm is not None:
                live.bpm = bpm
                live.is_beat = self.beat.is_beat

        if self.harmony.active:
            live.harmony = self._run("harmony", self.harmony.analyze, frame, timestamp_ms)

        if self.spectral.active:
            live.spectrum = self._run(
                "spectral", self.spectral.analyze, frame, timestamp_ms, time_frame
            )

        return live

    def _check_frame_length(self, frame: FrequencyFrame) -> None:
        if frame.n_bins == 0:
            return
        if self._n_bins is None:
            self._n_bins = frame.n_bins
        elif frame.n_bins != self._n_bins:
            raise ValueError(
                f"frame has {frame.n_bins} bins but this session uses {self._n_bins}; "
                "call reset() before changing the frame length"
            )

    def _detect_scale(self, values: Optional[ArrayLike]) -> Optional[str]:
        if self.config.magnitude_scale != "auto":
            return self.config.magnitude_scale
        if values is None:
            return None
        return detect_magnitude_scale(np.asarray(values))

    @staticmethod
    def _run(name: str, step, *args):
        try:
            return step(*args)
        except Exception:
            logger.exception("%s analyzer failed on this tick", name)
            return None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_results(self) -> Dict[str, object]:
        """Latest snapshot of every analyzer, keyed by analyzer name."""
        return {name: self.analyzer(name).get_results() for name in self.ANALYZERS}
