"""
Key and chord analysis from a live magnitude spectrum.

Each analysis run folds the spectrum into a 12-bin chroma vector, estimates
the key with the Krumhansl-Schmuckler method over recent chroma history,
matches the current chroma against 156 chord templates, and labels the
winning chord with a roman numeral relative to the key found in the same
run.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, List, Optional

import librosa
import numpy as np

from pulsescope.config import KeyChordConfig
from pulsescope.core import theory
from pulsescope.core.events import EventEmitter
from pulsescope.core.frames import FrequencyFrame
from pulsescope.core.theory import ChordQuality, KeySignature
from pulsescope.core.timing import TimeGate

logger = logging.getLogger(__name__)


@dataclass
class KeyEstimate:
    tonic: int = 0
    mode: str = "major"
    confidence: float = 0.0

    @property
    def tonic_name(self) -> str:
        return theory.pitch_class_name(self.tonic)

    @property
    def name(self) -> str:
        return theory.key_name(self.tonic, self.mode)


@dataclass
class ChordEstimate:
    root: int = 0
    quality: ChordQuality = ChordQuality.MAJOR
    roman_numeral: str = "I"
    confidence: float = 0.0

    @property
    def root_name(self) -> str:
        return theory.pitch_class_name(self.root)

    @property
    def symbol(self) -> str:
        return theory.chord_symbol(self.root, self.quality)


@dataclass
class ProgressionEntry:
    chord: ChordEstimate
    timestamp_ms: float


@dataclass
class HarmonyResult:
    """Snapshot returned by an analysis run and by get_results()."""

    key: KeyEstimate
    chord: ChordEstimate
    chroma: np.ndarray
    progression: List[Dict] = field(default_factory=list)
    active: bool = False


@lru_cache(maxsize=16)
def _pitch_class_map(n_bins: int, sample_rate: int) -> tuple:
    """
    Bins inside the chroma range and their pitch classes.

    Returns:
        (bin_indices, pitch_classes) as int arrays.
    """
    bin_width = (sample_rate / 2) / n_bins
    bins = np.arange(1, n_bins)
    freqs = bins * bin_width
    in_range = (freqs >= KeyChordAnalyzer.CHROMA_MIN_HZ) & (
        freqs <= KeyChordAnalyzer.CHROMA_MAX_HZ
    )
    bins = bins[in_range]
    midi = librosa.hz_to_midi(freqs[in_range])
    pitch_classes = np.mod(np.round(midi).astype(int), 12)
    return bins, pitch_classes


class KeyChordAnalyzer:
    """
    Throttled key/chord estimator.

    Events:
        key_detected(key)                 KeyEstimate, only on change
        chord_detected(chord)             ChordEstimate, every accepted run
        progression_update(progression)   list of dicts, only on chord change
    """

    EVENTS = ("key_detected", "chord_detected", "progression_update")

    CHROMA_MIN_HZ = 80.0
    CHROMA_MAX_HZ = 5000.0
    CHROMA_HISTORY_SIZE = 50
    KEY_WINDOW = 20
    MIN_KEY_HISTORY = 10
    PROGRESSION_WINDOW_MS = 30_000.0
    PROGRESSION_LENGTH = 8

    _KEY_PROFILES, _KEY_LABELS = theory.key_profiles()
    _CHORD_TEMPLATES, _CHORD_LABELS = theory.chord_candidates()
    _CHORD_SIZES = _CHORD_TEMPLATES.sum(axis=1)

    def __init__(self, config: Optional[KeyChordConfig] = None):
        self.config = config or KeyChordConfig()
        self.events = EventEmitter(self.EVENTS)
        self.active = False

        self.chroma = np.zeros(12)
        self.current_key = KeyEstimate()
        self.current_chord = ChordEstimate()
        self._chroma_history: deque = deque(maxlen=self.CHROMA_HISTORY_SIZE)
        self._progression: List[ProgressionEntry] = []
        self._gate = TimeGate(self.config.analysis_interval_ms)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def on(self, event: str, handler):
        return self.events.on(event, handler)

    def off(self, event: str, handler) -> None:
        self.events.off(event, handler)

    def start(self) -> None:
        self.active = True
        self._chroma_history.clear()
        self._progression.clear()
        logger.info("key/chord analysis started")

    def stop(self) -> None:
        self.active = False
        logger.info("key/chord analysis stopped")

    def reset(self) -> None:
        self.chroma = np.zeros(12)
        self.current_key = KeyEstimate()
        self.current_chord = ChordEstimate()
        self._chroma_history.clear()
        self._progression.clear()
        self._gate.reset()

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def configure(self, **options) -> KeyChordConfig:
        self.config = self.config.updated(**options)
        self._gate.interval_ms = self.config.analysis_interval_ms
        return self.config

    def set_key_confidence_threshold(self, threshold: float) -> None:
        self.configure(key_confidence_threshold=threshold)

    def set_chord_confidence_threshold(self, threshold: float) -> None:
        self.configure(chord_confidence_threshold=threshold)

    def set_analysis_interval(self, interval_ms: float) -> None:
        self.configure(analysis_interval_ms=interval_ms)

    # ------------------------------------------------------------------
    # Per-tick entry point
    # ------------------------------------------------------------------

    def analyze(self, frame: FrequencyFrame, timestamp_ms: float) -> Optional[HarmonyResult]:
        """
        Run one analysis if the interval has elapsed.

        Args:
            frame: Normalized magnitude spectrum.
            timestamp_ms: Caller clock in milliseconds.

        Returns:
            HarmonyResult for a run, None when inactive or throttled.
        """
        if not self.active or not self._gate.ready(timestamp_ms):
            return None
        if self._gate.rewound:
            logger.warning(
                "timestamp went backwards to %.1f ms; clearing chord progression",
                timestamp_ms,
            )
            self._progression.clear()

        self.chroma = self.compute_chroma(frame)
        self._chroma_history.append(self.chroma.copy())

        if len(self._chroma_history) >= self.MIN_KEY_HISTORY:
            self._detect_key()
        self._detect_chord(timestamp_ms)

        return HarmonyResult(
            key=self.current_key,
            chord=self.current_chord,
            chroma=self.chroma.copy(),
            progression=self.recent_progression(),
            active=self.active,
        )

    # ------------------------------------------------------------------
    # Chroma
    # ------------------------------------------------------------------

    @classmethod
    def compute_chroma(cls, frame: FrequencyFrame) -> np.ndarray:
        """
        Fold a spectrum into 12 pitch classes.

        Squared magnitudes of bins between 80 Hz and 5 kHz are summed per
        pitch class; the result sums to 1, or stays all-zero for silence.
        """
        if frame.n_bins < 2:
            return np.zeros(12)
        bins, pitch_classes = _pitch_class_map(frame.n_bins, int(frame.sample_rate))
        energy = np.square(frame.magnitudes[bins])
        chroma = np.bincount(pitch_classes, weights=energy, minlength=12).astype(float)
        total = chroma.sum()
        if total > 0:
            chroma /= total
        return chroma

    # ------------------------------------------------------------------
    # Key (Krumhansl-Schmuckler)
    # ------------------------------------------------------------------

    def estimate_key(self, chroma: np.ndarray) -> KeyEstimate:
        """Best of the 24 key profiles for *chroma*; confidence is r clamped to [0, 1]."""
        correlations = theory.pearson_correlations(chroma, self._KEY_PROFILES)
        best = int(np.argmax(correlations))
        tonic, mode = self._KEY_LABELS[best]
        confidence = float(np.clip(correlations[best], 0.0, 1.0))
        return KeyEstimate(tonic=tonic, mode=mode, confidence=confidence)

    def _detect_key(self) -> None:
        window = list(self._chroma_history)[-self.KEY_WINDOW:]
        estimate = self.estimate_key(np.mean(window, axis=0))
        if estimate.confidence <= self.config.key_confidence_threshold:
            return

        changed = (estimate.tonic, estimate.mode) != (
            self.current_key.tonic,
            self.current_key.mode,
        )
        self.current_key = estimate
        if changed:
            logger.debug("key -> %s (%.2f)", estimate.name, estimate.confidence)
            self.events.emit("key_detected", estimate)

    # ------------------------------------------------------------------
    # Chords
    # ------------------------------------------------------------------

    def score_chords(self, chroma: np.ndarray) -> np.ndarray:
        """Template score of every (root, quality) candidate, in [0, 1]."""
        return (self._CHORD_TEMPLATES @ chroma) / self._CHORD_SIZES

    def _detect_chord(self, timestamp_ms: float) -> None:
        scores = self.score_chords(self.chroma)
        best = int(np.argmax(scores))
        score = float(scores[best])
        if score <= 0 or score <= self.config.chord_confidence_threshold:
            return

        root, quality = self._CHORD_LABELS[best]
        last = self._progression[-1].chord if self._progression else None
        changed = last is None or (root, quality) != (last.root, last.quality)
        self.current_chord = ChordEstimate(
            root=root,
            quality=quality,
            roman_numeral=theory.roman_numeral(
                self.current_key.tonic, self.current_key.mode, root, quality
            ),
            confidence=score,
        )
        self.events.emit("chord_detected", self.current_chord)

        if changed:
            logger.debug(
                "chord -> %s (%s)", self.current_chord.symbol, self.current_chord.roman_numeral
            )
            self._progression.append(ProgressionEntry(self.current_chord, timestamp_ms))
            self._progression = [
                entry
                for entry in self._progression
                if timestamp_ms - entry.timestamp_ms < self.PROGRESSION_WINDOW_MS
            ]
            self.events.emit("progression_update", self.recent_progression())

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def progression(self) -> List[ProgressionEntry]:
        return list(self._progression)

    def recent_progression(self, max_chords: int = PROGRESSION_LENGTH) -> List[Dict]:
        return [
            {
                "roman": entry.chord.roman_numeral,
                "chord": entry.chord.symbol,
                "confidence": entry.chord.confidence,
            }
            for entry in self._progression[-max_chords:]
        ]

    def get_key_signature(self) -> KeySignature:
        return theory.key_signature(self.current_key.tonic, self.current_key.mode)

    def get_results(self) -> HarmonyResult:
        return HarmonyResult(
            key=self.current_key,
            chord=self.current_chord,
            chroma=self.chroma.copy(),
            progression=self.recent_progression(),
            active=self.active,
        )
