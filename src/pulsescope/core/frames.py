"""
Frame containers handed to the analyzers once per tick.

Magnitudes arrive either as unit floats or as byte-scaled analyser output
(0-255); both are normalized to [0, 1] here so no analyzer has to care.
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np

ArrayLike = Union[Sequence[float], np.ndarray]

SCALES = ("auto", "unit", "byte")
BYTE_FULL_SCALE = 255.0
BYTE_MID_SCALE = 128.0


def _check_scale(scale: str) -> None:
    if scale not in SCALES:
        raise ValueError(f"unknown magnitude scale: {scale!r}")


def detect_magnitude_scale(values: np.ndarray) -> Optional[str]:
    """
    Guess whether one raw magnitude frame is unit- or byte-scaled.

    Integer arrays and frames with any value above 1 are byte-scaled;
    other frames with energy are unit-scaled. An all-zero float frame
    gives no evidence and returns None.
    """
    if np.issubdtype(values.dtype, np.integer):
        return "byte"
    finite = values[np.isfinite(values)]
    if finite.size == 0:
        return None
    peak = float(finite.max())
    if peak > 1.0:
        return "byte"
    if peak > 0.0:
        return "unit"
    return None


def detect_sample_scale(values: np.ndarray) -> str:
    """Byte waveforms are never negative; anything else is taken as centred."""
    if np.issubdtype(values.dtype, np.integer):
        return "byte"
    finite = values[np.isfinite(values)]
    if finite.size and float(finite.min()) >= 0.0 and float(finite.max()) > 1.0:
        return "byte"
    return "unit"


@dataclass
class FrequencyFrame:
    """Linear magnitude spectrum of one tick, normalized to [0, 1]."""

    magnitudes: np.ndarray
    sample_rate: int

    @classmethod
    def from_magnitudes(
        cls,
        values: Optional[ArrayLike],
        sample_rate: int,
        scale: str = "auto",
        n_bins: Optional[int] = None,
    ) -> "FrequencyFrame":
        """
        Build a frame from raw analyser output.

        Args:
            values: Per-bin magnitudes, or None for a missing frame.
            sample_rate: Audio sample rate in Hz.
            scale: "unit", "byte" or "auto" (see detect_magnitude_scale).
                Callers streaming a session should detect once and pass the
                resolved scale so quiet frames are not re-classified.
            n_bins: Length of the silent frame produced for missing input.

        Returns:
            FrequencyFrame with magnitudes clipped to [0, 1].
        """
        _check_scale(scale)
        if values is None:
            return cls.silent(n_bins or 0, sample_rate)

        raw = np.asarray(values)
        mags = raw.astype(np.float64)
        if scale == "auto":
            scale = detect_magnitude_scale(raw) or "unit"
        if scale == "byte":
            mags = mags / BYTE_FULL_SCALE
        mags = np.nan_to_num(mags, nan=0.0, posinf=1.0, neginf=0.0)
        return cls(magnitudes=np.clip(mags, 0.0, 1.0), sample_rate=sample_rate)

    @classmethod
    def silent(cls, n_bins: int, sample_rate: int) -> "FrequencyFrame":
        return cls(magnitudes=np.zeros(n_bins), sample_rate=sample_rate)

    @property
    def n_bins(self) -> int:
        return len(self.magnitudes)

    @property
    def nyquist(self) -> float:
        return self.sample_rate / 2

    @property
    def bin_width(self) -> float:
        """Hz covered by one bin."""
        if self.n_bins == 0:
            return 0.0
        return self.nyquist / self.n_bins

    @property
    def frequencies(self) -> np.ndarray:
        """Center frequency of every bin."""
        return np.arange(self.n_bins) * self.bin_width

    @property
    def is_silent(self) -> bool:
        return self.n_bins == 0 or not np.any(self.magnitudes > 0)

    def bin_for_frequency(self, frequency: float) -> int:
        if self.n_bins == 0:
            return 0
        return int(round(frequency / self.nyquist * self.n_bins))

    def frequency_for_bin(self, bin_index: int) -> float:
        return bin_index * self.bin_width

    def magnitude_at(self, frequency: float) -> float:
        """Magnitude of the bin nearest *frequency* (0 outside the spectrum)."""
        index = self.bin_for_frequency(frequency)
        if 0 <= index < self.n_bins:
            return float(self.magnitudes[index])
        return 0.0


@dataclass
class TimeDomainFrame:
    """Raw waveform of one tick, centred on zero."""

    samples: np.ndarray

    @classmethod
    def from_samples(
        cls, values: Optional[ArrayLike], scale: str = "auto"
    ) -> Optional["TimeDomainFrame"]:
        """
        Build a frame from raw analyser output.

        Byte-scaled input (integer, or non-negative with values above 1) is
        re-centred around the 128 mid-scale line; anything else, including a
        float waveform clipping slightly past 1, is taken as already centred.
        """
        _check_scale(scale)
        if values is None:
            return None
        raw = np.asarray(values)
        samples = raw.astype(np.float64)
        if scale == "auto":
            scale = detect_sample_scale(raw)
        if scale == "byte":
            samples = (samples - BYTE_MID_SCALE) / BYTE_MID_SCALE
        return cls(samples=samples)

    def __len__(self) -> int:
        return len(self.samples)
