"""Shared synthetic-frame fixtures."""

import numpy as np
import pytest

from pulsescope.core.frames import FrequencyFrame

TEST_SR = 44100
TEST_BINS = 1024


def bin_for_pitch_class(pitch_class, n_bins=TEST_BINS, sr=TEST_SR, low=400.0, high=2000.0):
    """Bin between *low* and *high* Hz sitting closest to a note of *pitch_class*."""
    bin_width = (sr / 2) / n_bins
    bins = np.arange(1, n_bins)
    freqs = bins * bin_width
    mask = (freqs >= low) & (freqs <= high)
    midi = 12 * np.log2(freqs[mask] / 440.0) + 69
    nearest = np.round(midi)
    candidates = np.where(np.mod(nearest, 12) == pitch_class)[0]
    best = candidates[np.argmin(np.abs(midi[candidates] - nearest[candidates]))]
    return int(bins[mask][best])


def pitch_class_spectrum(weights, n_bins=TEST_BINS, sr=TEST_SR):
    """
    Magnitudes whose chroma is proportional to *weights*.

    Args:
        weights: 12 chroma weights (or a {pitch_class: weight} dict).
    """
    if isinstance(weights, dict):
        weights = [weights.get(pc, 0.0) for pc in range(12)]
    weights = np.asarray(weights, dtype=float)
    mags = np.zeros(n_bins)
    for pc, w in enumerate(weights):
        if w > 0:
            mags[bin_for_pitch_class(pc, n_bins, sr)] = np.sqrt(w / weights.max())
    return mags


def impulse_frame(n_bins=TEST_BINS, level=1.0):
    return np.full(n_bins, level)


@pytest.fixture
def silent_frame():
    return FrequencyFrame.silent(TEST_BINS, TEST_SR)


@pytest.fixture
def c_major_triad_frame():
    """Equal chroma energy at C, E and G."""
    return FrequencyFrame(pitch_class_spectrum({0: 1.0, 4: 1.0, 7: 1.0}), TEST_SR)


@pytest.fixture
def uniform_frame():
    return FrequencyFrame(np.full(TEST_BINS, 0.5), TEST_SR)


@pytest.fixture
def single_line_frame():
    mags = np.zeros(TEST_BINS)
    mags[100] = 1.0
    return FrequencyFrame(mags, TEST_SR)


@pytest.fixture
def harmonic_frame():
    """Fundamental at bin 20 (~431 Hz) with 2nd and 3rd harmonics."""
    mags = np.zeros(TEST_BINS)
    mags[20] = 1.0
    mags[40] = 0.9
    mags[60] = 0.8
    return FrequencyFrame(mags, TEST_SR)
