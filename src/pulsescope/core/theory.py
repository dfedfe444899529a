"""
Music theory tables used by the key/chord analyzer.

Pitch classes are integers 0-11 starting at C. Everything here is pure:
the same inputs always give the same output.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Tuple

import librosa
import numpy as np

NOTE_NAMES = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]
NOTE_NAMES_FLAT = ["C", "Db", "D", "Eb", "E", "F", "Gb", "G", "Ab", "A", "Bb", "B"]

MODES = ("major", "minor")

# Krumhansl & Kessler (1982) probe-tone profiles
MAJOR_PROFILE = np.array(
    [6.35, 2.23, 3.48, 2.33, 4.38, 4.09, 2.52, 5.19, 2.39, 3.66, 2.29, 2.88]
)
MINOR_PROFILE = np.array(
    [6.33, 2.68, 3.52, 5.38, 2.60, 3.53, 2.54, 4.75, 3.98, 2.69, 3.34, 3.17]
)


class ChordQuality(str, Enum):
    MAJOR = "major"
    MINOR = "minor"
    DIMINISHED = "diminished"
    AUGMENTED = "augmented"
    MAJOR7 = "major7"
    MINOR7 = "minor7"
    DOMINANT7 = "dominant7"
    DIMINISHED7 = "diminished7"
    HALF_DIMINISHED7 = "halfdiminished7"
    MAJOR9 = "major9"
    MINOR9 = "minor9"
    SUS2 = "sus2"
    SUS4 = "sus4"


def _tones(*intervals: int) -> np.ndarray:
    template = np.zeros(12)
    template[list(intervals)] = 1.0
    return template


CHORD_TEMPLATES: Dict[ChordQuality, np.ndarray] = {
    ChordQuality.MAJOR: _tones(0, 4, 7),
    ChordQuality.MINOR: _tones(0, 3, 7),
    ChordQuality.DIMINISHED: _tones(0, 3, 6),
    ChordQuality.AUGMENTED: _tones(0, 4, 8),
    ChordQuality.MAJOR7: _tones(0, 4, 7, 11),
    ChordQuality.MINOR7: _tones(0, 3, 7, 10),
    ChordQuality.DOMINANT7: _tones(0, 4, 7, 10),
    ChordQuality.DIMINISHED7: _tones(0, 3, 6, 9),
    ChordQuality.HALF_DIMINISHED7: _tones(0, 3, 6, 10),
    ChordQuality.MAJOR9: _tones(0, 2, 4, 7, 11),
    ChordQuality.MINOR9: _tones(0, 2, 3, 7, 10),
    ChordQuality.SUS2: _tones(0, 2, 7),
    ChordQuality.SUS4: _tones(0, 5, 7),
}

CHORD_SYMBOLS: Dict[ChordQuality, str] = {
    ChordQuality.MAJOR: "",
    ChordQuality.MINOR: "m",
    ChordQuality.DIMINISHED: "°",
    ChordQuality.AUGMENTED: "+",
    ChordQuality.MAJOR7: "maj7",
    ChordQuality.MINOR7: "m7",
    ChordQuality.DOMINANT7: "7",
    ChordQuality.DIMINISHED7: "°7",
    ChordQuality.HALF_DIMINISHED7: "ø7",
    ChordQuality.MAJOR9: "maj9",
    ChordQuality.MINOR9: "m9",
    ChordQuality.SUS2: "sus2",
    ChordQuality.SUS4: "sus4",
}

_MAJOR_THIRD = {
    ChordQuality.MAJOR,
    ChordQuality.AUGMENTED,
    ChordQuality.MAJOR7,
    ChordQuality.DOMINANT7,
    ChordQuality.MAJOR9,
}
_MINOR_THIRD = {
    ChordQuality.MINOR,
    ChordQuality.DIMINISHED,
    ChordQuality.MINOR7,
    ChordQuality.DIMINISHED7,
    ChordQuality.HALF_DIMINISHED7,
    ChordQuality.MINOR9,
}

_ROMAN = ["I", "II", "III", "IV", "V", "VI", "VII"]

# semitone offset from the tonic -> scale degree, per mode
_SCALE_DEGREES = {
    "major": {0: 0, 2: 1, 4: 2, 5: 3, 7: 4, 9: 5, 11: 6},
    "minor": {0: 0, 2: 1, 3: 2, 5: 3, 7: 4, 8: 5, 10: 6},
}

# degrees whose diatonic triad is minor or diminished (lower-case numerals)
_LOWER_DEGREES = {
    "major": {1, 2, 5, 6},
    "minor": {0, 1, 3, 4},
}

_CHROMATIC_DEGREES = {
    "major": {1: "♭II", 3: "♭III", 6: "♯IV", 8: "♭VI", 10: "♭VII"},
    "minor": {1: "♭II", 4: "♯III", 6: "♯IV", 9: "♯VI", 11: "♯VII"},
}


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

def key_profiles() -> Tuple[np.ndarray, List[Tuple[int, str]]]:
    """
    All 24 rotated key profiles.

    Returns:
        (profiles, labels): a (24, 12) matrix and the matching
        (tonic, mode) pairs; majors first, then minors.
    """
    rows = []
    labels = []
    for mode, profile in (("major", MAJOR_PROFILE), ("minor", MINOR_PROFILE)):
        for tonic in range(12):
            rows.append(np.roll(profile, tonic))
            labels.append((tonic, mode))
    return np.vstack(rows), labels


def chord_candidates() -> Tuple[np.ndarray, List[Tuple[int, ChordQuality]]]:
    """
    All 156 rotated chord templates, ordered root by root.

    Returns:
        (templates, labels): a (156, 12) binary matrix and the matching
        (root, quality) pairs.
    """
    rows = []
    labels = []
    for root in range(12):
        for quality, template in CHORD_TEMPLATES.items():
            rows.append(np.roll(template, root))
            labels.append((root, quality))
    return np.vstack(rows), labels


def pearson_correlations(vector: np.ndarray, profiles: np.ndarray) -> np.ndarray:
    """Pearson r of *vector* against every row of *profiles* (0 where undefined)."""
    v = vector - vector.mean()
    p = profiles - profiles.mean(axis=1, keepdims=True)
    numerator = p @ v
    denominator = np.sqrt(np.sum(p * p, axis=1) * np.dot(v, v))
    return np.divide(
        numerator, denominator, out=np.zeros_like(numerator), where=denominator > 0
    )


# ---------------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------------

def pitch_class_name(pitch_class: int) -> str:
    return NOTE_NAMES[pitch_class % 12]


def chord_symbol(root: int, quality: ChordQuality) -> str:
    """e.g. (9, MINOR7) -> "Am7"."""
    return f"{pitch_class_name(root)}{CHORD_SYMBOLS[ChordQuality(quality)]}"


def roman_numeral(key_tonic: int, key_mode: str, root: int, quality: ChordQuality) -> str:
    """
    Roman numeral of a chord relative to a key.

    Diatonic roots take the case of the diatonic triad on that degree
    unless the chord's own third says otherwise (a major chord on ii reads
    "II"); sus chords keep the diatonic case. Roots outside the scale get
    a flat or sharp prefixed numeral cased by the chord's third.
    """
    quality = ChordQuality(quality)
    offset = (root - key_tonic) % 12

    degree = _SCALE_DEGREES[key_mode].get(offset)
    if degree is None:
        numeral = _CHROMATIC_DEGREES[key_mode][offset]
        lower = quality in _MINOR_THIRD
    else:
        numeral = _ROMAN[degree]
        if quality in _MAJOR_THIRD:
            lower = False
        elif quality in _MINOR_THIRD:
            lower = True
        else:
            lower = degree in _LOWER_DEGREES[key_mode]

    if lower:
        numeral = numeral.lower()
    return numeral + _roman_suffix(quality)


def _roman_suffix(quality: ChordQuality) -> str:
    if quality is ChordQuality.DIMINISHED:
        return "°"
    if quality is ChordQuality.DIMINISHED7:
        return "°7"
    if quality is ChordQuality.HALF_DIMINISHED7:
        return "ø7"
    if quality is ChordQuality.AUGMENTED:
        return "+"
    if quality.value.endswith("7"):
        return "7"
    if quality.value.endswith("9"):
        return "9"
    if quality in (ChordQuality.SUS2, ChordQuality.SUS4):
        return quality.value
    return ""


# ---------------------------------------------------------------------------
# Key signatures
# ---------------------------------------------------------------------------

@dataclass
class KeySignature:
    sharps: int = 0
    flats: int = 0
    accidentals: List[str] = field(default_factory=list)


_SHARP_ORDER = ["F#", "C#", "G#", "D#", "A#", "E#"]
_FLAT_ORDER = ["Bb", "Eb", "Ab", "Db", "Gb", "Cb"]

# circle-of-fifths position of each tonic's conventional spelling:
# positive = sharps, negative = flats
_MAJOR_FIFTHS = {0: 0, 7: 1, 2: 2, 9: 3, 4: 4, 11: 5, 6: 6, 5: -1, 10: -2, 3: -3, 8: -4, 1: -5}
_MINOR_FIFTHS = {9: 0, 4: 1, 11: 2, 6: 3, 1: 4, 8: 5, 3: 6, 2: -1, 7: -2, 0: -3, 5: -4, 10: -5}


def key_signature(tonic: int, mode: str) -> KeySignature:
    """
    Conventional key signature for (tonic, mode).

    F# major and D# minor use six sharps; the enharmonic six-flat keys
    (Gb major, Eb minor) are not reachable from a sharp-named tonic.
    """
    table = _MAJOR_FIFTHS if mode == "major" else _MINOR_FIFTHS
    fifths = table[tonic % 12]
    if fifths >= 0:
        return KeySignature(sharps=fifths, accidentals=_SHARP_ORDER[:fifths])
    return KeySignature(flats=-fifths, accidentals=_FLAT_ORDER[:-fifths])


def key_name(tonic: int, mode: str) -> str:
    """Conventional spelling, e.g. (10, "major") -> "Bb major"."""
    table = _MAJOR_FIFTHS if mode == "major" else _MINOR_FIFTHS
    names = NOTE_NAMES_FLAT if table[tonic % 12] < 0 else NOTE_NAMES
    return f"{names[tonic % 12]} {mode}"


# ---------------------------------------------------------------------------
# Notes
# ---------------------------------------------------------------------------

@dataclass
class NoteInfo:
    note: str
    octave: int
    frequency: float
    cents: int


def musical_note(frequency: float) -> NoteInfo:
    """Nearest equal-tempered note to *frequency* (A4 = 440 Hz)."""
    if frequency <= 0:
        raise ValueError(f"frequency must be positive, got {frequency}")
    midi = float(librosa.hz_to_midi(frequency))
    nearest = int(round(midi))
    return NoteInfo(
        note=NOTE_NAMES[nearest % 12],
        octave=nearest // 12 - 1,
        frequency=float(frequency),
        cents=int(round((midi - nearest) * 100)),
    )
