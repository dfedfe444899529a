"""Tests for the music theory tables."""

import numpy as np
import pytest

from pulsescope.core import theory
from pulsescope.core.theory import ChordQuality as Q


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

class TestTemplates:
    def test_key_profiles_order(self):
        profiles, labels = theory.key_profiles()
        assert profiles.shape == (24, 12)
        assert labels[0] == (0, "major")
        assert labels[12] == (0, "minor")
        np.testing.assert_allclose(profiles[7], np.roll(theory.MAJOR_PROFILE, 7))

    def test_chord_candidates_are_root_major(self):
        templates, labels = theory.chord_candidates()
        assert templates.shape == (156, 12)
        assert labels[0] == (0, Q.MAJOR)
        assert labels[13] == (1, Q.MAJOR)
        # D minor
        d_minor = templates[labels.index((2, Q.MINOR))]
        assert set(np.flatnonzero(d_minor)) == {2, 5, 9}

    def test_pearson_against_itself(self):
        profiles, _ = theory.key_profiles()
        r = theory.pearson_correlations(profiles[3], profiles)
        assert r[3] == pytest.approx(1.0)
        assert np.all(r <= 1.0 + 1e-12)

    def test_pearson_flat_vector_is_zero(self):
        profiles, _ = theory.key_profiles()
        r = theory.pearson_correlations(np.zeros(12), profiles)
        assert np.all(r == 0)


# ---------------------------------------------------------------------------
# Roman numerals
# ---------------------------------------------------------------------------

class TestRomanNumerals:
    @pytest.mark.parametrize(
        "root,quality,expected",
        [
            (0, Q.MAJOR, "I"),
            (2, Q.MINOR, "ii"),
            (4, Q.MINOR, "iii"),
            (5, Q.MAJOR, "IV"),
            (7, Q.DOMINANT7, "V7"),
            (9, Q.MINOR, "vi"),
            (11, Q.DIMINISHED, "vii°"),
            (11, Q.HALF_DIMINISHED7, "viiø7"),
            (11, Q.DIMINISHED7, "vii°7"),
            (0, Q.MAJOR7, "I7"),
            (2, Q.MINOR9, "ii9"),
            (0, Q.AUGMENTED, "I+"),
            # chord third overrides the diatonic case
            (2, Q.MAJOR, "II"),
            (5, Q.MINOR, "iv"),
            # sus chords keep the diatonic case
            (7, Q.SUS4, "Vsus4"),
            (2, Q.SUS2, "iisus2"),
        ],
    )
    def test_c_major(self, root, quality, expected):
        assert theory.roman_numeral(0, "major", root, quality) == expected

    @pytest.mark.parametrize(
        "root,quality,expected",
        [
            (9, Q.MINOR, "i"),
            (11, Q.DIMINISHED, "ii°"),
            (0, Q.MAJOR, "III"),
            (2, Q.MINOR, "iv"),
            (4, Q.MINOR, "v"),
            (4, Q.MAJOR, "V"),
            (5, Q.MAJOR, "VI"),
            (7, Q.MAJOR, "VII"),
        ],
    )
    def test_a_minor(self, root, quality, expected):
        assert theory.roman_numeral(9, "minor", root, quality) == expected

    @pytest.mark.parametrize(
        "mode,offset,quality,expected",
        [
            ("major", 1, Q.MAJOR, "♭II"),
            ("major", 3, Q.MAJOR, "♭III"),
            ("major", 3, Q.MINOR, "♭iii"),
            ("major", 6, Q.DIMINISHED, "♯iv°"),
            ("major", 8, Q.MAJOR, "♭VI"),
            ("major", 10, Q.MAJOR, "♭VII"),
            ("minor", 1, Q.MAJOR, "♭II"),
            ("minor", 4, Q.MAJOR, "♯III"),
            ("minor", 6, Q.DIMINISHED, "♯iv°"),
            ("minor", 9, Q.MINOR, "♯vi"),
            ("minor", 11, Q.DIMINISHED, "♯vii°"),
        ],
    )
    def test_chromatic_roots(self, mode, offset, quality, expected):
        tonic = 2  # D
        root = (tonic + offset) % 12
        assert theory.roman_numeral(tonic, mode, root, quality) == expected

    def test_every_root_has_a_numeral(self):
        for mode in theory.MODES:
            for root in range(12):
                assert theory.roman_numeral(0, mode, root, Q.MAJOR)

    def test_same_inputs_same_numeral(self):
        first = [theory.roman_numeral(4, "minor", r, q) for r in range(12) for q in Q]
        second = [theory.roman_numeral(4, "minor", r, q) for r in range(12) for q in Q]
        assert first == second

    def test_accepts_quality_values(self):
        assert theory.roman_numeral(0, "major", 7, "dominant7") == "V7"


# ---------------------------------------------------------------------------
# Names and key signatures
# ---------------------------------------------------------------------------

class TestNames:
    def test_chord_symbol(self):
        assert theory.chord_symbol(9, Q.MINOR7) == "Am7"
        assert theory.chord_symbol(0, Q.MAJOR) == "C"
        assert theory.chord_symbol(11, Q.HALF_DIMINISHED7) == "Bø7"

    def test_pitch_class_name_wraps(self):
        assert theory.pitch_class_name(13) == "C#"

    @pytest.mark.parametrize(
        "tonic,mode,name",
        [
            (0, "major", "C major"),
            (10, "major", "Bb major"),
            (1, "major", "Db major"),
            (6, "major", "F# major"),
            (3, "minor", "D# minor"),
            (5, "minor", "F minor"),
        ],
    )
    def test_key_name(self, tonic, mode, name):
        assert theory.key_name(tonic, mode) == name

    @pytest.mark.parametrize(
        "tonic,mode,sharps,flats",
        [
            (0, "major", 0, 0),
            (9, "minor", 0, 0),
            (7, "major", 1, 0),
            (4, "minor", 1, 0),
            (5, "major", 0, 1),
            (2, "minor", 0, 1),
            (6, "major", 6, 0),
            (1, "major", 0, 5),
        ],
    )
    def test_key_signature_counts(self, tonic, mode, sharps, flats):
        sig = theory.key_signature(tonic, mode)
        assert (sig.sharps, sig.flats) == (sharps, flats)
        assert len(sig.accidentals) == sharps + flats

    def test_key_signature_accidentals(self):
        assert theory.key_signature(2, "major").accidentals == ["F#", "C#"]
        assert theory.key_signature(3, "major").accidentals == ["Bb", "Eb", "Ab"]

    def test_relative_keys_share_signatures(self):
        for tonic in range(12):
            assert theory.key_signature(tonic, "major") == theory.key_signature(
                (tonic + 9) % 12, "minor"
            )


class TestMusicalNote:
    def test_concert_a(self):
        note = theory.musical_note(440.0)
        assert (note.note, note.octave, note.cents) == ("A", 4, 0)

    def test_middle_c(self):
        note = theory.musical_note(261.63)
        assert (note.note, note.octave, note.cents) == ("C", 4, 0)

    def test_cents_offset(self):
        note = theory.musical_note(450.0)
        assert note.note == "A"
        assert note.cents == 39

    def test_rejects_non_positive(self):
        with pytest.raises(ValueError):
            theory.musical_note(0.0)
