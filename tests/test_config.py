"""Tests for the pydantic option models."""

import pytest
from pydantic import ValidationError

from pulsescope.config import (
    AnalysisConfig,
    BeatDetectorConfig,
    ConfigurationError,
    KeyChordConfig,
    SpectralConfig,
    build_config,
)


class TestDefaults:
    def test_key_chord_defaults(self):
        cfg = KeyChordConfig()
        assert cfg.key_confidence_threshold == 0.6
        assert cfg.chord_confidence_threshold == 0.08
        assert cfg.analysis_interval_ms == 500

    def test_spectral_defaults(self):
        cfg = SpectralConfig()
        assert cfg.update_rate_hz == 60
        assert cfg.peak_threshold == 0.7
        assert cfg.update_interval_ms == pytest.approx(1000 / 60)

    def test_analysis_config_nests_analyzer_configs(self):
        cfg = AnalysisConfig()
        assert cfg.sample_rate == 44100
        assert cfg.magnitude_scale == "auto"
        assert isinstance(cfg.beat, BeatDetectorConfig)
        assert isinstance(cfg.harmony, KeyChordConfig)
        assert isinstance(cfg.spectral, SpectralConfig)


class TestValidation:
    @pytest.mark.parametrize(
        "model,options,field",
        [
            (BeatDetectorConfig, {"min_bpm": 0}, "min_bpm"),
            (BeatDetectorConfig, {"smoothing_factor": 1.2}, "smoothing_factor"),
            (BeatDetectorConfig, {"history_length": 0}, "history_length"),
            (KeyChordConfig, {"key_confidence_threshold": -0.1}, "key_confidence_threshold"),
            (KeyChordConfig, {"analysis_interval_ms": 0}, "analysis_interval_ms"),
            (SpectralConfig, {"update_rate_hz": 5000}, "update_rate_hz"),
            (SpectralConfig, {"peak_threshold": 2}, "peak_threshold"),
        ],
    )
    def test_out_of_range_names_field(self, model, options, field):
        with pytest.raises(ConfigurationError) as exc:
            build_config(model, options)
        assert exc.value.field == field
        assert str(exc.value).startswith(field)

    def test_unknown_option_is_rejected(self):
        with pytest.raises(ConfigurationError) as exc:
            build_config(KeyChordConfig, {"window": 3})
        assert exc.value.field == "window"

    def test_min_above_max_bpm(self):
        with pytest.raises(ConfigurationError) as exc:
            build_config(BeatDetectorConfig, {"min_bpm": 150, "max_bpm": 100})
        assert exc.value.field == "min_bpm"

    def test_nested_field_path(self):
        with pytest.raises(ConfigurationError) as exc:
            build_config(AnalysisConfig, {"harmony": {"analysis_interval_ms": -5}})
        assert exc.value.field == "harmony.analysis_interval_ms"

    def test_bad_magnitude_scale(self):
        with pytest.raises(ConfigurationError) as exc:
            build_config(AnalysisConfig, {"magnitude_scale": "decibel"})
        assert exc.value.field == "magnitude_scale"

    def test_configuration_error_is_value_error(self):
        assert issubclass(ConfigurationError, ValueError)


class TestUpdates:
    def test_updated_returns_new_model(self):
        cfg = SpectralConfig()
        faster = cfg.updated(update_rate_hz=120)
        assert faster.update_rate_hz == 120
        assert cfg.update_rate_hz == 60

    def test_updated_keeps_untouched_options(self):
        cfg = BeatDetectorConfig(min_bpm=80).updated(max_bpm=160)
        assert (cfg.min_bpm, cfg.max_bpm) == (80, 160)

    def test_updated_validates(self):
        with pytest.raises(ConfigurationError):
            BeatDetectorConfig().updated(peak_threshold=3)

    def test_models_are_frozen(self):
        cfg = KeyChordConfig()
        with pytest.raises(ValidationError):
            cfg.analysis_interval_ms = 10
