"""
Validated configuration for the live analyzers.

Every tunable is declared once here with its range; analyzers revalidate
through these models whenever an option changes, so a bad value is rejected
at set time and never reaches the per-frame code.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator


class ConfigurationError(ValueError):
    """Raised when an option is out of range or unknown."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"{field}: {message}")


class _AnalyzerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    def updated(self, **changes: Any):
        """Return a copy with *changes* applied, validated like a fresh model."""
        return build_config(type(self), {**self.model_dump(), **changes})


class BeatDetectorConfig(_AnalyzerConfig):
    """energy-onset tempo tracking"""

    min_bpm: float = Field(default=60, gt=0, description="slowest accepted tempo")
    max_bpm: float = Field(default=200, gt=0, description="fastest accepted tempo")
    peak_threshold: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="onset sensitivity above the local energy average",
    )
    history_length: int = Field(
        default=20, ge=1, description="number of smoothed bpm values kept"
    )
    smoothing_factor: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="weight of the previous bpm (0=follow detection, 1=freeze)",
    )

    @model_validator(mode="after")
    def check_bpm_range(self) -> "BeatDetectorConfig":
        if self.min_bpm > self.max_bpm:
            raise ValueError(
                f"min_bpm ({self.min_bpm}) must not exceed max_bpm ({self.max_bpm})"
            )
        return self


class KeyChordConfig(_AnalyzerConfig):
    """key and chord estimation"""

    key_confidence_threshold: float = Field(
        default=0.6, ge=0.0, le=1.0, description="minimum correlation to accept a key"
    )
    chord_confidence_threshold: float = Field(
        default=0.08,
        ge=0.0,
        le=1.0,
        description="minimum template score to accept a chord",
    )
    analysis_interval_ms: float = Field(
        default=500, gt=0, description="minimum time between analysis runs"
    )


class SpectralConfig(_AnalyzerConfig):
    """spectral descriptor extraction"""

    update_rate_hz: float = Field(
        default=60, gt=0, le=1000, description="maximum analysis runs per second"
    )
    peak_threshold: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="minimum normalized magnitude for a spectral peak",
    )

    @property
    def update_interval_ms(self) -> float:
        return 1000.0 / self.update_rate_hz


class AnalysisConfig(_AnalyzerConfig):
    """complete analysis configuration bundling all analyzer configs"""

    sample_rate: int = Field(default=44100, gt=0, description="audio sample rate in hz")
    magnitude_scale: Literal["auto", "unit", "byte"] = Field(
        default="auto",
        description="input magnitude range: unit=[0,1], byte=[0,255], auto=detect",
    )
    beat: BeatDetectorConfig = Field(default_factory=BeatDetectorConfig)
    harmony: KeyChordConfig = Field(default_factory=KeyChordConfig)
    spectral: SpectralConfig = Field(default_factory=SpectralConfig)


def build_config(model: type, options: dict):
    """
    Validate *options* against *model*.

    Raises:
        ConfigurationError: Naming the first offending field.
    """
    try:
        return model(**options)
    except ValidationError as exc:
        error = exc.errors()[0]
        loc = ".".join(str(part) for part in error["loc"])
        field = loc or _field_from_message(error["msg"], options)
        raise ConfigurationError(field, error["msg"]) from exc


def _field_from_message(message: str, options: dict) -> str:
    # model-level validators carry no location; recover the field from the text
    for name in options:
        if name in message:
            return name
    return "config"
