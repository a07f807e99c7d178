from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from musicdedup.models.concurrency import WorkerPoolConfig
from musicdedup.utils.exceptions import ConfigurationError

# Title, artist, album and duration can each count toward a match
COMPARABLE_FIELDS = 4

DEFAULT_EDITION_SUFFIXES = [
    "deluxe edition",
    "deluxe",
    "remastered",
    "remaster",
    "live",
    "special edition",
    "limited edition",
    "expanded edition",
    "anniversary edition",
    "collector's edition",
    "bonus track version",
    "extended version",
]


class MatchProfile(str, Enum):
    """Pre-configured matching profiles."""

    STRICT = "strict"
    BALANCED = "balanced"
    LENIENT = "lenient"


class NormalizationOptions(BaseModel):
    """Text normalization toggles applied before scoring"""

    model_config = ConfigDict(frozen=True)

    ignore_case: bool = True
    ignore_punctuation: bool = True
    ignore_artist_prefixes: bool = True
    ignore_featuring: bool = False
    ignore_album_editions: bool = True
    edition_suffixes: List[str] = Field(
        default_factory=lambda: list(DEFAULT_EDITION_SUFFIXES),
        description="Trailing album markers stripped when ignore_album_editions is set",
    )

    @field_validator("edition_suffixes")
    @classmethod
    def validate_suffixes(cls, v: List[str]) -> List[str]:
        cleaned = [s.strip() for s in v if s and s.strip()]
        if len(cleaned) != len(v):
            raise ValueError("edition_suffixes must not contain blank entries")
        return cleaned


class FuzzyMatchConfig(BaseModel):
    """Thresholds, tolerances and normalization for one detection run.

    Immutable: a run is bound to a single config snapshot.
    """

    model_config = ConfigDict(frozen=True)

    name: str = "Balanced"

    # Similarity thresholds (0-100)
    title_threshold: float = Field(default=85.0, ge=0.0, le=100.0)
    artist_threshold: float = Field(default=90.0, ge=0.0, le=100.0)
    album_threshold: float = Field(default=85.0, ge=0.0, le=100.0)

    # Duration matching: either tolerance is enough
    duration_tolerance_seconds: int = Field(default=10, ge=0)
    duration_tolerance_percent: float = Field(default=5.0, ge=0.0, le=100.0)

    # Track numbers
    track_number_must_match: bool = False
    ignore_missing_track_number: bool = True

    # Tie-break signal only, never a duplicate criterion
    bitrate_tolerance_kbps: int = Field(default=64, ge=0)

    minimum_fields_matching: int = Field(default=2, ge=1, le=COMPARABLE_FIELDS)

    # Text fields empty on both sides count as a match
    count_empty_fields: bool = True

    normalization: NormalizationOptions = Field(default_factory=NormalizationOptions)

    @model_validator(mode="after")
    def validate_name(self) -> "FuzzyMatchConfig":
        if not self.name.strip():
            raise ValueError("name must not be blank")
        return self

    @classmethod
    def validated(cls, **values: Any) -> "FuzzyMatchConfig":
        """Build a config, raising ConfigurationError instead of ValidationError."""
        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid matching configuration: {e}") from e

    def validate_config(self) -> "FuzzyMatchConfig":
        """Re-run validation on this snapshot.

        Catches instances assembled without validation (model_construct)
        before a detection run starts.
        """
        try:
            return FuzzyMatchConfig.model_validate(self.model_dump())
        except ValidationError as e:
            raise ConfigurationError(f"Invalid matching configuration: {e}") from e

    # ==================== Profiles ====================

    @classmethod
    def strict(cls) -> "FuzzyMatchConfig":
        """Exact matching with every requirement enforced"""
        return cls(
            name="Strict",
            title_threshold=100.0,
            artist_threshold=100.0,
            album_threshold=100.0,
            duration_tolerance_seconds=0,
            duration_tolerance_percent=0.0,
            track_number_must_match=True,
            ignore_missing_track_number=False,
            minimum_fields_matching=4,
        )

    @classmethod
    def balanced(cls) -> "FuzzyMatchConfig":
        """Defaults recommended for typical collections"""
        return cls(name="Balanced")

    @classmethod
    def lenient(cls) -> "FuzzyMatchConfig":
        """Lower thresholds for collections with inconsistent tagging"""
        return cls(
            name="Lenient",
            title_threshold=70.0,
            artist_threshold=75.0,
            album_threshold=70.0,
            duration_tolerance_seconds=30,
            duration_tolerance_percent=10.0,
            minimum_fields_matching=2,
            normalization=NormalizationOptions(ignore_featuring=True),
        )

    @classmethod
    def for_profile(cls, profile: MatchProfile) -> "FuzzyMatchConfig":
        factories = {
            MatchProfile.STRICT: cls.strict,
            MatchProfile.BALANCED: cls.balanced,
            MatchProfile.LENIENT: cls.lenient,
        }
        return factories[profile]()

    def summary(self) -> str:
        """Human-readable description of this configuration."""
        opts = self.normalization
        flags = [
            label
            for label, enabled in (
                ("IgnoreCase", opts.ignore_case),
                ("IgnorePunct", opts.ignore_punctuation),
                ("IgnorePrefix", opts.ignore_artist_prefixes),
                ("IgnoreFeat", opts.ignore_featuring),
                ("IgnoreEditions", opts.ignore_album_editions),
            )
            if enabled
        ]
        lines = [
            f"Fuzzy Match Configuration: {self.name}",
            f"  Title Similarity: {self.title_threshold:.1f}%",
            f"  Artist Similarity: {self.artist_threshold:.1f}%",
            f"  Album Similarity: {self.album_threshold:.1f}%",
            f"  Duration Tolerance: {self.duration_tolerance_seconds}s"
            f" / {self.duration_tolerance_percent:.1f}%",
            "  Track Number Match: "
            + ("Required" if self.track_number_must_match else "Optional"),
            "  Empty Fields: " + ("Counted" if self.count_empty_fields else "Ignored"),
            f"  Min Fields Match: {self.minimum_fields_matching}/{COMPARABLE_FIELDS}",
            f"  Options: {' '.join(flags)}",
        ]
        return "\n".join(lines)


class LoggingSettings(BaseModel):
    level: str = Field(default="INFO", pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    json_output: bool = True


class DedupSettings(BaseModel):
    """Top-level settings file contents"""

    profile: Optional[MatchProfile] = None
    matching: Dict[str, Any] = Field(
        default_factory=dict,
        description="Overrides applied on top of the selected profile",
    )
    workers: WorkerPoolConfig = Field(default_factory=WorkerPoolConfig)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    def build_match_config(self) -> FuzzyMatchConfig:
        """Resolve profile + overrides into a validated FuzzyMatchConfig."""
        base = FuzzyMatchConfig.for_profile(self.profile or MatchProfile.BALANCED)
        if not self.matching:
            return base

        values = base.model_dump()
        overrides = dict(self.matching)
        normalization = overrides.pop("normalization", None)
        values.update(overrides)
        if normalization:
            values["normalization"] = {**values["normalization"], **normalization}
        return FuzzyMatchConfig.validated(**values)
