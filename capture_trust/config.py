"""
Application configuration using Pydantic Settings.
Loads from environment variables and .env file.

Engine tunables live in two nested, frozen models so a service can be
constructed with an explicit config in tests and with the environment-backed
one in the API. Nested values are overridden with a double underscore, e.g.
``AGGREGATION__AGREEMENT_BOOST=0.03``.
"""

from functools import lru_cache
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AggregationConfig(BaseModel):
    """Weights and thresholds used by the confidence aggregator."""

    model_config = ConfigDict(frozen=True)

    lidar_weight: float = Field(default=0.55, ge=0.0, le=1.0)
    moire_weight: float = Field(default=0.15, ge=0.0, le=1.0)
    texture_weight: float = Field(default=0.15, ge=0.0, le=1.0)
    artifacts_weight: float = Field(default=0.15, ge=0.0, le=1.0)

    # Confidence level thresholds (inclusive lower bounds)
    very_high_threshold: float = 0.95
    high_threshold: float = 0.75
    medium_threshold: float = 0.40
    low_threshold: float = 0.15

    agreement_boost: float = 0.05
    disagreement_tolerance: float = 0.3

    # LiDAR pass thresholds, mirrored from the depth analysis service
    depth_variance_threshold: float = 0.5
    depth_layers_threshold: int = 3
    edge_coherence_threshold: float = 0.3
    depth_pass_floor: float = 0.7
    depth_fail_ceiling: float = 0.3
    low_confidence_primary_margin: float = 0.1

    # Supporting detector confidence needed to raise screen/print flags
    detection_flag_threshold: float = 0.5

    ambiguous_score_low: float = 0.4
    ambiguous_score_high: float = 0.6
    boundary_margin: float = 0.02

    target_ms: int = 10

    @model_validator(mode="after")
    def check_weights(self) -> "AggregationConfig":
        total = self.lidar_weight + self.moire_weight + self.texture_weight + self.artifacts_weight
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"Base method weights must sum to 1.0, got {total:.4f}")
        return self


class CrossValidationConfig(BaseModel):
    """Interval widths, anomaly thresholds and penalties for cross-validation."""

    model_config = ConfigDict(frozen=True)

    # Base interval half-widths; lower means a more reliable method
    interval_widths: Dict[str, float] = Field(
        default_factory=lambda: {
            "lidar": 0.05,
            "moire": 0.10,
            "texture": 0.10,
            "artifacts": 0.12,
        }
    )
    mid_range_boost: float = 1.0

    # Anomaly thresholds
    pairwise_anomaly_threshold: float = 0.5
    too_perfect_spread: float = 0.02
    isolated_deviation: float = 0.4
    isolated_high_deviation: float = 0.6
    consensus_spread: float = 0.25
    contradiction_high: float = 0.7
    contradiction_low: float = 0.3
    boundary_center: float = 0.5
    boundary_band: float = 0.1

    # Temporal thresholds
    sudden_jump_threshold: float = 0.3
    oscillation_step: float = 0.1
    drift_threshold: float = 0.2
    max_expected_variance: float = 0.1

    # Penalty per severity, plus the hard cap on their sum
    low_penalty: float = 0.05
    medium_penalty: float = 0.15
    high_penalty: float = 0.30
    temporal_penalty_per_anomaly: float = 0.05
    max_penalty: float = 0.5

    single_frame_target_ms: int = 5
    multi_frame_target_ms: int = 20


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Application Settings
    app_env: str = "development"
    debug: bool = False
    app_name: str = "Capture Trust"

    # Logging
    log_level: str = "INFO"
    log_format: str = "text"

    # Detection pipeline
    algorithm_version: str = "1.0"
    detector_timeout_seconds: float = 2.0
    orchestrator_target_ms: int = 200

    aggregation: AggregationConfig = Field(default_factory=AggregationConfig)
    cross_validation: CrossValidationConfig = Field(default_factory=CrossValidationConfig)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
