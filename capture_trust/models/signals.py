"""
Detector output contracts.

These are the results produced by the four external detectors. The engine
only reads them; a result whose status is not successful is treated as
"present but failed" and excluded from aggregation.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class DepthStatus(str, Enum):
    """LiDAR depth analysis status."""
    COMPLETED = "completed"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"


class MoireStatus(str, Enum):
    """Moire detection status."""
    COMPLETED = "completed"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"


class ScreenType(str, Enum):
    """Display technology inferred from the moire pattern."""
    LCD = "lcd"
    OLED = "oled"
    HIGH_REFRESH = "high_refresh"
    UNKNOWN = "unknown"


class TextureType(str, Enum):
    """Surface material classes recognized by the texture classifier."""
    REAL_SCENE = "real_scene"
    LCD_SCREEN = "lcd_screen"
    OLED_SCREEN = "oled_screen"
    PRINTED_PAPER = "printed_paper"
    UNKNOWN = "unknown"

    @property
    def is_screen(self) -> bool:
        return self in (TextureType.LCD_SCREEN, TextureType.OLED_SCREEN)

    @property
    def is_recapture(self) -> bool:
        return self.is_screen or self == TextureType.PRINTED_PAPER


class TextureStatus(str, Enum):
    """Texture classification status."""
    SUCCESS = "success"
    UNAVAILABLE = "unavailable"
    ERROR = "error"


class ArtifactStatus(str, Enum):
    """Artifact detection status."""
    SUCCESS = "success"
    UNAVAILABLE = "unavailable"
    ERROR = "error"


class DepthAnalysisResult(BaseModel):
    """
    Output of the LiDAR depth geometry analysis.

    The primary, hardware-rooted signal. A flat recaptured screen shows little
    depth variance, few distinct layers and incoherent edges.
    """

    model_config = ConfigDict(frozen=True)

    depth_variance: float = Field(
        default=0.0,
        description="Standard deviation of depth values in meters"
    )
    depth_layers: int = Field(
        default=0,
        description="Number of distinct depth planes detected"
    )
    edge_coherence: float = Field(
        default=0.0,
        description="Correlation between depth edges and RGB edges (0-1)"
    )
    min_depth: float = Field(default=0.0, description="Nearest depth in meters")
    max_depth: float = Field(default=0.0, description="Farthest depth in meters")
    is_likely_real_scene: bool = Field(
        default=False,
        description="Whether the depth profile indicates a 3D scene"
    )
    status: DepthStatus = DepthStatus.COMPLETED
    algorithm_version: str = "1.0"
    computed_at: Optional[datetime] = None

    @classmethod
    def unavailable(cls) -> "DepthAnalysisResult":
        return cls(status=DepthStatus.UNAVAILABLE)


class FrequencyPeak(BaseModel):
    """A single peak in the 2D FFT magnitude spectrum."""

    model_config = ConfigDict(frozen=True)

    frequency: float
    magnitude: float
    angle: float
    prominence: float


class MoireAnalysisResult(BaseModel):
    """Output of the FFT-based screen moire detector."""

    model_config = ConfigDict(frozen=True)

    detected: bool = False
    confidence: float = Field(
        default=0.0,
        description="Confidence that a screen moire pattern is present (0-1)"
    )
    peaks: List[FrequencyPeak] = Field(default_factory=list)
    screen_type: Optional[ScreenType] = None
    analysis_time_ms: int = 0
    status: MoireStatus = MoireStatus.COMPLETED
    algorithm_version: str = "1.0"
    computed_at: Optional[datetime] = None

    @classmethod
    def unavailable(cls) -> "MoireAnalysisResult":
        return cls(status=MoireStatus.UNAVAILABLE)


class TextureClassificationResult(BaseModel):
    """Output of the surface texture classifier."""

    model_config = ConfigDict(frozen=True)

    classification: TextureType = TextureType.UNKNOWN
    confidence: float = Field(
        default=0.0,
        description="Confidence of the top classification (0-1)"
    )
    all_classifications: Dict[str, float] = Field(
        default_factory=dict,
        description="Probability per texture class"
    )
    is_likely_recaptured: bool = False
    analysis_time_ms: int = 0
    status: TextureStatus = TextureStatus.SUCCESS
    unavailability_reason: Optional[str] = None
    algorithm_version: str = "1.0"
    computed_at: Optional[datetime] = None

    @classmethod
    def unavailable(cls, reason: Optional[str] = None) -> "TextureClassificationResult":
        return cls(status=TextureStatus.UNAVAILABLE, unavailability_reason=reason)


class ArtifactAnalysisResult(BaseModel):
    """Output of the display/print artifact detector (PWM, specular, halftone)."""

    model_config = ConfigDict(frozen=True)

    pwm_flicker_detected: bool = False
    pwm_confidence: float = 0.0
    specular_pattern_detected: bool = False
    specular_confidence: float = 0.0
    halftone_detected: bool = False
    halftone_confidence: float = 0.0
    overall_confidence: float = Field(
        default=0.0,
        description="Combined confidence that the capture is artificial (0-1)"
    )
    is_likely_artificial: bool = False
    analysis_time_ms: int = 0
    status: ArtifactStatus = ArtifactStatus.SUCCESS
    algorithm_version: str = "1.0"
    computed_at: Optional[datetime] = None

    @classmethod
    def unavailable(cls) -> "ArtifactAnalysisResult":
        return cls(status=ArtifactStatus.UNAVAILABLE)


class DetectionFrame(BaseModel):
    """Detector outputs for one frame of a multi-frame capture."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0)
    timestamp: float = Field(
        default=0.0,
        description="Seconds since capture start"
    )
    depth: Optional[DepthAnalysisResult] = None
    moire: Optional[MoireAnalysisResult] = None
    texture: Optional[TextureClassificationResult] = None
    artifacts: Optional[ArtifactAnalysisResult] = None
