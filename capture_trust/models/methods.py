"""
Detection method identities and their expected pairwise relationships.
"""

from enum import Enum
from typing import List, NamedTuple


class DetectionMethod(str, Enum):
    """
    The four detection signals, in canonical order.

    Every method-keyed map the engine produces is built in this order.
    """
    LIDAR = "lidar"
    MOIRE = "moire"
    TEXTURE = "texture"
    ARTIFACTS = "artifacts"

    @property
    def is_primary(self) -> bool:
        return self == DetectionMethod.LIDAR

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def result_field(self) -> str:
        """Name of the field holding this method's raw result."""
        return _RESULT_FIELDS[self]


_DISPLAY_NAMES = {
    DetectionMethod.LIDAR: "LiDAR Depth",
    DetectionMethod.MOIRE: "Moire Pattern",
    DetectionMethod.TEXTURE: "Texture Classification",
    DetectionMethod.ARTIFACTS: "Artifact Detection",
}

_RESULT_FIELDS = {
    DetectionMethod.LIDAR: "depth",
    DetectionMethod.MOIRE: "moire",
    DetectionMethod.TEXTURE: "texture",
    DetectionMethod.ARTIFACTS: "artifacts",
}


class PairRelationship(str, Enum):
    """
    How two raw detector outputs are expected to move together.

    NEGATIVE means the raw outputs point in opposite directions for a real
    scene (LiDAR says "real" while moire says "no screen").
    """
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class MethodPair(NamedTuple):
    method_a: DetectionMethod
    method_b: DetectionMethod
    relationship: PairRelationship
    expected_agreement: float


METHOD_PAIRS: List[MethodPair] = [
    MethodPair(DetectionMethod.LIDAR, DetectionMethod.MOIRE, PairRelationship.NEGATIVE, 0.85),
    MethodPair(DetectionMethod.LIDAR, DetectionMethod.TEXTURE, PairRelationship.POSITIVE, 0.80),
    MethodPair(DetectionMethod.LIDAR, DetectionMethod.ARTIFACTS, PairRelationship.NEGATIVE, 0.80),
    MethodPair(DetectionMethod.MOIRE, DetectionMethod.TEXTURE, PairRelationship.POSITIVE, 0.75),
    MethodPair(DetectionMethod.MOIRE, DetectionMethod.ARTIFACTS, PairRelationship.POSITIVE, 0.80),
    MethodPair(DetectionMethod.TEXTURE, DetectionMethod.ARTIFACTS, PairRelationship.NEGATIVE, 0.70),
]
