from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple, Union

import numpy as np


class Task(str, Enum):
    CLASSIFY = "classify"
    DETECT = "detect"
    POSE = "pose"
    SEGMENT = "segment"


@dataclass(frozen=True)
class Bbox:
    """
    Axis-aligned box in original-image pixels, stored as top-left corner + size.
    """

    x: float
    y: float
    width: float
    height: float

    @property
    def xmin(self) -> float:
        return self.x

    @property
    def ymin(self) -> float:
        return self.y

    @property
    def xmax(self) -> float:
        return self.x + self.width

    @property
    def ymax(self) -> float:
        return self.y + self.height

    @property
    def area(self) -> float:
        return self.width * self.height

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.xmin, self.ymin, self.xmax, self.ymax

    def as_xywh(self) -> Tuple[float, float, float, float]:
        return self.x, self.y, self.width, self.height


@dataclass(frozen=True)
class Keypoint:
    x: float
    y: float
    confidence: float

    @classmethod
    def absent(cls) -> "Keypoint":
        # Placeholder for keypoints below the keypoint threshold.
        return cls(0.0, 0.0, 0.0)

    @property
    def is_absent(self) -> bool:
        return self.confidence == 0.0 and self.x == 0.0 and self.y == 0.0


@dataclass
class Candidate:
    """
    One decoded detection before suppression.
    """

    bbox: Bbox
    class_id: int
    confidence: float
    keypoints: Optional[List[Keypoint]] = None
    # Arrays are left out of ==; compare them with np.array_equal.
    coefficients: Optional[np.ndarray] = field(default=None, compare=False)


@dataclass
class Detection:
    """
    A candidate that survived suppression, optionally with its instance mask.

    `mask` is a uint8 array shaped (image_height, image_width), zero outside `bbox`.
    """

    bbox: Bbox
    class_id: int
    confidence: float
    keypoints: Optional[List[Keypoint]] = None
    mask: Optional[np.ndarray] = field(default=None, compare=False)

    @classmethod
    def from_candidate(cls, cand: Candidate, mask: Optional[np.ndarray] = None) -> "Detection":
        return cls(
            bbox=cand.bbox,
            class_id=cand.class_id,
            confidence=cand.confidence,
            keypoints=cand.keypoints,
            mask=mask,
        )

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.bbox.as_xyxy()


@dataclass
class ClassificationResult:
    embedding: np.ndarray


@dataclass
class DetectionResult:
    detections: List[Detection] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.detections)

    def __iter__(self):
        return iter(self.detections)

    @property
    def boxes(self) -> List[Bbox]:
        return [d.bbox for d in self.detections]

    # Same length and order as `detections`; entries are None where absent.
    @property
    def keypoints(self) -> List[Optional[List[Keypoint]]]:
        return [d.keypoints for d in self.detections]

    @property
    def masks(self) -> List[Optional[np.ndarray]]:
        return [d.mask for d in self.detections]


ResultSet = Union[ClassificationResult, DetectionResult]
