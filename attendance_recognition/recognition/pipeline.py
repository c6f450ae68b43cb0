"""
Full recognition pass for one frame.

detector -> align/crop -> embedder -> identity index search
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np

from ..logging_config import get_logger
from .alignment import ALIGNED_SIZE, align_face
from .cache import UNKNOWN_NAME, Box, CachedDetection, Point
from .identity_index import IdentityIndex

logger = get_logger(__name__)


@dataclass
class Detection:
    """Face found by a detector, in frame pixel coordinates."""

    box: Box
    confidence: float
    landmarks: List[Point] = field(default_factory=list)

    @property
    def area(self) -> float:
        x1, y1, x2, y2 = self.box
        return max(0.0, x2 - x1) * max(0.0, y2 - y1)


class FaceDetector(ABC):
    """Detector port. Adapters turn model output into `Detection`s."""

    @abstractmethod
    def detect(self, frame: np.ndarray) -> List[Detection]:
        raise NotImplementedError


class FaceEmbedder(ABC):
    """Embedder port. Input is an aligned face, output a unit vector."""

    @abstractmethod
    def embed(self, face: np.ndarray) -> np.ndarray:
        raise NotImplementedError


class RecognitionPipeline:
    """
    Runs the expensive detect/embed/search chain.

    The pipeline is stateless apart from its collaborators, so one instance
    can serve both the frame loop and enrollment.
    """

    def __init__(
        self,
        detector: FaceDetector,
        embedder: FaceEmbedder,
        index: IdentityIndex,
        threshold: Optional[float] = None,
        min_eye_distance: float = 2.0,
        face_size: int = ALIGNED_SIZE,
    ):
        self.detector = detector
        self.embedder = embedder
        self.index = index
        self.threshold = threshold
        self.min_eye_distance = min_eye_distance
        self.face_size = face_size

    def embed_detection(self, frame: np.ndarray, detection: Detection) -> np.ndarray:
        face = align_face(
            frame,
            detection.box,
            detection.landmarks,
            size=self.face_size,
            min_eye_distance=self.min_eye_distance,
        )
        return self.embedder.embed(face)

    def run(self, frame: np.ndarray) -> List[CachedDetection]:
        """
        Detect, embed and identify every face in the frame.

        Args:
            frame: BGR image

        Returns:
            One CachedDetection per detected face (ttl is set by the cache)
        """
        results = []
        for detection in self.detector.detect(frame):
            embedding = self.embed_detection(frame, detection)
            match = self.index.search(embedding, self.threshold)

            results.append(CachedDetection(
                box=tuple(float(v) for v in detection.box),
                name=match.name if match.found else UNKNOWN_NAME,
                confidence=float(detection.confidence),
                similarity=match.similarity,
                label=match.label if match.found else 0,
                landmarks=[(float(x), float(y)) for x, y in detection.landmarks],
            ))

        if results:
            logger.debug(
                'Detection pass: '
                + ', '.join(f'{r.name} ({r.similarity:.2f})' for r in results)
            )
        return results

    def embed_largest(self, image: np.ndarray) -> Optional[Tuple[Detection, np.ndarray]]:
        """
        Embed the largest face of an enrollment photo.

        Returns:
            (detection, embedding), or None when no face is found
        """
        detections = self.detector.detect(image)
        if not detections:
            return None
        primary = max(detections, key=lambda d: d.area)
        return primary, self.embed_detection(image, primary)
