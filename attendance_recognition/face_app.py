"""
InsightFace initialization module.

Wraps the InsightFace detection and recognition models behind the
detector/embedder ports used by the recognition pipeline.
"""

from typing import List

import numpy as np
from insightface.app import FaceAnalysis

from .config import Config
from .logging_config import get_logger
from .recognition.embeddings import normalize
from .recognition.pipeline import Detection, FaceDetector, FaceEmbedder

logger = get_logger(__name__)


def initialize_face_app(config: Config) -> FaceAnalysis:
    """
    Initialize InsightFace FaceAnalysis with detection and recognition only.

    Args:
        config: Service configuration

    Returns:
        Prepared FaceAnalysis instance
    """
    logger.info('Initializing InsightFace models...')

    face_app = FaceAnalysis(
        allowed_modules=['detection', 'recognition'],
        providers=['CPUExecutionProvider'],
    )
    face_app.prepare(ctx_id=0, det_thresh=config.det_conf_threshold, det_size=config.det_size)

    logger.info(f'✅ InsightFace initialized (det_size={config.det_size})')
    return face_app


class InsightFaceDetector(FaceDetector):
    """SCRFD detector from an InsightFace model pack."""

    def __init__(self, face_app: FaceAnalysis, max_detections: int = 25, min_confidence: float = 0.5):
        self.model = face_app.det_model
        self.max_detections = max_detections
        self.min_confidence = min_confidence

    def detect(self, frame: np.ndarray) -> List[Detection]:
        bboxes, kpss = self.model.detect(frame, max_num=self.max_detections, metric='default')

        detections = []
        for i in range(bboxes.shape[0]):
            x1, y1, x2, y2, score = (float(v) for v in bboxes[i])
            if score < self.min_confidence or x2 - x1 < 5 or y2 - y1 < 5:
                continue
            landmarks = [] if kpss is None else [(float(x), float(y)) for x, y in kpss[i]]
            detections.append(Detection(box=(x1, y1, x2, y2), confidence=score, landmarks=landmarks))
        return detections


class InsightFaceEmbedder(FaceEmbedder):
    """ArcFace recognition model; expects 112x112 aligned BGR faces."""

    def __init__(self, face_app: FaceAnalysis):
        self.model = face_app.models['recognition']

    def embed(self, face: np.ndarray) -> np.ndarray:
        feature = self.model.get_feat(face)
        return normalize(np.asarray(feature).reshape(-1))
