import numpy as np
import pytest

from attendance_recognition.recognition.identity_index import IdentityIndex
from attendance_recognition.recognition.pipeline import (
    Detection,
    FaceDetector,
    FaceEmbedder,
    RecognitionPipeline,
)


class FakeDetector(FaceDetector):
    """Returns the same detections for every frame."""

    def __init__(self, detections=None):
        self.detections = list(detections or [])
        self.calls = 0

    def detect(self, frame):
        self.calls += 1
        return list(self.detections)


class FakeEmbedder(FaceEmbedder):
    """Returns queued embeddings in order, repeating the last one."""

    def __init__(self, *embeddings):
        self.embeddings = [np.asarray(e, dtype=np.float32) for e in embeddings]
        self.faces = []

    def embed(self, face):
        self.faces.append(face)
        index = min(len(self.faces), len(self.embeddings)) - 1
        return self.embeddings[index]


@pytest.fixture
def index():
    return IdentityIndex(dimension=4, capacity=8, threshold=0.8)


@pytest.fixture
def face_detection():
    return Detection(
        box=(10.0, 10.0, 70.0, 80.0),
        confidence=0.93,
        landmarks=[(25.0, 35.0), (55.0, 35.0), (40.0, 50.0), (28.0, 65.0), (52.0, 65.0)],
    )


@pytest.fixture
def frame():
    rng = np.random.default_rng(7)
    return rng.integers(0, 255, size=(120, 160, 3), dtype=np.uint8)


@pytest.fixture
def make_pipeline(index, face_detection):
    def factory(*embeddings, detections=None):
        detector = FakeDetector([face_detection] if detections is None else detections)
        embedder = FakeEmbedder(*embeddings)
        return RecognitionPipeline(detector, embedder, index)

    return factory
