"""
Recognition algorithms package.

Contains modules for:
- Embedding math
- Nearest-neighbour backends and the identity index
- Face alignment and the detect/embed/search pipeline
- The per-stream recognition cache
- Attendance debouncing
"""

from .embeddings import normalize, similarity_from_distance
from .backends import VectorBackend, NumpyBackend, FaissBackend, create_backend
from .identity_index import IdentityIndex, SearchResult, LoadReport
from .cache import CachedDetection, CacheState, FrameResult, RecognitionCache, UNKNOWN_NAME
from .attendance import AttendanceDebouncer, AttendanceEvent
from .alignment import align_face, crop_face
from .pipeline import Detection, FaceDetector, FaceEmbedder, RecognitionPipeline

__all__ = [
    'normalize',
    'similarity_from_distance',
    'VectorBackend',
    'NumpyBackend',
    'FaissBackend',
    'create_backend',
    'IdentityIndex',
    'SearchResult',
    'LoadReport',
    'CachedDetection',
    'CacheState',
    'FrameResult',
    'RecognitionCache',
    'UNKNOWN_NAME',
    'AttendanceDebouncer',
    'AttendanceEvent',
    'align_face',
    'crop_face',
    'Detection',
    'FaceDetector',
    'FaceEmbedder',
    'RecognitionPipeline',
]
