"""
Configuration module for the attendance recognition service.

Loads configuration from environment variables with sensible defaults.
All settings are immutable after initialization and validated on
construction.
"""

import os
from dataclasses import dataclass
from typing import Tuple

from .exceptions import ConfigurationError

INDEX_BACKENDS = ('numpy', 'faiss')


@dataclass(frozen=True)
class Config:
    """
    Immutable configuration for the attendance recognition service.

    Identity Index:
        embedding_dim: Length of every embedding vector (fixed per deployment)
        index_capacity: Initial number of slots in the vector backend
        similarity_threshold: Minimum cosine similarity for a match
        index_backend: Nearest-neighbour backend ('numpy' or 'faiss')
        store_file: Path to the identity store (CSV)

    Recognition Cache:
        frame_skip: Run the full detection pass every N-th frame
        cache_ttl_frames: Frames a cached detection stays on screen

    Attendance:
        attendance_cooldown_seconds: Minimum gap between two events of one identity
        attendance_log_file: Path to the append-only attendance CSV
        backend_url: Optional backend receiving attendance events ('' disables)

    Camera & Service:
        camera_source: Webcam index, RTSP URL or HTTP stream URL
        camera_id: Logical identifier for this camera (for logging)
        service_name: Name of this service instance
        video_port: Port for the Flask HTTP server

    Detection:
        max_detections: Maximum faces kept per frame
        det_conf_threshold: Minimum detector confidence
        det_size: Detector input size (width, height)
        min_eye_distance: Inter-eye distance (px) below which alignment
            falls back to a plain crop

    System:
        debug_mode: Enable debug logging
    """

    # Identity index
    embedding_dim: int = 512
    index_capacity: int = 10000
    similarity_threshold: float = 0.85
    index_backend: str = 'numpy'
    store_file: str = 'faces.csv'

    # Recognition cache
    frame_skip: int = 3
    cache_ttl_frames: int = 3

    # Attendance
    attendance_cooldown_seconds: float = 10.0
    attendance_log_file: str = 'attendance.csv'
    backend_url: str = ''

    # Camera & service
    camera_source: str = '0'
    camera_id: str = '0'
    service_name: str = 'attendance'
    video_port: int = 5001

    # Detection
    max_detections: int = 25
    det_conf_threshold: float = 0.5
    det_size: Tuple[int, int] = (640, 640)
    min_eye_distance: float = 2.0

    # System
    debug_mode: bool = False

    def __post_init__(self) -> None:
        if self.embedding_dim <= 0:
            raise ConfigurationError(f'embedding_dim must be positive, got {self.embedding_dim}')
        if self.index_capacity <= 0:
            raise ConfigurationError(f'index_capacity must be positive, got {self.index_capacity}')
        if not -1.0 <= self.similarity_threshold <= 1.0:
            raise ConfigurationError(
                f'similarity_threshold must be within [-1, 1], got {self.similarity_threshold}'
            )
        if self.index_backend not in INDEX_BACKENDS:
            raise ConfigurationError(
                f'index_backend must be one of {INDEX_BACKENDS}, got {self.index_backend!r}'
            )
        if self.frame_skip < 1:
            raise ConfigurationError(f'frame_skip must be >= 1, got {self.frame_skip}')
        if self.cache_ttl_frames < 1:
            raise ConfigurationError(f'cache_ttl_frames must be >= 1, got {self.cache_ttl_frames}')
        if self.attendance_cooldown_seconds < 0:
            raise ConfigurationError(
                f'attendance_cooldown_seconds must be >= 0, got {self.attendance_cooldown_seconds}'
            )
        if not 0 < self.max_detections <= 1000:
            raise ConfigurationError(f'max_detections must be within (0, 1000], got {self.max_detections}')
        if not 0.0 < self.det_conf_threshold <= 1.0:
            raise ConfigurationError(
                f'det_conf_threshold must be within (0, 1], got {self.det_conf_threshold}'
            )


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == '':
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f'{name} must be an integer, got {raw!r}')


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == '':
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f'{name} must be a number, got {raw!r}')


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == '':
        return default
    return raw.lower() in ('1', 'true', 'yes', 'on')


def load_config() -> Config:
    """
    Load configuration from environment variables.

    Returns:
        Config: Immutable configuration object

    Raises:
        ConfigurationError: If a variable is malformed or out of range
    """
    camera_source_raw = os.getenv('CAMERA_SOURCE', '0')
    det_size = _env_int('DET_SIZE', 640)

    return Config(
        # Identity index
        embedding_dim=_env_int('EMBEDDING_DIM', 512),
        index_capacity=_env_int('INDEX_CAPACITY', 10000),
        similarity_threshold=_env_float('SIMILARITY_THRESHOLD', 0.85),
        index_backend=os.getenv('INDEX_BACKEND', 'numpy').lower(),
        store_file=os.getenv('STORE_FILE', 'faces.csv'),

        # Recognition cache
        frame_skip=_env_int('FRAME_SKIP', 3),
        cache_ttl_frames=_env_int('CACHE_TTL_FRAMES', 3),

        # Attendance
        attendance_cooldown_seconds=_env_float('ATTENDANCE_COOLDOWN', 10.0),
        attendance_log_file=os.getenv('ATTENDANCE_LOG_FILE', 'attendance.csv'),
        backend_url=os.getenv('BACKEND_URL', '').rstrip('/'),

        # Camera & service
        camera_source=camera_source_raw,
        camera_id=os.getenv('CAMERA_ID', camera_source_raw),
        service_name=os.getenv('SERVICE_NAME', 'attendance'),
        video_port=_env_int('VIDEO_PORT', 5001),

        # Detection
        max_detections=_env_int('MAX_DETECTIONS', 25),
        det_conf_threshold=_env_float('CONF_THRESH', 0.5),
        det_size=(det_size, det_size),
        min_eye_distance=_env_float('MIN_EYE_DISTANCE', 2.0),

        # System
        debug_mode=_env_bool('DEBUG', False),
    )
