"""
Per-stream recognition cache.

Detection, embedding and index search are expensive, so they only run on
every `frame_skip`-th frame (or when nothing is cached). In between, the
last known boxes, names and similarities are replayed for a limited number
of frames so the overlay keeps updating at full frame rate.
"""

import dataclasses
import enum
from dataclasses import dataclass, field
from typing import Any, Callable, List, Sequence, Tuple

from ..exceptions import ConfigurationError
from ..logging_config import get_logger

logger = get_logger(__name__)

UNKNOWN_NAME = 'Unknown'

Box = Tuple[float, float, float, float]
Point = Tuple[float, float]


class CacheState(enum.Enum):
    EMPTY = 'empty'
    POPULATED = 'populated'


@dataclass
class CachedDetection:
    """
    A recognized (or unrecognized) face replayed across frames.

    Attributes:
        box: Bounding box (x1, y1, x2, y2) in frame pixels
        name: Matched identity name or "Unknown"
        confidence: Detector confidence
        similarity: Cosine similarity of the best index match
        label: Identity label, 0 when unknown
        landmarks: Landmark points in frame pixels
        ttl: Remaining aging passes this entry survives
    """

    box: Box
    name: str = UNKNOWN_NAME
    confidence: float = 0.0
    similarity: float = 0.0
    label: int = 0
    landmarks: List[Point] = field(default_factory=list)
    ttl: int = 0

    @property
    def found(self) -> bool:
        return self.label != 0


@dataclass
class FrameResult:
    """What the cache produced for one frame."""

    frame_index: int
    detections: List[CachedDetection]
    refreshed: bool


class RecognitionCache:
    """
    Mutable cache of detections for a single stream.

    Frames must be fed strictly in order; the cache is not thread-safe.
    """

    def __init__(self, frame_skip: int = 3, ttl_frames: int = 3):
        """
        Initialize the cache.

        Args:
            frame_skip: Run a full detection pass every N-th frame
            ttl_frames: Aging passes a fresh entry survives

        Raises:
            ConfigurationError: If either value is below 1
        """
        self.entries: List[CachedDetection] = []
        self.frame_count = 0
        self.configure(frame_skip, ttl_frames)

    def configure(self, frame_skip: int, ttl_frames: int) -> None:
        """Change the refresh interval and entry lifetime at runtime."""
        if frame_skip < 1:
            raise ConfigurationError(f'frame_skip must be >= 1, got {frame_skip}')
        if ttl_frames < 1:
            raise ConfigurationError(f'ttl_frames must be >= 1, got {ttl_frames}')
        if ttl_frames < frame_skip:
            logger.warning(
                f'Cache TTL ({ttl_frames} frames) is shorter than the detection interval '
                f'({frame_skip} frames); faces will flicker between passes'
            )
        self.frame_skip = frame_skip
        self.ttl_frames = ttl_frames

    @property
    def state(self) -> CacheState:
        return CacheState.POPULATED if self.entries else CacheState.EMPTY

    def age(self) -> None:
        """Spend one frame of every entry's lifetime and drop exhausted ones."""
        survivors = []
        for entry in self.entries:
            if entry.ttl <= 0:
                continue
            entry.ttl -= 1
            survivors.append(entry)
        self.entries = survivors

    def should_refresh(self) -> bool:
        """True when the detection interval elapsed or nothing is cached."""
        return self.frame_count % self.frame_skip == 0 or not self.entries

    def replace(self, detections: Sequence[CachedDetection]) -> None:
        """Discard all entries and cache fresh detections with a full TTL."""
        self.entries = [dataclasses.replace(d, ttl=self.ttl_frames) for d in detections]

    def clear(self) -> None:
        self.entries = []

    def step(
        self,
        frame: Any,
        detect_fn: Callable[[Any], Sequence[CachedDetection]],
    ) -> FrameResult:
        """
        Advance the cache by one frame.

        Args:
            frame: Current video frame
            detect_fn: Full detection pipeline, called only on refresh frames

        Returns:
            FrameResult with the detections to show for this frame
        """
        self.frame_count += 1
        self.age()

        refreshed = self.should_refresh()
        if refreshed:
            self.replace(detect_fn(frame))

        return FrameResult(
            frame_index=self.frame_count,
            detections=list(self.entries),
            refreshed=refreshed,
        )

