"""
Face alignment.

Warps a detected face onto the canonical ArcFace 112x112 layout before it
is embedded:
1. Five landmarks - partial affine fit to the full template
2. Eye pair only  - similarity transform from the two eye centres
3. Degenerate eyes - plain crop of the bounding box, resized
"""

import math
from typing import Optional, Sequence, Tuple

import cv2
import numpy as np

from ..logging_config import get_logger

logger = get_logger(__name__)

ALIGNED_SIZE = 112

# Left eye, right eye, nose tip, left mouth corner, right mouth corner
ARCFACE_TEMPLATE = np.array(
    [
        [38.2946, 51.6963],
        [73.5318, 51.5014],
        [56.0252, 71.7366],
        [41.5493, 92.3655],
        [70.7299, 92.2041],
    ],
    dtype=np.float32,
)


def crop_face(frame: np.ndarray, box: Sequence[float], size: int = ALIGNED_SIZE) -> np.ndarray:
    """
    Crop the bounding box (clamped to the frame) and resize it.

    Args:
        frame: BGR image
        box: (x1, y1, x2, y2) in pixels
        size: Output side length

    Returns:
        size x size BGR image
    """
    h, w = frame.shape[:2]
    x1 = int(np.clip(math.floor(box[0]), 0, w - 1))
    y1 = int(np.clip(math.floor(box[1]), 0, h - 1))
    x2 = int(np.clip(math.ceil(box[2]), x1 + 1, w))
    y2 = int(np.clip(math.ceil(box[3]), y1 + 1, h))
    return cv2.resize(frame[y1:y2, x1:x2], (size, size), interpolation=cv2.INTER_LINEAR)


def _eye_pair_transform(
    src_left: np.ndarray,
    src_right: np.ndarray,
    dst_left: np.ndarray,
    dst_right: np.ndarray,
) -> np.ndarray:
    src_vec = src_right - src_left
    dst_vec = dst_right - dst_left
    scale = float(np.linalg.norm(dst_vec) / np.linalg.norm(src_vec))
    angle = math.atan2(dst_vec[1], dst_vec[0]) - math.atan2(src_vec[1], src_vec[0])

    a = scale * math.cos(angle)
    b = scale * math.sin(angle)
    tx = dst_left[0] - (a * src_left[0] - b * src_left[1])
    ty = dst_left[1] - (b * src_left[0] + a * src_left[1])
    return np.array([[a, -b, tx], [b, a, ty]], dtype=np.float64)


def estimate_transform(
    landmarks: Sequence[Tuple[float, float]],
    size: int = ALIGNED_SIZE,
    min_eye_distance: float = 2.0,
) -> Optional[np.ndarray]:
    """
    Estimate the 2x3 matrix mapping landmarks onto the aligned layout.

    Returns:
        Affine matrix, or None when the geometry is degenerate
    """
    if len(landmarks) < 2:
        return None

    points = np.asarray(landmarks, dtype=np.float32).reshape(-1, 2)
    if not np.all(np.isfinite(points)):
        return None

    eye_distance = float(np.linalg.norm(points[1] - points[0]))
    if eye_distance < min_eye_distance:
        return None

    template = ARCFACE_TEMPLATE * (size / float(ALIGNED_SIZE))

    if len(points) == 5:
        matrix, _ = cv2.estimateAffinePartial2D(points, template, method=cv2.LMEDS)
        if matrix is not None and np.all(np.isfinite(matrix)):
            return matrix

    return _eye_pair_transform(points[0], points[1], template[0], template[1])


def align_face(
    frame: np.ndarray,
    box: Sequence[float],
    landmarks: Sequence[Tuple[float, float]],
    size: int = ALIGNED_SIZE,
    min_eye_distance: float = 2.0,
) -> np.ndarray:
    """
    Produce a fixed-size face image ready for the embedder.

    Degenerate landmark geometry (missing points, near-coincident eyes) is
    not an error: the face is cropped from its bounding box instead.

    Args:
        frame: BGR image
        box: Detection box (x1, y1, x2, y2)
        landmarks: Landmark points, eyes first
        size: Output side length
        min_eye_distance: Minimum inter-eye distance in pixels

    Returns:
        size x size BGR face image
    """
    matrix = estimate_transform(landmarks, size=size, min_eye_distance=min_eye_distance)
    if matrix is None:
        logger.debug('Degenerate landmarks, falling back to box crop')
        return crop_face(frame, box, size)

    return cv2.warpAffine(frame, matrix, (size, size), flags=cv2.INTER_LINEAR, borderValue=0.0)
