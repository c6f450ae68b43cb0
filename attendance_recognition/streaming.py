"""
Video streaming module.

Holds the latest annotated frame and turns it into an MJPEG stream for
Flask. Frame access is guarded by a lock because the frame loop and the
HTTP handlers run in different threads.
"""

import threading
import time
from typing import Generator, Optional

import cv2
import numpy as np


class FrameBuffer:
    """Latest-frame holder shared between the frame loop and HTTP clients."""

    def __init__(self, jpeg_quality: int = 85):
        self.jpeg_quality = jpeg_quality
        self._frame: Optional[np.ndarray] = None
        self._lock = threading.Lock()

    def set_frame(self, frame: np.ndarray) -> None:
        with self._lock:
            self._frame = frame

    def get_frame_copy(self) -> Optional[np.ndarray]:
        with self._lock:
            return self._frame.copy() if self._frame is not None else None

    def is_streaming(self) -> bool:
        with self._lock:
            return self._frame is not None

    def encode_jpeg(self) -> Optional[bytes]:
        """Encode the current frame, or None if there is nothing to send."""
        frame = self.get_frame_copy()
        if frame is None:
            return None
        ok, buffer = cv2.imencode('.jpg', frame, [cv2.IMWRITE_JPEG_QUALITY, self.jpeg_quality])
        return buffer.tobytes() if ok else None

    def generate_mjpeg_frames(self, fps: float = 30.0) -> Generator[bytes, None, None]:
        """
        Yield multipart MJPEG chunks forever.

        Yields:
            JPEG frame bytes with multipart headers
        """
        interval = 1.0 / fps
        while True:
            jpeg = self.encode_jpeg()
            if jpeg is None:
                time.sleep(0.1)
                continue

            yield (b'--frame\r\n'
                   b'Content-Type: image/jpeg\r\n\r\n' + jpeg + b'\r\n')
            time.sleep(interval)
