"""
Main video processing loop.

Orchestrates the recognition pipeline for one camera:
- Camera connection and reconnection
- Per-frame recognition cache update (full pass every N-th frame)
- Attendance debouncing and logging
- Overlay rendering for the MJPEG stream
"""

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

import cv2
import numpy as np

from .config import Config
from .events import AttendanceLog, build_sink
from .identities import IdentityManager
from .logging_config import get_logger
from .recognition.attendance import AttendanceDebouncer, AttendanceEvent, AttendanceSink
from .recognition.cache import CachedDetection, RecognitionCache
from .recognition.identity_index import IdentityIndex
from .recognition.pipeline import RecognitionPipeline
from .streaming import FrameBuffer

logger = get_logger(__name__)

MAX_READ_FAILURES = 10


@dataclass
class StreamContext:
    """
    Everything that changes from frame to frame for one stream.

    Frames of a stream are processed strictly in order, so nothing here is
    locked.
    """

    cache: RecognitionCache
    debouncer: AttendanceDebouncer
    frames_processed: int = 0
    detection_passes: int = 0
    events_logged: int = 0
    events_failed: int = 0
    started_at: float = field(default_factory=time.time)

    @classmethod
    def from_config(cls, config: Config) -> 'StreamContext':
        return cls(
            cache=RecognitionCache(config.frame_skip, config.cache_ttl_frames),
            debouncer=AttendanceDebouncer(config.attendance_cooldown_seconds),
        )


@dataclass
class FrameOutcome:
    frame_index: int
    detections: List[CachedDetection]
    refreshed: bool
    events: List[Tuple[AttendanceEvent, bool]]


def process_frame(
    ctx: StreamContext,
    frame: np.ndarray,
    pipeline: RecognitionPipeline,
    sink: AttendanceSink,
    now: Optional[datetime] = None,
) -> FrameOutcome:
    """
    Run one frame through the cache and the attendance debouncer.

    Attendance is only considered on detection passes; replayed cache
    entries carry no new evidence.

    Args:
        ctx: Stream state
        frame: BGR frame
        pipeline: Full recognition pass
        sink: Attendance event writer
        now: Frame timestamp (defaults to the current time)

    Returns:
        FrameOutcome with the detections to draw and the events emitted
    """
    now = now or datetime.now()
    result = ctx.cache.step(frame, pipeline.run)
    ctx.frames_processed += 1

    events: List[Tuple[AttendanceEvent, bool]] = []
    if result.refreshed:
        ctx.detection_passes += 1
        events = ctx.debouncer.emit(result.detections, now, sink)
        for _, written in events:
            if written:
                ctx.events_logged += 1
            else:
                ctx.events_failed += 1

    return FrameOutcome(
        frame_index=result.frame_index,
        detections=result.detections,
        refreshed=result.refreshed,
        events=events,
    )


def draw_overlay(frame: np.ndarray, detections: List[CachedDetection]) -> np.ndarray:
    """
    Draw boxes, names, similarities and landmarks onto the frame.

    Known faces are green, unknown faces red.
    """
    if not detections:
        h, w = frame.shape[:2]
        text = 'No Face Detected'
        (tw, th), _ = cv2.getTextSize(text, cv2.FONT_HERSHEY_SIMPLEX, 1.0, 2)
        cv2.putText(frame, text, ((w - tw) // 2, (h + th) // 2),
                    cv2.FONT_HERSHEY_SIMPLEX, 1.0, (0, 0, 255), 2)
        return frame

    for det in detections:
        x1, y1, x2, y2 = (int(v) for v in det.box)
        color = (0, 255, 0) if det.found else (0, 0, 255)
        cv2.rectangle(frame, (x1, y1), (x2, y2), color, 2)

        label = f'{det.name} ({det.similarity:.2f})'
        cv2.rectangle(frame, (x1, y2 - 24), (x2, y2), color, cv2.FILLED)
        cv2.putText(frame, label, (x1 + 4, y2 - 7),
                    cv2.FONT_HERSHEY_DUPLEX, 0.5, (255, 255, 255), 1)
        cv2.putText(frame, f'Conf: {det.confidence:.2f}', (x1, max(12, y1 - 8)),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.5, color, 1)

        for x, y in det.landmarks:
            cv2.circle(frame, (int(x), int(y)), 3, (255, 0, 0), cv2.FILLED)

    return frame


def start_flask_server(config: Config, manager: IdentityManager,
                       frames: FrameBuffer, log: AttendanceLog) -> None:
    """Serve the management API and video feed (blocking)."""
    from .app import create_app

    logger.info(f'Starting HTTP server on port {config.video_port}...')
    app = create_app(config, manager, frames=frames, attendance_log=log)
    app.run(host='0.0.0.0', port=config.video_port, threaded=True, debug=False, use_reloader=False)


def run(config: Config, stop_flag: Optional[threading.Event] = None) -> None:
    """
    Main video processing loop.

    Args:
        config: Service configuration
        stop_flag: Optional threading.Event to signal graceful shutdown
    """
    from .camera import connect_camera, reconnect_camera
    from .face_app import InsightFaceDetector, InsightFaceEmbedder, initialize_face_app

    face_app = initialize_face_app(config)
    index = IdentityIndex(
        dimension=config.embedding_dim,
        capacity=config.index_capacity,
        threshold=config.similarity_threshold,
        backend=config.index_backend,
    )
    pipeline = RecognitionPipeline(
        InsightFaceDetector(face_app, config.max_detections, config.det_conf_threshold),
        InsightFaceEmbedder(face_app),
        index,
        threshold=config.similarity_threshold,
        min_eye_distance=config.min_eye_distance,
    )
    ctx = StreamContext.from_config(config)
    manager = IdentityManager(index, config.store_file, pipeline=pipeline, debouncer=ctx.debouncer)
    manager.load()

    if len(index) == 0:
        logger.warning('No identities enrolled yet; every face will be reported as Unknown')

    log = AttendanceLog(config.attendance_log_file)
    sink = build_sink(config, log)
    frames = FrameBuffer()

    server = threading.Thread(
        target=start_flask_server, args=(config, manager, frames, log), daemon=True,
    )
    server.start()
    logger.info(f'Video stream: http://localhost:{config.video_port}/video_feed')

    capture = connect_camera(config)
    consecutive_failures = 0

    logger.info('🎬 Starting main loop...')
    try:
        while not (stop_flag and stop_flag.is_set()):
            ok, frame = capture.read()
            if not ok or frame is None:
                consecutive_failures += 1
                logger.warning(f'Failed to read frame ({consecutive_failures}/{MAX_READ_FAILURES})')
                if consecutive_failures >= MAX_READ_FAILURES:
                    capture, consecutive_failures = reconnect_camera(capture, config, consecutive_failures)
                else:
                    time.sleep(0.5)
                continue
            consecutive_failures = 0

            try:
                outcome = process_frame(ctx, frame, pipeline, sink)
            except Exception as e:
                logger.error(f'Frame processing failed: {e}', exc_info=config.debug_mode)
                frames.set_frame(frame)
                continue

            frames.set_frame(draw_overlay(frame.copy(), outcome.detections))
        logger.info('Stop signal received, exiting gracefully...')
    finally:
        capture.release()
        logger.info(
            f'Camera released after {ctx.frames_processed} frames, '
            f'{ctx.detection_passes} detection passes, {ctx.events_logged} attendance events'
        )
