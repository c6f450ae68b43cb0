"""
Logging configuration for the attendance recognition service.

Every record carries the camera it was produced for, so logs of several
service instances can be interleaved.
"""

import logging
import sys


class CameraContextFilter(logging.Filter):
    """Stamp the camera identifier onto log records."""

    def __init__(self, camera_id: str):
        super().__init__()
        self.camera_id = camera_id

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, 'camera_id'):
            record.camera_id = self.camera_id
        return True


def setup_logging(camera_id: str, debug: bool = False) -> None:
    """
    Configure the root logger for the service.

    Args:
        camera_id: Camera identifier for log context
        debug: Enable debug level logging
    """
    level = logging.DEBUG if debug else logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(
        '%(asctime)s [%(levelname)s] [camera=%(camera_id)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    ))
    console_handler.addFilter(CameraContextFilter(camera_id))

    root_logger.addHandler(console_handler)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
