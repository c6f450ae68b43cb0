"""
Attendance event sinks.

Events are appended to a local CSV log and, when a backend is configured,
posted to its API. A failing sink never stops the frame loop.
"""

import csv
import os
import threading
from typing import List, Optional

import requests

from .config import Config
from .logging_config import get_logger
from .recognition.attendance import AttendanceEvent, AttendanceSink

logger = get_logger(__name__)

LOG_HEADER = ['Timestamp', 'UserID', 'UserName']


class AttendanceLog:
    """
    Append-only attendance CSV.

    The header is written once, when the file is new or empty.
    """

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    def append(self, event: AttendanceEvent) -> bool:
        """
        Append one event.

        Args:
            event: Attendance event

        Returns:
            True if the row was written
        """
        try:
            with self._lock:
                directory = os.path.dirname(os.path.abspath(self.path))
                os.makedirs(directory, exist_ok=True)
                needs_header = not os.path.exists(self.path) or os.path.getsize(self.path) == 0
                with open(self.path, 'a', newline='', encoding='utf-8') as f:
                    writer = csv.writer(f)
                    if needs_header:
                        writer.writerow(LOG_HEADER)
                    writer.writerow(event.to_row())
            return True
        except OSError as e:
            logger.error(f'❌ Failed to write attendance log {self.path}: {e}')
            return False

    def read_events(self, limit: Optional[int] = None) -> List[dict]:
        """
        Read logged events, oldest first.

        Args:
            limit: Return only the most recent `limit` rows

        Returns:
            List of dicts keyed by the log header; empty if the log is missing
        """
        try:
            with self._lock, open(self.path, 'r', newline='', encoding='utf-8') as f:
                rows = list(csv.DictReader(f))
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.error(f'Failed to read attendance log {self.path}: {e}')
            return []

        if limit is not None:
            rows = rows[-limit:] if limit > 0 else []
        return rows


def send_event(event: AttendanceEvent, config: Config) -> bool:
    """
    Post an attendance event to the backend.

    Args:
        event: Attendance event
        config: Service configuration

    Returns:
        True if the backend accepted the event
    """
    url = f'{config.backend_url}/api/attendance'
    payload = {
        'timestamp': event.timestamp.isoformat(timespec='seconds'),
        'userId': event.label,
        'userName': event.name,
        'cameraId': config.camera_id,
    }

    try:
        response = requests.post(url, json=payload, timeout=5)
        if response.ok:
            logger.debug(f'Attendance event for label {event.label} sent to backend')
            return True
        logger.error(f'❌ Backend rejected attendance event: {response.status_code} {response.text}')
        return False
    except requests.exceptions.Timeout:
        logger.error(f'❌ Timeout sending attendance event to {url}')
        return False
    except requests.exceptions.RequestException as e:
        logger.error(f'❌ Error sending attendance event to {url}: {e}')
        return False


def build_sink(config: Config, log: AttendanceLog) -> AttendanceSink:
    """
    Combine the CSV log and the optional backend into one sink.

    The event counts as recorded when the local log accepted it.
    """
    if not config.backend_url:
        return log.append

    def sink(event: AttendanceEvent) -> bool:
        written = log.append(event)
        send_event(event, config)
        return written

    return sink
