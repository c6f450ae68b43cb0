"""
Attendance debouncing.

A recognized face is seen on many consecutive frames; only the first
sighting per cooldown window becomes an attendance event.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ..exceptions import ConfigurationError
from ..logging_config import get_logger
from .cache import CachedDetection

logger = get_logger(__name__)

AttendanceSink = Callable[['AttendanceEvent'], bool]


@dataclass(frozen=True)
class AttendanceEvent:
    timestamp: datetime
    label: int
    name: str

    def to_row(self) -> List[str]:
        """CSV row: ISO-8601 timestamp, label, name."""
        return [self.timestamp.isoformat(timespec='seconds'), str(self.label), self.name]


class AttendanceDebouncer:
    """
    Suppresses repeated attendance events for the same identity.

    State is one timestamp per identity label, so it grows with the number
    of identities seen, not with the number of frames.
    """

    def __init__(self, cooldown_seconds: float = 10.0):
        if cooldown_seconds < 0:
            raise ConfigurationError(f'cooldown_seconds must be >= 0, got {cooldown_seconds}')
        self.cooldown_seconds = float(cooldown_seconds)
        self._last_logged: Dict[int, datetime] = {}

    def should_log(self, label: Optional[int], now: datetime) -> bool:
        """
        Decide whether `label` may produce an event at `now`.

        Records `now` as the label's last emission when it returns True.

        Args:
            label: Identity label (0/None are never eligible)
            now: Current time

        Returns:
            True on first sighting or once the cooldown has elapsed
        """
        if not label:
            return False

        last = self._last_logged.get(label)
        if last is not None and (now - last).total_seconds() < self.cooldown_seconds:
            return False

        self._last_logged[label] = now
        return True

    def collect(self, detections: Iterable[CachedDetection], now: datetime) -> List[AttendanceEvent]:
        """
        Turn the detections of one frame into attendance events.

        Only found identities with a non-zero label are eligible; each label
        yields at most one event.
        """
        events = []
        for detection in detections:
            if not detection.found:
                continue
            if self.should_log(detection.label, now):
                events.append(AttendanceEvent(timestamp=now, label=detection.label, name=detection.name))
        return events

    def emit(
        self,
        detections: Iterable[CachedDetection],
        now: datetime,
        sink: AttendanceSink,
    ) -> List[Tuple[AttendanceEvent, bool]]:
        """
        Collect events and write them through `sink`.

        A failed write is reported back but does not roll back the debounce
        state, so the next frame does not retry it.

        Returns:
            List of (event, written) pairs
        """
        results = []
        for event in self.collect(detections, now):
            try:
                written = bool(sink(event))
            except Exception as e:
                logger.error(f'Attendance sink raised for {event.name} (label {event.label}): {e}')
                written = False

            if written:
                logger.info(f'✅ Attendance: {event.name} (label {event.label})')
            else:
                logger.warning(f'Attendance for {event.name} (label {event.label}) was not recorded')
            results.append((event, written))
        return results

    def last_seen(self, label: int) -> Optional[datetime]:
        return self._last_logged.get(label)

    def forget(self, label: int) -> None:
        self._last_logged.pop(label, None)

    def __len__(self) -> int:
        return len(self._last_logged)
