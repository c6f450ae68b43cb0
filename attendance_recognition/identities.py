"""
Identity management module.

User-management operations on the identity index. Every change is applied
to the index first and then persisted to the store file, so it is visible
to the very next search even if the disk write fails.
"""

import threading
from typing import List, Optional, Tuple

import cv2
import numpy as np
import requests

from .exceptions import StoreError
from .logging_config import get_logger
from .recognition.attendance import AttendanceDebouncer
from .recognition.identity_index import IdentityIndex, LoadReport
from .recognition.pipeline import RecognitionPipeline

logger = get_logger(__name__)


def load_image(source: str, timeout: int = 10) -> Optional[np.ndarray]:
    """
    Read an image from a local path or an http(s) URL.

    Args:
        source: File path or URL
        timeout: Download timeout in seconds

    Returns:
        BGR image, or None if it could not be read or decoded
    """
    if source.startswith('http://') or source.startswith('https://'):
        try:
            response = requests.get(source, timeout=timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error(f'Failed to download image {source}: {e}')
            return None
        return decode_image(response.content)

    image = cv2.imread(source, cv2.IMREAD_COLOR)
    if image is None:
        logger.error(f'Failed to read image {source}')
    return image


def decode_image(data: bytes) -> Optional[np.ndarray]:
    """Decode encoded image bytes (JPEG, PNG, ...) to BGR."""
    if not data:
        return None
    return cv2.imdecode(np.frombuffer(data, np.uint8), cv2.IMREAD_COLOR)


class IdentityManager:
    """
    Register, delete, rename and list identities.

    Args:
        index: Identity index shared with the frame loop
        store_file: Path the index is persisted to after each change
        pipeline: Needed only for registering from photos
        debouncer: Cleared for deleted identities when given
    """

    def __init__(
        self,
        index: IdentityIndex,
        store_file: str,
        pipeline: Optional[RecognitionPipeline] = None,
        debouncer: Optional[AttendanceDebouncer] = None,
    ):
        self.index = index
        self.store_file = store_file
        self.pipeline = pipeline
        self.debouncer = debouncer
        self._persist_lock = threading.Lock()

    def load(self) -> LoadReport:
        return self.index.load(self.store_file)

    def save(self) -> bool:
        """
        Persist the index.

        Returns:
            False if the store could not be written (the in-memory state is kept)
        """
        with self._persist_lock:
            try:
                self.index.persist(self.store_file)
                return True
            except StoreError as e:
                logger.error(f'❌ {e}')
                return False

    def list(self) -> List[Tuple[int, str]]:
        return self.index.list_identities()

    def register_embedding(self, name: str, embedding) -> int:
        """
        Enroll an identity from a precomputed embedding.

        Raises:
            ValueError: Invalid name or embedding
        """
        label = self.index.insert(name, embedding)
        self.save()
        return label

    def register_image(self, name: str, image: np.ndarray) -> Optional[int]:
        """
        Enroll an identity from a photo containing their face.

        The largest face in the photo is used.

        Returns:
            New label, or None when no face was found

        Raises:
            RuntimeError: No recognition pipeline is attached
            ValueError: Invalid name
        """
        if self.pipeline is None:
            raise RuntimeError('Registering from images requires a recognition pipeline')

        result = self.pipeline.embed_largest(image)
        if result is None:
            logger.warning(f'No face found in enrollment photo for "{name}"')
            return None

        detection, embedding = result
        logger.info(f'Face found for "{name}" (confidence {detection.confidence:.2f})')
        return self.register_embedding(name, embedding)

    def delete(self, label: int) -> bool:
        if not self.index.delete(label):
            logger.warning(f'Delete failed: unknown label {label}')
            return False
        if self.debouncer is not None:
            self.debouncer.forget(label)
        self.save()
        return True

    def rename(self, label: int, new_name: str) -> bool:
        if not self.index.rename(label, new_name):
            logger.warning(f'Rename failed for label {label}')
            return False
        self.save()
        return True
