"""
Identity index.

Owns every enrolled face embedding together with its display name and
answers nearest-neighbour queries with a similarity threshold.

Invariants:
- every label in the name map has exactly one live vector in the backend
  and vice versa;
- labels come from a monotonic allocator (first label is 1, 0 means
  "no identity") and are never reused within a process;
- stored vectors have unit norm.

All operations take a single re-entrant lock, so searches issued by the
frame loop never observe a half-applied insert, delete or load coming from
the management API.
"""

import csv
import math
import os
import tempfile
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..exceptions import ConfigurationError, IndexConsistencyError, StoreError
from ..logging_config import get_logger
from .backends import VectorBackend, create_backend
from .embeddings import ZERO_NORM_EPS, normalize, similarity_from_distance

logger = get_logger(__name__)

NO_IDENTITY = 0


@dataclass(frozen=True)
class SearchResult:
    """
    Outcome of a nearest-neighbour lookup.

    `similarity` is reported even when `found` is False so callers can log
    near misses.
    """

    name: str
    label: int
    similarity: float
    found: bool


@dataclass
class LoadReport:
    """Summary of a store load, including one diagnostic per skipped record."""

    path: str
    loaded: int = 0
    skipped: int = 0
    reset: bool = False
    diagnostics: List[str] = field(default_factory=list)


class IdentityIndex:
    """
    Searchable collection of normalized face embeddings keyed to names.
    """

    def __init__(
        self,
        dimension: int = 512,
        capacity: int = 10000,
        threshold: float = 0.85,
        backend: str = 'numpy',
    ):
        """
        Initialize an empty index.

        Args:
            dimension: Embedding length
            capacity: Initial number of backend slots (grows on demand)
            threshold: Default minimum cosine similarity for a match
            backend: Vector backend name ('numpy' or 'faiss')

        Raises:
            ConfigurationError: If any argument is out of range
        """
        if dimension <= 0:
            raise ConfigurationError(f'dimension must be positive, got {dimension}')
        if capacity <= 0:
            raise ConfigurationError(f'capacity must be positive, got {capacity}')
        if not -1.0 <= threshold <= 1.0:
            raise ConfigurationError(f'threshold must be within [-1, 1], got {threshold}')

        self.dimension = dimension
        self.threshold = float(threshold)
        self.backend_kind = backend
        self._initial_capacity = capacity

        self._lock = threading.RLock()
        self._backend: VectorBackend = create_backend(backend, dimension, capacity)
        self._names: Dict[int, str] = {}
        self._next_label = 1
        self.inconsistencies = 0

    @property
    def capacity(self) -> int:
        return self._backend.capacity

    def __len__(self) -> int:
        with self._lock:
            return len(self._names)

    def __contains__(self, label: object) -> bool:
        with self._lock:
            return label in self._names

    def insert(self, name: str, embedding: Sequence[float]) -> int:
        """
        Enroll a new identity.

        Duplicate names are allowed; each call creates a distinct identity.

        Args:
            name: Display name
            embedding: Face embedding of length `dimension`

        Returns:
            Newly allocated label (>= 1)

        Raises:
            ValueError: Empty name, wrong shape, non-finite or zero vector
        """
        name = str(name).strip()
        if not name:
            raise ValueError('Identity name must not be empty')
        vector = self._validated(embedding)
        if float(np.linalg.norm(vector)) < ZERO_NORM_EPS:
            raise ValueError('Cannot enroll a zero-norm embedding')
        vector = normalize(vector)

        with self._lock:
            if self._backend.is_full:
                self._grow()
            label = self._next_label
            self._backend.add(label, vector)
            self._names[label] = name
            self._next_label += 1

        logger.info(f'Enrolled "{name}" as label {label}')
        return label

    def search(self, embedding: Sequence[float], threshold: Optional[float] = None) -> SearchResult:
        """
        Find the closest enrolled identity.

        Args:
            embedding: Query embedding of length `dimension`
            threshold: Minimum similarity; defaults to the index threshold

        Returns:
            SearchResult; `found` is False for an empty index, a zero-norm
            query, a match below threshold, or a label missing from the name map

        Raises:
            ValueError: Wrong shape, non-finite values or threshold outside [-1, 1]
        """
        threshold = self.threshold if threshold is None else float(threshold)
        if not -1.0 <= threshold <= 1.0:
            raise ValueError(f'threshold must be within [-1, 1], got {threshold}')
        vector = self._validated(embedding)
        if float(np.linalg.norm(vector)) < ZERO_NORM_EPS:
            logger.debug('Zero-norm query embedding; treating as not found')
            return SearchResult(name='', label=NO_IDENTITY, similarity=0.0, found=False)
        query = normalize(vector)

        with self._lock:
            hit = self._backend.search(query)
            if hit is None:
                return SearchResult(name='', label=NO_IDENTITY, similarity=0.0, found=False)
            label, distance = hit
            name = self._names.get(label)
            if name is None:
                self.inconsistencies += 1

        similarity = similarity_from_distance(distance)

        if name is None:
            logger.warning(
                f'Index inconsistency: nearest label {label} has no name '
                f'(similarity {similarity:.3f}); treating as not found'
            )
            return SearchResult(name='', label=NO_IDENTITY, similarity=similarity, found=False)

        if similarity < threshold:
            return SearchResult(name='', label=NO_IDENTITY, similarity=similarity, found=False)

        return SearchResult(name=name, label=label, similarity=similarity, found=True)

    def delete(self, label: int) -> bool:
        """
        Remove an identity.

        Args:
            label: Identity label

        Returns:
            False if the label is unknown

        Raises:
            IndexConsistencyError: The backend had no vector for a named label
        """
        with self._lock:
            if label not in self._names:
                return False
            if not self._backend.mark_removed(label):
                raise IndexConsistencyError(f'Label {label} is named but has no stored vector')
            name = self._names.pop(label)

        logger.info(f'Deleted "{name}" (label {label})')
        return True

    def rename(self, label: int, new_name: str) -> bool:
        """
        Change the display name of an identity.

        Returns:
            False if the label is unknown or the new name is empty
        """
        new_name = (new_name or '').strip()
        if not new_name:
            return False

        with self._lock:
            if label not in self._names:
                return False
            old_name = self._names[label]
            self._names[label] = new_name

        logger.info(f'Renamed label {label}: "{old_name}" -> "{new_name}"')
        return True

    def list_identities(self) -> List[Tuple[int, str]]:
        """Return (label, name) for every identity, ordered by label."""
        with self._lock:
            return sorted(self._names.items())

    def get_embedding(self, label: int) -> Optional[np.ndarray]:
        with self._lock:
            if label not in self._names:
                return None
            return self._backend.get_vector(label)

    def clear(self) -> None:
        """Drop every identity. The label allocator keeps counting."""
        with self._lock:
            self._backend = create_backend(self.backend_kind, self.dimension, self._initial_capacity)
            self._names = {}

    def check_consistency(self) -> None:
        """
        Verify the name map and backend hold the same labels.

        Raises:
            IndexConsistencyError: On any divergence or non-unit vector
        """
        with self._lock:
            named = set(self._names)
            stored = set(self._backend.labels())
            if named != stored:
                raise IndexConsistencyError(
                    f'Name map and backend diverge: only named {sorted(named - stored)}, '
                    f'only stored {sorted(stored - named)}'
                )
            for label in stored:
                norm = float(np.linalg.norm(self._backend.get_vector(label)))
                if abs(norm - 1.0) > 1e-4:
                    raise IndexConsistencyError(f'Label {label} has norm {norm:.6f}')

    def persist(self, path: str) -> None:
        """
        Write every identity to a CSV store file.

        Each line is `name,v0,...,v{D-1}`. The file is written to a
        temporary sibling and moved into place, so a crash never leaves a
        truncated store behind.

        Args:
            path: Store file path

        Raises:
            StoreError: If the file cannot be written
        """
        with self._lock:
            rows = []
            for label in sorted(self._names):
                vector = self._backend.get_vector(label)
                if vector is None:
                    raise IndexConsistencyError(f'Label {label} is named but has no stored vector')
                rows.append([self._names[label]] + [repr(float(v)) for v in vector])

        directory = os.path.dirname(os.path.abspath(path))
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix='.identities-', suffix='.tmp', dir=directory)
            with os.fdopen(fd, 'w', newline='', encoding='utf-8') as f:
                csv.writer(f).writerows(rows)
            os.replace(tmp_path, path)
        except OSError as e:
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise StoreError(f'Failed to write identity store {path}: {e}') from e

        logger.info(f'Saved {len(rows)} identities to {path}')

    def load(self, path: str) -> LoadReport:
        """
        Replace the in-memory identities with the contents of a store file.

        Corrupt lines are skipped with a diagnostic. A missing file, or an
        error while reading, leaves the index empty.

        Args:
            path: Store file path

        Returns:
            LoadReport describing what was loaded and skipped

        Raises:
            IndexConsistencyError: The rebuilt index does not match its name map
        """
        report = LoadReport(path=str(path))
        records: List[Tuple[str, np.ndarray]] = []

        try:
            with open(path, 'r', newline='', encoding='utf-8') as f:
                reader = csv.reader(f)
                for row in reader:
                    record = self._parse_record(row, reader.line_num, report)
                    if record is not None:
                        records.append(record)
        except FileNotFoundError:
            message = f'{path}: identity store not found, starting with an empty index'
            report.diagnostics.append(message)
            logger.warning(message)
            self.clear()
            return report
        except (OSError, UnicodeDecodeError, csv.Error) as e:
            message = f'{path}: failed to read identity store ({e}), index reset to empty'
            report.diagnostics.append(message)
            report.reset = True
            report.loaded = 0
            logger.error(message)
            self.clear()
            return report

        capacity = self._initial_capacity
        while capacity < len(records):
            capacity *= 2

        with self._lock:
            backend = create_backend(self.backend_kind, self.dimension, capacity)
            names: Dict[int, str] = {}
            for name, vector in records:
                label = self._next_label
                self._next_label += 1
                backend.add(label, vector)
                names[label] = name
            self._backend = backend
            self._names = names
            self.check_consistency()

        report.loaded = len(records)
        logger.info(
            f'Loaded {report.loaded} identities from {path}'
            + (f' ({report.skipped} corrupt lines skipped)' if report.skipped else '')
        )
        return report

    def _parse_record(
        self,
        row: List[str],
        line_no: int,
        report: LoadReport,
    ) -> Optional[Tuple[str, np.ndarray]]:
        if not row or (len(row) == 1 and not row[0].strip()):
            return None

        def skip(reason: str) -> None:
            message = f'{report.path}:{line_no}: {reason}; record skipped'
            report.skipped += 1
            report.diagnostics.append(message)
            logger.warning(message)

        name = row[0].strip()
        if not name:
            skip('empty name')
            return None

        if len(row) != self.dimension + 1:
            skip(f'expected {self.dimension} values, found {len(row) - 1}')
            return None

        try:
            values = [float(v) for v in row[1:]]
        except ValueError as e:
            skip(f'non-numeric value ({e})')
            return None

        if not all(math.isfinite(v) for v in values):
            skip('non-finite value')
            return None

        vector = np.asarray(values, dtype=np.float32)
        if float(np.linalg.norm(vector)) < ZERO_NORM_EPS:
            skip('zero-norm embedding')
            return None

        return name, normalize(vector)

    def _validated(self, embedding: Sequence[float]) -> np.ndarray:
        vector = np.asarray(embedding, dtype=np.float32).reshape(-1)
        if vector.shape[0] != self.dimension:
            raise ValueError(f'Expected embedding of length {self.dimension}, got {vector.shape[0]}')
        if not np.all(np.isfinite(vector)):
            raise ValueError('Embedding contains non-finite values')
        return vector

    def _grow(self) -> None:
        live = len(self._backend)
        old_capacity = self._backend.capacity
        new_capacity = old_capacity if live < old_capacity else old_capacity * 2
        logger.warning(
            f'Index capacity {old_capacity} reached ({live} live identities), '
            f'rebuilding with capacity {new_capacity}'
        )
        self._backend.rebuild(new_capacity)
