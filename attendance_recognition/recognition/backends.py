"""
Nearest-neighbour backends for the identity index.

A backend stores unit vectors under integer labels and answers
1-nearest-neighbour queries by Euclidean distance. It knows nothing about
names; `IdentityIndex` owns the label -> name mapping and decides which
labels are valid identities.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

import numpy as np

from ..exceptions import ConfigurationError


class BackendFullError(RuntimeError):
    """Raised by `add` when every slot is in use."""


class VectorBackend(ABC):
    """
    Interface every nearest-neighbour structure must implement.

    Distances returned by `search` are plain Euclidean (not squared).
    """

    def __init__(self, dimension: int, capacity: int):
        if dimension <= 0:
            raise ConfigurationError(f'dimension must be positive, got {dimension}')
        if capacity <= 0:
            raise ConfigurationError(f'capacity must be positive, got {capacity}')
        self.dimension = dimension
        self.capacity = capacity

    @abstractmethod
    def add(self, label: int, vector: np.ndarray) -> None:
        """Store `vector` under `label`. Raises BackendFullError when full."""
        raise NotImplementedError

    @abstractmethod
    def search(self, vector: np.ndarray) -> Optional[Tuple[int, float]]:
        """Return (label, distance) of the nearest live vector, or None."""
        raise NotImplementedError

    @abstractmethod
    def mark_removed(self, label: int) -> bool:
        """Exclude `label` from future searches. False if it is not live."""
        raise NotImplementedError

    @abstractmethod
    def rebuild(self, capacity: int) -> None:
        """Re-create storage with `capacity` slots holding only live vectors."""
        raise NotImplementedError

    @abstractmethod
    def get_vector(self, label: int) -> Optional[np.ndarray]:
        raise NotImplementedError

    @abstractmethod
    def labels(self) -> List[int]:
        """Labels of all live vectors."""
        raise NotImplementedError

    @abstractmethod
    def __len__(self) -> int:
        raise NotImplementedError

    @property
    @abstractmethod
    def is_full(self) -> bool:
        raise NotImplementedError


class NumpyBackend(VectorBackend):
    """
    Exact brute-force search over a preallocated float32 matrix.

    Removed slots stay allocated until `rebuild`, mirroring the soft
    deletion of graph-based indexes.
    """

    def __init__(self, dimension: int, capacity: int):
        super().__init__(dimension, capacity)
        self._vectors = np.zeros((capacity, dimension), dtype=np.float32)
        self._labels = np.zeros(capacity, dtype=np.int64)
        self._live = np.zeros(capacity, dtype=bool)
        self._slots: Dict[int, int] = {}
        self._used = 0

    def add(self, label: int, vector: np.ndarray) -> None:
        if label in self._slots:
            raise ValueError(f'Label {label} is already stored')
        if self._used >= self.capacity:
            raise BackendFullError(f'All {self.capacity} slots are in use')

        slot = self._used
        self._vectors[slot] = vector
        self._labels[slot] = label
        self._live[slot] = True
        self._slots[label] = slot
        self._used += 1

    def search(self, vector: np.ndarray) -> Optional[Tuple[int, float]]:
        if not self._slots:
            return None

        live = np.flatnonzero(self._live[:self._used])
        diffs = self._vectors[live] - vector.astype(np.float32)
        sq_dists = np.einsum('ij,ij->i', diffs, diffs)
        best = int(np.argmin(sq_dists))
        return int(self._labels[live[best]]), float(np.sqrt(max(float(sq_dists[best]), 0.0)))

    def mark_removed(self, label: int) -> bool:
        slot = self._slots.pop(label, None)
        if slot is None:
            return False
        self._live[slot] = False
        return True

    def rebuild(self, capacity: int) -> None:
        if capacity < len(self._slots):
            raise ValueError(
                f'Cannot rebuild with capacity {capacity} below {len(self._slots)} live vectors'
            )
        live = [(label, self._vectors[slot].copy()) for label, slot in self._slots.items()]

        self.capacity = capacity
        self._vectors = np.zeros((capacity, self.dimension), dtype=np.float32)
        self._labels = np.zeros(capacity, dtype=np.int64)
        self._live = np.zeros(capacity, dtype=bool)
        self._slots = {}
        self._used = 0
        for label, vector in live:
            self.add(label, vector)

    def get_vector(self, label: int) -> Optional[np.ndarray]:
        slot = self._slots.get(label)
        if slot is None:
            return None
        return self._vectors[slot].copy()

    def labels(self) -> List[int]:
        return list(self._slots)

    def __len__(self) -> int:
        return len(self._slots)

    @property
    def is_full(self) -> bool:
        return self._used >= self.capacity


class FaissBackend(VectorBackend):
    """
    Exact L2 search with FAISS (`IndexIDMap2` over `IndexFlatL2`).

    FAISS reports squared distances; they are converted before leaving
    the backend.
    """

    def __init__(self, dimension: int, capacity: int):
        super().__init__(dimension, capacity)
        try:
            import faiss
        except ImportError as exc:
            raise ConfigurationError(
                'index_backend "faiss" requires the faiss-cpu package'
            ) from exc
        self._index = faiss.IndexIDMap2(faiss.IndexFlatL2(dimension))
        self._live: Dict[int, bool] = {}

    def add(self, label: int, vector: np.ndarray) -> None:
        if label in self._live:
            raise ValueError(f'Label {label} is already stored')
        if len(self._live) >= self.capacity:
            raise BackendFullError(f'All {self.capacity} slots are in use')
        self._index.add_with_ids(
            vector.astype(np.float32).reshape(1, -1),
            np.array([label], dtype=np.int64),
        )
        self._live[label] = True

    def search(self, vector: np.ndarray) -> Optional[Tuple[int, float]]:
        if not self._live:
            return None
        sq_dists, ids = self._index.search(vector.astype(np.float32).reshape(1, -1), 1)
        label = int(ids[0][0])
        if label < 0:
            return None
        return label, float(np.sqrt(max(float(sq_dists[0][0]), 0.0)))

    def mark_removed(self, label: int) -> bool:
        if self._live.pop(label, None) is None:
            return False
        self._index.remove_ids(np.array([label], dtype=np.int64))
        return True

    def rebuild(self, capacity: int) -> None:
        if capacity < len(self._live):
            raise ValueError(
                f'Cannot rebuild with capacity {capacity} below {len(self._live)} live vectors'
            )
        # Flat storage has no dead slots to reclaim; only the limit changes.
        self.capacity = capacity

    def get_vector(self, label: int) -> Optional[np.ndarray]:
        if label not in self._live:
            return None
        return np.asarray(self._index.reconstruct(int(label)), dtype=np.float32)

    def labels(self) -> List[int]:
        return list(self._live)

    def __len__(self) -> int:
        return len(self._live)

    @property
    def is_full(self) -> bool:
        return len(self._live) >= self.capacity


def create_backend(kind: str, dimension: int, capacity: int) -> VectorBackend:
    """
    Build a vector backend by name.

    Args:
        kind: 'numpy' or 'faiss'
        dimension: Embedding dimension
        capacity: Initial number of slots

    Returns:
        Backend instance

    Raises:
        ConfigurationError: Unknown backend or invalid size
    """
    if kind == 'numpy':
        return NumpyBackend(dimension, capacity)
    if kind == 'faiss':
        return FaissBackend(dimension, capacity)
    raise ConfigurationError(f'Unknown index backend {kind!r}')
