import numpy as np
import pytest

from attendance_recognition.recognition.embeddings import (
    is_unit,
    l2_distance,
    normalize,
    similarity_from_distance,
)


def test_normalize_gives_unit_norm():
    rng = np.random.default_rng(0)
    for _ in range(50):
        v = rng.normal(size=512) * rng.uniform(0.01, 100.0)
        assert abs(np.linalg.norm(normalize(v)) - 1.0) < 1e-5


def test_normalize_zero_vector_is_unchanged():
    v = normalize([0.0, 0.0, 0.0])
    assert v.dtype == np.float32
    assert np.array_equal(v, np.zeros(3, dtype=np.float32))


def test_similarity_matches_dot_product():
    rng = np.random.default_rng(1)
    for _ in range(50):
        a = normalize(rng.normal(size=64))
        b = normalize(rng.normal(size=64))
        expected = float(np.dot(a.astype(np.float64), b.astype(np.float64)))
        assert abs(similarity_from_distance(l2_distance(a, b)) - expected) < 1e-5


def test_similarity_bounds():
    assert similarity_from_distance(0.0) == 1.0
    assert similarity_from_distance(2.0) == -1.0
    assert similarity_from_distance(np.sqrt(2.0)) == pytest.approx(0.0, abs=1e-12)


def test_is_unit():
    assert is_unit([1.0, 0.0])
    assert not is_unit([1.0, 1.0])
