import logging

import pytest

from attendance_recognition.exceptions import ConfigurationError
from attendance_recognition.recognition.cache import (
    CachedDetection,
    CacheState,
    RecognitionCache,
)


def make_detection(name='Alice', label=1):
    return CachedDetection(box=(0, 0, 10, 10), name=name, confidence=0.9, similarity=0.95, label=label)


@pytest.mark.parametrize('ttl', [1, 3, 5])
def test_entry_survives_exactly_ttl_aging_passes(ttl):
    cache = RecognitionCache(frame_skip=1, ttl_frames=ttl)
    cache.replace([make_detection()])

    for _ in range(ttl):
        cache.age()
        assert len(cache.entries) == 1

    cache.age()
    assert cache.entries == []
    assert cache.state is CacheState.EMPTY


def test_replace_resets_ttl_and_discards_old_entries():
    cache = RecognitionCache(frame_skip=3, ttl_frames=3)
    cache.replace([make_detection('Alice', 1), make_detection('Bob', 2)])
    cache.age()

    cache.replace([make_detection('Carol', 3)])
    assert [e.name for e in cache.entries] == ['Carol']
    assert cache.entries[0].ttl == 3
    assert cache.state is CacheState.POPULATED


def test_replace_does_not_alias_pipeline_results():
    cache = RecognitionCache(frame_skip=3, ttl_frames=3)
    fresh = make_detection()
    cache.replace([fresh])
    cache.age()
    assert fresh.ttl == 0
    assert cache.entries[0].ttl == 2


def test_step_runs_full_pass_on_interval():
    cache = RecognitionCache(frame_skip=3, ttl_frames=3)
    calls = []

    def detect(frame):
        calls.append(frame)
        return [make_detection()]

    refreshed = [cache.step(i, detect).refreshed for i in range(1, 10)]

    # Frame 1 runs because the cache starts empty, then every third frame.
    assert refreshed == [True, False, True, False, False, True, False, False, True]
    assert calls == [1, 3, 6, 9]


def test_step_reuses_cache_between_passes():
    cache = RecognitionCache(frame_skip=3, ttl_frames=3)
    first = cache.step('f1', lambda frame: [make_detection('Alice', 1)])
    second = cache.step('f2', lambda frame: pytest.fail('pipeline must not run'))

    assert first.refreshed and not second.refreshed
    assert [d.name for d in second.detections] == ['Alice']
    assert second.frame_index == 2


def test_step_refreshes_every_frame_while_nothing_is_detected():
    cache = RecognitionCache(frame_skip=5, ttl_frames=5)
    results = [cache.step(i, lambda frame: []) for i in range(4)]
    assert all(r.refreshed for r in results)
    assert all(r.detections == [] for r in results)


def test_short_ttl_refreshes_when_cache_drains():
    cache = RecognitionCache(frame_skip=4, ttl_frames=1)
    passes = [cache.step(i, lambda frame: [make_detection()]).refreshed for i in range(1, 6)]
    # ttl 1 keeps an entry for one extra frame, after which the empty cache forces a pass.
    assert passes == [True, False, True, True, False]


def test_ttl_shorter_than_interval_warns(caplog):
    with caplog.at_level(logging.WARNING):
        RecognitionCache(frame_skip=3, ttl_frames=1)
    assert 'flicker' in caplog.text


@pytest.mark.parametrize('frame_skip, ttl', [(0, 3), (3, 0), (-1, -1)])
def test_invalid_configuration(frame_skip, ttl):
    with pytest.raises(ConfigurationError):
        RecognitionCache(frame_skip=frame_skip, ttl_frames=ttl)


def test_configure_at_runtime():
    cache = RecognitionCache()
    cache.configure(frame_skip=5, ttl_frames=6)
    assert (cache.frame_skip, cache.ttl_frames) == (5, 6)


def test_found_depends_on_label():
    assert make_detection('Alice', 1).found
    assert not make_detection('Unknown', 0).found
