from datetime import datetime

import cv2
import numpy as np
import pytest

from attendance_recognition import identities
from attendance_recognition.identities import IdentityManager, decode_image, load_image
from attendance_recognition.recognition.attendance import AttendanceDebouncer
from attendance_recognition.recognition.identity_index import IdentityIndex

ALICE = [1.0, 0.0, 0.0, 0.0]


@pytest.fixture
def store(tmp_path):
    return str(tmp_path / 'faces.csv')


def reload(store):
    index = IdentityIndex(dimension=4, capacity=4)
    index.load(store)
    return [name for _, name in index.list_identities()]


def test_register_embedding_persists(index, store):
    manager = IdentityManager(index, store)
    label = manager.register_embedding('Alice', ALICE)

    assert index.search(ALICE).label == label
    assert reload(store) == ['Alice']


def test_delete_and_rename_persist(index, store):
    manager = IdentityManager(index, store)
    alice = manager.register_embedding('Alice', ALICE)
    bob = manager.register_embedding('Bob', [0.0, 1.0, 0.0, 0.0])

    assert manager.rename(bob, 'Robert')
    assert manager.delete(alice)
    assert reload(store) == ['Robert']
    assert manager.list() == [(bob, 'Robert')]


def test_unknown_labels_return_false(index, store):
    manager = IdentityManager(index, store)
    assert not manager.delete(5)
    assert not manager.rename(5, 'Nobody')


def test_delete_clears_debounce_state(index, store):
    debouncer = AttendanceDebouncer()
    manager = IdentityManager(index, store, debouncer=debouncer)
    label = manager.register_embedding('Alice', ALICE)
    debouncer.should_log(label, datetime(2024, 1, 1))

    manager.delete(label)
    assert debouncer.last_seen(label) is None


def test_store_failure_keeps_in_memory_change(index, tmp_path):
    blocker = tmp_path / 'not-a-dir'
    blocker.write_text('')
    manager = IdentityManager(index, str(blocker / 'faces.csv'))

    label = manager.register_embedding('Alice', ALICE)
    assert index.search(ALICE).label == label
    assert not manager.save()


def test_load_uses_store_file(index, store):
    with open(store, 'w') as f:
        f.write('Alice,1,0,0,0\nbroken\n')
    report = IdentityManager(index, store).load()
    assert report.loaded == 1
    assert report.skipped == 1


def test_register_image_uses_largest_face(index, store, make_pipeline, frame):
    manager = IdentityManager(index, store, pipeline=make_pipeline(ALICE))
    label = manager.register_image('Alice', frame)
    assert label == 1
    assert index.search(ALICE).name == 'Alice'


def test_register_image_without_face(index, store, make_pipeline, frame):
    manager = IdentityManager(index, store, pipeline=make_pipeline(ALICE, detections=[]))
    assert manager.register_image('Alice', frame) is None
    assert len(index) == 0


def test_register_image_requires_pipeline(index, store, frame):
    with pytest.raises(RuntimeError):
        IdentityManager(index, store).register_image('Alice', frame)


def test_load_image_from_path(tmp_path, frame):
    path = tmp_path / 'face.png'
    cv2.imwrite(str(path), frame)
    image = load_image(str(path))
    assert np.array_equal(image, frame)
    assert load_image(str(tmp_path / 'missing.png')) is None


def test_load_image_from_url(monkeypatch, frame):
    ok, encoded = cv2.imencode('.png', frame)

    class Response:
        content = encoded.tobytes()

        def raise_for_status(self):
            pass

    monkeypatch.setattr(identities.requests, 'get', lambda url, timeout: Response())
    image = load_image('https://example.com/face.png')
    assert np.array_equal(image, frame)


def test_decode_image_rejects_garbage():
    assert decode_image(b'') is None
    assert decode_image(b'not an image') is None
