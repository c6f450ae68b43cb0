import pytest

from attendance_recognition.config import Config, load_config
from attendance_recognition.exceptions import ConfigurationError


def test_defaults():
    config = Config()
    assert config.embedding_dim == 512
    assert config.similarity_threshold == 0.85
    assert config.frame_skip == 3
    assert config.cache_ttl_frames == 3
    assert config.attendance_cooldown_seconds == 10.0


@pytest.mark.parametrize('kwargs', [
    {'embedding_dim': 0},
    {'index_capacity': -1},
    {'similarity_threshold': 1.01},
    {'index_backend': 'annoy'},
    {'frame_skip': 0},
    {'cache_ttl_frames': 0},
    {'attendance_cooldown_seconds': -5},
    {'max_detections': 0},
    {'det_conf_threshold': 0.0},
])
def test_invalid_values_fail_fast(kwargs):
    with pytest.raises(ConfigurationError):
        Config(**kwargs)


def test_load_config_from_environment(monkeypatch):
    monkeypatch.setenv('EMBEDDING_DIM', '128')
    monkeypatch.setenv('SIMILARITY_THRESHOLD', '0.6')
    monkeypatch.setenv('FRAME_SKIP', '5')
    monkeypatch.setenv('CAMERA_SOURCE', 'rtsp://cam/stream')
    monkeypatch.delenv('CAMERA_ID', raising=False)
    monkeypatch.setenv('BACKEND_URL', 'http://backend:3000/')
    monkeypatch.setenv('DEBUG', 'yes')

    config = load_config()
    assert config.embedding_dim == 128
    assert config.similarity_threshold == 0.6
    assert config.frame_skip == 5
    assert config.camera_id == 'rtsp://cam/stream'
    assert config.backend_url == 'http://backend:3000'
    assert config.debug_mode is True


def test_malformed_environment_value(monkeypatch):
    monkeypatch.setenv('FRAME_SKIP', 'every-third')
    with pytest.raises(ConfigurationError):
        load_config()
