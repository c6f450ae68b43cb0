"""
Flask application for the HTTP API.

Provides:
- GET    /health                  Service health check
- GET    /video_feed              MJPEG video stream
- GET    /identities              List enrolled identities
- POST   /identities              Enroll from JSON embedding or uploaded photo
- PATCH  /identities/<label>      Rename an identity
- DELETE /identities/<label>      Delete an identity
- POST   /search                  Diagnostic lookup of an embedding
- GET    /attendance              Recent attendance log rows
"""

from typing import Optional

from flask import Flask, Response, jsonify, request
from flask_cors import CORS

from .config import Config
from .events import AttendanceLog
from .identities import IdentityManager, decode_image
from .logging_config import get_logger
from .streaming import FrameBuffer

logger = get_logger(__name__)


def _error(message: str, status: int):
    return jsonify({'error': message}), status


def create_app(
    config: Config,
    manager: IdentityManager,
    frames: Optional[FrameBuffer] = None,
    attendance_log: Optional[AttendanceLog] = None,
) -> Flask:
    """
    Create and configure the Flask application.

    Args:
        config: Service configuration
        manager: Identity management service
        frames: Annotated frame buffer for the video feed
        attendance_log: Attendance log for the log viewer endpoint

    Returns:
        Configured Flask app
    """
    app = Flask(__name__)
    CORS(app)
    frames = frames or FrameBuffer()

    @app.route('/health')
    def health():
        return jsonify({
            'status': 'ok',
            'streaming': frames.is_streaming(),
            'identities': len(manager.index),
            'cameraId': config.camera_id,
            'service': config.service_name,
        })

    @app.route('/video_feed')
    def video_feed():
        return Response(
            frames.generate_mjpeg_frames(),
            mimetype='multipart/x-mixed-replace; boundary=frame',
        )

    @app.route('/identities', methods=['GET'])
    def list_identities():
        return jsonify([{'label': label, 'name': name} for label, name in manager.list()])

    @app.route('/identities', methods=['POST'])
    def register_identity():
        if request.is_json:
            payload = request.get_json(silent=True) or {}
            name = payload.get('name', '')
            embedding = payload.get('embedding')
            if not isinstance(name, str):
                return _error('name must be a string', 400)
            if not isinstance(embedding, list):
                return _error('embedding must be a list of numbers', 400)
            try:
                label = manager.register_embedding(name, embedding)
            except (TypeError, ValueError) as e:
                return _error(str(e), 400)
            return jsonify({'label': label, 'name': name.strip()}), 201

        name = request.form.get('name', '')
        upload = request.files.get('image')
        if upload is None:
            return _error('send JSON {name, embedding} or multipart name + image', 400)
        image = decode_image(upload.read())
        if image is None:
            return _error('image could not be decoded', 400)

        try:
            label = manager.register_image(name, image)
        except ValueError as e:
            return _error(str(e), 400)
        except RuntimeError as e:
            return _error(str(e), 503)
        if label is None:
            return _error('no face found in image', 422)
        return jsonify({'label': label, 'name': name.strip()}), 201

    @app.route('/identities/<int:label>', methods=['PATCH'])
    def rename_identity(label: int):
        payload = request.get_json(silent=True) or {}
        new_name = payload.get('name', '')
        if not isinstance(new_name, str) or not new_name.strip():
            return _error('name must be a non-empty string', 400)
        if not manager.rename(label, new_name):
            return _error(f'unknown identity {label}', 404)
        return jsonify({'label': label, 'name': new_name.strip()})

    @app.route('/identities/<int:label>', methods=['DELETE'])
    def delete_identity(label: int):
        if not manager.delete(label):
            return _error(f'unknown identity {label}', 404)
        return jsonify({'label': label, 'deleted': True})

    @app.route('/search', methods=['POST'])
    def search():
        payload = request.get_json(silent=True) or {}
        embedding = payload.get('embedding')
        if not isinstance(embedding, list):
            return _error('embedding must be a list of numbers', 400)
        try:
            result = manager.index.search(embedding, payload.get('threshold'))
        except (TypeError, ValueError) as e:
            return _error(str(e), 400)
        return jsonify({
            'name': result.name,
            'label': result.label,
            'similarity': result.similarity,
            'found': result.found,
        })

    @app.route('/attendance')
    def attendance():
        if attendance_log is None:
            return jsonify([])
        limit = request.args.get('limit', type=int)
        return jsonify(attendance_log.read_events(limit))

    return app
