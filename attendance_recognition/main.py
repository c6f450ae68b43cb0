"""
Attendance Recognition - Main Entry Point

Runs the recognition service for one camera, or manages the identity store
from the command line.
"""

import argparse
import os
import sys
from pathlib import Path

from .config import load_config
from .exceptions import ConfigurationError
from .identities import IdentityManager, load_image
from .logging_config import get_logger, setup_logging
from .recognition.identity_index import IdentityIndex

logger = get_logger(__name__)


def _load_local_env() -> None:
    """Load environment variables from a .env file in the working directory if present."""
    env_path = Path.cwd() / '.env'
    if not env_path.exists():
        return

    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith('#') or '=' not in line:
            continue
        key, value = line.split('=', 1)
        os.environ.setdefault(key.strip(), value.strip())


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog='attendance-recognition',
        description='Face recognition attendance service',
    )
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    parser.add_argument('--store-file', type=str, help='Identity store path (or set STORE_FILE)')

    subparsers = parser.add_subparsers(dest='command', required=True)

    serve = subparsers.add_parser('serve', help='Run recognition on the configured camera')
    serve.add_argument('--camera-source', type=str, help='Webcam index or stream URL (or set CAMERA_SOURCE)')
    serve.add_argument('--port', type=int, help='HTTP port (or set VIDEO_PORT)')

    subparsers.add_parser('list', help='List enrolled identities')

    register = subparsers.add_parser('register', help='Enroll an identity from a photo')
    register.add_argument('name', type=str)
    register.add_argument('image', type=str, help='Image path or http(s) URL')

    delete = subparsers.add_parser('delete', help='Delete an identity')
    delete.add_argument('label', type=int)

    rename = subparsers.add_parser('rename', help='Rename an identity')
    rename.add_argument('label', type=int)
    rename.add_argument('name', type=str)

    return parser.parse_args(argv)


def _build_manager(config, with_pipeline: bool = False) -> IdentityManager:
    index = IdentityIndex(
        dimension=config.embedding_dim,
        capacity=config.index_capacity,
        threshold=config.similarity_threshold,
        backend=config.index_backend,
    )
    pipeline = None
    if with_pipeline:
        from .face_app import InsightFaceDetector, InsightFaceEmbedder, initialize_face_app
        from .recognition.pipeline import RecognitionPipeline

        face_app = initialize_face_app(config)
        pipeline = RecognitionPipeline(
            InsightFaceDetector(face_app, config.max_detections, config.det_conf_threshold),
            InsightFaceEmbedder(face_app),
            index,
            threshold=config.similarity_threshold,
            min_eye_distance=config.min_eye_distance,
        )
    manager = IdentityManager(index, config.store_file, pipeline=pipeline)
    manager.load()
    return manager


def run_command(args: argparse.Namespace) -> int:
    """
    Execute a parsed command.

    Returns:
        Process exit code
    """
    overrides = {
        'STORE_FILE': args.store_file,
        'CAMERA_SOURCE': getattr(args, 'camera_source', None),
        'VIDEO_PORT': str(args.port) if getattr(args, 'port', None) else None,
    }
    for key, value in overrides.items():
        if value:
            os.environ[key] = value
    if args.debug:
        os.environ['DEBUG'] = 'true'

    config = load_config()

    if args.command == 'serve':
        from .video_loop import run

        logger.info('=' * 60)
        logger.info('Attendance Recognition Service')
        logger.info('=' * 60)
        logger.info(f'Camera: {config.camera_source}')
        logger.info(f'Store: {config.store_file}')
        logger.info(f'Threshold: {config.similarity_threshold}')
        logger.info(f'Frame skip: {config.frame_skip}, cache TTL: {config.cache_ttl_frames}')
        logger.info('=' * 60)
        run(config)
        return 0

    if args.command == 'list':
        manager = _build_manager(config)
        identities = manager.list()
        for label, name in identities:
            print(f'{label}\t{name}')
        print(f'{len(identities)} identities')
        return 0

    if args.command == 'register':
        manager = _build_manager(config, with_pipeline=True)
        image = load_image(args.image)
        if image is None:
            print(f'Cannot read image {args.image}', file=sys.stderr)
            return 1
        label = manager.register_image(args.name, image)
        if label is None:
            print(f'No face found in {args.image}', file=sys.stderr)
            return 1
        print(f'Registered "{args.name.strip()}" as label {label}')
        return 0

    if args.command == 'delete':
        manager = _build_manager(config)
        if not manager.delete(args.label):
            print(f'Unknown identity {args.label}', file=sys.stderr)
            return 1
        print(f'Deleted identity {args.label}')
        return 0

    if args.command == 'rename':
        manager = _build_manager(config)
        if not manager.rename(args.label, args.name):
            print(f'Cannot rename identity {args.label}: unknown label or empty name', file=sys.stderr)
            return 1
        print(f'Renamed identity {args.label} to "{args.name.strip()}"')
        return 0

    raise ValueError(f'Unknown command {args.command}')


def main(argv=None) -> None:
    """Main entry point."""
    _load_local_env()
    args = parse_args(argv)

    setup_logging(os.getenv('CAMERA_ID', os.getenv('CAMERA_SOURCE', '0')), args.debug)

    try:
        sys.exit(run_command(args))
    except ConfigurationError as e:
        logger.error(f'Invalid configuration: {e}')
        sys.exit(2)
    except KeyboardInterrupt:
        logger.info('Received keyboard interrupt, shutting down...')
        sys.exit(0)
    except Exception as e:
        logger.error(f'Fatal error: {e}', exc_info=True)
        sys.exit(1)


if __name__ == '__main__':
    main()
