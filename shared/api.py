"""
HTTP API for the media server.

Routes requests to the catalog builder, the range streamer and the cover
resolver. Each request is handled independently; the only thing shared
between requests is the read-only storage client.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from flask import Flask, Blueprint, Response, current_app, jsonify, request, send_from_directory, stream_with_context
from flask_cors import CORS
from werkzeug.routing import PathConverter

from shared.constants import CORS_HEADERS, CORS_EXPOSE_HEADERS
from shared.models import ServerConfig
from storage.storage_provider import S3StorageProvider, ObjectNotFound, StoreUnavailable
from storage.provider_factory import StorageProviderFactory
from media.catalog import CatalogBuilder, TagReader
from media.covers import CoverResolver
from media.streaming import RangeStreamer

logger = logging.getLogger(__name__)

# Static presentation pages
WEB_UI_PATH = os.path.join(os.path.dirname(__file__), 'ui_web')


class ObjectKeyConverter(PathConverter):
    """Like <path:> but also matches keys with a leading or doubled slash."""
    regex = ".+?"
    part_isolating = False


@dataclass
class MediaCore:
    config: Optional[ServerConfig]
    catalog: CatalogBuilder
    streamer: RangeStreamer
    covers: CoverResolver


api = Blueprint('api', __name__)


def get_core():
    core = current_app.extensions['media_core']
    return core.catalog, core.streamer, core.covers


def request_origin() -> str:
    """Origin embedded in stream URLs (config override, else the request's own)."""
    config = current_app.extensions['media_core'].config
    if config and config.public_origin:
        return config.public_origin.rstrip('/')
    return request.host_url.rstrip('/')


def _text(body: str, status: int) -> Response:
    return Response(body, status=status, mimetype='text/plain')


# --- Pages ---

@api.route('/')
@api.route('/list')
def serve_list_page():
    return send_from_directory(WEB_UI_PATH, 'list.html')


@api.route('/player')
def serve_player_page():
    return send_from_directory(WEB_UI_PATH, 'player.html')


# --- Library Endpoints ---

@api.route('/api/files', methods=['GET'])
def list_files():
    catalog, _, _ = get_core()
    try:
        records = catalog.build_catalog(request_origin())
    except StoreUnavailable as e:
        logger.error("API: [Files] store unavailable: %s", e)
        return jsonify({"error": str(e)}), 500
    return jsonify([record.to_dict() for record in records])


@api.route('/api/stream/<key:key>', methods=['GET'])
def stream_track(key):
    """Stream an object with HTTP range support."""
    _, streamer, _ = get_core()
    try:
        result = streamer.stream(key, request.headers.get('Range'))
    except ObjectNotFound:
        return _text('File not found', 404)
    except StoreUnavailable as e:
        logger.error("API: [Stream] %s: %s", key, e)
        return _text('Error streaming file', 500)

    return Response(stream_with_context(result.body), status=result.status, headers=result.headers)


@api.route('/api/cover/', defaults={'key': ''}, methods=['GET'])
@api.route('/api/cover/<key:key>', methods=['GET'])
def get_track_cover(key):
    """Serve cover art for a track key, or the placeholder."""
    _, _, covers = get_core()
    cover = covers.resolve_cover(key)
    response = Response(cover.data, content_type=cover.content_type)
    response.headers['Cache-Control'] = cover.cache_control
    return response


# --- App ---

def create_app(config: Optional[ServerConfig] = None,
               storage: Optional[S3StorageProvider] = None,
               tag_reader: Optional[TagReader] = None) -> Flask:
    """
    Build the Flask application.

    Args:
        config: Server configuration; used for tuning and, when storage
                is not given, to connect to the store
        storage: Already-authenticated gateway (tests, embedding)
        tag_reader: Optional hook overriding filename metadata from tags

    Raises:
        StoreUnavailable: If connecting to the configured store fails
    """
    if storage is None:
        if config is None:
            raise ValueError("create_app needs a config or a storage provider")
        storage = StorageProviderFactory.connect(config)

    kwargs = {}
    stream_kwargs = {}
    if config:
        kwargs = dict(
            workers=config.catalog_workers,
            prefix_bytes=config.prefix_bytes,
            catalog_timeout=config.catalog_timeout,
            cache_ttl=config.catalog_cache_ttl,
        )
        stream_kwargs = dict(chunk_size=config.stream_chunk_size)

    app = Flask(__name__)
    app.extensions['media_core'] = MediaCore(
        config=config,
        catalog=CatalogBuilder(storage, tag_reader=tag_reader, **kwargs),
        streamer=RangeStreamer(storage, **stream_kwargs),
        covers=CoverResolver(storage),
    )

    @app.before_request
    def handle_preflight():
        # Answered without touching the store, for any path
        if request.method == 'OPTIONS':
            return Response(status=204)
        return None

    @app.after_request
    def add_cors_headers(response):
        for header, value in CORS_HEADERS.items():
            response.headers.setdefault(header, value)
        return response

    # Registered after add_cors_headers so flask-cors runs first
    CORS(app, origins="*", send_wildcard=True, methods=["GET", "OPTIONS"], allow_headers="*",
         expose_headers=CORS_EXPOSE_HEADERS)

    @app.errorhandler(404)
    def not_found(_error):
        return _text('Not found', 404)

    app.url_map.converters['key'] = ObjectKeyConverter
    app.register_blueprint(api)
    return app
