"""
HTTP API: CORS proxy, slug creation/lookup and server-side metadata
"""

import asyncio
from typing import Optional
from urllib.parse import urlsplit

import requests
from flask import Flask, Response, jsonify, request, stream_with_context

from ..core.config import Settings
from ..core.errors import InvalidUrl, MetadataUnavailable, SlugGenerationError
from ..core.logger import get_logger
from ..core.models import PlayerConfig, ServerDialect
from ..core.prober import fetch_stream_metadata
from ..storage.slug_storage import SlugStorage

logger = get_logger('server')

CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Methods': 'GET, HEAD, OPTIONS',
    'Access-Control-Allow-Headers': 'Content-Type',
}

# Hop-by-hop and length headers are not forwarded
_DROPPED_HEADERS = {
    'connection', 'keep-alive', 'proxy-authenticate', 'proxy-authorization',
    'te', 'trailers', 'transfer-encoding', 'upgrade', 'content-length',
    'content-encoding',
}


def _validate_target(url: Optional[str]) -> Optional[str]:
    """Error text for an unusable proxy target, None when it is fine"""
    if not url:
        return 'Stream URL is required'
    try:
        parts = urlsplit(url)
        parts.port  # raises on a malformed port
    except ValueError:
        return 'Invalid stream URL'
    if not parts.scheme or not parts.netloc:
        return 'Invalid stream URL'
    if parts.scheme.lower() not in ('http', 'https'):
        return 'Only HTTP and HTTPS protocols are allowed'
    return None


def create_app(settings: Optional[Settings] = None,
               storage: Optional[SlugStorage] = None) -> Flask:
    """Build the Flask application"""
    settings = settings or Settings()
    storage = storage or SlugStorage(settings.data_file)
    # Requests made by the server itself never need the mixed-content proxy
    server_settings = settings.with_overrides(page_origin='')

    app = Flask(__name__)
    app.config['SHOUTSTREAM_SETTINGS'] = settings
    app.config['SHOUTSTREAM_STORAGE'] = storage

    @app.route('/api/proxy', methods=['GET', 'OPTIONS'], provide_automatic_options=False)
    def proxy():
        if request.method == 'OPTIONS':
            return Response(status=204, headers=CORS_HEADERS)

        target = request.args.get('url')
        problem = _validate_target(target)
        if problem:
            return Response(problem, status=400, mimetype='text/plain')

        try:
            upstream = requests.get(
                target,
                headers={'User-Agent': settings.user_agent},
                stream=True,
                timeout=(settings.request_timeout, None),
            )
        except requests.RequestException as e:
            logger.error("Proxy error", url=target, error=str(e))
            return Response('Failed to fetch stream', status=502, mimetype='text/plain')

        if not upstream.ok:
            status = upstream.status_code
            upstream.close()
            return Response(f"Stream returned {status}", status=status,
                            mimetype='text/plain', headers=CORS_HEADERS)

        headers = {
            key: value for key, value in upstream.headers.items()
            if key.lower() not in _DROPPED_HEADERS and not key.lower().startswith('access-control-')
        }
        headers.update(CORS_HEADERS)
        headers['Content-Type'] = upstream.headers.get('Content-Type', 'audio/mpeg')
        headers['Cache-Control'] = 'no-cache'

        def generate():
            try:
                for chunk in upstream.iter_content(chunk_size=8192):
                    if chunk:
                        yield chunk
            except requests.RequestException as e:
                logger.warning("Proxy stream interrupted", url=target, error=str(e))
            finally:
                upstream.close()

        logger.debug("Proxying", url=target, content_type=headers['Content-Type'])
        return Response(stream_with_context(generate()), status=upstream.status_code, headers=headers)

    @app.route('/api/create-slug', methods=['POST'])
    def create_slug():
        body = request.get_json(silent=True)
        if not isinstance(body, dict):
            body = {}
        stream_url = body.get('streamUrl')
        if not stream_url or not isinstance(stream_url, str):
            return jsonify({'error': 'streamUrl is required'}), 400
        try:
            dialect = ServerDialect.parse(body.get('serverDialect'))
        except ValueError as e:
            return jsonify({'error': str(e)}), 400

        config = PlayerConfig(
            stream_url=stream_url,
            logo_url=body.get('logoUrl') or None,
            server_dialect=dialect,
        )
        try:
            slug = storage.create(config)
        except SlugGenerationError as e:
            logger.error("Slug generation failed", url=stream_url)
            return jsonify({'error': str(e)}), 500

        return jsonify({'slug': slug, 'url': f"/player/{slug}"})

    @app.route('/api/player/<slug>', methods=['GET'])
    def player(slug):
        config = storage.increment_access_count(slug)
        if config is None:
            return jsonify({'error': 'Player not found'}), 404
        return jsonify({'slug': slug, **config.to_dict()})

    @app.route('/api/metadata', methods=['GET'])
    def metadata():
        stream_url = request.args.get('url', '')
        try:
            dialect = ServerDialect.parse(request.args.get('dialect'))
            result = asyncio.run(fetch_stream_metadata(stream_url, dialect, settings=server_settings))
        except (InvalidUrl, ValueError) as e:
            return jsonify({'error': str(e)}), 400
        except MetadataUnavailable as e:
            return jsonify({'error': str(e), 'dialects': list(e.dialects)}), 503
        return jsonify(result.to_dict())

    return app
