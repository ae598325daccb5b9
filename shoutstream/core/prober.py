"""
Metadata probing across Icecast, Shoutcast v1 and Shoutcast v2 status endpoints
"""

import json
from dataclasses import dataclass
from typing import Dict, Optional, Protocol, Tuple, Union

from .config import Settings
from .dialects import PARSERS, DialectParser, ParsedFields
from .errors import EndpointUnreachable, MetadataUnavailable, UnparsableBody
from .logger import get_logger
from .models import ServerDialect, StreamMetadata
from .resolver import base_url
from .transport import FetchResponse, HttpTransport

logger = get_logger('prober')


# Probe order when the dialect is not known; also the order within a dialect
CASCADE: Dict[ServerDialect, Tuple[str, ...]] = {
    ServerDialect.ICECAST: (
        '/status-json.xsl',
    ),
    ServerDialect.SHOUTCAST_V1: (
        '/stats?sid=1&json=1',
        '/',
    ),
    ServerDialect.SHOUTCAST_V2: (
        '/stats',
        '/api/statistics',
    ),
}


class Transport(Protocol):
    async def fetch(self, url: str) -> FetchResponse:
        ...


@dataclass(frozen=True)
class ProbeResult:
    metadata: StreamMetadata
    dialect: ServerDialect
    endpoint: Optional[str] = None


def interpret_body(response: FetchResponse, parser: DialectParser) -> ParsedFields:
    """Turn one endpoint answer into fields, or raise UnparsableBody.

    Bodies are tried as JSON whatever the Content-Type says, since plenty
    of servers label JSON as text/html. Text parsing only counts when it
    finds a title.
    """
    text = response.text.strip()
    if not text:
        raise UnparsableBody(response.url)

    try:
        payload = json.loads(text)
    except ValueError:
        payload = None
    if isinstance(payload, (dict, list)):
        return parser.parse_json(payload)

    fields = parser.parse_text(text)
    if fields.has_title:
        return fields
    raise UnparsableBody(response.url)


async def _attempt(transport: Transport, url: str, parser: DialectParser) -> ParsedFields:
    response = await transport.fetch(url)
    if not response.ok:
        raise EndpointUnreachable(url, status=response.status)
    return interpret_body(response, parser)


def _dialect_order(dialect: Union[ServerDialect, str, None]) -> Tuple[ServerDialect, ...]:
    dialect = ServerDialect.parse(dialect)
    if dialect.is_known:
        return (dialect,)
    return tuple(CASCADE)


async def probe_stream_metadata(stream_url: str,
                                dialect: Union[ServerDialect, str, None] = None,
                                transport: Optional[Transport] = None,
                                settings: Optional[Settings] = None) -> ProbeResult:
    """Walk the status endpoint cascade and report which dialect answered.

    Raises InvalidUrl for unparsable input and MetadataUnavailable when no
    endpoint produced a usable body.
    """
    base = base_url(stream_url)
    dialects = _dialect_order(dialect)
    explicit = len(dialects) == 1

    owned_transport = None
    if transport is None:
        transport = owned_transport = HttpTransport(settings)

    fallback: Optional[ProbeResult] = None
    try:
        for current in dialects:
            parser = PARSERS[current]
            for path in CASCADE[current]:
                url = base + path
                try:
                    fields = await _attempt(transport, url, parser)
                except (EndpointUnreachable, UnparsableBody) as e:
                    logger.debug("Status endpoint failed", url=url, dialect=current.value, error=str(e))
                    continue

                metadata = fields.to_metadata()
                if not metadata.is_default:
                    logger.debug("Metadata found", url=url, dialect=current.value,
                                 song_title=metadata.song_title, listeners=metadata.listeners)
                    return ProbeResult(metadata, current, url)

                # Parsed but empty: remember it, keep looking
                if fallback is None:
                    fallback = ProbeResult(
                        metadata,
                        current if explicit else ServerDialect.UNKNOWN,
                        url,
                    )
    finally:
        if owned_transport is not None:
            owned_transport.close()

    if fallback is not None:
        return fallback

    names = [d.value for d in dialects]
    logger.info("No metadata endpoint answered", url=stream_url, dialects=names)
    raise MetadataUnavailable(names)


async def fetch_stream_metadata(stream_url: str,
                                dialect: Union[ServerDialect, str, None] = None,
                                transport: Optional[Transport] = None,
                                settings: Optional[Settings] = None) -> StreamMetadata:
    """Normalized ``{songTitle, listeners}`` for the host serving ``stream_url``"""
    result = await probe_stream_metadata(stream_url, dialect, transport, settings)
    return result.metadata
