"""
Candidate playback URLs for Shoutcast/Icecast streams
"""

from typing import List, NamedTuple, Optional
from urllib.parse import quote, urlsplit

from .config import DEFAULT_PROXY_PATH
from .errors import InvalidUrl
from .models import ServerDialect

# Mount conventions tried when the caller points at a server root.
# Shoutcast v1/v2 first, then Icecast.
MOUNT_SUFFIXES = (
    '/;',
    '/;stream',
    '/;stream.mp3',
    '/radio.mp3',
    '/stream',
    '/listen.mp3',
)

_DEFAULT_PORTS = {'http': 80, 'https': 443}

# Ports Shoutcast installs commonly default to
_SHOUTCAST_PORT_RANGES = ((8000, 8008), (8030, 8040))

# Characters encodeURIComponent leaves unescaped besides alphanumerics and -_.~
_URI_COMPONENT_SAFE = "!'()*"


class ParsedUrl(NamedTuple):
    scheme: str
    host: str
    port: Optional[int]

    @property
    def origin(self) -> str:
        host = f"[{self.host}]" if ':' in self.host else self.host
        if self.port is None or _DEFAULT_PORTS.get(self.scheme) == self.port:
            return f"{self.scheme}://{host}"
        return f"{self.scheme}://{host}:{self.port}"


def parse_stream_url(url: str) -> ParsedUrl:
    """Split a URL into scheme, host and port, raising InvalidUrl on failure"""
    if not isinstance(url, str):
        raise InvalidUrl(repr(url))
    try:
        parts = urlsplit(url.strip())
        port = parts.port  # raises ValueError for out-of-range ports
    except ValueError as e:
        raise InvalidUrl(url) from e
    if not parts.scheme or not parts.hostname:
        raise InvalidUrl(url)
    return ParsedUrl(parts.scheme.lower(), parts.hostname, port)


def base_url(url: str) -> str:
    """scheme://host[:port] of a stream URL; path and query are dropped"""
    return parse_stream_url(url).origin


def generate_variants(raw_url: str) -> List[str]:
    """Generate the ordered list of playback URLs to try for a stream.

    The original URL always comes first. When it points at a server root
    (ends with ``/``) the common Shoutcast and Icecast mount paths are
    appended. Input that does not parse is returned as the only candidate.
    """
    variants = [raw_url]
    try:
        parsed = parse_stream_url(raw_url)
    except InvalidUrl:
        return variants

    if raw_url.endswith('/'):
        variants.extend(parsed.origin + suffix for suffix in MOUNT_SUFFIXES)

    # Remove duplicates while preserving order
    return list(dict.fromkeys(variants))


def to_effective_url(candidate: str, page_is_secure: bool,
                     proxy_path: str = DEFAULT_PROXY_PATH) -> str:
    """Route plain-http candidates through the proxy when the page is https"""
    if page_is_secure and candidate[:5].lower() == 'http:':
        return f"{proxy_path}?url={quote(candidate, safe=_URI_COMPONENT_SAFE)}"
    return candidate


def guess_dialect(url: str) -> ServerDialect:
    """Best-effort dialect hint from the port number.

    Shoutcast and Icecast port ranges overlap, so the answer is only a hint
    for display; the metadata cascade never relies on it.
    """
    try:
        port = parse_stream_url(url).port
    except InvalidUrl:
        return ServerDialect.UNKNOWN
    if port is not None and any(low <= port <= high for low, high in _SHOUTCAST_PORT_RANGES):
        return ServerDialect.SHOUTCAST_V1
    return ServerDialect.UNKNOWN
