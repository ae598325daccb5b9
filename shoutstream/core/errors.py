"""
Exception types raised by the resolver, prober and player session
"""

from typing import Iterable, Optional, Tuple


class ShoutStreamError(Exception):
    """Base class for all package errors"""


class InvalidUrl(ShoutStreamError, ValueError):
    """Input could not be parsed as a stream URL"""

    def __init__(self, url: str):
        super().__init__(f"Invalid stream URL: {url!r}")
        self.url = url


class FetchError(ShoutStreamError):
    """Base class for metadata fetch failures"""


class EndpointUnreachable(FetchError):
    """Network failure or non-2xx answer from one status endpoint"""

    def __init__(self, url: str, status: Optional[int] = None, reason: str = ''):
        detail = f"status {status}" if status is not None else (reason or 'network error')
        super().__init__(f"{url}: {detail}")
        self.url = url
        self.status = status


class UnparsableBody(FetchError):
    """The endpoint answered but no parser accepted the body"""

    def __init__(self, url: str):
        super().__init__(f"{url}: unparsable body")
        self.url = url


class MetadataUnavailable(FetchError):
    """Every endpoint of the cascade failed"""

    def __init__(self, dialects: Iterable[str]):
        self.dialects: Tuple[str, ...] = tuple(dialects)
        super().__init__(
            "Unable to fetch metadata from any supported endpoint "
            f"(tried: {', '.join(self.dialects)})"
        )


class PlaybackError(ShoutStreamError):
    """Media element failed to load or play a candidate URL"""


class PlaybackUnsupported(PlaybackError):
    """The candidate answered with something the media element cannot play"""


class PlaybackNetworkError(PlaybackError):
    """The candidate could not be reached or dropped the connection"""


class InvalidPlayerData(ShoutStreamError, ValueError):
    """Encoded player data could not be decoded"""


class SlugGenerationError(ShoutStreamError):
    """No unused slug could be generated"""
