"""
ShoutStream - stream resolution and metadata normalization for Shoutcast/Icecast players
"""

__version__ = '1.0.0'

from .core.config import Settings
from .core.errors import (
    EndpointUnreachable,
    FetchError,
    InvalidPlayerData,
    InvalidUrl,
    MetadataUnavailable,
    PlaybackError,
    PlaybackNetworkError,
    PlaybackUnsupported,
    ShoutStreamError,
    UnparsableBody,
)
from .core.logger import configure_logging, get_logger
from .core.models import PlayerConfig, PlayerData, ServerDialect, StreamMetadata
from .core.prober import fetch_stream_metadata, probe_stream_metadata
from .core.resolver import generate_variants, guess_dialect, to_effective_url
from .core.session import PlayerSession
from .utils.codec import decode_player_data, encode_player_data

__all__ = [
    'Settings',
    'EndpointUnreachable',
    'FetchError',
    'InvalidPlayerData',
    'InvalidUrl',
    'MetadataUnavailable',
    'PlaybackError',
    'PlaybackNetworkError',
    'PlaybackUnsupported',
    'ShoutStreamError',
    'UnparsableBody',
    'configure_logging',
    'get_logger',
    'PlayerConfig',
    'PlayerData',
    'ServerDialect',
    'StreamMetadata',
    'fetch_stream_metadata',
    'probe_stream_metadata',
    'generate_variants',
    'guess_dialect',
    'to_effective_url',
    'PlayerSession',
    'decode_player_data',
    'encode_player_data',
]
