"""
Value types shared by the resolver, prober, storage and HTTP layers
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

UNKNOWN_SONG = 'Unknown Song'


class ServerDialect(Enum):
    """Status-reporting protocol spoken by a streaming server"""

    ICECAST = 'icecast'
    SHOUTCAST_V1 = 'shoutcast-v1'
    SHOUTCAST_V2 = 'shoutcast-v2'
    UNKNOWN = 'unknown'

    @classmethod
    def parse(cls, value: Optional[str]) -> 'ServerDialect':
        """Parse a dialect name; empty input means unknown"""
        if isinstance(value, cls):
            return value
        if value is None or value == '':
            return cls.UNKNOWN
        normalized = str(value).strip().lower().replace('_', '-')
        for dialect in cls:
            if dialect.value == normalized:
                return dialect
        raise ValueError(f"Unknown server dialect: {value!r}")

    @property
    def is_known(self) -> bool:
        return self is not ServerDialect.UNKNOWN


@dataclass(frozen=True)
class StreamMetadata:
    """Normalized now-playing information"""

    song_title: str = UNKNOWN_SONG
    listeners: Optional[str] = None

    def __post_init__(self):
        if not self.song_title:
            object.__setattr__(self, 'song_title', UNKNOWN_SONG)

    @property
    def is_default(self) -> bool:
        return self.song_title == UNKNOWN_SONG

    def to_dict(self) -> Dict[str, Any]:
        return {'songTitle': self.song_title, 'listeners': self.listeners}


@dataclass(frozen=True)
class PlayerData:
    """Stream and logo pair carried in shareable player links"""

    stream_url: str
    logo_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PlayerData':
        return cls(stream_url=data['streamUrl'], logo_url=data.get('logoUrl'))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the wire form; an absent logo stays absent"""
        data = {'streamUrl': self.stream_url}
        if self.logo_url is not None:
            data['logoUrl'] = self.logo_url
        return data


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')


@dataclass
class PlayerConfig:
    """Configuration persisted for one player slug"""

    stream_url: str
    logo_url: Optional[str] = None
    server_dialect: ServerDialect = ServerDialect.UNKNOWN
    created_at: str = field(default_factory=_utc_now)
    access_count: int = 0

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'PlayerConfig':
        """Create a PlayerConfig from its stored dictionary"""
        try:
            dialect = ServerDialect.parse(config.get('serverDialect'))
        except ValueError:
            dialect = ServerDialect.UNKNOWN
        return cls(
            stream_url=config['streamUrl'],
            logo_url=config.get('logoUrl') or None,
            server_dialect=dialect,
            created_at=config.get('createdAt') or _utc_now(),
            access_count=int(config.get('accessCount') or 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to its stored dictionary"""
        data: Dict[str, Any] = {'streamUrl': self.stream_url}
        if self.logo_url:
            data['logoUrl'] = self.logo_url
        data['serverDialect'] = self.server_dialect.value
        data['createdAt'] = self.created_at
        data['accessCount'] = self.access_count
        return data

    @property
    def player_data(self) -> PlayerData:
        return PlayerData(stream_url=self.stream_url, logo_url=self.logo_url)
