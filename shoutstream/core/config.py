"""
Runtime settings for resolver, prober, sessions and the HTTP server
"""

import os
from dataclasses import dataclass, replace
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urljoin, urlsplit

from dotenv import load_dotenv

DEFAULT_USER_AGENT = 'ShoutStream-Player/1.0'
DEFAULT_PROXY_PATH = '/api/proxy'
ENV_PREFIX = 'SHOUTSTREAM_'


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass(frozen=True)
class Settings:
    """Explicit configuration value handed to every component.

    Nothing in the package reads the environment on its own; build one of
    these with ``Settings.from_env()`` (or directly) and pass it along.
    """

    page_origin: str = ''
    proxy_path: str = DEFAULT_PROXY_PATH
    poll_interval: float = 5.0
    request_timeout: float = 10.0
    max_retries: int = 3
    backoff_base_ms: int = 2000
    user_agent: str = DEFAULT_USER_AGENT
    data_file: str = os.path.join('data', 'slugs.json')
    log_file: Optional[str] = None
    max_body_bytes: int = 256 * 1024
    debug: bool = False

    @property
    def page_is_secure(self) -> bool:
        """Whether the page embedding the player was served over https"""
        return urlsplit(self.page_origin).scheme.lower() == 'https'

    def resolve(self, url: str) -> str:
        """Make a same-origin relative URL absolute against the page origin"""
        if url.startswith('/') and self.page_origin:
            return urljoin(self.page_origin, url)
        return url

    def with_overrides(self, **overrides: Any) -> 'Settings':
        """Copy with every non-None override applied"""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    @classmethod
    def from_dict(cls, config: Mapping[str, Any]) -> 'Settings':
        """Create Settings from a dictionary, ignoring unknown keys"""
        known = {name: config[name] for name in cls.__dataclass_fields__ if name in config}
        return cls(**known)

    def to_dict(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self.__dataclass_fields__}

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None,
                 dotenv_path: Optional[str] = None) -> 'Settings':
        """Load settings from SHOUTSTREAM_* variables (and a .env file)"""
        if environ is None:
            load_dotenv(dotenv_path)
            environ = os.environ

        def get(name: str) -> Optional[str]:
            value = environ.get(ENV_PREFIX + name)
            return value if value not in (None, '') else None

        values: Dict[str, Any] = {}
        converters = {
            'PAGE_ORIGIN': ('page_origin', str),
            'PROXY_PATH': ('proxy_path', str),
            'POLL_INTERVAL': ('poll_interval', float),
            'REQUEST_TIMEOUT': ('request_timeout', float),
            'MAX_RETRIES': ('max_retries', int),
            'BACKOFF_MS': ('backoff_base_ms', int),
            'USER_AGENT': ('user_agent', str),
            'DATA_FILE': ('data_file', str),
            'LOG_FILE': ('log_file', str),
            'MAX_BODY_BYTES': ('max_body_bytes', int),
            'DEBUG': ('debug', _as_bool),
        }
        for env_name, (field_name, convert) in converters.items():
            raw = get(env_name)
            if raw is None:
                continue
            try:
                values[field_name] = convert(raw)
            except ValueError as e:
                raise ValueError(f"Invalid value for {ENV_PREFIX}{env_name}: {raw!r}") from e
        return cls(**values)
