"""
Flat JSON file store mapping player slugs to their configuration
"""

import json
import os
import random
import string
import threading
from dataclasses import replace
from typing import Callable, Dict, Optional

from ..core.errors import SlugGenerationError
from ..core.logger import get_logger
from ..core.models import PlayerConfig

logger = get_logger('storage')

SLUG_ALPHABET = string.digits + string.ascii_lowercase
SLUG_LENGTH = 7
MAX_SLUG_ATTEMPTS = 10


def generate_slug(length: int = SLUG_LENGTH) -> str:
    """Random lowercase alphanumeric slug"""
    return ''.join(random.choices(SLUG_ALPHABET, k=length))


class SlugStorage:
    """Slug → PlayerConfig store backed by one JSON file.

    The file is read once and cached; every write rewrites the whole file.
    A lock serializes access from the HTTP server's worker threads.
    """

    def __init__(self, file_path: str):
        self.file_path = os.path.abspath(file_path)
        self._cache: Optional[Dict[str, PlayerConfig]] = None
        self._lock = threading.RLock()

    def read_json(self) -> Dict[str, dict]:
        """Read the JSON file with error handling"""
        try:
            if os.path.exists(self.file_path):
                with open(self.file_path, 'r') as f:
                    data = json.load(f)
                if isinstance(data, dict):
                    return data
                logger.warning("Slug file does not hold an object, starting empty", path=self.file_path)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Error reading slug file", path=self.file_path, error=str(e))
        return {}

    def write_json(self, data: Dict[str, dict]):
        """Write data to the JSON file, replacing it atomically"""
        os.makedirs(os.path.dirname(self.file_path), exist_ok=True)
        tmp_path = f"{self.file_path}.tmp"
        try:
            with open(tmp_path, 'w') as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.file_path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def _load(self) -> Dict[str, PlayerConfig]:
        if self._cache is None:
            cache = {}
            for slug, raw in self.read_json().items():
                try:
                    cache[slug] = PlayerConfig.from_dict(raw)
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning("Skipping malformed slug entry", slug=slug, error=str(e))
            self._cache = cache
        return self._cache

    def _commit(self, slug: str, config: PlayerConfig):
        """Persist the cache with ``slug`` set; memory changes only once the file is written"""
        updated = {**self._load(), slug: config}
        self.write_json({key: value.to_dict() for key, value in updated.items()})
        self._cache = updated

    def get(self, slug: str) -> Optional[PlayerConfig]:
        with self._lock:
            config = self._load().get(slug)
            return replace(config) if config is not None else None

    def set(self, slug: str, config: PlayerConfig):
        with self._lock:
            self._commit(slug, replace(config))
        logger.debug("Slug saved", slug=slug, url=config.stream_url)

    def exists(self, slug: str) -> bool:
        with self._lock:
            return slug in self._load()

    def increment_access_count(self, slug: str) -> Optional[PlayerConfig]:
        """Bump the access counter; returns the updated config or None"""
        with self._lock:
            config = self._load().get(slug)
            if config is None:
                return None
            updated = replace(config, access_count=config.access_count + 1)
            self._commit(slug, updated)
            return replace(updated)

    def create(self, config: PlayerConfig,
               slug_factory: Callable[[], str] = generate_slug) -> str:
        """Store ``config`` under a fresh slug and return the slug"""
        with self._lock:
            for _ in range(MAX_SLUG_ATTEMPTS):
                slug = slug_factory()
                if not self.exists(slug):
                    self.set(slug, config)
                    logger.info("Slug created", slug=slug, url=config.stream_url)
                    return slug
        raise SlugGenerationError("Failed to generate unique slug")
