"""
HTTP access for metadata probes, with mixed-content proxy rewriting
"""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, Optional

import requests

from .config import Settings
from .errors import EndpointUnreachable
from .logger import get_logger
from .resolver import to_effective_url

logger = get_logger('transport')


@dataclass
class FetchResponse:
    """Buffered answer of one status endpoint"""

    url: str
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    text: str = ''

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def content_type(self) -> str:
        for key, value in self.headers.items():
            if key.lower() == 'content-type':
                return value.lower()
        return ''


class HttpTransport:
    """Blocking ``requests`` session exposed to the event loop.

    Requests run in a worker thread so a slow status page only suspends
    the probing task. Plain-http URLs are routed through the proxy when the
    page origin in ``settings`` is https.
    """

    def __init__(self, settings: Optional[Settings] = None,
                 session: Optional[requests.Session] = None):
        self.settings = settings or Settings()
        self.session = session or requests.Session()
        self.session.headers.update({
            'User-Agent': self.settings.user_agent,
            'Accept': 'application/json, text/xml, text/html;q=0.9, */*;q=0.5',
        })

    def effective_url(self, url: str) -> str:
        effective = to_effective_url(url, self.settings.page_is_secure, self.settings.proxy_path)
        return self.settings.resolve(effective)

    def fetch_sync(self, url: str) -> FetchResponse:
        """GET ``url``; raises EndpointUnreachable on network errors"""
        target = self.effective_url(url)
        logger.debug("Fetching status endpoint", url=url, target=target)
        try:
            response = self.session.get(
                target,
                timeout=(min(5.0, self.settings.request_timeout), self.settings.request_timeout),
                stream=True,
            )
        except requests.RequestException as e:
            raise EndpointUnreachable(url, reason=str(e)) from e

        try:
            headers = {str(k): str(v) for k, v in response.headers.items()}
            content_type = response.headers.get('Content-Type', '').lower()
            if not 200 <= response.status_code < 300 or content_type.startswith('audio/'):
                # Do not read streams or error bodies
                return FetchResponse(url, response.status_code, headers, '')
            body = self._read_capped(response)
        except requests.RequestException as e:
            raise EndpointUnreachable(url, reason=str(e)) from e
        finally:
            response.close()

        return FetchResponse(url, response.status_code, headers, self._decode(body, response.encoding))

    @staticmethod
    def _decode(body: bytes, encoding: Optional[str]) -> str:
        try:
            return body.decode(encoding or 'utf-8', errors='replace')
        except LookupError:
            # Unknown charset announced by the server
            logger.debug("Unknown body encoding, using utf-8", encoding=encoding)
            return body.decode('utf-8', errors='replace')

    def _read_capped(self, response: requests.Response) -> bytes:
        limit = self.settings.max_body_bytes
        chunks = []
        size = 0
        for chunk in response.iter_content(chunk_size=8192):
            chunks.append(chunk)
            size += len(chunk)
            if size >= limit:
                logger.debug("Body truncated", url=response.url, limit=limit)
                break
        return b''.join(chunks)[:limit]

    async def fetch(self, url: str) -> FetchResponse:
        return await asyncio.to_thread(self.fetch_sync, url)

    def close(self):
        self.session.close()
