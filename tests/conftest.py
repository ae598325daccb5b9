import json

import pytest

from shoutstream.core.transport import FetchResponse


class FakeTransport:
    """In-memory transport: url -> FetchResponse or exception; others 404"""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.requested = []

    def add(self, url, body='', status=200, content_type='application/json'):
        if not isinstance(body, str):
            body = json.dumps(body)
        self.routes[url] = FetchResponse(url, status, {'Content-Type': content_type}, body)

    async def fetch(self, url):
        self.requested.append(url)
        answer = self.routes.get(url)
        if answer is None:
            return FetchResponse(url, 404, {}, 'Not Found')
        if isinstance(answer, Exception):
            raise answer
        return answer

    def close(self):
        pass


class FakeMedia:
    """Media element whose play() outcome is scripted per call"""

    def __init__(self, outcomes=None, default=None):
        self.outcomes = list(outcomes or [])
        self.default = default
        self.played = []
        self.stopped = False

    async def play(self, url):
        self.played.append(url)
        outcome = self.outcomes.pop(0) if self.outcomes else self.default
        if isinstance(outcome, Exception):
            raise outcome

    async def stop(self):
        self.stopped = True

    @property
    def running(self):
        return bool(self.played) and not self.stopped


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def make_media():
    return FakeMedia
