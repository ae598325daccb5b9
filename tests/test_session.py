import asyncio

import pytest

from shoutstream.core.config import Settings
from shoutstream.core.errors import PlaybackNetworkError, PlaybackUnsupported
from shoutstream.core.models import UNKNOWN_SONG, ServerDialect
from shoutstream.core.playback import PlaybackPhase, StreamHealth
from shoutstream.core.session import PlayerSession

ROOT = 'http://radio.example.com:8000/'
STATUS_JSON = 'http://radio.example.com:8000/status-json.xsl'


@pytest.fixture
def settings():
    return Settings(poll_interval=60, backoff_base_ms=1, max_retries=1)


async def until(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.001)


class GatedMedia:
    """Media whose play() blocks until released"""

    def __init__(self):
        self.released = False
        self.played = []
        self.stopped = False

    async def play(self, url):
        self.played.append(url)
        while not self.released:
            await asyncio.sleep(0.001)

    async def stop(self):
        self.stopped = True

    @property
    def running(self):
        return bool(self.played) and not self.stopped


def test_status_is_ready_before_start(settings, transport, make_media):
    session = PlayerSession(ROOT, make_media(), settings=settings, transport=transport)
    assert session.status == 'Ready'
    assert session.health is StreamHealth.UNKNOWN
    assert len(session.variants) == 7


def test_first_variant_plays(settings, transport, make_media):
    media = make_media()

    async def scenario():
        session = PlayerSession(ROOT, media, settings=settings, transport=transport)
        await session.start()
        await session.wait_playback()
        await session.close()
        return session

    session = asyncio.run(scenario())
    assert media.played == [ROOT]
    assert session.state.phase is PlaybackPhase.PLAYING
    assert session.health is StreamHealth.HEALTHY


def test_falls_back_to_later_variant(settings, transport, make_media):
    media = make_media([PlaybackNetworkError('refused'), PlaybackUnsupported('html')])

    async def scenario():
        session = PlayerSession(ROOT, media, settings=settings, transport=transport)
        await session.start()
        await session.wait_playback()
        status = session.status
        await session.close()
        return session, status

    session, status = asyncio.run(scenario())
    assert media.played == session.variants[:3]
    assert status == 'Playing'


def test_exhausted_retries_fail(settings, transport, make_media):
    media = make_media(default=PlaybackNetworkError('down'))
    changes = []

    async def scenario():
        session = PlayerSession(ROOT, media, settings=settings, transport=transport,
                                on_change=lambda s: changes.append(str(s.state)))
        await session.start()
        await session.wait_playback()
        await session.close()
        return session

    session = asyncio.run(scenario())
    # Every variant once, then once more after the single retry
    assert len(media.played) == 2 * len(session.variants)
    assert session.state.phase is PlaybackPhase.FAILED
    assert session.status == 'Failed to connect to stream after multiple attempts.'
    assert 'Backoff(1)' in changes
    assert changes[-1] == 'Failed'


def test_retry_after_failure_starts_over(settings, transport, make_media):
    media = make_media([PlaybackNetworkError('down')] * 14)

    async def scenario():
        session = PlayerSession(ROOT, media, settings=settings, transport=transport)
        await session.start()
        await session.wait_playback()
        failed = session.state.phase
        await session.retry()
        await session.wait_playback()
        await session.close()
        return session, failed

    session, failed = asyncio.run(scenario())
    assert failed is PlaybackPhase.FAILED
    assert session.state.phase is PlaybackPhase.PLAYING
    assert media.played[-1] == ROOT


def test_media_error_while_playing_tries_next_variant(settings, transport, make_media):
    media = make_media()

    async def scenario():
        session = PlayerSession(ROOT, media, settings=settings, transport=transport)
        await session.start()
        await session.wait_playback()
        await session.media_error(PlaybackNetworkError('dropped'))
        await session.wait_playback()
        await session.close()
        return session

    session = asyncio.run(scenario())
    assert media.played == session.variants[:2]
    assert session.state.phase is PlaybackPhase.PLAYING


def test_metadata_poll_learns_dialect(settings, transport, make_media):
    transport.add(STATUS_JSON, {'icestats': {'source': {'title': 'Now', 'listeners': 4}}})

    async def scenario():
        session = PlayerSession(ROOT, make_media(), settings=settings, transport=transport)
        await session.start()
        await until(lambda: session.metadata.song_title == 'Now')
        await session.close()
        return session

    session = asyncio.run(scenario())
    assert session.dialect is ServerDialect.ICECAST
    assert session.metadata.listeners == '4'
    assert session.metadata_error is None


def test_known_dialect_is_not_downgraded(settings, transport, make_media):
    transport.add(STATUS_JSON, {'icestats': {}})

    async def scenario():
        session = PlayerSession(ROOT, make_media(), settings=settings, transport=transport,
                                dialect='icecast')
        await session.start()
        await until(lambda: STATUS_JSON in transport.requested)
        await asyncio.sleep(0.01)
        await session.close()
        return session

    session = asyncio.run(scenario())
    assert session.dialect is ServerDialect.ICECAST
    assert session.metadata.song_title == UNKNOWN_SONG
    # Only the icecast endpoint is probed for a known dialect
    assert transport.requested == [STATUS_JSON]


def test_metadata_unavailable_shows_placeholder(settings, transport, make_media):
    async def scenario():
        session = PlayerSession(ROOT, make_media(), settings=settings, transport=transport)
        await session.start()
        await until(lambda: session.metadata_error is not None)
        await session.close()
        return session

    session = asyncio.run(scenario())
    assert session.metadata.song_title == UNKNOWN_SONG
    assert 'Unable to fetch metadata' in session.metadata_error
    assert session.dialect is ServerDialect.UNKNOWN


def test_change_stream_discards_in_flight_work(settings, transport):
    media = GatedMedia()
    transport.add(STATUS_JSON, {'icestats': {'source': {'title': 'Old'}}})
    other = 'http://other.example.com:8000/live.mp3'

    async def scenario():
        session = PlayerSession(ROOT, media, settings=settings, transport=transport)
        await session.start()
        await until(lambda: session.metadata.song_title == 'Old')
        first_generation = session.generation
        await session.change_stream(other)
        assert session.generation > first_generation
        assert session.metadata.song_title == UNKNOWN_SONG
        assert session.dialect is ServerDialect.UNKNOWN
        await until(lambda: media.played[-1] == other)
        media.released = True
        await session.wait_playback()
        await session.close()
        return session

    session = asyncio.run(scenario())
    assert session.variants == [other]
    assert media.played == [ROOT, other]
    assert session.state.phase is PlaybackPhase.PLAYING


def test_close_releases_media_and_stops_commands(settings, transport):
    media = GatedMedia()

    async def scenario():
        session = PlayerSession(ROOT, media, settings=settings, transport=transport)
        await session.start()
        await until(lambda: media.played)
        await session.close()
        state = session.state
        await session.media_error(PlaybackNetworkError('late'))
        assert session.state == state
        with pytest.raises(RuntimeError):
            await session.start()
        with pytest.raises(RuntimeError):
            await session.retry()
        return session

    session = asyncio.run(scenario())
    assert media.stopped
    assert session.closed


def test_effective_url_uses_proxy_on_secure_page(transport, make_media):
    settings = Settings(page_origin='https://player.example.com')
    session = PlayerSession(ROOT, make_media(), settings=settings, transport=transport)
    assert session.effective_url(1) == (
        'https://player.example.com/api/proxy?url=http%3A%2F%2Fradio.example.com%3A8000%2F%3B'
    )


def test_effective_url_plain_page_is_untouched(settings, transport, make_media):
    session = PlayerSession(ROOT, make_media(), settings=settings, transport=transport)
    assert session.effective_url(2) == 'http://radio.example.com:8000/;stream'


def test_unexpected_poll_error_keeps_polling(transport, make_media):
    settings = Settings(poll_interval=0.01, backoff_base_ms=1, max_retries=1)
    transport.routes[STATUS_JSON] = LookupError('unknown encoding: x-bogus')
    media = make_media()

    async def scenario():
        session = PlayerSession(ROOT, media, settings=settings, transport=transport, dialect='icecast')
        await session.start()
        await until(lambda: transport.requested.count(STATUS_JSON) >= 3)
        error = session.metadata_error
        await session.close()
        return session, error

    session, error = asyncio.run(scenario())
    assert 'x-bogus' in error
    assert session.metadata.song_title == UNKNOWN_SONG
    assert media.stopped


def test_unexpected_media_exception_counts_as_variant_failure(settings, transport, make_media):
    media = make_media([ValueError('broken decoder')])

    async def scenario():
        session = PlayerSession(ROOT, media, settings=settings, transport=transport)
        await session.start()
        await session.wait_playback()
        await session.close()
        return session

    session = asyncio.run(scenario())
    assert media.played == session.variants[:2]
    assert session.state.phase is PlaybackPhase.PLAYING


def test_close_releases_media_when_a_task_died(settings, transport, make_media):
    media = make_media()

    async def boom():
        raise LookupError('unknown encoding: x-bogus')

    async def scenario():
        session = PlayerSession(ROOT, media, settings=settings, transport=transport)
        await session.start()
        await session.wait_playback()
        session._metadata_task.cancel()
        session._metadata_task = asyncio.create_task(boom())
        await asyncio.sleep(0)
        await session.close()
        return session

    session = asyncio.run(scenario())
    assert session.closed
    assert media.stopped
