"""
Player session: drives playback fallback and metadata polling for one stream
"""

import asyncio
from typing import Callable, List, Optional, Union

from .config import Settings
from .errors import InvalidUrl, MetadataUnavailable, PlaybackError
from .logger import get_logger
from .media import MediaElement
from .models import ServerDialect, StreamMetadata
from .playback import (
    INITIAL_STATE,
    PlaybackEvent,
    PlaybackPhase,
    PlaybackState,
    RetryPolicy,
    StreamHealth,
    advance,
    describe_status,
)
from .prober import Transport, probe_stream_metadata
from .resolver import generate_variants, to_effective_url
from .transport import HttpTransport

logger = get_logger('session')

Listener = Callable[['PlayerSession'], None]


class PlayerSession:
    """State of one player bound to one stream URL.

    Two tasks run per session: the playback task (media attempts and the
    backoff sleep) and the metadata poller. Both are cancelled on retry,
    stream change and close. Each carries the generation it was started
    for, and results from an older generation are dropped.
    """

    def __init__(self, stream_url: str, media: MediaElement,
                 settings: Optional[Settings] = None,
                 dialect: Union[ServerDialect, str, None] = None,
                 transport: Optional[Transport] = None,
                 on_change: Optional[Listener] = None):
        self.settings = settings or Settings()
        self.media = media
        self.transport = transport or HttpTransport(self.settings)
        self._owns_transport = transport is None
        self.policy = RetryPolicy(self.settings.max_retries, self.settings.backoff_base_ms)
        self.on_change = on_change

        self.stream_url = stream_url
        self.variants: List[str] = generate_variants(stream_url)
        self.dialect = ServerDialect.parse(dialect)
        self.state: PlaybackState = INITIAL_STATE
        self.metadata = StreamMetadata()
        self.metadata_error: Optional[str] = None

        self._generation = 0
        self._started = False
        self._closed = False
        self._playback_task: Optional[asyncio.Task] = None
        self._metadata_task: Optional[asyncio.Task] = None

    # -- read-only views -------------------------------------------------

    @property
    def status(self) -> str:
        if not self._started:
            return 'Ready'
        return describe_status(self.state, len(self.variants))

    @property
    def health(self) -> StreamHealth:
        return self.state.health

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def closed(self) -> bool:
        return self._closed

    def effective_url(self, index: int) -> str:
        candidate = to_effective_url(
            self.variants[index], self.settings.page_is_secure, self.settings.proxy_path
        )
        return self.settings.resolve(candidate)

    # -- commands --------------------------------------------------------

    async def start(self):
        """First play gesture"""
        if self._closed:
            raise RuntimeError("session is closed")
        if self._started:
            return
        self._started = True
        await self._restart()

    async def retry(self):
        """Explicit user retry; valid in any state"""
        if self._closed:
            raise RuntimeError("session is closed")
        self._started = True
        logger.info("Retry requested", url=self.stream_url)
        await self._restart()

    async def change_stream(self, stream_url: str,
                            dialect: Union[ServerDialect, str, None] = None):
        """Point the session at another stream; in-flight work is discarded"""
        if self._closed:
            raise RuntimeError("session is closed")
        self.stream_url = stream_url
        self.variants = generate_variants(stream_url)
        # Dialect is a property of the host, so start over unless one is given
        self.dialect = ServerDialect.parse(dialect)
        self.metadata = StreamMetadata()
        self.metadata_error = None
        logger.info("Stream changed", url=stream_url, variants=len(self.variants))
        if self._started:
            await self._restart()
        else:
            self._bump()

    async def media_error(self, error: PlaybackError):
        """Report a failure of the currently playing media"""
        if self._closed or not self._started:
            return
        logger.warning("Media error", url=self.stream_url, error=str(error))
        generation = self._generation
        if not self._dispatch(generation, PlaybackEvent.MEDIA_ERROR):
            return
        if self._playback_task is None or self._playback_task.done():
            self._playback_task = asyncio.create_task(self._drive_playback(generation))

    async def close(self):
        """Stop timers and release the media resource"""
        if self._closed:
            return
        self._closed = True
        self._bump()
        try:
            await self._cancel_tasks()
        finally:
            try:
                await self.media.stop()
            finally:
                if self._owns_transport:
                    self.transport.close()
        logger.debug("Session closed", url=self.stream_url)

    async def wait_playback(self):
        """Wait until the current playback task settles (playing, failed or cancelled)"""
        task = self._playback_task
        if task is not None:
            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise

    # -- internals -------------------------------------------------------

    def _bump(self) -> int:
        self._generation += 1
        return self._generation

    def _is_current(self, generation: int) -> bool:
        return not self._closed and generation == self._generation

    def _notify(self):
        if self.on_change is not None:
            self.on_change(self)

    def _dispatch(self, generation: int, event: PlaybackEvent) -> bool:
        if not self._is_current(generation):
            return False
        previous = self.state
        self.state = advance(previous, event, len(self.variants), self.policy)
        if self.state != previous:
            logger.debug("Playback transition", event=event.value,
                         before=str(previous), after=str(self.state))
            self._notify()
        return True

    async def _cancel_tasks(self):
        tasks = [t for t in (self._playback_task, self._metadata_task) if t is not None]
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error("Session task failed", url=self.stream_url, error=repr(e))
        self._playback_task = None
        self._metadata_task = None

    async def _restart(self):
        generation = self._bump()
        await self._cancel_tasks()
        self.state = INITIAL_STATE
        self._notify()
        self._playback_task = asyncio.create_task(self._drive_playback(generation))
        self._metadata_task = asyncio.create_task(self._poll_metadata(generation))

    async def _drive_playback(self, generation: int):
        while self._is_current(generation):
            state = self.state
            if state.phase is PlaybackPhase.ATTEMPTING:
                url = self.effective_url(state.variant_index)
                logger.info(self.status, url=url)
                try:
                    await self.media.play(url)
                except PlaybackError as e:
                    logger.debug("Variant failed", url=url, error=str(e))
                    self._dispatch(generation, PlaybackEvent.MEDIA_ERROR)
                    continue
                except Exception as e:
                    logger.error("Media element failed", url=url, error=repr(e))
                    self._dispatch(generation, PlaybackEvent.MEDIA_ERROR)
                    continue
                self._dispatch(generation, PlaybackEvent.NOW_PLAYING)
            elif state.phase is PlaybackPhase.BACKOFF:
                logger.info("Retrying stream connection", attempt=state.retry_count,
                            delay_ms=state.delay_ms)
                await asyncio.sleep(state.delay_ms / 1000)
                self._dispatch(generation, PlaybackEvent.BACKOFF_ELAPSED)
            else:
                if state.phase is PlaybackPhase.FAILED:
                    logger.error(self.status, url=self.stream_url)
                return

    async def _poll_metadata(self, generation: int):
        while self._is_current(generation):
            stream_url = self.stream_url
            dialect = self.dialect if self.dialect.is_known else None
            try:
                result = await probe_stream_metadata(stream_url, dialect, self.transport, self.settings)
            except InvalidUrl as e:
                logger.warning("Metadata polling stopped", error=str(e))
                return
            except MetadataUnavailable as e:
                self._metadata_failed(generation, str(e))
            except Exception as e:
                logger.error("Metadata poll failed", url=stream_url, error=repr(e))
                self._metadata_failed(generation, str(e))
            else:
                if self._is_current(generation):
                    self._apply_metadata(result.metadata, result.dialect)
            await asyncio.sleep(self.settings.poll_interval)

    def _metadata_failed(self, generation: int, error: str):
        if self._is_current(generation):
            self.metadata = StreamMetadata()
            self.metadata_error = error
            self._notify()

    def _apply_metadata(self, metadata: StreamMetadata, dialect: ServerDialect):
        # Never downgrade a known dialect
        if dialect.is_known and not self.dialect.is_known:
            logger.info("Server dialect detected", url=self.stream_url, dialect=dialect.value)
            self.dialect = dialect
        changed = metadata != self.metadata or self.metadata_error is not None
        self.metadata = metadata
        self.metadata_error = None
        if changed:
            logger.info("Now playing", song_title=metadata.song_title, listeners=metadata.listeners)
            self._notify()
