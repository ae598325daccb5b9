"""
Media element used by player sessions to open candidate URLs
"""

import asyncio
import subprocess
from typing import Any, Dict, Optional, Protocol

import ffmpeg

from .errors import PlaybackNetworkError, PlaybackUnsupported
from .logger import get_logger

logger = get_logger('media')

# ffprobe/ffmpeg stderr fragments that mean "reachable but not playable"
_UNSUPPORTED_MARKERS = (
    'invalid data found',
    'could not find codec',
    'unsupported codec',
    'no audio',
    'decoder not found',
)


class MediaElement(Protocol):
    """Platform media API as seen by PlayerSession.

    ``play`` returns once playback has started (the "now playing" signal)
    and raises PlaybackError subclasses on load or play failure.
    """

    async def play(self, url: str) -> None:
        ...

    async def stop(self) -> None:
        ...

    @property
    def running(self) -> bool:
        ...


def classify_ffmpeg_error(stderr: Optional[bytes], url: str):
    """Map ffmpeg/ffprobe stderr output to a playback error"""
    text = (stderr or b'').decode('utf-8', errors='replace')
    lowered = text.lower()
    detail = text.strip().splitlines()[-1] if text.strip() else 'ffprobe failed'
    if any(marker in lowered for marker in _UNSUPPORTED_MARKERS):
        return PlaybackUnsupported(f"{url}: {detail}")
    return PlaybackNetworkError(f"{url}: {detail}")


class FFmpegMediaElement:
    """Plays (or just monitors) a stream through an ffmpeg child process.

    The URL is checked with ffprobe first so a dead mount fails fast; then
    ffmpeg is started with reconnect options, writing to PulseAudio when
    ``output='pulse'`` or decoding into the null sink otherwise.
    """

    def __init__(self, output: str = 'null', probe_timeout: float = 10.0,
                 loglevel: str = 'error'):
        self.output = output
        self.probe_timeout = probe_timeout
        self.loglevel = loglevel
        self.process: Optional[subprocess.Popen] = None
        self.current_url: Optional[str] = None
        self.audio_properties: Dict[str, Any] = {}

    @property
    def running(self) -> bool:
        return self.process is not None and self.process.poll() is None

    def _probe(self, url: str) -> Dict[str, Any]:
        try:
            info = ffmpeg.probe(url, rw_timeout=str(int(self.probe_timeout * 1_000_000)))
        except ffmpeg.Error as e:
            raise classify_ffmpeg_error(e.stderr, url) from e
        except FileNotFoundError as e:
            raise PlaybackUnsupported("ffprobe executable not found") from e

        audio = [s for s in info.get('streams', []) if s.get('codec_type') == 'audio']
        if not audio:
            raise PlaybackUnsupported(f"{url}: no audio stream")
        stream = audio[0]
        return {
            'codec': stream.get('codec_name', 'unknown'),
            'sample_rate': stream.get('sample_rate', 'unknown'),
            'channels': stream.get('channel_layout') or stream.get('channels', 'unknown'),
            'bitrate': stream.get('bit_rate') or info.get('format', {}).get('bit_rate', 'unknown'),
        }

    def _build(self, url: str):
        stream = ffmpeg.input(url, reconnect=1, reconnect_streamed=1, reconnect_delay_max=5)
        if self.output == 'pulse':
            stream = stream.output('default', format='pulse', ac=2, ar=44100)
        else:
            stream = stream.output('-', format='null')
        return stream.global_args('-hide_banner', '-loglevel', self.loglevel)

    def _open(self, url: str):
        self._terminate()
        self.audio_properties = self._probe(url)
        try:
            self.process = self._build(url).run_async(pipe_stderr=True)
        except FileNotFoundError as e:
            raise PlaybackUnsupported("ffmpeg executable not found") from e
        self.current_url = url
        logger.info("Playback started", url=url, **self.audio_properties)

    async def play(self, url: str) -> None:
        await asyncio.to_thread(self._open, url)

    def _terminate(self):
        if self.process is None:
            return
        self.process.terminate()
        try:
            self.process.wait(timeout=1.0)
        except subprocess.TimeoutExpired:
            self.process.kill()
        self.process = None
        self.current_url = None

    async def stop(self) -> None:
        await asyncio.to_thread(self._terminate)

    def exit_error(self):
        """Playback error for an ffmpeg process that exited on its own"""
        if self.process is None or self.process.poll() is None:
            return None
        stderr = self.process.stderr.read() if self.process.stderr else b''
        return classify_ffmpeg_error(stderr, self.current_url or '')
