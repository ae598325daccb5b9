"""
Playback fallback policy: walk URL variants, back off, give up.

The state is an immutable value and ``advance`` is a pure function of
(state, event). PlayerSession owns the timers and the media element and
feeds events in; everything here can be tested without a loop.
"""

from dataclasses import dataclass, replace
from enum import Enum


class PlaybackPhase(Enum):
    ATTEMPTING = 'attempting'
    BACKOFF = 'backoff'
    PLAYING = 'playing'
    FAILED = 'failed'


class StreamHealth(Enum):
    UNKNOWN = 'unknown'
    HEALTHY = 'healthy'
    UNHEALTHY = 'unhealthy'


class PlaybackEvent(Enum):
    MEDIA_ERROR = 'media_error'
    NOW_PLAYING = 'now_playing'
    BACKOFF_ELAPSED = 'backoff_elapsed'
    RETRY = 'retry'


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    backoff_base_ms: int = 2000

    def delay_ms(self, retry_count: int) -> int:
        """Delay before retry attempt ``retry_count + 1``"""
        return self.backoff_base_ms * (retry_count + 1)


@dataclass(frozen=True)
class PlaybackState:
    phase: PlaybackPhase = PlaybackPhase.ATTEMPTING
    variant_index: int = 0
    retry_count: int = 0
    health: StreamHealth = StreamHealth.UNKNOWN
    delay_ms: int = 0

    def __str__(self):
        if self.phase is PlaybackPhase.ATTEMPTING:
            return f"Attempting({self.variant_index})"
        if self.phase is PlaybackPhase.BACKOFF:
            return f"Backoff({self.retry_count})"
        return self.phase.value.capitalize()


INITIAL_STATE = PlaybackState()


def advance(state: PlaybackState, event: PlaybackEvent, variant_count: int,
            policy: RetryPolicy = RetryPolicy()) -> PlaybackState:
    """Return the state that follows ``state`` after ``event``"""
    if variant_count < 1:
        raise ValueError("variant_count must be at least 1")

    if event is PlaybackEvent.RETRY:
        return INITIAL_STATE

    if event is PlaybackEvent.NOW_PLAYING:
        return PlaybackState(phase=PlaybackPhase.PLAYING, health=StreamHealth.HEALTHY)

    if event is PlaybackEvent.BACKOFF_ELAPSED:
        if state.phase is not PlaybackPhase.BACKOFF:
            return state
        return replace(state, phase=PlaybackPhase.ATTEMPTING, variant_index=0, delay_ms=0)

    # MEDIA_ERROR; a playing stream always sits on variant 0
    if state.phase not in (PlaybackPhase.ATTEMPTING, PlaybackPhase.PLAYING):
        return state

    index = state.variant_index if state.phase is PlaybackPhase.ATTEMPTING else 0
    if index < variant_count - 1:
        return PlaybackState(
            phase=PlaybackPhase.ATTEMPTING,
            variant_index=index + 1,
            retry_count=state.retry_count,
            health=StreamHealth.UNKNOWN,
        )

    if state.retry_count < policy.max_retries:
        return PlaybackState(
            phase=PlaybackPhase.BACKOFF,
            variant_index=index,
            retry_count=state.retry_count + 1,
            health=StreamHealth.UNHEALTHY,
            delay_ms=policy.delay_ms(state.retry_count),
        )

    return PlaybackState(
        phase=PlaybackPhase.FAILED,
        variant_index=index,
        retry_count=state.retry_count,
        health=StreamHealth.UNHEALTHY,
    )


def describe_status(state: PlaybackState, variant_count: int) -> str:
    """User-facing status line for a playback state"""
    if state.phase is PlaybackPhase.PLAYING:
        return 'Playing'
    if state.phase is PlaybackPhase.FAILED:
        return 'Failed to connect to stream after multiple attempts.'
    if state.phase is PlaybackPhase.BACKOFF:
        return 'Retrying connection...'
    if state.variant_index > 0:
        return f"Trying alternative path ({state.variant_index + 1}/{variant_count})..."
    if state.retry_count > 0:
        return 'Retrying connection...'
    return 'Connecting...'
