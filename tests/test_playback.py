import pytest

from shoutstream.core.playback import (
    INITIAL_STATE,
    PlaybackEvent,
    PlaybackPhase,
    PlaybackState,
    RetryPolicy,
    StreamHealth,
    advance,
    describe_status,
)

ERROR = PlaybackEvent.MEDIA_ERROR


def run(events, variant_count=3, state=INITIAL_STATE, policy=RetryPolicy()):
    for event in events:
        state = advance(state, event, variant_count, policy)
    return state


def test_errors_walk_variants_then_back_off():
    state = INITIAL_STATE
    seen = []
    for _ in range(3):
        state = advance(state, ERROR, 3)
        seen.append(str(state))
    assert seen == ['Attempting(1)', 'Attempting(2)', 'Backoff(1)']
    assert state.delay_ms == 2000
    assert state.health is StreamHealth.UNHEALTHY


def test_backoff_elapsed_restarts_at_first_variant():
    state = run([ERROR] * 3 + [PlaybackEvent.BACKOFF_ELAPSED])
    assert state.phase is PlaybackPhase.ATTEMPTING
    assert state.variant_index == 0
    assert state.retry_count == 1


def test_delay_grows_linearly_per_retry():
    delays = []
    state = INITIAL_STATE
    for _ in range(3):
        state = run([ERROR] * 3, state=state)
        delays.append(state.delay_ms)
        state = advance(state, PlaybackEvent.BACKOFF_ELAPSED, 3)
    assert delays == [2000, 4000, 6000]


def test_retries_exhausted_gives_failed():
    policy = RetryPolicy(max_retries=3, backoff_base_ms=2000)
    state = INITIAL_STATE
    for _ in range(3):
        state = run([ERROR] * 3 + [PlaybackEvent.BACKOFF_ELAPSED], state=state, policy=policy)
    state = run([ERROR] * 3, state=state, policy=policy)
    assert state.phase is PlaybackPhase.FAILED
    assert state.retry_count == 3
    assert str(state) == 'Failed'


def test_zero_retries_fails_immediately():
    state = run([ERROR], variant_count=1, policy=RetryPolicy(max_retries=0))
    assert state.phase is PlaybackPhase.FAILED


def test_single_variant_goes_straight_to_backoff():
    state = advance(INITIAL_STATE, ERROR, 1)
    assert str(state) == 'Backoff(1)'


def test_retry_from_failed_resets_everything():
    failed = PlaybackState(phase=PlaybackPhase.FAILED, variant_index=2, retry_count=3,
                           health=StreamHealth.UNHEALTHY)
    state = advance(failed, PlaybackEvent.RETRY, 3)
    assert state == INITIAL_STATE
    assert str(state) == 'Attempting(0)'
    assert state.retry_count == 0


def test_now_playing_resets_counters():
    state = run([ERROR, ERROR, PlaybackEvent.NOW_PLAYING])
    assert state.phase is PlaybackPhase.PLAYING
    assert state.retry_count == 0
    assert state.variant_index == 0
    assert state.health is StreamHealth.HEALTHY


def test_error_while_playing_moves_to_next_variant():
    playing = advance(INITIAL_STATE, PlaybackEvent.NOW_PLAYING, 3)
    assert str(advance(playing, ERROR, 3)) == 'Attempting(1)'


def test_errors_ignored_in_backoff_and_failed():
    backoff = run([ERROR] * 3)
    assert advance(backoff, ERROR, 3) == backoff
    failed = PlaybackState(phase=PlaybackPhase.FAILED)
    assert advance(failed, ERROR, 3) == failed


def test_backoff_elapsed_outside_backoff_is_ignored():
    assert advance(INITIAL_STATE, PlaybackEvent.BACKOFF_ELAPSED, 3) == INITIAL_STATE


def test_variant_count_must_be_positive():
    with pytest.raises(ValueError):
        advance(INITIAL_STATE, ERROR, 0)


@pytest.mark.parametrize('state,expected', [
    (INITIAL_STATE, 'Connecting...'),
    (PlaybackState(variant_index=1), 'Trying alternative path (2/3)...'),
    (PlaybackState(retry_count=1), 'Retrying connection...'),
    (PlaybackState(phase=PlaybackPhase.BACKOFF, retry_count=1), 'Retrying connection...'),
    (PlaybackState(phase=PlaybackPhase.PLAYING), 'Playing'),
    (PlaybackState(phase=PlaybackPhase.FAILED), 'Failed to connect to stream after multiple attempts.'),
])
def test_describe_status(state, expected):
    assert describe_status(state, 3) == expected
