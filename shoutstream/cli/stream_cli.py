"""
Command line interface for shoutstream
"""

import asyncio
import atexit
import json
import sys
from typing import Optional

import click

from ..core.config import Settings
from ..core.errors import InvalidPlayerData, InvalidUrl, MetadataUnavailable, PlaybackNetworkError
from ..core.logger import configure_logging, get_logger
from ..core.media import FFmpegMediaElement
from ..core.models import PlayerConfig, PlayerData, ServerDialect
from ..core.playback import PlaybackPhase
from ..core.prober import probe_stream_metadata
from ..core.resolver import generate_variants, guess_dialect, to_effective_url
from ..core.session import PlayerSession
from ..storage.slug_storage import SlugStorage
from ..utils.codec import decode_player_data, encode_player_data
from ..utils.process import (
    cleanup_pid_file,
    get_running_instances,
    is_instance_running,
    stop_instance,
    stream_key,
    write_pid_file,
)

logger = get_logger('cli')

DIALECT_CHOICE = click.Choice([d.value for d in ServerDialect], case_sensitive=False)


@click.group()
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.option('--log-file', type=click.Path(dir_okay=False), help='Write JSON logs to this file')
@click.option('--env-file', type=click.Path(exists=True, dir_okay=False), help='Load settings from this .env file')
@click.pass_context
def main(ctx, debug, log_file, env_file):
    """ShoutStream - Shoutcast/Icecast stream resolver and metadata prober"""
    settings = Settings.from_env(dotenv_path=env_file).with_overrides(
        log_file=log_file,
        debug=True if debug else None,
    )
    configure_logging(settings.log_file, settings.debug)
    ctx.obj = settings


@main.command()
@click.argument('url')
@click.option('--page-origin', help='Origin of the page embedding the player (e.g. https://example.com)')
@click.pass_obj
def variants(settings: Settings, url, page_origin):
    """List the playback URLs tried for a stream, in order"""
    settings = settings.with_overrides(page_origin=page_origin)
    for index, candidate in enumerate(generate_variants(url), start=1):
        effective = to_effective_url(candidate, settings.page_is_secure, settings.proxy_path)
        if effective != candidate:
            click.echo(f"{index}. {candidate} -> {effective}")
        else:
            click.echo(f"{index}. {candidate}")
    hint = guess_dialect(url)
    if hint.is_known:
        click.echo(f"Port suggests {hint.value} (hint only)")


@main.command()
@click.argument('url')
@click.option('--dialect', type=DIALECT_CHOICE, help='Server dialect, if known')
@click.option('--json', 'as_json', is_flag=True, help='Print the result as JSON')
@click.pass_obj
def probe(settings: Settings, url, dialect, as_json):
    """Fetch now-playing metadata for a stream"""
    try:
        result = asyncio.run(probe_stream_metadata(url, dialect, settings=settings))
    except InvalidUrl as e:
        raise click.BadParameter(str(e), param_hint='URL')
    except MetadataUnavailable as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)

    if as_json:
        click.echo(json.dumps({**result.metadata.to_dict(), 'dialect': result.dialect.value}))
        return
    click.echo(f"Title: {result.metadata.song_title}")
    click.echo(f"Listeners: {result.metadata.listeners if result.metadata.listeners is not None else '-'}")
    click.echo(f"Dialect: {result.dialect.value}")


async def _run_player(settings: Settings, url: str, dialect: Optional[str], output: str):
    media = FFmpegMediaElement(output=output, probe_timeout=settings.request_timeout)
    last_line = None

    def report(session: PlayerSession):
        nonlocal last_line
        line = f"[{session.health.value}] {session.status} | {session.metadata.song_title}"
        if session.metadata.listeners is not None:
            line += f" ({session.metadata.listeners} listeners)"
        if line != last_line:
            click.echo(line)
            last_line = line

    session = PlayerSession(url, media, settings=settings, dialect=dialect, on_change=report)
    await session.start()
    try:
        while True:
            await asyncio.sleep(1)
            if session.state.phase is PlaybackPhase.PLAYING and not media.running:
                error = media.exit_error() or PlaybackNetworkError("ffmpeg exited")
                await session.media_error(error)
    finally:
        await session.close()


@main.command()
@click.argument('url')
@click.option('--dialect', type=DIALECT_CHOICE, help='Server dialect, if known')
@click.option('--output', type=click.Choice(['null', 'pulse']), default='null', show_default=True,
              help='null only monitors the stream, pulse plays it')
@click.option('--force', is_flag=True, help='Start even if a monitor for this stream is running')
@click.pass_obj
def play(settings: Settings, url, dialect, output, force):
    """Play or monitor a stream, falling back across mount paths"""
    key = stream_key(url)
    if not force and is_instance_running(key):
        click.echo(f"An instance is already running for {key}. Use --force to override.", err=True)
        sys.exit(1)

    write_pid_file(key)
    atexit.register(cleanup_pid_file, key)
    try:
        asyncio.run(_run_player(settings, url, dialect, output))
    except KeyboardInterrupt:
        click.echo("\nStopping stream...")


@main.command()
def status():
    """List running stream monitors"""
    running = get_running_instances()
    if not running:
        click.echo("No monitors running")
    for key in running:
        click.echo(key)


@main.command()
@click.argument('key', required=False)
@click.option('--all', 'stop_all', is_flag=True, help='Stop every running monitor')
def stop(key, stop_all):
    """Stop a running stream monitor (KEY as shown by `status`)"""
    if not key and not stop_all:
        raise click.UsageError("Give a KEY or --all")
    keys = get_running_instances() if stop_all else [key]
    for current in keys:
        stopped = stop_instance(current)
        click.echo(f"{current}: {'stopped' if stopped else 'not running'}")


@main.command()
@click.argument('stream_url')
@click.option('--logo-url', help='Logo shown by the player')
def encode(stream_url, logo_url):
    """Encode a stream (and logo) into shareable player data"""
    click.echo(encode_player_data(PlayerData(stream_url=stream_url, logo_url=logo_url)))


@main.command()
@click.argument('data')
def decode(data):
    """Decode player data produced by `encode`"""
    try:
        player_data = decode_player_data(data)
    except InvalidPlayerData as e:
        raise click.BadParameter(str(e), param_hint='DATA')
    click.echo(json.dumps(player_data.to_dict()))


@main.command('create-slug')
@click.argument('stream_url')
@click.option('--logo-url', help='Logo shown by the player')
@click.option('--dialect', type=DIALECT_CHOICE, help='Server dialect, if known')
@click.option('--data-file', type=click.Path(dir_okay=False), help='Slug store file')
@click.pass_obj
def create_slug(settings: Settings, stream_url, logo_url, dialect, data_file):
    """Store a player configuration and print its slug"""
    storage = SlugStorage(data_file or settings.data_file)
    config = PlayerConfig(
        stream_url=stream_url,
        logo_url=logo_url,
        server_dialect=ServerDialect.parse(dialect),
    )
    slug = storage.create(config)
    click.echo(f"{slug} /player/{slug}")


@main.command()
@click.option('--host', default='127.0.0.1', show_default=True)
@click.option('--port', default=3000, show_default=True, type=int)
@click.option('--data-file', type=click.Path(dir_okay=False), help='Slug store file')
@click.pass_obj
def serve(settings: Settings, host, port, data_file):
    """Run the HTTP API (proxy, slugs, metadata)"""
    from ..server.app import create_app

    settings = settings.with_overrides(data_file=data_file)
    app = create_app(settings)
    logger.info("Starting server", host=host, port=port, data_file=settings.data_file)
    app.run(host=host, port=port, threaded=True)


if __name__ == '__main__':
    main()
