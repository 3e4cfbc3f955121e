"""
Main CLI interface for TubeShelf

Command-line front end over the TubeShelfService. Every command drives the
cooperative scheduler to completion with `service.wait()`, so the same
non-blocking pipeline a GUI would tick once per frame runs here in a plain
terminal.

Command groups:
- Song operations (search, download, find)
- Playlist management (create, list, show, delete, add, remove, reconcile)
- Maintenance (doctor, cleanup)
"""

import sys
import click
import functools

from . import __version__
from .config.settings import get_settings, reload_settings
from .tools.runner import parse_progress_percent
from .utils.logger import configure_from_settings, get_logger, get_current_log_file, create_operation_logger
from .utils.helpers import format_file_size, truncate_string
from .utils.validation import validate_youtube_url, validate_playlist_name, validate_playlist_id
from .youtube.service import get_service, reset_service


logger = get_logger(__name__)


def print_banner():
    """Print application banner to console"""
    banner = """
╔═══════════════════════════════════════════════════════════════╗
║                           TubeShelf                           ║
║                                                               ║
║      Fetch YouTube audio into a local cache and playlists     ║
║                                                               ║
╚═══════════════════════════════════════════════════════════════╝
    """
    click.echo(click.style(banner, fg='green', bold=True))


def handle_error(func):
    """
    Decorator to handle common CLI errors gracefully

    Args:
        func: The CLI command function to wrap

    Returns:
        Wrapped function with error handling
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except KeyboardInterrupt:
            click.echo(click.style("\n\nOperation cancelled by user", fg='yellow'))
            sys.exit(130)
        except Exception as e:
            logger.error(f"Command failed: {e}")
            click.echo(click.style(f"Error: {e}", fg='red'), err=True)
            sys.exit(1)
    return wrapper


def fail(message: str):
    """Print an error and exit with status 1"""
    click.echo(click.style(message, fg='red'), err=True)
    sys.exit(1)


def fetch_songs(service, url: str):
    """Resolve a URL to songs, blocking until the metadata task finishes"""
    found = []
    task = service.get_song_details(url, found.extend)
    if task is not None:
        service.wait(task)
    return found


def song_status(song) -> str:
    if song.is_downloaded:
        return click.style("cached", fg='green')
    if song.download_failed:
        return click.style("failed", fg='red')
    return "not fetched"


def load_playlist_or_fail(service, playlist_id: str):
    is_valid, error_msg = validate_playlist_id(playlist_id)
    if not is_valid:
        fail(f"Invalid playlist id: {error_msg}")

    playlist = service.load_playlist(playlist_id)
    if playlist is None:
        fail(f"Playlist not found: {playlist_id}")
    return playlist


@click.group(invoke_without_command=True)
@click.option('--version', is_flag=True, help='Show version information')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.option('--config', type=click.Path(), help='Path to config file')
@click.pass_context
def cli(ctx, version, verbose, config):
    """
    TubeShelf - Cache YouTube audio locally and organise it into playlists

    Resolves songs with yt-dlp, extracts their audio into a local cache with
    ffmpeg, and keeps named playlists of cached songs.
    """
    ctx.ensure_object(dict)

    if version:
        click.echo(f"TubeShelf v{__version__}")
        return

    if config:
        reload_settings(config)
        reset_service()

    settings = get_settings()
    if verbose:
        settings.logging.level = "DEBUG"
        ctx.obj['verbose'] = True
    configure_from_settings()

    if config:
        logger.console_info(f"Loaded config: {config}")

    if ctx.invoked_subcommand is None:
        print_banner()
        click.echo(ctx.get_help())


# Song commands

@cli.command()
@click.argument('url')
@handle_error
def search(url):
    """
    Show the songs behind a video or playlist URL

    Args:
        url: YouTube video or playlist URL
    """
    service = get_service()
    songs = fetch_songs(service, url)

    if not songs:
        fail(f"No songs found for {url}")

    click.echo(f"Found {len(songs)} songs:\n")
    for i, song in enumerate(songs, 1):
        click.echo(f"  {i:>3}. {truncate_string(song.display_name, 60)} [{song.duration_str}]")
        click.echo(f"       {song.item_id}  {song_status(song)}")


@cli.command()
@click.argument('url')
@click.option('--playlist', '-p', 'playlist_id', help='Add the downloaded songs to this playlist')
@handle_error
def download(url, playlist_id):
    """
    Download the audio for a video or playlist URL into the cache

    Songs already cached are skipped. With --playlist, every song that ends
    up cached is added to the given playlist.

    Args:
        url: YouTube video or playlist URL
        playlist_id: Optional playlist to add the songs to
    """
    service = get_service()

    playlist = load_playlist_or_fail(service, playlist_id) if playlist_id else None

    songs = fetch_songs(service, url)
    if not songs:
        fail(f"No songs found for {url}")

    pending = [song for song in songs if not song.is_downloaded]
    if len(songs) > len(pending):
        click.echo(f"{len(songs) - len(pending)} songs already cached")

    if len(pending) == 1:
        song = pending[0]
        operation = create_operation_logger(__name__, f"Downloading {truncate_string(song.display_name, 40)}")
        operation.start()

        def on_progress(line):
            percent = parse_progress_percent(line)
            if percent is not None:
                operation.update(percent, line)

        task = service.download_song(song, on_progress)
        if task is None:
            operation.error("download could not be started")
        else:
            service.wait(task)
            if song.is_downloaded:
                operation.complete(f"Saved {song.cached_file_path}")
            else:
                operation.error("yt-dlp did not produce a file")

    elif pending:
        click.echo(f"Downloading {len(pending)} songs...")

        def on_song_complete(song, success):
            mark = click.style("ok", fg='green') if success else click.style("failed", fg='red')
            click.echo(f"  [{mark}] {song.display_name}")

        service.wait(service.download_songs(pending, on_song_complete))

    downloaded = [song for song in songs if song.is_downloaded]
    failed = len(songs) - len(downloaded)
    logger.console_info(f"{len(downloaded)} cached, {failed} failed")

    if playlist is not None and downloaded:
        added = sum(1 for song in downloaded if service.add_song(playlist, song))
        if not service.save_playlist(playlist):
            fail(f"Could not save playlist {playlist.name}")
        click.echo(f"Added {added} songs to '{playlist.name}'")

    if failed:
        sys.exit(1)


@cli.command()
@click.argument('url')
@handle_error
def find(url):
    """
    Print the cached file for a video URL

    Args:
        url: YouTube video URL
    """
    is_valid, error_msg = validate_youtube_url(url)
    if not is_valid:
        fail(f"Invalid URL: {error_msg}")

    path = get_service().find_downloaded_file(url)
    if not path:
        fail("Not cached")
    click.echo(path)


# Playlist commands

@cli.group()
def playlist():
    """
    Playlist management

    Command group for creating, inspecting and editing local playlists.
    """
    pass


@playlist.command()
@click.argument('name')
@click.option('--description', '-d', help='Playlist description')
@handle_error
def create(name, description):
    """Create an empty playlist"""
    is_valid, error_msg = validate_playlist_name(name)
    if not is_valid:
        fail(f"Invalid playlist name: {error_msg}")

    created = get_service().create_playlist(name, description)
    if created is None:
        fail("Could not create playlist")

    click.echo(f"Created playlist '{created.name}' ({created.id})")


@playlist.command(name='list')
@handle_error
def list_playlists():
    """List all playlists"""
    entries = get_service().get_all_playlists()

    if not entries:
        click.echo("No playlists found")
        return

    click.echo(f"Found {len(entries)} playlists:\n")
    for entry in entries:
        click.echo(f" {entry.name}  ({entry.id})")
        click.echo(f"   {entry.downloaded_count}/{entry.song_count} songs cached")
        click.echo(f"   Last modified: {entry.last_modified_at.strftime('%Y-%m-%d %H:%M')}")
        click.echo()


@playlist.command()
@click.argument('playlist_id')
@handle_error
def show(playlist_id):
    """Show the songs in a playlist"""
    selected = load_playlist_or_fail(get_service(), playlist_id)

    click.echo(f"{selected.name} ({selected.id})")
    if selected.description:
        click.echo(f"   {selected.description}")
    click.echo(f"   {selected.downloaded_count}/{selected.song_count} songs cached\n")

    for i, song in enumerate(selected.songs, 1):
        click.echo(f"  {i:>3}. {truncate_string(song.display_name, 60)} [{song.duration_str}]")
        size = f", {format_file_size(song.file_size)}" if song.file_size else ""
        click.echo(f"       {song.item_id}  {song_status(song)}{size}")


@playlist.command()
@click.argument('playlist_id')
@click.option('--yes', '-y', is_flag=True, help='Do not ask for confirmation')
@handle_error
def delete(playlist_id, yes):
    """Delete a playlist (cached audio is kept)"""
    service = get_service()
    selected = load_playlist_or_fail(service, playlist_id)

    if not yes and not click.confirm(f"Delete playlist '{selected.name}'?"):
        click.echo("Cancelled")
        return

    if not service.delete_playlist(playlist_id):
        fail(f"Could not delete playlist {playlist_id}")
    click.echo(f"Deleted playlist '{selected.name}'")


@playlist.command()
@click.argument('playlist_id')
@click.argument('url')
@handle_error
def add(playlist_id, url):
    """Add the songs behind a URL to a playlist"""
    service = get_service()
    selected = load_playlist_or_fail(service, playlist_id)

    songs = fetch_songs(service, url)
    if not songs:
        fail(f"No songs found for {url}")

    added = sum(1 for song in songs if service.add_song(selected, song))
    if added and not service.save_playlist(selected):
        fail(f"Could not save playlist {selected.name}")

    click.echo(f"Added {added} of {len(songs)} songs to '{selected.name}'")


@playlist.command()
@click.argument('playlist_id')
@click.argument('item_id')
@handle_error
def remove(playlist_id, item_id):
    """Remove a song from a playlist by its video id"""
    service = get_service()
    selected = load_playlist_or_fail(service, playlist_id)

    if not service.remove_song(selected, item_id):
        fail(f"Song {item_id} is not in '{selected.name}'")
    if not service.save_playlist(selected):
        fail(f"Could not save playlist {selected.name}")

    click.echo(f"Removed {item_id} from '{selected.name}'")


@playlist.command()
@handle_error
def reconcile():
    """Rebuild the playlist index from the playlist files"""
    fixes = get_service().playlists.reconcile()
    click.echo(f"Index corrections: {fixes}")


# Maintenance commands

@cli.command()
@handle_error
def cleanup():
    """
    Repair the playlist index and forget songs whose files are gone

    Also seeds a default playlist from the cache when none exist yet.
    """
    service = get_service()
    counts = service.cleanup()
    click.echo(f"Index corrections: {counts['index_corrections']}")
    click.echo(f"Stale song entries removed: {counts['stale_metadata']}")

    created = service.create_default_playlist_from_cache()
    if created is not None:
        click.echo(f"Created playlist '{created.name}' with {created.song_count} cached songs")


@cli.command()
@handle_error
def doctor():
    """
    Run system diagnostics

    Checks configuration, the external tools, the cache directory and the
    audio decoders.
    """
    click.echo("Running diagnostics...\n")
    issues = []

    settings = get_settings()
    if settings.validate():
        click.echo("Configuration: OK")
    else:
        issues.append("Configuration has invalid values")

    service = get_service()
    status = service.reinitialize_tools()
    click.echo(f"yt-dlp: {status.yt_dlp_path or 'Not found'}")
    click.echo(f"ffmpeg: {status.ffmpeg_path or 'Not found'}")
    if not status.all_available:
        issues.append(f"Missing tools: {', '.join(status.missing)}")

    cache_dir = service.cache_directory
    if service.cache_resolver.using_fallback:
        click.echo(f"Cache directory: {cache_dir} (fallback)")
        issues.append("Configured cache directory is not usable")
    else:
        click.echo(f"Cache directory: {cache_dir}")

    decoders = [decoder.name for decoder in service.decoders.decoders]
    click.echo(f"Audio decoders: {', '.join(decoders) if decoders else 'None'}")

    current_log = get_current_log_file()
    click.echo(f"Logging: {current_log if current_log else 'Console only'}")

    if issues:
        click.echo(f"\nFound {len(issues)} issues:")
        for issue in issues:
            click.echo(f"   • {issue}")
        if not status.all_available:
            click.echo()
            click.echo(service.locator.get_setup_instructions(status))
    else:
        click.echo("\nAll systems operational!")


if __name__ == '__main__':
    cli()
