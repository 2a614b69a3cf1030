"""
StarTrack - now-playing tracker with one-keystroke Liked Songs.

Usage:
    python startrack.py                 Run the engine and log events until Ctrl+C
    python startrack.py --authorize     Authorize with Spotify in the terminal
    python startrack.py --like          Like the currently playing song and exit
    python startrack.py --unlike        Remove the currently playing song from Liked Songs
"""
import argparse
import asyncio
import json
import sys

from config import DEBUG, ENGINE, VERSION
from engine.errors import CatalogError
from engine.models import FavoriteStatusChanged, ResolvedSongChanged, Stopped, TrackChanged
from logging_config import get_logger, setup_logging
from providers.spotify_api import SpotifyCatalog
from sources import MODES

logger = get_logger(__name__)

# How long --like/--unlike waits for the current song to resolve
RESOLVE_TIMEOUT = 30.0


def describe(event) -> str:
    if isinstance(event, TrackChanged):
        return f"Now playing: {event.track.display}"
    if isinstance(event, Stopped):
        return "Playback stopped"
    if isinstance(event, ResolvedSongChanged):
        return f"Catalog match: {event.song.display}" if event.song else "No catalog match"
    if isinstance(event, FavoriteStatusChanged):
        return f"Favorite status: {event.status.value}"
    return repr(event)


async def authorize() -> int:
    catalog = SpotifyCatalog()
    url = catalog.get_auth_url()
    if not url:
        print("Spotify credentials missing. Set SPOTIFY_CLIENT_ID and SPOTIFY_CLIENT_SECRET in .env")
        return 1
    print(f"Open this URL in a browser and approve access:\n\n  {url}\n")
    redirect = input("Paste the URL you were redirected to: ").strip()
    if await catalog.complete_auth(redirect):
        print("Authorization complete.")
        return 0
    print("Authorization failed, see the log for details.")
    return 1


async def run(mode: str, show_stats: bool) -> int:
    # Imported here so --authorize works without touching the engine wiring
    from engine.service import NowPlayingService

    service = NowPlayingService(mode=mode)
    events = service.reconciler.subscribe()
    await service.start()
    try:
        while True:
            event = await events.get()
            logger.info(describe(event))
    except asyncio.CancelledError:
        logger.info("Main loop cancelled...")
    finally:
        service.reconciler.unsubscribe(events)
        await service.stop()
        if show_stats:
            logger.info(f"Statistics:\n{json.dumps(service.statistics(), indent=2)}")
    return 0


async def set_favorite(mode: str, value: bool) -> int:
    from engine.service import NowPlayingService

    service = NowPlayingService(mode=mode)
    events = service.reconciler.subscribe()
    await service.start()
    try:
        try:
            await asyncio.wait_for(_wait_for_song(events), RESOLVE_TIMEOUT)
        except asyncio.TimeoutError:
            print("Nothing playing that could be matched in the catalog.")
            return 1

        song = service.reconciler.current_resolved_song
        try:
            if value:
                await service.reconciler.request_add_favorite()
            else:
                await service.reconciler.request_remove_favorite()
        except CatalogError as e:
            print(f"{e.title}: {e.message}\n{e.recovery_hint}")
            return 1

        print(f"{'Liked' if value else 'Unliked'}: {song.display}")
        return 0
    finally:
        await service.stop()


async def _wait_for_song(events: asyncio.Queue) -> None:
    while True:
        event = await events.get()
        if isinstance(event, ResolvedSongChanged) and event.song is not None:
            return


def main() -> int:
    parser = argparse.ArgumentParser(description=f'StarTrack {VERSION} - now playing and Liked Songs')
    parser.add_argument('--mode', choices=MODES, default=None,
                        help=f"Signal source mode (default: {ENGINE['mode']})")
    parser.add_argument('--authorize', action='store_true',
                        help='Authorize with Spotify and store the token')
    group = parser.add_mutually_exclusive_group()
    group.add_argument('--like', action='store_true', help='Like the current song and exit')
    group.add_argument('--unlike', action='store_true', help='Unlike the current song and exit')
    parser.add_argument('--stats', action='store_true',
                        help='Log retry and error statistics on exit')
    args = parser.parse_args()

    setup_logging(
        console_level=DEBUG.get("log_level", "INFO"),
        file_level="DEBUG" if DEBUG.get("log_detailed", False) else "INFO",
        console=DEBUG.get("log_to_console", True),
        log_file=DEBUG.get("log_file", "startrack.log"),
        max_bytes=DEBUG["log_rotation"]["max_bytes"],
        backup_count=DEBUG["log_rotation"]["backup_count"],
    )

    mode = args.mode or ENGINE["mode"]
    try:
        if args.authorize:
            return asyncio.run(authorize())
        if args.like or args.unlike:
            return asyncio.run(set_favorite(mode, args.like))
        logger.info(f"Starting StarTrack {VERSION}...")
        return asyncio.run(run(mode, args.stats))
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt caught in main...")
        return 0
    finally:
        logger.info("StarTrack shutdown complete")


if __name__ == "__main__":
    sys.exit(main())
