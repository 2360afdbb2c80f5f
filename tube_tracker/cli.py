"""
Command-line interface for tube-tracker.

This module implements the CLI using Click. rich-click is used for the
output colors. It is a thin shell: every command loads the configuration,
builds an Application and calls one library operation.

Commands:
    tube list                                  Show cached playlists
    tube add <url-or-id>                       Add a playlist (costs "search" credits)
    tube open <playlist> [--part N]            Show a playlist part with progress
    tube toggle <playlist> <video>             Mark a video watched / unwatched
    tube notes <playlist> <video> [--regenerate]
    tube test <playlist> <video> [--regenerate]
    tube submit <playlist> <video> A B C ...   Grade answers for a generated test
    tube delete <playlist> [--yes]             Remove a playlist everywhere
    tube credits                               Show the credit balance
    tube refresh-all                           Re-fetch every cached playlist

Configuration:
    The CLI requires a config.yaml file in the current directory. The
    optional `user` section signs the CLI in; without it the CLI runs
    anonymously (local progress only, no credits, no tests).
"""

import asyncio
import sys
from typing import Any, Awaitable, Callable

import rich_click as click
from tqdm import tqdm

# Configure rich-click for better help formatting
click.rich_click.USE_RICH_MARKUP = True
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.STYLE_ERRORS_SUGGESTION = "magenta italic"
click.rich_click.ERRORS_SUGGESTION = ""
click.rich_click.MAX_WIDTH = 100

from tube_tracker import __version__
from tube_tracker.app import Application
from tube_tracker.core import (
    Config,
    ConfigError,
    InsufficientCreditsError,
    TubeTrackerError,
    get_logger,
    load_config,
    setup_logging,
    shutdown_logging,
)
from tube_tracker.core.identity import User
from tube_tracker.generation.models import OPTIONS_PER_QUESTION
from tube_tracker.sync.segmentation import select_segment

logger = get_logger(__name__)


ANSWER_LETTERS = "ABCD"


@click.group()
@click.version_option(__version__, prog_name="tube-tracker")
def cli() -> None:
    """
    tube-tracker: Track progress through YouTube playlists.

    Study notes and quizzes are generated per video and paid for with
    credits when signed in.

    \b
    BASIC USAGE:
        tube add "https://www.youtube.com/playlist?list=PL..."
        tube open PL...                        # first part of the playlist
        tube open PL... --part 2               # second part
        tube toggle PL... dQw4w9WgXcQ          # mark watched
    """


@cli.command("list")
def list_playlists() -> None:
    """Show cached playlists, most recently opened first."""

    async def run(app: Application, user: User | None) -> None:
        playlists = await app.coordinator.load_playlist_index(user)
        if not playlists:
            click.echo("No playlists yet. Add one with: tube add <url>")
            return
        for playlist in playlists:
            click.echo(f"{playlist.id}  {playlist.title}  ({playlist.video_count} videos)")

    _run(run)


@cli.command("add")
@click.argument("source")
def add_playlist(source: str) -> None:
    """Add a playlist from a YouTube URL or playlist id."""

    async def run(app: Application, user: User | None) -> None:
        playlist = await app.coordinator.add_playlist(source, user, app.ledger_for(user))
        click.echo(f"Added: {playlist.title} ({playlist.id})")

    _run(run)


@cli.command("open")
@click.argument("playlist_id")
@click.option("--part", "part", type=int, default=1, show_default=True,
              help="Part of the playlist to show (1-based)")
def open_playlist(playlist_id: str, part: int) -> None:
    """Show one part of a playlist with watched marks."""

    async def run(app: Application, user: User | None) -> None:
        snapshot = await app.coordinator.open_playlist(playlist_id, user)
        result = await snapshot.refresh if snapshot.refresh else None
        if result is not None:
            snapshot = snapshot.with_videos(result.playlist, result.videos)

        if snapshot.playlist is None:
            raise click.ClickException(
                f"Playlist {playlist_id} is not cached. Add it with: tube add {playlist_id}"
            )

        segments = snapshot.segments()
        index, videos = select_segment(segments, part - 1)
        click.echo(
            f"{snapshot.playlist.title}  "
            f"{snapshot.completed_count}/{len(snapshot.videos)} watched"
        )
        if len(segments) > 1:
            click.echo(f"Part {index + 1} of {len(segments)}")
        for video in videos:
            mark = "x" if snapshot.is_completed(video.id) else " "
            extras = []
            if video.id in snapshot.notes:
                extras.append("notes")
            if video.id in snapshot.test_results:
                test = snapshot.test_results[video.id]
                extras.append(f"test {test.score}/{test.total_questions}")
            suffix = f"  [{', '.join(extras)}]" if extras else ""
            click.echo(f"  [{mark}] {video.position + 1:>3}. {video.title} ({video.id}){suffix}")

        if user is not None and not snapshot.remote_synced:
            click.echo("(offline: showing progress saved on this device)")

    _run(run)


@cli.command("toggle")
@click.argument("playlist_id")
@click.argument("video_id")
def toggle(playlist_id: str, video_id: str) -> None:
    """Mark a video as watched, or unwatched if it already is."""

    async def run(app: Application, user: User | None) -> None:
        snapshot = await app.coordinator.open_playlist(playlist_id, user)
        updated = await app.coordinator.toggle_progress(snapshot, video_id, user)
        state = "watched" if updated.is_completed(video_id) else "not watched"
        click.echo(f"{video_id}: {state} ({updated.completed_count}/{len(updated.videos)})")

    _run(run)


@cli.command("notes")
@click.argument("playlist_id")
@click.argument("video_id")
@click.option("--regenerate", is_flag=True, help="Ignore cached notes and generate new ones")
def notes(playlist_id: str, video_id: str, regenerate: bool) -> None:
    """Generate (or show cached) study notes for a video."""

    async def run(app: Application, user: User | None) -> None:
        video = await app.find_video(playlist_id, video_id)
        result = await app.study.generate_notes(
            video, playlist_id, user, app.ledger_for(user), force_regenerate=regenerate
        )
        click.echo(result.topic or video.title)
        click.echo("")
        for takeaway in result.key_takeaways:
            click.echo(f"  - {takeaway}")
        if result.concepts:
            click.echo("")
            for concept in result.concepts:
                click.echo(f"  {concept.term}: {concept.meaning}")
        if result.must_remember:
            click.echo("")
            click.echo("Must remember:")
            for item in result.must_remember:
                click.echo(f"  * {item}")
        click.echo("")
        click.echo(result.summary)

    _run(run)


@cli.command("test")
@click.argument("playlist_id")
@click.argument("video_id")
@click.option("--regenerate", is_flag=True, help="Discard the stored test and generate a new one")
def test(playlist_id: str, video_id: str, regenerate: bool) -> None:
    """Generate a 10-question quiz for a video."""

    async def run(app: Application, user: User | None) -> None:
        video = await app.find_video(playlist_id, video_id)
        record = await app.study.generate_test(
            video, playlist_id, user, app.ledger_for(user), force_regenerate=regenerate
        )
        for number, question in enumerate(record.questions, 1):
            click.echo(f"{number}. {question.question}")
            for letter, option in zip(ANSWER_LETTERS, question.options):
                click.echo(f"     {letter}) {option}")
        if record.result is not None:
            result = record.result
            click.echo(f"Last score: {result.score}/{result.total_questions} "
                       f"({result.performance_level.value})")
        else:
            click.echo(f"Submit with: tube submit {playlist_id} {video_id} A B C ...")

    _run(run)


@cli.command("submit")
@click.argument("playlist_id")
@click.argument("video_id")
@click.argument("answers", nargs=-1, required=True)
def submit(playlist_id: str, video_id: str, answers: tuple[str, ...]) -> None:
    """Grade answers (letters A-D, one per question) for a generated test."""
    indices = [_parse_answer(answer) for answer in answers]

    async def run(app: Application, user: User | None) -> None:
        if user is None:
            raise click.ClickException("Sign in (config.yaml 'user' section) to submit tests")
        try:
            result = await app.study.submit_test(user, video_id, playlist_id, indices)
        except ValueError as e:
            raise click.ClickException(str(e)) from e
        click.echo(f"Score: {result.score}/{result.total_questions} - {result.performance_level.value}")

    _run(run)


@cli.command("delete")
@click.argument("playlist_id")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
def delete(playlist_id: str, yes: bool) -> None:
    """Remove a playlist with all its progress and notes."""
    if not yes:
        click.confirm(
            f"Remove playlist {playlist_id} and all associated progress?",
            abort=True
        )

    async def run(app: Application, user: User | None) -> None:
        await app.coordinator.delete_playlist(playlist_id, user)
        click.echo(f"Deleted {playlist_id}")

    _run(run)


@cli.command("credits")
def credits() -> None:
    """Show the credit balance and action costs."""

    async def run(app: Application, user: User | None) -> None:
        ledger = app.ledger_for(user)
        if ledger is None:
            raise click.ClickException("Sign in (config.yaml 'user' section) to use credits")
        balance = await ledger.refresh_balance()
        click.echo(f"Credits: {balance}")
        for action, cost in sorted(ledger.costs.items()):
            click.echo(f"  {action}: {cost}")

    _run(run)


@cli.command("refresh-all")
@click.option("--force", is_flag=True, help="Bypass the shared playlist cache")
def refresh_all(force: bool) -> None:
    """Re-fetch every cached playlist from YouTube."""

    async def run(app: Application, user: User | None) -> None:
        playlists = await app.coordinator.load_playlist_index(user)
        failed = 0
        for playlist in tqdm(playlists, desc="Refreshing", unit="playlist"):
            result = await app.coordinator.refresh(playlist.id, force_refresh=force)
            if result is None:
                failed += 1
        logger.info(f"Refreshed {len(playlists) - failed}/{len(playlists)} playlists")
        if failed:
            logger.warning(f"{failed} playlists failed, see sync_failures log")

    _run(run)


def _parse_answer(answer: str) -> int:
    """Accept a letter (A-D) or a 1-based number."""
    value = answer.strip().upper()
    if value in ANSWER_LETTERS[:OPTIONS_PER_QUESTION] and len(value) == 1:
        return ANSWER_LETTERS.index(value)
    if value.isdigit() and 1 <= int(value) <= OPTIONS_PER_QUESTION:
        return int(value) - 1
    raise click.BadParameter(f"'{answer}' is not an answer (use A-D)")


def _load_configuration() -> Config:
    """
    Load and validate configuration from config.yaml.

    Raises:
        ConfigError: If configuration is invalid or missing.
    """
    return load_config()


def _run(command: Callable[[Application, User | None], Awaitable[Any]]) -> None:
    """
    Execute one command with configuration, logging and error handling.

    Loads config, sets up logging, builds the Application, runs the
    command on a fresh event loop, then waits for background refreshes
    and closes everything.

    Raises:
        SystemExit: On fatal errors (with appropriate exit code).
    """
    try:
        config = _load_configuration()
    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)

    setup_logging(config.log_directory)

    async def main_async() -> None:
        app = Application.from_config(config)
        try:
            await command(app, app.identity.current_user())
            await app.coordinator.drain()
        finally:
            await app.close()

    try:
        asyncio.run(main_async())

    except click.ClickException:
        raise

    except InsufficientCreditsError as e:
        click.echo(f"Not enough credits: {e}", err=True)
        sys.exit(2)

    except TubeTrackerError as e:
        click.echo(f"Error: {e}", err=True)
        if e.details:
            logger.debug(f"Details: {e.details}")
        sys.exit(1)

    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)

    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        logger.exception("Unexpected error")
        sys.exit(1)

    finally:
        shutdown_logging()


def main() -> None:
    """
    Entry point for the CLI.

    This function is called when running `tube` from the command line.
    It invokes the Click CLI group.
    """
    cli()


if __name__ == "__main__":
    main()
