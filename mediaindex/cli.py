"""CLI interface for mediaindex."""

import logging
import sys
from datetime import datetime
from pathlib import Path

import click

from mediaindex.config import Config
from mediaindex.database import MediaEntry, MediaKind
from mediaindex.errors import MediaIndexError, NotFound
from mediaindex.library import MediaLibrary
from mediaindex.scanner import ScanOutcome
from mediaindex.scanner.progress import format_bytes, format_duration
from mediaindex.search import Operator, Predicate

database_option = click.option(
    "--database", type=click.Path(path_type=Path), help="Path to database file"
)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option(
    "--thumbnails",
    type=click.Path(file_okay=False, path_type=Path),
    help="Thumbnail cache directory",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, thumbnails: Path | None) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    ctx.ensure_object(dict)
    config = Config()
    if thumbnails is not None:
        config.thumbnails.directory = thumbnails
    ctx.obj["config"] = config


def _open_library(ctx: click.Context, database: Path | None) -> MediaLibrary:
    config: Config = ctx.obj["config"]
    if database is not None:
        config.database_path = database
    try:
        return MediaLibrary(config).open()
    except MediaIndexError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def _fail(error: Exception) -> None:
    click.echo(f"Error: {error}", err=True)
    sys.exit(1)


@cli.command()
@click.argument("source_path", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--no-recursive", is_flag=True, help="Only scan the directory itself")
@click.option("--progress-interval", type=int, default=None, help="Log status every N files")
@database_option
@click.pass_context
def scan(
    ctx: click.Context,
    source_path: Path,
    no_recursive: bool,
    progress_interval: int | None,
    database: Path | None,
) -> None:
    """Index media files under SOURCE_PATH."""
    config: Config = ctx.obj["config"]
    if progress_interval is not None:
        config.scanner.progress_interval = progress_interval

    with _open_library(ctx, database) as library:
        click.echo(f"Scanning {source_path.resolve()}")
        try:
            library.start_scan(source_path, recursive=not no_recursive)
            library.wait_for_scan()
        except KeyboardInterrupt:
            click.echo("\nCancelling scan, committed entries are kept.")
            library.cancel_scan()
            library.wait_for_scan()
            sys.exit(130)
        except MediaIndexError as e:
            _fail(e)

        progress = library.scan_progress()
        click.echo()
        click.echo(f"Scan {progress.last_outcome.value if progress.last_outcome else 'ended'}:")
        click.echo(f"  Files seen: {progress.files_seen:,}")
        click.echo(f"  Indexed: {progress.files_indexed:,}")
        click.echo(f"  Extraction failures: {progress.files_failed:,}")
        click.echo(f"  Entries removed: {progress.entries_removed:,}")
        if progress.started_at:
            elapsed = datetime.now().timestamp() - progress.started_at
            click.echo(f"  Duration: {format_duration(elapsed)}")
        if progress.last_outcome == ScanOutcome.FAILED:
            _fail(RuntimeError(progress.last_error or "scan failed"))


@cli.command()
@database_option
@click.pass_context
def status(ctx: click.Context, database: Path | None) -> None:
    """Show what the index holds."""
    config: Config = ctx.obj["config"]
    db_path = database or config.database_path

    if not db_path.exists():
        click.echo("No database found. Run 'mediaindex scan' first.")
        return

    with _open_library(ctx, database) as library:
        counts = library.counts_by_kind()
        click.echo("\nIndexed entries:")
        click.echo("-" * 40)
        for kind in MediaKind:
            if counts.get(kind):
                click.echo(f"{kind.value:<12}{counts[kind]:>12,}")
        click.echo("-" * 40)
        click.echo(f"{'total':<12}{sum(counts.values()):>12,}")
        click.echo()
        click.echo(f"Collections: {len(library.store.list_collections()):,}")
        click.echo(f"Tags: {len(library.tags.list_tags()):,}")
        click.echo(f"Saved searches: {len(library.search.list_saved()):,}")
        click.echo(f"Database: {db_path}")


def _format_time(unix_timestamp: float | None) -> str:
    if not unix_timestamp:
        return "unknown"
    return datetime.fromtimestamp(unix_timestamp).strftime("%Y-%m-%d %H:%M")


def _format_seconds(seconds: float | None) -> str:
    if seconds is None:
        return "-"
    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    return f"{hours}:{minutes:02d}:{secs:02d}" if hours else f"{minutes}:{secs:02d}"


def _truncate(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return "..." + text[-(max_len - 3) :]


def _echo_entry_row(entry: MediaEntry) -> None:
    title = entry.title or Path(entry.path).name
    click.echo(
        f"{entry.id or 0:>6}  {entry.kind.value:<6} {format_bytes(entry.size):>11}  "
        f"{_truncate(title, 40):<40}  {_truncate(entry.path, 60)}"
    )


def _echo_entry_detail(library: MediaLibrary, entry: MediaEntry) -> None:
    click.echo(f"Path: {entry.path}")
    click.echo(f"Kind: {entry.kind.value}  (id {entry.id})")
    click.echo(f"Size: {format_bytes(entry.size)}")
    click.echo(f"Created: {_format_time(entry.created_at)}")
    click.echo(f"Modified: {_format_time(entry.modified_at)}")
    if entry.title:
        click.echo(f"Title: {entry.title}")
    if entry.description:
        click.echo(f"Description: {entry.description}")
    if entry.thumbnail:
        click.echo(f"Thumbnail: {entry.thumbnail}")
    if entry.extraction_error:
        click.echo(f"Extraction error: {entry.extraction_error}")

    if entry.collection_id is not None:
        collection = library.store.get_collection(entry.collection_id)
        if collection:
            click.echo(
                f"Show: {collection.show_title}  season {entry.season_index}"
                f"  episode {entry.episode_index}"
            )

    if video := entry.video:
        if video.directors:
            click.echo(f"Directors: {', '.join(video.directors)}")
        if video.actors:
            click.echo(f"Actors: {', '.join(video.actors)}")
        if video.release_date:
            click.echo(f"Released: {video.release_date.isoformat()}")
        click.echo(f"Duration: {_format_seconds(video.duration)}")
        if video.width and video.height:
            click.echo(f"Resolution: {video.width}x{video.height}")
        if video.audio_languages:
            click.echo(f"Audio languages: {', '.join(video.audio_languages)}")
        if video.subtitle_languages:
            click.echo(f"Subtitles: {', '.join(video.subtitle_languages)}")
    elif audio := entry.audio:
        for label, value in (
            ("Artist", audio.artist),
            ("Album artist", audio.album_artist),
            ("Composer", audio.composer),
            ("Album", audio.album),
            ("Genre", audio.genre),
            ("Track", audio.track_index),
        ):
            if value is not None:
                click.echo(f"{label}: {value}")
        click.echo(f"Duration: {_format_seconds(audio.duration)}")
    elif image := entry.image:
        if image.taken_at:
            click.echo(f"Taken: {_format_time(image.taken_at)}")
        if image.lens_model:
            click.echo(f"Lens: {image.lens_model}")
        if image.focal_length:
            click.echo(f"Focal length: {image.focal_length:g} mm")
        if image.exposure_time:
            click.echo(f"Exposure: {image.exposure_time:g} s")
        if image.f_number:
            click.echo(f"Aperture: f/{image.f_number:g}")
        if image.gps_latitude is not None and image.gps_longitude is not None:
            click.echo(f"GPS: {image.gps_latitude:.6f}, {image.gps_longitude:.6f}")

    if entry.chapters:
        click.echo("Chapters:")
        for chapter in entry.chapters:
            click.echo(f"  {_format_seconds(chapter.start):>8}  {chapter.name or ''}")

    if entry.id is not None:
        tags = library.tags.tags_for_entry(entry.id)
        if tags:
            click.echo(f"Tags: {', '.join(t.name for t in tags)}")


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--reindex", is_flag=True, help="Extract again even if unchanged")
@database_option
@click.pass_context
def show(ctx: click.Context, path: Path, reindex: bool, database: Path | None) -> None:
    """Show one entry, indexing the file first if needed."""
    with _open_library(ctx, database) as library:
        entry = None if reindex else library.get_entry(path)
        if entry is None:
            try:
                entry = library.index_file(path, force=reindex)
            except (MediaIndexError, OSError) as e:
                _fail(e)
        if entry is None:
            click.echo(f"{path} is not a media file.")
            return
        _echo_entry_detail(library, entry)


def _parse_predicate(attribute: str, operator: str, value: str) -> Predicate:
    op = Operator(operator)
    if op == Operator.RANGE:
        if ".." not in value:
            raise click.BadParameter(f"range value must look like MIN..MAX, got {value!r}")
        low, _, high = value.partition("..")
        return Predicate.range(attribute, low.strip() or None, high.strip() or None)
    return Predicate(attribute, op, value=value)


def _echo_results(result) -> None:
    for entry in result:
        _echo_entry_row(entry)
    click.echo()
    if result.truncated:
        click.echo(f"Showing {len(result):,} of {result.total:,} matches (truncated).")
    else:
        click.echo(f"{result.total:,} matches.")


@cli.command()
@click.option(
    "--type",
    "-t",
    "media_types",
    multiple=True,
    type=click.Choice([k.value for k in MediaKind]),
    help="Media type to search (repeatable)",
)
@click.option(
    "--predicate",
    "-p",
    "predicates",
    multiple=True,
    nargs=3,
    type=(str, click.Choice([o.value for o in Operator]), str),
    metavar="ATTR OP VALUE",
    help="Filter, e.g. -p director equals 'Jane Doe' or -p release_date range 2003..2010",
)
@click.option("--sort", "sort_by", default="path", help="Sort key")
@click.option("--desc", is_flag=True, help="Sort descending")
@click.option("--save", "save_as", help="Save the search under this name")
@database_option
@click.pass_context
def search(
    ctx: click.Context,
    media_types: tuple[str, ...],
    predicates: tuple[tuple[str, str, str], ...],
    sort_by: str,
    desc: bool,
    save_as: str | None,
    database: Path | None,
) -> None:
    """Search the index with exact and range filters."""
    with _open_library(ctx, database) as library:
        try:
            query = library.search.build_query(
                media_types,
                [_parse_predicate(*p) for p in predicates],
                sort_by=sort_by,
                descending=desc,
            )
            result = library.search.run(query)
            if save_as:
                library.search.save(save_as, query)
                click.echo(f"Saved search {save_as!r}.")
        except MediaIndexError as e:
            _fail(e)
        _echo_results(result)


@cli.group()
def saved() -> None:
    """Manage saved searches."""


@saved.command("list")
@database_option
@click.pass_context
def saved_list(ctx: click.Context, database: Path | None) -> None:
    with _open_library(ctx, database) as library:
        searches = library.search.list_saved()
        if not searches:
            click.echo("No saved searches.")
            return
        for s in searches:
            filters = "; ".join(
                f"{p['attribute']} {p['operator']} "
                + (f"{p.get('low')}..{p.get('high')}" if p["operator"] == "range" else str(p.get("value")))
                for p in s.predicates
            )
            click.echo(
                f"{s.name:<24} [{','.join(s.media_types)}] {filters or '(no filters)'}"
                f"  last used: {_format_time(s.last_used_at)}"
            )


@saved.command("run")
@click.argument("name")
@database_option
@click.pass_context
def saved_run(ctx: click.Context, name: str, database: Path | None) -> None:
    with _open_library(ctx, database) as library:
        try:
            result = library.search.run_saved(name)
        except MediaIndexError as e:
            _fail(e)
        _echo_results(result)


@saved.command("delete")
@click.argument("name")
@database_option
@click.pass_context
def saved_delete(ctx: click.Context, name: str, database: Path | None) -> None:
    with _open_library(ctx, database) as library:
        try:
            deleted = library.search.delete_saved(name)
        except MediaIndexError as e:
            _fail(e)
        if not deleted:
            _fail(NotFound(f"No saved search named {name!r}"))
        click.echo(f"Deleted saved search {name!r}.")


@cli.group()
def tag() -> None:
    """Manage tags."""


def _entry_for_path(library: MediaLibrary, path: Path) -> MediaEntry:
    entry = library.get_entry(path) or library.index_file(path)
    if entry is None or entry.id is None:
        raise NotFound(f"{path} is not an indexed media file")
    return entry


@tag.command("create")
@click.argument("name")
@database_option
@click.pass_context
def tag_create(ctx: click.Context, name: str, database: Path | None) -> None:
    with _open_library(ctx, database) as library:
        try:
            tag_id = library.tags.create_tag(name)
        except (MediaIndexError, ValueError) as e:
            _fail(e)
        click.echo(f"Created tag {name!r} (id {tag_id}).")


@tag.command("delete")
@click.argument("name")
@database_option
@click.pass_context
def tag_delete(ctx: click.Context, name: str, database: Path | None) -> None:
    with _open_library(ctx, database) as library:
        try:
            found = library.tags.get_tag_by_name(name)
            library.tags.delete_tag(found.id)
        except MediaIndexError as e:
            _fail(e)
        click.echo(f"Deleted tag {name!r} and {found.entry_count:,} assignments.")


@tag.command("assign")
@click.argument("name")
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True, path_type=Path))
@database_option
@click.pass_context
def tag_assign(ctx: click.Context, name: str, paths: tuple[Path, ...], database: Path | None) -> None:
    with _open_library(ctx, database) as library:
        try:
            found = library.tags.get_tag_by_name(name)
            for path in paths:
                entry = _entry_for_path(library, path)
                library.tags.assign(found.id, entry.id)
        except (MediaIndexError, OSError) as e:
            _fail(e)
        click.echo(f"Tagged {len(paths)} entries with {name!r}.")


@tag.command("unassign")
@click.argument("name")
@click.argument("paths", nargs=-1, required=True, type=click.Path(path_type=Path))
@database_option
@click.pass_context
def tag_unassign(
    ctx: click.Context, name: str, paths: tuple[Path, ...], database: Path | None
) -> None:
    with _open_library(ctx, database) as library:
        try:
            found = library.tags.get_tag_by_name(name)
            removed = 0
            for path in paths:
                entry = library.get_entry(path)
                if entry is not None and library.tags.unassign(found.id, entry.id):
                    removed += 1
        except MediaIndexError as e:
            _fail(e)
        click.echo(f"Removed {name!r} from {removed} entries.")


@tag.command("list")
@database_option
@click.pass_context
def tag_list(ctx: click.Context, database: Path | None) -> None:
    with _open_library(ctx, database) as library:
        tags = library.tags.list_tags()
        if not tags:
            click.echo("No tags.")
            return
        for t in tags:
            click.echo(f"{t.name:<30}{t.entry_count:>8,}")


@tag.command("show")
@click.argument("name")
@database_option
@click.pass_context
def tag_show(ctx: click.Context, name: str, database: Path | None) -> None:
    with _open_library(ctx, database) as library:
        try:
            found = library.tags.get_tag_by_name(name)
        except MediaIndexError as e:
            _fail(e)
        for entry in library.tags.entries_for_tag(found.id):
            _echo_entry_row(entry)


def main() -> None:
    """Entry point for the CLI."""
    cli(standalone_mode=True)  # pylint: disable=no-value-for-parameter


if __name__ == "__main__":
    main()
