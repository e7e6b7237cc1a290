import time
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Optional

from rich.markup import escape
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from . import archive, tools
from .convert import Dispatcher
from .errors import CbzInError, ConversionFailedError, ToolNotFoundError
from .formats import ImageFormat, should_convert
from .log import console, log


@dataclass
class ConversionConfig:
    target: ImageFormat
    force: bool = False
    dry_run: bool = False
    timeout: Optional[float] = None


@dataclass
class ArchiveReport:
    """Outcome of processing a single archive."""

    path: Path
    output: Optional[Path] = None
    converted: int = 0
    failed: list = field(default_factory=list)
    skipped: Optional[str] = None
    error: Optional[CbzInError] = None
    original_size: int = 0
    final_size: int = 0
    duration: float = 0.0

    @property
    def ok(self):
        return self.error is None


def find_archives(paths):
    """Resolve command line paths to archives.

    Directories contribute the archives directly inside them, not those in
    subdirectories. Returns the archives and a list of (path, reason) for paths that
    are neither an archive nor a directory.
    """
    archives, invalid = [], []
    for path in map(Path, paths):
        if path.is_dir():
            found = sorted(child for child in path.iterdir() if archive.is_archive(child))
            log(f"Checking archives directory \"{escape(str(path))}\": {len(found)} found", level="debug")
            archives.extend(found)
        elif archive.is_archive(path):
            archives.append(path)
        else:
            invalid.append((path, "Neither an archive nor a directory"))
    return archives, invalid


def converted_name(name, target, taken):
    """Name of a converted entry: page1.jpg becomes page1.<target>.

    Falls back to appending the extension (page1.jpg.<target>) if the short name is
    already used by another entry, and then to numbering it (page1.jpg.1.<target>).
    """
    candidate = str(PurePosixPath(name).with_suffix(f".{target.ext}"))
    if candidate in taken:
        candidate = f"{name}.{target.ext}"
    counter = 1
    while candidate in taken:
        candidate = f"{name}.{counter}.{target.ext}"
        counter += 1
    taken.add(candidate)
    return candidate


def convertible_images(reader, config):
    """List (name, format) of all entries that will be converted."""
    return [
        (info.filename, ImageFormat.from_name(info.filename))
        for info in reader.infos()
        if should_convert(info.filename, config.target, config.force)
    ]


def process_archive(cbz_path, config, dispatcher, on_image=None):
    """Convert the images of one archive into a new archive beside it.

    Entry-level conversion failures keep the original entry and are recorded in the
    report. Archive-level failures end up in report.error; the original archive is
    never touched either way.
    """
    start_time = time.monotonic()
    cbz_path = Path(cbz_path)
    report = ArchiveReport(path=cbz_path)
    out_path = archive.output_path(cbz_path, config.target)

    try:
        if archive.already_converted(cbz_path, config.target):
            report.skipped = "Already converted"
            return report

        with archive.ArchiveReader(cbz_path) as reader:
            images = convertible_images(reader, config)
            if not images:
                report.skipped = "No images to convert"
                return report

            dispatcher.check_tools(fmt for _, fmt in images)
            report.original_size = cbz_path.stat().st_size

            taken = set(reader.names())
            with archive.ArchiveWriter(out_path, like=cbz_path) as writer:
                for entry in reader.entries():
                    if not should_convert(entry.name, config.target, config.force):
                        writer.add(entry)
                        continue

                    try:
                        data = dispatcher.convert(entry.data, ImageFormat.from_name(entry.name))
                    except (ConversionFailedError, ToolNotFoundError) as e:
                        log(f"[red]   ❌ {escape(entry.name)}: {escape(str(e))}", level="error")
                        report.failed.append((entry.name, str(e)))
                        writer.add(entry)
                    else:
                        new_name = converted_name(entry.name, config.target, taken)
                        log(f"   🖼️  {escape(entry.name)} → {escape(new_name)}", level="debug")
                        writer.add(entry, data, new_name)
                        report.converted += 1
                    finally:
                        if on_image is not None:
                            on_image()

        report.output = out_path
        report.final_size = out_path.stat().st_size
    except CbzInError as e:
        report.error = e
    except OSError as e:
        report.error = CbzInError(f"{cbz_path}: {e}")
    finally:
        report.duration = time.monotonic() - start_time
    return report


def plan_archives(archives, config, dispatcher):
    """Count the images to convert per archive, without converting anything.

    Returns (archive, image count, required tools) for every archive with work to do
    and a list of reports for archives that could not be read.
    """
    planned, failures = [], []
    for cbz_path in archives:
        if archive.already_converted(cbz_path, config.target):
            log(f"   Already converted \"{escape(str(cbz_path))}\"", level="debug")
            continue
        try:
            with archive.ArchiveReader(cbz_path) as reader:
                images = convertible_images(reader, config)
        except CbzInError as e:
            failures.append(ArchiveReport(path=cbz_path, error=e))
            continue
        if not images:
            log(f"   No files to convert in \"{escape(str(cbz_path))}\"", level="debug")
            continue
        needed = {tool for _, fmt in images for tool in dispatcher.required_tools(fmt)}
        planned.append((cbz_path, len(images), needed))
    return planned, failures


def make_progress(quiet=False):
    return Progress(SpinnerColumn(), TextColumn("[cyan]{task.description:>8}[/cyan]"), BarColumn(),
                    TextColumn("{task.completed}/{task.total}"), TimeElapsedColumn(),
                    console=console, disable=quiet)


def run_conversion(paths, config, dispatcher=None, quiet=False):
    """Convert every archive found at paths. Returns the reports and the list of bad paths.

    In a dry run nothing is converted; instead ToolNotFoundError is raised if any tool
    needed by the planned conversions is missing.
    """
    dispatcher = dispatcher or Dispatcher(config.target, config.timeout)

    log("Looking for images to convert in archives...")
    archives, invalid = find_archives(paths)
    for path, reason in invalid:
        log(f"[red]❌ {reason}: \"{escape(str(path))}\"", level="error")

    planned, reports = plan_archives(archives, config, dispatcher)
    total_images = sum(count for _, count, _ in planned)
    log(f"Found {len(planned)} archives, with a total of {total_images} images to convert")

    if config.dry_run:
        for cbz_path, count, _ in planned:
            log(f"   Got {count} files to convert for \"{escape(str(cbz_path))}\"")
        needed = {tool for _, _, tools_needed in planned for tool in tools_needed}
        missing = tools.missing_tools(needed)
        if missing:
            raise ToolNotFoundError(missing)
        for tool in sorted(needed):
            log(f"   {tool}: {escape(tools.tool_version(tool))}", level="debug")
        return reports, invalid

    with make_progress(quiet) as progress:
        archive_task = progress.add_task("Archives", total=len(planned))
        image_task = progress.add_task("Images", total=0)

        for cbz_path, count, _ in planned:
            log(f"\n[bold]📦 Converting \"{escape(str(cbz_path))}\"[/bold]")
            progress.reset(image_task, total=count)
            report = process_archive(cbz_path, config, dispatcher,
                                     on_image=lambda: progress.advance(image_task))
            reports.append(report)
            log_report(report)
            progress.advance(archive_task)

    return reports, invalid


def log_report(report):
    if report.error is not None:
        log(f"[red]❌ {escape(str(report.error))}", level="error")
    elif report.skipped:
        log(f"   ℹ️  {report.skipped}")
    else:
        change = report.original_size - report.final_size
        percent = (change / report.original_size) * 100 if report.original_size > 0 else 0
        log(f"   ✅ Wrote \"{escape(str(report.output))}\" in {report.duration:.2f}s. "
            f"Size: {report.final_size / (1024 * 1024):.2f} MB, saved {change / (1024 * 1024):.2f} MB ({percent:.2f}%)")
        if report.failed:
            log(f"[yellow]   ⚠️ {len(report.failed)} image(s) kept unconverted[/yellow]", level="warning")
