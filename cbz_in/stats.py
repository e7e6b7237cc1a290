from collections import Counter

from rich.markup import escape
from rich.table import Table

from .archive import ArchiveReader
from .errors import CbzInError
from .formats import ImageFormat
from .job import ArchiveReport, find_archives
from .log import console, log


def count_images(cbz_path, image_filter=None):
    """Count the images in an archive per format, optionally only of one format."""
    counts = Counter()
    with ArchiveReader(cbz_path) as reader:
        for name in reader.names():
            if name.endswith("/"):
                continue
            fmt = ImageFormat.from_name(name)
            if fmt is None or (image_filter is not None and fmt != image_filter):
                continue
            counts[fmt] += 1
    return counts


def build_table(title, counts):
    table = Table(title=title, title_style="bold magenta")
    table.add_column("Format", style="cyan")
    table.add_column("Images", style="bold green", justify="right")
    for fmt in sorted(counts, key=lambda f: f.ext):
        table.add_row(fmt.ext, str(counts[fmt]))
    table.add_section()
    table.add_row("total", str(sum(counts.values())))
    return table


def run_stats(paths, image_filter=None, verbose=False):
    """Print image statistics for all archives at paths. Returns the failed reports."""
    log("Counting images in archives...")
    archives, invalid = find_archives(paths)
    for path, reason in invalid:
        log(f"[red]❌ {reason}: \"{escape(str(path))}\"", level="error")

    total = Counter()
    searched = 0
    failures = []
    for cbz_path in archives:
        log(f"Checking archive \"{escape(str(cbz_path))}\"", level="debug")
        try:
            counts = count_images(cbz_path, image_filter)
        except CbzInError as e:
            log(f"[red]❌ {escape(str(e))}", level="error")
            failures.append(ArchiveReport(path=cbz_path, error=e))
            continue
        searched += 1
        if not counts:
            log(f"    No images in \"{escape(str(cbz_path))}\"", level="debug")
            continue
        if verbose:
            console.print(build_table(escape(str(cbz_path)), counts))
        total.update(counts)

    log(f"Searched {searched} archives:")
    console.print(build_table("All archives", total))
    return failures, invalid
