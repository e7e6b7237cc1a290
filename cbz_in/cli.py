import argparse
import os
import sys

from rich.markup import escape

from . import __version__
from . import log as logging_setup
from .errors import ToolNotFoundError, UnsupportedFormatError
from .formats import TARGETS, ImageFormat, parse_target
from .job import ConversionConfig, run_conversion
from .log import DEFAULT_LOG_FILE, LEVELS, console, log
from .stats import run_stats

STATS_COMMAND = "stats"


def positive_float(value):
    number = float(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be greater than 0, got {value}")
    return number


def build_parser():
    targets = ", ".join(t.ext for t in TARGETS)
    parser = argparse.ArgumentParser(
        prog="cbz_in",
        description="Convert images within comic book archives (CBZ or ZIP) to newer image formats. "
                    "By default only JPEG and PNG images are converted. The new archive is placed "
                    "next to the original, which is never modified.",
    )
    parser.add_argument("command", metavar="FORMAT",
                        help=f"Target image format ({targets}), or '{STATS_COMMAND}' to count images instead")
    parser.add_argument("paths", nargs="*", default=["."],
                        help="Archives, or directories containing archives (default: current directory). "
                             "Only top-level archives of a directory are considered.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    action_group = parser.add_argument_group('Conversion Control')
    action_group.add_argument("-f", "--force", action="store_true",
                              help="Convert images of all recognized formats, not just JPEG and PNG.")
    action_group.add_argument("--dry-run", action="store_true",
                              help="Check that all required tools are installed and show what would be converted.")
    action_group.add_argument("--timeout", type=positive_float, default=None, metavar="SECONDS",
                              help="Give up on a single tool invocation after this many seconds (default: no limit).")

    stats_group = parser.add_argument_group('Statistics')
    stats_group.add_argument("--filter", default=None, metavar="FORMAT",
                             help=f"Only count images of this format ({', '.join(f.ext for f in ImageFormat)}).")

    output_group = parser.add_argument_group('Output Control')
    output_group.add_argument("--quiet", "-q", action="store_true", help="Suppress all console output except errors.")
    output_group.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging to console.")
    output_group.add_argument("--log", nargs="?", const=DEFAULT_LOG_FILE, default=None, metavar="LOG_FILE",
                              help=f"Write a log file (default name: {DEFAULT_LOG_FILE}).")
    output_group.add_argument("--level", choices=list(LEVELS), default="info",
                              help="Detail level of the log file (default: info).")
    return parser


def print_summary(reports, invalid):
    converted = [r for r in reports if r.ok and r.output is not None]
    skipped = [r for r in reports if r.ok and r.skipped]
    failed = [r for r in reports if not r.ok]
    images_converted = sum(r.converted for r in reports)
    images_failed = sum(len(r.failed) for r in reports)

    log("\n🎉 [bold green]Conversion process finished![/bold green]")
    log(f"   Archives converted:       {len(converted)}")
    log(f"   Archives skipped:         {len(skipped)}")
    log(f"   Archives failed:          {len(failed) + len(invalid)}")
    log(f"   Images converted:         {images_converted}")
    log(f"   Images kept unconverted:  {images_failed}")

    if failed or invalid:
        log("\n[bold red]Failed archives:[/bold red]", level="error")
        for path, reason in invalid:
            log(f"[red]   {escape(str(path))}: {reason}", level="error")
        for report in failed:
            log(f"[red]   {escape(str(report.path))}: {escape(str(report.error))}", level="error")

    with_failed_images = [r for r in reports if r.failed]
    if with_failed_images:
        log("\n[bold yellow]Images that could not be converted:[/bold yellow]", level="warning")
        for report in with_failed_images:
            log(f"[yellow]   {escape(str(report.path))}:", level="warning")
            for name, reason in report.failed:
                log(f"[yellow]      {escape(name)}: {escape(reason)}", level="warning")


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        logging_setup.configure(args.log, args.level, verbose=args.verbose, quiet=args.quiet)
    except ValueError as e:
        console.print(f"[red]❌ Failed to initialize logging: {escape(str(e))}")
        return 2

    cmd = " ".join(sys.argv if argv is None else ["cbz_in", *argv])
    log(f"starting new execution as \"{escape(cmd)}\"", level="debug")
    log(f"working directory: {escape(os.getcwd())}", level="debug")

    if args.command.lower() == STATS_COMMAND:
        image_filter = None
        if args.filter is not None:
            try:
                image_filter = ImageFormat.parse(args.filter)
            except UnsupportedFormatError as e:
                log(f"[red]❌ {escape(str(e))}", level="error")
                return 2
        failures, invalid = run_stats(args.paths, image_filter, verbose=args.verbose)
        return 1 if failures or invalid else 0

    try:
        target = parse_target(args.command)
    except UnsupportedFormatError as e:
        parser.print_usage(sys.stderr)
        log(f"[red]❌ {escape(str(e))}", level="error")
        return 2

    if args.filter is not None:
        log(f"[yellow]⚠️ --filter only applies to '{STATS_COMMAND}', ignoring it[/yellow]", level="warning")

    config = ConversionConfig(target=target, force=args.force, dry_run=args.dry_run, timeout=args.timeout)
    if config.dry_run:
        console.print("[bold yellow] DRY RUN MODE ENABLED [/bold yellow] - No archives will be written.")

    try:
        reports, invalid = run_conversion(args.paths, config, quiet=args.quiet)
    except ToolNotFoundError as e:
        log(f"[red]❌ CRITICAL: {escape(str(e))}. Please ensure they are installed and in your system's PATH.",
            level="error")
        return 1
    except KeyboardInterrupt:
        log("[red]Got interrupted", level="error")
        return 130

    if config.dry_run:
        failed = [r for r in reports if not r.ok]
        for report in failed:
            log(f"[red]❌ {escape(str(report.error))}", level="error")
        return 1 if failed or invalid else 0

    if not reports and not invalid:
        log("Nothing to do")
        return 0

    print_summary(reports, invalid)
    return 0 if all(r.ok for r in reports) and not invalid else 1
