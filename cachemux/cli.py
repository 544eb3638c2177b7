import argparse
import logging
import os
import shutil
import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from cachemux.configs import Settings, settings as default_settings
from cachemux.converter import convert
from cachemux.errors import ConversionError
from cachemux.extras import export_extras, output_folder_name
from cachemux.metadata import read_video_info
from cachemux.scanner import list_titles, scan_title

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_DIR = Path("Movies") / "bilibili"
DEFAULT_TARGET_DIR = Path("Movies") / "output"

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cachemux", description="Converts cached fragmented downloads into single MP4/MOV files."
    )
    parser.add_argument("--source", type=Path, help="Cache root directory (default: $HOME/Movies/bilibili)")
    parser.add_argument("--target", type=Path, help="Output root directory (default: $HOME/Movies/output)")
    parser.add_argument(
        "--title", action="append", dest="titles", help="Title ID to convert; repeat for several (default: all)"
    )
    parser.add_argument(
        "--autoremove", action="store_true", help="Remove the cached title after a successful conversion"
    )
    parser.add_argument("--no-overwrite", action="store_true", help="Fail instead of replacing existing output files")
    parser.add_argument("--container", choices=["mp4", "mov"], help="Output container")
    parser.add_argument("--jobs", type=int, default=1, help="Number of titles converted concurrently")
    parser.add_argument("--log-level", help="Logging level (default from settings)")
    return parser


def _default_dir(explicit: Path | None, relative: Path) -> Path | None:
    if explicit is not None:
        return explicit
    home = os.environ.get("HOME")
    if not home:
        return None
    return Path(home) / relative


def _remove_empty_folders(target: Path, existing: set[Path]) -> None:
    """Remove per-title folders created during this run that ended up empty."""
    for folder in sorted(set(target.iterdir()) - existing):
        if folder.is_dir() and not any(folder.iterdir()):
            logger.debug("Removing empty folder %s", folder)
            folder.rmdir()


def process_title(source: Path, target: Path, title_id: str, settings: Settings, autoremove: bool = False) -> bool:
    """Convert one title into its own folder below ``target``. Returns True on success."""
    try:
        layout = scan_title(source, title_id, settings)
        info = read_video_info(layout)
        logger.info("Video information: %s", info)
        title_dir = target / output_folder_name(info, title_id)
        title_dir.mkdir(parents=True, exist_ok=True)

        result = convert(source, title_id, title_dir, settings)
        if not result.ok:
            return False
        export_extras(layout, info, title_dir)
    except (ConversionError, OSError) as e:
        logger.error("Failed to process %s: %s", title_id, e)
        return False

    logger.info("Converted %s -> %s", title_id, result.output_path)
    if autoremove:
        try:
            shutil.rmtree(layout.entry.root)
            logger.info("Removed source directory %s", layout.entry.root)
        except OSError as e:
            logger.error("Failed to remove source directory %s: %s", layout.entry.root, e)
    return True


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    settings = default_settings
    overrides = {}
    if args.container:
        overrides["output_container"] = args.container
    if args.no_overwrite:
        overrides["overwrite"] = False
    if args.log_level:
        overrides["log_level"] = args.log_level.upper()
    if overrides:
        settings = settings.model_copy(update=overrides)

    logging.basicConfig(level=settings.log_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    source = _default_dir(args.source, DEFAULT_SOURCE_DIR)
    target = _default_dir(args.target, DEFAULT_TARGET_DIR)
    if source is None or target is None:
        logger.error("HOME is not set; pass --source and --target explicitly")
        return EXIT_USAGE
    if args.jobs < 1:
        logger.error("--jobs must be at least 1")
        return EXIT_USAGE

    logger.info("Source directory: %s", source)
    logger.info("Target directory: %s", target)
    logger.debug("autoremove: %s, overwrite: %s", args.autoremove, settings.overwrite)

    try:
        titles = args.titles or list_titles(source)
    except (ConversionError, OSError) as e:
        logger.error("Cannot read source directory: %s", e)
        return EXIT_USAGE
    target.mkdir(parents=True, exist_ok=True)
    existing = set(target.iterdir())

    if args.jobs == 1:
        outcomes = [process_title(source, target, title_id, settings, args.autoremove) for title_id in titles]
    else:
        with ThreadPoolExecutor(max_workers=args.jobs) as executor:
            outcomes = list(
                executor.map(
                    lambda title_id: process_title(source, target, title_id, settings, args.autoremove), titles
                )
            )
    _remove_empty_folders(target, existing)

    failed = outcomes.count(False)
    logger.info("Processed %d titles, %d failed", len(outcomes), failed)
    return EXIT_FAILED if failed else EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
