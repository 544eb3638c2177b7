import logging
from pathlib import Path

from cachemux.assembler import assemble_stream
from cachemux.configs import Settings, settings as default_settings
from cachemux.errors import ConversionError, DestinationExistsError, NotFoundError
from cachemux.metadata import read_metadata
from cachemux.models import ConversionResult
from cachemux.remuxer import remux
from cachemux.remuxer.mp4_parser import BoxError, probe_mp4
from cachemux.scanner import check_title_id, scan_title
from cachemux.selector import select_streams
from cachemux.utils.file_utils import destination_lock

logger = logging.getLogger(__name__)


def output_path_for(title_id: str, destination_dir: Path, container: str) -> Path:
    check_title_id(title_id)
    return Path(destination_dir) / f"{title_id}.{container}"


def _log_summary(title_id: str, destination: Path) -> None:
    try:
        index = probe_mp4(destination)
    except BoxError as e:
        logger.warning("Could not read back %s: %s", destination, e)
        return
    logger.info(
        "Converted %s -> %s (%s+%s, %.1fs, faststart=%s)",
        title_id,
        destination,
        index.video_codec,
        index.audio_codec,
        index.duration_ms / 1000.0,
        index.is_faststart,
    )


def _convert(cache_root: Path, title_id: str, destination_dir: Path, settings: Settings) -> Path:
    check_title_id(title_id)
    destination_dir = Path(destination_dir)
    if not destination_dir.is_dir():
        raise NotFoundError("destination directory does not exist", title_id=title_id, path=destination_dir)

    layout = scan_title(cache_root, title_id, settings)
    metadata = read_metadata(layout, settings)
    pair = select_streams(metadata.variants, settings.selection)

    video = assemble_stream(pair.video, settings)
    audio = assemble_stream(pair.audio, settings)

    destination = output_path_for(title_id, destination_dir, settings.output_container)
    with destination_lock(destination, title_id):
        if destination.exists() and not settings.overwrite:
            raise DestinationExistsError("output file already exists", title_id=title_id, path=destination)
        remux(video, audio, destination, settings.output_container, settings)
        _log_summary(title_id, destination)
    return destination


def convert(
    cache_root: Path, title_id: str, destination_dir: Path, settings: Settings | None = None
) -> ConversionResult:
    """
    Convert one cached title into ``<destination_dir>/<title_id>.<container>``.

    Structural problems with the cache or the destination are returned in
    the result as a ``ConversionError``; nothing is written in that case.
    Operating-system I/O errors (permissions, full disk) propagate.
    """
    settings = settings or default_settings
    try:
        output_path = _convert(Path(cache_root), title_id, destination_dir, settings)
    except ConversionError as e:
        if e.title_id is None:
            e.title_id = title_id
        logger.error("Conversion of %s failed: %s", title_id, e)
        return ConversionResult(title_id=title_id, error=e)
    return ConversionResult(title_id=title_id, output_path=output_path)
