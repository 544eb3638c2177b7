"""Files that travel with a converted title: cover art and the metadata document."""

import logging
import re
import shutil
from pathlib import Path

from cachemux.const import OUTPUT_METADATA_FILENAME
from cachemux.models import CacheLayout
from cachemux.schemas import VideoInfo

logger = logging.getLogger(__name__)

_UNSAFE_NAME_CHARS = re.compile(r"[/\\\x00]")


def output_folder_name(info: VideoInfo, title_id: str = "") -> str:
    """
    Folder name for a title: "uploader - group - title", or "uploader - title"
    when the title is not part of a group (or the group carries the same name).
    """
    if not info.title:
        return title_id
    if info.group_title and info.group_title != info.title:
        name = f"{info.uname} - {info.group_title} - {info.title}"
    else:
        name = f"{info.uname} - {info.title}"
    name = _UNSAFE_NAME_CHARS.sub("_", name).strip()
    if name in ("", ".", ".."):
        return title_id
    return name


def _resolve_artwork(layout: CacheLayout, declared: str | None) -> Path | None:
    if not declared:
        return None
    path = Path(declared)
    if not path.is_absolute():
        path = layout.entry.root / path
    if path.is_file():
        return path
    # The client sometimes records an absolute path from another device; fall back to the local copy
    local = layout.entry.root / path.name
    return local if local.is_file() else None


def export_extras(layout: CacheLayout, info: VideoInfo, target_dir: Path) -> list[Path]:
    """
    Copy cover art and the metadata document next to the converted file.

    Returns the paths written. A missing cover is logged and skipped.
    """
    target_dir = Path(target_dir)
    written = []

    artwork = []
    for label, declared in (("cover", info.cover_path), ("group cover", info.group_cover_path)):
        source = _resolve_artwork(layout, declared)
        if source is None:
            if declared:
                logger.warning("Cannot find %s art %s for %s", label, declared, layout.entry.title_id)
            continue
        if source not in artwork:
            artwork.append(source)
    if not artwork:
        artwork = list(layout.artwork)

    for source in artwork:
        target = target_dir / source.name
        shutil.copyfile(source, target)
        written.append(target)
        logger.info("Copied %s", source.name)

    target = target_dir / OUTPUT_METADATA_FILENAME
    shutil.copyfile(layout.metadata_path, target)
    written.append(target)
    logger.debug("Copied metadata to %s", target)
    return written
