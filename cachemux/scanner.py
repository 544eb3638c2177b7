import logging
from pathlib import Path

from cachemux.configs import Settings, settings as default_settings
from cachemux.errors import MalformedLayoutError, NotFoundError
from cachemux.models import CacheEntry, CacheLayout

logger = logging.getLogger(__name__)

_ARTWORK_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".webp"})


def list_titles(cache_root: Path) -> list[str]:
    """Return the identifiers of every title directory below ``cache_root``, sorted."""
    cache_root = Path(cache_root)
    if not cache_root.is_dir():
        raise NotFoundError("cache root does not exist", path=cache_root)
    return sorted(p.name for p in cache_root.iterdir() if p.is_dir() and not p.name.startswith("."))


def check_title_id(title_id: str) -> None:
    """Reject identifiers that are not one plain directory name, such as ``../x`` or absolute paths."""
    if title_id in ("", ".", "..") or Path(title_id).name != title_id or "\\" in title_id:
        raise NotFoundError(f"title id {title_id!r} is not a single directory name", title_id=title_id)


def scan_title(cache_root: Path, title_id: str, settings: Settings | None = None) -> CacheLayout:
    """
    Discover the on-disk layout of one cached title.

    Only structure is inspected here: the metadata file must exist and be a
    regular file, and at least one variant directory must be present. File
    contents are left to the metadata reader and the fragment assembler.

    Raises:
        NotFoundError: the title directory does not exist or the
            identifier is not a single directory name.
        MalformedLayoutError: the title path, metadata file or variant
            directories are not what the client writes.
    """
    settings = settings or default_settings
    check_title_id(title_id)
    title_dir = Path(cache_root) / title_id

    if not title_dir.exists():
        raise NotFoundError("title directory does not exist", title_id=title_id, path=title_dir)
    if not title_dir.is_dir():
        raise MalformedLayoutError("title path is not a directory", title_id=title_id, path=title_dir)

    metadata_path = title_dir / settings.metadata_filename
    if not metadata_path.exists():
        raise MalformedLayoutError("metadata file is missing", title_id=title_id, path=metadata_path)
    if not metadata_path.is_file():
        raise MalformedLayoutError("metadata path is not a file", title_id=title_id, path=metadata_path)

    fragment_dirs: dict[str, Path] = {}
    artwork: list[Path] = []
    other_files: list[Path] = []

    for child in sorted(title_dir.iterdir()):
        if child == metadata_path:
            continue
        if child.is_dir():
            fragment_dirs[child.name] = child
        elif child.suffix.lower() in _ARTWORK_EXTENSIONS:
            artwork.append(child)
        else:
            other_files.append(child)

    if not fragment_dirs:
        raise MalformedLayoutError("no variant directories found", title_id=title_id, path=title_dir)

    logger.debug(
        "Scanned %s: %d variant dirs, %d artwork, %d other files",
        title_dir,
        len(fragment_dirs),
        len(artwork),
        len(other_files),
    )
    return CacheLayout(
        entry=CacheEntry(title_id=title_id, root=title_dir),
        metadata_path=metadata_path,
        fragment_dirs=fragment_dirs,
        artwork=tuple(artwork),
        other_files=tuple(other_files),
    )
