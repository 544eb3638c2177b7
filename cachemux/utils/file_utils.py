import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Iterator

from cachemux.const import PADDING_BYTE
from cachemux.errors import DestinationBusyError

logger = logging.getLogger(__name__)


def padding_length(path: Path, padding: int) -> int:
    """
    Return how many leading bytes of a cached file are client padding.

    The client prefixes media files with a run of ASCII ``0`` characters.
    The prefix is only treated as padding when all ``padding`` bytes match,
    so unpadded files are read from offset 0.
    """
    if padding <= 0:
        return 0
    with open(path, "rb") as f:
        head = f.read(padding)
    if len(head) == padding and all(b == PADDING_BYTE for b in head):
        return padding
    return 0


def copy_range(src: BinaryIO, dst: BinaryIO, offset: int, length: int, block_size: int) -> int:
    """Copy ``length`` bytes starting at ``offset`` of ``src`` into ``dst``. Returns bytes copied."""
    src.seek(offset)
    remaining = length
    while remaining > 0:
        block = src.read(min(block_size, remaining))
        if not block:
            break
        dst.write(block)
        remaining -= len(block)
    return length - remaining


@contextmanager
def atomic_output(destination: Path) -> Iterator[BinaryIO]:
    """
    Yield a temporary file next to ``destination`` and move it into place on success.

    The temporary file lives in the destination directory so the final
    ``os.replace`` is a same-filesystem rename. If the block raises, the
    temporary file is removed and the destination is left untouched.
    """
    fd, tmp_name = tempfile.mkstemp(prefix=f".{destination.name}.", suffix=".part", dir=destination.parent)
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            yield f
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, destination)
    except BaseException:
        try:
            tmp_path.unlink()
        except FileNotFoundError:
            pass
        raise
    logger.debug("Moved %s into place at %s", tmp_path.name, destination)


@contextmanager
def destination_lock(destination: Path, title_id: str | None = None) -> Iterator[Path]:
    """
    Hold an exclusive lock file for ``destination`` while the block runs.

    A second run targeting the same destination fails immediately with
    ``DestinationBusyError`` instead of waiting.
    """
    lock_path = destination.with_name(f".{destination.name}.lock")
    try:
        fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
    except FileExistsError:
        raise DestinationBusyError(
            "another conversion is writing this destination", title_id=title_id, path=destination
        ) from None
    try:
        os.write(fd, str(os.getpid()).encode("ascii"))
        os.close(fd)
        yield lock_path
    finally:
        try:
            lock_path.unlink()
        except FileNotFoundError:
            logger.warning("Lock file %s disappeared before release", lock_path)
