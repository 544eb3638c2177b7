import logging
import re
from pathlib import Path

from cachemux.configs import Settings, settings as default_settings
from cachemux.errors import (
    FragmentCorruptError,
    FragmentDuplicateError,
    FragmentGapError,
    MalformedLayoutError,
)
from cachemux.models import AssembledStream, Fragment, StreamVariant
from cachemux.utils.file_utils import padding_length

logger = logging.getLogger(__name__)

# Sequence index is the trailing run of digits in the file stem: "3.m4s", "seg-003.m4s"
_INDEX_PATTERN = re.compile(r"(\d+)$")


def parse_fragment_index(path: Path) -> int | None:
    match = _INDEX_PATTERN.search(path.stem)
    return int(match.group(1)) if match else None


def _list_fragment_files(variant: StreamVariant, settings: Settings) -> tuple[list[tuple[int, Path]], Path | None]:
    init_names = {name.lower() for name in settings.init_segment_names}
    extension = settings.fragment_extension.lower()
    init_segment = None
    indexed: list[tuple[int, Path]] = []

    for path in sorted(variant.fragment_dir.iterdir()):
        if not path.is_file():
            logger.debug("Ignoring non-file entry %s", path)
            continue
        if path.name.lower() in init_names:
            init_segment = path
            continue
        if path.suffix.lower() != extension:
            logger.debug("Ignoring %s: not a %s fragment", path, extension)
            continue
        index = parse_fragment_index(path)
        if index is None:
            raise MalformedLayoutError(
                "fragment file name carries no sequence index", title_id=variant.title_id, path=path
            )
        indexed.append((index, path))

    indexed.sort(key=lambda item: (item[0], item[1].name))
    return indexed, init_segment


def _check_sequence(variant: StreamVariant, indexed: list[tuple[int, Path]]) -> None:
    """Require the indices to be exactly 0..N-1, with N the declared count when known."""
    seen: dict[int, Path] = {}
    for index, path in indexed:
        if index in seen:
            raise FragmentDuplicateError(
                f"sequence index {index} used by {seen[index].name} and {path.name}",
                title_id=variant.title_id,
                path=path,
                fragment_index=index,
            )
        seen[index] = path

    expected = len(indexed) if variant.fragment_count is None else max(variant.fragment_count, len(indexed))
    for index in range(expected):
        if index not in seen:
            raise FragmentGapError(
                f"fragment {index} is missing ({len(seen)} present)",
                title_id=variant.title_id,
                path=variant.fragment_dir,
                fragment_index=index,
            )

    if variant.fragment_count is not None and len(indexed) > variant.fragment_count:
        index, path = indexed[variant.fragment_count]
        raise FragmentCorruptError(
            f"found {len(indexed)} fragments but metadata declares {variant.fragment_count}",
            title_id=variant.title_id,
            path=path,
            fragment_index=index,
        )

    if not indexed:
        raise FragmentGapError(
            "variant directory holds no fragments",
            title_id=variant.title_id,
            path=variant.fragment_dir,
            fragment_index=0,
        )


def assemble_stream(variant: StreamVariant, settings: Settings | None = None) -> AssembledStream:
    """
    Enumerate and validate the fragments of one variant.

    Sizes are checked against the metadata up front; declared checksums are
    checked when each payload is read, so a corrupt fragment is reported
    before any of its bytes reach the output.

    Raises:
        FragmentGapError: an index in 0..N-1 is missing.
        FragmentDuplicateError: two files share an index.
        FragmentCorruptError: sizes or counts disagree with the metadata.
        MalformedLayoutError: a fragment file name has no index.
    """
    settings = settings or default_settings
    indexed, init_segment = _list_fragment_files(variant, settings)
    _check_sequence(variant, indexed)

    fragments = []
    for index, path in indexed:
        offset = padding_length(path, settings.fragment_padding)
        length = path.stat().st_size - offset
        declared = variant.fragments.get(index)
        if declared is not None and declared.size is not None and declared.size != length:
            raise FragmentCorruptError(
                f"size mismatch: declared {declared.size} bytes, found {length}",
                title_id=variant.title_id,
                path=path,
                fragment_index=index,
            )
        fragments.append(Fragment(index=index, path=path, offset=offset, length=length, declared=declared))

    stream = AssembledStream(
        variant=variant,
        fragments=tuple(fragments),
        init_segment=init_segment,
        init_offset=padding_length(init_segment, settings.fragment_padding) if init_segment else 0,
    )
    if variant.total_size is not None and variant.total_size != stream.total_size:
        raise FragmentCorruptError(
            f"total size mismatch: declared {variant.total_size} bytes, found {stream.total_size}",
            title_id=variant.title_id,
            path=variant.fragment_dir,
        )

    logger.info(
        "Assembled %s: %d fragments, %d bytes%s",
        variant.label,
        len(fragments),
        stream.total_size,
        f", init segment {init_segment.name}" if init_segment else "",
    )
    return stream
