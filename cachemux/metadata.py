import json
import logging

from pydantic import ValidationError

from cachemux.configs import Settings, settings as default_settings
from cachemux.const import STREAM_KINDS, normalize_codec
from cachemux.errors import (
    MalformedLayoutError,
    MalformedMetadataError,
    NoPlayableStreamError,
    UnsupportedVariantError,
)
from cachemux.models import CacheLayout, ParsedMetadata, StreamVariant
from cachemux.schemas import StreamRecord, VideoInfo

logger = logging.getLogger(__name__)


def _load_document(layout: CacheLayout) -> dict:
    title_id = layout.entry.title_id
    try:
        raw = layout.metadata_path.read_bytes()
        document = json.loads(raw.decode("utf-8"))
    except UnicodeDecodeError as e:
        raise MalformedMetadataError(f"metadata is not UTF-8: {e}", title_id=title_id, path=layout.metadata_path)
    except json.JSONDecodeError as e:
        raise MalformedMetadataError(f"invalid JSON: {e}", title_id=title_id, path=layout.metadata_path)

    if not isinstance(document, dict):
        raise MalformedMetadataError("metadata must be a JSON object", title_id=title_id, path=layout.metadata_path)
    return document


def _parse_info(document: dict, layout: CacheLayout) -> VideoInfo:
    # Title information is descriptive only, so a bad field never blocks a conversion.
    try:
        return VideoInfo.model_validate(document)
    except ValidationError as e:
        logger.warning("Ignoring unreadable title info in %s: %s", layout.metadata_path, e.errors()[0]["msg"])
        return VideoInfo()


def _parse_stream(record: object, position: int, layout: CacheLayout) -> StreamRecord:
    try:
        return StreamRecord.model_validate(record)
    except ValidationError as e:
        error = e.errors()[0]
        location = ".".join(str(part) for part in error["loc"])
        raise MalformedMetadataError(
            f"streams[{position}].{location}: {error['msg']}",
            title_id=layout.entry.title_id,
            path=layout.metadata_path,
        ) from None


def _to_variant(stream: StreamRecord, position: int, layout: CacheLayout) -> StreamVariant:
    title_id = layout.entry.title_id
    fragments = {}
    for record in stream.fragments:
        if record.index in fragments:
            raise MalformedMetadataError(
                f"streams[{position}] declares fragment {record.index} twice",
                title_id=title_id,
                path=layout.metadata_path,
                fragment_index=record.index,
            )
        fragments[record.index] = record

    fragment_dir = layout.fragment_dirs.get(stream.path)
    if fragment_dir is None:
        raise MalformedLayoutError(
            f"variant directory {stream.path!r} referenced by streams[{position}] is missing",
            title_id=title_id,
            path=layout.entry.root / stream.path,
        )

    return StreamVariant(
        kind=stream.kind,
        quality=stream.quality_rank,
        codec=normalize_codec(stream.codec),
        fragment_dir=fragment_dir,
        title_id=title_id,
        declaration_order=position,
        fragment_count=stream.fragment_count,
        total_size=stream.total_size,
        fragments=fragments,
    )


def read_metadata(layout: CacheLayout, settings: Settings | None = None) -> ParsedMetadata:
    """
    Parse a title's metadata file into its playable stream variants.

    Unknown fields are ignored. Encrypted or DRM-marked variants are skipped
    (or abort the title when the selection policy says so); if either kind
    ends up empty the title has nothing to convert.

    Raises:
        MalformedMetadataError: the document or a stream record is malformed.
        MalformedLayoutError: a playable variant points at a missing directory.
        UnsupportedVariantError: a protected variant under the "abort" policy.
        NoPlayableStreamError: no playable video or no playable audio variant.
    """
    settings = settings or default_settings
    title_id = layout.entry.title_id
    document = _load_document(layout)

    streams = document.get("streams")
    if not isinstance(streams, list):
        raise MalformedMetadataError("'streams' must be a list", title_id=title_id, path=layout.metadata_path)

    variants: dict[str, list[StreamVariant]] = {kind: [] for kind in STREAM_KINDS}
    for position, record in enumerate(streams):
        stream = _parse_stream(record, position, layout)
        if stream.is_protected:
            error = UnsupportedVariantError(
                f"{stream.kind} variant {stream.path!r} is encrypted",
                title_id=title_id,
                path=layout.entry.root / stream.path,
            )
            if settings.selection.unsupported_variants == "abort":
                raise error
            logger.warning("Skipping %s", error)
            continue
        variants[stream.kind].append(_to_variant(stream, position, layout))

    for kind in STREAM_KINDS:
        if not variants[kind]:
            raise NoPlayableStreamError(f"no playable {kind} variant", title_id=title_id, path=layout.metadata_path)

    logger.debug(
        "Title %s: %d video and %d audio variants",
        title_id,
        len(variants["video"]),
        len(variants["audio"]),
    )
    return ParsedMetadata(info=_parse_info(document, layout), variants=variants)


def read_video_info(layout: CacheLayout) -> VideoInfo:
    """Read only the descriptive title fields, without validating the streams."""
    return _parse_info(_load_document(layout), layout)
