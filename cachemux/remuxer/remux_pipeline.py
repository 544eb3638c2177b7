"""
Fragmented video + audio streams -> single moov-first MP4/MOV.

Two passes over the cache:
1. Index every fragment of both streams (headers only) and build the moov.
2. Stream the sample bytes, run by run, into mdat behind it.

Runs are interleaved by decode time so a player reading front to back
never has to jump far between tracks.
"""

import logging
from fractions import Fraction
from pathlib import Path
from typing import BinaryIO

from cachemux.configs import Settings, settings as default_settings
from cachemux.errors import FragmentCorruptError, MuxIncompatibleError
from cachemux.models import AssembledStream
from cachemux.remuxer.codec_utils import check_mux_compatibility
from cachemux.remuxer.fragment_index import Chunk, StreamIndex, index_stream
from cachemux.remuxer.mp4_muxer import MP4Builder
from cachemux.utils.file_utils import atomic_output, copy_range

logger = logging.getLogger(__name__)


def interleave_chunks(indexes: list[StreamIndex]) -> list[tuple[int, Chunk]]:
    """
    Order the runs of all tracks by decode time.

    Returns (position in ``indexes``, chunk) pairs. Ties go to the track
    listed first, so video runs precede audio runs starting at the same time.
    """
    keyed = []
    for position, index in enumerate(indexes):
        for sequence, chunk in enumerate(index.chunks):
            keyed.append((Fraction(chunk.decode_time, index.info.timescale), position, sequence, chunk))
    keyed.sort(key=lambda item: item[:3])
    return [(position, chunk) for _, position, _, chunk in keyed]


class _ChunkCopier:
    """Copies chunk byte ranges, keeping one source file open per track."""

    def __init__(self, out: BinaryIO, block_size: int, title_id: str) -> None:
        self._out = out
        self._block_size = block_size
        self._title_id = title_id
        self._open: dict[int, tuple[Path, BinaryIO]] = {}

    def copy(self, track: int, chunk: Chunk) -> None:
        current = self._open.get(track)
        if current is None or current[0] != chunk.path:
            if current is not None:
                current[1].close()
            current = (chunk.path, open(chunk.path, "rb"))
            self._open[track] = current
        copied = copy_range(current[1], self._out, chunk.file_offset, chunk.length, self._block_size)
        if copied != chunk.length:
            raise FragmentCorruptError(
                f"fragment shrank while remuxing: copied {copied} of {chunk.length} bytes",
                title_id=self._title_id,
                path=chunk.path,
                fragment_index=chunk.fragment_index,
            )

    def close(self) -> None:
        for _, f in self._open.values():
            f.close()
        self._open.clear()


def remux(
    video: AssembledStream,
    audio: AssembledStream,
    destination: Path,
    container: str | None = None,
    settings: Settings | None = None,
) -> Path:
    """
    Write ``video`` and ``audio`` into one seekable file at ``destination``.

    The file is written to a temporary name in the destination directory
    and renamed into place only after every byte has been written, so the
    destination never holds a partial file.

    Raises:
        MuxIncompatibleError: a codec cannot be stored in ``container``.
        FragmentCorruptError: a fragment cannot be parsed or read back.
        UnsupportedVariantError: a stream turns out to be encrypted.
    """
    settings = settings or default_settings
    container = container or settings.output_container
    title_id = video.variant.title_id
    destination = Path(destination)

    indexes = [index_stream(video), index_stream(audio)]
    video_index, audio_index = indexes

    decision = check_mux_compatibility(container, video_index.info.sample_entry, audio_index.info.sample_entry)
    if not decision.compatible:
        raise MuxIncompatibleError(decision.reason, title_id=title_id, path=destination)

    delta = abs(video_index.duration_seconds - audio_index.duration_seconds)
    if delta > 1.0:
        logger.warning(
            "[remux] %s: video lasts %.3fs, audio %.3fs",
            title_id,
            video_index.duration_seconds,
            audio_index.duration_seconds,
        )

    builder = MP4Builder(container)
    track_ids = [builder.add_track(index.info, index.samples) for index in indexes]
    order = interleave_chunks(indexes)
    for position, chunk in order:
        builder.add_chunk(track_ids[position], chunk.length)
    header, mdat_header = builder.finalize()

    logger.info(
        "[remux] Writing %s: %s/%s, %d runs, %d bytes",
        destination,
        video_index.info.sample_entry,
        audio_index.info.sample_entry,
        len(order),
        len(header) + len(mdat_header) + builder.mdat_size,
    )

    with atomic_output(destination) as out:
        out.write(header)
        out.write(mdat_header)
        copier = _ChunkCopier(out, settings.copy_block_size, title_id)
        try:
            for position, chunk in order:
                copier.copy(position, chunk)
        finally:
            copier.close()

    return destination
