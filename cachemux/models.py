"""
Value types passed between the stages of a cache conversion.

All of them are created fresh for one run and never mutated afterwards.
"""

import hashlib
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from cachemux.errors import ConversionError, FragmentCorruptError
from cachemux.schemas import FragmentRecord, VideoInfo


@dataclass(frozen=True)
class CacheEntry:
    """One cached title: the client's identifier and the title directory."""

    title_id: str
    root: Path


@dataclass(frozen=True)
class CacheLayout:
    """Structural view of a title directory, as discovered by the scanner."""

    entry: CacheEntry
    metadata_path: Path
    fragment_dirs: dict[str, Path]
    artwork: tuple[Path, ...] = ()
    other_files: tuple[Path, ...] = ()


@dataclass(frozen=True)
class StreamVariant:
    """One selectable audio or video option of a title."""

    kind: str  # "video" or "audio"
    quality: int  # Higher is preferred
    codec: str  # Normalised tag, e.g. "H264", "AAC"
    fragment_dir: Path
    title_id: str
    declaration_order: int
    fragment_count: Optional[int] = None
    total_size: Optional[int] = None
    fragments: dict[int, FragmentRecord] = field(default_factory=dict, hash=False, compare=False)

    @property
    def label(self) -> str:
        return f"{self.kind}:{self.quality}:{self.codec or '?'}:{self.fragment_dir.name}"


@dataclass(frozen=True)
class SelectedPair:
    video: StreamVariant
    audio: StreamVariant

    def __post_init__(self):
        if self.video.kind != "video" or self.audio.kind != "audio":
            raise ValueError("SelectedPair needs one video and one audio variant")
        if self.video.title_id != self.audio.title_id:
            raise ValueError("SelectedPair variants belong to different titles")


@dataclass(frozen=True)
class ParsedMetadata:
    info: VideoInfo
    variants: dict[str, list[StreamVariant]]


@dataclass(frozen=True)
class Fragment:
    """A contiguous chunk of one stream's data on disk."""

    index: int
    path: Path
    offset: int  # Bytes skipped at the start of the file (client padding)
    length: int  # Payload bytes after the padding
    declared: Optional[FragmentRecord] = None

    def read(self) -> bytes:
        """Read the payload and check it against the declared size and checksum."""
        with open(self.path, "rb") as f:
            f.seek(self.offset)
            data = f.read(self.length)
        if len(data) != self.length:
            raise FragmentCorruptError(
                f"short read: expected {self.length} bytes, got {len(data)}",
                path=self.path,
                fragment_index=self.index,
            )
        if self.declared is not None and self.declared.checksum:
            self._verify_checksum(data, self.declared.checksum)
        return data

    def _verify_checksum(self, data: bytes, checksum: str) -> None:
        algorithm, _, expected = checksum.partition(":")
        try:
            hasher = hashlib.new(algorithm, data)
        except ValueError:
            raise FragmentCorruptError(
                f"unsupported checksum algorithm {algorithm!r}", path=self.path, fragment_index=self.index
            ) from None
        # Extendable-output algorithms (shake_*) report digest_size 0; their length comes from the declared hex
        if hasher.digest_size:
            digest = hasher.hexdigest()
        else:
            digest = hasher.hexdigest(len(expected) // 2)
        if digest != expected:
            raise FragmentCorruptError(
                f"{algorithm} mismatch: declared {expected}, computed {digest}",
                path=self.path,
                fragment_index=self.index,
            )


@dataclass(frozen=True)
class AssembledStream:
    """
    The fragments of one variant, validated and ordered by sequence index.

    Payloads are read lazily, one fragment at a time, so memory use stays
    bounded by the largest fragment rather than the whole title.
    """

    variant: StreamVariant
    fragments: tuple[Fragment, ...]
    init_segment: Optional[Path] = None
    init_offset: int = 0  # Padding before the init segment's first box

    @property
    def total_size(self) -> int:
        return sum(fragment.length for fragment in self.fragments)

    def read_init_segment(self) -> Optional[bytes]:
        if self.init_segment is None:
            return None
        with open(self.init_segment, "rb") as f:
            f.seek(self.init_offset)
            return f.read()

    def iter_payloads(self) -> Iterator[tuple[Fragment, bytes]]:
        for fragment in self.fragments:
            yield fragment, fragment.read()


@dataclass
class ConversionResult:
    """Outcome of one conversion: an output path or a structured error."""

    title_id: str
    output_path: Optional[Path] = None
    error: Optional[ConversionError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.output_path is not None
