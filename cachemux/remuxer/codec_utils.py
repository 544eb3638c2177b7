"""
Container compatibility decisions for the remuxer.

Decides whether the sample entries carried by the cached streams can be
placed, unchanged, into a given output container.
"""

import logging

from cachemux.const import normalize_codec

logger = logging.getLogger(__name__)

# ────────────────────────────────────────────────────────────────────
# ISO base media (MP4) sample entries accepted without re-encoding
# ────────────────────────────────────────────────────────────────────
MP4_VIDEO_ENTRIES = frozenset(
    {
        "avc1",  # H.264, parameter sets in avcC
        "avc3",  # H.264, in-band parameter sets
        "hvc1",  # HEVC, parameter sets in hvcC
        "hev1",  # HEVC, in-band parameter sets
        "dvh1",  # Dolby Vision (HEVC based)
        "dvhe",
        "av01",  # AV1
        "vp09",  # VP9 in ISO BMFF
        "mp4v",  # MPEG-4 Part 2
    }
)

MP4_AUDIO_ENTRIES = frozenset(
    {
        "mp4a",  # AAC / MP3 via esds
        "ac-3",
        "ec-3",
        "Opus",
        "fLaC",
        "alac",
    }
)

# ────────────────────────────────────────────────────────────────────
# QuickTime (MOV) sample entries accepted without re-encoding
# ────────────────────────────────────────────────────────────────────
MOV_VIDEO_ENTRIES = frozenset(
    {
        "avc1",
        "avc3",
        "hvc1",
        "hev1",
        "dvh1",
        "dvhe",
        "mp4v",
    }
)

MOV_AUDIO_ENTRIES = frozenset(
    {
        "mp4a",
        "ac-3",
        "ec-3",
        "alac",
    }
)

CONTAINER_POLICIES = {
    "mp4": (MP4_VIDEO_ENTRIES, MP4_AUDIO_ENTRIES),
    "mov": (MOV_VIDEO_ENTRIES, MOV_AUDIO_ENTRIES),
}

# ftyp major brand and compatible brands per container
CONTAINER_BRANDS = {
    "mp4": (b"isom", 0x200, (b"isom", b"iso2", b"avc1", b"mp41")),
    "mov": (b"qt  ", 0x200, (b"qt  ",)),
}


class MuxDecision:
    """Result of checking a video/audio sample entry pair against a container."""

    __slots__ = ("container", "video_entry", "audio_entry", "video_ok", "audio_ok")

    def __init__(self, container: str, video_entry: str, audio_entry: str) -> None:
        if container not in CONTAINER_POLICIES:
            raise ValueError(f"Unsupported output container: {container}")
        video_entries, audio_entries = CONTAINER_POLICIES[container]
        self.container = container
        self.video_entry = video_entry
        self.audio_entry = audio_entry
        self.video_ok = video_entry in video_entries
        self.audio_ok = audio_entry in audio_entries

    @property
    def compatible(self) -> bool:
        return self.video_ok and self.audio_ok

    @property
    def reason(self) -> str:
        problems = []
        if not self.video_ok:
            problems.append(f"video sample entry {self.video_entry!r} ({normalize_codec(self.video_entry)})")
        if not self.audio_ok:
            problems.append(f"audio sample entry {self.audio_entry!r} ({normalize_codec(self.audio_entry)})")
        if not problems:
            return "compatible"
        return f"{' and '.join(problems)} cannot be stored in {self.container.upper()}"

    def __repr__(self) -> str:
        return f"MuxDecision({self.container}: {self.video_entry}+{self.audio_entry} -> {self.reason})"


def check_mux_compatibility(container: str, video_entry: str, audio_entry: str) -> MuxDecision:
    decision = MuxDecision(container, video_entry, audio_entry)
    logger.debug("[codec_utils] %r", decision)
    return decision
