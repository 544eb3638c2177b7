STREAM_KINDS = ("video", "audio")

# Named quality tiers accepted in place of a numeric rank
QUALITY_TIERS = {
    "low": 10,
    "medium": 20,
    "high": 30,
    "hires": 40,
    "lossless": 50,
}

# Spellings seen in client metadata and sample entries, mapped to one tag
CODEC_ALIASES = {
    "h264": "H264",
    "h.264": "H264",
    "avc": "H264",
    "avc1": "H264",
    "avc3": "H264",
    "h265": "HEVC",
    "h.265": "HEVC",
    "hevc": "HEVC",
    "hvc1": "HEVC",
    "hev1": "HEVC",
    "av1": "AV1",
    "av01": "AV1",
    "vp9": "VP9",
    "vp09": "VP9",
    "aac": "AAC",
    "mp4a": "AAC",
    "eac3": "EAC3",
    "e-ac-3": "EAC3",
    "ec-3": "EAC3",
    "ac3": "AC3",
    "ac-3": "AC3",
    "flac": "FLAC",
    "opus": "OPUS",
    "alac": "ALAC",
}

# Sample entry types that mark a protected (CENC) stream
ENCRYPTED_SAMPLE_ENTRIES = frozenset({b"encv", b"enca"})

# ASCII digit the client pads fragment files with
PADDING_BYTE = 0x30

OUTPUT_METADATA_FILENAME = "videoInfo.json"


def normalize_codec(codec: str) -> str:
    """Map a codec spelling (``avc1.640028``, ``h.264``, ``mp4a.40.2``) to its canonical tag."""
    if not codec:
        return ""
    name = codec.strip()
    base = name.split(".")[0].lower() if "." in name and not name.lower().startswith("h.") else name.lower()
    return CODEC_ALIASES.get(base, name.upper())
