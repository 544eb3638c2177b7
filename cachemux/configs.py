from typing import List, Literal, Tuple

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from cachemux.const import normalize_codec


class SelectionPolicy(BaseModel):
    """Stream selection policy"""

    video_codec_priority: List[str] = Field(
        default_factory=lambda: ["H264", "HEVC", "AV1", "VP9"],
        description="Video codecs in order of preference when quality ranks tie.",
    )
    audio_codec_priority: List[str] = Field(
        default_factory=lambda: ["AAC", "EAC3", "AC3", "FLAC", "OPUS"],
        description="Audio codecs in order of preference when quality ranks tie.",
    )
    forbidden_pairs: List[Tuple[str, str]] = Field(
        default_factory=list, description="(video codec, audio codec) combinations that must never be selected."
    )
    unsupported_variants: Literal["skip", "abort"] = Field(
        "skip", description="Skip encrypted/DRM variants, or abort the title when one is declared."
    )

    @field_validator("video_codec_priority", "audio_codec_priority")
    @classmethod
    def _normalize_priority(cls, value: List[str]) -> List[str]:
        return [normalize_codec(codec) for codec in value]

    @field_validator("forbidden_pairs")
    @classmethod
    def _normalize_pairs(cls, value: List[Tuple[str, str]]) -> List[Tuple[str, str]]:
        return [(normalize_codec(video), normalize_codec(audio)) for video, audio in value]

    def codec_priority(self, kind: str) -> List[str]:
        return self.video_codec_priority if kind == "video" else self.audio_codec_priority


class Settings(BaseSettings):
    log_level: str = "INFO"  # The logging level used by the command line front end.
    metadata_filename: str = ".videoInfo"  # Name of the per-title metadata file written by the client.
    fragment_extension: str = ".m4s"  # Extension of fragment files inside a variant directory.
    init_segment_names: List[str] = ["init.m4s", "init.mp4"]  # Names of stand-alone init segments.
    fragment_padding: int = 9  # Length of the "000000000" prefix the client writes before each fragment.
    output_container: Literal["mp4", "mov"] = "mp4"  # Container written by the remuxer.
    overwrite: bool = True  # Replace an existing output file instead of failing with DestinationExists.
    copy_block_size: int = 1024 * 1024  # Bytes copied per read when streaming samples into the output.
    selection: SelectionPolicy = Field(default_factory=SelectionPolicy)  # Stream selection policy.

    class Config:
        env_file = ".env"
        env_nested_delimiter = "__"
        extra = "ignore"


settings = Settings()
