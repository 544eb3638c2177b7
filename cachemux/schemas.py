from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, field_validator

from cachemux.const import QUALITY_TIERS


class GenericRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class FragmentRecord(GenericRecord):
    index: StrictInt = Field(..., ge=0, description="0-based sequence index of the fragment.")
    size: Optional[StrictInt] = Field(None, ge=0, description="Payload size in bytes, padding excluded.")
    checksum: Optional[str] = Field(None, description="Payload digest as '<algorithm>:<hex>'.")
    duration: Optional[float] = Field(None, ge=0, description="Playback duration of the fragment in seconds.")

    @field_validator("checksum")
    @classmethod
    def _check_checksum(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        algorithm, sep, digest = value.partition(":")
        if not sep or not algorithm or not digest:
            raise ValueError("checksum must look like '<algorithm>:<hex digest>'")
        return f"{algorithm.lower()}:{digest.lower()}"


class StreamRecord(GenericRecord):
    kind: Literal["video", "audio"] = Field(..., description="Stream kind.")
    quality: Union[StrictInt, StrictStr] = Field(..., description="Quality rank or named tier.")
    path: StrictStr = Field(..., min_length=1, description="Fragment directory, relative to the title directory.")
    codec: str = Field("", description="Codec tag as written by the client.")
    fragment_count: Optional[StrictInt] = Field(None, ge=0, alias="fragmentCount")
    total_size: Optional[StrictInt] = Field(None, ge=0, alias="totalSize")
    encrypted: bool = False
    drm: Optional[Union[str, list, dict]] = None
    fragments: list[FragmentRecord] = Field(default_factory=list)

    @field_validator("quality")
    @classmethod
    def _check_quality(cls, value: Union[int, str]) -> Union[int, str]:
        if isinstance(value, str) and value.strip().lower() not in QUALITY_TIERS:
            raise ValueError(f"unknown quality tier {value!r}")
        return value

    @property
    def quality_rank(self) -> int:
        if isinstance(self.quality, str):
            return QUALITY_TIERS[self.quality.strip().lower()]
        return self.quality

    @property
    def is_protected(self) -> bool:
        return self.encrypted or bool(self.drm)


class VideoInfo(GenericRecord):
    """Title description the client keeps next to the cached streams."""

    uname: str = ""
    title: str = ""
    group_title: str = Field("", alias="groupTitle")
    pubdate: int = 0
    update_time: int = Field(0, alias="updateTime")
    total_size: int = Field(0, alias="totalSize")
    item_id: Optional[int] = Field(None, alias="itemId")
    cover_path: Optional[str] = Field(None, alias="coverPath")
    group_cover_path: Optional[str] = Field(None, alias="groupCoverPath")

    def __str__(self):
        return f"{self.item_id} Title: {self.title}, UP: {self.uname}, size {self.total_size}"
