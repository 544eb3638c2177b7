from pathlib import Path
from typing import Optional, Union


class ConversionError(Exception):
    """Base exception for every structural failure of a cache conversion."""

    kind = "ConversionError"

    def __init__(
        self,
        message: str,
        *,
        title_id: Optional[str] = None,
        path: Optional[Union[str, Path]] = None,
        fragment_index: Optional[int] = None,
    ):
        self.message = message
        self.title_id = title_id
        self.path = Path(path) if path is not None else None
        self.fragment_index = fragment_index
        super().__init__(message)

    def __str__(self):
        parts = [f"{self.kind}: {self.message}"]
        if self.title_id is not None:
            parts.append(f"title={self.title_id}")
        if self.path is not None:
            parts.append(f"path={self.path}")
        if self.fragment_index is not None:
            parts.append(f"fragment={self.fragment_index}")
        return " ".join(parts)


class NotFoundError(ConversionError):
    kind = "NotFound"


class MalformedLayoutError(ConversionError):
    kind = "MalformedLayout"


class MalformedMetadataError(ConversionError):
    kind = "MalformedMetadata"


class UnsupportedVariantError(ConversionError):
    """Raised for encrypted or DRM-marked streams the remuxer cannot read."""

    kind = "UnsupportedVariant"


class NoPlayableStreamError(ConversionError):
    kind = "NoPlayableStream"


class IncompatiblePairError(ConversionError):
    kind = "IncompatiblePair"


class FragmentGapError(ConversionError):
    kind = "FragmentGap"


class FragmentDuplicateError(ConversionError):
    kind = "FragmentDuplicate"


class FragmentCorruptError(ConversionError):
    kind = "FragmentCorrupt"


class MuxIncompatibleError(ConversionError):
    kind = "MuxIncompatible"


class DestinationBusyError(ConversionError):
    kind = "DestinationBusy"


class DestinationExistsError(ConversionError):
    kind = "DestinationExists"
