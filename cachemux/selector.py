import logging

from cachemux.configs import SelectionPolicy, settings
from cachemux.errors import IncompatiblePairError, NoPlayableStreamError
from cachemux.models import SelectedPair, StreamVariant

logger = logging.getLogger(__name__)


def rank_key(variant: StreamVariant, codec_priority: list[str]) -> tuple[int, int, int]:
    """
    Sort key where the smallest key is the preferred variant.

    Order: highest quality, then the codec listed first in the priority list
    (unlisted codecs rank after all listed ones), then declaration order.
    """
    try:
        codec_rank = codec_priority.index(variant.codec)
    except ValueError:
        codec_rank = len(codec_priority)
    return -variant.quality, codec_rank, variant.declaration_order


def pick_best(variants: list[StreamVariant], codec_priority: list[str]) -> StreamVariant:
    return min(variants, key=lambda v: rank_key(v, codec_priority))


def select_streams(variants: dict[str, list[StreamVariant]], policy: SelectionPolicy | None = None) -> SelectedPair:
    """
    Choose one video and one audio variant.

    Pure function of its inputs: the same variants and policy always give
    the same pair.
    """
    policy = policy or settings.selection
    chosen = {}
    for kind in ("video", "audio"):
        candidates = variants.get(kind) or []
        if not candidates:
            raise NoPlayableStreamError(f"no {kind} variant to select from")
        chosen[kind] = pick_best(candidates, policy.codec_priority(kind))

    video, audio = chosen["video"], chosen["audio"]
    if (video.codec, audio.codec) in policy.forbidden_pairs:
        raise IncompatiblePairError(
            f"codec pair {video.codec}+{audio.codec} is forbidden by policy",
            title_id=video.title_id,
            path=video.fragment_dir,
        )

    logger.info("Selected video %s and audio %s for %s", video.label, audio.label, video.title_id)
    return SelectedPair(video=video, audio=audio)
