"""
Media remuxer package.

Pure Python fragmented-MP4 to moov-first MP4/MOV remuxing, without
re-encoding:

- mp4_parser: Box parsing for init segments, movie fragments and finished files
- fragment_index: Per-stream sample index built from movie fragments
- mp4_muxer: MP4 box builder for standard moov-first MP4
- codec_utils: Container compatibility decisions
- remux_pipeline: Two-pass remux of one video and one audio stream
"""

from cachemux.remuxer.remux_pipeline import remux

__all__ = ["remux"]
