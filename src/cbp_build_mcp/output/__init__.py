"""Process output handling: decoding, line reassembly and terminal rendering."""

from .decoder import CodecDecoder, Decoder, StreamDecoder
from .lines import LineBuffer
from .render import (
    OutputRenderer,
    extract_source_label,
    is_progress_line,
    normalize_line_endings,
    rewrite_paths,
)

__all__ = [
    "Decoder",
    "CodecDecoder",
    "StreamDecoder",
    "LineBuffer",
    "OutputRenderer",
    "extract_source_label",
    "is_progress_line",
    "normalize_line_endings",
    "rewrite_paths",
]
