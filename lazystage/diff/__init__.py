"""Diff model, parser, row mapping and buffer surfaces.

Raw git diff text flows ``parser -> model -> line_map -> buffers``; sources
decide which git command produces the text.
"""

from __future__ import annotations

from .buffers import BufferPair, BufferTriple, TextSurface
from .inline import InlineRanges, inline_ranges
from .line_map import (
    ROW_ADD,
    ROW_CONTEXT,
    ROW_DELETE,
    ROW_FILLER,
    ROW_HEADER,
    LineMap,
    LineMapEntry,
    build_line_map,
)
from .model import DiffLine, DiffSpec, FilePair, Hunk
from .parser import parse_file_pairs, parse_unified_diff, parse_untracked_content
from .save import save_lines
from .source import DiffSource, ThreeWayDiff, diff_title, fetch_diff_spec, fetch_three_way
from .three_way import ThreeWayEntry, ThreeWayFile, ThreeWayMap, build_three_way_map

__all__ = [
    "BufferPair",
    "BufferTriple",
    "DiffLine",
    "DiffSource",
    "DiffSpec",
    "FilePair",
    "Hunk",
    "InlineRanges",
    "LineMap",
    "LineMapEntry",
    "ROW_ADD",
    "ROW_CONTEXT",
    "ROW_DELETE",
    "ROW_FILLER",
    "ROW_HEADER",
    "TextSurface",
    "ThreeWayDiff",
    "ThreeWayEntry",
    "ThreeWayFile",
    "ThreeWayMap",
    "build_line_map",
    "build_three_way_map",
    "diff_title",
    "fetch_diff_spec",
    "fetch_three_way",
    "inline_ranges",
    "parse_file_pairs",
    "parse_unified_diff",
    "parse_untracked_content",
    "save_lines",
]
