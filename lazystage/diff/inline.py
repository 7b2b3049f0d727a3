"""Word-level highlighting for paired delete/add rows.

Lines are tokenized into word, whitespace and punctuation runs; tokens not
shared by the two lines become column ranges to emphasize.
"""

from __future__ import annotations

from dataclasses import dataclass
from difflib import SequenceMatcher
import re

_TOKEN_RE = re.compile(r"\w+|\s+|[^\w\s]+")

# Pairs that share less than this fraction of characters are shown as whole-line changes.
MIN_SIMILARITY = 0.3


@dataclass(frozen=True)
class InlineRanges:
    old_ranges: tuple[tuple[int, int], ...] = ()
    new_ranges: tuple[tuple[int, int], ...] = ()


def tokenize(line: str) -> list[str]:
    return _TOKEN_RE.findall(line)


def _offsets(tokens: list[str]) -> list[int]:
    offsets = [0]
    for token in tokens:
        offsets.append(offsets[-1] + len(token))
    return offsets


def _merge(ranges: list[tuple[int, int]]) -> tuple[tuple[int, int], ...]:
    merged: list[tuple[int, int]] = []
    for start, end in ranges:
        if start >= end:
            continue
        if merged and merged[-1][1] == start:
            merged[-1] = (merged[-1][0], end)
        else:
            merged.append((start, end))
    return tuple(merged)


def inline_ranges(old_line: str, new_line: str) -> InlineRanges:
    """Column ranges (``[start, end)``) that differ between two lines.

    Returns empty ranges when the lines are identical or too dissimilar for
    word emphasis to help.
    """
    if old_line == new_line:
        return InlineRanges()
    old_tokens = tokenize(old_line)
    new_tokens = tokenize(new_line)
    if not old_tokens or not new_tokens:
        return InlineRanges()

    matcher = SequenceMatcher(a=old_tokens, b=new_tokens, autojunk=False)
    old_offsets = _offsets(old_tokens)
    new_offsets = _offsets(new_tokens)

    shared = sum(
        old_offsets[block.a + block.size] - old_offsets[block.a] for block in matcher.get_matching_blocks()
    )
    if shared / max(len(old_line), len(new_line)) < MIN_SIMILARITY:
        return InlineRanges()

    old_ranges: list[tuple[int, int]] = []
    new_ranges: list[tuple[int, int]] = []
    for tag, a_start, a_end, b_start, b_end in matcher.get_opcodes():
        if tag == "equal":
            continue
        if a_end > a_start:
            old_ranges.append((old_offsets[a_start], old_offsets[a_end]))
        if b_end > b_start:
            new_ranges.append((new_offsets[b_start], new_offsets[b_end]))
    return InlineRanges(old_ranges=_merge(old_ranges), new_ranges=_merge(new_ranges))


__all__ = ["InlineRanges", "inline_ranges", "tokenize"]
