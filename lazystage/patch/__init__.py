"""Partial patch construction and application."""

from __future__ import annotations

from .apply import PatchApplier, is_stale_apply_error
from .builder import PartialPatch, ResolvedSelection, Selection, build_patch, resolve_selection

__all__ = [
    "PartialPatch",
    "PatchApplier",
    "ResolvedSelection",
    "Selection",
    "build_patch",
    "is_stale_apply_error",
    "resolve_selection",
]
