"""Core package for Chapter Tag Maker."""

from __future__ import annotations

from .assembler import ChapterAssembler, build_ranges
from .duration import DurationResolver
from .exceptions import (
    ChapterTagError,
    ResolutionError,
    StorageError,
    ValidationError,
)
from .models import ChapterDescriptor, ChapterTree

__all__ = [
    "ChapterAssembler",
    "ChapterDescriptor",
    "ChapterTagError",
    "ChapterTree",
    "DurationResolver",
    "ResolutionError",
    "StorageError",
    "ValidationError",
    "build_ranges",
]

__version__ = "0.1.0"
