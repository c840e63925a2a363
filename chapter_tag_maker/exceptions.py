"""Exception hierarchy for Chapter Tag Maker.

Every failure raised while building an episode derives from
:class:`ChapterTagError` so the CLI can report it with a single line::

    ChapterTagError
    ├── ValidationError        malformed or empty assembler input
    │   └── TimelineOverflowError
    ├── ResolutionError        duration probe unreachable or unparsable
    ├── StorageError           image bytes unreadable
    ├── TagWriteError          the tag container could not be saved
    └── ConcatError            segments could not be combined
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ChapterTagError(Exception):
    """Base exception for all chapter tag errors."""

    kind = "error"

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})
        self.ordinal: Optional[int] = None
        self.title: Optional[str] = None

    def attach_chapter(self, ordinal: int, title: str) -> None:
        """Record which chapter was being assembled when the error occurred."""

        if self.ordinal is None:
            self.ordinal = ordinal
            self.title = title
            self.details.setdefault("chapter", ordinal)

    def __str__(self) -> str:
        if self.ordinal is None:
            return self.message
        return f"chapter {self.ordinal} {self.title!r}: {self.message}"


class ValidationError(ChapterTagError):
    """Assembler input is empty or a descriptor is malformed."""

    kind = "validation"


class TimelineOverflowError(ValidationError):
    """A chapter boundary would reach the reserved 0xFFFFFFFF time value."""


class ResolutionError(ChapterTagError):
    """A segment duration could not be determined."""

    kind = "resolution"

    def __init__(
        self,
        message: str,
        *,
        segment_ref: Any = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = dict(details or {})
        if segment_ref is not None:
            details["segment"] = str(segment_ref)
        super().__init__(message, details=details)
        self.segment_ref = segment_ref


class StorageError(ChapterTagError):
    """Image bytes could not be read."""

    kind = "storage"

    def __init__(
        self,
        message: str,
        *,
        ref: Any = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = dict(details or {})
        if ref is not None:
            details["ref"] = str(ref)
        super().__init__(message, details=details)
        self.ref = ref


class TagWriteError(ChapterTagError):
    """The chapter frames could not be persisted to the audio file."""

    kind = "tag-write"


class ConcatError(ChapterTagError):
    """The chapter segments could not be combined into one file."""

    kind = "concat"


__all__ = [
    "ChapterTagError",
    "ConcatError",
    "ResolutionError",
    "StorageError",
    "TagWriteError",
    "TimelineOverflowError",
    "ValidationError",
]
