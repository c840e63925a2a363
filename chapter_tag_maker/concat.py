"""Join chapter segments into a single episode file."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence

from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError

from .exceptions import ConcatError

LOGGER = logging.getLogger(__name__)


def concatenate(
    segment_paths: Sequence[Path],
    output_path: Path,
    *,
    output_format: str = "mp3",
    bitrate: Optional[str] = "192k",
) -> Path:
    """Append ``segment_paths`` back to back and export them to ``output_path``."""

    if not segment_paths:
        raise ConcatError("No audio segments to combine")

    combined = AudioSegment.empty()
    for segment_path in segment_paths:
        try:
            audio = AudioSegment.from_file(segment_path)
        except (OSError, CouldntDecodeError) as exc:
            raise ConcatError(f"Cannot read audio segment {segment_path}: {exc}") from exc
        LOGGER.debug("Appending %s (%d ms)", segment_path, len(audio))
        combined += audio

    output_path.parent.mkdir(parents=True, exist_ok=True)
    export_kwargs = {"format": output_format}
    if bitrate:
        export_kwargs["bitrate"] = bitrate
    combined.export(output_path, **export_kwargs).close()
    LOGGER.info("Combined %d segments (%d ms) into %s", len(segment_paths), len(combined), output_path)
    return output_path


__all__ = ["concatenate"]
