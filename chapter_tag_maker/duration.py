"""Segment duration probing.

A probe is any callable taking a segment path and returning a mapping of
reported fields to numbers. :class:`DurationResolver` only cares about the
total length field and turns it into whole milliseconds.
"""

from __future__ import annotations

import logging
import os
import subprocess
from typing import Any, Callable, Dict, List, Mapping, Optional

from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError

from .exceptions import ResolutionError

__all__ = [
    "LENGTH_FIELD",
    "DurationResolver",
    "Probe",
    "PydubProbe",
    "SoxStatProbe",
    "make_probe",
    "parse_stat_output",
]

logger = logging.getLogger(__name__)

LENGTH_FIELD = "Length (seconds)"

Probe = Callable[[Any], Mapping[str, float]]


def parse_stat_output(text: str) -> Dict[str, float]:
    """Parse ``key: value`` lines as printed by ``sox <file> -n stat``.

    Lines without a colon or with a non-numeric value are skipped.
    """

    fields: Dict[str, float] = {}
    for line in text.splitlines():
        if ":" not in line:
            continue
        key, value = line.split(":", 1)
        try:
            fields[key.strip()] = float(value.strip())
        except ValueError:
            continue
    return fields


class SoxStatProbe:
    """Run the ``stat`` effect of sox and report its fields."""

    def __init__(self, binary: Optional[str] = None, *, timeout: Optional[float] = 60.0) -> None:
        self.binary = binary or os.getenv("CHAPTER_TAGS_SOX", "sox")
        self.timeout = timeout

    def command(self, path: Any) -> List[str]:
        return [self.binary, str(path), "-n", "stat"]

    def __call__(self, path: Any) -> Dict[str, float]:
        cmd = self.command(path)
        logger.debug("Probing %s: %s", path, " ".join(cmd))
        try:
            completed = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            raise ResolutionError(
                f"Duration probe '{self.binary}' is not installed",
                segment_ref=path,
            ) from exc
        except OSError as exc:
            raise ResolutionError(
                f"Cannot run duration probe '{self.binary}': {exc}",
                segment_ref=path,
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise ResolutionError(
                f"Duration probe timed out after {self.timeout}s",
                segment_ref=path,
            ) from exc

        if completed.returncode != 0:
            stderr = (completed.stderr or "").strip()
            raise ResolutionError(
                f"Duration probe exited with status {completed.returncode}",
                segment_ref=path,
                details={"stderr": stderr[-500:]},
            )
        # stat writes its report to stderr
        return parse_stat_output(completed.stderr or "")


class PydubProbe:
    """Decode the segment with pydub and report its length."""

    def __call__(self, path: Any) -> Dict[str, float]:
        logger.debug("Decoding %s to measure its length", path)
        try:
            audio = AudioSegment.from_file(path)
        except FileNotFoundError as exc:
            raise ResolutionError(f"Audio segment not found: {path}", segment_ref=path) from exc
        except CouldntDecodeError as exc:
            raise ResolutionError(f"Audio segment is not playable: {path}", segment_ref=path) from exc
        except OSError as exc:
            raise ResolutionError(f"Cannot read audio segment {path}: {exc}", segment_ref=path) from exc
        return {LENGTH_FIELD: len(audio) / 1000}


def make_probe(name: str) -> Probe:
    """Return the probe registered under ``name`` (``sox`` or ``pydub``)."""

    lowered = name.lower()
    if lowered == "sox":
        return SoxStatProbe()
    if lowered == "pydub":
        return PydubProbe()
    raise ValueError(f"Unknown duration probe: {name}")


class DurationResolver:
    """Turn segment references into whole-millisecond durations."""

    def __init__(self, probe: Optional[Probe] = None, *, field: str = LENGTH_FIELD) -> None:
        self.probe = probe or SoxStatProbe()
        self.field = field

    def resolve(self, segment_ref: Any) -> int:
        """Return the duration of ``segment_ref`` in milliseconds.

        Sub-second precision is dropped before scaling, so a reported length
        of 12.9 seconds yields 12000.
        """

        fields = self.probe(segment_ref)
        if self.field not in fields:
            raise ResolutionError(
                f"Probe output has no '{self.field}' field",
                segment_ref=segment_ref,
                details={"fields": sorted(fields)},
            )
        try:
            seconds = int(float(fields[self.field]))
        except (TypeError, ValueError, OverflowError) as exc:
            raise ResolutionError(
                f"Probe reported an unusable length: {fields[self.field]!r}",
                segment_ref=segment_ref,
            ) from exc

        duration_ms = seconds * 1000
        if duration_ms <= 0:
            raise ResolutionError(
                "Segment has no playable content (length under one second)",
                segment_ref=segment_ref,
            )
        logger.debug("Resolved %s to %d ms", segment_ref, duration_ms)
        return duration_ms
