"""Filesystem access for chapter images."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

from .exceptions import StorageError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class FileStorage:
    """Read image bytes relative to a base directory."""

    def __init__(self, base_dir: Optional[PathLike] = None) -> None:
        self.base_dir = Path(base_dir) if base_dir is not None else None

    def path_for(self, ref: PathLike) -> Path:
        path = Path(ref)
        if self.base_dir is not None and not path.is_absolute():
            path = self.base_dir / path
        return path

    def read_bytes(self, ref: PathLike) -> bytes:
        path = self.path_for(ref)
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise StorageError(f"Cannot read image {path}: {exc.strerror or exc}", ref=ref) from exc
        logger.debug("Read %d bytes from %s", len(data), path)
        return data


__all__ = ["FileStorage"]
