"""Sandboxed reads of local files for the ask tool.

Local access is a security boundary: reads are confined to a single base
directory after symlink resolution, and the provider refuses to run at all
when no base directory is configured.
"""

from __future__ import annotations

from collections.abc import Iterable
import logging
from pathlib import Path

from ..core.types import FileUnit
from ..exceptions import ConfigurationError, ValidationError
from .mime import get_mime_type

logger = logging.getLogger(__name__)


class LocalFileProvider:
    """Reads relative paths beneath ``base_dir`` into FileUnits.

    Unsafe paths reject the whole batch. Missing, unreadable, directory and
    oversized entries are skipped with a warning.
    """

    def __init__(self, base_dir: str | Path | None, max_file_size: int) -> None:
        """Configure the sandbox root and the per-file size cap."""
        self.base_dir = Path(base_dir) if base_dir else None
        self.max_file_size = max_file_size

    @property
    def enabled(self) -> bool:
        """True when a base directory is configured."""
        return self.base_dir is not None

    def read(self, paths: Iterable[str]) -> list[FileUnit]:
        """Read each path and return the files that could be loaded.

        Raises:
            ConfigurationError: If no base directory is configured.
            ValidationError: If any path is absolute, contains ``..`` or
                resolves outside the base directory.
        """
        if self.base_dir is None:
            raise ConfigurationError(
                "local file reading is disabled: no base directory configured"
            )
        base = self.base_dir.resolve()

        units: list[FileUnit] = []
        for raw in paths:
            resolved = self._resolve_inside(base, raw)
            if resolved is None:
                continue
            unit = self._load(raw, resolved)
            if unit is not None:
                units.append(unit)
        logger.info("Read %d of the requested local files", len(units))
        return units

    def _resolve_inside(self, base: Path, raw: str) -> Path | None:
        relative = Path(raw)
        if not raw or relative.is_absolute() or ".." in relative.parts:
            raise ValidationError(
                f"invalid path: {raw}. Only relative paths within the allowed "
                "directory are permitted"
            )
        try:
            resolved = (base / relative).resolve(strict=True)
        except OSError:
            logger.warning("File not found, skipping: %s", raw)
            return None
        if not resolved.is_relative_to(base):
            raise ValidationError(f"path traversal attempt detected: {raw}")
        return resolved

    def _load(self, raw: str, resolved: Path) -> FileUnit | None:
        if resolved.is_dir():
            logger.warning("Path is a directory, skipping: %s", raw)
            return None
        try:
            size = resolved.stat().st_size
            if size > self.max_file_size:
                logger.warning(
                    "File %s is too large (%d bytes, limit %d), skipping",
                    raw,
                    size,
                    self.max_file_size,
                )
                return None
            content = resolved.read_bytes()
        except OSError as e:
            logger.warning("Failed to read file %s, skipping: %s", raw, e)
            return None
        return FileUnit(
            name=Path(raw).name, mime_type=get_mime_type(raw), content=content
        )
