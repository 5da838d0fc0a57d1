"""
Exception hierarchy for the mkslides pipeline.

Every fatal condition raised by a kernel derives from DeckError so the CLI
can report it uniformly. Skipped non-slide files and remote image links are
diagnostics, not errors, and never raise.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional, Union


class DeckError(Exception):
    """Base class for all pipeline failures."""

    def __init__(self, reason: str, path: Optional[Union[str, Path]] = None):
        self.reason = reason
        self.path = Path(path) if path is not None else None
        super().__init__(self._format())

    def _format(self) -> str:
        if self.path is not None:
            return f"{self.reason}: {self.path}"
        return self.reason


class DirectoryAccessError(DeckError):
    """The slide directory cannot be listed."""
    pass


class FileTypeError(DeckError):
    """Metadata for a directory entry cannot be read."""
    pass


class IndexParseError(DeckError):
    """A filename prefix is not a valid integer under strict numeric ordering."""

    def __init__(self, filename: str, raw_key: str):
        self.filename = filename
        self.raw_key = raw_key
        super().__init__(
            f"Cannot parse ordering index {raw_key!r} of {filename!r} as an integer"
        )


class AssetNotFoundError(DeckError):
    """A local image reference does not resolve to a file on disk."""

    def __init__(self, target: str, slide: Union[str, Path]):
        self.target = target
        self.slide = Path(slide)
        super().__init__(
            f"Image {target!r} referenced by {self.slide.name} not found", path=slide
        )


class SlideReadError(DeckError):
    """A slide file cannot be read or decoded as UTF-8."""
    pass


class TemplateRenderError(DeckError):
    """The template engine rejected the template or failed while rendering."""
    pass


class IOWriteError(DeckError):
    """Writing the rendered document or copying an asset failed."""
    pass


class ConfigError(DeckError):
    """An argument or configuration value is invalid.

    Rendered as ``ConfigError [arg=>value]: reason``.
    """

    def __init__(self, arg: str, value: Any, reason: str):
        self.arg = arg
        self.value = value
        super().__init__(reason)

    def _format(self) -> str:
        return f"ConfigError [{self.arg}=>{self.value}]: {self.reason}"
