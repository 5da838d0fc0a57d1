"""
Kernel: deck_slide_scan
Stage: 1 (Collection)

Lists the slide directory, keeps Markdown files, derives an ordering key from
each filename prefix and sorts the result. When the config carries an
explicit include_files list, discovery is skipped and that order is used.

Ordering key: the file stem up to the first "_" (``12_results.md`` -> ``12``),
or the whole stem if it has none. Natural mode compares keys alphanumerically
and never fails; numeric mode requires an integer prefix.

Produces the ordered slide list consumed by deck_slide_parse.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from mkslides.base import Kernel, KernelInput
from mkslides.errors import ConfigError, DirectoryAccessError, FileTypeError, IndexParseError
from mkslides.models import OrderingMode, SlideSource

logger = logging.getLogger(__name__)

SLIDE_EXTENSION = ".md"
KEY_SEPARATOR = "_"

_INTEGER_RE = re.compile(r"^[+-]?\d+$")


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def is_slide_file(path: Union[str, Path]) -> bool:
    """True if *path* has the slide extension, case-insensitively."""
    return Path(path).suffix.lower() == SLIDE_EXTENSION


def raw_ordering_key(filename: str) -> str:
    stem = Path(filename).stem
    return stem.split(KEY_SEPARATOR, 1)[0]


def derive_ordering_key(filename: str, mode: OrderingMode) -> Union[int, str]:
    """
    Ordering key for *filename* under *mode*.

    Raises:
        IndexParseError: numeric mode and the prefix is not an integer
    """
    raw = raw_ordering_key(filename)
    if mode == OrderingMode.NUMERIC:
        if not _INTEGER_RE.match(raw):
            raise IndexParseError(filename, raw)
        return int(raw)
    return raw or Path(filename).stem


# ---------------------------------------------------------------------------
# Enumeration and ordering
# ---------------------------------------------------------------------------

def enumerate_slides(
    directory: Path,
    mode: OrderingMode = OrderingMode.NATURAL,
    skipped: Optional[List[str]] = None,
) -> List[SlideSource]:
    """
    List *directory* and build a SlideSource for every Markdown file in it.

    Entries that are not regular files, or lack the ``.md`` extension, are
    skipped with a warning and, when *skipped* is given, their names are
    appended to it. The result is in directory listing order.

    Raises:
        DirectoryAccessError: The directory cannot be listed
        FileTypeError: An entry's metadata cannot be read
        IndexParseError: Numeric mode and a prefix is not an integer
    """
    directory = Path(directory)
    try:
        root = directory.resolve(strict=True)
        with os.scandir(root) as it:
            entries = list(it)
    except FileNotFoundError as e:
        raise DirectoryAccessError("Slide directory does not exist", directory) from e
    except NotADirectoryError as e:
        raise DirectoryAccessError("Slide directory is not a directory", directory) from e
    except OSError as e:
        raise DirectoryAccessError(
            f"Cannot list slide directory ({e.strerror or e})", directory
        ) from e

    sources: List[SlideSource] = []
    for entry in entries:
        try:
            regular = entry.is_file()
        except OSError as e:
            raise FileTypeError(
                f"Cannot read file type ({e.strerror or e})", entry.path
            ) from e

        if not regular:
            logger.warning(f"Skipping {entry.name} because it is not a file")
            if skipped is not None:
                skipped.append(entry.name)
            continue
        if not is_slide_file(entry.name):
            logger.warning(f"Skipping {entry.name} because it does not have a {SLIDE_EXTENSION} extension")
            if skipped is not None:
                skipped.append(entry.name)
            continue

        sources.append(SlideSource(
            path=root / entry.name,
            filename=entry.name,
            ordering_key=derive_ordering_key(entry.name, mode),
            ordering=mode,
        ))
    return sources


def order_slides(sources: Sequence[SlideSource]) -> List[SlideSource]:
    """Sort ascending by ordering key, ties broken by filename."""
    return sorted(sources, key=lambda s: s.sort_key())


def discover_slides(
    directory: Path,
    mode: OrderingMode = OrderingMode.NATURAL,
    skipped: Optional[List[str]] = None,
) -> List[SlideSource]:
    """Enumerate then order the slides in *directory*."""
    return order_slides(enumerate_slides(directory, mode, skipped))


def explicit_slides(slide_dir: Path, include_files: Sequence[str]) -> List[SlideSource]:
    """
    SlideSources for an explicit include list, in the given order.

    Each entry is relative to *slide_dir* and must be an existing ``.md``
    file. Two entries with the same file name would share an image
    namespace in the output and are rejected.

    Raises:
        ConfigError: On the first unusable entry
    """
    slide_dir = Path(slide_dir)
    sources: List[SlideSource] = []
    seen: Dict[str, str] = {}
    for position, name in enumerate(include_files):
        path = slide_dir / name
        if not path.exists():
            raise ConfigError("include_files", name, f"{path} does not exist")
        if not path.is_file():
            raise ConfigError("include_files", name, f"{path} is not a file")
        if not is_slide_file(path):
            raise ConfigError("include_files", name, f"not a {SLIDE_EXTENSION} file")
        if path.name in seen:
            raise ConfigError(
                "include_files", name, f"slide name {path.name} already used by {seen[path.name]}"
            )
        seen[path.name] = name
        sources.append(SlideSource(
            path=path.resolve(),
            filename=path.name,
            ordering_key=position,
            ordering=OrderingMode.EXPLICIT,
        ))
    return sources


# ---------------------------------------------------------------------------
# Kernel
# ---------------------------------------------------------------------------

class DeckSlideScanKernel(Kernel):
    """Slide discovery and ordering."""

    name = "deck_slide_scan"
    version = "1.0.0"
    category = "deck"
    stage = 1
    description = "List slide folder, derive ordering keys, sort"

    requires: List[str] = []
    provides: List[str] = ["slide_order"]

    def validate_input(self, input: KernelInput) -> List[str]:
        errors = super().validate_input(input)
        if not input.config.get("slide_dir"):
            errors.append("Missing required config: slide_dir")
        return errors

    def compute(self, input: KernelInput) -> Dict[str, Any]:
        slide_dir = Path(input.config["slide_dir"])
        include_files = input.config.get("include_files") or []
        skipped: List[str] = []

        if include_files:
            sources = explicit_slides(slide_dir, include_files)
            mode = OrderingMode.EXPLICIT
            logger.info(f"[deck_slide_scan] Using {len(sources)} explicitly listed slides")
        else:
            mode = OrderingMode(input.config.get("ordering", OrderingMode.NATURAL.value))
            sources = discover_slides(slide_dir, mode, skipped)
            if not sources:
                raise ConfigError("slide_dir", slide_dir, "contains no .md slides")
            logger.info(f"[deck_slide_scan] {slide_dir}: {len(sources)} slides ({mode.value} order)")

        for position, s in enumerate(sources, 1):
            logger.debug(f"[deck_slide_scan] {position:3d}. {s.filename} (key={s.ordering_key!r})")

        return {
            "slide_dir": str(slide_dir),
            "ordering": mode.value,
            "slides": [s.to_dict() for s in sources],
            "skipped": skipped,
            "statistics": {
                "slides": len(sources),
                "skipped": len(skipped),
                "explicit": bool(include_files),
            },
        }

    def summarize(self, data: Dict[str, Any]) -> str:
        s = data.get("statistics", {})
        return (
            f"Slide scan: {s.get('slides', 0)} slides "
            f"({data.get('ordering', '?')} order) in {data.get('slide_dir', '?')}"
        )
