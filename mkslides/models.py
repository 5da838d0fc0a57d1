"""
Core data models for the mkslides pipeline.

All models are JSON-serializable dataclasses passed between kernels through
the workspace: enums, dataclasses with to_dict()/from_dict(), and the asset
copy plan accumulator.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Tuple, Union
import re

from mkslides.errors import IOWriteError


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class OrderingMode(str, Enum):
    """How slide files are put in presentation order."""
    NATURAL = "natural"     # alphanumeric-aware comparison of the filename prefix
    NUMERIC = "numeric"     # prefix must parse as an integer
    EXPLICIT = "explicit"   # position in a user-supplied include list


class RenderMode(str, Enum):
    """What a slide body looks like when handed to the template."""
    MARKDOWN = "markdown"   # rewritten Markdown, e.g. for <section data-markdown>
    HTML = "html"           # rewritten Markdown rendered to HTML


# ---------------------------------------------------------------------------
# Natural ordering
# ---------------------------------------------------------------------------

_CHUNK_RE = re.compile(r"(\d+)")

NaturalKey = Tuple[Tuple[int, int, str], ...]


def natural_sort_key(text: str) -> NaturalKey:
    """
    Split *text* into digit and non-digit chunks for alphanumeric ordering.

    Digit chunks compare numerically before any text chunk, so ``"2"`` sorts
    before ``"10"``. Every chunk is a (kind, number, text) triple, which keeps
    the comparison total: an int is never compared against a str.
    """
    key = []
    for chunk in _CHUNK_RE.split(text):
        if not chunk:
            continue
        if chunk.isdigit():
            key.append((0, int(chunk), chunk))
        else:
            key.append((1, 0, chunk.casefold()))
    return tuple(key)


# ---------------------------------------------------------------------------
# Slide sources
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SlideSource:
    """A slide file found on disk, with the key used to order it."""
    path: Path                          # absolute
    filename: str
    ordering_key: Union[int, str]
    ordering: OrderingMode = OrderingMode.NATURAL

    def sort_key(self) -> Tuple[Any, ...]:
        if self.ordering == OrderingMode.NATURAL:
            return (natural_sort_key(str(self.ordering_key)), self.filename)
        return (int(self.ordering_key), self.filename)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": str(self.path),
            "filename": self.filename,
            "ordering_key": self.ordering_key,
            "ordering": self.ordering.value,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SlideSource":
        return cls(
            path=Path(d["path"]),
            filename=d["filename"],
            ordering_key=d["ordering_key"],
            ordering=OrderingMode(d.get("ordering", "natural")),
        )


# ---------------------------------------------------------------------------
# Parsed slides
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LocalImageRef:
    """A local image reference and where it lands in the output tree."""
    target: str             # as written in the slide
    source: Path            # canonical absolute path
    destination: str        # posix path relative to the output root

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": self.target,
            "source": str(self.source),
            "destination": self.destination,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "LocalImageRef":
        return cls(
            target=d["target"],
            source=Path(d["source"]),
            destination=d["destination"],
        )


@dataclass(frozen=True)
class ParsedSlide:
    """One slide after link rewriting, ready to be templated."""
    source_path: Path
    filename: str
    content: str
    local_images: Tuple[LocalImageRef, ...] = ()
    remote_links: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_path": str(self.source_path),
            "filename": self.filename,
            "content": self.content,
            "local_images": [ref.to_dict() for ref in self.local_images],
            "remote_links": list(self.remote_links),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ParsedSlide":
        return cls(
            source_path=Path(d["source_path"]),
            filename=d["filename"],
            content=d["content"],
            local_images=tuple(LocalImageRef.from_dict(r) for r in d.get("local_images", [])),
            remote_links=tuple(d.get("remote_links", [])),
        )


# ---------------------------------------------------------------------------
# Asset copy plan
# ---------------------------------------------------------------------------

class AssetCopyPlan:
    """
    Ordered (source, destination) pairs, deduplicated by destination.

    Adding the same pair twice is a no-op. Destinations are namespaced per
    slide, so two different sources never legitimately share one; if they do,
    ``add`` raises IOWriteError rather than letting one copy clobber another.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, Path] = {}

    def add(self, source: Path, destination: str) -> bool:
        """Record a copy. Returns False when the entry was already present."""
        existing = self._entries.get(destination)
        if existing is not None:
            if existing != source:
                raise IOWriteError(
                    f"Destination claimed by both {existing} and {source}",
                    destination,
                )
            return False
        self._entries[destination] = source
        return True

    def add_slide(self, slide: ParsedSlide) -> int:
        added = 0
        for ref in slide.local_images:
            if self.add(ref.source, ref.destination):
                added += 1
        return added

    def __iter__(self) -> Iterator[Tuple[Path, str]]:
        for destination, source in self._entries.items():
            yield source, destination

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, destination: object) -> bool:
        return destination in self._entries

    def to_dict(self) -> List[Dict[str, str]]:
        return [
            {"source": str(source), "destination": destination}
            for source, destination in self
        ]

    @classmethod
    def from_dict(cls, entries: List[Dict[str, str]]) -> "AssetCopyPlan":
        plan = cls()
        for e in entries:
            plan.add(Path(e["source"]), e["destination"])
        return plan


# ---------------------------------------------------------------------------
# Manifest
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PresentationManifest:
    """Everything the packager needs: title, ordered slides, template, target."""
    title: str
    slides: Tuple[ParsedSlide, ...]
    template_file: Path
    output_dir: Path
    output_filename: str = "index.html"

    @property
    def output_file(self) -> Path:
        return self.output_dir / self.output_filename

    @property
    def ingested_files(self) -> List[str]:
        return [slide.content for slide in self.slides]

    def copy_plan(self) -> AssetCopyPlan:
        plan = AssetCopyPlan()
        for slide in self.slides:
            plan.add_slide(slide)
        return plan

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "slides": [s.to_dict() for s in self.slides],
            "template_file": str(self.template_file),
            "output_dir": str(self.output_dir),
            "output_filename": self.output_filename,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "PresentationManifest":
        return cls(
            title=d.get("title", ""),
            slides=tuple(ParsedSlide.from_dict(s) for s in d.get("slides", [])),
            template_file=Path(d["template_file"]),
            output_dir=Path(d["output_dir"]),
            output_filename=d.get("output_filename", "index.html"),
        )


@dataclass
class PackageResult:
    """Outcome of a successful packaging run."""
    output_file: Path
    assets_copied: int = 0
    total_bytes: int = 0
    overwritten: bool = False
    destinations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "output_file": str(self.output_file),
            "assets_copied": self.assets_copied,
            "total_bytes": self.total_bytes,
            "overwritten": self.overwritten,
            "destinations": list(self.destinations),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "PackageResult":
        return cls(
            output_file=Path(d["output_file"]),
            assets_copied=d.get("assets_copied", 0),
            total_bytes=d.get("total_bytes", 0),
            overwritten=d.get("overwritten", False),
            destinations=list(d.get("destinations", [])),
        )
