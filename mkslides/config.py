"""
Configuration for the mkslides pipeline.

A DeckConfig is built either from a YAML file (load_config) or from CLI
values (from_cli_args). Relative paths in a YAML file are resolved against
the directory holding that file; relative CLI paths against the current
working directory.

Example YAML:

    title: Quarterly Review
    slide_dir: slides
    template_file: templates/reveal.html
    output_dir: build
    output_file: index.html
    include_files:
      - 1_intro.md
      - 3_numbers.md
    ordering: natural        # natural | numeric
    render_mode: markdown    # markdown | html
    max_workers: 4
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
import logging

import yaml

from mkslides.errors import ConfigError
from mkslides.kernels.deck_slide_scan import explicit_slides
from mkslides.models import OrderingMode, RenderMode

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Untitled Presentation"
DEFAULT_OUTPUT_FILENAME = "index.html"
DEFAULT_OUTPUT_DIRNAME = "output"

_REQUIRED_KEYS = ("slide_dir", "template_file")


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass
class DeckConfig:
    """
    Top-level configuration for one presentation build.

    All paths are absolute once the config is constructed through
    load_config() or from_cli_args().
    """
    slide_dir: Path
    template_file: Path
    output_dir: Path
    title: str = DEFAULT_TITLE
    output_filename: str = DEFAULT_OUTPUT_FILENAME
    include_files: List[str] = field(default_factory=list)
    ordering: str = OrderingMode.NATURAL.value     # natural | numeric
    render_mode: str = RenderMode.MARKDOWN.value   # markdown | html
    max_workers: int = 1
    working_dir: Optional[Path] = None

    def __post_init__(self):
        self.slide_dir = Path(self.slide_dir)
        self.template_file = Path(self.template_file)
        self.output_dir = Path(self.output_dir)
        if self.working_dir is not None:
            self.working_dir = Path(self.working_dir)

        if self.ordering not in (OrderingMode.NATURAL.value, OrderingMode.NUMERIC.value):
            raise ConfigError("ordering", self.ordering, "must be 'natural' or 'numeric'")
        if self.render_mode not in (RenderMode.MARKDOWN.value, RenderMode.HTML.value):
            raise ConfigError("render_mode", self.render_mode, "must be 'markdown' or 'html'")
        if not isinstance(self.max_workers, int) or self.max_workers < 1:
            raise ConfigError("max_workers", self.max_workers, "must be an integer >= 1")
        if not self.output_filename or Path(self.output_filename).name != self.output_filename:
            raise ConfigError("output_filename", self.output_filename, "must be a bare file name")
        if self.include_files is None:
            self.include_files = []
        self.include_files = [str(f) for f in self.include_files]

    @property
    def output_file(self) -> Path:
        return self.output_dir / self.output_filename

    def validate(self) -> None:
        """
        Check the inputs before any stage runs.

        Raises:
            ConfigError: Missing template, output target is a directory,
                or a listed include file is unusable.
        """
        if not self.template_file.exists():
            raise ConfigError("template_file", self.template_file, "file does not exist")
        if not self.template_file.is_file():
            raise ConfigError("template_file", self.template_file, "is not a file")

        if self.output_file.is_dir():
            raise ConfigError("output_file", self.output_file, "is a directory")
        if self.output_file.exists():
            logger.warning(f"{self.output_file} already exists, will overwrite")

        if self.include_files:
            explicit_slides(self.slide_dir, self.include_files)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary for kernel configs and persistence."""
        return {
            "title": self.title,
            "slide_dir": str(self.slide_dir),
            "template_file": str(self.template_file),
            "output_dir": str(self.output_dir),
            "output_filename": self.output_filename,
            "include_files": list(self.include_files),
            "ordering": self.ordering,
            "render_mode": self.render_mode,
            "max_workers": self.max_workers,
            "working_dir": str(self.working_dir) if self.working_dir else None,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DeckConfig":
        """Deserialize from dictionary (paths taken as-is)."""
        return cls(
            title=d.get("title", DEFAULT_TITLE),
            slide_dir=Path(d["slide_dir"]),
            template_file=Path(d["template_file"]),
            output_dir=Path(d["output_dir"]),
            output_filename=d.get("output_filename", DEFAULT_OUTPUT_FILENAME),
            include_files=list(d.get("include_files") or []),
            ordering=d.get("ordering", OrderingMode.NATURAL.value),
            render_mode=d.get("render_mode", RenderMode.MARKDOWN.value),
            max_workers=d.get("max_workers", 1),
            working_dir=Path(d["working_dir"]) if d.get("working_dir") else None,
        )


# ---------------------------------------------------------------------------
# Loaders
# ---------------------------------------------------------------------------

def _resolve(base: Path, value: Any) -> Path:
    p = Path(str(value)).expanduser()
    if not p.is_absolute():
        p = base / p
    return p.resolve()


def _parse_config_dict(data: Dict[str, Any], base: Path) -> DeckConfig:
    """Turn a raw mapping into a DeckConfig, resolving paths against *base*."""
    for key in _REQUIRED_KEYS:
        if not data.get(key):
            raise ConfigError(key, None, "missing required key")

    output_filename = data.get("output_filename", data.get("output_file", DEFAULT_OUTPUT_FILENAME))
    output_dir = data.get("output_dir")

    include_files = data.get("include_files") or []
    if not isinstance(include_files, list):
        raise ConfigError("include_files", include_files, "must be a list of file names")

    return DeckConfig(
        title=str(data.get("title") or DEFAULT_TITLE),
        slide_dir=_resolve(base, data["slide_dir"]),
        template_file=_resolve(base, data["template_file"]),
        output_dir=_resolve(base, output_dir) if output_dir else (base / DEFAULT_OUTPUT_DIRNAME).resolve(),
        output_filename=str(output_filename),
        include_files=include_files,
        ordering=str(data.get("ordering", OrderingMode.NATURAL.value)),
        render_mode=str(data.get("render_mode", RenderMode.MARKDOWN.value)),
        max_workers=data.get("max_workers", 1),
        working_dir=base,
    )


def load_config(config_path: Path) -> DeckConfig:
    """
    Load configuration from a YAML file.

    Args:
        config_path: Path to the YAML file

    Returns:
        DeckConfig with absolute paths

    Raises:
        ConfigError: Unreadable file, invalid YAML, or invalid values
    """
    config_path = Path(config_path).expanduser()
    try:
        text = config_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError("config", config_path, f"cannot read file ({e.strerror or e})") from e

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError("config", config_path, f"invalid YAML: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError("config", config_path, "top level must be a mapping")

    base = config_path.resolve().parent
    logger.debug(f"Loading config from {config_path} (working dir {base})")
    return _parse_config_dict(data, base)


def from_cli_args(
    slide_dir: str,
    template_file: str,
    output_dir: str,
    title: str = DEFAULT_TITLE,
    output_filename: str = DEFAULT_OUTPUT_FILENAME,
    include_files: Optional[List[str]] = None,
    ordering: str = OrderingMode.NATURAL.value,
    render_mode: str = RenderMode.MARKDOWN.value,
    max_workers: int = 1,
) -> DeckConfig:
    """Build a DeckConfig from command-line values, relative to the cwd."""
    base = Path.cwd()
    return DeckConfig(
        title=title,
        slide_dir=_resolve(base, slide_dir),
        template_file=_resolve(base, template_file),
        output_dir=_resolve(base, output_dir),
        output_filename=output_filename,
        include_files=list(include_files or []),
        ordering=ordering,
        render_mode=render_mode,
        max_workers=max_workers,
        working_dir=base,
    )
