"""
Kernel: deck_package
Stage: 3 (Packaging)

Renders the manifest through the template engine, writes the document to
``<output_dir>/<output_filename>`` and copies every planned asset to
``<output_dir>/img/<slide>/<image>``.

Any failure aborts the run: there is no best-effort packaging, and the
output directory is in an unspecified state after an error. Nothing is
written outside the output directory.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional

from mkslides.base import Kernel, KernelInput
from mkslides.errors import IOWriteError, TemplateRenderError
from mkslides.models import (
    AssetCopyPlan,
    PackageResult,
    ParsedSlide,
    PresentationManifest,
)
from mkslides.template_engine import Jinja2TemplateEngine, TemplateEngine, build_context

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Packaging steps
# ---------------------------------------------------------------------------

def _prepare_output_dir(output_dir: Path) -> None:
    if output_dir.exists() and not output_dir.is_dir():
        raise IOWriteError("Output path exists and is not a directory", output_dir)
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise IOWriteError(f"Cannot create output directory ({e.strerror or e})", output_dir) from e


def render_manifest(manifest: PresentationManifest, engine: TemplateEngine) -> str:
    """Read the template and render the manifest through *engine*."""
    try:
        template_text = manifest.template_file.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise TemplateRenderError(f"Cannot read template ({e})", manifest.template_file) from e
    return engine.render(template_text, build_context(manifest))


def write_document(output_file: Path, text: str) -> bool:
    """Write *text*, warning on overwrite. Returns True if a file was replaced."""
    overwritten = output_file.exists()
    if overwritten:
        logger.warning(f"{output_file} already exists, will overwrite")
    try:
        output_file.write_text(text, encoding="utf-8")
    except OSError as e:
        raise IOWriteError(f"Cannot write document ({e.strerror or e})", output_file) from e
    return overwritten


def copy_assets(plan: AssetCopyPlan, output_dir: Path) -> int:
    """
    Copy every planned asset under *output_dir*; stop at the first failure.

    Returns:
        Total bytes copied
    """
    total = 0
    for source, destination in plan:
        dest = output_dir / destination
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, dest)
        except OSError as e:
            raise IOWriteError(
                f"Cannot copy {source} ({e.strerror or e})", dest
            ) from e
        total += dest.stat().st_size
        logger.debug(f"Copied {source} -> {destination}")
    return total


def package(
    manifest: PresentationManifest,
    engine: Optional[TemplateEngine] = None,
) -> PackageResult:
    """
    Write the presentation and its relocated assets to manifest.output_dir.

    Raises:
        IOWriteError: Output directory, document or asset copy failure
        TemplateRenderError: Template unreadable or rejected by the engine
    """
    engine = engine or Jinja2TemplateEngine()
    output_dir = manifest.output_dir

    _prepare_output_dir(output_dir)
    rendered = render_manifest(manifest, engine)
    overwritten = write_document(manifest.output_file, rendered)

    plan = manifest.copy_plan()
    asset_bytes = copy_assets(plan, output_dir)

    return PackageResult(
        output_file=manifest.output_file,
        assets_copied=len(plan),
        total_bytes=len(rendered.encode("utf-8")) + asset_bytes,
        overwritten=overwritten,
        destinations=[destination for _, destination in plan],
    )


# ---------------------------------------------------------------------------
# Kernel
# ---------------------------------------------------------------------------

class DeckPackageKernel(Kernel):
    """Template rendering, document write and asset copy."""

    name = "deck_package"
    version = "1.0.0"
    category = "deck"
    stage = 3
    description = "Render template, write document, copy relocated assets"

    requires: List[str] = ["deck_slide_parse"]
    provides: List[str] = ["presentation_bundle"]

    def __init__(self, engine: Optional[TemplateEngine] = None):
        self.engine = engine or Jinja2TemplateEngine()

    def validate_input(self, input: KernelInput) -> List[str]:
        errors = super().validate_input(input)
        for key in ("template_file", "output_dir"):
            if not input.config.get(key):
                errors.append(f"Missing required config: {key}")
        return errors

    def compute(self, input: KernelInput) -> Dict[str, Any]:
        parsed = input.load_dependency("deck_slide_parse")
        manifest = PresentationManifest(
            title=input.config.get("title", ""),
            slides=tuple(ParsedSlide.from_dict(s) for s in parsed.get("slides", [])),
            template_file=Path(input.config["template_file"]),
            output_dir=Path(input.config["output_dir"]),
            output_filename=input.config.get("output_filename", "index.html"),
        )

        result = package(manifest, self.engine)

        logger.info(
            f"[deck_package] Output: {result.output_file} "
            f"({len(manifest.slides)} slides, {result.assets_copied} assets)"
        )

        data = result.to_dict()
        data["output_dir"] = str(manifest.output_dir)
        data["slides"] = len(manifest.slides)
        return data

    def summarize(self, data: Dict[str, Any]) -> str:
        return (
            f"Package: {data.get('slides', 0)} slides + "
            f"{data.get('assets_copied', 0)} assets ({data.get('total_bytes', 0):,} bytes) "
            f"-> {data.get('output_file', '?')}"
        )
