"""
Kernel: deck_slide_parse
Stage: 2 (Parsing)

Reads every ordered slide, extracts its inline image links and relocates the
local ones:

    ![chart](../figures/q3.png)   in 2_results.md
    -> source:       /abs/figures/q3.png
    -> destination:  img/2_results.md/q3.png
    -> rewritten:    ![chart](img/2_results.md/q3.png)

Destinations are namespaced by slide file name, so two slides can both use
an ``x.png`` without colliding. Remote links (anything containing "://") are
left exactly as written. Slides may be parsed on a thread pool; results are
always re-joined in scan order.

Produces the parsed slide bodies and the asset copy plan consumed by
deck_package.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import unquote

import mistune

from mkslides.base import Kernel, KernelInput
from mkslides.errors import AssetNotFoundError, SlideReadError
from mkslides.md_parse_utils import MISTUNE_PLUGINS, grab_image_links, rewrite_image_links, split_links
from mkslides.models import (
    AssetCopyPlan,
    LocalImageRef,
    ParsedSlide,
    RenderMode,
    SlideSource,
)

logger = logging.getLogger(__name__)

IMAGE_ROOT = "img"


# ---------------------------------------------------------------------------
# Asset path resolution
# ---------------------------------------------------------------------------

def resolve_local_image(target: str, slide_path: Path) -> Path:
    """
    Canonical absolute path of *target*, relative to the slide's directory.

    A percent-encoded target (``my%20chart.png``) is retried decoded.

    Raises:
        AssetNotFoundError: Nothing resolvable, or not a regular file
    """
    base = Path(slide_path).parent
    candidates = [target]
    decoded = unquote(target)
    if decoded != target:
        candidates.append(decoded)

    for candidate in candidates:
        try:
            resolved = (base / candidate).resolve(strict=True)
        except (OSError, RuntimeError):
            continue
        if resolved.is_file():
            return resolved
    raise AssetNotFoundError(target, slide_path)


def destination_for(slide_filename: str, image_name: str) -> str:
    """``img/<slide_filename>/<image_name>`` as a posix path."""
    return PurePosixPath(IMAGE_ROOT, slide_filename, image_name).as_posix()


def assign_destinations(slide_filename: str, sources: Sequence[Path]) -> Dict[Path, str]:
    """
    Map each distinct source image of one slide to its destination.

    The same source always maps to one destination. When two different
    sources share a base name within the slide, later ones are renamed
    ``<stem>-<n><suffix>`` in order of first appearance.
    """
    used: Dict[str, Path] = {}
    result: Dict[Path, str] = {}
    for src in sources:
        if src in result:
            continue
        name = src.name
        if name in used:
            n = 1
            while f"{src.stem}-{n}{src.suffix}" in used:
                n += 1
            name = f"{src.stem}-{n}{src.suffix}"
            logger.debug(f"{slide_filename}: {src} renamed to {name} (base name taken)")
        used[name] = src
        result[src] = destination_for(slide_filename, name)
    return result


# ---------------------------------------------------------------------------
# Slide parsing
# ---------------------------------------------------------------------------

def render_html(text: str) -> str:
    """
    Render Markdown to HTML; raw HTML in slides is passed through.

    URLs end up in HTML attributes and are escaped there (``&`` becomes
    ``&amp;``, spaces are percent-encoded), so remote links are only kept
    byte-identical in markdown render mode.
    """
    markdown = mistune.create_markdown(escape=False, plugins=MISTUNE_PLUGINS)
    return markdown(text)


def parse_slide(source: SlideSource, render_mode: RenderMode = RenderMode.MARKDOWN) -> ParsedSlide:
    """
    Read one slide, relocate its local images and return the parsed result.

    Raises:
        SlideReadError: The file cannot be read as UTF-8
        AssetNotFoundError: A local image does not exist
    """
    try:
        text = source.path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise SlideReadError("Slide is not valid UTF-8", source.path) from e
    except OSError as e:
        raise SlideReadError(f"Cannot read slide ({e.strerror or e})", source.path) from e

    local, remote = split_links(grab_image_links(text))
    for url in remote:
        logger.debug(f"{source.filename}: leaving remote image {url}")

    resolved = [(target, resolve_local_image(target, source.path)) for target in local]
    destinations = assign_destinations(source.filename, [path for _, path in resolved])
    refs = tuple(
        LocalImageRef(target=target, source=path, destination=destinations[path])
        for target, path in resolved
    )
    for ref in refs:
        logger.debug(f"{source.filename}: {ref.target} -> {ref.destination}")

    content = rewrite_image_links(text, {ref.target: ref.destination for ref in refs})
    if RenderMode(render_mode) == RenderMode.HTML:
        content = render_html(content)

    return ParsedSlide(
        source_path=source.path,
        filename=source.filename,
        content=content,
        local_images=refs,
        remote_links=tuple(remote),
    )


def parse_slides(
    sources: Sequence[SlideSource],
    render_mode: RenderMode = RenderMode.MARKDOWN,
    max_workers: int = 1,
) -> List[ParsedSlide]:
    """
    Parse *sources*, returning slides in the same order.

    With ``max_workers > 1`` slides are parsed on a thread pool. Results are
    collected in input order, so the error raised is the one of the earliest
    failing slide, whatever the completion order.
    """
    if max_workers <= 1 or len(sources) <= 1:
        return [parse_slide(s, render_mode) for s in sources]

    results: List[Optional[ParsedSlide]] = [None] * len(sources)
    with ThreadPoolExecutor(max_workers=min(max_workers, len(sources))) as executor:
        futures = [executor.submit(parse_slide, s, render_mode) for s in sources]
        try:
            for idx, future in enumerate(futures):
                results[idx] = future.result()
        except Exception:
            for future in futures:
                future.cancel()
            raise
    return results


def build_copy_plan(slides: Sequence[ParsedSlide]) -> AssetCopyPlan:
    """Merge every slide's image refs, in slide order."""
    plan = AssetCopyPlan()
    for slide in slides:
        plan.add_slide(slide)
    return plan


# ---------------------------------------------------------------------------
# Kernel
# ---------------------------------------------------------------------------

class DeckSlideParseKernel(Kernel):
    """Image link extraction, classification and relocation."""

    name = "deck_slide_parse"
    version = "1.0.0"
    category = "deck"
    stage = 2
    description = "Extract inline images, resolve local ones, rewrite to img/<slide>/"

    requires: List[str] = ["deck_slide_scan"]
    provides: List[str] = ["parsed_slides", "asset_copy_plan"]

    def compute(self, input: KernelInput) -> Dict[str, Any]:
        scan = input.load_dependency("deck_slide_scan")
        sources = [SlideSource.from_dict(s) for s in scan.get("slides", [])]

        render_mode = RenderMode(input.config.get("render_mode", RenderMode.MARKDOWN.value))
        max_workers = int(input.config.get("max_workers", 1))

        slides = parse_slides(sources, render_mode, max_workers)
        plan = build_copy_plan(slides)

        n_local = sum(len(s.local_images) for s in slides)
        n_remote = sum(len(s.remote_links) for s in slides)
        logger.info(
            f"[deck_slide_parse] {len(slides)} slides: {n_local} local images "
            f"({len(plan)} unique), {n_remote} remote"
        )

        return {
            "render_mode": render_mode.value,
            "slides": [s.to_dict() for s in slides],
            "copy_plan": plan.to_dict(),
            "statistics": {
                "slides": len(slides),
                "local_images": n_local,
                "remote_images": n_remote,
                "unique_assets": len(plan),
            },
        }

    def summarize(self, data: Dict[str, Any]) -> str:
        s = data.get("statistics", {})
        return (
            f"Slide parse: {s.get('slides', 0)} slides, "
            f"{s.get('unique_assets', 0)} assets to relocate, "
            f"{s.get('remote_images', 0)} remote images kept"
        )
