"""
Markdown image-link utilities for the mkslides kernels.

Finds inline image links, classifies their targets as local or remote and
rewrites targets in place. Used by deck_slide_parse.

mistune decides what is an image. Candidate ``![alt](target)`` spans are
located in the source, every candidate target is swapped for a unique
marker and the document is parsed once into an AST. A candidate is kept only
if its marker comes back as the url of an ``image`` token; candidates inside
code, raw HTML, comments or behind an escaped ``!`` never do. The kept
candidates carry exact source offsets, so rewriting touches the target and
nothing else.

Only inline images are considered. Reference style images
(``![alt][ref]``) are left as written.
"""

from __future__ import annotations

import html
import re
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import mistune

# Block plugins shared by image detection and HTML rendering, so both agree
# on the document structure.
MISTUNE_PLUGINS = ["strikethrough", "table"]

# ---------------------------------------------------------------------------
# Compiled regex constants
# ---------------------------------------------------------------------------

_IMAGE_OPEN_RE = re.compile(r"!\[")
_BLANK_LINE_RE = re.compile(r"\n[ \t\r]*\n")
# Backslash escapes: any ASCII punctuation
_ESCAPED_PUNCT_RE = re.compile(r"\\([!-/:-@\[-`{-~])")
# A destination containing any of these must be wrapped in <...>
_NEEDS_BRACKETS_RE = re.compile(r"[\s()]")

_TITLE_DELIMITERS = {'"': '"', "'": "'", "(": ")"}

SCHEME_SEPARATOR = "://"


@dataclass(frozen=True)
class ImageMatch:
    """An inline image link found in a document."""
    alt: str
    target: str     # unescaped, without surrounding <>
    start: int      # span of the target as written (brackets included)
    end: int


# ---------------------------------------------------------------------------
# Candidate scanning
# ---------------------------------------------------------------------------

def _skip_code_span(text: str, pos: int) -> int:
    end = pos
    while end < len(text) and text[end] == "`":
        end += 1
    closing = re.compile(r"(?<!`)" + text[pos:end] + r"(?!`)").search(text, end)
    return closing.end() if closing else end


def _skip_space(text: str, pos: int) -> int:
    while pos < len(text) and text[pos] in " \t\r\n":
        pos += 1
    return pos


def _scan_link_text(text: str, pos: int) -> Optional[int]:
    """Index just past the ``]`` closing the bracket opened before *pos*."""
    depth = 1
    i = pos
    while i < len(text):
        c = text[i]
        if c == "\\":
            i += 2
            continue
        if c == "`":
            i = _skip_code_span(text, i)
            continue
        if c == "\n" and _BLANK_LINE_RE.match(text, i):
            return None
        if c == "[":
            depth += 1
        elif c == "]":
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    return None


def _scan_destination(text: str, pos: int) -> Optional[int]:
    """End of the link destination starting at *pos*."""
    if pos < len(text) and text[pos] == "<":
        i = pos + 1
        while i < len(text):
            c = text[i]
            if c == "\\":
                i += 2
                continue
            if c in "\n<":
                return None
            if c == ">":
                return i + 1
            i += 1
        return None

    depth = 0
    i = pos
    while i < len(text):
        c = text[i]
        if c == "\\":
            i += 2
            continue
        if c.isspace() or ord(c) < 0x20:
            break
        if c == "(":
            depth += 1
        elif c == ")":
            if depth == 0:
                break
            depth -= 1
        i += 1
    if depth or i == pos:
        return None
    return min(i, len(text))


def _scan_title(text: str, pos: int) -> Optional[int]:
    closing = _TITLE_DELIMITERS[text[pos]]
    i = pos + 1
    while i < len(text):
        c = text[i]
        if c == "\\":
            i += 2
            continue
        if c == closing:
            return i + 1
        i += 1
    return None


def _scan_candidate(text: str, start: int) -> Optional[ImageMatch]:
    """Read ``![alt](target "title")`` at *start*, leniently."""
    alt_end = _scan_link_text(text, start + 2)
    if alt_end is None or alt_end >= len(text) or text[alt_end] != "(":
        return None

    target_start = _skip_space(text, alt_end + 1)
    target_end = _scan_destination(text, target_start)
    if target_end is None:
        return None

    pos = _skip_space(text, target_end)
    if pos > target_end and pos < len(text) and text[pos] in _TITLE_DELIMITERS:
        pos = _scan_title(text, pos)
        if pos is None:
            return None
        pos = _skip_space(text, pos)
    if pos >= len(text) or text[pos] != ")":
        return None

    return ImageMatch(
        alt=text[start + 2:alt_end - 1],
        target=unescape_destination(text[target_start:target_end]),
        start=target_start,
        end=target_end,
    )


def _candidates(text: str) -> List[ImageMatch]:
    found = sorted(
        (m for m in (_scan_candidate(text, o.start()) for o in _IMAGE_OPEN_RE.finditer(text)) if m),
        key=lambda m: m.start,
    )
    result: List[ImageMatch] = []
    for match in found:
        if result and match.start < result[-1].end:
            continue
        result.append(match)
    return result


def unescape_destination(raw: str) -> str:
    """The path a link destination names: no ``<>``, escapes and entities resolved."""
    if raw.startswith("<") and raw.endswith(">"):
        raw = raw[1:-1]
    return html.unescape(_ESCAPED_PUNCT_RE.sub(r"\1", raw))


# ---------------------------------------------------------------------------
# AST confirmation
# ---------------------------------------------------------------------------

def parse_ast(text: str) -> List[Dict[str, Any]]:
    """mistune token tree for *text*."""
    markdown = mistune.create_markdown(renderer=None, plugins=MISTUNE_PLUGINS)
    return markdown(text)


def iter_image_urls(tokens: Sequence[Dict[str, Any]]) -> Iterator[str]:
    """Yield the url of every ``image`` token, depth first."""
    for token in tokens:
        if token.get("type") == "image":
            yield token.get("attrs", {}).get("url", "")
        children = token.get("children")
        if isinstance(children, list):
            yield from iter_image_urls(children)


def iter_inline_images(text: str) -> Iterator[ImageMatch]:
    """Yield the inline image links mistune recognizes, in document order."""
    candidates = _candidates(text)
    if not candidates:
        return

    marker = f"mkslides{uuid.uuid4().hex}i"
    parts = []
    last = 0
    for idx, match in enumerate(candidates):
        parts.append(text[last:match.start])
        parts.append(f"{marker}{idx}")
        last = match.end
    parts.append(text[last:])

    confirmed = set()
    for url in iter_image_urls(parse_ast("".join(parts))):
        suffix = url[len(marker):] if url.startswith(marker) else ""
        if suffix.isdigit():
            confirmed.add(int(suffix))

    for idx, match in enumerate(candidates):
        if idx in confirmed:
            yield match


def grab_image_links(text: str) -> List[str]:
    """Return unique inline image targets in order of first appearance."""
    seen = set()
    targets = []
    for match in iter_inline_images(text):
        if match.target and match.target not in seen:
            seen.add(match.target)
            targets.append(match.target)
    return targets


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def is_remote_link(target: str) -> bool:
    """
    True when *target* contains a scheme separator.

    Plain substring test: protocol-relative links (``//host/x.png``) and
    ``data:`` URIs count as local.
    """
    return SCHEME_SEPARATOR in target


def split_links(targets: List[str]) -> Tuple[List[str], List[str]]:
    """Partition *targets* into ``(local, remote)``, keeping order."""
    local, remote = [], []
    for t in targets:
        (remote if is_remote_link(t) else local).append(t)
    return local, remote


# ---------------------------------------------------------------------------
# Rewriting
# ---------------------------------------------------------------------------

def format_destination(destination: str) -> str:
    if _NEEDS_BRACKETS_RE.search(destination):
        return f"<{destination}>"
    return destination


def rewrite_image_links(text: str, mapping: Dict[str, str]) -> str:
    """
    Point every inline image whose target is in *mapping* at its new path.

    Only the target is replaced; alt text, titles and everything else keep
    their exact bytes.
    """
    if not mapping:
        return text
    parts = []
    last = 0
    for match in iter_inline_images(text):
        new = mapping.get(match.target)
        if new is None:
            continue
        parts.append(text[last:match.start])
        parts.append(format_destination(new))
        last = match.end
    parts.append(text[last:])
    return "".join(parts)
