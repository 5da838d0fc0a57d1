"""
Pytest Configuration and Fixtures
"""

import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


# Minimal 1x1 PNG
PNG_BYTES = (
    b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01"
    b"\x08\x06\x00\x00\x00\x1f\x15\xc4\x89\x00\x00\x00\rIDATx\x9cc\xf8\x0f"
    b"\x00\x00\x01\x01\x00\x05\x18\xd8N\x00\x00\x00\x00IEND\xaeB`\x82"
)

TEMPLATE = """\
<html><head><title>{{ title }}</title></head>
<body>
{% for fc in ingested_files %}<section data-markdown><textarea data-template>
{{ fc }}
</textarea></section>
{% endfor %}</body></html>
"""

INTRO_SLIDE = """\
# Introduction

![alt](../img/1.png)
"""

BODY_SLIDE = "Slide 2\n"


@pytest.fixture
def deck(tmp_path) -> Path:
    """A presentation folder: slides/, img/ and a template."""
    root = tmp_path / "deck"
    slides = root / "slides"
    slides.mkdir(parents=True)
    (root / "img").mkdir()
    (root / "img" / "1.png").write_bytes(PNG_BYTES)

    (slides / "1_intro.md").write_text(INTRO_SLIDE, encoding="utf-8")
    (slides / "2_body.md").write_text(BODY_SLIDE, encoding="utf-8")

    (root / "template.html").write_text(TEMPLATE, encoding="utf-8")
    return root


@pytest.fixture
def workspace(tmp_path) -> Path:
    """Workspace directory for kernel outputs (separate from the deck)."""
    ws = tmp_path / "workspace"
    ws.mkdir()
    return ws


def _write_slides(directory: Path, slides: dict) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    for name, text in slides.items():
        (directory / name).write_text(text, encoding="utf-8")
    return directory


@pytest.fixture
def make_slides():
    """Factory: make_slides(directory, {filename: text}) -> directory."""
    return _write_slides
