"""
Tests for deck_slide_parse: asset resolution, destination naming, slide
parsing and the asset copy plan.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from mkslides.base import KernelInput
from mkslides.errors import AssetNotFoundError, ConfigError, DeckError, IOWriteError, SlideReadError
from mkslides.kernels.deck_slide_parse import (
    DeckSlideParseKernel,
    assign_destinations,
    build_copy_plan,
    destination_for,
    parse_slide,
    parse_slides,
    resolve_local_image,
)
from mkslides.kernels.deck_slide_scan import DeckSlideScanKernel, discover_slides
from mkslides.models import AssetCopyPlan, ParsedSlide, RenderMode, SlideSource


def _source(path: Path) -> SlideSource:
    return SlideSource(path=path.resolve(), filename=path.name, ordering_key=path.stem)


@pytest.fixture
def two_slides_same_image(tmp_path):
    """a.md and b.md each reference their own x.png."""
    root = tmp_path / "talk"
    for part in ("a", "b"):
        (root / "assets" / part).mkdir(parents=True)
        (root / "assets" / part / "x.png").write_bytes(f"image {part}".encode())
    (root / "a.md").write_text("![a](assets/a/x.png)\n", encoding="utf-8")
    (root / "b.md").write_text("![b](assets/b/x.png)\n", encoding="utf-8")
    return root


# ---------------------------------------------------------------------------
# Resolution and destinations
# ---------------------------------------------------------------------------

class TestResolveLocalImage:

    def test_relative_to_slide_directory(self, deck):
        slide = deck / "slides" / "1_intro.md"
        resolved = resolve_local_image("../img/1.png", slide)
        assert resolved == (deck / "img" / "1.png").resolve()
        assert resolved.is_absolute()

    def test_dot_segments_are_canonicalized(self, deck):
        slide = deck / "slides" / "1_intro.md"
        resolved = resolve_local_image("./../slides/../img/./1.png", slide)
        assert resolved == (deck / "img" / "1.png").resolve()

    def test_absolute_target(self, deck):
        target = str((deck / "img" / "1.png").resolve())
        assert resolve_local_image(target, deck / "slides" / "1_intro.md") == Path(target)

    def test_percent_encoded_target(self, tmp_path):
        (tmp_path / "my chart.png").write_bytes(b"png")
        resolved = resolve_local_image("my%20chart.png", tmp_path / "s.md")
        assert resolved == (tmp_path / "my chart.png").resolve()

    def test_missing_image(self, deck):
        slide = deck / "slides" / "1_intro.md"
        with pytest.raises(AssetNotFoundError) as exc:
            resolve_local_image("../img/missing.png", slide)
        assert exc.value.target == "../img/missing.png"
        assert exc.value.slide == slide

    def test_directory_is_not_an_image(self, deck):
        with pytest.raises(AssetNotFoundError):
            resolve_local_image("../img", deck / "slides" / "1_intro.md")


class TestDestinations:

    def test_destination_layout(self):
        assert destination_for("1_intro.md", "1.png") == "img/1_intro.md/1.png"

    def test_same_source_maps_once(self, tmp_path):
        src = tmp_path / "x.png"
        assert assign_destinations("s.md", [src, src]) == {src: "img/s.md/x.png"}

    def test_same_basename_within_one_slide(self, tmp_path):
        a, b, c = tmp_path / "a" / "x.png", tmp_path / "b" / "x.png", tmp_path / "c" / "x.png"
        assert assign_destinations("s.md", [a, b, c]) == {
            a: "img/s.md/x.png",
            b: "img/s.md/x-1.png",
            c: "img/s.md/x-2.png",
        }


# ---------------------------------------------------------------------------
# Slide parsing
# ---------------------------------------------------------------------------

class TestParseSlide:

    def test_local_image_is_relocated(self, deck):
        slide = parse_slide(_source(deck / "slides" / "1_intro.md"))

        assert isinstance(slide, ParsedSlide)
        assert slide.content == "# Introduction\n\n![alt](img/1_intro.md/1.png)\n"
        [ref] = slide.local_images
        assert ref.target == "../img/1.png"
        assert ref.source == (deck / "img" / "1.png").resolve()
        assert ref.destination == "img/1_intro.md/1.png"

    def test_slide_without_images(self, deck):
        slide = parse_slide(_source(deck / "slides" / "2_body.md"))
        assert slide.content == "Slide 2\n"
        assert slide.local_images == ()
        assert slide.remote_links == ()

    def test_remote_links_untouched(self, tmp_path):
        text = "![r](http://example.com/x.png)\n![l](l.png)\n"
        (tmp_path / "l.png").write_bytes(b"l")
        (tmp_path / "s.md").write_text(text, encoding="utf-8")

        slide = parse_slide(_source(tmp_path / "s.md"))

        assert "![r](http://example.com/x.png)" in slide.content
        assert slide.remote_links == ("http://example.com/x.png",)
        assert [r.destination for r in slide.local_images] == ["img/s.md/l.png"]

    def test_missing_local_image_fails(self, tmp_path):
        (tmp_path / "s.md").write_text("![gone](gone.png)\n", encoding="utf-8")
        with pytest.raises(AssetNotFoundError):
            parse_slide(_source(tmp_path / "s.md"))

    def test_two_spellings_of_same_image(self, tmp_path):
        (tmp_path / "img").mkdir()
        (tmp_path / "img" / "x.png").write_bytes(b"x")
        (tmp_path / "s.md").write_text("![a](img/x.png)\n![b](./img/x.png)\n", encoding="utf-8")

        slide = parse_slide(_source(tmp_path / "s.md"))

        assert {r.destination for r in slide.local_images} == {"img/s.md/x.png"}
        assert slide.content == "![a](img/s.md/x.png)\n![b](img/s.md/x.png)\n"
        assert len(build_copy_plan([slide])) == 1

    def test_html_render_mode(self, deck):
        slide = parse_slide(_source(deck / "slides" / "1_intro.md"), RenderMode.HTML)
        assert "<h1>Introduction</h1>" in slide.content
        assert 'src="img/1_intro.md/1.png"' in slide.content
        assert 'alt="alt"' in slide.content

    def test_html_render_keeps_remote_url(self, tmp_path):
        (tmp_path / "s.md").write_text("![r](http://example.com/x.png)\n", encoding="utf-8")
        slide = parse_slide(_source(tmp_path / "s.md"), RenderMode.HTML)
        assert 'src="http://example.com/x.png"' in slide.content

    def test_target_with_balanced_parentheses(self, tmp_path):
        (tmp_path / "fig(1).png").write_bytes(b"png")
        (tmp_path / "s.md").write_text("![a](fig(1).png)\n", encoding="utf-8")

        slide = parse_slide(_source(tmp_path / "s.md"))

        [ref] = slide.local_images
        assert ref.source == (tmp_path / "fig(1).png").resolve()
        assert slide.content == "![a](<img/s.md/fig(1).png>)\n"

    @pytest.mark.parametrize("text", [
        "Text\n\n    ![x](missing.png)\n",
        "<!-- ![x](missing.png) -->\n",
        "<div>\n![x](missing.png)\n</div>\n",
        "\\![x](missing.png)\n",
        "```\n![x](missing.png)\n```\n",
    ])
    def test_images_outside_prose_are_not_resolved(self, tmp_path, text):
        (tmp_path / "s.md").write_text(text, encoding="utf-8")
        slide = parse_slide(_source(tmp_path / "s.md"))
        assert slide.local_images == ()
        assert slide.content == text

    def test_html_render_escapes_remote_query(self, tmp_path):
        url = "http://example.com/x.png?a=1&b=2"
        (tmp_path / "s.md").write_text(f"![r]({url})\n", encoding="utf-8")
        assert f"![r]({url})" in parse_slide(_source(tmp_path / "s.md")).content
        html = parse_slide(_source(tmp_path / "s.md"), RenderMode.HTML).content
        assert 'src="http://example.com/x.png?a=1&amp;b=2"' in html

    def test_unreadable_slide(self, tmp_path):
        (tmp_path / "bad.md").write_bytes(b"\xff\xfe\x00bad")
        with pytest.raises(SlideReadError):
            parse_slide(_source(tmp_path / "bad.md"))

    def test_parsed_slide_is_immutable(self, deck):
        slide = parse_slide(_source(deck / "slides" / "2_body.md"))
        with pytest.raises(AttributeError):
            slide.content = "changed"


class TestParseSlides:

    def test_parallel_preserves_scan_order(self, tmp_path, make_slides):
        slide_dir = make_slides(tmp_path / "slides", {
            f"{n}_s.md": f"slide {n}\n" for n in range(1, 21)
        })
        sources = discover_slides(slide_dir)

        sequential = parse_slides(sources, max_workers=1)
        parallel = parse_slides(sources, max_workers=8)

        assert [s.filename for s in parallel] == [s.filename for s in sources]
        assert parallel == sequential

    def test_parallel_raises_earliest_failure(self, tmp_path, make_slides):
        slide_dir = make_slides(tmp_path / "slides", {
            "1_ok.md": "ok\n",
            "2_bad.md": "![x](missing-2.png)\n",
            "3_bad.md": "![x](missing-3.png)\n",
        })
        with pytest.raises(AssetNotFoundError) as exc:
            parse_slides(discover_slides(slide_dir), max_workers=3)
        assert exc.value.target == "missing-2.png"


# ---------------------------------------------------------------------------
# Copy plan
# ---------------------------------------------------------------------------

class TestCopyPlan:

    def test_no_collision_between_slides(self, two_slides_same_image):
        root = two_slides_same_image
        slides = parse_slides([_source(root / "a.md"), _source(root / "b.md")])
        plan = build_copy_plan(slides)

        entries = {dest: src for src, dest in plan}
        assert entries == {
            "img/a.md/x.png": (root / "assets" / "a" / "x.png").resolve(),
            "img/b.md/x.png": (root / "assets" / "b" / "x.png").resolve(),
        }

    def test_duplicate_pair_is_idempotent(self, tmp_path):
        plan = AssetCopyPlan()
        assert plan.add(tmp_path / "x.png", "img/s.md/x.png") is True
        assert plan.add(tmp_path / "x.png", "img/s.md/x.png") is False
        assert len(plan) == 1

    def test_conflicting_sources_rejected(self, tmp_path):
        plan = AssetCopyPlan()
        plan.add(tmp_path / "a.png", "img/s.md/x.png")
        with pytest.raises(IOWriteError) as exc:
            plan.add(tmp_path / "b.png", "img/s.md/x.png")
        assert isinstance(exc.value, DeckError)

    def test_plan_round_trips_through_json(self, two_slides_same_image):
        root = two_slides_same_image
        plan = build_copy_plan(parse_slides([_source(root / "a.md"), _source(root / "b.md")]))
        restored = AssetCopyPlan.from_dict(json.loads(json.dumps(plan.to_dict())))
        assert list(restored) == list(plan)


# ---------------------------------------------------------------------------
# Kernel
# ---------------------------------------------------------------------------

class TestDeckSlideParseKernel:

    def test_run_after_scan(self, deck, workspace):
        config = {"slide_dir": str(deck / "slides")}
        scan = DeckSlideScanKernel().run(KernelInput(workspace=workspace, config=config))

        output = DeckSlideParseKernel().run(KernelInput(
            workspace=workspace,
            config=config,
            dependencies={"deck_slide_scan": scan.output_file},
        ))

        assert output.output_file == workspace / "stage2" / "deck_slide_parse.json"
        slides = [ParsedSlide.from_dict(s) for s in output.data["slides"]]
        assert [s.filename for s in slides] == ["1_intro.md", "2_body.md"]
        assert output.data["copy_plan"] == [{
            "source": str((deck / "img" / "1.png").resolve()),
            "destination": "img/1_intro.md/1.png",
        }]
        assert output.data["statistics"]["unique_assets"] == 1

    def test_missing_dependency(self, deck, workspace):
        with pytest.raises(ConfigError):
            DeckSlideParseKernel().run(KernelInput(
                workspace=workspace,
                config={"slide_dir": str(deck / "slides")},
            ))
