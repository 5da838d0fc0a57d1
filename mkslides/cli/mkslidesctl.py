"""
mkslidesctl: CLI for the mkslides pipeline.

Commands:
    from-config   Build a presentation described by a YAML config file
    from-cli      Build a presentation from command-line arguments
    plan          Show slide order and image relocations without writing output

Verbosity: -v warnings, -vv progress, -vvv debug detail and tracebacks.
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

import logging

from mkslides import __version__
from mkslides.config import DEFAULT_OUTPUT_FILENAME, DEFAULT_TITLE, DeckConfig, from_cli_args, load_config
from mkslides.errors import DeckError
from mkslides.pipeline import PipelineResult, build_presentation, plan_presentation

logger = logging.getLogger(__name__)

# ANSI color helpers (auto-disabled for non-TTY)
_USE_COLOR = sys.stdout.isatty()


def _c(code: str, text: str) -> str:
    if not _USE_COLOR:
        return text
    return f"\033[{code}m{text}\033[0m"


def _bold(text: str) -> str:
    return _c("1", text)


def _green(text: str) -> str:
    return _c("32", text)


def _yellow(text: str) -> str:
    return _c("33", text)


def _red(text: str) -> str:
    return _c("31", text)


def _cyan(text: str) -> str:
    return _c("36", text)


def _dim(text: str) -> str:
    return _c("2", text)


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

_VERBOSITY_LEVELS = [logging.ERROR, logging.WARNING, logging.INFO, logging.DEBUG]


def setup_logging(verbosity: int) -> int:
    """Configure root logging from a -v count. Returns the level used."""
    level = _VERBOSITY_LEVELS[min(max(verbosity, 0), len(_VERBOSITY_LEVELS) - 1)]
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-7s | %(message)s",
        datefmt="%H:%M:%S",
    )
    return level


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------

def _print_build(result: PipelineResult) -> None:
    for out in result.outputs:
        print(f"  [{_cyan(out.kernel_name)}] {_green(out.summary)}")
    pkg = result.package
    print()
    print(_green(f"Slides written to `{pkg.output_file}`"))
    print(f"  Assets: {_bold(str(pkg.assets_copied))} "
          f"({_dim(f'{pkg.total_bytes:,} bytes total')})")
    if pkg.overwritten:
        print(f"  {_yellow('Existing document was overwritten')}")
    if result.workspace:
        print(f"  Workspace: {_dim(str(result.workspace))}")


def _print_plan(result: PipelineResult) -> None:
    slides = result.parsed_slides
    print(_bold(f"Slides ({len(slides)}):"))
    for position, slide in enumerate(slides, 1):
        print(f"  {position:3d}. {slide.filename}")
        for ref in slide.local_images:
            print(f"         {_dim(ref.target)} -> {_cyan(ref.destination)}")
        for url in slide.remote_links:
            print(f"         {_dim(url)} {_yellow('(remote, kept)')}")
    print()
    print(f"Assets to copy: {_bold(str(len(result.copy_plan)))}")


def _execute(config: DeckConfig, args: argparse.Namespace) -> int:
    workspace = Path(args.workspace) if args.workspace else None

    if getattr(args, "dry_run", False):
        print(_bold(f"mkslides plan: {config.title}"))
        print(f"Slides: {_dim(str(config.slide_dir))}")
        print()
        _print_plan(plan_presentation(config, workspace))
        return 0

    print(_bold(f"mkslides: {config.title}"))
    print(f"Slides: {_dim(str(config.slide_dir))}")
    print(f"Output: {_dim(str(config.output_dir))}")
    print()
    _print_build(build_presentation(config, workspace=workspace))
    return 0


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def _apply_overrides(config: DeckConfig, args: argparse.Namespace) -> DeckConfig:
    """Command-line flags take precedence over the config file."""
    overrides = config.to_dict()
    if args.ordering:
        overrides["ordering"] = args.ordering
    if args.render:
        overrides["render_mode"] = args.render
    if args.jobs:
        overrides["max_workers"] = args.jobs
    return DeckConfig.from_dict(overrides)


def cmd_from_config(args: argparse.Namespace) -> int:
    """Build from a YAML configuration file."""
    config = _apply_overrides(load_config(Path(args.config)), args)
    return _execute(config, args)


def cmd_from_cli(args: argparse.Namespace) -> int:
    """Build from command-line arguments."""
    config = from_cli_args(
        slide_dir=args.slide_dir,
        template_file=args.template_file,
        output_dir=args.output_dir,
        title=args.title,
        output_filename=args.output_file,
        include_files=args.include,
        ordering=args.ordering or "natural",
        render_mode=args.render or "markdown",
        max_workers=args.jobs or 1,
    )
    return _execute(config, args)


def cmd_plan(args: argparse.Namespace) -> int:
    """Dry run of a YAML configuration."""
    args.dry_run = True
    return cmd_from_config(args)


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------

def _add_common(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "-v", "--verbose", action="count", default=0,
        help="Increase verbosity (-v warnings, -vv info, -vvv debug)"
    )
    p.add_argument(
        "--ordering", choices=["natural", "numeric"], default=None,
        help="Slide ordering: natural (default) or strict numeric prefixes"
    )
    p.add_argument(
        "--render", choices=["markdown", "html"], default=None,
        help="Slide body format handed to the template (default: markdown)"
    )
    p.add_argument(
        "-j", "--jobs", type=int, default=None,
        help="Parse slides with N worker threads (default: 1)"
    )
    p.add_argument("-w", "--workspace", help="Keep stage outputs in this directory")


def build_parser() -> argparse.ArgumentParser:
    """Build the mkslides argument parser."""
    parser = argparse.ArgumentParser(
        prog="mkslides",
        description="Assemble a folder of Markdown slides into a self-contained presentation",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    sub = parser.add_subparsers(dest="command", help="Available commands")

    # --- from-config ---
    p_conf = sub.add_parser("from-config", help="Build from a YAML config file")
    p_conf.add_argument("config", help="Path to the YAML config file")
    p_conf.add_argument("--dry-run", action="store_true", help="Plan only, write nothing")
    _add_common(p_conf)
    p_conf.set_defaults(func=cmd_from_config)

    # --- from-cli ---
    p_cli = sub.add_parser("from-cli", help="Build from command-line arguments")
    p_cli.add_argument("slide_dir", help="Directory containing the slides")
    p_cli.add_argument("template_file", help="Template file to render the slides with")
    p_cli.add_argument("output_dir", help="Directory receiving the presentation")
    p_cli.add_argument("-t", "--title", default=DEFAULT_TITLE, help="Presentation title")
    p_cli.add_argument(
        "-o", "--output-file", default=DEFAULT_OUTPUT_FILENAME,
        help=f"Output file name (default: {DEFAULT_OUTPUT_FILENAME})"
    )
    p_cli.add_argument(
        "-i", "--include", action="append", default=None, metavar="FILE",
        help="Slide file relative to slide_dir; repeat to set an explicit order"
    )
    p_cli.add_argument("--dry-run", action="store_true", help="Plan only, write nothing")
    _add_common(p_cli)
    p_cli.set_defaults(func=cmd_from_cli)

    # --- plan ---
    p_plan = sub.add_parser("plan", help="Show slide order and image relocations")
    p_plan.add_argument("config", help="Path to the YAML config file")
    _add_common(p_plan)
    p_plan.set_defaults(func=cmd_plan)

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for mkslides."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    setup_logging(args.verbose)

    try:
        return args.func(args)
    except DeckError as e:
        print(_red(f"Error: {e}"), file=sys.stderr)
        if args.verbose >= 3:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
