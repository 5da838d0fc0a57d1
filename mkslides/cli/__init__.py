"""
mkslides CLI: mkslidesctl command-line interface.

Usage:
    python -m mkslides.cli.mkslidesctl from-config <config.yaml>
    python -m mkslides.cli.mkslidesctl from-cli <slide_dir> <template> <output_dir>
    python -m mkslides.cli.mkslidesctl plan <config.yaml>
"""

from mkslides.cli.mkslidesctl import main
