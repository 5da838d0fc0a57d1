"""
mkslides: Markdown slide folder to a self-contained presentation

Assembles an ordered set of Markdown slides into a single rendered document
and relocates every locally referenced image next to it, so the output
directory can be moved or served as-is.

Stage 1 (Collection):
    deck_slide_scan:   List the slide folder, derive ordering keys, sort

Stage 2 (Parsing):
    deck_slide_parse:  Extract inline images, classify local/remote,
                       resolve and rewrite local references

Stage 3 (Packaging):
    deck_package:      Render through the template engine, write the
                       document, copy relocated assets
"""

__version__ = "0.4.0"

__all__ = ["__version__"]
