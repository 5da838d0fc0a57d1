"""
mkslides pipeline kernels.

Stage 1: deck_slide_scan
Stage 2: deck_slide_parse
Stage 3: deck_package
"""
