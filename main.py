#!/usr/bin/env python3
"""
main.py - Quick-start entry point.

    python main.py run my_photo.jpg

Or use the full CLI:

    python -m tile_mosaic.cli run --help
    python -m tile_mosaic.cli resume --scratch mosaic.jpg
"""

from tile_mosaic.cli import app

if __name__ == "__main__":
    app()
