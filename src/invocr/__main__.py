#!/usr/bin/env python3
"""
InvOcr - Entry point for python -m invocr

This module allows the package to be run as a module:
    python -m invocr recognize image.jpg
"""

import sys

from invocr import main

if __name__ == "__main__":
    sys.exit(main())
