# src/__init__.py — v1
"""pageflow: document to Markdown conversion pipeline."""

from pageflow.version import __version__

__all__ = ["__version__"]
