# src/split/splitter_factory.py — v1
"""Factory: instantiate a splitter from a filename's extension."""

from __future__ import annotations

from pathlib import Path

from pageflow.config.settings import Settings
from pageflow.core.models import DocumentType
from pageflow.split.base_splitter import BaseSplitter
from pageflow.split.image_splitter import ImageSplitter
from pageflow.split.office_splitter import OfficeSplitter
from pageflow.split.pdf_splitter import PdfSplitter

# Registry maps extension → (splitter class, document type).
_SPLITTER_REGISTRY: dict[str, tuple[type[BaseSplitter], DocumentType]] = {}


def _register_defaults() -> None:
    """Register built-in splitters."""
    for cls, doc_type in [
        (PdfSplitter, "pdf"),
        (ImageSplitter, "image"),
        (OfficeSplitter, "office"),
    ]:
        for ext in cls(Path(".")).supported_extensions:
            _SPLITTER_REGISTRY[ext] = (cls, doc_type)


_register_defaults()


class UnsupportedFormatError(ValueError):
    """Raised when no splitter is available for a format."""


def _lookup(filename: str) -> tuple[type[BaseSplitter], DocumentType]:
    ext = Path(filename).suffix.lower()
    entry = _SPLITTER_REGISTRY.get(ext)
    if entry is None:
        raise UnsupportedFormatError(
            f"No splitter for format {ext or filename!r}. "
            f"Supported: {', '.join(supported_extensions())}"
        )
    return entry


def document_type(filename: str) -> DocumentType:
    """Document type ("pdf", "image" or "office") for a filename.

    Raises:
        UnsupportedFormatError: If the extension is not supported.
    """
    return _lookup(filename)[1]


def create_splitter(filename: str, settings: Settings) -> BaseSplitter:
    """Create the splitter for a document.

    Raises:
        UnsupportedFormatError: If no splitter is registered.
    """
    cls, _ = _lookup(filename)
    return cls.from_settings(settings)


def supported_extensions() -> list[str]:
    """Return list of supported file extensions."""
    return sorted(_SPLITTER_REGISTRY)
