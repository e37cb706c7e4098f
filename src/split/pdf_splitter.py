# src/split/pdf_splitter.py — v1
"""PDF splitter using PyMuPDF (fitz).

Requires the 'pymupdf' package.
"""

from __future__ import annotations

from pathlib import Path

from pageflow.core.errors import NonRetryableDocumentError
from pageflow.core.models import PageInfo
from pageflow.split.base_splitter import BaseSplitter

_PDF_POINTS_PER_INCH = 72


def _fitz():
    try:
        import fitz  # PyMuPDF
    except ImportError as e:
        raise ImportError(
            "pymupdf package required for PDF splitting: pip install pymupdf"
        ) from e
    return fitz


def count_pdf_pages(source: Path) -> int:
    fitz = _fitz()
    with fitz.open(str(source)) as doc:
        if doc.needs_pass:
            raise NonRetryableDocumentError(
                f"{source.name} is encrypted", "password_protected"
            )
        return doc.page_count


def render_pdf_pages(
    source: Path, selected: list[int], out_dir: Path, dpi: int
) -> list[PageInfo]:
    """Render 1-based source pages to out_dir/page-{n}.png, n sequential."""
    fitz = _fitz()
    out_dir.mkdir(parents=True, exist_ok=True)
    zoom = dpi / _PDF_POINTS_PER_INCH
    matrix = fitz.Matrix(zoom, zoom)
    pages: list[PageInfo] = []

    with fitz.open(str(source)) as doc:
        if doc.needs_pass:
            raise NonRetryableDocumentError(
                f"{source.name} is encrypted", "password_protected"
            )
        for n, page_source in enumerate(selected, start=1):
            pix = doc[page_source - 1].get_pixmap(matrix=matrix, alpha=False)
            image_path = out_dir / f"page-{n}.png"
            pix.save(str(image_path))
            pages.append(PageInfo(page=n, page_source=page_source, image_path=image_path))
    return pages


class PdfSplitter(BaseSplitter):
    """Splitter for PDF files."""

    @property
    def supported_extensions(self) -> list[str]:
        return [".pdf"]

    def _count_pages(self, source: Path) -> int:
        return count_pdf_pages(source)

    def _render(self, source: Path, selected: list[int], out_dir: Path) -> list[PageInfo]:
        return render_pdf_pages(source, selected, out_dir, self._render_dpi)
