# src/split/image_splitter.py — v1
"""Single-image "splitter": converts the upload to page-1.png with Pillow.

No page-range resolution; the output is always exactly one page.
"""

from __future__ import annotations

from pathlib import Path

from PIL import Image

from pageflow.core.models import PageInfo
from pageflow.split.base_splitter import BaseSplitter


class ImageSplitter(BaseSplitter):
    """Splitter for raster images."""

    @property
    def supported_extensions(self) -> list[str]:
        return [".png", ".jpg", ".jpeg", ".webp", ".bmp", ".gif", ".tif", ".tiff"]

    def _select_pages(self, expression: str, total_pages: int) -> list[int]:
        return [1]

    def _count_pages(self, source: Path) -> int:
        with Image.open(source) as img:
            img.verify()
        return 1

    def _render(self, source: Path, selected: list[int], out_dir: Path) -> list[PageInfo]:
        out_dir.mkdir(parents=True, exist_ok=True)
        image_path = out_dir / "page-1.png"
        with Image.open(source) as img:
            if img.mode not in ("RGB", "RGBA", "L"):
                img = img.convert("RGBA" if "A" in img.getbands() else "RGB")
            img.save(image_path, format="PNG")
        return [PageInfo(page=1, page_source=1, image_path=image_path)]
