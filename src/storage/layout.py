# src/storage/layout.py — v2
"""Per-task directory structure.

{data_dir}/{task_id}/
    {filename}              uploaded source document
    split/page-{n}.png      rendered page images (sequential n)
    {stem}.md               merged Markdown output
"""

from __future__ import annotations

from pathlib import Path

SPLIT_DIR = "split"
PAGE_IMAGE_PREFIX = "page-"
PAGE_IMAGE_EXT = ".png"


def task_dir(data_dir: Path, task_id: str) -> Path:
    """Return root directory for a task."""
    return data_dir / task_id


def source_path(data_dir: Path, task_id: str, filename: str) -> Path:
    """Return the stored upload for a task."""
    return task_dir(data_dir, task_id) / Path(filename).name


def split_dir(data_dir: Path, task_id: str) -> Path:
    """Return the rendered-images directory for a task."""
    return task_dir(data_dir, task_id) / SPLIT_DIR


def page_image_path(data_dir: Path, task_id: str, page: int) -> Path:
    return split_dir(data_dir, task_id) / f"{PAGE_IMAGE_PREFIX}{page}{PAGE_IMAGE_EXT}"


def merged_output_path(data_dir: Path, task_id: str, filename: str) -> Path:
    """Return the merged Markdown path, named after the source stem."""
    return task_dir(data_dir, task_id) / f"{Path(filename).stem}.md"
