# src/split/office_splitter.py — v1
"""Office document splitter.

Converts the upload to PDF with LibreOffice in headless mode, then renders
it like a PDF. For spreadsheets the page range selects sheets rather than
pages: unselected sheets are hidden (openpyxl) before conversion and every
page of the resulting PDF is rendered.
"""

from __future__ import annotations

import asyncio
import logging
import zipfile
from pathlib import Path

from pageflow.config.settings import Settings
from pageflow.core.errors import NonRetryableDocumentError
from pageflow.core.models import PageInfo, Task
from pageflow.core.retry import RetryPolicy, with_backoff
from pageflow.split import page_range
from pageflow.split.base_splitter import BaseSplitter
from pageflow.split.pdf_splitter import count_pdf_pages, render_pdf_pages

logger = logging.getLogger(__name__)

SPREADSHEET_EXTENSIONS = frozenset({".xlsx", ".xlsm"})


class OfficeConversionError(RuntimeError):
    """LibreOffice exited with an error or produced no PDF."""


class OfficeSplitter(BaseSplitter):
    """Splitter for word-processing, presentation and spreadsheet files."""

    def __init__(
        self,
        *args,
        binary: str = "soffice",
        convert_timeout_s: float = 180.0,
        **kwargs,
    ) -> None:
        super().__init__(*args, **kwargs)
        self._binary = binary
        self._convert_timeout_s = convert_timeout_s

    @classmethod
    def from_settings(cls, settings: Settings) -> OfficeSplitter:
        return cls(
            data_dir=settings.resolved_data_dir,
            policy=RetryPolicy(
                max_attempts=settings.split_max_retries,
                base_delay_s=settings.split_retry_base_delay_ms / 1000,
            ),
            render_dpi=settings.split_render_dpi,
            binary=settings.office_converter_binary,
            convert_timeout_s=settings.office_convert_timeout_ms / 1000,
        )

    @property
    def supported_extensions(self) -> list[str]:
        return [
            ".doc", ".docx", ".odt", ".rtf",
            ".ppt", ".pptx", ".odp",
            ".xls", ".xlsx", ".xlsm", ".ods",
        ]

    async def _prepare(self, task: Task, source: Path, out_dir: Path) -> tuple[Path, str]:
        out_dir.mkdir(parents=True, exist_ok=True)
        expression = task.page_range
        document = source

        if source.suffix.lower() in SPREADSHEET_EXTENSIONS and expression.strip():
            document = await asyncio.to_thread(
                self._hide_unselected_sheets, source, expression, out_dir
            )
            expression = ""

        pdf_path = await with_backoff(
            lambda: self._convert_to_pdf(document, out_dir),
            self._policy,
            f"convert {source.name} to PDF",
            sleep=self._sleep,
        )
        return pdf_path, expression

    def _count_pages(self, source: Path) -> int:
        return count_pdf_pages(source)

    def _render(self, source: Path, selected: list[int], out_dir: Path) -> list[PageInfo]:
        return render_pdf_pages(source, selected, out_dir, self._render_dpi)

    async def _convert_to_pdf(self, source: Path, out_dir: Path) -> Path:
        """Run `soffice --headless --convert-to pdf` into out_dir."""
        if not source.exists():
            raise FileNotFoundError(f"No such file: {source}")
        try:
            proc = await asyncio.create_subprocess_exec(
                self._binary, "--headless", "--convert-to", "pdf",
                "--outdir", str(out_dir), str(source),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            # Missing or non-executable binary
            raise NonRetryableDocumentError(
                f"LibreOffice ({self._binary}) is not installed or cannot be run: "
                f"{e.strerror or e}",
                "generic",
            ) from e
        try:
            _, stderr = await asyncio.wait_for(
                proc.communicate(), timeout=self._convert_timeout_s
            )
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise
        pdf_path = out_dir / f"{source.stem}.pdf"
        if proc.returncode != 0 or not pdf_path.exists():
            raise OfficeConversionError(
                f"{self._binary} exited with {proc.returncode}: "
                f"{stderr.decode(errors='replace').strip()}"
            )
        logger.debug("Converted %s to %s", source.name, pdf_path)
        return pdf_path

    @staticmethod
    def _hide_unselected_sheets(source: Path, expression: str, out_dir: Path) -> Path:
        """Write a copy of the workbook where only the selected sheets are visible."""
        try:
            import openpyxl
        except ImportError as e:
            raise ImportError(
                "openpyxl package required for sheet selection: pip install openpyxl"
            ) from e

        from openpyxl.utils.exceptions import InvalidFileException

        try:
            workbook = openpyxl.load_workbook(source)
        except (zipfile.BadZipFile, InvalidFileException, KeyError, ValueError) as e:
            raise NonRetryableDocumentError(
                f"Cannot read workbook {source.name}: {e}", "corrupted"
            ) from e
        selected = set(page_range.select_items(expression, workbook.sheetnames))
        for sheet in workbook.worksheets:
            sheet.sheet_state = "visible" if sheet.title in selected else "hidden"
        # The active sheet must be visible
        workbook.active = workbook.sheetnames.index(
            next(n for n in workbook.sheetnames if n in selected)
        )
        filtered = out_dir / f"{source.stem}{source.suffix}"
        workbook.save(filtered)
        logger.info("Selected sheets %s of %s", sorted(selected), source.name)
        return filtered
