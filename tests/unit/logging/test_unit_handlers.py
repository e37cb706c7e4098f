# tests/unit/logging/test_unit_handlers.py — v2
"""Tests for logging/handlers.py."""

from __future__ import annotations

import pytest

from pageflow.logging.handlers import create_rotating_handler, parse_size


class TestParseSize:
    @pytest.mark.parametrize(
        "text,expected",
        [("10MB", 10 * 1024**2), ("512kb", 512 * 1024), ("1 GB", 1024**3), ("300", 300)],
    )
    def test_valid(self, text, expected):
        assert parse_size(text) == expected

    @pytest.mark.parametrize("text", ["", "ten MB", "10TB", "-1MB"])
    def test_invalid(self, text):
        with pytest.raises(ValueError, match="Invalid size"):
            parse_size(text)


class TestCreateRotatingHandler:
    def test_creates_directory(self, tmp_path):
        target = tmp_path / "nested" / "dir" / "app.log"
        handler = create_rotating_handler(target, rotation="2MB", retention=5)
        try:
            assert target.parent.is_dir()
            assert handler.maxBytes == 2 * 1024**2
            assert handler.backupCount == 5
        finally:
            handler.close()
