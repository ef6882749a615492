"""Tests for b2media/common/logging.py."""

from __future__ import annotations

import json
import logging

from b2media.common.logging import JsonFormatter, mask_secret, setup_logging


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="b2media.uploads",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="upload_complete",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    def test_formats_basic_fields(self) -> None:
        payload = json.loads(JsonFormatter().format(_record()))

        assert payload == {
            "level": "INFO",
            "logger": "b2media.uploads",
            "message": "upload_complete",
        }

    def test_merges_extra_payload(self) -> None:
        payload = json.loads(
            JsonFormatter().format(_record(extra={"path": "a/b.png", "parts": 3}))
        )

        assert payload["path"] == "a/b.png"
        assert payload["parts"] == 3


class TestSetupLogging:
    def test_debug_toggle_sets_package_level(self) -> None:
        setup_logging(debug=True)
        assert logging.getLogger("b2media").level == logging.DEBUG

        setup_logging(debug=False)
        assert logging.getLogger("b2media").level == logging.INFO


class TestMaskSecret:
    def test_masks_long_values(self) -> None:
        assert mask_secret("0123456789abcdef") == "0123...cdef (len:16)"

    def test_masks_short_values_fully(self) -> None:
        assert mask_secret("abc") == "*** (len:3)"

    def test_missing(self) -> None:
        assert mask_secret("") == "(missing)"
        assert mask_secret(None) == "(missing)"
