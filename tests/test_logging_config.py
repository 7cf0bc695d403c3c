from __future__ import annotations

import logging
from pathlib import Path

from cookie_capture.logging_config import configure_logging, mask_secret


def test_mask_secret() -> None:
    assert mask_secret("") == "<empty>"
    assert mask_secret("123456") == "12****56"
    assert mask_secret("hunter2") == "<7 chars>"
    assert "hunter2" not in mask_secret("hunter2")


def test_configure_logging_writes_to_file(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "capture.log"
    configure_logging(level="debug", file_path=str(log_file))
    try:
        logging.getLogger("cookie_capture.test").debug("hello from test")
        for h in logging.getLogger().handlers:
            h.flush()
        assert "hello from test" in log_file.read_text(encoding="utf-8")
        assert logging.getLogger("playwright").level == logging.WARNING
    finally:
        configure_logging(level="INFO")
