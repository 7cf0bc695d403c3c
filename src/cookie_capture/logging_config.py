import logging
import os
from pathlib import Path
from typing import Optional


def configure_logging(level: str = "INFO", file_path: Optional[str] = None) -> None:
    numeric_level = getattr(logging, (level or "INFO").upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if file_path:
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
        handlers=handlers,
        force=True,  # the CLI reconfigures once the config file has been read
    )

    # Playwright and aiohttp's access log are noisy at INFO.
    for noisy in ("playwright", "aiohttp.access"):
        logging.getLogger(noisy).setLevel(os.getenv("NOISY_LOG_LEVEL", "WARNING"))


def mask_secret(value: str) -> str:
    """
    Render a credential or OTP for logs: `12****56` for codes, a length marker otherwise.
    """
    s = value or ""
    if not s:
        return "<empty>"
    if s.isdigit() and len(s) >= 6:
        return f"{s[:2]}****{s[-2:]}"
    return f"<{len(s)} chars>"
