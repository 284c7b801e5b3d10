"""
Logging configuration for the `atomic` process.

Human-readable output goes through rich; `json` switches to one JSON object per
line for log collectors.
"""

import logging
import sys
from typing import Optional

from pythonjsonlogger import json as jsonlogger
from rich.console import Console
from rich.logging import RichHandler

JSON_FIELDS = "%(asctime)s %(levelname)s %(name)s %(message)s"


def setup_logging(level: str = "INFO", fmt: str = "rich", console: Optional[Console] = None) -> None:
    if fmt == "json":
        handler: logging.Handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(jsonlogger.JsonFormatter(JSON_FIELDS, rename_fields={"levelname": "level"}))
    else:
        # Blobs are long single tokens; wrapping would break copy/paste
        handler = RichHandler(
            console=console or Console(soft_wrap=True),
            show_path=False,
            markup=False,
            rich_tracebacks=True,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level.upper())

    # socketio/engineio are chatty at INFO
    for name in ("socketio", "engineio", "httpx"):
        logging.getLogger(name).setLevel(logging.WARNING)
