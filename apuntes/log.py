from __future__ import annotations

import logging
import sys

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
QUIET_LOGGERS = ("uvicorn.access", "botocore", "boto3", "urllib3")


class AccessLogFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return record.name != "uvicorn.access"


def configure_logging(level: str | int = logging.INFO, rich_output: bool = False) -> None:
    if rich_output:
        handler: logging.Handler = RichHandler(
            console=Console(stderr=True), show_path=False, rich_tracebacks=True
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(AccessLogFilter())
    logging.basicConfig(level=level, handlers=[handler], force=True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
