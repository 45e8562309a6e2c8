"""
Operator-facing output
Every record carries a severity marker so "proceeding", "degraded" and
"blocked" are distinguishable at a glance
"""

import logging
import sys

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

MARKERS = {
    logging.DEBUG: "  ",
    logging.INFO: "🔧",
    SUCCESS: "✅",
    logging.WARNING: "⚠️ ",
    logging.ERROR: "❌",
    logging.CRITICAL: "❌",
}


class MarkerFormatter(logging.Formatter):
    """Prefix each message with the marker of its severity"""

    def format(self, record: logging.LogRecord) -> str:
        marker = MARKERS.get(record.levelno, "  ")
        return f"{marker} {super().format(record)}"


def success(logger: logging.Logger, message: str, *args) -> None:
    logger.log(SUCCESS, message, *args)


def header(logger: logging.Logger, title: str) -> None:
    logger.info("=== %s ===", title)


def configure_logging(verbose: bool = False, stream=None) -> logging.Logger:
    """Attach the marker formatter to the package loggers"""
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(MarkerFormatter("%(message)s"))

    root = logging.getLogger("src")
    root.handlers[:] = [handler]
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.propagate = False
    return root
