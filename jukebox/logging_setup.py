"""
Logger configuration for Jukebox Bot
"""
import json
import logging
import time
from logging.handlers import RotatingFileHandler
from typing import Any, Dict


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record):
        base = {
            "ts": time.strftime('%Y-%m-%dT%H:%M:%S', time.gmtime(record.created)),
            "lvl": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            base["exc"] = self.formatException(record.exc_info)
        return json.dumps(base, ensure_ascii=False)


def setup_logging(config: Dict[str, Any]) -> logging.Logger:
    """Attach handlers to the "Jukebox" logger once and return it."""
    logger = logging.getLogger("Jukebox")
    if logger.handlers:
        return logger
    structured = bool(config.get("structured_logging"))
    trace_on = bool(config.get("trace_logging"))
    if structured:
        fmt_console = JsonFormatter()
    else:
        fmt_console = logging.Formatter("%(asctime)s:%(levelname)s:%(name)s: %(message)s")
    logger.setLevel(logging.DEBUG if trace_on else logging.INFO)
    # discord.py installs its own root handler in Client.run
    logger.propagate = False
    ch = logging.StreamHandler(); ch.setFormatter(fmt_console); logger.addHandler(ch)
    log_file = config.get("log_file")
    if not structured and log_file:
        fh = RotatingFileHandler(log_file, maxBytes=5_000_000, backupCount=3, encoding="utf-8")
        fh.setFormatter(fmt_console); logger.addHandler(fh)
    logger.info("Logger initialized (structured=%s trace=%s)", structured, trace_on)
    return logger
