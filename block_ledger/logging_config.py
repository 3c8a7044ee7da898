"""
Logging configuration for the block ledger.

Console output is a single tagged line per record on stderr, so it never
mixes with the ledger printed on stdout. With LEDGER_DEBUG=1 (or --verbose)
every extractor message is also written to a debug file, including the
pipeline thread that emitted it.
"""
import logging
import sys
import os
from pathlib import Path
from typing import Optional


def _env_flag(name: str) -> bool:
    return os.getenv(name, '').lower() in ('1', 'true', 'yes')


# Debug mode: set LEDGER_DEBUG=1 to enable the extractor debug file
LEDGER_DEBUG = _env_flag('LEDGER_DEBUG')

# Debug log file path
DEBUG_LOG_PATH = Path(os.getenv('LEDGER_DEBUG_LOG', 'ledger_debug.log'))

DEBUG_HANDLER_NAME = 'ledger_debug_file'

# HTTP and provider internals log every request at DEBUG
QUIET_LOGGERS = (
    'urllib3.connectionpool',
    'web3.providers.HTTPProvider',
    'web3.manager.RequestManager',
    'web3._utils.http_session_manager',
)

LEVEL_TAGS = {
    logging.DEBUG: ("dbg", "90"),
    logging.INFO: ("ok ", "32"),
    logging.WARNING: ("skp", "33"),
    logging.ERROR: ("err", "31"),
    logging.CRITICAL: ("err", "31;1"),
}


class LedgerConsoleFormatter(logging.Formatter):
    """
    One short line per record: a three-letter tag, then the message.

    Warnings are almost always skipped records, hence the "skp" tag. Logger
    names are shown only at DEBUG, where the emitting module matters.
    """

    def __init__(self, use_color: bool = False):
        super().__init__()
        self.use_color = use_color

    def format(self, record):
        tag, color = LEVEL_TAGS.get(record.levelno, LEVEL_TAGS[logging.INFO])
        if self.use_color:
            tag = f"\033[{color}m{tag}\033[0m"
        message = record.getMessage()
        if record.levelno <= logging.DEBUG:
            message = f"{record.name.rsplit('.', 1)[-1]}: {message}"
        line = f"[{tag}] {message}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class PipelineFileFormatter(logging.Formatter):
    """Debug-file format; threadName tells the two pipelines apart."""

    def __init__(self):
        super().__init__(
            fmt='%(asctime)s.%(msecs)03d %(levelname)-7s [%(threadName)s] %(name)s: %(message)s',
            datefmt='%H:%M:%S',
        )


def setup_logging(level=logging.INFO, debug: Optional[bool] = None):
    """
    Configure console logging for the block-ledger command.

    Args:
        level: Level of the block_ledger logger tree
        debug: Force the debug file on or off; None follows LEDGER_DEBUG,
            re-read here so a value loaded from .env after import still counts
    """
    if debug is None:
        debug = LEDGER_DEBUG or _env_flag('LEDGER_DEBUG')

    for logger_name in QUIET_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    root = logging.getLogger()
    root.setLevel(logging.WARNING)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(LedgerConsoleFormatter(use_color=sys.stderr.isatty()))
    root.addHandler(handler)

    app_logger = logging.getLogger('block_ledger')
    app_logger.setLevel(level)

    if debug:
        setup_debug_logging()
        app_logger.info(f"Extractor debug log: {DEBUG_LOG_PATH}")

    return app_logger


def setup_debug_logging(path: Optional[Path] = None):
    """Attach the debug file handler to the extraction services (once)."""
    path = path or DEBUG_LOG_PATH
    services_logger = logging.getLogger('block_ledger.services')
    services_logger.setLevel(logging.DEBUG)
    if any(h.name == DEBUG_HANDLER_NAME for h in services_logger.handlers):
        return services_logger

    file_handler = logging.FileHandler(path, mode='w', encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(PipelineFileFormatter())
    file_handler.name = DEBUG_HANDLER_NAME
    services_logger.addHandler(file_handler)
    return services_logger
