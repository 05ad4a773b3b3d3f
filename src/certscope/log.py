"""Console logging for the command line tool."""

import logging
import sys

from colorama import Fore, Style

LEVEL_COLORS = {
    logging.DEBUG: Fore.BLUE,
    logging.INFO: Fore.CYAN,
    logging.WARNING: Fore.YELLOW,
    logging.ERROR: Fore.RED,
    logging.CRITICAL: Fore.MAGENTA,
}


class ColorFormatter(logging.Formatter):
    """``[timestamp] [LEVEL] message``, coloured by level when enabled"""

    def __init__(self, use_color: bool = True):
        super().__init__('[%(asctime)s] [%(levelname)s] %(message)s', datefmt='%Y-%m-%d %H:%M:%S')
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        if not self.use_color:
            return message
        return f"{LEVEL_COLORS.get(record.levelno, '')}{message}{Style.RESET_ALL}"


def setup_logging(verbose: bool = False, stream=None) -> logging.Logger:
    stream = stream or sys.stderr
    handler = logging.StreamHandler(stream)
    handler.setFormatter(ColorFormatter(use_color=getattr(stream, "isatty", lambda: False)()))

    logger = logging.getLogger('certscope')
    logger.handlers[:] = [handler]
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.propagate = False
    return logger
