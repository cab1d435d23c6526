"""
ANSI styling for the terminal report and console log lines
"""

import logging
import os
import sys


class Colors:
    """ANSI escape codes plus the few roles the CLI prints in"""
    RESET = "\033[0m"
    BOLD = "\033[1m"

    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    CYAN = "\033[36m"
    GREY = "\033[90m"

    LEVELS = {
        logging.DEBUG: GREY,
        logging.INFO: GREEN,
        logging.WARNING: YELLOW,
        logging.ERROR: RED,
        logging.CRITICAL: BOLD + RED,
    }

    @staticmethod
    def enabled(stream=None) -> bool:
        """True when stream is a TTY and NO_COLOR is unset"""
        stream = stream if stream is not None else sys.stdout
        if os.getenv("NO_COLOR"):
            return False
        isatty = getattr(stream, "isatty", None)
        return bool(isatty and isatty())

    @classmethod
    def colorize(cls, text: str, *codes: str) -> str:
        if not codes:
            return text
        return "".join(codes) + text + cls.RESET

    @classmethod
    def for_level(cls, levelno: int) -> str:
        """Code for a logging level; unknown levels read as INFO"""
        return cls.LEVELS.get(levelno, cls.LEVELS[logging.INFO])

    @classmethod
    def warning(cls, text: str) -> str:
        return cls.colorize(text, cls.for_level(logging.WARNING))

    @classmethod
    def error(cls, text: str) -> str:
        return cls.colorize(text, cls.for_level(logging.ERROR))

    @classmethod
    def success(cls, text: str) -> str:
        return cls.colorize(text, cls.GREEN)
