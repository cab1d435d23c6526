"""
Sanitization Utility Module
Makes untrusted header text safe to put in a log line.
"""

import re
import unicodedata
from typing import Optional, Union

ANSI_ESCAPE = re.compile(r'\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])')


def sanitize_for_logging(text: Optional[Union[str, bytes]], max_length: int = 255) -> str:
    """
    Sanitize text for safe logging to prevent log injection (CRLF) and
    terminal manipulation.

    Header values come straight out of the archive, so a Subject or Date can
    carry escape sequences or embedded newlines that would forge log lines.

    Args:
        text: The input string (or raw bytes, decoded as Latin-1).
        max_length: Maximum allowed length for the log entry (truncates if longer).

    Returns:
        Sanitized string safe for logging.
    """
    if not text:
        return ""

    if isinstance(text, bytes):
        text = text.decode("latin-1")

    text = unicodedata.normalize('NFKC', text)

    text = text.replace('\n', '\\n').replace('\r', '\\r')

    text = ANSI_ESCAPE.sub('', text)

    # Remaining control characters (ASCII 0-31 except tab)
    text = "".join(ch for ch in text if ch == '\t' or ord(ch) >= 32)

    if len(text) > max_length:
        text = text[:max_length] + "..."

    return text
