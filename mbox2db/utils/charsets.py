"""
Charset Fallback Module
Turns bytes of uncertain encoding into text without ever failing
"""

import codecs
import logging
from typing import Optional

import chardet


logger = logging.getLogger(__name__)

# chardet guesses below this confidence are ignored in favour of Latin-1
MIN_DETECT_CONFIDENCE = 0.5


def normalize_charset(charset: Optional[str]) -> Optional[str]:
    """
    Return a codec name Python knows for *charset*, or None.

    Labels such as "unknown-8bit", "x-unknown" or a quoted empty string
    map to None so callers fall through to guessing.
    """
    if not charset:
        return None
    name = charset.strip().strip('"\'').strip().lower()
    if not name:
        return None
    try:
        return codecs.lookup(name).name
    except LookupError:
        return None


def is_known_charset(charset: Optional[str]) -> bool:
    """True if *charset* names a codec this interpreter can decode."""
    return normalize_charset(charset) is not None


def guess_decode(data: bytes) -> str:
    """
    Decode bytes whose charset is unknown.

    UTF-8 is tried first since it is by far the most common 8-bit payload
    in modern archives, then chardet, then Latin-1 which maps every byte
    to a code point and therefore preserves the input.
    """
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        pass

    detected = chardet.detect(data)
    encoding = detected.get("encoding")
    if encoding and (detected.get("confidence") or 0) >= MIN_DETECT_CONFIDENCE:
        try:
            return data.decode(encoding, errors="replace")
        except LookupError:
            logger.debug("chardet suggested unusable codec %s", encoding)

    return data.decode("latin-1")


def decode_bytes(data: bytes, charset: Optional[str] = None) -> str:
    """
    Decode bytes to string with charset fallback

    We use 'replace' error handling as the last step instead of 'strict'
    so that a mislabelled part still yields readable text.

    Args:
        data: Bytes to decode
        charset: Declared charset name (can be None or invalid)

    Returns:
        Decoded string
    """
    if not data:
        return ""

    codec = normalize_charset(charset)
    if codec is None:
        return guess_decode(data)

    try:
        return data.decode(codec)
    except UnicodeDecodeError:
        pass

    # Declared us-ascii/latin-1 with UTF-8 bytes inside is the usual culprit
    if codec != "utf-8":
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            pass

    return data.decode(codec, errors="replace")
