"""
Header Decoder Module
Turns the raw header block of a message into a HeaderMap of decoded text

Three things happen to every header:
- unfolding: continuation lines (leading whitespace) are joined to the
  previous header with a single space
- splitting: "Name: value" on the first colon
- RFC 2047 decoding: =?charset?Q|B?...?= tokens become text through
  email.header.decode_header, which drops whitespace between adjacent
  encoded words and joins same-charset runs so multibyte characters split
  across words survive; the joined bytes then go through our charset
  fallback

Nothing in here raises for bad input. Unreadable pieces are kept as they
were and reported through the optional defects list.
"""

import logging
import re
from email.errors import HeaderParseError
from email.header import decode_header
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union

from ..utils.charsets import decode_bytes, guess_decode, is_known_charset
from ..utils.sanitization import sanitize_for_logging


# A plausible "Name:" at the start of a line (RFC 5322 ftext is %d33-57 / %d59-126)
HEADER_LINE = re.compile(rb"[!-9;-~]+[ \t]*:")

# Lines inspected before deciding a block has no headers at all
HEADER_PROBE_LINES = 5

FOLDING_WHITESPACE = (" ", "\t")


class HeaderMap:
    """
    Ordered, immutable, case-insensitive view of a message's headers.

    A name may repeat (Received, for instance); get() returns the first
    occurrence and get_all() every occurrence in source order. get_raw()
    returns a value as it was written (unfolded, RFC 2047 words intact).
    """

    __slots__ = ("_items", "_index", "_raw")

    def __init__(self, items: Iterable[Tuple[str, str]] = (),
                 raw_items: Optional[Iterable[Tuple[str, str]]] = None):
        self._items: Tuple[Tuple[str, str], ...] = tuple(items)
        self._index = self._build_index(self._items)
        self._raw = self._build_index(raw_items) if raw_items is not None else self._index

    @staticmethod
    def _build_index(items: Iterable[Tuple[str, str]]) -> Dict[str, Tuple[str, ...]]:
        index: Dict[str, List[str]] = {}
        for name, value in items:
            index.setdefault(name.lower(), []).append(value)
        return {key: tuple(values) for key, values in index.items()}

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        values = self._index.get(name.lower())
        return values[0] if values else default

    def get_all(self, name: str) -> Tuple[str, ...]:
        return self._index.get(name.lower(), ())

    def get_raw(self, name: str, default: Optional[str] = None) -> Optional[str]:
        values = self._raw.get(name.lower())
        return values[0] if values else default

    def items(self) -> Tuple[Tuple[str, str], ...]:
        return self._items

    def __getitem__(self, name: str) -> str:
        values = self._index.get(name.lower())
        if not values:
            raise KeyError(name)
        return values[0]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._index

    def __iter__(self) -> Iterator[str]:
        return (name for name, _ in self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"HeaderMap({list(self._items)!r})"


def _has_header_line(data: bytes) -> bool:
    """True when one of the first few lines, before any blank line, looks like "Name:" """
    pos = 0
    for _ in range(HEADER_PROBE_LINES):
        end = data.find(b"\n", pos)
        line = data[pos:] if end == -1 else data[pos:end + 1]
        if not line.rstrip(b"\r\n"):
            return False
        if HEADER_LINE.match(line):
            return True
        if end == -1:
            return False
        pos = end + 1
    return False


def split_head_body(data: bytes) -> Tuple[bytes, bytes]:
    """
    Split message (or MIME part) bytes at the first blank line.

    Returns:
        Tuple of (header_block, body). The blank line itself belongs to
        neither. Text with no header-like line among its first few lines
        is all body; text with no blank line is all headers.
    """
    if not data:
        return b"", b""

    first_end = data.find(b"\n")
    first_line = data if first_end == -1 else data[:first_end + 1]
    if first_line.rstrip(b"\r\n") and not _has_header_line(data):
        return b"", data

    pos = 0
    size = len(data)
    while pos < size:
        end = data.find(b"\n", pos)
        line_end = size if end == -1 else end + 1
        if not data[pos:line_end].rstrip(b"\r\n"):
            return data[:pos], data[line_end:]
        pos = line_end
    return data, b""


def unfold_lines(lines: Iterable[str]) -> List[str]:
    """
    Join continuation lines onto the header they continue.

    The leading whitespace of a continuation line collapses to one space.
    A continuation line with nothing before it is kept as its own line so
    the caller can decide what to do with it.
    """
    logical: List[str] = []
    for line in lines:
        line = line.rstrip("\r\n")
        if line.startswith(FOLDING_WHITESPACE) and logical:
            continuation = line.lstrip(" \t")
            if continuation:
                logical[-1] = f"{logical[-1]} {continuation}"
        elif line:
            logical.append(line)
    return logical


def _unencoded_text(chunk: Union[bytes, str]) -> str:
    # decode_header returns the text between encoded words as raw-unicode-escape bytes
    if isinstance(chunk, str):
        return chunk
    try:
        return chunk.decode("raw-unicode-escape")
    except UnicodeDecodeError:
        return chunk.decode("latin-1")


def decode_encoded_words(value: str, defects: Optional[List[str]] = None) -> str:
    """
    Decode RFC 2047 encoded words anywhere inside a header value.

    Args:
        value: Unfolded header value
        defects: Optional list that collects defect kinds ("base64", "charset")

    Returns:
        Decoded text. A value whose encoded words cannot be decoded is
        returned as written.
    """
    if "=?" not in value:
        return value

    try:
        chunks = decode_header(value)
    except HeaderParseError:
        if defects is not None:
            defects.append("base64")
        return value

    decoded = []
    for chunk, charset in chunks:
        if charset is None:
            decoded.append(_unencoded_text(chunk))
            continue
        # RFC 2231 language suffix: =?utf-8*en?Q?...?=
        charset = charset.split("*", 1)[0]
        if not is_known_charset(charset) and defects is not None:
            defects.append("charset")
        decoded.append(decode_bytes(chunk, charset))
    return "".join(decoded)


class HeaderDecoder:
    """
    Parses a raw header block into a HeaderMap.

    Keep parsing separate from I/O: the decoder takes bytes and returns
    values, so it can be exercised without any mbox file.
    """

    def __init__(self):
        self.logger = logging.getLogger("HeaderDecoder")

    def parse(self, header_block: bytes, defects: Optional[List[str]] = None) -> HeaderMap:
        """
        Decode a header block

        Args:
            header_block: Bytes up to (not including) the first blank line
            defects: Optional list that collects defect kinds

        Returns:
            HeaderMap with decoded values in source order; the undecoded
            values stay available through get_raw()
        """
        if not header_block:
            return HeaderMap()

        # Headers should be ASCII; raw 8-bit text is usually UTF-8
        text = guess_decode(header_block)
        items = []
        raw_items = []
        for line in unfold_lines(text.split("\n")):
            name, separator, value = line.partition(":")
            name = name.strip()
            if not separator or not name or line.startswith(FOLDING_WHITESPACE) or " " in name:
                self.logger.debug("Skipping malformed header line: %s", sanitize_for_logging(line, 80))
                if defects is not None:
                    defects.append("header-syntax")
                continue
            value = value.strip()
            raw_items.append((name, value))
            items.append((name, decode_encoded_words(value, defects)))
        return HeaderMap(items, raw_items)
