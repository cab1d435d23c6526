"""
Mbox Scanner Module
Splits an mbox archive into raw message records

An mbox file is nothing more than messages glued together, each one
introduced by an envelope line starting with "From " at column zero.
There is no length prefix and no escaping beyond the convention that body
lines starting with "From " are written as ">From ". The scanner therefore
works line by line, keeps exactly one message in memory, and hands each one
downstream as soon as the next envelope line (or end of file) closes it.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator, List, Optional, Union

from ..utils.config import ScannerConfig


FROM_PREFIX = b"From "

# mboxrd quoting: one ">" is added in front of any ">*From " body line
ESCAPED_FROM = re.compile(rb">+From ")


@dataclass(frozen=True)
class RawRecord:
    """
    One message exactly as found in the archive.

    The envelope line is kept apart from the message bytes; it is only used
    as a hint (sender/timestamp) and never becomes a message header.
    """
    index: int
    offset: int
    envelope: bytes
    data: bytes

    @property
    def envelope_sender(self) -> Optional[str]:
        """The address token of the envelope line, if any"""
        parts = self.envelope[len(FROM_PREFIX):].split(None, 1)
        if not parts:
            return None
        return parts[0].decode("latin-1")

    @property
    def envelope_date(self) -> Optional[str]:
        """Everything after the envelope sender, usually a ctime timestamp"""
        parts = self.envelope[len(FROM_PREFIX):].split(None, 1)
        if len(parts) < 2:
            return None
        return parts[1].decode("latin-1").strip() or None


def is_blank_line(line: bytes) -> bool:
    return not line.rstrip(b"\r\n")


class MboxScanner:
    """
    Lazy, forward-only reader yielding RawRecord objects in archive order.

    The scanner may be iterated only once. When it was given a path it owns
    the file handle and closes it as soon as iteration ends, is abandoned,
    or the scanner is used as a context manager and the block exits. A
    caller-supplied stream is left open.
    """

    def __init__(
        self,
        source: Union[str, Path, BinaryIO],
        read_buffer_size: int = 1024 * 1024,
        strict_from_lines: bool = False,
        unescape_from_lines: bool = True,
    ):
        """
        Initialize the scanner

        Args:
            source: Path to the mbox file, or a binary stream positioned at its start
            read_buffer_size: Buffer size used when opening a path
            strict_from_lines: Require a blank line (or start of file) before an
                envelope line
            unescape_from_lines: Remove one ">" from ">From " body lines
        """
        self.source = source
        self.read_buffer_size = read_buffer_size
        self.strict_from_lines = strict_from_lines
        self.unescape_from_lines = unescape_from_lines
        self.records_scanned = 0
        self.bytes_read = 0
        self._stream: Optional[BinaryIO] = None
        self._owns_stream = False
        self._iterator: Optional[Iterator[RawRecord]] = None
        self.logger = logging.getLogger("MboxScanner")

    @classmethod
    def from_config(cls, source: Union[str, Path, BinaryIO], config: ScannerConfig) -> "MboxScanner":
        return cls(
            source,
            read_buffer_size=config.read_buffer_size,
            strict_from_lines=config.strict_from_lines,
            unescape_from_lines=config.unescape_from_lines,
        )

    def __iter__(self) -> Iterator[RawRecord]:
        if self._iterator is not None:
            raise RuntimeError("MboxScanner can only be iterated once")
        self._iterator = self._scan()
        return self._iterator

    def __enter__(self) -> "MboxScanner":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        """Stop scanning and release the file handle if we opened it"""
        if self._iterator is not None:
            # Runs the generator's finally block if it is suspended mid-file
            self._iterator.close()
        self._release()

    def _open(self) -> BinaryIO:
        if isinstance(self.source, (str, Path)):
            # OSError (missing file, permissions) propagates to the caller
            stream = open(self.source, "rb", buffering=self.read_buffer_size)
            self._owns_stream = True
        else:
            stream = self.source
            self._owns_stream = False
        self._stream = stream
        return stream

    def _release(self):
        if self._stream is not None and self._owns_stream:
            self._stream.close()
            self.logger.debug("Closed mbox file after %d records", self.records_scanned)
        self._stream = None

    def _scan(self) -> Iterator[RawRecord]:
        stream = self._open()
        try:
            yield from self._split(stream)
        finally:
            self._release()

    def _split(self, stream: BinaryIO) -> Iterator[RawRecord]:
        envelope: Optional[bytes] = None
        lines: List[bytes] = []
        record_offset = 0
        position = 0
        preamble_bytes = 0
        previous_blank = True

        for line in stream:
            line_start = position
            position += len(line)
            self.bytes_read = position

            if line.startswith(FROM_PREFIX) and (previous_blank or not self.strict_from_lines):
                if envelope is not None:
                    yield self._make_record(record_offset, envelope, lines)
                envelope = line
                lines = []
                record_offset = line_start
            elif envelope is not None:
                if self.unescape_from_lines and ESCAPED_FROM.match(line):
                    line = line[1:]
                lines.append(line)
            else:
                preamble_bytes += len(line)

            previous_blank = is_blank_line(line)

        if preamble_bytes:
            self.logger.warning(
                "Ignored %d bytes before the first 'From ' line", preamble_bytes
            )

        if envelope is not None:
            yield self._make_record(record_offset, envelope, lines)

    def _make_record(self, offset: int, envelope: bytes, lines: List[bytes]) -> RawRecord:
        # The blank line before the next envelope is mbox framing, not message text
        if lines and is_blank_line(lines[-1]):
            lines.pop()

        record = RawRecord(
            index=self.records_scanned,
            offset=offset,
            envelope=envelope.rstrip(b"\r\n"),
            data=b"".join(lines),
        )
        self.records_scanned += 1
        return record
