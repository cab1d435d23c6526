"""
MIME Body Extractor Module
Finds the plain-text and HTML bodies of a message

The walk is depth-first in source order over byte slices of the original
message; the first text/plain part becomes the plain body and the first
text/html part the HTML body. Attachments and other non-text parts are
skipped without being decoded.

Like the rest of the per-message code this must never abort the run:
bad base64, a boundary that never appears, an unknown charset or absurd
nesting all degrade to best-effort text (or to a truncated walk) and are
reported as defect kinds.
"""

import base64
import binascii
import logging
import quopri
import re
from dataclasses import dataclass, field
from email.message import Message
from typing import List, Optional, Tuple

from .header_decoder import HeaderDecoder, HeaderMap, split_head_body
from ..utils.charsets import decode_bytes, is_known_charset


IDENTITY_ENCODINGS = {"", "7bit", "8bit", "binary"}
BASE64_WHITESPACE = re.compile(rb"\s+")


@dataclass
class BodyContent:
    """Plain and HTML bodies; either, both or neither may be present"""
    plain: Optional[str] = None
    html: Optional[str] = None
    defects: List[str] = field(default_factory=list)


@dataclass
class _WalkState:
    content: BodyContent
    parts_seen: int = 0
    truncated: bool = False


def parse_content_type(value: Optional[str]) -> Tuple[str, Optional[str], Optional[str]]:
    """
    Parse a Content-Type value.

    Uses the standard library's parameter parsing (quoting, RFC 2231
    continuations) on a scratch Message.

    Returns:
        Tuple of (lowercase type/subtype, boundary or None, charset or None).
        A missing or unparsable type is text/plain, as RFC 2045 says.
    """
    if not value:
        return "text/plain", None, None

    scratch = Message()
    scratch["Content-Type"] = value
    content_type = scratch.get_content_type()
    boundary = scratch.get_boundary()
    charset = scratch.get_content_charset()
    return content_type, boundary, charset


def decode_transfer_encoding(payload: bytes, encoding: Optional[str], defects: List[str]) -> bytes:
    """
    Undo a Content-Transfer-Encoding.

    Args:
        payload: Raw part body
        encoding: Declared encoding (any case, may be None)
        defects: Collects "base64" or "transfer-encoding" on degradation

    Returns:
        Decoded bytes, or the payload unchanged when decoding is impossible
    """
    name = (encoding or "").strip().lower()

    if name in IDENTITY_ENCODINGS:
        return payload

    if name == "quoted-printable":
        return quopri.decodestring(payload)

    if name == "base64":
        cleaned = BASE64_WHITESPACE.sub(b"", payload)
        # Data after the first padding run is junk some mailers append
        if b"=" in cleaned:
            cleaned = cleaned[:cleaned.index(b"=")]
        cleaned += b"=" * (-len(cleaned) % 4)
        try:
            return base64.b64decode(cleaned, validate=True)
        except (binascii.Error, ValueError):
            defects.append("base64")
            return payload

    defects.append("transfer-encoding")
    return payload


def split_multipart(body: bytes, boundary: str) -> Optional[List[bytes]]:
    """
    Split a multipart body into its parts.

    The preamble before the first delimiter and the epilogue after the
    closing delimiter are dropped. A missing closing delimiter ends the last
    part at end of body.

    Returns:
        List of part slices (headers + body each), or None when the
        boundary never appears.
    """
    delimiter = b"--" + boundary.encode("latin-1", "replace")
    closing = delimiter + b"--"

    parts: List[bytes] = []
    part_start: Optional[int] = None
    found = False
    pos = 0
    size = len(body)

    while pos < size:
        end = body.find(b"\n", pos)
        line_end = size if end == -1 else end + 1
        line = body[pos:line_end].rstrip()

        if line == delimiter or line == closing:
            found = True
            if part_start is not None:
                parts.append(_strip_final_newline(body[part_start:pos]))
            if line == closing:
                part_start = None
                break
            part_start = line_end
        pos = line_end

    if part_start is not None:
        parts.append(body[part_start:])

    return parts if found else None


def _strip_final_newline(data: bytes) -> bytes:
    # The line break before a delimiter belongs to the delimiter
    if data.endswith(b"\r\n"):
        return data[:-2]
    if data.endswith(b"\n"):
        return data[:-1]
    return data


class MimeBodyExtractor:
    """
    Extracts BodyContent from a message's headers and body bytes.

    MIME bombs (deep nesting or thousands of parts) are cut off at
    max_depth/max_parts; the bodies found up to that point are kept.
    """

    def __init__(
        self,
        max_depth: int = 20,
        max_parts: int = 100,
        max_body_size: int = 0,
        header_decoder: Optional[HeaderDecoder] = None,
    ):
        """
        Initialize the extractor

        Args:
            max_depth: Maximum multipart nesting depth that is walked
            max_parts: Maximum number of MIME parts visited per message
            max_body_size: Truncate each body to this many characters (0 = no limit)
            header_decoder: Decoder used for part headers
        """
        self.max_depth = max_depth
        self.max_parts = max_parts
        self.max_body_size = max_body_size
        self.header_decoder = header_decoder or HeaderDecoder()
        self.logger = logging.getLogger("MimeBodyExtractor")

    def extract(self, headers: HeaderMap, body: bytes) -> BodyContent:
        """
        Extract plain and HTML bodies

        Args:
            headers: Decoded headers of the message
            body: Raw bytes following the header block

        Returns:
            BodyContent (fields None when not present)
        """
        state = _WalkState(content=BodyContent())
        self._walk(headers, body, 0, state)
        return state.content

    def _walk(self, headers: HeaderMap, body: bytes, depth: int, state: _WalkState):
        content = state.content
        if state.truncated:
            return

        state.parts_seen += 1
        if state.parts_seen > self.max_parts:
            self.logger.warning("Message exceeds max MIME parts (%d); ignoring the rest", self.max_parts)
            content.defects.append("mime-parts")
            state.truncated = True
            return

        content_type, boundary, charset = parse_content_type(headers.get("Content-Type"))
        maintype = content_type.split("/", 1)[0]

        if maintype == "multipart":
            if depth >= self.max_depth:
                self.logger.warning("Message exceeds max MIME depth (%d); not descending", self.max_depth)
                content.defects.append("mime-depth")
                state.truncated = True
                return

            parts = split_multipart(body, boundary) if boundary else None
            if parts is None:
                # Inconsistent boundary: the body is all we have
                content.defects.append("boundary")
                if content.plain is None:
                    content.plain = self._to_text(body, headers, charset, content.defects)
                return

            for part in parts:
                part_head, part_body = split_head_body(part)
                part_headers = self.header_decoder.parse(part_head, content.defects)
                self._walk(part_headers, part_body, depth + 1, state)
                if state.truncated or (content.plain is not None and content.html is not None):
                    return
            return

        if self._is_attachment(headers):
            return

        if content_type == "text/plain":
            if content.plain is None:
                content.plain = self._to_text(body, headers, charset, content.defects)
        elif content_type == "text/html":
            if content.html is None:
                content.html = self._to_text(body, headers, charset, content.defects)

    @staticmethod
    def _is_attachment(headers: HeaderMap) -> bool:
        disposition = headers.get("Content-Disposition") or ""
        return disposition.strip().lower().startswith("attachment")

    def _to_text(self, body: bytes, headers: HeaderMap, charset: Optional[str], defects: List[str]) -> str:
        payload = decode_transfer_encoding(body, headers.get("Content-Transfer-Encoding"), defects)
        if charset and not is_known_charset(charset):
            defects.append("charset")
        text = decode_bytes(payload, charset)

        if self.max_body_size and len(text) > self.max_body_size:
            self.logger.warning("Body truncated to %d characters", self.max_body_size)
            text = text[:self.max_body_size]
        return text
