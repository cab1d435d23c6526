"""
Email Record Model
Contains the EmailRecord dataclass handed to the database writer
"""

from dataclasses import dataclass, astuple
from typing import Optional, Tuple


@dataclass(frozen=True)
class EmailRecord:
    """
    Canonical fields extracted from one message.

    Every field is None when the message does not carry it. date_raw is the
    untouched Date header; date_parsed is the normalized UTC text, or None
    when the date could not be read. The two are never mixed: a bad date
    leaves date_raw intact and date_parsed empty.
    """
    from_addr: Optional[str] = None
    to_addr: Optional[str] = None
    cc: Optional[str] = None
    bcc: Optional[str] = None
    subject: Optional[str] = None
    date_raw: Optional[str] = None
    date_parsed: Optional[str] = None
    message_id: Optional[str] = None
    in_reply_to: Optional[str] = None
    references: Optional[str] = None
    content_type: Optional[str] = None
    body_plain: Optional[str] = None
    body_html: Optional[str] = None

    def as_row(self) -> Tuple[Optional[str], ...]:
        """Field values in declaration order, as the writer inserts them"""
        return astuple(self)
