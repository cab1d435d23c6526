"""Pytest configuration.

The application code lives in the top-level `mbox2db/` package, which has no
`__init__.py` files. Depending on how pytest is invoked, the repository root
may not be on `sys.path`, which breaks imports like `from mbox2db.modules...`.

This file makes test imports robust by explicitly adding the repo root to
`sys.path` during test collection.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest


REPO_ROOT = Path(__file__).resolve().parents[1]

# NOTE: Insert at the front so local imports win over any similarly named
# third-party packages.
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


def build_message(
    subject: str,
    labels: str = None,
    date: str = "Thu, 11 Jun 2009 10:00:00 -0400",
    body: str = "Hello",
    envelope: str = "From sender@example.com Thu Jun 11 10:00:00 2009",
) -> bytes:
    """Return one mbox entry (envelope line, headers, body, separator)."""
    lines = [
        envelope,
        "From: Alice <alice@example.com>",
        "To: bob@example.com",
        f"Subject: {subject}",
    ]
    if date is not None:
        lines.append(f"Date: {date}")
    lines.append(f"Message-ID: <{subject.replace(' ', '.')}@example.com>")
    if labels is not None:
        lines.append(f"X-Gmail-Labels: {labels}")
    lines += ["", body, "", ""]
    return "\n".join(lines).encode("utf-8")


def fold_header(value: str, width: int = 76) -> str:
    """Fold a header value at spaces so no physical line exceeds *width*."""
    lines = []
    current = ""
    for word in value.split(" "):
        candidate = f"{current} {word}" if current else word
        if current and len(candidate) > width:
            lines.append(current)
            current = word
        else:
            current = candidate
    lines.append(current)
    return "\r\n ".join(lines)


@pytest.fixture
def three_message_mbox(tmp_path) -> Path:
    """An archive with one Inbox, one Spam and one Trash message, in that order."""
    path = tmp_path / "takeout.mbox"
    path.write_bytes(
        build_message("Inbox message", labels="Inbox,Important")
        + build_message("Spam message", labels="Spam")
        + build_message("Trash message", labels="Trash,Opened")
    )
    return path
