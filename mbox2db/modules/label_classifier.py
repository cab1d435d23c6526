"""
Label Classifier Module
Reports whether a Gmail export marked a message as Spam or Trash

The classifier states facts only. Whether Spam/Trash messages are kept is
the filtering policy's decision (see filter_policy.py).
"""

from dataclasses import dataclass
from typing import Tuple

from .header_decoder import HeaderMap
from ..utils.config import DEFAULT_LABEL_HEADER


SPAM_LABEL = "spam"
TRASH_LABEL = "trash"


@dataclass(frozen=True)
class LabelVerdict:
    """Label facts for one message"""
    is_spam: bool = False
    is_trash: bool = False
    labels: Tuple[str, ...] = ()


def parse_labels(header_value: str) -> Tuple[str, ...]:
    """
    Split a label header into labels.

    Labels are comma-separated; a label containing a comma is quoted
    ("Receipts, 2019").
    """
    if not header_value:
        return ()

    labels = []
    current = []
    in_quotes = False
    for char in header_value:
        if char == '"':
            in_quotes = not in_quotes
        elif char == ',' and not in_quotes:
            labels.append("".join(current))
            current = []
        else:
            current.append(char)
    labels.append("".join(current))

    return tuple(label.strip() for label in labels if label.strip())


class LabelClassifier:
    """Reads the label header of a message into a LabelVerdict"""

    def __init__(self, header_name: str = DEFAULT_LABEL_HEADER):
        self.header_name = header_name

    def classify(self, headers: HeaderMap) -> LabelVerdict:
        """
        Classify a message by its labels

        Args:
            headers: Decoded headers of the message

        Returns:
            LabelVerdict; both flags False when the header is absent
        """
        labels = parse_labels(headers.get(self.header_name) or "")
        lowered = {label.lower() for label in labels}
        return LabelVerdict(
            is_spam=SPAM_LABEL in lowered,
            is_trash=TRASH_LABEL in lowered,
            labels=labels,
        )
