"""
Filter Policy Module
Decides which labelled messages are left out of the database
"""

from dataclasses import dataclass
from typing import Optional

from .label_classifier import LabelVerdict
from ..utils.config import FilterConfig


@dataclass(frozen=True)
class FilterPolicy:
    """
    Spam/Trash inclusion rules.

    By default both Spam and Trash are skipped. include_spam_and_trash
    overrides the other two flags.
    """
    include_spam: bool = False
    include_trash: bool = False
    include_spam_and_trash: bool = False

    @classmethod
    def from_config(cls, config: FilterConfig) -> "FilterPolicy":
        return cls(
            include_spam=config.include_spam,
            include_trash=config.include_trash,
            include_spam_and_trash=config.include_spam_and_trash,
        )

    def should_skip(self, verdict: LabelVerdict) -> bool:
        """True if a record with this verdict must not be written"""
        if self.include_spam_and_trash:
            return False
        if verdict.is_spam and not self.include_spam:
            return True
        if verdict.is_trash and not self.include_trash:
            return True
        return False

    def skip_hint(self, skipped: int) -> Optional[str]:
        """
        Explain skipped records and the flag that would keep them

        Returns:
            A one-line hint, or None when nothing was skipped
        """
        if skipped <= 0 or self.include_spam_and_trash:
            return None

        if not self.include_spam and not self.include_trash:
            return f"{skipped} Spam/Trash emails skipped (pass --include-spam-and-trash to include them)"
        if not self.include_spam:
            return f"{skipped} Spam emails skipped (pass --include-spam to include them)"
        if not self.include_trash:
            return f"{skipped} Trash emails skipped (pass --include-trash to include them)"
        return None
