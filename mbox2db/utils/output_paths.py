"""
Output path selection for the converted database
"""

from datetime import date
from pathlib import Path
from typing import Optional, Union


DESTRUCTIVE_NAME = "emails.db"
MAX_NUMBERED_SUFFIX = 9999


def resolve_output_path(
    explicit: Optional[Union[str, Path]] = None,
    destructive: bool = False,
    output_dir: Union[str, Path] = ".",
    today: Optional[date] = None,
) -> Path:
    """
    Pick the database path for a run

    Args:
        explicit: Path given on the command line; always wins
        destructive: Use the fixed name emails.db, replacing any previous run
        output_dir: Directory for generated names
        today: Date used in generated names (defaults to the local date)

    Returns:
        YYYY-MM-DD-emails.db in output_dir, or the first free
        YYYY-MM-DD-emails-NNNN.db when that name is taken

    Raises:
        FileExistsError: If every numbered name for the day is taken
    """
    if explicit:
        return Path(explicit)

    directory = Path(output_dir)
    if destructive:
        return directory / DESTRUCTIVE_NAME

    stamp = (today or date.today()).strftime("%Y-%m-%d")
    candidate = directory / f"{stamp}-emails.db"
    if not candidate.exists():
        return candidate

    for counter in range(1, MAX_NUMBERED_SUFFIX + 1):
        candidate = directory / f"{stamp}-emails-{counter:04d}.db"
        if not candidate.exists():
            return candidate

    raise FileExistsError(
        f"No free output name left for {stamp} in {directory}; pass --output or --destructive"
    )
