"""
Metrics Collection Module
Tracks conversion progress and per-message decoding problems
"""

from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Deque, Dict


@dataclass
class ParseMetrics:
    """
    Running counters for one conversion run.

    An instance is owned by the RecordAssembler that fills it; the progress
    display and the final summary only read it. Nothing here is global, so
    two assemblers never share counts.
    """

    # Records handed downstream, whatever the filtering policy does with them
    records_emitted: int = 0

    # Records whose date_parsed is absent (includes records with no Date header)
    unparsed_dates: int = 0

    # Subset of unparsed_dates: no Date header at all
    missing_dates: int = 0

    # Label verdict tallies ("spam", "trash")
    labels: Counter = field(default_factory=Counter)

    # Degraded decodes by kind ("base64", "charset", "boundary", ...)
    decode_defects: Counter = field(default_factory=Counter)

    # Per-record assembly time; bounded so a long run cannot grow it forever
    processing_time_ms: Deque[float] = field(default_factory=lambda: deque(maxlen=1000))

    start_time: datetime = field(default_factory=datetime.now)

    def record_emitted(self):
        """Record that a record left the assembler."""
        self.records_emitted += 1

    def record_unparsed_date(self, missing: bool = False):
        """
        Record a record whose date could not be normalized.

        Args:
            missing: True when the message had no Date header at all
        """
        self.unparsed_dates += 1
        if missing:
            self.missing_dates += 1

    def record_label(self, label: str):
        self.labels[label] += 1

    def record_defect(self, kind: str, count: int = 1):
        """
        Record a degraded decode.

        Args:
            kind: Defect kind (e.g. "base64", "charset", "mime-depth")
            count: How many occurrences to add
        """
        self.decode_defects[kind] += count

    def record_processing_time(self, time_ms: float):
        self.processing_time_ms.append(time_ms)

    def get_summary(self) -> Dict:
        """
        Get a summary of all metrics.

        Returns:
            Dictionary suitable for logging or JSON export
        """
        stats = {}
        if self.processing_time_ms:
            sorted_times = sorted(self.processing_time_ms)
            n = len(sorted_times)
            stats = {
                "avg_ms": sum(sorted_times) / n,
                "max_ms": sorted_times[-1],
                "p50_ms": sorted_times[n // 2],
                "p95_ms": sorted_times[int(n * 0.95)] if n > 1 else sorted_times[0],
            }

        return {
            "elapsed_seconds": (datetime.now() - self.start_time).total_seconds(),
            "records_emitted": self.records_emitted,
            "unparsed_dates": self.unparsed_dates,
            "missing_dates": self.missing_dates,
            "labels": dict(self.labels),
            "decode_defects": dict(self.decode_defects),
            "processing_time_stats": stats,
        }

    def reset(self):
        """Reset all counters, e.g. before reusing an assembler for another archive."""
        self.records_emitted = 0
        self.unparsed_dates = 0
        self.missing_dates = 0
        self.labels.clear()
        self.decode_defects.clear()
        self.processing_time_ms.clear()
        self.start_time = datetime.now()
