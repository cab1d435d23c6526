"""
Record Assembler Module
Turns the scanner's raw records into (EmailRecord, LabelVerdict) pairs

For each raw record: split headers from body, decode headers, extract
bodies, normalize the date, classify labels. A record is never dropped
here; whatever could not be read is left as None and counted.

Decoding can optionally run in worker processes. Results are still
emitted strictly in archive order, and the counters are only ever touched
by the consuming process.
"""

import itertools
import logging
import time
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, NamedTuple, Optional, Tuple

from .date_normalizer import DateNormalizer
from .email_record import EmailRecord
from .header_decoder import HeaderDecoder, split_head_body
from .label_classifier import LabelClassifier, LabelVerdict
from .mbox_scanner import RawRecord
from .mime_extractor import MimeBodyExtractor
from ..utils.config import ParserConfig
from ..utils.metrics import ParseMetrics
from ..utils.sanitization import sanitize_for_logging
from ..utils.structured_logging import record_context


logger = logging.getLogger(__name__)


class AssembledRecord(NamedTuple):
    """What the writer receives, in archive order"""
    record: EmailRecord
    verdict: LabelVerdict
    index: int
    # Set when decoding failed and record is empty
    failure: Optional[str] = None


@dataclass
class DecodedRecord:
    """Result of decoding one raw record, before it is counted"""
    index: int
    record: EmailRecord
    verdict: LabelVerdict
    date_missing: bool
    defects: List[str] = field(default_factory=list)
    elapsed_ms: float = 0.0
    failure: Optional[str] = None


class RecordDecoder:
    """
    Decodes one RawRecord. Holds no per-run state, so it can be shipped
    to worker processes as is.
    """

    def __init__(
        self,
        header_decoder: Optional[HeaderDecoder] = None,
        body_extractor: Optional[MimeBodyExtractor] = None,
        date_normalizer: Optional[DateNormalizer] = None,
        label_classifier: Optional[LabelClassifier] = None,
        envelope_date_fallback: bool = False,
    ):
        self.header_decoder = header_decoder or HeaderDecoder()
        self.body_extractor = body_extractor or MimeBodyExtractor(header_decoder=self.header_decoder)
        self.date_normalizer = date_normalizer or DateNormalizer()
        self.label_classifier = label_classifier or LabelClassifier()
        self.envelope_date_fallback = envelope_date_fallback

    def __call__(self, raw: RawRecord) -> DecodedRecord:
        started = time.perf_counter()
        defects: List[str] = []
        failure = None
        try:
            record, verdict, date_missing = self._decode(raw, defects)
        except Exception as e:
            failure = sanitize_for_logging(str(e)) or type(e).__name__
            logger.warning(
                "Could not decode message %d at byte offset %d: %s",
                raw.index, raw.offset, failure,
                extra=record_context(raw.index, raw.offset, defect="record"),
            )
            defects.append("record")
            record, verdict, date_missing = EmailRecord(), LabelVerdict(), True

        return DecodedRecord(
            index=raw.index,
            record=record,
            verdict=verdict,
            date_missing=date_missing,
            defects=defects,
            elapsed_ms=(time.perf_counter() - started) * 1000,
            failure=failure,
        )

    def _decode(self, raw: RawRecord, defects: List[str]) -> Tuple[EmailRecord, LabelVerdict, bool]:
        head, body = split_head_body(raw.data)
        headers = self.header_decoder.parse(head, defects)

        content = self.body_extractor.extract(headers, body)
        defects.extend(content.defects)

        date_raw = headers.get_raw("Date")
        parsed = self.date_normalizer.normalize(headers.get("Date"))
        if date_raw is None and self.envelope_date_fallback:
            parsed = self.date_normalizer.normalize(raw.envelope_date)

        verdict = self.label_classifier.classify(headers)

        record = EmailRecord(
            from_addr=headers.get("From"),
            to_addr=headers.get("To"),
            cc=headers.get("Cc"),
            bcc=headers.get("Bcc"),
            subject=headers.get("Subject"),
            date_raw=date_raw,
            date_parsed=parsed.text,
            message_id=headers.get("Message-Id"),
            in_reply_to=headers.get("In-Reply-To"),
            references=headers.get("References"),
            content_type=headers.get("Content-Type"),
            body_plain=content.plain,
            body_html=content.html,
        )
        return record, verdict, date_raw is None


class RecordAssembler:
    """
    Pull-based assembler over a sequence of RawRecords.

    Owns the ParseMetrics for its run: records emitted, unparsed dates,
    label tallies and decode defects, readable at any time by a progress
    display.
    """

    # Raw records handed to each worker per batch when workers > 1
    PARALLEL_WINDOW = 64
    PARALLEL_CHUNKSIZE = 16

    def __init__(
        self,
        decoder: Optional[RecordDecoder] = None,
        workers: int = 1,
        metrics: Optional[ParseMetrics] = None,
    ):
        """
        Initialize the assembler

        Args:
            decoder: Per-record decoder (default components when None)
            workers: Number of decoding processes; 1 decodes in-process
            metrics: Counters to fill (a fresh ParseMetrics when None)
        """
        self.decoder = decoder or RecordDecoder()
        self.workers = max(1, workers)
        self.metrics = metrics if metrics is not None else ParseMetrics()
        self.logger = logging.getLogger("RecordAssembler")

    @classmethod
    def from_config(cls, config: ParserConfig, metrics: Optional[ParseMetrics] = None) -> "RecordAssembler":
        header_decoder = HeaderDecoder()
        decoder = RecordDecoder(
            header_decoder=header_decoder,
            body_extractor=MimeBodyExtractor(
                max_depth=config.max_mime_depth,
                max_parts=config.max_mime_parts,
                max_body_size=config.max_body_size,
                header_decoder=header_decoder,
            ),
            date_normalizer=DateNormalizer(config.date_formats or None),
            label_classifier=LabelClassifier(config.label_header),
            envelope_date_fallback=config.envelope_date_fallback,
        )
        return cls(decoder=decoder, workers=config.workers, metrics=metrics)

    @property
    def records_emitted(self) -> int:
        return self.metrics.records_emitted

    @property
    def unparsed_dates(self) -> int:
        return self.metrics.unparsed_dates

    def assemble(self, raw: RawRecord) -> AssembledRecord:
        """Decode and count a single raw record"""
        return self._account(self.decoder(raw))

    def iter_records(self, raw_records: Iterable[RawRecord]) -> Iterator[AssembledRecord]:
        """
        Lazily assemble records in source order

        Args:
            raw_records: Typically an MboxScanner

        Yields:
            AssembledRecord for every raw record, in the order received
        """
        if self.workers == 1:
            for raw in raw_records:
                yield self.assemble(raw)
        else:
            yield from self._iter_parallel(raw_records)

    def _iter_parallel(self, raw_records: Iterable[RawRecord]) -> Iterator[AssembledRecord]:
        window = self.workers * self.PARALLEL_WINDOW
        iterator = iter(raw_records)
        self.logger.info("Decoding with %d worker processes", self.workers)

        with ProcessPoolExecutor(max_workers=self.workers) as executor:
            while True:
                batch = list(itertools.islice(iterator, window))
                if not batch:
                    break
                # map() yields in submission order whatever order workers finish in
                for decoded in executor.map(self.decoder, batch, chunksize=self.PARALLEL_CHUNKSIZE):
                    yield self._account(decoded)

    def _account(self, decoded: DecodedRecord) -> AssembledRecord:
        metrics = self.metrics
        metrics.record_emitted()

        if decoded.record.date_parsed is None:
            metrics.record_unparsed_date(missing=decoded.date_missing)

        for kind in decoded.defects:
            metrics.record_defect(kind)

        if decoded.verdict.is_spam:
            metrics.record_label("spam")
        if decoded.verdict.is_trash:
            metrics.record_label("trash")

        metrics.record_processing_time(decoded.elapsed_ms)
        return AssembledRecord(decoded.record, decoded.verdict, decoded.index, decoded.failure)
