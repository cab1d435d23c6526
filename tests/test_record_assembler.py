"""
Tests for the record assembler: field mapping, degradation, counters and
ordering (sequential and with worker processes).
"""

import io
import unittest
from pathlib import Path
import sys
from unittest.mock import patch

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from conftest import build_message
from mbox2db.modules.mbox_scanner import MboxScanner, RawRecord
from mbox2db.modules.record_assembler import AssembledRecord, RecordAssembler, RecordDecoder
from mbox2db.utils.config import ParserConfig
from mbox2db.utils.metrics import ParseMetrics


def _assemble(data: bytes, assembler: RecordAssembler = None):
    assembler = assembler or RecordAssembler()
    with MboxScanner(io.BytesIO(data)) as scanner:
        return list(assembler.iter_records(scanner)), assembler


class TestRecordAssembler(unittest.TestCase):

    def test_three_messages_in_order_with_label_verdicts(self):
        data = (
            build_message("Inbox message", labels="Inbox")
            + build_message("Spam message", labels="Spam")
            + build_message("Trash message", labels="Trash")
        )
        results, assembler = _assemble(data)

        self.assertEqual(
            [r.record.subject for r in results],
            ["Inbox message", "Spam message", "Trash message"],
        )
        self.assertEqual(
            [(r.verdict.is_spam, r.verdict.is_trash) for r in results],
            [(False, False), (True, False), (False, True)],
        )
        self.assertEqual([r.index for r in results], [0, 1, 2])
        self.assertEqual(assembler.records_emitted, 3)
        self.assertEqual(assembler.metrics.labels["spam"], 1)
        self.assertEqual(assembler.metrics.labels["trash"], 1)

    def test_field_mapping(self):
        results, _ = _assemble(build_message("Field test", body="Body text"))
        record = results[0].record

        self.assertIsInstance(results[0], AssembledRecord)
        self.assertEqual(record.from_addr, "Alice <alice@example.com>")
        self.assertEqual(record.to_addr, "bob@example.com")
        self.assertIsNone(record.cc)
        self.assertIsNone(record.bcc)
        self.assertEqual(record.subject, "Field test")
        self.assertEqual(record.date_raw, "Thu, 11 Jun 2009 10:00:00 -0400")
        self.assertEqual(record.date_parsed, "2009-06-11 14:00:00")
        self.assertEqual(record.message_id, "<Field.test@example.com>")
        self.assertIsNone(record.in_reply_to)
        self.assertIsNone(record.content_type)
        self.assertEqual(record.body_plain, "Body text\n")
        self.assertIsNone(record.body_html)

    def test_threading_headers_and_encoded_subject(self):
        raw = RawRecord(
            index=0,
            offset=0,
            envelope=b"From x@example.com Thu Jun 11 10:00:00 2009",
            data=(
                b"Subject: =?utf-8?Q?R=C3=A9union?=\n"
                b"In-Reply-To: <parent@example.com>\n"
                b"References: <root@example.com>\n"
                b" <parent@example.com>\n"
                b"Cc: carol@example.com\n"
                b"Content-Type: text/html; charset=utf-8\n"
                b"\n"
                b"<p>hi</p>\n"
            ),
        )
        record = RecordAssembler().assemble(raw).record

        self.assertEqual(record.subject, "Réunion")
        self.assertEqual(record.in_reply_to, "<parent@example.com>")
        self.assertEqual(record.references, "<root@example.com> <parent@example.com>")
        self.assertEqual(record.cc, "carol@example.com")
        self.assertEqual(record.content_type, "text/html; charset=utf-8")
        self.assertIsNone(record.body_plain)
        self.assertEqual(record.body_html, "<p>hi</p>\n")

    def test_date_raw_is_the_header_as_written(self):
        raw = RawRecord(
            index=0,
            offset=0,
            envelope=b"From x@example.com Thu Jun 11 10:00:00 2009",
            data=b"Date: =?utf-8?q?Thu=2C_11_Jun_2009_10:00:00_+0000?=\nSubject: s\n\nbody\n",
        )
        record = RecordAssembler().assemble(raw).record

        self.assertEqual(record.date_raw, "=?utf-8?q?Thu=2C_11_Jun_2009_10:00:00_+0000?=")
        self.assertEqual(record.date_parsed, "2009-06-11 10:00:00")

    def test_unparseable_date_keeps_the_record(self):
        results, assembler = _assemble(
            build_message("Bad date", date="not-a-date") + build_message("Good date")
        )

        self.assertEqual(len(results), 2)
        self.assertEqual(results[0].record.date_raw, "not-a-date")
        self.assertIsNone(results[0].record.date_parsed)
        self.assertEqual(results[1].record.date_parsed, "2009-06-11 14:00:00")
        self.assertEqual(assembler.unparsed_dates, 1)
        self.assertEqual(assembler.metrics.missing_dates, 0)

    def test_missing_date_counts_as_missing(self):
        results, assembler = _assemble(build_message("No date", date=None))

        self.assertIsNone(results[0].record.date_raw)
        self.assertIsNone(results[0].record.date_parsed)
        self.assertEqual(assembler.unparsed_dates, 1)
        self.assertEqual(assembler.metrics.missing_dates, 1)

    def test_envelope_date_fallback(self):
        assembler = RecordAssembler(decoder=RecordDecoder(envelope_date_fallback=True))
        results, _ = _assemble(build_message("No date", date=None), assembler)

        self.assertIsNone(results[0].record.date_raw)
        self.assertEqual(results[0].record.date_parsed, "2009-06-11 10:00:00")
        self.assertEqual(assembler.unparsed_dates, 0)

    def test_envelope_fallback_ignored_when_date_header_present(self):
        assembler = RecordAssembler(decoder=RecordDecoder(envelope_date_fallback=True))
        results, _ = _assemble(build_message("Bad date", date="garbage"), assembler)
        self.assertIsNone(results[0].record.date_parsed)

    def test_decode_defects_are_counted(self):
        data = build_message("Bad base64").replace(
            b"Message-ID:",
            b"Content-Type: text/plain\nContent-Transfer-Encoding: base64\nMessage-ID:",
        ).replace(b"\nHello\n", b"\nA\n")
        results, assembler = _assemble(data)

        self.assertEqual(results[0].record.body_plain, "A\n")
        self.assertEqual(assembler.metrics.decode_defects["base64"], 1)

    def test_unexpected_failure_still_emits_a_record(self):
        assembler = RecordAssembler()
        with patch.object(assembler.decoder.header_decoder, "parse", side_effect=RuntimeError("boom")):
            with self.assertLogs("mbox2db.modules.record_assembler", level="WARNING") as logs:
                results, _ = _assemble(build_message("Explodes"), assembler)

        context = logs.records[0].extra_fields
        self.assertEqual(context["record_index"], 0)
        self.assertEqual(context["byte_offset"], 0)
        self.assertEqual(context["defect"], "record")

        self.assertEqual(len(results), 1)
        self.assertEqual(results[0].failure, "boom")
        self.assertIsNone(results[0].record.subject)
        self.assertFalse(results[0].verdict.is_spam)
        self.assertEqual(assembler.metrics.decode_defects["record"], 1)
        self.assertEqual(assembler.records_emitted, 1)

    def test_empty_archive(self):
        results, assembler = _assemble(b"")
        self.assertEqual(results, [])
        self.assertEqual(assembler.records_emitted, 0)

    def test_shared_metrics_instance(self):
        metrics = ParseMetrics()
        assembler = RecordAssembler(metrics=metrics)
        _assemble(build_message("One"), assembler)
        self.assertEqual(metrics.records_emitted, 1)
        self.assertEqual(len(metrics.processing_time_ms), 1)


class TestFromConfig(unittest.TestCase):

    def test_parser_settings_are_applied(self):
        config = ParserConfig(
            max_body_size=4,
            label_header="X-Folder",
            date_formats=["ctime"],
            envelope_date_fallback=True,
            workers=3,
        )
        assembler = RecordAssembler.from_config(config)

        self.assertEqual(assembler.workers, 3)
        self.assertEqual(assembler.decoder.body_extractor.max_body_size, 4)
        self.assertEqual(assembler.decoder.label_classifier.header_name, "X-Folder")
        self.assertEqual([f.name for f in assembler.decoder.date_normalizer.formats], ["ctime"])
        self.assertTrue(assembler.decoder.envelope_date_fallback)

    def test_empty_date_formats_use_default_cascade(self):
        assembler = RecordAssembler.from_config(ParserConfig())
        self.assertEqual(len(assembler.decoder.date_normalizer.formats), 6)


@pytest.mark.parametrize("workers", [1, 2])
def test_order_is_preserved(workers):
    subjects = [f"Message {i:03d}" for i in range(25)]
    data = b"".join(
        build_message(subject, labels="Spam" if i % 3 == 0 else "Inbox")
        for i, subject in enumerate(subjects)
    )
    assembler = RecordAssembler(workers=workers)
    # Several small windows so batching boundaries are crossed
    assembler.PARALLEL_WINDOW = 2

    results, _ = _assemble(data, assembler)

    assert [r.record.subject for r in results] == subjects
    assert [r.index for r in results] == list(range(25))
    assert [r.verdict.is_spam for r in results] == [i % 3 == 0 for i in range(25)]
    assert assembler.records_emitted == 25
    assert assembler.metrics.labels["spam"] == 9
