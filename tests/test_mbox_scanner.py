"""
Tests for the mbox scanner: boundaries, escaping, line endings and
file handle ownership.
"""

import io
import unittest
from pathlib import Path
import sys
import tempfile

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from mbox2db.modules.mbox_scanner import MboxScanner, RawRecord, is_blank_line


TWO_MESSAGES = (
    b"From alice@example.com Thu Jan  1 00:00:00 2009\n"
    b"Subject: one\n"
    b"\n"
    b"first body\n"
    b"\n"
    b"From bob@example.com Fri Jan  2 00:00:00 2009\n"
    b"Subject: two\n"
    b"\n"
    b"second body\n"
)


def _scan(data: bytes, **kwargs):
    return list(MboxScanner(io.BytesIO(data), **kwargs))


class TestMboxScanner(unittest.TestCase):
    """Test cases for MboxScanner"""

    def test_splits_on_from_lines(self):
        records = _scan(TWO_MESSAGES)

        self.assertEqual(len(records), 2)
        self.assertEqual(records[0].data, b"Subject: one\n\nfirst body\n")
        self.assertEqual(records[1].data, b"Subject: two\n\nsecond body\n")

    def test_records_carry_index_offset_and_envelope(self):
        records = _scan(TWO_MESSAGES)

        self.assertEqual([r.index for r in records], [0, 1])
        self.assertEqual(records[0].offset, 0)
        self.assertEqual(records[1].offset, TWO_MESSAGES.index(b"From bob"))
        self.assertEqual(records[0].envelope, b"From alice@example.com Thu Jan  1 00:00:00 2009")

    def test_envelope_sender_and_date(self):
        record = _scan(TWO_MESSAGES)[0]
        self.assertEqual(record.envelope_sender, "alice@example.com")
        self.assertEqual(record.envelope_date, "Thu Jan  1 00:00:00 2009")

    def test_envelope_without_date(self):
        record = RawRecord(index=0, offset=0, envelope=b"From MAILER-DAEMON", data=b"")
        self.assertEqual(record.envelope_sender, "MAILER-DAEMON")
        self.assertIsNone(record.envelope_date)

    def test_escaped_from_is_never_a_boundary(self):
        data = (
            b"From a@example.com Thu Jan  1 00:00:00 2009\n"
            b"Subject: quoting\n"
            b"\n"
            b">From the desk of the editor\n"
            b">>From nested quoting\n"
        )
        records = _scan(data)

        self.assertEqual(len(records), 1)
        self.assertIn(b"\nFrom the desk of the editor\n", records[0].data)
        self.assertIn(b"\n>From nested quoting\n", records[0].data)

    def test_escaped_from_kept_when_unescaping_disabled(self):
        data = (
            b"From a@example.com Thu Jan  1 00:00:00 2009\n"
            b"Subject: quoting\n"
            b"\n"
            b">From the desk of the editor\n"
        )
        records = _scan(data, unescape_from_lines=False)
        self.assertIn(b">From the desk", records[0].data)

    def test_crlf_and_mixed_line_endings(self):
        data = (
            b"From a@example.com Thu Jan  1 00:00:00 2009\r\n"
            b"Subject: one\r\n"
            b"\r\n"
            b"body\r\n"
            b"\r\n"
            b"From b@example.com Thu Jan  1 00:00:00 2009\n"
            b"Subject: two\n"
            b"\n"
            b"body\n"
        )
        records = _scan(data)

        self.assertEqual(len(records), 2)
        self.assertEqual(records[0].data, b"Subject: one\r\n\r\nbody\r\n")
        self.assertEqual(records[0].envelope, b"From a@example.com Thu Jan  1 00:00:00 2009")

    def test_empty_input_yields_nothing(self):
        self.assertEqual(_scan(b""), [])

    def test_input_without_from_line_yields_nothing(self):
        with self.assertLogs("MboxScanner", level="WARNING"):
            records = _scan(b"Subject: stray\n\nNot an mbox file\n")
        self.assertEqual(records, [])

    def test_final_record_ends_at_eof_without_trailing_blank(self):
        data = b"From a@example.com Thu Jan  1 00:00:00 2009\nSubject: x\n\nlast line without newline"
        records = _scan(data)
        self.assertEqual(records[0].data, b"Subject: x\n\nlast line without newline")

    def test_strict_mode_requires_blank_line_before_boundary(self):
        data = (
            b"From a@example.com Thu Jan  1 00:00:00 2009\n"
            b"Subject: one\n"
            b"\n"
            b"Some text\n"
            b"From here on it is still the same message\n"
        )
        self.assertEqual(len(_scan(data)), 2)
        self.assertEqual(len(_scan(data, strict_from_lines=True)), 1)

    def test_lowercase_from_is_body_text(self):
        data = b"From a@example.com Thu Jan  1 00:00:00 2009\nSubject: x\n\nfrom the start\nFrom: header-like body line\n"
        self.assertEqual(len(_scan(data)), 1)

    def test_iterates_only_once(self):
        scanner = MboxScanner(io.BytesIO(TWO_MESSAGES))
        list(scanner)
        with self.assertRaises(RuntimeError):
            iter(scanner)

    def test_counters(self):
        scanner = MboxScanner(io.BytesIO(TWO_MESSAGES))
        list(scanner)
        self.assertEqual(scanner.records_scanned, 2)
        self.assertEqual(scanner.bytes_read, len(TWO_MESSAGES))

    def test_caller_stream_is_left_open(self):
        stream = io.BytesIO(TWO_MESSAGES)
        list(MboxScanner(stream))
        self.assertFalse(stream.closed)


class TestMboxScannerFileHandling(unittest.TestCase):
    """The scanner owns and releases handles it opened itself"""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = Path(self.tmpdir.name) / "archive.mbox"
        self.path.write_bytes(TWO_MESSAGES)

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_reads_from_path(self):
        records = list(MboxScanner(self.path))
        self.assertEqual(len(records), 2)

    def test_handle_closed_after_full_iteration(self):
        scanner = MboxScanner(str(self.path))
        iterator = iter(scanner)
        next(iterator)
        stream = scanner._stream
        list(iterator)

        self.assertTrue(stream.closed)
        self.assertIsNone(scanner._stream)

    def test_handle_closed_when_abandoned(self):
        with MboxScanner(self.path) as scanner:
            iterator = iter(scanner)
            next(iterator)
            stream = scanner._stream
            self.assertFalse(stream.closed)

        self.assertTrue(stream.closed)

    def test_missing_file_raises_oserror(self):
        scanner = MboxScanner(Path(self.tmpdir.name) / "missing.mbox")
        with self.assertRaises(OSError):
            list(scanner)


class TestIsBlankLine(unittest.TestCase):
    def test_blank_lines(self):
        self.assertTrue(is_blank_line(b"\n"))
        self.assertTrue(is_blank_line(b"\r\n"))
        self.assertTrue(is_blank_line(b""))
        self.assertFalse(is_blank_line(b" \n"))
        self.assertFalse(is_blank_line(b"text\n"))


if __name__ == '__main__':
    unittest.main()
