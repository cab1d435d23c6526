"""
Date Normalizer Module
Turns whatever a mail client put in the Date header into a UTC timestamp

Real archives contain far more than RFC 5322 dates: double-dash offsets,
one-digit hours, two-digit years, spelled-out time zones, ctime stamps,
US numeric dates. The raw text is first cleaned of the damage that is
unambiguous to repair, then a cascade of formats is tried in a fixed
order and the first one that matches the whole string wins. If none does,
the result is the UNPARSED marker; it is never an exception.

Output is UTC rendered as "YYYY-MM-DD HH:MM:SS" so that sorting the text
sorts the dates.
"""

import logging
import re
import warnings
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional, Sequence, Tuple

from dateutil import parser as dateutil_parser
from dateutil.parser import UnknownTimezoneWarning

from ..utils.sanitization import sanitize_for_logging


logger = logging.getLogger(__name__)

CANONICAL_FORMAT = "YYYY-MM-DD HH:MM:SS"

# Two-digit years below the pivot are 20xx, the rest 19xx
TWO_DIGIT_YEAR_PIVOT = 69

# Longer values are treated as unparseable without trying the cascade
MAX_DATE_LENGTH = 256

MONTHS = (
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
)

# Offsets in minutes east of UTC
TIMEZONE_OFFSETS: Dict[str, int] = {
    "UT": 0, "UTC": 0, "GMT": 0, "Z": 0, "WET": 0,
    "EDT": -240, "EST": -300,
    "CDT": -300, "CST": -360,
    "MDT": -360, "MST": -420,
    "PDT": -420, "PST": -480,
    "AKDT": -480, "AKST": -540,
    "HST": -600,
    "BST": 60, "WEST": 60, "CET": 60, "MET": 60,
    "CEST": 120, "MEST": 120, "EET": 120,
    "EEST": 180, "MSK": 180,
    "JST": 540, "KST": 540,
    "AEST": 600, "AEDT": 660, "NZST": 720, "NZDT": 780,
    "GREENWICH MEAN TIME": 0,
    "COORDINATED UNIVERSAL TIME": 0,
    "EASTERN DAYLIGHT TIME": -240,
    "EASTERN STANDARD TIME": -300,
    "CENTRAL DAYLIGHT TIME": -300,
    "CENTRAL STANDARD TIME": -360,
    "MOUNTAIN DAYLIGHT TIME": -360,
    "MOUNTAIN STANDARD TIME": -420,
    "PACIFIC DAYLIGHT TIME": -420,
    "PACIFIC STANDARD TIME": -480,
    "CENTRAL EUROPE STANDARD TIME": 60,
    "CENTRAL EUROPEAN TIME": 60,
    "CENTRAL EUROPE DAYLIGHT TIME": 120,
    "CENTRAL EUROPEAN SUMMER TIME": 120,
    "W. EUROPE STANDARD TIME": 60,
    "W. EUROPE DAYLIGHT TIME": 120,
}

DATEUTIL_TZINFOS = {
    name: minutes * 60 for name, minutes in TIMEZONE_OFFSETS.items() if " " not in name
}

# Cleanup patterns, applied before the cascade
COMMENT = re.compile(r"\(([^()]*)\)")
SIGN_RUN = re.compile(r"[+-]{2,}(?=\d)")
TRAILING_GARBAGE = re.compile(r"(\s[+-]\d{4})[^\s\d]\S*$")
AMPM_GLUED = re.compile(r"(?<![A-Za-z])([AaPp][Mm])([+-]\d)")
NUMERIC_OFFSET = re.compile(r"([+-])(\d{1,4})(?::(\d{2}))?")

# Building blocks of the cascade patterns
_DOW = r"(?:(?P<dow>[A-Za-z]{2,9})\.?\s*,?\s*)?"
_DAY = r"(?P<day>\d{1,2})(?:st|nd|rd|th)?"
_MONTH = r"(?P<month>[A-Za-z]{3,9})\.?"
_YEAR = r"'?(?P<year>\d{2,4})"
_TIME = r"(?P<hour>\d{1,2}):(?P<minute>\d{1,2})(?::(?P<second>\d{1,2})(?:[.,]\d+)?)?"
_AMPM = r"(?:\s*(?P<ampm>[AaPp]\.?[Mm]\.?))?"
_ZONE = (
    r"(?:\s*(?P<zone>"
    r"[A-Za-z][A-Za-z .]*?(?:\s*[+-]\d{1,4}(?::\d{2})?)?"
    r"|[+-]\d{1,4}(?::\d{2})?(?:\s+[A-Za-z]{1,5})?"
    r"))?"
)

# Year tokens written with three or four digits, not part of a numeric offset
WRITTEN_YEAR = re.compile(r"(?<![\d+-])\d{3,4}(?!\d)")

_DEFAULT_A = datetime(1904, 1, 1)
_DEFAULT_B = datetime(1908, 2, 2)


@dataclass(frozen=True)
class ParsedDate:
    """
    A normalized date, or the explicit "unparsed" state.

    timestamp is timezone-aware UTC when present. format_name records which
    cascade entry accepted the input.
    """
    timestamp: Optional[datetime] = None
    format_name: Optional[str] = None

    @property
    def is_parsed(self) -> bool:
        return self.timestamp is not None

    @property
    def text(self) -> Optional[str]:
        """Canonical "YYYY-MM-DD HH:MM:SS" text, or None when unparsed"""
        if self.timestamp is None:
            return None
        ts = self.timestamp
        # Formatted by hand: strftime does not zero-pad years below 1000 on every platform
        return (
            f"{ts.year:04d}-{ts.month:02d}-{ts.day:02d} "
            f"{ts.hour:02d}:{ts.minute:02d}:{ts.second:02d}"
        )

    def __str__(self) -> str:
        return self.text or "unparsed"


UNPARSED = ParsedDate()


@dataclass(frozen=True)
class DateFormat:
    """One cascade entry: a full-string matcher and the converter for its match"""
    name: str
    pattern: re.Pattern
    convert: Callable[[re.Match, Optional[int]], datetime]

    def attempt(self, text: str, zone_hint: Optional[int] = None) -> Optional[datetime]:
        """
        Try this format.

        Returns:
            UTC datetime, or None if the text does not match or names an
            impossible date/time.
        """
        match = self.pattern.match(text)
        if match is None:
            return None
        try:
            return self.convert(match, zone_hint)
        except (ValueError, OverflowError):
            return None


def expand_year(text: str) -> int:
    """
    Expand a year token.

    Two-digit years: 00-68 -> 2000-2068, 69-99 -> 1969-1999.
    Three-digit years are offsets from 1900 (RFC 5322 obsolete syntax).
    """
    digits = text.lstrip("'")
    year = int(digits)
    if len(digits) == 2:
        return 2000 + year if year < TWO_DIGIT_YEAR_PIVOT else 1900 + year
    if len(digits) == 3:
        return 1900 + year
    return year


def month_number(name: str) -> int:
    """Month number from an English name or abbreviation ("Jun", "June", "Sept")"""
    lowered = name.lower().rstrip(".")
    if len(lowered) >= 3:
        for number, full in enumerate(MONTHS, start=1):
            if full.startswith(lowered):
                return number
    raise ValueError(f"unknown month name: {name}")


def offset_minutes(sign: str, digits: str, colon_minutes: Optional[str] = None) -> int:
    """
    Minutes east of UTC for a numeric offset.

    "+2" and "+02" are hours, "-600" is -06:00, "-0400" is -04:00,
    "+05:30" is hours:minutes.
    """
    if colon_minutes is not None:
        if len(digits) > 2:
            raise ValueError(f"bad offset {sign}{digits}:{colon_minutes}")
        hours, minutes = int(digits), int(colon_minutes)
    elif len(digits) <= 2:
        hours, minutes = int(digits), 0
    elif len(digits) == 3:
        hours, minutes = int(digits[0]), int(digits[1:])
    else:
        hours, minutes = int(digits[:2]), int(digits[2:])

    if hours > 23 or minutes > 59:
        raise ValueError(f"offset out of range: {sign}{digits}")
    total = hours * 60 + minutes
    return -total if sign == "-" else total


def _lookup_zone_name(text: str) -> Optional[int]:
    name = " ".join(text.split()).upper()
    if name in TIMEZONE_OFFSETS:
        return TIMEZONE_OFFSETS[name]
    return TIMEZONE_OFFSETS.get(name.replace(".", ""))


def zone_offset(zone: Optional[str], zone_hint: Optional[int] = None) -> int:
    """
    Resolve a zone token to minutes east of UTC.

    A numeric offset wins over a name. Unknown names fall back to the hint
    taken from a parenthesized comment, then to UTC.
    """
    if not zone or not zone.strip():
        return zone_hint if zone_hint is not None else 0

    numeric = NUMERIC_OFFSET.search(zone)
    if numeric:
        return offset_minutes(*numeric.groups())

    known = _lookup_zone_name(zone)
    if known is not None:
        return known

    if zone_hint is not None:
        return zone_hint

    logger.debug("Unknown timezone %r, assuming UTC", sanitize_for_logging(zone))
    return 0


def clean_date_text(raw: str) -> Tuple[str, Optional[int]]:
    """
    Repair the unambiguous damage in a raw Date header.

    Returns:
        Tuple of (cleaned text, zone hint in minutes from a parenthesized
        comment such as "(Eastern Daylight Time)" or None)
    """
    text = " ".join(raw.split())

    zone_hint = None
    for comment in COMMENT.findall(text):
        numeric = NUMERIC_OFFSET.search(comment)
        if numeric:
            try:
                zone_hint = offset_minutes(*numeric.groups())
            except ValueError:
                pass
        elif zone_hint is None:
            zone_hint = _lookup_zone_name(comment)
    text = COMMENT.sub(" ", text)
    # Unbalanced "(" : everything after it is a comment too
    text = text.split("(", 1)[0]

    # "--0400" and friends: keep the last sign of the run
    text = SIGN_RUN.sub(lambda m: m.group(0)[-1], text)
    text = TRAILING_GARBAGE.sub(r"\1", text)
    text = AMPM_GLUED.sub(r"\1 \2", text)

    return " ".join(text.split()).strip(" ,"), zone_hint


def _from_match(match: re.Match, zone_hint: Optional[int]) -> datetime:
    groups = match.groupdict()

    year = expand_year(groups["year"])
    if groups.get("month"):
        month = month_number(groups["month"])
    else:
        month = int(groups["month_num"])
    day = int(groups["day"])

    hour = int(groups.get("hour") or 0)
    minute = int(groups.get("minute") or 0)
    second = min(int(groups.get("second") or 0), 59)

    ampm = groups.get("ampm")
    if ampm and hour <= 12:
        hour %= 12
        if ampm[0] in "Pp":
            hour += 12

    offset = zone_offset(groups.get("zone"), zone_hint)
    local = datetime(year, month, day, hour, minute, second,
                     tzinfo=timezone(timedelta(minutes=offset)))
    return local.astimezone(timezone.utc)


class PivotYearInfo(dateutil_parser.parserinfo):
    """
    dateutil parserinfo that expands two-digit years with the fixed pivot
    instead of a window around the current date.

    dateutil reads some year tokens as plain numbers, so "0001" reaches
    convertyear() as 1 with no century; such tokens are looked up in the
    text to keep them as written.
    """

    def __init__(self, text: str = ""):
        super().__init__()
        self.written_years = {int(token): token for token in WRITTEN_YEAR.findall(text)}

    def convertyear(self, year, century_specified=False):
        if year < 100 and not century_specified:
            written = self.written_years.get(year)
            return expand_year(written if written else f"{year:02d}")
        return year


def _from_dateutil(match: re.Match, zone_hint: Optional[int]) -> datetime:
    text = match.string
    info = PivotYearInfo(text)
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", UnknownTimezoneWarning)
        first = dateutil_parser.parse(text, parserinfo=info, default=_DEFAULT_A, tzinfos=DATEUTIL_TZINFOS)
        second = dateutil_parser.parse(text, parserinfo=info, default=_DEFAULT_B, tzinfos=DATEUTIL_TZINFOS)

    # Parsing with two different defaults tells us whether the text itself
    # supplied year, month and day
    if (first.year, first.month, first.day) != (second.year, second.month, second.day):
        raise ValueError(f"incomplete date: {text}")

    if first.tzinfo is None:
        first = first.replace(tzinfo=timezone(timedelta(minutes=zone_hint or 0)))
    return first.astimezone(timezone.utc)


def _compile(body: str) -> re.Pattern:
    return re.compile(rf"^{body}\s*$")


DATE_FORMATS: Dict[str, DateFormat] = {
    fmt.name: fmt
    for fmt in (
        # Thu, 11 Jun 2009 10:00:00 -0400 / 11 Jun 09 9:47 EDT / Thursday 11-Jun-2009
        DateFormat(
            "rfc5322",
            _compile(rf"{_DOW}{_DAY}[\s-]+{_MONTH}[\s-]+{_YEAR}(?:,?\s+{_TIME}{_AMPM})?{_ZONE}"),
            _from_match,
        ),
        # Thu Jul 20 11:39:51 2006 / Wed Jan 01 12:00:00 +0000 2020
        DateFormat(
            "ctime",
            _compile(
                rf"{_DOW}{_MONTH}\s+{_DAY}\s+{_TIME}{_AMPM}"
                rf"(?:\s+(?P<zone>[A-Za-z]{{1,5}}|[+-]\d{{4}}))?\s+{_YEAR}"
            ),
            _from_match,
        ),
        # Jun 09 '05 / June 9, 2009 10:00 AM EDT
        DateFormat(
            "month-first",
            _compile(rf"{_DOW}{_MONTH}\s+{_DAY},?\s+{_YEAR}(?:(?:,?\s+|\s+at\s+){_TIME}{_AMPM})?{_ZONE}"),
            _from_match,
        ),
        # 7/19/2005 8:11:52 AM
        DateFormat(
            "numeric-us",
            _compile(
                rf"{_DOW}(?P<month_num>\d{{1,2}})/(?P<day>\d{{1,2}})/(?P<year>\d{{2,4}})"
                rf"(?:,?\s+{_TIME}{_AMPM})?{_ZONE}"
            ),
            _from_match,
        ),
        # 2009-06-11T10:00:00Z / 2009-06-11 10:00:00 +02:00
        DateFormat(
            "iso8601",
            _compile(
                rf"(?P<year>\d{{4}})-(?P<month_num>\d{{1,2}})-(?P<day>\d{{1,2}})"
                rf"(?:[T\s]+{_TIME})?(?:\s*(?P<zone>Z|[A-Za-z]{{1,5}}|[+-]\d{{2}}:?\d{{2}}))?"
            ),
            _from_match,
        ),
        # Anything else python-dateutil can read, as long as it names a full date
        DateFormat("dateutil", re.compile(r"(?=.*\d)"), _from_dateutil),
    )
}

DEFAULT_ORDER: Tuple[str, ...] = tuple(DATE_FORMATS)


class DateNormalizer:
    """
    Normalizes raw Date header text through an ordered cascade of formats.

    The order is configurable (DATE_FORMATS setting); adding a format for a
    new kind of broken date is a new DateFormat entry, nothing more.
    """

    def __init__(self, order: Optional[Sequence[str]] = None):
        """
        Initialize the normalizer

        Args:
            order: Names of the cascade entries to try, in order (default: all)

        Raises:
            ValueError: If a name is not a known format
        """
        names = list(order) if order else list(DEFAULT_ORDER)
        unknown = [name for name in names if name not in DATE_FORMATS]
        if unknown:
            raise ValueError(f"Unknown date format(s): {', '.join(unknown)}")
        self.formats = [DATE_FORMATS[name] for name in names]
        self.logger = logging.getLogger("DateNormalizer")

    def normalize(self, raw: Optional[str]) -> ParsedDate:
        """
        Normalize one raw date

        Args:
            raw: Date header text, or None when the header is absent

        Returns:
            ParsedDate; UNPARSED when no format accepts the text
        """
        if raw is None or not raw.strip() or len(raw) > MAX_DATE_LENGTH:
            return UNPARSED

        text, zone_hint = clean_date_text(raw)
        if not text:
            return UNPARSED

        for fmt in self.formats:
            timestamp = fmt.attempt(text, zone_hint)
            if timestamp is not None:
                return ParsedDate(timestamp=timestamp, format_name=fmt.name)

        self.logger.debug("Unparseable date: %s", sanitize_for_logging(raw))
        return UNPARSED

    __call__ = normalize


def normalize_date(raw: Optional[str]) -> ParsedDate:
    """Normalize with the default cascade"""
    return _DEFAULT_NORMALIZER.normalize(raw)


_DEFAULT_NORMALIZER = DateNormalizer()
