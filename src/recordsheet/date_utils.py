"""
Date formatting and parsing with cached, thread-confined formatters.

Patterns use the letters common to spreadsheet and JVM tooling
(``yyyyMMddHHmmss``) rather than ``strftime`` directives. Each pattern is
compiled once per thread; the pattern -> holder map is shared by the whole
process.
"""

import logging
import re
import threading
from datetime import datetime

from .exceptions import DateConversionError

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_PATTERN = "yyyy年MM月dd日"
DEFAULT_DAY_PATTERN = "yyyy-MM-dd"

# Input pattern selected by the number of digits of a compact date string.
PATTERNS_BY_LENGTH = {
    14: "yyyyMMddHHmmss",
    12: "yyyyMMddHHmm",
    10: "yyyyMMddHH",
    8: "yyyyMMdd",
    6: "yyyyMM",
}

_DIRECTIVES = {
    "yyyy": "%Y",
    "yy": "%y",
    "MM": "%m",
    "dd": "%d",
    "HH": "%H",
    "mm": "%M",
    "ss": "%S",
}
_TOKEN = re.compile(r"'[^']*'|([A-Za-z])\1*")
_SEPARATORS = re.compile(r"[-:\s]")
_DIGITS = re.compile(r"[0-9]+")


class DateFormatter:
    """Formatter/parser for a single date pattern."""

    def __init__(self, pattern: str):
        self.pattern = pattern
        self.directive = self._compile(pattern)

    def __repr__(self):
        return f"DateFormatter({self.pattern!r})"

    @staticmethod
    def _compile(pattern: str) -> str:
        parts = []
        pos = 0
        for match in _TOKEN.finditer(pattern):
            parts.append(pattern[pos : match.start()].replace("%", "%%"))
            token = match.group(0)
            if token.startswith("'"):
                # quoted literal, '' stands for a single quote
                parts.append((token[1:-1] or "'").replace("%", "%%"))
            elif token in _DIRECTIVES:
                parts.append(_DIRECTIVES[token])
            else:
                msg = f"Unsupported token '{token}' in date pattern '{pattern}'"
                raise ValueError(msg)
            pos = match.end()
        parts.append(pattern[pos:].replace("%", "%%"))
        return "".join(parts)

    def parse(self, text: str) -> datetime:
        return datetime.strptime(text, self.directive)

    def format(self, moment: datetime) -> str:
        return moment.strftime(self.directive)


_FORMATTER_HOLDER: dict[str, threading.local] = {}
_HOLDER_LOCK = threading.Lock()


def _formatter_holder(pattern: str) -> threading.local:
    """Return the process-wide holder of per-thread formatters for pattern."""
    holder = _FORMATTER_HOLDER.get(pattern)
    if holder is None:
        with _HOLDER_LOCK:
            # another thread may have stored a holder while we waited
            holder = _FORMATTER_HOLDER.get(pattern)
            if holder is None:
                holder = threading.local()
                _FORMATTER_HOLDER[pattern] = holder
    return holder


def get_formatter(pattern: str) -> DateFormatter:
    """Return the calling thread's formatter for pattern.

    A formatter is built at most once per thread and pattern and is never
    shared with other threads.
    """
    holder = _formatter_holder(pattern)
    formatter = getattr(holder, "formatter", None)
    if formatter is None:
        formatter = DateFormatter(pattern)
        holder.formatter = formatter
    return formatter


def format_date(date_str: str | None, pattern: str | None = None) -> str:
    """Reformat a compact date string, guessing its layout from its length.

    Separators (``-``, ``:`` and whitespace) are removed first. The input
    layout is chosen from the number of remaining digits (see
    ``PATTERNS_BY_LENGTH``). Text that is not numeric, has an unknown
    length or cannot be parsed is returned as it is after stripping.
    Empty input and all-zero input give an empty string.

    >>> format_date("20230615")
    '2023年06月15日'
    >>> format_date("2023-06-15 10:30:00", "yyyyMMdd")
    '20230615'
    """
    if not date_str:
        return ""
    date_str = _SEPARATORS.sub("", date_str)
    if not date_str:
        return ""
    if not _DIGITS.fullmatch(date_str):
        return date_str
    if int(date_str) == 0:
        return ""

    input_pattern = PATTERNS_BY_LENGTH.get(len(date_str))
    if input_pattern is None:
        return date_str
    try:
        moment = get_formatter(input_pattern).parse(date_str)
    except ValueError:
        logger.debug('Could not parse "%s" as %s.', date_str, input_pattern)
        return date_str

    if pattern is None or not pattern.strip():
        pattern = DEFAULT_OUTPUT_PATTERN
    return get_formatter(pattern).format(moment)


def string_to_date(value: str | None, pattern: str) -> datetime | None:
    """Convert value to a datetime using pattern.

    The value is normalised with ``format_date`` first, so
    ``"2023-06-15 10:30:00"`` converts with pattern ``yyyyMMddHHmmss``.
    """
    if not value:
        return None
    try:
        return get_formatter(pattern).parse(format_date(value, pattern))
    except ValueError as exc:
        msg = f'Cannot convert "{value}" to a date with pattern "{pattern}"'
        raise DateConversionError(msg) from exc


def format_datetime(moment: datetime, pattern: str) -> str:
    return get_formatter(pattern).format(moment)


def format_now(pattern: str = DEFAULT_DAY_PATTERN) -> str:
    """Format the current local time, by default as yyyy-MM-dd."""
    return format_datetime(datetime.now(), pattern)
