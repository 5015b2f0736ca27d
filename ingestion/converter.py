"""
Typed value conversion for extracted fields.

Every reader turns raw values (text from files and XML, JSON scalars and
structures from HTTP, driver values from queries) into the type declared
on the column. A value that cannot be converted is kept as-is and a
ConversionWarning is emitted; conversion never aborts a run.
"""

import json
import re
import warnings
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from core.exceptions import ConversionWarning
from schemas.source import ColumnDescriptor, ColumnType
import logging

logger = logging.getLogger(__name__)

# Pattern letters of yyyy-MM-dd style formats and their strftime directives
_PATTERN_TOKENS = {
    "yyyy": "%Y",
    "yy": "%y",
    "MMMM": "%B",
    "MMM": "%b",
    "MM": "%m",
    "dd": "%d",
    "HH": "%H",
    "hh": "%I",
    "mm": "%M",
    "ss": "%S",
    "SSSSSS": "%f",
    "SSS": "%f",
    "a": "%p",
    "XXX": "%z",
    "Z": "%z",
}
_PATTERN_PART = re.compile(r"'([^']*)'|(" + "|".join(
    sorted((re.escape(t) for t in _PATTERN_TOKENS), key=len, reverse=True)
) + ")")

_TRUE = {"true", "1", "yes"}
_FALSE = {"false", "0", "no"}


def to_strftime(pattern: str) -> str:
    """
    Translate a yyyy-MM-dd style pattern into a strftime format.

    Patterns that already contain a ``%`` directive are returned unchanged.
    Quoted literals ('T') lose their quotes.
    """
    if "%" in pattern:
        return pattern

    def replace(match: re.Match) -> str:
        if match.group(1) is not None:
            return match.group(1)
        return _PATTERN_TOKENS[match.group(2)]

    return _PATTERN_PART.sub(replace, pattern)


class ValueConverter:
    """
    Convert raw values according to a column declaration.

    Rules:
    - None, or blank text on a non-STRING column, takes the column's
      default value when it has one, otherwise None
    - STRING: JSON objects and arrays are serialized compactly
    - INTEGER/LONG: int, numeric values are truncated
    - DECIMAL/DOUBLE: float
    - BOOLEAN: true/false (also 1/0, yes/no)
    - DATE/DATETIME: declared format, ISO-8601 otherwise
    """

    def __init__(self, source_name: Optional[str] = None):
        self.source_name = source_name

    def convert(self, raw: Any, column: ColumnDescriptor) -> Any:
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            if column.default_value is not None:
                raw = column.default_value
            elif raw is None or column.effective_type != ColumnType.STRING:
                return None
            else:
                return raw

        column_type = column.effective_type
        try:
            if column_type == ColumnType.STRING:
                return self._to_string(raw)
            if column_type == ColumnType.INTEGER:
                return self._parse_int(raw)
            if column_type == ColumnType.DECIMAL:
                return self._parse_float(raw)
            if column_type == ColumnType.BOOLEAN:
                return self._parse_bool(raw)
            if column_type == ColumnType.DATE:
                return self._parse_date(raw, column.format)
            if column_type == ColumnType.DATETIME:
                return self._parse_datetime(raw, column.format)
            return raw
        except (ValueError, TypeError, OverflowError) as e:
            message = (
                f"Failed to convert value {raw!r} to {column.type.value} "
                f"for column '{column.name}'"
                + (f" of source '{self.source_name}'" if self.source_name else "")
                + f": {e}"
            )
            logger.warning(message)
            warnings.warn(message, ConversionWarning, stacklevel=2)
            return raw

    @staticmethod
    def _to_string(value: Any) -> str:
        if isinstance(value, (dict, list)):
            return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    @staticmethod
    def _parse_int(value: Any) -> int:
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, int):
            return value
        if isinstance(value, float):
            if not value.is_integer():
                raise ValueError(f"not an integral number: {value!r}")
            return int(value)
        text = str(value).strip()
        try:
            return int(text)
        except ValueError:
            pass
        # "10.0" is accepted, "19.5" and "1e3" are not
        try:
            number = Decimal(text)
        except InvalidOperation:
            raise ValueError(f"not an integer: {text!r}")
        if "e" in text.lower() or not number.is_finite() or number != number.to_integral_value():
            raise ValueError(f"not an integer: {text!r}")
        return int(number)

    @staticmethod
    def _parse_float(value: Any) -> float:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        return float(str(value).strip())

    @staticmethod
    def _parse_bool(value: Any) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)) and value in (0, 1):
            return bool(value)
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ValueError(f"not a boolean: {value!r}")

    @staticmethod
    def _parse_date(value: Any, pattern: Optional[str]) -> date:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        text = str(value).strip()
        if pattern and pattern.strip():
            return datetime.strptime(text, to_strftime(pattern)).date()
        return date.fromisoformat(text)

    @staticmethod
    def _parse_datetime(value: Any, pattern: Optional[str]) -> datetime:
        if isinstance(value, datetime):
            return value
        if isinstance(value, date):
            return datetime(value.year, value.month, value.day)
        text = str(value).strip()
        if pattern and pattern.strip():
            return datetime.strptime(text, to_strftime(pattern))
        return datetime.fromisoformat(text.replace("Z", "+00:00"))


def convert_value(raw: Any, column: ColumnDescriptor, source_name: Optional[str] = None) -> Any:
    """Convert one raw value with a throwaway converter."""
    return ValueConverter(source_name).convert(raw, column)
