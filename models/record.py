"""
Uniform record container passed between reader, processor and writer.
"""

from collections.abc import MutableMapping
from typing import Any, Dict, Iterator, Mapping, Optional


class Record(MutableMapping):
    """
    Field name -> value mapping produced by every reader.

    Rules:
    - Field names are non-blank strings
    - Assigning an existing field replaces its value (last write wins)
    - Equality is structural: two records are equal when their fields are

    Values are plain Python scalars (str, int, float, bool, date,
    datetime) or None.
    """

    __slots__ = ("_data",)

    def __init__(self, data: Optional[Mapping[str, Any]] = None, **fields: Any):
        self._data: Dict[str, Any] = {}
        if data:
            self.update(data)
        if fields:
            self.update(fields)

    def __getitem__(self, name: str) -> Any:
        return self._data[name]

    def __setitem__(self, name: str, value: Any) -> None:
        if not isinstance(name, str) or not name.strip():
            raise ValueError(f"Record field name must be a non-blank string, got {name!r}")
        self._data[name] = value

    def __delitem__(self, name: str) -> None:
        del self._data[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Record):
            return self._data == other._data
        return NotImplemented

    __hash__ = None  # mutable

    def __repr__(self) -> str:
        return f"Record({self._data!r})"

    def put(self, name: str, value: Any) -> None:
        self[name] = value

    def as_dict(self) -> Dict[str, Any]:
        """Shallow copy of the fields, used as named SQL parameters."""
        return dict(self._data)

    # ------------------------------------------------------------------
    # Lenient typed accessors
    # ------------------------------------------------------------------

    def get_string(self, name: str) -> Optional[str]:
        value = self._data.get(name)
        return None if value is None else str(value)

    def get_int(self, name: str) -> Optional[int]:
        """Return the field as int, or None when absent or not numeric."""
        value = self._data.get(name)
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return int(value)
        try:
            return int(str(value).strip())
        except ValueError:
            return None

    def get_float(self, name: str) -> Optional[float]:
        """Return the field as float, or None when absent or not numeric."""
        value = self._data.get(name)
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return float(value)
        try:
            return float(str(value).strip())
        except ValueError:
            return None
