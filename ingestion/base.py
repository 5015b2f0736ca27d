"""
Reader contract and the collaborator protocols of the chunk loop.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Protocol, runtime_checkable

from ingestion.converter import ValueConverter
from ingestion.variables import VariableResolver
from models.record import Record
from schemas.source import ColumnDescriptor, SourceDescriptor
import logging

logger = logging.getLogger(__name__)


class RecordReader(ABC):
    """
    Abstract base class for all protocol readers.

    Lifecycle (once per run):
    - open(): resolve templates and reset cursors, no I/O
    - read(): next Record, None at end of input; I/O happens lazily here
    - close(): release connections and buffers

    Readers are used by a single chunk loop and are not shared between runs.
    """

    def __init__(
        self,
        source: SourceDescriptor,
        bind_values: Optional[Mapping[str, Any]] = None,
        resolver: Optional[VariableResolver] = None
    ):
        self.source = source
        self.source_name = source.name
        self.resolver = resolver or VariableResolver(source.name, bind_values)
        self.converter = ValueConverter(source.name)
        self.items_read = 0
        self._opened = False

    async def open(self) -> None:
        logger.info(f"Opening {type(self).__name__} for source '{self.source_name}'")
        self.items_read = 0
        await self._open()
        self._opened = True

    async def read(self) -> Optional[Record]:
        if not self._opened:
            raise RuntimeError(f"Reader for source '{self.source_name}' is not open")
        record = await self._read()
        if record is not None:
            self.items_read += 1
        return record

    async def close(self) -> None:
        try:
            await self._close()
        finally:
            self._opened = False
            logger.info(
                f"Closed {type(self).__name__} for source '{self.source_name}' "
                f"- total items read: {self.items_read}"
            )

    async def __aenter__(self) -> "RecordReader":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def read_all(self) -> List[Record]:
        """Drain the reader. Meant for tests and small sources."""
        records = []
        while True:
            record = await self.read()
            if record is None:
                return records
            records.append(record)

    def convert(self, raw: Any, column: ColumnDescriptor) -> Any:
        return self.converter.convert(raw, column)

    @abstractmethod
    async def _open(self) -> None:
        pass

    @abstractmethod
    async def _read(self) -> Optional[Record]:
        pass

    async def _close(self) -> None:
        pass


# ============================================================================
# Collaborator protocols
# ============================================================================

@runtime_checkable
class RecordProcessor(Protocol):
    """Per-record transform. Returning None drops the record."""

    async def process(self, record: Record) -> Optional[Record]:
        ...


@runtime_checkable
class RecordWriter(Protocol):
    """Receives one chunk of records inside the host transaction."""

    async def write(self, records: List[Record]) -> None:
        ...


@runtime_checkable
class Task(Protocol):
    """Pre/post processing step. The returned mapping is the step outcome."""

    async def execute(self, context: Dict[str, Any]) -> Any:
        ...


class IdentityProcessor:
    """Processor used when a source has no processor registered."""

    async def process(self, record: Record) -> Optional[Record]:
        return record
