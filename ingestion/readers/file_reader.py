"""
Delimited file reader backed by pandas.
"""

import re
from pathlib import Path
from typing import Any, Iterator, List, Optional

import pandas as pd

from core.config import settings
from core.exceptions import FileReadError
from ingestion.base import RecordReader
from models.record import Record
import logging

logger = logging.getLogger(__name__)


class DelimitedFileReader(RecordReader):
    """
    Read a delimited text file line by line.

    Supports:
    - Any single or multi-character delimiter (default ";")
    - Optional header line skip
    - Positional column mapping: field i feeds declared column i
    - Lazy reading in chunks, the file is never loaded whole

    Every field is read as text and converted to its column type.
    """

    def __init__(self, source, bind_values=None, resolver=None, read_chunk_size: Optional[int] = None):
        super().__init__(source, bind_values, resolver)
        self.config = source.file
        self.read_chunk_size = read_chunk_size or settings.DEFAULT_CHUNK_SIZE
        self.file_path: Optional[Path] = None
        self._chunks = None
        self._rows: Optional[Iterator[List[Any]]] = None
        self._line_number = 0

    async def _open(self) -> None:
        self.file_path = Path(self.resolver.resolve(self.config.path, "file.path"))
        self._chunks = None
        self._rows = None
        self._line_number = 1 if self.config.skip_header else 0
        logger.info(f"File reader ready for {self.file_path} (delimiter={self.config.delimiter!r})")

    def _start(self) -> None:
        if not self.file_path.exists():
            raise FileReadError(
                f"File not found: {self.file_path}",
                context={"source_name": self.source_name, "file_path": str(self.file_path)}
            )

        delimiter = self.config.delimiter
        options = {}
        if len(delimiter) > 1:
            # pandas reads multi-character separators as regular expressions
            delimiter = re.escape(delimiter)
            options["engine"] = "python"

        try:
            self._chunks = pd.read_csv(
                self.file_path,
                sep=delimiter,
                header=None,
                skiprows=1 if self.config.skip_header else 0,
                dtype=str,
                keep_default_na=False,
                encoding=self.config.encoding,
                chunksize=self.read_chunk_size,
                **options
            )
        except (OSError, UnicodeDecodeError, pd.errors.ParserError) as e:
            raise FileReadError(
                f"Unable to open file: {self.file_path}",
                context={"source_name": self.source_name, "file_path": str(self.file_path)},
                original_exception=e
            )
        self._rows = self._iter_rows()

    def _iter_rows(self) -> Iterator[List[Any]]:
        try:
            for chunk in self._chunks:
                for row in chunk.itertuples(index=False, name=None):
                    yield list(row)
        except pd.errors.EmptyDataError:
            return

    async def _read(self) -> Optional[Record]:
        if self._rows is None:
            try:
                self._start()
            except pd.errors.EmptyDataError:
                self._rows = iter(())

        try:
            row = next(self._rows, None)
        except (pd.errors.ParserError, UnicodeDecodeError) as e:
            raise FileReadError(
                f"Malformed line after line {self._line_number} in {self.file_path}",
                context={
                    "source_name": self.source_name,
                    "file_path": str(self.file_path),
                    "line_number": self._line_number + 1,
                },
                original_exception=e
            )
        if row is None:
            return None
        self._line_number += 1

        record = Record()
        for index, column in enumerate(self.source.columns):
            raw = row[index] if index < len(row) else None
            if raw is not None and pd.isna(raw):
                raw = None
            record[column.name] = self.convert(raw, column)
        return record

    async def _close(self) -> None:
        if self._chunks is not None:
            self._chunks.close()
        self._chunks = None
        self._rows = None
