"""
SQL query reader streaming rows through SQLAlchemy async.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from core.config import settings
from core.exceptions import QueryError
from ingestion.base import RecordReader
from ingestion.sql_loader import LoadedSql, SqlFileLoader
from models.record import Record
import logging

logger = logging.getLogger(__name__)


class QueryReader(RecordReader):
    """
    Run the source's statement file and stream its result set.

    Rows are fetched server-side in batches of fetch_size. With declared
    columns only those are read (matched case-insensitively, absent ones
    are None); without columns every result column is read under its label.
    """

    def __init__(
        self,
        source,
        engine: AsyncEngine,
        bind_values=None,
        resolver=None,
        sql_loader: Optional[SqlFileLoader] = None
    ):
        super().__init__(source, bind_values, resolver)
        self.config = source.query
        self.engine = engine
        self.sql_loader = sql_loader or SqlFileLoader(settings.INGESTION_SQL_DIR)
        self.fetch_size = self.config.fetch_size or settings.DEFAULT_FETCH_SIZE
        self.statement: Optional[LoadedSql] = None
        self._connection: Optional[AsyncConnection] = None
        self._result = None
        self._key_index: Dict[str, str] = {}

    async def _open(self) -> None:
        self.statement = self.sql_loader.load(
            self.config.sql_directory, self.config.sql_file, self.resolver
        )
        self._connection = None
        self._result = None

    async def _execute(self) -> None:
        try:
            self._connection = await self.engine.connect()
            self._result = await self._connection.stream(
                text(self.statement.sql),
                self.statement.parameters,
                execution_options={"yield_per": self.fetch_size},
            )
        except SQLAlchemyError as e:
            raise QueryError(
                f"Query failed for source '{self.source_name}'",
                context={
                    "source_name": self.source_name,
                    "sql_file": self.config.sql_file,
                    "parameters": list(self.statement.parameters),
                },
                original_exception=e
            )
        keys: List[str] = list(self._result.keys())
        self._key_index = {key.lower(): key for key in keys}
        logger.debug(f"Source '{self.source_name}' - streaming columns {keys} (fetch_size={self.fetch_size})")

    async def _read(self) -> Optional[Record]:
        if self._result is None:
            await self._execute()

        try:
            row = await self._result.fetchone()
        except SQLAlchemyError as e:
            raise QueryError(
                f"Fetching rows failed for source '{self.source_name}'",
                context={"source_name": self.source_name, "sql_file": self.config.sql_file},
                original_exception=e
            )
        if row is None:
            return None
        return self._map_row(dict(row._mapping))

    def _map_row(self, values: Dict[str, Any]) -> Record:
        record = Record()
        if not self.source.columns:
            for key, value in values.items():
                record[key] = value
            return record

        for column in self.source.columns:
            key = self._key_index.get(column.name.lower())
            raw = values.get(key) if key is not None else None
            record[column.name] = self.convert(raw, column)
        return record

    async def _close(self) -> None:
        try:
            if self._result is not None:
                await self._result.close()
        finally:
            self._result = None
            if self._connection is not None:
                await self._connection.close()
                self._connection = None
