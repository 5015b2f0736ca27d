"""
Parameterized batch SQL writer.
"""

from typing import List, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.exceptions import RowWriteError
from ingestion.sql_loader import SqlFileLoader
from models.record import Record
from schemas.source import WriterDescriptor
import logging

logger = logging.getLogger(__name__)


class SqlBatchWriter:
    """
    Write a chunk with one statement executed once per record.

    The statement file is read once when the writer is built. Each
    record's fields are its named parameters (``:field``) and the whole
    chunk goes to the database in a single executemany call, inside the
    transaction the host opened on the session.
    """

    def __init__(
        self,
        source_name: str,
        descriptor: WriterDescriptor,
        session: AsyncSession,
        sql_loader: Optional[SqlFileLoader] = None
    ):
        self.source_name = source_name
        self.descriptor = descriptor
        self.session = session
        loader = sql_loader or SqlFileLoader(settings.INGESTION_SQL_DIR)
        self.sql = loader.read_raw_sql(descriptor.sql_directory, descriptor.sql_file)
        self._statement = text(self.sql)
        self.rows_written = 0

        logger.info(
            f"Source '{source_name}' - SQL writer initialized from "
            f"{descriptor.sql_directory}/{descriptor.sql_file}"
        )

    async def write(self, records: List[Record]) -> None:
        """
        Execute the statement for every record of the chunk.

        Raises:
            RowWriteError: When the database rejects the batch
        """
        if not records:
            logger.debug(f"Source '{self.source_name}' - empty chunk, nothing to write")
            return

        params = [record.as_dict() for record in records]
        try:
            result = await self.session.execute(self._statement, params)
        except SQLAlchemyError as e:
            raise RowWriteError(
                f"Batch write failed for source '{self.source_name}'",
                context={
                    "source_name": self.source_name,
                    "sql_file": self.descriptor.sql_file,
                    "chunk_size": len(records),
                },
                original_exception=e
            )

        self.rows_written += len(records)
        affected = getattr(result, "rowcount", None)
        if not isinstance(affected, int) or affected < 0:
            affected = "unknown"
        logger.info(
            f"Source '{self.source_name}' - chunk written: {len(records)} record(s), "
            f"{affected} row(s) affected"
        )
