"""
Unit tests for the SQL batch writer
"""

from unittest.mock import AsyncMock, Mock

import pytest
from sqlalchemy.exc import IntegrityError

from core.exceptions import RowWriteError, SqlFileError
from ingestion.writers.sql_writer import SqlBatchWriter
from models.record import Record
from schemas.source import WriterDescriptor


@pytest.fixture
def writer_descriptor(tmp_path):
    (tmp_path / "insert_orders.sql").write_text(
        "-- upsert one order\nINSERT INTO orders (id, amount) VALUES (:id, :amount)\n"
    )
    return WriterDescriptor(type="SQL", sql_directory=str(tmp_path), sql_file="insert_orders.sql")


class TestSqlBatchWriter:
    """Test batch execution of the statement file"""

    @pytest.mark.asyncio
    async def test_one_batch_per_chunk(self, writer_descriptor):
        """Test three records make one execute with three parameter sets"""
        session = Mock()
        session.execute = AsyncMock(return_value=Mock(rowcount=3))
        writer = SqlBatchWriter("orders", writer_descriptor, session)

        await writer.write([Record(id=1, amount=1.0), Record(id=2, amount=2.0), Record(id=3, amount=3.0)])

        session.execute.assert_awaited_once()
        statement, params = session.execute.call_args.args
        assert "INSERT INTO orders" in str(statement)
        assert "--" not in str(statement)
        assert params == [
            {"id": 1, "amount": 1.0},
            {"id": 2, "amount": 2.0},
            {"id": 3, "amount": 3.0},
        ]
        assert writer.rows_written == 3

    @pytest.mark.asyncio
    async def test_empty_chunk_is_a_no_op(self, writer_descriptor):
        """Test nothing is executed for an empty chunk"""
        session = Mock()
        session.execute = AsyncMock()
        writer = SqlBatchWriter("orders", writer_descriptor, session)

        await writer.write([])

        session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_database_error_wrapped(self, writer_descriptor):
        """Test database rejections become RowWriteError"""
        session = Mock()
        session.execute = AsyncMock(side_effect=IntegrityError("INSERT", {}, Exception("duplicate key")))
        writer = SqlBatchWriter("orders", writer_descriptor, session)

        with pytest.raises(RowWriteError) as exc_info:
            await writer.write([Record(id=1, amount=1.0)])

        assert exc_info.value.context["chunk_size"] == 1
        assert exc_info.value.source_name == "orders"

    def test_missing_statement_file(self, tmp_path):
        """Test the statement file is checked when the writer is built"""
        descriptor = WriterDescriptor(type="SQL", sql_directory=str(tmp_path), sql_file="absent.sql")

        with pytest.raises(SqlFileError):
            SqlBatchWriter("orders", descriptor, Mock())
