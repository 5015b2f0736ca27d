"""
Unit tests for the delimited file reader
"""

import pytest

from core.exceptions import FileReadError, MissingVariableError
from ingestion.readers.file_reader import DelimitedFileReader
from models.record import Record
from schemas.source import parse_source_descriptor


def file_source(path, columns=None, **file_options):
    return parse_source_descriptor({
        "name": "orders",
        "type": "FILE",
        "file": {"path": str(path), **file_options},
        "columns": columns or [
            {"name": "id", "type": "INTEGER"},
            {"name": "amount", "type": "DECIMAL"},
        ],
    })


class TestDelimitedFileReader:
    """Test file reading and positional mapping"""

    @pytest.mark.asyncio
    async def test_reads_typed_record(self, tmp_path):
        """Test header skipped and fields converted by position"""
        csv_file = tmp_path / "orders.csv"
        csv_file.write_text("id;amount\n7;19.5\n")

        async with DelimitedFileReader(file_source(csv_file)) as reader:
            records = await reader.read_all()

        assert records == [Record(id=7, amount=19.5)]
        assert reader.items_read == 1

    @pytest.mark.asyncio
    async def test_without_header_and_custom_delimiter(self, tmp_path):
        """Test every line is data when skip_header is off"""
        csv_file = tmp_path / "orders.csv"
        csv_file.write_text("1,10\n2,20\n3,30\n")

        reader = DelimitedFileReader(file_source(csv_file, delimiter=",", skip_header=False))
        await reader.open()
        records = await reader.read_all()
        await reader.close()

        assert [r["id"] for r in records] == [1, 2, 3]
        assert records[2]["amount"] == 30.0

    @pytest.mark.asyncio
    async def test_multi_character_delimiter(self, tmp_path):
        """Test delimiters longer than one character"""
        csv_file = tmp_path / "orders.txt"
        csv_file.write_text("id||amount\n5||1.25\n")

        async with DelimitedFileReader(file_source(csv_file, delimiter="||")) as reader:
            records = await reader.read_all()

        assert records == [Record(id=5, amount=1.25)]

    @pytest.mark.asyncio
    async def test_reads_across_chunks(self, tmp_path):
        """Test lazy reading in small chunks returns every line once"""
        csv_file = tmp_path / "orders.csv"
        csv_file.write_text("id;amount\n" + "".join(f"{i};{i}.5\n" for i in range(7)))

        async with DelimitedFileReader(file_source(csv_file), read_chunk_size=3) as reader:
            records = await reader.read_all()

        assert [r["id"] for r in records] == list(range(7))

    @pytest.mark.asyncio
    async def test_blank_fields(self, tmp_path):
        """Test blank fields: empty string for text, None for numbers"""
        csv_file = tmp_path / "people.csv"
        csv_file.write_text("name;age\n;\n")
        source = file_source(csv_file, columns=[{"name": "name"}, {"name": "age", "type": "INTEGER"}])

        async with DelimitedFileReader(source) as reader:
            record = await reader.read()

        assert record["name"] == ""
        assert record["age"] is None

    @pytest.mark.asyncio
    async def test_header_only_file_is_empty(self, tmp_path):
        """Test a file with only a header yields no records"""
        csv_file = tmp_path / "orders.csv"
        csv_file.write_text("id;amount\n")

        async with DelimitedFileReader(file_source(csv_file)) as reader:
            assert await reader.read() is None

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        """Test a missing file fails on the first read"""
        reader = DelimitedFileReader(file_source(tmp_path / "absent.csv"))
        await reader.open()

        with pytest.raises(FileReadError) as exc_info:
            await reader.read()
        await reader.close()

        assert "File not found" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_path_with_bind_value(self, tmp_path):
        """Test the path template is resolved from bind values"""
        (tmp_path / "orders_2024.csv").write_text("id;amount\n1;2\n")
        source = file_source(f"{tmp_path}/orders_:year.csv")

        async with DelimitedFileReader(source, bind_values={"year": "2024"}) as reader:
            records = await reader.read_all()

        assert len(records) == 1

    @pytest.mark.asyncio
    async def test_path_with_missing_bind_value(self, tmp_path):
        """Test an unresolved path placeholder fails at open"""
        reader = DelimitedFileReader(file_source(f"{tmp_path}/orders_:year.csv"))

        with pytest.raises(MissingVariableError):
            await reader.open()

    @pytest.mark.asyncio
    async def test_read_before_open(self, tmp_path):
        """Test reading a closed reader is a programming error"""
        reader = DelimitedFileReader(file_source(tmp_path / "x.csv"))

        with pytest.raises(RuntimeError):
            await reader.read()
