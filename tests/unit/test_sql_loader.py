"""
Unit tests for SQL file loading
"""

import pytest

from core.exceptions import MissingVariableError, SqlFileError
from ingestion.sql_loader import SqlFileLoader
from ingestion.variables import VariableResolver


class TestSqlFileLoader:
    """Test reading, comment stripping and parameter binding"""

    def test_load_strips_comments_and_binds(self, tmp_path):
        """Test comments removed and parameters bound in order"""
        (tmp_path / "orders.sql").write_text(
            "-- orders of one day\nSELECT id, amount FROM orders\n"
            "WHERE day = :day AND status = :status -- open only\n"
        )
        resolver = VariableResolver("orders", {"status": "OPEN", "day": "2024-01-01"})

        loaded = SqlFileLoader().load(str(tmp_path), "orders.sql", resolver)

        assert "--" not in loaded.sql
        assert loaded.parameter_names == ["day", "status"]
        assert loaded.parameters == {"day": "2024-01-01", "status": "OPEN"}

    def test_relative_directory_uses_base(self, tmp_path):
        """Test relative sql_directory is resolved against the base directory"""
        (tmp_path / "sql").mkdir()
        (tmp_path / "sql" / "q.sql").write_text("SELECT 1")

        loader = SqlFileLoader(str(tmp_path))

        assert loader.read_raw_sql("sql", "q.sql") == "SELECT 1"

    def test_missing_file(self, tmp_path):
        """Test a missing file names the directory to check"""
        with pytest.raises(SqlFileError) as exc_info:
            SqlFileLoader().read_raw_sql(str(tmp_path), "absent.sql")

        assert "SQL file not found" in exc_info.value.message
        assert "Check sql_directory=" in exc_info.value.message

    def test_comment_only_file(self, tmp_path):
        """Test files with only comments are rejected"""
        (tmp_path / "empty.sql").write_text("-- nothing here\n\n")

        with pytest.raises(SqlFileError) as exc_info:
            SqlFileLoader().read_raw_sql(str(tmp_path), "empty.sql")

        assert "empty or contains only comments" in exc_info.value.message

    def test_missing_bind_value(self, tmp_path):
        """Test a parameter without value fails"""
        (tmp_path / "q.sql").write_text("SELECT * FROM t WHERE id = :id")

        with pytest.raises(MissingVariableError):
            SqlFileLoader().load(str(tmp_path), "q.sql", VariableResolver("s"))

    def test_load_statements_splits_on_semicolons(self, tmp_path):
        """Test multi-statement files are split at line-ending semicolons"""
        (tmp_path / "pre.sql").write_text(
            "DELETE FROM staging WHERE day = :day;\n"
            "UPDATE stats SET note = 'a;b';\n"
            "INSERT INTO audit(day) VALUES (:day)\n"
        )
        resolver = VariableResolver("orders", {"day": "2024-01-01"})

        statements = SqlFileLoader().load_statements(str(tmp_path), "pre.sql", resolver)

        assert len(statements) == 3
        assert statements[1].sql == "UPDATE stats SET note = 'a;b'"
        assert statements[1].parameters == {}
        assert statements[2].parameters == {"day": "2024-01-01"}
