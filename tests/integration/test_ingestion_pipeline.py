"""
Integration tests for a complete configured source run
"""

import httpx
import pytest

from ingestion.config_loader import SourceConfigLoader
from ingestion.registry import CollaboratorRegistry
from ingestion.runner import IngestionRunner
from scripts.run_ingestion import build_parser, parse_bind_values


@pytest.fixture
def project(tmp_path):
    """Config and SQL directories of a small project"""
    config_dir = tmp_path / "config"
    sql_dir = tmp_path / "sql"
    data_dir = tmp_path / "data"
    for directory in (config_dir, sql_dir, data_dir):
        directory.mkdir()

    (data_dir / "orders_2024-01-02.csv").write_text("id;amount;paid\n1;10.5;true\n2;3;false\n3;7.25;yes\n")
    (sql_dir / "prepare_orders.sql").write_text("-- clear the day\nDELETE FROM orders WHERE day = :day;\n")
    (sql_dir / "insert_orders.sql").write_text(
        "INSERT INTO orders (id, amount, paid) VALUES (:id, :amount, :paid)"
    )
    (config_dir / "orders.yml").write_text(f"""
type: CSV
chunk_size: 2
file:
  path: {data_dir}/orders_:day.csv
columns:
  - name: id
    type: INTEGER
  - name: amount
    type: DOUBLE
  - name: paid
    type: BOOLEAN
writer:
  type: SQL
  sql_directory: {sql_dir}
  sql_file: insert_orders.sql
preprocessing:
  enabled: true
  type: SQL
  sql_directory: {sql_dir}
  sql_file: prepare_orders.sql
""")
    (config_dir / "feed.yml").write_text("""
name: feed
type: REST
http:
  url: https://api.example.com/feed
  data_path: $.items
  pagination:
    strategy: PAGE_SIZE
    page_size: 2
columns:
  - name: id
    type: INTEGER
  - name: title
    json_path: $.attributes.title
""")
    return config_dir


@pytest.mark.asyncio
async def test_file_source_to_sql_writer(project, fake_session_maker):
    """
    Integration test: YAML → preprocessing SQL → file reader → SQL batch writer
    """
    descriptor = SourceConfigLoader(str(project)).load("orders")
    runner = IngestionRunner(CollaboratorRegistry(), session_maker=fake_session_maker)

    result = await runner.run(descriptor, {"day": "2024-01-02"})

    session = fake_session_maker.session
    assert result["records_written"] == 3
    assert result["chunks"] == 2

    statements = [sql for sql, _ in session.executed]
    assert statements[0].startswith("DELETE FROM orders")
    assert session.executed[0][1] == {"day": "2024-01-02"}
    assert session.executed[1][1] == [
        {"id": 1, "amount": 10.5, "paid": True},
        {"id": 2, "amount": 3.0, "paid": False},
    ]
    assert session.executed[2][1] == [{"id": 3, "amount": 7.25, "paid": True}]
    # preprocessing plus one transaction per chunk
    assert session.outcomes == ["commit", "commit", "commit"]


@pytest.mark.asyncio
async def test_http_source_to_delegate_writer(project, list_writer_factory):
    """
    Integration test: YAML → paginated HTTP reader → conventional writer
    """
    pages = {
        "0": [{"id": "1", "attributes": {"title": "a"}}, {"id": "2", "attributes": {"title": "b"}}],
        "1": [{"id": "3", "attributes": {"title": "c"}}],
        "2": [],
    }

    def handler(request):
        return httpx.Response(200, json={"items": pages[request.url.params["page"]]})

    writer = list_writer_factory()
    registry = CollaboratorRegistry()
    registry.register("feedWriter", writer)
    descriptor = SourceConfigLoader(str(project)).load("feed")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        result = await IngestionRunner(registry, http_client=client).run(descriptor)

    assert result["records_read"] == 3
    assert [(r["id"], r["title"]) for r in writer.written] == [(1, "a"), (2, "b"), (3, "c")]


class TestCommandLine:
    """Test argument handling of the run script"""

    def test_parse_bind_values(self):
        """Test key=value pairs become bind values"""
        assert parse_bind_values(["day=2024-01-02", "query=a=b"]) == {"day": "2024-01-02", "query": "a=b"}

    def test_invalid_bind_value(self):
        """Test arguments without = are rejected"""
        with pytest.raises(ValueError):
            parse_bind_values(["day"])

    def test_parser(self):
        """Test source and bind values are parsed"""
        args = build_parser().parse_args(["orders", "day=2024-01-02", "--config-dir", "cfg"])

        assert args.source == "orders"
        assert args.bind_values == ["day=2024-01-02"]
        assert args.config_dir == "cfg"
