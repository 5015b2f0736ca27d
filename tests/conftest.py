"""
Pytest configuration and fixtures
"""

from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, Mock

import pytest

from models.record import Record
from schemas.source import SourceDescriptor, parse_source_descriptor


class FakeTransaction:
    """Async context manager standing in for AsyncSession.begin()"""

    def __init__(self, session: "FakeSession"):
        self.session = session

    async def __aenter__(self):
        self.session.open_transactions += 1
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.session.open_transactions -= 1
        self.session.outcomes.append("rollback" if exc_type else "commit")
        return False


class FakeSession:
    """Minimal AsyncSession: records executed statements and transaction outcomes."""

    def __init__(self):
        self.executed: List[Any] = []
        self.outcomes: List[str] = []
        self.open_transactions = 0
        self.execute = AsyncMock(side_effect=self._execute)

    async def _execute(self, statement, params=None):
        self.executed.append((str(statement), params))
        return Mock(rowcount=len(params) if isinstance(params, list) else 1)

    def begin(self):
        return FakeTransaction(self)


class FakeSessionMaker:
    """Callable returning the same FakeSession in an async context"""

    def __init__(self, session: FakeSession):
        self.session = session

    def __call__(self):
        return self

    async def __aenter__(self):
        return self.session

    async def __aexit__(self, exc_type, exc, tb):
        return False


class ListWriter:
    """Writer collecting chunks, failing for records whose id is in fail_ids"""

    def __init__(self, fail_ids=()):
        self.chunks: List[List[Record]] = []
        self.fail_ids = set(fail_ids)

    async def write(self, records: List[Record]) -> None:
        if any(record.get("id") in self.fail_ids for record in records):
            raise ValueError("constraint violation")
        self.chunks.append(list(records))

    @property
    def written(self) -> List[Record]:
        return [record for chunk in self.chunks for record in chunk]


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def fake_session_maker(fake_session) -> FakeSessionMaker:
    return FakeSessionMaker(fake_session)


@pytest.fixture
def list_writer_factory():
    return ListWriter


@pytest.fixture
def csv_source_factory(tmp_path):
    """Build a FILE source over a semicolon file with id;amount rows"""

    def factory(rows: List[str], writer: Optional[Dict[str, Any]] = None, **overrides) -> SourceDescriptor:
        csv_file = tmp_path / "orders.csv"
        csv_file.write_text("id;amount\n" + "".join(f"{row}\n" for row in rows))
        data = {
            "name": "orders",
            "type": "FILE",
            "file": {"path": str(csv_file)},
            "columns": [
                {"name": "id", "type": "INTEGER", "required": True},
                {"name": "amount", "type": "DECIMAL"},
            ],
        }
        if writer is not None:
            data["writer"] = writer
        data.update(overrides)
        return parse_source_descriptor(data)

    return factory


@pytest.fixture
def engine_sessions():
    """session_maker_factory handing out one FakeSession per engine"""
    sessions: Dict[Any, FakeSession] = {}

    def factory(engine) -> FakeSessionMaker:
        return FakeSessionMaker(sessions.setdefault(engine, FakeSession()))

    factory.sessions = sessions
    return factory
