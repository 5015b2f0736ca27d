# ============================================================================
# File: ingestion/runner.py
# Description: Chunk-oriented ingestion orchestrator
# ============================================================================
"""
Ingestion Runner - Orchestrates one source run.

Pipeline phases:
1. Preprocessing task (own transaction)
2. Chunk loop: read up to chunk_size records, process, validate, write
   the chunk in one transaction
3. Postprocessing task (own transaction)

Under the SKIP error policy a chunk that fails to write is replayed one
record per transaction; records that still fail are counted against the
writer's skip limit.
"""

from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, List, Mapping, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.database import build_session_maker
from core.exceptions import (
    IngestionException,
    RecordValidationError,
    SkipLimitExceededError,
)
from ingestion.base import RecordProcessor, RecordReader, RecordWriter
from ingestion.dispatch import build_processor, build_reader, build_writer
from ingestion.registry import DEFAULT_ENGINE, CollaboratorRegistry
from ingestion.sql_loader import SqlFileLoader
from ingestion.tasks import GenericTask
from ingestion.variables import VariableResolver
from models.record import Record
from schemas.source import SourceDescriptor
import logging

logger = logging.getLogger(__name__)

COMPLETED = "COMPLETED"
PREPROCESSING = "preprocessing"
POSTPROCESSING = "postprocessing"


class IngestionRunner:
    """
    Reference host for configuration-driven sources.

    Responsibilities:
    - Build reader, processor, writer and tasks for a source
    - Run the chunk loop with one transaction per chunk
    - Enforce required columns
    - Apply the FAIL/SKIP error policy
    - Always close the reader
    """

    def __init__(
        self,
        registry: CollaboratorRegistry,
        session_maker: Optional[async_sessionmaker] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sql_loader: Optional[SqlFileLoader] = None,
        session_maker_factory: Callable[[Any], async_sessionmaker] = build_session_maker
    ):
        self.registry = registry
        self.session_maker_factory = session_maker_factory
        if session_maker is None and registry.contains(DEFAULT_ENGINE):
            session_maker = session_maker_factory(registry.get_engine())
        self.session_maker = session_maker
        self.http_client = http_client
        self.sql_loader = sql_loader

    async def run(self, source: SourceDescriptor, bind_values: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """
        Run a source end to end.

        Args:
            source: Validated source descriptor
            bind_values: Values for ``:name`` placeholders

        Returns:
            Dictionary with run statistics:
            - status: COMPLETED
            - records_read, records_written, records_skipped, records_filtered
            - chunks: Number of chunks committed

        Raises:
            IngestionException: Any configuration, extraction, load or task failure
        """
        logger.info(f"Starting ingestion for source '{source.name}' (type={source.type.value})")
        async with AsyncExitStack() as stack:
            sessions = await self._open_sessions(source, stack)
            return await self._run(source, bind_values, sessions)

    async def _open_sessions(self, source: SourceDescriptor, stack: AsyncExitStack) -> Dict[Optional[str], Optional[AsyncSession]]:
        """
        One session per data source used by the writer and enabled tasks.

        The None key is the default data source.
        """
        sessions: Dict[Optional[str], Optional[AsyncSession]] = {None: None}
        if self.session_maker is not None:
            sessions[None] = await stack.enter_async_context(self.session_maker())

        descriptors = [source.writer, source.preprocessing, source.postprocessing]
        for descriptor in descriptors:
            if descriptor is None or not getattr(descriptor, "enabled", True):
                continue
            name = self._data_source_key(descriptor.data_source)
            if name in sessions:
                continue
            engine = self.registry.get_engine(name, source.name)
            logger.info(f"Source '{source.name}' - opening session on data source '{name}'")
            sessions[name] = await stack.enter_async_context(self.session_maker_factory(engine)())
        return sessions

    @staticmethod
    def _data_source_key(name: Optional[str]) -> Optional[str]:
        if not name or not name.strip() or name == DEFAULT_ENGINE:
            return None
        return name

    def _session_for(self, sessions: Dict[Optional[str], Optional[AsyncSession]], descriptor) -> Optional[AsyncSession]:
        if descriptor is None:
            return sessions[None]
        return sessions[self._data_source_key(descriptor.data_source)]

    async def _run(
        self,
        source: SourceDescriptor,
        bind_values: Optional[Mapping[str, Any]],
        sessions: Dict[Optional[str], Optional[AsyncSession]]
    ) -> Dict[str, Any]:
        resolver = VariableResolver(source.name, bind_values)
        stats = {
            "status": COMPLETED,
            "records_read": 0,
            "records_written": 0,
            "records_skipped": 0,
            "records_filtered": 0,
            "chunks": 0,
        }

        try:
            # --------------------------------------------------
            # PHASE 1: PREPROCESSING
            # --------------------------------------------------
            await self._run_task(PREPROCESSING, source, sessions, resolver)

            # --------------------------------------------------
            # PHASE 2: CHUNK LOOP
            # --------------------------------------------------
            reader = build_reader(
                source,
                registry=self.registry,
                http_client=self.http_client,
                resolver=resolver,
                sql_loader=self.sql_loader
            )
            processor = build_processor(source, self.registry)
            session = self._session_for(sessions, source.writer)
            writer = build_writer(source, self.registry, session, self.sql_loader)

            await reader.open()
            try:
                await self._chunk_loop(source, reader, processor, writer, session, stats)
            finally:
                await reader.close()

            # --------------------------------------------------
            # PHASE 3: POSTPROCESSING
            # --------------------------------------------------
            await self._run_task(POSTPROCESSING, source, sessions, resolver)

        except IngestionException as e:
            logger.error(
                f"Ingestion failed for source '{source.name}': {e.message}",
                extra={"error_context": e.to_dict()}
            )
            raise

        logger.info(
            f"Ingestion completed for source '{source.name}' - "
            f"Read: {stats['records_read']}, Written: {stats['records_written']}, "
            f"Skipped: {stats['records_skipped']}, Filtered: {stats['records_filtered']}, "
            f"Chunks: {stats['chunks']}"
        )
        return stats

    async def _run_task(
        self,
        phase: str,
        source: SourceDescriptor,
        sessions: Dict[Optional[str], Optional[AsyncSession]],
        resolver: VariableResolver
    ) -> Dict[str, Any]:
        descriptor = source.preprocessing if phase == PREPROCESSING else source.postprocessing
        session = self._session_for(sessions, descriptor) if descriptor.enabled else None
        task = GenericTask(
            phase,
            source.name,
            descriptor,
            registry=self.registry,
            session=session,
            resolver=resolver,
            sql_loader=self.sql_loader
        )
        if not task.enabled:
            return await task.execute()
        async with self._transaction(session):
            return await task.execute({"bind_values": dict(resolver.bind_values)})

    async def _chunk_loop(
        self,
        source: SourceDescriptor,
        reader: RecordReader,
        processor: RecordProcessor,
        writer: RecordWriter,
        session: Optional[AsyncSession],
        stats: Dict[str, Any]
    ) -> None:
        while True:
            chunk: List[Record] = []
            exhausted = False
            # chunk_size counts records read, filtered ones included
            for _ in range(source.chunk_size):
                record = await reader.read()
                if record is None:
                    exhausted = True
                    break
                stats["records_read"] += 1

                prepared = await self._prepare(source, processor, record, stats)
                if prepared is not None:
                    chunk.append(prepared)

            if chunk:
                await self._write_chunk(source, writer, session, chunk, stats)
                stats["chunks"] += 1
                logger.debug(
                    f"Source '{source.name}' - chunk {stats['chunks']} committed "
                    f"({len(chunk)} record(s))"
                )

            if exhausted:
                return

    async def _prepare(
        self,
        source: SourceDescriptor,
        processor: RecordProcessor,
        record: Record,
        stats: Dict[str, Any]
    ) -> Optional[Record]:
        processed = await processor.process(record)
        if processed is None:
            stats["records_filtered"] += 1
            return None

        try:
            self._validate(source, processed)
        except RecordValidationError as e:
            if not self._skips(source):
                raise
            self._count_skip(source, stats, e)
            return None
        return processed

    @staticmethod
    def _validate(source: SourceDescriptor, record: Record) -> None:
        for column in source.columns:
            if column.required and record.get(column.name) is None:
                raise RecordValidationError(
                    f"Required column '{column.name}' has no value",
                    context={"source_name": source.name, "column": column.name}
                )

    async def _write_chunk(
        self,
        source: SourceDescriptor,
        writer: RecordWriter,
        session: Optional[AsyncSession],
        chunk: List[Record],
        stats: Dict[str, Any]
    ) -> None:
        try:
            async with self._transaction(session):
                await writer.write(chunk)
            stats["records_written"] += len(chunk)
            return
        except Exception as e:
            if not self._skips(source):
                raise
            logger.warning(
                f"Source '{source.name}' - chunk of {len(chunk)} record(s) failed "
                f"({type(e).__name__}), retrying record by record"
            )

        for record in chunk:
            try:
                async with self._transaction(session):
                    await writer.write([record])
            except Exception as e:
                self._count_skip(source, stats, e)
                continue
            stats["records_written"] += 1

    @staticmethod
    def _skips(source: SourceDescriptor) -> bool:
        return source.writer is not None and source.writer.skips_on_error

    @staticmethod
    def _count_skip(source: SourceDescriptor, stats: Dict[str, Any], error: Exception) -> None:
        stats["records_skipped"] += 1
        skip_limit = source.writer.skip_limit
        logger.warning(
            f"Source '{source.name}' - record skipped "
            f"({stats['records_skipped']}/{skip_limit}): {error}"
        )
        if stats["records_skipped"] > skip_limit:
            raise SkipLimitExceededError(
                f"Skip limit of {skip_limit} exceeded for source '{source.name}'",
                context={
                    "source_name": source.name,
                    "skip_limit": skip_limit,
                    "skipped": stats["records_skipped"],
                },
                original_exception=error
            )

    @staticmethod
    @asynccontextmanager
    async def _transaction(session: Optional[AsyncSession]) -> AsyncIterator[None]:
        if session is None:
            yield
            return
        async with session.begin():
            yield
