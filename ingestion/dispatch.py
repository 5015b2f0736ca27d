"""
Reader, processor and writer selection for a source.

Stateless factory functions, called once per run: each run gets its own
reader and writer instances built from the (shared, immutable) descriptor
and the run's bind values.
"""

from typing import Any, Mapping, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import ConfigurationError
from ingestion.base import RecordProcessor, RecordReader, RecordWriter
from ingestion.readers.file_reader import DelimitedFileReader
from ingestion.readers.http_reader import HttpJsonReader
from ingestion.readers.query_reader import QueryReader
from ingestion.readers.soap_reader import SoapReader
from ingestion.registry import Capability, CollaboratorRegistry
from ingestion.sql_loader import SqlFileLoader
from ingestion.variables import VariableResolver
from ingestion.writers.sql_writer import SqlBatchWriter
from schemas.source import CollaboratorType, SourceDescriptor, SourceType
import logging

logger = logging.getLogger(__name__)


def build_reader(
    source: SourceDescriptor,
    bind_values: Optional[Mapping[str, Any]] = None,
    registry: Optional[CollaboratorRegistry] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    resolver: Optional[VariableResolver] = None,
    sql_loader: Optional[SqlFileLoader] = None
) -> RecordReader:
    """
    Reader matching the source type.

    Raises:
        ConfigurationError: QUERY source without an engine to run on
    """
    resolver = resolver or VariableResolver(source.name, bind_values)
    logger.info(f"Building {source.type.value} reader for source '{source.name}'")

    if source.type == SourceType.FILE:
        return DelimitedFileReader(source, resolver=resolver, read_chunk_size=source.chunk_size)

    if source.type == SourceType.QUERY:
        if registry is None:
            raise ConfigurationError(
                f"QUERY source '{source.name}' needs a registry with a database engine",
                context={"source_name": source.name}
            )
        engine = registry.get_engine(source.query.data_source, source.name)
        return QueryReader(source, engine, resolver=resolver, sql_loader=sql_loader)

    if source.type == SourceType.HTTP:
        return HttpJsonReader(source, client=http_client, resolver=resolver)

    if source.type == SourceType.SOAP:
        return SoapReader(source, client=http_client, resolver=resolver)

    raise ConfigurationError(
        f"Unsupported source type '{source.type}' for source '{source.name}'",
        context={"source_name": source.name}
    )


def build_processor(source: SourceDescriptor, registry: Optional[CollaboratorRegistry] = None) -> RecordProcessor:
    """``<sourceName>Processor`` when registered, pass-through otherwise."""
    if registry is None:
        return CollaboratorRegistry().find_processor(source.name)
    return registry.find_processor(source.name)


def build_writer(
    source: SourceDescriptor,
    registry: CollaboratorRegistry,
    session: Optional[AsyncSession] = None,
    sql_loader: Optional[SqlFileLoader] = None
) -> RecordWriter:
    """
    Writer for a source, in order of precedence:

    1. SQL writer descriptor: batch writer over the statement file
    2. DELEGATE writer descriptor: the named collaborator
    3. No descriptor: the ``<sourceName>Writer`` collaborator, which must exist

    Raises:
        CollaboratorNotFoundError: Named or conventional writer missing
        ConfigurationError: SQL writer without a session
    """
    descriptor = source.writer

    if descriptor is not None and descriptor.type == CollaboratorType.SQL:
        if session is None:
            raise ConfigurationError(
                f"SQL writer of source '{source.name}' needs a database session",
                context={"source_name": source.name}
            )
        logger.info(
            f"Source '{source.name}' - SQL writer: "
            f"{descriptor.sql_directory}/{descriptor.sql_file}"
        )
        return SqlBatchWriter(source.name, descriptor, session, sql_loader)

    if descriptor is not None and descriptor.type == CollaboratorType.DELEGATE:
        logger.info(f"Source '{source.name}' - delegate writer '{descriptor.name}'")
        return registry.get(descriptor.name, Capability.WRITER, source.name)

    logger.debug(f"Source '{source.name}' - no writer configured, looking up '{source.name}Writer'")
    return registry.find_writer(source.name)
