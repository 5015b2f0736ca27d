"""
Configuration-driven record ingestion.

Modules:
    base: Reader contract and processor/writer/task protocols
    config_loader: YAML descriptor loading with caching
    converter: Typed value conversion
    dispatch: Reader, processor and writer selection per source
    jsonpath / xpath: Path evaluation over JSON and XML payloads
    registry: Named collaborators (processors, writers, tasks, engines)
    retry: HTTP retry policy
    runner: Chunk-oriented orchestrator
    sql_loader: SQL files with comment stripping and bind resolution
    tasks: Generic pre/post processing task
    variables: ``:bind`` and ``${ENV}`` resolution

Subpackages:
    readers: FILE, QUERY, HTTP and SOAP readers
    writers: SQL batch writer

Usage:
    from ingestion.config_loader import SourceConfigLoader
    from ingestion.registry import CollaboratorRegistry
    from ingestion.runner import IngestionRunner

    descriptor = SourceConfigLoader().load("orders")
    runner = IngestionRunner(CollaboratorRegistry(default_engine=engine))
    result = await runner.run(descriptor, {"date": "2024-01-01"})
"""

__all__ = [
    "base",
    "config_loader",
    "converter",
    "dispatch",
    "registry",
    "retry",
    "runner",
    "sql_loader",
    "tasks",
    "variables",
]
