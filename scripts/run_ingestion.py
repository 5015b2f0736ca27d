"""
Script to run one configured ingestion source

Usage:
    python scripts/run_ingestion.py <source> [key=value ...]

The key=value pairs become the bind values of the run (``:key`` in SQL,
URLs, headers and SOAP templates).
"""

import argparse
import asyncio
import sys
import os
import logging
from typing import Dict, List, Optional

# Add current directory to path to allow imports from core, ingestion, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import build_engine
from core.exceptions import IngestionException
from core.logging import setup_logging
from ingestion.config_loader import SourceConfigLoader
from ingestion.registry import CollaboratorRegistry
from ingestion.runner import IngestionRunner

logger = logging.getLogger(__name__)


def parse_bind_values(pairs: List[str]) -> Dict[str, str]:
    """Turn ``key=value`` arguments into a mapping."""
    values = {}
    for pair in pairs:
        key, separator, value = pair.partition("=")
        if not separator or not key.strip():
            raise ValueError(f"Invalid bind value '{pair}', expected key=value")
        values[key.strip()] = value
    return values


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run a configured ingestion source")
    parser.add_argument("source", help="Source name (file name of its YAML descriptor)")
    parser.add_argument("bind_values", nargs="*", metavar="key=value", help="Bind values for the run")
    parser.add_argument("--config-dir", default=settings.INGESTION_CONFIG_DIR, help="Descriptor directory")
    parser.add_argument("--database-url", default=None, help="Overrides DATABASE_URL")
    return parser


async def run_ingestion(source_name: str, bind_values: Dict[str, str], config_dir: str,
                        database_url: Optional[str] = None) -> Dict:
    """Load the descriptor, run it against the default database, return the run statistics"""
    descriptor = SourceConfigLoader(config_dir).load(source_name)
    engine = build_engine(database_url)

    try:
        registry = CollaboratorRegistry(default_engine=engine)
        runner = IngestionRunner(registry)
        return await runner.run(descriptor, bind_values)
    finally:
        await engine.dispose()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()

    try:
        bind_values = parse_bind_values(args.bind_values)
    except ValueError as e:
        logger.error(str(e))
        return 2

    try:
        result = asyncio.run(run_ingestion(args.source, bind_values, args.config_dir, args.database_url))
    except IngestionException as e:
        logger.error(f"Ingestion failed for {args.source}: {e}")
        return 1

    logger.info(
        f"Ingestion completed for {args.source}: "
        f"Read={result['records_read']}, "
        f"Written={result['records_written']}, "
        f"Skipped={result['records_skipped']}"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
