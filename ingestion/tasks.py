"""
Generic pre/post processing task.

A task runs either every statement of a SQL file, in order, in the
transaction the host opened on the session, or a named task collaborator
from the registry. Tasks are disabled unless the descriptor enables them.
"""

from typing import Any, Dict, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.exceptions import TaskError
from ingestion.registry import Capability, CollaboratorRegistry
from ingestion.sql_loader import SqlFileLoader
from ingestion.variables import VariableResolver
from schemas.source import CollaboratorType, TaskDescriptor
import logging

logger = logging.getLogger(__name__)

FINISHED = "FINISHED"


class GenericTask:
    """
    Pre/post step of a source run.

    Outcome (dict):
    - status: FINISHED, or whatever the delegate reported
    - statements: number of SQL statements executed
    - rows_affected: total affected rows (SQL mode, when the driver knows)
    """

    def __init__(
        self,
        phase: str,
        source_name: str,
        descriptor: Optional[TaskDescriptor],
        registry: Optional[CollaboratorRegistry] = None,
        session: Optional[AsyncSession] = None,
        resolver: Optional[VariableResolver] = None,
        sql_loader: Optional[SqlFileLoader] = None
    ):
        self.phase = phase
        self.source_name = source_name
        self.descriptor = descriptor or TaskDescriptor()
        self.registry = registry
        self.session = session
        self.resolver = resolver or VariableResolver(source_name)
        self.sql_loader = sql_loader or SqlFileLoader(settings.INGESTION_SQL_DIR)

    @property
    def enabled(self) -> bool:
        return self.descriptor.enabled

    async def execute(self, context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not self.enabled:
            logger.debug(f"Source '{self.source_name}' - {self.phase} disabled, skipping")
            return {"status": FINISHED, "skipped": True}

        logger.info(
            f"Source '{self.source_name}' - executing {self.phase} "
            f"(type={self.descriptor.type.value})"
        )
        if self.descriptor.type == CollaboratorType.SQL:
            return await self._execute_sql()
        return await self._execute_delegate(context or {})

    async def _execute_sql(self) -> Dict[str, Any]:
        if self.session is None:
            raise TaskError(
                f"{self.phase} needs a database session",
                context={"source_name": self.source_name, "phase": self.phase}
            )

        statements = self.sql_loader.load_statements(
            self.descriptor.sql_directory, self.descriptor.sql_file, self.resolver
        )
        if not statements:
            logger.warning(
                f"Source '{self.source_name}' - no SQL statement found in "
                f"{self.descriptor.sql_directory}/{self.descriptor.sql_file}"
            )
            return {"status": FINISHED, "statements": 0, "rows_affected": 0}

        total_affected = 0
        for index, statement in enumerate(statements, start=1):
            logger.debug(
                f"Source '{self.source_name}' - statement [{index}/{len(statements)}]: "
                f"{statement.sql[:120]}"
            )
            try:
                result = await self.session.execute(text(statement.sql), statement.parameters)
            except SQLAlchemyError as e:
                raise TaskError(
                    f"{self.phase} statement {index}/{len(statements)} failed "
                    f"for source '{self.source_name}'",
                    context={
                        "source_name": self.source_name,
                        "phase": self.phase,
                        "sql_file": self.descriptor.sql_file,
                        "statement_index": index,
                    },
                    original_exception=e
                )
            affected = getattr(result, "rowcount", None)
            if isinstance(affected, int) and affected > 0:
                total_affected += affected

        logger.info(
            f"Source '{self.source_name}' - {len(statements)} statement(s) executed, "
            f"{total_affected} row(s) affected in total"
        )
        return {"status": FINISHED, "statements": len(statements), "rows_affected": total_affected}

    async def _execute_delegate(self, context: Dict[str, Any]) -> Dict[str, Any]:
        name = self.descriptor.name
        logger.info(f"Source '{self.source_name}' - delegating {self.phase} to '{name}'")
        if self.registry is None:
            raise TaskError(
                f"{self.phase} delegates to '{name}' but no registry was given",
                context={"source_name": self.source_name, "phase": self.phase}
            )

        delegate = self.registry.get(name, Capability.TASK, self.source_name)
        outcome = await delegate.execute({**context, "source_name": self.source_name, "phase": self.phase})
        logger.info(f"Source '{self.source_name}' - '{name}' executed with status: {outcome}")
        if isinstance(outcome, dict):
            return outcome
        return {"status": outcome if outcome is not None else FINISHED}
