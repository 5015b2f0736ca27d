"""
SQL statement files: loading, comment stripping and bind parameters.

Statement files live outside the code (``<sql_directory>/<sql_file>``)
and are re-read on every run, so they can be edited between runs.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from core.exceptions import SqlFileError
from ingestion.variables import VariableResolver, bind_names
import logging

logger = logging.getLogger(__name__)

_LINE_COMMENT = re.compile(r"--[^\n]*")
_STATEMENT_END = re.compile(r";\s*(?=\n|\r|$)")


@dataclass(frozen=True)
class LoadedSql:
    """A statement ready for execution with its bound parameter values."""

    sql: str
    parameter_names: List[str] = field(default_factory=list)
    parameters: Dict[str, Any] = field(default_factory=dict)


class SqlFileLoader:
    """
    Load SQL files and resolve their ``:name`` parameters.

    Responsibilities:
    - Locate and read the file (UTF-8)
    - Strip ``--`` line comments
    - Reject missing, unreadable and empty files
    - Extract parameter names in order of appearance and bind them from
      the run's bind values
    - Split multi-statement files on ``;`` at end of line
    """

    def __init__(self, base_directory: Optional[str] = None):
        self.base_directory = Path(base_directory) if base_directory else None

    def resolve_path(self, sql_directory: str, sql_file: str) -> Path:
        directory = Path(sql_directory)
        if not directory.is_absolute() and self.base_directory is not None:
            directory = self.base_directory / directory
        return directory / sql_file

    def read_raw_sql(self, sql_directory: str, sql_file: str) -> str:
        """
        Read a statement file without resolving parameters.

        Raises:
            SqlFileError: File missing, unreadable, or empty once comments are removed
        """
        path = self.resolve_path(sql_directory, sql_file)
        context = {"sql_directory": sql_directory, "sql_file": sql_file, "path": str(path)}

        if not path.is_file():
            raise SqlFileError(
                f"SQL file not found: {path.absolute()}\n"
                f"Check sql_directory='{sql_directory}' and sql_file='{sql_file}'.",
                context=context
            )

        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise SqlFileError(
                f"Unable to read SQL file: {path}",
                context=context,
                original_exception=e
            )

        content = _LINE_COMMENT.sub("", content).strip()
        if not content:
            raise SqlFileError(
                f"SQL file is empty or contains only comments: {path}",
                context=context
            )

        logger.info(f"SQL file loaded: {path.name} ({len(content)} characters)")
        return content

    def load(
        self,
        sql_directory: str,
        sql_file: str,
        resolver: VariableResolver
    ) -> LoadedSql:
        """
        Read a single statement and bind its parameters from the run's values.

        Raises:
            SqlFileError: See read_raw_sql
            MissingVariableError: A parameter has no bind value
        """
        sql = self.read_raw_sql(sql_directory, sql_file)
        names = bind_names(sql)
        parameters = resolver.bind_parameters(sql, f"{sql_directory}/{sql_file}")
        logger.info(
            f"Source '{resolver.source_name}' - SQL ready, "
            f"{len(names)} bind variable(s): {names}"
        )
        return LoadedSql(sql=sql, parameter_names=names, parameters=parameters)

    def load_statements(
        self,
        sql_directory: str,
        sql_file: str,
        resolver: VariableResolver
    ) -> List[LoadedSql]:
        """Split a multi-statement file and bind each statement separately."""
        content = self.read_raw_sql(sql_directory, sql_file)
        statements = []
        for index, statement in enumerate(_STATEMENT_END.split(content)):
            statement = statement.strip()
            if not statement:
                continue
            parameters = resolver.bind_parameters(
                statement, f"{sql_directory}/{sql_file}#{index + 1}"
            )
            statements.append(
                LoadedSql(sql=statement, parameter_names=bind_names(statement), parameters=parameters)
            )
        logger.info(f"{len(statements)} statement(s) found in {sql_file}")
        return statements
