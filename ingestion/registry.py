"""
Named collaborator registry.

Application code registers its processors, writers, tasks and extra
database engines here at startup; the engine looks them up by name.
Naming conventions:

    <sourceName>Processor   optional per-record transform
    <sourceName>Writer      writer used when a source declares none
    <name>                  delegate writers and tasks named in the descriptor
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from core.exceptions import CollaboratorNotFoundError, ConfigurationError
from ingestion.base import IdentityProcessor, RecordProcessor, RecordWriter, Task
import logging

logger = logging.getLogger(__name__)

DEFAULT_ENGINE = "default"


class Capability(str, Enum):
    PROCESSOR = "processor"
    WRITER = "writer"
    TASK = "task"
    ENGINE = "engine"


_CONTRACTS = {
    Capability.PROCESSOR: RecordProcessor,
    Capability.WRITER: RecordWriter,
    Capability.TASK: Task,
    Capability.ENGINE: AsyncEngine,
}

_CONTRACT_HINTS = {
    Capability.PROCESSOR: "an object with 'async def process(record)'",
    Capability.WRITER: "an object with 'async def write(records)'",
    Capability.TASK: "an object with 'async def execute(context)'",
    Capability.ENGINE: "a sqlalchemy AsyncEngine",
}


def to_camel_case(name: str) -> str:
    """calculator-soap -> calculatorSoap"""
    parts = name.split("-")
    return parts[0] + "".join(part[:1].upper() + part[1:] for part in parts[1:] if part)


class CollaboratorRegistry:
    """
    Exact-name lookup of collaborators with a capability check.

    Populated once at startup and read-only afterwards, so one registry
    can serve concurrent runs.
    """

    def __init__(self, default_engine: Optional[AsyncEngine] = None):
        self._entries: Dict[str, Any] = {}
        if default_engine is not None:
            self.register(DEFAULT_ENGINE, default_engine)

    def register(self, name: str, collaborator: Any) -> Any:
        if not name or not name.strip():
            raise ValueError("Collaborator name must not be blank")
        if name in self._entries:
            logger.warning(f"Collaborator '{name}' registered twice, keeping the last one")
        self._entries[name] = collaborator
        logger.debug(f"Registered collaborator '{name}' ({type(collaborator).__name__})")
        return collaborator

    def contains(self, name: str) -> bool:
        return name in self._entries

    def names(self) -> List[str]:
        return sorted(self._entries)

    def get(self, name: str, capability: Capability, source_name: Optional[str] = None) -> Any:
        """
        Fetch a collaborator and check it provides the capability.

        Raises:
            CollaboratorNotFoundError: Nothing registered under name
            ConfigurationError: Registered object lacks the capability
        """
        if name not in self._entries:
            raise CollaboratorNotFoundError(
                f"No {capability.value} registered under '{name}'",
                context={
                    "source_name": source_name,
                    "collaborator": name,
                    "capability": capability.value,
                }
            )
        return self._check(name, self._entries[name], capability, source_name)

    def _check(self, name: str, collaborator: Any, capability: Capability, source_name: Optional[str]) -> Any:
        if not isinstance(collaborator, _CONTRACTS[capability]):
            raise ConfigurationError(
                f"Collaborator '{name}' exists but is not a {capability.value}. "
                f"Actual type: {type(collaborator).__name__}. "
                f"It must be {_CONTRACT_HINTS[capability]}.",
                context={
                    "source_name": source_name,
                    "collaborator": name,
                    "capability": capability.value,
                }
            )
        return collaborator

    # ------------------------------------------------------------------
    # Conventions
    # ------------------------------------------------------------------

    def find_processor(self, source_name: str) -> RecordProcessor:
        """
        ``<sourceName>Processor``, then its camelCase form for hyphenated
        names, otherwise a pass-through processor.
        """
        name = f"{source_name}Processor"
        if not self.contains(name) and "-" in source_name:
            camel = f"{to_camel_case(source_name)}Processor"
            if self.contains(camel):
                name = camel

        if not self.contains(name):
            logger.debug(f"No custom processor found for source '{source_name}', using pass-through")
            return IdentityProcessor()

        logger.info(f"Using custom processor '{name}' for source '{source_name}'")
        return self.get(name, Capability.PROCESSOR, source_name)

    def find_writer(self, source_name: str) -> RecordWriter:
        """
        ``<sourceName>Writer``, mandatory when the source declares no writer.

        Raises:
            CollaboratorNotFoundError: With the expected name in the message
        """
        name = f"{source_name}Writer"
        if not self.contains(name):
            raise CollaboratorNotFoundError(
                f"No writer found for source '{source_name}'. Expected collaborator name: "
                f"'{name}'. Register an object named '{name}' with 'async def write(records)', "
                f"or declare a writer in the source configuration.",
                context={"source_name": source_name, "collaborator": name, "capability": "writer"}
            )
        logger.info(f"Using writer '{name}' for source '{source_name}'")
        return self.get(name, Capability.WRITER, source_name)

    def get_engine(self, name: Optional[str] = None, source_name: Optional[str] = None) -> AsyncEngine:
        """Named engine, or the default one when name is empty."""
        return self.get(name or DEFAULT_ENGINE, Capability.ENGINE, source_name)
