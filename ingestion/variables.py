"""
Bind-variable and environment-variable resolution.

Templated strings (URLs, query parameters, headers, SOAP envelopes, SQL
files) may hold two kinds of placeholders:

- ``:identifier`` bound from the run's bind values (case-sensitive)
- ``${VAR}`` read from the process environment

Bind placeholders are resolved first, then environment placeholders. A
colon preceded by another colon is not a placeholder, so PostgreSQL casts
such as ``value::text`` survive untouched.
"""

import json
import os
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

from core.exceptions import MissingVariableError
import logging

logger = logging.getLogger(__name__)

BIND_PARAM_PATTERN = re.compile(r"(?<!:):([a-zA-Z][a-zA-Z0-9_]*)")
ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")
# A bind placeholder that is a whole JSON string value: ":name"
JSON_BIND_PATTERN = re.compile(r'":([a-zA-Z][a-zA-Z0-9_]*)"')

BIND = "bind"
ENV = "env"


@dataclass(frozen=True)
class Resolution:
    """
    Outcome of resolving one template.

    Attributes:
        text: Resolved text, None when a placeholder had no value
        missing: Identifier that could not be resolved
        kind: "bind" or "env" for the missing identifier
    """

    text: Optional[str]
    missing: Optional[str] = None
    kind: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.missing is None


class _Missing(Exception):
    def __init__(self, name: str):
        self.name = name


def _substitute(pattern: re.Pattern, text: str, lookup: Callable[[str], Optional[str]]) -> str:
    def replace(match: re.Match) -> str:
        value = lookup(match.group(1))
        if value is None:
            raise _Missing(match.group(1))
        return value

    return pattern.sub(replace, text)


def bind_names(text: str) -> List[str]:
    """Bind identifiers in order of first appearance, without duplicates."""
    return list(dict.fromkeys(BIND_PARAM_PATTERN.findall(text)))


def resolve(
    text: Optional[str],
    named_values: Mapping[str, Any],
    environ: Optional[Mapping[str, str]] = None
) -> Resolution:
    """
    Resolve bind then environment placeholders without raising.

    Text without placeholders is returned unchanged.
    """
    if text is None:
        return Resolution(text=None)

    environ = os.environ if environ is None else environ

    def bound(name: str) -> Optional[str]:
        if name not in named_values:
            return None
        value = named_values[name]
        return "" if value is None else str(value)

    try:
        text = _substitute(BIND_PARAM_PATTERN, text, bound)
    except _Missing as e:
        return Resolution(text=None, missing=e.name, kind=BIND)

    try:
        text = _substitute(ENV_VAR_PATTERN, text, environ.get)
    except _Missing as e:
        return Resolution(text=None, missing=e.name, kind=ENV)

    return Resolution(text=text)


class VariableResolver:
    """
    Run-scoped resolver that turns a missing placeholder into a fatal error.

    Built once per run from the bind values handed over by the host.
    """

    def __init__(
        self,
        source_name: str,
        bind_values: Optional[Mapping[str, Any]] = None,
        environ: Optional[Mapping[str, str]] = None
    ):
        self.source_name = source_name
        self.bind_values: Dict[str, Any] = dict(bind_values or {})
        self.environ = environ

    def resolve(self, text: Optional[str], context: str) -> Optional[str]:
        """
        Resolve a template.

        Args:
            text: Template text (None passes through)
            context: Where the template comes from, e.g. "http.url"

        Raises:
            MissingVariableError: When a bind value or environment variable is absent
        """
        result = resolve(text, self.bind_values, self.environ)
        if result.ok:
            return result.text

        if result.kind == BIND:
            message = (
                f"Bind variable not found in bind values [{context}]: ':{result.missing}'\n"
                f"Available parameters: {sorted(self.bind_values)}"
            )
        else:
            message = (
                f"Environment variable not found [{context}]: ${{{result.missing}}}\n"
                f"Set it before running: export {result.missing}=<value>"
            )
        raise MissingVariableError(
            message,
            name=result.missing,
            kind=result.kind,
            available=list(self.bind_values) if result.kind == BIND else None,
            context={"source_name": self.source_name, "template": context}
        )

    def resolve_env(self, text: Optional[str], context: str) -> Optional[str]:
        """
        Resolve only ``${VAR}`` placeholders.

        Used for XML templates, where ``prefix:name`` must not be read as
        a bind placeholder.
        """
        if text is None:
            return None
        environ = os.environ if self.environ is None else self.environ
        try:
            return _substitute(ENV_VAR_PATTERN, text, environ.get)
        except _Missing as e:
            raise MissingVariableError(
                f"Environment variable not found [{context}]: ${{{e.name}}}\n"
                f"Set it before running: export {e.name}=<value>",
                name=e.name,
                kind=ENV,
                context={"source_name": self.source_name, "template": context}
            )

    def resolve_json(self, text: Optional[str], context: str) -> Optional[str]:
        """
        Resolve a JSON body template.

        Only a string value made of a single placeholder (``":name"``) is
        bound, and the value is JSON-encoded in its place. Colons elsewhere,
        such as ``{"active":true}``, are JSON syntax and stay untouched.
        ``${VAR}`` placeholders are resolved afterwards.

        Raises:
            MissingVariableError: When a bind value or environment variable is absent
        """
        if text is None:
            return None

        def replace(match: re.Match) -> str:
            name = match.group(1)
            if name not in self.bind_values:
                raise MissingVariableError(
                    f"Bind variable not found in bind values [{context}]: ':{name}'\n"
                    f"Available parameters: {sorted(self.bind_values)}",
                    name=name,
                    kind=BIND,
                    available=list(self.bind_values),
                    context={"source_name": self.source_name, "template": context}
                )
            value = self.bind_values[name]
            return "null" if value is None else json.dumps(str(value))

        return self.resolve_env(JSON_BIND_PATTERN.sub(replace, text), context)

    def resolve_map(self, values: Mapping[str, str], context: str) -> Dict[str, str]:
        """Resolve every value of a template map, e.g. headers or query params."""
        return {
            key: self.resolve(value, f"{context}.{key}")
            for key, value in values.items()
        }

    def bind_parameters(self, text: str, context: str) -> Dict[str, Any]:
        """
        Collect the bind values a SQL statement refers to.

        Values keep their original type so the driver binds them natively.

        Raises:
            MissingVariableError: When the statement refers to an unknown name
        """
        params = {}
        for name in bind_names(text):
            if name not in self.bind_values:
                raise MissingVariableError(
                    f"Missing bound parameter [{context}]: ':{name}'\n"
                    f"Available parameters: {sorted(self.bind_values)}\n"
                    f"Pass it on the command line: {name}=<value>",
                    name=name,
                    kind=BIND,
                    available=list(self.bind_values),
                    context={"source_name": self.source_name, "template": context}
                )
            params[name] = self.bind_values[name]
            logger.debug(f"[{self.source_name}] resolved parameter :{name} = {params[name]!r}")
        return params
