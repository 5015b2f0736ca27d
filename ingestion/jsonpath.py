"""
Minimal JSON path evaluation for HTTP payloads.

Supported syntax:
    $                   the document itself
    $.a.b               nested keys (leading "$." optional)
    $.items[0]          list index (negative indices count from the end)
    $['key with dots']  bracketed key
    $.items[*].id       wildcard over a list or the values of an object

A path that does not match returns None instead of raising.
"""

import re
from typing import Any, List, Union

from core.exceptions import ConfigurationError

_TOKEN = re.compile(
    r"""
    \.?(?P<key>[^.\[\]]+)                      # .key or key
    | \[\s*(?P<index>-?\d+)\s*\]               # [0]
    | \[\s*(?P<star>\*)\s*\]                   # [*]
    | \.(?P<dotstar>\*)                        # .*
    | \[\s*'(?P<quoted>[^']*)'\s*\]            # ['key']
    | \[\s*"(?P<dquoted>[^"]*)"\s*\]           # ["key"]
    """,
    re.VERBOSE,
)

WILDCARD = object()

Token = Union[str, int, object]


def compile_path(path: str) -> List[Token]:
    """
    Split a path into key, index and wildcard tokens.

    Raises:
        ConfigurationError: When the path has characters that are not a token
    """
    text = (path or "").strip()
    if text.startswith("$"):
        text = text[1:]
    tokens: List[Token] = []
    position = 0
    while position < len(text):
        match = _TOKEN.match(text, position)
        if not match or match.end() == position:
            raise ConfigurationError(
                f"Invalid JSON path '{path}' at position {position + 1}",
                context={"json_path": path}
            )
        if match.group("index") is not None:
            tokens.append(int(match.group("index")))
        elif match.group("star") or match.group("dotstar"):
            tokens.append(WILDCARD)
        elif match.group("quoted") is not None:
            tokens.append(match.group("quoted"))
        elif match.group("dquoted") is not None:
            tokens.append(match.group("dquoted"))
        elif match.group("key") == "*":
            tokens.append(WILDCARD)
        else:
            tokens.append(match.group("key"))
        position = match.end()
    return tokens


def _step(node: Any, token: Token) -> List[Any]:
    if token is WILDCARD:
        if isinstance(node, list):
            return list(node)
        if isinstance(node, dict):
            return list(node.values())
        return []
    if isinstance(token, int):
        if isinstance(node, list) and -len(node) <= token < len(node):
            return [node[token]]
        return []
    if isinstance(node, dict) and token in node:
        return [node[token]]
    return []


def read_path(document: Any, path: str) -> Any:
    """
    Evaluate a path against a parsed JSON document.

    Returns:
        The matched value, a list of matches when the path holds a
        wildcard, or None when nothing matches
    """
    tokens = compile_path(path)
    multiple = any(token is WILDCARD for token in tokens)

    nodes = [document]
    for token in tokens:
        nodes = [found for node in nodes for found in _step(node, token)]
        if not nodes:
            return [] if multiple else None

    if multiple:
        return nodes
    return nodes[0]
