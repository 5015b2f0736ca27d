"""
XPath subset evaluation over ElementTree for SOAP responses.

ElementTree understands the structural part of XPath (steps, ``//``,
``*``, ``..``, attribute and position predicates). This module adds what
the SOAP reader needs on top of it:

- absolute paths (``/Envelope/Body/x``, ``//Trade``)
- a trailing ``text()`` or ``@attribute`` step, or a bare ``@attribute``
- ``*[local-name()='Name']`` steps
- prefix resolution from the namespaces declared in the document, or
  namespace stripping when the source is not namespace aware
"""

import io
import re
from typing import Dict, List, Optional, Tuple, Union
from xml.etree import ElementTree as ET

from core.exceptions import ConfigurationError

_TEXT_STEP = re.compile(r"/text\(\)\s*$")
_ATTRIBUTE_STEP = re.compile(r"(?:^|/)@([\w.:-]+)\s*$")
_LOCAL_NAME_STEP = re.compile(r"\*\[\s*local-name\(\)\s*=\s*['\"]([\w.-]+)['\"]\s*\]")
_PREFIXED_NAME = re.compile(r"(?<![\w'\"{}])([A-Za-z_][\w.-]*):(?=[A-Za-z_*])")

TEXT = "text"
ATTRIBUTE = "attribute"
NODE = "node"


def local_name(tag: str) -> str:
    if isinstance(tag, str) and tag.startswith("{"):
        return tag.split("}", 1)[1]
    return tag


def _strip_namespaces(root: ET.Element) -> None:
    for element in root.iter():
        element.tag = local_name(element.tag)
        if any(key.startswith("{") for key in element.attrib):
            element.attrib = {local_name(k): v for k, v in element.attrib.items()}


def compile_xpath(path: str, namespace_aware: bool = True) -> Tuple[str, str, Optional[str], bool]:
    """
    Translate an XPath expression into an ElementTree path.

    Returns:
        (element path, mode, attribute name, absolute) where mode is
        "node", "text" or "attribute"
    """
    expression = (path or "").strip()
    if not expression:
        raise ConfigurationError("XPath expression is empty", context={"xpath": path})

    mode, attribute = NODE, None
    if _TEXT_STEP.search(expression):
        mode = TEXT
        expression = _TEXT_STEP.sub("", expression) or "."
    else:
        match = _ATTRIBUTE_STEP.search(expression)
        if match:
            mode, attribute = ATTRIBUTE, match.group(1)
            expression = expression[:match.start()] or "."

    expression = _LOCAL_NAME_STEP.sub(r"{*}\1", expression)
    if not namespace_aware:
        expression = _PREFIXED_NAME.sub("", expression)
        if attribute:
            attribute = local_name(attribute.split(":")[-1])

    absolute = expression.startswith("/")
    if absolute:
        expression = "." + expression
    return expression, mode, attribute, absolute


class XmlDocument:
    """
    Parsed XML response with the namespace map declared in it.

    Namespace-aware documents resolve ``prefix:name`` steps through the
    prefixes declared in the document. Otherwise every tag is reduced to
    its local name and prefixes in expressions are ignored.
    """

    def __init__(self, root: ET.Element, namespaces: Dict[str, str], namespace_aware: bool = True):
        self.root = root
        self.namespaces = namespaces
        self.namespace_aware = namespace_aware
        # Synthetic document node so absolute paths can match the root element
        self._document = ET.Element("document")
        self._document.append(root)

    @classmethod
    def parse(cls, content: Union[str, bytes], namespace_aware: bool = True) -> "XmlDocument":
        """
        Parse a response body.

        Raises:
            xml.etree.ElementTree.ParseError: When the body is not well-formed
        """
        if isinstance(content, str):
            content = content.encode("utf-8")

        namespaces: Dict[str, str] = {}
        parser = ET.iterparse(io.BytesIO(content), events=("start-ns",))
        for _, (prefix, uri) in parser:
            if prefix:
                namespaces.setdefault(prefix, uri)
        root = parser.root

        if not namespace_aware:
            _strip_namespaces(root)
            namespaces = {}
        return cls(root, namespaces, namespace_aware)

    def _find(self, path: str, node: Optional[ET.Element]) -> Tuple[List[ET.Element], str, Optional[str]]:
        expression, mode, attribute, absolute = compile_xpath(path, self.namespace_aware)
        context = self._document if absolute or node is None else node
        try:
            return context.findall(expression, self.namespaces), mode, attribute
        except (SyntaxError, KeyError) as e:
            raise ConfigurationError(
                f"Unsupported XPath expression '{path}'",
                context={"xpath": path, "translated": expression},
                original_exception=e
            )

    def select(self, path: str, node: Optional[ET.Element] = None) -> List[ET.Element]:
        """Elements matched by path, relative to node or to the document."""
        elements, _, _ = self._find(path, node)
        return elements

    def string_value(self, path: str, node: Optional[ET.Element] = None) -> str:
        """
        String value of the first match, "" when nothing matches.

        ``text()`` yields the element's own text, ``@name`` the attribute,
        and a plain element step the concatenation of all nested text.
        """
        elements, mode, attribute = self._find(path, node)
        if not elements:
            return ""
        first = elements[0]
        if mode == TEXT:
            return first.text or ""
        if mode == ATTRIBUTE:
            value = first.attrib.get(attribute)
            if value is None:
                value = next(
                    (v for k, v in first.attrib.items() if local_name(k) == attribute), None
                )
            return value or ""
        return "".join(first.itertext())

    def find_fault(self) -> Optional[ET.Element]:
        """Fault child of the envelope Body, if any."""
        for body in self.root:
            if local_name(body.tag) != "Body":
                continue
            for element in body:
                if local_name(element.tag) == "Fault":
                    return element
        return None

    def fault_string(self, fault: ET.Element) -> str:
        """faultstring (SOAP 1.1) or Reason/Text (SOAP 1.2) of a Fault element."""
        for element in fault.iter():
            name = local_name(element.tag)
            if name == "faultstring" and (element.text or "").strip():
                return element.text.strip()
            if name == "Reason":
                for child in element.iter():
                    if local_name(child.tag) == "Text" and (child.text or "").strip():
                        return child.text.strip()
        return "Unknown SOAP Fault"
