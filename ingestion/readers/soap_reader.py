"""
SOAP web service reader with XPath extraction.

One call per run: the envelope is built from the request template, posted
on the first read(), and the item nodes selected by data_path are
buffered. A SOAP Fault fails the run; no partial results are returned.
"""

import base64
import hashlib
import os
import re
from collections import deque
from datetime import datetime, timezone
from typing import Deque, Dict, Optional
from xml.etree import ElementTree as ET
from xml.sax.saxutils import escape

import httpx

from core.exceptions import ProtocolFaultError, SoapFaultError, TransientProtocolError
from ingestion.base import RecordReader
from ingestion.readers.auth import build_soap_auth
from ingestion.xpath import XmlDocument
from models.record import Record
from schemas.source import PasswordType, SoapAuthType
import logging

logger = logging.getLogger(__name__)

# Request params may land in attribute values
_QUOTE_ENTITIES = {"\"": "&quot;", "'": "&apos;"}

WSSE_NS = "http://docs.oasis-open.org/wss/2004/01/oasis-200401-wss-wssecurity-secext-1.0.xsd"
WSU_NS = "http://docs.oasis-open.org/wss/2004/01/oasis-200401-wss-wssecurity-utility-1.0.xsd"
PASSWORD_TYPE_BASE = (
    "http://docs.oasis-open.org/wss/2004/01/oasis-200401-wss-username-token-profile-1.0#"
)
NONCE_ENCODING = (
    "http://docs.oasis-open.org/wss/2004/01/oasis-200401-wss-soap-message-security-1.0#Base64Binary"
)

_ENVELOPE_PREFIX = re.compile(r"<([\w-]+):Envelope\b")


def password_digest(password: str, nonce: bytes, created: str) -> str:
    """Base64(SHA-1(nonce + created + password)) as defined by the UsernameToken profile."""
    digest = hashlib.sha1(nonce + created.encode("utf-8") + password.encode("utf-8")).digest()
    return base64.b64encode(digest).decode("ascii")


def username_token_header(
    username: str,
    password: str,
    password_type: PasswordType = PasswordType.TEXT,
    nonce: Optional[bytes] = None,
    created: Optional[str] = None
) -> str:
    """wsse:Security header carrying a UsernameToken."""
    parts = [f"<wsse:Username>{escape(username)}</wsse:Username>"]
    if password_type == PasswordType.DIGEST:
        nonce = nonce if nonce is not None else os.urandom(16)
        created = created or datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        parts.append(
            f'<wsse:Password Type="{PASSWORD_TYPE_BASE}PasswordDigest">'
            f"{password_digest(password, nonce, created)}</wsse:Password>"
        )
        parts.append(
            f'<wsse:Nonce EncodingType="{NONCE_ENCODING}">'
            f"{base64.b64encode(nonce).decode('ascii')}</wsse:Nonce>"
        )
        parts.append(f"<wsu:Created>{created}</wsu:Created>")
    else:
        parts.append(
            f'<wsse:Password Type="{PASSWORD_TYPE_BASE}PasswordText">'
            f"{escape(password)}</wsse:Password>"
        )
    return (
        f'<wsse:Security xmlns:wsse="{WSSE_NS}" xmlns:wsu="{WSU_NS}">'
        f"<wsse:UsernameToken>{''.join(parts)}</wsse:UsernameToken>"
        f"</wsse:Security>"
    )


def inject_security_header(envelope: str, security: str) -> str:
    """
    Place a wsse:Security element in the envelope's Header.

    A Header element is created before Body when the template has none.
    """
    match = _ENVELOPE_PREFIX.search(envelope)
    prefix = match.group(1) if match else "soapenv"

    empty_header = re.compile(rf"<{re.escape(prefix)}:Header\s*/>")
    if empty_header.search(envelope):
        return empty_header.sub(
            lambda _: f"<{prefix}:Header>{security}</{prefix}:Header>", envelope, count=1
        )

    open_header = re.compile(rf"<{re.escape(prefix)}:Header\b[^>]*>")
    header = open_header.search(envelope)
    if header:
        return envelope[:header.end()] + security + envelope[header.end():]

    body = re.compile(rf"<{re.escape(prefix)}:Body\b").search(envelope)
    if body is None:
        raise ProtocolFaultError(
            "Cannot add WS-Security header: envelope has no Body element",
            context={"envelope_prefix": prefix}
        )
    header_xml = f"<{prefix}:Header>{security}</{prefix}:Header>"
    return envelope[:body.start()] + header_xml + envelope[body.start():]


class SoapReader(RecordReader):
    """
    Extract records from a single SOAP call.

    Features:
    - SOAP 1.1 (text/xml + SOAPAction) and 1.2 (application/soap+xml)
    - Request params substituted for :name placeholders, XML-escaped
    - BASIC, CUSTOM_HEADER and WS-Security UsernameToken authentication
    - data_path selects item nodes; each column reads its xpath,
      ./<column>/text() by default
    """

    def __init__(self, source, client: Optional[httpx.AsyncClient] = None, bind_values=None, resolver=None):
        super().__init__(source, bind_values, resolver)
        self.config = source.soap
        self.client = client
        self._owns_client = client is None
        self._buffer: Deque[Record] = deque()
        self._fetched = False
        self._endpoint = ""
        self._headers: Dict[str, str] = {}
        self._auth: Optional[httpx.Auth] = None

    async def _open(self) -> None:
        self._endpoint = self.resolver.resolve(self.config.endpoint, "soap.endpoint")
        self._headers = self._build_headers()
        self._auth = build_soap_auth(self.config.auth, self.resolver)
        self._fetched = False
        self._buffer.clear()

        if self.client is None:
            self.client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.read_timeout, connect=self.config.connection_timeout)
            )
            self._owns_client = True

        logger.info(
            f"SOAP reader opened - endpoint: {self._endpoint}, "
            f"SOAPAction: {self.config.soap_action}"
        )

    def _build_headers(self) -> Dict[str, str]:
        if self.config.soap_version == "1.2":
            headers = {"Content-Type": "application/soap+xml; charset=utf-8"}
        else:
            headers = {"Content-Type": "text/xml; charset=utf-8"}
        if self.config.soap_action:
            headers["SOAPAction"] = self.resolver.resolve_env(self.config.soap_action, "soap.soap_action")
        return headers

    def build_request(self) -> str:
        """Envelope with request params, environment variables and WS-Security applied."""
        envelope = self.config.request_template
        for name, value in self.config.request_params.items():
            resolved = self.resolver.resolve(value, f"soap.request_params.{name}")
            placeholder = re.compile(rf"(?<![\w:]):{re.escape(name)}\b")
            envelope = placeholder.sub(lambda _: escape(resolved or "", _QUOTE_ENTITIES), envelope)
        envelope = self.resolver.resolve_env(envelope, "soap.request_template")

        auth = self.config.auth
        if auth.type == SoapAuthType.WS_SECURITY and ":Security" not in envelope:
            security = username_token_header(
                self.resolver.resolve(auth.username, "soap.auth.username"),
                self.resolver.resolve(auth.password, "soap.auth.password"),
                auth.password_type,
            )
            envelope = inject_security_header(envelope, security)
        return envelope

    async def _read(self) -> Optional[Record]:
        if not self._fetched:
            await self._fetch()
            self._fetched = True
        if self._buffer:
            return self._buffer.popleft()
        return None

    async def _fetch(self) -> None:
        envelope = self.build_request()
        logger.debug(f"SOAP request built: {len(envelope)} characters")

        options = {"content": envelope.encode("utf-8"), "headers": self._headers}
        if self._auth is not None:
            options["auth"] = self._auth
        context = {"source_name": self.source_name, "endpoint": self._endpoint}

        try:
            response = await self.client.post(self._endpoint, **options)
        except httpx.TransportError as e:
            raise TransientProtocolError(
                f"SOAP call to {self._endpoint} failed: {e}",
                context=context,
                original_exception=e
            )

        body = response.content
        logger.debug(f"SOAP response received: HTTP {response.status_code}, {len(body)} bytes")
        if not body or not body.strip():
            raise ProtocolFaultError(
                f"Empty SOAP response (HTTP {response.status_code})",
                context={**context, "status_code": response.status_code}
            )

        try:
            document = XmlDocument.parse(body, self.config.namespace_aware)
        except ET.ParseError as e:
            raise ProtocolFaultError(
                f"Malformed SOAP response (HTTP {response.status_code})",
                context={**context, "status_code": response.status_code, "response_body": response.text[:500]},
                original_exception=e
            )

        # Faults usually arrive with HTTP 500, check them before the status
        fault = document.find_fault()
        if fault is not None:
            fault_string = document.fault_string(fault)
            raise SoapFaultError(
                f"SOAP Fault received from endpoint: {fault_string}",
                context={**context, "status_code": response.status_code, "fault_string": fault_string}
            )

        if not response.is_success:
            raise ProtocolFaultError(
                f"SOAP call failed with HTTP {response.status_code}",
                context={**context, "status_code": response.status_code, "response_body": response.text[:500]}
            )

        nodes = document.select(self.config.data_path)
        if not nodes:
            logger.warning(f"XPath '{self.config.data_path}' returned 0 nodes")

        for node in nodes:
            record = Record()
            for column in self.source.columns:
                xpath = column.xpath if column.xpath and column.xpath.strip() else f"./{column.name}/text()"
                record[column.name] = self.convert(document.string_value(xpath, node), column)
            self._buffer.append(record)

        logger.info(f"Extracted {len(nodes)} items from SOAP response")

    async def _close(self) -> None:
        self._buffer.clear()
        if self._owns_client and self.client is not None:
            await self.client.aclose()
            self.client = None
