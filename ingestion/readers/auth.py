"""
httpx authentication flows for HTTP and SOAP sources.
"""

from typing import Optional

import httpx

from core.exceptions import ProtocolFaultError
from ingestion.variables import VariableResolver
from schemas.source import HttpAuthConfig, HttpAuthType, SoapAuthConfig, SoapAuthType
import logging

logger = logging.getLogger(__name__)


class ApiKeyAuth(httpx.Auth):
    """Static API key sent in a header (X-Api-Key by default)."""

    def __init__(self, api_key: str, header_name: str = "X-Api-Key"):
        self.api_key = api_key
        self.header_name = header_name

    def auth_flow(self, request: httpx.Request):
        request.headers[self.header_name] = self.api_key
        yield request


class BearerAuth(httpx.Auth):
    def __init__(self, token: str):
        self.token = token

    def auth_flow(self, request: httpx.Request):
        request.headers["Authorization"] = f"Bearer {self.token}"
        yield request


class HeaderAuth(httpx.Auth):
    """Arbitrary header carrying a credential (SOAP CUSTOM_HEADER)."""

    def __init__(self, header_name: str, header_value: str):
        self.header_name = header_name
        self.header_value = header_value

    def auth_flow(self, request: httpx.Request):
        request.headers[self.header_name] = self.header_value
        yield request


class OAuth2ClientCredentialsAuth(httpx.Auth):
    """
    OAuth2 client-credentials grant.

    The token is requested before the first call and reused for the rest
    of the run. A 401 triggers one token refresh and one replay.
    """

    requires_response_body = True

    def __init__(
        self,
        token_url: str,
        client_id: str,
        client_secret: str,
        scope: Optional[str] = None
    ):
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.scope = scope
        self.access_token: Optional[str] = None

    def _token_request(self) -> httpx.Request:
        data = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        if self.scope:
            data["scope"] = self.scope
        return httpx.Request("POST", self.token_url, data=data)

    def _store_token(self, response: httpx.Response) -> None:
        if not response.is_success:
            raise ProtocolFaultError(
                f"Token request failed with HTTP {response.status_code}",
                context={"token_url": self.token_url, "status_code": response.status_code}
            )
        try:
            self.access_token = response.json()["access_token"]
        except (ValueError, KeyError) as e:
            raise ProtocolFaultError(
                "Token response has no access_token",
                context={"token_url": self.token_url},
                original_exception=e
            )
        logger.debug(f"OAuth2 token obtained from {self.token_url}")

    def auth_flow(self, request: httpx.Request):
        if self.access_token is None:
            token_response = yield self._token_request()
            self._store_token(token_response)

        request.headers["Authorization"] = f"Bearer {self.access_token}"
        response = yield request

        if response.status_code == 401:
            logger.info("Access token rejected, requesting a new one")
            token_response = yield self._token_request()
            self._store_token(token_response)
            request.headers["Authorization"] = f"Bearer {self.access_token}"
            yield request


def build_http_auth(config: HttpAuthConfig, resolver: VariableResolver) -> Optional[httpx.Auth]:
    """Auth flow for an HTTP source, credentials pass through the resolver."""
    if config.type == HttpAuthType.API_KEY:
        return ApiKeyAuth(
            resolver.resolve(config.api_key, "http.auth.api_key"),
            config.header_name
        )
    if config.type == HttpAuthType.BEARER:
        return BearerAuth(resolver.resolve(config.bearer_token, "http.auth.bearer_token"))
    if config.type == HttpAuthType.OAUTH2_CLIENT_CREDENTIALS:
        return OAuth2ClientCredentialsAuth(
            token_url=resolver.resolve(config.token_url, "http.auth.token_url"),
            client_id=resolver.resolve(config.client_id, "http.auth.client_id"),
            client_secret=resolver.resolve(config.client_secret, "http.auth.client_secret"),
            scope=resolver.resolve(config.scope, "http.auth.scope"),
        )
    return None


def build_soap_auth(config: SoapAuthConfig, resolver: VariableResolver) -> Optional[httpx.Auth]:
    """
    Transport-level auth for a SOAP source.

    WS_SECURITY is carried in the envelope, not in HTTP headers.
    """
    if config.type == SoapAuthType.BASIC:
        return httpx.BasicAuth(
            resolver.resolve(config.username, "soap.auth.username"),
            resolver.resolve(config.password, "soap.auth.password"),
        )
    if config.type == SoapAuthType.CUSTOM_HEADER:
        return HeaderAuth(
            config.header_name,
            resolver.resolve(config.header_value, "soap.auth.header_value"),
        )
    return None
